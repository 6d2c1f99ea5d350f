"""Rule-level compliance deltas between two scans."""

from typing import Dict, Iterable, List, Set

from ..models import ComplianceChanges, ComplianceChangeType, ComplianceDifference, Finding, Severity, Threshold

VIOLATION = "VIOLATION"
COMPLIANT = "COMPLIANT"
NO_DESCRIPTION = "No detailed description available"

_THRESHOLD_SEVERITIES: Dict[str, Set[Severity]] = {
    "all": set(Severity),
    "medium": {Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM},
    "high": {Severity.CRITICAL, Severity.HIGH},
}


def index_by_rule(findings: Iterable[Finding]) -> Dict[str, Finding]:
    """Findings keyed by rule id. A repeated rule id keeps the last finding; findings without one are ignored."""
    indexed: Dict[str, Finding] = {}
    for finding in findings:
        if finding.rule_id:
            indexed[finding.rule_id] = finding
    return indexed


def _new_violation(rule_id: str, finding: Finding) -> ComplianceDifference:
    return ComplianceDifference(
        rule_id=rule_id,
        rule_name=finding.title or rule_id,
        change_type=ComplianceChangeType.NEW_VIOLATION,
        new_status=VIOLATION,
        severity=finding.severity,
        impact="New compliance violation detected",
        description=finding.description or NO_DESCRIPTION,
        resource_id=finding.resource,
    )


def _resolved(rule_id: str, finding: Finding) -> ComplianceDifference:
    return ComplianceDifference(
        rule_id=rule_id,
        rule_name=finding.title or rule_id,
        change_type=ComplianceChangeType.RESOLVED,
        old_status=VIOLATION,
        new_status=COMPLIANT,
        severity=finding.severity,
        impact="Compliance violation resolved",
        description=finding.description or NO_DESCRIPTION,
        resource_id=finding.resource,
    )


def _status_changed(rule_id: str, before: Finding, after: Finding) -> ComplianceDifference:
    return ComplianceDifference(
        rule_id=rule_id,
        rule_name=after.title or rule_id,
        change_type=ComplianceChangeType.STATUS_CHANGED,
        old_status=before.severity.value,
        new_status=after.severity.value,
        severity=after.severity,
        impact=f"Severity changed from {before.severity.value} to {after.severity.value}",
        description=after.description or NO_DESCRIPTION,
        resource_id=after.resource,
    )


def compliance_differences(baseline: Iterable[Finding], comparison: Iterable[Finding]) -> List[ComplianceDifference]:
    """Only severity is compared for rules present in both scans."""
    before, after = index_by_rule(baseline), index_by_rule(comparison)
    differences: List[ComplianceDifference] = []
    for rule_id in dict.fromkeys([*before, *after]):
        old, new = before.get(rule_id), after.get(rule_id)
        if old is None and new is not None:
            differences.append(_new_violation(rule_id, new))
        elif old is not None and new is None:
            differences.append(_resolved(rule_id, old))
        elif old is not None and new is not None and old.severity != new.severity:
            differences.append(_status_changed(rule_id, old, new))
    return differences


def analyze_compliance_changes(baseline: Iterable[Finding], comparison: Iterable[Finding],
                               threshold: Threshold = "all") -> ComplianceChanges:
    differences = compliance_differences(baseline, comparison)
    allowed = _THRESHOLD_SEVERITIES[threshold]

    def count(change_type: ComplianceChangeType) -> int:
        return sum(1 for d in differences if d.change_type == change_type)

    return ComplianceChanges(
        new_violations=count(ComplianceChangeType.NEW_VIOLATION),
        resolved_violations=count(ComplianceChangeType.RESOLVED),
        status_changes=count(ComplianceChangeType.STATUS_CHANGED),
        differences=[d for d in differences if d.severity in allowed],
    )
