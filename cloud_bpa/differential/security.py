"""Security-impact verdict for a scan comparison."""

from ..models import ComplianceChanges, RiskDirection, ScanResult, SecurityImpact


def risk_direction(critical_changes: int, new_violations: int, resolved_violations: int) -> RiskDirection:
    """The critical-count delta is checked before the violation balance; ties are UNCHANGED."""
    if critical_changes > 0 or new_violations > resolved_violations:
        return RiskDirection.INCREASED
    if critical_changes < 0 or resolved_violations > new_violations:
        return RiskDirection.DECREASED
    return RiskDirection.UNCHANGED


def analyze_security_impact(baseline: ScanResult, comparison: ScanResult,
                            compliance: ComplianceChanges) -> SecurityImpact:
    critical_changes = comparison.critical_findings - baseline.critical_findings
    return SecurityImpact(
        score_change=comparison.compliance_score - baseline.compliance_score,
        risk_level=risk_direction(critical_changes, compliance.new_violations, compliance.resolved_violations),
        critical_changes=critical_changes,
        findings_change=comparison.security_findings - baseline.security_findings,
    )
