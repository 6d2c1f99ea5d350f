"""
Findings aggregation: severity/pillar counts, scores and ScanResult snapshots.

Findings come from the external analysis oracle; this module only reads and
counts them.
"""

import math
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .logging_config import get_component_logger
from .models import Finding, FindingsSummary, Pillar, Resource, ResourceGraph, RiskLevel, ScanResult, ScoreCard, Severity

logger = get_component_logger("findings")

SEVERITY_PENALTIES: Dict[Severity, int] = {
    Severity.CRITICAL: 10,
    Severity.HIGH: 7,
    Severity.MEDIUM: 4,
    Severity.LOW: 2,
    Severity.INFO: 0,
}


def calculate_scores(findings: Iterable[Finding]) -> ScoreCard:
    """Per-pillar and per-framework scores start at 100 and lose the severity penalty of each finding."""
    pillar_scores: Dict[str, float] = {pillar.value: 100 for pillar in Pillar}
    framework_scores: Dict[str, float] = {}

    for finding in findings:
        penalty = SEVERITY_PENALTIES[finding.severity]
        if finding.pillar is not None:
            key = finding.pillar.value
            pillar_scores[key] = max(0, pillar_scores[key] - penalty)
        if finding.framework:
            framework_scores[finding.framework] = max(0, framework_scores.get(finding.framework, 100) - penalty)

    overall = sum(pillar_scores.values()) / len(pillar_scores)
    return ScoreCard(
        overall_score=int(math.floor(overall + 0.5)),
        pillar_scores=pillar_scores,
        framework_scores=framework_scores,
    )


def determine_risk_level(overall_score: float, by_severity: Dict[str, int]) -> RiskLevel:
    high = by_severity.get(Severity.HIGH.value, 0)
    if by_severity.get(Severity.CRITICAL.value, 0) > 0:
        return RiskLevel.CRITICAL
    if overall_score < 50 or high > 5:
        return RiskLevel.HIGH
    if overall_score < 75 or high > 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def summarize_findings(findings: Iterable[Finding]) -> FindingsSummary:
    """
    Summarize one scan's findings.

    Args:
        findings: Findings produced for a single scan

    Returns:
        FindingsSummary with counts, scores and an overall risk level
    """
    findings = list(findings)
    by_severity = {severity.value: 0 for severity in Severity}
    by_severity.update(Counter(f.severity.value for f in findings))
    by_pillar = {pillar.value: 0 for pillar in Pillar}
    by_pillar.update(Counter(f.pillar.value for f in findings if f.pillar is not None))
    by_framework = dict(Counter(f.framework for f in findings if f.framework))

    scores = calculate_scores(findings)
    return FindingsSummary(
        by_severity=by_severity,
        by_pillar=by_pillar,
        by_framework=by_framework,
        scores=scores,
        risk_level=determine_risk_level(scores.overall_score, by_severity),
    )


def service_of(resource_type: str) -> str:
    """AWS::S3::Bucket -> S3, aws_s3_bucket -> S3, CDK::Foo -> CDK."""
    if "::" in resource_type:
        parts = resource_type.split("::")
        if parts[0] == "AWS" and len(parts) > 1:
            return parts[1]
        return parts[0]
    parts = resource_type.split("_")
    if len(parts) > 1 and parts[0] == "aws":
        return parts[1].upper()
    return resource_type


def region_of(resource: Resource, default_region: str) -> str:
    region = resource.metadata.get("region")
    return region if isinstance(region, str) and region else default_region


def build_scan_result(graph: ResourceGraph, findings: Iterable[Finding], *,
                      scan_id: str, account_id: str, default_region: str,
                      analysis_id: Optional[str] = None, account_name: Optional[str] = None,
                      environment: Optional[str] = None, scan_date: Optional[str] = None,
                      status: str = "COMPLETED") -> ScanResult:
    """
    Snapshot a parsed graph plus its findings as a ScanResult.

    Resources without a region in their metadata count towards default_region.
    """
    findings = list(findings)
    resources: List[Resource] = graph.resources
    summary = summarize_findings(findings)

    result = ScanResult(
        scan_id=scan_id,
        analysis_id=analysis_id,
        account_id=account_id,
        account_name=account_name,
        environment=environment,
        scan_date=scan_date or datetime.now(timezone.utc).isoformat(),
        total_resources=len(resources),
        resources_by_service=dict(Counter(service_of(r.type) for r in resources)),
        resources_by_region=dict(Counter(region_of(r, default_region) for r in resources)),
        resources_by_type=dict(Counter(r.type for r in resources)),
        compliance_score=summary.scores.overall_score,
        security_findings=sum(1 for f in findings if f.pillar == Pillar.SECURITY),
        critical_findings=summary.by_severity[Severity.CRITICAL.value],
        findings=findings,
        status=status,
    )
    logger.info(f"Built scan {scan_id}: {result.total_resources} resources, score {result.compliance_score}")
    return result
