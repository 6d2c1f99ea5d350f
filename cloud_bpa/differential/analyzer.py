"""
Differential analysis of two scans of the same account.

Pure computation: no storage, no clock other than the analysis timestamp.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union, get_args

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..logging_config import get_component_logger
from ..models import AnalysisType, DifferentialAnalysisResult, DifferentialOptions, ScanResult
from .compliance import analyze_compliance_changes
from .recommendations import generate_recommendations
from .resources import analyze_resource_changes
from .security import analyze_security_impact

logger = get_component_logger("differential")

ANALYSIS_TYPES = get_args(AnalysisType)


def coerce_scan(scan: Union[ScanResult, Dict[str, Any]], label: str) -> ScanResult:
    """Accept a ScanResult or its camelCase/snake_case dict form."""
    if isinstance(scan, ScanResult):
        return scan
    try:
        return ScanResult.model_validate(scan)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed {label} scan: {e.error_count()} invalid field(s)") from e


def coerce_options(options: Union[DifferentialOptions, Dict[str, Any], None]) -> DifferentialOptions:
    if options is None:
        return DifferentialOptions()
    if isinstance(options, DifferentialOptions):
        return options
    try:
        return DifferentialOptions.model_validate(options)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid differential options: {e}") from e


def compute_differential(baseline: Union[ScanResult, Dict[str, Any]],
                         comparison: Union[ScanResult, Dict[str, Any]],
                         analysis_type: str = "full",
                         options: Union[DifferentialOptions, Dict[str, Any], None] = None) -> DifferentialAnalysisResult:
    """
    Compute what changed between a baseline scan and a later comparison scan.

    Args:
        baseline: Earlier ScanResult
        comparison: Later ScanResult of the same account
        analysis_type: One of full, security, compliance, resources
        options: include_details / threshold; defaults to details for everything

    Returns:
        DifferentialAnalysisResult without storage fields (id, tenant, ttl)

    Raises:
        ValidationError: mismatched accounts, unknown analysis type or malformed input
    """
    baseline = coerce_scan(baseline, "baseline")
    comparison = coerce_scan(comparison, "comparison")
    if baseline.account_id != comparison.account_id:
        raise ValidationError(
            f"Scans must be from the same AWS account "
            f"(baseline {baseline.account_id}, comparison {comparison.account_id})")
    if analysis_type not in ANALYSIS_TYPES:
        raise ValidationError(f"Unsupported analysis type: {analysis_type}")
    opts = coerce_options(options)

    resource_changes = analyze_resource_changes(baseline, comparison, opts.threshold)
    compliance_changes = analyze_compliance_changes(baseline.findings, comparison.findings, opts.threshold)
    security_impact = analyze_security_impact(baseline, comparison, compliance_changes)
    recommendations = generate_recommendations(resource_changes, compliance_changes, security_impact)

    total_changes = (
        resource_changes.added
        + resource_changes.removed
        + resource_changes.modified
        + compliance_changes.new_violations
        + compliance_changes.resolved_violations
        + compliance_changes.status_changes
    )

    if not opts.include_details:
        resource_changes = resource_changes.model_copy(update={"differences": []})
        compliance_changes = compliance_changes.model_copy(update={"differences": []})

    logger.debug(
        f"Compared scans {baseline.scan_id} -> {comparison.scan_id}: "
        f"{total_changes} changes, risk {security_impact.risk_level.value}"
    )
    return DifferentialAnalysisResult(
        baseline_scan=baseline,
        comparison_scan=comparison,
        analysis_date=datetime.now(timezone.utc).isoformat(),
        analysis_type=analysis_type,
        total_changes=total_changes,
        resource_changes=resource_changes,
        compliance_changes=compliance_changes,
        security_impact=security_impact,
        recommendations=recommendations,
    )
