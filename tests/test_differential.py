"""Tests for the differential analyzer."""

import pytest

from cloud_bpa.differential import (
    NO_SIGNIFICANT_CHANGES, compute_differential, generate_recommendations, index_by_rule, risk_direction,
)
from cloud_bpa.errors import ValidationError
from cloud_bpa.models import (
    ComplianceChanges, ComplianceChangeType, ImpactLevel, ResourceChanges, RiskDirection, SecurityImpact,
)

from helpers import finding, make_scan


def _service_scans():
    baseline = make_scan(
        "base",
        by_service={"EC2": 5, "S3": 3, "Lambda": 2, "RDS": 4},
        by_region={"us-east-1": 10, "us-west-2": 20},
    )
    comparison = make_scan(
        "next",
        by_service={"EC2": 17, "S3": 1, "Lambda": 8, "RDS": 4},
        by_region={"us-east-1": 14, "us-west-2": 8, "eu-west-1": 25},
    )
    return baseline, comparison


def test_scan_compared_with_itself_has_no_changes():
    scan = make_scan(
        by_service={"EC2": 3}, by_region={"us-east-1": 3},
        findings=[finding("R1", "HIGH"), finding("R2", "LOW")], critical=1, security=2,
    )
    result = compute_differential(scan, scan, "full", {"includeDetails": True, "threshold": "all"})

    assert result.total_changes == 0
    assert result.security_impact.risk_level == RiskDirection.UNCHANGED
    assert result.resource_changes.differences == []
    assert result.compliance_changes.differences == []
    assert result.recommendations == [NO_SIGNIFICANT_CHANGES]


def test_account_mismatch_is_rejected_before_any_comparison(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("differences must not be computed")

    monkeypatch.setattr("cloud_bpa.differential.analyzer.analyze_resource_changes", fail)
    monkeypatch.setattr("cloud_bpa.differential.analyzer.analyze_compliance_changes", fail)

    with pytest.raises(ValidationError, match="same AWS account"):
        compute_differential(make_scan(account_id="111"), make_scan(account_id="222"))


def test_unknown_analysis_type_is_rejected():
    scan = make_scan()
    with pytest.raises(ValidationError, match="analysis type"):
        compute_differential(scan, scan, "everything")


def test_invalid_threshold_is_rejected():
    scan = make_scan()
    with pytest.raises(ValidationError):
        compute_differential(scan, scan, "full", {"threshold": "critical"})


def test_service_and_region_differences():
    baseline, comparison = _service_scans()
    result = compute_differential(baseline, comparison)
    changes = result.resource_changes
    by_key = {(d.resource_type, d.service, d.region): d for d in changes.differences}

    ec2 = by_key[("ServiceResources", "EC2", "all")]
    assert ec2.change_type == "ADDED" and ec2.impact == ImpactLevel.HIGH
    assert (ec2.old_value, ec2.new_value) == (5, 17)
    assert by_key[("ServiceResources", "Lambda", "all")].impact == ImpactLevel.MEDIUM
    s3 = by_key[("ServiceResources", "S3", "all")]
    assert s3.change_type == "REMOVED" and s3.impact == ImpactLevel.LOW

    # Regional deltas of 5 or less are noise
    assert ("RegionalResources", "all", "us-east-1") not in by_key
    assert by_key[("RegionalResources", "all", "eu-west-1")].impact == ImpactLevel.HIGH
    west = by_key[("RegionalResources", "all", "us-west-2")]
    assert west.change_type == "REMOVED" and west.impact == ImpactLevel.MEDIUM

    assert (changes.added, changes.removed, changes.modified) == (3, 2, 0)
    assert len(changes.differences) == 5


def test_threshold_filters_listed_differences_but_not_counts():
    baseline, comparison = _service_scans()
    result = compute_differential(baseline, comparison, "resources", {"threshold": "high"})
    changes = result.resource_changes

    assert {d.impact for d in changes.differences} == {ImpactLevel.HIGH}
    assert len(changes.differences) == 2
    assert (changes.added, changes.removed) == (3, 2)
    assert result.analysis_type == "resources"


def test_include_details_false_keeps_counts():
    baseline, comparison = _service_scans()
    result = compute_differential(baseline, comparison, "full", {"includeDetails": False})
    assert result.resource_changes.differences == []
    assert result.resource_changes.added == 3
    assert result.total_changes == 5


def test_severity_change_is_a_status_change():
    baseline = make_scan(findings=[finding("R1", "MEDIUM")])
    comparison = make_scan(findings=[finding("R1", "HIGH")])
    result = compute_differential(baseline, comparison)
    changes = result.compliance_changes

    assert (changes.new_violations, changes.resolved_violations, changes.status_changes) == (0, 0, 1)
    [difference] = changes.differences
    assert difference.rule_id == "R1"
    assert difference.change_type == ComplianceChangeType.STATUS_CHANGED
    assert (difference.old_status, difference.new_status) == ("MEDIUM", "HIGH")


def test_new_and_resolved_violations():
    baseline = make_scan(findings=[finding("OLD", "LOW", title="Old rule")])
    comparison = make_scan(findings=[finding("NEW", "CRITICAL", description="")])
    changes = compute_differential(baseline, comparison).compliance_changes
    by_rule = {d.rule_id: d for d in changes.differences}

    assert by_rule["NEW"].change_type == ComplianceChangeType.NEW_VIOLATION
    assert by_rule["NEW"].new_status == "VIOLATION"
    assert by_rule["NEW"].description == "No detailed description available"
    assert by_rule["OLD"].change_type == ComplianceChangeType.RESOLVED
    assert (by_rule["OLD"].old_status, by_rule["OLD"].new_status) == ("VIOLATION", "COMPLIANT")
    assert by_rule["OLD"].rule_name == "Old rule"


def test_description_changes_are_not_status_changes():
    baseline = make_scan(findings=[finding("R1", "LOW", description="before")])
    comparison = make_scan(findings=[finding("R1", "LOW", description="after")])
    assert compute_differential(baseline, comparison).total_changes == 0


def test_repeated_rule_ids_keep_the_last_finding():
    indexed = index_by_rule([finding("R1", "LOW"), finding("R1", "HIGH"), finding(None, "CRITICAL")])
    assert list(indexed) == ["R1"]
    assert indexed["R1"].severity == "HIGH"


def test_compliance_threshold_uses_severity():
    baseline = make_scan(findings=[])
    comparison = make_scan(findings=[finding("A", "CRITICAL"), finding("B", "MEDIUM"), finding("C", "LOW")])
    high = compute_differential(baseline, comparison, "compliance", {"threshold": "high"}).compliance_changes
    medium = compute_differential(baseline, comparison, "compliance", {"threshold": "medium"}).compliance_changes

    assert [d.rule_id for d in high.differences] == ["A"]
    assert [d.rule_id for d in medium.differences] == ["A", "B"]
    assert high.new_violations == medium.new_violations == 3


def test_risk_increases_on_violation_balance_without_critical_delta():
    """3 resolved, 5 new, same critical count -> INCREASED."""
    baseline = make_scan(findings=[finding(f"OLD{i}", "LOW") for i in range(3)], critical=2)
    comparison = make_scan(findings=[finding(f"NEW{i}", "LOW") for i in range(5)], critical=2)
    impact = compute_differential(baseline, comparison).security_impact

    assert impact.critical_changes == 0
    assert impact.risk_level == RiskDirection.INCREASED


def test_risk_direction_precedence():
    assert risk_direction(1, 0, 5) == RiskDirection.INCREASED
    assert risk_direction(-1, 2, 0) == RiskDirection.INCREASED
    assert risk_direction(-1, 1, 1) == RiskDirection.DECREASED
    assert risk_direction(0, 1, 3) == RiskDirection.DECREASED
    assert risk_direction(0, 2, 2) == RiskDirection.UNCHANGED


def test_security_impact_deltas():
    baseline = make_scan(score=70, security=4, critical=1)
    comparison = make_scan(score=82.5, security=2, critical=0)
    impact = compute_differential(baseline, comparison).security_impact

    assert impact.score_change == pytest.approx(12.5)
    assert impact.findings_change == -2
    assert impact.critical_changes == -1
    assert impact.risk_level == RiskDirection.DECREASED


def test_recommendation_table():
    resources = ResourceChanges(added=11, removed=6)
    compliance = ComplianceChanges(new_violations=1, resolved_violations=0)
    security = SecurityImpact(score_change=-5, risk_level=RiskDirection.INCREASED, critical_changes=1,
                              findings_change=1)
    recommendations = generate_recommendations(resources, compliance, security)

    assert len(recommendations) == 5
    assert NO_SIGNIFICANT_CHANGES not in recommendations

    improving = generate_recommendations(
        ResourceChanges(), ComplianceChanges(resolved_violations=2),
        SecurityImpact(score_change=3, risk_level=RiskDirection.DECREASED, critical_changes=0, findings_change=0),
    )
    assert improving == ["Compliance posture is improving. Keep continuous monitoring in place."]


def test_camel_case_scan_payloads_are_accepted():
    payload = {
        "scanId": "s1", "accountId": "123", "scanDate": "2024-01-01T00:00:00Z",
        "resourcesByService": {"S3": 1}, "findings": [{"ruleId": "R1", "severity": "LOW"}],
    }
    result = compute_differential(payload, payload)
    assert result.total_changes == 0
    assert result.model_dump(by_alias=True)["securityImpact"]["riskLevel"] == "UNCHANGED"


def test_malformed_scan_payload_is_validation_error():
    with pytest.raises(ValidationError, match="baseline"):
        compute_differential({"scanId": "s1"}, make_scan())
