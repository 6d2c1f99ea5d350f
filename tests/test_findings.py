"""Tests for findings scoring and ScanResult building."""

from cloud_bpa.findings import build_scan_result, service_of, summarize_findings
from cloud_bpa.infra_parser import parse_infrastructure_file
from cloud_bpa.models import RiskLevel

from helpers import CFN_TEMPLATE, TERRAFORM_SOURCE, build_zip, finding


def test_pillar_scores_and_overall_score():
    summary = summarize_findings([
        finding("R1", "CRITICAL", "SECURITY"),
        finding("R2", "HIGH", "SECURITY"),
        finding("R3", "MEDIUM", "RELIABILITY"),
        finding("R4", "INFO", "COST_OPTIMIZATION"),
    ])

    assert summary.scores.pillar_scores["SECURITY"] == 83
    assert summary.scores.pillar_scores["RELIABILITY"] == 96
    assert summary.scores.pillar_scores["COST_OPTIMIZATION"] == 100
    # (83 + 96 + 4 * 100) / 6 = 96.5, rounded half up
    assert summary.scores.overall_score == 97
    assert summary.by_severity == {"CRITICAL": 1, "HIGH": 1, "MEDIUM": 1, "LOW": 0, "INFO": 1}
    assert summary.by_pillar["SECURITY"] == 2
    assert summary.risk_level == RiskLevel.CRITICAL


def test_pillar_score_is_floored_at_zero():
    summary = summarize_findings([finding(f"R{i}", "CRITICAL", "SECURITY") for i in range(15)])
    assert summary.scores.pillar_scores["SECURITY"] == 0
    assert summary.scores.overall_score == 83


def test_framework_scores():
    summary = summarize_findings([
        finding("R1", "HIGH", framework="WELL_ARCHITECTED"),
        finding("R2", "LOW", framework="WELL_ARCHITECTED"),
        finding("R3", "MEDIUM", framework="SECURITY_HUB"),
    ])
    assert summary.scores.framework_scores == {"WELL_ARCHITECTED": 91, "SECURITY_HUB": 96}
    assert summary.by_framework == {"WELL_ARCHITECTED": 2, "SECURITY_HUB": 1}


def test_risk_levels():
    assert summarize_findings([]).risk_level == RiskLevel.LOW
    three_high = [finding(f"H{i}", "HIGH") for i in range(3)]
    assert summarize_findings(three_high).risk_level == RiskLevel.MEDIUM
    six_high = [finding(f"H{i}", "HIGH", pillar) for i, pillar in enumerate(["SECURITY", "RELIABILITY"] * 3)]
    assert summarize_findings(six_high).risk_level == RiskLevel.HIGH


def test_service_keys():
    assert service_of("AWS::S3::Bucket") == "S3"
    assert service_of("aws_s3_bucket") == "S3"
    assert service_of("aws_lambda_function") == "LAMBDA"
    assert service_of("CDK::widgets.Widget") == "CDK"


def test_build_scan_result_from_parsed_graph():
    graph = parse_infrastructure_file(build_zip({"stack.yaml": CFN_TEMPLATE, "main.tf": TERRAFORM_SOURCE}), "b.zip")
    findings = [finding("R1", "CRITICAL", "SECURITY"), finding("R2", "LOW", "RELIABILITY")]
    scan = build_scan_result(graph, findings, scan_id="scan-1", account_id="123", default_region="us-east-1",
                             scan_date="2024-05-01T00:00:00+00:00")

    assert scan.total_resources == 5
    assert scan.resources_by_service == {"S3": 3, "SQS": 1, "INSTANCE": 1}
    assert scan.resources_by_region == {"us-east-1": 5}
    assert scan.resources_by_type["AWS::S3::Bucket"] == 2
    assert scan.security_findings == 1
    assert scan.critical_findings == 1
    assert scan.compliance_score == summarize_findings(findings).scores.overall_score
    assert scan.status == "COMPLETED"
