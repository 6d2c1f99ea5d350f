"""Tests for the differential analysis service and its storage contract."""

import time

import pytest

from cloud_bpa.config import Config
from cloud_bpa.errors import AuthorizationError, NotFoundError, ValidationError
from cloud_bpa.infra_parser import parse_infrastructure_file
from cloud_bpa.models import AnalysisRegistration, DifferentialAnalysisRequest, RequestContext, ScanRegistration
from cloud_bpa.service import DifferentialAnalysisService, is_authorized
from cloud_bpa.storage import InMemoryStore, ttl_from

from helpers import CFN_TEMPLATE, finding, make_scan

ANALYST = RequestContext(tenant_id="tenant-a", role="Analyst", user_id="alice", project_ids=["proj-1"])
ADMIN = RequestContext(role="SystemAdmin", user_id="root")


def _service_with_scans():
    service = DifferentialAnalysisService(store=InMemoryStore(), config=Config())
    baseline = make_scan("scan-1", by_service={"EC2": 2}, findings=[finding("R1", "MEDIUM")])
    comparison = make_scan("scan-2", by_service={"EC2": 4}, findings=[finding("R1", "HIGH"), finding("R2", "LOW")],
                           scan_date="2024-02-01T00:00:00+00:00")
    for scan in (baseline, comparison):
        service.register_scan(ANALYST, ScanRegistration(tenant_id="tenant-a", project_id="proj-1", scan=scan))
    return service


def _request(**overrides):
    fields = dict(tenant_id="tenant-a", project_id="proj-1", baseline_scan_id="scan-1", comparison_scan_id="scan-2")
    fields.update(overrides)
    return DifferentialAnalysisRequest(**fields)


def test_is_authorized():
    assert is_authorized(ADMIN, "any-tenant")
    assert is_authorized(ANALYST, "tenant-a")
    assert not is_authorized(ANALYST, "tenant-b")
    assert not is_authorized(RequestContext(role="Analyst"), None)


def test_start_computes_and_persists_result():
    service = _service_with_scans()
    before = time.time()
    result = service.start(ANALYST, _request())

    assert result.id.startswith("diff-")
    assert result.tenant_id == "tenant-a"
    assert result.project_id == "proj-1"
    assert result.created_by == "alice"
    assert result.total_changes == 3
    assert result.performance_metrics.resources_compared == 6
    assert result.performance_metrics.findings_compared == 3
    # 90 days, in epoch seconds
    assert ttl_from(before, 90) <= result.ttl <= ttl_from(time.time(), 90)
    assert service.store.get_result(result.id).model_dump() == result.model_dump()


def test_start_rejects_other_tenants_and_projects():
    service = _service_with_scans()
    with pytest.raises(AuthorizationError):
        service.start(ANALYST, _request(tenant_id="tenant-b"))
    with pytest.raises(AuthorizationError, match="project"):
        service.start(ANALYST, _request(project_id="proj-2"))
    with pytest.raises(AuthorizationError, match="permissions"):
        service.start(RequestContext(tenant_id="tenant-a", role="Guest"), _request())


def test_start_with_missing_scan():
    service = _service_with_scans()
    with pytest.raises(NotFoundError):
        service.start(ANALYST, _request(comparison_scan_id="missing"))


def test_start_with_mismatched_accounts():
    service = _service_with_scans()
    other = make_scan("scan-3", account_id="999999999999")
    service.register_scan(ANALYST, ScanRegistration(tenant_id="tenant-a", project_id="proj-1", scan=other))
    with pytest.raises(ValidationError):
        service.start(ANALYST, _request(comparison_scan_id="scan-3"))


def test_get_result_enforces_tenant_isolation():
    service = _service_with_scans()
    result = service.start(ANALYST, _request())

    assert service.get_result(ANALYST, result.id).id == result.id
    assert service.get_result(ADMIN, result.id).id == result.id
    with pytest.raises(AuthorizationError):
        service.get_result(RequestContext(tenant_id="tenant-b", role="Analyst"), result.id)
    with pytest.raises(NotFoundError):
        service.get_result(ANALYST, "diff-0-missing")


def test_history_is_newest_first_and_limited():
    service = _service_with_scans()
    first = service.start(ANALYST, _request())
    time.sleep(0.01)
    second = service.start(ANALYST, _request(options={"threshold": "high"}))

    history = service.history(ANALYST, "proj-1", limit=1)
    assert [r.id for r in history.analyses] == [second.id]
    assert history.has_more is True
    assert service.history(ANALYST, "proj-1").total == 2
    assert [r.id for r in service.history(ANALYST, "proj-1").analyses] == [second.id, first.id]
    assert service.history(RequestContext(tenant_id="tenant-b", role="Analyst"), "proj-1").total == 0


def test_available_scans():
    service = _service_with_scans()
    scans = service.available_scans(ANALYST, "proj-1")
    assert [s.scan_id for s in scans] == ["scan-2", "scan-1"]
    assert service.available_scans(ANALYST, "proj-2") == []


def test_custom_authorizer_is_used():
    service = DifferentialAnalysisService(authorizer=lambda context, tenant_id: False)
    registration = ScanRegistration(tenant_id="tenant-a", project_id="proj-1", scan=make_scan())
    with pytest.raises(AuthorizationError):
        service.register_scan(ADMIN, registration)


def test_store_round_trip_keeps_camel_case_records():
    store = InMemoryStore()
    store.put_scan("tenant-a", "proj-1", make_scan("scan-9"))
    assert store._scans[("tenant-a", "scan-9")]["scanId"] == "scan-9"
    assert store.get_scan("tenant-a", "scan-9").scan_id == "scan-9"
    assert store.get_scan("tenant-b", "scan-9") is None


def test_register_analysis_builds_scan_from_graph():
    service = DifferentialAnalysisService(store=InMemoryStore(), config=Config(aws_region="eu-west-1"))
    registration = AnalysisRegistration(
        tenant_id="tenant-a", project_id="proj-1", scan_id="scan-7", account_id="111122223333",
        graph=parse_infrastructure_file(CFN_TEMPLATE, "stack.yaml"),
        findings=[finding("R1", "CRITICAL"), finding("R2", "LOW", "RELIABILITY")],
    )
    scan = service.register_analysis(ANALYST, registration)

    assert scan.resources_by_service == {"S3": 2, "SQS": 1}
    assert scan.resources_by_region == {"eu-west-1": 3}
    assert (scan.security_findings, scan.critical_findings) == (1, 1)
    assert service.store.get_scan("tenant-a", "scan-7").total_resources == 3
    assert [s.scan_id for s in service.available_scans(ANALYST, "proj-1")] == ["scan-7"]

    with pytest.raises(AuthorizationError):
        service.register_analysis(RequestContext(tenant_id="tenant-b", role="Analyst"), registration)
