"""
Differential analysis service: authorization, scan lookup, computation and persistence.

Wraps the pure analyzer with the tenant-isolation rules and the storage
contract of the surrounding system.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import Config
from .differential import compute_differential
from .errors import AuthorizationError, NotFoundError
from .findings import build_scan_result
from .logging_config import get_component_logger
from .models import (
    AnalysisRegistration, DifferentialAnalysisRequest, DifferentialAnalysisResult, DifferentialHistory, DifferentialOptions,
    PerformanceMetrics, RequestContext, ScanRegistration, ScanResult,
)
from .storage import AnalysisStore, InMemoryStore, ttl_from

logger = get_component_logger("service")

SYSTEM_ADMIN = "SystemAdmin"
CLIENT_ADMIN = "ClientAdmin"
ALLOWED_ROLES = (SYSTEM_ADMIN, CLIENT_ADMIN, "ProjectManager", "Analyst")

Authorizer = Callable[[RequestContext, str], bool]


def is_authorized(context: RequestContext, tenant_id: Optional[str]) -> bool:
    """System administrators see every tenant; everyone else only their own."""
    if context.role == SYSTEM_ADMIN:
        return True
    return bool(context.tenant_id) and context.tenant_id == tenant_id


def can_access_project(context: RequestContext, project_id: str) -> bool:
    if context.role in (SYSTEM_ADMIN, CLIENT_ADMIN):
        return True
    return project_id in context.project_ids


def new_result_id(now_ms: int) -> str:
    return f"diff-{now_ms}-{uuid.uuid4().hex[:9]}"


class DifferentialAnalysisService:
    """Entry point used by the HTTP layer for stored differential analyses."""

    def __init__(self, store: Optional[AnalysisStore] = None, config: Optional[Config] = None,
                 authorizer: Authorizer = is_authorized):
        self.store = store or InMemoryStore()
        self.config = config or Config()
        self.authorizer = authorizer

    def _check_role(self, context: RequestContext) -> None:
        if context.role not in ALLOWED_ROLES:
            raise AuthorizationError("Insufficient permissions for differential analysis")

    def _check_tenant(self, context: RequestContext, tenant_id: Optional[str], action: str) -> None:
        if not self.authorizer(context, tenant_id):
            logger.warning(f"Denied {action} for tenant {tenant_id} to user {context.user_id} ({context.role})")
            raise AuthorizationError(f"Cannot {action} for different tenant")

    def register_scan(self, context: RequestContext, registration: ScanRegistration) -> ScanResult:
        """Store a completed scan so that it can be compared later."""
        self._check_role(context)
        self._check_tenant(context, registration.tenant_id, "register scans")
        self.store.put_scan(registration.tenant_id, registration.project_id, registration.scan)
        logger.info(f"Registered scan {registration.scan.scan_id} for project {registration.project_id}")
        return registration.scan

    def register_analysis(self, context: RequestContext, registration: AnalysisRegistration) -> ScanResult:
        """Summarize a parsed graph and its findings into a ScanResult and store it."""
        self._check_role(context)
        self._check_tenant(context, registration.tenant_id, "register scans")
        scan = build_scan_result(
            registration.graph,
            registration.findings,
            scan_id=registration.scan_id,
            account_id=registration.account_id,
            default_region=registration.region or self.config.aws_region,
            analysis_id=registration.analysis_id,
            account_name=registration.account_name,
            environment=registration.environment,
            scan_date=registration.scan_date,
        )
        return self.register_scan(
            context, ScanRegistration(tenant_id=registration.tenant_id, project_id=registration.project_id, scan=scan))

    def start(self, context: RequestContext, request: DifferentialAnalysisRequest) -> DifferentialAnalysisResult:
        """
        Run and persist a differential analysis between two stored scans.

        Raises:
            AuthorizationError: caller may not act on the tenant or project
            NotFoundError: either scan is missing
            ValidationError: the scans belong to different accounts, or the
                analysis type or options are invalid
        """
        self._check_role(context)
        self._check_tenant(context, request.tenant_id, "perform analysis")
        if not can_access_project(context, request.project_id):
            raise AuthorizationError("No access to this project")

        started = time.perf_counter()
        baseline = self.store.get_scan(request.tenant_id, request.baseline_scan_id)
        comparison = self.store.get_scan(request.tenant_id, request.comparison_scan_id)
        if baseline is None or comparison is None:
            raise NotFoundError("One or both scan results not found")

        options = request.options or DifferentialOptions(threshold=self.config.default_threshold)
        result = compute_differential(baseline, comparison, request.analysis_type, options)

        now = time.time()
        final = result.model_copy(update={
            "id": new_result_id(int(now * 1000)),
            "tenant_id": request.tenant_id,
            "project_id": request.project_id,
            "performance_metrics": PerformanceMetrics(
                execution_time=int((time.perf_counter() - started) * 1000),
                resources_compared=baseline.total_resources + comparison.total_resources,
                findings_compared=len(baseline.findings) + len(comparison.findings),
            ),
            "created_at": datetime.fromtimestamp(now, timezone.utc).isoformat(),
            "created_by": context.user_id or self.config.default_created_by or "system",
            "ttl": ttl_from(now, self.config.differential_ttl_days),
        })
        self.store.put_result(final)

        logger.info(
            f"Differential analysis {final.id} completed for project {request.project_id}: "
            f"{final.total_changes} changes in {final.performance_metrics.execution_time}ms"
        )
        return final

    def get_result(self, context: RequestContext, result_id: str) -> DifferentialAnalysisResult:
        self._check_role(context)
        result = self.store.get_result(result_id)
        if result is None:
            raise NotFoundError("Differential analysis result not found")
        self._check_tenant(context, result.tenant_id, "access analysis")
        return result

    def history(self, context: RequestContext, project_id: str, limit: int = 50) -> DifferentialHistory:
        """Newest-first results of a project, restricted to the caller's tenant unless SystemAdmin."""
        self._check_role(context)
        visible: List[DifferentialAnalysisResult] = [
            result for result in self.store.query_results(project_id)
            if self.authorizer(context, result.tenant_id)
        ]
        page = visible[:max(limit, 0)]
        return DifferentialHistory(analyses=page, has_more=len(visible) > len(page), total=len(page))

    def available_scans(self, context: RequestContext, project_id: str) -> List[ScanResult]:
        """Completed scans of the caller's tenant that can be compared."""
        self._check_role(context)
        if not context.tenant_id:
            raise AuthorizationError("A tenant is required to list scans")
        return [
            scan for scan in self.store.list_scans(context.tenant_id, project_id)
            if scan.status in (None, "COMPLETED")
        ]
