"""
Storage contracts for scan snapshots and differential results.

Records are stored in their camelCase wire form. Expiry of differential
results is carried as a `ttl` attribute (epoch seconds) for the storage
backend to honour; nothing here deletes expired records.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from .models import DifferentialAnalysisResult, ScanResult

SECONDS_PER_DAY = 24 * 60 * 60


def ttl_from(now: float, days: int) -> int:
    """Expiry timestamp `days` after `now`, in whole epoch seconds."""
    return int(now) + days * SECONDS_PER_DAY


class AnalysisStore(ABC):
    """Key-value contract the differential service depends on."""

    @abstractmethod
    def put_scan(self, tenant_id: str, project_id: str, scan: ScanResult) -> None:
        ...

    @abstractmethod
    def get_scan(self, tenant_id: str, scan_id: str) -> Optional[ScanResult]:
        ...

    @abstractmethod
    def list_scans(self, tenant_id: str, project_id: str) -> List[ScanResult]:
        ...

    @abstractmethod
    def put_result(self, result: DifferentialAnalysisResult) -> None:
        ...

    @abstractmethod
    def get_result(self, result_id: str) -> Optional[DifferentialAnalysisResult]:
        ...

    @abstractmethod
    def query_results(self, project_id: str) -> List[DifferentialAnalysisResult]:
        """All results of a project, newest first."""


class InMemoryStore(AnalysisStore):
    """Process-local store, safe to share between request threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._scans: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._scan_projects: Dict[Tuple[str, str], str] = {}
        self._results: Dict[str, Dict[str, Any]] = {}

    def put_scan(self, tenant_id: str, project_id: str, scan: ScanResult) -> None:
        key = (tenant_id, scan.scan_id)
        with self._lock:
            self._scans[key] = scan.model_dump(mode="json", by_alias=True)
            self._scan_projects[key] = project_id

    def get_scan(self, tenant_id: str, scan_id: str) -> Optional[ScanResult]:
        with self._lock:
            record = self._scans.get((tenant_id, scan_id))
        return ScanResult.model_validate(record) if record is not None else None

    def list_scans(self, tenant_id: str, project_id: str) -> List[ScanResult]:
        with self._lock:
            records = [
                record for key, record in self._scans.items()
                if key[0] == tenant_id and self._scan_projects[key] == project_id
            ]
        scans = [ScanResult.model_validate(record) for record in records]
        return sorted(scans, key=lambda s: s.scan_date, reverse=True)

    def put_result(self, result: DifferentialAnalysisResult) -> None:
        if not result.id:
            raise ValueError("Differential results must have an id before they are stored")
        with self._lock:
            self._results[result.id] = result.model_dump(mode="json", by_alias=True)

    def get_result(self, result_id: str) -> Optional[DifferentialAnalysisResult]:
        with self._lock:
            record = self._results.get(result_id)
        return DifferentialAnalysisResult.model_validate(record) if record is not None else None

    def query_results(self, project_id: str) -> List[DifferentialAnalysisResult]:
        with self._lock:
            records = [record for record in self._results.values() if record.get("projectId") == project_id]
        results = [DifferentialAnalysisResult.model_validate(record) for record in records]
        return sorted(results, key=lambda r: r.created_at or "", reverse=True)
