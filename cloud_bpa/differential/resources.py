"""Aggregate resource-count deltas between two scans."""

from typing import Dict, List, Set

from ..models import ImpactLevel, ResourceChangeType, ResourceChanges, ResourceDifference, ScanResult, Threshold

SERVICE_RESOURCES = "ServiceResources"
REGIONAL_RESOURCES = "RegionalResources"

# |delta| must exceed this before a regional shift is reported
REGIONAL_NOISE_FLOOR = 5

_THRESHOLD_IMPACTS: Dict[str, Set[ImpactLevel]] = {
    "all": {ImpactLevel.HIGH, ImpactLevel.MEDIUM, ImpactLevel.LOW},
    "medium": {ImpactLevel.HIGH, ImpactLevel.MEDIUM},
    "high": {ImpactLevel.HIGH},
}


def tier_impact(magnitude: int, high: int, medium: int) -> ImpactLevel:
    if magnitude > high:
        return ImpactLevel.HIGH
    if magnitude > medium:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def _count_deltas(baseline: Dict[str, int], comparison: Dict[str, int]):
    """Yield (key, old, new, delta) for every key of either map, in first-seen order."""
    for key in dict.fromkeys([*baseline, *comparison]):
        old, new = baseline.get(key, 0), comparison.get(key, 0)
        yield key, old, new, new - old


def _difference(resource_type: str, service: str, region: str, label: str,
                old: int, new: int, delta: int, impact: ImpactLevel) -> ResourceDifference:
    direction = "increased" if delta > 0 else "decreased"
    return ResourceDifference(
        resource_type=resource_type,
        service=service,
        region=region,
        change_type=ResourceChangeType.ADDED if delta > 0 else ResourceChangeType.REMOVED,
        old_value=old,
        new_value=new,
        impact=impact,
        description=f"{label} resource count {direction} by {abs(delta)}",
    )


def service_differences(baseline: ScanResult, comparison: ScanResult) -> List[ResourceDifference]:
    """Every service whose count changed at all; impact tiers at 10 and 5."""
    return [
        _difference(SERVICE_RESOURCES, service, "all", f"{service} service", old, new, delta,
                    tier_impact(abs(delta), high=10, medium=5))
        for service, old, new, delta in _count_deltas(baseline.resources_by_service, comparison.resources_by_service)
        if delta != 0
    ]


def regional_differences(baseline: ScanResult, comparison: ScanResult) -> List[ResourceDifference]:
    """Regions that moved by more than the noise floor; impact tiers at 20 and 10."""
    return [
        _difference(REGIONAL_RESOURCES, "all", region, f"{region} region", old, new, delta,
                    tier_impact(abs(delta), high=20, medium=10))
        for region, old, new, delta in _count_deltas(baseline.resources_by_region, comparison.resources_by_region)
        if abs(delta) > REGIONAL_NOISE_FLOOR
    ]


def analyze_resource_changes(baseline: ScanResult, comparison: ScanResult,
                             threshold: Threshold = "all") -> ResourceChanges:
    """
    Compare per-service and per-region resource counts.

    Counts are taken over every detected difference; the threshold only
    filters which differences are listed.
    """
    differences = service_differences(baseline, comparison) + regional_differences(baseline, comparison)
    allowed = _THRESHOLD_IMPACTS[threshold]
    return ResourceChanges(
        added=sum(1 for d in differences if d.change_type == ResourceChangeType.ADDED),
        removed=sum(1 for d in differences if d.change_type == ResourceChangeType.REMOVED),
        modified=sum(1 for d in differences if d.change_type == ResourceChangeType.MODIFIED),
        differences=[d for d in differences if d.impact in allowed],
    )
