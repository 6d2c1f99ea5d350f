"""Live-account scan results (JSON resource inventories)."""

import json
from typing import Any, Dict, List

from ..errors import StructuralParseError
from ..logging_config import get_component_logger
from ..models import InfraFormat, Resource, ResourceGraph, ResourceLocation, ScanMetadata, to_property_map

logger = get_component_logger("parser")


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key) not in (None, ""):
            return item[key]
    return None


def _tags(item: Dict[str, Any]) -> Dict[str, str]:
    raw = _first(item, "Tags", "tags")
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items() if isinstance(v, (str, int, float))}
    if isinstance(raw, list):
        return {
            str(t["Key"]): str(t["Value"])
            for t in raw
            if isinstance(t, dict) and t.get("Key") and isinstance(t.get("Value"), (str, int, float))
        }
    return {}


def parse_live_scan(content: str, file_name: str) -> ResourceGraph:
    try:
        scan = json.loads(content)
    except ValueError as e:
        raise StructuralParseError("Invalid live scan results format", file_name=file_name, cause=str(e)) from e

    items = scan.get("resources") if isinstance(scan, dict) else None
    resources: List[Resource] = []
    for index, item in enumerate(items if isinstance(items, list) else []):
        if not isinstance(item, dict):
            continue
        resource_type = _first(item, "ResourceType", "type")
        name = _first(item, "ResourceId", "name", "id")
        if resource_type is None or name is None:
            logger.debug(f"Skipping live scan item {index} in {file_name}: no type or identifier")
            continue

        metadata = {
            "region": item.get("Region"),
            "accountId": item.get("AccountId"),
            "arn": item.get("ResourceARN"),
        }
        resources.append(Resource(
            type=str(resource_type),
            name=str(name),
            properties=to_property_map(_first(item, "Configuration", "properties")),
            metadata={k: v for k, v in to_property_map(metadata).items() if v is not None},
            tags=_tags(item),
            location=ResourceLocation(file=file_name, block=str(name)),
        ))

    return ResourceGraph(
        resources=resources,
        metadata=ScanMetadata(
            file_name=file_name,
            file_type="Live Scan",
            analysis_type=InfraFormat.LIVE_SCAN.value,
        ),
    )
