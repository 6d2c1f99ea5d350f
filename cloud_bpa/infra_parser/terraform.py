"""Terraform parsing: best-effort resource extraction over the HCL-lite scanner."""

import re
from typing import Any, Dict, List

from ..errors import BestEffortSkip
from ..logging_config import get_component_logger
from ..models import (
    InfraFormat, Resource, ResourceGraph, ResourceLocation, ScanMetadata,
    to_property_map, to_property_value,
)
from .hcl import Block, parse_body, scan_top_level

logger = get_component_logger("parser")

# <provider>_<kind>.<name>, not preceded by "data." or another identifier character
_REFERENCE = re.compile(r"(?<![\w.\-])([a-z][a-z0-9]*_[a-z0-9_]+)\.([A-Za-z_][A-Za-z0-9_\-]*)")
_META_ARGUMENTS = ("count", "for_each", "provider")


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def explicit_dependencies(properties: Dict[str, Any]) -> List[str]:
    """Entries of `depends_on = [...]`."""
    declared = properties.get("depends_on")
    if isinstance(declared, str):
        declared = [declared]
    if not isinstance(declared, list):
        return []
    return [item.strip().strip('"') for item in declared if isinstance(item, str) and item.strip()]


def implicit_references(body: str, own_address: str) -> List[str]:
    """
    Every `<type>.<name>` shaped token in the block body.

    String literals are scanned too, so a value that merely looks like a
    reference is reported as a dependency.
    """
    found = [f"{m.group(1)}.{m.group(2)}" for m in _REFERENCE.finditer(body)]
    return [ref for ref in _dedupe(found) if ref != own_address]


def extract_tags(properties: Dict[str, Any]) -> Dict[str, str]:
    raw = properties.get("tags")
    if not isinstance(raw, dict):
        return {}
    tags: Dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            tags[str(key)] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            tags[str(key)] = str(value)
    return tags


def _build_resource(block: Block, file_name: str) -> Resource:
    if len(block.labels) < 2:
        raise BestEffortSkip(f"resource block at line {block.line} needs a type and a name")
    if block.body is None:
        raise BestEffortSkip(f"resource block at line {block.line} is never closed")

    resource_type, resource_name = block.labels[0], block.labels[1]
    address = f"{resource_type}.{resource_name}"
    properties = parse_body(block.body)

    metadata: Dict[str, Any] = {"terraformName": resource_name, "terraformType": resource_type}
    for argument in _META_ARGUMENTS:
        if argument in properties:
            metadata[argument] = to_property_value(properties[argument])

    return Resource(
        type=resource_type,
        name=address,
        properties=to_property_map(properties),
        metadata=metadata,
        dependencies=_dedupe(explicit_dependencies(properties) + implicit_references(block.body, address)),
        tags=extract_tags(properties),
        location=ResourceLocation(file=file_name, line=block.line, block=address),
    )


def parse_terraform(content: str, file_name: str) -> ResourceGraph:
    """Build a ResourceGraph from Terraform (.tf / .tfvars) source."""
    top = scan_top_level(content, file_name=file_name)
    variables: Dict[str, Any] = dict(top.attributes)
    resources: List[Resource] = []

    for block in top.blocks:
        try:
            if block.keyword == "resource":
                resources.append(_build_resource(block, file_name))
            elif block.keyword == "variable" and block.labels:
                if block.body is None:
                    raise BestEffortSkip(f"variable block at line {block.line} is never closed")
                variables[block.labels[0]] = parse_body(block.body)
        except BestEffortSkip as skip:
            logger.debug(f"Skipping {block.keyword} block in {file_name}: {skip}")

    logger.debug(f"Parsed {len(resources)} Terraform resources from {file_name}")
    return ResourceGraph(
        resources=resources,
        metadata=ScanMetadata(
            file_name=file_name,
            file_type="Terraform",
            analysis_type=InfraFormat.TERRAFORM.value,
            variables=to_property_map(variables),
        ),
    )
