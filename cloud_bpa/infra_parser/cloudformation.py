"""CloudFormation template parsing (YAML first, then JSON)."""

import json
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..errors import StructuralParseError
from ..logging_config import get_component_logger
from ..models import (
    InfraFormat, Resource, ResourceGraph, ResourceLocation, ScanMetadata,
    to_property_map,
)

logger = get_component_logger("parser")

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class CloudFormationLoader(yaml.SafeLoader):
    """SafeLoader that understands CloudFormation short-form intrinsics and keeps dates as strings."""


CloudFormationLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _intrinsic_constructor(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Dict[str, Any]:
    """Map `!Ref x` / `!GetAtt a.b` / `!Sub ...` onto their long-form JSON equivalents."""
    name = tag_suffix if tag_suffix == "Ref" or tag_suffix == "Condition" else f"Fn::{tag_suffix}"
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
        if tag_suffix == "GetAtt" and isinstance(value, str):
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)
    return {name: value}


CloudFormationLoader.add_multi_constructor("!", _intrinsic_constructor)


def _load_yaml(content: str) -> Tuple[Any, Dict[str, int]]:
    """Load a YAML document and record the line of every logical resource key."""
    loader = CloudFormationLoader(content)
    try:
        node = loader.get_single_node()
        document = loader.construct_document(node) if node is not None else None
    finally:
        loader.dispose()
    return document, _resource_lines(node)


def _resource_lines(node: Optional[yaml.Node]) -> Dict[str, int]:
    lines: Dict[str, int] = {}
    if not isinstance(node, yaml.MappingNode):
        return lines
    for key_node, value_node in node.value:
        if getattr(key_node, "value", None) == "Resources" and isinstance(value_node, yaml.MappingNode):
            for res_key, _ in value_node.value:
                if isinstance(res_key, yaml.ScalarNode):
                    lines[str(res_key.value)] = res_key.start_mark.line + 1
    return lines


def load_template(content: str, file_name: str) -> Tuple[Dict[str, Any], Dict[str, int]]:
    """Parse template text as YAML, falling back to JSON. Raises StructuralParseError if neither works."""
    try:
        document, lines = _load_yaml(content)
    except yaml.YAMLError as yaml_error:
        try:
            document, lines = json.loads(content), {}
        except ValueError as json_error:
            logger.error(f"CloudFormation template {file_name} is neither YAML nor JSON")
            raise StructuralParseError(
                "Invalid CloudFormation template format (not valid JSON or YAML)",
                file_name=file_name,
                cause=f"{yaml_error}; {json_error}",
            ) from json_error

    if not isinstance(document, dict):
        raise StructuralParseError(
            "Invalid CloudFormation template format",
            file_name=file_name,
            cause=f"top-level document is {type(document).__name__}, expected a mapping",
        )
    return document, lines


def normalize_depends_on(depends_on: Any) -> List[str]:
    """DependsOn may be a scalar or a list; the result is always a list."""
    if depends_on is None or depends_on == "":
        return []
    if isinstance(depends_on, list):
        return [str(item) for item in depends_on if item is not None]
    if isinstance(depends_on, (str, int, float)):
        return [str(depends_on)]
    return []


def extract_tags(properties: Dict[str, Any]) -> Dict[str, str]:
    """Tags come only from a Properties.Tags list of {Key, Value} pairs."""
    raw = properties.get("Tags")
    if not isinstance(raw, list):
        return {}
    tags: Dict[str, str] = {}
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        key, value = entry.get("Key"), entry.get("Value")
        if not isinstance(key, str) or not key:
            continue
        if isinstance(value, bool):
            tags[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)) and value != "":
            tags[key] = str(value)
    return tags


def parse_cloudformation(content: str, file_name: str) -> ResourceGraph:
    """Build a ResourceGraph from a CloudFormation template."""
    template, lines = load_template(content, file_name)

    resources: List[Resource] = []
    declared = template.get("Resources")
    if declared is not None and not isinstance(declared, dict):
        raise StructuralParseError(
            "Invalid CloudFormation template format", file_name=file_name,
            cause="Resources must be a mapping",
        )

    for logical_name, body in (declared or {}).items():
        logical_name = str(logical_name)
        if not isinstance(body, dict) or not isinstance(body.get("Type"), str):
            logger.warning(f"Skipping resource {logical_name} in {file_name}: missing Type")
            continue

        properties = body.get("Properties")
        properties = properties if isinstance(properties, dict) else {}
        metadata = {
            key: body[source]
            for key, source in (
                ("dependsOn", "DependsOn"),
                ("condition", "Condition"),
                ("deletionPolicy", "DeletionPolicy"),
                ("updateReplacePolicy", "UpdateReplacePolicy"),
            )
            if body.get(source) is not None
        }

        resources.append(Resource(
            type=body["Type"],
            name=logical_name,
            properties=to_property_map(properties),
            metadata=to_property_map(metadata),
            dependencies=normalize_depends_on(body.get("DependsOn")),
            tags=extract_tags(properties),
            location=ResourceLocation(file=file_name, line=lines.get(logical_name), block=logical_name),
        ))

    logger.debug(f"Parsed {len(resources)} CloudFormation resources from {file_name}")
    return ResourceGraph(
        resources=resources,
        metadata=ScanMetadata(
            file_name=file_name,
            file_type="CloudFormation",
            analysis_type=InfraFormat.CLOUDFORMATION.value,
            parameters=to_property_map(template.get("Parameters")),
            outputs=to_property_map(template.get("Outputs")),
        ),
    )
