"""Entry point of the infrastructure parser: one file or archive in, one ResourceGraph out."""

from typing import Optional, Union

from ..errors import ParseError, StructuralParseError
from ..logging_config import get_component_logger
from ..models import InfraFormat, ResourceGraph
from .archive import ZipLimits, decode_text, is_zip_payload, parse_zip
from .cdk import parse_cdk
from .cloudformation import parse_cloudformation
from .detect import detect_format, normalize_hint
from .live_scan import parse_live_scan
from .terraform import parse_terraform

logger = get_component_logger("parser")

_PARSERS = {
    InfraFormat.CLOUDFORMATION: parse_cloudformation,
    InfraFormat.TERRAFORM: parse_terraform,
    InfraFormat.CDK: parse_cdk,
    InfraFormat.LIVE_SCAN: parse_live_scan,
}


def parse_document(file_name: str, content: str, fmt: InfraFormat) -> ResourceGraph:
    """Parse already-decoded text in a known format."""
    parser = _PARSERS.get(fmt)
    if parser is None:
        raise StructuralParseError(f"Unsupported file format: {fmt.value}", file_name=file_name)
    return parser(content, file_name)


def parse_infrastructure_file(data: Union[bytes, str], file_name: str,
                              analysis_type_hint: Optional[Union[str, InfraFormat]] = None,
                              limits: Optional[ZipLimits] = None) -> ResourceGraph:
    """
    Parse an uploaded infrastructure file.

    Args:
        data: Raw file bytes (text is accepted and encoded as UTF-8)
        file_name: Original file name, used for extension-based detection
        analysis_type_hint: Optional format hint; AUTO or None means detect
        limits: ZIP safety limits, defaults when omitted

    Returns:
        ResourceGraph whose metadata.resource_count equals len(resources)

    Raises:
        ParseError: StructuralParseError or SafetyViolation; nothing else escapes
    """
    payload = data.encode("utf-8") if isinstance(data, str) else data
    try:
        hint = normalize_hint(analysis_type_hint)
        if hint == InfraFormat.ZIP or is_zip_payload(payload, file_name):
            logger.info(f"Processing ZIP archive {file_name} ({len(payload)} bytes)")
            return parse_zip(payload, file_name, hint if hint != InfraFormat.ZIP else None,
                             limits or ZipLimits(), parse_document)

        content = decode_text(payload)
        fmt = detect_format(file_name, content, hint)
        logger.info(f"Parsing {file_name} as {fmt.value}")
        graph = parse_document(file_name, content, fmt)
        logger.info(f"Parsed {graph.metadata.resource_count} resources from {file_name}")
        return graph
    except ParseError as e:
        logger.error(f"Failed to parse {file_name}: {e}")
        raise
