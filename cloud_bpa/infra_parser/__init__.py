"""
Infrastructure Parser Module
Turns CloudFormation, Terraform, CDK, live-scan and ZIP inputs into a ResourceGraph.
"""

from .parser import (
    # Entry points
    parse_infrastructure_file,
    parse_document,
)
from .detect import (
    # Format detection
    detect_format,
    normalize_hint,
    is_infrastructure_file,
)
from .archive import (
    # Archive handling
    ZipLimits,
    parse_zip,
)
from .cloudformation import parse_cloudformation
from .terraform import parse_terraform
from .cdk import parse_cdk
from .live_scan import parse_live_scan

__all__ = [
    'parse_infrastructure_file',
    'parse_document',
    'detect_format',
    'normalize_hint',
    'is_infrastructure_file',
    'ZipLimits',
    'parse_zip',
    'parse_cloudformation',
    'parse_terraform',
    'parse_cdk',
    'parse_live_scan',
]
