"""Format detection for infrastructure source files."""

from pathlib import PurePosixPath
from typing import Optional, Union

from ..errors import StructuralParseError
from ..models import InfraFormat

CDK_IMPORT_MARKERS = ("@aws-cdk/", "aws-cdk-lib")
CLOUDFORMATION_MARKERS = ("AWSTemplateFormatVersion", "Resources:", '"Resources"')
TERRAFORM_MARKERS = ('resource "aws_', 'provider "aws"')

TERRAFORM_EXTENSIONS = (".tf", ".tfvars")
CDK_EXTENSIONS = (".ts", ".js")
CLOUDFORMATION_EXTENSIONS = (".yaml", ".yml", ".json")
INFRASTRUCTURE_EXTENSIONS = (
    ".yaml", ".yml", ".json",   # CloudFormation
    ".tf", ".tfvars",           # Terraform
    ".ts", ".js", ".py",        # CDK
)


def normalize_hint(hint: Optional[Union[str, InfraFormat]]) -> Optional[InfraFormat]:
    """Turn a caller-supplied analysis type into an InfraFormat (None for no hint)."""
    if hint is None or hint == "":
        return None
    if isinstance(hint, InfraFormat):
        return hint
    try:
        return InfraFormat(str(hint).strip().upper())
    except ValueError:
        raise StructuralParseError(f"Unsupported analysis type: {hint}") from None


def file_extension(file_name: str) -> str:
    return PurePosixPath(file_name.replace("\\", "/")).suffix.lower()


def is_infrastructure_file(file_name: str) -> bool:
    return file_extension(file_name) in INFRASTRUCTURE_EXTENSIONS


def _has_cdk_import(content: str) -> bool:
    return any(marker in content for marker in CDK_IMPORT_MARKERS)


def detect_format(file_name: str, content: str,
                  hint: Optional[Union[str, InfraFormat]] = None) -> InfraFormat:
    """
    Decide how a file should be parsed.

    Precedence: explicit hint (unless AUTO), then file extension, then content
    sniffing, then CloudFormation as the default.
    """
    requested = normalize_hint(hint)
    if requested is not None and requested != InfraFormat.AUTO:
        return requested

    ext = file_extension(file_name)
    if ext in TERRAFORM_EXTENSIONS:
        return InfraFormat.TERRAFORM
    if ext in CDK_EXTENSIONS and _has_cdk_import(content):
        return InfraFormat.CDK
    if ext in CLOUDFORMATION_EXTENSIONS and any(m in content for m in CLOUDFORMATION_MARKERS):
        return InfraFormat.CLOUDFORMATION

    if any(marker in content for marker in TERRAFORM_MARKERS):
        return InfraFormat.TERRAFORM
    if "AWSTemplateFormatVersion" in content or (
            "Resources" in content and ("Type:" in content or '"Type"' in content)):
        return InfraFormat.CLOUDFORMATION
    if _has_cdk_import(content):
        return InfraFormat.CDK

    return InfraFormat.CLOUDFORMATION
