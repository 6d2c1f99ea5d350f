"""Error taxonomy shared by the parser, the differential analyzer and the service layer."""

from typing import Optional


class ParseError(Exception):
    """Base class for fatal infrastructure parsing failures."""

    def __init__(self, message: str, file_name: Optional[str] = None, cause: Optional[str] = None):
        self.file_name = file_name
        self.cause = cause
        text = message
        if file_name:
            text = f"{text} [{file_name}]"
        if cause:
            text = f"{text}: {cause}"
        super().__init__(text)


class StructuralParseError(ParseError):
    """A top-level document (or a whole archive) could not be turned into resources."""


class SafetyViolation(ParseError):
    """An archive broke an entry-count, size or path-traversal limit."""


class BestEffortSkip(Exception):
    """One Terraform block or CDK call site was unusable. Never leaves the parser."""


class ValidationError(Exception):
    """Inputs to a differential comparison are inconsistent or malformed."""


class NotFoundError(Exception):
    """A scan or a stored differential result does not exist."""


class AuthorizationError(Exception):
    """The caller may not act on the requested tenant's data."""
