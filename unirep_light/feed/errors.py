"""Event feed error types."""

from ..protocol.exceptions import UnirepError


class SchemaError(UnirepError):
    """Raised when an event payload fails schema validation."""


class SizeLimitError(UnirepError):
    """Raised when an encoded event exceeds configured size limits."""
