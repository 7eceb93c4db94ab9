"""
Error taxonomy of the twin engine.

Every failure that reaches an API caller is one of the classes below.
Transport errors are translated in the client layer, and the FastAPI
exception handler in ``twin_engine.main`` maps them to HTTP responses
using ``status_code``.
"""


class TwinEngineError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(TwinEngineError):
    """No template, registry entry or plugin data exists for the request."""

    status_code = 404
    default_message = "Resource not found"


class InvalidInputError(TwinEngineError):
    """Malformed identifier, cursor or limit, or a request a plugin rejected."""

    status_code = 400
    default_message = "Invalid input"


class SchemaViolationError(TwinEngineError):
    """A plugin response did not satisfy its expected schema."""

    status_code = 502
    default_message = "Plugin response failed schema validation"

    def __init__(self, message: str | None = None, issues: list[str] | None = None):
        self.issues = list(issues or [])
        if message is None and self.issues:
            message = f"{self.default_message}: {'; '.join(self.issues)}"
        super().__init__(message)


class ConflictError(TwinEngineError):
    """Two plugins claim the same data and the policy is fail-fast."""

    status_code = 500
    default_message = "Plugin conflict"

    def __init__(self, message: str | None = None, semantic_ids: list[str] | None = None):
        self.semantic_ids = sorted(semantic_ids or [])
        if message is None and self.semantic_ids:
            message = f"Conflicting semantic IDs: {', '.join(self.semantic_ids)}"
        super().__init__(message)


class UnavailableError(TwinEngineError):
    """A plugin, registry or repository is down or timed out."""

    status_code = 503
    default_message = "Service unavailable"


class InternalDataError(TwinEngineError):
    """Missing identity, deserialization, cloning or type mismatch."""

    status_code = 500
    default_message = "Internal data processing error"
