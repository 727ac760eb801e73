"""
Error taxonomy shared by every component of the engine.

Callers branch on the class, never on message text. Batch operations do not
raise these for a single failing contact; they collect them into the
``errors`` list of their summary instead.
"""

from typing import Any


class EngineError(Exception):
    """Base class for engine errors."""

    recoverable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(EngineError):
    """Bad input shape or range. Raised before any state change."""


class NotFoundError(EngineError):
    """Contact, queue item, pair or conflict is missing or soft-deleted."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(EngineError):
    """Duplicate identity or an action that no longer applies to the record's state."""

    def __init__(self, message: str, code: str = "CONFLICT", **context: Any):
        super().__init__(message, **context)
        self.code = code


class ConfigurationError(EngineError):
    """Invalid scoring configuration; invalidates the whole operation."""


class RateLimitedError(EngineError):
    """Send must be retried later. Not a failure."""

    recoverable = True

    def __init__(self, reason: str, wait_ms: int | None = None):
        message = f"Rate limited: {reason}"
        if wait_ms is not None:
            message += f" (retry in {wait_ms}ms)"
        super().__init__(message, reason=reason, wait_ms=wait_ms)
        self.reason = reason
        self.wait_ms = wait_ms


class SoftBanSignal(EngineError):
    """The sending channel reported a restriction. Halts the current send batch."""

    def __init__(self, reason: str, cooldown_ends_at: Any = None):
        super().__init__(f"Soft ban detected: {reason}", reason=reason)
        self.reason = reason
        self.cooldown_ends_at = cooldown_ends_at


def batch_error(error: Exception, **key: Any) -> dict[str, Any]:
    """Build one entry of a batch summary's ``errors`` list."""
    return {**key, "error": str(error), "error_type": type(error).__name__}
