"""Error taxonomy for the extraction pipeline.

Every error carries a machine-readable ``code`` plus optional ``details`` so callers
(scheduled jobs, the CLI) can report failures without parsing messages. All of them
are terminal for the current extraction attempt; nothing in the pipeline retries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RealmSyncError(Exception):
    """Base class for pipeline errors."""

    code: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = dict(self.details)
        return data


class NotFoundError(RealmSyncError):
    """A document (or other resource) is missing or has no content."""

    code = "not_found"

    def __init__(self, resource: str, id: str | None = None, message: str | None = None) -> None:
        super().__init__(
            message or f"{resource.capitalize()} not found",
            {"resource": resource, "id": id},
        )
        self.resource = resource
        self.id = id


class ConfigurationError(RealmSyncError):
    """Required configuration (API key, model) is missing."""

    code = "configuration"

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"{key} not configured", {"key": key})
        self.key = key


class ApiError(RealmSyncError):
    """The LLM provider answered with a non-2xx status or an unusable body."""

    code = "api"

    def __init__(
        self, status_code: int, message: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, {"status_code": status_code, **(details or {})})
        self.status_code = status_code

    def __str__(self) -> str:
        return f"API error {self.status_code}: {self.message}"


class ValidationError(RealmSyncError):
    """A payload could not be parsed (e.g. malformed JSON after fence-stripping)."""

    code = "validation"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message, {"field": field})
        self.field = field

    def __str__(self) -> str:
        return f"Validation error: {self.field} - {self.message}"
