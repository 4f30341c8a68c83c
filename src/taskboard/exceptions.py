"""Exceptions for taskboard."""

from __future__ import annotations

from typing import Any


class TaskboardError(Exception):
    """Base exception for taskboard errors."""

    pass


class ConfigError(TaskboardError):
    """Raised when required configuration is missing."""

    pass


class StoreError(TaskboardError):
    """Raised when the backing store rejects or cannot complete an operation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(StoreError):
    """Raised when the backend is unreachable."""

    pass


class AuthorizationError(StoreError):
    """Raised when the backend rejects an operation for the current session."""

    pass


class ValidationError(TaskboardError):
    """Raised when input is malformed, before anything reaches the store."""

    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.fields = fields or {}

    @classmethod
    def from_pydantic(cls, exc: Any, message: str = "Invalid input") -> ValidationError:
        """Collapse a pydantic ValidationError into per-field messages."""
        fields: dict[str, str] = {}
        for error in exc.errors():
            loc = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
            fields.setdefault(loc, error.get("msg", "invalid"))
        return cls(message, fields)


class StaleStateError(TaskboardError):
    """Raised internally when a fetch result was superseded. Never surfaced."""

    pass
