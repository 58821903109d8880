from __future__ import annotations

from typing import Any


class DopeError(Exception):
    """Base class for domain failures raised by the logbook services."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DopeError):
    """A field violates its range, pattern or enum, or a cross-field rule fails."""

    def __init__(self, message: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    @classmethod
    def for_field(cls, field: str, message: str, value: Any = None) -> "ValidationError":
        return cls(message, [{"field": field, "message": message, "value": value}])


class InvalidReferenceError(ValidationError):
    """A foreign id points at a record that is missing or owned by someone else."""

    def __init__(self, field: str, value: Any, resource: str) -> None:
        message = f"Invalid {field}: {resource} not found or does not belong to you"
        super().__init__(message, [{"field": field, "message": message, "value": value}])
        self.field = field


class NotFoundError(DopeError):
    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(DopeError):
    def __init__(self, message: str = "Resource conflict", count: int | None = None) -> None:
        super().__init__(message)
        self.count = count
