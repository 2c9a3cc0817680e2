"""Custom exceptions for courier.

All courier-specific exceptions inherit from CourierError for unified error handling.
Structural validation findings and per-request run failures are NOT exceptions: they are
returned as data (ValidationError entries, failed RunItemResult rows).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import ValidationError


class CourierError(Exception):
    """Base exception for all courier errors.

    Attributes:
        message: Human-readable error description
        context: Optional dictionary with additional debugging context
        original_error: Original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        *args: object,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            base = f"{base} [{ctx_str}]"
        if self.original_error:
            base = f"{base} (caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base

    def with_context(self, **kwargs: Any) -> "CourierError":
        """Add context to this error and return self for chaining."""
        self.context.update(kwargs)
        return self


class CollectionImportError(CourierError):
    """Raised when a document cannot be imported as a whole.

    Common causes:
    - Text is neither JSON nor YAML
    - Document format not recognized
    - OpenAPI/Swagger validator reported error-severity findings

    No partial collection is ever returned alongside this error.
    """

    def __init__(
        self,
        message: str,
        *args: object,
        issues: list[ValidationError] | None = None,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args, context=context, original_error=original_error)
        self.issues = list(issues or [])

    def __str__(self) -> str:
        base = super().__str__()
        errors = [i for i in self.issues if i.severity.value == "error"]
        if errors:
            details = "; ".join(f"{i.path}: {i.message}" for i in errors)
            base = f"{base}: {details}"
        return base


class ConversionError(CourierError):
    """Raised by a converter handed a value validation should already have rejected.

    Common causes:
    - Converter called directly with a non-object document
    - A required top-level container has the wrong type
    """


class CourierConfigError(CourierError):
    """Raised when configuration is invalid or file cannot be loaded.

    Common causes:
    - Config file not found
    - Invalid YAML syntax
    - Invalid field values (e.g. history_limit < 1, unknown schedule)
    """


class CourierRunnerError(CourierError):
    """Raised when a run cannot start.

    Common causes:
    - Folder id not present in the collection
    - Collection selection matches nothing
    """
