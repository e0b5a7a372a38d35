"""Structured exception hierarchy for table queries.

Provides specific exception types for the failure modes of a query,
with rich context for debugging and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "CloudTablesError",
    "ConfigurationError",
    "MissingRequiredFilter",
    "NotFoundError",
    "TransformError",
    "TransportError",
    "UnknownTableError",
]


class CloudTablesError(Exception):
    """Base exception for all table query errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        column: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.table = table
        self.column = column
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if table or column:
            context = table or "?"
            if column:
                context = f"{context}.{column}"
            parts.insert(0, f"[{context}]")

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "table": self.table,
            "column": self.column,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class MissingRequiredFilter(CloudTablesError):
    """A mandatory key-column qualifier was not supplied.

    Raised before any provider call is made.
    """

    def __init__(
        self,
        column: str,
        *,
        table: Optional[str] = None,
        required: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.required = list(required or [])

        details = kwargs.pop("details", {})
        if self.required:
            details["required_columns"] = ", ".join(self.required)

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = f"Add an equality filter on '{column}' (e.g. where {column} = '...')."

        super().__init__(
            f"Missing required filter on column '{column}'",
            table=table,
            column=column,
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class NotFoundError(CloudTablesError):
    """A get or hydration call found no matching entity."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.error_code = error_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if error_code:
            details["error_code"] = error_code

        super().__init__(message, details=details, **kwargs)


class TransportError(CloudTablesError):
    """The provider call failed (auth, throttling, network, bad request).

    The underlying provider exception is preserved on ``cause``.
    """

    def __init__(
        self,
        message: str,
        *,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if service:
            details["service"] = service
        if operation:
            details["operation"] = operation
        if error_code:
            details["error_code"] = error_code
        if status_code:
            details["status_code"] = status_code
        if cause:
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and error_code in ("AccessDenied", "AccessDeniedException", "UnauthorizedOperation"):
            suggestion = "Check that the AWS credentials in use allow this operation."

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class TransformError(CloudTablesError):
    """A column-level value conversion failed."""

    def __init__(
        self,
        message: str,
        *,
        value: Any = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.value = value
        self.cause = cause

        details = kwargs.pop("details", {})
        if value is not None:
            details["value"] = repr(value)[:200]
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ConfigurationError(CloudTablesError):
    """Invalid table declaration or configuration file."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        issues: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.issues = issues or []

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        if self.issues:
            issue_lines = "\n".join(f"  - {issue}" for issue in self.issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class UnknownTableError(CloudTablesError):
    """The registry has no table with the requested name."""

    def __init__(self, name: str, *, available: Optional[List[str]] = None) -> None:
        self.available = sorted(available or [])
        suggestion = None
        if self.available:
            suggestion = "Available tables: " + ", ".join(self.available)
        super().__init__(f"Unknown table '{name}'", table=name, suggestion=suggestion)
