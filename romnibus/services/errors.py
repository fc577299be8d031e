"""Error handling module for the ROMnibus catalog tools.

This module provides:
- Exception classes for hashing, archive, parsing, storage and network failures
- User-friendly error messages with suggested actions
- A centralized error handling service used at batch boundaries
"""

import json
import sqlite3
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

log = structlog.stdlib.get_logger()


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""
    NETWORK = "network"
    FILE_SYSTEM = "file_system"
    ARCHIVE = "archive"
    PARSING = "parsing"
    STORAGE = "storage"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Context information for an error."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """User-friendly error representation with suggested actions."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


class AppError(Exception):
    """Base exception class for application errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        """Convert to user-friendly error representation."""
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=self.suggested_actions,
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


def _describe(original_error: Exception | None) -> str | None:
    if original_error is None:
        return None
    return f"{type(original_error).__name__}: {str(original_error)}"


class NetworkError(AppError):
    """Exception for network-related errors."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        suggested_actions = [
            "Check your internet connection",
            "Verify the source URL is correct",
            "Try again in a few moments",
        ]

        if status_code:
            if status_code == 429:
                suggested_actions = [
                    "Wait a few minutes before retrying",
                    "Build from a local copy with --source",
                ]
            elif status_code == 404:
                suggested_actions = [
                    "The source snapshot may have moved",
                    "Check the source_url setting",
                ]
            elif status_code >= 500:
                suggested_actions = [
                    "The server is experiencing issues",
                    "Try again later",
                ]

        technical_details = _describe(original_error)
        if url:
            technical_details = f"URL: {url}" + (f"\n{technical_details}" if technical_details else "")
        if status_code:
            technical_details = f"Status: {status_code}" + (f"\n{technical_details}" if technical_details else "")

        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class FileSystemError(AppError):
    """Exception for file system-related errors."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        path: str | None = None,
        operation: str | None = None,
    ) -> None:
        suggested_actions = self._get_suggested_actions(original_error)

        technical_details = _describe(original_error)
        if path:
            technical_details = f"Path: {path}" + (f"\n{technical_details}" if technical_details else "")

        super().__init__(
            message=message,
            category=ErrorCategory.FILE_SYSTEM,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.original_error = original_error
        self.path = path
        self.operation = operation

    @staticmethod
    def _get_suggested_actions(original_error: Exception | None) -> list[str]:
        """Get suggested actions based on error type."""
        if isinstance(original_error, PermissionError):
            return [
                "Check file/directory permissions",
                "Try running with appropriate permissions",
            ]
        elif isinstance(original_error, FileNotFoundError):
            return [
                "Verify the file path is correct",
                "Check if the file was moved or deleted",
            ]
        elif isinstance(original_error, IsADirectoryError):
            return ["Pass a file, not a directory"]

        return [
            "Check the file path and permissions",
            "Ensure the file is readable",
        ]


class FileOpenError(FileSystemError):
    """A plain file could not be opened or read."""


class ArchiveError(AppError):
    """Base exception for archive container failures."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        entry: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        technical_details = None
        if path:
            technical_details = f"Archive: {path}"
        if entry:
            technical_details = (technical_details or "") + f"\nEntry: {entry}"
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {_describe(original_error)}"

        super().__init__(
            message=message,
            category=ErrorCategory.ARCHIVE,
            severity=ErrorSeverity.ERROR,
            suggested_actions=[
                "Check that the archive is not corrupted",
                "Extract the ROM and hash the plain file instead",
            ],
            technical_details=technical_details,
            recoverable=True,
        )
        self.path = path
        self.entry = entry
        self.original_error = original_error


class ArchiveOpenError(ArchiveError):
    """The archive container could not be opened."""


class EmptyArchiveError(ArchiveError):
    """The archive container holds no entries."""


class EntryOpenError(ArchiveError):
    """The first archive entry could not be opened or decompressed."""


class ParseError(AppError):
    """Exception for malformed signature files."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        line: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        technical_details = None
        if source:
            technical_details = f"Source: {source}"
        if line is not None:
            technical_details = (technical_details or "") + f"\nLine: {line}"
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {_describe(original_error)}"

        super().__init__(
            message=message,
            category=ErrorCategory.PARSING,
            severity=ErrorSeverity.WARNING,
            suggested_actions=[
                "The signature file may be truncated or in an unknown format",
                "Refresh the signature corpus and rebuild",
            ],
            technical_details=technical_details,
            recoverable=True,
        )
        self.source = source
        self.line = line
        self.original_error = original_error


class StoreError(AppError):
    """Base exception for catalog store failures."""

    def __init__(
        self,
        message: str,
        database_path: str | None = None,
        original_error: Exception | None = None,
        recoverable: bool = False,
    ) -> None:
        technical_details = None
        if database_path:
            technical_details = f"Database: {database_path}"
        if original_error:
            technical_details = (technical_details or "") + f"\nError: {_describe(original_error)}"

        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.ERROR,
            suggested_actions=[
                "Check the database path setting",
                "Rebuild the catalog with 'romnibus build'",
            ],
            technical_details=technical_details,
            recoverable=recoverable,
        )
        self.database_path = database_path
        self.original_error = original_error


class StoreUninitializedError(StoreError):
    """A store operation was attempted before the store was opened."""


class PersistenceError(StoreError):
    """A bulk insert transaction failed and was rolled back."""


class UnsupportedLookupError(StoreError):
    """The store's schema cannot answer the requested lookup."""


class ValidationError(AppError):
    """Exception for validation-related errors."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        suggested_actions = ["Review the input requirements"]
        if constraints:
            suggested_actions.extend([f"Ensure: {c}" for c in constraints])

        technical_details = None
        if field:
            technical_details = f"Field: {field}"
        if value is not None:
            value_str = str(value)[:100]
            technical_details = (technical_details or "") + f"\nValue: {value_str}"

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.field = field
        self.value = value
        self.constraints = constraints or []


class ConfigurationError(AppError):
    """Exception for configuration-related errors."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        suggested_actions = [
            "Check the configuration settings",
            "Reset to default values if needed",
        ]
        if expected:
            suggested_actions.append(f"Expected: {expected}")

        technical_details = None
        if setting:
            technical_details = f"Setting: {setting}"
        if current_value is not None:
            technical_details = (technical_details or "") + f"\nCurrent: {current_value}"

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.ERROR,
            suggested_actions=suggested_actions,
            technical_details=technical_details,
            recoverable=True,
        )
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


class ErrorHandlingService:
    """Centralized error handling service.

    Converts library exceptions into AppError instances, logs them with
    technical details and keeps a bounded history so a batch run can report
    what it skipped.
    """

    def __init__(self) -> None:
        self._error_history: list[tuple[float, AppError]] = []
        self._max_history_size = 100
        log.debug("Error handling service initialized")

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> UserFriendlyError:
        """Handle an error and return a user-friendly representation.

        Args:
            error: The exception that occurred
            operation: The operation being performed
            component: The component where the error occurred
            context: Additional context information

        Returns:
            User-friendly error representation
        """
        app_error = self._convert_to_app_error(error, operation, component, context)

        self._log_error(app_error, operation, component, context)

        self._error_history.append((time.time(), app_error))
        if len(self._error_history) > self._max_history_size:
            self._error_history.pop(0)

        return app_error.to_user_friendly()

    def _convert_to_app_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> AppError:
        """Convert a standard exception to an AppError."""
        import httpx

        if isinstance(error, AppError):
            return error

        # Network errors
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            return NetworkError(
                message=f"The server answered with HTTP {status_code}.",
                original_error=error,
                url=str(error.request.url) if error.request else None,
                status_code=status_code,
            )
        elif isinstance(error, httpx.TimeoutException):
            return NetworkError(
                message="The request timed out. The server may be slow or unavailable.",
                original_error=error,
                url=context.get("url") if context else None,
            )
        elif isinstance(error, httpx.RequestError):
            return NetworkError(
                message="A network error occurred. Please check your connection.",
                original_error=error,
                url=context.get("url") if context else None,
            )

        # Storage errors
        elif isinstance(error, sqlite3.Error):
            return StoreError(
                message=f"A database error occurred: {str(error)}",
                database_path=context.get("database") if context else None,
                original_error=error,
            )

        # File system errors
        elif isinstance(error, OSError):
            return FileSystemError(
                message=f"A file system error occurred: {str(error)}",
                original_error=error,
                path=context.get("path") if context else None,
                operation=operation,
            )

        # Malformed signature content
        elif isinstance(error, (json.JSONDecodeError, UnicodeDecodeError)):
            return ParseError(
                message="The signature data could not be decoded.",
                source=context.get("path") if context else None,
                original_error=error,
            )

        elif isinstance(error, (ValueError, TypeError)):
            return ValidationError(
                message=str(error),
                field=context.get("field") if context else None,
                value=context.get("value") if context else None,
            )

        return AppError(
            message="An unexpected error occurred.",
            category=ErrorCategory.UNEXPECTED,
            severity=ErrorSeverity.ERROR,
            technical_details=_describe(error),
            recoverable=False,
            context=ErrorContext(
                operation=operation,
                component=component,
                details=context or {},
            ),
        )

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        """Log error with full technical details."""
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error

        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """Get recent errors from history."""
        recent = self._error_history[-count:] if self._error_history else []
        return [error for _, error in recent]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        """Get count of errors by category."""
        counts: dict[ErrorCategory, int] = {}
        for _, error in self._error_history:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts

    def clear_history(self) -> None:
        self._error_history.clear()

    def create_user_message(
        self,
        error: UserFriendlyError,
        include_suggestions: bool = True,
    ) -> str:
        """Create a formatted user message from an error.

        Args:
            error: The user-friendly error
            include_suggestions: Whether to include suggested actions

        Returns:
            Formatted message string
        """
        parts = [error.message]

        if include_suggestions and error.suggested_actions:
            parts.append("\nSuggested actions:")
            for action in error.suggested_actions[:3]:
                parts.append(f"  • {action}")

        return "\n".join(parts)


# Global error handling service instance
_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """Get the global error handling service instance."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> UserFriendlyError:
    """Convenience function to handle errors using the global service.

    Args:
        error: The exception that occurred
        operation: The operation being performed
        component: The component where the error occurred
        context: Additional context information

    Returns:
        User-friendly error representation
    """
    return get_error_service().handle_error(error, operation, component, context)
