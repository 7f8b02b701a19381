"""Error handling utilities for the citation form session engine."""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the form session engine."""

    # Storage Errors
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"
    STORAGE_CORRUPT_RECORD = "STORAGE_CORRUPT_RECORD"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    RECORD_FROZEN = "RECORD_FROZEN"

    # Finalization Errors
    FINALIZE_RECORD_UPDATE_FAILED = "FINALIZE_RECORD_UPDATE_FAILED"
    FINALIZE_INDEX_APPEND_FAILED = "FINALIZE_INDEX_APPEND_FAILED"

    # Session Errors
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    SESSION_FINALIZED = "SESSION_FINALIZED"
    SESSION_NOT_STARTED = "SESSION_NOT_STARTED"

    # Configuration Errors
    CONFIG_INVALID = "CONFIG_INVALID"


@dataclass
class ErrorContext:
    """
    Context information for errors in the form session engine.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the error can be recovered from
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class FormSessionError(Exception):
    """
    Base exception for all form session engine errors.

    Wraps errors with additional context so callers can degrade gracefully
    and report the failure to the user without losing in-memory input.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        """
        Initialize form session error.

        Args:
            context: ErrorContext with error details
        """
        self.context = context
        super().__init__(context.message)

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    @property
    def recoverable(self) -> bool:
        return self.context.recoverable

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        return self.context.to_dict()


class StorageError(FormSessionError):
    """Exception for key-value medium read and write failures."""

    @classmethod
    def read_failed(
        cls,
        key: str,
        error: Exception,
        fallback_action: Optional[str] = None
    ) -> "StorageError":
        """
        Create error for an unreadable stored value.

        Args:
            key: Storage key that could not be read
            error: Original exception
            fallback_action: Optional fallback action

        Returns:
            StorageError instance
        """
        context = ErrorContext(
            error_type=ErrorType.STORAGE_READ_FAILED,
            message=f"Failed to read '{key}': {str(error)}",
            recoverable=True,
            fallback_action=fallback_action or "Treat the record as absent",
            details={"key": key},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def corrupt_record(
        cls,
        key: str,
        reason: str,
        error: Optional[Exception] = None
    ) -> "StorageError":
        """
        Create error for a stored payload that cannot be decoded.

        Args:
            key: Storage key holding the corrupt payload
            reason: Short description of what is wrong with the payload
            error: Optional original decoding exception

        Returns:
            StorageError instance
        """
        context = ErrorContext(
            error_type=ErrorType.STORAGE_CORRUPT_RECORD,
            message=f"Stored payload at '{key}' is not usable: {reason}",
            recoverable=True,
            fallback_action="Start a fresh draft",
            details={"key": key, "reason": reason},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def write_failed(
        cls,
        key: str,
        error: Exception,
        fallback_action: Optional[str] = None
    ) -> "StorageError":
        """
        Create error for a failed write (quota exceeded, medium unavailable).

        Args:
            key: Storage key that could not be written
            error: Original exception
            fallback_action: Optional fallback action

        Returns:
            StorageError instance
        """
        context = ErrorContext(
            error_type=ErrorType.STORAGE_WRITE_FAILED,
            message=f"Failed to write '{key}': {str(error)}",
            recoverable=True,
            fallback_action=fallback_action or "Keep editing in memory; the draft may not be durable",
            details={"key": key},
            original_exception=error
        )
        return cls(context)


class RecordFrozenError(StorageError):
    """Exception raised when saving into an already submitted record."""

    @classmethod
    def submitted(cls, identifier: str) -> "RecordFrozenError":
        context = ErrorContext(
            error_type=ErrorType.RECORD_FROZEN,
            message=f"Application {identifier} has been submitted and can no longer change",
            recoverable=True,
            fallback_action="Start a new application",
            details={"identifier": identifier}
        )
        return cls(context)

    @classmethod
    def pending(cls, identifier: str) -> "RecordFrozenError":
        context = ErrorContext(
            error_type=ErrorType.RECORD_FROZEN,
            message=f"Application {identifier} is mid-submission and cannot be edited",
            recoverable=True,
            fallback_action="Reconcile pending submissions, then start a new application",
            details={"identifier": identifier, "status": "pending_index"}
        )
        return cls(context)


class FinalizationError(FormSessionError):
    """Exception for a submission that could not be completed."""

    @classmethod
    def record_update_failed(
        cls,
        identifier: str,
        attempts: int,
        error: Exception
    ) -> "FinalizationError":
        """
        Create error for a record write that kept failing during finalize.

        Args:
            identifier: Application identifier being finalized
            attempts: Number of attempts made
            error: Last exception seen

        Returns:
            FinalizationError instance
        """
        context = ErrorContext(
            error_type=ErrorType.FINALIZE_RECORD_UPDATE_FAILED,
            message=f"Could not update application {identifier} after {attempts} attempts: {str(error)}",
            recoverable=True,
            fallback_action="Application left as draft; submit again",
            details={"identifier": identifier, "attempts": attempts},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def index_append_failed(
        cls,
        identifier: str,
        attempts: int,
        error: Exception
    ) -> "FinalizationError":
        """
        Create error for an index append that kept failing during finalize.

        Args:
            identifier: Application identifier being finalized
            attempts: Number of attempts made
            error: Last exception seen

        Returns:
            FinalizationError instance
        """
        context = ErrorContext(
            error_type=ErrorType.FINALIZE_INDEX_APPEND_FAILED,
            message=f"Could not index application {identifier} after {attempts} attempts: {str(error)}",
            recoverable=True,
            fallback_action="Application left as draft; submit again",
            details={"identifier": identifier, "attempts": attempts},
            original_exception=error
        )
        return cls(context)


class SessionError(FormSessionError):
    """Exception for misuse of the session controller."""

    @classmethod
    def not_started(cls) -> "SessionError":
        context = ErrorContext(
            error_type=ErrorType.SESSION_NOT_STARTED,
            message="Session has not been started; call start() first",
            recoverable=True
        )
        return cls(context)


class UnknownFieldError(SessionError, KeyError):
    """Exception for a field path the schema does not declare."""

    @classmethod
    def for_path(cls, path: str) -> "UnknownFieldError":
        context = ErrorContext(
            error_type=ErrorType.UNKNOWN_FIELD,
            message=f"Unknown field '{path}'",
            recoverable=True,
            details={"path": path}
        )
        return cls(context)

    def __str__(self) -> str:
        return FormSessionError.__str__(self)


class SessionFinalizedError(SessionError):
    """Exception for edits attempted after the session was submitted."""

    @classmethod
    def for_identifier(cls, identifier: str) -> "SessionFinalizedError":
        context = ErrorContext(
            error_type=ErrorType.SESSION_FINALIZED,
            message=f"Application {identifier} was submitted; start a new session to edit",
            recoverable=True,
            fallback_action="Call start_new_session()",
            details={"identifier": identifier}
        )
        return cls(context)


class ConfigError(FormSessionError):
    """Exception for missing or malformed configuration."""

    @classmethod
    def invalid(cls, path: str, error: Exception) -> "ConfigError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_INVALID,
            message=f"Invalid configuration in '{path}': {str(error)}",
            recoverable=False,
            details={"path": path},
            original_exception=error
        )
        return cls(context)


def handle_storage_error(
    error: Exception,
    key: str,
    operation: str,
    logger,
    fallback_action: Optional[str] = None
) -> None:
    """
    Handle key-value medium errors with logging and graceful degradation.

    Logs the error and raises a StorageError with context for upstream
    handling. Already wrapped errors are logged and re-raised unchanged.

    Args:
        error: Original exception from the medium
        key: Storage key involved
        operation: 'read' or 'write'
        logger: Logger instance for error logging
        fallback_action: Optional fallback action description

    Raises:
        StorageError: Wrapped error with context
    """
    if isinstance(error, StorageError):
        storage_error = error
    elif operation == 'read':
        storage_error = StorageError.read_failed(
            key=key,
            error=error,
            fallback_action=fallback_action
        )
    else:
        storage_error = StorageError.write_failed(
            key=key,
            error=error,
            fallback_action=fallback_action
        )

    # Log with appropriate level based on recoverability
    if storage_error.context.recoverable:
        logger.warning(f"Recoverable storage error: {storage_error}")
    else:
        logger.error(f"Non-recoverable storage error: {storage_error}")

    raise storage_error
