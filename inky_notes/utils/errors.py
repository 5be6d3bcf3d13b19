"""Error taxonomy and centralized error handling for the note core."""

import logging
import traceback
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class ErrorCategory(str, Enum):
    """Categories of errors for better classification."""

    INITIALIZATION = "initialization"
    NOT_FOUND = "not_found"
    READ = "read"
    WRITE = "write"
    SESSION = "session"
    INTERNAL = "internal"


class ErrorSeverity(str, Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode(str, Enum):
    """Operation codes attached to every reported failure."""

    DB_INIT_ERROR = "DB_INIT_ERROR"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    CREATE_NOTE_ERROR = "CREATE_NOTE_ERROR"
    UPDATE_NOTE_ERROR = "UPDATE_NOTE_ERROR"
    GET_NOTE_ERROR = "GET_NOTE_ERROR"
    SEARCH_NOTES_ERROR = "SEARCH_NOTES_ERROR"
    DELETE_NOTE_ERROR = "DELETE_NOTE_ERROR"
    RESTORE_NOTE_ERROR = "RESTORE_NOTE_ERROR"
    PERMANENT_DELETE_ERROR = "PERMANENT_DELETE_ERROR"
    COUNT_NOTES_ERROR = "COUNT_NOTES_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorContext(BaseModel):
    """Context information for errors."""

    operation: Optional[str] = None
    note_id: Optional[str] = None
    component: Optional[str] = None
    additional_data: Dict[str, Any] = Field(default_factory=dict)


class ErrorDetails(BaseModel):
    """Detailed, serializable error information."""

    error_id: str
    code: ErrorCode
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    context: Optional[ErrorContext] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    traceback: Optional[str] = None


class BaseNoteError(Exception):
    """Base exception for all note core errors."""

    default_code = ErrorCode.INTERNAL_ERROR
    default_category = ErrorCategory.INTERNAL
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.details = details or {}
        self.context = context or ErrorContext()
        self.cause = cause
        self.timestamp = datetime.now(UTC)
        self.error_id = str(uuid.uuid4())[:8]

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "context": self.context.model_dump() if self.context else None,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_error_details(self) -> ErrorDetails:
        """Convert to ErrorDetails model."""
        tb = None
        if self.cause is not None:
            tb = "".join(
                traceback.format_exception(
                    type(self.cause), self.cause, self.cause.__traceback__
                )
            )
        return ErrorDetails(
            error_id=self.error_id,
            code=self.code,
            category=self.category,
            severity=self.severity,
            message=self.message,
            details=self.details,
            context=self.context,
            timestamp=self.timestamp,
            traceback=tb,
        )


class InitializationError(BaseNoteError):
    """The store or schema could not be prepared. Retryable by the caller."""

    default_code = ErrorCode.DB_INIT_ERROR
    default_category = ErrorCategory.INITIALIZATION
    default_severity = ErrorSeverity.CRITICAL


class NotFoundError(BaseNoteError):
    """A note id does not resolve to a live row."""

    default_code = ErrorCode.NOTE_NOT_FOUND
    default_category = ErrorCategory.NOT_FOUND
    default_severity = ErrorSeverity.LOW

    def __init__(self, message: str, note_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.note_id = note_id
        if note_id is not None:
            self.context.note_id = note_id


class ReadError(BaseNoteError):
    """A query against the store failed."""

    default_code = ErrorCode.GET_NOTE_ERROR
    default_category = ErrorCategory.READ
    default_severity = ErrorSeverity.HIGH


class WriteError(BaseNoteError):
    """An insert, update or delete failed."""

    default_code = ErrorCode.UPDATE_NOTE_ERROR
    default_category = ErrorCategory.WRITE
    default_severity = ErrorSeverity.HIGH


class CreateError(WriteError):
    """Inserting a new note failed."""

    default_code = ErrorCode.CREATE_NOTE_ERROR


class InvalidTransitionError(BaseNoteError):
    """A session operation was requested from a state that does not allow it."""

    default_code = ErrorCode.INVALID_TRANSITION
    default_category = ErrorCategory.SESSION
    default_severity = ErrorSeverity.LOW

_CATEGORY_ERRORS = {
    ErrorCategory.INITIALIZATION: InitializationError,
    ErrorCategory.NOT_FOUND: NotFoundError,
    ErrorCategory.READ: ReadError,
    ErrorCategory.WRITE: WriteError,
    ErrorCategory.SESSION: InvalidTransitionError,
}


def wrap_exception(
    error: Exception,
    code: ErrorCode,
    category: ErrorCategory,
    message: Optional[str] = None,
    context: Optional[ErrorContext] = None,
    **details,
) -> BaseNoteError:
    """Wrap a foreign exception with an operation code and context."""
    error_class = _CATEGORY_ERRORS.get(category, BaseNoteError)
    if code == ErrorCode.CREATE_NOTE_ERROR:
        error_class = CreateError
    details.setdefault("error", str(error))
    details.setdefault("error_type", type(error).__name__)
    return error_class(
        message or str(error),
        code=code,
        category=category,
        details=details,
        context=context,
        cause=error,
    )


class ErrorHandler:
    """Centralized error handling and logging."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def handle_error(
        self,
        error: Union[Exception, BaseNoteError],
        context: Optional[ErrorContext] = None,
        log_traceback: bool = True,
    ) -> ErrorDetails:
        """Log an error and return its serializable details."""
        if isinstance(error, BaseNoteError):
            note_error = error
        else:
            note_error = wrap_exception(
                error, ErrorCode.INTERNAL_ERROR, ErrorCategory.INTERNAL
            )

        if context:
            note_error.context = context

        self._log_error(note_error, log_traceback)

        return note_error.to_error_details()

    def _log_error(self, error: BaseNoteError, log_traceback: bool = True) -> None:
        """Log an error with a level matching its severity."""
        if error.severity == ErrorSeverity.CRITICAL:
            log_level = logging.CRITICAL
        elif error.severity == ErrorSeverity.HIGH:
            log_level = logging.ERROR
        elif error.severity == ErrorSeverity.MEDIUM:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        log_msg = f"[{error.error_id}] {error.code.value}: {error.message}"

        if error.context and error.context.operation:
            log_msg += f" (Operation: {error.context.operation})"
        if error.context and error.context.note_id:
            log_msg += f" (Note: {error.context.note_id})"

        self.logger.log(log_level, log_msg)

        if log_traceback and error.cause is not None:
            self.logger.log(
                log_level,
                f"[{error.error_id}] Caused by: {error.cause!r}",
                exc_info=(
                    type(error.cause),
                    error.cause,
                    error.cause.__traceback__,
                ),
            )


# Global error handler instance
_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler


def handle_error(
    error: Union[Exception, BaseNoteError],
    context: Optional[ErrorContext] = None,
    log_traceback: bool = True,
) -> ErrorDetails:
    """Handle an error using the global error handler."""
    return get_error_handler().handle_error(error, context, log_traceback)


def create_error_context(
    operation: Optional[str] = None,
    note_id: Optional[str] = None,
    component: Optional[str] = None,
    **additional_data,
) -> ErrorContext:
    """Create an error context object."""
    return ErrorContext(
        operation=operation,
        note_id=note_id,
        component=component,
        additional_data=additional_data,
    )

