"""Result values returned across the repository and service boundary."""

import functools
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

from .errors import (
    BaseNoteError,
    ErrorCategory,
    ErrorCode,
    ErrorDetails,
    create_error_context,
    handle_error,
    wrap_exception,
)

T = TypeVar("T")


class DatabaseResult(BaseModel, Generic[T]):
    """Outcome of a storage operation: either ``data`` or ``error``."""

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetails] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _exception: Optional[BaseNoteError] = PrivateAttr(default=None)

    @classmethod
    def ok(cls, data: Any = None) -> "DatabaseResult":
        """Build a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: BaseNoteError) -> "DatabaseResult":
        """Build a failed result from a note error."""
        result = cls(success=False, error=error.to_error_details())
        result._exception = error
        return result

    @property
    def code(self) -> Optional[ErrorCode]:
        """Error code of a failed result, ``None`` on success."""
        return self.error.code if self.error else None

    @property
    def exception(self) -> Optional[BaseNoteError]:
        """The exception this failure was built from, if still attached."""
        return self._exception

    def is_not_found(self) -> bool:
        """Whether the failure means the note does not resolve to a live row."""
        return self.code == ErrorCode.NOTE_NOT_FOUND

    def unwrap(self) -> T:
        """Return the data or raise the wrapped error."""
        if self.success:
            return self.data
        if self._exception is not None:
            raise self._exception
        raise BaseNoteError(
            self.error.message if self.error else "Operation failed",
            code=self.code,
        )


def returns_result(
    operation: str,
    code: ErrorCode,
    category: ErrorCategory,
    message: Optional[str] = None,
    component: Optional[str] = None,
) -> Callable:
    """Turn an async operation's return value or exception into a DatabaseResult.

    Note errors keep their own code (for example ``NOTE_NOT_FOUND``); any other
    exception is wrapped with ``code`` and ``category``. Every failure is logged
    through the global error handler before it is returned.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                data = await func(*args, **kwargs)
            except BaseNoteError as e:
                if not e.context.operation:
                    e.context.operation = operation
                if not e.context.component:
                    e.context.component = component
                handle_error(e)
                return DatabaseResult.fail(e)
            except Exception as e:
                note_error = wrap_exception(
                    e,
                    code,
                    category,
                    message=message or f"Failed to {operation.replace('_', ' ')}",
                    context=create_error_context(
                        operation=operation, component=component
                    ),
                )
                handle_error(note_error)
                return DatabaseResult.fail(note_error)
            return DatabaseResult.ok(data)

        return wrapper

    return decorator
