"""Tests for error taxonomy and result values."""

import logging

import pytest

from inky_notes.utils.errors import (
    BaseNoteError,
    CreateError,
    ErrorCategory,
    ErrorCode,
    ErrorHandler,
    InitializationError,
    NotFoundError,
    ReadError,
    create_error_context,
    wrap_exception,
)
from inky_notes.utils.results import DatabaseResult, returns_result


class TestErrors:
    """Test cases for note errors."""

    def test_default_codes(self):
        """Test each error type carries its own code and category."""
        assert InitializationError("x").code == ErrorCode.DB_INIT_ERROR
        assert NotFoundError("x").category == ErrorCategory.NOT_FOUND
        assert CreateError("x").code == ErrorCode.CREATE_NOTE_ERROR
        assert ReadError("x").category == ErrorCategory.READ

    def test_not_found_context(self):
        """Test the note id is recorded in the context."""
        error = NotFoundError("Note not found", note_id="n1")
        assert error.context.note_id == "n1"
        assert error.to_dict()["code"] == "NOTE_NOT_FOUND"

    def test_wrap_exception(self):
        """Test foreign exceptions are wrapped by category."""
        cause = OSError("disk gone")
        error = wrap_exception(cause, ErrorCode.CREATE_NOTE_ERROR, ErrorCategory.WRITE)

        assert isinstance(error, CreateError)
        assert error.cause is cause
        assert error.details["error_type"] == "OSError"

        details = error.to_error_details()
        assert details.code == ErrorCode.CREATE_NOTE_ERROR
        assert "OSError" in details.traceback

    def test_handler_logs_by_severity(self, caplog):
        """Test the handler logs at the level matching severity."""
        handler = ErrorHandler(logging.getLogger("test.errors"))

        with caplog.at_level(logging.DEBUG, logger="test.errors"):
            handler.handle_error(InitializationError("cannot open"))
            handler.handle_error(NotFoundError("missing", note_id="n1"))

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.CRITICAL, logging.INFO]
        assert "(Note: n1)" in caplog.records[1].getMessage()


class TestDatabaseResult:
    """Test cases for DatabaseResult and returns_result."""

    def test_ok_and_unwrap(self):
        """Test a successful result unwraps to its data."""
        result = DatabaseResult.ok(5)
        assert result.success
        assert result.code is None
        assert result.unwrap() == 5

    def test_fail_and_unwrap(self):
        """Test a failed result raises its error on unwrap."""
        error = NotFoundError("gone", note_id="n1")
        result = DatabaseResult.fail(error)

        assert not result.success
        assert result.is_not_found()
        with pytest.raises(NotFoundError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_returns_result_success(self):
        """Test a normal return becomes a successful result."""

        @returns_result("get_note", ErrorCode.GET_NOTE_ERROR, ErrorCategory.READ)
        async def operation():
            return "value"

        result = await operation()
        assert result.success
        assert result.data == "value"

    @pytest.mark.asyncio
    async def test_returns_result_keeps_note_error_code(self):
        """Test note errors keep their own code and gain the operation."""

        @returns_result(
            "update_note",
            ErrorCode.UPDATE_NOTE_ERROR,
            ErrorCategory.WRITE,
            component="repository",
        )
        async def operation():
            raise NotFoundError("Note not found", note_id="n1")

        result = await operation()
        assert result.code == ErrorCode.NOTE_NOT_FOUND
        assert result.error.context.operation == "update_note"
        assert result.error.context.component == "repository"

    @pytest.mark.asyncio
    async def test_returns_result_wraps_foreign_errors(self):
        """Test other exceptions are wrapped with the operation code."""

        @returns_result("search_notes", ErrorCode.SEARCH_NOTES_ERROR, ErrorCategory.READ)
        async def operation():
            raise RuntimeError("bad query")

        result = await operation()
        assert result.code == ErrorCode.SEARCH_NOTES_ERROR
        assert result.error.message == "Failed to search notes"
        assert isinstance(result.exception, BaseNoteError)

    def test_create_error_context(self):
        """Test extra keyword data lands in additional_data."""
        context = create_error_context(operation="op", note_id="n1", attempt=2)
        assert context.additional_data == {"attempt": 2}
