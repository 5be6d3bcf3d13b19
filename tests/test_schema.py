"""Tests for schema creation, migration and single-flight initialization."""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from inky_notes.config import Config, DatabaseConfig
from inky_notes.database.connection import DatabaseManager, to_async_url
from inky_notes.database.models import NOTE_INDEXES, notes_table
from inky_notes.database.repositories import NoteRepository
from inky_notes.database.schema import SchemaManager
from inky_notes.utils.errors import ErrorCode
from inky_notes.utils.resilience import RetryConfig

LEGACY_TABLE = """
CREATE TABLE notes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    word_count INTEGER DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    folder_id TEXT,
    tags TEXT,
    reading_time INTEGER DEFAULT 1,
    last_edit_position INTEGER DEFAULT 0,
    is_pinned INTEGER DEFAULT 0,
    is_favorite INTEGER DEFAULT 0
)
"""

LEGACY_ROW = """
INSERT INTO notes (id, title, content, word_count, created_at, updated_at, tags,
                   reading_time, last_edit_position)
VALUES ('legacy-1', 'Old note', '<p>Written before the migration</p>', 4,
        '2024-01-01T10:00:00.000Z', '2024-01-02T10:00:00.000Z', '["old"]', 1, 5)
"""


async def table_columns(manager: DatabaseManager):
    async with manager.async_engine.connect() as conn:
        result = await conn.execute(text("PRAGMA table_info(notes)"))
        return [row[1] for row in result]


async def index_names(manager: DatabaseManager):
    async with manager.async_engine.connect() as conn:
        result = await conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'index'")
        )
        return {row[0] for row in result}


class TestAsyncUrl:
    """Test cases for to_async_url."""

    def test_sqlite_url_converted(self):
        """Test plain SQLite URLs use the aiosqlite driver."""
        assert to_async_url("sqlite:///tmp/x.db") == "sqlite+aiosqlite:///tmp/x.db"

    def test_async_url_unchanged(self):
        """Test URLs that already name a driver are kept."""
        url = "sqlite+aiosqlite:///tmp/x.db"
        assert to_async_url(url) == url


class TestEnsureSchema:
    """Test cases for DatabaseManager.ensure_schema."""

    @pytest.mark.asyncio
    async def test_fresh_database(self, db_manager):
        """Test a missing table is created with every column and index."""
        result = await db_manager.ensure_schema()

        assert result.success
        assert db_manager.is_initialized
        assert db_manager.schema_report.created_table
        assert db_manager.schema_report.failed_indexes == []
        assert db_manager.sqlite_version

        columns = await table_columns(db_manager)
        assert columns == [column.name for column in notes_table.columns]
        assert {name for name, _ in NOTE_INDEXES} <= await index_names(db_manager)

    @pytest.mark.asyncio
    async def test_legacy_table_migrated(self, config, temp_db_path):
        """Test missing columns are added and existing rows stay readable."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{temp_db_path}")
        async with engine.begin() as conn:
            await conn.execute(text(LEGACY_TABLE))
            await conn.execute(text(LEGACY_ROW))
        await engine.dispose()

        manager = DatabaseManager(config)
        try:
            result = await manager.ensure_schema()

            assert result.success
            assert not manager.schema_report.created_table
            assert manager.schema_report.added_columns == [
                "plain_text",
                "is_deleted",
                "metadata",
            ]

            note = (await NoteRepository(manager).get_by_id("legacy-1")).unwrap()
            assert note.plain_text == "Written before the migration"
            assert note.is_deleted is False
            assert note.tags == ["old"]
            assert note.version == 1
            assert note.metadata.last_edit_position == 5
        finally:
            await manager.close_async()

    @pytest.mark.asyncio
    async def test_idempotent(self, config, db_manager):
        """Test a second pass over a current table changes nothing."""
        assert (await db_manager.ensure_schema()).success
        assert (await db_manager.ensure_schema()).success

        other = DatabaseManager(config)
        try:
            assert (await other.ensure_schema()).success
            assert not other.schema_report.created_table
            assert other.schema_report.added_columns == []
        finally:
            await other.close_async()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_initialization(self, db_manager):
        """Test concurrent callers wait for a single schema pass."""
        schema_manager = db_manager._schema_manager
        with patch.object(
            schema_manager, "apply", wraps=schema_manager.apply
        ) as apply_spy:
            results = await asyncio.gather(
                *[db_manager.ensure_schema() for _ in range(5)]
            )

        assert all(result.success for result in results)
        assert apply_spy.call_count == 1

    @pytest.mark.asyncio
    async def test_failure_resets_state(self, tmp_path):
        """Test a store that cannot be opened fails and can be retried."""
        db_dir = tmp_path / "missing"
        config = Config(
            data_dir=tmp_path,
            database=DatabaseConfig(url=f"sqlite:///{db_dir}/notes.db"),
        )
        manager = DatabaseManager(config)
        try:
            result = await manager.ensure_schema()

            assert not result.success
            assert result.code == ErrorCode.DB_INIT_ERROR
            assert not manager.is_initialized

            repo_result = await NoteRepository(manager).get_by_id("anything")
            assert repo_result.code == ErrorCode.DB_INIT_ERROR

            db_dir.mkdir()
            retried = await manager.ensure_schema()
            assert retried.success
            assert manager.is_initialized
        finally:
            await manager.close_async()

    @pytest.mark.asyncio
    async def test_index_failure_is_not_fatal(self, config):
        """Test an index that cannot be created is skipped."""
        schema_manager = SchemaManager(
            indexes=NOTE_INDEXES + [("idx_notes_bogus", "no_such_column")],
            retry_config=RetryConfig(
                max_attempts=2,
                base_delay=0.001,
                retryable_exceptions=[SQLAlchemyError],
            ),
        )
        manager = DatabaseManager(config, schema_manager=schema_manager)
        try:
            result = await manager.ensure_schema()

            assert result.success
            assert manager.schema_report.failed_indexes == ["idx_notes_bogus"]
            assert len(manager.schema_report.created_indexes) == len(NOTE_INDEXES)
        finally:
            await manager.close_async()
