"""Pytest configuration and fixtures for inky_notes tests."""

import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
import yaml

from inky_notes.config import AutosaveConfig, Config, DatabaseConfig, LoggingConfig
from inky_notes.database.connection import DatabaseManager
from inky_notes.database.repositories import NoteRepository
from inky_notes.models.note import CreateNoteParams
from inky_notes.services.note_service import NoteService

# Short enough to keep tests fast, long enough to coalesce back-to-back edits
TEST_DEBOUNCE = 0.05


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name
    yield db_path
    # Cleanup, including SQLite's WAL companions
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture
def config(temp_db_path, tmp_path) -> Config:
    """Configuration pointing at the temporary database."""
    return Config(
        environment="test",
        data_dir=tmp_path / "data",
        database=DatabaseConfig(url=f"sqlite:///{temp_db_path}", index_retry_delay=0.01),
        autosave=AutosaveConfig(debounce_seconds=TEST_DEBOUNCE),
        logging=LoggingConfig(level="DEBUG"),
    )


@pytest.fixture
def config_file(config, tmp_path) -> Path:
    """The test configuration written as YAML, with quiet logging."""
    data = config.to_dict()
    data["logging"]["level"] = "CRITICAL"
    path = tmp_path / "config.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


@pytest_asyncio.fixture
async def db_manager(config):
    """Create a DatabaseManager instance for testing."""
    manager = DatabaseManager(config)
    yield manager
    await manager.close_async()


@pytest_asyncio.fixture
async def repository(db_manager):
    """Create a NoteRepository on the temporary database."""
    return NoteRepository(db_manager)


@pytest_asyncio.fixture
async def note_service(config):
    """Create a NoteService; pending edits are dropped on teardown."""
    service = NoteService(config)
    yield service
    await service.close(flush=False)


@pytest_asyncio.fixture
async def existing_note(note_service):
    """A stored note to edit."""
    result = await note_service.repository.create(
        CreateNoteParams(title="Groceries", content="<p>Milk and eggs</p>")
    )
    assert result.success
    return result.data


@pytest.fixture
def sample_params():
    """Create sample CreateNoteParams for testing."""
    return CreateNoteParams(
        title="Quarterly budget",
        content="<h1>Budget</h1><p>Rent&nbsp;and food &amp; travel</p>",
        folder_id="finance",
        tags=["work", "money"],
    )
