"""Database layer for the Inky Notes core."""

from .connection import DatabaseManager, to_async_url
from .models import NOTE_INDEXES, Base, NoteDB, notes_table
from .repositories import BaseRepository, NoteRepository
from .schema import SchemaManager, SchemaReport

__all__ = [
    # Models
    "Base",
    "NoteDB",
    "notes_table",
    "NOTE_INDEXES",
    # Connection and schema management
    "DatabaseManager",
    "SchemaManager",
    "SchemaReport",
    "to_async_url",
    # Repositories
    "BaseRepository",
    "NoteRepository",
]
