"""Note service: the entry point tying the store, repository and autosave together."""

import logging
from typing import Dict, List, Optional

from ..config import Config, get_config
from ..database.connection import DatabaseManager
from ..database.repositories import NoteRepository
from ..models.note import (
    DEFAULT_TITLE,
    EMPTY_CONTENT,
    CreateNoteParams,
    Note,
    SearchNotesParams,
    UpdateNoteParams,
    normalize_title,
)
from ..utils.results import DatabaseResult
from .autosave import AutosaveCoordinator
from .session import NoteSession

logger = logging.getLogger(__name__)


class NoteService:
    """Note operations for one store, with debounced autosave for edits.

    Explicit writes (save, delete, purge) take the note's exclusive lock and
    cancel its pending autosave first, so they never interleave with an
    autosave write for the same note.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        db_manager: Optional[DatabaseManager] = None,
    ):
        """Initialize the service with its store, repository and coordinator."""
        self.config = config or get_config()
        self.db_manager = db_manager or DatabaseManager(self.config)
        self.repository = NoteRepository(self.db_manager)
        self.autosave = AutosaveCoordinator(self.repository, self.config.autosave)
        self._closed = False

    async def __aenter__(self) -> "NoteService":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def initialize(self) -> DatabaseResult[bool]:
        """Prepare the schema. Safe to call repeatedly and concurrently."""
        result = await self.db_manager.ensure_schema()
        if not result.success:
            logger.error("Note service could not initialize the database")
        return result

    async def create_new_note(
        self,
        title: Optional[str] = None,
        content: Optional[str] = None,
        folder_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> DatabaseResult[Note]:
        """Create a note, defaulting to an untitled empty paragraph."""
        params = CreateNoteParams(
            title=title or DEFAULT_TITLE,
            content=content or EMPTY_CONTENT,
            folder_id=folder_id,
            tags=tags or [],
        )
        return await self.repository.create(params)

    async def get_note(
        self, note_id: str, include_deleted: bool = False
    ) -> DatabaseResult[Note]:
        return await self.repository.get_by_id(note_id, include_deleted=include_deleted)

    async def search_notes(
        self, params: Optional[SearchNotesParams] = None
    ) -> DatabaseResult[List[Note]]:
        return await self.repository.search(params)

    async def count_notes(self, include_deleted: bool = False) -> DatabaseResult[int]:
        return await self.repository.count(include_deleted=include_deleted)

    async def save_note(self, params: UpdateNoteParams) -> DatabaseResult[Note]:
        """Write an update now, superseding any autosave pending for the note."""
        async with self.autosave.exclusive(params.id):
            self.autosave.cancel(params.id)
            return await self.repository.update(params)

    def update_title(self, note_id: str, title: str) -> None:
        """Schedule a debounced title change."""
        self.autosave.schedule_save(
            UpdateNoteParams(id=note_id, title=normalize_title(title))
        )

    def update_content(self, note_id: str, content: str) -> None:
        """Schedule a debounced content change."""
        self.autosave.schedule_save(
            UpdateNoteParams(id=note_id, content=content or EMPTY_CONTENT)
        )

    async def delete_note(self, note_id: str) -> DatabaseResult[bool]:
        """Soft-delete a note, dropping any unsaved autosave for it."""
        async with self.autosave.exclusive(note_id):
            self.autosave.cancel(note_id)
            return await self.repository.soft_delete(note_id)

    async def restore_note(self, note_id: str) -> DatabaseResult[bool]:
        return await self.repository.restore(note_id)

    async def purge_note(self, note_id: str) -> DatabaseResult[bool]:
        """Permanently remove a note. Cannot be undone."""
        async with self.autosave.exclusive(note_id):
            self.autosave.cancel(note_id)
            result = await self.repository.purge(note_id)
        self.autosave.release(note_id)
        return result

    def has_pending_changes(self, note_id: str) -> bool:
        return self.autosave.has_pending(note_id)

    async def save_all_pending_changes(self) -> Dict[str, bool]:
        """Write every buffered edit immediately."""
        return await self.autosave.flush_all()

    async def open_session(self, note_id: Optional[str] = None) -> NoteSession:
        """Open an editing session for ``note_id``, or for a new note."""
        session = NoteSession(self, note_id)
        await session.open()
        return session

    async def close(self, flush: bool = True) -> None:
        """Stop autosave and release the store.

        With ``flush`` pending edits are written first; otherwise they are
        dropped.
        """
        if self._closed:
            return
        self._closed = True

        if flush:
            results = await self.autosave.flush_all()
            failed = [note_id for note_id, ok in results.items() if not ok]
            if failed:
                logger.warning(f"Unsaved changes lost on close for notes: {failed}")

        self.autosave.shutdown()
        await self.autosave.drain()
        await self.db_manager.close_async()
        logger.info("Note service closed")
