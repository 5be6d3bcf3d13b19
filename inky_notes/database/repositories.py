"""Repository pattern implementation for the note store."""

import json
import logging
from abc import ABC
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import Table, and_, delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.note import (
    CreateNoteParams,
    Note,
    NoteMetadata,
    NoteRow,
    SearchNotesParams,
    SortField,
    SortOrder,
    UpdateNoteParams,
    format_timestamp,
    normalize_title,
    note_from_row,
    note_to_row,
    utc_now,
)
from ..utils.errors import ErrorCategory, ErrorCode, NotFoundError
from ..utils.results import DatabaseResult, returns_result
from .connection import DatabaseManager
from .models import Base, NoteDB

logger = logging.getLogger(__name__)

# Type variable for generic repository
T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T], ABC):
    """Base repository with the row-level statements every table needs.

    Each public operation opens its own session, so one logical operation is
    one transaction. Nothing here is exposed as manual transaction control.
    """

    def __init__(self, model_class: Type[T], db_manager: DatabaseManager):
        """Initialize repository with model class and store handle."""
        self.model_class = model_class
        self.table: Table = model_class.__table__
        self.db_manager = db_manager

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session on a store whose schema is known to be ready."""
        await self.db_manager.require_schema()
        async with self.db_manager.get_async_session() as session:
            yield session

    async def _get_mapping(
        self, session: AsyncSession, record_id: Any, *conditions
    ) -> Optional[Dict[str, Any]]:
        """Get a raw row by primary key."""
        query = select(self.table).where(self.table.c.id == record_id, *conditions)
        result = await session.execute(query)
        row = result.first()
        return dict(row._mapping) if row is not None else None

    async def _insert(self, session: AsyncSession, values: Dict[str, Any]) -> None:
        """Insert a new row."""
        await session.execute(insert(self.table).values(**values))

    async def _update_values(
        self, session: AsyncSession, record_id: Any, values: Dict[str, Any]
    ) -> int:
        """Update a row by primary key and return the number of rows touched."""
        result = await session.execute(
            update(self.table).where(self.table.c.id == record_id).values(**values)
        )
        return result.rowcount

    async def _delete(self, session: AsyncSession, record_id: Any) -> int:
        """Delete a row by primary key and return the number of rows removed."""
        result = await session.execute(
            delete(self.table).where(self.table.c.id == record_id)
        )
        return result.rowcount

    async def _count(self, session: AsyncSession, *conditions) -> int:
        """Count rows matching the given conditions."""
        query = select(func.count()).select_from(self.table)
        if conditions:
            query = query.where(and_(*conditions))
        result = await session.execute(query)
        return result.scalar_one()


class NoteRepository(BaseRepository[NoteDB]):
    """Reads and writes notes; the only owner of their stored representation.

    Every public operation returns a ``DatabaseResult`` instead of raising.
    """

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(NoteDB, db_manager)

    @property
    def _live(self):
        return self.table.c.is_deleted == 0

    async def _load(
        self, session: AsyncSession, note_id: str, include_deleted: bool = False
    ) -> Note:
        conditions = [] if include_deleted else [self._live]
        mapping = await self._get_mapping(session, note_id, *conditions)
        if mapping is None:
            raise NotFoundError("Note not found", note_id=note_id)
        return note_from_row(NoteRow.model_validate(mapping))

    @returns_result(
        "create_note",
        ErrorCode.CREATE_NOTE_ERROR,
        ErrorCategory.WRITE,
        message="Failed to create note",
        component="repository",
    )
    async def create(self, params: CreateNoteParams) -> Note:
        """Create a note with a fresh id, derived fields and version 1."""
        now = utc_now()
        note = Note(
            title=normalize_title(params.title),
            folder_id=params.folder_id,
            tags=params.tags,
            date_created=now,
            last_modified=now,
            metadata=NoteMetadata(version=1),
        )
        note.apply_content(params.content)

        async with self.session() as session:
            await self._insert(session, note_to_row(note).model_dump())

        logger.info(f"Created note {note.id}: {note.title}")
        return note

    @returns_result(
        "update_note",
        ErrorCode.UPDATE_NOTE_ERROR,
        ErrorCategory.WRITE,
        message="Failed to update note",
        component="repository",
    )
    async def update(self, params: UpdateNoteParams) -> Note:
        """Merge the provided fields over the stored note and rewrite the row."""
        provided = params.provided_fields()

        async with self.session() as session:
            existing = await self._load(session, params.id)
            updated = self._merge(existing, provided)
            values = note_to_row(updated).model_dump(exclude={"id", "created_at"})
            await self._update_values(session, params.id, values)

        logger.debug(
            f"Updated note {params.id} fields={sorted(provided)} version={updated.version}"
        )
        return updated

    def _merge(self, existing: Note, provided: Dict[str, Any]) -> Note:
        """Apply provided fields to a copy of ``existing``."""
        note = existing.model_copy(deep=True)

        if "title" in provided:
            note.title = normalize_title(provided["title"])
        if "folder_id" in provided:
            note.folder_id = provided["folder_id"]
        if "tags" in provided:
            note.tags = provided["tags"] or []
        if provided.get("is_pinned") is not None:
            note.is_pinned = provided["is_pinned"]
        if provided.get("is_deleted") is not None:
            note.is_deleted = provided["is_deleted"]
        if provided.get("last_edit_position") is not None:
            note.metadata = note.metadata.model_copy(
                update={"last_edit_position": provided["last_edit_position"]}
            )

        content = provided.get("content")
        if content is not None:
            note.apply_content(content)
            if content != existing.content:
                note.metadata = note.metadata.model_copy(
                    update={"version": existing.metadata.version + 1}
                )

        note.last_modified = utc_now()
        return note

    @returns_result(
        "get_note",
        ErrorCode.GET_NOTE_ERROR,
        ErrorCategory.READ,
        message="Failed to get note",
        component="repository",
    )
    async def get_by_id(self, note_id: str, include_deleted: bool = False) -> Note:
        """Get a live note; soft-deleted notes only with ``include_deleted``."""
        async with self.session() as session:
            return await self._load(session, note_id, include_deleted=include_deleted)

    @returns_result(
        "search_notes",
        ErrorCode.SEARCH_NOTES_ERROR,
        ErrorCategory.READ,
        message="Failed to search notes",
        component="repository",
    )
    async def search(self, params: Optional[SearchNotesParams] = None) -> List[Note]:
        """Filter, sort and paginate notes.

        Text matching is a case-sensitive substring test on title and plain
        text. Tags match by containment of the JSON-encoded tag in the stored
        array, all requested tags required.
        """
        params = params or SearchNotesParams()
        c = self.table.c
        conditions = []

        if not params.include_deleted:
            conditions.append(self._live)

        if params.filters_folder:
            if params.folder_id is None:
                conditions.append(c.folder_id.is_(None))
            else:
                conditions.append(c.folder_id == params.folder_id)

        if params.query:
            conditions.append(
                or_(
                    func.instr(c.title, params.query) > 0,
                    func.instr(c.plain_text, params.query) > 0,
                )
            )

        # Stored tags are unescaped JSON, as the app has always written them
        for tag in params.tags:
            needle = json.dumps(tag, ensure_ascii=False)
            conditions.append(func.instr(func.coalesce(c.tags, ""), needle) > 0)

        sort_column = {
            SortField.LAST_MODIFIED: c.updated_at,
            SortField.DATE_CREATED: c.created_at,
            SortField.TITLE: c.title,
        }[params.sort_by]
        if params.sort_order == SortOrder.ASC:
            ordering = [sort_column.asc(), c.id.asc()]
        else:
            ordering = [sort_column.desc(), c.id.desc()]

        query = select(self.table)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(*ordering).limit(params.limit).offset(params.offset)

        async with self.session() as session:
            result = await session.execute(query)
            rows = [NoteRow.model_validate(dict(row._mapping)) for row in result]

        notes = [note_from_row(row) for row in rows]
        logger.debug(f"Search returned {len(notes)} notes")
        return notes

    @returns_result(
        "delete_note",
        ErrorCode.DELETE_NOTE_ERROR,
        ErrorCategory.WRITE,
        message="Failed to delete note",
        component="repository",
    )
    async def soft_delete(self, note_id: str) -> bool:
        """Flag a note as deleted. Repeating it leaves the flag set."""
        return await self._set_deleted(note_id, True)

    @returns_result(
        "restore_note",
        ErrorCode.RESTORE_NOTE_ERROR,
        ErrorCategory.WRITE,
        message="Failed to restore note",
        component="repository",
    )
    async def restore(self, note_id: str) -> bool:
        """Clear the soft-delete flag."""
        return await self._set_deleted(note_id, False)

    async def _set_deleted(self, note_id: str, deleted: bool) -> bool:
        async with self.session() as session:
            touched = await self._update_values(
                session,
                note_id,
                {
                    "is_deleted": 1 if deleted else 0,
                    "updated_at": format_timestamp(utc_now()),
                },
            )
        if not touched:
            raise NotFoundError("Note not found", note_id=note_id)
        logger.info(f"Note {note_id} {'deleted' if deleted else 'restored'}")
        return True

    @returns_result(
        "purge_note",
        ErrorCode.PERMANENT_DELETE_ERROR,
        ErrorCategory.WRITE,
        message="Failed to permanently delete note",
        component="repository",
    )
    async def purge(self, note_id: str) -> bool:
        """Physically remove a note, deleted or not. Irreversible."""
        async with self.session() as session:
            removed = await self._delete(session, note_id)
        if not removed:
            raise NotFoundError("Note not found", note_id=note_id)
        logger.info(f"Note {note_id} permanently deleted")
        return True

    @returns_result(
        "count_notes",
        ErrorCode.COUNT_NOTES_ERROR,
        ErrorCategory.READ,
        message="Failed to count notes",
        component="repository",
    )
    async def count(self, include_deleted: bool = False) -> int:
        """Number of notes, optionally including soft-deleted ones."""
        conditions = [] if include_deleted else [self._live]
        async with self.session() as session:
            return await self._count(session, *conditions)
