"""Data models for the Inky Notes core."""

from .note import (
    DEFAULT_TITLE,
    EMPTY_CONTENT,
    CreateNoteParams,
    Note,
    NoteMetadata,
    NoteRow,
    SearchNotesParams,
    SortField,
    SortOrder,
    UpdateNoteParams,
    note_from_row,
    note_to_row,
)

__all__ = [
    "DEFAULT_TITLE",
    "EMPTY_CONTENT",
    "CreateNoteParams",
    "Note",
    "NoteMetadata",
    "NoteRow",
    "SearchNotesParams",
    "SortField",
    "SortOrder",
    "UpdateNoteParams",
    "note_from_row",
    "note_to_row",
]
