"""Note entity, operation parameters and row transformation."""

import json
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.text import compute_derived_fields, extract_plain_text

DEFAULT_TITLE = "Untitled Note"
EMPTY_CONTENT = "<p></p>"
DEFAULT_SEARCH_LIMIT = 100


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime to the ISO-8601 text stored in the table.

    Every timestamp is written with the same shape so that text ordering in
    SQL matches chronological ordering.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp (``Z`` suffix accepted)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_title(title: Optional[str]) -> str:
    """Empty or blank titles become the default title."""
    if title is None or not title.strip():
        return DEFAULT_TITLE
    return title


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Drop blank tags and duplicates, keeping first occurrence order."""
    if not tags:
        return []
    result: List[str] = []
    for tag in tags:
        if tag is None:
            continue
        tag = tag.strip()
        if tag and tag not in result:
            result.append(tag)
    return result


class NoteMetadata(BaseModel):
    """Secondary note attributes stored as one JSON object."""

    reading_time: int = Field(1, alias="readingTime")
    last_edit_position: int = Field(0, alias="lastEditPosition")
    character_count: int = Field(0, alias="characterCount")
    version: int = Field(1, description="Bumped on every content change")

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        """Serialize with the camelCase keys used in the table."""
        return json.dumps(self.model_dump(by_alias=True))


class Note(BaseModel):
    """The canonical note entity."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = DEFAULT_TITLE
    content: str = ""
    plain_text: str = ""
    word_count: int = 0
    date_created: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    folder_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_pinned: bool = False
    is_deleted: bool = False
    metadata: NoteMetadata = Field(default_factory=NoteMetadata)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def version(self) -> int:
        return self.metadata.version

    @property
    def reading_time(self) -> int:
        return self.metadata.reading_time

    def get_preview(self, max_length: int = 100) -> str:
        """Get a preview of the note's plain text."""
        if len(self.plain_text) <= max_length:
            return self.plain_text
        return self.plain_text[:max_length].rstrip() + "..."

    def apply_content(self, content: str) -> None:
        """Replace content and recompute every derived field."""
        derived = compute_derived_fields(content)
        self.content = content
        self.plain_text = derived.plain_text
        self.word_count = derived.word_count
        self.metadata = self.metadata.model_copy(
            update={
                "reading_time": derived.reading_time,
                "character_count": derived.character_count,
            }
        )

    def __str__(self) -> str:
        return f"{self.title} ({self.id}): {self.get_preview(50)}"


class CreateNoteParams(BaseModel):
    """Parameters for creating a note."""

    title: str = DEFAULT_TITLE
    content: str = ""
    folder_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v):
        return normalize_title(v)

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, v):
        return v or ""

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        return normalize_tags(v)


class UpdateNoteParams(BaseModel):
    """Partial update of a note.

    Only fields explicitly passed count as provided; an explicit
    ``folder_id=None`` moves the note out of its folder.
    """

    id: str
    title: Optional[str] = None
    content: Optional[str] = None
    folder_id: Optional[str] = None
    tags: Optional[List[str]] = None
    is_pinned: Optional[bool] = None
    is_deleted: Optional[bool] = None
    last_edit_position: Optional[int] = None

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        if v is None:
            return None
        return normalize_tags(v)

    @field_validator("last_edit_position")
    @classmethod
    def validate_last_edit_position(cls, v):
        if v is not None and v < 0:
            return 0
        return v

    def provided_fields(self) -> Dict[str, Any]:
        """Fields explicitly set on this update, excluding ``id``."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "id"
        }

    def merged_with(self, newer: "UpdateNoteParams") -> "UpdateNoteParams":
        """Overlay the fields provided by ``newer`` on this update."""
        if newer.id != self.id:
            raise ValueError(f"Cannot merge updates for {self.id} and {newer.id}")
        fields = {**self.provided_fields(), **newer.provided_fields()}
        return UpdateNoteParams(id=self.id, **fields)


class SortField(str, Enum):
    """Sortable note attributes."""

    LAST_MODIFIED = "lastModified"
    DATE_CREATED = "dateCreated"
    TITLE = "title"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class SearchNotesParams(BaseModel):
    """Filters, ordering and pagination for note searches.

    ``folder_id`` left unset means any folder; set to ``None`` it means notes
    outside every folder.
    """

    query: Optional[str] = None
    folder_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    include_deleted: bool = False
    sort_by: SortField = SortField.LAST_MODIFIED
    sort_order: SortOrder = SortOrder.DESC
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        return normalize_tags(v)

    @field_validator("limit", mode="before")
    @classmethod
    def validate_limit(cls, v):
        if v is None:
            return DEFAULT_SEARCH_LIMIT
        return max(1, int(v))

    @field_validator("offset", mode="before")
    @classmethod
    def validate_offset(cls, v):
        if v is None:
            return 0
        return max(0, int(v))

    @property
    def filters_folder(self) -> bool:
        """Whether a folder filter (possibly "no folder") was requested."""
        return "folder_id" in self.model_fields_set


class NoteRow(BaseModel):
    """A row of the ``notes`` table, as stored.

    Columns added by later schema versions are optional so rows written by
    older app versions can still be read.
    """

    id: str
    title: str
    content: str
    plain_text: Optional[str] = None
    word_count: Optional[int] = 0
    created_at: str
    updated_at: str
    folder_id: Optional[str] = None
    tags: Optional[str] = None
    reading_time: Optional[int] = None
    last_edit_position: Optional[int] = None
    is_pinned: Optional[int] = 0
    is_favorite: Optional[int] = 0
    is_deleted: Optional[int] = 0
    metadata: Optional[str] = None


def _load_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return []
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value]


def _load_metadata(row: NoteRow) -> NoteMetadata:
    """Metadata from its JSON column, falling back to the individual columns."""
    fallback = {
        "readingTime": row.reading_time or 1,
        "lastEditPosition": row.last_edit_position or 0,
        "characterCount": len(row.content),
        "version": 1,
    }
    stored: Dict[str, Any] = {}
    if row.metadata:
        try:
            value = json.loads(row.metadata)
        except (json.JSONDecodeError, TypeError):
            value = None
        if isinstance(value, dict):
            stored = value
    return NoteMetadata.model_validate({**fallback, **stored})


def note_from_row(row: NoteRow) -> Note:
    """Transform a stored row into a Note entity."""
    try:
        return Note(
            id=row.id,
            title=row.title,
            content=row.content,
            plain_text=row.plain_text or extract_plain_text(row.content),
            word_count=row.word_count or 0,
            date_created=parse_timestamp(row.created_at),
            last_modified=parse_timestamp(row.updated_at),
            folder_id=row.folder_id,
            tags=_load_tags(row.tags),
            is_pinned=bool(row.is_pinned),
            is_deleted=bool(row.is_deleted or 0),
            metadata=_load_metadata(row),
        )
    except ValueError as e:
        raise ValueError(f"Failed to transform note row {row.id}: {e}") from e


def note_to_row(note: Note) -> NoteRow:
    """Transform a Note entity into its stored row."""
    return NoteRow(
        id=note.id,
        title=note.title,
        content=note.content,
        plain_text=note.plain_text,
        word_count=note.word_count,
        created_at=format_timestamp(note.date_created),
        updated_at=format_timestamp(note.last_modified),
        folder_id=note.folder_id,
        tags=json.dumps(note.tags, ensure_ascii=False),
        reading_time=note.metadata.reading_time,
        last_edit_position=note.metadata.last_edit_position,
        is_pinned=1 if note.is_pinned else 0,
        is_favorite=0,
        is_deleted=1 if note.is_deleted else 0,
        metadata=note.metadata.to_json(),
    )
