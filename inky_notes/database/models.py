"""SQLAlchemy table definitions for the Inky Notes store."""

from sqlalchemy import Column, Integer, String, Text, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class NoteDB(Base):
    """Note table. Column names match rows written by every app version."""

    __tablename__ = "notes"

    id = Column(String, primary_key=True)
    title = Column(Text, nullable=False, server_default=text("''"))
    content = Column(Text, nullable=False, server_default=text("''"))
    plain_text = Column(Text, nullable=False, server_default=text("''"))
    word_count = Column(Integer, server_default=text("0"))
    created_at = Column(Text, nullable=False, server_default=text("''"))
    updated_at = Column(Text, nullable=False, server_default=text("''"))
    folder_id = Column(Text, nullable=True)
    tags = Column(Text, server_default=text("'[]'"))
    reading_time = Column(Integer, server_default=text("1"))
    last_edit_position = Column(Integer, server_default=text("0"))
    is_pinned = Column(Integer, server_default=text("0"))
    is_favorite = Column(Integer, server_default=text("0"))
    is_deleted = Column(Integer, server_default=text("0"))
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", Text, server_default=text("'{}'"))

    def __repr__(self) -> str:
        return f"<NoteDB(id='{self.id}', title='{self.title}')>"


notes_table = NoteDB.__table__

# (index name, column); created one by one so a failing index never blocks the others
NOTE_INDEXES = [
    ("idx_notes_updated_at", "updated_at"),
    ("idx_notes_is_deleted", "is_deleted"),
    ("idx_notes_folder_id", "folder_id"),
    ("idx_notes_plain_text", "plain_text"),
]
