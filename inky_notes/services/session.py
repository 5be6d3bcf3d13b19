"""Editing session for one open note."""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..models.note import Note, UpdateNoteParams
from ..utils.errors import ErrorDetails, InvalidTransitionError
from ..utils.results import DatabaseResult

if TYPE_CHECKING:
    from .note_service import NoteService

logger = logging.getLogger(__name__)

# Requested id meaning "create a note instead of loading one"
NEW_NOTE_ID = "new"


class SessionState(str, Enum):
    """States of an editing session."""

    LOADING = "loading"
    READY = "ready"
    SAVING = "saving"
    ERROR = "error"
    CLOSED = "closed"


class CloseDecision(str, Enum):
    """The user's answer when closing a note with unsaved edits."""

    DISCARD = "discard"
    SAVE_AND_EXIT = "save_and_exit"
    CANCEL = "cancel"


class CloseRequestOutcome(str, Enum):
    """Whether navigation away from the note may go ahead."""

    PROCEED = "proceed"
    BLOCKED = "blocked"


class LifecycleEvent(str, Enum):
    """Navigation and app lifecycle signals delivered to a session."""

    OPENED = "opened"
    SCREEN_FOCUS_LOST = "screen_focus_lost"
    APP_BACKGROUNDED = "app_backgrounded"
    CLOSE_REQUESTED = "close_requested"


@dataclass(frozen=True)
class NoteSnapshot:
    """Title and content at one point in time."""

    title: str
    content: str

    @classmethod
    def of(cls, note: Note) -> "NoteSnapshot":
        return cls(title=note.title, content=note.content)


_EDITABLE = (SessionState.READY, SessionState.SAVING)


class NoteSession:
    """Binds one open note to the repository and the autosave coordinator.

    The session keeps two snapshots: ``original`` (title and content at load
    or last explicit save) and ``working`` (what the editor currently shows).
    The note is dirty while they differ. Every edit is handed to autosave, so
    the stored row may already contain edits the user later discards;
    discarding therefore writes ``original`` back.

    State flow::

        loading -> ready <-> saving
        loading -> error -> (retry) loading
        ready -> closed
    """

    def __init__(self, service: "NoteService", note_id: Optional[str] = None):
        self.service = service
        self.requested_id = note_id
        self.state = SessionState.LOADING
        self.note: Optional[Note] = None
        self.original: Optional[NoteSnapshot] = None
        self.working: Optional[NoteSnapshot] = None
        self.last_error: Optional[ErrorDetails] = None
        self._opened = False
        self._discarding = False

    @property
    def note_id(self) -> Optional[str]:
        if self.note is not None:
            return self.note.id
        if self.requested_id == NEW_NOTE_ID:
            return None
        return self.requested_id

    @property
    def dirty(self) -> bool:
        """Whether the working copy differs from the last saved snapshot."""
        if self.original is None or self.working is None:
            return False
        return self.working != self.original

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransitionError(
                f"Operation not allowed in state '{self.state.value}'",
                details={
                    "state": self.state.value,
                    "allowed": [s.value for s in states],
                },
            )

    async def open(self) -> DatabaseResult[Note]:
        """Load the requested note, or create one for ``None`` or ``"new"``."""
        if self._opened and self.state != SessionState.ERROR:
            raise InvalidTransitionError(
                f"Session already opened (state '{self.state.value}')"
            )
        self._opened = True
        self.state = SessionState.LOADING

        init = await self.service.initialize()
        if not init.success:
            return self._load_failed(init)

        if self.requested_id is None or self.requested_id == NEW_NOTE_ID:
            result = await self.service.create_new_note()
        else:
            result = await self.service.get_note(self.requested_id)

        if not result.success:
            return self._load_failed(result)

        self.note = result.data
        self.original = NoteSnapshot.of(self.note)
        self.working = self.original
        self.last_error = None
        self.state = SessionState.READY
        logger.info(f"Opened note {self.note.id}")
        return result

    def _load_failed(self, result: DatabaseResult) -> DatabaseResult:
        self.last_error = result.error
        self.state = SessionState.ERROR
        logger.warning(
            f"Failed to open note {self.requested_id or NEW_NOTE_ID}: "
            f"{result.code.value if result.code else 'unknown error'}"
        )
        return result

    async def retry(self) -> DatabaseResult[Note]:
        """Try loading again after a failed open."""
        self._require(SessionState.ERROR)
        return await self.open()

    def edit_title(self, title: str) -> bool:
        """Apply a title edit and schedule it for autosave. Returns ``dirty``."""
        self._require(*_EDITABLE)
        self.working = replace(self.working, title=title)
        self.service.update_title(self.note.id, title)
        return self.dirty

    def edit_content(self, content: str) -> bool:
        """Apply a content edit and schedule it for autosave. Returns ``dirty``."""
        self._require(*_EDITABLE)
        self.working = replace(self.working, content=content)
        self.service.update_content(self.note.id, content)
        return self.dirty

    async def save(self) -> DatabaseResult[Note]:
        """Write the working copy now.

        On failure the working copy and the dirty flag are left as they were
        and the error is kept in ``last_error``. Either way, edits that are
        still unsaved afterwards go back to autosave.
        """
        self._require(SessionState.READY)
        self.state = SessionState.SAVING
        snapshot = self.working
        try:
            result = await self.service.save_note(
                UpdateNoteParams(
                    id=self.note.id, title=snapshot.title, content=snapshot.content
                )
            )
        finally:
            self.state = SessionState.READY

        if result.success:
            self.note = result.data
            # Edits made while the write was in flight stay dirty
            self.original = snapshot
            self.last_error = None
            logger.info(f"Saved note {self.note.id} (version {self.note.version})")
        else:
            self.last_error = result.error
            logger.warning(f"Explicit save failed for note {self.note.id}")

        # The save cancelled the pending autosave, including edits made while
        # it waited for the note lock; hand whatever is unsaved back to it
        if self.dirty:
            self.service.autosave.schedule_save(
                UpdateNoteParams(
                    id=self.note.id,
                    title=self.working.title,
                    content=self.working.content,
                )
            )
        return result

    async def request_close(self) -> CloseRequestOutcome:
        """Close right away when clean, otherwise wait for a ``CloseDecision``."""
        if self.state == SessionState.ERROR:
            await self.close()
            return CloseRequestOutcome.PROCEED
        self._require(SessionState.READY)
        if self.dirty:
            return CloseRequestOutcome.BLOCKED
        await self.close()
        return CloseRequestOutcome.PROCEED

    async def resolve_close(self, decision: CloseDecision) -> bool:
        """Act on the user's close decision. Returns whether the session closed."""
        self._require(SessionState.READY)
        decision = CloseDecision(decision)

        if decision == CloseDecision.CANCEL:
            return False

        if decision == CloseDecision.SAVE_AND_EXIT:
            result = await self.save()
            if not result.success:
                return False
            await self.close()
            return True

        return await self._discard()

    async def _discard(self) -> bool:
        """Write the original snapshot back, undoing anything autosave stored."""
        self._discarding = True
        self.state = SessionState.SAVING
        try:
            result = await self.service.save_note(
                UpdateNoteParams(
                    id=self.note.id,
                    title=self.original.title,
                    content=self.original.content,
                )
            )
        finally:
            self.state = SessionState.READY

        if not result.success:
            self._discarding = False
            self.last_error = result.error
            logger.warning(f"Failed to revert note {self.note.id} on discard")
            return False

        self.note = result.data
        self.working = self.original
        logger.info(f"Discarded changes to note {self.note.id}")
        await self.close()
        return True

    async def on_screen_focus_lost(self) -> Dict[str, bool]:
        return await self._flush_if_dirty("screen focus lost")

    async def on_app_backgrounded(self) -> Dict[str, bool]:
        return await self._flush_if_dirty("app backgrounded")

    async def _flush_if_dirty(self, reason: str) -> Dict[str, bool]:
        if self.state not in _EDITABLE or not self.dirty or self._discarding:
            return {}
        logger.debug(f"Flushing pending changes: {reason}")
        return await self.service.save_all_pending_changes()

    async def handle(self, event: LifecycleEvent) -> Any:
        """Dispatch a named lifecycle event."""
        event = LifecycleEvent(event)
        if event == LifecycleEvent.OPENED:
            return await self.open()
        if event == LifecycleEvent.SCREEN_FOCUS_LOST:
            return await self.on_screen_focus_lost()
        if event == LifecycleEvent.APP_BACKGROUNDED:
            return await self.on_app_backgrounded()
        return await self.request_close()

    async def close(self) -> None:
        """End the session. Pending autosave for the note is written first
        unless the session is discarding."""
        if self.state == SessionState.CLOSED:
            return
        self._require(SessionState.READY, SessionState.ERROR)

        note_id = self.note_id
        if note_id is not None:
            if not self._discarding and self.service.has_pending_changes(note_id):
                await self.service.autosave.flush(note_id)
            self.service.autosave.release(note_id)

        self.state = SessionState.CLOSED
        logger.debug(f"Closed session for note {note_id}")
