"""Debounced, per-note deferred persistence."""

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Set

from ..config import AutosaveConfig
from ..database.repositories import NoteRepository
from ..models.note import UpdateNoteParams
from ..utils.errors import ErrorCategory, ErrorCode, ErrorDetails, wrap_exception
from ..utils.results import DatabaseResult

logger = logging.getLogger(__name__)

ErrorListener = Callable[[str, ErrorDetails], Any]


@dataclass
class PendingSave:
    """Buffered changes for one note and the timer that will write them."""

    changes: UpdateNoteParams
    generation: int = 0
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class AutosaveCoordinator:
    """Coalesces rapid edits into one write per note after a quiet period.

    State is a table keyed by note id. An entry is created by the first
    ``schedule_save`` for a note and removed when its write succeeds or when
    it is cancelled. Each note has at most one armed timer, and every write
    for a note runs under that note's lock, so writes for one note never
    overlap.

    Failed writes keep their buffer and are reported to the error listeners;
    they are retried only by the next scheduled save or flush. A write for a
    note that no longer exists drops its buffer instead.
    """

    def __init__(
        self,
        repository: NoteRepository,
        config: Optional[AutosaveConfig] = None,
    ):
        self.repository = repository
        self.config = config or AutosaveConfig()
        self._pending: Dict[str, PendingSave] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._error_listeners: List[ErrorListener] = []
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self.config.enabled and not self._closed

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register a callback receiving ``(note_id, error)`` for failed writes."""
        self._error_listeners.append(listener)

    def remove_error_listener(self, listener: ErrorListener) -> None:
        if listener in self._error_listeners:
            self._error_listeners.remove(listener)

    def schedule_save(self, params: UpdateNoteParams) -> None:
        """Buffer ``params`` and (re)arm the note's debounce timer.

        Fields provided here overwrite the same fields of earlier buffered
        calls; fields not provided keep their buffered value.
        """
        if not self.config.enabled:
            return
        if self._closed:
            logger.warning(f"Autosave is shut down, ignoring change for note {params.id}")
            return

        loop = asyncio.get_running_loop()
        note_id = params.id
        entry = self._pending.get(note_id)
        if entry is None:
            entry = PendingSave(changes=params)
            self._pending[note_id] = entry
        else:
            entry.cancel_timer()
            entry.changes = entry.changes.merged_with(params)
            entry.generation += 1

        entry.timer = loop.call_later(
            self.config.debounce_seconds, self._on_timer, note_id
        )
        logger.debug(f"Autosave scheduled for note {note_id}")

    def _on_timer(self, note_id: str) -> None:
        entry = self._pending.get(note_id)
        if entry is None:
            return
        entry.timer = None
        task = asyncio.get_running_loop().create_task(self._execute(note_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _lock_for(self, note_id: str) -> asyncio.Lock:
        lock = self._locks.get(note_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[note_id] = lock
        return lock

    async def _execute(self, note_id: str) -> bool:
        """Write the note's buffered changes. Returns whether nothing is left unsaved."""
        async with self._lock_for(note_id):
            entry = self._pending.get(note_id)
            if entry is None:
                return True

            generation = entry.generation
            try:
                result = await self.repository.update(entry.changes)
            except Exception as e:
                result = DatabaseResult.fail(
                    wrap_exception(
                        e,
                        ErrorCode.UPDATE_NOTE_ERROR,
                        ErrorCategory.WRITE,
                        message="Autosave failed",
                    )
                )

            if result.success:
                # Keep edits that arrived while the write was in flight
                if self._pending.get(note_id) is entry and entry.generation == generation:
                    del self._pending[note_id]
                logger.debug(f"Autosave completed for note {note_id}")
                return True

            if result.is_not_found():
                # Deleted or purged elsewhere
                if self._pending.get(note_id) is entry:
                    del self._pending[note_id]
                    entry.cancel_timer()
                logger.warning(
                    f"Autosave dropped changes for note {note_id}: note not found"
                )
            else:
                logger.warning(
                    f"Autosave failed for note {note_id}: "
                    f"{result.error.code.value if result.error else 'unknown error'}"
                )
            await self._emit_error(note_id, result.error)
            return False

    async def _emit_error(self, note_id: str, error: Optional[ErrorDetails]) -> None:
        for listener in list(self._error_listeners):
            try:
                outcome = listener(note_id, error)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Autosave error listener {listener!r} failed: {e}")

    def cancel(self, note_id: str) -> None:
        """Drop the note's timer and buffered changes.

        A write already in progress still completes; it just leaves nothing
        behind to retry.
        """
        entry = self._pending.pop(note_id, None)
        if entry is not None:
            entry.cancel_timer()
            logger.debug(f"Autosave cancelled for note {note_id}")

    async def flush(self, note_id: str) -> bool:
        """Write one note's buffered changes now."""
        entry = self._pending.get(note_id)
        if entry is not None:
            entry.cancel_timer()
        return await self._execute(note_id)

    async def flush_all(self) -> Dict[str, bool]:
        """Write every buffered change now, one note after another."""
        note_ids = list(self._pending.keys())
        if not note_ids:
            return {}

        logger.info(f"Saving all pending changes for notes: {note_ids}")
        for note_id in note_ids:
            self._pending[note_id].cancel_timer()

        results = {}
        for note_id in note_ids:
            results[note_id] = await self._execute(note_id)
        return results

    def has_pending(self, note_id: str) -> bool:
        """Whether the note has buffered changes not yet written."""
        return note_id in self._pending

    def has_scheduled(self, note_id: str) -> bool:
        """Whether the note has an armed debounce timer."""
        entry = self._pending.get(note_id)
        return entry is not None and entry.timer is not None

    def pending_note_ids(self) -> List[str]:
        return list(self._pending.keys())

    @asynccontextmanager
    async def exclusive(self, note_id: str) -> AsyncGenerator[None, None]:
        """Hold the note's write lock, waiting for any autosave in flight."""
        async with self._lock_for(note_id):
            yield

    def release(self, note_id: str) -> None:
        """Forget everything held for a note whose session has ended."""
        self.cancel(note_id)
        lock = self._locks.get(note_id)
        if lock is not None and not lock.locked():
            del self._locks[note_id]

    async def drain(self) -> None:
        """Wait for autosave writes already in progress."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def shutdown(self) -> None:
        """Cancel every timer and drop every buffer without writing."""
        for note_id, entry in self._pending.items():
            entry.cancel_timer()
            logger.debug(f"Cleaned up autosave timer for note {note_id}")
        dropped = len(self._pending)
        self._pending.clear()
        self._closed = True
        if dropped:
            logger.info(f"Autosave shut down, dropped {dropped} pending changes")
