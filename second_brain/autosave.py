"""
Debounced auto-save for the note editor.

Edits to title, content or folder schedule a save 1.5 seconds after the last
change, so a burst of typing turns into one PATCH. A failed save keeps the
local values and waits for the next edit or a manual save.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

AUTOSAVE_DELAY_SECONDS = 1.5

_UNSET = object()


class SaveState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"
    ERROR = "error"


class NoteAutoSaver:
    """
    Track one note's editable fields and push them to the server.

    Args:
        save: Called with ``{"title", "content", "folder_id"}``; raises on failure
        title, content, folder_id: The last persisted values
        delay: Quiet period before an automatic save
        timer_factory: ``threading.Timer``-compatible factory (tests inject a fake)
    """

    def __init__(
        self,
        save: Callable[[dict[str, Any]], Any],
        title: str = "Untitled",
        content: str = "",
        folder_id: int | None = None,
        delay: float = AUTOSAVE_DELAY_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self._save = save
        self.delay = delay
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.RLock()

        self.title = title
        self.content = content
        self.folder_id = folder_id
        self._saved = self._snapshot()

        self.state = SaveState.CLEAN
        self.error: Exception | None = None
        self.last_saved: datetime | None = None

    @classmethod
    def for_note(cls, client, note: dict, **kwargs) -> "NoteAutoSaver":
        """Build a saver for a note dict returned by the API client."""
        note_id = note["id"]
        return cls(
            lambda fields: client.update_note(note_id, **fields),
            title=note.get("title") or "Untitled",
            content=note.get("content") or "",
            folder_id=note.get("folderId"),
            **kwargs,
        )

    @property
    def has_unsaved_changes(self) -> bool:
        return self.state != SaveState.CLEAN

    def edit(self, title: Any = _UNSET, content: Any = _UNSET, folder_id: Any = _UNSET):
        """Apply local edits and (re)start the debounce timer if anything changed."""
        with self._lock:
            if title is not _UNSET:
                self.title = title
            if content is not _UNSET:
                self.content = content
            if folder_id is not _UNSET:
                self.folder_id = folder_id

            if self._snapshot() == self._saved and self.state != SaveState.SAVING:
                # Edited back to the persisted value.
                self._cancel_timer()
                self.state = SaveState.CLEAN
                self.error = None
                return

            if self.state != SaveState.SAVING:
                self.state = SaveState.DIRTY
            self._schedule()

    def save_now(self) -> bool:
        """Manual save: skip the debounce and save immediately."""
        with self._lock:
            self._cancel_timer()
        return self._flush()

    def close(self):
        """Drop any pending automatic save."""
        with self._lock:
            self._cancel_timer()

    def _snapshot(self) -> dict[str, Any]:
        return {"title": self.title, "content": self.content, "folder_id": self.folder_id}

    def _schedule(self):
        self._cancel_timer()
        timer = self._timer_factory(self.delay, self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self):
        with self._lock:
            self._timer = None
        self._flush()

    def _flush(self) -> bool:
        with self._lock:
            if self.state == SaveState.SAVING:
                # A save is in flight; try again after another quiet period.
                self._schedule()
                return False
            snapshot = self._snapshot()
            self.state = SaveState.SAVING
            self.error = None

        try:
            self._save(snapshot)
        except Exception as e:
            logger.warning("Auto-save failed: %s", e)
            with self._lock:
                self.error = e
                self.state = SaveState.ERROR
            return False

        with self._lock:
            self._saved = snapshot
            self.last_saved = datetime.now()
            self.state = SaveState.CLEAN if self._snapshot() == snapshot else SaveState.DIRTY
        return True
