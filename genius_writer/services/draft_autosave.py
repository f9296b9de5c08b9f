"""Debounced draft autosave.

Each change schedules a snapshot; the snapshot is written once no further
change arrived for the debounce window. Only the latest snapshot is kept.
"""

import asyncio

from genius_writer.core.errors import StorageError
from genius_writer.core.logging import get_logger
from genius_writer.core.schemas_documents import Draft
from genius_writer.db.drafts import DraftStore
from genius_writer.services.notifications import NotificationCenter

logger = get_logger(__name__)


class DraftAutosaver:
    """Debounces draft writes for one tool view."""

    def __init__(
        self,
        store: DraftStore,
        delay_seconds: float = 1.0,
        notifications: NotificationCenter | None = None,
    ):
        self.store = store
        self.delay_seconds = delay_seconds
        self.notifications = notifications
        self._pending: Draft | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> Draft | None:
        return self._pending

    def schedule(self, draft: Draft) -> None:
        """Replace the pending snapshot and restart the quiet period."""
        self._pending = draft
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_seconds, self._fire)

    def flush(self) -> bool:
        """Write the pending snapshot now. Returns True if something was written."""
        self._cancel_timer()
        draft, self._pending = self._pending, None
        if draft is None:
            return False
        return self._write(draft)

    def cancel(self) -> None:
        """Drop the pending snapshot without writing it."""
        self._cancel_timer()
        self._pending = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        draft, self._pending = self._pending, None
        if draft is not None:
            self._write(draft)

    def _write(self, draft: Draft) -> bool:
        if draft.is_empty:
            return False
        try:
            self.store.save(draft)
        except StorageError as e:
            # Editing continues; only the save is lost
            logger.error(f"Draft autosave failed for {draft.tool_id.value}: {e}")
            if self.notifications is not None:
                self.notifications.report(e)
            return False
        return True
