"""Transient user-facing notifications."""

from collections import deque
from typing import Callable

from genius_writer.core.errors import Notification, notification_for
from genius_writer.core.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Notification], None]


class NotificationCenter:
    """Collects notifications for the UI and fans them out to listeners."""

    def __init__(self, max_pending: int = 50):
        self._pending: deque[Notification] = deque(maxlen=max_pending)
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, notification: Notification) -> None:
        self._pending.append(notification)
        for listener in list(self._listeners):
            listener(notification)

    def info(self, message: str) -> None:
        self.notify(Notification(level="info", message=message))

    def success(self, message: str) -> None:
        self.notify(Notification(level="success", message=message))

    def report(self, exc: BaseException) -> Notification | None:
        """
        Surface an exception to the user.

        Cancellation is filtered out and produces nothing.
        """
        notification = notification_for(exc)
        if notification is None:
            logger.debug(f"Suppressed notification for cancellation: {exc!r}")
            return None
        self.notify(notification)
        return notification

    def drain(self) -> list[Notification]:
        items = list(self._pending)
        self._pending.clear()
        return items

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)
