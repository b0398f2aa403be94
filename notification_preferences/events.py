"""
Change notifications for preference writes.

Events are published only after the write that produced them has committed.
"""

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Callable, List

from notification_preferences.models import PreferenceRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreferenceChanged:
    record: PreferenceRecord
    user_id: str
    was_created: bool


PreferenceListener = Callable[[PreferenceChanged], None]


class PreferenceEventDispatcher:
    """Fan-out of PreferenceChanged events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: List[PreferenceListener] = []
        self._lock = RLock()

    def subscribe(self, listener: PreferenceListener) -> PreferenceListener:
        with self._lock:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: PreferenceListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: PreferenceChanged) -> None:
        """
        Deliver the event to every listener.

        The write is already committed, so a failing listener is logged and
        does not stop delivery to the others.
        """
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "notification_preferences.listener_failed",
                    extra={
                        "user_id": event.user_id,
                        "notification_type": event.record.notification_type,
                        "channel": event.record.channel,
                    },
                )
