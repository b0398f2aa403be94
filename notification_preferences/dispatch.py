"""
Dispatch-time channel filtering.

NotificationChannelFilter is the hook an outbound notification pipeline calls
once per (notifiable, notification, channel) before sending. Notification
types that filter their own channels opt out of the automatic check; that
capability is recorded when the type is registered, not looked up per send.
"""

import logging
from threading import RLock
from typing import Any, Iterable, List, Set, Type

from notification_preferences.service import NotificationPreferenceService

logger = logging.getLogger(__name__)


def notification_type_of(notification_cls: type) -> str:
    """Catalog key of a notification class: explicit notification_type, else module.QualName."""
    explicit = getattr(notification_cls, "notification_type", None)
    if explicit:
        return str(explicit)
    return f"{notification_cls.__module__}.{notification_cls.__qualname__}"


class PreferenceAwareNotification:
    """
    Mixin for notifications that apply preferences themselves.

    Subclasses call allowed_channels() when choosing channels; the dispatch
    filter lets them through untouched once registered.
    """

    handles_own_preferences = True
    notification_type: str = ""

    @classmethod
    def allowed_channels(
        cls,
        service: NotificationPreferenceService,
        user_id: Any,
        channels: Iterable[str],
    ) -> List[str]:
        return service.filter_channels(user_id, notification_type_of(cls), channels)


class NotificationChannelFilter:
    """Decides whether a notification may go out through a channel."""

    def __init__(self, service: NotificationPreferenceService) -> None:
        self.service = service
        self._self_filtering: Set[str] = set()
        self._lock = RLock()

    def register(self, notification_cls: Type[Any]) -> str:
        """Record a notification class; classes declaring handles_own_preferences skip automatic checks."""
        notification_type = notification_type_of(notification_cls)
        if getattr(notification_cls, "handles_own_preferences", False):
            self.register_self_filtering(notification_type)
        return notification_type

    def register_self_filtering(self, notification_type: str) -> None:
        with self._lock:
            self._self_filtering.add(notification_type)
        logger.debug(
            "notification_preferences.self_filtering_registered",
            extra={"notification_type": notification_type},
        )

    def handles_own_preferences(self, notification_type: str) -> bool:
        with self._lock:
            return notification_type in self._self_filtering

    def should_send(self, user_id: Any, notification_type: str, channel: str) -> bool:
        if self.handles_own_preferences(notification_type):
            return True

        notification = self.service.catalog.notifications.get(notification_type)
        if notification is None:
            # not managed by preferences
            return True

        if notification.is_forced(channel):
            return True

        return self.service.is_channel_enabled(user_id, notification_type, channel)
