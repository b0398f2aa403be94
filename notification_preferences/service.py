"""
Notification preference resolution and mutation.

Read path: forced channel -> cache -> explicit record -> default cascade.
Write path: validate against the catalog, upsert, then (after commit)
invalidate the cache key and publish PreferenceChanged.
"""

import logging
from typing import Any, Iterable, List, Optional, Tuple

from notification_preferences.cache import PreferenceCache, preference_key
from notification_preferences.errors import (
    ForcedChannelError,
    InvalidChannelError,
    InvalidNotificationTypeError,
)
from notification_preferences.events import PreferenceChanged, PreferenceEventDispatcher
from notification_preferences.loader import CatalogProvider
from notification_preferences.models import (
    NotificationDefinition,
    NotificationGroupView,
    PreferenceRecord,
    PreferencesCatalog,
    resolve_default,
)
from notification_preferences.store import PreferenceStore
from notification_preferences.table import build_preferences_table

logger = logging.getLogger(__name__)


def _require_user_id(user_id: Any) -> str:
    normalized = str(user_id).strip() if user_id is not None else ""
    if not normalized:
        raise ValueError("user_id is required")
    return normalized


class NotificationPreferenceService:
    """Resolves and mutates per-user channel preferences for catalog notification types."""

    def __init__(
        self,
        *,
        catalog: CatalogProvider,
        store: PreferenceStore,
        cache: Optional[PreferenceCache] = None,
        events: Optional[PreferenceEventDispatcher] = None,
        reject_forced_writes: bool = True,
    ) -> None:
        self._catalog_provider = catalog
        self.store = store
        self.cache = cache or PreferenceCache()
        self.events = events or PreferenceEventDispatcher()
        self.reject_forced_writes = reject_forced_writes

    @property
    def catalog(self) -> PreferencesCatalog:
        """Current catalog; re-read on every call so provider swaps apply immediately."""
        return self._catalog_provider.get_catalog()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def is_channel_enabled(self, user_id: Any, notification_type: str, channel: str) -> bool:
        """
        Effective preference for one (user, notification type, channel).

        Never fails on unknown notification types or channels; they resolve
        through the default cascade.
        """
        user_id = _require_user_id(user_id)
        catalog = self.catalog

        if channel in catalog.forced_channels_for(notification_type):
            return True

        key = preference_key(user_id, notification_type, channel)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("notification_preferences.cache_hit", extra={"key": key})
            return cached

        record = self.store.find_one(user_id, notification_type, channel)
        if record is not None:
            enabled = record.enabled
        else:
            enabled = resolve_default(catalog=catalog, notification_type=notification_type, channel=channel)

        self.cache.set(key, enabled)
        logger.debug(
            "notification_preferences.cache_miss",
            extra={"key": key, "explicit": record is not None, "enabled": enabled},
        )
        return enabled

    def filter_channels(self, user_id: Any, notification_type: str, channels: Iterable[str]) -> List[str]:
        """Subset of channels to dispatch through, in input order; forced channels always pass."""
        user_id = _require_user_id(user_id)
        forced = self.catalog.forced_channels_for(notification_type)
        return [
            channel
            for channel in channels
            if channel in forced or self.is_channel_enabled(user_id, notification_type, channel)
        ]

    def get_preferences_for_user(self, user_id: Any) -> List[dict]:
        user_id = _require_user_id(user_id)
        return [record.to_dict() for record in self.store.find_all(user_id)]

    def get_preferences_table(self, user_id: Any) -> List[NotificationGroupView]:
        """Grouped, ordered preference view; one batch fetch of the user's records."""
        user_id = _require_user_id(user_id)
        records = self.store.find_all(user_id)
        return build_preferences_table(self.catalog, records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_preference(
        self,
        user_id: Any,
        notification_type: str,
        channel: str,
        enabled: bool,
    ) -> PreferenceRecord:
        """
        Persist an explicit preference.

        Raises:
            InvalidNotificationTypeError: type not in the catalog
            InvalidChannelError: channel not in the catalog, or disabled
            ForcedChannelError: channel is forced for the type and
                reject_forced_writes is set
        """
        user_id = _require_user_id(user_id)
        catalog = self.catalog
        notification = self._validate_notification_type(catalog, notification_type)
        self._validate_channel(catalog, channel)

        if self.reject_forced_writes and notification.is_forced(channel):
            raise ForcedChannelError(notification_type, channel)

        return self._write(user_id, notification_type, channel, enabled)

    def set_group_preference(self, user_id: Any, group_key: str, channel: str, enabled: bool) -> int:
        """Set channel for every notification in the group, skipping forced ones. Atomic."""
        user_id = _require_user_id(user_id)
        catalog = self.catalog
        self._validate_channel(catalog, channel)
        targets = [
            notification.key
            for notification in catalog.notifications_in_group(group_key)
            if not notification.is_forced(channel)
        ]
        return self._run_bulk(
            "group",
            user_id,
            [(notification_type, channel) for notification_type in targets],
            enabled,
            group=group_key,
            channel=channel,
        )

    def set_channel_preference(self, user_id: Any, channel: str, enabled: bool) -> int:
        """Set channel for every registered notification type, skipping forced ones. Atomic."""
        user_id = _require_user_id(user_id)
        catalog = self.catalog
        self._validate_channel(catalog, channel)
        targets = [
            notification.key
            for notification in catalog.notifications.values()
            if not notification.is_forced(channel)
        ]
        return self._run_bulk(
            "channel",
            user_id,
            [(notification_type, channel) for notification_type in targets],
            enabled,
            channel=channel,
        )

    def set_notification_preference(self, user_id: Any, notification_type: str, enabled: bool) -> int:
        """Set every enabled channel for one notification type, skipping forced ones. Atomic."""
        user_id = _require_user_id(user_id)
        catalog = self.catalog
        notification = self._validate_notification_type(catalog, notification_type)
        targets = [
            channel.key
            for channel in catalog.enabled_channels()
            if not notification.is_forced(channel.key)
        ]
        return self._run_bulk(
            "notification",
            user_id,
            [(notification_type, channel) for channel in targets],
            enabled,
            notification_type=notification_type,
        )

    def clear_user_cache(self, user_id: Any) -> None:
        """Drop every cached (notification type, channel) entry the catalog knows for the user."""
        user_id = _require_user_id(user_id)
        catalog = self.catalog
        keys = [
            preference_key(user_id, notification_type, channel)
            for notification_type in catalog.notifications
            for channel in catalog.channels
        ]
        cleared = self.cache.delete_many(keys)
        logger.info(
            "notification_preferences.user_cache_cleared",
            extra={"user_id": user_id, "keys": cleared},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(self, user_id: str, notification_type: str, channel: str, enabled: bool) -> PreferenceRecord:
        record, was_created = self.store.upsert(user_id, notification_type, channel, bool(enabled))
        self._defer(PreferenceChanged(record=record, user_id=user_id, was_created=was_created))

        logger.info(
            "notification_preferences.preference_set",
            extra={
                "user_id": user_id,
                "notification_type": notification_type,
                "channel": channel,
                "enabled": bool(enabled),
                "was_created": was_created,
            },
        )
        return record

    def _defer(self, change: PreferenceChanged) -> None:
        """Queue the change for release once the enclosing transaction commits."""
        info = self.store.transaction_info
        if info is None:
            self._release([change])
            return

        # one buffer per service per transaction, released in a single batch
        pending: Optional[List[PreferenceChanged]] = info.get(self)
        if pending is None:
            pending = info[self] = []
            self.store.after_commit(lambda: self._release(pending))
        pending.append(change)

    def _run_bulk(
        self,
        scope: str,
        user_id: str,
        targets: List[Tuple[str, str]],
        enabled: bool,
        **context: Any,
    ) -> int:
        """
        Write every (notification type, channel) target in one transaction.

        Cache invalidation and events wait for the commit; on failure nothing
        is invalidated or published.
        """
        try:
            count = self.store.run_atomically(lambda: self._apply(user_id, targets, enabled))
        except Exception as exc:
            logger.error(
                "notification_preferences.bulk_update_failed",
                extra={"scope": scope, "user_id": user_id, "error": str(exc), **context},
            )
            raise

        logger.info(
            "notification_preferences.bulk_update_applied",
            extra={"scope": scope, "user_id": user_id, "count": count, "enabled": bool(enabled), **context},
        )
        return count

    def _apply(self, user_id: str, targets: List[Tuple[str, str]], enabled: bool) -> int:
        count = 0
        for notification_type, channel in targets:
            self._write(user_id, notification_type, channel, enabled)
            count += 1
        return count

    def _release(self, changes: List[PreferenceChanged]) -> None:
        if not changes:
            return
        self.cache.delete_many(
            preference_key(change.user_id, change.record.notification_type, change.record.channel)
            for change in changes
        )
        for change in changes:
            self.events.publish(change)

    @staticmethod
    def _validate_notification_type(catalog: PreferencesCatalog, notification_type: str) -> NotificationDefinition:
        notification = catalog.notifications.get(notification_type)
        if notification is None:
            raise InvalidNotificationTypeError.not_registered(notification_type)
        return notification

    @staticmethod
    def _validate_channel(catalog: PreferencesCatalog, channel: str) -> None:
        definition = catalog.channels.get(channel)
        if definition is None:
            raise InvalidChannelError.not_registered(channel)
        if not definition.enabled:
            raise InvalidChannelError.disabled(channel)


class UserPreferences:
    """Per-user convenience view over NotificationPreferenceService."""

    def __init__(self, service: NotificationPreferenceService, user_id: Any) -> None:
        self.service = service
        self.user_id = _require_user_id(user_id)

    def get(self, notification_type: str, channel: str) -> bool:
        return self.service.is_channel_enabled(self.user_id, notification_type, channel)

    def set(self, notification_type: str, channel: str, enabled: bool) -> PreferenceRecord:
        return self.service.set_preference(self.user_id, notification_type, channel, enabled)

    def all(self) -> List[dict]:
        return self.service.get_preferences_for_user(self.user_id)

    def table(self) -> List[NotificationGroupView]:
        return self.service.get_preferences_table(self.user_id)

    def set_group_channel(self, group_key: str, channel: str, enabled: bool) -> int:
        return self.service.set_group_preference(self.user_id, group_key, channel, enabled)

    def set_channel_for_all(self, channel: str, enabled: bool) -> int:
        return self.service.set_channel_preference(self.user_id, channel, enabled)

    def set_all_channels_for(self, notification_type: str, enabled: bool) -> int:
        return self.service.set_notification_preference(self.user_id, notification_type, enabled)

    def allowed_channels(self, notification_type: str, channels: Iterable[str]) -> List[str]:
        return self.service.filter_channels(self.user_id, notification_type, channels)
