"""
Preference table for presentation layers.

Groups -> notifications -> channels -> {enabled, forced}, ordered by the
catalog's declared order. Built from a single batch of the user's records.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from notification_preferences.models import (
    DEFAULT_ORDER,
    ChannelDefinition,
    ChannelPreferenceView,
    NotificationDefinition,
    NotificationGroupView,
    NotificationPreferenceView,
    PreferenceRecord,
    PreferencesCatalog,
    resolve_default,
)


def build_preferences_table(
    catalog: PreferencesCatalog,
    records: Iterable[PreferenceRecord],
) -> List[NotificationGroupView]:
    explicit: Dict[Tuple[str, str], bool] = {record.key: record.enabled for record in records}
    channels = catalog.enabled_channels()

    table: List[NotificationGroupView] = []
    for group_key, notifications in _group_and_sort(catalog):
        group = catalog.groups.get(group_key)
        table.append(
            NotificationGroupView(
                group=group_key,
                label=(group.label if group and group.label else _default_group_label(group_key)),
                description=group.description if group else None,
                notifications=tuple(
                    _notification_view(catalog, notification, channels, explicit)
                    for notification in notifications
                ),
            )
        )
    return table


def _group_and_sort(catalog: PreferencesCatalog) -> List[Tuple[str, List[NotificationDefinition]]]:
    grouped: Dict[str, List[NotificationDefinition]] = {}
    for notification in catalog.notifications.values():
        grouped.setdefault(notification.group_key, []).append(notification)

    def group_order(group_key: str) -> Tuple[int, str]:
        group = catalog.groups.get(group_key)
        return (group.order if group else DEFAULT_ORDER, group_key)

    # sorted() is stable, so equal orders keep catalog order within a group
    return [
        (group_key, sorted(grouped[group_key], key=lambda n: n.order))
        for group_key in sorted(grouped, key=group_order)
    ]


def _notification_view(
    catalog: PreferencesCatalog,
    notification: NotificationDefinition,
    channels: List[ChannelDefinition],
    explicit: Dict[Tuple[str, str], bool],
) -> NotificationPreferenceView:
    views: Dict[str, ChannelPreferenceView] = {}
    for channel in channels:
        forced = notification.is_forced(channel.key)
        views[channel.key] = ChannelPreferenceView(
            channel=channel.key,
            enabled=forced or _resolve(catalog, notification.key, channel.key, explicit),
            forced=forced,
        )

    return NotificationPreferenceView(
        type=notification.key,
        label=notification.label or _default_notification_label(notification.key),
        description=notification.description,
        channels=views,
    )


def _resolve(
    catalog: PreferencesCatalog,
    notification_type: str,
    channel: str,
    explicit: Dict[Tuple[str, str], bool],
) -> bool:
    stored: Optional[bool] = explicit.get((notification_type, channel))
    if stored is not None:
        return stored
    return resolve_default(catalog=catalog, notification_type=notification_type, channel=channel)


def _default_group_label(group_key: str) -> str:
    return group_key[:1].upper() + group_key[1:]


def _default_notification_label(notification_type: str) -> str:
    return notification_type.rpartition(".")[2]
