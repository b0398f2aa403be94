from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

UNGROUPED = "ungrouped"
DEFAULT_ORDER = 999


class DefaultPreference(str, enum.Enum):
    """Policy applied when a user has no explicit record for a channel."""

    OPT_IN = "opt_in"
    OPT_OUT = "opt_out"

    @property
    def is_enabled(self) -> bool:
        return self is DefaultPreference.OPT_IN

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["DefaultPreference"]:
        """Map a raw config value to a policy; unknown strings fall back to opt-in."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.OPT_IN


@dataclass(frozen=True)
class ChannelDefinition:
    """A delivery channel declared in the catalog."""

    key: str
    label: str
    enabled: bool = True


@dataclass(frozen=True)
class GroupDefinition:
    """A notification group declared in the catalog."""

    key: str
    label: Optional[str] = None
    description: Optional[str] = None
    order: int = DEFAULT_ORDER
    default_preference: Optional[DefaultPreference] = None


@dataclass(frozen=True)
class NotificationDefinition:
    """A notification type declared in the catalog."""

    key: str
    label: Optional[str] = None
    description: Optional[str] = None
    group: Optional[str] = None
    order: int = DEFAULT_ORDER
    force_channels: FrozenSet[str] = frozenset()
    default_channels: Optional[Tuple[str, ...]] = None
    default_preference: Optional[DefaultPreference] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "force_channels", frozenset(self.force_channels))
        if self.default_channels is not None:
            object.__setattr__(self, "default_channels", tuple(self.default_channels))

    @property
    def group_key(self) -> str:
        return self.group or UNGROUPED

    def is_forced(self, channel: str) -> bool:
        return channel in self.force_channels


@dataclass(frozen=True)
class PreferencesCatalog:
    """Parsed, read-only catalog of channels, notification types and groups."""

    channels: Mapping[str, ChannelDefinition] = field(default_factory=dict)
    notifications: Mapping[str, NotificationDefinition] = field(default_factory=dict)
    groups: Mapping[str, GroupDefinition] = field(default_factory=dict)
    default_preference: DefaultPreference = DefaultPreference.OPT_IN

    def __post_init__(self) -> None:
        object.__setattr__(self, "channels", MappingProxyType(dict(self.channels)))
        object.__setattr__(self, "notifications", MappingProxyType(dict(self.notifications)))
        object.__setattr__(self, "groups", MappingProxyType(dict(self.groups)))

    def enabled_channels(self) -> List[ChannelDefinition]:
        return [channel for channel in self.channels.values() if channel.enabled]

    def notifications_in_group(self, group_key: str) -> List[NotificationDefinition]:
        return [n for n in self.notifications.values() if n.group_key == group_key]

    def forced_channels_for(self, notification_type: str) -> FrozenSet[str]:
        notification = self.notifications.get(notification_type)
        if notification is None:
            return frozenset()
        return notification.force_channels


@dataclass(frozen=True)
class PreferenceRecord:
    """An explicit (user, notification type, channel) preference."""

    user_id: str
    notification_type: str
    channel: str
    enabled: bool
    id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.notification_type, self.channel)

    def to_dict(self) -> Dict[str, object]:
        return {
            "notification_type": self.notification_type,
            "channel": self.channel,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class ChannelPreferenceView:
    channel: str
    enabled: bool
    forced: bool

    def to_dict(self) -> Dict[str, bool]:
        return {"enabled": self.enabled, "forced": self.forced}


@dataclass(frozen=True)
class NotificationPreferenceView:
    type: str
    label: str
    description: Optional[str]
    channels: Mapping[str, ChannelPreferenceView]

    def __post_init__(self) -> None:
        object.__setattr__(self, "channels", MappingProxyType(dict(self.channels)))

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "label": self.label,
            "description": self.description,
            "channels": {key: view.to_dict() for key, view in self.channels.items()},
        }


@dataclass(frozen=True)
class NotificationGroupView:
    group: str
    label: str
    description: Optional[str]
    notifications: Tuple[NotificationPreferenceView, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "notifications", tuple(self.notifications))

    def to_dict(self) -> dict:
        return {
            "group": self.group,
            "label": self.label,
            "description": self.description,
            "notifications": [n.to_dict() for n in self.notifications],
        }


def resolve_default(
    *,
    catalog: PreferencesCatalog,
    notification_type: str,
    channel: str,
) -> bool:
    """Resolve the default in deterministic order: channels -> notification -> group -> global."""
    notification = catalog.notifications.get(notification_type)

    if notification is not None:
        if notification.default_channels is not None:
            return channel in notification.default_channels

        if notification.default_preference is not None:
            return notification.default_preference.is_enabled

        group = catalog.groups.get(notification.group) if notification.group else None
        if group is not None and group.default_preference is not None:
            return group.default_preference.is_enabled

    return catalog.default_preference.is_enabled
