from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import yaml

from notification_preferences.errors import CatalogError
from notification_preferences.models import (
    DEFAULT_ORDER,
    ChannelDefinition,
    DefaultPreference,
    GroupDefinition,
    NotificationDefinition,
    PreferencesCatalog,
)

logger = logging.getLogger(__name__)

CatalogSource = Union[PreferencesCatalog, Mapping[str, Any]]


class CatalogProvider(Protocol):
    def get_catalog(self) -> PreferencesCatalog:
        ...


class StaticCatalogProvider:
    """Holds an in-memory catalog; swap() replaces it for subsequent reads."""

    def __init__(self, source: Optional[CatalogSource] = None) -> None:
        self._lock = RLock()
        self._catalog = _coerce(source or {})

    def get_catalog(self) -> PreferencesCatalog:
        with self._lock:
            return self._catalog

    def swap(self, source: CatalogSource) -> PreferencesCatalog:
        catalog = _coerce(source)
        with self._lock:
            self._catalog = catalog
        return catalog


class CatalogLoader:
    """Loads the catalog from a JSON or YAML document with reload support."""

    def __init__(self, config_path: Union[str, Path]) -> None:
        self._config_path = Path(config_path)
        self._lock = RLock()
        self._catalog: PreferencesCatalog
        self.reload()

    def reload(self) -> None:
        """Re-read the document; a parse failure keeps the previous catalog."""
        raw = self._read_config_file()
        parsed = parse_catalog(raw)
        with self._lock:
            self._catalog = parsed
        logger.info(
            "notification_preferences.catalog_loaded",
            extra={
                "path": str(self._config_path),
                "channels": len(parsed.channels),
                "notifications": len(parsed.notifications),
                "groups": len(parsed.groups),
            },
        )

    def get_catalog(self) -> PreferencesCatalog:
        with self._lock:
            return self._catalog

    def _read_config_file(self) -> dict:
        with self._config_path.open("r", encoding="utf-8") as handle:
            if self._config_path.suffix.lower() in (".yml", ".yaml"):
                raw = yaml.safe_load(handle)
            else:
                raw = json.load(handle)
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise CatalogError(f"{self._config_path} must contain a top-level object")
        return raw


def _coerce(source: CatalogSource) -> PreferencesCatalog:
    if isinstance(source, PreferencesCatalog):
        return source
    return parse_catalog(source)


def parse_catalog(raw: Mapping[str, Any]) -> PreferencesCatalog:
    """Parse a raw catalog document into typed definitions."""
    if not isinstance(raw, Mapping):
        raise CatalogError("catalog must be an object")

    channels = {
        key: _parse_channel(key, data)
        for key, data in _section(raw, "channels").items()
    }
    groups = {
        key: _parse_group(key, data)
        for key, data in _section(raw, "groups").items()
    }
    notifications = {
        key: _parse_notification(key, data)
        for key, data in _section(raw, "notifications").items()
    }

    return PreferencesCatalog(
        channels=channels,
        notifications=notifications,
        groups=groups,
        default_preference=_parse_policy("default_preference", raw.get("default_preference"))
        or DefaultPreference.OPT_IN,
    )


def _section(raw: Mapping[str, Any], name: str) -> Dict[str, dict]:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise CatalogError(f"catalog field '{name}' must be an object", key=name)

    parsed: Dict[str, dict] = {}
    for key, data in section.items():
        if not isinstance(key, str) or not key.strip():
            raise CatalogError(f"each key in '{name}' must be a non-empty string", key=name)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise CatalogError(f"{name} entry '{key}' must be an object", key=key)
        parsed[key] = dict(data)
    return parsed


def _parse_channel(key: str, data: dict) -> ChannelDefinition:
    return ChannelDefinition(
        key=key,
        label=str(data.get("label") or key),
        enabled=bool(data.get("enabled", True)),
    )


def _parse_group(key: str, data: dict) -> GroupDefinition:
    return GroupDefinition(
        key=key,
        label=data.get("label"),
        description=data.get("description"),
        order=_parse_order(key, data),
        default_preference=_parse_policy(key, data.get("default_preference")),
    )


def _parse_notification(key: str, data: dict) -> NotificationDefinition:
    default_channels = data.get("default_channels")
    return NotificationDefinition(
        key=key,
        label=data.get("label"),
        description=data.get("description"),
        group=data.get("group"),
        order=_parse_order(key, data),
        force_channels=frozenset(_channel_list(key, "force_channels", data.get("force_channels") or [])),
        default_channels=(
            tuple(_channel_list(key, "default_channels", default_channels))
            if default_channels is not None
            else None
        ),
        default_preference=_parse_policy(key, data.get("default_preference")),
    )


def _parse_order(key: str, data: dict) -> int:
    order = data.get("order")
    if order is None:
        return DEFAULT_ORDER
    try:
        return int(order)
    except (TypeError, ValueError):
        raise CatalogError(f"'{key}' order must be an integer, got {order!r}", key=key) from None


def _channel_list(key: str, field_name: str, value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        raise CatalogError(f"'{key}' {field_name} must be a list of channel keys", key=key)
    channels: List[str] = []
    for channel in value:
        if not isinstance(channel, str) or not channel.strip():
            raise CatalogError(f"'{key}' has invalid channel key in {field_name}: {channel!r}", key=key)
        channels.append(channel)
    return channels


def _parse_policy(key: str, value: Any) -> Optional[DefaultPreference]:
    if value is None:
        return None
    policy = DefaultPreference.parse(str(value))
    if policy is not None and policy.value != value:
        logger.warning(
            "notification_preferences.unknown_default_preference",
            extra={"key": key, "value": value, "resolved": policy.value},
        )
    return policy
