"""
Per-user notification delivery preferences.

This package provides:
- NotificationPreferenceService: cache-aside resolution and atomic mutation
- PreferencesCatalog / CatalogLoader / StaticCatalogProvider: the declarative
  catalog of channels, notification types and groups
- PreferenceStore: SQLAlchemy persistence of explicit preference records
- PreferenceCache: Redis cache with in-process fallback
- PreferenceEventDispatcher / PreferenceChanged: post-commit change events
- NotificationChannelFilter: dispatch-time channel gate

Resolution order when no explicit record exists:
default_channels -> notification default_preference -> group
default_preference -> global default_preference (opt-in unless configured).
"""

from notification_preferences.cache import PreferenceCache
from notification_preferences.dispatch import NotificationChannelFilter, PreferenceAwareNotification
from notification_preferences.errors import (
    CatalogError,
    ForcedChannelError,
    InvalidChannelError,
    InvalidNotificationTypeError,
    PreferenceError,
)
from notification_preferences.events import PreferenceChanged, PreferenceEventDispatcher
from notification_preferences.loader import CatalogLoader, StaticCatalogProvider, parse_catalog
from notification_preferences.models import (
    DefaultPreference,
    NotificationGroupView,
    PreferenceRecord,
    PreferencesCatalog,
)
from notification_preferences.service import NotificationPreferenceService, UserPreferences
from notification_preferences.settings import PreferenceSettings, build_service
from notification_preferences.store import PreferenceStore

__all__ = [
    # Service
    "NotificationPreferenceService",
    "UserPreferences",
    "NotificationChannelFilter",
    "PreferenceAwareNotification",
    # Catalog
    "PreferencesCatalog",
    "CatalogLoader",
    "StaticCatalogProvider",
    "parse_catalog",
    "DefaultPreference",
    # Collaborators
    "PreferenceStore",
    "PreferenceCache",
    "PreferenceEventDispatcher",
    "PreferenceChanged",
    # Data
    "PreferenceRecord",
    "NotificationGroupView",
    # Settings
    "PreferenceSettings",
    "build_service",
    # Errors
    "PreferenceError",
    "InvalidNotificationTypeError",
    "InvalidChannelError",
    "ForcedChannelError",
    "CatalogError",
]
