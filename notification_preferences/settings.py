"""
Environment-driven settings and service wiring.

Environment variables:
- DATABASE_URL: preference store database (default sqlite file in cwd)
- REDIS_URL: cache backend; unset means in-process cache
- NOTIFICATION_PREFERENCES_CATALOG: path to the catalog (.json, .yml, .yaml)
- NOTIFICATION_PREFERENCES_CACHE_TTL: cache TTL in seconds (default 86400)
- NOTIFICATION_PREFERENCES_REJECT_FORCED_WRITES: reject explicit writes to
  forced channels (default true)
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from notification_preferences.cache import DEFAULT_TTL_SECONDS, PreferenceCache
from notification_preferences.db import session_factory_from_url
from notification_preferences.events import PreferenceEventDispatcher
from notification_preferences.loader import CatalogLoader, CatalogProvider, StaticCatalogProvider
from notification_preferences.service import NotificationPreferenceService
from notification_preferences.store import PreferenceStore

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///notification_preferences.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class PreferenceSettings:
    database_url: str = DEFAULT_DATABASE_URL
    redis_url: Optional[str] = None
    catalog_path: Optional[str] = None
    cache_ttl_seconds: int = DEFAULT_TTL_SECONDS
    reject_forced_writes: bool = True

    @classmethod
    def from_env(cls) -> "PreferenceSettings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            redis_url=os.getenv("REDIS_URL") or None,
            catalog_path=os.getenv("NOTIFICATION_PREFERENCES_CATALOG") or None,
            cache_ttl_seconds=int(os.getenv("NOTIFICATION_PREFERENCES_CACHE_TTL", str(DEFAULT_TTL_SECONDS))),
            reject_forced_writes=_env_bool("NOTIFICATION_PREFERENCES_REJECT_FORCED_WRITES", True),
        )


def build_service(
    settings: Optional[PreferenceSettings] = None,
    *,
    catalog: Optional[CatalogProvider] = None,
    create_tables: bool = False,
) -> NotificationPreferenceService:
    """Wire store, cache, catalog and events from settings."""
    settings = settings or PreferenceSettings.from_env()

    if catalog is None:
        if settings.catalog_path:
            catalog = CatalogLoader(settings.catalog_path)
        else:
            logger.warning("notification_preferences.no_catalog_configured")
            catalog = StaticCatalogProvider()

    return NotificationPreferenceService(
        catalog=catalog,
        store=PreferenceStore(session_factory_from_url(settings.database_url, create_tables=create_tables)),
        # empty string keeps the cache from falling back to REDIS_URL again
        cache=PreferenceCache(settings.redis_url or "", ttl_seconds=settings.cache_ttl_seconds),
        events=PreferenceEventDispatcher(),
        reject_forced_writes=settings.reject_forced_writes,
    )
