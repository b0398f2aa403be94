from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from notification_preferences.service import NotificationPreferenceService
from notification_preferences.settings import build_service

logger = logging.getLogger(__name__)


@dataclass
class CacheResetStats:
    started_at: str
    completed_at: Optional[str] = None
    users_cleared: int = 0
    errors: int = 0


def run_preference_cache_reset_cycle(
    user_ids: Iterable[str],
    service: Optional[NotificationPreferenceService] = None,
) -> CacheResetStats:
    """Cache reset after bulk preference imports.

    Responsibilities:
    - drop cached preferences for every imported user
    - let the next read repopulate from the store
    """

    svc = service or build_service()
    stats = CacheResetStats(started_at=datetime.now(timezone.utc).isoformat())

    for user_id in user_ids:
        try:
            svc.clear_user_cache(user_id)
            stats.users_cleared += 1
        except Exception as exc:
            stats.errors += 1
            logger.error(
                "notification_preferences.cache_reset_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    logger.info(
        "notification_preferences.cache_reset_completed",
        extra={"users_cleared": stats.users_cleared, "errors": stats.errors},
    )
    return stats
