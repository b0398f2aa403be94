from __future__ import annotations

import logging
import os
import time
from threading import RLock
from typing import Callable, Dict, Iterable, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "notification_prefs:v1"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_TRUE = "1"
_FALSE = "0"


def preference_key(user_id: str, notification_type: str, channel: str) -> str:
    return f"{CACHE_KEY_PREFIX}:{user_id}:{notification_type}:{channel}"


class PreferenceCache:
    """Redis-backed cache of resolved preferences with in-memory fallback."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        *,
        client: Optional[redis.Redis] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._redis = client
        self._mem: Dict[str, Tuple[float, bool]] = {}
        self._lock = RLock()

        if self._redis is None:
            redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL")
            if redis_url:
                try:
                    self._redis = redis.from_url(redis_url, decode_responses=True)
                    self._redis.ping()
                except (redis.RedisError, ValueError) as exc:
                    logger.warning(
                        "notification_preferences.cache_redis_unavailable",
                        extra={"error": str(exc)},
                    )
                    self._redis = None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    def get(self, key: str) -> Optional[bool]:
        if self._redis is not None:
            raw = self._redis.get(key)
            if raw is None:
                return None
            if isinstance(raw, bytes):
                # clients built without decode_responses
                raw = raw.decode()
            return raw == _TRUE

        with self._lock:
            entry = self._mem.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                self._mem.pop(key, None)
                return None
            return value

    def set(self, key: str, value: bool, *, ttl_seconds: Optional[int] = None) -> None:
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            self.delete(key)
            return
        if self._redis is not None:
            self._redis.setex(key, ttl, _TRUE if value else _FALSE)
            return

        with self._lock:
            self._mem[key] = (self._clock() + ttl, bool(value))

    def delete(self, key: str) -> None:
        if self._redis is not None:
            self._redis.delete(key)
        with self._lock:
            self._mem.pop(key, None)

    def delete_many(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        if self._redis is not None:
            self._redis.delete(*keys)
        with self._lock:
            for key in keys:
                self._mem.pop(key, None)
        return len(keys)
