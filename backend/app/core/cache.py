import json
import logging
from typing import Any

import redis

from app.core.settings import Settings

logger = logging.getLogger("app.cache")

DEFAULT_TTL_SECONDS = 3600
DELETE_BATCH_SIZE = 500


def CreateRedisClient(settings: Settings) -> redis.Redis:
    if settings.RedisUrl:
        return redis.Redis.from_url(settings.RedisUrl, decode_responses=True)
    return redis.Redis(
        host=settings.RedisHost,
        port=settings.RedisPort,
        db=settings.RedisDb,
        password=settings.RedisPassword,
        decode_responses=True,
    )


class CacheStore:
    """JSON values in Redis with TTLs. Every failure is logged and swallowed."""

    def __init__(self, client: redis.Redis, default_ttl: int = DEFAULT_TTL_SECONDS):
        self._client = client
        self._default_ttl = default_ttl

    def Get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(key)
        except redis.RedisError:
            logger.exception("cache get failed for key %s", key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache entry %s is not valid json, ignoring", key)
            return None

    def Set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError):
            logger.exception("cache set failed to serialize key %s", key)
            return False
        try:
            self._client.setex(key, ttl or self._default_ttl, payload)
        except redis.RedisError:
            logger.exception("cache set failed for key %s", key)
            return False
        return True

    def Delete(self, key: str) -> bool:
        try:
            self._client.delete(key)
        except redis.RedisError:
            logger.exception("cache delete failed for key %s", key)
            return False
        return True

    def DeletePattern(self, pattern: str) -> bool:
        # SCAN rather than KEYS so a large keyspace does not block the server.
        try:
            batch: list[str] = []
            for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    self._client.delete(*batch)
                    batch = []
            if batch:
                self._client.delete(*batch)
        except redis.RedisError:
            logger.exception("cache delete failed for pattern %s", pattern)
            return False
        return True

    def Ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            logger.exception("cache ping failed")
            return False
