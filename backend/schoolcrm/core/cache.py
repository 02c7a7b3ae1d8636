"""Redis-backed cache for per-user read views (task inbox, review list)."""
import json
import logging
from typing import Any

import redis

from schoolcrm.core.config import settings

logger = logging.getLogger(__name__)

TASKS_VIEW = "tasks"
REVIEWS_VIEW = "reviews"


def view_key(view: str, user_id: str, *parts: str) -> str:
    return ":".join(["views", view, str(user_id), *parts])


class ViewCache:
    """Cache failures never fail a request; they only cost a cache miss."""

    def __init__(self, url: str | None = None, ttl_seconds: int | None = None):
        self._url = url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.VIEW_CACHE_TTL_SECONDS
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
        return self._client

    def get_json(self, key: str) -> Any | None:
        try:
            raw = self.client.get(key)
        except redis.RedisError:
            logger.warning(f"View cache read failed for {key}")
            return None
        return json.loads(raw) if raw else None

    def set_json(self, key: str, value: Any) -> None:
        try:
            self.client.setex(key, self.ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError:
            logger.warning(f"View cache write failed for {key}")

    def invalidate(self, *views: str) -> None:
        """Drop every cached entry of the given views (fire-and-forget)."""
        for view in views:
            pattern = f"views:{view}:*"
            try:
                keys = list(self.client.scan_iter(match=pattern))
                if keys:
                    self.client.delete(*keys)
            except redis.RedisError:
                logger.exception(f"View cache invalidation failed for {pattern}")


view_cache = ViewCache()


def get_view_cache() -> ViewCache:
    return view_cache
