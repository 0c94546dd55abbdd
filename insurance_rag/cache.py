"""Caching of search results using Redis.

Provides:
- get_redis: Redis client from REDIS_URL with decode_responses.
- search_key: Stable cache key derived from the normalized search parameters.
- SearchCache: get/set of ranked hits with a TTL. Redis failures are logged and
  treated as cache misses; they never fail a search.

Entries are not invalidated on writes; they expire after CACHE_TTL_SECONDS.
"""
import hashlib
import json
import logging
from typing import List, Optional, Sequence

import redis

from insurance_rag.config import Settings, settings as default_settings
from insurance_rag.schemas import SearchHit

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis(url: Optional[str] = None) -> redis.Redis:
    """Return a cached Redis client configured from settings.REDIS_URL.

    Returns:
        redis.Redis: Client with decode_responses=True.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(url or default_settings.REDIS_URL, decode_responses=True)
    return _redis_client


def search_key(
    query_embedding: Sequence[float],
    similarity_threshold: Optional[float],
    limit: int,
    insurance_types: Sequence[str],
) -> str:
    """Compute a stable cache key for a search call.

    Vector components are rounded to 6 decimals so float noise does not split keys.
    """
    payload = json.dumps(
        {
            "q": [round(float(x), 6) for x in query_embedding],
            "t": similarity_threshold,
            "k": limit,
            "types": sorted(insurance_types),
        },
        separators=(",", ":"),
    )
    h = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"rag:search:v1:{h}"


class SearchCache:
    """TTL cache of ranked search hits."""

    def __init__(self, client: redis.Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> Optional["SearchCache"]:
        """Build a cache when CACHE_ENABLED is set; otherwise None."""
        cfg = cfg or default_settings
        if not cfg.CACHE_ENABLED:
            return None
        return cls(get_redis(cfg.REDIS_URL), cfg.CACHE_TTL_SECONDS)

    def get(
        self,
        query_embedding: Sequence[float],
        similarity_threshold: Optional[float],
        limit: int,
        insurance_types: Sequence[str],
    ) -> Optional[List[SearchHit]]:
        key = search_key(query_embedding, similarity_threshold, limit, insurance_types)
        try:
            raw = self.client.get(key)
        except redis.RedisError:
            logger.warning("Search cache read failed", exc_info=True)
            return None
        if not raw:
            return None
        try:
            return [SearchHit.model_validate(item) for item in json.loads(raw)]
        except ValueError:
            logger.warning("Discarding malformed cache entry %s", key)
            return None

    def set(
        self,
        query_embedding: Sequence[float],
        similarity_threshold: Optional[float],
        limit: int,
        insurance_types: Sequence[str],
        hits: Sequence[SearchHit],
    ) -> None:
        key = search_key(query_embedding, similarity_threshold, limit, insurance_types)
        value = json.dumps([h.model_dump(mode="json") for h in hits])
        try:
            self.client.setex(key, self.ttl_seconds, value)
        except redis.RedisError:
            logger.warning("Search cache write failed", exc_info=True)
