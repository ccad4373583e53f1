"""
Cache Coordinator
Owns the Redis key scheme and the TTL of every derived value.

Keys are hierarchical, {domain}:{user_id}[:{period}], so all entries of one
domain for one user can be dropped by prefix. The cache is an optimization:
every Redis error is logged and turned into a miss (reads) or a failed write
(returns False). Nothing here raises into the caller.
"""
from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import redis

from app.core.config import Settings

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = "\\*?[]"


class CacheCategory(str, Enum):
    MONTHLY_SUMMARY = "monthly_summary"
    ANALYTICS_SUMMARY = "analytics_summary"
    SPENDING_PATTERNS = "spending_patterns"
    PROCESSING = "spending_patterns_processing"


def monthly_summary_key(user_id: str, year: int, month: int) -> str:
    return f"{CacheCategory.MONTHLY_SUMMARY.value}:{user_id}:{year}-{month:02d}"


def monthly_summary_prefix(user_id: str) -> str:
    return f"{CacheCategory.MONTHLY_SUMMARY.value}:{user_id}:"


def analytics_summary_key(user_id: str) -> str:
    return f"{CacheCategory.ANALYTICS_SUMMARY.value}:{user_id}"


def spending_patterns_key(user_id: str) -> str:
    return f"{CacheCategory.SPENDING_PATTERNS.value}:{user_id}"


def processing_key(user_id: str) -> str:
    return f"{CacheCategory.PROCESSING.value}:{user_id}"


def _escape_glob(text: str) -> str:
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)


class CacheCoordinator:
    def __init__(self, client, ttls: Dict[CacheCategory, int], scan_batch: int = 500) -> None:
        self._client = client
        self._ttls = dict(ttls)
        self._scan_batch = scan_batch

    @classmethod
    def from_settings(cls, client, settings: Settings) -> "CacheCoordinator":
        return cls(
            client,
            {
                CacheCategory.MONTHLY_SUMMARY: settings.MONTHLY_SUMMARY_TTL,
                CacheCategory.ANALYTICS_SUMMARY: settings.ANALYTICS_SUMMARY_TTL,
                CacheCategory.SPENDING_PATTERNS: settings.SPENDING_PATTERNS_TTL,
                CacheCategory.PROCESSING: settings.PROCESSING_LEASE_TTL,
            },
        )

    def ttl_for(self, category: CacheCategory) -> int:
        return self._ttls[category]

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or a cache outage."""
        try:
            data = self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {str(e)}")
            return None

    def exists(self, key: str) -> bool:
        try:
            return bool(self._client.exists(key))
        except redis.RedisError as e:
            logger.warning(f"Cache exists check failed for {key}: {str(e)}")
            return False

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Unconditional overwrite with a TTL. Best effort."""
        try:
            self._client.set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except redis.RedisError as e:
            logger.error(f"Cache write failed for {key}: {str(e)}")
            return False

    def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """SET NX EX. True only if this call created the key."""
        try:
            return bool(self._client.set(key, json.dumps(value, default=str), ex=ttl, nx=True))
        except redis.RedisError as e:
            logger.error(f"Conditional cache write failed for {key}: {str(e)}")
            return False

    def commit(self, key: str, value: Any, ttl: int, release: Optional[str] = None) -> bool:
        """Write `value` and delete the `release` key in one MULTI/EXEC."""
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.set(key, json.dumps(value, default=str), ex=ttl)
            if release:
                pipe.delete(release)
            pipe.execute()
            return True
        except redis.RedisError as e:
            logger.error(f"Cache commit failed for {key}: {str(e)}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(key))
        except redis.RedisError as e:
            logger.error(f"Cache delete failed for {key}: {str(e)}")
            return False

    def invalidate(self, prefix: str) -> int:
        """Delete every key starting with `prefix`. Returns the number of keys removed."""
        pattern = f"{_escape_glob(prefix)}*"
        deleted = 0
        batch = []
        try:
            for key in self._client.scan_iter(match=pattern, count=self._scan_batch):
                if not key.startswith(prefix):
                    continue
                batch.append(key)
                if len(batch) >= self._scan_batch:
                    deleted += self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += self._client.delete(*batch)
        except redis.RedisError as e:
            logger.error(f"Cache invalidation failed for prefix {prefix}: {str(e)}")
        return deleted

    def invalidate_user_summaries(self, user_id: str) -> int:
        """
        Drop every monthly summary and the analytics summary of a user.
        Whole-user on purpose: the months a mutation touched are not known cheaply.
        """
        deleted = self.invalidate(monthly_summary_prefix(user_id))
        if self.delete(analytics_summary_key(user_id)):
            deleted += 1
        logger.info(f"Invalidated {deleted} cached summaries for user {user_id}")
        return deleted
