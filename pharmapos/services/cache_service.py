"""
Organization-scoped Redis cache.

Only read-heavy aggregates (dashboard) go through here. Every entry lives
under {prefix}:org:{organization_id}:{module}:{key}, so one organization
can never read or invalidate another's data. If Redis is down or disabled
the service answers as a permanent miss and callers fall back to the DB.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app

logger = logging.getLogger(__name__)

_DECIMAL_TAG = '__decimal__'
_SCAN_BATCH = 100


def _encode_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return {_DECIMAL_TAG: str(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"{type(obj).__name__} cannot be cached")


def _decode_hook(obj: dict) -> Any:
    if _DECIMAL_TAG in obj:
        return Decimal(obj[_DECIMAL_TAG])
    return obj


class CacheService:
    """Cache-aside helper bound to one Redis connection pool."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self._enabled = False
        self._prefix = ''
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'pharmapos')
        self._enabled = bool(app.config.get('CACHE_ENABLED', True))
        if not self._enabled:
            logger.info("[CACHE] disabled by configuration")
            return

        url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {url} ({e}); running without cache")
            self._enabled = False
            return
        self.client = client
        logger.info(f"[CACHE] using Redis at {url}")

    def is_available(self) -> bool:
        if not (self._enabled and self.client):
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def _build_key(self, organization_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:org:{organization_id}:{module}:{key}"

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=_encode_default)

    def _deserialize(self, raw: str) -> Any:
        return json.loads(raw, object_hook=_decode_hook)

    def get(self, organization_id: int, module: str, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or any Redis/decoding problem."""
        if not self.is_available():
            return None
        full_key = self._build_key(organization_id, module, key)
        try:
            raw = self.client.get(full_key)
            return None if raw is None else self._deserialize(raw)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] read failed for {full_key}: {e}")
            return None

    def set(self, organization_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        full_key = self._build_key(organization_id, module, key)
        if ttl is None:
            ttl = current_app.config.get('CACHE_DEFAULT_TTL', 60)
        try:
            self.client.setex(full_key, ttl, self._serialize(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] write failed for {full_key}: {e}")
            return False
        return True

    def delete_pattern(self, organization_id: int, module: str, pattern: str = '*') -> int:
        """Remove every key of the organization/module matching pattern; returns how many."""
        if not self.is_available():
            return 0
        match = self._build_key(organization_id, module, pattern)
        removed = 0
        batch = []
        try:
            for found in self.client.scan_iter(match=match, count=_SCAN_BATCH):
                batch.append(found)
                if len(batch) >= _SCAN_BATCH:
                    removed += self.client.delete(*batch)
                    batch = []
            if batch:
                removed += self.client.delete(*batch)
        except RedisError as e:
            logger.warning(f"[CACHE] invalidation of {match} failed: {e}")
            return removed
        if removed:
            logger.info(f"[CACHE] invalidated {removed} key(s) matching {match}")
        return removed

    def memoize(self, organization_id: int, module: str, key: str,
                loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        cached = self.get(organization_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(organization_id, module, key, value, ttl)
        return value

    def invalidate_module(self, organization_id: int, module: str) -> int:
        return self.delete_pattern(organization_id, module)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized; call init_cache(app) first")
    return _cache_service


def invalidate_dashboard(organization_id: int) -> None:
    """Drop cached dashboard aggregates after sales or stock receipts."""
    if _cache_service is not None:
        _cache_service.invalidate_module(organization_id, 'dashboard')
