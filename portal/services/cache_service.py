"""
Content Portal
TTL cache component.

Provides an explicit cache object with:
  - a fixed TTL per instance
  - an injectable clock (tests advance time without sleeping)
  - ``get(key) -> (value, expires_at)`` and whole-cache ``invalidate()``

Uses Redis when REDIS_URL is configured, falls back to a per-instance
in-memory dict for development/testing.
"""

import json
import logging
import time

logger = logging.getLogger(__name__)


# ── In-memory fallback ───────────────────────────────────────────────────

class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def __init__(self):
        self._store: dict = {}  # key → value_json

    def get(self, key):
        return self._store.get(key)

    def setex(self, key, ttl_seconds, value):
        self._store[key] = value

    def delete(self, *keys):
        for k in keys:
            self._store.pop(k, None)

    def keys(self, pattern):
        """Simple glob matching for 'prefix*' patterns."""
        if pattern.endswith("*"):
            prefix = pattern[:-1]
            return [k for k in self._store if k.startswith(prefix)]
        return [k for k in self._store if k == pattern]

    def ping(self):
        return True


def make_backend(redis_url: str | None = None):
    """Return a Redis client for *redis_url*, or an in-memory backend."""
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            backend = _redis.from_url(redis_url, decode_responses=True)
            backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            return backend
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
    return _MemoryBackend()


DEFAULT_TTL = 300


class TTLCache:
    """
    Cache-aside store whose entries expire ``ttl_seconds`` after ``set``.

    Expiry is judged against ``clock()`` rather than the backend's own TTL so
    that an injected clock fully controls staleness. Backend TTL is only used
    to bound storage growth.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL, clock=time.time,
                 backend=None, namespace: str = "ttl"):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.namespace = namespace
        self._backend = backend if backend is not None else _MemoryBackend()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> tuple:
        """Return ``(value, expires_at)``; ``(None, None)`` on miss or expiry."""
        raw = self._backend.get(self._key(key))
        if raw is None:
            return None, None
        try:
            entry = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None, None
        expires_at = entry.get("expires_at")
        if expires_at is None or self.clock() >= expires_at:
            self._backend.delete(self._key(key))
            return None, None
        return entry.get("value"), expires_at

    def set(self, key: str, value) -> float:
        """Store *value* and return its expiry timestamp."""
        expires_at = self.clock() + self.ttl_seconds
        self._backend.setex(
            self._key(key),
            max(1, int(self.ttl_seconds)),
            json.dumps({"value": value, "expires_at": expires_at}),
        )
        return expires_at

    def get_or_load(self, key: str, loader):
        value, _expires_at = self.get(key)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry in this cache when *key* is None."""
        if key is not None:
            self._backend.delete(self._key(key))
            return
        keys = self._backend.keys(f"{self.namespace}:*")
        if keys:
            self._backend.delete(*keys)

    def health_check(self) -> dict:
        try:
            self._backend.ping()
            backend_type = "memory" if isinstance(self._backend, _MemoryBackend) else "redis"
            return {"status": "ok", "backend": backend_type}
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}
