"""Cache backends and the permission / sidebar caches built on them.

Both caches follow one mutation pattern: entries are written whole with
``put`` and removed with ``invalidate``; nothing is patched in place.
"""

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Iterable

import redis

from ims_backend.core.exceptions import CacheUnavailableError

logger = logging.getLogger("ims_backend.cache")

PERMISSIONS_KEY = "perm:{user_id}"
SIDEBAR_KEY = "sidebar:{user_id}"


def permissions_hash(permissions: Iterable[str]) -> str:
    """Stable digest of a permission set (order-independent)."""
    joined = "\n".join(sorted(set(permissions)))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class RedisCacheBackend:
    """Redis-backed key/value store.

    Reads and deletes raise ``CacheUnavailableError`` when Redis is down;
    writes are skipped with a warning, the next read simply misses.
    """

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self._url = url
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                max_connections=100,
            )
        return self._client

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Cache read failed: {e}") from e

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.setex(key, ttl_seconds, value)
        except redis.RedisError as e:
            logger.warning("Cache write skipped for %s: %s", key, e)

    def delete(self, *keys: str) -> None:
        try:
            self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Cache invalidation failed: {e}") from e

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


class MemoryCacheBackend:
    """In-process store for tests and single-process development."""

    def __init__(self, clock):
        self._clock = clock
        self._data: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at <= self._clock.now():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock.now() + timedelta(seconds=ttl_seconds))

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def health_check(self) -> bool:
        return True


@dataclass(frozen=True)
class CachedPermissions:
    user_id: int
    permissions: frozenset
    permissions_hash: str
    expires_at: datetime
    denied: frozenset = frozenset()


@dataclass(frozen=True)
class CachedMenu:
    user_id: int
    role_id: int
    permissions_hash: str
    menu: list
    expires_at: datetime


class _TTLCache:
    """JSON entries with an ``expires_at`` checked against the injected clock."""

    def __init__(self, backend, ttl: timedelta, clock):
        self.backend = backend
        self.ttl = ttl
        self.clock = clock

    def _read(self, key: str) -> Optional[dict]:
        raw = self.backend.get(key)
        if raw is None:
            return None
        entry = json.loads(raw)
        expires_at = datetime.fromisoformat(entry["expires_at"])
        if expires_at <= self.clock.now():
            return None
        entry["expires_at"] = expires_at
        return entry

    def _write(self, key: str, entry: dict) -> datetime:
        expires_at = self.clock.now() + self.ttl
        entry["expires_at"] = expires_at.isoformat()
        self.backend.set(key, json.dumps(entry), int(self.ttl.total_seconds()))
        return expires_at


class SidebarCache(_TTLCache):
    """Menu trees keyed by user, validated against role and permissions hash."""

    def get(self, user_id: int, role_id: int, perm_hash: str) -> Optional[CachedMenu]:
        entry = self._read(SIDEBAR_KEY.format(user_id=user_id))
        if entry is None:
            return None
        if entry["role_id"] != role_id or entry["permissions_hash"] != perm_hash:
            return None
        return CachedMenu(
            user_id=user_id,
            role_id=role_id,
            permissions_hash=perm_hash,
            menu=entry["menu"],
            expires_at=entry["expires_at"],
        )

    def put(self, user_id: int, role_id: int, perm_hash: str, menu: list) -> None:
        self._write(
            SIDEBAR_KEY.format(user_id=user_id),
            {"role_id": role_id, "permissions_hash": perm_hash, "menu": menu},
        )

    def invalidate(self, user_id: int) -> None:
        self.backend.delete(SIDEBAR_KEY.format(user_id=user_id))


class PermissionCache(_TTLCache):
    """Memoized effective permission sets, one entry per user.

    ``invalidate`` cascades to the sidebar cache, whose menus are derived
    from the permission set.
    """

    def __init__(self, backend, ttl: timedelta, clock, sidebar_cache: SidebarCache):
        super().__init__(backend, ttl, clock)
        self.sidebar_cache = sidebar_cache

    def get(self, user_id: int) -> Optional[CachedPermissions]:
        """Return the cached set, or ``None`` on a miss or expired entry."""
        entry = self._read(PERMISSIONS_KEY.format(user_id=user_id))
        if entry is None:
            return None
        return CachedPermissions(
            user_id=user_id,
            permissions=frozenset(entry["permissions"]),
            permissions_hash=entry["permissions_hash"],
            expires_at=entry["expires_at"],
            denied=frozenset(entry.get("denied", ())),
        )

    def put(self, user_id: int, permissions: Iterable[str], denied: Iterable[str] = ()) -> CachedPermissions:
        perms = frozenset(permissions)
        denied = frozenset(denied)
        perm_hash = permissions_hash(perms)
        expires_at = self._write(
            PERMISSIONS_KEY.format(user_id=user_id),
            {"permissions": sorted(perms), "permissions_hash": perm_hash, "denied": sorted(denied)},
        )
        return CachedPermissions(
            user_id=user_id,
            permissions=perms,
            permissions_hash=perm_hash,
            expires_at=expires_at,
            denied=denied,
        )

    def invalidate(self, user_id: int) -> None:
        self.backend.delete(PERMISSIONS_KEY.format(user_id=user_id))
        self.sidebar_cache.invalidate(user_id)
        logger.debug("Invalidated permission and sidebar cache for user %s", user_id)

    def invalidate_many(self, user_ids: Iterable[int]) -> None:
        for user_id in user_ids:
            self.invalidate(user_id)


def build_cache_backend(kind: str, redis_url: str, clock):
    if kind == "memory":
        return MemoryCacheBackend(clock)
    if kind == "redis":
        return RedisCacheBackend(redis_url)
    raise ValueError(f"Unknown cache backend '{kind}'")

