"""Effective permission resolution and the cached lookup used by gates.

effective = (role grants ∪ user grants ∪ allow overrides) \\ deny overrides
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from ims_backend.models.permission import OverrideEffect

logger = logging.getLogger("ims_backend.permissions")


def expand_permission_keys(perm_key: str) -> list[str]:
    """Candidate keys that satisfy a check for ``perm_key``.

    ``items.*`` and ``products.*`` name the same catalogue, so either one
    satisfies a check for the other.
    """
    if perm_key.startswith("items."):
        return [perm_key, perm_key.replace("items.", "products.", 1)]
    if perm_key.startswith("products."):
        return [perm_key, perm_key.replace("products.", "items.", 1)]
    return [perm_key]


@dataclass(frozen=True)
class ResolvedPermissions:
    permissions: frozenset
    denied: frozenset


class PermissionResolver:
    """Computes a user's effective permission set straight from the store."""

    def __init__(self, store):
        self.store = store

    def resolve(self, db: Session, user_id: int) -> frozenset:
        return self.resolve_detailed(db, user_id).permissions

    def resolve_detailed(self, db: Session, user_id: int) -> "ResolvedPermissions":
        """Effective set plus the keys explicitly denied by overrides."""
        user = self.store.get_user(db, user_id)
        if user is None:
            return ResolvedPermissions(frozenset(), frozenset())

        deny = set()
        allowed = set(self.store.role_grants(db, user.role_id))
        allowed.update(self.store.user_grants(db, user_id))
        for perm_key, effect in self.store.overrides(db, user_id):
            if effect == OverrideEffect.deny:
                deny.add(perm_key)
            else:
                allowed.add(perm_key)
        return ResolvedPermissions(frozenset(allowed - deny), frozenset(deny))


@dataclass(frozen=True)
class EffectivePermissions:
    permissions: frozenset
    permissions_hash: str
    cached: bool
    denied: frozenset = frozenset()


class PermissionService:
    """Cache-first access to effective permissions.

    On a miss the resolver runs in a fresh DB session and the result is
    written back; a failed write only costs the next caller another resolve.
    """

    def __init__(self, resolver: PermissionResolver, cache, session_factory):
        self.resolver = resolver
        self.cache = cache
        self.session_factory = session_factory

    def get(self, user_id: int) -> EffectivePermissions:
        hit = self.cache.get(user_id)
        if hit is not None:
            return EffectivePermissions(hit.permissions, hit.permissions_hash, cached=True, denied=hit.denied)

        db = self.session_factory()
        try:
            resolved = self.resolver.resolve_detailed(db, user_id)
        finally:
            db.close()
        entry = self.cache.put(user_id, resolved.permissions, resolved.denied)
        return EffectivePermissions(entry.permissions, entry.permissions_hash, cached=False, denied=entry.denied)

    def effective(self, user_id: int) -> frozenset:
        return self.get(user_id).permissions

    def resolve_fresh(self, db: Session, user_id: int) -> frozenset:
        """Resolve bypassing the cache (admin diagnostics)."""
        return self.resolver.resolve(db, user_id)

    def has(self, user_id: int, perm_key: str) -> bool:
        """Single-key check: a deny on any alias of ``perm_key`` forbids it."""
        candidates = expand_permission_keys(perm_key)
        result = self.get(user_id)
        if not result.denied.isdisjoint(candidates):
            return False
        return not result.permissions.isdisjoint(candidates)

    def has_any(self, user_id: int, perm_keys: Iterable[str]) -> bool:
        """True if any candidate key (aliases included) survives the deny filter."""
        candidates = {key for perm_key in perm_keys for key in expand_permission_keys(perm_key)}
        return not self.effective(user_id).isdisjoint(candidates)

    def invalidate(self, user_id: int) -> None:
        self.cache.invalidate(user_id)
