"""Permission store: reads grants/overrides, replaces them wholesale.

Every write path here is replace-all (delete, then insert) and ends with a
cache invalidation for each affected user plus a post-commit audit entry.
"""

import logging
from typing import Optional, Iterable, Mapping

from sqlalchemy.orm import Session

from ims_backend.core.exceptions import ResourceNotFoundError, ValidationError
from ims_backend.models.permission import (
    Permission, UserPermission, UserPermissionOverride, OverrideEffect,
)
from ims_backend.models.role import Role, RolePermission
from ims_backend.models.user import User
from ims_backend.services.audit_service import RequestMeta

logger = logging.getLogger("ims_backend.permissions")


class PermissionStore:
    """Read and replace-all access to the grant and override tables."""

    def __init__(self, permission_cache, audit):
        self.permission_cache = permission_cache
        self.audit = audit

    # ---- reads ----

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.user_id == user_id).first()

    @staticmethod
    def role_grants(db: Session, role_id: int) -> list[str]:
        rows = (
            db.query(Permission.perm_key)
            .join(RolePermission, RolePermission.perm_id == Permission.perm_id)
            .filter(RolePermission.role_id == role_id)
            .distinct()
            .all()
        )
        return [row.perm_key for row in rows]

    @staticmethod
    def user_grants(db: Session, user_id: int) -> list[str]:
        rows = (
            db.query(Permission.perm_key)
            .join(UserPermission, UserPermission.perm_id == Permission.perm_id)
            .filter(UserPermission.user_id == user_id)
            .distinct()
            .all()
        )
        return [row.perm_key for row in rows]

    @staticmethod
    def overrides(db: Session, user_id: int) -> list[tuple[str, OverrideEffect]]:
        rows = (
            db.query(Permission.perm_key, UserPermissionOverride.effect)
            .join(UserPermissionOverride, UserPermissionOverride.perm_id == Permission.perm_id)
            .filter(UserPermissionOverride.user_id == user_id)
            .all()
        )
        return [(row.perm_key, OverrideEffect(row.effect)) for row in rows]

    @staticmethod
    def users_with_role(db: Session, role_id: int) -> list[int]:
        return [row.user_id for row in db.query(User.user_id).filter(User.role_id == role_id).all()]

    @staticmethod
    def list_permissions(db: Session) -> list[Permission]:
        return db.query(Permission).order_by(Permission.module, Permission.perm_key).all()

    # ---- helpers ----

    @staticmethod
    def _require_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.role_id == role_id).first()
        if not role:
            raise ResourceNotFoundError("Role not found")
        return role

    def _require_user(self, db: Session, user_id: int) -> User:
        user = self.get_user(db, user_id)
        if not user:
            raise ResourceNotFoundError("User not found")
        return user

    @staticmethod
    def _perm_ids(db: Session, perm_keys: Iterable[str]) -> dict[str, int]:
        keys = sorted(set(perm_keys))
        if not keys:
            return {}
        rows = db.query(Permission.perm_key, Permission.perm_id).filter(Permission.perm_key.in_(keys)).all()
        found = {row.perm_key: row.perm_id for row in rows}
        missing = [k for k in keys if k not in found]
        if missing:
            raise ValidationError(f"Unknown permission keys: {', '.join(missing)}")
        return found

    # ---- replace-all writes ----

    def replace_role_permissions(
        self,
        db: Session,
        role_id: int,
        perm_keys: Iterable[str],
        actor_user_id: Optional[int] = None,
        meta: Optional[RequestMeta] = None,
    ) -> list[str]:
        """Replace every grant of ``role_id`` and invalidate all its holders."""
        self._require_role(db, role_id)
        perm_ids = self._perm_ids(db, perm_keys)
        old = sorted(self.role_grants(db, role_id))

        db.query(RolePermission).filter(RolePermission.role_id == role_id).delete(synchronize_session=False)
        for perm_id in perm_ids.values():
            db.add(RolePermission(role_id=role_id, perm_id=perm_id))
        affected = self.users_with_role(db, role_id)

        self.audit.record_after_commit(
            db, actor_user_id, "role_permissions.replace", "role_permissions", role_id,
            old_value=old, new_value=sorted(perm_ids), meta=meta,
        )
        db.commit()
        self.permission_cache.invalidate_many(affected)
        logger.info("Replaced permissions of role %s (%d keys, %d users invalidated)",
                    role_id, len(perm_ids), len(affected))
        return sorted(perm_ids)

    def replace_user_permissions(
        self,
        db: Session,
        user_id: int,
        perm_keys: Iterable[str],
        actor_user_id: Optional[int] = None,
        meta: Optional[RequestMeta] = None,
    ) -> list[str]:
        """Replace every direct grant of ``user_id``."""
        self._require_user(db, user_id)
        perm_ids = self._perm_ids(db, perm_keys)
        old = sorted(self.user_grants(db, user_id))

        db.query(UserPermission).filter(UserPermission.user_id == user_id).delete(synchronize_session=False)
        for perm_id in perm_ids.values():
            db.add(UserPermission(user_id=user_id, perm_id=perm_id))

        self.audit.record_after_commit(
            db, actor_user_id, "user_permissions.replace", "user_permissions", user_id,
            old_value=old, new_value=sorted(perm_ids), meta=meta,
        )
        db.commit()
        self.permission_cache.invalidate(user_id)
        return sorted(perm_ids)

    def replace_user_overrides(
        self,
        db: Session,
        user_id: int,
        overrides: Mapping[str, OverrideEffect],
        actor_user_id: Optional[int] = None,
        meta: Optional[RequestMeta] = None,
    ) -> dict[str, str]:
        """Replace every override of ``user_id``.

        ``overrides`` maps a permission key to its effect, so a key can only
        appear once per user.
        """
        self._require_user(db, user_id)
        effects = {key: OverrideEffect(effect) for key, effect in overrides.items()}
        perm_ids = self._perm_ids(db, effects)
        old = {key: effect.value for key, effect in self.overrides(db, user_id)}

        db.query(UserPermissionOverride).filter(
            UserPermissionOverride.user_id == user_id
        ).delete(synchronize_session=False)
        for key, perm_id in perm_ids.items():
            db.add(UserPermissionOverride(user_id=user_id, perm_id=perm_id, effect=effects[key]))

        new = {key: effect.value for key, effect in sorted(effects.items())}
        self.audit.record_after_commit(
            db, actor_user_id, "user_permission_overrides.replace", "user_permission_overrides", user_id,
            old_value=old, new_value=new, meta=meta,
        )
        db.commit()
        self.permission_cache.invalidate(user_id)
        return new

    def reassign_role(
        self,
        db: Session,
        user_id: int,
        role_id: int,
        actor_user_id: Optional[int] = None,
        meta: Optional[RequestMeta] = None,
    ) -> User:
        """Move ``user_id`` to ``role_id`` (a full replace of the role)."""
        user = self._require_user(db, user_id)
        self._require_role(db, role_id)
        old_role_id = user.role_id
        user.role_id = role_id

        self.audit.record_after_commit(
            db, actor_user_id, "users.role_reassign", "users", user_id,
            old_value={"role_id": old_role_id}, new_value={"role_id": role_id}, meta=meta,
        )
        db.commit()
        self.permission_cache.invalidate(user_id)
        db.refresh(user)
        return user
