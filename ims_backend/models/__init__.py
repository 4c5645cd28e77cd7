"""Models package: import all models so metadata.create_all can discover them."""

from ims_backend.models.role import Role, RolePermission
from ims_backend.models.permission import (
    Permission, UserPermission, UserPermissionOverride, OverrideEffect,
)
from ims_backend.models.user import User
from ims_backend.models.user_session import UserSession, SessionLimit, DeactivationReason
from ims_backend.models.audit_log import AuditLog
from ims_backend.models.user_preference import UserPreference

__all__ = [
    "Role", "RolePermission", "Permission", "UserPermission",
    "UserPermissionOverride", "OverrideEffect", "User",
    "UserSession", "SessionLimit", "DeactivationReason", "AuditLog",
    "UserPreference",
]
