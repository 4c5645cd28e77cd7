"""Permission catalog and per-user grant/override models."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from ims_backend.db.base import Base


class OverrideEffect(str, enum.Enum):
    allow = "allow"
    deny = "deny"


class Permission(Base):
    """A dotted permission key, e.g. ``sales.view``."""
    __tablename__ = "permissions"

    perm_id = Column(Integer, primary_key=True, autoincrement=True)
    perm_key = Column(String(100), unique=True, nullable=False, index=True)
    perm_name = Column(String(150), nullable=True)
    module = Column(String(60), nullable=False, index=True)
    description = Column(String(255), nullable=True)


class UserPermission(Base):
    """Direct per-user grant edge (user_id, perm_id)."""
    __tablename__ = "user_permissions"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    perm_id = Column(Integer, ForeignKey("permissions.perm_id", ondelete="CASCADE"), primary_key=True)

    permission = relationship("Permission", lazy="joined")


class UserPermissionOverride(Base):
    """Per-user allow/deny exception. At most one row per (user_id, perm_id)."""
    __tablename__ = "user_permission_overrides"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    perm_id = Column(Integer, ForeignKey("permissions.perm_id", ondelete="CASCADE"), primary_key=True)
    effect = Column(Enum(OverrideEffect), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    permission = relationship("Permission", lazy="joined")
