"""Role and role-permission models for RBAC."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from ims_backend.db.base import Base


class Role(Base):
    """Named bundle of permission grants. Every user holds exactly one."""
    __tablename__ = "roles"

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    role_code = Column(String(60), unique=True, nullable=False, index=True)
    role_name = Column(String(100), nullable=False)
    description = Column(String(255), nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    grants = relationship("RolePermission", back_populates="role", lazy="selectin")


class RolePermission(Base):
    """Grant edge (role_id, perm_id)."""
    __tablename__ = "role_permissions"

    role_id = Column(Integer, ForeignKey("roles.role_id", ondelete="CASCADE"), primary_key=True)
    perm_id = Column(Integer, ForeignKey("permissions.perm_id", ondelete="CASCADE"), primary_key=True)

    role = relationship("Role", back_populates="grants")
    permission = relationship("Permission", lazy="joined")
