"""Audit log model: append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from ims_backend.db.base import Base


class AuditLog(Base):
    """Immutable audit trail for role, permission, override and session mutations.

    This table is APPEND-ONLY: the admin "clear logs" action is the only path
    that deletes rows, and it records an entry of its own afterwards.
    """
    __tablename__ = "audit_logs"

    audit_id = Column(Integer, primary_key=True, autoincrement=True)
    actor_user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)  # e.g. "role_permissions.replace"
    table_name = Column(String(60), nullable=True, index=True)
    record_id = Column(String(100), nullable=True)
    old_value_json = Column(Text, nullable=True)
    new_value_json = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
