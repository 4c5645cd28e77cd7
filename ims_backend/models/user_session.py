"""UserSession and SessionLimit models."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Index
from ims_backend.db.base import Base


class DeactivationReason(str, enum.Enum):
    logout = "logout"
    logout_others = "logout_others"
    evicted = "evicted"


class UserSession(Base):
    """One logged-in device.

    Sessions are soft-deactivated (``is_active = False``) and only removed by
    the retention sweep.
    """
    __tablename__ = "user_sessions"

    session_id = Column(String(36), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    refresh_token_hash = Column(String(64), nullable=False, unique=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    device_type = Column(String(20), nullable=True)  # mobile, tablet, desktop, unknown
    browser = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)
    location = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_activity = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)
    deactivation_reason = Column(Enum(DeactivationReason), nullable=True)

    __table_args__ = (
        Index("ix_user_sessions_user_active", "user_id", "is_active", "last_activity"),
    )


class SessionLimit(Base):
    """Per-user concurrent session cap. Absent row means the system default."""
    __tablename__ = "session_limits"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)
    max_sessions = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=True)
