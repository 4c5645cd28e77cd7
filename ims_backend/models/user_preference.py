"""Per-user UI preferences."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from ims_backend.db.base import Base


class UserPreference(Base):
    """One row per user; absent row means every field is at its default."""
    __tablename__ = "user_preferences"

    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True)

    # Theme
    theme = Column(String(10), nullable=False, default="light")  # light, dark, auto
    accent_color = Column(String(7), nullable=False, default="#2563EB")

    # Sidebar
    sidebar_state = Column(String(10), nullable=False, default="expanded")  # minimized, expanded, floating
    sidebar_position = Column(String(5), nullable=False, default="left")
    sidebar_pinned = Column(Boolean, nullable=False, default=True)

    # Visual effects
    enable_animations = Column(Boolean, nullable=False, default=True)
    enable_focus_mode = Column(Boolean, nullable=False, default=False)
    enable_hover_effects = Column(Boolean, nullable=False, default=True)
    focus_mode_blur_level = Column(Integer, nullable=False, default=2)

    # Display
    compact_mode = Column(Boolean, nullable=False, default=False)
    show_breadcrumbs = Column(Boolean, nullable=False, default=True)
    show_page_transitions = Column(Boolean, nullable=False, default=True)

    # Notifications
    enable_notifications = Column(Boolean, nullable=False, default=True)
    notification_sound = Column(Boolean, nullable=False, default=False)

    # Locale
    language = Column(String(10), nullable=False, default="en")
    timezone = Column(String(50), nullable=False, default="UTC")
    date_format = Column(String(20), nullable=False, default="YYYY-MM-DD")

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
