"""Preference service: per-user UI settings with defaults and partial update."""

import logging
from typing import Optional, Any

from sqlalchemy.orm import Session

from ims_backend.core.exceptions import ResourceNotFoundError
from ims_backend.models.user import User
from ims_backend.models.user_preference import UserPreference
from ims_backend.services.audit_service import RequestMeta

logger = logging.getLogger("ims_backend.preferences")

DEFAULT_PREFERENCES = {
    "theme": "light",
    "accent_color": "#2563EB",
    "sidebar_state": "expanded",
    "sidebar_position": "left",
    "sidebar_pinned": True,
    "enable_animations": True,
    "enable_focus_mode": False,
    "enable_hover_effects": True,
    "focus_mode_blur_level": 2,
    "compact_mode": False,
    "show_breadcrumbs": True,
    "show_page_transitions": True,
    "enable_notifications": True,
    "notification_sound": False,
    "language": "en",
    "timezone": "UTC",
    "date_format": "YYYY-MM-DD",
}


class PreferenceService:
    def __init__(self, clock, audit):
        self.clock = clock
        self.audit = audit

    def _get_or_create(self, db: Session, user_id: int) -> UserPreference:
        row = db.get(UserPreference, user_id)
        if row is not None:
            return row
        if db.query(User.user_id).filter(User.user_id == user_id).first() is None:
            raise ResourceNotFoundError("User not found")
        now = self.clock.now()
        row = UserPreference(user_id=user_id, created_at=now, updated_at=now, **DEFAULT_PREFERENCES)
        db.add(row)
        db.flush()
        return row

    def get(self, db: Session, user_id: int) -> UserPreference:
        """Stored preferences, or a freshly persisted row of defaults."""
        row = self._get_or_create(db, user_id)
        db.commit()
        return row

    def update(
        self,
        db: Session,
        user_id: int,
        changes: dict[str, Any],
        meta: Optional[RequestMeta] = None,
    ) -> UserPreference:
        """Merge ``changes`` over the stored row; unknown keys are ignored."""
        row = self._get_or_create(db, user_id)
        applied = {k: v for k, v in changes.items() if k in DEFAULT_PREFERENCES}
        old = {k: getattr(row, k) for k in applied}
        for key, value in applied.items():
            setattr(row, key, value)
        row.updated_at = self.clock.now()

        self.audit.record_after_commit(
            db, user_id, "user_preferences.update", "user_preferences", user_id,
            old_value=old, new_value=applied, meta=meta,
        )
        db.commit()
        logger.debug("User %s updated preferences: %s", user_id, sorted(applied))
        return row
