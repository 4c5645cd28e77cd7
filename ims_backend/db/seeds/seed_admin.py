"""Seed the admin user from settings."""

import logging

from sqlalchemy.orm import Session
from ims_backend.core.config import settings
from ims_backend.core.security import hash_password
from ims_backend.models.role import Role
from ims_backend.models.user import User

logger = logging.getLogger("ims_backend.seeds")


def seed_admin(db: Session) -> None:
    """Create the admin user if not already present."""
    role = db.query(Role).filter(Role.role_code == "admin").first()
    if not role:
        logger.warning("admin role not found. Run seed_roles first.")
        return

    username = settings.ADMIN_USERNAME.lower()
    if db.query(User).filter(User.username == username).first():
        logger.info("Admin '%s' already exists, skipping.", username)
        return

    db.add(User(
        username=username,
        name="Administrator",
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role_id=role.role_id,
        is_active=True,
    ))
    db.commit()
    logger.info("Created admin user: %s", username)
