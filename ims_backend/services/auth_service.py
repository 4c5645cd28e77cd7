"""Auth service: login, refresh and logout on top of the session manager."""

import uuid
from datetime import timedelta
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from ims_backend.core.device import parse_device_info
from ims_backend.core.exceptions import AuthenticationError, ResourceNotFoundError
from ims_backend.core.security import (
    CurrentUser, verify_password, hash_token,
    create_access_token, create_refresh_token, decode_token,
)
from ims_backend.models.user import User
from ims_backend.services.audit_service import RequestMeta


def _token_data(user: User, session_id: str) -> dict:
    return {
        "sub": str(user.user_id),
        "username": user.username,
        "role_id": user.role_id,
        "sid": session_id,
    }


def _profile(user: User) -> Dict[str, Any]:
    return {
        "user_id": user.user_id,
        "username": user.username,
        "name": user.name,
        "role_id": user.role_id,
        "role_name": user.role.role_name if user.role else None,
        "is_active": user.is_active,
    }


class AuthService:
    """Handles authentication and the session each login opens."""

    def __init__(self, sessions, clock, refresh_ttl: timedelta):
        self.sessions = sessions
        self.clock = clock
        self.refresh_ttl = refresh_ttl

    def authenticate(
        self,
        db: Session,
        username: str,
        password: str,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Verify credentials, open a session and return tokens.

        Raises:
            AuthenticationError: If credentials are invalid or the user is inactive.
        """
        user = db.query(User).filter(User.username == username.strip().lower()).first()
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationError("Incorrect username or password")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        session_id = str(uuid.uuid4())
        token_data = _token_data(user, session_id)
        refresh_token = create_refresh_token(token_data, self.refresh_ttl)

        created = self.sessions.create_session(
            db,
            user.user_id,
            hash_token(refresh_token),
            parse_device_info(user_agent, ip),
            self.refresh_ttl,
            session_id=session_id,
        )

        user.last_login_at = self.clock.now()
        db.commit()

        return {
            "access_token": create_access_token(token_data),
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "session_id": session_id,
            "evicted_sessions": created.evicted_session_ids,
            "user": _profile(user),
        }

    def refresh_access_token(self, db: Session, refresh_token: str) -> Dict[str, Any]:
        """Issue a new access token for a still-active session."""
        payload = decode_token(refresh_token, expected_type="refresh")
        session = self.sessions.validate(db, hash_token(refresh_token))
        if session is None:
            raise AuthenticationError("Session expired or logged out")

        user = db.query(User).filter(User.user_id == session.user_id).first()
        if not user or not user.is_active or str(user.user_id) != payload.get("sub"):
            raise AuthenticationError("Invalid refresh token")

        self.sessions.touch(db, session.session_id)
        return {
            "access_token": create_access_token(_token_data(user, session.session_id)),
            "token_type": "bearer",
        }

    def logout(self, db: Session, current: CurrentUser, meta: Optional[RequestMeta] = None) -> None:
        """Deactivate the session the caller's token belongs to."""
        if not current.session_id:
            raise ResourceNotFoundError("Session not found")
        self.sessions.logout_one(db, current.user_id, current.session_id, meta=meta)

    @staticmethod
    def get_profile(db: Session, user_id: int) -> Dict[str, Any]:
        user = db.query(User).filter(User.user_id == user_id).first()
        if not user:
            raise ResourceNotFoundError("User not found")
        return _profile(user)
