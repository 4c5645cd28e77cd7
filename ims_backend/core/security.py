"""JWT authentication and permission gate helpers."""

import enum
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Iterable

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from ims_backend.core.config import settings
from ims_backend.core.exceptions import AuthenticationError, AuthorizationError
from ims_backend.db.session import get_db

logger = logging.getLogger("ims_backend.security")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


class PolicyMode(str, enum.Enum):
    """Whether permission gates enforce the effective permission set."""
    enforce = "enforce"
    bypass_for_testing = "bypass_for_testing"


@dataclass(frozen=True)
class CurrentUser:
    """Identity extracted from a verified access token."""
    user_id: int
    role_id: int
    username: str
    session_id: Optional[str] = None


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def hash_token(token: str) -> str:
    """SHA-256 digest persisted in place of a raw refresh token."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT refresh token.

    A random ``jti`` keeps two tokens minted in the same second distinct, so
    their hashes never collide in ``user_sessions``.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)
    )
    to_encode.update({"exp": expire, "type": "refresh", "jti": secrets.token_hex(16)})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> dict:
    """Decode and validate a JWT token of the given type."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except JWTError:
        raise AuthenticationError("Invalid token")
    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")
    return payload


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> CurrentUser:
    """Extract the caller's identity from the Bearer access token."""
    if credentials is None:
        raise AuthenticationError("Access token required")
    payload = decode_token(credentials.credentials)
    try:
        return CurrentUser(
            user_id=int(payload["sub"]),
            role_id=int(payload["role_id"]),
            username=payload.get("username", ""),
            session_id=payload.get("sid"),
        )
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")


class RequireAnyPermission:
    """Dependency that passes iff the caller holds at least one of ``perm_keys``.

    The caller's session must still be active, in every policy mode. The
    policy mode comes from the service container built at startup.
    """

    def __init__(self, perm_keys: Iterable[str]):
        self.perm_keys = tuple(perm_keys)

    def __call__(
        self,
        request: Request,
        db: Session = Depends(get_db),
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        services = request.app.state.services
        if current_user.session_id and not services.sessions.is_active(db, current_user.session_id):
            raise AuthenticationError("Session is no longer active")
        if services.policy_mode == PolicyMode.bypass_for_testing:
            logger.warning(
                "Permission gate bypassed for user %s on %s (required any of %s)",
                current_user.user_id, request.url.path, ", ".join(self.perm_keys),
            )
            return current_user

        if not self.granted(services.permissions, current_user.user_id):
            raise AuthorizationError("Insufficient permissions")
        return current_user

    def granted(self, permissions, user_id: int) -> bool:
        return permissions.has_any(user_id, self.perm_keys)


class RequirePermission(RequireAnyPermission):
    """Dependency that passes iff the caller holds ``perm_key``."""

    def __init__(self, perm_key: str):
        super().__init__([perm_key])

    def granted(self, permissions, user_id: int) -> bool:
        return permissions.has(user_id, self.perm_keys[0])


def require_permission(perm_key: str) -> RequirePermission:
    return RequirePermission(perm_key)


def require_any_permission(perm_keys: Iterable[str]) -> RequireAnyPermission:
    return RequireAnyPermission(perm_keys)
