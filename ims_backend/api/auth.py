"""Auth API router: login, refresh, logout, me."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ims_backend.api.deps import report_activity
from ims_backend.core.config import settings
from ims_backend.core.container import Services, get_services
from ims_backend.core.rate_limiter import limiter
from ims_backend.core.security import CurrentUser, get_current_user
from ims_backend.db.session import get_db
from ims_backend.schemas.schemas import (
    LoginRequest, RefreshRequest, TokenResponse, MessageResponse, UserProfileOut,
)
from ims_backend.services.audit_service import RequestMeta

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Authenticate, open a session (evicting the oldest if at the limit)."""
    meta = RequestMeta.from_request(request)
    return services.auth.authenticate(
        db, body.username, body.password, user_agent=meta.user_agent, ip=meta.ip,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    body: RefreshRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Exchange a refresh token of an active session for a new access token."""
    return services.auth.refresh_access_token(db, body.refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(get_current_user),
):
    """End the current session."""
    services.auth.logout(db, current, meta=RequestMeta.from_request(request))
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserProfileOut)
def get_me(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Get current user profile."""
    return services.auth.get_profile(db, current.user_id)
