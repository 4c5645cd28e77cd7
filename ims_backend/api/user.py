"""Current-user API router: permissions, sidebar, sessions, preferences."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ims_backend.api.deps import report_activity
from ims_backend.core.container import Services, get_services
from ims_backend.core.security import CurrentUser, require_permission
from ims_backend.db.session import get_db
from ims_backend.schemas.schemas import (
    PermissionsOut, PermissionCheckOut, SidebarOut, SessionOut,
    SessionLimitRequest, LogoutOthersOut, MessageResponse,
    UserPreferencesOut, UserPreferencesUpdate,
)
from ims_backend.services.audit_service import RequestMeta

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/permissions", response_model=PermissionsOut)
def get_permissions(
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Effective permissions of the caller (cache first)."""
    result = services.permissions.get(current.user_id)
    return PermissionsOut(permissions=sorted(result.permissions), cached=result.cached)


@router.get("/sidebar", response_model=SidebarOut)
def get_sidebar(
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Personalized navigation menu."""
    permissions = services.permissions.effective(current.user_id)
    menu = services.sidebar.get_menu(current.user_id, current.role_id, permissions)
    return SidebarOut(modules=menu.modules, cached=menu.cached, timestamp=menu.timestamp)


@router.get("/check-permission/{perm_key}", response_model=PermissionCheckOut)
def check_permission(
    perm_key: str,
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Exact membership in the effective set; no key aliasing."""
    return PermissionCheckOut(
        permission=perm_key,
        granted=perm_key in services.permissions.effective(current.user_id),
    )


@router.get("/sessions", response_model=list[SessionOut])
def list_sessions(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Active sessions, most recently used first."""
    return services.sessions.list_active(db, current.user_id, current.session_id)


@router.post("/logout-other-sessions", response_model=LogoutOthersOut)
def logout_other_sessions(
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    count = services.sessions.logout_others(
        db, current.user_id, current.session_id, meta=RequestMeta.from_request(request),
    )
    return LogoutOthersOut(logged_out=count, message=f"Logged out from {count} other session(s)")


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def logout_session(
    session_id: str,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Terminate one of the caller's sessions; other users' sessions are 404."""
    services.sessions.logout_one(
        db, current.user_id, session_id, meta=RequestMeta.from_request(request),
    )
    return MessageResponse(message="Session terminated successfully")


@router.put("/session-limit/{user_id}", response_model=MessageResponse)
def update_session_limit(
    user_id: int,
    body: SessionLimitRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_permission("system.users.manage")),
):
    """Set a user's concurrent session cap (applies from their next login)."""
    services.sessions.set_limit(
        db, user_id, body.max_sessions,
        actor_user_id=current.user_id, meta=RequestMeta.from_request(request),
    )
    return MessageResponse(message="Session limit updated successfully")


@router.get("/preferences", response_model=UserPreferencesOut)
def get_preferences(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Caller's UI preferences; defaults are stored on first read."""
    return services.preferences.get(db, current.user_id)


@router.put("/preferences", response_model=UserPreferencesOut)
def update_preferences(
    body: UserPreferencesUpdate,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(report_activity),
):
    """Partial update: omitted or null fields keep their stored value."""
    return services.preferences.update(
        db, current.user_id, body.model_dump(exclude_unset=True, exclude_none=True),
        meta=RequestMeta.from_request(request),
    )
