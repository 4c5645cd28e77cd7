"""Admin API router: grant/override replacement, audit, maintenance."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ims_backend.core.container import Services, get_services
from ims_backend.core.security import CurrentUser, require_any_permission
from ims_backend.db.session import get_db
from ims_backend.schemas.schemas import (
    AuditLogOut, PermissionKeysRequest, OverridesRequest, RoleAssignRequest,
    PermissionsOut, UserProfileOut, MessageResponse, SweepOut,
)
from ims_backend.services.audit_service import RequestMeta

router = APIRouter(prefix="/admin", tags=["admin"])

require_roles_admin = require_any_permission(["system.roles.manage", "roles.update"])
require_users_admin = require_any_permission(["system.users.manage", "users.update"])
require_audit_view = require_any_permission(["system.audit.view", "audit_logs.view", "system.settings"])
require_audit_delete = require_any_permission(["system.audit.view", "audit_logs.delete", "system.settings"])


@router.put("/roles/{role_id}/permissions", response_model=PermissionsOut)
def replace_role_permissions(
    role_id: int,
    body: PermissionKeysRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_roles_admin),
):
    """Replace all grants of a role; every holder's cache is invalidated."""
    keys = services.store.replace_role_permissions(
        db, role_id, body.perm_keys,
        actor_user_id=current.user_id, meta=RequestMeta.from_request(request),
    )
    return PermissionsOut(permissions=keys, cached=False)


@router.put("/users/{user_id}/permissions", response_model=PermissionsOut)
def replace_user_permissions(
    user_id: int,
    body: PermissionKeysRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_users_admin),
):
    keys = services.store.replace_user_permissions(
        db, user_id, body.perm_keys,
        actor_user_id=current.user_id, meta=RequestMeta.from_request(request),
    )
    return PermissionsOut(permissions=keys, cached=False)


@router.put("/users/{user_id}/overrides")
def replace_user_overrides(
    user_id: int,
    body: OverridesRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_users_admin),
):
    overrides = services.store.replace_user_overrides(
        db, user_id, body.overrides,
        actor_user_id=current.user_id, meta=RequestMeta.from_request(request),
    )
    return {"user_id": user_id, "overrides": overrides}


@router.put("/users/{user_id}/role", response_model=UserProfileOut)
def reassign_user_role(
    user_id: int,
    body: RoleAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_users_admin),
):
    services.store.reassign_role(
        db, user_id, body.role_id,
        actor_user_id=current.user_id, meta=RequestMeta.from_request(request),
    )
    return services.auth.get_profile(db, user_id)


@router.get("/users/{user_id}/effective-permissions", response_model=PermissionsOut)
def effective_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_users_admin),
):
    """Resolve straight from the store, bypassing the cache."""
    permissions = services.permissions.resolve_fresh(db, user_id)
    return PermissionsOut(permissions=sorted(permissions), cached=False)


@router.get("/audit")
def get_audit_logs(
    action: Optional[str] = Query(None),
    table: Optional[str] = Query(None),
    actor_user_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_audit_view),
):
    """Query audit logs (admin only)."""
    result = services.audit.query_logs(db, actor_user_id, action, table, page, page_size)
    return {
        "logs": [AuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.delete("/audit", response_model=MessageResponse)
def clear_audit_logs(
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_audit_delete),
):
    deleted = services.audit.clear_logs(db, current.user_id, meta=RequestMeta.from_request(request))
    return MessageResponse(message=f"Cleared {deleted} audit log entries")


@router.post("/sessions/sweep", response_model=SweepOut)
def sweep_sessions(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(require_users_admin),
):
    """Run the session retention sweep now."""
    return services.sessions.sweep_expired(db)
