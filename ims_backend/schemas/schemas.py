"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

from ims_backend.models.permission import OverrideEffect


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=4)

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    session_id: Optional[str] = None
    evicted_sessions: List[str] = []
    user: Optional[Dict[str, Any]] = None

class RefreshRequest(BaseModel):
    refresh_token: str

class MessageResponse(BaseModel):
    message: str


# ---- User ----
class UserProfileOut(BaseModel):
    user_id: int
    username: str
    name: str
    role_id: int
    role_name: Optional[str] = None
    is_active: bool = True


# ---- Permissions ----
class PermissionsOut(BaseModel):
    permissions: List[str]
    cached: bool

class PermissionCheckOut(BaseModel):
    permission: str
    granted: bool

class PermissionKeysRequest(BaseModel):
    perm_keys: List[str]

class OverridesRequest(BaseModel):
    overrides: Dict[str, OverrideEffect]

class RoleAssignRequest(BaseModel):
    role_id: int


# ---- Sidebar ----
class SidebarOut(BaseModel):
    modules: List[Dict[str, Any]]
    cached: bool
    timestamp: datetime


# ---- Sessions ----
class SessionOut(BaseModel):
    session_id: str
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    last_activity: datetime
    created_at: datetime
    is_current: bool

    class Config:
        from_attributes = True

class SessionLimitRequest(BaseModel):
    max_sessions: int = Field(..., ge=1, le=10)

class LogoutOthersOut(BaseModel):
    logged_out: int
    message: str

class SweepOut(BaseModel):
    expired: int
    inactive: int
    deleted: int


# ---- Preferences ----
class UserPreferencesOut(BaseModel):
    user_id: int
    theme: str
    accent_color: str
    sidebar_state: str
    sidebar_position: str
    sidebar_pinned: bool
    enable_animations: bool
    enable_focus_mode: bool
    enable_hover_effects: bool
    focus_mode_blur_level: int
    compact_mode: bool
    show_breadcrumbs: bool
    show_page_transitions: bool
    enable_notifications: bool
    notification_sound: bool
    language: str
    timezone: str
    date_format: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class UserPreferencesUpdate(BaseModel):
    theme: Optional[Literal["light", "dark", "auto"]] = None
    accent_color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    sidebar_state: Optional[Literal["minimized", "expanded", "floating"]] = None
    sidebar_position: Optional[Literal["left", "right"]] = None
    sidebar_pinned: Optional[bool] = None
    enable_animations: Optional[bool] = None
    enable_focus_mode: Optional[bool] = None
    enable_hover_effects: Optional[bool] = None
    focus_mode_blur_level: Optional[int] = Field(None, ge=0, le=10)
    compact_mode: Optional[bool] = None
    show_breadcrumbs: Optional[bool] = None
    show_page_transitions: Optional[bool] = None
    enable_notifications: Optional[bool] = None
    notification_sound: Optional[bool] = None
    language: Optional[str] = Field(None, min_length=2, max_length=10)
    timezone: Optional[str] = Field(None, min_length=1, max_length=50)
    date_format: Optional[str] = Field(None, min_length=1, max_length=20)


# ---- Audit ----
class AuditLogOut(BaseModel):
    audit_id: int
    actor_user_id: Optional[int] = None
    action: str
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    old_value_json: Optional[str] = None
    new_value_json: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
