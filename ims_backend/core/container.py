"""Explicitly constructed service graph shared by request handlers.

Built once in ``create_app`` (or a Celery worker) and reached through
``request.app.state.services``; nothing here is module-level state.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from ims_backend.core.clock import SystemClock
from ims_backend.core.config import Settings
from ims_backend.core.security import PolicyMode
from ims_backend.db.session import build_engine, build_session_factory
from ims_backend.services.audit_service import AuditService
from ims_backend.services.auth_service import AuthService
from ims_backend.services.cache_service import PermissionCache, SidebarCache, build_cache_backend
from ims_backend.services.permission_service import PermissionResolver, PermissionService
from ims_backend.services.permission_store import PermissionStore
from ims_backend.services.preference_service import PreferenceService
from ims_backend.services.session_service import SessionManager
from ims_backend.services.sidebar_service import SidebarService


@dataclass
class Services:
    settings: Settings
    clock: object
    policy_mode: PolicyMode
    session_factory: sessionmaker
    cache_backend: object
    permission_cache: PermissionCache
    sidebar_cache: SidebarCache
    audit: AuditService
    store: PermissionStore
    permissions: PermissionService
    sidebar: SidebarService
    sessions: SessionManager
    auth: AuthService
    preferences: PreferenceService


def build_services(
    settings: Settings,
    clock=None,
    session_factory: Optional[sessionmaker] = None,
    cache_backend=None,
    policy_mode: Optional[PolicyMode] = None,
) -> Services:
    clock = clock or SystemClock()
    if session_factory is None:
        session_factory = build_session_factory(build_engine(settings.DATABASE_URL, echo=settings.DEBUG))
    if cache_backend is None:
        cache_backend = build_cache_backend(settings.CACHE_BACKEND, settings.REDIS_URL, clock)
    policy_mode = policy_mode or PolicyMode(settings.POLICY_MODE)

    sidebar_cache = SidebarCache(cache_backend, timedelta(minutes=settings.SIDEBAR_CACHE_TTL_MINUTES), clock)
    permission_cache = PermissionCache(
        cache_backend, timedelta(minutes=settings.PERMISSION_CACHE_TTL_MINUTES), clock, sidebar_cache,
    )
    audit = AuditService(session_factory, clock)
    store = PermissionStore(permission_cache, audit)
    sessions = SessionManager(
        clock,
        audit,
        default_max_sessions=settings.DEFAULT_MAX_SESSIONS,
        retention=timedelta(days=settings.SESSION_RETENTION_DAYS),
    )

    return Services(
        settings=settings,
        clock=clock,
        policy_mode=policy_mode,
        session_factory=session_factory,
        cache_backend=cache_backend,
        permission_cache=permission_cache,
        sidebar_cache=sidebar_cache,
        audit=audit,
        store=store,
        permissions=PermissionService(PermissionResolver(store), permission_cache, session_factory),
        sidebar=SidebarService(sidebar_cache, clock),
        sessions=sessions,
        auth=AuthService(sessions, clock, timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS)),
        preferences=PreferenceService(clock, audit),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's service graph."""
    return request.app.state.services
