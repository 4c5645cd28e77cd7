"""Shared fixtures: per-test SQLite database, frozen clock, in-memory cache."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import ims_backend.models  # noqa: F401
from ims_backend.core.clock import SystemClock
from ims_backend.core.config import Settings
from ims_backend.core.container import build_services
from ims_backend.core.rate_limiter import limiter
from ims_backend.core.security import PolicyMode, hash_password
from ims_backend.db.base import Base
from ims_backend.db.seeds.seed_permissions import seed_permissions
from ims_backend.db.session import build_engine, build_session_factory
from ims_backend.models.permission import Permission
from ims_backend.models.role import Role, RolePermission
from ims_backend.models.user import User
from ims_backend.services.cache_service import MemoryCacheBackend

PASSWORD = "secret-pass"


class FrozenClock:
    """Starts at wall-clock time (JWT expiry uses real time) and only moves on ``advance``."""

    def __init__(self):
        self.current = SystemClock().now()

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def _no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'ims.db'}",
        CACHE_BACKEND="memory",
        DEFAULT_MAX_SESSIONS=2,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def session_factory(settings):
    engine = build_engine(settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def cache_backend(clock):
    return MemoryCacheBackend(clock)


@pytest.fixture
def policy_mode():
    return PolicyMode.enforce


@pytest.fixture
def services(settings, clock, session_factory, cache_backend, policy_mode):
    return build_services(
        settings,
        clock=clock,
        session_factory=session_factory,
        cache_backend=cache_backend,
        policy_mode=policy_mode,
    )


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_permissions(session)
    yield session
    session.close()


@pytest.fixture
def app(settings, services):
    from ims_backend.main import create_app
    return create_app(settings, services=services)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def make_role(db, role_code, perm_keys=()):
    role = Role(role_code=role_code, role_name=role_code.title())
    db.add(role)
    db.flush()
    for key in perm_keys:
        perm = db.query(Permission).filter(Permission.perm_key == key).one()
        db.add(RolePermission(role_id=role.role_id, perm_id=perm.perm_id))
    db.commit()
    return role


def make_user(db, username, role, password=PASSWORD, is_active=True):
    user = User(
        username=username,
        name=username.title(),
        password_hash=hash_password(password),
        role_id=role.role_id,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def cashier_role(db):
    return make_role(db, "cashier", ["sales.view", "dashboard.view"])


@pytest.fixture
def admin_role(db):
    return make_role(db, "admin", [
        "system.users.manage", "system.roles.manage", "system.audit.view", "audit_logs.delete",
        "dashboard.view",
    ])


@pytest.fixture
def cashier(db, cashier_role):
    return make_user(db, "cashier1", cashier_role)


@pytest.fixture
def admin(db, admin_role):
    return make_user(db, "admin1", admin_role)


def login(client, username, password=PASSWORD, user_agent="Mozilla/5.0 (Windows NT 10.0) Chrome/120.0"):
    resp = client.post(
        "/api/auth/login",
        json={"username": username, "password": password},
        headers={"User-Agent": user_agent},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def auth_headers(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}
