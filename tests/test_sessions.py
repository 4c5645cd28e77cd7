"""Session limits, eviction order, validation and the retention sweep."""

import threading
import uuid
from datetime import timedelta

import pytest

from ims_backend.core.device import parse_device_info
from ims_backend.core.exceptions import ResourceNotFoundError, ValidationError
from ims_backend.models.user_session import UserSession, DeactivationReason

from conftest import make_user

TTL = timedelta(days=7)
CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148 Safari/604.1"
FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


def open_session(services, db, user_id, ua=CHROME, session_id=None):
    return services.sessions.create_session(
        db, user_id, uuid.uuid4().hex, parse_device_info(ua, "10.0.0.1"), TTL, session_id=session_id,
    )


def active_ids(db, user_id):
    db.expire_all()
    rows = db.query(UserSession).filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
    return {s.session_id for s in rows}


def test_third_login_evicts_least_recently_active(services, db, clock, cashier):
    first = open_session(services, db, cashier.user_id, CHROME).session
    clock.advance(minutes=1)
    second = open_session(services, db, cashier.user_id, IPHONE).session
    clock.advance(minutes=1)

    created = open_session(services, db, cashier.user_id, FIREFOX)

    assert created.evicted_session_ids == [first.session_id]
    assert active_ids(db, cashier.user_id) == {second.session_id, created.session.session_id}
    evicted = db.get(UserSession, first.session_id)
    assert evicted.deactivation_reason == DeactivationReason.evicted
    assert evicted.deactivated_at == clock.now()


def test_touch_changes_eviction_victim(services, db, clock, cashier):
    first = open_session(services, db, cashier.user_id).session
    clock.advance(minutes=1)
    second = open_session(services, db, cashier.user_id).session
    clock.advance(minutes=1)
    assert services.sessions.touch(db, first.session_id)
    clock.advance(minutes=1)

    created = open_session(services, db, cashier.user_id)
    assert created.evicted_session_ids == [second.session_id]


def test_eviction_tie_breaks_on_session_id(services, db, cashier):
    open_session(services, db, cashier.user_id, session_id="bbbbbbbb-0000-0000-0000-000000000000")
    open_session(services, db, cashier.user_id, session_id="aaaaaaaa-0000-0000-0000-000000000000")

    created = open_session(services, db, cashier.user_id)
    assert created.evicted_session_ids == ["aaaaaaaa-0000-0000-0000-000000000000"]


def test_concurrent_logins_never_exceed_limit(services, session_factory, cashier):
    errors = []

    def worker():
        db = session_factory()
        try:
            open_session(services, db, cashier.user_id)
        except Exception as e:
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    db = session_factory()
    try:
        assert len(active_ids(db, cashier.user_id)) == 2
        assert db.query(UserSession).filter(UserSession.user_id == cashier.user_id).count() == 6
    finally:
        db.close()


def test_validate_rejects_inactive_and_expired(services, db, clock, cashier):
    created = open_session(services, db, cashier.user_id).session
    token_hash = created.refresh_token_hash
    assert services.sessions.validate(db, token_hash).session_id == created.session_id

    clock.advance(days=8)
    assert services.sessions.validate(db, token_hash) is None


def test_touch_never_revives(services, db, cashier):
    created = open_session(services, db, cashier.user_id).session
    services.sessions.logout_one(db, cashier.user_id, created.session_id)
    assert services.sessions.touch(db, created.session_id) is False
    assert services.sessions.validate(db, created.refresh_token_hash) is None


def test_list_active_marks_current(services, db, clock, cashier):
    first = open_session(services, db, cashier.user_id).session
    clock.advance(minutes=5)
    second = open_session(services, db, cashier.user_id).session

    listed = services.sessions.list_active(db, cashier.user_id, current_session_id=first.session_id)
    assert [s.session_id for s in listed] == [second.session_id, first.session_id]
    assert [s.is_current for s in listed] == [False, True]


def test_logout_one_of_another_user_is_not_found(services, db, cashier, cashier_role):
    other = make_user(db, "other", cashier_role)
    theirs = open_session(services, db, other.user_id).session

    with pytest.raises(ResourceNotFoundError):
        services.sessions.logout_one(db, cashier.user_id, theirs.session_id)
    assert theirs.session_id in active_ids(db, other.user_id)


def test_logout_others_keeps_current(services, db, cashier):
    services.sessions.set_limit(db, cashier.user_id, 5)
    sessions = [open_session(services, db, cashier.user_id).session for _ in range(4)]
    current = sessions[-1].session_id

    count = services.sessions.logout_others(db, cashier.user_id, current)

    assert count == 3
    assert active_ids(db, cashier.user_id) == {current}
    assert services.sessions.logout_others(db, cashier.user_id, current) == 0


def test_set_limit_range_and_unknown_user(services, db, cashier):
    with pytest.raises(ValidationError):
        services.sessions.set_limit(db, cashier.user_id, 0)
    with pytest.raises(ValidationError):
        services.sessions.set_limit(db, cashier.user_id, 11)
    with pytest.raises(ResourceNotFoundError):
        services.sessions.set_limit(db, 9999, 3)
    assert services.sessions.get_limit(db, cashier.user_id) == 2


def test_lowering_limit_applies_on_next_login(services, db, clock, cashier):
    services.sessions.set_limit(db, cashier.user_id, 3)
    opened = []
    for _ in range(3):
        opened.append(open_session(services, db, cashier.user_id).session.session_id)
        clock.advance(minutes=1)

    services.sessions.set_limit(db, cashier.user_id, 1)
    assert len(active_ids(db, cashier.user_id)) == 3

    created = open_session(services, db, cashier.user_id)
    assert created.evicted_session_ids == opened
    assert active_ids(db, cashier.user_id) == {created.session.session_id}


def test_sweep_is_idempotent(services, db, clock, cashier):
    services.sessions.set_limit(db, cashier.user_id, 5)
    stale = open_session(services, db, cashier.user_id).session
    services.sessions.logout_one(db, cashier.user_id, stale.session_id)
    clock.advance(days=8)
    kept = open_session(services, db, cashier.user_id).session
    stale_id, kept_id = stale.session_id, kept.session_id

    first = services.sessions.sweep_expired(db)
    second = services.sessions.sweep_expired(db)

    assert first["deleted"] == 1
    assert second == {"expired": 0, "inactive": 0, "deleted": 0}
    db.expire_all()
    assert db.get(UserSession, stale_id) is None
    assert db.get(UserSession, kept_id) is not None


def test_create_for_unknown_user_is_not_found(services, db):
    with pytest.raises(ResourceNotFoundError):
        open_session(services, db, 9999)
