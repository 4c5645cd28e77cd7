"""Audit entries are written after commit and never break the caller."""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

from ims_backend.core.device import parse_device_info
from ims_backend.models.audit_log import AuditLog
from ims_backend.services.audit_service import AuditService, RequestMeta


def actions(session_factory):
    db = session_factory()
    try:
        return [row.action for row in db.query(AuditLog).order_by(AuditLog.audit_id)]
    finally:
        db.close()


def test_replace_writes_audit_after_commit(services, session_factory, db, cashier):
    services.store.replace_user_permissions(
        db, cashier.user_id, ["reports.view"], actor_user_id=1, meta=RequestMeta(ip="10.1.1.1"),
    )
    check = session_factory()
    try:
        row = check.query(AuditLog).one()
        assert row.action == "user_permissions.replace"
        assert row.actor_user_id == 1
        assert row.record_id == str(cashier.user_id)
        assert row.new_value_json == '["reports.view"]'
        assert row.ip_address == "10.1.1.1"
    finally:
        check.close()


def test_rollback_drops_pending_entry(services, session_factory, db, cashier):
    services.audit.record_after_commit(db, 1, "never.written", "users", cashier.user_id)
    db.rollback()
    db.commit()
    assert actions(session_factory) == []


def test_audit_failure_is_swallowed(clock):
    audit = AuditService(MagicMock(side_effect=RuntimeError("db gone")), clock)
    assert audit.record(1, "anything") is False


def test_business_commit_survives_audit_failure(services, db, cashier, monkeypatch):
    monkeypatch.setattr(services.audit, "session_factory", MagicMock(side_effect=RuntimeError("db gone")))

    services.store.replace_user_permissions(db, cashier.user_id, ["reports.view"])

    assert "reports.view" in services.permissions.resolve_fresh(db, cashier.user_id)


def test_eviction_is_audited(services, session_factory, db, cashier):
    device = parse_device_info("curl/8.0", "127.0.0.1")
    for _ in range(3):
        services.sessions.create_session(db, cashier.user_id, uuid.uuid4().hex, device, timedelta(days=1))

    assert actions(session_factory) == [
        "session.create", "session.create", "session.evicted", "session.create",
    ]


def test_clear_logs_records_itself(services, session_factory, db, cashier):
    services.sessions.set_limit(db, cashier.user_id, 3, actor_user_id=7)
    assert actions(session_factory) == ["session_limit.update"]

    deleted = services.audit.clear_logs(db, actor_user_id=7)

    assert deleted == 1
    assert actions(session_factory) == ["audit_logs.clear"]


def test_query_logs_filters_and_paginates(services, db, cashier):
    for n in range(1, 4):
        services.sessions.set_limit(db, cashier.user_id, n, actor_user_id=7)
    services.store.replace_user_permissions(db, cashier.user_id, [], actor_user_id=8)

    result = services.audit.query_logs(db, action="session_limit", page=1, page_size=2)
    assert result["total"] == 3
    assert len(result["logs"]) == 2

    by_actor = services.audit.query_logs(db, actor_user_id=8)
    assert [log.action for log in by_actor["logs"]] == ["user_permissions.replace"]
