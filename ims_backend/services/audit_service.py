"""Audit service: append-only audit trail for access mutations.

Audit writes are best effort. They run in their own DB session, after the
business transaction they describe has committed, and a failure is logged
here and never reaches the caller.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Any

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.orm import Session

from ims_backend.models.audit_log import AuditLog

logger = logging.getLogger("ims_backend.audit")

_PENDING_KEY = "pending_audit"


def _drop_pending(session: Session) -> None:
    dropped = session.info.get(_PENDING_KEY)
    if dropped:
        logger.debug("Dropping %d audit entries after rollback", len(dropped))
    session.info[_PENDING_KEY] = []


@dataclass(frozen=True)
class RequestMeta:
    """Client details copied off the request for audit rows."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        ip = request.client.host if request.client else None
        ua = request.headers.get("user-agent", "")[:500] or None
        return cls(ip=ip, user_agent=ua)


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


class AuditService:
    """Records immutable audit log entries."""

    def __init__(self, session_factory, clock):
        self.session_factory = session_factory
        self.clock = clock

    def record(
        self,
        actor_user_id: Optional[int],
        action: str,
        table: Optional[str] = None,
        record_id: Optional[Any] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Write a single audit log record in a dedicated session.

        Args:
            action: e.g. "role_permissions.replace", "session.evicted"
            table: the table whose row the action touched

        Returns False if the write failed; the failure is logged, not raised.
        """
        try:
            with self.session_factory() as db:
                db.add(AuditLog(
                    actor_user_id=actor_user_id,
                    action=action,
                    table_name=table,
                    record_id=str(record_id) if record_id is not None else None,
                    old_value_json=_dump(old_value),
                    new_value_json=_dump(new_value),
                    ip_address=ip,
                    user_agent=user_agent,
                    created_at=self.clock.now(),
                ))
                db.commit()
            return True
        except Exception:
            logger.exception("Audit write failed for action %s on %s:%s", action, table, record_id)
            return False

    def record_after_commit(
        self,
        db: Session,
        actor_user_id: Optional[int],
        action: str,
        table: Optional[str] = None,
        record_id: Optional[Any] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Queue an audit record that is written once ``db`` commits.

        If the business transaction rolls back instead, the record is dropped.
        """
        meta = meta or RequestMeta()
        pending = db.info.get(_PENDING_KEY)
        if pending is None:
            pending = db.info[_PENDING_KEY] = []
            event.listen(db, "after_commit", self._flush_pending)
            event.listen(db, "after_rollback", _drop_pending)
        pending.append(dict(
            actor_user_id=actor_user_id,
            action=action,
            table=table,
            record_id=record_id,
            old_value=old_value,
            new_value=new_value,
            ip=meta.ip,
            user_agent=meta.user_agent,
        ))

    def _flush_pending(self, session: Session) -> None:
        pending = session.info.get(_PENDING_KEY) or []
        session.info[_PENDING_KEY] = []
        for entry in pending:
            self.record(**entry)

    def query_logs(
        self,
        db: Session,
        actor_user_id: Optional[int] = None,
        action: Optional[str] = None,
        table: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query audit logs with filters and pagination."""
        query = db.query(AuditLog)

        if actor_user_id:
            query = query.filter(AuditLog.actor_user_id == actor_user_id)
        if action:
            query = query.filter(AuditLog.action.ilike(f"%{action}%"))
        if table:
            query = query.filter(AuditLog.table_name == table)

        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.audit_id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    def clear_logs(self, db: Session, actor_user_id: int, meta: Optional[RequestMeta] = None) -> int:
        """Delete every audit row, then record who cleared them."""
        deleted = db.query(AuditLog).delete(synchronize_session=False)
        self.record_after_commit(
            db, actor_user_id, "audit_logs.clear", "audit_logs",
            new_value={"deleted": deleted}, meta=meta,
        )
        db.commit()
        logger.info("User %s cleared %s audit log rows", actor_user_id, deleted)
        return deleted
