"""Session manager: concurrent-session limits, LRU eviction, sweeps.

Session states: ACTIVE -> (logout | evicted | expired) -> INACTIVE.
INACTIVE rows are never reactivated; the retention sweep deletes them.

``create_session`` serializes per user in two layers:

* ``SELECT ... FOR UPDATE`` on the user's ``users`` row, which holds across
  processes on MySQL/PostgreSQL;
* a process-local ``threading.Lock`` per user, which covers SQLite (where
  ``FOR UPDATE`` is a no-op) and saves a DB round-trip of lock contention
  between threads of one worker.
"""

import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ims_backend.core.device import DeviceInfo
from ims_backend.core.exceptions import ResourceNotFoundError, ValidationError
from ims_backend.models.user import User
from ims_backend.models.user_session import UserSession, SessionLimit, DeactivationReason
from ims_backend.services.audit_service import RequestMeta

logger = logging.getLogger("ims_backend.sessions")

MIN_SESSION_LIMIT = 1
MAX_SESSION_LIMIT = 10


@dataclass(frozen=True)
class SessionInfo:
    session_id: str
    device_type: Optional[str]
    browser: Optional[str]
    os: Optional[str]
    ip_address: Optional[str]
    location: Optional[str]
    last_activity: datetime
    created_at: datetime
    is_current: bool


@dataclass(frozen=True)
class CreatedSession:
    session: UserSession
    evicted_session_ids: list


class SessionManager:
    """Creates, validates, lists and retires user sessions."""

    def __init__(
        self,
        clock,
        audit,
        default_max_sessions: int = 2,
        retention: timedelta = timedelta(days=7),
    ):
        self.clock = clock
        self.audit = audit
        self.default_max_sessions = default_max_sessions
        self.retention = retention
        # one lock per user id seen by this process; bounded by the users table
        self._locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: int):
        with self._locks_guard:
            lock = self._locks[user_id]
        with lock:
            yield

    @staticmethod
    def _active(db: Session, user_id: int, now: datetime):
        return db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            UserSession.expires_at > now,
        )

    def _deactivate(self, session: UserSession, reason: DeactivationReason, now: datetime) -> None:
        session.is_active = False
        session.deactivated_at = now
        session.deactivation_reason = reason

    # ---- limits ----

    def get_limit(self, db: Session, user_id: int) -> int:
        row = db.query(SessionLimit).filter(SessionLimit.user_id == user_id).first()
        return row.max_sessions if row else self.default_max_sessions

    def set_limit(
        self,
        db: Session,
        user_id: int,
        max_sessions: int,
        actor_user_id: Optional[int] = None,
        meta: Optional[RequestMeta] = None,
    ) -> int:
        """Upsert the user's cap. Takes effect at the next ``create_session``."""
        if not MIN_SESSION_LIMIT <= max_sessions <= MAX_SESSION_LIMIT:
            raise ValidationError(
                f"max_sessions must be between {MIN_SESSION_LIMIT} and {MAX_SESSION_LIMIT}"
            )
        if db.query(User.user_id).filter(User.user_id == user_id).first() is None:
            raise ResourceNotFoundError("User not found")

        row = db.query(SessionLimit).filter(SessionLimit.user_id == user_id).first()
        old = row.max_sessions if row else None
        if row is None:
            row = SessionLimit(user_id=user_id, max_sessions=max_sessions)
            db.add(row)
        row.max_sessions = max_sessions
        row.updated_at = self.clock.now()

        self.audit.record_after_commit(
            db, actor_user_id, "session_limit.update", "session_limits", user_id,
            old_value={"max_sessions": old}, new_value={"max_sessions": max_sessions}, meta=meta,
        )
        db.commit()
        return max_sessions

    # ---- lifecycle ----

    def create_session(
        self,
        db: Session,
        user_id: int,
        refresh_token_hash: str,
        device: DeviceInfo,
        ttl: timedelta,
        session_id: Optional[str] = None,
    ) -> CreatedSession:
        """Insert a new ACTIVE session, evicting least-recently-active ones.

        Read limit, count, evict and insert happen in one transaction while
        the per-user lock is held.
        """
        with self._user_lock(user_id):
            try:
                user = (
                    db.query(User)
                    .filter(User.user_id == user_id)
                    .with_for_update()
                    .first()
                )
                if user is None:
                    raise ResourceNotFoundError("User not found")

                now = self.clock.now()
                max_sessions = self.get_limit(db, user_id)
                active = (
                    self._active(db, user_id, now)
                    .order_by(UserSession.last_activity.asc(), UserSession.session_id.asc())
                    .with_for_update()
                    .all()
                )

                # One eviction in the steady state; more only if the limit
                # was lowered since the last login.
                overflow = len(active) - max_sessions + 1
                evicted = active[:overflow] if overflow > 0 else []
                for old in evicted:
                    self._deactivate(old, DeactivationReason.evicted, now)

                session = UserSession(
                    session_id=session_id or str(uuid.uuid4()),
                    user_id=user_id,
                    refresh_token_hash=refresh_token_hash,
                    ip_address=device.ip,
                    user_agent=device.user_agent,
                    device_type=device.device_type,
                    browser=device.browser,
                    os=device.os,
                    location=device.location,
                    is_active=True,
                    last_activity=now,
                    expires_at=now + ttl,
                    created_at=now,
                )
                db.add(session)

                meta = RequestMeta(ip=device.ip, user_agent=device.user_agent)
                for old in evicted:
                    self.audit.record_after_commit(
                        db, user_id, "session.evicted", "user_sessions", old.session_id,
                        old_value={"last_activity": old.last_activity},
                        new_value={"replaced_by": session.session_id}, meta=meta,
                    )
                self.audit.record_after_commit(
                    db, user_id, "session.create", "user_sessions", session.session_id,
                    new_value={"device_type": device.device_type, "browser": device.browser, "os": device.os},
                    meta=meta,
                )
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(session)
        if evicted:
            logger.info(
                "User %s reached %d session(s); evicted %s",
                user_id, max_sessions, ", ".join(s.session_id for s in evicted),
            )
        return CreatedSession(session=session, evicted_session_ids=[s.session_id for s in evicted])

    def touch(self, db: Session, session_id: str) -> bool:
        """Bump ``last_activity``; never revives an inactive session."""
        updated = (
            db.query(UserSession)
            .filter(UserSession.session_id == session_id, UserSession.is_active.is_(True))
            .update({UserSession.last_activity: self.clock.now()}, synchronize_session=False)
        )
        db.commit()
        return updated > 0

    def validate(self, db: Session, refresh_token_hash: str) -> Optional[UserSession]:
        """The session for this refresh token if it is active and unexpired."""
        return db.query(UserSession).filter(
            UserSession.refresh_token_hash == refresh_token_hash,
            UserSession.is_active.is_(True),
            UserSession.expires_at > self.clock.now(),
        ).first()

    def is_active(self, db: Session, session_id: str) -> bool:
        return db.query(UserSession.session_id).filter(
            UserSession.session_id == session_id,
            UserSession.is_active.is_(True),
            UserSession.expires_at > self.clock.now(),
        ).first() is not None

    def list_active(self, db: Session, user_id: int, current_session_id: Optional[str] = None) -> list[SessionInfo]:
        sessions = (
            self._active(db, user_id, self.clock.now())
            .order_by(UserSession.last_activity.desc(), UserSession.session_id.asc())
            .all()
        )
        return [
            SessionInfo(
                session_id=s.session_id,
                device_type=s.device_type,
                browser=s.browser,
                os=s.os,
                ip_address=s.ip_address,
                location=s.location,
                last_activity=s.last_activity,
                created_at=s.created_at,
                is_current=s.session_id == current_session_id,
            )
            for s in sessions
        ]

    def logout_one(
        self,
        db: Session,
        user_id: int,
        session_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Deactivate one of the caller's sessions.

        Raises:
            ResourceNotFoundError: the session is unknown or owned by someone else.
        """
        session = db.query(UserSession).filter(
            UserSession.session_id == session_id,
            UserSession.user_id == user_id,
        ).first()
        if session is None:
            raise ResourceNotFoundError("Session not found")
        if session.is_active:
            self._deactivate(session, DeactivationReason.logout, self.clock.now())
            self.audit.record_after_commit(
                db, user_id, "session.logout", "user_sessions", session_id, meta=meta,
            )
        db.commit()

    def logout_others(
        self,
        db: Session,
        user_id: int,
        current_session_id: Optional[str],
        meta: Optional[RequestMeta] = None,
    ) -> int:
        now = self.clock.now()
        query = db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
        )
        if current_session_id:
            query = query.filter(UserSession.session_id != current_session_id)
        sessions = query.all()
        for session in sessions:
            self._deactivate(session, DeactivationReason.logout_others, now)
        if sessions:
            self.audit.record_after_commit(
                db, user_id, "session.logout_others", "user_sessions", current_session_id,
                new_value={"count": len(sessions)}, meta=meta,
            )
        db.commit()
        return len(sessions)

    def sweep_expired(self, db: Session) -> dict:
        """Delete expired rows and inactive rows past retention.

        Pure deletes by predicate, so repeated or concurrent runs are safe.
        """
        now = self.clock.now()
        expired = (
            db.query(UserSession)
            .filter(UserSession.expires_at < now)
            .delete(synchronize_session=False)
        )
        stale = (
            db.query(UserSession)
            .filter(
                UserSession.is_active.is_(False),
                UserSession.last_activity < now - self.retention,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        result = {"expired": expired, "inactive": stale, "deleted": expired + stale}
        if result["deleted"]:
            logger.info("Session sweep deleted %d row(s)", result["deleted"])
            self.audit.record(None, "session.sweep", "user_sessions", new_value=result)
        return result
