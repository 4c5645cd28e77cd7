"""Celery app and periodic maintenance tasks."""

import logging
from datetime import timedelta

from celery import Celery
from ims_backend.core.config import settings

logger = logging.getLogger("ims_backend.tasks")

celery_app = Celery(
    "ims_backend",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_soft_time_limit=120,
    task_time_limit=300,
    beat_schedule={
        "sweep-expired-sessions": {
            "task": "sweep_expired_sessions",
            "schedule": timedelta(minutes=settings.SESSION_SWEEP_INTERVAL_MINUTES),
        },
    },
)

_services = None


def _get_services():
    global _services
    if _services is None:
        from ims_backend.core.container import build_services
        _services = build_services(settings)
    return _services


@celery_app.task(name="sweep_expired_sessions")
def sweep_expired_sessions() -> dict:
    """Delete expired sessions and inactive ones past retention."""
    services = _get_services()
    db = services.session_factory()
    try:
        result = services.sessions.sweep_expired(db)
        logger.info("Session sweep finished: %s", result)
        return result
    finally:
        db.close()
