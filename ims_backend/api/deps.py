"""Shared router dependencies."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ims_backend.core.container import Services, get_services
from ims_backend.core.exceptions import AuthenticationError
from ims_backend.core.security import CurrentUser, get_current_user
from ims_backend.db.session import get_db


def report_activity(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    current: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Touch the caller's session; reject tokens whose session was retired."""
    if current.session_id and not services.sessions.touch(db, current.session_id):
        raise AuthenticationError("Session is no longer active")
    return current
