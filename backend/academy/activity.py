# academy/activity.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy import auth, models

logger = logging.getLogger(__name__)

# Actions recorded for students
LOGIN = "LOGIN"
LOGOUT = "LOGOUT"
PAGE_VISIT = "PAGE_VISIT"
WATCH_LESSON = "WATCH_LESSON"
UPDATE_PROFILE = "UPDATE_PROFILE"
COMMENT = "COMMENT"
SUPPORT_TICKET = "SUPPORT_TICKET"


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def log_activity(
    db: Session,
    profile: Any,
    action: str,
    metadata: Optional[dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> Optional[models.ActivityLog]:
    """
    Records a student action. Admin activity is not tracked.

    Tracking must never break the request: store errors are logged and dropped.
    """
    if profile is None or auth.is_admin(profile):
        return None
    if not isinstance(profile, models.Profile):
        # fallback profile: nothing to attach the row to
        return None

    details = dict(metadata or {})
    if request is not None:
        details.setdefault("user_agent", request.headers.get("user-agent") or "")
        details.setdefault("ip_address", client_ip(request))

    row = models.ActivityLog(user_id=profile.id, action=action, details=details)
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("could not record %s for user %s: %s", action, profile.id, e)
        return None
    return row
