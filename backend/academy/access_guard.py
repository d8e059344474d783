# academy/access_guard.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from academy import auth, models
from academy.auth import SessionInfo
from academy.auth_state import AuthSnapshot, ProfileUnavailable, build_snapshot
from academy.database import get_db
from academy.membership import AccessState, resolve_route

logger = logging.getLogger(__name__)

DISABLED_LOGIN_PATH = "/login?notice=account_disabled"


def get_auth_snapshot(
    request: Request,
    db: Session = Depends(get_db),
    session: Optional[SessionInfo] = Depends(auth.get_session),
) -> AuthSnapshot:
    """
    Fresh gate evaluation for this request (never cached across requests).

    A disabled profile is signed out right here, so its token dies with this request.
    """
    try:
        snapshot, profile = build_snapshot(db, session)
    except ProfileUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "PROFILE_UNAVAILABLE", "message": "Profile could not be loaded. Try again shortly."},
        )

    if snapshot.state == AccessState.DISABLED and isinstance(profile, models.Profile):
        logger.info("disabled account %s hit %s, revoking session", profile.id, request.url.path)
        auth.sign_out_profile(db, profile)

    request.state.auth_snapshot = snapshot
    request.state.auth_profile = profile
    return snapshot


def _blocked(snapshot: AuthSnapshot, redirect_to: str, notice: str) -> HTTPException:
    if snapshot.state == AccessState.UNAUTHENTICATED:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "NOT_AUTHENTICATED", "message": snapshot.notice or "Not authenticated", "redirect": redirect_to},
            headers={"WWW-Authenticate": "Bearer"},
        )

    if snapshot.state == AccessState.DISABLED:
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "ACCOUNT_DISABLED", "message": notice, "redirect": DISABLED_LOGIN_PATH},
        )

    if snapshot.state == AccessState.EXPIRED:
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "code": "MEMBERSHIP_EXPIRED",
                "message": notice,
                "redirect": redirect_to,
                "access_end": snapshot.access_end.isoformat() if snapshot.access_end else None,
            },
        )

    # ACTIVE member asking for a surface that isn't theirs (/jail)
    return HTTPException(
        status_code=status.HTTP_303_SEE_OTHER,
        detail={"code": "MEMBERSHIP_ACTIVE", "redirect": redirect_to},
        headers={"Location": redirect_to},
    )


def enforce_access(request: Request, snapshot: AuthSnapshot) -> None:
    decision = resolve_route(snapshot.state, request.url.path)
    if decision.allowed:
        return
    raise _blocked(snapshot, decision.redirect_to or "/login", decision.notice)


def require_active_access(
    request: Request,
    snapshot: AuthSnapshot = Depends(get_auth_snapshot),
) -> Any:
    """
    Gate for protected routes. Returns the profile (ORM row, or the fallback
    profile when the store could not be read).

    /jail and /subscription use this too: the routing rules keep them open
    for expired members.
    """
    enforce_access(request, snapshot)
    return request.state.auth_profile


def require_stored_profile(profile: Any = Depends(require_active_access)) -> models.Profile:
    """Like require_active_access, but writes need the real row."""
    if not isinstance(profile, models.Profile):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "PROFILE_UNAVAILABLE", "message": "Profile could not be loaded. Try again shortly."},
        )
    return profile


def require_active_admin(profile: models.Profile = Depends(require_stored_profile)) -> models.Profile:
    """Admin routes reuse the gate's profile; no second read of the store."""
    if not auth.is_admin(profile):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "NOT_ADMIN", "message": "Admin privileges required"},
        )
    return profile
