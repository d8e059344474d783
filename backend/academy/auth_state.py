# academy/auth_state.py
"""
Auth state: who is signed in and what the gate makes of their profile.

Consumers get an immutable AuthSnapshot. There is exactly one writer:
  - HTTP requests build a fresh snapshot per request (build_snapshot)
  - long-lived consumers (websockets) own an AuthStateManager fed with auth events
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy import auth
from academy.auth import SessionInfo
from academy.config import auth_load_timeout_seconds, profile_fail_open
from academy.membership import (
    DEFAULT_TIER,
    DISABLED_NOTICE,
    AccessState,
    access_end_date,
    classify_access,
    is_membership_expired,
)
from academy.realtime import Hub, Subscription

logger = logging.getLogger(__name__)

PROFILE_UNAVAILABLE_NOTICE = "Your profile could not be loaded. Please sign in again."


class AuthEvent(str, enum.Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class SessionRevoked(Exception):
    """The token is well-formed but its profile is gone or was signed out."""


class ProfileUnavailable(Exception):
    """Profile fetch failed and fail-open is switched off."""


@dataclass(frozen=True)
class FallbackProfile:
    """Minimal identity used when the profile store can't be read."""
    id: int
    email: str = ""
    name: str = ""
    bio: str = ""
    avatar_url: str = ""
    membership_type: str = DEFAULT_TIER
    subscription_date: Any = None
    renew_interval_days: Optional[int] = None
    disabled: bool = False
    is_admin: bool = False


@dataclass(frozen=True)
class UserView:
    uid: int
    email: str
    name: str
    bio: str
    profile_pic: str
    membership_type: str
    disabled: bool
    is_admin: bool
    is_fallback: bool = False


@dataclass(frozen=True)
class AuthSnapshot:
    session: Optional[SessionInfo] = None
    user: Optional[UserView] = None
    loading: bool = False
    state: AccessState = AccessState.UNAUTHENTICATED
    membership_expired: bool = False
    access_end: Optional[datetime] = None
    notice: str = ""
    generation: int = 0


def fallback_profile(session: SessionInfo) -> FallbackProfile:
    return FallbackProfile(id=session.user_id, email=session.email)


def user_view(session: SessionInfo, profile: Any) -> UserView:
    fallback = isinstance(profile, FallbackProfile)
    return UserView(
        uid=session.user_id,
        email=getattr(profile, "email", None) or session.email,
        name=getattr(profile, "name", None) or ("" if fallback else "Elitez Club User"),
        bio=getattr(profile, "bio", None) or "",
        profile_pic=getattr(profile, "avatar_url", None) or "",
        membership_type=getattr(profile, "membership_type", None) or DEFAULT_TIER,
        disabled=bool(getattr(profile, "disabled", False)),
        is_admin=auth.is_admin(profile),
        is_fallback=fallback,
    )


def snapshot_for(
    session: Optional[SessionInfo],
    profile: Any,
    *,
    now: Any = None,
    generation: int = 0,
    notice: str = "",
) -> AuthSnapshot:
    """Pure: (session, profile, clock) -> snapshot."""
    state = classify_access(session is not None, profile, now)

    if state == AccessState.UNAUTHENTICATED:
        return AuthSnapshot(generation=generation, notice=notice)

    if state == AccessState.DISABLED:
        # the session does not survive a disabled profile
        return AuthSnapshot(state=state, generation=generation, notice=notice or DISABLED_NOTICE)

    sub_date = getattr(profile, "subscription_date", None)
    renew_days = getattr(profile, "renew_interval_days", None)
    return AuthSnapshot(
        session=session,
        user=user_view(session, profile),
        loading=False,
        state=state,
        membership_expired=is_membership_expired(sub_date, renew_days, now),
        access_end=access_end_date(sub_date, renew_days),
        notice=notice,
        generation=generation,
    )


# -------------------------------------------------
# HTTP path (sync, one snapshot per request)
# -------------------------------------------------
def fetch_profile_or_fallback(db: Session, session: SessionInfo, fail_open: Optional[bool] = None) -> Any:
    """
    Profile row for this session.
      - store error      -> FallbackProfile (or ProfileUnavailable if fail-open is off)
      - missing/revoked  -> SessionRevoked
    """
    fail_open = profile_fail_open() if fail_open is None else fail_open
    try:
        profile = auth.load_profile(db, session.user_id)
    except SQLAlchemyError as e:
        db.rollback()
        if not fail_open:
            raise ProfileUnavailable(str(e)) from e
        logger.warning("profile fetch failed for user %s, using fallback profile: %s", session.user_id, e)
        return fallback_profile(session)

    if not auth.session_is_current(session, profile):
        raise SessionRevoked()
    return profile


def build_snapshot(db: Session, session: Optional[SessionInfo], now: Any = None) -> tuple[AuthSnapshot, Any]:
    """Returns (snapshot, profile). profile is None when unauthenticated."""
    if session is None:
        return AuthSnapshot(), None
    try:
        profile = fetch_profile_or_fallback(db, session)
    except SessionRevoked:
        return AuthSnapshot(), None
    return snapshot_for(session, profile, now=now), profile


# -------------------------------------------------
# Long-lived consumers (async, event driven)
# -------------------------------------------------
ProfileFetcher = Callable[[SessionInfo], Awaitable[Any]]
SignOut = Callable[[SessionInfo], Awaitable[None]]


class AuthStateManager:
    """
    Owns one AuthSnapshot and replaces it on every auth event.

    Each event bumps a generation counter. A profile fetch that completes after a
    newer event has started is discarded, so a slow response can't overwrite
    newer state. The fetch is bounded by `timeout`; on expiry loading is forced
    to finish (with the fallback profile when fail-open is on).
    """

    _CHANNEL = "snapshot"

    def __init__(
        self,
        fetch_profile: ProfileFetcher,
        *,
        sign_out: Optional[SignOut] = None,
        timeout: Optional[float] = None,
        fail_open: Optional[bool] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._fetch_profile = fetch_profile
        self._sign_out = sign_out
        self._timeout = auth_load_timeout_seconds() if timeout is None else timeout
        self._fail_open = profile_fail_open() if fail_open is None else fail_open
        self._clock = clock or datetime.utcnow
        self._generation = 0
        self._snapshot = AuthSnapshot(loading=True)
        self._hub = Hub()

    @property
    def snapshot(self) -> AuthSnapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: Callable[[AuthSnapshot], None]) -> Subscription:
        return self._hub.subscribe(self._CHANNEL, listener)

    def _publish(self, snapshot: AuthSnapshot) -> AuthSnapshot:
        self._snapshot = snapshot
        self._hub.publish(self._CHANNEL, snapshot)
        return snapshot

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _load(self, session: SessionInfo) -> Any:
        try:
            return await asyncio.wait_for(self._fetch_profile(session), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("profile fetch for user %s timed out after %.1fs", session.user_id, self._timeout)
            failure: Exception = asyncio.TimeoutError()
        except SessionRevoked:
            raise
        except Exception as e:
            logger.warning("profile fetch for user %s failed: %s", session.user_id, e)
            failure = e

        if not self._fail_open:
            raise ProfileUnavailable(str(failure)) from failure
        return fallback_profile(session)

    async def handle_event(self, event: AuthEvent, session: Optional[SessionInfo]) -> AuthSnapshot:
        self._generation += 1
        generation = self._generation

        if event == AuthEvent.SIGNED_OUT or session is None:
            return self._publish(AuthSnapshot(generation=generation))

        self._publish(replace(self._snapshot, session=session, loading=True, generation=generation))

        try:
            profile = await self._load(session)
        except SessionRevoked:
            if not self._is_current(generation):
                return self._snapshot
            return self._publish(AuthSnapshot(generation=generation))
        except ProfileUnavailable:
            if not self._is_current(generation):
                return self._snapshot
            return self._publish(AuthSnapshot(generation=generation, notice=PROFILE_UNAVAILABLE_NOTICE))

        if not self._is_current(generation):
            logger.debug("discarding profile for superseded auth event (gen %s < %s)", generation, self._generation)
            return self._snapshot

        snapshot = snapshot_for(session, profile, now=self._clock(), generation=generation)

        if snapshot.state == AccessState.DISABLED and self._sign_out is not None:
            logger.info("user %s is disabled, signing out", session.user_id)
            await self._sign_out(session)
            if not self._is_current(generation):
                return self._snapshot

        return self._publish(snapshot)
