# academy/membership.py
"""
Membership gate.

One decision, made fresh on every request / auth event:

    no session            -> UNAUTHENTICATED  (go to /login)
    profile.disabled      -> DISABLED         (sign out, notice, go to /login)
    now > start + N days  -> EXPIRED          (go to /jail; /jail + /subscription stay reachable)
    otherwise             -> ACTIVE

Nothing here touches the database; callers hand in the subscription fields.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from academy.feature_flags import (
    EXPIRED_ALLOWED_PREFIXES,
    HOME_PATH,
    JAIL_PATH,
    LOGIN_PATH,
    is_always_allowed,
    path_matches,
)

# -------------------------------------------------
# Membership tiers
# -------------------------------------------------
TIER_FREE_TRIAL = "Free Trial"
TIER_MONTHLY = "TOP G - Monthly"
TIER_ANNUAL = "TOP G - Annually"

# Legacy labels still present on older profiles
TIER_LEGACY_TOP_G = "TOP G"
LEGACY_TIERS = ("WAR ROOM", "THE REAL WORLD")

CURRENT_TIERS = (TIER_FREE_TRIAL, TIER_MONTHLY, TIER_ANNUAL)

DEFAULT_TIER = TIER_LEGACY_TOP_G  # what a profile-less session is shown as

_TIER_DAYS = {
    TIER_FREE_TRIAL: 1,
    TIER_MONTHLY: 30,
    TIER_ANNUAL: 365,
}


def default_renew_days(tier: Optional[str]) -> int:
    return _TIER_DAYS.get((tier or "").strip(), 30)


def normalize_tier(tier: Optional[str], renew_interval_days: Optional[int] = None) -> str:
    """
    Maps legacy tiers onto the current ones:
      - "TOP G"                       -> Annually if 365 days, else Monthly
      - "WAR ROOM" / "THE REAL WORLD" -> Monthly
      - anything unknown              -> Monthly
    """
    t = (tier or "").strip()
    if t == TIER_LEGACY_TOP_G:
        return TIER_ANNUAL if renew_interval_days == 365 else TIER_MONTHLY
    if t in LEGACY_TIERS:
        return TIER_MONTHLY
    if t in CURRENT_TIERS:
        return t
    return TIER_MONTHLY


def tier_display_name(tier: Optional[str], renew_interval_days: Optional[int] = None) -> str:
    t = (tier or "").strip()
    if t == TIER_FREE_TRIAL:
        return TIER_FREE_TRIAL
    if t == TIER_MONTHLY or (t == TIER_LEGACY_TOP_G and renew_interval_days == 30):
        return TIER_MONTHLY
    if t == TIER_ANNUAL or (t == TIER_LEGACY_TOP_G and renew_interval_days == 365):
        return TIER_ANNUAL
    return t or TIER_LEGACY_TOP_G


# -------------------------------------------------
# Expiry
# -------------------------------------------------
def _utcnow() -> datetime:
    return datetime.utcnow()


def today() -> date:
    """Calendar date on the same clock the expiry check uses."""
    return _utcnow().date()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _as_datetime(value: Any) -> Optional[datetime]:
    """
    Accepts date, datetime, ISO string, or None.
    Returns a naive UTC datetime; aware values are converted first.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return _naive_utc(datetime.fromisoformat(str(value).strip()))
    except ValueError:
        return None


def access_end_date(subscription_date: Any, renew_interval_days: Optional[int]) -> Optional[datetime]:
    """start + N days, or None when either field is missing/unparseable."""
    start = _as_datetime(subscription_date)
    if start is None or renew_interval_days is None:
        return None
    return start + timedelta(days=int(renew_interval_days))


def is_membership_expired(
    subscription_date: Any,
    renew_interval_days: Optional[int],
    now: Any = None,
) -> bool:
    end = access_end_date(subscription_date, renew_interval_days)
    if end is None:
        return False  # if we can't determine, don't brick them
    current = _as_datetime(now) if now is not None else _utcnow()
    return current > end


def days_until_renewal(subscription_date: Any, renew_interval_days: Optional[int], now: Any = None) -> Optional[int]:
    end = access_end_date(subscription_date, renew_interval_days)
    if end is None:
        return None
    current = _as_datetime(now) if now is not None else _utcnow()
    remaining = end - current
    return max(0, int((remaining.total_seconds() + 86399) // 86400))


# -------------------------------------------------
# Classification
# -------------------------------------------------
class AccessState(str, enum.Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    DISABLED = "DISABLED"
    EXPIRED = "EXPIRED"
    ACTIVE = "ACTIVE"


def classify_access(has_session: bool, profile: Any = None, now: Any = None) -> AccessState:
    """
    `profile` is anything with subscription_date / renew_interval_days / disabled
    attributes (ORM row, fallback profile, or None).
    """
    if not has_session:
        return AccessState.UNAUTHENTICATED

    if bool(getattr(profile, "disabled", False)):
        return AccessState.DISABLED

    if is_membership_expired(
        getattr(profile, "subscription_date", None),
        getattr(profile, "renew_interval_days", None),
        now,
    ):
        return AccessState.EXPIRED

    return AccessState.ACTIVE


# -------------------------------------------------
# Routing contract
# -------------------------------------------------
DISABLED_NOTICE = "Your account has been disabled. Please contact administration."
EXPIRED_NOTICE = "Your membership has expired. Please renew your subscription to continue."


@dataclass(frozen=True)
class RouteDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    sign_out: bool = False
    notice: str = ""


def resolve_route(state: AccessState, path: str) -> RouteDecision:
    """
    Maps (state, requested path) to what the caller should do.

    Public paths are always allowed. /jail is only for expired members:
    everyone else is sent where they belong, so it can't loop.
    """
    if is_always_allowed(path):
        return RouteDecision(True)

    if state == AccessState.UNAUTHENTICATED:
        return RouteDecision(False, redirect_to=LOGIN_PATH)

    if state == AccessState.DISABLED:
        return RouteDecision(False, redirect_to=LOGIN_PATH, sign_out=True, notice=DISABLED_NOTICE)

    if state == AccessState.EXPIRED:
        if any(path_matches(path, p) for p in EXPIRED_ALLOWED_PREFIXES):
            return RouteDecision(True)
        return RouteDecision(False, redirect_to=JAIL_PATH, notice=EXPIRED_NOTICE)

    # ACTIVE
    if path_matches(path, JAIL_PATH):
        return RouteDecision(False, redirect_to=HOME_PATH)
    return RouteDecision(True)
