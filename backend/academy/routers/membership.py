# academy/routers/membership.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from academy import models, progress, schemas, support
from academy.access_guard import require_active_access
from academy.config import support_contact_url
from academy.database import get_db
from academy.membership import (
    DEFAULT_TIER,
    EXPIRED_NOTICE,
    access_end_date,
    days_until_renewal,
    is_membership_expired,
    tier_display_name,
)

router = APIRouter(tags=["membership"])


# -------------------------------------------------
# REACHABLE WHILE EXPIRED
# -------------------------------------------------
@router.get("/subscription", response_model=schemas.SubscriptionOut)
def subscription(profile: Any = Depends(require_active_access)):
    tier = profile.membership_type or DEFAULT_TIER
    days = profile.renew_interval_days
    return schemas.SubscriptionOut(
        membership_type=tier,
        display_name=tier_display_name(tier, days),
        subscription_date=profile.subscription_date,
        renew_interval_days=days,
        access_end=access_end_date(profile.subscription_date, days),
        days_until_renewal=days_until_renewal(profile.subscription_date, days),
        expired=is_membership_expired(profile.subscription_date, days),
    )


@router.get("/jail", response_model=schemas.JailOut)
def jail(profile: Any = Depends(require_active_access)):
    """Renewal-required notice. Active members are sent to /home by the guard."""
    return schemas.JailOut(
        name=profile.name or "",
        membership_type=tier_display_name(profile.membership_type, profile.renew_interval_days),
        expired_since=access_end_date(profile.subscription_date, profile.renew_interval_days),
        notice=EXPIRED_NOTICE,
        contact_url=support_contact_url(),
    )


# -------------------------------------------------
# ACTIVE ONLY
# -------------------------------------------------
@router.get("/home")
def home(
    request: Request,
    db: Session = Depends(get_db),
    profile: Any = Depends(require_active_access),
):
    snapshot = request.state.auth_snapshot
    out: dict[str, Any] = {
        "name": snapshot.user.name if snapshot.user else "",
        "membership_type": tier_display_name(profile.membership_type, profile.renew_interval_days),
        "is_admin": snapshot.user.is_admin if snapshot.user else False,
        "continue_learning": None,
        "daily_drop": None,
        "support_unread": 0,
    }

    if not isinstance(profile, models.Profile):
        # fallback profile: the store is unreachable, serve the bare dashboard
        return out

    out["continue_learning"] = progress.continue_learning(db, profile.id)
    out["support_unread"] = support.unread_total(db, user_id=profile.id)

    drop = db.scalar(select(models.DailyDrop).order_by(models.DailyDrop.created_at.desc()).limit(1))
    if drop is not None:
        out["daily_drop"] = schemas.DailyDropOut.model_validate(drop).model_dump()
    return out
