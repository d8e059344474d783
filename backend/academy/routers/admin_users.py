# academy/routers/admin_users.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from academy import auth, models, schemas
from academy.access_guard import require_active_admin
from academy.config import support_contact_url
from academy.database import get_db
from academy.email_templates import account_disabled
from academy.emailer import send_email_if_configured
from academy.membership import default_renew_days, normalize_tier, today

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[
        Depends(require_active_admin),  # admin + active session
    ],
)


def _get_user(db: Session, user_id: int) -> models.Profile:
    p = db.get(models.Profile, user_id)
    if not p:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "User not found"})
    return p


@router.get("/users", response_model=list[schemas.ProfileOut])
def admin_list_users(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    stmt = select(models.Profile)
    q = (search or "").strip()
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(models.Profile.email.ilike(like), models.Profile.name.ilike(like)))
    stmt = stmt.order_by(func.coalesce(models.Profile.name, "ZZZ"), models.Profile.email)
    return db.scalars(stmt).all()


@router.get("/users/{user_id}", response_model=schemas.ProfileOut)
def admin_get_user(user_id: int, db: Session = Depends(get_db)):
    return _get_user(db, user_id)


@router.post("/users", response_model=schemas.ProfileOut, status_code=201)
def admin_create_user(
    payload: schemas.AdminUserCreateIn,
    db: Session = Depends(get_db),
):
    email = auth.normalize_email(payload.email)
    if auth.get_profile_by_email(db, email):
        raise HTTPException(status_code=400, detail={"code": "EMAIL_EXISTS", "message": "Email already exists"})

    tier = normalize_tier(payload.membership_type, payload.renew_interval_days)
    days = payload.renew_interval_days if payload.renew_interval_days is not None else default_renew_days(tier)

    p = models.Profile(
        email=email,
        hashed_password=auth.hash_password(payload.password),
        name=(payload.name or "").strip() or None,
        membership_type=tier,
        subscription_date=payload.subscription_date or today(),
        renew_interval_days=days,
        disabled=False,
        is_admin=payload.is_admin,
    )
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@router.patch("/users/{user_id}", response_model=schemas.ProfileOut)
def admin_update_user(
    user_id: int,
    payload: schemas.AdminUserUpdateIn,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_active_admin),
):
    p = _get_user(db, user_id)

    if p.id == admin.id and payload.is_admin is False:
        raise HTTPException(status_code=400, detail={"code": "SELF_DEMOTE", "message": "You cannot remove your own admin role"})

    if payload.name is not None:
        p.name = payload.name.strip() or None
    if payload.bio is not None:
        p.bio = payload.bio
    if payload.membership_type is not None:
        days = payload.renew_interval_days if payload.renew_interval_days is not None else p.renew_interval_days
        tier = normalize_tier(payload.membership_type, days)
        current = normalize_tier(p.membership_type, p.renew_interval_days)
        if tier != current and payload.renew_interval_days is None:
            p.renew_interval_days = default_renew_days(tier)
        p.membership_type = tier
    if payload.renew_interval_days is not None:
        p.renew_interval_days = payload.renew_interval_days
    if payload.subscription_date is not None:
        p.subscription_date = payload.subscription_date
    if payload.is_admin is not None:
        p.is_admin = payload.is_admin

    p.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(p)
    return p


@router.post("/users/{user_id}/renew", response_model=schemas.ProfileOut)
def admin_renew_user(
    user_id: int,
    payload: schemas.AdminRenewIn,
    db: Session = Depends(get_db),
):
    """Starts a new period today."""
    p = _get_user(db, user_id)

    if payload.membership_type is not None:
        p.membership_type = normalize_tier(payload.membership_type, payload.renew_interval_days)
    else:
        p.membership_type = normalize_tier(p.membership_type, p.renew_interval_days)

    if payload.renew_interval_days is not None:
        p.renew_interval_days = payload.renew_interval_days
    elif payload.membership_type is not None or p.renew_interval_days is None:
        p.renew_interval_days = default_renew_days(p.membership_type)

    p.subscription_date = today()
    p.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(p)
    logger.info("membership for user %s renewed: %s, %s days", p.id, p.membership_type, p.renew_interval_days)
    return p


@router.patch("/users/{user_id}/disabled", response_model=schemas.ProfileOut)
def admin_set_user_disabled(
    user_id: int,
    payload: schemas.AdminDisabledIn,
    notify: bool = Query(False, description="email the user when disabling"),
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(require_active_admin),
):
    p = _get_user(db, user_id)

    if p.id == admin.id and payload.disabled:
        raise HTTPException(status_code=400, detail={"code": "SELF_DISABLE", "message": "You cannot disable your own account"})

    was_disabled = bool(p.disabled)
    p.disabled = payload.disabled
    p.updated_at = datetime.utcnow()
    if payload.disabled and not was_disabled:
        # kills every live session of that user, open sockets included
        auth.sign_out_profile(db, p)
    else:
        db.commit()
    db.refresh(p)

    if payload.disabled and not was_disabled:
        logger.info("admin %s disabled user %s", admin.id, p.id)
        if notify:
            parts = account_disabled(p.name, support_contact_url())
            send_email_if_configured(p.email, parts.subject, parts.body)
    return p


@router.patch("/users/{user_id}/password", status_code=200)
def admin_reset_user_password(
    user_id: int,
    payload: schemas.AdminPasswordResetIn,
    db: Session = Depends(get_db),
):
    p = _get_user(db, user_id)
    p.hashed_password = auth.hash_password(payload.password)
    # old password's sessions go with it
    auth.sign_out_profile(db, p)
    return {"ok": True}
