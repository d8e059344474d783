# academy/routers/activity.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from academy import activity, auth, models, schemas
from academy.access_guard import require_active_access, require_active_admin
from academy.database import get_db
from academy.membership import is_membership_expired

router = APIRouter(tags=["activity"])


@router.post("/activity/page-visit", status_code=202)
def page_visit(
    payload: schemas.PageVisitIn,
    request: Request,
    db: Session = Depends(get_db),
    profile=Depends(require_active_access),
):
    row = activity.log_activity(
        db,
        profile,
        activity.PAGE_VISIT,
        {"page": payload.page, "title": payload.title},
        request,
    )
    return {"recorded": row is not None}


# -------------------------------------------------
# ADMIN MONITORING
# -------------------------------------------------
@router.get(
    "/admin/activity",
    response_model=list[schemas.ActivityOut],
    dependencies=[Depends(require_active_admin)],
)
def admin_activity(
    action: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    stmt = select(models.ActivityLog)
    if action:
        stmt = stmt.where(models.ActivityLog.action == action)
    return db.scalars(stmt.order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc()).limit(limit)).all()


@router.get(
    "/admin/activity/{user_id}",
    response_model=list[schemas.ActivityOut],
    dependencies=[Depends(require_active_admin)],
)
def admin_user_activity(
    user_id: int,
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    if not db.get(models.Profile, user_id):
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "User not found"})
    return db.scalars(
        select(models.ActivityLog)
        .where(models.ActivityLog.user_id == user_id)
        .order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc())
        .limit(limit)
    ).all()


@router.get(
    "/admin/students",
    response_model=list[schemas.StudentOut],
    dependencies=[Depends(require_active_admin)],
)
def admin_students(db: Session = Depends(get_db)):
    """Non-admin profiles with their latest tracked action, most recently active first."""
    latest = (
        select(models.ActivityLog.user_id, func.max(models.ActivityLog.id).label("last_id"))
        .group_by(models.ActivityLog.user_id)
        .subquery()
    )
    rows = db.execute(
        select(models.Profile, models.ActivityLog)
        .outerjoin(latest, latest.c.user_id == models.Profile.id)
        .outerjoin(models.ActivityLog, models.ActivityLog.id == latest.c.last_id)
    ).all()

    out = []
    for profile, last in rows:
        if auth.is_admin(profile):
            continue
        out.append(
            schemas.StudentOut(
                id=profile.id,
                email=profile.email,
                name=profile.name,
                membership_type=profile.membership_type,
                disabled=bool(profile.disabled),
                membership_expired=is_membership_expired(profile.subscription_date, profile.renew_interval_days),
                last_action=last.action if last else None,
                last_active_at=last.created_at if last else None,
            )
        )

    out.sort(key=lambda s: (s.last_active_at is None, -(s.last_active_at.timestamp() if s.last_active_at else 0)))
    return out
