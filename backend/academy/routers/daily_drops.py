# academy/routers/daily_drops.py
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from academy import models, schemas
from academy.access_guard import require_active_access, require_active_admin
from academy.database import get_db
from academy.media import validate_image

router = APIRouter(tags=["daily-drops"])


def _get_drop(db: Session, drop_id: int) -> models.DailyDrop:
    drop = db.get(models.DailyDrop, drop_id)
    if not drop:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Daily drop not found"})
    return drop


@router.get("/daily-drops", response_model=list[schemas.DailyDropOut], dependencies=[Depends(require_active_access)])
def list_daily_drops(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return db.scalars(
        select(models.DailyDrop).order_by(models.DailyDrop.created_at.desc(), models.DailyDrop.id.desc()).limit(limit)
    ).all()


# -------------------------------------------------
# ADMIN
# -------------------------------------------------
@router.post(
    "/admin/daily-drops",
    response_model=schemas.DailyDropOut,
    status_code=201,
    dependencies=[Depends(require_active_admin)],
)
def create_daily_drop(payload: schemas.DailyDropIn, db: Session = Depends(get_db)):
    text = payload.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail={"code": "TEXT_REQUIRED", "message": "Text is required"})

    drop = models.DailyDrop(
        text=text,
        image=validate_image(payload.image),
        # a custom date back-dates the drop
        created_at=(payload.custom_date.replace(tzinfo=None) if payload.custom_date else datetime.utcnow()),
    )
    db.add(drop)
    db.commit()
    db.refresh(drop)
    return drop


@router.patch(
    "/admin/daily-drops/{drop_id}",
    response_model=schemas.DailyDropOut,
    dependencies=[Depends(require_active_admin)],
)
def update_daily_drop(drop_id: int, payload: schemas.DailyDropUpdateIn, db: Session = Depends(get_db)):
    drop = _get_drop(db, drop_id)
    fields = payload.model_dump(exclude_unset=True)

    if "text" in fields:
        text = (fields["text"] or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail={"code": "TEXT_REQUIRED", "message": "Text is required"})
        drop.text = text
    if "image" in fields:
        drop.image = validate_image(fields["image"])
    if fields.get("custom_date") is not None:
        drop.created_at = fields["custom_date"].replace(tzinfo=None)

    drop.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(drop)
    return drop


@router.delete("/admin/daily-drops/{drop_id}", status_code=204, dependencies=[Depends(require_active_admin)])
def delete_daily_drop(drop_id: int, db: Session = Depends(get_db)):
    db.delete(_get_drop(db, drop_id))
    db.commit()
    return None
