# academy/routers/profit.py
from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from academy import models, schemas
from academy.access_guard import require_active_admin
from academy.database import get_db

router = APIRouter(
    prefix="/admin/profit",
    tags=["admin-profit"],
    dependencies=[Depends(require_active_admin)],
)


def _get_entry(db: Session, entry_id: int) -> models.ProfitEntry:
    entry = db.get(models.ProfitEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Profit entry not found"})
    return entry


def _currency(value: str | None) -> str:
    return (value or "").strip().upper() or "USD"


@router.get("", response_model=list[schemas.ProfitOut])
def list_profit(
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return db.scalars(
        select(models.ProfitEntry).order_by(models.ProfitEntry.created_at.desc(), models.ProfitEntry.id.desc()).limit(limit)
    ).all()


@router.get("/summary", response_model=schemas.ProfitSummaryOut)
def profit_summary(db: Session = Depends(get_db)):
    now = datetime.utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    totals: dict[str, float] = defaultdict(float)
    this_month: dict[str, float] = defaultdict(float)
    count = 0
    for entry in db.scalars(select(models.ProfitEntry)).all():
        count += 1
        totals[entry.currency] += float(entry.amount)
        if entry.created_at and entry.created_at >= month_start:
            this_month[entry.currency] += float(entry.amount)

    return schemas.ProfitSummaryOut(totals=dict(totals), count=count, this_month=dict(this_month))


@router.get("/{entry_id}", response_model=schemas.ProfitOut)
def get_profit(entry_id: int, db: Session = Depends(get_db)):
    return _get_entry(db, entry_id)


@router.post("", response_model=schemas.ProfitOut, status_code=201)
def add_profit(payload: schemas.ProfitIn, db: Session = Depends(get_db)):
    entry = models.ProfitEntry(
        amount=payload.amount,
        currency=_currency(payload.currency),
        description=payload.description.strip(),
        details=payload.metadata,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@router.patch("/{entry_id}", response_model=schemas.ProfitOut)
def update_profit(entry_id: int, payload: schemas.ProfitUpdateIn, db: Session = Depends(get_db)):
    entry = _get_entry(db, entry_id)
    fields = payload.model_dump(exclude_unset=True)

    if fields.get("amount") is not None:
        entry.amount = fields["amount"]
    if "currency" in fields:
        entry.currency = _currency(fields["currency"])
    if fields.get("description") is not None:
        entry.description = fields["description"].strip()
    if "metadata" in fields:
        entry.details = fields["metadata"]

    db.commit()
    db.refresh(entry)
    return entry


@router.delete("/{entry_id}", status_code=204)
def delete_profit(entry_id: int, db: Session = Depends(get_db)):
    db.delete(_get_entry(db, entry_id))
    db.commit()
    return None
