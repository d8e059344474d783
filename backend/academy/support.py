# academy/support.py
"""
Support tickets: counters, read receipts and live updates.

Counters live on the ticket row:
  message_count       every message in the thread
  unread_count        admin messages the student hasn't read
  admin_unread_count  student messages no admin has read

Every mutation is published on ticket:{id}, user:{owner} and admin.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from academy import models
from academy.realtime import ADMIN_CHANNEL, hub, ticket_channel, user_channel

TICKET_STATUSES = ("open", "pending", "in_progress", "resolved", "closed")
OPEN_STATUSES = ("open", "in_progress")


def _now() -> datetime:
    return datetime.utcnow()


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def message_payload(message: models.SupportMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "ticket_id": message.ticket_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "body": message.body,
        "image": message.image,
        "is_admin": message.is_admin,
        "created_at": _iso(message.created_at),
        "edited_at": _iso(message.edited_at),
    }


def publish_ticket_event(ticket: models.SupportTicket, event: str, **extra: Any) -> None:
    payload = {
        "event": event,
        "ticket_id": ticket.id,
        "user_id": ticket.user_id,
        "status": ticket.status,
        "message_count": ticket.message_count,
        "unread_count": ticket.unread_count,
        "admin_unread_count": ticket.admin_unread_count,
        **extra,
    }
    hub.publish(ticket_channel(ticket.id), payload)
    hub.publish(user_channel(ticket.user_id), payload)
    hub.publish(ADMIN_CHANNEL, payload)


# -------------------------------------------------
# Tickets
# -------------------------------------------------
def create_ticket(
    db: Session,
    profile: models.Profile,
    *,
    ticket_type: str,
    subject: str,
    description: str,
    priority: str = "medium",
    context: Optional[dict] = None,
    image: Optional[str] = None,
) -> models.SupportTicket:
    """The description is also the first message of the thread."""
    now = _now()
    name = profile.name or profile.email
    ticket = models.SupportTicket(
        user_id=profile.id,
        user_name=name,
        user_email=profile.email,
        ticket_type=ticket_type,
        subject=subject.strip(),
        description=description,
        status="open",
        priority=priority,
        context=dict(context or {}),
        message_count=1,
        unread_count=0,
        admin_unread_count=1,
        last_message_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(ticket)
    db.flush()

    db.add(
        models.SupportMessage(
            ticket_id=ticket.id,
            sender_id=profile.id,
            sender_name=name,
            sender_email=profile.email,
            body=description,
            image=image,
            is_admin=False,
            created_at=now,
        )
    )
    db.commit()
    db.refresh(ticket)

    publish_ticket_event(ticket, "ticket_created", subject=ticket.subject)
    return ticket


def set_status(db: Session, ticket: models.SupportTicket, status: str) -> models.SupportTicket:
    if status not in TICKET_STATUSES:
        raise ValueError(f"Unknown ticket status: {status}")
    ticket.status = status
    ticket.updated_at = _now()
    db.commit()
    db.refresh(ticket)
    publish_ticket_event(ticket, "ticket_updated")
    return ticket


def assign_ticket(
    db: Session,
    ticket: models.SupportTicket,
    assignee: Optional[models.Profile],
) -> models.SupportTicket:
    ticket.assigned_to = assignee.id if assignee else None
    ticket.assigned_to_name = (assignee.name or assignee.email) if assignee else None
    ticket.updated_at = _now()
    db.commit()
    db.refresh(ticket)
    publish_ticket_event(ticket, "ticket_updated", assigned_to=ticket.assigned_to)
    return ticket


def delete_ticket(db: Session, ticket: models.SupportTicket) -> None:
    """Removes the ticket, its messages and their read receipts."""
    ticket_id, user_id = ticket.id, ticket.user_id
    db.query(models.SupportMessageRead).filter(models.SupportMessageRead.ticket_id == ticket_id).delete(
        synchronize_session=False
    )
    db.delete(ticket)
    db.commit()

    payload = {"event": "ticket_deleted", "ticket_id": ticket_id, "user_id": user_id}
    hub.publish(ticket_channel(ticket_id), payload)
    hub.publish(user_channel(user_id), payload)
    hub.publish(ADMIN_CHANNEL, payload)


# -------------------------------------------------
# Messages
# -------------------------------------------------
def add_message(
    db: Session,
    ticket: models.SupportTicket,
    sender: models.Profile,
    body: str,
    *,
    image: Optional[str] = None,
    as_admin: bool = False,
) -> models.SupportMessage:
    now = _now()
    message = models.SupportMessage(
        ticket_id=ticket.id,
        sender_id=sender.id,
        sender_name=sender.name or sender.email,
        sender_email=sender.email,
        body=body,
        image=image,
        is_admin=as_admin,
        created_at=now,
    )
    db.add(message)

    ticket.message_count = int(ticket.message_count or 0) + 1
    if as_admin:
        ticket.unread_count = int(ticket.unread_count or 0) + 1
    else:
        ticket.admin_unread_count = int(ticket.admin_unread_count or 0) + 1
    ticket.last_message_at = now
    ticket.updated_at = now

    db.commit()
    db.refresh(message)
    db.refresh(ticket)

    publish_ticket_event(ticket, "message_created", message=message_payload(message))
    return message


def update_message(db: Session, message: models.SupportMessage, body: str) -> models.SupportMessage:
    message.body = body
    message.edited_at = _now()
    db.commit()
    db.refresh(message)
    publish_ticket_event(message.ticket, "message_updated", message=message_payload(message))
    return message


def delete_message(db: Session, message: models.SupportMessage) -> None:
    ticket = message.ticket
    message_id = message.id
    db.delete(message)
    ticket.message_count = max(0, int(ticket.message_count or 0) - 1)
    ticket.updated_at = _now()
    db.commit()
    db.refresh(ticket)
    publish_ticket_event(ticket, "message_deleted", message_id=message_id)


# -------------------------------------------------
# Read receipts
# -------------------------------------------------
def mark_ticket_read(db: Session, ticket: models.SupportTicket, reader: models.Profile, *, as_admin: bool) -> int:
    """
    Zeroes the reader's unread counter and records receipts for the other side's
    messages. Returns how many new receipts were written.
    """
    already_read = set(
        db.scalars(
            select(models.SupportMessageRead.message_id)
            .where(models.SupportMessageRead.ticket_id == ticket.id)
            .where(models.SupportMessageRead.user_id == reader.id)
        ).all()
    )
    # admins read student messages, students read admin messages
    others = db.scalars(
        select(models.SupportMessage.id)
        .where(models.SupportMessage.ticket_id == ticket.id)
        .where(models.SupportMessage.is_admin == (not as_admin))
    ).all()

    now = _now()
    written = 0
    for message_id in others:
        if message_id in already_read:
            continue
        db.add(models.SupportMessageRead(message_id=message_id, ticket_id=ticket.id, user_id=reader.id, read_at=now))
        written += 1

    if as_admin:
        ticket.admin_unread_count = 0
    else:
        ticket.unread_count = 0
    db.commit()
    db.refresh(ticket)

    publish_ticket_event(ticket, "ticket_read", reader_id=reader.id, by_admin=as_admin)
    return written


def read_message_ids(db: Session, ticket: models.SupportTicket, *, viewer_is_admin: bool) -> list[int]:
    """Ids of messages in this ticket that the other party has read."""
    stmt = select(models.SupportMessageRead.message_id).where(models.SupportMessageRead.ticket_id == ticket.id)
    if viewer_is_admin:
        stmt = stmt.where(models.SupportMessageRead.user_id == ticket.user_id)
    else:
        stmt = stmt.where(models.SupportMessageRead.user_id != ticket.user_id)
    return sorted(set(db.scalars(stmt).all()))


def unread_total(db: Session, *, user_id: Optional[int] = None, as_admin: bool = False) -> int:
    if as_admin:
        total = db.scalar(select(func.coalesce(func.sum(models.SupportTicket.admin_unread_count), 0)))
    else:
        total = db.scalar(
            select(func.coalesce(func.sum(models.SupportTicket.unread_count), 0)).where(
                models.SupportTicket.user_id == user_id
            )
        )
    return int(total or 0)


# -------------------------------------------------
# Admin overview
# -------------------------------------------------
def user_ticket_counts(db: Session) -> list[dict[str, Any]]:
    """Per-student counts, most unread first, then most open."""
    counts: dict[int, dict[str, Any]] = {}
    for ticket in db.scalars(select(models.SupportTicket).order_by(models.SupportTicket.created_at)).all():
        row = counts.setdefault(
            ticket.user_id,
            {
                "user_id": ticket.user_id,
                "user_name": ticket.user_name,
                "user_email": ticket.user_email,
                "open": 0,
                "total": 0,
                "unread": 0,
            },
        )
        row["total"] += 1
        if ticket.status in OPEN_STATUSES:
            row["open"] += 1
        row["unread"] += int(ticket.admin_unread_count or 0)

    return sorted(counts.values(), key=lambda r: (-r["unread"], -r["open"]))


def support_stats(db: Session, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or _now()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    by_status = {s: 0 for s in TICKET_STATUSES}
    for status, count in db.execute(
        select(models.SupportTicket.status, func.count(models.SupportTicket.id)).group_by(models.SupportTicket.status)
    ).all():
        by_status[status] = int(count)

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "created_today": int(
            db.scalar(select(func.count(models.SupportTicket.id)).where(models.SupportTicket.created_at >= today)) or 0
        ),
        "messages_today": int(
            db.scalar(select(func.count(models.SupportMessage.id)).where(models.SupportMessage.created_at >= today))
            or 0
        ),
        "unread": unread_total(db, as_admin=True),
    }
