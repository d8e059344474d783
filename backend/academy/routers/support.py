# academy/routers/support.py
from __future__ import annotations

import asyncio
import logging
from contextlib import ExitStack
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from academy import activity, auth, models, schemas, support
from academy.access_guard import require_active_admin, require_stored_profile
from academy.auth import SessionInfo
from academy.auth_state import AuthEvent, AuthSnapshot, AuthStateManager, SessionRevoked, fetch_profile_or_fallback
from academy.database import SessionLocal, get_db
from academy.email_templates import support_reply
from academy.emailer import send_email_if_configured
from academy.feature_flags import HOME_PATH
from academy.media import validate_image
from academy.membership import AccessState, resolve_route
from academy.realtime import ADMIN_CHANNEL, hub, session_channel, ticket_channel, user_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["support"])

# websocket routes can't share the HTTP gate dependencies (they take a Request)
ws_router = APIRouter(tags=["support"])


def _get_ticket(db: Session, ticket_id: int) -> models.SupportTicket:
    ticket = db.get(models.SupportTicket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Ticket not found"})
    return ticket


def _visible_ticket(db: Session, ticket_id: int, profile: models.Profile) -> models.SupportTicket:
    ticket = _get_ticket(db, ticket_id)
    if ticket.user_id != profile.id and not auth.is_admin(profile):
        # same answer as a missing ticket
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Ticket not found"})
    return ticket


def _acting_as_admin(ticket: models.SupportTicket, profile: models.Profile) -> bool:
    return auth.is_admin(profile) and ticket.user_id != profile.id


def _get_message(db: Session, message_id: int) -> models.SupportMessage:
    message = db.get(models.SupportMessage, message_id)
    if not message:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "Message not found"})
    return message


# -------------------------------------------------
# STUDENT (and admin acting on a visible ticket)
# -------------------------------------------------
@router.post("/support/tickets", response_model=schemas.TicketDetailOut, status_code=201)
def create_ticket(
    payload: schemas.TicketCreateIn,
    request: Request,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ticket = support.create_ticket(
        db,
        profile,
        ticket_type=payload.ticket_type,
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        context=payload.context,
        image=validate_image(payload.image),
    )
    activity.log_activity(db, profile, activity.SUPPORT_TICKET, {"ticket_id": ticket.id, "type": ticket.ticket_type}, request)
    return ticket


@router.get("/support/tickets", response_model=list[schemas.TicketOut])
def list_my_tickets(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    return db.scalars(
        select(models.SupportTicket)
        .where(models.SupportTicket.user_id == profile.id)
        .order_by(models.SupportTicket.last_message_at.desc(), models.SupportTicket.id.desc())
    ).all()


@router.get("/support/unread")
def my_unread_total(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    return {"unread": support.unread_total(db, user_id=profile.id)}


@router.get("/support/tickets/{ticket_id}", response_model=schemas.TicketDetailOut)
def read_ticket(
    ticket_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    return _visible_ticket(db, ticket_id, profile)


@router.post("/support/tickets/{ticket_id}/messages", response_model=schemas.MessageOut, status_code=201)
def send_message(
    ticket_id: int,
    payload: schemas.MessageIn,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ticket = _visible_ticket(db, ticket_id, profile)
    if ticket.status == "closed":
        raise HTTPException(status_code=409, detail={"code": "TICKET_CLOSED", "message": "This ticket is closed"})

    as_admin = _acting_as_admin(ticket, profile)
    message = support.add_message(
        db,
        ticket,
        profile,
        payload.body.strip(),
        image=validate_image(payload.image),
        as_admin=as_admin,
    )

    if as_admin:
        owner = db.get(models.Profile, ticket.user_id)
        if owner is not None:
            parts = support_reply(owner.name, ticket.id, ticket.subject)
            send_email_if_configured(owner.email, parts.subject, parts.body)
    return message


@router.post("/support/tickets/{ticket_id}/read")
def mark_read(
    ticket_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ticket = _visible_ticket(db, ticket_id, profile)
    written = support.mark_ticket_read(db, ticket, profile, as_admin=_acting_as_admin(ticket, profile))
    return {"ok": True, "marked": written}


@router.get("/support/tickets/{ticket_id}/reads")
def read_map(
    ticket_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    ticket = _visible_ticket(db, ticket_id, profile)
    ids = support.read_message_ids(db, ticket, viewer_is_admin=_acting_as_admin(ticket, profile))
    return {"ticket_id": ticket.id, "read_message_ids": ids}


# -------------------------------------------------
# ADMIN
# -------------------------------------------------
admin_deps = [Depends(require_active_admin)]


@router.get("/admin/support/tickets", response_model=list[schemas.TicketOut], dependencies=admin_deps)
def admin_list_tickets(
    status: Optional[schemas.TicketStatus] = None,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    stmt = select(models.SupportTicket)
    if status:
        stmt = stmt.where(models.SupportTicket.status == status)
    if user_id is not None:
        stmt = stmt.where(models.SupportTicket.user_id == user_id)
    return db.scalars(
        stmt.order_by(models.SupportTicket.last_message_at.desc(), models.SupportTicket.id.desc())
    ).all()


@router.get("/admin/support/unread", dependencies=admin_deps)
def admin_unread_total(db: Session = Depends(get_db)):
    return {"unread": support.unread_total(db, as_admin=True)}


@router.get("/admin/support/user-counts", response_model=list[schemas.UserTicketCountOut], dependencies=admin_deps)
def admin_user_counts(db: Session = Depends(get_db)):
    return support.user_ticket_counts(db)


@router.get("/admin/support/stats", response_model=schemas.SupportStatsOut, dependencies=admin_deps)
def admin_stats(db: Session = Depends(get_db)):
    return support.support_stats(db)


@router.patch("/admin/support/tickets/{ticket_id}/status", response_model=schemas.TicketOut, dependencies=admin_deps)
def admin_set_status(ticket_id: int, payload: schemas.TicketStatusIn, db: Session = Depends(get_db)):
    return support.set_status(db, _get_ticket(db, ticket_id), payload.status)


@router.patch("/admin/support/tickets/{ticket_id}/assign", response_model=schemas.TicketOut, dependencies=admin_deps)
def admin_assign(ticket_id: int, payload: schemas.TicketAssignIn, db: Session = Depends(get_db)):
    ticket = _get_ticket(db, ticket_id)
    assignee = None
    if payload.assigned_to is not None:
        assignee = db.get(models.Profile, payload.assigned_to)
        if assignee is None or not auth.is_admin(assignee):
            raise HTTPException(status_code=400, detail={"code": "BAD_ASSIGNEE", "message": "Tickets can only be assigned to admins"})
    return support.assign_ticket(db, ticket, assignee)


@router.delete("/admin/support/tickets/{ticket_id}", status_code=204, dependencies=admin_deps)
def admin_delete_ticket(ticket_id: int, db: Session = Depends(get_db)):
    support.delete_ticket(db, _get_ticket(db, ticket_id))
    return None


@router.patch("/admin/support/messages/{message_id}", response_model=schemas.MessageOut, dependencies=admin_deps)
def admin_edit_message(message_id: int, payload: schemas.MessageUpdateIn, db: Session = Depends(get_db)):
    return support.update_message(db, _get_message(db, message_id), payload.body.strip())


@router.delete("/admin/support/messages/{message_id}", status_code=204, dependencies=admin_deps)
def admin_delete_message(message_id: int, db: Session = Depends(get_db)):
    support.delete_message(db, _get_message(db, message_id))
    return None


# -------------------------------------------------
# LIVE UPDATES
# -------------------------------------------------
_CLOSE_CODES = {
    AccessState.UNAUTHENTICATED: 4401,
    AccessState.EXPIRED: 4402,
    AccessState.DISABLED: 4403,
}


def _load_profile_sync(session: SessionInfo) -> Any:
    db = SessionLocal()
    try:
        return fetch_profile_or_fallback(db, session)
    except SessionRevoked:
        # disabling also revokes tokens; say DISABLED rather than a plain sign-out
        stored = auth.load_profile(db, session.user_id)
        if stored is not None and stored.disabled:
            return stored
        raise
    finally:
        db.close()


def _sign_out_sync(session: SessionInfo) -> None:
    db = SessionLocal()
    try:
        profile = auth.load_profile(db, session.user_id)
        if profile is not None:
            auth.sign_out_profile(db, profile)
    finally:
        db.close()


def _ticket_visible_sync(ticket_id: int, user_id: int, is_admin: bool) -> bool:
    db = SessionLocal()
    try:
        ticket = db.get(models.SupportTicket, ticket_id)
        return ticket is not None and (is_admin or ticket.user_id == user_id)
    finally:
        db.close()


async def _fetch_profile(session: SessionInfo) -> Any:
    return await run_in_threadpool(_load_profile_sync, session)


async def _sign_out(session: SessionInfo) -> None:
    await run_in_threadpool(_sign_out_sync, session)


def auth_state_message(snapshot: AuthSnapshot) -> dict[str, Any]:
    decision = resolve_route(snapshot.state, HOME_PATH)
    return {
        "type": "auth_state",
        "state": snapshot.state.value,
        "redirect_to": decision.redirect_to,
        "notice": snapshot.notice or decision.notice,
    }


async def _close_with_state(websocket: WebSocket, snapshot: AuthSnapshot) -> None:
    await websocket.send_json(auth_state_message(snapshot))
    await websocket.close(code=_CLOSE_CODES.get(snapshot.state, 1000))


async def _forward_events(websocket: WebSocket, queue: "asyncio.Queue[dict[str, Any]]") -> None:
    while True:
        payload = await queue.get()
        await websocket.send_json({"type": "support", **payload})


async def _receive_auth_events(websocket: WebSocket, manager: AuthStateManager, user_id: int) -> None:
    """
    Client frames:
      {"type": "auth", "event": "TOKEN_REFRESHED", "token": "..."}
      {"type": "auth", "event": "SIGNED_OUT"}
      {"type": "ping"}
    Returns once the gate no longer says ACTIVE (socket already closed) or the client leaves.
    """
    try:
        while True:
            frame = await websocket.receive_json()
            kind = frame.get("type") if isinstance(frame, dict) else None

            if kind == "ping":
                await websocket.send_json({"type": "pong"})
                continue
            if kind != "auth":
                await websocket.send_json({"type": "error", "message": "unknown frame type"})
                continue

            try:
                event = AuthEvent(str(frame.get("event") or ""))
            except ValueError:
                await websocket.send_json({"type": "error", "message": "unknown auth event"})
                continue

            session = None
            if event != AuthEvent.SIGNED_OUT:
                session = auth.session_from_token(frame.get("token"))
                if session is not None and session.user_id != user_id:
                    # a socket never changes hands
                    session = None

            snapshot = await manager.handle_event(event, session)
            if snapshot.state != AccessState.ACTIVE:
                await _close_with_state(websocket, snapshot)
                return
            await websocket.send_json(auth_state_message(snapshot))
    except WebSocketDisconnect:
        return


async def _watch_revocations(
    websocket: WebSocket,
    manager: AuthStateManager,
    revoked: "asyncio.Queue[dict[str, Any]]",
) -> None:
    """
    Sign-out, disable and password changes elsewhere publish on session:{id}.
    Each notice re-runs the gate for the socket's current token.
    """
    while True:
        await revoked.get()
        snapshot = await manager.handle_event(AuthEvent.USER_UPDATED, manager.snapshot.session)
        if snapshot.state != AccessState.ACTIVE:
            await _close_with_state(websocket, snapshot)
            return


@ws_router.websocket("/support/ws")
async def support_ws(
    websocket: WebSocket,
    token: str = Query(""),
    ticket_id: Optional[int] = Query(None),
):
    """
    Streams support events for one ticket (ticket_id given), or for the caller's
    own tickets (students) / every ticket (admins).
    """
    await websocket.accept()

    manager = AuthStateManager(_fetch_profile, sign_out=_sign_out)
    snapshot = await manager.handle_event(AuthEvent.INITIAL_SESSION, auth.session_from_token(token))
    if snapshot.state != AccessState.ACTIVE or snapshot.user is None:
        await _close_with_state(websocket, snapshot)
        return

    user = snapshot.user
    if ticket_id is not None:
        if not await run_in_threadpool(_ticket_visible_sync, ticket_id, user.uid, user.is_admin):
            await websocket.send_json({"type": "error", "message": "Ticket not found"})
            await websocket.close(code=4404)
            return
        channels = [ticket_channel(ticket_id)]
    elif user.is_admin:
        channels = [ADMIN_CHANNEL]
    else:
        channels = [user_channel(user.uid)]

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    revoked: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    # publishers run in threadpool workers
    def on_event(payload: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    def on_revoked(payload: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(revoked.put_nowait, payload)

    with ExitStack() as subscriptions:
        for channel in channels:
            subscriptions.enter_context(hub.subscribe(channel, on_event))
        subscriptions.enter_context(hub.subscribe(session_channel(user.uid), on_revoked))

        await websocket.send_json({**auth_state_message(snapshot), "type": "ready", "channels": channels})

        tasks = {
            asyncio.create_task(_receive_auth_events(websocket, manager, user.uid)),
            asyncio.create_task(_watch_revocations(websocket, manager, revoked)),
            asyncio.create_task(_forward_events(websocket, queue)),
        }
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None and not isinstance(task.exception(), WebSocketDisconnect):
                logger.warning("support socket for user %s ended with error: %s", user.uid, task.exception())
