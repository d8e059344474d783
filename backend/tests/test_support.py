"""
Support tickets: counters, read receipts, admin tools and live updates.
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from academy.realtime import ADMIN_CHANNEL, hub, session_channel, ticket_channel, user_channel


@pytest.fixture
def student(make_profile):
    return make_profile(name="Stu Dent")


@pytest.fixture
def ticket(client, student, auth_headers):
    r = client.post(
        "/support/tickets",
        json={"ticket_type": "bug", "subject": "Video won't play", "description": "Lesson 3 is black", "priority": "high"},
        headers=auth_headers(student),
    )
    assert r.status_code == 201
    return r.json()


def _get(client, ticket_id, headers):
    return client.get(f"/support/tickets/{ticket_id}", headers=headers).json()


def test_new_ticket_counts_its_first_message(ticket):
    assert ticket["status"] == "open"
    assert ticket["message_count"] == 1
    assert ticket["admin_unread_count"] == 1
    assert ticket["unread_count"] == 0
    assert ticket["messages"][0]["body"] == "Lesson 3 is black"
    assert ticket["user_name"] == "Stu Dent"


def test_conversation_counters(client, ticket, student, admin_profile, auth_headers):
    s, a = auth_headers(student), auth_headers(admin_profile)
    tid = ticket["id"]

    client.post(f"/support/tickets/{tid}/messages", json={"body": "any update?"}, headers=s)
    t = _get(client, tid, s)
    assert (t["message_count"], t["admin_unread_count"]) == (2, 2)

    reply = client.post(f"/support/tickets/{tid}/messages", json={"body": "looking into it"}, headers=a).json()
    assert reply["is_admin"] is True
    t = _get(client, tid, s)
    assert (t["message_count"], t["unread_count"]) == (3, 1)
    assert client.get("/support/unread", headers=s).json() == {"unread": 1}
    assert client.get("/admin/support/unread", headers=a).json() == {"unread": 2}


def test_mark_read_zeroes_counter_and_writes_receipts(client, ticket, student, admin_profile, auth_headers):
    s, a = auth_headers(student), auth_headers(admin_profile)
    tid = ticket["id"]
    client.post(f"/support/tickets/{tid}/messages", json={"body": "reply"}, headers=a)

    r = client.post(f"/support/tickets/{tid}/read", headers=a)
    assert r.json()["marked"] == 1
    assert _get(client, tid, a)["admin_unread_count"] == 0

    # the student sees that admins read their first message
    first_id = ticket["messages"][0]["id"]
    assert client.get(f"/support/tickets/{tid}/reads", headers=s).json()["read_message_ids"] == [first_id]

    client.post(f"/support/tickets/{tid}/read", headers=s)
    assert _get(client, tid, s)["unread_count"] == 0
    admin_view = client.get(f"/support/tickets/{tid}/reads", headers=a).json()["read_message_ids"]
    assert len(admin_view) == 1

    # idempotent
    assert client.post(f"/support/tickets/{tid}/read", headers=s).json()["marked"] == 0


def test_students_only_see_their_tickets(client, ticket, make_profile, auth_headers):
    other = auth_headers(make_profile())
    assert client.get(f"/support/tickets/{ticket['id']}", headers=other).status_code == 404
    assert client.get("/support/tickets", headers=other).json() == []


def test_message_delete_never_goes_negative(client, ticket, admin_profile, auth_headers):
    a = auth_headers(admin_profile)
    tid = ticket["id"]
    message_id = ticket["messages"][0]["id"]

    assert client.delete(f"/admin/support/messages/{message_id}", headers=a).status_code == 204
    t = _get(client, tid, a)
    assert t["message_count"] == 0
    assert t["messages"] == []


def test_admin_edits_message(client, ticket, admin_profile, auth_headers):
    message_id = ticket["messages"][0]["id"]
    r = client.patch(f"/admin/support/messages/{message_id}", json={"body": "edited"}, headers=auth_headers(admin_profile))
    assert r.json()["body"] == "edited"
    assert r.json()["edited_at"] is not None


def test_status_and_closed_ticket(client, ticket, student, admin_profile, auth_headers):
    a = auth_headers(admin_profile)
    tid = ticket["id"]

    assert client.patch(f"/admin/support/tickets/{tid}/status", json={"status": "bogus"}, headers=a).status_code == 422
    r = client.patch(f"/admin/support/tickets/{tid}/status", json={"status": "closed"}, headers=a)
    assert r.json()["status"] == "closed"

    blocked = client.post(f"/support/tickets/{tid}/messages", json={"body": "hello?"}, headers=auth_headers(student))
    assert blocked.status_code == 409


def test_assign_only_to_admins(client, ticket, student, admin_profile, auth_headers):
    a = auth_headers(admin_profile)
    tid = ticket["id"]

    assert client.patch(f"/admin/support/tickets/{tid}/assign", json={"assigned_to": student.id}, headers=a).status_code == 400
    r = client.patch(f"/admin/support/tickets/{tid}/assign", json={"assigned_to": admin_profile.id}, headers=a)
    assert r.json()["assigned_to_name"] == "Admin"


def test_delete_ticket(client, ticket, admin_profile, auth_headers):
    a = auth_headers(admin_profile)
    assert client.delete(f"/admin/support/tickets/{ticket['id']}", headers=a).status_code == 204
    assert client.get(f"/support/tickets/{ticket['id']}", headers=a).status_code == 404


def test_user_counts_sorted_by_unread_then_open(client, make_profile, admin_profile, auth_headers):
    quiet = make_profile(name="Quiet")
    busy = make_profile(name="Busy")
    for who, n in ((quiet, 1), (busy, 2)):
        for i in range(n):
            client.post(
                "/support/tickets",
                json={"subject": f"q{i}", "description": "help"},
                headers=auth_headers(who),
            )

    rows = client.get("/admin/support/user-counts", headers=auth_headers(admin_profile)).json()
    assert [(r["user_name"], r["open"], r["total"], r["unread"]) for r in rows] == [
        ("Busy", 2, 2, 2),
        ("Quiet", 1, 1, 1),
    ]


def test_stats(client, ticket, admin_profile, auth_headers):
    stats = client.get("/admin/support/stats", headers=auth_headers(admin_profile)).json()
    assert stats["total"] == 1
    assert stats["by_status"]["open"] == 1
    assert stats["created_today"] == 1
    assert stats["messages_today"] == 1


def test_admin_filters_tickets(client, ticket, student, admin_profile, auth_headers):
    a = auth_headers(admin_profile)
    assert len(client.get("/admin/support/tickets", params={"user_id": student.id}, headers=a).json()) == 1
    assert client.get("/admin/support/tickets", params={"status": "closed"}, headers=a).json() == []


def test_expired_members_cannot_open_tickets(client, expired_profile, auth_headers):
    r = client.post("/support/tickets", json={"subject": "s", "description": "d"}, headers=auth_headers(expired_profile))
    assert r.status_code == 402


# -------------------------------------------------
# Live updates
# -------------------------------------------------
def test_mutations_publish_to_ticket_owner_and_admin(client, ticket, student, admin_profile, auth_headers, collect_events):
    tid = ticket["id"]
    on_ticket = collect_events(ticket_channel(tid))
    on_user = collect_events(user_channel(student.id))
    on_admin = collect_events(ADMIN_CHANNEL)

    client.post(f"/support/tickets/{tid}/messages", json={"body": "hi"}, headers=auth_headers(admin_profile))

    for events in (on_ticket, on_user, on_admin):
        assert [e["event"] for e in events] == ["message_created"]
    assert on_user[0]["message"]["body"] == "hi"
    assert on_user[0]["unread_count"] == 1


def test_socket_streams_events(client, student, auth_headers):
    token = auth_headers(student)["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}") as ws:
        ready = ws.receive_json()
        assert ready["type"] == "ready"
        assert ready["channels"] == [user_channel(student.id)]

        hub.publish(user_channel(student.id), {"event": "ticket_updated", "ticket_id": 1})
        assert ws.receive_json() == {"type": "support", "event": "ticket_updated", "ticket_id": 1}

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

    assert hub.listener_count(user_channel(student.id)) == 0


def test_socket_refuses_expired_member(client, expired_profile, auth_headers):
    token = auth_headers(expired_profile)["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}") as ws:
        msg = ws.receive_json()
        assert msg["type"] == "auth_state"
        assert msg["state"] == "EXPIRED"
        assert msg["redirect_to"] == "/jail"
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4402


def test_socket_closes_on_sign_out(client, student, auth_headers):
    token = auth_headers(student)["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}") as ws:
        ws.receive_json()
        ws.send_json({"type": "auth", "event": "SIGNED_OUT"})
        msg = ws.receive_json()
        assert msg["type"] == "auth_state"
        assert msg["state"] == "UNAUTHENTICATED"
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()

    assert hub.listener_count(user_channel(student.id)) == 0


def test_socket_rejects_foreign_ticket(client, ticket, make_profile, auth_headers):
    token = auth_headers(make_profile())["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}&ticket_id={ticket['id']}") as ws:
        assert ws.receive_json()["type"] == "error"
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4404


def test_socket_closes_when_account_is_disabled(client, student, admin_profile, auth_headers):
    token = auth_headers(student)["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}") as ws:
        assert ws.receive_json()["type"] == "ready"

        r = client.patch(f"/admin/users/{student.id}/disabled", json={"disabled": True}, headers=auth_headers(admin_profile))
        assert r.status_code == 200

        msg = ws.receive_json()
        assert msg["type"] == "auth_state"
        assert msg["state"] == "DISABLED"
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4403

    assert hub.listener_count(user_channel(student.id)) == 0
    assert hub.listener_count(session_channel(student.id)) == 0


def test_socket_closes_on_logout_elsewhere(client, student, auth_headers):
    headers = auth_headers(student)
    token = headers["Authorization"].split()[1]

    with client.websocket_connect(f"/support/ws?token={token}") as ws:
        assert ws.receive_json()["type"] == "ready"

        assert client.post("/auth/logout", headers=headers).status_code == 200

        msg = ws.receive_json()
        assert msg["type"] == "auth_state"
        assert msg["state"] == "UNAUTHENTICATED"
        with pytest.raises(WebSocketDisconnect) as closed:
            ws.receive_json()
        assert closed.value.code == 4401
