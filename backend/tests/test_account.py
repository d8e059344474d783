"""
Sign-up, login, logout, password reset and own profile.
"""
import base64
from datetime import datetime

from academy import auth, membership


def _login(client, email, password="password123"):
    return client.post("/auth/login", data={"username": email, "password": password})


def test_signup_starts_a_one_day_free_trial(client, db):
    r = client.post("/auth/signup", json={"email": "New@Example.com", "password": "secret99", "name": "Newbie"})
    assert r.status_code == 201
    token = r.json()["access_token"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.json()
    assert body["email"] == "new@example.com"
    assert body["membership_type"] == "Free Trial"
    assert body["renew_interval_days"] == 1
    assert body["subscription_date"] == membership.today().isoformat()


def test_signup_trial_starts_on_the_gate_clock(client, monkeypatch):
    # late in the UTC day, when a server west of UTC is still on the previous date
    monkeypatch.setattr(membership, "_utcnow", lambda: datetime(2026, 10, 19, 23, 30))
    r = client.post("/auth/signup", json={"email": "late@example.com", "password": "secret99"})
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}

    state = client.get("/auth/state", headers=headers).json()
    assert state["state"] == "ACTIVE"
    assert client.get("/me", headers=headers).json()["subscription_date"] == "2026-10-19"

    monkeypatch.setattr(membership, "_utcnow", lambda: datetime(2026, 10, 20, 0, 0, 1))
    assert client.get("/auth/state", headers=headers).json()["state"] == "EXPIRED"


def test_signup_rejects_duplicate_email(client, make_profile):
    make_profile(email="taken@example.com")
    r = client.post("/auth/signup", json={"email": "taken@example.com", "password": "secret99"})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "EMAIL_EXISTS"


def test_login_issues_token(client, make_profile):
    profile = make_profile(email="student@example.com")
    r = _login(client, "student@example.com")
    assert r.status_code == 200
    assert r.json()["user_id"] == profile.id
    assert "access_token" in r.headers.get("set-cookie", "")


def test_login_wrong_password(client, make_profile):
    make_profile(email="student@example.com")
    r = _login(client, "student@example.com", "nope")
    assert r.status_code == 401


def test_disabled_account_cannot_log_in(client, make_profile):
    make_profile(email="gone@example.com", disabled=True)
    r = _login(client, "gone@example.com")
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "ACCOUNT_DISABLED"
    assert "access_token" not in r.json()


def test_login_is_recorded_for_students_only(client, db, make_profile, admin_profile):
    from academy import models

    make_profile(email="student@example.com")
    _login(client, "student@example.com")
    _login(client, "admin@example.com")

    actions = db.query(models.ActivityLog).all()
    assert [a.action for a in actions] == ["LOGIN"]
    assert "user_agent" in actions[0].details


def test_logout_revokes_every_token(client, make_profile, auth_headers):
    profile = make_profile()
    headers = auth_headers(profile)

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert client.get("/courses", headers=headers).status_code == 401


def test_reset_password_never_reveals_accounts(client, make_profile):
    make_profile(email="student@example.com")
    known = client.post("/auth/reset-password", json={"email": "student@example.com"})
    unknown = client.post("/auth/reset-password", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()


def test_reset_password_confirm(client, db, make_profile):
    profile = make_profile(email="student@example.com")
    token = auth.create_reset_token(profile)

    r = client.post("/auth/reset-password/confirm", json={"token": token, "password": "brand-new-pw"})
    assert r.status_code == 200
    assert _login(client, "student@example.com", "brand-new-pw").status_code == 200

    # link is single use
    again = client.post("/auth/reset-password/confirm", json={"token": token, "password": "another-pw"})
    assert again.status_code == 400


def test_access_token_is_not_a_reset_token(client, make_profile, auth_headers):
    token = auth_headers(make_profile())["Authorization"].split()[1]
    r = client.post("/auth/reset-password/confirm", json={"token": token, "password": "brand-new-pw"})
    assert r.status_code == 400


def test_update_me(client, make_profile, auth_headers):
    profile = make_profile()
    avatar = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode()

    r = client.put("/me", json={"name": "  Renamed  ", "bio": "hi", "avatar_url": avatar}, headers=auth_headers(profile))
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["avatar_url"] == avatar


def test_update_me_rejects_non_image(client, make_profile, auth_headers):
    bad = "data:text/plain;base64," + base64.b64encode(b"hello").decode()
    r = client.put("/me", json={"avatar_url": bad}, headers=auth_headers(make_profile()))
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_IMAGE"


def test_update_me_rejects_oversized_image(client, make_profile, auth_headers, monkeypatch):
    monkeypatch.setenv("MAX_IMAGE_BYTES", "10")
    big = "data:image/png;base64," + base64.b64encode(b"x" * 64).decode()
    r = client.put("/me", json={"avatar_url": big}, headers=auth_headers(make_profile()))
    assert r.status_code == 400
