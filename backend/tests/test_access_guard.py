"""
Routing contract over HTTP: JSON codes for API clients, redirects for browsers.
"""
from sqlalchemy.exc import OperationalError

from academy import auth

HTML = {"accept": "text/html,application/xhtml+xml"}


def test_no_session_is_401(client):
    r = client.get("/courses")
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "NOT_AUTHENTICATED"


def test_no_session_browser_is_sent_to_login(client):
    r = client.get("/courses", headers=HTML, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"


def test_garbage_token_is_unauthenticated(client):
    r = client.get("/courses", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_public_routes_need_no_session(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_active_member_reaches_content(client, make_profile, auth_headers):
    profile = make_profile()
    r = client.get("/courses", headers=auth_headers(profile))
    assert r.status_code == 200
    assert r.json() == []


def test_session_cookie_works_for_browsers(client, make_profile, auth_headers):
    token = auth_headers(make_profile())["Authorization"].split()[1]
    assert client.get("/courses", headers={"Cookie": f"access_token={token}"}).status_code == 200


def test_expired_member_is_held_on_jail(client, expired_profile, auth_headers):
    headers = auth_headers(expired_profile)

    r = client.get("/courses", headers=headers)
    assert r.status_code == 402
    assert r.json()["detail"]["code"] == "MEMBERSHIP_EXPIRED"
    assert r.json()["detail"]["redirect"] == "/jail"

    r = client.get("/courses", headers={**headers, **HTML}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/jail"


def test_jail_and_subscription_stay_reachable_when_expired(client, expired_profile, auth_headers):
    headers = {**auth_headers(expired_profile), **HTML}

    jail = client.get("/jail", headers=headers, follow_redirects=False)
    assert jail.status_code == 200
    assert jail.json()["contact_url"]

    sub = client.get("/subscription", headers=headers, follow_redirects=False)
    assert sub.status_code == 200
    assert sub.json()["expired"] is True
    assert sub.json()["days_until_renewal"] == 0


def test_active_member_is_sent_home_from_jail(client, make_profile, auth_headers):
    r = client.get("/jail", headers=auth_headers(make_profile()), follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/home"


def test_disabled_account_is_signed_out(client, db, make_profile, auth_headers):
    profile = make_profile(disabled=True)
    headers = auth_headers(profile)

    r = client.get("/home", headers=headers)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "ACCOUNT_DISABLED"

    db.refresh(profile)
    assert profile.session_version == 1

    # re-enabling doesn't revive the old token
    profile.disabled = False
    db.commit()
    assert client.get("/home", headers=headers).status_code == 401


def test_disabled_browser_lands_on_login_with_notice(client, make_profile, auth_headers):
    profile = make_profile(disabled=True)
    r = client.get("/home", headers={**auth_headers(profile), **HTML}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?notice=account_disabled"


def test_store_failure_serves_fallback_identity(client, make_profile, auth_headers, monkeypatch):
    headers = auth_headers(make_profile(disabled=True))

    def broken(db, user_id):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(auth, "load_profile", broken)

    r = client.get("/auth/state", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "ACTIVE"
    assert body["user"]["is_fallback"] is True
    assert body["user"]["membership_type"] == "TOP G"

    assert client.get("/courses", headers=headers).status_code == 200


def test_store_failure_fail_closed(client, make_profile, auth_headers, monkeypatch):
    headers = auth_headers(make_profile())

    def broken(db, user_id):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(auth, "load_profile", broken)
    monkeypatch.setenv("PROFILE_FAIL_OPEN", "false")

    r = client.get("/courses", headers=headers)
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "PROFILE_UNAVAILABLE"


def test_auth_state_reports_where_to_go(client, expired_profile, auth_headers):
    r = client.get("/auth/state", headers=auth_headers(expired_profile))
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "EXPIRED"
    assert body["membership_expired"] is True
    assert body["redirect_to"] == "/jail"

    anon = client.get("/auth/state").json()
    assert anon["state"] == "UNAUTHENTICATED"
    assert anon["redirect_to"] == "/login"


def test_expiry_is_rechecked_every_request(client, db, make_profile, auth_headers):
    from datetime import timedelta

    from academy.membership import today

    profile = make_profile()
    headers = auth_headers(profile)
    assert client.get("/courses", headers=headers).status_code == 200

    profile.subscription_date = today() - timedelta(days=31)
    db.commit()
    assert client.get("/courses", headers=headers).status_code == 402


def test_admin_routes_reject_students(client, make_profile, auth_headers):
    r = client.get("/admin/users", headers=auth_headers(make_profile()))
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "NOT_ADMIN"


def test_admin_emails_setting_grants_admin(client, make_profile, auth_headers, monkeypatch):
    profile = make_profile(email="boss@example.com")
    monkeypatch.setenv("ADMIN_EMAILS", "Boss@Example.com, other@example.com")
    assert client.get("/admin/users", headers=auth_headers(profile)).status_code == 200


def test_store_failure_on_admin_route_is_503(client, admin_profile, auth_headers, monkeypatch):
    headers = auth_headers(admin_profile)

    def broken(db, user_id):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(auth, "load_profile", broken)

    # the fallback identity can read content but never act as an admin
    r = client.get("/admin/users", headers=headers)
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "PROFILE_UNAVAILABLE"

    monkeypatch.setenv("PROFILE_FAIL_OPEN", "false")
    assert client.get("/admin/users", headers=headers).status_code == 503
