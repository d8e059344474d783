"""
Pytest configuration for the academy backend
"""
import os
from datetime import timedelta
from typing import Callable, Generator

# Must be set before academy.database is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["ADMIN_EMAILS"] = ""
os.environ["PROFILE_FAIL_OPEN"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from academy import auth, models
from academy.database import Base, SessionLocal, engine
from academy.main import app
from academy.membership import today
from academy.realtime import hub


@pytest.fixture(autouse=True)
def _tables() -> Generator[None, None, None]:
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_profile(db: Session) -> Callable[..., models.Profile]:
    """
    Creates a profile. Defaults to an ACTIVE monthly member.
    """
    counter = {"n": 0}

    def _make(**fields) -> models.Profile:
        counter["n"] += 1
        password = fields.pop("password", "password123")
        values = {
            "email": f"user{counter['n']}@example.com",
            "name": f"User {counter['n']}",
            "membership_type": "TOP G - Monthly",
            "subscription_date": today(),
            "renew_interval_days": 30,
            "disabled": False,
            "is_admin": False,
        }
        values.update(fields)
        profile = models.Profile(hashed_password=auth.hash_password(password), **values)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make


@pytest.fixture
def expired_profile(make_profile) -> models.Profile:
    return make_profile(subscription_date=today() - timedelta(days=40), renew_interval_days=30)


@pytest.fixture
def admin_profile(make_profile) -> models.Profile:
    return make_profile(email="admin@example.com", name="Admin", is_admin=True)


def token_for(profile: models.Profile) -> str:
    return auth.create_access_token(
        profile_id=profile.id,
        subject=profile.email,
        session_version=profile.session_version,
    )


def headers_for(profile: models.Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(profile)}"}


@pytest.fixture
def auth_headers() -> Callable[[models.Profile], dict[str, str]]:
    return headers_for


@pytest.fixture
def collect_events() -> Generator[Callable[[str], list], None, None]:
    """Subscribes a list collector to a hub channel; released after the test."""
    subscriptions = []

    def _collect(channel: str) -> list:
        received: list = []
        subscriptions.append(hub.subscribe(channel, received.append))
        return received

    yield _collect
    for sub in subscriptions:
        sub.unsubscribe()
