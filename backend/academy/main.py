# academy/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from starlette.exceptions import HTTPException as StarletteHTTPException

from academy import auth, models
from academy.authz_errors import http_exception_handler
from academy.config import env_bool, env_str
from academy.database import Base, SessionLocal, engine
from academy.feature_flags import HOME_PATH
from academy.membership import TIER_ANNUAL, default_renew_days

from academy.routers import account
from academy.routers import activity
from academy.routers import admin_content
from academy.routers import admin_users
from academy.routers import comments
from academy.routers import courses
from academy.routers import daily_drops
from academy.routers import membership
from academy.routers import profit
from academy.routers import support

# -------------------------------------------------
# LOGGING
# -------------------------------------------------
logging.basicConfig(
    level=(env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# -------------------------------------------------
# APP SETUP
# -------------------------------------------------
app = FastAPI(title="Academy Backend", version="0.1.0")

# Gate outcomes -> redirect (browsers) or JSON code (API clients)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)

# Routers
app.include_router(account.router)
app.include_router(membership.router)
app.include_router(courses.router)
app.include_router(comments.router)
app.include_router(daily_drops.router)
app.include_router(activity.router)
app.include_router(support.router)
app.include_router(support.ws_router)
app.include_router(admin_users.router)
app.include_router(admin_content.router)
app.include_router(profit.router)


# -------------------------------------------------
# ROOT + HEALTH
# -------------------------------------------------
@app.get("/")
def root():
    return RedirectResponse(url=HOME_PATH)


@app.get("/health")
def health():
    return {"status": "ok"}


# -------------------------------------------------
# STARTUP: CREATE TABLES + OPTIONAL ADMIN SEED
# -------------------------------------------------
def seed_admin_if_enabled() -> None:
    if not env_bool("SEED_ADMIN", False):
        return

    db = SessionLocal()
    try:
        admin_exists = db.scalar(select(models.Profile).where(models.Profile.is_admin == True))  # noqa: E712
        if admin_exists:
            return

        admin_email = auth.normalize_email(env_str("SEED_ADMIN_EMAIL", "admin@example.com"))
        admin_password = env_str("SEED_ADMIN_PASSWORD", "AdminPassword123!") or "AdminPassword123!"

        db.add(
            models.Profile(
                email=admin_email,
                hashed_password=auth.hash_password(admin_password),
                name="Default Admin",
                membership_type=TIER_ANNUAL,
                renew_interval_days=default_renew_days(TIER_ANNUAL),
                is_admin=True,
                disabled=False,
            )
        )
        db.commit()
        logger.info("seeded admin account %s", admin_email)
    finally:
        db.close()


@app.on_event("startup")
def bootstrap_startup():
    Base.metadata.create_all(bind=engine)
    seed_admin_if_enabled()
