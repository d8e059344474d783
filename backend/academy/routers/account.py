# academy/routers/account.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from academy import activity, auth, models, schemas
from academy.access_guard import get_auth_snapshot, require_stored_profile
from academy.auth_state import AuthSnapshot
from academy.config import app_base_url
from academy.database import get_db
from academy.email_templates import password_reset
from academy.emailer import send_email_if_configured
from academy.feature_flags import HOME_PATH
from academy.media import validate_image
from academy.membership import DISABLED_NOTICE, TIER_FREE_TRIAL, default_renew_days, resolve_route, today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _set_session_cookie(response: Response, token: str) -> None:
    # browser navigation (HTML redirects) reads the cookie; API clients use the bearer header
    response.set_cookie(
        "access_token",
        token,
        httponly=True,
        samesite="lax",
        max_age=auth.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def _issue_token(profile: models.Profile) -> str:
    return auth.create_access_token(
        profile_id=profile.id,
        subject=profile.email,
        session_version=profile.session_version,
    )


# -------------------------------------------------
# SIGN UP / LOGIN / LOGOUT (never locked)
# -------------------------------------------------
@router.post("/auth/signup", response_model=schemas.TokenOut, status_code=201)
def signup(
    payload: schemas.SignupIn,
    response: Response,
    db: Session = Depends(get_db),
):
    email = auth.normalize_email(payload.email)
    if auth.get_profile_by_email(db, email):
        raise HTTPException(status_code=400, detail={"code": "EMAIL_EXISTS", "message": "Email already exists"})

    profile = models.Profile(
        email=email,
        hashed_password=auth.hash_password(payload.password),
        name=(payload.name or "").strip() or None,
        membership_type=TIER_FREE_TRIAL,
        subscription_date=today(),
        renew_interval_days=default_renew_days(TIER_FREE_TRIAL),
        disabled=False,
        is_admin=False,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    logger.info("new free trial profile %s", profile.id)

    token = _issue_token(profile)
    _set_session_cookie(response, token)
    return schemas.TokenOut(access_token=token, user_id=profile.id, is_admin=auth.is_admin(profile))


@router.post("/auth/login", response_model=schemas.TokenOut)
def login(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    profile = auth.get_profile_by_email(db, form_data.username)
    if not profile or not auth.verify_password(form_data.password, profile.hashed_password):
        raise HTTPException(
            status_code=401,
            detail={"code": "INVALID_CREDENTIALS", "message": "Invalid email or password"},
        )

    if profile.disabled:
        raise HTTPException(status_code=403, detail={"code": "ACCOUNT_DISABLED", "message": DISABLED_NOTICE})

    token = _issue_token(profile)
    _set_session_cookie(response, token)
    activity.log_activity(db, profile, activity.LOGIN, {"method": "password"}, request)
    return schemas.TokenOut(access_token=token, user_id=profile.id, is_admin=auth.is_admin(profile))


@router.post("/auth/logout")
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(auth.get_current_profile),
):
    activity.log_activity(db, profile, activity.LOGOUT, None, request)
    auth.sign_out_profile(db, profile)
    response.delete_cookie("access_token")
    return {"ok": True}


# -------------------------------------------------
# PASSWORD RESET
# -------------------------------------------------
@router.post("/auth/reset-password")
def request_password_reset(payload: schemas.PasswordResetRequestIn, db: Session = Depends(get_db)):
    """Same answer whether or not the email exists."""
    profile = auth.get_profile_by_email(db, payload.email)
    if profile and not profile.disabled:
        token = auth.create_reset_token(profile)
        parts = password_reset(
            profile.name,
            f"{app_base_url()}/reset-password?token={token}",
            auth.RESET_TOKEN_EXPIRE_MINUTES,
        )
        if not send_email_if_configured(profile.email, parts.subject, parts.body):
            logger.info("password reset email for profile %s not sent (email disabled or failed)", profile.id)

    return {"ok": True, "message": "If that email exists, a reset link has been sent."}


@router.post("/auth/reset-password/confirm")
def confirm_password_reset(payload: schemas.PasswordResetConfirmIn, db: Session = Depends(get_db)):
    invalid = HTTPException(status_code=400, detail={"code": "INVALID_RESET_TOKEN", "message": "Reset link is invalid or expired"})
    try:
        claims = auth.decode_token(payload.token, expected_type="reset")
    except ValueError:
        raise invalid

    profile = auth.load_profile(db, int(claims["sub"]))
    if profile is None or int(claims.get("ver") or 0) != int(profile.session_version or 0):
        raise invalid

    profile.hashed_password = auth.hash_password(payload.password)
    # a new password ends every existing session (and burns the reset link)
    auth.sign_out_profile(db, profile)
    return {"ok": True}


# -------------------------------------------------
# GATE STATE (never locked)
# -------------------------------------------------
@router.get("/auth/state", response_model=schemas.AuthStateOut)
def auth_state(snapshot: AuthSnapshot = Depends(get_auth_snapshot)):
    decision = resolve_route(snapshot.state, HOME_PATH)
    user = None
    if snapshot.user is not None:
        user = {
            "uid": snapshot.user.uid,
            "email": snapshot.user.email,
            "name": snapshot.user.name,
            "bio": snapshot.user.bio,
            "profile_pic": snapshot.user.profile_pic,
            "membership_type": snapshot.user.membership_type,
            "is_admin": snapshot.user.is_admin,
            "is_fallback": snapshot.user.is_fallback,
        }
    return schemas.AuthStateOut(
        state=snapshot.state.value,
        authenticated=snapshot.session is not None,
        membership_expired=snapshot.membership_expired,
        access_end=snapshot.access_end,
        redirect_to=decision.redirect_to,
        notice=snapshot.notice or decision.notice,
        user=user,
    )


# -------------------------------------------------
# OWN PROFILE
# -------------------------------------------------
@router.get("/me", response_model=schemas.ProfileOut)
def read_me(profile: models.Profile = Depends(require_stored_profile)):
    return profile


@router.put("/me", response_model=schemas.ProfileOut)
def update_me(
    payload: schemas.ProfileUpdateMe,
    request: Request,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(require_stored_profile),
):
    avatar = validate_image(payload.avatar_url, field="avatar_url") if payload.avatar_url is not None else None
    auth.upsert_profile(
        db,
        profile,
        name=payload.name.strip() if payload.name is not None else None,
        bio=payload.bio,
        avatar_url=avatar,
    )
    activity.log_activity(
        db,
        profile,
        activity.UPDATE_PROFILE,
        {"fields": sorted(k for k, v in payload.model_dump().items() if v is not None)},
        request,
    )
    return profile
