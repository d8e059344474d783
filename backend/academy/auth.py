# academy/auth.py
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import admin_emails, env_int, env_str
from .database import get_db
from .models import Profile
from .realtime import hub, session_channel

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Settings
# -------------------------------------------------------------------
SECRET_KEY = env_str("SECRET_KEY", "CHANGE_ME_TO_SOMETHING_RANDOM_AND_LONG")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 1440)
RESET_TOKEN_EXPIRE_MINUTES = 60

# -------------------------------------------------------------------
# Password hashing
# -------------------------------------------------------------------
pwd_context = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    deprecated="auto",
)

# auto_error=False: a missing token is a valid input to the gate (UNAUTHENTICATED)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_admin(profile) -> bool:
    """is_admin flag, or email listed in ADMIN_EMAILS."""
    if profile is None:
        return False
    if bool(getattr(profile, "is_admin", False)):
        return True
    return normalize_email(getattr(profile, "email", None)) in admin_emails()


# -------------------------------------------------------------------
# Sessions (JWT)
# -------------------------------------------------------------------
@dataclass(frozen=True)
class SessionInfo:
    user_id: int
    email: str
    session_version: int
    token: str = ""


def create_access_token(
    *,
    profile_id: int,
    subject: str,
    session_version: int,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Token claims:
      sub: profile id
      eml: email (debug/compat)
      ver: profile.session_version at issue time
      exp: expiry datetime
    """
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(int(profile_id)),
        "eml": subject,
        "ver": int(session_version),
        "typ": "access",
        "exp": expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def create_reset_token(profile: Profile) -> str:
    expire = datetime.utcnow() + timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(profile.id),
        "ver": int(profile.session_version or 0),
        "typ": "reset",
        "nonce": secrets.token_urlsafe(8),
        "exp": expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if not payload.get("sub") or payload.get("typ") != expected_type:
            raise ValueError("Token missing required claims")
        return payload
    except (JWTError, ValueError) as e:
        raise ValueError("Invalid token") from e


def session_from_token(token: Optional[str]) -> Optional[SessionInfo]:
    """Signature/expiry check only. No database access."""
    token = (token or "").strip()
    if not token:
        return None
    try:
        payload = decode_token(token)
        return SessionInfo(
            user_id=int(payload["sub"]),
            email=str(payload.get("eml") or ""),
            session_version=int(payload.get("ver") or 0),
            token=token,
        )
    except (ValueError, TypeError):
        return None


def token_from_request(request: Request) -> Optional[str]:
    """
    Authorization: Bearer <token>, or the access_token cookie for browser navigation.
    """
    auth_header = (request.headers.get("Authorization") or "").strip()
    if auth_header:
        parts = auth_header.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip() or None
        return None
    return (request.cookies.get("access_token") or "").strip() or None


# -------------------------------------------------------------------
# Profile store
# -------------------------------------------------------------------
def load_profile(db: Session, user_id: int) -> Optional[Profile]:
    return db.get(Profile, user_id)


def get_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.scalar(select(Profile).where(Profile.email == normalize_email(email)))


def upsert_profile(db: Session, profile: Profile, **fields) -> Profile:
    """Writes only the fields given (None means 'leave as is')."""
    for key, value in fields.items():
        if value is not None:
            setattr(profile, key, value)
    profile.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(profile)
    return profile


def sign_out_profile(db: Session, profile: Profile) -> None:
    """Revokes every token issued so far for this profile and tells its open sockets."""
    profile.session_version = int(profile.session_version or 0) + 1
    notice = {"event": "session_revoked", "user_id": profile.id, "disabled": bool(profile.disabled)}
    db.commit()
    hub.publish(session_channel(notice["user_id"]), notice)


def session_is_current(session: SessionInfo, profile: Optional[Profile]) -> bool:
    return profile is not None and int(profile.session_version or 0) == session.session_version


def _auth_401() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "NOT_AUTHENTICATED", "message": "Not authenticated"},
        headers={"WWW-Authenticate": "Bearer"},
    )


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_session(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[SessionInfo]:
    """Current session, or None. Never raises."""
    return session_from_token(token or token_from_request(request))


def get_current_profile(
    session: Optional[SessionInfo] = Depends(get_session),
    db: Session = Depends(get_db),
) -> Profile:
    """
    Loads the signed-in profile. No membership checks here;
    use access_guard.require_active_access for protected content.
    """
    if session is None:
        raise _auth_401()
    profile = load_profile(db, session.user_id)
    if not session_is_current(session, profile):
        raise _auth_401()
    return profile


def make_temp_password(length: int = 14) -> str:
    return secrets.token_urlsafe(length)[:length]
