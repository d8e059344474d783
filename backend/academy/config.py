# academy/config.py
from __future__ import annotations

import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv

# -------------------------------------------------
# LOAD .env ONCE (before any getenv use)
# -------------------------------------------------
_env_path = find_dotenv(usecwd=True)
load_dotenv(_env_path, override=False)

_TRUTHY = ("1", "true", "yes", "on")


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def env_int(name: str, default: int) -> int:
    try:
        return int(env_str(name, str(default)))
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float) -> float:
    try:
        return float(env_str(name, str(default)))
    except (TypeError, ValueError):
        return default


def env_bool(name: str, default: bool = False) -> bool:
    v = env_str(name)
    if v is None:
        return default
    return v.lower() in _TRUTHY


def env_list(name: str) -> list[str]:
    """Comma separated list, lowercased and trimmed."""
    raw = env_str(name, "") or ""
    return [p.strip().lower() for p in raw.split(",") if p.strip()]


def admin_emails() -> set[str]:
    return set(env_list("ADMIN_EMAILS"))


def profile_fail_open() -> bool:
    return env_bool("PROFILE_FAIL_OPEN", True)


def auth_load_timeout_seconds() -> float:
    return env_float("AUTH_LOAD_TIMEOUT_SECONDS", 6.0)


def support_contact_url() -> str:
    return env_str("SUPPORT_CONTACT_URL", "https://t.me/elitez_club") or ""


def max_image_bytes() -> int:
    return env_int("MAX_IMAGE_BYTES", 5 * 1024 * 1024)


def app_base_url() -> str:
    """
    Used in password reset emails.
    In production set APP_BASE_URL, e.g. https://academy.example.com
    """
    base = (env_str("APP_BASE_URL") or "").rstrip("/")
    return base or "http://127.0.0.1:8000"
