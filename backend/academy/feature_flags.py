# academy/feature_flags.py
"""
Central place to define access rules.

- Active members reach everything.
- Expired members are held on /jail, with /subscription still open so they can renew.
- Public routes (login, signup, health, docs) never need a session.
"""
from __future__ import annotations

LOGIN_PATH = "/login"
HOME_PATH = "/home"
JAIL_PATH = "/jail"
SUBSCRIPTION_PATH = "/subscription"

# These routes should ALWAYS be reachable, session or not.
# Keep this list small and obvious.
ALWAYS_ALLOWED_PREFIXES: tuple[str, ...] = (
    LOGIN_PATH,
    "/signup",
    "/check-email",
    "/auth/login",
    "/auth/signup",
    "/auth/reset-password",
    "/health",
    "/docs",
    "/openapi.json",
)

# Reachable while EXPIRED (must never bounce back to /jail)
EXPIRED_ALLOWED_PREFIXES: tuple[str, ...] = (
    JAIL_PATH,
    SUBSCRIPTION_PATH,
    "/auth/logout",
    "/auth/state",
)


def path_matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/") or path.startswith(prefix + "?")


def is_always_allowed(path: str) -> bool:
    return any(path_matches(path, p) for p in ALWAYS_ALLOWED_PREFIXES)
