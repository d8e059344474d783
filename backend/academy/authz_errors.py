# academy/authz_errors.py
from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from academy.feature_flags import JAIL_PATH, LOGIN_PATH

_DEFAULT_REDIRECTS = {
    "NOT_AUTHENTICATED": LOGIN_PATH,
    "ACCOUNT_DISABLED": LOGIN_PATH + "?notice=account_disabled",
    "MEMBERSHIP_EXPIRED": JAIL_PATH,
}


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    # browsers usually send text/html
    return "text/html" in accept


def _detail_code(exc: StarletteHTTPException) -> str | None:
    detail = getattr(exc, "detail", None)
    if isinstance(detail, dict):
        code = detail.get("code")
        if isinstance(code, str):
            return code
    return None


def _redirect_target(exc: StarletteHTTPException) -> str | None:
    detail = getattr(exc, "detail", None)
    if isinstance(detail, dict) and isinstance(detail.get("redirect"), str):
        return detail["redirect"]
    return _DEFAULT_REDIRECTS.get(_detail_code(exc) or "")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = getattr(exc, "headers", None)

    # Explicit redirects (e.g. active member opening /jail)
    if 300 <= exc.status_code < 400:
        location = (headers or {}).get("Location") or _redirect_target(exc) or "/"
        return RedirectResponse(url=location, status_code=exc.status_code)

    code = _detail_code(exc)
    target = _redirect_target(exc)

    # Gate outcomes -> browser navigation
    if target and _wants_html(request) and exc.status_code in (401, 402, 403):
        response = RedirectResponse(url=target, status_code=303)
        if code in ("NOT_AUTHENTICATED", "ACCOUNT_DISABLED"):
            response.delete_cookie("access_token")
        return response

    response = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)
    if code == "ACCOUNT_DISABLED":
        response.delete_cookie("access_token")
    return response
