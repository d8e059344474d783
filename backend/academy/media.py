# academy/media.py
from __future__ import annotations

import base64
import binascii
import re
from typing import Optional

from fastapi import HTTPException, status

from academy.config import max_image_bytes

# Images are stored inline as data URLs (avatars, thumbnails, drops, ticket screenshots)
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]*)$")


def _bad_image(field: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "INVALID_IMAGE", "field": field, "message": message},
    )


def image_to_data_url(content: bytes, content_type: Optional[str]) -> str:
    mime = (content_type or "").strip().lower()
    if not mime.startswith("image/"):
        raise _bad_image("file", "Please select an image file")
    if len(content) > max_image_bytes():
        raise _bad_image("file", f"Image must be smaller than {max_image_bytes() // (1024 * 1024)}MB")
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def validate_image(value: Optional[str], field: str = "image") -> Optional[str]:
    """
    Accepts None/"" (no image), an http(s) URL, or a base64 image data URL
    no larger than MAX_IMAGE_BYTES once decoded.
    """
    v = (value or "").strip()
    if not v:
        return None

    if v.startswith("http://") or v.startswith("https://"):
        return v

    m = _DATA_URL_RE.match(v)
    if not m:
        raise _bad_image(field, "Image must be a URL or a base64 data URL")

    if not m.group("mime").lower().startswith("image/"):
        raise _bad_image(field, "Please select an image file")

    try:
        raw = base64.b64decode(m.group("data"), validate=False)
    except (binascii.Error, ValueError):
        raise _bad_image(field, "Image data is not valid base64")

    if len(raw) > max_image_bytes():
        raise _bad_image(field, f"Image must be smaller than {max_image_bytes() // (1024 * 1024)}MB")

    return v
