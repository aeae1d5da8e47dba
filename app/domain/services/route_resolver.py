"""
Route Resolver - סיווג path נכנס: API פנימי או webhook ללכידה

החלטה טהורה, ללא side effects. ה-path מנורמל תמיד לפני ההשוואה, כך
ש-"//api" ו-"/api" מסווגים אותו דבר.
"""
import re
from dataclasses import dataclass
from typing import Union

from app.core.config import settings

_SLASH_RUN = re.compile(r"/{2,}")


@dataclass(frozen=True)
class Reserved:
    """ה-path שייך ל-API הפנימי: לא נלכד"""


@dataclass(frozen=True)
class Capture:
    """ה-path נלכד כ-webhook; ``path`` מנורמל"""
    path: str


RouteDecision = Union[Reserved, Capture]


def normalize_path(raw_path: str | None) -> str:
    """
    Normalize a request path.

    - empty → "/"
    - runs of "/" collapse to a single "/"
    - exactly one leading "/"
    - a single trailing "/" is kept when present

    Idempotent: normalize_path(normalize_path(p)) == normalize_path(p).
    """
    if not raw_path:
        return "/"
    path = _SLASH_RUN.sub("/", raw_path)
    if not path.startswith("/"):
        path = "/" + path
    return path


def first_segment(path: str) -> str:
    """הסגמנט הראשון של path מנורמל ("" עבור "/")"""
    return normalize_path(path).lstrip("/").split("/", 1)[0]


def resolve(raw_path: str | None, reserved_segment: str | None = None) -> RouteDecision:
    """
    Classify an inbound path.

    Reserved iff the first segment equals the reserved marker exactly:
    "/api" and "/api/x" are reserved, "/api-webhook" and "/x/api" are captured.
    """
    marker = reserved_segment if reserved_segment is not None else settings.RESERVED_PATH_SEGMENT
    path = normalize_path(raw_path)
    if first_segment(path) == marker:
        return Reserved()
    return Capture(path=path)
