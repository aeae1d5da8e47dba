"""
זיהוי ה-tenant (host) של בקשה ושל יעד ההעברה שמוגדר לתהליך
"""
from fastapi import Request

from app.core.config import settings
from app.core.validation import HostValidator
from app.domain.services.forwarding_service import ForwardDispatcher, ForwardTarget


def resolve_request_host(request: Request) -> str:
    """
    ה-host שהבקשה הופנתה אליו, מנורמל.

    X-Forwarded-Host נלקח רק כש-TRUST_FORWARDED_HOST מופעל (מאחורי reverse proxy).
    """
    if settings.TRUST_FORWARDED_HOST:
        forwarded = HostValidator.normalize(request.headers.get("x-forwarded-host"))
        if forwarded:
            return forwarded
    return HostValidator.normalize(request.headers.get("host"))


async def get_request_host(request: Request) -> str:
    return resolve_request_host(request)


def get_forward_target(request: Request) -> ForwardTarget | None:
    """היעד שנטען בעליית האפליקציה (app.state)"""
    return getattr(request.app.state, "forward_target", None)


async def get_forward_dispatcher(request: Request) -> ForwardDispatcher:
    return ForwardDispatcher(get_forward_target(request))
