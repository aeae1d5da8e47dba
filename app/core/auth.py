"""
טוקנים של tenant-user: יצירה ואימות JWT.

טוקן tenant נושא claim יחיד מהותי: ``host``. ה-host הזה הוא ה-tenant
שהמחזיק רשאי לשאול עליו (ספירות, מטא-דאטה, מחיקה). הטוקן מונפק ע"י
administrator דרך ``POST /api/auth/tenant-tokens``.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.logging import get_logger
from app.core.validation import HostValidator

logger = get_logger(__name__)

TENANT_TOKEN_TYPE = "tenant"


class TenantTokenPayload(BaseModel):
    """תוכן ה-JWT token של tenant"""
    host: str
    typ: str = TENANT_TOKEN_TYPE
    exp: int  # Unix timestamp: סטנדרט JWT


def create_tenant_token(host: str) -> tuple[str, datetime]:
    """יצירת JWT token ל-tenant: מחזיר (token, expires_at)"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY לא מוגדר: אי אפשר ליצור טוקן")
    normalized_host = HostValidator.normalize(host)
    if not normalized_host:
        raise ValueError("host ריק: אי אפשר ליצור טוקן")

    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.TENANT_TOKEN_EXPIRE_MINUTES)
    payload = {
        "host": normalized_host,
        "typ": TENANT_TOKEN_TYPE,
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.info("Tenant token created", extra_data={"host": normalized_host})
    return encoded, expire


def verify_tenant_token(token: str) -> Optional[TenantTokenPayload]:
    """אימות JWT token: מחזיר None אם לא תקין, פג תוקף או לא מסוג tenant"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY ריק: טוקנים לא יאומתו")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        data = TenantTokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("Tenant token invalid or expired")
        return None
    except (KeyError, ValueError, TypeError) as e:
        logger.warning("Tenant token payload malformed", extra_data={"error": str(e)})
        return None

    if data.typ != TENANT_TOKEN_TYPE or not HostValidator.validate(data.host):
        logger.warning("Tenant token has wrong type or empty host")
        return None
    return data
