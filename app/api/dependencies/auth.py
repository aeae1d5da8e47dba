"""
FastAPI dependency לזיהוי הקורא: administrator, tenant-user או אנונימי

שימוש:
    @router.get("/count-webhooks")
    async def count_webhooks(
        caller: Caller = Depends(get_caller),
        host: str = Depends(get_request_host),
    ):
        AuthorizationGate.check(caller, Requirement.TENANT_USER, host=host)

ה-dependency רק מזהה את הקורא; ההחלטה אם מותר לו מתקבלת ב-AuthorizationGate.
הוכחה שגויה (מפתח שגוי, טוקן לא תקין) נחשבת כהיעדר הוכחה.
"""
import secrets

from fastapi import Depends
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from app.core.auth import verify_tenant_token
from app.core.config import settings
from app.core.logging import get_logger
from app.domain.services.authorization_gate import Caller

logger = get_logger(__name__)

ADMIN_API_KEY_HEADER = "X-Admin-API-Key"

_api_key_header = APIKeyHeader(name=ADMIN_API_KEY_HEADER, auto_error=False)
_bearer = HTTPBearer(auto_error=False)


def _is_admin_key(api_key: str | None) -> bool:
    """השוואה בזמן קבוע; ADMIN_API_KEY ריק חוסם את כל הבקשות"""
    if not api_key:
        return False
    if not settings.ADMIN_API_KEY:
        logger.warning("מפתח אדמין נשלח אבל ADMIN_API_KEY לא מוגדר בסביבה")
        return False
    if not secrets.compare_digest(api_key, settings.ADMIN_API_KEY):
        logger.warning("מפתח API שגוי ב-X-Admin-API-Key")
        return False
    return True


async def get_caller(
    api_key: str | None = Depends(_api_key_header),
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Caller:
    """זיהוי הקורא מתוך ה-headers של הבקשה"""
    if _is_admin_key(api_key):
        return Caller.administrator()

    if credentials is not None:
        payload = verify_tenant_token(credentials.credentials)
        if payload is not None:
            return Caller.tenant(payload.host)

    return Caller.anonymous()
