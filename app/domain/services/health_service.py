"""
שירות בדיקת בריאות: בדיקות תלויות (DB, ו-broker של Celery במצב celery).

מספק שתי רמות בדיקה:
- liveness: האם התהליך חי (ללא בדיקת תלויות)
- readiness: בדיקת התלויות שהלכידה וההעברה צריכות
"""
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.logging import get_logger
from app.db.database import AsyncSessionLocal

logger = get_logger(__name__)

# סטטוסים אפשריים לתשובת readiness
_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# הודעות שגיאה מסוננות: ללא חשיפת פרטי תשתית
_ERROR_DB = "error: db_unavailable"
_ERROR_BROKER = "error: broker_unavailable"


async def _check_db() -> str:
    """בדיקת חיבור למסד הנתונים באמצעות שאילתה קלה."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except (SQLAlchemyError, OSError) as e:
        logger.warning("בדיקת בריאות DB נכשלה", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_broker() -> str:
    """בדיקת זמינות ה-broker של Celery (Redis) באמצעות PING."""
    try:
        client = aioredis.from_url(settings.CELERY_BROKER_URL, decode_responses=True)
        try:
            await client.ping()
            return _CHECK_OK
        finally:
            await client.aclose()
    except (RedisError, OSError) as e:
        logger.warning("בדיקת בריאות broker נכשלה", extra_data={"error": str(e)})
        return _ERROR_BROKER


async def check_readiness() -> dict[str, Any]:
    """
    בדיקת מוכנות: DB תמיד, broker רק כשההעברה נשלחת דרך Celery.

    מחזיר dict עם סטטוס כללי ופירוט לכל תלות:
    - status: "healthy" אם הכל תקין, "degraded" אם יש בעיה באחת התלויות
    - db / broker: "ok" או "error: ..."
    """
    checks = {"db": await _check_db()}
    if settings.FORWARD_DISPATCH_MODE == "celery":
        checks["broker"] = await _check_broker()

    all_ok = all(v == _CHECK_OK for v in checks.values())
    overall_status = _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED

    if not all_ok:
        logger.warning(
            "בדיקת מוכנות: המערכת במצב degraded",
            extra_data=checks,
        )

    return {"status": overall_status, **checks}
