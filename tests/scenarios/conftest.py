"""
Fixtures ו-helpers לבדיקות תרחיש מקצה לקצה.

מספק:
- בוני payload של ספקי webhooks נפוצים (חנות, תשלומים, git)
- פונקציות שליחה ושאילתה תמציתיות מול ה-API הפנימי
- פונקציות אימות DB (מספר אירועים וניסיונות העברה)
"""
from typing import Optional

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.webhook import Webhook
from app.db.models.webhook_forward import ForwardAttempt
from tests.conftest import ADMIN_HEADERS, tenant_headers

_event_counter = 0


def _next_event_id() -> int:
    global _event_counter
    _event_counter += 1
    return _event_counter


# ============================================================================
# בוני Payload
# ============================================================================


def build_order_event(total: str = "19.90") -> dict:
    """אירוע הזמנה בסגנון חנות מקוונת"""
    uid = _next_event_id()
    return {"id": uid, "topic": "orders/create", "total_price": total, "currency": "ILS"}


def build_payment_event(amount: int = 1990) -> dict:
    """אירוע תשלום בסגנון ספק סליקה"""
    uid = _next_event_id()
    return {
        "id": f"evt_{uid}",
        "type": "payment_intent.succeeded",
        "data": {"object": {"amount": amount, "currency": "ils"}},
    }


def build_push_event(repo: str = "acme/relay") -> dict:
    """אירוע push בסגנון שירות git"""
    uid = _next_event_id()
    return {"ref": "refs/heads/main", "after": f"{uid:040x}", "repository": {"full_name": repo}}


# ============================================================================
# שליחה ושאילתה
# ============================================================================


async def send_event(
    client: httpx.AsyncClient,
    host: str,
    path: str,
    payload: dict,
    headers: Optional[dict[str, str]] = None,
) -> dict:
    """שליחת webhook כ-host; מחזיר את האירוע השמור"""
    response = await client.post(path, json=payload, headers={"Host": host, **(headers or {})})
    assert response.status_code == 200, response.text
    return response.json()


async def tenant_count(client: httpx.AsyncClient, host: str) -> int:
    response = await client.get("/api/count-webhooks", headers=tenant_headers(host))
    assert response.status_code == 200, response.text
    return response.json()["count"]


async def counts_per_host(client: httpx.AsyncClient) -> dict[str, int]:
    response = await client.get("/api/webhooks-per-host", headers=ADMIN_HEADERS)
    assert response.status_code == 200, response.text
    return {item["host"]: item["count"] for item in response.json()}


# ============================================================================
# אימות DB
# ============================================================================


async def assert_stored_count(db: AsyncSession, host: str, expected: int) -> None:
    result = await db.execute(select(func.count(Webhook.id)).where(Webhook.host == host))
    actual = result.scalar_one()
    assert actual == expected, f"host={host}: ציפינו ל-{expected} אירועים, נמצאו {actual}"


async def forward_attempts(session_factory, webhook_id: str) -> list[ForwardAttempt]:
    """ניסיונות העברה של אירוע: נקרא ב-session נפרד (ההעברה כותבת ב-session משלה)"""
    async with session_factory() as session:
        result = await session.execute(
            select(ForwardAttempt)
            .where(ForwardAttempt.webhook_id == webhook_id)
            .order_by(ForwardAttempt.created_at)
        )
        return list(result.scalars().all())
