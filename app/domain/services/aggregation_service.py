"""
Aggregation Service - ספירת webhooks לפי tenant

ספירות חיות מה-store (COUNT), ללא מטמון: כל אירוע שנשמר נספר מיד.
"""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.services.webhook_store import WebhookStore


@dataclass(frozen=True)
class TenantCount:
    host: str
    count: int


class AggregationService:
    """Read-only per-tenant counts"""

    def __init__(self, db: AsyncSession):
        self.store = WebhookStore(db)

    async def count_for_tenant(self, host: str) -> int:
        """מספר האירועים של host: 0 אם אין"""
        return await self.store.count_by_host(host)

    async def counts_grouped_by_tenant(self) -> list[TenantCount]:
        """רשומה לכל host עם אירוע אחד לפחות, ממוין לפי host"""
        rows = await self.store.count_grouped_by_host()
        return [TenantCount(host=host, count=count) for host, count in rows]
