"""
ספירות webhooks: ל-tenant בודד (לפי host הבקשה) ולכל ה-tenants (אדמין)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_caller
from app.api.dependencies.tenant import get_request_host
from app.api.routes.schemas import TenantCountResponse
from app.db.database import get_db
from app.domain.services.aggregation_service import AggregationService
from app.domain.services.authorization_gate import AuthorizationGate, Caller, Requirement

router = APIRouter()


@router.get("/count-webhooks", response_model=TenantCountResponse)
async def count_webhooks(
    caller: Caller = Depends(get_caller),
    host: str = Depends(get_request_host),
    db: AsyncSession = Depends(get_db),
):
    """מספר ה-webhooks שנלכדו עבור ה-host של הבקשה"""
    service = AggregationService(db)
    count = await AuthorizationGate.run(
        caller, Requirement.TENANT_USER, service.count_for_tenant, host, host=host
    )
    return TenantCountResponse(host=host, count=count)


@router.get("/webhooks-per-host", response_model=list[TenantCountResponse])
async def webhooks_per_host(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """ספירה לכל host שיש לו webhook אחד לפחות, ממוין לפי host"""
    service = AggregationService(db)
    counts = await AuthorizationGate.run(
        caller, Requirement.ADMINISTRATOR, service.counts_grouped_by_tenant
    )
    return [TenantCountResponse(host=c.host, count=c.count) for c in counts]
