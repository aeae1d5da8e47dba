"""
Admin Endpoints: פעולות administrator על כל ה-tenants.

1. מחיקת webhooks לכל ה-hosts או ל-host נבחר
2. סטטוס circuit breakers של יעדי ההעברה
3. הנפקת טוקנים ל-tenants
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_caller
from app.api.routes.schemas import (
    CircuitBreakerStatusResponse,
    DeleteWebhooksResponse,
    TenantTokenRequest,
    TenantTokenResponse,
)
from app.core.auth import create_tenant_token
from app.core.circuit_breaker import CircuitBreaker
from app.core.exceptions import ValidationException
from app.core.logging import get_logger
from app.core.validation import HostValidator
from app.db.database import get_db
from app.domain.services.authorization_gate import AuthorizationGate, Caller, Requirement
from app.domain.services.webhook_store import WebhookStore

logger = get_logger(__name__)

router = APIRouter()
tokens_router = APIRouter()


@router.delete("/webhooks", response_model=DeleteWebhooksResponse)
async def admin_delete_webhooks(
    host: Optional[str] = Query(None, description="ריק = כל ה-hosts"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """מחיקת webhooks של host נבחר, או של כל ה-hosts"""
    target_host = HostValidator.normalize(host) if host else None
    store = WebhookStore(db)
    deleted = await AuthorizationGate.run(
        caller, Requirement.ADMINISTRATOR, store.delete_by_host, target_host
    )
    logger.info(
        "Admin bulk delete",
        extra_data={"host": target_host or "*", "deleted": deleted},
    )
    return DeleteWebhooksResponse(host=target_host, deleted=deleted)


@router.get("/circuit-breakers", response_model=list[CircuitBreakerStatusResponse])
async def circuit_breakers(caller: Caller = Depends(get_caller)):
    """מצב ה-circuit breaker של כל יעד העברה שנוצר בתהליך הזה"""
    AuthorizationGate.check(caller, Requirement.ADMINISTRATOR)
    return [cb.snapshot() for cb in CircuitBreaker.all_instances()]


@tokens_router.post("/tenant-tokens", response_model=TenantTokenResponse, status_code=201)
async def issue_tenant_token(
    request: TenantTokenRequest,
    caller: Caller = Depends(get_caller),
):
    """הנפקת JWT ל-tenant: הטוקן מאפשר פעולות tenant על ה-host שבתוכו בלבד"""
    AuthorizationGate.check(caller, Requirement.ADMINISTRATOR)
    host = HostValidator.normalize(request.host)
    if not host:
        raise ValidationException("host is not a valid tenant host", field="host")
    try:
        token, expires_at = create_tenant_token(host)
    except ValueError as e:
        raise ValidationException(str(e), field="host") from e
    return TenantTokenResponse(access_token=token, host=host, expires_at=expires_at)
