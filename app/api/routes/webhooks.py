"""
Webhooks של tenant: עיון ומחיקה, תמיד לפי ה-host של הבקשה
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.auth import get_caller
from app.api.dependencies.tenant import get_request_host
from app.api.routes.schemas import (
    DeleteWebhooksResponse,
    WebhookListResponse,
    WebhookResponse,
)
from app.core.exceptions import WebhookNotFoundError
from app.db.database import get_db
from app.domain.services.authorization_gate import AuthorizationGate, Caller, Requirement
from app.domain.services.webhook_store import WebhookStore

router = APIRouter()


@router.get("", response_model=WebhookListResponse)
async def list_webhooks(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    host: str = Depends(get_request_host),
    db: AsyncSession = Depends(get_db),
):
    """אירועים של ה-host, מהחדש לישן"""
    AuthorizationGate.check(caller, Requirement.TENANT_USER, host=host)
    store = WebhookStore(db)
    total = await store.count_by_host(host)
    items = await store.list_for_host(host, limit=limit, offset=offset)
    return WebhookListResponse(
        host=host,
        total=total,
        limit=limit,
        offset=offset,
        items=[WebhookResponse.model_validate(w) for w in items],
    )


@router.get("/{webhook_id}", response_model=WebhookResponse)
async def get_webhook(
    webhook_id: str,
    caller: Caller = Depends(get_caller),
    host: str = Depends(get_request_host),
    db: AsyncSession = Depends(get_db),
):
    AuthorizationGate.check(caller, Requirement.TENANT_USER, host=host)
    webhook = await WebhookStore(db).get_for_host(host, webhook_id)
    if webhook is None:
        raise WebhookNotFoundError(webhook_id)
    return WebhookResponse.model_validate(webhook)


@router.delete("", response_model=DeleteWebhooksResponse)
async def delete_webhooks(
    caller: Caller = Depends(get_caller),
    host: str = Depends(get_request_host),
    db: AsyncSession = Depends(get_db),
):
    """מחיקת כל ה-webhooks של ה-host (כולל קבצים ותיעוד העברות)"""
    store = WebhookStore(db)
    deleted = await AuthorizationGate.run(
        caller, Requirement.TENANT_USER, store.delete_by_host, host, host=host
    )
    return DeleteWebhooksResponse(host=host, deleted=deleted)
