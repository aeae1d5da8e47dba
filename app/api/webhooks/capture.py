"""
Capture Webhook - לכידת כל קריאה נכנסת שלא שייכת ל-API הפנימי

ה-router הזה נרשם אחרון, אחרי ה-router של /api, ותופס כל path.
ה-Route Resolver מחליט: path שמור מחזיר 404 (אין route פנימי כזה),
כל השאר נשמר כ-webhook של ה-host. ההעברה ליעד ברירת המחדל מתוזמנת
רק אחרי שמירה מוצלחת ואינה משפיעה על התשובה.
"""
import base64
import json
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from app.api.dependencies.tenant import get_forward_dispatcher, resolve_request_host
from app.api.routes.schemas import WebhookResponse
from app.core.exceptions import NotFoundException
from app.core.logging import get_logger
from app.core.validation import HeaderSanitizer
from app.db.database import get_db
from app.domain.services.forwarding_service import ForwardDispatcher
from app.domain.services.ingestion_service import IngestionService
from app.domain.services.route_resolver import Reserved, resolve
from app.domain.services.webhook_store import AttachmentData

logger = get_logger(__name__)

router = APIRouter()

CAPTURE_METHODS = ["POST", "PUT", "PATCH"]

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _media_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";", 1)[0].strip().lower()


def _is_json_type(media_type: str) -> bool:
    return media_type == "application/json" or media_type.endswith("+json")


def decode_body(raw: bytes, media_type: str) -> Any:
    """
    המרת גוף שאינו טופס לערך JSON לשמירה.

    JSON → הערך עצמו; text/* → מחרוזת; כל השאר → {"base64": ...}; ריק → None.
    """
    if not raw:
        return None
    if _is_json_type(media_type) or not media_type:
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            if _is_json_type(media_type):
                # JSON שבור נשמר כמו שהוא: אין ולידציה של payloads
                return raw.decode("utf-8", errors="replace")
    if media_type.startswith("text/") or not media_type:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            pass
    return {"base64": base64.b64encode(raw).decode("ascii")}


async def _parse_form(request: Request) -> tuple[dict[str, Any], list[AttachmentData]]:
    """שדות טופס ל-dict (שדה חוזר → רשימה), קבצים לקבצים מצורפים"""
    fields: dict[str, Any] = {}
    attachments: list[AttachmentData] = []
    form = await request.form()
    try:
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                content = await value.read()
                attachments.append(
                    AttachmentData(
                        field_name=name,
                        filename=value.filename,
                        content_type=value.content_type,
                        content=content,
                    )
                )
                continue
            if name in fields:
                existing = fields[name]
                fields[name] = existing + [value] if isinstance(existing, list) else [existing, value]
            else:
                fields[name] = value
    finally:
        await form.close()
    return fields, attachments


async def parse_request_body(request: Request) -> tuple[Any, list[AttachmentData], bytes]:
    """(body לשמירה, קבצים מצורפים, הבייטים המקוריים להעברה)"""
    raw = await request.body()
    media_type = _media_type(request)
    if raw and media_type in _FORM_TYPES:
        fields, attachments = await _parse_form(request)
        return fields, attachments, raw
    return decode_body(raw, media_type), [], raw


@router.api_route(
    "/{raw_path:path}",
    methods=CAPTURE_METHODS,
    response_model=WebhookResponse,
    tags=["capture"],
)
async def capture_webhook(
    raw_path: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: ForwardDispatcher = Depends(get_forward_dispatcher),
):
    """
    לכידת webhook על כל path של ה-host.

    מחזיר את האירוע שנשמר. כשל העברה לא נראה כאן לעולם.
    """
    decision = resolve(raw_path)
    if isinstance(decision, Reserved):
        raise NotFoundException("Route", f"{request.method} {request.url.path}")

    host = resolve_request_host(request)
    headers = HeaderSanitizer.normalize(request.headers.items())
    body, attachments, raw = await parse_request_body(request)

    webhook = await IngestionService(db).ingest(
        host=host,
        path=decision.path,
        body=body,
        headers=headers,
        ip=request.client.host if request.client else None,
        attachments=attachments,
        method=request.method,
    )

    dispatched = dispatcher.dispatch(
        background_tasks,
        body=raw,
        headers=headers,
        path=webhook.path,
        event_id=webhook.id,
        origin_host=webhook.host,
        method=webhook.method,
    )
    if dispatched:
        logger.debug(
            "Forwarding scheduled",
            extra_data={"webhook_id": webhook.id, "mode": dispatcher.mode},
        )

    return WebhookResponse.model_validate(webhook)
