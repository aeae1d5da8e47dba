"""
Ingestion Service - לכידת webhook נכנס ושמירתו

כל host לא ריק הוא tenant תקף: אין רישום מראש. ה-service לא מחליט
על העברה; ה-route מפעיל את ה-dispatcher רק אחרי שמירה מוצלחת.
"""
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationException
from app.core.logging import get_logger
from app.core.validation import HeaderSanitizer
from app.db.models.webhook import Webhook
from app.domain.services.route_resolver import normalize_path
from app.domain.services.webhook_store import AttachmentData, WebhookStore

logger = get_logger(__name__)


class IngestionService:
    """Service for capturing inbound webhooks"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = WebhookStore(db)

    async def ingest(
        self,
        host: str,
        path: str,
        body: Any,
        headers: dict[str, str],
        ip: Optional[str],
        attachments: list[AttachmentData] | None = None,
        method: str = "POST",
    ) -> Webhook:
        """
        Record one captured call for ``host``.

        Raises:
            ValidationException: empty host, or an attachment over the size limit
            StorageError: the event was not persisted
        """
        # ה-host נשמר כפי שהתקבל; נרמול Host header נעשה ב-resolve_request_host
        if not host or not host.strip():
            raise ValidationException("Request host is required", field="host")
        tenant = host

        attachments = attachments or []
        for item in attachments:
            if item.size > settings.MAX_ATTACHMENT_BYTES:
                raise ValidationException(
                    f"Attachment '{item.field_name}' exceeds {settings.MAX_ATTACHMENT_BYTES} bytes",
                    field=item.field_name,
                    details={"size": item.size, "max_bytes": settings.MAX_ATTACHMENT_BYTES},
                )

        webhook = await self.store.create(
            host=tenant,
            path=normalize_path(path),
            body=body,
            headers=HeaderSanitizer.normalize(headers),
            ip=ip,
            attachments=attachments,
            method=method.upper(),
        )

        logger.info(
            "Webhook captured",
            extra_data={
                "webhook_id": webhook.id,
                "host": tenant,
                "path": webhook.path,
                "method": webhook.method,
                "attachments": len(attachments),
            },
        )
        logger.debug(
            "Captured webhook headers",
            extra_data={"webhook_id": webhook.id, "headers": HeaderSanitizer.mask(webhook.headers)},
        )
        return webhook
