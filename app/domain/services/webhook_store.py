"""
Webhook Store - שכבת האחסון של אירועי webhook

כל הכתיבות והקריאות של webhooks, קבצים מצורפים ותיעוד העברות עוברות
כאן. כשל של מסד הנתונים עולה תמיד כ-StorageError (אחרי rollback);
ה-store לא מחזיר הצלחה חלקית.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError
from app.core.logging import get_logger
from app.db.models.webhook import Webhook
from app.db.models.webhook_attachment import WebhookAttachment
from app.db.models.webhook_forward import ForwardAttempt

logger = get_logger(__name__)


class _MonotonicClock:
    """שעון UTC עולה ממש בתוך אותו תהליך (רזולוציה של מיקרו-שנייה)"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


_clock = _MonotonicClock()


@dataclass(frozen=True)
class AttachmentData:
    """קובץ שהתקבל ב-multipart, לפני שמירה"""
    field_name: str
    filename: Optional[str]
    content_type: Optional[str]
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class WebhookStore:
    """Durable storage of captured webhook events"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, operation: str, error: SQLAlchemyError, **context: Any) -> StorageError:
        logger.error(
            f"Webhook store {operation} failed",
            extra_data={"operation": operation, "error": str(error), **context},
            exc_info=True,
        )
        try:
            await self.db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(
                "Rollback after store failure also failed",
                extra_data={"operation": operation, "error": str(rollback_error)},
            )
        return StorageError(operation, error)

    async def create(
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
        Persist one event together with its attachments in a single transaction.

        The store assigns ``id`` and ``created_at``.

        Raises:
            StorageError: the write was not committed
        """
        created_at = _clock.now()
        webhook = Webhook(
            host=host,
            path=path,
            method=method,
            body=body,
            headers=headers,
            ip=ip,
            created_at=created_at,
            attachments=[
                WebhookAttachment(
                    field_name=item.field_name,
                    filename=item.filename,
                    content_type=item.content_type,
                    size=item.size,
                    content=item.content,
                    created_at=created_at,
                )
                for item in attachments or []
            ],
        )
        try:
            self.db.add(webhook)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("create", e, host=host, path=path) from e

        return webhook

    async def get_for_host(self, host: str, webhook_id: str) -> Optional[Webhook]:
        """אירוע בודד: רק אם הוא שייך ל-host"""
        try:
            result = await self.db.execute(
                select(Webhook).where(Webhook.id == webhook_id, Webhook.host == host)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise await self._fail("get", e, host=host, webhook_id=webhook_id) from e

    async def list_for_host(self, host: str, limit: int = 50, offset: int = 0) -> list[Webhook]:
        """אירועים של tenant, מהחדש לישן"""
        try:
            result = await self.db.execute(
                select(Webhook)
                .where(Webhook.host == host)
                .order_by(Webhook.created_at.desc(), Webhook.id)
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._fail("list", e, host=host) from e

    async def count_by_host(self, host: str) -> int:
        try:
            result = await self.db.execute(
                select(func.count(Webhook.id)).where(Webhook.host == host)
            )
            return int(result.scalar_one() or 0)
        except SQLAlchemyError as e:
            raise await self._fail("count", e, host=host) from e

    async def count_grouped_by_host(self) -> list[tuple[str, int]]:
        """(host, count) לכל host עם אירוע אחד לפחות, ממוין לפי host"""
        try:
            result = await self.db.execute(
                select(Webhook.host, func.count(Webhook.id))
                .group_by(Webhook.host)
                .order_by(Webhook.host.asc())
            )
            return [(host, int(count)) for host, count in result.all()]
        except SQLAlchemyError as e:
            raise await self._fail("count_grouped", e) from e

    async def delete_by_host(self, host: Optional[str] = None) -> int:
        """
        Delete every event of ``host`` (or of all hosts when None), together
        with their attachments and forward attempts, in one transaction.

        Returns:
            Number of events deleted
        """
        ids_query = select(Webhook.id)
        if host is not None:
            ids_query = ids_query.where(Webhook.host == host)

        events_delete = delete(Webhook)
        if host is not None:
            events_delete = events_delete.where(Webhook.host == host)

        try:
            await self.db.execute(
                delete(WebhookAttachment).where(WebhookAttachment.webhook_id.in_(ids_query))
            )
            await self.db.execute(
                delete(ForwardAttempt).where(ForwardAttempt.webhook_id.in_(ids_query))
            )
            result = await self.db.execute(events_delete)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("delete", e, host=host) from e

        deleted = result.rowcount or 0
        logger.info(
            "Webhooks deleted",
            extra_data={"host": host or "*", "deleted": deleted},
        )
        return deleted

    async def record_forward_attempt(
        self,
        webhook_id: str,
        target_url: str,
        success: bool,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> ForwardAttempt:
        """תיעוד תוצאת ניסיון העברה"""
        attempt = ForwardAttempt(
            webhook_id=webhook_id,
            target_url=target_url,
            success=success,
            status_code=status_code,
            error=error,
            duration_ms=duration_ms,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.db.add(attempt)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("record_forward", e, webhook_id=webhook_id) from e
        return attempt

    async def list_forward_attempts(self, webhook_id: str) -> list[ForwardAttempt]:
        try:
            result = await self.db.execute(
                select(ForwardAttempt)
                .where(ForwardAttempt.webhook_id == webhook_id)
                .order_by(ForwardAttempt.created_at)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise await self._fail("list_forwards", e, webhook_id=webhook_id) from e
