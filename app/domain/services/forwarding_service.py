"""
Forwarding Service - העברת עותק של webhook שנלכד ליעד ברירת המחדל

ניסיון יחיד לכל אירוע, מוגבל בזמן ומוגן ב-circuit breaker לפי יעד.
כשל בהעברה לא משפיע על תשובת הלכידה ולא על האירוע השמור: הוא נרשם
בלוג ובטבלת webhook_forwards בלבד.
"""
import asyncio
import time
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from fastapi import BackgroundTasks
from kombu.exceptions import OperationalError as BrokerOperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.circuit_breaker import get_forward_circuit_breaker
from app.core.config import settings
from app.core.exceptions import (
    AppException,
    CircuitBreakerOpenError,
    ForwardingError,
    ServiceTimeoutError,
    StorageError,
)
from app.core.logging import get_logger
from app.core.validation import HeaderSanitizer
from app.db.database import AsyncSessionLocal
from app.domain.services.route_resolver import normalize_path
from app.domain.services.webhook_store import WebhookStore

logger = get_logger(__name__)

EVENT_ID_HEADER = "X-Webhook-Relay-Event-Id"
ORIGIN_HOST_HEADER = "X-Webhook-Relay-Origin-Host"

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class ForwardTarget:
    """יעד העברה: נטען פעם אחת בעליית התהליך"""
    base_url: str

    def url_for(self, path: str) -> str:
        return self.base_url.rstrip("/") + normalize_path(path)


def load_forward_target(
    host: Optional[str] = None,
    scheme: Optional[str] = None,
) -> Optional[ForwardTarget]:
    """
    Build the forward target from configuration.

    Returns None when no default host is configured (forwarding disabled).
    A host given with a scheme ("http://relay.internal:8080") is used as-is.
    """
    host = host if host is not None else settings.WEBHOOK_DEFAULT_FORWARD_HOST
    if not host or not host.strip():
        return None
    host = host.strip()
    if "://" in host:
        return ForwardTarget(base_url=host.rstrip("/"))
    return ForwardTarget(base_url=f"{scheme or settings.FORWARD_SCHEME}://{host.rstrip('/')}")


@dataclass(frozen=True)
class ForwardOutcome:
    """תוצאת ניסיון העברה יחיד"""
    success: bool
    target_url: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: int = 0


class ForwardingService:
    """Replicates captured webhooks to the forward target"""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.transport = transport
        self.timeout_seconds = timeout_seconds or settings.FORWARD_TIMEOUT_SECONDS

    @staticmethod
    def build_headers(headers: dict[str, str], event_id: str, origin_host: str) -> dict[str, str]:
        """headers המקוריים (בלי hop-by-hop) + זיהוי האירוע וה-tenant"""
        out = HeaderSanitizer.forwardable(headers)
        out[EVENT_ID_HEADER] = event_id
        out[ORIGIN_HOST_HEADER] = origin_host
        out["X-Forwarded-Host"] = origin_host
        return out

    async def _send(self, method: str, url: str, body: bytes, headers: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self.transport,
            follow_redirects=False,
        ) as client:
            try:
                response = await asyncio.wait_for(
                    client.request(method, url, content=body, headers=headers),
                    timeout=self.timeout_seconds,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise ServiceTimeoutError("forward_target", self.timeout_seconds) from e
            except httpx.HTTPError as e:
                raise ForwardingError(url, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise ForwardingError.from_response(url, response)
        return response

    async def forward(
        self,
        target: ForwardTarget,
        body: bytes,
        headers: dict[str, str],
        path: str,
        event_id: str,
        origin_host: str,
        method: str = "POST",
    ) -> ForwardOutcome:
        """
        Send one copy of a captured webhook to ``target``.

        Never raises: every failure is logged and recorded as a failed attempt.
        """
        url = target.url_for(path)
        breaker = get_forward_circuit_breaker(target.base_url)
        out_headers = self.build_headers(headers, event_id, origin_host)
        log_context = {"webhook_id": event_id, "host": origin_host, "target_url": url}

        start = time.monotonic()
        status_code: Optional[int] = None
        error: Optional[str] = None
        try:
            response = await breaker.execute(self._send, method, url, body, out_headers)
            status_code = response.status_code
        except CircuitBreakerOpenError as e:
            error = e.message
        except ForwardingError as e:
            status_code = e.target_status_code
            error = e.message
        except AppException as e:
            error = e.message
        except Exception as e:
            logger.error(
                "Unexpected forwarding error",
                extra_data={**log_context, "error": str(e)},
                exc_info=True,
            )
            error = f"unexpected error: {type(e).__name__}"
        duration_ms = int((time.monotonic() - start) * 1000)

        outcome = ForwardOutcome(
            success=error is None,
            target_url=url,
            status_code=status_code,
            error=error,
            duration_ms=duration_ms,
        )
        if outcome.success:
            logger.info(
                "Webhook forwarded",
                extra_data={**log_context, "status_code": status_code, "duration_ms": duration_ms},
            )
        else:
            logger.warning(
                "Webhook forwarding failed",
                extra_data={
                    **log_context,
                    "status_code": status_code,
                    "error": error,
                    "duration_ms": duration_ms,
                },
            )

        await self._record(event_id, outcome)
        return outcome

    async def _record(self, event_id: str, outcome: ForwardOutcome) -> None:
        try:
            async with self.session_factory() as session:
                await WebhookStore(session).record_forward_attempt(
                    webhook_id=event_id,
                    target_url=outcome.target_url,
                    success=outcome.success,
                    status_code=outcome.status_code,
                    error=outcome.error,
                    duration_ms=outcome.duration_ms,
                )
        except StorageError as e:
            logger.warning(
                "Could not record forward attempt",
                extra_data={"webhook_id": event_id, "error": e.cause or e.message},
            )


class ForwardDispatcher:
    """
    Hands a persisted webhook to the forwarding service out-of-band.

    Both modes schedule work on FastAPI BackgroundTasks, which run after
    the HTTP response is sent. ``background`` forwards in-process;
    ``celery`` publishes ``forward_webhook_event`` from Starlette's
    threadpool, off the event loop.
    """

    def __init__(
        self,
        target: Optional[ForwardTarget],
        mode: Optional[str] = None,
        service: Optional[ForwardingService] = None,
    ):
        self.target = target
        self.mode = mode or settings.FORWARD_DISPATCH_MODE
        self.service = service or ForwardingService()

    @property
    def enabled(self) -> bool:
        return self.target is not None

    def dispatch(
        self,
        background_tasks: BackgroundTasks,
        *,
        body: bytes,
        headers: dict[str, str],
        path: str,
        event_id: str,
        origin_host: str,
        method: str = "POST",
    ) -> bool:
        """מחזיר True אם ההעברה תוזמנה"""
        if self.target is None:
            return False

        if self.mode == "celery":
            background_tasks.add_task(
                self._enqueue,
                body=body,
                headers=headers,
                path=path,
                event_id=event_id,
                origin_host=origin_host,
                method=method,
            )
            return True

        background_tasks.add_task(
            self.service.forward,
            self.target,
            body,
            headers,
            path,
            event_id,
            origin_host,
            method,
        )
        return True

    def _enqueue(
        self,
        *,
        body: bytes,
        headers: dict[str, str],
        path: str,
        event_id: str,
        origin_host: str,
        method: str,
    ) -> bool:
        """פרסום ל-broker (סינכרוני). broker לא זמין נרשם ללוג ולא זולג"""
        from app.workers.tasks import enqueue_forward

        try:
            enqueue_forward(
                target=self.target,
                body=body,
                headers=headers,
                path=path,
                event_id=event_id,
                origin_host=origin_host,
                method=method,
            )
        except BrokerOperationalError as e:
            logger.error(
                "Could not enqueue forwarding task",
                extra_data={"webhook_id": event_id, "error": str(e)},
            )
            return False
        return True
