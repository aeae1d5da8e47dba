"""
Celery Tasks for Out-of-band Forwarding

כשה-FORWARD_DISPATCH_MODE הוא "celery", ה-route של הלכידה מוסיף task
לתור במקום להריץ את ההעברה בתהליך ה-API. ה-task מקבל את היעד במפורש
(base_url) ולא קורא אותו מההגדרות בזמן הריצה.
"""
from __future__ import annotations

import asyncio
import base64
from contextlib import contextmanager
from dataclasses import asdict
from typing import TYPE_CHECKING, Any

from app.workers.celery_app import celery_app
from app.db.database import get_task_session
from app.domain.services.forwarding_service import ForwardingService, ForwardTarget
from app.core.logging import get_logger, log_async_operation, set_correlation_id

if TYPE_CHECKING:
    from celery.result import AsyncResult

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # Cancel all pending tasks
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            # Wait for tasks to be cancelled
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro, correlation_id: str | None = None):
    """Helper to run async code in sync Celery task with proper cleanup"""
    # Set correlation ID for task tracking
    set_correlation_id(correlation_id)

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@log_async_operation("forward_webhook_event")
async def _forward(
    target_base_url: str,
    body: bytes,
    headers: dict[str, str],
    path: str,
    event_id: str,
    origin_host: str,
    method: str,
) -> dict[str, Any]:
    service = ForwardingService(session_factory=get_task_session)
    outcome = await service.forward(
        ForwardTarget(base_url=target_base_url),
        body,
        headers,
        path,
        event_id,
        origin_host,
        method,
    )
    return asdict(outcome)


@celery_app.task(name="app.workers.tasks.forward_webhook_event")
def forward_webhook_event(
    target_base_url: str,
    body_b64: str,
    headers: dict[str, str],
    path: str,
    event_id: str,
    origin_host: str,
    method: str = "POST",
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """
    העברת webhook שנלכד ליעד: ניסיון יחיד.

    הגוף מגיע כ-base64 (JSON serializer של Celery לא נושא bytes).
    התוצאה נרשמת ב-webhook_forwards; ה-task לא נכשל על כשל העברה.
    """
    logger.info(
        "Forward task started",
        extra_data={"webhook_id": event_id, "host": origin_host, "target": target_base_url},
    )
    return run_async(
        _forward(
            target_base_url,
            base64.b64decode(body_b64),
            headers,
            path,
            event_id,
            origin_host,
            method,
        ),
        correlation_id=correlation_id,
    )


def enqueue_forward(
    *,
    target: ForwardTarget,
    body: bytes,
    headers: dict[str, str],
    path: str,
    event_id: str,
    origin_host: str,
    method: str = "POST",
) -> "AsyncResult":
    """הוספת task העברה לתור: נקרא מה-ForwardDispatcher"""
    from app.core.logging import get_correlation_id

    return forward_webhook_event.delay(
        target.base_url,
        base64.b64encode(body).decode("ascii"),
        headers,
        path,
        event_id,
        origin_host,
        method,
        get_correlation_id(),
    )
