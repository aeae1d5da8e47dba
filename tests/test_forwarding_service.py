"""
בדיקות ForwardingService: בניית הבקשה ליעד, כשלים שלא זולגים, ותיעוד ניסיונות.
"""
import asyncio
import base64
import logging
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi import BackgroundTasks
from kombu.exceptions import OperationalError as BrokerOperationalError
from sqlalchemy import select

from app.core.circuit_breaker import CircuitState, get_forward_circuit_breaker
from app.db.models.webhook_forward import ForwardAttempt
from app.domain.services.forwarding_service import (
    EVENT_ID_HEADER,
    ORIGIN_HOST_HEADER,
    ForwardDispatcher,
    ForwardingService,
    ForwardTarget,
    load_forward_target,
)
from tests.conftest import FORWARD_BASE_URL


async def _attempts(session_factory, webhook_id: str) -> list[ForwardAttempt]:
    async with session_factory() as session:
        result = await session.execute(
            select(ForwardAttempt).where(ForwardAttempt.webhook_id == webhook_id)
        )
        return list(result.scalars().all())


@pytest.mark.unit
class TestForwardTarget:
    def test_load_without_host_disables_forwarding(self):
        assert load_forward_target(host="") is None
        assert load_forward_target(host="   ") is None

    def test_load_plain_host_uses_scheme(self):
        target = load_forward_target(host="relay.internal", scheme="https")
        assert target == ForwardTarget(base_url="https://relay.internal")

    def test_load_host_with_scheme_kept(self):
        target = load_forward_target(host="http://relay.internal:8080/")
        assert target.base_url == "http://relay.internal:8080"

    def test_url_for_joins_normalized_path(self):
        target = ForwardTarget(base_url="https://relay.internal/")
        assert target.url_for("orders//new") == "https://relay.internal/orders/new"
        assert target.url_for("") == "https://relay.internal/"


@pytest.mark.unit
class TestBuildHeaders:
    def test_hop_by_hop_dropped_and_relay_headers_added(self):
        headers = ForwardingService.build_headers(
            {
                "content-type": "application/json",
                "host": "shop1.example.com",
                "content-length": "12",
                "connection": "keep-alive, x-private",
                "x-private": "1",
                "x-signature": "abc",
            },
            event_id="evt-1",
            origin_host="shop1.example.com",
        )
        assert headers["content-type"] == "application/json"
        assert headers["x-signature"] == "abc"
        assert "host" not in headers
        assert "content-length" not in headers
        assert "connection" not in headers
        assert "x-private" not in headers
        assert headers[EVENT_ID_HEADER] == "evt-1"
        assert headers[ORIGIN_HOST_HEADER] == "shop1.example.com"
        assert headers["X-Forwarded-Host"] == "shop1.example.com"


@pytest.mark.unit
class TestForward:
    @pytest.mark.asyncio
    async def test_success_sends_body_and_records(
        self, forwarding_service, forward_target, forward_recorder, webhook_factory, session_factory
    ):
        webhook = await webhook_factory(host="shop1.example.com", path="/orders")

        outcome = await forwarding_service.forward(
            forward_target,
            b'{"id": 1}',
            {"content-type": "application/json"},
            "/orders",
            webhook.id,
            "shop1.example.com",
        )

        assert outcome.success is True
        assert outcome.status_code == 200
        assert outcome.target_url == f"{FORWARD_BASE_URL}/orders"
        sent = forward_recorder.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == f"{FORWARD_BASE_URL}/orders"
        assert sent.content == b'{"id": 1}'
        assert sent.headers[EVENT_ID_HEADER] == webhook.id

        attempts = await _attempts(session_factory, webhook.id)
        assert len(attempts) == 1
        assert attempts[0].success is True
        assert attempts[0].status_code == 200

    @pytest.mark.asyncio
    async def test_method_preserved(self, forwarding_service, forward_target, forward_recorder, webhook_factory):
        webhook = await webhook_factory(method="PUT")
        await forwarding_service.forward(
            forward_target, b"", {}, "/x", webhook.id, "shop1.example.com", "PUT"
        )
        assert forward_recorder.requests[0].method == "PUT"

    @pytest.mark.asyncio
    async def test_error_status_recorded_not_raised(
        self, forwarding_service, forward_target, forward_recorder, webhook_factory, session_factory
    ):
        forward_recorder.status_code = 502
        webhook = await webhook_factory()

        outcome = await forwarding_service.forward(
            forward_target, b"{}", {}, "/orders", webhook.id, "shop1.example.com"
        )

        assert outcome.success is False
        assert outcome.status_code == 502
        assert "502" in outcome.error
        attempts = await _attempts(session_factory, webhook.id)
        assert attempts[0].success is False
        assert attempts[0].status_code == 502

    @pytest.mark.asyncio
    async def test_connection_error_recorded_not_raised(
        self, forwarding_service, forward_target, forward_recorder, webhook_factory
    ):
        forward_recorder.raise_error = httpx.ConnectError("connection refused")
        webhook = await webhook_factory()

        outcome = await forwarding_service.forward(
            forward_target, b"{}", {}, "/orders", webhook.id, "shop1.example.com"
        )

        assert outcome.success is False
        assert outcome.status_code is None
        assert "ConnectError" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout_recorded_not_raised(
        self, session_factory, forward_target, webhook_factory
    ):
        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200)

        service = ForwardingService(
            session_factory=session_factory,
            transport=httpx.MockTransport(slow_handler),
            timeout_seconds=0.05,
        )
        webhook = await webhook_factory()

        outcome = await service.forward(
            forward_target, b"{}", {}, "/orders", webhook.id, "shop1.example.com"
        )

        assert outcome.success is False
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_open_circuit_skips_request(
        self, forwarding_service, forward_target, forward_recorder, webhook_factory
    ):
        forward_recorder.status_code = 500
        webhook = await webhook_factory()
        breaker = get_forward_circuit_breaker(forward_target.base_url)

        for _ in range(breaker.config.failure_threshold):
            await forwarding_service.forward(
                forward_target, b"{}", {}, "/x", webhook.id, "shop1.example.com"
            )
        assert breaker.state == CircuitState.OPEN
        sent_before = len(forward_recorder.requests)

        outcome = await forwarding_service.forward(
            forward_target, b"{}", {}, "/x", webhook.id, "shop1.example.com"
        )

        assert outcome.success is False
        assert "circuit breaker open" in outcome.error
        assert len(forward_recorder.requests) == sent_before

    @pytest.mark.asyncio
    async def test_recording_failure_is_contained(self, forward_target, forward_recorder, webhook_factory):
        class BrokenSession:
            async def __aenter__(self):
                from sqlalchemy.exc import OperationalError
                session = MagicMock()

                async def fail(*args, **kwargs):
                    raise OperationalError("INSERT", {}, Exception("db down"))

                session.commit = fail
                session.rollback = fail
                return session

            async def __aexit__(self, *exc):
                return False

        service = ForwardingService(
            session_factory=BrokenSession,
            transport=forward_recorder.transport,
        )
        webhook = await webhook_factory()

        outcome = await service.forward(
            forward_target, b"{}", {}, "/x", webhook.id, "shop1.example.com"
        )

        assert outcome.success is True


@pytest.mark.unit
class TestDispatcher:
    def test_disabled_without_target(self, forwarding_service):
        tasks = BackgroundTasks()
        dispatcher = ForwardDispatcher(None, service=forwarding_service)
        assert dispatcher.enabled is False
        assert dispatcher.dispatch(
            tasks, body=b"", headers={}, path="/", event_id="e", origin_host="h"
        ) is False
        assert tasks.tasks == []

    def test_background_mode_schedules_task(self, forwarding_service, forward_target):
        tasks = BackgroundTasks()
        dispatcher = ForwardDispatcher(forward_target, mode="background", service=forwarding_service)

        assert dispatcher.dispatch(
            tasks, body=b"{}", headers={}, path="/x", event_id="e1", origin_host="h.test"
        ) is True

        assert len(tasks.tasks) == 1
        assert tasks.tasks[0].args[0] == forward_target
        assert tasks.tasks[0].args[4] == "e1"

    @pytest.mark.asyncio
    async def test_celery_mode_enqueues_after_response(self, forwarding_service, forward_target):
        tasks = BackgroundTasks()
        dispatcher = ForwardDispatcher(forward_target, mode="celery", service=forwarding_service)

        with patch("app.workers.tasks.forward_webhook_event.delay") as mock_delay:
            assert dispatcher.dispatch(
                tasks, body=b'{"a": 1}', headers={"x": "1"}, path="/x",
                event_id="e1", origin_host="h.test", method="PATCH",
            ) is True
            # הפרסום ל-broker לא קורה בתוך ה-handler
            mock_delay.assert_not_called()
            assert len(tasks.tasks) == 1

            await tasks()

        mock_delay.assert_called_once()
        args = mock_delay.call_args.args
        assert args[0] == FORWARD_BASE_URL
        assert base64.b64decode(args[1]) == b'{"a": 1}'
        assert args[2:7] == ({"x": "1"}, "/x", "e1", "h.test", "PATCH")

    @pytest.mark.asyncio
    async def test_celery_broker_down_is_contained(self, forwarding_service, forward_target, caplog):
        tasks = BackgroundTasks()
        dispatcher = ForwardDispatcher(forward_target, mode="celery", service=forwarding_service)

        with patch(
            "app.workers.tasks.forward_webhook_event.delay",
            side_effect=BrokerOperationalError("broker unreachable"),
        ) as mock_delay:
            assert dispatcher.dispatch(
                tasks, body=b"", headers={}, path="/", event_id="e", origin_host="h"
            ) is True
            with caplog.at_level(logging.ERROR):
                await tasks()

        mock_delay.assert_called_once()
        assert "Could not enqueue forwarding task" in caplog.text
