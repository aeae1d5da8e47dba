"""
תרחיש 2: העברה ליעד ברירת מחדל שנופל וחוזר

מכסה:
- כל אירוע נשמר ונספר גם כשהיעד מחזיר 5xx או לא זמין
- כל ניסיון מתועד עם סטטוס/שגיאה
- אחרי 5 כשלים רצופים ה-circuit breaker נפתח וניסיונות מדולגים
- התשובה ללוכד זהה עם או בלי כשל העברה
"""
import httpx
import pytest

from tests.conftest import ADMIN_HEADERS, FORWARD_BASE_URL
from tests.scenarios.conftest import (
    build_push_event,
    forward_attempts,
    send_event,
    tenant_count,
)

HOST = "ci.example.com"


@pytest.mark.scenario
class TestForwardingOutage:
    @pytest.mark.asyncio
    async def test_target_outage_is_invisible_to_senders(
        self, forwarding_client, forward_recorder, session_factory
    ):
        ok = await send_event(forwarding_client, HOST, "/git/push", build_push_event())
        assert (await forward_attempts(session_factory, ok["id"]))[0].success is True

        forward_recorder.status_code = 503
        failed = await send_event(forwarding_client, HOST, "/git/push", build_push_event())

        assert set(failed) == set(ok)
        attempt = (await forward_attempts(session_factory, failed["id"]))[0]
        assert attempt.success is False
        assert attempt.status_code == 503
        assert attempt.target_url == f"{FORWARD_BASE_URL}/git/push"

        forward_recorder.raise_error = httpx.ConnectError("refused")
        unreachable = await send_event(forwarding_client, HOST, "/git/push", build_push_event())
        attempt = (await forward_attempts(session_factory, unreachable["id"]))[0]
        assert attempt.success is False
        assert attempt.status_code is None
        assert "ConnectError" in attempt.error

        assert await tenant_count(forwarding_client, HOST) == 3

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_failures(
        self, forwarding_client, forward_recorder, session_factory
    ):
        forward_recorder.status_code = 500

        events = [
            await send_event(forwarding_client, HOST, "/git/push", build_push_event())
            for _ in range(7)
        ]

        # 5 ניסיונות הגיעו ליעד, השניים האחרונים דולגו
        assert len(forward_recorder.requests) == 5
        skipped = (await forward_attempts(session_factory, events[-1]["id"]))[0]
        assert skipped.success is False
        assert skipped.status_code is None
        assert await tenant_count(forwarding_client, HOST) == 7

        status = await forwarding_client.get(
            "/api/admin/circuit-breakers", headers=ADMIN_HEADERS
        )
        assert status.json()[0]["state"] == "open"

    @pytest.mark.asyncio
    async def test_forwarded_copy_preserves_request(
        self, forwarding_client, forward_recorder
    ):
        payload = build_push_event("acme/shop")
        await send_event(
            forwarding_client,
            HOST,
            "/git/push",
            payload,
            headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": "sha256=abc"},
        )

        sent = forward_recorder.requests[0]
        assert sent.method == "POST"
        assert sent.headers["x-github-event"] == "push"
        assert sent.headers["x-hub-signature-256"] == "sha256=abc"
        assert sent.headers["x-webhook-relay-origin-host"] == HOST
        assert sent.url.host == "forward.test"
