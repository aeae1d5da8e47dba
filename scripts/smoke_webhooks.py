"""
Smoke tests against a running relay instance.

Runs lightweight HTTP checks:
- GET /health
- POST a sample webhook on a tenant host
- GET /api/count-webhooks for that host (needs a tenant token or admin key)

Usage:
    python scripts/smoke_webhooks.py --host smoke.example.com
    BASE_URL=https://relay.example.com ADMIN_API_KEY=... python scripts/smoke_webhooks.py
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx

# לאפשר הרצה מכל תיקיה
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.core.logging import get_logger, setup_logging  # noqa: E402


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _sample_payload() -> dict:
    return {
        "event": "smoke.test",
        "sent_at": datetime.now(timezone.utc).isoformat(),
        "data": {"id": 1, "note": "relay smoke test"},
    }


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay smoke test")
    parser.add_argument("--base-url", default=_base_url())
    parser.add_argument("--host", default=os.environ.get("SMOKE_TENANT_HOST", "smoke.local"),
                        help="tenant host to send the sample webhook as")
    parser.add_argument("--path", default="/smoke/webhook")
    parser.add_argument("--admin-key", default=os.environ.get("ADMIN_API_KEY", ""))
    parser.add_argument("--token", default=os.environ.get("SMOKE_TENANT_TOKEN", ""),
                        help="tenant bearer token (alternative to --admin-key)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    setup_logging(level="INFO", json_format=False, app_name="webhook-relay-smoke")
    args = _parse_args(argv)
    base_url = args.base_url.rstrip("/")
    timeout = _timeout_seconds()

    logger.info(
        "Starting smoke tests",
        extra_data={"base_url": base_url, "host": args.host, "timeout_seconds": timeout},
    )

    with httpx.Client(timeout=timeout) as client:
        resp = client.get(f"{base_url}/health")
        _check_status(resp)

        resp = client.post(
            f"{base_url}{args.path}",
            json=_sample_payload(),
            headers={"Host": args.host},
        )
        _check_status(resp)
        webhook_id = resp.json().get("id")
        logger.info("Sample webhook captured", extra_data={"webhook_id": webhook_id})

        auth_headers = {"Host": args.host}
        if args.token:
            auth_headers["Authorization"] = f"Bearer {args.token}"
        elif args.admin_key:
            auth_headers["X-Admin-API-Key"] = args.admin_key
        else:
            logger.warning("No credentials given: skipping count check")
            logger.info("Smoke tests completed successfully")
            return

        resp = client.get(f"{base_url}/api/count-webhooks", headers=auth_headers)
        _check_status(resp)
        count = resp.json().get("count", 0)
        if count < 1:
            raise RuntimeError(f"Expected at least one webhook for {args.host}, got {count}")
        logger.info("Tenant count verified", extra_data={"host": args.host, "count": count})

    logger.info("Smoke tests completed successfully")


if __name__ == "__main__":
    main()
