"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- An ASGI test client with the forward target under test control
- A mock forward target (httpx.MockTransport) that records what it receives
- Credentials (admin key, tenant tokens) and webhook factories
"""
# הגדרת JWT_SECRET_KEY לפני ייבוא app: הולידטור דורש מפתח כש-DEBUG=False
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")

import json
from dataclasses import dataclass, field
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies.tenant import get_forward_dispatcher
from app.core.auth import create_tenant_token
from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.db.database import Base, get_db
from app.db.models.webhook import Webhook
from app.domain.services.auth_service import AuthService
from app.domain.services.forwarding_service import (
    ForwardDispatcher,
    ForwardingService,
    ForwardTarget,
)
from app.domain.services.webhook_store import AttachmentData, WebhookStore
from app.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_ADMIN_API_KEY = "test-admin-api-key"
ADMIN_HEADERS = {"X-Admin-API-Key": TEST_ADMIN_API_KEY}

FORWARD_BASE_URL = "https://forward.test"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker:
    """Session maker on the test engine (forwarding records in its own session)"""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Settings / global state
# ============================================================================

@pytest.fixture(autouse=True)
def _admin_api_key():
    """מפתח אדמין קבוע לכל הבדיקות"""
    with patch.object(settings, "ADMIN_API_KEY", TEST_ADMIN_API_KEY):
        AuthService.get_auth_metadata.cache_clear()
        yield
    AuthService.get_auth_metadata.cache_clear()


@pytest.fixture(autouse=True)
def _reset_circuit_breakers():
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


# ============================================================================
# Mock forward target
# ============================================================================

@dataclass
class ForwardRecorder:
    """יעד העברה מדומה: שומר כל בקשה ומחזיר status לפי הצורך"""
    status_code: int = 200
    raise_error: Optional[Exception] = None
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        return httpx.Response(self.status_code, json={"received": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def forward_recorder() -> ForwardRecorder:
    return ForwardRecorder()


@pytest.fixture
def forwarding_service(session_factory, forward_recorder) -> ForwardingService:
    return ForwardingService(
        session_factory=session_factory,
        transport=forward_recorder.transport,
        timeout_seconds=2.0,
    )


@pytest.fixture
def forward_target() -> ForwardTarget:
    return ForwardTarget(base_url=FORWARD_BASE_URL)


# ============================================================================
# HTTP clients
# ============================================================================

@pytest.fixture
def make_client(db_session: AsyncSession, forwarding_service: ForwardingService):
    """
    Factory ל-test client; ``forward_target=None`` מכבה העברה.

    מחזיר async context manager.
    """
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def _make(forward_target: Optional[ForwardTarget] = None, mode: str = "background"):
        async def override_get_db():
            yield db_session

        async def override_dispatcher():
            return ForwardDispatcher(forward_target, mode=mode, service=forwarding_service)

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_forward_dispatcher] = override_dispatcher

        transport = httpx.ASGITransport(app=app)
        try:
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()

    return _make


@pytest.fixture(scope="function")
async def test_client(make_client):
    """Test client with forwarding disabled"""
    async with make_client() as client:
        yield client


@pytest.fixture(scope="function")
async def forwarding_client(make_client, forward_target):
    """Test client with the mock forward target configured"""
    async with make_client(forward_target) as client:
        yield client


# ============================================================================
# Credentials and factories
# ============================================================================

def tenant_headers(host: str) -> dict[str, str]:
    """Host + Bearer token של tenant עבור host"""
    token, _ = create_tenant_token(host)
    return {"Host": host, "Authorization": f"Bearer {token}"}


def admin_headers(host: str = "test") -> dict[str, str]:
    return {"Host": host, **ADMIN_HEADERS}


async def post_webhook(
    client: httpx.AsyncClient,
    host: str,
    path: str = "/hook",
    payload: object = None,
    **kwargs,
) -> httpx.Response:
    """שליחת webhook JSON כ-host נתון"""
    headers = {"Host": host, **kwargs.pop("headers", {})}
    if payload is None:
        payload = {"event": "test"}
    return await client.post(
        path,
        content=json.dumps(payload),
        headers={"Content-Type": "application/json", **headers},
        **kwargs,
    )


@pytest.fixture
def webhook_factory(db_session: AsyncSession) -> Callable:
    """Factory for creating stored webhooks directly through the store"""
    async def _create(
        host: str = "shop1.example.com",
        path: str = "/orders",
        body: object = None,
        headers: Optional[dict[str, str]] = None,
        ip: str = "127.0.0.1",
        attachments: Optional[list[AttachmentData]] = None,
        method: str = "POST",
    ) -> Webhook:
        return await WebhookStore(db_session).create(
            host=host,
            path=path,
            body=body if body is not None else {"id": 1},
            headers=headers or {"content-type": "application/json"},
            ip=ip,
            attachments=attachments,
            method=method,
        )

    return _create
