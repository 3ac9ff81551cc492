"""Test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (``settings.test_database_url``)
shared by the test body and the app through a single session. Redis, the
payment gateway and the email sender are replaced with ``AsyncMock``s.
"""

import json
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from gigescrow.config import settings
from gigescrow.database import Base, get_db
from gigescrow.main import app
from gigescrow.models.user import AppRole
from gigescrow.redis import get_redis
from gigescrow.services.email import get_email_sender
from gigescrow.services.gateway import ChargeResult, TransferResult, get_payment_gateway
from gigescrow.services.user import grant_role
from gigescrow.utils.crypto import generate_keypair, generate_nonce, sign_request

WEBHOOK_HASH = "test-webhook-hash"
CRON_SECRET = "test-cron-secret"


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    object.__setattr__(settings, "flutterwave_webhook_secret_hash", WEBHOOK_HASH)
    object.__setattr__(settings, "cron_secret", CRON_SECRET)
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        settings.test_database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSession(bind=db_engine, expire_on_commit=False)
    yield session
    await session.close()


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def redis_mock() -> AsyncMock:
    """Nonces are always fresh and every rate-limit bucket has tokens."""
    redis = AsyncMock()
    redis.set.return_value = True
    redis.eval.return_value = [1, 9, 0]
    return redis


@pytest.fixture
def gateway() -> AsyncMock:
    """Gateway that accepts every charge and transfer, echoing the caller's reference."""

    async def create_charge(**kwargs: Any) -> ChargeResult:
        return ChargeResult(
            payment_link=f"https://checkout.example.com/pay/{kwargs['tx_ref']}",
            tx_ref=kwargs["tx_ref"],
            provider_tx_id="4815162342",
        )

    async def create_transfer(**kwargs: Any) -> TransferResult:
        return TransferResult(provider_transfer_id="90210", reference=kwargs["reference"])

    mock = AsyncMock()
    mock.create_charge.side_effect = create_charge
    mock.create_transfer.side_effect = create_transfer
    return mock


@pytest.fixture
def email_sender() -> AsyncMock:
    return AsyncMock()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    redis_mock: AsyncMock,
    gateway: AsyncMock,
    email_sender: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with overridden DB, Redis, gateway and email dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass
class TestUser:
    __test__ = False

    user_id: str
    private_key: str
    email: str


def make_user_data(public_key: str | None = None, roles: list[str] | None = None) -> dict:
    """Factory for user registration payload."""
    if public_key is None:
        _, public_key = generate_keypair()
    suffix = uuid.uuid4().hex[:8]
    return {
        "public_key": public_key,
        "email": f"user-{suffix}@example.com",
        "full_name": f"Test User {suffix}",
        "roles": roles or ["talent"],
    }


def _body_bytes(body: bytes | dict | list | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode()


def make_auth_headers(
    user_id: str,
    private_key_hex: str,
    method: str,
    path: str,
    body: bytes | dict | list | None = None,
) -> dict[str, str]:
    """Build signed auth headers for a request."""
    timestamp = datetime.now(UTC).isoformat()
    signature = sign_request(private_key_hex, timestamp, method, path, _body_bytes(body))
    return {
        "Authorization": f"UserSig {user_id}:{signature}",
        "X-Timestamp": timestamp,
        "X-Nonce": generate_nonce(),
    }


async def create_user(client: AsyncClient, roles: list[str] | None = None) -> TestUser:
    priv, pub = generate_keypair()
    data = make_user_data(pub, roles)
    resp = await client.post("/users", json=data)
    assert resp.status_code == 201, resp.text
    return TestUser(user_id=resp.json()["user_id"], private_key=priv, email=data["email"])


async def create_admin(client: AsyncClient, db: AsyncSession) -> TestUser:
    user = await create_user(client)
    await grant_role(db, uuid.UUID(user.user_id), AppRole.ADMIN)
    return user


async def signed_request(
    client: AsyncClient,
    user: TestUser,
    method: str,
    path: str,
    body: dict | list | None = None,
    params: dict | None = None,
):  # type: ignore[no-untyped-def]
    """Send a request signed by ``user``; the body is sent exactly as signed."""
    content = _body_bytes(body)
    headers = make_auth_headers(user.user_id, user.private_key, method, path, content)
    if body is not None:
        headers["Content-Type"] = "application/json"
    return await client.request(method, path, content=content, headers=headers, params=params)


@dataclass
class Engagement:
    """An employer and a talent with an accepted application on one job."""
    __test__ = False

    employer: TestUser
    talent: TestUser
    job_id: str
    application_id: str
    contract_id: str


async def create_engagement(client: AsyncClient, budget: int = 50_000) -> Engagement:
    employer = await create_user(client, ["employer"])
    talent = await create_user(client, ["talent"])

    resp = await signed_request(client, employer, "POST", "/jobs", {
        "title": "Build a landing page",
        "description": "Responsive, two sections",
        "budget": budget,
        "currency": "NGN",
    })
    assert resp.status_code == 201, resp.text
    job_id = resp.json()["job_id"]

    resp = await signed_request(
        client, talent, "POST", f"/jobs/{job_id}/applications", {"cover_letter": "I can do it"},
    )
    assert resp.status_code == 201, resp.text
    application_id = resp.json()["application_id"]

    resp = await signed_request(
        client, employer, "POST", f"/jobs/{job_id}/applications/{application_id}/accept",
    )
    assert resp.status_code == 201, resp.text
    return Engagement(
        employer=employer,
        talent=talent,
        job_id=job_id,
        application_id=application_id,
        contract_id=resp.json()["contract_id"],
    )


def webhook_headers() -> dict[str, str]:
    return {"verif-hash": WEBHOOK_HASH, "Content-Type": "application/json"}
