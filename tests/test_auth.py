"""Tests for request signing: headers, timestamps, nonces, suspended users, admin gate."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.models.user import User, UserStatus
from gigescrow.utils.crypto import generate_keypair, generate_nonce, sign_request
from tests.conftest import create_user, make_auth_headers, make_user_data, signed_request


@pytest.mark.asyncio
async def test_missing_auth_headers(client: AsyncClient) -> None:
    resp = await client.get("/users/me")
    assert resp.status_code == 401
    assert "Missing authentication" in resp.json()["detail"]
    assert resp.json()["error"] == "authentication_error"


@pytest.mark.asyncio
async def test_wrong_auth_scheme(client: AsyncClient) -> None:
    resp = await client.get(
        "/users/me",
        headers={"Authorization": "Bearer faketoken", "X-Timestamp": datetime.now(UTC).isoformat()},
    )
    assert resp.status_code == 401
    assert "Invalid authorization scheme" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_malformed_auth_header(client: AsyncClient) -> None:
    """Authorization header without a colon separator or a valid UUID."""
    for value in ("UserSig noseparator", "UserSig not-a-uuid:abcd"):
        resp = await client.get(
            "/users/me",
            headers={"Authorization": value, "X-Timestamp": datetime.now(UTC).isoformat()},
        )
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Malformed authorization header"


@pytest.mark.asyncio
async def test_expired_timestamp(client: AsyncClient) -> None:
    user = await create_user(client)
    old_timestamp = (datetime.now(UTC) - timedelta(seconds=120)).isoformat()
    signature = sign_request(user.private_key, old_timestamp, "GET", "/users/me", b"")
    resp = await client.get(
        "/users/me",
        headers={
            "Authorization": f"UserSig {user.user_id}:{signature}",
            "X-Timestamp": old_timestamp,
            "X-Nonce": generate_nonce(),
        },
    )
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"].lower()


@pytest.mark.asyncio
async def test_replayed_nonce(client: AsyncClient, redis_mock: AsyncMock) -> None:
    """Redis SET NX failing means the nonce was seen before."""
    user = await create_user(client)
    redis_mock.set.return_value = None
    resp = await signed_request(client, user, "GET", "/users/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Nonce already used"


@pytest.mark.asyncio
async def test_nonce_stored_with_ttl(client: AsyncClient, redis_mock: AsyncMock) -> None:
    user = await create_user(client)
    headers = make_auth_headers(user.user_id, user.private_key, "GET", "/users/me")
    resp = await client.get("/users/me", headers=headers)
    assert resp.status_code == 200

    redis_mock.set.assert_awaited_once()
    args, kwargs = redis_mock.set.await_args
    assert args[0] == f"gigescrow:nonce:{headers['X-Nonce']}"
    assert kwargs["nx"] is True
    assert kwargs["ex"] == 60


@pytest.mark.asyncio
async def test_wrong_private_key(client: AsyncClient) -> None:
    user = await create_user(client)
    other_priv, _ = generate_keypair()
    headers = make_auth_headers(user.user_id, other_priv, "GET", "/users/me")
    resp = await client.get("/users/me", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
async def test_tampered_body(client: AsyncClient) -> None:
    """Signature covers the body hash: a different body fails verification."""
    user = await create_user(client, ["employer"])
    signed_body = {"title": "Logo", "description": "A logo", "budget": 1000, "currency": "NGN"}
    headers = make_auth_headers(user.user_id, user.private_key, "POST", "/jobs", signed_body)
    resp = await client.post("/jobs", json={**signed_body, "budget": 1}, headers=headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_unknown_user(client: AsyncClient) -> None:
    priv, _ = generate_keypair()
    headers = make_auth_headers(str(uuid.uuid4()), priv, "GET", "/users/me")
    resp = await client.get("/users/me", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "User not found"


@pytest.mark.asyncio
async def test_suspended_user(client: AsyncClient, db_session: AsyncSession) -> None:
    user = await create_user(client)
    await db_session.execute(
        update(User).where(User.user_id == uuid.UUID(user.user_id)).values(status=UserStatus.SUSPENDED)
    )
    await db_session.commit()

    resp = await signed_request(client, user, "GET", "/users/me")
    assert resp.status_code == 403
    assert resp.json()["error"] == "authorization_error"


@pytest.mark.asyncio
async def test_signed_request_succeeds(client: AsyncClient) -> None:
    user = await create_user(client, ["talent", "employer"])
    resp = await signed_request(client, user, "GET", "/users/me")
    assert resp.status_code == 200
    assert resp.json()["user_id"] == user.user_id
    assert resp.json()["roles"] == ["employer", "talent"]


@pytest.mark.asyncio
async def test_admin_role_cannot_be_self_assigned(client: AsyncClient) -> None:
    resp = await client.post("/users", json=make_user_data(roles=["admin"]))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_routes_reject_non_admin(client: AsyncClient) -> None:
    user = await create_user(client)
    resp = await signed_request(client, user, "GET", "/admin/disputes")
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Admin access required"
