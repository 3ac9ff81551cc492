"""Tests for manual bank-transfer escrows: proof upload and admin verification."""

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.models.job import Job
from gigescrow.models.transaction import Transaction
from tests.conftest import Engagement, create_admin, create_engagement, create_user, signed_request


async def _manual_escrow(client: AsyncClient, eng: Engagement, amount: int = 30_000) -> dict:
    resp = await signed_request(client, eng.employer, "POST", "/payments/escrow/manual", {
        "job_id": eng.job_id, "amount": amount, "currency": "NGN",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _submit_proof(client: AsyncClient, eng: Engagement, transaction_id: str):  # type: ignore[no-untyped-def]
    return await signed_request(client, eng.employer, "POST", "/payments/proofs", {
        "transaction_id": transaction_id,
        "proof_url": "https://files.example.com/receipts/123.png",
        "bank_details": "GTBank 0123456789",
    })


async def _fetch_tx(db: AsyncSession, transaction_id: str) -> Transaction:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.transaction_id == uuid.UUID(transaction_id))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_manual_escrow_skips_gateway(client: AsyncClient, gateway: AsyncMock) -> None:
    eng = await create_engagement(client)
    escrow = await _manual_escrow(client, eng)
    assert escrow["payment_link"] is None
    assert escrow["external_reference"].startswith("manual-")
    assert escrow["platform_fee"] == 3_000
    assert escrow["net_amount"] == 27_000
    gateway.create_charge.assert_not_awaited()


@pytest.mark.asyncio
async def test_submit_proof_notifies_admin_inbox(client: AsyncClient, email_sender: AsyncMock) -> None:
    eng = await create_engagement(client)
    escrow = await _manual_escrow(client, eng)

    resp = await _submit_proof(client, eng, escrow["transaction_id"])
    assert resp.status_code == 201, resp.text
    assert resp.json()["status"] == "pending"

    to, subject, html = email_sender.send.await_args.args
    assert to == settings.admin_notification_email
    assert subject == "Payment Proof Awaiting Verification"
    assert escrow["transaction_id"] in html


@pytest.mark.asyncio
async def test_submit_proof_for_someone_elses_transaction(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    escrow = await _manual_escrow(client, eng)
    resp = await signed_request(client, eng.talent, "POST", "/payments/proofs", {
        "transaction_id": escrow["transaction_id"], "proof_url": "https://x.example.com/r.png",
    })
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_approve_proof_completes_escrow(
    client: AsyncClient, db_session: AsyncSession, email_sender: AsyncMock
) -> None:
    eng = await create_engagement(client)
    admin = await create_admin(client, db_session)
    escrow = await _manual_escrow(client, eng)
    proof = (await _submit_proof(client, eng, escrow["transaction_id"])).json()

    resp = await signed_request(
        client, admin, "POST", f"/admin/payments/proofs/{proof['proof_id']}/verify",
        {"approved": True, "notes": "Matched bank statement"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "verified"
    assert resp.json()["verified_by"] == admin.user_id

    tx = await _fetch_tx(db_session, escrow["transaction_id"])
    assert tx.status.value == "completed"
    assert tx.payment_metadata["verified_by"] == admin.user_id
    assert tx.payment_metadata["admin_notes"] == "Matched bank statement"

    result = await db_session.execute(select(Job.status).where(Job.job_id == uuid.UUID(eng.job_id)))
    assert result.scalar_one().value == "in_progress"

    to, subject, _ = email_sender.send.await_args.args
    assert to == eng.employer.email
    assert subject == "Manual Payment Verified"

    # A verified manual escrow can be released like a gateway one
    resp = await signed_request(client, eng.employer, "POST", "/payments/release", {
        "job_id": eng.job_id, "application_id": eng.application_id,
    })
    assert resp.status_code == 200
    assert resp.json()["amount_released"] == 27_000


@pytest.mark.asyncio
async def test_reject_proof_fails_escrow(
    client: AsyncClient, db_session: AsyncSession, email_sender: AsyncMock
) -> None:
    eng = await create_engagement(client)
    admin = await create_admin(client, db_session)
    escrow = await _manual_escrow(client, eng)
    proof = (await _submit_proof(client, eng, escrow["transaction_id"])).json()

    resp = await signed_request(
        client, admin, "POST", f"/admin/payments/proofs/{proof['proof_id']}/verify",
        {"approved": False, "notes": "Amount does not match"},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    tx = await _fetch_tx(db_session, escrow["transaction_id"])
    assert tx.status.value == "failed"
    assert tx.payment_metadata["rejection_reason"] == "Amount does not match"
    assert email_sender.send.await_args.args[1] == "Manual Payment Rejected"


@pytest.mark.asyncio
async def test_proof_decided_once(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    admin = await create_admin(client, db_session)
    escrow = await _manual_escrow(client, eng)
    proof = (await _submit_proof(client, eng, escrow["transaction_id"])).json()
    path = f"/admin/payments/proofs/{proof['proof_id']}/verify"

    assert (await signed_request(client, admin, "POST", path, {"approved": True})).status_code == 200
    resp = await signed_request(client, admin, "POST", path, {"approved": False})
    assert resp.status_code == 409

    # No further proofs once the escrow is settled
    resp = await _submit_proof(client, eng, escrow["transaction_id"])
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_verify_requires_admin(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    escrow = await _manual_escrow(client, eng)
    proof = (await _submit_proof(client, eng, escrow["transaction_id"])).json()

    resp = await signed_request(
        client, eng.employer, "POST", f"/admin/payments/proofs/{proof['proof_id']}/verify",
        {"approved": True},
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_verify_unknown_proof(client: AsyncClient, db_session: AsyncSession) -> None:
    admin = await create_admin(client, db_session)
    resp = await signed_request(
        client, admin, "POST", f"/admin/payments/proofs/{uuid.uuid4()}/verify", {"approved": True},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_list_pending_proofs(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    admin = await create_admin(client, db_session)
    escrow = await _manual_escrow(client, eng)
    await _submit_proof(client, eng, escrow["transaction_id"])

    resp = await signed_request(client, admin, "GET", "/admin/payments/proofs")
    assert resp.status_code == 200
    assert [p["transaction_id"] for p in resp.json()] == [escrow["transaction_id"]]

    other = await create_user(client)
    resp = await signed_request(client, other, "GET", "/admin/payments/proofs")
    assert resp.status_code == 403
