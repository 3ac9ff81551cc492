"""Tests for escrow: initialize, gateway confirmation, release, double-release prevention."""

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.errors import GatewayError
from gigescrow.models.job import Application, Contract, Job
from gigescrow.models.transaction import Transaction, TransactionType
from gigescrow.models.wallet import Wallet
from gigescrow.services.wallet import credit_wallet
from tests.conftest import (
    Engagement,
    create_engagement,
    create_user,
    signed_request,
    webhook_headers,
)


async def _initialize(client: AsyncClient, eng: Engagement, amount: int = 50_000, currency: str = "NGN"):  # type: ignore[no-untyped-def]
    return await signed_request(client, eng.employer, "POST", "/payments/escrow", {
        "job_id": eng.job_id,
        "amount": amount,
        "currency": currency,
        "description": "Landing page",
    })


async def _charge_event(client: AsyncClient, tx_ref: str, status: str = "successful"):  # type: ignore[no-untyped-def]
    return await client.post(
        "/webhooks/flutterwave",
        json={"event": "charge.completed", "data": {"id": 777, "tx_ref": tx_ref, "status": status}},
        headers=webhook_headers(),
    )


async def _fund(client: AsyncClient, eng: Engagement, amount: int = 50_000) -> dict:
    resp = await _initialize(client, eng, amount)
    assert resp.status_code == 201, resp.text
    escrow = resp.json()
    resp = await _charge_event(client, escrow["external_reference"])
    assert resp.status_code == 200, resp.text
    return escrow


async def _release(client: AsyncClient, eng: Engagement):  # type: ignore[no-untyped-def]
    return await signed_request(client, eng.employer, "POST", "/payments/release", {
        "job_id": eng.job_id,
        "application_id": eng.application_id,
    })


async def _fetch(db: AsyncSession, model, *criteria):  # type: ignore[no-untyped-def]
    result = await db.execute(
        select(model).where(*criteria).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _wallet_balance(db: AsyncSession, user_id: str) -> int | None:
    result = await db.execute(select(Wallet.balance).where(Wallet.user_id == uuid.UUID(user_id)))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# InitializeEscrow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_initialize_escrow_splits_fee(client: AsyncClient, gateway: AsyncMock, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    resp = await _initialize(client, eng, 50_000)
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["amount"] == 50_000
    assert body["platform_fee"] == 5_000
    assert body["net_amount"] == 45_000
    assert body["currency"] == "NGN"
    assert body["payment_link"].startswith("https://checkout.example.com/pay/")
    assert body["external_reference"].startswith(f"job-{eng.job_id}-")

    gateway.create_charge.assert_awaited_once()
    kwargs = gateway.create_charge.await_args.kwargs
    assert kwargs["amount"] == 50_000
    assert kwargs["currency"] == "NGN"
    assert kwargs["tx_ref"] == body["external_reference"]

    tx = await _fetch(db_session, Transaction, Transaction.transaction_id == uuid.UUID(body["transaction_id"]))
    assert tx.status.value == "pending"
    assert tx.type == TransactionType.ESCROW
    assert tx.payment_provider.value == "flutterwave"
    assert tx.payment_metadata["payment_link"] == body["payment_link"]


@pytest.mark.asyncio
async def test_initialize_escrow_lowercase_currency_accepted(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    resp = await _initialize(client, eng, 1_000, "usd")
    assert resp.status_code == 201
    assert resp.json()["currency"] == "USD"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100])
async def test_initialize_escrow_rejects_non_positive_amount(
    client: AsyncClient, gateway: AsyncMock, amount: int
) -> None:
    eng = await create_engagement(client)
    resp = await _initialize(client, eng, amount)
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"
    gateway.create_charge.assert_not_awaited()


@pytest.mark.asyncio
async def test_initialize_escrow_rejects_unsupported_currency(client: AsyncClient, gateway: AsyncMock) -> None:
    eng = await create_engagement(client)
    resp = await _initialize(client, eng, 1_000, "XYZ")
    assert resp.status_code == 422
    assert "Unsupported currency" in resp.json()["detail"]
    gateway.create_charge.assert_not_awaited()


@pytest.mark.asyncio
async def test_initialize_escrow_unknown_job(client: AsyncClient) -> None:
    employer = await create_user(client, ["employer"])
    resp = await signed_request(client, employer, "POST", "/payments/escrow", {
        "job_id": str(uuid.uuid4()), "amount": 1_000, "currency": "NGN",
    })
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_initialize_escrow_only_employer(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    resp = await signed_request(client, eng.talent, "POST", "/payments/escrow", {
        "job_id": eng.job_id, "amount": 1_000, "currency": "NGN",
    })
    assert resp.status_code == 403
    assert resp.json()["error"] == "authorization_error"


@pytest.mark.asyncio
async def test_funded_job_cannot_be_funded_again(
    client: AsyncClient, gateway: AsyncMock, db_session: AsyncSession
) -> None:
    eng = await create_engagement(client)
    await _fund(client, eng)

    resp = await _initialize(client, eng, 20_000)
    assert resp.status_code == 409
    assert resp.json()["error"] == "precondition_failed"
    gateway.create_charge.assert_awaited_once()

    resp = await signed_request(client, eng.employer, "POST", "/payments/escrow/manual", {
        "job_id": eng.job_id, "amount": 20_000, "currency": "NGN",
    })
    assert resp.status_code == 409

    escrows = await db_session.execute(
        select(func.count()).select_from(Transaction).where(Transaction.type == TransactionType.ESCROW)
    )
    assert escrows.scalar_one() == 1


@pytest.mark.asyncio
async def test_pending_escrow_can_be_retried(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    for _ in range(2):
        resp = await signed_request(client, eng.employer, "POST", "/payments/escrow/manual", {
            "job_id": eng.job_id, "amount": 20_000, "currency": "NGN",
        })
        assert resp.status_code == 201, resp.text


@pytest.mark.asyncio
async def test_gateway_failure_persists_nothing(
    client: AsyncClient, gateway: AsyncMock, db_session: AsyncSession
) -> None:
    eng = await create_engagement(client)
    gateway.create_charge.side_effect = GatewayError("Payment gateway rejected request: Invalid currency")

    resp = await _initialize(client, eng)
    assert resp.status_code == 502
    assert resp.json()["error"] == "gateway_error"
    assert "Invalid currency" in resp.json()["detail"]

    count = await db_session.execute(select(func.count()).select_from(Transaction))
    assert count.scalar_one() == 0


# ---------------------------------------------------------------------------
# ConfirmEscrow (webhook)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_successful_charge_completes_escrow(
    client: AsyncClient, email_sender: AsyncMock, db_session: AsyncSession
) -> None:
    eng = await create_engagement(client)
    escrow = await _fund(client, eng)

    tx = await _fetch(db_session, Transaction, Transaction.transaction_id == uuid.UUID(escrow["transaction_id"]))
    assert tx.status.value == "completed"
    assert tx.payment_metadata["flutterwave_payment_id"] == "777"
    assert "completed_at" in tx.payment_metadata

    job = await _fetch(db_session, Job, Job.job_id == uuid.UUID(eng.job_id))
    assert job.status.value == "in_progress"

    email_sender.send.assert_awaited_once()
    to, subject, _ = email_sender.send.await_args.args
    assert to == eng.employer.email
    assert subject == "Payment Received - Escrow Secured"


@pytest.mark.asyncio
async def test_confirmation_replay_is_noop(client: AsyncClient, email_sender: AsyncMock) -> None:
    eng = await create_engagement(client)
    escrow = await _fund(client, eng)
    assert email_sender.send.await_count == 1

    resp = await _charge_event(client, escrow["external_reference"])
    assert resp.status_code == 200
    assert resp.json()["message"] == "Escrow completed"
    assert email_sender.send.await_count == 1


@pytest.mark.asyncio
async def test_failed_charge_marks_escrow_failed(
    client: AsyncClient, email_sender: AsyncMock, db_session: AsyncSession
) -> None:
    eng = await create_engagement(client)
    resp = await _initialize(client, eng)
    escrow = resp.json()

    resp = await _charge_event(client, escrow["external_reference"], "failed")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Escrow failed"

    # A late success for a failed transaction changes nothing
    resp = await _charge_event(client, escrow["external_reference"], "successful")
    assert resp.json()["message"] == "Escrow failed"

    job = await _fetch(db_session, Job, Job.job_id == uuid.UUID(eng.job_id))
    assert job.status.value == "open"
    email_sender.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_confirm_unknown_reference(client: AsyncClient) -> None:
    resp = await _charge_event(client, "job-does-not-exist-1")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# ReleaseEscrow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_release_credits_talent_and_completes_work(
    client: AsyncClient, email_sender: AsyncMock, db_session: AsyncSession
) -> None:
    """Escrow 50000, fee 5000, talent wallet receives 45000."""
    eng = await create_engagement(client)
    await _fund(client, eng, 50_000)
    email_sender.send.reset_mock()

    resp = await _release(client, eng)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["amount_released"] == 45_000
    assert body["platform_fee"] == 5_000
    assert body["talent_id"] == eng.talent.user_id

    release = await _fetch(db_session, Transaction, Transaction.transaction_id == uuid.UUID(body["transaction_id"]))
    assert release.type == TransactionType.RELEASE
    assert release.status.value == "completed"
    assert release.amount == 50_000
    assert release.platform_fee == 5_000
    assert release.net_amount == release.amount - release.platform_fee == 45_000
    assert release.to_user_id == uuid.UUID(eng.talent.user_id)

    assert await _wallet_balance(db_session, eng.talent.user_id) == 45_000

    job = await _fetch(db_session, Job, Job.job_id == uuid.UUID(eng.job_id))
    application = await _fetch(
        db_session, Application, Application.application_id == uuid.UUID(eng.application_id)
    )
    contract = await _fetch(db_session, Contract, Contract.contract_id == uuid.UUID(eng.contract_id))
    assert job.status.value == "completed"
    assert application.status.value == "completed"
    assert contract.status.value == "completed"

    email_sender.send.assert_awaited_once()
    to, subject, _ = email_sender.send.await_args.args
    assert to == eng.talent.email
    assert subject == "Payment Released to Your Wallet"


@pytest.mark.asyncio
async def test_release_fee_rounds_down(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    await _fund(client, eng, 999)
    resp = await _release(client, eng)
    assert resp.json()["amount_released"] == 900
    assert resp.json()["platform_fee"] == 99
    assert await _wallet_balance(db_session, eng.talent.user_id) == 900


@pytest.mark.asyncio
async def test_usd_escrow_release_credits_net(client: AsyncClient, db_session: AsyncSession) -> None:
    """USD 10000: fee 1000, net 9000, talent wallet grows by exactly 9000."""
    eng = await create_engagement(client)
    resp = await _initialize(client, eng, 10_000, "USD")
    assert resp.json()["platform_fee"] == 1_000
    assert resp.json()["net_amount"] == 9_000
    await _charge_event(client, resp.json()["external_reference"])

    resp = await _release(client, eng)
    assert resp.status_code == 200
    assert await _wallet_balance(db_session, eng.talent.user_id) == 9_000

    wallet = await _fetch(db_session, Wallet, Wallet.user_id == uuid.UUID(eng.talent.user_id))
    assert wallet.currency == "USD"


@pytest.mark.asyncio
async def test_webhook_replay_after_release_does_not_credit_again(
    client: AsyncClient, db_session: AsyncSession
) -> None:
    eng = await create_engagement(client)
    escrow = await _fund(client, eng)
    await _release(client, eng)

    resp = await _charge_event(client, escrow["external_reference"])
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert await _wallet_balance(db_session, eng.talent.user_id) == 45_000


@pytest.mark.asyncio
async def test_second_release_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    await _fund(client, eng)
    assert (await _release(client, eng)).status_code == 200

    resp = await _release(client, eng)
    assert resp.status_code == 409
    assert "already been released" in resp.json()["detail"]

    assert await _wallet_balance(db_session, eng.talent.user_id) == 45_000
    releases = await db_session.execute(
        select(func.count()).select_from(Transaction).where(Transaction.type == TransactionType.RELEASE)
    )
    assert releases.scalar_one() == 1


@pytest.mark.asyncio
async def test_release_requires_completed_escrow(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    await _initialize(client, eng)  # pending only

    resp = await _release(client, eng)
    assert resp.status_code == 409
    assert resp.json()["error"] == "precondition_failed"
    assert await _wallet_balance(db_session, eng.talent.user_id) is None


@pytest.mark.asyncio
async def test_release_only_by_employer(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    await _fund(client, eng)
    resp = await signed_request(client, eng.talent, "POST", "/payments/release", {
        "job_id": eng.job_id, "application_id": eng.application_id,
    })
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_release_unknown_application(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    await _fund(client, eng)
    resp = await signed_request(client, eng.employer, "POST", "/payments/release", {
        "job_id": eng.job_id, "application_id": str(uuid.uuid4()),
    })
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_release_to_unaccepted_applicant_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    eng = await create_engagement(client)
    bystander = await create_user(client, ["talent"])
    resp = await signed_request(
        client, bystander, "POST", f"/jobs/{eng.job_id}/applications", {"cover_letter": "Me too"},
    )
    pending_application_id = resp.json()["application_id"]
    await _fund(client, eng)

    resp = await signed_request(client, eng.employer, "POST", "/payments/release", {
        "job_id": eng.job_id, "application_id": pending_application_id,
    })
    assert resp.status_code == 409
    assert resp.json()["error"] == "precondition_failed"
    assert await _wallet_balance(db_session, bystander.user_id) is None

    job = await _fetch(db_session, Job, Job.job_id == uuid.UUID(eng.job_id))
    contract = await _fetch(db_session, Contract, Contract.contract_id == uuid.UUID(eng.contract_id))
    assert job.status.value == "in_progress"
    assert contract.status.value == "active"

    # The accepted application can still be paid
    assert (await _release(client, eng)).status_code == 200
    assert await _wallet_balance(db_session, eng.talent.user_id) == 45_000


@pytest.mark.asyncio
async def test_release_into_wallet_of_other_currency_rejected(
    client: AsyncClient, db_session: AsyncSession
) -> None:
    """No conversion: a USD release cannot land in an NGN wallet."""
    eng = await create_engagement(client)
    await credit_wallet(db_session, uuid.UUID(eng.talent.user_id), 1_000, "NGN")
    await db_session.commit()

    resp = await _initialize(client, eng, 10_000, "USD")
    await _charge_event(client, resp.json()["external_reference"])

    resp = await _release(client, eng)
    assert resp.status_code == 422
    assert "NGN" in resp.json()["detail"]
    assert await _wallet_balance(db_session, eng.talent.user_id) == 1_000

    releases = await db_session.execute(
        select(func.count()).select_from(Transaction).where(Transaction.type == TransactionType.RELEASE)
    )
    assert releases.scalar_one() == 0
    job = await _fetch(db_session, Job, Job.job_id == uuid.UUID(eng.job_id))
    assert job.status.value == "in_progress"


@pytest.mark.asyncio
async def test_release_adds_to_existing_wallet(client: AsyncClient, db_session: AsyncSession) -> None:
    first = await create_engagement(client)
    await _fund(client, first, 10_000)
    await _release(client, first)

    # Same talent, second job
    resp = await signed_request(client, first.employer, "POST", "/jobs", {"title": "Second job"})
    job_id = resp.json()["job_id"]
    resp = await signed_request(client, first.talent, "POST", f"/jobs/{job_id}/applications", {})
    application_id = resp.json()["application_id"]
    resp = await signed_request(
        client, first.employer, "POST", f"/jobs/{job_id}/applications/{application_id}/accept",
    )
    second = Engagement(first.employer, first.talent, job_id, application_id, resp.json()["contract_id"])
    await _fund(client, second, 20_000)
    await _release(client, second)

    assert await _wallet_balance(db_session, first.talent.user_id) == 9_000 + 18_000


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_transaction_parties_only(client: AsyncClient) -> None:
    eng = await create_engagement(client)
    escrow = await _fund(client, eng)
    path = f"/payments/transactions/{escrow['transaction_id']}"

    resp = await signed_request(client, eng.employer, "GET", path)
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert resp.json()["type"] == "escrow"

    stranger = await create_user(client)
    resp = await signed_request(client, stranger, "GET", path)
    assert resp.status_code == 404
