"""Contract disputes: raising, escalation to admins, resolution.

The escalation sweep is invoked on a schedule (``scripts/escalate_disputes.py``
or ``POST /internal/disputes/escalate``). It picks up every dispute still
open after ``settings.dispute_escalation_hours`` and hands it to the admin
with the fewest unresolved escalations. Running it twice escalates nothing
new: a dispute with an unresolved escalation is skipped.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from gigescrow.models.dispute import Dispute, DisputeEscalation, DisputeStatus
from gigescrow.models.user import AppRole, User, UserRole
from gigescrow.services.email import EmailSender
from gigescrow.services.job import get_contract
from gigescrow.services.notifications import notify
from gigescrow.services.user import get_user

logger = logging.getLogger(__name__)

AUTO_ESCALATION_NOTE = "Automatically escalated after {hours} hours without resolution"


@dataclass
class SweepResult:
    escalated: int = 0
    dispute_ids: list[uuid.UUID] = field(default_factory=list)


async def raise_dispute(
    db: AsyncSession,
    sender: EmailSender,
    contract_id: uuid.UUID,
    raiser: User,
    reason: str,
) -> Dispute:
    contract = await get_contract(db, contract_id)
    if raiser.user_id not in (contract.employer_id, contract.talent_id):
        raise AuthorizationError("Only a party to the contract can raise a dispute")

    existing = await db.execute(
        select(Dispute.dispute_id).where(
            Dispute.contract_id == contract_id,
            Dispute.status == DisputeStatus.OPEN,
        )
    )
    if existing.first() is not None:
        raise PreconditionError("An open dispute already exists for this contract")

    dispute = Dispute(
        dispute_id=uuid.uuid4(),
        contract_id=contract_id,
        raised_by=raiser.user_id,
        reason=reason,
        status=DisputeStatus.OPEN,
    )
    db.add(dispute)
    await db.commit()
    await db.refresh(dispute)

    logger.info("Dispute %s raised on contract %s by %s", dispute.dispute_id, contract_id,
                raiser.user_id)

    other_id = (
        contract.talent_id if raiser.user_id == contract.employer_id else contract.employer_id
    )
    other = await get_user(db, other_id)
    await notify(
        sender, other.email, "dispute_raised",
        user_name=other.full_name, job_title=contract.job.title, reason=reason,
    )
    return dispute


async def get_dispute(db: AsyncSession, dispute_id: uuid.UUID) -> Dispute:
    result = await db.execute(select(Dispute).where(Dispute.dispute_id == dispute_id))
    dispute = result.scalar_one_or_none()
    if dispute is None:
        raise NotFoundError("Dispute not found")
    return dispute


async def list_disputes(
    db: AsyncSession, status: DisputeStatus | None = None
) -> list[Dispute]:
    query = select(Dispute).order_by(Dispute.created_at.asc())
    if status is not None:
        query = query.where(Dispute.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_escalations(db: AsyncSession, dispute_id: uuid.UUID) -> list[DisputeEscalation]:
    result = await db.execute(
        select(DisputeEscalation)
        .where(DisputeEscalation.dispute_id == dispute_id)
        .order_by(DisputeEscalation.escalated_at.asc())
    )
    return list(result.scalars().all())


async def _has_unresolved_escalation(db: AsyncSession, dispute_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(DisputeEscalation.escalation_id).where(
            DisputeEscalation.dispute_id == dispute_id,
            DisputeEscalation.resolved_at.is_(None),
        )
    )
    return result.first() is not None


async def select_admin(db: AsyncSession) -> uuid.UUID | None:
    """Least-loaded admin: fewest unresolved escalations, earliest grant on ties."""
    load = (
        select(
            DisputeEscalation.escalated_to.label("admin_id"),
            func.count(DisputeEscalation.escalation_id).label("open_count"),
        )
        .where(DisputeEscalation.resolved_at.is_(None))
        .group_by(DisputeEscalation.escalated_to)
        .subquery()
    )
    result = await db.execute(
        select(UserRole.user_id)
        .outerjoin(load, load.c.admin_id == UserRole.user_id)
        .where(UserRole.role == AppRole.ADMIN)
        .order_by(func.coalesce(load.c.open_count, 0).asc(), UserRole.created_at.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def _job_title(dispute: Dispute) -> str:
    contract = dispute.contract
    return contract.job.title if contract is not None and contract.job is not None else ""


async def _notify_escalation(
    db: AsyncSession, sender: EmailSender, admin_id: uuid.UUID, job_title: str, reason: str
) -> None:
    admin = await get_user(db, admin_id)
    await notify(
        sender, admin.email, "dispute_escalated",
        user_name=admin.full_name,
        job_title=job_title,
        reason=reason,
        hours=settings.dispute_escalation_hours,
    )


async def run_escalation_sweep(
    db: AsyncSession, sender: EmailSender, now: datetime | None = None
) -> SweepResult:
    """Escalate every dispute left open past the escalation window."""
    if now is None:
        now = datetime.now(UTC)
    hours = settings.dispute_escalation_hours
    cutoff = now - timedelta(hours=hours)

    result = await db.execute(
        select(Dispute)
        .where(Dispute.status == DisputeStatus.OPEN, Dispute.created_at < cutoff)
        .order_by(Dispute.created_at.asc())
    )
    # Plain values: a rollback below would expire the ORM rows
    candidates = [(d.dispute_id, d.reason, _job_title(d)) for d in result.scalars().all()]
    logger.info("Escalation sweep: %d open disputes older than %dh", len(candidates), hours)

    sweep = SweepResult()
    for dispute_id, reason, job_title in candidates:
        if await _has_unresolved_escalation(db, dispute_id):
            continue

        admin_id = await select_admin(db)
        if admin_id is None:
            logger.warning("No admin available to escalate dispute %s", dispute_id)
            continue

        try:
            db.add(DisputeEscalation(
                escalation_id=uuid.uuid4(),
                dispute_id=dispute_id,
                escalated_to=admin_id,
                escalation_notes=AUTO_ESCALATION_NOTE.format(hours=hours),
                escalated_at=now,
            ))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Failed to escalate dispute %s", dispute_id)
            continue

        sweep.escalated += 1
        sweep.dispute_ids.append(dispute_id)
        logger.info("Dispute %s escalated to admin %s", dispute_id, admin_id)

        await _notify_escalation(db, sender, admin_id, job_title, reason)

    logger.info("Escalated %d disputes", sweep.escalated)
    return sweep


async def escalate_dispute(
    db: AsyncSession,
    sender: EmailSender,
    dispute_id: uuid.UUID,
    admin: User,
    escalated_to: uuid.UUID | None = None,
    notes: str | None = None,
) -> DisputeEscalation:
    """Manually hand a dispute to an admin (the least-loaded one by default)."""
    dispute = await get_dispute(db, dispute_id)
    if dispute.status != DisputeStatus.OPEN:
        raise PreconditionError("Dispute is already resolved")
    if await _has_unresolved_escalation(db, dispute_id):
        raise PreconditionError("Dispute already has an unresolved escalation")

    if escalated_to is None:
        escalated_to = await select_admin(db)
        if escalated_to is None:
            raise PreconditionError("No admin available to take the escalation")
    else:
        target = await get_user(db, escalated_to)
        if not target.has_role(AppRole.ADMIN):
            raise ValidationError("Disputes can only be escalated to admins")

    escalation = DisputeEscalation(
        escalation_id=uuid.uuid4(),
        dispute_id=dispute_id,
        escalated_to=escalated_to,
        escalation_notes=notes or f"Escalated by admin {admin.user_id}",
    )
    db.add(escalation)
    await db.commit()
    await db.refresh(escalation)

    logger.info("Dispute %s escalated to admin %s by %s", dispute_id, escalated_to,
                admin.user_id)

    await _notify_escalation(db, sender, escalated_to, _job_title(dispute), dispute.reason)
    return escalation


async def resolve_dispute(
    db: AsyncSession,
    sender: EmailSender,
    dispute_id: uuid.UUID,
    resolution: str,
    admin_id: uuid.UUID,
) -> Dispute:
    """Close a dispute and every escalation still open on it.

    Resolving again overwrites the resolution text and timestamp.
    """
    dispute = await get_dispute(db, dispute_id)
    contract = dispute.contract
    job_title = _job_title(dispute)
    now = datetime.now(UTC)

    dispute.status = DisputeStatus.RESOLVED
    dispute.resolution = resolution
    dispute.resolved_at = now

    for escalation in await list_escalations(db, dispute_id):
        if escalation.resolved_at is None:
            escalation.resolved_at = now

    await db.commit()
    await db.refresh(dispute)

    logger.info("Dispute %s resolved by admin %s", dispute_id, admin_id)

    for party_id in (contract.employer_id, contract.talent_id):
        party = await get_user(db, party_id)
        await notify(
            sender, party.email, "dispute_resolved",
            user_name=party.full_name, job_title=job_title, resolution=resolution,
        )
    return dispute
