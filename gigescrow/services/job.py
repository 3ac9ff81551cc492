"""Job posting, applications and contracts."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from gigescrow.models.job import (
    VALID_TRANSITIONS,
    Application,
    ApplicationStatus,
    Contract,
    Job,
    JobStatus,
)
from gigescrow.models.user import AppRole, User
from gigescrow.schemas.job import ApplicationCreate, JobCreate

logger = logging.getLogger(__name__)


def assert_transition(current: JobStatus, target: JobStatus) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise PreconditionError(f"Cannot transition job from {current.value} to {target.value}")


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(select(Job).where(Job.job_id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("Job not found")
    return job


async def create_job(db: AsyncSession, employer: User, data: JobCreate) -> Job:
    if not employer.has_role(AppRole.EMPLOYER):
        raise AuthorizationError("Only employers can post jobs")

    job = Job(
        job_id=uuid.uuid4(),
        employer_id=employer.user_id,
        title=data.title,
        description=data.description,
        budget=data.budget,
        currency=data.currency,
        status=JobStatus.OPEN,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    logger.info("Job %s posted by employer %s", job.job_id, employer.user_id)
    return job


async def apply_to_job(
    db: AsyncSession, job_id: uuid.UUID, applicant: User, data: ApplicationCreate
) -> Application:
    job = await get_job(db, job_id)
    if not applicant.has_role(AppRole.TALENT):
        raise AuthorizationError("Only talent can apply to jobs")
    if job.employer_id == applicant.user_id:
        raise ValidationError("Cannot apply to your own job")
    if job.status != JobStatus.OPEN:
        raise PreconditionError(f"Job is not open for applications, currently {job.status.value}")

    existing = await db.execute(
        select(Application).where(
            Application.job_id == job_id,
            Application.applicant_id == applicant.user_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise PreconditionError("Already applied to this job")

    application = Application(
        application_id=uuid.uuid4(),
        job_id=job_id,
        applicant_id=applicant.user_id,
        cover_letter=data.cover_letter,
    )
    db.add(application)
    await db.commit()
    await db.refresh(application)
    return application


async def get_application(
    db: AsyncSession, application_id: uuid.UUID, job_id: uuid.UUID | None = None
) -> Application:
    query = select(Application).where(Application.application_id == application_id)
    if job_id is not None:
        query = query.where(Application.job_id == job_id)
    result = await db.execute(query)
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError("Application not found")
    return application


async def accept_application(
    db: AsyncSession, job_id: uuid.UUID, application_id: uuid.UUID, employer_id: uuid.UUID
) -> Contract:
    """Employer accepts an application, which opens a contract with the applicant."""
    job = await get_job(db, job_id)
    if job.employer_id != employer_id:
        raise AuthorizationError("Only the employer can accept applications")

    application = await get_application(db, application_id, job_id)
    if application.status != ApplicationStatus.PENDING:
        raise PreconditionError(
            f"Application must be pending, currently {application.status.value}"
        )

    application.status = ApplicationStatus.ACCEPTED
    contract = Contract(
        contract_id=uuid.uuid4(),
        job_id=job_id,
        application_id=application_id,
        employer_id=job.employer_id,
        talent_id=application.applicant_id,
    )
    db.add(contract)
    await db.commit()
    await db.refresh(contract)

    logger.info("Contract %s opened for job %s", contract.contract_id, job_id)
    return contract


async def get_contract(db: AsyncSession, contract_id: uuid.UUID) -> Contract:
    result = await db.execute(select(Contract).where(Contract.contract_id == contract_id))
    contract = result.scalar_one_or_none()
    if contract is None:
        raise NotFoundError("Contract not found")
    return contract
