"""Job posting, application and contract endpoints."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, verify_request
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.errors import AuthorizationError
from gigescrow.schemas.job import (
    ApplicationCreate,
    ApplicationResponse,
    ContractResponse,
    JobCreate,
    JobResponse,
)
from gigescrow.services import job as job_service

router = APIRouter(tags=["jobs"])


@router.post("/jobs", response_model=JobResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def create_job(
    data: JobCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.create_job(db, auth.user, data)
    return JobResponse.model_validate(job)


@router.get("/jobs/{job_id}", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def get_job(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.get_job(db, job_id)
    return JobResponse.model_validate(job)


@router.post(
    "/jobs/{job_id}/applications",
    response_model=ApplicationResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def apply_to_job(
    job_id: uuid.UUID,
    data: ApplicationCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ApplicationResponse:
    """Talent applies to an open job."""
    application = await job_service.apply_to_job(db, job_id, auth.user, data)
    return ApplicationResponse.model_validate(application)


@router.post(
    "/jobs/{job_id}/applications/{application_id}/accept",
    response_model=ContractResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def accept_application(
    job_id: uuid.UUID,
    application_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ContractResponse:
    """Employer accepts an application, opening a contract."""
    contract = await job_service.accept_application(db, job_id, application_id, auth.user_id)
    return ContractResponse.model_validate(contract)


@router.get("/contracts/{contract_id}", response_model=ContractResponse, dependencies=[Depends(check_rate_limit)])
async def get_contract(
    contract_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ContractResponse:
    """Only the contract's parties (or an admin) can view it."""
    contract = await job_service.get_contract(db, contract_id)
    if auth.user_id not in (contract.employer_id, contract.talent_id) and not auth.is_admin:
        raise AuthorizationError("Not a party to this contract")
    return ContractResponse.model_validate(contract)
