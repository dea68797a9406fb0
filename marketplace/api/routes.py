"""FastAPI endpoints for the marketplace payments API.

This module defines the routes for reading contracts, listing unpaid jobs, paying a job and
health checks. Endpoints that touch the database are plain ``def`` functions so FastAPI runs
them in its threadpool, where waiting on a row lock does not block the event loop.
"""

from fastapi import APIRouter, HTTPException, status

from marketplace.api.dependencies import CurrentProfile, Store, Transactor
from marketplace.core.models import ContractOut, JobOut, JobWithContractOut
from marketplace.core.utils import get_logger
from marketplace.services.payments import (
    InsufficientFundsError,
    JobAlreadyPaidError,
    JobNotFoundError,
    TransactionFailureError,
)

router = APIRouter()
logger = get_logger("marketplace.api")

UNAUTHORIZED_RESPONSE = {
    "description": "Missing or unknown profile_id header.",
    "content": {"application/json": {"example": {"detail": "Unauthorized"}}},
}


@router.get(
    "/contracts/{contract_id}",
    response_model=ContractOut,
    summary="Get a contract by id",
    description=(
        "Return a single contract, provided the calling profile is its client or its contractor.\n\n"
        "**Headers:**\n"
        "- `profile_id`: id of the calling profile.\n\n"
        "**Response:**\n"
        "- 200 OK: The contract.\n"
        "- 403 Forbidden: The caller is not a party to the contract.\n"
        "- 404 Not Found: No contract with this id."
    ),
    responses={
        401: UNAUTHORIZED_RESPONSE,
        403: {"description": "Caller is not a party to the contract."},
        404: {"description": "Contract not found."},
    },
)
def get_contract(contract_id: int, profile: CurrentProfile, store: Store) -> ContractOut:
    """Get a contract the caller is a party to."""
    contract = store.get_contract(contract_id)
    if contract is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Contract not found")
    if profile.id not in (contract.client_id, contract.contractor_id):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Forbidden")
    return ContractOut.model_validate(contract)


@router.get(
    "/contracts",
    response_model=list[ContractOut],
    summary="List the caller's active contracts",
    description="List the non-terminated contracts where the caller is either the client or the contractor.",
    responses={401: UNAUTHORIZED_RESPONSE},
)
def list_contracts(profile: CurrentProfile, store: Store) -> list[ContractOut]:
    """List non-terminated contracts of the caller."""
    return [ContractOut.model_validate(c) for c in store.list_active_contracts(profile.id)]


@router.get(
    "/jobs/unpaid",
    response_model=list[JobWithContractOut],
    summary="List the caller's unpaid jobs",
    description=(
        "List unpaid jobs that belong to in-progress contracts where the caller is the client or the "
        "contractor. Each job embeds its contract."
    ),
    responses={401: UNAUTHORIZED_RESPONSE},
)
def list_unpaid_jobs(profile: CurrentProfile, store: Store) -> list[JobWithContractOut]:
    """List unpaid jobs on the caller's active contracts."""
    return [JobWithContractOut.model_validate(j) for j in store.list_unpaid_jobs(profile.id)]


@router.post(
    "/jobs/{job_id}/pay",
    response_model=JobOut,
    summary="Pay for a job",
    description=(
        "Transfer the job price from the calling client's balance to the contractor's balance and mark "
        "the job paid. The transfer and the job update are committed together or not at all.\n\n"
        "**Response:**\n"
        "- 200 OK: The paid job, with `paid` set and its `paymentDate`.\n"
        "- 400 Bad Request: The job is already paid, or the client balance is too low.\n"
        "- 404 Not Found: The job does not exist or the caller is not its client.\n"
        "- 500 Internal Server Error: The transaction failed and was rolled back; it is safe to retry."
    ),
    response_description="The paid job.",
    responses={
        200: {
            "description": "Job paid.",
            "content": {
                "application/json": {
                    "example": {
                        "id": 30,
                        "contractId": 20,
                        "description": "Logo design",
                        "price": 200,
                        "paid": True,
                        "paymentDate": "2025-05-18T10:31:10Z",
                    }
                }
            },
        },
        400: {
            "description": "Job already paid or insufficient funds.",
            "content": {"application/json": {"example": {"detail": "Insufficient funds"}}},
        },
        401: UNAUTHORIZED_RESPONSE,
        404: {
            "description": "Job not found.",
            "content": {"application/json": {"example": {"detail": "Job not found"}}},
        },
        500: {"description": "Payment transaction failed and was rolled back."},
    },
)
def pay_job(job_id: int, profile: CurrentProfile, transactor: Transactor) -> JobOut:
    """Pay for a job as its client."""
    logger.info(f"Received pay request: job_id={job_id}, profile_id={profile.id}")
    try:
        return transactor.pay(job_id, profile.id)
    except JobNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc)) from exc
    except (JobAlreadyPaidError, InsufficientFundsError) as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except TransactionFailureError as exc:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc)) from exc


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
