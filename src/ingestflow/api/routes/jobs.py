"""Job status endpoints for admin displays."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ingestflow.api.auth import verify_api_key
from ingestflow.api.dependencies import get_job_repository
from ingestflow.api.models import ErrorResponse, JobItem, JobListResponse
from ingestflow.jobs.repository import JobRepository
from ingestflow.jobs.schemas import JobStatus

router = APIRouter()


@router.get(
    "/jobs",
    response_model=JobListResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="List recent jobs",
)
async def list_jobs(
    job_status: JobStatus | None = Query(default=None, alias="status", description="Filter by status"),
    limit: int = Query(default=50, ge=1, le=500),
    api_key: str = Depends(verify_api_key),
    jobs: JobRepository = Depends(get_job_repository),
) -> JobListResponse:
    recent = await jobs.list_recent(limit=limit, status=job_status)
    return JobListResponse(
        jobs=[JobItem.from_job(job) for job in recent],
        total=len(recent),
        status_counts=await jobs.status_summary(),
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
    summary="Get job status",
)
async def get_job(
    job_id: str,
    api_key: str = Depends(verify_api_key),
    jobs: JobRepository = Depends(get_job_repository),
) -> JobItem:
    job = await jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return JobItem.from_job(job)
