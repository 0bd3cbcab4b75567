"""
Request and response models for the admin API.
"""

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from ingestflow.jobs.schemas import Job


class ErrorResponse(BaseModel):
    """Error body."""

    detail: str = Field(..., description="Error message")
    error_type: str = Field(default="error", description="Error category")


class ComponentHealth(BaseModel):
    """Health of one infrastructure component."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict[str, Any] | None = Field(default=None, description="Error details")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="healthy, degraded or unhealthy")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    queue_depth: int | None = Field(default=None, description="Job stream length")
    version: str = Field(..., description="Service version")


class JobItem(BaseModel):
    """Job status record, without payload."""

    job_id: str
    unit_id: str
    owner: str
    status: str
    created_at: dt.datetime | None = None
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobItem":
        return cls(
            job_id=job.job_id,
            unit_id=job.unit_id,
            owner=job.owner,
            status=job.status.value,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
        )


class JobListResponse(BaseModel):
    jobs: list[JobItem]
    total: int = Field(..., description="Jobs returned")
    status_counts: dict[str, int] = Field(default_factory=dict, description="Jobs per status")


class CredentialSummary(BaseModel):
    """Credential presence and expiry for display; never carries tokens."""

    integration: str
    authorized: bool
    state: str
    identity: str | None = None
    scope: str | None = None
    expires_at: str | None = None
    last_refreshed_at: str | None = None
    refreshable: bool = False


class AuthorizeResponse(BaseModel):
    integration: str
    authorization_url: str


class RevokeResponse(BaseModel):
    integration: str
    revoked: bool


class HandlerSchemaResponse(BaseModel):
    handler: str
    json_schema: dict[str, Any] = Field(..., description="JSON schema of the handler config")
