"""Configuration for the job stream and its workers."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class JobsConfig(BaseSettings):
    """Job stream names, trimming and worker batching."""

    model_config = SettingsConfigDict(
        env_prefix="JOBS_",
        case_sensitive=False,
        extra="ignore",
    )

    stream_name: str = "ingestflow:jobs"
    consumer_group: str = "job_workers"
    dlq_stream_name: str = "ingestflow:jobs:dlq"
    max_stream_length: int = Field(default=50_000, ge=100)

    worker_batch_size: int = Field(default=10, ge=1, le=100)
    worker_block_ms: int = Field(default=5000, ge=100)
    idle_timeout_ms: int = Field(
        default=60_000,
        ge=1000,
        description="Pending jobs idle this long are reclaimed by another worker",
    )
    max_delivery_attempts: int = Field(default=3, ge=1)

    stuck_timeout_hours: int = Field(
        default=6,
        ge=1,
        description="Pending or running jobs older than this are marked failed",
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        description="Completed and failed jobs are deleted after this many days",
    )
