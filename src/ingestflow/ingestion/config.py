"""Configuration for fetch handlers."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FetchConfig(BaseSettings):
    """Pagination and enrichment limits shared by all fetch handlers."""

    model_config = SettingsConfigDict(
        env_prefix="FETCH_",
        case_sensitive=False,
        extra="ignore",
    )

    max_pages: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Upstream listing pages requested per fetch before giving up",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Items requested per listing page (Reddit caps this at 100)",
    )
    max_comment_count: int = Field(
        default=100,
        ge=0,
        description="Upper bound on top comments appended to a packet",
    )
