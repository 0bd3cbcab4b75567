"""
Handler configuration payloads as tagged pydantic models.

Each handler has its own config model, discriminated on the `handler`
field, validated eagerly when a unit is loaded. Values outside an allowed
set are rejected rather than replaced by a default.
"""

from datetime import datetime, timedelta
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ingestflow.errors import ConfigError

Timeframe = Literal["all_time", "24_hours", "72_hours", "7_days", "30_days"]
RedditSort = Literal["hot", "new", "top", "rising"]

TIMEFRAME_WINDOWS: dict[str, timedelta] = {
    "24_hours": timedelta(hours=24),
    "72_hours": timedelta(hours=72),
    "7_days": timedelta(days=7),
    "30_days": timedelta(days=30),
}


def cutoff_for(timeframe: str, now: datetime) -> datetime | None:
    """Oldest acceptable item time for a timeframe, None for all_time."""
    window = TIMEFRAME_WINDOWS.get(timeframe)
    return now - window if window is not None else None


def parse_keywords(search: str) -> list[str]:
    """Split a comma-separated search string into non-empty keywords."""
    return [keyword.strip() for keyword in search.split(",") if keyword.strip()]


class _HandlerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    @property
    def keywords(self) -> list[str]:
        return parse_keywords(getattr(self, "search", ""))


class RedditFetchConfig(_HandlerConfig):
    """Settings of the subreddit reader."""

    handler: Literal["reddit"] = "reddit"
    subreddit: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_]+$")
    sort_by: RedditSort = "hot"
    timeframe_limit: Timeframe = "all_time"
    min_upvotes: int = Field(default=0, ge=0)
    min_comment_count: int = Field(default=0, ge=0)
    comment_count: int = Field(default=0, ge=0, description="Top comments appended to the body")
    search: str = Field(default="", description="Comma-separated keywords, any must match")


class RssFetchConfig(_HandlerConfig):
    """Settings of the RSS/Atom feed reader."""

    handler: Literal["rss"] = "rss"
    feed_url: str
    item_count: int = Field(default=1, ge=1, le=100)
    timeframe_limit: Timeframe = "all_time"
    search: str = ""

    @field_validator("feed_url")
    @classmethod
    def validate_feed_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("feed_url must be an absolute http(s) URL")
        return v


class FilesFetchConfig(_HandlerConfig):
    """Settings of the upload-only files source."""

    handler: Literal["files"] = "files"
    allowed_extensions: tuple[str, ...] = ()


HandlerConfig = Annotated[
    Union[RedditFetchConfig, RssFetchConfig, FilesFetchConfig],
    Field(discriminator="handler"),
]

CONFIG_MODELS: dict[str, type[_HandlerConfig]] = {
    "reddit": RedditFetchConfig,
    "rss": RssFetchConfig,
    "files": FilesFetchConfig,
}

_adapter: TypeAdapter = TypeAdapter(HandlerConfig)


def parse_handler_config(raw: Any, handler: str | None = None) -> _HandlerConfig:
    """
    Validate a raw config payload into its tagged model.

    Args:
        raw: Dict payload, or an already-parsed config
        handler: Handler name to tag the payload with when it has none

    Raises:
        ConfigError: If the payload does not validate
    """
    if isinstance(raw, _HandlerConfig):
        if handler is not None and raw.handler != handler:
            raise ConfigError(f"Config for {raw.handler!r} given to handler {handler!r}")
        return raw
    if not isinstance(raw, dict):
        raise ConfigError(f"Handler config must be a mapping, got {type(raw).__name__}")

    payload = dict(raw)
    if handler is not None:
        payload.setdefault("handler", handler)
        if payload["handler"] != handler:
            raise ConfigError(f"Config for {payload['handler']!r} given to handler {handler!r}")

    try:
        return _adapter.validate_python(payload)
    except ValidationError as e:
        raise ConfigError(f"Invalid {payload.get('handler', 'handler')} config: {e}") from e


def handler_config_schema(handler: str) -> dict[str, Any]:
    """JSON schema of a handler's config, for generic form renderers."""
    model = CONFIG_MODELS.get(handler)
    if model is None:
        raise ConfigError(f"Unknown handler: {handler}")
    return model.model_json_schema()
