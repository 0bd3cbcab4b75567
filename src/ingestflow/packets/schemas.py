"""
Canonical data packet schema exchanged between pipeline steps.

CRITICAL: Every fetch handler emits this structure and every downstream step
(transform, publish) consumes it. Packets are frozen: a step that changes a
packet derives a new one, the packet it received stays untouched.
"""

import posixpath
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticSerializationError

from ingestflow.errors import SerializationError

AI_SOURCE_TYPE = "ai_processed"
AI_STEP = "ai"

# First line of AI output becomes the title only when shorter than this
_MAX_AI_TITLE_LENGTH = 100


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class PacketFormat(str, Enum):
    """Body markup of a packet."""

    TEXT = "text"
    HTML = "html"
    MARKDOWN = "markdown"


class PacketContent(BaseModel):
    """Human-readable content of a packet."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    body: str = ""
    summary: str | None = None
    tags: tuple[str, ...] = ()


class PacketMetadata(BaseModel):
    """Provenance of a packet."""

    model_config = ConfigDict(frozen=True)

    source_type: str = Field(..., min_length=1, description="Integration or step that produced the packet")
    source_url: str | None = None
    date_created: datetime = Field(default_factory=_utc_now)
    language: str = "en"
    format: PacketFormat = PacketFormat.TEXT

    @field_validator("date_created")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class PacketProcessing(BaseModel):
    """Record of the steps a packet went through."""

    model_config = ConfigDict(frozen=True)

    steps_completed: tuple[str, ...] = ()
    ai_model_used: str | None = None
    prompt_applied: str | None = None
    tokens_used: int | None = Field(default=None, ge=0)


class PacketAttachments(BaseModel):
    """Media and references carried alongside the content."""

    model_config = ConfigDict(frozen=True)

    images: tuple[dict[str, Any], ...] = ()
    files: tuple[dict[str, Any], ...] = ()
    links: tuple[dict[str, Any], ...] = ()

    @field_validator("images", "files", "links")
    @classmethod
    def require_url(cls, v: tuple[dict[str, Any], ...]) -> tuple[dict[str, Any], ...]:
        for attachment in v:
            if not attachment.get("url"):
                raise ValueError("attachment requires a url")
        return v


class DataPacket(BaseModel):
    """
    CANONICAL DATA PACKET

    Constructed by a fetch handler (source_type = integration name) or derived
    from a prior packet by a transform step.

    Usage:
        packet = DataPacket.create("Title", "Body", "reddit", source_url=url)
        packet = packet.with_image("https://i.redd.it/x.jpg")
        packet = packet.with_step("fetch")
    """

    model_config = ConfigDict(frozen=True)

    content: PacketContent = Field(default_factory=PacketContent)
    metadata: PacketMetadata
    processing: PacketProcessing = Field(default_factory=PacketProcessing)
    attachments: PacketAttachments = Field(default_factory=PacketAttachments)

    @model_validator(mode="after")
    def require_title_or_body(self) -> "DataPacket":
        if not self.content.title and not self.content.body:
            raise ValueError("Packet must have either title or body content")
        return self

    # Construction

    @classmethod
    def create(
        cls,
        title: str = "",
        body: str = "",
        source_type: str = "unknown",
        *,
        summary: str | None = None,
        tags: list[str] | tuple[str, ...] = (),
        **metadata: Any,
    ) -> "DataPacket":
        """
        Build a packet from its most common fields.

        Args:
            title: Packet title
            body: Packet body
            source_type: Integration name of the producer
            summary: Optional summary
            tags: Optional tags, order preserved
            **metadata: Any other PacketMetadata field (source_url, date_created, ...)

        Raises:
            pydantic.ValidationError: If the packet violates its invariants
        """
        return cls(
            content=PacketContent(title=title, body=body, summary=summary, tags=tuple(tags)),
            metadata=PacketMetadata(source_type=source_type, **metadata),
        )

    def _evolve(self, **parts: BaseModel) -> "DataPacket":
        """Validated copy with whole sub-models replaced."""
        fields = {
            "content": self.content,
            "metadata": self.metadata,
            "processing": self.processing,
            "attachments": self.attachments,
        }
        fields.update(parts)
        return DataPacket(**fields)

    def with_step(self, step_name: str) -> "DataPacket":
        """Return a copy with step_name appended to the completed steps."""
        if step_name in self.processing.steps_completed:
            return self
        processing = self.processing.model_copy(
            update={"steps_completed": self.processing.steps_completed + (step_name,)}
        )
        return self._evolve(processing=processing)

    def derive(
        self,
        step_name: str,
        source_type: str,
        *,
        content: dict[str, Any] | None = None,
        processing: dict[str, Any] | None = None,
    ) -> "DataPacket":
        """
        Clone-then-modify derivation used by transform steps.

        Args:
            step_name: Step recorded as completed
            source_type: New metadata.source_type
            content: PacketContent fields to replace
            processing: PacketProcessing fields to replace
        """
        new_content = {**self.content.model_dump(), **(content or {})}
        new_processing = {**self.processing.model_dump(), **(processing or {})}
        steps = tuple(new_processing["steps_completed"])
        if step_name not in steps:
            steps += (step_name,)
        new_processing["steps_completed"] = steps
        return self._evolve(
            content=PacketContent.model_validate(new_content),
            metadata=PacketMetadata.model_validate(
                {**self.metadata.model_dump(), "source_type": source_type}
            ),
            processing=PacketProcessing.model_validate(new_processing),
        )

    @classmethod
    def from_ai_output(cls, ai_data: dict[str, Any], original: "DataPacket") -> "DataPacket":
        """
        Derive a packet from a model response.

        A multi-line response whose first line is short is split into
        title and body; otherwise the whole response replaces the body.
        """
        content: dict[str, Any] = {}
        text = ai_data.get("content")
        if text is not None:
            lines = text.strip().split("\n")
            if len(lines) > 1 and len(lines[0]) < _MAX_AI_TITLE_LENGTH:
                content["title"] = lines[0].strip()
                content["body"] = "\n".join(lines[1:]).strip()
            else:
                content["body"] = text

        processing: dict[str, Any] = {}
        ai_metadata = ai_data.get("metadata")
        if ai_metadata is not None:
            usage = ai_metadata.get("usage") or {}
            processing = {
                "ai_model_used": ai_metadata.get("model"),
                "prompt_applied": ai_metadata.get("prompt_used"),
                "tokens_used": usage.get("total_tokens"),
            }

        return original.derive(AI_STEP, AI_SOURCE_TYPE, content=content, processing=processing)

    # Attachments

    def with_image(self, url: str, alt: str = "", **extra: Any) -> "DataPacket":
        """Attach an image; alt text defaults to the title."""
        image = {"url": url, "alt": alt or self.content.title, **extra}
        return self._evolve(
            attachments=PacketAttachments(
                images=self.attachments.images + (image,),
                files=self.attachments.files,
                links=self.attachments.links,
            )
        )

    def with_file(self, url: str, name: str = "", **extra: Any) -> "DataPacket":
        """Attach a file; name defaults to the URL basename."""
        file_info = {"url": url, "name": name or posixpath.basename(urlparse(url).path), **extra}
        return self._evolve(
            attachments=PacketAttachments(
                images=self.attachments.images,
                files=self.attachments.files + (file_info,),
                links=self.attachments.links,
            )
        )

    def with_link(self, url: str, title: str = "", **extra: Any) -> "DataPacket":
        """Attach a link; title defaults to the URL itself."""
        link = {"url": url, "title": title or url, **extra}
        return self._evolve(
            attachments=PacketAttachments(
                images=self.attachments.images,
                files=self.attachments.files,
                links=self.attachments.links + (link,),
            )
        )

    # Views

    def content_for_ai(self) -> str:
        """Render the packet as a prompt-ready text block."""
        parts = []
        if self.content.title:
            parts.append(f"Title: {self.content.title}")
        if self.content.summary:
            parts.append(f"Summary: {self.content.summary}")
        if self.content.body:
            parts.append(f"Content: {self.content.body}")
        if self.content.tags:
            parts.append(f"Tags: {', '.join(self.content.tags)}")
        if self.metadata.source_url:
            parts.append(f"Source: {self.metadata.source_url}")
        return "\n\n".join(parts)

    def content_for_output(self) -> dict[str, Any]:
        """Flat view consumed by publish handlers."""
        return {
            "title": self.content.title,
            "body": self.content.body,
            "summary": self.content.summary,
            "tags": list(self.content.tags),
            "source_url": self.metadata.source_url,
            "images": [dict(image) for image in self.attachments.images],
            "language": self.metadata.language,
            "format": self.metadata.format.value,
        }

    @property
    def has_content(self) -> bool:
        return bool(self.content.title or self.content.body)

    @property
    def content_length(self) -> int:
        return len(self.content.title) + len(self.content.body)

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        try:
            return self.model_dump_json()
        except PydanticSerializationError as e:
            raise SerializationError(f"Packet cannot be encoded: {e}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DataPacket":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"Invalid packet data: {e}") from e

    @classmethod
    def from_json(cls, raw: str | bytes) -> "DataPacket":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise SerializationError(f"Invalid packet JSON: {e}") from e
