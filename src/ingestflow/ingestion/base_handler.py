"""
Base fetch handler interface and shared functionality.

Each handler implements _fetch(), which pulls items from one upstream source,
filters them against the handler config and the processed-item ledger, and
returns packets for the eligible ones. The base class provides:
- Eager config validation
- Metrics and timing around every fetch
- Keyword matching and MIME guessing helpers
"""

import logging
import mimetypes
import posixpath
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from ingestflow.clock import Clock, utc_now
from ingestflow.errors import AuthError, ConfigError, UpstreamError
from ingestflow.ingestion.handler_config import parse_handler_config
from ingestflow.ledger.schemas import Ledger
from ingestflow.observability.metrics import get_metrics
from ingestflow.packets.schemas import DataPacket

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

_MIME_MAP = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
}


@dataclass(frozen=True)
class FetchContext:
    """Provenance of a fetch: the job it runs for (if any) and the unit that owns it."""

    job_id: str | None = None
    unit_id: str | None = None


@dataclass
class FetchResult:
    """Packets produced by one fetch, with the upstream ids they were built from."""

    packets: list[DataPacket] = field(default_factory=list)
    item_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.packets

    def add(self, packet: DataPacket, item_id: str) -> None:
        self.packets.append(packet)
        self.item_ids.append(item_id)


def matches_keywords(text: str, keywords: list[str]) -> bool:
    """Case-insensitive substring match of any keyword; no keywords matches all."""
    if not keywords:
        return True
    haystack = text.casefold()
    return any(keyword.casefold() in haystack for keyword in keywords)


def guess_mime_type(url: str) -> str:
    """MIME type from the extension of a URL path."""
    path = urlparse(url).path
    ext = posixpath.splitext(path)[1].lower().lstrip(".")
    if ext in _MIME_MAP:
        return _MIME_MAP[ext]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or DEFAULT_MIME_TYPE


class FetchHandler(ABC):
    """
    Abstract base class for fetch handlers.

    Subclasses must implement:
        - name: Handler name, also the packets' source_type and ledger source
        - _fetch(): Pull, filter, deduplicate and build packets

    Subclasses may override:
        - schedulable: False for sources that only accept manual input
        - requires_auth: True when fetching needs an OAuth credential
    """

    name: str
    schedulable: bool = True
    requires_auth: bool = False

    def __init__(self, ledger: Ledger, clock: Clock = utc_now) -> None:
        self._ledger = ledger
        self._clock = clock

    def parse_config(self, config: Any):
        """Validate a raw or parsed config for this handler (ConfigError on failure)."""
        return parse_handler_config(config, handler=self.name)

    async def fetch(
        self,
        scope_id: str,
        config: Any,
        context: FetchContext | None = None,
    ) -> FetchResult:
        """
        Fetch eligible items for one flow.

        This is the entry point called by the job creator.
        The config is validated before any credential lookup, so an invalid
        config raises ConfigError even when the integration is unauthorized.

        Args:
            scope_id: Ledger scope (flow id) deduplication is partitioned by
            config: Handler config, raw dict or parsed model
            context: Job/unit provenance recorded with ledger entries

        Raises:
            ConfigError: Invalid handler config
            AuthError: No usable credential
            UpstreamError: First page of the upstream listing failed
        """
        parsed = self.parse_config(config)
        context = context or FetchContext()
        metrics = get_metrics()
        start = time.monotonic()

        logger.info(f"Starting {self.name} fetch for flow {scope_id}")
        try:
            result = await self._fetch(scope_id, parsed, context)
        except (ConfigError, AuthError, UpstreamError) as e:
            metrics.record_fetch(self.name, "error", latency=time.monotonic() - start)
            logger.error(f"{self.name} fetch failed for flow {scope_id}: {e}")
            raise

        outcome = "empty" if result.is_empty else "eligible"
        metrics.record_fetch(self.name, outcome, latency=time.monotonic() - start)
        logger.info(
            f"{self.name} fetch completed for flow {scope_id}: "
            f"packets={len(result.packets)}, elapsed={time.monotonic() - start:.2f}s"
        )
        return result

    @abstractmethod
    async def _fetch(self, scope_id: str, config: Any, context: FetchContext) -> FetchResult:
        ...

    async def _claim(self, scope_id: str, item_id: str, context: FetchContext) -> bool:
        """
        Record an eligible item in the ledger before its packet is built.

        Returns False if a concurrent run recorded it first.
        """
        claimed = await self._ledger.mark_processed(scope_id, self.name, item_id, context.job_id)
        if not claimed:
            logger.info(f"{self.name} item {item_id} claimed by a concurrent run for flow {scope_id}")
        return claimed

    def _skip(self, item_id: str, reason: str) -> None:
        get_metrics().record_item_skipped(self.name, reason)
        logger.debug(f"{self.name}: skipping item {item_id} ({reason})")
