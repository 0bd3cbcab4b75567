"""
RSS/Atom feed reader.

Unlike the subreddit reader this handler is non-limiting: one call returns
up to item_count eligible entries, each marked processed in the ledger.
"""

import calendar
import logging
from datetime import datetime
from typing import Any

import feedparser
from bs4 import BeautifulSoup

from ingestflow.clock import Clock, from_epoch, utc_now
from ingestflow.errors import UpstreamError
from ingestflow.ingestion.base_handler import (
    FetchContext,
    FetchHandler,
    FetchResult,
    guess_mime_type,
    matches_keywords,
)
from ingestflow.ingestion.handler_config import RssFetchConfig, cutoff_for
from ingestflow.ingestion.http_client import HTTPClient
from ingestflow.ledger.schemas import Ledger
from ingestflow.observability.metrics import get_metrics
from ingestflow.packets.schemas import DataPacket, PacketFormat

logger = logging.getLogger(__name__)


def clean_html(html_content: str) -> str:
    """Plain text of an HTML fragment, whitespace collapsed."""
    if not html_content:
        return ""
    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def entry_timestamp(entry: dict[str, Any]) -> datetime | None:
    """Publication time of a feed entry, falling back to its update time."""
    for field in ("published_parsed", "updated_parsed"):
        parsed = entry.get(field)
        if parsed:
            return from_epoch(calendar.timegm(parsed))
    return None


class RssFetchHandler(FetchHandler):
    """
    Feed fetch handler.

    Filters, in order: missing GUID, ledger, timeframe, keywords.
    Entries without a publication date pass the timeframe filter.
    """

    name = "rss"

    def __init__(
        self,
        http: HTTPClient,
        ledger: Ledger,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(ledger, clock)
        self._http = http

    async def _fetch(
        self,
        scope_id: str,
        config: RssFetchConfig,
        context: FetchContext,
    ) -> FetchResult:
        feed = await self._get_feed(config.feed_url)
        cutoff = cutoff_for(config.timeframe_limit, self._clock())
        keywords = config.keywords
        result = FetchResult()

        for entry in feed.entries:
            guid = entry.get("id") or entry.get("link")
            if not guid:
                logger.warning(f"Skipping feed entry without GUID: {entry.get('title', '')!r}")
                continue

            if await self._ledger.is_processed(scope_id, self.name, guid):
                self._skip(guid, "processed")
                continue

            published = entry_timestamp(entry)
            if cutoff is not None and published is not None and published < cutoff:
                self._skip(guid, "timeframe")
                continue

            title = (entry.get("title") or "").strip()
            description = clean_html(entry.get("summary") or "")
            if not matches_keywords(f"{title} {description}", keywords):
                self._skip(guid, "keywords")
                continue

            if not await self._claim(scope_id, guid, context):
                continue

            result.add(self._build_packet(entry, title, description, published), guid)
            if len(result.packets) >= config.item_count:
                logger.debug(f"Reached item limit {config.item_count} for {config.feed_url}")
                break

        return result

    async def _get_feed(self, feed_url: str) -> Any:
        get_metrics().record_page(self.name)
        response = await self._http.request("GET", feed_url)
        if not response.success:
            raise UpstreamError(f"Failed to fetch feed {feed_url}: {response.error}", response.status_code)
        if not response.data:
            raise UpstreamError(f"Feed {feed_url} returned an empty body", response.status_code)

        feed = feedparser.parse(response.data)
        if feed.bozo and not feed.entries:
            raise UpstreamError(f"Failed to parse feed {feed_url}: {feed.get('bozo_exception')}")
        return feed

    def _build_packet(
        self,
        entry: dict[str, Any],
        title: str,
        description: str,
        published: datetime | None,
    ) -> DataPacket:
        link = entry.get("link") or None

        body = f"Source: RSS Feed\n\nTitle: {title}\n\n"
        if description:
            body += f"Content:\n{description}\n"
        if link:
            body += f"\nSource URL: {link}"

        tags = [tag.get("term") for tag in entry.get("tags", []) if tag.get("term")]
        packet = DataPacket.create(
            title=title,
            body=body,
            source_type=self.name,
            source_url=link,
            date_created=published or self._clock(),
            format=PacketFormat.TEXT,
            tags=tags,
        )

        for enclosure in entry.get("enclosures", [])[:1]:
            href = enclosure.get("href")
            if href:
                packet = packet.with_file(href, mime_type=enclosure.get("type") or guess_mime_type(href))
        return packet
