"""
Subreddit reader.

Pages through a subreddit listing with the integration's OAuth token and
returns the first post that passes every filter. Filters run in a fixed
order: timeframe, minimum score, ledger, minimum comments, keywords.

Returns at most one packet per call; repeated calls drain the listing.
"""

import html
import logging
import math
import re
from typing import Any

from ingestflow.auth.oauth import CredentialManager
from ingestflow.clock import Clock, from_epoch, utc_now
from ingestflow.errors import UpstreamError
from ingestflow.ingestion.base_handler import (
    FetchContext,
    FetchHandler,
    FetchResult,
    guess_mime_type,
    matches_keywords,
)
from ingestflow.ingestion.config import FetchConfig
from ingestflow.ingestion.handler_config import RedditFetchConfig, cutoff_for
from ingestflow.ingestion.http_client import HTTPClient
from ingestflow.ledger.schemas import Ledger
from ingestflow.observability.logging import mask_token
from ingestflow.observability.metrics import get_metrics
from ingestflow.packets.schemas import DataPacket, PacketFormat

logger = logging.getLogger(__name__)

REDDIT_API_BASE = "https://oauth.reddit.com"
REDDIT_WEB_BASE = "https://www.reddit.com"

_IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE)
_IMGUR_PAGE = re.compile(r"^https?://(www\.)?imgur\.com/([^./]+)$", re.IGNORECASE)


def _numeric(value: Any) -> float | None:
    """Numeric listing field; None when absent, ValueError when not a number."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"not a number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return number


def detect_image(post: dict[str, Any]) -> dict[str, str] | None:
    """
    Direct image reference of a post, if it has one.

    Galleries use their first media item. Otherwise image posts, URLs with an
    image extension and bare imgur pages (turned into a direct .jpg link)
    qualify.
    """
    media = post.get("media_metadata")
    if post.get("is_gallery") and isinstance(media, dict) and media:
        first = next(iter(media.values()))
        source = (first or {}).get("s") or {}
        if source.get("u"):
            return {"url": html.unescape(source["u"]), "mime_type": "image/jpeg"}
        return None

    url = post.get("url") or ""
    if not url:
        return None

    if _IMGUR_PAGE.match(url):
        return {"url": f"{url}.jpg", "mime_type": "image/jpeg"}

    if post.get("post_hint") == "image" or _IMAGE_EXTENSION.search(url):
        return {"url": url, "mime_type": guess_mime_type(url)}

    return None


class RedditFetchHandler(FetchHandler):
    """
    Reddit subreddit fetch handler.

    Rate Limits:
        - Authenticated OAuth requests, 100 posts per listing page

    Content Handling:
        - Body: source line, title, selftext, external URL, top comments
        - Markdown format, subreddit as the only tag
        - Image posts and galleries become an image attachment
    """

    name = "reddit"
    requires_auth = True

    def __init__(
        self,
        credentials: CredentialManager,
        http: HTTPClient,
        ledger: Ledger,
        fetch_config: FetchConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(ledger, clock)
        self._credentials = credentials
        self._http = http
        self._config = fetch_config or FetchConfig()

    async def _fetch(
        self,
        scope_id: str,
        config: RedditFetchConfig,
        context: FetchContext,
    ) -> FetchResult:
        token = await self._credentials.get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
        cutoff = cutoff_for(config.timeframe_limit, self._clock())
        cutoff_ts = int(cutoff.timestamp()) if cutoff else None
        keywords = config.keywords

        url = f"{REDDIT_API_BASE}/r/{config.subreddit}/{config.sort_by}.json"
        after: str | None = None
        checked = 0

        for page in range(1, self._config.max_pages + 1):
            params: dict[str, Any] = {"limit": self._config.batch_size}
            if after:
                params["after"] = after

            logger.info(
                f"Fetching r/{config.subreddit}/{config.sort_by} page {page} "
                f"(token {mask_token(token)})"
            )
            try:
                listing = await self._get_listing(url, params, headers)
            except UpstreamError:
                if page == 1:
                    raise
                logger.warning(f"r/{config.subreddit} page {page} failed, keeping results so far")
                break

            data = listing.get("data")
            children = data.get("children") if isinstance(data, dict) else None
            if not isinstance(children, list) or not children:
                logger.info(f"No more posts in r/{config.subreddit}")
                break

            batch_hit_time_limit = False
            for wrapper in children:
                checked += 1
                post = wrapper.get("data") if isinstance(wrapper, dict) else None
                if not post or not post.get("id") or not wrapper.get("kind"):
                    logger.warning(f"Skipping malformed post in r/{config.subreddit}")
                    continue

                item_id = str(post["id"])
                try:
                    created = _numeric(post.get("created_utc"))
                    score = _numeric(post.get("score"))
                    comments = _numeric(post.get("num_comments"))
                except ValueError:
                    self._skip(item_id, "malformed")
                    continue

                if cutoff_ts is not None:
                    if not created:
                        self._skip(item_id, "missing_date")
                        continue
                    if created < cutoff_ts:
                        self._skip(item_id, "timeframe")
                        batch_hit_time_limit = True
                        continue

                if config.min_upvotes > 0:
                    if score is None or score < config.min_upvotes:
                        self._skip(item_id, "min_upvotes")
                        continue

                if await self._ledger.is_processed(scope_id, self.name, item_id):
                    self._skip(item_id, "processed")
                    continue

                if config.min_comment_count > 0:
                    if comments is None or comments < config.min_comment_count:
                        self._skip(item_id, "min_comment_count")
                        continue

                text = f"{post.get('title') or ''} {post.get('selftext') or ''}"
                if not matches_keywords(text, keywords):
                    self._skip(item_id, "keywords")
                    continue

                if not await self._claim(scope_id, item_id, context):
                    continue

                logger.info(
                    f"Eligible post {item_id} in r/{config.subreddit} "
                    f"after {checked} checked on page {page}"
                )
                packet = await self._build_packet(post, created, config, headers)
                return FetchResult(packets=[packet], item_ids=[item_id])

            if batch_hit_time_limit:
                logger.debug(f"r/{config.subreddit} reached the timeframe limit, stopping")
                break

            after = data.get("after")
            if not after:
                break

        logger.info(f"No eligible post in r/{config.subreddit} ({checked} checked)")
        return FetchResult()

    async def _get_listing(
        self,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        get_metrics().record_page(self.name)
        result = await self._http.request("GET", url, params=params, headers=headers)
        if not result.success:
            raise UpstreamError(f"Reddit listing request failed: {result.error}", result.status_code)
        try:
            listing = result.json()
        except ValueError as e:
            raise UpstreamError(f"Reddit listing was not valid JSON: {e}", result.status_code) from e
        if not isinstance(listing, dict):
            raise UpstreamError("Reddit listing had an unexpected shape", result.status_code)
        return listing

    async def _build_packet(
        self,
        post: dict[str, Any],
        created: float | None,
        config: RedditFetchConfig,
        headers: dict[str, str],
    ) -> DataPacket:
        title = (post.get("title") or "").strip()
        selftext = (post.get("selftext") or "").strip()
        is_link_post = not post.get("is_self", False) and bool(post.get("url"))

        body = f"Source: Reddit (r/{config.subreddit})\n\nTitle: {title}\n\n"
        if selftext:
            body += f"Content:\n{selftext}\n"
        if is_link_post:
            body += f"\nSource URL: {post['url']}"

        permalink = post.get("permalink") or ""
        if config.comment_count > 0 and permalink:
            limit = min(config.comment_count, self._config.max_comment_count)
            lines = await self._fetch_top_comments(permalink, limit, headers)
            if lines:
                body += "\n\nTop Comments:\n" + "".join(f"{line}\n" for line in lines)

        packet = DataPacket.create(
            title=title,
            body=body,
            source_type=self.name,
            source_url=f"{REDDIT_WEB_BASE}{permalink}",
            date_created=from_epoch(created) if created else self._clock(),
            format=PacketFormat.MARKDOWN,
            tags=[config.subreddit],
        )

        image = detect_image(post)
        if image:
            packet = packet.with_image(image["url"], mime_type=image["mime_type"])
        if is_link_post:
            packet = packet.with_link(post["url"])
        return packet

    async def _fetch_top_comments(
        self,
        permalink: str,
        limit: int,
        headers: dict[str, str],
    ) -> list[str]:
        """'- author: body' lines for the top comments; failures only log."""
        url = f"{REDDIT_API_BASE}{permalink}.json"
        result = await self._http.request(
            "GET", url, params={"limit": limit, "sort": "top"}, headers=headers
        )
        if not result.success:
            logger.warning(f"Failed to fetch comments for {permalink}: {result.error}")
            return []
        try:
            thread = result.json()
            children = thread[1]["data"]["children"]
        except (ValueError, LookupError, TypeError) as e:
            logger.warning(f"Unexpected comments response for {permalink}: {e}")
            return []
        if not isinstance(children, list):
            logger.warning(f"Unexpected comments listing for {permalink}: {type(children).__name__}")
            return []

        lines: list[str] = []
        for wrapper in children[:limit]:
            comment = wrapper.get("data") if isinstance(wrapper, dict) else None
            if not isinstance(comment, dict) or comment.get("stickied"):
                continue
            body = comment.get("body")
            if not isinstance(body, str):
                continue
            text = body.strip()
            if text:
                lines.append(f"- {comment.get('author') or '[deleted]'}: {text}")
        return lines
