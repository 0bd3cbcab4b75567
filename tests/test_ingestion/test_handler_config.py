"""Tests for tagged handler configs."""

from datetime import datetime, timedelta, timezone

import pytest

from ingestflow.errors import ConfigError
from ingestflow.ingestion.handler_config import (
    RedditFetchConfig,
    RssFetchConfig,
    cutoff_for,
    handler_config_schema,
    parse_handler_config,
    parse_keywords,
)


class TestParseHandlerConfig:
    """Tests for parse_handler_config()."""

    def test_reddit_defaults(self):
        """Should fill defaults for a minimal reddit config."""
        config = parse_handler_config({"subreddit": "testsub"}, handler="reddit")

        assert isinstance(config, RedditFetchConfig)
        assert config.sort_by == "hot"
        assert config.timeframe_limit == "all_time"
        assert config.min_upvotes == 0
        assert config.keywords == []

    def test_discriminates_on_handler_field(self):
        """Should pick the model from the payload's handler tag."""
        config = parse_handler_config({"handler": "rss", "feed_url": "https://example.com/feed.xml"})
        assert isinstance(config, RssFetchConfig)

    def test_invalid_sort_rejected(self):
        """Should reject sort values outside the allowed set instead of defaulting."""
        with pytest.raises(ConfigError):
            parse_handler_config({"subreddit": "testsub", "sort_by": "controversial"}, handler="reddit")

    def test_invalid_timeframe_rejected(self):
        """Should reject unknown timeframes."""
        with pytest.raises(ConfigError):
            parse_handler_config({"subreddit": "testsub", "timeframe_limit": "1_year"}, handler="reddit")

    def test_negative_threshold_rejected(self):
        """Should reject negative minimums."""
        with pytest.raises(ConfigError):
            parse_handler_config({"subreddit": "testsub", "min_upvotes": -1}, handler="reddit")

    def test_unknown_field_rejected(self):
        """Should reject fields the handler does not know."""
        with pytest.raises(ConfigError):
            parse_handler_config({"subreddit": "testsub", "subredit": "typo"}, handler="reddit")

    def test_bad_subreddit_name_rejected(self):
        """Should reject subreddit names with path characters."""
        with pytest.raises(ConfigError):
            parse_handler_config({"subreddit": "r/testsub"}, handler="reddit")

    def test_mismatched_handler_rejected(self):
        """Should reject a config tagged for another handler."""
        with pytest.raises(ConfigError):
            parse_handler_config({"handler": "rss", "feed_url": "https://x.com/f"}, handler="reddit")

    def test_non_mapping_rejected(self):
        """Should reject payloads that are not mappings."""
        with pytest.raises(ConfigError):
            parse_handler_config(["subreddit"], handler="reddit")

    def test_parsed_config_passes_through(self):
        """Should return an already-parsed config unchanged."""
        config = RedditFetchConfig(subreddit="testsub")
        assert parse_handler_config(config, handler="reddit") is config

    def test_relative_feed_url_rejected(self):
        """Should require an absolute http(s) feed URL."""
        with pytest.raises(ConfigError):
            parse_handler_config({"feed_url": "/feed.xml"}, handler="rss")


class TestKeywordsAndCutoff:
    """Tests for keyword parsing and timeframe cutoffs."""

    def test_parse_keywords(self):
        """Should split on commas and drop blanks."""
        assert parse_keywords(" launch, ,Rocket ,") == ["launch", "Rocket"]

    def test_config_keywords(self):
        """Should expose parsed search keywords."""
        config = RedditFetchConfig(subreddit="s", search="launch,party")
        assert config.keywords == ["launch", "party"]

    def test_all_time_has_no_cutoff(self):
        """Should not limit all_time."""
        assert cutoff_for("all_time", datetime.now(timezone.utc)) is None

    def test_window_cutoff(self):
        """Should subtract the window from now."""
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert cutoff_for("72_hours", now) == now - timedelta(hours=72)
        assert cutoff_for("30_days", now) == now - timedelta(days=30)


class TestHandlerConfigSchema:
    """Tests for handler_config_schema()."""

    def test_reddit_schema_lists_sorts(self):
        """Should expose the allowed sort values."""
        schema = handler_config_schema("reddit")
        assert set(schema["properties"]["sort_by"]["enum"]) == {"hot", "new", "top", "rising"}

    def test_unknown_handler(self):
        """Should raise ConfigError for unknown handlers."""
        with pytest.raises(ConfigError):
            handler_config_schema("twitter")
