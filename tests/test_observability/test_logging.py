"""Tests for logging helpers."""

from ingestflow.observability.logging import mask_token


class TestMaskToken:
    """Tests for mask_token()."""

    def test_keeps_edges(self):
        """Should keep four characters at each end."""
        assert mask_token("abcd1234567890wxyz") == "abcd...wxyz"

    def test_short_tokens_fully_masked(self):
        """Should hide short tokens completely."""
        assert mask_token("abcdefgh") == "***"

    def test_empty(self):
        """Should render missing tokens as empty."""
        assert mask_token(None) == ""
        assert mask_token("") == ""
