"""Tests for HTTP client infrastructure layer."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from ingestflow.ingestion.http_client import HTTPClient, HTTPClientError, RateLimitError, RetryConfig


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_backoff_grows_and_caps(self):
        """Should double per attempt up to the cap."""
        config = RetryConfig(max_backoff_seconds=5.0, base_delay=1.0, jitter_factor=0.0)

        assert config.calculate_backoff(0) == 1.0
        assert config.calculate_backoff(1) == 2.0
        assert config.calculate_backoff(10) == 5.0

    def test_retryable_statuses(self):
        """Should retry 429 and 5xx only."""
        config = RetryConfig()

        assert config.is_retryable_status(429)
        assert config.is_retryable_status(503)
        assert not config.is_retryable_status(404)
        assert not config.is_retryable_status(200)


class TestHTTPClient:
    """Tests for HTTPClient."""

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        """Should refuse requests outside async with."""
        client = HTTPClient()
        with pytest.raises(RuntimeError):
            await client.get("https://example.com")

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_success(self):
        """Should return the response on 200."""
        respx.get("https://example.com/data").mock(return_value=httpx.Response(200, json={"ok": True}))

        async with HTTPClient() as client:
            response = await client.get("https://example.com/data")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_on_server_error(self):
        """Should retry a 503 and return the later success."""
        route = respx.get("https://example.com/flaky").mock(
            side_effect=[httpx.Response(503), httpx.Response(200, text="ok")]
        )

        with patch("asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(retry_config=RetryConfig(max_retries=2)) as client:
                response = await client.get("https://example.com/flaky")

        assert response.text == "ok"
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_exhausted(self):
        """Should raise RateLimitError when 429 outlasts the retries."""
        respx.get("https://example.com/limited").mock(return_value=httpx.Response(429))

        with patch("asyncio.sleep", new_callable=AsyncMock):
            async with HTTPClient(retry_config=RetryConfig(max_retries=1)) as client:
                with pytest.raises(RateLimitError):
                    await client.get("https://example.com/limited")

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_not_retried(self):
        """Should fail a 404 immediately."""
        route = respx.get("https://example.com/missing").mock(return_value=httpx.Response(404))

        async with HTTPClient(retry_config=RetryConfig(max_retries=3)) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get("https://example.com/missing")

        assert exc_info.value.status_code == 404
        assert route.call_count == 1


class TestHTTPClientRequest:
    """Tests for the non-raising request() API."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_success_result(self):
        """Should report the body and status."""
        respx.post("https://example.com/token").mock(
            return_value=httpx.Response(200, json={"access_token": "abc"})
        )

        async with HTTPClient() as client:
            result = await client.request("POST", "https://example.com/token", data={"a": "b"})

        assert result.success
        assert result.status_code == 200
        assert result.json() == {"access_token": "abc"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_result_keeps_body(self):
        """Should report status and body of a failed response."""
        respx.post("https://example.com/token").mock(
            return_value=httpx.Response(400, json={"error": "invalid_grant"})
        )

        async with HTTPClient(retry_config=RetryConfig(max_retries=0)) as client:
            result = await client.request("POST", "https://example.com/token")

        assert not result.success
        assert result.status_code == 400
        assert result.json() == {"error": "invalid_grant"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_result_has_no_status(self):
        """Should report a transport failure without a status code."""
        respx.get("https://example.com/down").mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPClient(retry_config=RetryConfig(max_retries=0)) as client:
            result = await client.request("GET", "https://example.com/down")

        assert not result.success
        assert result.status_code is None
        assert result.error

    def test_result_json_without_body(self):
        """Should raise ValueError when there is nothing to decode."""
        from ingestflow.ingestion.http_client import HTTPResult

        with pytest.raises(ValueError):
            HTTPResult(success=False).json()
