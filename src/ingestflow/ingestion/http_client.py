"""
HTTP infrastructure layer with retry logic.

Provides:
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with automatic retry
- HTTPResult: Uniform outcome of HTTPClient.request()

This layer separates HTTP concerns (retries, backoff, transport errors) from
domain logic (pagination, filtering, token exchange) in handlers and the
credential manager.
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from ingestflow.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Implements exponential backoff with jitter to prevent thundering herd
    problems when multiple clients retry simultaneously.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = self.base_delay * (2**attempt)
        delay = min(delay, self.max_backoff_seconds)

        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and gateway/server errors are retried."""
        return status_code in {429, 500, 502, 503, 504}

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Timeouts, connection and read errors are retried."""
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        )


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


@dataclass(frozen=True)
class HTTPResult:
    """
    Outcome of a request that never raises for HTTP or transport failures.

    data holds the response body (on failure too, when there was a response);
    error holds a message when success is False.
    """

    success: bool
    status_code: int | None = None
    data: str | None = None
    error: str | None = None

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ValueError: If there is no body or it is not valid JSON
        """
        if self.data is None:
            raise ValueError("Response has no body")
        return json.loads(self.data)


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Features:
    - Exponential backoff with jitter on retryable errors
    - Automatic retry on 429, 5xx status codes
    - Automatic retry on timeout/connection errors
    - Default headers (e.g. User-Agent) applied to every request
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            result = await client.request(
                "GET",
                "https://oauth.reddit.com/r/python/hot.json",
                params={"limit": 100},
                headers={"Authorization": f"Bearer {token}"},
            )
            if result.success:
                listing = result.json()
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            headers: Headers sent with every request.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.default_headers = dict(headers) if headers else {}
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "HTTPClient":
        return cls(
            retry_config=RetryConfig.from_settings(settings),
            timeout=settings.http_timeout_seconds,
            headers={"User-Agent": settings.effective_reddit_user_agent},
        )

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform POST request with retry logic.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers
            data: Form-encoded body
            json_body: JSON body to send
            auth: HTTP Basic credentials as (username, password)

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry(
            "POST",
            url,
            params=params,
            headers=headers,
            data=data,
            json_body=json_body,
            auth=auth,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> HTTPResult:
        """
        Perform a request and report the outcome instead of raising.

        Retries apply exactly as for get()/post(). Any HTTP error status or
        transport failure that survives the retries is returned as an
        unsuccessful HTTPResult.
        """
        try:
            response = await self._request_with_retry(
                method.upper(),
                url,
                params=params,
                headers=headers,
                data=data,
                json_body=json_body,
                auth=auth,
            )
        except HTTPClientError as e:
            return HTTPResult(
                success=False,
                status_code=e.status_code,
                data=e.response_body,
                error=str(e),
            )
        except httpx.HTTPError as e:
            return HTTPResult(success=False, error=f"{type(e).__name__}: {e}")

        return HTTPResult(success=True, status_code=response.status_code, data=response.text)

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> httpx.Response:
        """
        Execute HTTP request with retry logic.

        Implements exponential backoff with jitter on retryable errors.
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        request_headers = {**self.default_headers, **(headers or {})}

        last_status_code: int | None = None
        last_response_body: str | None = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params or None,
                    headers=request_headers or None,
                    data=data,
                    json=json_body,
                    auth=auth,
                )

                # Check for retryable status codes
                if self.retry_config.is_retryable_status(response.status_code):
                    last_status_code = response.status_code
                    last_response_body = response.text

                    if attempt < self.retry_config.max_retries:
                        backoff = self.retry_config.calculate_backoff(attempt)
                        logger.warning(
                            f"Retryable status {response.status_code} from {url}, "
                            f"attempt {attempt + 1}/{self.retry_config.max_retries + 1}, "
                            f"backing off {backoff:.2f}s"
                        )
                        await asyncio.sleep(backoff)
                        continue

                    # Retries exhausted
                    if response.status_code == 429:
                        raise RateLimitError(
                            f"Rate limit exceeded for {url} after {attempt + 1} attempts",
                            status_code=response.status_code,
                            response_body=last_response_body,
                        )
                    raise HTTPClientError(
                        f"Request failed with status {response.status_code} after {attempt + 1} attempts",
                        status_code=response.status_code,
                        response_body=last_response_body,
                    )

                # Non-retryable error status
                if response.status_code >= 400:
                    raise HTTPClientError(
                        f"Request failed with status {response.status_code}",
                        status_code=response.status_code,
                        response_body=response.text,
                    )

                return response

            except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as e:
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {url}, "
                        f"attempt {attempt + 1}/{self.retry_config.max_retries + 1}, "
                        f"backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise HTTPClientError(
                    f"Request failed after {attempt + 1} attempts: {e}",
                    status_code=last_status_code,
                ) from e

        raise HTTPClientError(
            f"Request failed after {self.retry_config.max_retries + 1} attempts",
            status_code=last_status_code,
            response_body=last_response_body,
        )
