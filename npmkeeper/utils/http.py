"""
Registry HTTP transport for npmkeeper.

:class:`HTTPClient` wraps :class:`httpx.AsyncClient` with a bounded number
of in-flight requests and a :class:`RetryPolicy` that decides how often a
packument fetch is retried:

* timeouts, transport errors and 5xx answers use exponential backoff,
  up to ``max_retries`` extra attempts;
* 429 answers wait for the server's ``Retry-After`` (capped at
  ``max_retry_after`` seconds) and have their own ``rate_limit_retries``
  budget, so a throttling registry does not eat the failure budget;
* 404 becomes :class:`~npmkeeper.exceptions.RegistryError` and any other
  4xx a :class:`~npmkeeper.exceptions.NetworkError`, both without retry.

The policy is normally built from the loaded configuration::

    async with HTTPClient.from_config(config) as client:
        packument = await client.get_json("https://registry.npmjs.org/react")
"""

from __future__ import annotations

import httpx
import random
import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, cast

from npmkeeper.utils.logger import get_logger
from npmkeeper.__version__ import __version__
from npmkeeper.exceptions import NetworkError, RegistryError
from npmkeeper.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_RATE_LIMIT_RETRIES,
    DEFAULT_TIMEOUT,
    USER_AGENT_TEMPLATE,
)

if TYPE_CHECKING:
    from npmkeeper.config import NpmKeeperConfig

logger = get_logger("http")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and how long, a registry request is retried.

    Attributes:
        max_retries: Extra attempts after a timeout, transport error or 5xx.
        rate_limit_retries: 429 answers tolerated before giving up.
        max_retry_after: Longest ``Retry-After`` wait honoured, in seconds.
        backoff_base: Base of the exponential backoff, in seconds.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES
    max_retry_after: int = DEFAULT_MAX_RETRY_AFTER
    backoff_base: float = 1.0

    @classmethod
    def from_config(cls, config: "NpmKeeperConfig") -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            rate_limit_retries=config.rate_limit_retries,
            max_retry_after=config.max_retry_after,
        )

    @property
    def attempts(self) -> int:
        """Total attempts allowed for retryable failures."""
        return self.max_retries + 1

    def backoff_delay(self, failures: int) -> float:
        """Seconds to wait after the *failures*-th consecutive failure."""
        return self.backoff_base * (2 ** (failures - 1)) + random.uniform(0.0, 0.3)

    def rate_limit_delay(self, response: httpx.Response) -> int:
        """Seconds to wait after a 429, clamped to ``max_retry_after``."""
        return min(_retry_after_seconds(response), self.max_retry_after)


class HTTPClient:
    """Asynchronous registry client with retries and concurrency control.

    Args:
        timeout: Request timeout in seconds.
        retry: Retry policy; defaults to :class:`RetryPolicy` defaults.
        verify_ssl: Whether to verify SSL certificates.
        user_agent: Custom User-Agent header value.
        max_concurrency: Maximum number of concurrent requests.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry: Optional[RetryPolicy] = None,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.max_concurrency = max_concurrency

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_config(cls, config: "NpmKeeperConfig", **kwargs: Any) -> "HTTPClient":
        """Build a client whose timeout, concurrency and retries follow *config*."""
        return cls(
            timeout=config.timeout,
            retry=RetryPolicy.from_config(config),
            max_concurrency=config.max_concurrency,
            **kwargs,
        )

    async def __aenter__(self) -> "HTTPClient":
        self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    def _open(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=self._transport is None,
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET *url*, retrying according to :attr:`retry`.

        Raises:
            RegistryError: The registry answered 404.
            NetworkError: Any other 4xx, an exhausted retry budget, or
                too many 429 answers.
        """
        client = self._open()
        url = url.strip().strip("\"'")
        failures = 0
        throttled = 0
        last_exc: Optional[Exception] = None

        while True:
            try:
                async with self._semaphore:
                    response = await client.get(url, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_exc = exc
                reason = "timeout" if isinstance(exc, httpx.TimeoutException) else str(exc)
            else:
                if response.status_code == 429:
                    throttled += 1
                    if throttled > self.retry.rate_limit_retries:
                        raise NetworkError(
                            f"Rate limit exceeded after {self.retry.rate_limit_retries} retries",
                            url=url,
                            status_code=429,
                        )
                    delay = self.retry.rate_limit_delay(response)
                    logger.warning(
                        "Rate limited by %s, waiting %ds (%d/%d)",
                        url,
                        delay,
                        throttled,
                        self.retry.rate_limit_retries,
                    )
                    await asyncio.sleep(delay)
                    continue

                if response.status_code < 400:
                    return response
                if response.status_code < 500:
                    raise _client_error(response, url)
                reason = f"HTTP {response.status_code}"

            failures += 1
            logger.warning(
                "Request to %s failed (%s), attempt %d/%d",
                url,
                reason,
                failures,
                self.retry.attempts,
            )
            if failures >= self.retry.attempts:
                break
            delay = self.retry.backoff_delay(failures)
            logger.debug("Retrying in %.2fs", delay)
            await asyncio.sleep(delay)

        raise NetworkError(
            f"Request failed after {self.retry.attempts} attempts: {url}",
            url=url,
        ) from last_exc

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Fetch *url* and decode its body as a JSON object."""
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, dict):
            raise NetworkError(
                f"Expected JSON object from {url}",
                url=url,
                response_body=response.text,
            )

        return cast(Dict[str, Any], data)


def _client_error(response: httpx.Response, url: str) -> NetworkError:
    """Map a non-retryable 4xx answer to the matching npmkeeper error."""
    if response.status_code == 404:
        return RegistryError(f"Resource not found: {url}", url=url, status_code=404)
    return NetworkError(
        f"HTTP {response.status_code} error for {url}",
        url=url,
        status_code=response.status_code,
        response_body=response.text,
    )


def _retry_after_seconds(response: httpx.Response) -> int:
    """Return the ``Retry-After`` delay in seconds (defaults to 1)."""
    try:
        return max(0, int(response.headers.get("Retry-After", "1")))
    except ValueError:
        return 1
