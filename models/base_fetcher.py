"""
Base Fetcher Abstract Class.

This module defines the abstract base class for all fetchers that talk to the
upstream medicine price aggregation service. Subclasses describe how to build
their URL; the base class owns the HTTP session factory and the
retry-with-backoff loop used to open a response.

Classes:
    BaseFetcher: Abstract base class with common fetcher configuration and retry.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional
from curl_cffi.requests import AsyncSession
from pydantic import BaseModel

import config
from .errors import GatewayUnavailable, UpstreamStatusError
from .models import StreamSession

logger = logging.getLogger(__name__)


class BaseFetcher(BaseModel, ABC):
    """
    Abstract base class for upstream fetchers.

    Attributes:
        vendor_id: Identifier of the upstream service (e.g. "medicomp").
        base_url: Scheme and host of the upstream service.
        headers: Extra request headers sent with every attempt.
        impersonate: Browser fingerprint curl_cffi presents to upstream.
        timeout: Per-attempt timeout in seconds, enforced by cancelling the attempt.
        max_retries: Total number of attempts before giving up.
        backoff: Base delay in seconds; attempt i waits backoff * 2**i before the next one.
        session_factory: Callable returning a fresh curl_cffi AsyncSession (or a test double).
        sleep: Coroutine used for backoff delays.

    Configuration:
        arbitrary_types_allowed: Allows non-Pydantic callables as fields.

    Example:
        >>> class CustomFetcher(BaseFetcher):
        ...     vendor_id: str = "custom"
        ...     base_url: str = "https://example.org"
        ...
        ...     def build_url(self, name: str) -> str:
        ...         return f"{self.base_url}/search?q={name}"
    """

    vendor_id: str
    base_url: str = config.MEDCOMP_BASE_URL
    headers: dict = {}
    impersonate: str = "chrome124"
    timeout: float = config.UPSTREAM_TIMEOUT
    max_retries: int = config.UPSTREAM_MAX_RETRIES
    backoff: float = config.UPSTREAM_RETRY_BACKOFF
    session_factory: Callable[[], Any] = AsyncSession
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    class Config:
        """Pydantic model configuration."""
        arbitrary_types_allowed = True

    @abstractmethod
    def build_url(self, *args, **kwargs) -> str:
        """Return the upstream URL for the given request parameters."""

    def new_session(self):
        return self.session_factory()

    async def _attempt(self, session, url: str, stream: bool):
        # A streamed body may legitimately outlive `timeout`; the relay watches it instead.
        response = await asyncio.wait_for(
            session.get(
                url,
                headers=self.headers,
                impersonate=self.impersonate,
                stream=stream,
                timeout=None if stream else self.timeout,
            ),
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            if stream:
                await response.aclose()
            raise UpstreamStatusError(response.status_code)
        return response

    async def fetch_with_retry(self, session, url: str, stream: bool = True,
                               stream_session: Optional[StreamSession] = None):
        """
        Open `url`, retrying failed attempts with exponential backoff.

        A non-2xx status, a network error or an attempt exceeding `timeout`
        counts as a failure. The returned response's body has not been read.

        Raises:
            GatewayUnavailable: All `max_retries` attempts failed; the message
                is the last attempt's error.
        """
        last_error = None

        for attempt in range(self.max_retries):
            if stream_session is not None:
                stream_session.attempts = attempt + 1
            try:
                return await self._attempt(session, url, stream)
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"Upstream did not respond within {self.timeout:g}s")
            except Exception as e:
                last_error = e

            logger.warning(
                "%s: attempt %d/%d failed: %s",
                self.vendor_id, attempt + 1, self.max_retries, last_error,
            )

            if attempt < self.max_retries - 1:
                delay = self.backoff * 2 ** attempt
                logger.info("%s: retrying after %.1fs...", self.vendor_id, delay)
                await self.sleep(delay)

        message = str(last_error) if last_error else "All retry attempts failed"
        raise GatewayUnavailable(message, attempts=self.max_retries)
