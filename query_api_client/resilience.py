"""Resilience utilities: retry decision, exponential backoff, retrying HTTP transport."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0
TIMEOUT_SECONDS = 120.0

# Failures where no response was received because the connection was never made
CONNECT_ERRORS: tuple[type[Exception], ...] = (httpx.ConnectError, httpx.ConnectTimeout)


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    ``should_retry`` and ``delay_for`` are evaluated by RetryingTransport after
    every attempt. ``retries`` is the number of retries already performed, so
    it is 0 after the first attempt.
    """
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    exponential_base: float = 2.0

    def should_retry(
        self,
        retries: int,
        request: httpx.Request,
        response: httpx.Response | None = None,
        exception: Exception | None = None,
    ) -> bool:
        if retries >= self.max_retries:
            return False

        # Connection errors are always retryable
        if isinstance(exception, CONNECT_ERRORS):
            return True

        if response is not None and response.status_code >= 500:
            return True

        return False

    def delay_for(self, retries: int) -> float:
        """Seconds to wait before the next attempt: 1s, 2s, 4s, ..."""
        return self.base_delay_seconds * (self.exponential_base ** retries)


class RetryingTransport:
    """
    Sends single HTTP requests to the Query Service, retrying per RetryConfig.

    A response with any status code is returned to the caller once no more
    retries are due; transport exceptions are re-raised. Every attempt gets the
    full connect/overall timeout. No connection is reused across calls.
    """

    def __init__(
        self,
        base_url: str,
        retry_config: RetryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url
        self.retry_config = retry_config or RetryConfig()
        self._transport = transport
        self._sleep = sleep

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS)

    def execute(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        content: bytes | None = None,
    ) -> httpx.Response:
        """
        Send a request and return the final response.

        Args:
            method: HTTP method
            path: Path relative to base_url
            headers: Request headers
            content: Encoded request body, if any

        Returns:
            Last response received

        Raises:
            httpx.TransportError: If the last attempt failed without a response
        """
        with httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            request = client.build_request(method, path, headers=headers, content=content)
            retries = 0

            while True:
                response: httpx.Response | None = None
                error: Exception | None = None
                try:
                    response = client.send(request)
                except httpx.TransportError as e:
                    error = e

                if not self.retry_config.should_retry(retries, request, response, error):
                    if response is None:
                        raise error
                    return response

                delay = self.retry_config.delay_for(retries)
                reason = error if error is not None else f"HTTP {response.status_code}"
                logger.warning(
                    f"Retry {retries + 1}/{self.retry_config.max_retries} "
                    f"for {method} {path} after {delay:.1f}s: {reason}"
                )
                if response is not None:
                    response.close()
                self._sleep(delay)
                retries += 1
