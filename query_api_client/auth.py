"""Storage API token verification gating privileged Query Service calls."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .errors import AuthError, InvalidConfigurationError, TokenVerificationError
from .resilience import CONNECT_TIMEOUT_SECONDS, TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-StorageApi-Token"
VERIFY_TOKEN_PATH = "/v2/storage/tokens/verify"


class TokenVerifier(Protocol):
    """Anything that can check a token, raising AuthError when it is rejected."""

    def verify_token(self) -> None:
        ...


def derive_storage_api_url(query_api_url: str) -> str:
    """
    Convert a Query Service URL into the matching Storage API URL.

    e.g. https://query.keboola.com -> https://connection.keboola.com
         https://query.eu-central-1.keboola.com:8443 -> https://connection.eu-central-1.keboola.com:8443

    Hosts without a leading ``query.`` label are kept as they are.

    Raises:
        InvalidConfigurationError: If the URL cannot be parsed as an absolute URL
    """
    try:
        parsed = httpx.URL(query_api_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidConfigurationError(f"Invalid Query Service URL: {e}", cause=e) from e

    if not parsed.scheme or not parsed.host:
        raise InvalidConfigurationError(f"Invalid Query Service URL: {query_api_url}")

    host = parsed.host
    if ":" in host:
        # httpx reports IPv6 literals without their brackets
        host = f"[{host}]"
    elif host.startswith("query."):
        host = "connection." + host[len("query."):]

    port = f":{parsed.port}" if parsed.port is not None else ""
    return f"{parsed.scheme}://{host}{port}"


class StorageApiTokenVerifier:
    """Verifies a token with ``GET /v2/storage/tokens/verify`` on the Storage API."""

    def __init__(
        self,
        url: str,
        token: str,
        user_agent: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self._token = token
        self._user_agent = user_agent
        self._transport = transport

    def verify_token(self) -> None:
        headers = {TOKEN_HEADER: self._token}
        if self._user_agent:
            headers["User-Agent"] = self._user_agent

        try:
            with httpx.Client(
                timeout=httpx.Timeout(TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS),
                transport=self._transport,
            ) as client:
                response = client.get(f"{self.url}{VERIFY_TOKEN_PATH}", headers=headers)
        except httpx.HTTPError as e:
            raise AuthError(f"Storage API request failed: {e}", cause=e) from e

        if response.is_success:
            return

        message = f"HTTP {response.status_code}"
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("error") or data.get("message") or message
        raise AuthError(str(message), status_code=response.status_code, context=data if isinstance(data, dict) else None)


class IdentityGate:
    """
    Runs token verification in front of every privileged operation.

    There is no caching: each call to ``verify`` asks the verifier again.
    """

    def __init__(self, verifier: TokenVerifier, enabled: bool = True):
        self.verifier = verifier
        self.enabled = enabled

    def verify(self) -> None:
        """
        Raises:
            TokenVerificationError: If the verifier rejects the token
        """
        if not self.enabled:
            return
        try:
            self.verifier.verify_token()
        except AuthError as e:
            logger.warning(f"Storage API token verification failed: {e.message}")
            raise TokenVerificationError(
                f"Storage API token verification failed: {e.message}",
                status_code=e.status_code,
                cause=e,
                context=e.context,
            ) from e
