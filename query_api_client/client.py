"""Query Service client and workspace-bound convenience wrapper."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from typing import Any, Callable

import httpx

from .auth import TOKEN_HEADER, IdentityGate, StorageApiTokenVerifier, TokenVerifier, derive_storage_api_url
from .config import URL_OVERRIDE_ENV, ClientConfig
from .errors import (
    ClientError,
    ConnectionFailedError,
    InvalidConfigurationError,
    ProtocolError,
    RemoteError,
    RequestFailedError,
)
from .polling import JobPoller
from .resilience import CONNECT_ERRORS, RetryConfig, RetryingTransport

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Query API Python Client"


class QueryClient:
    """
    Client for the Query Service API.

    Usage:
        client = QueryClient(ClientConfig(
            url="https://query.keboola.com",
            token="my-storage-token",
        ))

        job = client.submit_query_job("main", "12345", {
            "statements": ["SELECT 1"],
            "transactional": False,
        })
        final = client.wait_for_job_completion(job["queryJobId"])

        # Or all in one go
        response = client.execute_workspace_query("main", "12345", {"statements": ["SELECT 1"]})
        print(response["results"][0]["data"])

    Every operation except ``health_check`` verifies the token against the
    Storage API first.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        token_verifier: TokenVerifier | None = None,
        transport: httpx.BaseTransport | None = None,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Create a client. Nothing is sent over the network here.

        Args:
            config: Client configuration (loaded from the environment if omitted)
            token_verifier: Replaces the Storage API verifier (tests, custom auth)
            transport: httpx transport used for Query Service calls
            retry_config: Retry policy; defaults to config.max_retries with 1s/2s/4s backoff
            sleep: Used for backoff and polling delays
            clock: Monotonic clock for the polling deadline

        Raises:
            InvalidConfigurationError: If url or token is missing or malformed
        """
        if config is None:
            config = ClientConfig()

        if not config.url:
            raise InvalidConfigurationError("url must be set")
        if not config.token:
            raise InvalidConfigurationError("token must be set")
        if config.max_retries < 0:
            raise InvalidConfigurationError("max_retries must not be negative")

        # Also validates the url. Derived before the test override replaces it.
        derived_storage_api_url = derive_storage_api_url(config.url)
        storage_api_url = config.storage_api_url or derived_storage_api_url

        url = os.environ.get(URL_OVERRIDE_ENV) or config.url
        self.config = dataclasses.replace(config, url=url.rstrip("/"), storage_api_url=storage_api_url)

        self.user_agent = DEFAULT_USER_AGENT
        if config.user_agent:
            self.user_agent += " " + config.user_agent

        if token_verifier is None:
            token_verifier = StorageApiTokenVerifier(
                storage_api_url, config.token, user_agent=self.user_agent
            )
        self.identity_gate = IdentityGate(token_verifier, enabled=config.verify_token)

        self._transport = RetryingTransport(
            self.config.url,
            retry_config=retry_config or RetryConfig(max_retries=config.max_retries),
            transport=transport,
            sleep=sleep,
        )
        self._poller = JobPoller(
            self,
            poll_interval_seconds=config.poll_interval_seconds,
            sleep=sleep,
            clock=clock,
        )

    def submit_query_job(
        self,
        branch_id: str,
        workspace_id: str,
        request: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Submit a new query job.

        Args:
            branch_id: Storage branch id (e.g. "main" or numeric id)
            workspace_id: Workspace the statements run in
            request: ``{"statements": [...], "transactional": bool}``

        Returns:
            ``{"queryJobId": ...}``
        """
        self.identity_gate.verify()
        path = f"/api/v1/branches/{branch_id}/workspaces/{workspace_id}/queries"
        return self._send_request("POST", path, request)

    def get_job_status(self, job_id: str) -> dict[str, Any]:
        """Get the current job snapshot (status, statements, cancellation info)."""
        self.identity_gate.verify()
        return self._send_request("GET", f"/api/v1/queries/{job_id}")

    def cancel_job(self, job_id: str, request: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Ask the service to cancel a job.

        The job transitions to ``canceled`` asynchronously; use
        ``wait_for_job_completion`` to observe it.

        Args:
            job_id: Query job id
            request: Optional ``{"reason": "..."}``
        """
        self.identity_gate.verify()
        return self._send_request("POST", f"/api/v1/queries/{job_id}/cancel", request or {})

    def get_job_results(self, job_id: str, statement_id: str) -> dict[str, Any]:
        """Get the result set of one statement (columns, positional rows, status, rowsAffected)."""
        self.identity_gate.verify()
        return self._send_request("GET", f"/api/v1/queries/{job_id}/{statement_id}/results")

    def health_check(self) -> dict[str, Any]:
        """Service status. Unauthenticated: no token verification."""
        return self._send_request("GET", "/health-check")

    def wait_for_job_completion(
        self,
        job_id: str,
        max_wait_seconds: float | None = None,
    ) -> dict[str, Any]:
        """
        Poll until the job is completed, failed or canceled.

        Raises:
            JobTimeoutError: If the job is still running after max_wait_seconds
        """
        if max_wait_seconds is None:
            max_wait_seconds = self.config.max_wait_seconds
        return self._poller.wait(job_id, max_wait_seconds)

    def execute_workspace_query(
        self,
        branch_id: str,
        workspace_id: str,
        request: dict[str, Any],
        max_wait_seconds: float | None = None,
    ) -> dict[str, Any]:
        """
        Submit a job, wait for it and fetch the results of every statement.

        Returns:
            ``{"queryJobId", "status", "statements", "results"}`` where
            ``results[i]`` belongs to ``statements[i]``
        """
        if max_wait_seconds is None:
            max_wait_seconds = self.config.max_wait_seconds

        submitted = self.submit_query_job(branch_id, workspace_id, request)
        job_id = submitted.get("queryJobId")
        if not job_id:
            raise ProtocolError("Response does not contain queryJobId", context=submitted)

        return self._poller.execute(str(job_id), max_wait_seconds)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            TOKEN_HEADER: self.config.token,
            "User-Agent": self.user_agent,
        }

    def _send_request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        content = None
        if body is not None:
            try:
                content = json.dumps(body).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise ClientError(f"Failed to encode request body as JSON: {e}", cause=e) from e

        logger.debug(f"{method} {self.config.url}{path}")

        try:
            response = self._transport.execute(method, path, self._get_headers(), content)
        except CONNECT_ERRORS as e:
            raise ConnectionFailedError(f"Unable to connect to Query Service API: {e}", cause=e) from e
        except httpx.HTTPError as e:
            raise RequestFailedError(f"Query Service API request failed: {e}", cause=e) from e

        if not response.is_success:
            self._raise_for_response(response)

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}

        try:
            data = json.loads(response.content)
        except ValueError as e:
            raise ProtocolError(f"Response is not valid JSON: {e}", status_code=response.status_code, cause=e) from e

        if not isinstance(data, dict):
            raise ProtocolError("Response is not a JSON object", status_code=response.status_code)

        return data

    def _raise_for_response(self, response: httpx.Response) -> None:
        """Translate a non-2xx response into RemoteError."""
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_error = e
        else:
            # 1xx/3xx that raise_for_status lets through
            status_error = httpx.HTTPStatusError(
                f"Unexpected status {response.status_code} for url '{response.request.url}'",
                request=response.request,
                response=response,
            )

        try:
            error_data = json.loads(response.content) if response.content else None
        except ValueError:
            error_data = None

        if isinstance(error_data, dict):
            exception = error_data.get("exception")
            message = exception if isinstance(exception, str) else str(status_error)
            context = error_data
        else:
            message = str(status_error)
            context = None

        raise RemoteError(message, status_code=response.status_code, cause=status_error, context=context) from status_error


class WorkspaceClient:
    """
    QueryClient bound to one branch and workspace.

    Usage:
        workspace = WorkspaceClient(client, branch_id="main", workspace_id="12345")
        response = workspace.execute_workspace_query({"statements": ["SELECT 1"]})
    """

    def __init__(self, client: QueryClient, branch_id: str, workspace_id: str):
        self.client = client
        self.branch_id = branch_id
        self.workspace_id = workspace_id

    def submit_query_job(self, request: dict[str, Any]) -> dict[str, Any]:
        return self.client.submit_query_job(self.branch_id, self.workspace_id, request)

    def execute_workspace_query(
        self,
        request: dict[str, Any],
        max_wait_seconds: float | None = None,
    ) -> dict[str, Any]:
        return self.client.execute_workspace_query(
            self.branch_id, self.workspace_id, request, max_wait_seconds
        )
