"""Exceptions raised by the query API client."""

from __future__ import annotations

from typing import Any


class ClientError(Exception):
    """
    Base exception for query API client errors.

    Every failure of a remote call surfaces as a subclass of this, so callers
    have a single catch point.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.cause = cause
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
        }


class InvalidConfigurationError(ClientError, ValueError):
    """Missing or malformed constructor input."""
    pass


class ConnectionFailedError(ClientError):
    """Could not connect to the Query Service."""
    pass


class RequestFailedError(ClientError):
    """Transport failure other than a connect error (read timeout, protocol...)."""
    pass


class RemoteError(ClientError):
    """The Query Service answered with a non-2xx status."""
    pass


class ProtocolError(ClientError):
    """Response body is not a JSON object."""
    pass


class AuthError(ClientError):
    """Token rejected by the Storage API."""
    pass


class TokenVerificationError(ClientError):
    """Identity gate refused a privileged operation."""
    pass


class JobTimeoutError(ClientError, TimeoutError):
    """Query job did not reach a terminal state before the deadline."""
    pass
