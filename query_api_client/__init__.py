"""Python client for the Query Service API."""

from .client import DEFAULT_USER_AGENT, QueryClient, WorkspaceClient
from .config import ClientConfig
from .errors import (
    AuthError,
    ClientError,
    ConnectionFailedError,
    InvalidConfigurationError,
    JobTimeoutError,
    ProtocolError,
    RemoteError,
    RequestFailedError,
    TokenVerificationError,
)
from .models import JobStatus, QueryJob, ResultSet, Statement
from .resilience import RetryConfig
from .results import map_column_names_into_data

__all__ = [
    "DEFAULT_USER_AGENT",
    "QueryClient",
    "WorkspaceClient",
    "ClientConfig",
    "RetryConfig",
    "ClientError",
    "InvalidConfigurationError",
    "ConnectionFailedError",
    "RequestFailedError",
    "RemoteError",
    "ProtocolError",
    "AuthError",
    "TokenVerificationError",
    "JobTimeoutError",
    "JobStatus",
    "QueryJob",
    "Statement",
    "ResultSet",
    "map_column_names_into_data",
]
