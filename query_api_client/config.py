"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .errors import InvalidConfigurationError

# Config file search paths (in order of precedence, last wins)
CONFIG_SEARCH_PATHS = [
    Path.home() / ".query-api" / "client.yaml",  # User-level defaults
    Path(".query-api.yaml"),  # Project-level overrides
]

# Replaces the configured url at client construction (functional test harnesses)
URL_OVERRIDE_ENV = "QUERY_API_URL_OVERRIDE"

DEFAULT_MAX_RETRIES = 3
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_MAX_WAIT_SECONDS = 300.0


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


def _number(name: str, value: Any, convert: Callable[[Any], Any]) -> Any:
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise InvalidConfigurationError(f"{name} must be a number, got {value!r}", cause=e) from e


@dataclass(frozen=True)
class ClientConfig:
    """
    Configuration for the query API client.

    Precedence (lowest to highest):
    1. Defaults
    2. ~/.query-api/client.yaml
    3. .query-api.yaml (project root)
    4. Environment variables (QUERY_API_*)
    5. Constructor arguments
    """
    # Query Service URL, e.g. https://query.keboola.com
    url: str = field(
        default_factory=lambda: os.environ.get("QUERY_API_URL", "")
    )

    # Storage API token, sent with every request
    token: str = field(
        default_factory=lambda: os.environ.get("QUERY_API_TOKEN", ""),
        repr=False,
    )

    # Retries for connect failures and 5xx responses
    max_retries: int = field(
        default_factory=lambda: _number(
            "QUERY_API_MAX_RETRIES", os.environ.get("QUERY_API_MAX_RETRIES", DEFAULT_MAX_RETRIES), int
        )
    )

    # Appended to the default User-Agent
    user_agent: str | None = field(
        default_factory=lambda: os.environ.get("QUERY_API_USER_AGENT")
    )

    # Storage API URL; derived from url when not set
    storage_api_url: str | None = field(
        default_factory=lambda: os.environ.get("QUERY_API_STORAGE_URL")
    )

    # Verify the token against the Storage API before privileged calls
    verify_token: bool = field(
        default_factory=lambda: _env_bool("QUERY_API_VERIFY_TOKEN", "true")
    )

    # Job polling
    poll_interval_seconds: float = field(
        default_factory=lambda: _number(
            "QUERY_API_POLL_INTERVAL", os.environ.get("QUERY_API_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS), float
        )
    )
    max_wait_seconds: float = field(
        default_factory=lambda: _number(
            "QUERY_API_MAX_WAIT", os.environ.get("QUERY_API_MAX_WAIT", DEFAULT_MAX_WAIT_SECONDS), float
        )
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Create config from dictionary. Environment variables win over file values."""
        env = os.environ
        return cls(
            url=env.get("QUERY_API_URL", data.get("url", "")),
            token=env.get("QUERY_API_TOKEN", data.get("token", "")),
            max_retries=_number(
                "max_retries", env.get("QUERY_API_MAX_RETRIES", data.get("max_retries", DEFAULT_MAX_RETRIES)), int
            ),
            user_agent=env.get("QUERY_API_USER_AGENT", data.get("user_agent")),
            storage_api_url=env.get("QUERY_API_STORAGE_URL", data.get("storage_api_url")),
            verify_token=_env_bool(
                "QUERY_API_VERIFY_TOKEN", str(data.get("verify_token", True))
            ),
            poll_interval_seconds=_number(
                "poll_interval_seconds",
                env.get("QUERY_API_POLL_INTERVAL", data.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS)),
                float,
            ),
            max_wait_seconds=_number(
                "max_wait_seconds",
                env.get("QUERY_API_MAX_WAIT", data.get("max_wait_seconds", DEFAULT_MAX_WAIT_SECONDS)),
                float,
            ),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> ClientConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, config_file: str | Path | None = None) -> ClientConfig:
        """
        Load config with auto-discovery.

        Search order (last wins):
        1. ~/.query-api/client.yaml
        2. .query-api.yaml
        3. Explicit config_file argument
        4. Environment variables always override file values
        """
        import yaml

        merged: dict[str, Any] = {}

        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                with open(path, "r") as f:
                    data = yaml.safe_load(f) or {}
                merged.update(data)

        if config_file:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
            merged.update(data)

        return cls.from_dict(merged)
