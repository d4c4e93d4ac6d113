"""Shared pytest fixtures for query_api_client tests."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from query_api_client import ClientConfig, QueryClient
from query_api_client.errors import AuthError

from tests.fixtures.mock_service import MockQueryService


@dataclass
class MockTokenVerifier:
    """Records verify_token() calls; raises ``error`` when set."""

    error: AuthError | None = None
    calls: int = 0

    def verify_token(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


@dataclass
class FakeClock:
    """Deterministic clock: sleep() advances time and records the delay."""

    now: float = 1000.0
    sleeps: list[float] = field(default_factory=list)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def monotonic(self) -> float:
        return self.now


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep QUERY_API_* variables from the developer's shell out of tests."""
    for name in (
        "QUERY_API_URL",
        "QUERY_API_TOKEN",
        "QUERY_API_MAX_RETRIES",
        "QUERY_API_USER_AGENT",
        "QUERY_API_STORAGE_URL",
        "QUERY_API_VERIFY_TOKEN",
        "QUERY_API_POLL_INTERVAL",
        "QUERY_API_MAX_WAIT",
        "QUERY_API_URL_OVERRIDE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mock_service():
    return MockQueryService()


@pytest.fixture
def token_verifier():
    return MockTokenVerifier()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_client(token_verifier, fake_clock):
    """Factory fixture building a QueryClient wired to a mock service."""
    def _factory(service: MockQueryService, **config_kwargs) -> QueryClient:
        config_kwargs.setdefault("url", "https://query.test.keboola.com")
        config_kwargs.setdefault("token", "test-token")
        return QueryClient(
            ClientConfig(**config_kwargs),
            token_verifier=token_verifier,
            transport=service.get_transport(),
            sleep=fake_clock.sleep,
            clock=fake_clock.monotonic,
        )
    return _factory
