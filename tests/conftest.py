"""Pytest configuration and shared fixtures."""

import random
from datetime import date
from typing import List

import pytest

from activity_digest.fetcher.circuit_breaker import CircuitBreakerRegistry
from activity_digest.fetcher.retry_manager import RetryManager
from activity_digest.models.config import DigestConfig
from activity_digest.models.data_models import Identity, ProjectRef, RetryConfig


class FakeClock:
    """Fake clock for testing."""

    def __init__(self, initial_time: float = 0.0):
        self._current_time = initial_time

    def now(self) -> float:
        return self._current_time

    def advance(self, seconds: float) -> None:
        self._current_time += seconds


class RecordingSleeper:
    """Async sleep replacement that records requested delays (seconds)."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(scope="session")
def deterministic_seed():
    """Set a fixed random seed for deterministic test results."""
    random.seed(42)
    return 42


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def registry(fake_clock):
    return CircuitBreakerRegistry(clock=fake_clock)


@pytest.fixture
def retry_manager(registry, sleeper):
    """Retry manager with a fresh breaker registry and no real sleeping."""
    return RetryManager(registry=registry, sleeper=sleeper)


@pytest.fixture
def no_jitter():
    return RetryConfig(max_attempts=3, base_delay_ms=100, max_delay_ms=1000, jitter=False)


@pytest.fixture
def identity():
    return Identity(id=1, username="jdoe", email="jane@example.com", name="Jane Doe")


@pytest.fixture
def projects():
    return [ProjectRef(id=100 + i, name=f"project-{i}") for i in range(1, 4)]


@pytest.fixture
def digest_day():
    return date(2024, 1, 1)


@pytest.fixture
def sample_config():
    """Provide a sample configuration for testing."""
    return DigestConfig(
        gitlab_base_url="https://gitlab.example.com",
        gitlab_access_token="glpat-test",
        project_concurrency=2,
        retry_profile="fast",
        circuit_breaker_profile="api",
        request_timeout=5.0,
        log_level="WARNING",
    )
