"""
KV Cache — Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
Async tests run under pytest-asyncio in auto mode (see pyproject.toml).
"""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import fakeredis
import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"


class FakeClock:
    """Manually advanced time source for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Simulated clock starting at a fixed timestamp."""
    return FakeClock()


@pytest.fixture
def sqlite_path(tmp_path: Path) -> str:
    """Path for a throwaway SQLite cache database."""
    return str(tmp_path / "cache" / "cache.db")


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """
    In-memory Redis stand-in (fakeredis).

    No external Redis server is required to run the tests.
    """
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def mock_env_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for memory cache backend."""
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("CACHE_MAX_SIZE", "100")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "3600")


@pytest.fixture
def sample_cache_data() -> dict[str, Any]:
    """Sample data for cache testing."""
    return {
        "simple_string": "hello",
        "simple_int": 42,
        "simple_float": 3.14,
        "simple_bool": True,
        "complex_dict": {
            "nested": {
                "key": "value",
                "number": 123,
                "list": [1, 2, 3],
            }
        },
        "complex_list": [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
        ],
    }


@pytest.fixture(autouse=True)
def reset_cache_factory() -> Generator[None, None, None]:
    """Reset cache factory after each test to prevent state leakage."""
    yield
    from kvcache.cache.factory import reset_cache_factory

    reset_cache_factory()
