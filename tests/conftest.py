"""Pytest configuration and fixtures shared across all test modules.

This file is loaded by pytest before any test module imports the package,
so the environment set here is what the global settings instance sees.
"""

import os

# CRITICAL: Set this before any imports that might load settings
# This prevents the .env.<APP_ENV> file from being loaded during tests
os.environ["TESTING"] = "true"

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.pop("REDIS_URL", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402


class FakeTime:
    """Deterministic clock used to test window and expiry logic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()
