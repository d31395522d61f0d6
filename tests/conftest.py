"""Robin test configuration: shared fixtures for the unit tests."""

from __future__ import annotations

from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture()
def anyio_backend() -> str:
    """The engine is built on asyncio primitives."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from robin.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Recorders
# ---------------------------------------------------------------------------


class StepClock:
    """Deterministic millisecond clock that advances on every read."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 10) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def sql_recorder(tmp_path: Path, clock: StepClock):
    """Create a disposable ``SqlSessionRecorder`` backed by a temporary SQLite DB."""
    from robin.sessions.sql_recorder import SqlSessionRecorder

    return SqlSessionRecorder(db_path=tmp_path / "sessions.db", clock=clock)


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
