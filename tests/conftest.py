# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the match engine suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (we always pass IANA zones explicitly).
- Provides a controllable clock, a temp-file result cache, an offline chart
  deriver and a Flask test client built from defaults.
"""

import os
import pytest
from hypothesis import settings, HealthCheck

from matchengine.core.compatibility import CompatibilityEngine
from matchengine.core.natal import HeuristicTier, NatalChartDeriver, StaticDefaultTier
from matchengine.utils.cache import LRUCache, ResultCache, SQLiteCache
from matchengine.utils.config import load_config


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(autouse=True)
def clean_matchengine_env(monkeypatch):
    """No test sees a developer's real provider URL, table or cache file."""
    for k in list(os.environ):
        if k.startswith("MATCHENGINE_") or k in ("METRICS_USER", "METRICS_PASS"):
            monkeypatch.delenv(k, raising=False)


class FakeClock:
    """Callable clock in epoch seconds; only moves when told to."""
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_path(tmp_path):
    return str(tmp_path / "cache" / "results.db")


@pytest.fixture
def cache(cache_path, clock):
    c = ResultCache(memory=LRUCache(64), store=SQLiteCache(cache_path), clock=clock)
    yield c
    c.close()


@pytest.fixture
def offline_deriver():
    """Heuristic tier only: deterministic and network-free."""
    return NatalChartDeriver(tiers=[HeuristicTier(), StaticDefaultTier()])


@pytest.fixture
def engine(offline_deriver):
    return CompatibilityEngine(deriver=offline_deriver)


@pytest.fixture
def app(cache, engine):
    from matchengine.main import create_app
    application = create_app(config=load_config(), cache=cache, engine=engine)
    application.testing = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


def _birth(date: str = "1990-03-25", time: str = "12:00", lat: float = 40.7128,
           lon: float = -74.006, tz: str = "America/New_York") -> dict:
    return {"date": date, "time": time, "latitude": lat, "longitude": lon, "timezone": tz}


@pytest.fixture
def make_birth():
    """Factory for raw birth payloads (New York, noon, 1990-03-25 by default)."""
    return _birth
