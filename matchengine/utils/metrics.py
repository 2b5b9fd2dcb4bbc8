# matchengine/utils/metrics.py
from __future__ import annotations

from functools import wraps
from time import perf_counter
from typing import Callable, Final

from prometheus_client import Counter, Histogram

# Names are part of the scrape contract; keep them stable.
MET_CHART_TIER: Final = Counter(
    "matchengine_chart_tier_total", "Charts produced per derivation tier", ["tier"]
)
MET_CACHE: Final = Counter(
    "matchengine_cache_events_total", "Result cache events", ["event"]
)
MET_REQUESTS: Final = Counter(
    "matchengine_requests_total", "API requests", ["route"]
)
REQ_LATENCY: Final = Histogram(
    "matchengine_request_seconds", "API request latency", ["route"]
)


def cache_event(event: str) -> None:
    MET_CACHE.labels(event=event).inc()

def chart_tier(tier: str) -> None:
    MET_CHART_TIER.labels(tier=tier).inc()

def timed(route: str) -> Callable:
    """Count and time a view under `route`."""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            MET_REQUESTS.labels(route=route).inc()
            t0 = perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                REQ_LATENCY.labels(route=route).observe(perf_counter() - t0)
        return wrapper
    return deco
