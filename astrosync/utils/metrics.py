# astrosync/utils/metrics.py
"""Prometheus metrics shared by the app factory and the API routes (keep names stable)."""
from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

__all__ = [
    "MET_REQUESTS",
    "MET_HOUSE_APPROX",
    "MET_WARNINGS",
    "REQ_LATENCY",
    "GAUGE_APP_UP",
    "record_houses",
]

MET_REQUESTS: Final = Counter("astrosync_api_requests_total", "API requests", ["route"])
MET_HOUSE_APPROX: Final = Counter(
    "astrosync_house_approximation_total", "House results carrying an approximation flag",
    ["requested", "approximation"],
)
MET_WARNINGS: Final = Counter("astrosync_warning_total", "Non-fatal warnings", ["kind"])
REQ_LATENCY: Final = Histogram("astrosync_request_seconds", "API request latency", ["route"])
GAUGE_APP_UP: Final = Gauge("astrosync_app_up", "1 if app is running")


def record_houses(requested: str, houses) -> None:
    """Count approximated and non-converged house results."""
    if houses.approximation != "none":
        MET_HOUSE_APPROX.labels(requested=requested, approximation=houses.approximation).inc()
    if not houses.converged:
        MET_WARNINGS.labels(kind="house_nonconvergence").inc()
