# tests/conftest.py
"""
Pytest configuration for the astrosync suite.

- Registers Hypothesis profiles for local dev and CI.
- Provides a deterministic fake ephemeris provider (linear motion per body).
- Provides a Flask test client wired to the fake provider.
"""
from __future__ import annotations

import math
import os
from typing import Dict, Tuple

import pytest
from hypothesis import settings, HealthCheck

from astrosync.core.coordinates import J2000, ecliptic_to_equatorial, mean_obliquity
from astrosync.core.ephemeris_adapter import EphemerisUnavailable, EquatorialPosition


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # avoid flaky timeouts on slower runners
        max_examples=60,         # fast local runs
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,        # a bit more coverage in CI
        suppress_health_check=[HealthCheck.too_slow],
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
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Fake ephemeris
# ──────────────────────────────────────────────────────────────────────────────
# (longitude at J2000 in degrees, speed in degrees/day); Mercury runs backwards
FAKE_MOTION: Dict[str, Tuple[float, float]] = {
    "Sun": (280.0, 0.9856),
    "Moon": (100.0, 13.176),
    "Mercury": (300.0, -0.4),
    "Venus": (240.0, 1.2),
    "Mars": (330.0, 0.5),
    "Jupiter": (25.0, 0.083),
    "Saturn": (40.0, 0.033),
    "Uranus": (315.0, 0.012),
    "Neptune": (303.0, 0.006),
    "Pluto": (251.0, 0.004),
}


class FakeEphemeris:
    """Bodies move linearly in ecliptic longitude on the ecliptic (β = 0)."""

    def __init__(self, motion: Dict[str, Tuple[float, float]] | None = None):
        self.motion = dict(motion or FAKE_MOTION)
        self.calls = 0

    def longitude(self, body: str, jd_ut: float) -> float:
        lon0, speed = self.motion[body]
        return (lon0 + speed * (jd_ut - J2000)) % 360.0

    def position(self, body: str, jd_ut: float) -> EquatorialPosition:
        self.calls += 1
        lam = math.radians(self.longitude(body, jd_ut))
        ra, dec = ecliptic_to_equatorial(lam, mean_obliquity(jd_ut))
        return EquatorialPosition(math.degrees(ra), math.degrees(dec))


class BrokenEphemeris:
    def position(self, body: str, jd_ut: float) -> EquatorialPosition:
        raise EphemerisUnavailable("kernel", "offline", body=body)


@pytest.fixture()
def fake_provider() -> FakeEphemeris:
    return FakeEphemeris()


@pytest.fixture()
def app(fake_provider):
    from astrosync.main import create_app

    application = create_app(provider=fake_provider, settings={})
    application.testing = True
    return application


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(scope="session")
def ensure_erfa():
    """Fail early if pyERFA isn't importable or misses the functions we cross-check."""
    import erfa
    for fn in ("cal2jd", "jd2cal", "gmst82", "obl80"):
        assert hasattr(erfa, fn), f"ERFA.{fn} not available"
    return erfa
