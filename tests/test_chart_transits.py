# tests/test_chart_transits.py
from __future__ import annotations

from datetime import date, time

import pytest

from astrosync.core.aspects import ASPECT_WEIGHTS
from astrosync.core.chart import compute_natal_chart, houses_for_birth
from astrosync.core.coordinates import wrap_deg180
from astrosync.core.ephemeris_adapter import EphemerisProvider
from astrosync.core.houses import whole_sign_cusps
from astrosync.core.points import BODIES, CelestialPoint
from astrosync.core.timescales import julian_day_noon_utc
from astrosync.core.transits import (
    TransitSky,
    body_longitude,
    month_span,
    transit_calendar,
    transit_events,
    transiting_points,
)
from astrosync.core.validators import BirthInput, InvalidInput
from astrosync.utils.cache import TTLCache

from conftest import FakeEphemeris

MILAN = BirthInput(date(2000, 1, 1), time(12, 0), 60, 45.4642, 9.19, "placidus")


# ─────────────────────────────────────────────────────────────────────────────
# Transits
# ─────────────────────────────────────────────────────────────────────────────

def test_fake_provider_satisfies_protocol() -> None:
    assert isinstance(FakeEphemeris(), EphemerisProvider)


@pytest.mark.parametrize("body", BODIES)
def test_longitude_survives_equatorial_round_trip(body: str) -> None:
    eph = FakeEphemeris()
    jd = 2460000.25
    assert abs(wrap_deg180(body_longitude(eph, body, jd) - eph.longitude(body, jd))) < 1e-8


def test_retrograde_flag_follows_daily_motion() -> None:
    pts = {p.name: p for p in transiting_points(FakeEphemeris(), 2451545.0)}
    assert set(pts) == set(BODIES)
    assert pts["Mercury"].retrograde is True
    assert pts["Sun"].retrograde is False
    assert all(p.owner == "transit" for p in pts.values())


def test_retrograde_flag_ignores_aries_wrap() -> None:
    eph = FakeEphemeris({"Venus": (359.5, 1.2)})
    (venus,) = transiting_points(eph, 2451545.0 + 0.5, bodies=("Venus",))
    assert venus.retrograde is False
    assert venus.longitude == pytest.approx(0.1, abs=1e-6)


def test_transit_sky_samples_noon_and_caches() -> None:
    eph = FakeEphemeris()
    sky = TransitSky(eph, TTLCache(60, capacity=8))
    day = date(2024, 2, 14)
    first = sky(day)
    calls = eph.calls
    assert sky(day) == first
    assert eph.calls == calls
    sun = next(p for p in first if p.name == "Sun")
    assert sun.longitude == pytest.approx(eph.longitude("Sun", julian_day_noon_utc(day)), abs=1e-6)


# ─────────────────────────────────────────────────────────────────────────────
# Charts
# ─────────────────────────────────────────────────────────────────────────────

def test_full_chart_has_angles_and_houses() -> None:
    chart = compute_natal_chart(MILAN, FakeEphemeris(), owner="A")
    assert chart.approximation == "none"
    assert chart.houses.system == "placidus"
    asc, mc = chart.point("ASC"), chart.point("MC")
    assert asc is not None and mc is not None
    assert asc.longitude == pytest.approx(chart.houses.ascendant)
    assert mc.longitude == pytest.approx(chart.houses.midheaven)
    assert all(p.owner == "A" for p in chart.points)
    d = chart.as_dict()
    assert len(d["points"]) == len(BODIES) + 2
    assert all(1 <= p["house"] <= 12 for p in d["points"])
    assert d["instant"]["time_known"] is True


def test_chart_without_time_uses_whole_sign_at_noon() -> None:
    birth = BirthInput(date(2000, 1, 1), None, 60, 45.4642, 9.19, "placidus")
    chart = compute_natal_chart(birth, FakeEphemeris())
    assert chart.approximation == "no-time"
    assert chart.houses.system == "whole_sign"
    assert chart.point("ASC") is None
    assert chart.instant.time_known is False
    assert chart.houses.cusps[0] % 30.0 == 0.0


def test_chart_without_location_uses_sun_sign() -> None:
    birth = BirthInput(date(2000, 1, 1), time(12, 0), 0, None, None, "placidus")
    eph = FakeEphemeris()
    chart = compute_natal_chart(birth, eph)
    sun = chart.point("Sun")
    assert chart.approximation == "solar"
    assert chart.houses.cusps == whole_sign_cusps(sun.longitude)
    assert chart.houses.house_of(sun.longitude) == 1


def test_chart_without_location_can_be_refused() -> None:
    birth = BirthInput(date(2000, 1, 1), time(12, 0), 0, None, None, "placidus")
    with pytest.raises(InvalidInput) as ei:
        compute_natal_chart(birth, FakeEphemeris(), allow_solar=False)
    assert {tuple(e["loc"]) for e in ei.value.errors()} == {("latitude",), ("longitude",)}


def test_houses_for_birth_matches_direct_computation() -> None:
    hs = houses_for_birth(MILAN)
    assert hs.system == "placidus"
    assert abs(wrap_deg180(hs.ascendant - 8.95)) < 0.5
    assert hs.house_of(280.4) == 10


# ─────────────────────────────────────────────────────────────────────────────
# Transit listings
# ─────────────────────────────────────────────────────────────────────────────

def _natal_on(day: date) -> list:
    """Natal Sun exactly on the transiting Sun of ``day``; Moon square to it."""
    sun = next(p for p in TransitSky(FakeEphemeris())(day) if p.name == "Sun")
    return [
        CelestialPoint("Sun", sun.longitude, False, "natal"),
        CelestialPoint("Moon", sun.longitude + 90.0, False, "natal"),
        CelestialPoint("Saturn", sun.longitude + 200.0, False, "natal"),
    ]


def test_transit_events_rank_with_natal_curve() -> None:
    day = date(2024, 2, 14)
    td = transit_events(_natal_on(day), day, TransitSky(FakeEphemeris()))
    assert td.day == day
    assert 1 <= len(td.events) <= 5
    top = td.events[0]
    assert (top.point_a.name, top.point_b.name, top.aspect) == ("Sun", "Sun", "conjunction")
    assert top.score == pytest.approx(1.0, abs=1e-6)
    scores = [m.score for m in td.events]
    assert scores == sorted(scores, reverse=True)
    for m in td.events:
        assert m.score >= 0.6 * ASPECT_WEIGHTS[m.aspect] * m.point_a.weight * m.point_b.weight - 1e-12
        assert m.point_a.owner == "transit" and m.point_b.owner == "natal"
    d = td.as_dict()
    assert d["date"] == "2024-02-14"
    assert d["events"][0]["transit"] == "Sun" and d["events"][0]["natal"] == "Sun"


def test_transit_events_limit_and_all() -> None:
    day = date(2024, 2, 14)
    sky = TransitSky(FakeEphemeris())
    everything = transit_events(_natal_on(day), day, sky, top_n=None)
    two = transit_events(_natal_on(day), day, sky, top_n=2)
    assert two.events == everything.events[:2]
    assert len(everything.events) >= len(two.events)


@pytest.mark.parametrize("top_n", [0, 100, 2.5, True])
def test_transit_events_rejects_bad_limit(top_n) -> None:
    day = date(2024, 2, 14)
    with pytest.raises(InvalidInput):
        transit_events(_natal_on(day), day, TransitSky(FakeEphemeris()), top_n)


def test_transit_events_requires_natal_points() -> None:
    with pytest.raises(InvalidInput):
        transit_events([], date(2024, 2, 14), TransitSky(FakeEphemeris()))


def test_month_span() -> None:
    assert month_span(2024, 2) == (date(2024, 2, 1), 29)
    assert month_span(2023, 12) == (date(2023, 12, 1), 31)
    with pytest.raises(InvalidInput):
        month_span(2024, 13)


def test_transit_calendar_covers_month() -> None:
    first, length = month_span(2024, 2)
    natal = _natal_on(first)
    sky = TransitSky(FakeEphemeris(), TTLCache(600, capacity=64))
    full = transit_calendar(natal, first, length, sky, keep_empty=True)
    assert [d.day for d in full] == [date(2024, 2, i) for i in range(1, 30)]
    assert all(len(d.events) <= 5 for d in full)
    trimmed = transit_calendar(natal, first, length, sky)
    assert trimmed == [d for d in full if d.events]
    assert trimmed[0].day == first


def test_transit_calendar_rejects_bad_length() -> None:
    with pytest.raises(InvalidInput):
        transit_calendar(_natal_on(date(2024, 2, 1)), date(2024, 2, 1), 0, TransitSky(FakeEphemeris()))
