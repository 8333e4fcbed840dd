# tests/test_windows.py
from __future__ import annotations

from datetime import date, timedelta

import pytest

from astrosync.core.aspects import AspectMatch, find_aspects
from astrosync.core.points import CelestialPoint
from astrosync.core.transits import TransitSky
from astrosync.core.validators import InvalidInput
from astrosync.core.windows import (
    DayScore,
    DayWindow,
    ScanResult,
    ScoredHit,
    WindowConfig,
    build_windows,
    moon_dignity,
    romance_weight,
    scan_windows,
    score_day,
    select_windows,
)
from astrosync.utils.cache import TTLCache

from conftest import FakeEphemeris

D0 = date(2024, 3, 1)


def P(name: str, lon: float, owner: str | None = None) -> CelestialPoint:
    return CelestialPoint(name, lon, False, owner)


def _match(transit: str, t_lon: float, natal: str, n_lon: float) -> AspectMatch:
    (m,) = find_aspects([P(transit, t_lon, "transit")], [P(natal, n_lon, "A")])
    return m


def _days(scores) -> list:
    return [DayScore(day=D0 + timedelta(days=i), score=s, moon_sign=None) for i, s in enumerate(scores)]


def _window(peak_offset: int, score: float, slow=(), start_offset: int | None = None) -> DayWindow:
    start = D0 + timedelta(days=peak_offset if start_offset is None else start_offset)
    peak = D0 + timedelta(days=peak_offset)
    return DayWindow(start=start, end=peak, peak=peak, score=score, slow_signatures=frozenset(slow))


# ─────────────────────────────────────────────────────────────────────────────
# Weights
# ─────────────────────────────────────────────────────────────────────────────

def test_romance_weight_boosts_venus_trine_to_key_point() -> None:
    m = _match("Venus", 120.0, "Sun", 0.0)
    assert romance_weight(m) == pytest.approx(m.score * 1.25 * 1.35 * 1.2 * 1.15)


def test_romance_weight_penalizes_heavy_transits_to_tender_points() -> None:
    m = _match("Saturn", 93.0, "Venus", 0.0)
    assert m.aspect == "square" and m.orb > 2.0
    assert romance_weight(m) == pytest.approx(m.score * 0.80 * 1.2 * 0.75)


def test_romance_weight_neutral_pair() -> None:
    m = _match("Uranus", 182.5, "Jupiter", 0.0)
    assert m.aspect == "opposition"
    assert romance_weight(m) == pytest.approx(m.score * 0.95)


@pytest.mark.parametrize("sign,factor", [
    ("Cancer", 1.15), ("Taurus", 1.12), ("Capricorn", 0.90), ("Scorpio", 0.88),
    ("Leo", 1.0), (None, 1.0),
])
def test_moon_dignity(sign, factor) -> None:
    assert moon_dignity(sign) == factor


# ─────────────────────────────────────────────────────────────────────────────
# Day scoring
# ─────────────────────────────────────────────────────────────────────────────

def test_score_day_applies_moon_dignity_and_bonus() -> None:
    transits = [P("Moon", 95.0, "transit")]            # Cancer
    ds = score_day(D0, transits, [P("Sun", 215.0, "A")], [P("Venus", 275.0, "B")])
    assert ds.moon_sign == "Cancer"
    assert len(ds.hits) == 2
    assert {h.side for h in ds.hits} == {"A", "B"}
    # one harmonious Moon hit, two Moon hits to key points
    assert ds.moon_factor == pytest.approx(1.15 * (1.0 + 0.05 + 0.06))
    raw = sum(h.weight for h in ds.hits)
    assert ds.score == pytest.approx(raw * ds.moon_factor)


def test_score_day_moon_bonus_is_capped() -> None:
    cfg = WindowConfig(moon_harmony_step=1.0)
    transits = [P("Moon", 100.0, "transit")]           # Cancer
    ds = score_day(D0, transits, [P("Sun", 220.0, "A")], [P("Venus", 100.0, "B")], cfg)
    assert ds.moon_factor == pytest.approx(1.15 * 1.30)


def test_score_day_keeps_strongest_hits_only() -> None:
    cfg = WindowConfig(day_hit_limit=2)
    transits = [P("Venus", 0.0, "transit"), P("Mars", 90.0, "transit"), P("Jupiter", 240.0, "transit")]
    natal = [P("Sun", 0.0, "A"), P("Moon", 120.0, "A")]
    ds = score_day(D0, transits, natal, [P("Pluto", 300.0, "B")], cfg)
    assert len(ds.hits) == 2
    assert [h.match.score for h in ds.hits] == sorted((h.match.score for h in ds.hits), reverse=True)


def test_score_day_without_hits_is_zero() -> None:
    ds = score_day(D0, [P("Moon", 95.0, "transit")], [P("Sun", 125.0, "A")], [P("Mars", 245.0, "B")])
    assert ds.hits == ()
    assert ds.score == 0.0


def test_slow_signature_excludes_moon() -> None:
    slow = ScoredHit(_match("Jupiter", 120.0, "Venus", 0.0), "B", 1.0)
    assert slow.slow_signature == "Jupiter|trine|B:Venus"
    moon = ScoredHit(_match("Moon", 120.0, "Venus", 0.0), "B", 1.0)
    assert moon.slow_signature is None
    natal_moon = ScoredHit(_match("Saturn", 90.0, "Moon", 0.0), "A", 1.0)
    assert natal_moon.slow_signature is None


# ─────────────────────────────────────────────────────────────────────────────
# Window building & selection
# ─────────────────────────────────────────────────────────────────────────────

def test_build_windows_expands_while_above_ratio() -> None:
    ws = build_windows(_days([1.0, 9.0, 10.0, 8.6, 8.4, 1.0]))
    top = ws[0]
    assert top.peak == D0 + timedelta(days=2)
    assert top.start == D0 + timedelta(days=1)
    assert top.end == D0 + timedelta(days=3)
    assert top.length_days == 3
    assert top.score == 10.0


def test_build_windows_never_shares_days() -> None:
    ws = build_windows(_days([5.0, 5.0, 1.0, 4.9, 4.9, 4.9]))
    covered = []
    for w in ws:
        covered.extend(range((w.start - D0).days, (w.end - D0).days + 1))
    assert sorted(covered) == list(range(6))


def test_selection_keeps_peaks_a_week_apart() -> None:
    scores = [1.0] * 20
    scores[5], scores[15], scores[8] = 10.0, 9.0, 8.5
    selected = select_windows(build_windows(_days(scores)))
    assert [w.peak for w in selected] == [D0 + timedelta(days=5), D0 + timedelta(days=15)]


def test_selection_rejects_repeated_slow_signatures() -> None:
    w1 = _window(0, 5.0, {"Jupiter|trine|A:Sun", "Saturn|sextile|B:Venus", "Pluto|square|A:Mars"})
    w2 = _window(20, 4.0, {"Jupiter|trine|A:Sun", "Saturn|sextile|B:Venus"})
    w3 = _window(30, 3.0, {"Jupiter|trine|A:Sun"})
    assert select_windows([w3, w2, w1]) == [w1, w3]


def test_selection_caps_number_of_windows() -> None:
    ws = [_window(10 * i, 10.0 - i) for i in range(6)]
    assert len(select_windows(ws)) == 3
    assert len(select_windows(ws, WindowConfig(max_windows=5))) == 5


def test_moon_signs_collapse_consecutive_duplicates() -> None:
    days = [
        DayScore(D0 + timedelta(days=i), 5.0, sign)
        for i, sign in enumerate(["Aries", "Aries", "Taurus", "Taurus", "Gemini"])
    ]
    (w,) = build_windows(days)
    assert w.moon_signs == ("Aries", "Taurus", "Gemini")


# ─────────────────────────────────────────────────────────────────────────────
# Best-within
# ─────────────────────────────────────────────────────────────────────────────

def _result(*candidates: DayWindow) -> ScanResult:
    return ScanResult(start_date=D0, windows=tuple(candidates), candidates=tuple(candidates), days=())


def test_best_within_prefers_windows_starting_inside_range() -> None:
    late = _window(40, 10.0)
    early = _window(5, 6.0)
    edge = _window(30, 7.0)
    res = _result(late, early, edge)
    assert res.best_within(30) == edge
    assert res.best_within(10) == early
    assert res.best_within(60) == late


def test_best_within_falls_back_to_global_best() -> None:
    late = _window(40, 10.0)
    assert _result(late).best_within(30) == late


def test_best_within_empty_scan() -> None:
    assert _result().best_within(30) is None


# ─────────────────────────────────────────────────────────────────────────────
# End-to-end scan
# ─────────────────────────────────────────────────────────────────────────────

NATAL_A = [P("Sun", 10.0), P("Moon", 130.0), P("Venus", 40.0), P("Mars", 200.0), P("ASC", 250.0)]
NATAL_B = [P("Sun", 190.0), P("Moon", 75.0), P("Venus", 300.0), P("Saturn", 160.0)]


def test_scan_windows_end_to_end() -> None:
    sky = TransitSky(FakeEphemeris())
    res = scan_windows(NATAL_A, NATAL_B, 30, D0, sky)
    assert len(res.days) == 30
    assert res.days[0].day == D0 and res.days[-1].day == D0 + timedelta(days=29)
    assert 1 <= len(res.windows) <= 3
    assert res.windows[0].score == max(d.score for d in res.days)
    for i, w in enumerate(res.windows):
        assert D0 <= w.start <= w.peak <= w.end <= D0 + timedelta(days=29)
        for other in res.windows[i + 1:]:
            assert abs((w.peak - other.peak).days) >= 7
    for d in res.days:
        for h in d.hits:
            assert h.natal.owner == h.side
            assert h.transit.owner == "transit"
    best = res.best_within(30)
    assert best is not None and best.start <= D0 + timedelta(days=30)


def test_scan_windows_is_deterministic_and_uses_cache() -> None:
    provider = FakeEphemeris()
    cache = TTLCache(3600, capacity=64)
    first = scan_windows(NATAL_A, NATAL_B, 10, D0, TransitSky(provider, cache))
    calls = provider.calls
    second = scan_windows(NATAL_A, NATAL_B, 10, D0, TransitSky(provider, cache))
    assert provider.calls == calls
    assert first == second
    assert first.as_dict() == second.as_dict()


def test_scan_result_as_dict_without_hits() -> None:
    res = scan_windows(NATAL_A, NATAL_B, 5, D0, TransitSky(FakeEphemeris()))
    d = res.as_dict(best_within_days=3, include_hits=False)
    assert d["start_date"] == "2024-03-01"
    assert all("hits" not in day for day in d["days"])
    assert d["best"] is not None


@pytest.mark.parametrize("horizon", [0, -3, 2.5, True, "10"])
def test_scan_windows_rejects_bad_horizon(horizon) -> None:
    with pytest.raises(InvalidInput):
        scan_windows(NATAL_A, NATAL_B, horizon, D0, TransitSky(FakeEphemeris()))


def test_scan_windows_rejects_empty_chart() -> None:
    with pytest.raises(InvalidInput):
        scan_windows([], NATAL_B, 5, D0, TransitSky(FakeEphemeris()))


def test_window_config_from_mapping() -> None:
    cfg = WindowConfig.from_mapping({"expansion_ratio": "0.9", "max_windows": 2, "unknown": 1})
    assert cfg.expansion_ratio == 0.9
    assert cfg.max_windows == 2
    assert cfg.horizon_days == 45
    assert WindowConfig.from_mapping(None) == WindowConfig()


@pytest.mark.parametrize("raw,loc", [
    ({"max_shared_slow": 2.5}, ["windows", "max_shared_slow"]),
    ({"horizon_days": "soon"}, ["windows", "horizon_days"]),
    ({"expansion_ratio": float("nan")}, ["windows", "expansion_ratio"]),
    ({"max_windows": True}, ["windows", "max_windows"]),
])
def test_window_config_rejects_bad_values(raw, loc) -> None:
    with pytest.raises(InvalidInput) as ei:
        WindowConfig.from_mapping(raw)
    assert ei.value.errors()[0]["loc"] == loc


def test_window_config_accepts_integral_floats() -> None:
    assert WindowConfig.from_mapping({"max_shared_slow": 3.0, "min_gap_days": "5"}).max_shared_slow == 3
