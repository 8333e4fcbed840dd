# astrosync/core/windows.py
"""
Window scanner: rank multi-day windows of favorable transits to two charts.

Pipeline per scan
-----------------
1. For every day of the horizon take the transiting sky at 12:00 UT and find
   transit→chart A and transit→chart B aspects (standard orbs).
2. Keep the day's strongest hits, weight each one for the romantic reading
   (``romance_weight``), sum, then apply the transiting Moon's dignity and a
   capped bonus for harmonious Moon contacts.
3. Build windows greedily around peak days (``build_windows``).
4. Select up to ``max_windows`` windows that are far enough apart in time and
   do not repeat the same slow-planet signatures (``select_windows``).

All tuning constants live in ``WindowConfig`` and can be set from the
``windows:`` section of the YAML config.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from astrosync.core.aspects import HARMONIOUS, AspectMatch, AspectOptions, find_aspects
from astrosync.core.points import CelestialPoint
from astrosync.core.validators import InvalidInput, _as_float, _err

log = logging.getLogger(__name__)

__all__ = [
    "WindowConfig",
    "ScoredHit",
    "DayScore",
    "DayWindow",
    "ScanResult",
    "romance_weight",
    "moon_dignity",
    "score_day",
    "build_windows",
    "select_windows",
    "scan_windows",
]

Sky = Callable[[date], List[CelestialPoint]]

# ─────────────────────────────────────────────────────────────────────────────
# Weights
# ─────────────────────────────────────────────────────────────────────────────
_ASPECT_BOOST: Dict[str, float] = {
    "trine": 1.25,
    "sextile": 1.25,
    "conjunction": 1.15,
    "opposition": 0.95,
    "square": 0.80,
}
_TRANSIT_BOOST: Dict[str, float] = {"Venus": 1.35, "Jupiter": 1.20, "Moon": 1.15, "Mars": 1.10}
_KEY_NATAL = frozenset({"Sun", "Moon", "Venus", "Mars", "ASC", "DSC", "MC", "IC"})
_KEY_NATAL_BOOST = 1.20
_HEAVY_TRANSITS = frozenset({"Saturn", "Neptune"})
_TENDER_NATAL = frozenset({"Moon", "Venus"})
_HEAVY_PENALTY = 0.75
_TIGHT_ORB_DEG = 2.0
_TIGHT_BOOST = 1.15

_MOON_DIGNITY: Dict[str, float] = {
    "Cancer": 1.15,      # domicile
    "Taurus": 1.12,      # exaltation
    "Capricorn": 0.90,   # detriment
    "Scorpio": 0.88,     # fall
}
# Moon contacts that count toward the daily bonus (angles on the horizon only)
_MOON_KEY_TARGETS = frozenset({"Sun", "Moon", "Venus", "Mars", "ASC", "DSC"})


@dataclass(frozen=True)
class WindowConfig:
    horizon_days: int = 45
    expansion_ratio: float = 0.85
    min_gap_days: int = 7
    max_shared_slow: int = 2
    max_windows: int = 3
    best_within_days: int = 30
    day_hit_limit: int = 10
    representative_count: int = 3
    moon_bonus_cap: float = 0.30
    moon_harmony_step: float = 0.05
    moon_key_step: float = 0.03

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "WindowConfig":
        if not raw:
            return cls()
        kwargs: Dict[str, Any] = {}
        errs: List[Dict[str, Any]] = []
        for f in fields(cls):
            if f.name not in raw or raw[f.name] is None:
                continue
            v = _as_float(raw[f.name])
            if isinstance(f.default, int):
                if v is None or v != int(v):
                    errs.append(_err(["windows", f.name], "must be an integer"))
                    continue
                kwargs[f.name] = int(v)
            elif v is None:
                errs.append(_err(["windows", f.name], "must be a finite number"))
            else:
                kwargs[f.name] = v
        if errs:
            raise InvalidInput(errs)
        return cls(**kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ScoredHit:
    match: AspectMatch
    side: str
    weight: float

    @property
    def transit(self) -> CelestialPoint:
        return self.match.point_a

    @property
    def natal(self) -> CelestialPoint:
        return self.match.point_b

    @property
    def slow_signature(self) -> Optional[str]:
        """Canonical body|aspect|side:point key; None when the Moon is involved."""
        if self.transit.name == "Moon" or self.natal.name == "Moon":
            return None
        return f"{self.transit.name}|{self.match.aspect}|{self.side}:{self.natal.name}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "transit": self.transit.name,
            "aspect": self.match.aspect,
            "natal": self.natal.name,
            "side": self.side,
            "orb": round(float(self.match.orb), 4),
            "applying": self.match.applying,
            "score": round(float(self.match.score), 4),
            "weight": round(float(self.weight), 4),
        }


@dataclass(frozen=True)
class DayScore:
    day: date
    score: float
    moon_sign: Optional[str]
    hits: Tuple[ScoredHit, ...] = ()
    moon_factor: float = 1.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "score": round(float(self.score), 4),
            "moon_sign": self.moon_sign,
            "moon_factor": round(float(self.moon_factor), 4),
            "hits": [h.as_dict() for h in self.hits],
        }


@dataclass(frozen=True)
class DayWindow:
    start: date
    end: date
    peak: date
    score: float
    moon_signs: Tuple[str, ...] = ()
    representative_aspects: Tuple[AspectMatch, ...] = ()
    slow_signatures: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "peak": self.peak.isoformat(),
            "days": self.length_days,
            "score": round(float(self.score), 4),
            "moon_signs": list(self.moon_signs),
            "representative_aspects": [m.as_dict() for m in self.representative_aspects],
            "slow_signatures": sorted(self.slow_signatures),
        }


@dataclass(frozen=True)
class ScanResult:
    start_date: date
    windows: Tuple[DayWindow, ...]
    candidates: Tuple[DayWindow, ...]
    days: Tuple[DayScore, ...]
    config: WindowConfig = field(default_factory=WindowConfig)

    def best_within(self, days: Optional[int] = None) -> Optional[DayWindow]:
        """
        Highest-scoring window starting within ``days`` of the scan start,
        else the best window overall; None only when nothing was scanned.
        """
        if not self.candidates:
            return None
        limit = self.config.best_within_days if days is None else int(days)
        horizon = self.start_date + timedelta(days=limit)
        near = [w for w in self.candidates if w.start <= horizon]
        pool = near or list(self.candidates)
        return max(pool, key=lambda w: (w.score, -w.start.toordinal()))

    def as_dict(self, best_within_days: Optional[int] = None, include_hits: bool = True) -> Dict[str, Any]:
        best = self.best_within(best_within_days)
        days = [d.as_dict() for d in self.days]
        if not include_hits:
            for d in days:
                d.pop("hits")
        return {
            "start_date": self.start_date.isoformat(),
            "windows": [w.as_dict() for w in self.windows],
            "best": best.as_dict() if best else None,
            "days": days,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Day scoring
# ─────────────────────────────────────────────────────────────────────────────
def romance_weight(match: AspectMatch) -> float:
    """AspectEngine score reweighted for a transit (point_a) to natal (point_b) contact."""
    t, n = match.point_a.name, match.point_b.name
    w = match.score
    w *= _ASPECT_BOOST.get(match.aspect, 1.0)
    w *= _TRANSIT_BOOST.get(t, 1.0)
    if n in _KEY_NATAL:
        w *= _KEY_NATAL_BOOST
    if t in _HEAVY_TRANSITS and n in _TENDER_NATAL:
        w *= _HEAVY_PENALTY
    if match.orb <= _TIGHT_ORB_DEG:
        w *= _TIGHT_BOOST
    return w


def moon_dignity(sign: Optional[str]) -> float:
    return _MOON_DIGNITY.get(sign or "", 1.0)


def score_day(
    day: date,
    transits: Sequence[CelestialPoint],
    natal_a: Sequence[CelestialPoint],
    natal_b: Sequence[CelestialPoint],
    config: Optional[WindowConfig] = None,
) -> DayScore:
    cfg = config or WindowConfig()
    hits: List[ScoredHit] = []
    for side, natal in (("A", natal_a), ("B", natal_b)):
        for m in find_aspects(transits, natal, AspectOptions()):
            hits.append(ScoredHit(m, side, romance_weight(m)))
    hits.sort(key=lambda h: (-h.match.score, h.match.orb))
    kept = tuple(hits[: cfg.day_hit_limit])

    total = sum(h.weight for h in kept)
    moon = next((p for p in transits if p.name == "Moon"), None)
    moon_sign = moon.sign if moon is not None else None

    moon_hits = [h for h in kept if h.transit.name == "Moon"]
    harmonious = sum(1 for h in moon_hits if h.match.aspect in HARMONIOUS)
    to_key = sum(1 for h in moon_hits if h.natal.name in _MOON_KEY_TARGETS)
    bonus = min(cfg.moon_bonus_cap, cfg.moon_harmony_step * harmonious + cfg.moon_key_step * to_key)
    factor = moon_dignity(moon_sign) * (1.0 + bonus)

    return DayScore(day=day, score=total * factor, moon_sign=moon_sign, hits=kept, moon_factor=factor)


# ─────────────────────────────────────────────────────────────────────────────
# Windows
# ─────────────────────────────────────────────────────────────────────────────
def _collapse(seq: Sequence[Optional[str]]) -> Tuple[str, ...]:
    out: List[str] = []
    for s in seq:
        if s and (not out or out[-1] != s):
            out.append(s)
    return tuple(out)


def _make_window(span: Sequence[DayScore], peak: DayScore, cfg: WindowConfig) -> DayWindow:
    pool = [h for d in span for h in d.hits if h.match.is_harmonious]
    pool.sort(key=lambda h: (-h.weight, h.match.orb))
    reps: List[AspectMatch] = []
    seen = set()
    for h in pool:
        key = (h.transit.name, h.match.aspect, h.side, h.natal.name)
        if key in seen:
            continue
        seen.add(key)
        reps.append(h.match)
        if len(reps) >= cfg.representative_count:
            break
    slow = frozenset(s for d in span for h in d.hits for s in (h.slow_signature,) if s)
    return DayWindow(
        start=span[0].day,
        end=span[-1].day,
        peak=peak.day,
        score=peak.score,
        moon_signs=_collapse([d.moon_sign for d in span]),
        representative_aspects=tuple(reps),
        slow_signatures=slow,
    )


def build_windows(days: Sequence[DayScore], config: Optional[WindowConfig] = None) -> List[DayWindow]:
    """
    Greedy expansion around peaks, strongest first. A neighbor joins while its
    score is at least ``expansion_ratio`` of the peak and no earlier window has
    claimed it. Returned in descending peak-score order.
    """
    cfg = config or WindowConfig()
    n = len(days)
    claimed = [False] * n
    out: List[DayWindow] = []
    for p in sorted(range(n), key=lambda i: (-days[i].score, i)):
        if claimed[p]:
            continue
        floor = cfg.expansion_ratio * days[p].score
        lo = hi = p
        while lo > 0 and not claimed[lo - 1] and days[lo - 1].score >= floor:
            lo -= 1
        while hi < n - 1 and not claimed[hi + 1] and days[hi + 1].score >= floor:
            hi += 1
        for i in range(lo, hi + 1):
            claimed[i] = True
        out.append(_make_window(days[lo:hi + 1], days[p], cfg))
    return out


def select_windows(candidates: Sequence[DayWindow], config: Optional[WindowConfig] = None) -> List[DayWindow]:
    """
    Keep a window only if its peak is at least ``min_gap_days`` from every kept
    peak and it shares fewer than ``max_shared_slow`` slow signatures with each.
    """
    cfg = config or WindowConfig()
    chosen: List[DayWindow] = []
    for w in sorted(candidates, key=lambda w: (-w.score, w.peak)):
        if len(chosen) >= cfg.max_windows:
            break
        if all(
            abs((w.peak - c.peak).days) >= cfg.min_gap_days
            and len(w.slow_signatures & c.slow_signatures) < cfg.max_shared_slow
            for c in chosen
        ):
            chosen.append(w)
    return chosen


def _tag(points: Sequence[CelestialPoint], owner: str, loc: str) -> List[CelestialPoint]:
    if not points:
        raise InvalidInput([_err(loc, "must contain at least one point")])
    out = []
    for p in points:
        if not isinstance(p, CelestialPoint):
            raise InvalidInput([_err(loc, "must contain CelestialPoint items")])
        out.append(p if p.owner == owner else p.with_owner(owner))
    return out


def scan_windows(
    natal_a: Sequence[CelestialPoint],
    natal_b: Sequence[CelestialPoint],
    horizon_days: Optional[int],
    start_date: date,
    sky: Sky,
    config: Optional[WindowConfig] = None,
) -> ScanResult:
    """
    Score every day of ``[start_date, start_date + horizon_days)`` and return the
    selected windows together with all candidates and the per-day scores.

    ``sky`` maps a date to the transiting points of that day (see
    ``transits.TransitSky``); provider failures propagate.
    """
    cfg = config or WindowConfig()
    horizon = cfg.horizon_days if horizon_days is None else horizon_days
    if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon < 1:
        raise InvalidInput([_err("horizon_days", "must be a positive integer")])
    if not isinstance(start_date, date):
        raise InvalidInput([_err("start_date", "must be a date")])
    a = _tag(natal_a, "A", "natal_a")
    b = _tag(natal_b, "B", "natal_b")

    days: List[DayScore] = []
    for i in range(horizon):
        day = start_date + timedelta(days=i)
        days.append(score_day(day, sky(day), a, b, cfg))

    candidates = build_windows(days, cfg)
    windows = select_windows(candidates, cfg)
    log.info(
        "window scan %s +%dd: %d candidates, %d selected",
        start_date.isoformat(), horizon, len(candidates), len(windows),
    )
    return ScanResult(
        start_date=start_date,
        windows=tuple(windows),
        candidates=tuple(candidates),
        days=tuple(days),
        config=cfg,
    )
