# astrosync/core/transits.py
"""
Transiting sky: the ten bodies as CelestialPoints at a given instant or day.

Longitudes come from the provider's RA/Dec converted under the mean obliquity
of date. A body is retrograde when its longitude decreased over the preceding
day (signed shortest difference, so the 360→0 wrap is not mistaken for motion).

The listing helpers (`transit_events`, `transit_calendar`) rank what the sky
of a date does to one chart, per day or over a run of days such as a month.
"""
from __future__ import annotations

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from astrosync.core.aspects import AspectMatch, AspectOptions, find_aspects
from astrosync.core.coordinates import equatorial_to_ecliptic, mean_obliquity, norm_deg, wrap_deg180
from astrosync.core.ephemeris_adapter import EphemerisProvider, EquatorialPosition
from astrosync.core.points import BODIES, CelestialPoint
from astrosync.core.timescales import julian_day_noon_utc
from astrosync.core.validators import InvalidInput, _err
from astrosync.utils.cache import TTLCache

log = logging.getLogger(__name__)

__all__ = [
    "ecliptic_longitude",
    "body_longitude",
    "transiting_points",
    "TransitSky",
    "TransitDay",
    "transit_events",
    "transit_calendar",
    "month_span",
]

_RETRO_LOOKBACK_DAYS = 1.0


def ecliptic_longitude(pos: EquatorialPosition, jd_ut: float) -> float:
    lon, _lat = equatorial_to_ecliptic(
        math.radians(pos.right_ascension_deg),
        math.radians(pos.declination_deg),
        mean_obliquity(jd_ut),
    )
    return norm_deg(math.degrees(lon))


def body_longitude(provider: EphemerisProvider, body: str, jd_ut: float) -> float:
    return ecliptic_longitude(provider.position(body, jd_ut), jd_ut)


def transiting_points(
    provider: EphemerisProvider,
    jd_ut: float,
    bodies: Sequence[str] = BODIES,
    owner: Optional[str] = "transit",
) -> List[CelestialPoint]:
    out: List[CelestialPoint] = []
    for body in bodies:
        now = body_longitude(provider, body, jd_ut)
        before = body_longitude(provider, body, jd_ut - _RETRO_LOOKBACK_DAYS)
        out.append(CelestialPoint(body, now, wrap_deg180(now - before) < 0.0, owner))
    return out


class TransitSky:
    """
    Callable ``day -> transiting points at 12:00 UT`` for the window scanner.
    Days already computed are served from the injected cache.
    """

    def __init__(self, provider: EphemerisProvider, cache: Optional[TTLCache] = None,
                 bodies: Iterable[str] = BODIES):
        self.provider = provider
        self.cache = cache
        self.bodies = tuple(bodies)

    def __call__(self, day: date) -> List[CelestialPoint]:
        if self.cache is None:
            return self._compute(day)
        return self.cache.get_or_set(("transit-sky", day.isoformat(), self.bodies), lambda: self._compute(day))

    def _compute(self, day: date) -> List[CelestialPoint]:
        jd = julian_day_noon_utc(day)
        log.debug("transit sky for %s (jd=%.1f)", day, jd)
        return transiting_points(self.provider, jd, self.bodies)


# ─────────────────────────────────────────────────────────────────────────────
# Transit listings (one chart)
# ─────────────────────────────────────────────────────────────────────────────
DEFAULT_TOP_N = 5
MAX_TOP_N = 99


@dataclass(frozen=True)
class TransitDay:
    day: date
    events: Tuple[AspectMatch, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "events": [
                {**m.as_dict(), "transit": m.point_a.name, "natal": m.point_b.name}
                for m in self.events
            ],
        }


def _check_top_n(top_n: Optional[int]) -> Optional[int]:
    if top_n is None:
        return None
    if isinstance(top_n, bool) or not isinstance(top_n, int) or not 1 <= top_n <= MAX_TOP_N:
        raise InvalidInput([_err("limit", f"must be an integer in [1, {MAX_TOP_N}]")])
    return top_n


def transit_events(
    natal: Sequence[CelestialPoint],
    day: date,
    sky: Callable[[date], List[CelestialPoint]],
    top_n: Optional[int] = DEFAULT_TOP_N,
) -> TransitDay:
    """
    Transit→natal aspects for ``day``, strongest first. Scored with the natal
    tightness curve (0.6 + 0.4·tightness) and standard orbs; ``top_n=None``
    keeps every hit.
    """
    if not natal:
        raise InvalidInput([_err("natal", "must contain at least one point")])
    opts = AspectOptions(variant="natal", top_n=_check_top_n(top_n))
    return TransitDay(day=day, events=tuple(find_aspects(sky(day), natal, opts)))


def transit_calendar(
    natal: Sequence[CelestialPoint],
    start: date,
    days: int,
    sky: Callable[[date], List[CelestialPoint]],
    top_n: Optional[int] = DEFAULT_TOP_N,
    *,
    keep_empty: bool = False,
) -> List[TransitDay]:
    """``transit_events`` for each of ``days`` consecutive dates; empty days dropped unless asked."""
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise InvalidInput([_err("days", "must be a positive integer")])
    out: List[TransitDay] = []
    for i in range(days):
        td = transit_events(natal, start + timedelta(days=i), sky, top_n)
        if td.events or keep_empty:
            out.append(td)
    log.debug("transit calendar %s +%dd: %d days with hits", start, days, len(out))
    return out


def month_span(year: int, month: int) -> Tuple[date, int]:
    """First day of the month and its length in days."""
    if not 1 <= month <= 12:
        raise InvalidInput([_err("month", "month must be within 1..12")])
    return date(year, month, 1), calendar.monthrange(year, month)[1]
