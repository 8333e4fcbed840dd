# astrosync/core/timescales.py
"""
Civil time -> Julian Date (UT).

Inputs are a local calendar date, an optional local clock time and a fixed
offset from UTC in minutes (east positive). The calendar arithmetic goes
through ERFA (``eraCal2jd`` / ``eraJd2cal``) so the day numbering matches the
rest of the astronomy stack.

UT here means UTC taken as UT1; the sub-second DUT1 difference is far below
what house cusps or daily aspect scans resolve.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

import erfa

from astrosync.core.validators import InvalidInput, _err

__all__ = [
    "NOON",
    "UtcInstant",
    "resolve_instant",
    "julian_day_ut",
    "julian_day_noon_utc",
    "jd_to_datetime",
]

NOON = time(12, 0, 0)
_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class UtcInstant:
    utc: datetime
    jd_ut: float
    tz_offset_minutes: int
    time_known: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "utc": self.utc.isoformat(),
            "jd_ut": float(self.jd_ut),
            "tz_offset_minutes": int(self.tz_offset_minutes),
            "time_known": self.time_known,
        }


def _jd_from_utc(dt: datetime) -> float:
    djm0, djm = erfa.cal2jd(dt.year, dt.month, dt.day)
    seconds = dt.hour * 3600.0 + dt.minute * 60.0 + dt.second + dt.microsecond / 1e6
    return float(djm0) + float(djm) + seconds / _SECONDS_PER_DAY


def resolve_instant(
    date_local: date,
    time_local: Optional[time],
    tz_offset_minutes: int = 0,
) -> UtcInstant:
    """
    Local (date, time, offset) to a UTC instant. A missing time means local noon
    and ``time_known`` is False.
    """
    if not isinstance(date_local, date) or isinstance(date_local, datetime):
        raise InvalidInput([_err("date", "must be a calendar date")])
    if time_local is not None and not isinstance(time_local, time):
        raise InvalidInput([_err("time", "must be a clock time or None")])
    try:
        offset = int(tz_offset_minutes)
    except (TypeError, ValueError):
        raise InvalidInput([_err("tz_offset_minutes", "must be an integer")]) from None
    if not -14 * 60 <= offset <= 14 * 60:
        raise InvalidInput([_err("tz_offset_minutes", "must be within [-840, 840]")])

    local = datetime.combine(date_local, time_local or NOON)
    utc = (local - timedelta(minutes=offset)).replace(tzinfo=timezone.utc)
    return UtcInstant(
        utc=utc,
        jd_ut=_jd_from_utc(utc),
        tz_offset_minutes=offset,
        time_known=time_local is not None,
    )


def julian_day_ut(date_local: date, time_local: Optional[time], tz_offset_minutes: int = 0) -> float:
    return resolve_instant(date_local, time_local, tz_offset_minutes).jd_ut


def julian_day_noon_utc(day: date) -> float:
    """JD of 12:00 UTC on ``day``; the sampling instant of the daily scan."""
    return resolve_instant(day, NOON, 0).jd_ut


def jd_to_datetime(jd_ut: float) -> datetime:
    iy, im, iday, fd = erfa.jd2cal(float(jd_ut), 0.0)
    base = datetime(int(iy), int(im), int(iday), tzinfo=timezone.utc)
    return base + timedelta(seconds=round(float(fd) * _SECONDS_PER_DAY, 6))
