# astrosync/core/chart.py
"""
Chart assembly from a birth/event record.

- time and location known: requested house system (Placidus by default)
- time unknown: positions at local noon, whole-sign houses from the noon
  Ascendant, flagged ``no-time``; ASC/MC are not emitted as points
- location unknown: whole-sign houses from the Sun's sign, flagged ``solar``
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from astrosync.core.ephemeris_adapter import EphemerisProvider
from astrosync.core.houses import HouseCuspSet, compute_cusps, solar_houses
from astrosync.core.points import CelestialPoint
from astrosync.core.timescales import UtcInstant, resolve_instant
from astrosync.core.transits import transiting_points
from astrosync.core.validators import BirthInput, InvalidInput, _err

__all__ = ["NatalChart", "houses_for_birth", "compute_natal_chart"]


@dataclass(frozen=True)
class NatalChart:
    instant: UtcInstant
    points: Tuple[CelestialPoint, ...]
    houses: HouseCuspSet

    @property
    def approximation(self) -> str:
        return self.houses.approximation

    def point(self, name: str) -> Optional[CelestialPoint]:
        return next((p for p in self.points if p.name == name), None)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "instant": self.instant.to_dict(),
            "points": [
                {**p.as_dict(), "house": self.houses.house_of(p.longitude)} for p in self.points
            ],
            "houses": self.houses.as_dict(),
            "approximation": self.approximation,
        }


def _instant(birth: BirthInput) -> UtcInstant:
    return resolve_instant(birth.date_local, birth.time_local, birth.tz_offset_minutes)


def houses_for_birth(birth: BirthInput, *, sun_longitude: Optional[float] = None) -> HouseCuspSet:
    """House cusps only; the Sun-sign fallback uses ``sun_longitude`` when given."""
    instant = _instant(birth)
    if not birth.has_location:
        return solar_houses(instant.jd_ut, sun_longitude)
    if not birth.has_time:
        noon = compute_cusps(instant.jd_ut, birth.latitude, birth.longitude, "whole_sign")
        return replace(noon, approximation="no-time")
    return compute_cusps(instant.jd_ut, birth.latitude, birth.longitude, birth.house_system)


def compute_natal_chart(
    birth: BirthInput,
    provider: EphemerisProvider,
    *,
    allow_solar: bool = True,
    owner: Optional[str] = None,
) -> NatalChart:
    if not birth.has_location and not allow_solar:
        raise InvalidInput([
            _err("latitude", "required when the solar approximation is disabled"),
            _err("longitude", "required when the solar approximation is disabled"),
        ])
    instant = _instant(birth)
    bodies = transiting_points(provider, instant.jd_ut, owner=owner)
    sun = next(p for p in bodies if p.name == "Sun")

    houses = houses_for_birth(birth, sun_longitude=sun.longitude)
    points = list(bodies)
    if birth.has_location and birth.has_time:
        points.append(CelestialPoint("ASC", houses.angles.ascendant, False, owner))
        points.append(CelestialPoint("MC", houses.angles.midheaven, False, owner))
    return NatalChart(instant=instant, points=tuple(points), houses=houses)
