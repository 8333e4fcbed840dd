# astrosync/core/points.py
"""
Celestial points, the body catalog and the zodiac.

Single source of truth for:
- canonical body / angle names and their aliases
- the five weight classes used by aspect scoring
- mean daily speeds (applying/separating heuristic)
- sign derivation from ecliptic longitude
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

from astrosync.core.validators import InvalidInput, _err

__all__ = [
    "BODIES", "ANGLES", "SIGNS", "SLOW_BODIES",
    "PointClass", "POINT_CLASS", "POINT_WEIGHTS", "MEAN_DAILY_SPEED",
    "canonical_name", "sign_index", "sign_name",
    "CelestialPoint",
]

# ── catalog ──────────────────────────────────────────────────────────────────
BODIES: Tuple[str, ...] = (
    "Sun", "Moon", "Mercury", "Venus", "Mars",
    "Jupiter", "Saturn", "Uranus", "Neptune", "Pluto",
)
ANGLES: Tuple[str, ...] = ("ASC", "MC", "DSC", "IC")

SLOW_BODIES: Tuple[str, ...] = ("Jupiter", "Saturn", "Uranus", "Neptune", "Pluto")

_ALIASES: Dict[str, str] = {
    "asc": "ASC", "ascendant": "ASC", "rising": "ASC",
    "mc": "MC", "midheaven": "MC", "medium coeli": "MC",
    "dsc": "DSC", "desc": "DSC", "descendant": "DSC",
    "ic": "IC", "imum coeli": "IC",
}
_ALIASES.update({b.lower(): b for b in BODIES})

SIGNS: Tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

# ── weight classes ───────────────────────────────────────────────────────────
PointClass = Literal["luminary", "personal", "social", "outer", "angle"]

POINT_CLASS: Dict[str, PointClass] = {
    "Sun": "luminary", "Moon": "luminary",
    "Mercury": "personal", "Venus": "personal", "Mars": "personal",
    "Jupiter": "social", "Saturn": "social",
    "Uranus": "outer", "Neptune": "outer", "Pluto": "outer",
    "ASC": "angle", "MC": "angle", "DSC": "angle", "IC": "angle",
}

POINT_WEIGHTS: Dict[PointClass, float] = {
    "luminary": 1.00,
    "angle": 0.95,
    "personal": 0.90,
    "social": 0.80,
    "outer": 0.70,
}

# Degrees/day. Angles are treated as fixed.
MEAN_DAILY_SPEED: Dict[str, float] = {
    "Sun": 0.9856, "Moon": 13.176,
    "Mercury": 1.2, "Venus": 1.2, "Mars": 0.5,
    "Jupiter": 0.083, "Saturn": 0.033,
    "Uranus": 0.012, "Neptune": 0.006, "Pluto": 0.004,
    "ASC": 0.0, "MC": 0.0, "DSC": 0.0, "IC": 0.0,
}


def canonical_name(name: str) -> Optional[str]:
    """Return the canonical point name or None when unknown."""
    if not isinstance(name, str):
        return None
    return _ALIASES.get(name.strip().lower())


def sign_index(longitude: float) -> int:
    return int((float(longitude) % 360.0) // 30.0) % 12


def sign_name(longitude: float) -> str:
    return SIGNS[sign_index(longitude)]


# ── point record ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class CelestialPoint:
    """
    A named point on the ecliptic.

    ``owner`` tags which chart the point belongs to ("A", "B", "transit", ...).
    Names are canonicalized on construction; longitude is normalized to [0, 360).
    """
    name: str
    longitude: float
    retrograde: bool = False
    owner: Optional[str] = None

    def __post_init__(self) -> None:
        canon = canonical_name(self.name)
        if canon is None:
            raise InvalidInput([_err(["name"], f"unknown point name {self.name!r}")])
        try:
            lon = float(self.longitude)
        except (TypeError, ValueError):
            raise InvalidInput([_err(["longitude"], "must be a number")]) from None
        if not math.isfinite(lon):
            raise InvalidInput([_err(["longitude"], "must be finite")])
        lon %= 360.0
        object.__setattr__(self, "name", canon)
        object.__setattr__(self, "longitude", 0.0 if lon >= 360.0 else lon)
        object.__setattr__(self, "retrograde", bool(self.retrograde))

    # derived
    @property
    def sign_index(self) -> int:
        return sign_index(self.longitude)

    @property
    def sign(self) -> str:
        return SIGNS[self.sign_index]

    @property
    def degree_in_sign(self) -> float:
        return self.longitude - 30.0 * self.sign_index

    @property
    def point_class(self) -> PointClass:
        return POINT_CLASS[self.name]

    @property
    def weight(self) -> float:
        return POINT_WEIGHTS[self.point_class]

    @property
    def mean_speed(self) -> float:
        return MEAN_DAILY_SPEED[self.name]

    @property
    def is_angle(self) -> bool:
        return self.point_class == "angle"

    @property
    def key(self) -> str:
        return f"{self.owner}:{self.name}" if self.owner else self.name

    def with_owner(self, owner: Optional[str]) -> "CelestialPoint":
        return CelestialPoint(self.name, self.longitude, self.retrograde, owner)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "longitude": float(self.longitude),
            "retrograde": self.retrograde,
            "sign": self.sign,
            "degree_in_sign": float(self.degree_in_sign),
            "class": self.point_class,
            "owner": self.owner,
        }
