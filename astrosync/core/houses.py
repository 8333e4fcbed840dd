# astrosync/core/houses.py
"""
House cusps: Placidus and Whole Sign, with an extreme-latitude policy.

Public API
----------
compute_cusps(jd_ut, latitude, longitude, system="placidus") -> HouseCuspSet
assign_house(longitude, cusps) -> int (1..12)
whole_sign_cusps(longitude) -> 12 cusps starting at the sign of ``longitude``
solar_houses(jd_ut) -> HouseCuspSet (Sun-sign whole-sign approximation)

Policy
------
Placidus divides the diurnal/nocturnal semi-arcs in thirds. The semi-arc is
acos(-tan φ · tan δ), which has no solution once |tan φ · tan δ| > 1, so above
POLAR_LIMIT_DEG of latitude Placidus is replaced by Whole Sign cusps seeded from
the Ascendant and the result is flagged ``extreme-latitude-fallback``.

Cusps are stored in house order: ``cusps[i]`` is the cusp of house ``i + 1``.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Sequence, Tuple

from astrosync.core.coordinates import (
    angular_separation,
    declination_of_longitude,
    forward_distance,
    local_sidereal_time,
    longitude_of_right_ascension,
    mean_obliquity,
    norm_deg,
    norm_rad,
    right_ascension_of_longitude,
    wrap_pi,
)
from astrosync.core.solvers import RootResult, solve_bracketed
from astrosync.core.validators import InvalidInput, _err, normalize_house_system

log = logging.getLogger(__name__)

__all__ = [
    "POLAR_LIMIT_DEG",
    "Approximation",
    "Angles",
    "HouseCuspSet",
    "compute_cusps",
    "assign_house",
    "whole_sign_cusps",
    "approximate_sun_longitude",
    "solar_houses",
]

# ─────────────────────────────────────────────────────────────────────────────
# Policy knobs
# ─────────────────────────────────────────────────────────────────────────────
POLAR_LIMIT_DEG = float(os.getenv("ASTRO_POLAR_LIMIT_DEG", "66.5"))
# tan(φ) blows up at the geographic poles
_LAT_CLAMP_DEG = 89.999999
_CUSP_TOL_RAD = 1e-10
_COINCIDENT_DEG = 1e-9

Approximation = Literal["none", "no-time", "solar", "extreme-latitude-fallback"]

# (house number, k, sign) for the quadrant cusps solved on the ASC↔MC arc
# (upper east, RA = LST + k·SDA) and the MC↔DSC arc (upper west, RA = LST − k·SDA)
_EAST_CUSPS: Tuple[Tuple[int, float, int], ...] = ((11, 1.0 / 3.0, +1), (12, 2.0 / 3.0, +1))
_WEST_CUSPS: Tuple[Tuple[int, float, int], ...] = ((9, 1.0 / 3.0, -1), (8, 2.0 / 3.0, -1))


# ─────────────────────────────────────────────────────────────────────────────
# Result types
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Angles:
    ascendant: float
    midheaven: float

    @property
    def descendant(self) -> float:
        return norm_deg(self.ascendant + 180.0)

    @property
    def imum_coeli(self) -> float:
        return norm_deg(self.midheaven + 180.0)

    def as_dict(self) -> Dict[str, float]:
        return {
            "asc": float(self.ascendant),
            "mc": float(self.midheaven),
            "dsc": float(self.descendant),
            "ic": float(self.imum_coeli),
        }


@dataclass(frozen=True)
class HouseCuspSet:
    system: str
    cusps: Tuple[float, ...]
    angles: Angles
    approximation: Approximation = "none"
    converged: bool = True
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.cusps) != 12:
            raise ValueError(f"expected 12 cusps, got {len(self.cusps)}")

    @property
    def ascendant(self) -> float:
        return self.cusps[0]

    @property
    def midheaven(self) -> float:
        return self.cusps[9]

    def house_of(self, longitude: float) -> int:
        return assign_house(longitude, self.cusps)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "system": self.system,
            "cusps": [float(c) for c in self.cusps],
            "asc": float(self.ascendant),
            "mc": float(self.midheaven),
            "angles": self.angles.as_dict(),
            "approximation": self.approximation,
            "converged": self.converged,
            "diagnostics": dict(self.diagnostics),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Angles
# ─────────────────────────────────────────────────────────────────────────────
def _ascendant(lst: float, eps: float, lat: float) -> float:
    """
    Ascendant in radians. The horizon formula yields the ecliptic point setting
    in the west; the rising point is its antipode.
    """
    y = -math.cos(lst)
    x = math.sin(lst) * math.cos(eps) + math.tan(lat) * math.sin(eps)
    setting = math.atan2(y, x)
    return norm_rad(setting + math.pi)


def _semi_diurnal_arc(lat: float, dec: float) -> float:
    x = -math.tan(lat) * math.tan(dec)
    return math.acos(max(-1.0, min(1.0, x)))


def _quadrant_cusp(
    lst: float, eps: float, lat: float, arc_from: float, arc_to: float, k: float, sign: int
) -> RootResult:
    def residual(lam: float) -> float:
        sda = _semi_diurnal_arc(lat, declination_of_longitude(lam, eps))
        target = lst + sign * k * sda
        return wrap_pi(right_ascension_of_longitude(lam, eps) - target)

    # residual is wrapped into (-π, π]; a jump of ~2π is the wrap, not a root
    return solve_bracketed(residual, arc_from, arc_to, tolerance=_CUSP_TOL_RAD, max_jump=math.pi)


def _deg(x_rad: float) -> float:
    return norm_deg(math.degrees(x_rad))


# ─────────────────────────────────────────────────────────────────────────────
# Whole Sign
# ─────────────────────────────────────────────────────────────────────────────
def whole_sign_cusps(longitude: float) -> Tuple[float, ...]:
    start = 30.0 * math.floor(norm_deg(longitude) / 30.0)
    return tuple(norm_deg(start + 30.0 * i) for i in range(12))


# ─────────────────────────────────────────────────────────────────────────────
# Main entry
# ─────────────────────────────────────────────────────────────────────────────
def _check_inputs(jd_ut: Any, latitude: Any, longitude: Any) -> Tuple[float, float, float]:
    errs: List[Dict[str, Any]] = []
    vals = []
    for name, v, lo, hi in (
        ("jd_ut", jd_ut, -1e9, 1e9),
        ("latitude", latitude, -90.0, 90.0),
        ("longitude", longitude, -180.0, 360.0),
    ):
        try:
            f = float(v)
        except (TypeError, ValueError):
            errs.append(_err(name, "must be a number"))
            continue
        if not math.isfinite(f) or not (lo <= f <= hi):
            errs.append(_err(name, f"must be finite and within [{lo:g}, {hi:g}]"))
            continue
        vals.append(f)
    if errs:
        raise InvalidInput(errs)
    return vals[0], vals[1], vals[2]


def compute_cusps(
    jd_ut: float,
    latitude: float,
    longitude: float,
    system: str = "placidus",
) -> HouseCuspSet:
    """
    Compute the 12 house cusps for a UT Julian Date and an observer location
    (latitude north-positive, longitude east-positive, degrees).
    """
    jd, lat_deg, lon_deg = _check_inputs(jd_ut, latitude, longitude)
    system = normalize_house_system(system)

    eps = mean_obliquity(jd)
    lst = local_sidereal_time(jd, lon_deg)
    lat = math.radians(max(-_LAT_CLAMP_DEG, min(_LAT_CLAMP_DEG, lat_deg)))

    mc_root = longitude_of_right_ascension(lst, eps)
    mc = mc_root.value
    asc = _ascendant(lst, eps, lat)
    angles = Angles(ascendant=_deg(asc), midheaven=_deg(mc))
    diagnostics: Dict[str, Any] = {
        "obliquity_deg": math.degrees(eps),
        "lst_deg": _deg(lst),
        "mc": mc_root.as_dict(),
    }

    if system == "whole_sign":
        return HouseCuspSet(
            system="whole_sign",
            cusps=whole_sign_cusps(angles.ascendant),
            angles=angles,
            converged=mc_root.converged,
            diagnostics=diagnostics,
        )

    if abs(lat_deg) > POLAR_LIMIT_DEG:
        log.info(
            "placidus undefined at latitude %.4f (limit %.2f); using whole sign from ASC %.4f",
            lat_deg, POLAR_LIMIT_DEG, angles.ascendant,
        )
        diagnostics["requested"] = "placidus"
        return HouseCuspSet(
            system="whole_sign",
            cusps=whole_sign_cusps(angles.ascendant),
            angles=angles,
            approximation="extreme-latitude-fallback",
            converged=mc_root.converged,
            diagnostics=diagnostics,
        )

    dsc = norm_rad(asc + math.pi)
    quadrant: Dict[int, float] = {}
    converged = mc_root.converged
    for arc_from, arc_to, table in ((asc, mc, _EAST_CUSPS), (mc, dsc, _WEST_CUSPS)):
        for house, k, sign in table:
            root = _quadrant_cusp(lst, eps, lat, arc_from, arc_to, k, sign)
            quadrant[house] = _deg(root.value)
            diagnostics[f"cusp_{house}"] = root.as_dict()
            converged = converged and root.converged

    if not converged:
        log.warning(
            "placidus solver did not converge cleanly (jd=%.6f lat=%.4f lon=%.4f); best-effort cusps",
            jd, lat_deg, lon_deg,
        )

    asc_d, mc_d = angles.ascendant, angles.midheaven
    cusps = (
        asc_d,
        norm_deg(quadrant[8] + 180.0),
        norm_deg(quadrant[9] + 180.0),
        norm_deg(mc_d + 180.0),
        norm_deg(quadrant[11] + 180.0),
        norm_deg(quadrant[12] + 180.0),
        norm_deg(asc_d + 180.0),
        quadrant[8],
        quadrant[9],
        mc_d,
        quadrant[11],
        quadrant[12],
    )
    return HouseCuspSet(
        system="placidus",
        cusps=cusps,
        angles=angles,
        converged=converged,
        diagnostics=diagnostics,
    )


# ─────────────────────────────────────────────────────────────────────────────
# House assignment
# ─────────────────────────────────────────────────────────────────────────────
def _clockwise_order(cusps: Sequence[float]) -> List[int]:
    """Walk from cusp I, always stepping to the unvisited cusp with the smallest forward step."""
    order = [0]
    unvisited = set(range(1, len(cusps)))
    cur = 0
    while unvisited:
        nxt = min(unvisited, key=lambda k: (forward_distance(cusps[cur], cusps[k]), k))
        order.append(nxt)
        unvisited.discard(nxt)
        cur = nxt
    return order


def assign_house(longitude: float, cusps: Sequence[float]) -> int:
    """
    House number (1..12) containing ``longitude``.

    Arcs are half-open ``[cusp, next cusp)`` in increasing longitude. Cusps that
    coincide form one boundary; the arc starting there belongs to the lowest
    house number among them and the others are empty.
    """
    if len(cusps) != 12:
        raise InvalidInput([_err("cusps", "must contain exactly 12 longitudes")])
    cs = [norm_deg(c) for c in cusps]
    lon = norm_deg(longitude)

    groups: List[List[float]] = []   # [start longitude, house number]
    for idx in _clockwise_order(cs):
        if groups and angular_separation(cs[idx], groups[-1][0]) <= _COINCIDENT_DEG:
            groups[-1][1] = min(groups[-1][1], idx + 1)
        else:
            groups.append([cs[idx], idx + 1])
    if len(groups) > 1 and angular_separation(groups[-1][0], groups[0][0]) <= _COINCIDENT_DEG:
        groups[0][1] = min(groups[0][1], groups[-1][1])
        groups.pop()

    if len(groups) == 1:
        return int(groups[0][1])
    for j, (start, house) in enumerate(groups):
        end = groups[(j + 1) % len(groups)][0]
        if forward_distance(start, lon) < forward_distance(start, end):
            return int(house)
    return int(groups[-1][1])


# ─────────────────────────────────────────────────────────────────────────────
# Sun-sign approximation
# ─────────────────────────────────────────────────────────────────────────────
def approximate_sun_longitude(jd_ut: float) -> float:
    """Low-precision apparent Sun longitude in degrees (~0.01° over 1950-2050)."""
    n = float(jd_ut) - 2451545.0
    mean_lon = 280.46 + 0.9856474 * n
    g = math.radians(357.528 + 0.9856003 * n)
    return norm_deg(mean_lon + 1.915 * math.sin(g) + 0.020 * math.sin(2.0 * g))


def solar_houses(jd_ut: float, sun_longitude: float | None = None) -> HouseCuspSet:
    """Whole-sign houses from the Sun's sign, for charts without a location."""
    sun = approximate_sun_longitude(jd_ut) if sun_longitude is None else norm_deg(sun_longitude)
    cusps = whole_sign_cusps(sun)
    return HouseCuspSet(
        system="whole_sign",
        cusps=cusps,
        angles=Angles(ascendant=cusps[0], midheaven=cusps[9]),
        approximation="solar",
        diagnostics={"sun_deg": sun},
    )
