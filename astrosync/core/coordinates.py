# astrosync/core/coordinates.py
"""
Coordinate transforms on the ecliptic/equator pair plus sidereal time.

Everything here is pure math (no state, no I/O). Angles are radians unless a
function name ends in ``_deg``. Results are normalized after every
trigonometric step.

Formulas follow Meeus, *Astronomical Algorithms* (2nd ed.):
  - mean obliquity ε0 (22.2, IAU 1980 polynomial)
  - GMST (12.4)
"""
from __future__ import annotations

import math
from typing import Tuple

from astrosync.core.solvers import RootResult, newton_refine, solve_bracketed

__all__ = [
    "TAU",
    "J2000",
    "norm_rad", "norm_deg", "wrap_pi", "wrap_deg180",
    "angular_separation", "forward_distance",
    "julian_centuries",
    "mean_obliquity",
    "ecliptic_to_equatorial",
    "equatorial_to_ecliptic",
    "right_ascension_of_longitude",
    "right_ascension_derivative",
    "declination_of_longitude",
    "longitude_of_right_ascension",
    "greenwich_mean_sidereal_time",
    "local_sidereal_time",
]

TAU = 2.0 * math.pi
J2000 = 2451545.0
DAYS_PER_CENTURY = 36525.0

# Inverse map settles well inside this; ~0.002 arcsec.
_RA_TOL_RAD = 1e-11
_NEWTON_STEPS = 6
_SAFETY_BRACKET_RAD = math.radians(2.0)


# ─────────────────────────────────────────────────────────────────────────────
# Angle normalization
# ─────────────────────────────────────────────────────────────────────────────

def norm_rad(x: float) -> float:
    """Normalize radians into [0, 2π)."""
    v = math.fmod(float(x), TAU)
    if v < 0.0:
        v += TAU
    # fmod of a tiny negative can land exactly on TAU after the add
    return 0.0 if v >= TAU else v


def norm_deg(x: float) -> float:
    """Normalize degrees into [0, 360)."""
    v = float(x) % 360.0
    return 0.0 if v >= 360.0 else v


def wrap_pi(x: float) -> float:
    """Signed angle in (-π, π]."""
    v = norm_rad(x)
    return v - TAU if v > math.pi else v


def wrap_deg180(x: float) -> float:
    """Signed angle in (-180, 180]."""
    v = norm_deg(x)
    return v - 360.0 if v > 180.0 else v


def angular_separation(a_deg: float, b_deg: float) -> float:
    """Smallest separation on the circle, in [0, 180] and symmetric in (a, b)."""
    d = abs(float(a_deg) - float(b_deg)) % 360.0
    return d if d <= 180.0 else 360.0 - d


def forward_distance(from_deg: float, to_deg: float) -> float:
    """Increasing-longitude distance from ``from_deg`` to ``to_deg`` in [0, 360)."""
    return norm_deg(float(to_deg) - float(from_deg))


# ─────────────────────────────────────────────────────────────────────────────
# Obliquity
# ─────────────────────────────────────────────────────────────────────────────

def julian_centuries(jd: float) -> float:
    return (float(jd) - J2000) / DAYS_PER_CENTURY


def mean_obliquity(jd: float) -> float:
    """Mean obliquity of the ecliptic in radians (Meeus 22.2)."""
    t = julian_centuries(jd)
    seconds = 21.448 - t * (46.8150 + t * (0.00059 - t * 0.001813))
    return math.radians(23.0 + (26.0 + seconds / 60.0) / 60.0)


# ─────────────────────────────────────────────────────────────────────────────
# Ecliptic <-> equatorial
# ─────────────────────────────────────────────────────────────────────────────

def ecliptic_to_equatorial(
    longitude: float, obliquity: float, latitude: float = 0.0
) -> Tuple[float, float]:
    """(λ, β) -> (α, δ). House math only ever passes β = 0."""
    sl, cl = math.sin(longitude), math.cos(longitude)
    se, ce = math.sin(obliquity), math.cos(obliquity)
    sb, cb = math.sin(latitude), math.cos(latitude)
    ra = math.atan2(sl * ce * cb - sb * se, cl * cb)
    sin_dec = sb * ce + cb * se * sl
    dec = math.asin(max(-1.0, min(1.0, sin_dec)))
    return norm_rad(ra), dec


def equatorial_to_ecliptic(ra: float, dec: float, obliquity: float) -> Tuple[float, float]:
    """(α, δ) -> (λ, β)."""
    sa, ca = math.sin(ra), math.cos(ra)
    se, ce = math.sin(obliquity), math.cos(obliquity)
    sd, cd = math.sin(dec), math.cos(dec)
    lon = math.atan2(sa * cd * ce + sd * se, ca * cd)
    sin_lat = sd * ce - cd * se * sa
    lat = math.asin(max(-1.0, min(1.0, sin_lat)))
    return norm_rad(lon), lat


def right_ascension_of_longitude(longitude: float, obliquity: float) -> float:
    """RA of an ecliptic point with β = 0."""
    return norm_rad(math.atan2(math.sin(longitude) * math.cos(obliquity), math.cos(longitude)))


def right_ascension_derivative(longitude: float, obliquity: float) -> float:
    """dα/dλ for a point on the ecliptic; strictly positive for |ε| < 90°."""
    s, c = math.sin(longitude), math.cos(longitude)
    ce = math.cos(obliquity)
    return ce / (c * c + s * s * ce * ce)


def declination_of_longitude(longitude: float, obliquity: float) -> float:
    s = math.sin(obliquity) * math.sin(longitude)
    return math.asin(max(-1.0, min(1.0, s)))


def longitude_of_right_ascension(ra: float, obliquity: float) -> RootResult:
    """
    Invert α(λ): find the ecliptic longitude whose right ascension is ``ra``.

    Analytic seed, up to six Newton steps on the closed-form derivative, then a
    bisection pass over a ±2° bracket when the Newton residual is not near zero.
    """
    target = norm_rad(ra)

    def residual(lam: float) -> float:
        return wrap_pi(right_ascension_of_longitude(lam, obliquity) - target)

    def slope(lam: float) -> float:
        return right_ascension_derivative(lam, obliquity)

    seed = norm_rad(math.atan2(math.sin(target), math.cos(target) * math.cos(obliquity)))
    res = newton_refine(
        residual, slope, seed,
        tolerance=_RA_TOL_RAD, max_iterations=_NEWTON_STEPS, normalize=norm_rad,
    )
    if res.converged:
        return res

    safety = solve_bracketed(
        residual,
        norm_rad(res.value - _SAFETY_BRACKET_RAD),
        norm_rad(res.value + _SAFETY_BRACKET_RAD),
        tolerance=_RA_TOL_RAD,
    )
    best = safety if abs(safety.residual) <= abs(res.residual) else res
    return RootResult(
        value=best.value,
        converged=safety.converged,
        iterations=res.iterations + safety.iterations,
        residual=best.residual,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Sidereal time
# ─────────────────────────────────────────────────────────────────────────────

def greenwich_mean_sidereal_time(jd: float) -> float:
    """GMST in radians for a UT Julian Date (Meeus 12.4)."""
    d = float(jd) - J2000
    t = d / DAYS_PER_CENTURY
    deg = (
        280.46061837
        + 360.98564736629 * d
        + 0.000387933 * t * t
        - (t * t * t) / 38710000.0
    )
    return math.radians(norm_deg(deg))


def local_sidereal_time(jd: float, longitude_east_deg: float) -> float:
    """LST in radians; geographic longitude is east-positive degrees."""
    return norm_rad(greenwich_mean_sidereal_time(jd) + math.radians(float(longitude_east_deg)))
