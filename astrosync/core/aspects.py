# astrosync/core/aspects.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from astrosync.core.coordinates import angular_separation, forward_distance, norm_deg
from astrosync.core.points import CelestialPoint, PointClass

__all__ = [
    "MAJOR_ASPECTS",
    "MINOR_ASPECTS",
    "HARMONIOUS",
    "ASPECT_WEIGHTS",
    "VARIANTS",
    "AspectOptions",
    "AspectMatch",
    "max_orb",
    "nearest_aspect",
    "is_applying",
    "find_aspects",
    "find_natal_aspects",
]

# ─────────────────────────────────────────────────────────────────────────────
# Aspect catalog
# ─────────────────────────────────────────────────────────────────────────────

MAJOR_ASPECTS: Dict[str, float] = {
    "conjunction": 0.0,
    "sextile": 60.0,
    "square": 90.0,
    "trine": 120.0,
    "opposition": 180.0,
}

MINOR_ASPECTS: Dict[str, float] = {
    "semi-sextile": 30.0,
    "quincunx": 150.0,
}

HARMONIOUS = frozenset({"conjunction", "sextile", "trine"})

ASPECT_WEIGHTS: Dict[str, float] = {
    "conjunction": 1.00,
    "opposition": 0.95,
    "trine": 0.90,
    "square": 0.85,
    "sextile": 0.75,
    "quincunx": 0.55,
    "semi-sextile": 0.50,
}

Variant = Literal["standard", "synastry", "natal"]
VARIANTS = frozenset({"standard", "synastry", "natal"})

# (luminary, personal-or-angle, otherwise)
_ORB_TABLE: Dict[str, Tuple[float, float, float]] = {
    "standard": (6.0, 5.0, 3.0),
    "natal": (6.0, 5.0, 3.0),
    "synastry": (8.0, 6.0, 4.0),
}
_MINOR_ORB_CUT = 2.0
_MINOR_ORB_FLOOR = 2.0


# ─────────────────────────────────────────────────────────────────────────────
# Configuration & results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectOptions:
    variant: Variant = "standard"
    include_minor: bool = False
    top_n: Optional[int] = None

    @property
    def catalog(self) -> Dict[str, float]:
        if self.include_minor:
            return {**MAJOR_ASPECTS, **MINOR_ASPECTS}
        return dict(MAJOR_ASPECTS)


@dataclass(frozen=True)
class AspectMatch:
    point_a: CelestialPoint
    point_b: CelestialPoint
    aspect: str
    exact_angle: float      # target angle of the aspect
    separation: float       # measured separation in [0, 180]
    orb: float              # |separation - exact_angle|
    max_orb: float          # allowed orb for this pair and aspect
    score: float            # 0..1
    applying: bool

    @property
    def tightness(self) -> float:
        return 1.0 - self.orb / self.max_orb if self.max_orb > 0 else 0.0

    @property
    def is_harmonious(self) -> bool:
        return self.aspect in HARMONIOUS

    def as_dict(self) -> Dict[str, Any]:
        return {
            "a": self.point_a.as_dict(),
            "b": self.point_b.as_dict(),
            "aspect": self.aspect,
            "exact_angle": float(self.exact_angle),
            "separation": round(float(self.separation), 4),
            "orb": round(float(self.orb), 4),
            "max_orb": float(self.max_orb),
            "score": round(float(self.score), 4),
            "applying": self.applying,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Orbs & geometry
# ─────────────────────────────────────────────────────────────────────────────

def max_orb(class_a: PointClass, class_b: PointClass, aspect: str = "conjunction",
            variant: str = "standard", include_minor: bool = False) -> float:
    """Largest orb accepted for a pair of weight classes."""
    lum, mid, slow = _ORB_TABLE.get(variant, _ORB_TABLE["standard"])
    classes = (class_a, class_b)
    if "luminary" in classes:
        orb = lum
    elif "personal" in classes or "angle" in classes:
        orb = mid
    else:
        orb = slow
    if variant == "synastry" and include_minor and aspect in MINOR_ASPECTS:
        orb = max(_MINOR_ORB_FLOOR, orb - _MINOR_ORB_CUT)
    return orb


def nearest_aspect(separation: float, catalog: Dict[str, float]) -> Tuple[str, float, float]:
    """(aspect, exact angle, |separation - exact|) of the closest catalog entry."""
    best_name, best_exact, best_diff = "", 0.0, float("inf")
    for name, exact in catalog.items():
        diff = abs(separation - exact)
        if diff < best_diff:
            best_name, best_exact, best_diff = name, exact, diff
    return best_name, best_exact, best_diff


def is_applying(a: CelestialPoint, b: CelestialPoint, exact_angle: float) -> bool:
    """
    Mean-speed heuristic: the faster point moves forward toward whichever exact
    target (other ± exact_angle) is nearer. Retrograde motion is not modelled.
    """
    fast, other = (a, b) if a.mean_speed >= b.mean_speed else (b, a)
    targets = (norm_deg(other.longitude + exact_angle), norm_deg(other.longitude - exact_angle))
    target = min(targets, key=lambda t: angular_separation(t, fast.longitude))
    return forward_distance(fast.longitude, target) < 180.0


def _score(aspect: str, a: CelestialPoint, b: CelestialPoint, orb: float, limit: float,
           variant: str) -> float:
    tight = max(0.0, min(1.0, 1.0 - orb / limit)) if limit > 0 else 0.0
    if variant == "natal":
        tight = 0.6 + 0.4 * tight
    return ASPECT_WEIGHTS[aspect] * a.weight * b.weight * tight


def _match(a: CelestialPoint, b: CelestialPoint, options: AspectOptions,
           catalog: Dict[str, float]) -> Optional[AspectMatch]:
    sep = angular_separation(a.longitude, b.longitude)
    aspect, exact, diff = nearest_aspect(sep, catalog)
    limit = max_orb(a.point_class, b.point_class, aspect, options.variant, options.include_minor)
    if diff > limit:
        return None
    return AspectMatch(
        point_a=a,
        point_b=b,
        aspect=aspect,
        exact_angle=exact,
        separation=sep,
        orb=diff,
        max_orb=limit,
        score=_score(aspect, a, b, diff, limit, options.variant),
        applying=is_applying(a, b, exact),
    )


def _same_point(a: CelestialPoint, b: CelestialPoint) -> bool:
    return a is b or (a.name == b.name and a.owner == b.owner and a.longitude == b.longitude)


def _rank(matches: List[AspectMatch], top_n: Optional[int]) -> List[AspectMatch]:
    matches.sort(key=lambda m: (-m.score, m.orb))
    return matches[:top_n] if top_n else matches


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def find_aspects(
    set_a: Sequence[CelestialPoint],
    set_b: Sequence[CelestialPoint],
    options: Optional[AspectOptions] = None,
) -> List[AspectMatch]:
    """
    Every accepted aspect between a point of ``set_a`` and a point of ``set_b``,
    best score first (ties: tighter orb first). A point is never paired with
    itself; equal names in untagged lists are still distinct points.
    """
    opts = options or AspectOptions()
    catalog = opts.catalog
    out: List[AspectMatch] = []
    for a in set_a:
        for b in set_b:
            if _same_point(a, b):
                continue
            m = _match(a, b, opts, catalog)
            if m is not None:
                out.append(m)
    return _rank(out, opts.top_n)


def find_natal_aspects(
    points: Iterable[CelestialPoint],
    options: Optional[AspectOptions] = None,
) -> List[AspectMatch]:
    """Aspects within one chart; each unordered pair once, natal tightness curve."""
    opts = options or AspectOptions(variant="natal")
    catalog = opts.catalog
    pts = list(points)
    out: List[AspectMatch] = []
    for i, a in enumerate(pts):
        for b in pts[i + 1:]:
            m = _match(a, b, opts, catalog)
            if m is not None:
                out.append(m)
    return _rank(out, opts.top_n)
