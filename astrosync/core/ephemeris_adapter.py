# astrosync/core/ephemeris_adapter.py
# -----------------------------------------------------------------------------
# Ephemeris provider boundary
#
# • EphemerisProvider: the only contract the numerical core consumes
#     position(body, jd_ut) -> EquatorialPosition(ra_deg, dec_deg)
# • SkyfieldEphemeris: apparent geocentric RA/Dec of date from a local JPL kernel
# • Thread-safe lazy kernel bootstrap; refuses to download at request time
# • Failures surface as EphemerisUnavailable (never swallowed)
# -----------------------------------------------------------------------------
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from astrosync.core.points import BODIES, canonical_name
from astrosync.core.validators import InvalidInput, _err
from astrosync.utils.cache import TTLCache

log = logging.getLogger(__name__)

__all__ = [
    "EphemerisUnavailable",
    "EquatorialPosition",
    "EphemerisProvider",
    "SkyfieldEphemeris",
    "resolve_kernel_path",
]

# ─────────────────────────────────────────────────────────────────────────────
# Constants / environment
# ─────────────────────────────────────────────────────────────────────────────
EPHEMERIS_NAME_DEFAULT = "de421.bsp"
_KERNEL_ENV = "ASTRO_EPHEMERIS"
_CACHE_TTL_S = float(os.getenv("ASTRO_CACHE_TTL_S", "3600"))
_CACHE_CAPACITY = int(os.getenv("ASTRO_CACHE_CAPACITY", "4096"))

# DE421 barycenters stand in for the outer planets
_PLANET_KEYS: Dict[str, str] = {
    "Sun": "sun",
    "Moon": "moon",
    "Mercury": "mercury",
    "Venus": "venus",
    "Mars": "mars",
    "Jupiter": "jupiter barycenter",
    "Saturn": "saturn barycenter",
    "Uranus": "uranus barycenter",
    "Neptune": "neptune barycenter",
    "Pluto": "pluto barycenter",
}


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions & records
# ─────────────────────────────────────────────────────────────────────────────
class EphemerisUnavailable(RuntimeError):
    """The provider could not produce a position; the affected computation is aborted."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context

    def as_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "message": self.message, "context": dict(self.context)}


@dataclass(frozen=True)
class EquatorialPosition:
    right_ascension_deg: float
    declination_deg: float


@runtime_checkable
class EphemerisProvider(Protocol):
    def position(self, body: str, jd_ut: float) -> EquatorialPosition:
        """Geocentric RA/Dec of ``body`` at ``jd_ut``; pure and deterministic."""
        ...


# ─────────────────────────────────────────────────────────────────────────────
# Kernel I/O
# ─────────────────────────────────────────────────────────────────────────────
def resolve_kernel_path() -> Optional[str]:
    path = os.getenv(_KERNEL_ENV)
    if path and os.path.isfile(path):
        return path
    fallback = os.path.join(os.getcwd(), "data", EPHEMERIS_NAME_DEFAULT)
    return fallback if os.path.isfile(fallback) else None


def _looks_like_lfs_pointer(path: str) -> bool:
    if os.path.getsize(path) > 512:
        return False
    with open(path, "rb") as f:
        head = f.read(128)
    return head.startswith(b"version https://git-lfs.github.com/spec/v1")


# ─────────────────────────────────────────────────────────────────────────────
# Skyfield provider
# ─────────────────────────────────────────────────────────────────────────────
class SkyfieldEphemeris:
    """
    Apparent geocentric RA/Dec (true equator and equinox of date) from a JPL
    SPK kernel via Skyfield. Positions are memoized in the injected TTL cache.
    """

    def __init__(self, kernel_path: Optional[str] = None, cache: Optional[TTLCache] = None):
        self.kernel_path = kernel_path or resolve_kernel_path()
        self.cache = cache if cache is not None else TTLCache(_CACHE_TTL_S, _CACHE_CAPACITY)
        self._lock = threading.Lock()
        self._ts = None
        self._kernel = None

    def _load(self):
        if self._kernel is not None:
            return self._ts, self._kernel
        with self._lock:
            if self._kernel is None:
                path = self.kernel_path
                if not path or not os.path.isfile(path):
                    raise EphemerisUnavailable(
                        "kernel", f"no local kernel (set {_KERNEL_ENV} or place data/{EPHEMERIS_NAME_DEFAULT})"
                    )
                if _looks_like_lfs_pointer(path):
                    raise EphemerisUnavailable("kernel", f"kernel looks like a Git LFS pointer: {path}")
                from skyfield.api import load

                try:
                    kernel = load(path)
                    ts = load.timescale()
                except Exception as e:
                    raise EphemerisUnavailable("kernel", "Skyfield failed to load kernel", path=path, error=str(e)) from e
                log.info("ephemeris kernel loaded: %s", path)
                self._ts, self._kernel = ts, kernel
        return self._ts, self._kernel

    def position(self, body: str, jd_ut: float) -> EquatorialPosition:
        name = canonical_name(body)
        if name not in _PLANET_KEYS:
            # angles and unknown names are input errors (HTTP 400)
            raise InvalidInput([_err("body", f"no ephemeris for {body!r}; expected one of {list(BODIES)}")])
        key = (name, round(float(jd_ut), 9))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        ts, kernel = self._load()
        try:
            t = ts.ut1_jd(float(jd_ut))
            apparent = kernel["earth"].at(t).observe(kernel[_PLANET_KEYS[name]]).apparent()
            ra, dec, _ = apparent.radec(epoch="date")
        except Exception as e:
            log.error("ephemeris lookup failed for %s at jd=%.6f: %s", name, jd_ut, e)
            raise EphemerisUnavailable("compute", f"position of {name} failed", jd_ut=jd_ut, error=str(e)) from e

        pos = EquatorialPosition(right_ascension_deg=float(ra.hours) * 15.0, declination_deg=float(dec.degrees))
        self.cache.set(key, pos)
        return pos

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "kernel_path": self.kernel_path,
            "kernel_loaded": self._kernel is not None,
            "cache_entries": len(self.cache),
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
        }
