# astrosync/core/solvers.py
"""
Root finding on the circle.

One bracketed primitive (``solve_bracketed``) and one Newton refinement
(``newton_refine``) shared by the Midheaven, Ascendant and intermediate-cusp
solvers. Both are bounded by fixed iteration caps and never raise on a bad
input shape: when no clean zero-crossing is found they return their best
estimate with ``converged=False``.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional

log = logging.getLogger(__name__)

__all__ = ["RootResult", "solve_bracketed", "newton_refine", "BRACKET_SAMPLES", "BISECTION_STEPS"]

TAU = 2.0 * math.pi

BRACKET_SAMPLES = 64
BISECTION_STEPS = 50


@dataclass(frozen=True)
class RootResult:
    value: float          # radians, normalized to [0, 2π)
    converged: bool
    iterations: int
    residual: float       # f(value)

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["value"] = float(d["value"])
        d["residual"] = float(d["residual"])
        return d


def _norm(x: float) -> float:
    v = math.fmod(x, TAU)
    if v < 0.0:
        v += TAU
    return 0.0 if v >= TAU else v


def _short_arc(start: float, end: float) -> float:
    """Signed length of the shorter arc start→end, in [-π, π)."""
    return ((end - start + math.pi) % TAU) - math.pi


def solve_bracketed(
    f: Callable[[float], float],
    arc_start: float,
    arc_end: float,
    *,
    tolerance: float = 1e-10,
    max_iterations: int = BISECTION_STEPS,
    samples: int = BRACKET_SAMPLES,
    max_jump: Optional[float] = None,
) -> RootResult:
    """
    Find a zero of ``f`` on the shorter arc between ``arc_start`` and ``arc_end``.

    The arc is sampled at ``samples`` equal steps looking for a sign change,
    which is then bisected up to ``max_iterations`` times. A sign change whose
    endpoint values differ by more than ``max_jump`` is a wrap discontinuity of
    the residual, not a root, and is skipped. Without any bracket the sample
    with the smallest |f| is returned and ``converged`` is False.
    """
    span = _short_arc(arc_start, arc_end)
    n = max(1, int(samples))

    def at(t: float) -> float:
        return _norm(arc_start + span * t)

    prev_t = 0.0
    prev_f = f(at(0.0))
    best_t, best_f = prev_t, prev_f
    bracket = None
    if prev_f == 0.0:
        return RootResult(at(0.0), True, 0, 0.0)

    for i in range(1, n + 1):
        t = i / n
        ft = f(at(t))
        if abs(ft) < abs(best_f):
            best_t, best_f = t, ft
        if ft == 0.0:
            return RootResult(at(t), True, 0, 0.0)
        if prev_f * ft < 0.0 and (max_jump is None or abs(ft - prev_f) <= max_jump):
            bracket = (prev_t, prev_f, t, ft)
            break
        prev_t, prev_f = t, ft

    if bracket is None:
        log.debug("no sign change on arc %.6f→%.6f; best |f|=%.3e", arc_start, arc_end, abs(best_f))
        return RootResult(at(best_t), False, 0, best_f)

    lo, f_lo, hi, _ = bracket
    mid, f_mid = lo, f_lo
    iterations = 0
    width_tol = tolerance / max(abs(span), 1e-300)
    for iterations in range(1, int(max_iterations) + 1):
        mid = 0.5 * (lo + hi)
        f_mid = f(at(mid))
        if abs(f_mid) <= tolerance or (hi - lo) * 0.5 <= width_tol:
            return RootResult(at(mid), True, iterations, f_mid)
        if f_lo * f_mid < 0.0:
            hi = mid
        else:
            lo, f_lo = mid, f_mid

    # bisection on a genuine bracket has shrunk the interval by 2**-max_iterations
    return RootResult(at(mid), (hi - lo) * abs(span) <= 1e-9, iterations, f_mid)


def newton_refine(
    f: Callable[[float], float],
    df: Callable[[float], float],
    seed: float,
    *,
    tolerance: float = 1e-11,
    max_iterations: int = 6,
    normalize: Callable[[float], float] = _norm,
) -> RootResult:
    """Plain Newton-Raphson from ``seed``; stops early on |f| ≤ tolerance."""
    x = normalize(seed)
    fx = f(x)
    steps = 0
    while steps < max_iterations and abs(fx) > tolerance:
        slope = df(x)
        if slope == 0.0 or not math.isfinite(slope):
            break
        x = normalize(x - fx / slope)
        fx = f(x)
        steps += 1
    return RootResult(x, abs(fx) <= tolerance, steps, fx)
