# astrosync/api/routes.py
"""
astrosync API routes (thin JSON adapter over the core)

- POST /api/houses     birth record -> house cusps
- POST /api/aspects    point lists -> aspect matches (natal when only `a` is given)
- POST /api/synastry   two charts' point lists -> synastry aspects
- POST /api/chart      birth record -> positions, houses, natal aspects
- POST /api/windows    two natal point lists + horizon -> ranked windows
- POST /api/transits   one natal point list + date or month -> transit aspects per day
- GET  /api/health

Errors raised here (InvalidInput, EphemerisUnavailable) are turned into JSON
envelopes by the handlers registered in main.py.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from astrosync.core.aspects import AspectOptions, find_aspects, find_natal_aspects
from astrosync.core.chart import compute_natal_chart, houses_for_birth
from astrosync.core.transits import TransitSky, month_span, transit_calendar, transit_events
from astrosync.core.validators import (
    InvalidInput,
    _truthy,
    parse_aspect_options,
    parse_birth_payload,
    parse_point_list,
    parse_scan_payload,
    parse_transit_payload,
)
from astrosync.core.windows import WindowConfig, scan_windows
from astrosync.utils.metrics import record_houses
from astrosync.version import VERSION

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)


# ───────────────────────── helpers ─────────────────────────
def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("JSON body must be an object")
    return data


def _cfg() -> Dict[str, Any]:
    return current_app.config.get("ASTRO_SETTINGS") or {}


def _section(name: str) -> Dict[str, Any]:
    return _cfg().get(name) or {}


def _with_default_system(body: Dict[str, Any]) -> Dict[str, Any]:
    if body.get("house_system") or body.get("houseSystem"):
        return body
    return {**body, "house_system": _section("houses").get("default_system", "placidus")}


# ───────────────────────── health ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


# ───────────────────────── houses / chart ─────────────────────────
@api.post("/api/houses")
def houses_endpoint():
    birth = parse_birth_payload(_with_default_system(_body()), require_location=False)
    houses = houses_for_birth(birth)
    record_houses(birth.house_system, houses)
    return jsonify({"ok": True, "houses": houses.as_dict()}), 200


@api.post("/api/chart")
def chart_endpoint():
    body = _with_default_system(_body())
    birth = parse_birth_payload(body, require_location=False)
    allow_solar = _truthy(body.get("allow_solar"))
    chart = compute_natal_chart(
        birth,
        current_app.config["EPHEMERIS_PROVIDER"],
        allow_solar=True if allow_solar is None else allow_solar,
    )
    record_houses(birth.house_system, chart.houses)
    opts = parse_aspect_options(body.get("options"), default_variant="natal")
    aspects = find_natal_aspects(chart.points, opts)
    return jsonify({
        "ok": True,
        "chart": chart.as_dict(),
        "aspects": [m.as_dict() for m in aspects],
    }), 200


# ───────────────────────── aspects ─────────────────────────
@api.post("/api/aspects")
def aspects_endpoint():
    body = _body()
    if body.get("b"):
        set_a = parse_point_list(body.get("a"), "a", "A")
        set_b = parse_point_list(body.get("b"), "b", "B")
        opts = parse_aspect_options(body.get("options"))
        matches = find_aspects(set_a, set_b, opts)
    else:
        points = parse_point_list(body.get("a"), "a")
        opts = parse_aspect_options(body.get("options"), default_variant="natal")
        matches = find_natal_aspects(points, opts)
    return jsonify({
        "ok": True,
        "variant": opts.variant,
        "count": len(matches),
        "aspects": [m.as_dict() for m in matches],
    }), 200


@api.post("/api/synastry")
def synastry_endpoint():
    body = _body()
    set_a = parse_point_list(body.get("a"), "a", "A")
    set_b = parse_point_list(body.get("b"), "b", "B")
    raw = body.get("options") if isinstance(body.get("options"), dict) else {}
    if "include_minor" not in raw:
        raw = {**raw, "include_minor": _section("aspects").get("include_minor", False)}
    opts: AspectOptions = parse_aspect_options(raw, default_variant="synastry")
    matches = find_aspects(set_a, set_b, opts)
    return jsonify({
        "ok": True,
        "variant": opts.variant,
        "count": len(matches),
        "score": round(sum(m.score for m in matches), 4),
        "aspects": [m.as_dict() for m in matches],
    }), 200


# ───────────────────────── windows ─────────────────────────
@api.post("/api/windows")
def windows_endpoint():
    cfg = WindowConfig.from_mapping(_section("windows"))
    body = _body()
    payload = parse_scan_payload(
        body,
        default_horizon=cfg.horizon_days,
        default_best_within=cfg.best_within_days,
    )
    sky = TransitSky(current_app.config["EPHEMERIS_PROVIDER"], current_app.config.get("TRANSIT_CACHE"))
    result = scan_windows(
        payload["natal_a"],
        payload["natal_b"],
        payload["horizon_days"],
        payload["start_date"],
        sky,
        cfg,
    )
    include_hits = bool(_truthy(body.get("include_hits")))
    return jsonify({
        "ok": True,
        **result.as_dict(payload["best_within_days"], include_hits=include_hits),
    }), 200


# ───────────────────────── transits ─────────────────────────
@api.post("/api/transits")
def transits_endpoint():
    payload = parse_transit_payload(_body())
    sky = TransitSky(current_app.config["EPHEMERIS_PROVIDER"], current_app.config.get("TRANSIT_CACHE"))
    if payload["day"] is not None:
        td = transit_events(payload["natal"], payload["day"], sky, payload["top_n"])
        return jsonify({"ok": True, **td.as_dict()}), 200

    year, month = payload["month"]
    first, length = month_span(year, month)
    days = transit_calendar(payload["natal"], first, length, sky, payload["top_n"])
    return jsonify({
        "ok": True,
        "month": f"{year:04d}-{month:02d}",
        "days": [d.as_dict() for d in days],
    }), 200
