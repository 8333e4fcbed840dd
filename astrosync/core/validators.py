# astrosync/core/validators.py
from __future__ import annotations

import difflib
import math
import re
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Dict, List, Optional, Union

__all__ = [
    "InvalidInput",
    "BirthInput",
    "HOUSE_SYSTEM_ALIASES",
    "normalize_house_system",
    "parse_date",
    "parse_time",
    "parse_birth_payload",
    "parse_point_list",
    "parse_aspect_options",
    "parse_scan_payload",
    "parse_transit_payload",
]

# ───────────────────────── errors ─────────────────────────

class InvalidInput(ValueError):
    """Malformed date/time/coordinate/point input. Has .errors() like a form validator."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "invalid_input"))
        else:
            self._details = list(details)
            super().__init__(self._details[0]["msg"] if self._details else "invalid_input")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}


def _as_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    return x if math.isfinite(x) else None


def _pick(body: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in body and body[k] is not None:
            return body[k]
    return None


def _truthy(val: Any) -> Optional[bool]:
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    s = str(val).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None


# ───────────────────────── house systems ─────────────────────────

HOUSE_SYSTEM_ALIASES: Dict[str, str] = {
    "placidus": "placidus",
    "p": "placidus",
    "whole_sign": "whole_sign",
    "whole-sign": "whole_sign",
    "whole sign": "whole_sign",
    "wholesign": "whole_sign",
    "whole": "whole_sign",
    "w": "whole_sign",
}


def normalize_house_system(value: Any, loc: Optional[List[str]] = None) -> str:
    key = str(value or "").strip().lower()
    canon = HOUSE_SYSTEM_ALIASES.get(key)
    if canon:
        return canon
    hint = difflib.get_close_matches(key, sorted(HOUSE_SYSTEM_ALIASES), n=1)
    msg = f"unsupported house system {value!r}"
    if hint:
        msg += f"; did you mean {HOUSE_SYSTEM_ALIASES[hint[0]]!r}?"
    raise InvalidInput([_err(loc or ["house_system"], msg)])


# ───────────────────────── atomic parsers ─────────────────────────

_DATE_RE = re.compile(r"^\s*(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2})\s*$")
_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d{1,6}))?)?\s*$")


def parse_date(value: Any, loc: str = "date") -> date:
    if isinstance(value, date):
        return value
    m = _DATE_RE.match(value) if isinstance(value, str) else None
    if not m:
        raise InvalidInput([_err(loc, "must be 'YYYY-MM-DD'")])
    try:
        return date(int(m.group("y")), int(m.group("m")), int(m.group("d")))
    except ValueError as e:
        raise InvalidInput([_err(loc, str(e))]) from None


def parse_time(value: Any, loc: str = "time") -> Optional[time]:
    """'HH:MM', 'HH:MM:SS' or 'HH:MM:SS.ffffff'; None/'' means unknown birth time."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, time):
        return value
    m = _TIME_RE.match(value) if isinstance(value, str) else None
    if not m:
        raise InvalidInput([_err(loc, "must be 'HH:MM' or 'HH:MM:SS[.frac]'")])
    hh, mm = int(m.group("h")), int(m.group("m"))
    ss = int(m.group("s") or 0)
    us = int((m.group("f") or "0").ljust(6, "0"))
    if not (0 <= hh <= 23 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise InvalidInput([_err(loc, "time fields out of range")])
    return time(hh, mm, ss, us)


# ───────────────────────── records ─────────────────────────

@dataclass(frozen=True)
class BirthInput:
    date_local: date
    time_local: Optional[time]
    tz_offset_minutes: int
    latitude: Optional[float]
    longitude: Optional[float]
    house_system: str = "placidus"

    @property
    def has_time(self) -> bool:
        return self.time_local is not None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def parse_birth_payload(body: Dict[str, Any], *, require_location: bool = True) -> BirthInput:
    """Validate a birth/event record; all problems are reported together."""
    if not isinstance(body, dict):
        raise InvalidInput("payload must be a JSON object")
    errs: List[Dict[str, Any]] = []

    d: Optional[date] = None
    try:
        d = parse_date(_pick(body, "date", "date_local", "dateLocal"), "date")
    except InvalidInput as e:
        errs.extend(e.errors())

    t: Optional[time] = None
    try:
        t = parse_time(_pick(body, "time", "time_local", "timeLocal"), "time")
    except InvalidInput as e:
        errs.extend(e.errors())

    raw_tz = _pick(body, "tz_offset_minutes", "tzOffsetMinutes")
    tz = _as_float(raw_tz if raw_tz is not None else 0)
    if tz is None or tz != int(tz) or not (-14 * 60 <= tz <= 14 * 60):
        errs.append(_err("tz_offset_minutes", "must be an integer in [-840, 840]"))
        tz = 0.0

    lat_raw = _pick(body, "latitude", "lat", "latitudeDeg")
    lon_raw = _pick(body, "longitude", "lon", "longitudeDeg")
    lat = _as_float(lat_raw)
    lon = _as_float(lon_raw)
    if lat_raw is None and lon_raw is None and not require_location:
        lat = lon = None
    else:
        if lat is None or not (-90.0 <= lat <= 90.0):
            errs.append(_err("latitude", "must be a number in [-90, 90]"))
        if lon is None or not (-180.0 <= lon <= 180.0):
            errs.append(_err("longitude", "must be a number in [-180, 180]"))

    system = "placidus"
    try:
        system = normalize_house_system(_pick(body, "house_system", "houseSystem") or "placidus")
    except InvalidInput as e:
        errs.extend(e.errors())

    if errs:
        raise InvalidInput(errs)
    assert d is not None
    return BirthInput(d, t, int(tz), lat, lon, system)


def parse_point_list(items: Any, loc: str, owner: Optional[str] = None) -> list:
    """Parse ``[{name, longitude, retrograde}]`` into CelestialPoints."""
    from astrosync.core.points import CelestialPoint

    if not isinstance(items, list) or not items:
        raise InvalidInput([_err(loc, "must be a non-empty list of points")])
    out = []
    errs: List[Dict[str, Any]] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            errs.append(_err([loc, str(i)], "must be an object"))
            continue
        lon = _as_float(_pick(item, "longitude", "longitudeDeg", "lon"))
        if lon is None:
            errs.append(_err([loc, str(i), "longitude"], "must be a finite number"))
            continue
        retro = _truthy(_pick(item, "retrograde", "isRetrograde"))
        try:
            out.append(CelestialPoint(str(item.get("name", "")), lon, bool(retro), owner))
        except InvalidInput as e:
            errs.extend({**x, "loc": [loc, str(i)] + list(x["loc"])} for x in e.errors())
    if errs:
        raise InvalidInput(errs)
    return out


def parse_aspect_options(raw: Any, *, default_variant: str = "standard"):
    from astrosync.core.aspects import AspectOptions, VARIANTS

    raw = raw if isinstance(raw, dict) else {}
    variant = str(raw.get("variant") or default_variant).strip().lower()
    if variant not in VARIANTS:
        raise InvalidInput([_err(["options", "variant"], f"must be one of {sorted(VARIANTS)}")])
    top_n = raw.get("top_n")
    if top_n is not None:
        n = _as_float(top_n)
        if n is None or n != int(n) or n < 1:
            raise InvalidInput([_err(["options", "top_n"], "must be a positive integer")])
        top_n = int(n)
    return AspectOptions(
        variant=variant,
        include_minor=bool(_truthy(raw.get("include_minor")) or False),
        top_n=top_n,
    )


def parse_scan_payload(body: Dict[str, Any], *, default_horizon: int = 45,
                       default_best_within: int = 30) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise InvalidInput("payload must be a JSON object")
    errs: List[Dict[str, Any]] = []
    out: Dict[str, Any] = {}
    for key, owner in (("natal_a", "A"), ("natal_b", "B")):
        try:
            out[key] = parse_point_list(body.get(key), key, owner)
        except InvalidInput as e:
            errs.extend(e.errors())

    for key, default, hi in (("horizon_days", default_horizon, 366),
                             ("best_within_days", default_best_within, 366)):
        v = _as_float(body.get(key, default))
        if v is None or v != int(v) or not (1 <= v <= hi):
            errs.append(_err(key, f"must be an integer in [1, {hi}]"))
        else:
            out[key] = int(v)

    try:
        out["start_date"] = parse_date(_pick(body, "start_date", "startDate"), "start_date")
    except InvalidInput as e:
        errs.extend(e.errors())

    if errs:
        raise InvalidInput(errs)
    return out


_MONTH_RE = re.compile(r"^\s*(?P<y>\d{4})-(?P<m>\d{2})\s*$")


def parse_transit_payload(body: Dict[str, Any], *, default_limit: int = 5) -> Dict[str, Any]:
    """
    ``{natal, date | month, mode, limit}`` for transit listings. Exactly one of
    ``date`` ('YYYY-MM-DD') or ``month`` ('YYYY-MM'); ``mode`` is 'top'
    (keep ``limit`` per day) or 'all'.
    """
    if not isinstance(body, dict):
        raise InvalidInput("payload must be a JSON object")
    errs: List[Dict[str, Any]] = []
    out: Dict[str, Any] = {"day": None, "month": None}
    try:
        out["natal"] = parse_point_list(body.get("natal"), "natal", "natal")
    except InvalidInput as e:
        errs.extend(e.errors())

    raw_day, raw_month = body.get("date"), body.get("month")
    if (raw_day is None) == (raw_month is None):
        errs.append(_err("date", "give exactly one of 'date' or 'month'"))
    elif raw_day is not None:
        try:
            out["day"] = parse_date(raw_day, "date")
        except InvalidInput as e:
            errs.extend(e.errors())
    else:
        m = _MONTH_RE.match(raw_month) if isinstance(raw_month, str) else None
        if not m or not 1 <= int(m.group("m")) <= 12:
            errs.append(_err("month", "must be 'YYYY-MM'"))
        else:
            out["month"] = (int(m.group("y")), int(m.group("m")))

    mode = str(body.get("mode") or "top").strip().lower()
    if mode not in ("top", "all"):
        errs.append(_err("mode", "must be 'top' or 'all'"))
    limit = _as_float(body.get("limit", default_limit))
    if limit is None or limit != int(limit) or not (1 <= limit <= 99):
        errs.append(_err("limit", "must be an integer in [1, 99]"))
    elif mode == "top":
        out["top_n"] = int(limit)
    if mode == "all":
        out["top_n"] = None

    if errs:
        raise InvalidInput(errs)
    return out
