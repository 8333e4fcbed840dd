# astrosync/main.py
from __future__ import annotations

import logging
import os
import traceback
from time import perf_counter
from typing import Any, Dict, Optional

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from astrosync.api.routes import api as _routes_bp
from astrosync.core.ephemeris_adapter import EphemerisProvider, EphemerisUnavailable, SkyfieldEphemeris
from astrosync.core.validators import InvalidInput
from astrosync.utils.cache import TTLCache
from astrosync.utils.config import load_config
from astrosync.utils.metrics import GAUGE_APP_UP, MET_REQUESTS, MET_WARNINGS, REQ_LATENCY
from astrosync.version import VERSION

log = logging.getLogger(__name__)

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_CACHE_TTL_S = float(os.getenv("ASTRO_CACHE_TTL_S", "3600"))
_TRACKED_PREFIXES = ("/api/",)
_TRACKED_PATHS = ("/", "/health", "/healthz", "/metrics")


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _register_errors(app: Flask) -> None:
    @app.errorhandler(InvalidInput)
    def _invalid(e: InvalidInput):
        app.logger.info("invalid input at %s %s: %s", request.method, request.path, e)
        return jsonify(ok=False, error="validation_error", details=e.errors()), 400

    @app.errorhandler(EphemerisUnavailable)
    def _ephemeris(e: EphemerisUnavailable):
        app.logger.error("ephemeris unavailable at %s %s: %s", request.method, request.path, e)
        MET_WARNINGS.labels(kind="ephemeris_unavailable").inc()
        return jsonify(ok=False, error="ephemeris_unavailable", details=e.as_dict()), 503

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return jsonify(
            ok=False,
            error="http_error",
            code=e.code,
            name=e.name,
            message=e.description,
            path=request.path,
        ), e.code

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        return jsonify(
            ok=False,
            error="internal_error",
            type=type(e).__name__,
            path=request.path,
        ), 500


# ───────────────────────── health & metrics ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(ok=True, service="astrosync", version=VERSION, health="/health"), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok"), 200


def _metrics_auth_ok() -> bool:
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    if not (user and pw):
        return True
    auth = request.authorization
    return bool(auth and auth.type == "basic" and auth.username == user and auth.password == pw)


def _tracked(path: str) -> bool:
    return path.startswith(_TRACKED_PREFIXES) or path in _TRACKED_PATHS


def _load_settings() -> Dict[str, Any]:
    cfg_path = os.environ.get("ASTRO_CONFIG") or os.path.join(_REPO_ROOT, "config", "defaults.yaml")
    if not os.path.isfile(cfg_path):
        log.info("config file not found (%s); using built-in defaults", cfg_path)
        return {}
    return load_config(cfg_path)


# ───────────────────────── app factory ─────────────────────────
def create_app(
    provider: Optional[EphemerisProvider] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Flask:
    """
    Build the Flask app. ``provider`` defaults to the Skyfield ephemeris (kernel
    loaded on first use); ``settings`` defaults to the YAML config.
    """
    app = Flask(__name__)
    app.json.sort_keys = False  # type: ignore[attr-defined]
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    app.config["ASTRO_SETTINGS"] = settings if settings is not None else _load_settings()
    app.config["TRANSIT_CACHE"] = TTLCache(_CACHE_TTL_S, capacity=512)
    app.config["EPHEMERIS_PROVIDER"] = provider if provider is not None else SkyfieldEphemeris()

    GAUGE_APP_UP.set(1.0)

    @app.before_request
    def _before():
        if _tracked(request.path or ""):
            MET_REQUESTS.labels(route=request.path).inc()
            g.t0 = perf_counter()

    @app.after_request
    def _after(resp):
        t0 = g.pop("t0", None)
        if t0 is not None:
            REQ_LATENCY.labels(route=request.path).observe(perf_counter() - t0)
        return resp

    _register_health(app)
    _register_errors(app)
    app.register_blueprint(_routes_bp)

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)

    allowed_origin = os.environ.get("CORS_ALLOW_ORIGIN") or "*"
    CORS(
        app,
        resources={r"/.*": {"origins": allowed_origin}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info("astrosync %s initialized; blueprints=%s", VERSION, list(app.blueprints.keys()))
    return app


# ───────────────────────── app instance ─────────────────────────
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
