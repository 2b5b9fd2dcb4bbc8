# matchengine/main.py
from __future__ import annotations

import logging
import os
import traceback
from typing import Any, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from matchengine.api.routes import api as _routes_bp
from matchengine.core.compatibility import CompatibilityEngine
from matchengine.core.natal import NatalChartDeriver
from matchengine.core.validators import ValidationError
from matchengine.utils.cache import ResultCache
from matchengine.utils.config import load_config
from matchengine.version import VERSION


# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

def _register_errors(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def _validation(e: ValidationError):
        app.logger.info("validation failed at %s %s: %s", request.method, request.path, e)
        return jsonify(
            ok=False,
            error="validation_error",
            field=e.field,
            errors=e.errors(),
        ), 422

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
def _metrics_auth_ok() -> bool:
    """Basic auth against METRICS_USER/METRICS_PASS; closed when either is unset."""
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )

def _register_ops(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(ok=True, status="ok", version=VERSION), 200

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)


# ───────────────────────── factory ─────────────────────────
def create_app(config: Optional[Any] = None, cache: Optional[ResultCache] = None,
               engine: Optional[CompatibilityEngine] = None) -> Flask:
    """
    Build the WSGI app. `config` defaults to load_config(); `cache` and
    `engine` may be injected (tests pass a fake clock or stubbed tiers).
    """
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[assignment]
    _configure_logging(app)

    cfg = config if config is not None else load_config()
    cache = cache if cache is not None else ResultCache.from_config(cfg)
    if engine is None:
        engine = CompatibilityEngine(
            deriver=NatalChartDeriver.from_config(cfg, cache=cache),
            scheme=cfg.scoring.questionnaire_scheme,
        )
    app.extensions["matchengine"] = {"config": cfg, "cache": cache, "engine": engine}

    _register_errors(app)
    _register_ops(app)
    app.register_blueprint(_routes_bp)

    # CORS for browser UIs
    CORS(
        app,
        resources={r"/.*": {"origins": os.environ.get("CORS_ALLOW_ORIGIN") or "*"}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info(
        "matchengine %s initialized; ephemeris_url=%s table=%s scheme=%s",
        VERSION, bool(cfg.ephemeris.url), cfg.ephemeris.table_path or "-", cfg.scoring.questionnaire_scheme,
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
