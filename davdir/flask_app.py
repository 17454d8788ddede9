"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with the directory API, health checks and error
handlers.
"""
from __future__ import annotations
from typing import Optional

from flask import Flask
from sqlalchemy.engine import Engine

from davdir.config import AppConfig, create_engine_from_settings, load_settings
from davdir.core.principals import PrincipalStore
from davdir.core.schema import init_schema


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, engine: Optional[Engine] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Settings (loaded from the environment when omitted)
        engine: Engine of the relational store (built from cfg when omitted)
    """
    cfg = cfg or load_settings()
    engine = engine or create_engine_from_settings(cfg)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode
    app.config["DB_ENGINE"] = engine

    if cfg.demo_mode:
        init_schema(engine, **cfg.schema_options)

    app.config["PRINCIPAL_STORE"] = PrincipalStore(
        engine,
        field_map=cfg.build_field_map(),
        principals_table=cfg.principals_table,
        group_members_table=cfg.group_members_table,
    )

    # Register blueprints
    from davdir.api import health, errors
    from davdir.api import principals

    app.register_blueprint(health.bp)
    app.register_blueprint(principals.bp, url_prefix="/api/v1")

    # Register error handlers
    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print("[flask_app] Directory API registered at /api/v1")
    if not cfg.api_token:
        print("[flask_app] WARNING: DAVDIR_API_TOKEN not set - API is unauthenticated")

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
