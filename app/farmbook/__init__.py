import logging
import os
from datetime import timedelta

from flask import Flask, g, request
from dotenv import load_dotenv

from app.farmbook.config import Settings, load_config, load_settings
from app.farmbook.db import init_db, teardown_db_session
from app.farmbook.errors import register_error_handlers
from app.farmbook.session import SessionManager, init_sessions
from app.farmbook.routes import bp as routes_bp
from app.farmbook.auth import bp as auth_bp, load_current_user
from app.farmbook.modules.farms.api import bp as farms_bp
from app.farmbook.modules.invitations.api import bp as invitations_bp
from app.farmbook.modules.animals.api import bp as animals_bp
from app.farmbook.modules.events.api import bp as events_bp
from app.farmbook.modules.cashbox.api import bp as cashbox_bp
from app.farmbook.modules.dashboard.api import bp as dashboard_bp
from app.farmbook.modules.exports.api import bp as exports_bp

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz")


def _check_production_settings(settings: Settings) -> None:
    # Production guardrails (fail fast with clear logs)
    if not settings.is_production:
        return
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if settings.database_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if settings.secret_key in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if settings.jwt_secret in ("", "change-me"):
        raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")


def create_app(settings: Settings | None = None) -> Flask:
    load_dotenv()
    settings = settings or load_settings()
    _check_production_settings(settings)

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = Flask(__name__)
    app.config.from_mapping(load_config(settings))
    app.extensions["farmbook_settings"] = settings

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Secret is bound here once; nothing reads it from the environment afterwards.
    init_sessions(
        app,
        SessionManager(
            settings.jwt_secret,
            ttl=timedelta(days=settings.session_ttl_days),
            cookie_name=settings.session_cookie_name,
            secure=settings.is_production,
        ),
    )
    register_error_handlers(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(farms_bp, url_prefix="/api/farms")
    app.register_blueprint(invitations_bp, url_prefix="/api")
    app.register_blueprint(animals_bp, url_prefix="/api/farms")
    app.register_blueprint(events_bp, url_prefix="/api/farms")
    app.register_blueprint(cashbox_bp, url_prefix="/api/farms")
    app.register_blueprint(dashboard_bp, url_prefix="/api/farms")
    app.register_blueprint(exports_bp, url_prefix="/api/farms")

    def _load_user_wrapper():
        if request.path.startswith(_PUBLIC_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve (env=%s)", settings.env)

    return app
