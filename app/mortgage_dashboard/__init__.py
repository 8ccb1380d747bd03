import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session

from app.mortgage_dashboard.config import load_config
from app.mortgage_dashboard.db import init_db
from app.mortgage_dashboard.routes import bp as routes_bp
from app.mortgage_dashboard.auth import bp as auth_bp, load_current_user
from app.mortgage_dashboard.auth_context import AuthContext
from app.mortgage_dashboard.auth_provider import auth_from_config
from app.mortgage_dashboard.store import PackageStore, store_from_config
from app.mortgage_dashboard.modules.mortgage_packages.admin import bp as packages_bp

logger = logging.getLogger(__name__)


def create_app(*, store: PackageStore | None = None, auth: AuthContext | None = None) -> Flask:
    """
    Build the dashboard app. The record store and the auth context are injected when
    given (tests, scripts) and otherwise built from configuration.
    """
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (minimal)
    from app.mortgage_dashboard.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_auth_state() -> dict:
        from app.mortgage_dashboard.rbac import current_auth_state

        return {"auth_state": current_auth_state()}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%d/%m/%Y") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("currency")
    def _currency_filter(value) -> str:
        from app.mortgage_dashboard.utils import format_currency

        return format_currency(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow safe auth endpoints to pass through (login/logout)
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    backend = app.config.get("STORE_BACKEND") or "supabase"
    if env in ("prod", "production"):
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if backend == "supabase" and not (app.config.get("SUPABASE_URL") and app.config.get("SUPABASE_ANON_KEY")):
            raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY are required in production.")
        if backend == "sql" and str(app.config.get("DATABASE_URL") or "").startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if backend not in ("supabase", "sql"):
        raise RuntimeError(f"Unknown STORE_BACKEND {backend!r}; expected 'supabase' or 'sql'.")

    if backend == "sql" and (store is None or auth is None):
        init_db(app)
        _dispose_engine_on_fork(app)
    sessions = app.extensions.get("sqlalchemy_sessionmaker")

    if store is None:
        store = store_from_config(app.config, sessions=sessions)
    if auth is None:
        auth = AuthContext(auth_from_config(app.config, sessions=sessions))
    app.extensions["package_store"] = store
    app.extensions["auth_context"] = auth
    auth.start()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(packages_bp)

    app.before_request(load_current_user)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: required_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_role=missing), 403

    logger.info("create_app() complete; backend=%s; app ready to serve", backend)
    return app


def shutdown_app(app: Flask) -> None:
    """Stop-side of the app lifecycle: drop the auth subscription and release DB connections."""
    auth: AuthContext | None = app.extensions.get("auth_context")
    if auth is not None:
        auth.stop()
    engine = app.extensions.get("sqlalchemy_engine")
    if engine is not None:
        engine.dispose()


def _dispose_engine_on_fork(app: Flask) -> None:
    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)
