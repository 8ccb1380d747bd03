from flask import Blueprint, current_app, render_template

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    """Public landing page with a link into the dashboard."""
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Liveness plus the configured record store backend. Does not call the backend."""
    return {"ok": True, "store_backend": current_app.config.get("STORE_BACKEND")}


@bp.get("/healthz")
def healthz():
    # Plain-text liveness check for the container platform; no session or store access.
    return "ok", 200
