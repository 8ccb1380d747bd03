from __future__ import annotations

import uuid

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from app.mortgage_dashboard.auth_context import ANONYMOUS, AuthContext
from app.mortgage_dashboard.auth_provider import AuthError

bp = Blueprint("auth", __name__)

_TOKEN_KEY = "access_token"


def _auth_context() -> AuthContext:
    return current_app.extensions["auth_context"]


def load_current_user() -> None:
    """
    Loads g.auth_state from the access token kept in the signed session cookie.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.auth_state = ANONYMOUS
        return

    token = session.get(_TOKEN_KEY)
    try:
        state = _auth_context().resolve(token)
    except AuthError as e:
        current_app.logger.error("load_current_user auth error (clearing session): %s", e)
        session.pop(_TOKEN_KEY, None)
        g.auth_state = ANONYMOUS
        return
    if token and not state.is_authenticated and not state.loading:
        session.pop(_TOKEN_KEY, None)
    g.auth_state = state


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()

    try:
        auth_session = _auth_context().provider.sign_in(email, password)
    except AuthError as e:
        current_app.logger.info("Login failed (email=%s request_id=%s): %s", email, getattr(g, "request_id", None), e)
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    session[_TOKEN_KEY] = auth_session.access_token
    # Optional "next" redirect (only allow local paths to avoid open redirects).
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("packages.dashboard"))


@bp.get("/logout")
def logout():
    token = session.pop(_TOKEN_KEY, None)
    if token:
        try:
            _auth_context().provider.sign_out(token)
        except AuthError as e:
            current_app.logger.warning("Sign-out failed (request_id=%s): %s", getattr(g, "request_id", None), e)
    return redirect(url_for("routes.index"))
