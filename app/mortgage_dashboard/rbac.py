from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, current_app, g, redirect, request, url_for

from app.mortgage_dashboard.auth_context import ANONYMOUS, AuthState


def current_auth_state() -> AuthState:
    return getattr(g, "auth_state", None) or ANONYMOUS


def can_edit(state: AuthState | None = None) -> bool:
    state = state or current_auth_state()
    if not state.is_authenticated:
        return False
    editor_roles = current_app.config.get("EDITOR_ROLES") or ()
    # No configured editor roles: any signed-in user may edit.
    if not editor_roles:
        return True
    return (state.role or "").lower() in editor_roles


def _redirect_to_login():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not current_auth_state().is_authenticated:
            return _redirect_to_login()
        return fn(*args, **kwargs)

    return wrapped


def require_editor(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        state = current_auth_state()
        # Unauthenticated → redirect to login (UX + reduces confusion).
        if not state.is_authenticated:
            return _redirect_to_login()
        # Authenticated but role not allowed to write → 403
        if not can_edit(state):
            g.missing_role = ", ".join(current_app.config.get("EDITOR_ROLES") or ())
            abort(403)
        return fn(*args, **kwargs)

    return wrapped
