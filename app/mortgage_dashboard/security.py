import hmac
import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate the CSRF token posted with a form (or sent as X-CSRF-Token)."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token") or ""
    expected = session.get("csrf_token") or ""
    return bool(token and expected and hmac.compare_digest(token, expected))
