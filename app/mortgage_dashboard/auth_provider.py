from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.orm import sessionmaker
from werkzeug.security import check_password_hash

from app.mortgage_dashboard.db import session_scope
from app.mortgage_dashboard.models import Profile
from app.mortgage_dashboard.supabase_client import SupabaseClient, SupabaseError, eq

logger = logging.getLogger(__name__)


class AuthError(RuntimeError):
    pass


class AuthEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: AuthUser


AuthListener = Callable[[AuthEvent, "AuthSession | None"], None]


class Subscription:
    def __init__(self, provider: "AuthProvider", listener: AuthListener) -> None:
        self._provider = provider
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._provider._listeners.remove(self._listener)
            self.active = False


class AuthProvider:
    """
    Backend auth client: credential sign-in, token -> user lookup, profile role lookup,
    and session-change notifications for subscribers.
    """

    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _notify(self, event: AuthEvent, session: AuthSession | None) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    def sign_in(self, email: str, password: str) -> AuthSession:
        session = self._authenticate(email, password)
        self._notify(AuthEvent.SIGNED_IN, session)
        return session

    def sign_out(self, access_token: str) -> None:
        user = self.get_user(access_token)
        self._revoke(access_token)
        self._notify(AuthEvent.SIGNED_OUT, AuthSession(access_token, user) if user else None)

    def _authenticate(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    def _revoke(self, access_token: str) -> None:
        raise NotImplementedError

    def get_user(self, access_token: str) -> AuthUser | None:
        raise NotImplementedError

    def get_profile_role(self, user_id: str) -> str | None:
        raise NotImplementedError


class SupabaseAuthProvider(AuthProvider):
    def __init__(self, client: SupabaseClient, profiles_table: str = "profiles") -> None:
        super().__init__()
        self.client = client
        self.profiles_table = profiles_table

    def _authenticate(self, email: str, password: str) -> AuthSession:
        try:
            out = self.client.sign_in_with_password(email, password)
        except SupabaseError as e:
            if e.status in (400, 401, 403):
                raise AuthError("Invalid credentials.") from e
            raise AuthError("Sign-in request failed.") from e
        token = out.get("access_token")
        user = out.get("user") or {}
        if not token or not user.get("id"):
            raise AuthError("Sign-in response missing session.")
        return AuthSession(access_token=token, user=AuthUser(id=str(user["id"]), email=user.get("email") or email))

    def _revoke(self, access_token: str) -> None:
        try:
            self.client.sign_out(access_token)
        except SupabaseError as e:
            # The local session is dropped regardless; an expired token cannot be revoked.
            logger.warning("Supabase sign-out failed: %s", e)

    def get_user(self, access_token: str) -> AuthUser | None:
        try:
            data = self.client.get_user(access_token)
        except SupabaseError as e:
            raise AuthError("User lookup failed.") from e
        if not data:
            return None
        return AuthUser(id=str(data["id"]), email=data.get("email") or "")

    def get_profile_role(self, user_id: str) -> str | None:
        try:
            rows = self.client.select(self.profiles_table, columns="role", filters={"id": eq(user_id)})
        except SupabaseError as e:
            raise AuthError("Profile lookup failed.") from e
        if not rows:
            return None
        return rows[0].get("role") or None


class LocalAuthProvider(AuthProvider):
    """Profiles table in the local database; access tokens are signed profile ids."""

    def __init__(self, sessions: sessionmaker, secret_key: str, *, max_age_seconds: int = 8 * 3600) -> None:
        super().__init__()
        self.sessions = sessions
        self.max_age_seconds = max_age_seconds
        self._serializer = URLSafeTimedSerializer(secret_key, salt="mortgage-dashboard-auth")

    def _authenticate(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()
        with session_scope(self.sessions) as s:
            profile = s.query(Profile).filter(Profile.email == email).one_or_none()
            if not profile or not check_password_hash(profile.password_hash, password or ""):
                raise AuthError("Invalid credentials.")
            user = AuthUser(id=profile.id, email=profile.email)
        token = self._serializer.dumps(user.id)
        return AuthSession(access_token=token, user=user)

    def _revoke(self, access_token: str) -> None:
        return None

    def get_user(self, access_token: str) -> AuthUser | None:
        try:
            user_id = self._serializer.loads(access_token, max_age=self.max_age_seconds)
        except (BadSignature, SignatureExpired):
            return None
        with session_scope(self.sessions) as s:
            profile = s.get(Profile, str(user_id))
            if not profile:
                return None
            return AuthUser(id=profile.id, email=profile.email)

    def get_profile_role(self, user_id: str) -> str | None:
        with session_scope(self.sessions) as s:
            profile = s.get(Profile, user_id)
            return (profile.role or None) if profile else None


def auth_from_config(config: dict, *, sessions: sessionmaker | None = None) -> AuthProvider:
    backend = (config.get("STORE_BACKEND") or "supabase").strip().lower()
    if backend == "sql":
        if sessions is None:
            raise AuthError("sql backend requires an initialized database (init_db).")
        return LocalAuthProvider(sessions, config["SECRET_KEY"])
    client = SupabaseClient(
        base_url=(config.get("SUPABASE_URL") or "").strip(),
        api_key=(config.get("SUPABASE_ANON_KEY") or "").strip(),
        timeout_seconds=int(config.get("SUPABASE_TIMEOUT_SECONDS") or 30),
    )
    return SupabaseAuthProvider(client, profiles_table=(config.get("PROFILES_TABLE") or "profiles").strip())
