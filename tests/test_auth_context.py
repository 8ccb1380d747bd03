import pytest
from werkzeug.security import generate_password_hash

from app.mortgage_dashboard.auth_context import ANONYMOUS, LOADING, AuthContext
from app.mortgage_dashboard.auth_provider import (
    AuthError,
    AuthEvent,
    AuthProvider,
    AuthSession,
    AuthUser,
    LocalAuthProvider,
)
from app.mortgage_dashboard.db import build_engine, build_sessionmaker, session_scope
from app.mortgage_dashboard.models import Base, Profile


class FakeProvider(AuthProvider):
    def __init__(self, roles):
        super().__init__()
        self.roles = roles
        self.role_lookups = []
        self.revoked = []

    def _authenticate(self, email, password):
        if password != "secret":
            raise AuthError("Invalid credentials.")
        return AuthSession(access_token=f"token-{email}", user=AuthUser(id=email, email=email))

    def _revoke(self, access_token):
        self.revoked.append(access_token)

    def get_user(self, access_token):
        if not access_token.startswith("token-"):
            return None
        email = access_token[len("token-"):]
        return AuthUser(id=email, email=email)

    def get_profile_role(self, user_id):
        self.role_lookups.append(user_id)
        role = self.roles.get(user_id)
        if isinstance(role, Exception):
            raise role
        return role


def test_unstarted_context_reports_loading():
    ctx = AuthContext(FakeProvider({}))
    assert ctx.resolve("token-a@example.com") == LOADING
    assert LOADING.loading and not LOADING.is_authenticated


def test_anonymous_without_token_or_unknown_token():
    ctx = AuthContext(FakeProvider({}))
    ctx.start()
    assert ctx.resolve(None) == ANONYMOUS
    assert ctx.resolve("garbage") == ANONYMOUS


def test_sign_in_event_looks_up_role():
    provider = FakeProvider({"a@example.com": "admin"})
    ctx = AuthContext(provider)
    ctx.start()

    session = provider.sign_in("a@example.com", "secret")
    assert provider.role_lookups == ["a@example.com"]

    state = ctx.resolve(session.access_token)
    assert state.is_authenticated
    assert state.user.email == "a@example.com"
    assert state.role == "admin"
    assert not state.loading


def test_every_resolve_reads_the_current_role():
    provider = FakeProvider({"b@example.com": "admin"})
    ctx = AuthContext(provider)
    ctx.start()

    assert ctx.resolve("token-b@example.com").role == "admin"
    provider.roles["b@example.com"] = "viewer"
    assert ctx.resolve("token-b@example.com").role == "viewer"
    assert provider.role_lookups == ["b@example.com", "b@example.com"]


def test_missing_profile_or_failed_lookup_gives_no_role():
    provider = FakeProvider({"c@example.com": AuthError("profile lookup failed")})
    ctx = AuthContext(provider)
    ctx.start()
    state = ctx.resolve("token-c@example.com")
    assert state.is_authenticated
    assert state.role is None
    assert ctx.resolve("token-nobody@example.com").role is None


def test_sign_out_revokes_token():
    provider = FakeProvider({"a@example.com": "admin"})
    ctx = AuthContext(provider)
    ctx.start()
    session = provider.sign_in("a@example.com", "secret")

    provider.sign_out(session.access_token)
    assert provider.revoked == [session.access_token]


def test_start_subscribes_once_and_stop_unsubscribes():
    provider = FakeProvider({"a@example.com": "admin"})
    ctx = AuthContext(provider)
    ctx.start()
    ctx.start()
    assert len(provider._listeners) == 1
    assert ctx.started

    ctx.stop()
    assert provider._listeners == []
    assert not ctx.started

    provider.sign_in("a@example.com", "secret")
    assert provider.role_lookups == []
    assert ctx.resolve("token-a@example.com") == LOADING


def test_listener_receives_events():
    provider = FakeProvider({})
    seen = []
    sub = provider.on_auth_state_change(lambda event, session: seen.append((event, session.user.id)))

    session = provider.sign_in("d@example.com", "secret")
    provider.sign_out(session.access_token)
    sub.unsubscribe()
    sub.unsubscribe()
    provider.sign_in("d@example.com", "secret")

    assert seen == [(AuthEvent.SIGNED_IN, "d@example.com"), (AuthEvent.SIGNED_OUT, "d@example.com")]


def test_bad_credentials_raise_without_event():
    provider = FakeProvider({})
    seen = []
    provider.on_auth_state_change(lambda event, session: seen.append(event))
    with pytest.raises(AuthError):
        provider.sign_in("a@example.com", "wrong")
    assert seen == []


@pytest.fixture()
def local_provider(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    Base.metadata.create_all(bind=engine)
    sessions = build_sessionmaker(engine)
    with session_scope(sessions) as s:
        s.add(Profile(id="u-1", email="admin@example.com", password_hash=generate_password_hash("pw"), role="admin"))
        s.add(Profile(id="u-2", email="norole@example.com", password_hash=generate_password_hash("pw"), role=None))
    yield LocalAuthProvider(sessions, "test-secret")
    engine.dispose()


def test_local_provider_round_trip(local_provider):
    ctx = AuthContext(local_provider)
    ctx.start()

    session = local_provider.sign_in(" Admin@Example.com ", "pw")
    assert session.user.id == "u-1"
    state = ctx.resolve(session.access_token)
    assert state.user.email == "admin@example.com"
    assert state.role == "admin"

    other = local_provider.sign_in("norole@example.com", "pw")
    assert ctx.resolve(other.access_token).role is None


def test_local_provider_rejects_bad_password_and_forged_token(local_provider):
    with pytest.raises(AuthError):
        local_provider.sign_in("admin@example.com", "nope")
    with pytest.raises(AuthError):
        local_provider.sign_in("ghost@example.com", "pw")
    assert local_provider.get_user("forged.token.value") is None

    other = LocalAuthProvider(local_provider.sessions, "different-secret")
    token = other.sign_in("admin@example.com", "pw").access_token
    assert local_provider.get_user(token) is None


def test_local_provider_role_change_applies_on_next_resolve(local_provider):
    ctx = AuthContext(local_provider)
    ctx.start()
    session = local_provider.sign_in("admin@example.com", "pw")
    assert ctx.resolve(session.access_token).role == "admin"

    with session_scope(local_provider.sessions) as s:
        s.get(Profile, "u-1").role = "viewer"

    assert ctx.resolve(session.access_token).role == "viewer"
