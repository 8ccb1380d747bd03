from __future__ import annotations

import logging
from dataclasses import dataclass

from app.mortgage_dashboard.auth_provider import (
    AuthError,
    AuthEvent,
    AuthProvider,
    AuthSession,
    AuthUser,
    Subscription,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthState:
    user: AuthUser | None
    role: str | None
    loading: bool

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


ANONYMOUS = AuthState(user=None, role=None, loading=False)
LOADING = AuthState(user=None, role=None, loading=True)


class AuthContext:
    """
    Resolves {user, role, loading} for a session token.

    Owned by the application: `start()` subscribes to the provider's session-change
    events once, `stop()` unsubscribes. The role is read from the profile record on
    SIGNED_IN and again on every `resolve()`, so a role change takes effect on the
    next request in every worker.
    """

    def __init__(self, provider: AuthProvider) -> None:
        self.provider = provider
        self._subscription: Subscription | None = None

    @property
    def started(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> None:
        if self.started:
            return
        self._subscription = self.provider.on_auth_state_change(self._on_auth_state_change)
        logger.info("Auth context subscribed to session changes")

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Auth context unsubscribed from session changes")

    def _on_auth_state_change(self, event: AuthEvent, session: AuthSession | None) -> None:
        if session is None:
            return
        user_id = session.user.id
        if event == AuthEvent.SIGNED_IN:
            role = self._lookup_role(user_id)
            logger.info("Signed in user_id=%s role=%s", user_id, role or "-")
        elif event == AuthEvent.SIGNED_OUT:
            logger.info("Signed out user_id=%s", user_id)

    def _lookup_role(self, user_id: str) -> str | None:
        try:
            return self.provider.get_profile_role(user_id)
        except AuthError as e:
            logger.warning("Role lookup failed for user_id=%s: %s", user_id, e)
            return None

    def resolve(self, access_token: str | None) -> AuthState:
        if not self.started:
            return LOADING
        if not access_token:
            return ANONYMOUS
        user = self.provider.get_user(access_token)
        if user is None:
            return ANONYMOUS
        return AuthState(user=user, role=self._lookup_role(user.id), loading=False)
