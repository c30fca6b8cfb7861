# tenant_auth/client/state.py
"""UI-facing auth state.

``AuthStateMachine`` only moves through named transitions, each legal from a
fixed set of source statuses; anything else raises :class:`InvalidTransition`.
Snapshots are immutable, listeners get the new snapshot after every move.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


class AuthStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AWAITING_TWO_FACTOR = "awaiting_two_factor"
    EMAIL_UNVERIFIED = "email_unverified"
    AUTHENTICATED = "authenticated"


SIGNED_IN = frozenset({AuthStatus.AUTHENTICATED, AuthStatus.EMAIL_UNVERIFIED})
LOADING = frozenset({AuthStatus.INITIALIZING, AuthStatus.AUTHENTICATING})


class InvalidTransition(RuntimeError):
    def __init__(self, name: str, status: AuthStatus):
        super().__init__(f"transition {name!r} not allowed from {status.value}")
        self.name = name
        self.status = status


@dataclass(frozen=True)
class AuthState:
    status: AuthStatus = AuthStatus.UNINITIALIZED
    user: Optional[Dict[str, Any]] = None
    is_initialized: bool = False
    error: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status in SIGNED_IN

    @property
    def is_loading(self) -> bool:
        return self.status in LOADING

    @property
    def email_verified(self) -> bool:
        return bool(self.user and self.user.get("emailVerified"))


Listener = Callable[[AuthState], None]


def _signed_in_status(user: Dict[str, Any]) -> AuthStatus:
    return AuthStatus.AUTHENTICATED if user.get("emailVerified") else AuthStatus.EMAIL_UNVERIFIED


class AuthStateMachine:
    def __init__(self) -> None:
        self._state = AuthState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- internals ---------------------------------------------------------
    def _move(self, name: str, allowed: Iterable[AuthStatus], **changes: Any) -> AuthState:
        current = self._state.status
        if current not in frozenset(allowed):
            raise InvalidTransition(name, current)
        self._state = replace(self._state, **changes)
        logger.debug("auth state %s -> %s (%s)", current.value, self._state.status.value, name)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # -- app load ----------------------------------------------------------
    def begin_initialize(self) -> AuthState:
        return self._move("begin_initialize", {AuthStatus.UNINITIALIZED}, status=AuthStatus.INITIALIZING)

    def resolve_initialize(self, user: Optional[Dict[str, Any]] = None, access_token: Optional[str] = None,
                           error: Optional[str] = None) -> AuthState:
        if user is not None and access_token:
            return self._move(
                "resolve_initialize", {AuthStatus.INITIALIZING},
                status=_signed_in_status(user), user=user, access_token=access_token,
                is_initialized=True, error=None,
            )
        return self._move(
            "resolve_initialize", {AuthStatus.INITIALIZING},
            status=AuthStatus.UNAUTHENTICATED, user=None, access_token=None,
            is_initialized=True, error=error,
        )

    # -- login flow --------------------------------------------------------
    def begin_login(self) -> AuthState:
        return self._move(
            "begin_login",
            {AuthStatus.UNAUTHENTICATED, AuthStatus.AWAITING_TWO_FACTOR, AuthStatus.EMAIL_UNVERIFIED},
            status=AuthStatus.AUTHENTICATING, error=None,
        )

    def require_two_factor(self, error: Optional[str] = None) -> AuthState:
        return self._move(
            "require_two_factor", {AuthStatus.AUTHENTICATING},
            status=AuthStatus.AWAITING_TWO_FACTOR, user=None, access_token=None, error=error,
        )

    def cancel_two_factor(self) -> AuthState:
        return self._move("cancel_two_factor", {AuthStatus.AWAITING_TWO_FACTOR}, status=AuthStatus.UNAUTHENTICATED)

    def login_succeeded(self, user: Dict[str, Any], access_token: str) -> AuthState:
        return self._move(
            "login_succeeded", {AuthStatus.AUTHENTICATING},
            status=_signed_in_status(user), user=user, access_token=access_token, error=None,
        )

    def login_failed(self, error: str) -> AuthState:
        return self._move(
            "login_failed", {AuthStatus.AUTHENTICATING},
            status=AuthStatus.UNAUTHENTICATED, user=None, access_token=None, error=error,
        )

    # -- established session ----------------------------------------------
    def session_refreshed(self, user: Dict[str, Any], access_token: str) -> AuthState:
        """New token pair for a session that is still signed in."""
        return self._move(
            "session_refreshed", SIGNED_IN,
            status=_signed_in_status(user), user=user, access_token=access_token, error=None,
        )

    def session_adopted(self, user: Dict[str, Any], access_token: str) -> AuthState:
        """A session that did not start here: another tab's login, or a restore
        after the backend was unreachable on initialize."""
        return self._move(
            "session_adopted", {AuthStatus.UNAUTHENTICATED},
            status=_signed_in_status(user), user=user, access_token=access_token, error=None,
        )

    def user_updated(self, user: Dict[str, Any]) -> AuthState:
        return self._move("user_updated", SIGNED_IN, status=_signed_in_status(user), user=user)

    def email_unverified(self) -> AuthState:
        return self._move(
            "email_unverified", {AuthStatus.AUTHENTICATED},
            status=AuthStatus.EMAIL_UNVERIFIED, user={**(self._state.user or {}), "emailVerified": False},
        )

    def signed_out(self, error: Optional[str] = None) -> AuthState:
        return self._move(
            "signed_out",
            SIGNED_IN | {AuthStatus.UNAUTHENTICATED, AuthStatus.AWAITING_TWO_FACTOR},
            status=AuthStatus.UNAUTHENTICATED, user=None, access_token=None, error=error,
        )


# ---------------------------------------------------------------------------
# route guard
# ---------------------------------------------------------------------------
LOGIN_PATH = "/auth"
PENDING_VERIFICATION_PATH = "/pending-verification"

PUBLIC_ROUTES: FrozenSet[str] = frozenset({"/", LOGIN_PATH, "/verify-email", "/privacy", "/terms"})
UNVERIFIED_ROUTES: FrozenSet[str] = frozenset({LOGIN_PATH, "/verify-email", PENDING_VERIFICATION_PATH, "/logout"})


class RouteDecision(str, Enum):
    WAIT = "wait"
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_VERIFY = "redirect_verify"

    @property
    def location(self) -> Optional[str]:
        if self is RouteDecision.REDIRECT_LOGIN:
            return LOGIN_PATH
        if self is RouteDecision.REDIRECT_VERIFY:
            return PENDING_VERIFICATION_PATH
        return None


def _normalize_path(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


def route_decision(state: AuthState, path: str, public_routes: FrozenSet[str] = PUBLIC_ROUTES) -> RouteDecision:
    """Decide what a router should do with ``path`` given the current state.

    Nothing but public routes is decided before initialization resolves, so
    a signed-in user is never bounced to the login page on a cold start.
    """
    path = _normalize_path(path)
    if path in public_routes:
        return RouteDecision.ALLOW
    if not state.is_initialized or state.is_loading:
        return RouteDecision.WAIT
    if state.status is AuthStatus.EMAIL_UNVERIFIED:
        return RouteDecision.ALLOW if path in UNVERIFIED_ROUTES else RouteDecision.REDIRECT_VERIFY
    if state.status is AuthStatus.AUTHENTICATED:
        return RouteDecision.ALLOW
    return RouteDecision.REDIRECT_LOGIN
