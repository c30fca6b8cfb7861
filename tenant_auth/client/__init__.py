from tenant_auth.client.channel import AuthChannel, LoggedIn, SessionRevoked, TokenRefreshed
from tenant_auth.client.errors import (
    AuthClientError,
    AuthUnavailable,
    EmailNotVerified,
    LoginFailed,
    SessionExpired,
    SessionInvalid,
)
from tenant_auth.client.manager import AuthManager, LoginOutcome
from tenant_auth.client.state import (
    AuthState,
    AuthStateMachine,
    AuthStatus,
    InvalidTransition,
    RouteDecision,
    route_decision,
)

__all__ = [
    "AuthChannel", "LoggedIn", "SessionRevoked", "TokenRefreshed",
    "AuthClientError", "AuthUnavailable", "EmailNotVerified", "LoginFailed", "SessionExpired", "SessionInvalid",
    "AuthManager", "LoginOutcome",
    "AuthState", "AuthStateMachine", "AuthStatus", "InvalidTransition", "RouteDecision", "route_decision",
]
