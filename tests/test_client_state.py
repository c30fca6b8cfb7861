from __future__ import annotations

import dataclasses

import pytest

from tenant_auth.client.state import (
    AuthState,
    AuthStateMachine,
    AuthStatus,
    InvalidTransition,
    RouteDecision,
    route_decision,
)

VERIFIED = {"id": 1, "email": "ana@example.com", "emailVerified": True}
UNVERIFIED = {"id": 2, "email": "bia@example.com", "emailVerified": False}


def _initialized(user=None) -> AuthStateMachine:
    m = AuthStateMachine()
    m.begin_initialize()
    m.resolve_initialize(user, "tok" if user else None)
    return m


def test_initializing_is_entered_once():
    m = AuthStateMachine()
    assert m.state.status is AuthStatus.UNINITIALIZED
    assert m.state.is_initialized is False

    m.begin_initialize()
    assert m.state.is_loading
    with pytest.raises(InvalidTransition):
        m.begin_initialize()

    m.resolve_initialize()
    assert m.state.status is AuthStatus.UNAUTHENTICATED
    assert m.state.is_initialized is True
    with pytest.raises(InvalidTransition):
        m.begin_initialize()
    with pytest.raises(InvalidTransition):
        m.resolve_initialize()


def test_initialize_resolves_by_verification_flag():
    assert _initialized(VERIFIED).state.status is AuthStatus.AUTHENTICATED
    state = _initialized(UNVERIFIED).state
    assert state.status is AuthStatus.EMAIL_UNVERIFIED
    assert state.is_authenticated is True
    assert state.email_verified is False


def test_login_flow_with_two_factor():
    m = _initialized()
    m.begin_login()
    assert m.state.status is AuthStatus.AUTHENTICATING
    m.require_two_factor()
    assert m.state.status is AuthStatus.AWAITING_TWO_FACTOR
    m.begin_login()
    m.login_succeeded(VERIFIED, "tok")
    assert m.state.status is AuthStatus.AUTHENTICATED
    assert m.state.access_token == "tok"


def test_failed_login_records_error():
    m = _initialized()
    m.begin_login()
    m.login_failed("Invalid credentials.")
    assert m.state.status is AuthStatus.UNAUTHENTICATED
    assert m.state.error == "Invalid credentials."
    m.begin_login()
    assert m.state.error is None


@pytest.mark.parametrize(
    "action",
    [
        lambda m: m.login_succeeded(VERIFIED, "tok"),
        lambda m: m.require_two_factor(),
        lambda m: m.user_updated(VERIFIED),
        lambda m: m.cancel_two_factor(),
        lambda m: m.session_refreshed(VERIFIED, "tok"),
        lambda m: m.email_unverified(),
    ],
)
def test_illegal_transitions_raise(action):
    m = _initialized()
    with pytest.raises(InvalidTransition):
        action(m)


def test_cannot_sign_out_before_initialization():
    with pytest.raises(InvalidTransition):
        AuthStateMachine().signed_out()


def test_user_update_promotes_after_verification():
    m = _initialized(UNVERIFIED)
    m.user_updated({**UNVERIFIED, "emailVerified": True})
    assert m.state.status is AuthStatus.AUTHENTICATED


def test_listeners_get_immutable_snapshots():
    m = AuthStateMachine()
    seen = []
    unsubscribe = m.subscribe(seen.append)
    m.begin_initialize()
    m.resolve_initialize(VERIFIED, "tok")
    unsubscribe()
    m.signed_out()

    assert [s.status for s in seen] == [AuthStatus.INITIALIZING, AuthStatus.AUTHENTICATED]
    with pytest.raises(dataclasses.FrozenInstanceError):
        seen[0].status = AuthStatus.AUTHENTICATED


def test_routes_wait_until_initialized():
    state = AuthState()
    assert route_decision(state, "/dashboard") is RouteDecision.WAIT
    loading = AuthStateMachine()
    loading.begin_initialize()
    assert route_decision(loading.state, "/dashboard") is RouteDecision.WAIT
    # public pages never wait
    assert route_decision(state, "/auth") is RouteDecision.ALLOW


def test_routes_for_each_status():
    anonymous = _initialized().state
    assert route_decision(anonymous, "/dashboard") is RouteDecision.REDIRECT_LOGIN
    assert RouteDecision.REDIRECT_LOGIN.location == "/auth"
    assert route_decision(anonymous, "/verify-email?token=abc") is RouteDecision.ALLOW

    unverified = _initialized(UNVERIFIED).state
    decision = route_decision(unverified, "/settings/")
    assert decision is RouteDecision.REDIRECT_VERIFY
    assert decision.location == "/pending-verification"
    assert route_decision(unverified, "/pending-verification") is RouteDecision.ALLOW
    assert route_decision(unverified, "/logout") is RouteDecision.ALLOW

    verified = _initialized(VERIFIED).state
    assert route_decision(verified, "/settings") is RouteDecision.ALLOW
    assert route_decision(verified, "/pending-verification") is RouteDecision.ALLOW
    assert RouteDecision.ALLOW.location is None


def test_adopting_a_session_from_signed_out():
    m = _initialized()
    m.session_adopted(VERIFIED, "tok")
    assert m.state.status is AuthStatus.AUTHENTICATED
    with pytest.raises(InvalidTransition):
        m.session_adopted(VERIFIED, "tok2")
    m.session_refreshed(VERIFIED, "tok2")
    assert m.state.access_token == "tok2"


def test_email_unverified_demotes_without_signing_out():
    m = _initialized(VERIFIED)
    m.email_unverified()
    assert m.state.status is AuthStatus.EMAIL_UNVERIFIED
    assert m.state.access_token == "tok"
    assert m.state.user["email"] == "ana@example.com"
    assert route_decision(m.state, "/settings") is RouteDecision.REDIRECT_VERIFY
