from __future__ import annotations

import asyncio
import json
import time
from typing import Callable, Optional, Tuple

import httpx
import pytest
from jose import jwt

from tenant_auth.client import (
    AuthChannel,
    AuthManager,
    AuthStatus,
    AuthUnavailable,
    LoginFailed,
    LoginOutcome,
    SessionExpired,
    SessionInvalid,
    SessionRevoked,
    TokenRefreshed,
)

USER = {"id": 1, "email": "ana@example.com", "emailVerified": True}


def _access(ttl: int, n: int) -> str:
    return jwt.encode({"sub": "1", "n": n, "exp": int(time.time()) + ttl}, "k", algorithm="HS256")


def _error(status: int, code: str) -> httpx.Response:
    return httpx.Response(status, json={"code": code, "message": code, "details": None})


class FakeAuthServer:
    def __init__(self, ttl: int = 900):
        self.ttl = ttl
        self.current: Optional[str] = None
        self.refresh_calls = 0
        self.logout_calls = 0
        self.refresh_delay = 0.0
        self.refresh_error: Optional[Tuple[int, str]] = None
        self.session_alive = True
        self.network_down = False
        self.before_refresh_reply: Optional[Callable[[], None]] = None
        self.user = dict(USER)

    def expire_access(self) -> None:
        self.current = "expired"

    def _grant(self) -> httpx.Response:
        self.current = _access(self.ttl, self.refresh_calls + 1000 * self.logout_calls + int(time.time() * 1000))
        return httpx.Response(200, json={"accessToken": self.current, "refreshToken": "r" * 64, "user": self.user})

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.network_down:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path

        if path == "/api/auth/refresh":
            self.refresh_calls += 1
            await asyncio.sleep(self.refresh_delay)
            if self.before_refresh_reply is not None:
                self.before_refresh_reply()
            if self.refresh_error is not None:
                return _error(*self.refresh_error)
            if not self.session_alive:
                return _error(401, "SessionInvalid")
            return self._grant()

        if path == "/api/auth/login":
            body = json.loads(request.content or b"{}")
            if body.get("preAuthToken"):
                if body.get("twoFactorToken") != "123456":
                    return _error(400, "InvalidTwoFactorCode")
                return self._grant()
            if body.get("password") != "Passw0rd!":
                return _error(401, "InvalidCredentials")
            if body.get("email") == "2fa@example.com":
                return httpx.Response(200, json={"requires2FA": True, "preAuthToken": "marker"})
            if body.get("email") == "new@example.com":
                self.user = {**USER, "emailVerified": False}
                resp = self._grant()
                return httpx.Response(403, json={**resp.json(), "code": "EmailNotVerified", "message": "verify"})
            return self._grant()

        if path == "/api/auth/logout":
            self.logout_calls += 1
            return httpx.Response(200, json={"message": "Logged out successfully"})

        if request.headers.get("Authorization") != f"Bearer {self.current}":
            return _error(401, "AccessTokenExpired")
        if path == "/api/restricted":
            return _error(403, "EmailNotVerified")
        return httpx.Response(200, json={"ok": True, "user": self.user})


@pytest.fixture
def server() -> FakeAuthServer:
    return FakeAuthServer()


def _http(server: FakeAuthServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(server.handler), base_url="http://testserver")


@pytest.mark.asyncio
async def test_initialize_restores_session_once(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            assert manager.state.status is AuthStatus.AUTHENTICATED
            assert manager.state.is_initialized
            assert manager.access_token == server.current
            await manager.initialize()
            assert server.refresh_calls == 1


@pytest.mark.asyncio
async def test_initialize_without_session(server):
    server.session_alive = False
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.state.error is None


@pytest.mark.asyncio
async def test_initialize_while_backend_is_down_keeps_the_door_open(server):
    server.network_down = True
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.state.error

            server.network_down = False
            await manager.refresh_access_token()
            assert manager.state.status is AuthStatus.AUTHENTICATED


@pytest.mark.asyncio
async def test_request_refreshes_and_retries_once(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            server.expire_access()
            resp = await manager.request("GET", "/api/data")
            assert resp.status_code == 200
            assert server.refresh_calls == 2


@pytest.mark.asyncio
async def test_concurrent_401s_share_one_refresh(server):
    server.refresh_delay = 0.05
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            server.expire_access()
            responses = await asyncio.gather(*(manager.request("GET", "/api/data") for _ in range(5)))
            assert [r.status_code for r in responses] == [200] * 5
            assert server.refresh_calls == 2


@pytest.mark.asyncio
async def test_definitive_refresh_failure_signs_out(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            server.expire_access()
            server.refresh_error = (401, "SessionExpired")
            with pytest.raises(SessionExpired):
                await manager.request("GET", "/api/data")
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.access_token is None


@pytest.mark.asyncio
async def test_transient_refresh_failure_keeps_session(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            token = manager.access_token
            server.expire_access()
            server.refresh_error = (503, "Unavailable")
            with pytest.raises(AuthUnavailable):
                await manager.request("GET", "/api/data")
            assert manager.state.status is AuthStatus.AUTHENTICATED
            assert manager.access_token == token


@pytest.mark.asyncio
async def test_logout_clears_state_even_when_offline(server):
    channel = AuthChannel()
    events = []
    channel.subscribe(events.append)
    async with _http(server) as http:
        async with AuthManager(http, channel=channel) as manager:
            server.network_down = True
            await manager.logout()
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.access_token is None
    assert isinstance(events[-1], SessionRevoked)


@pytest.mark.asyncio
async def test_tabs_share_one_refresh_and_follow_each_other(server):
    channel = AuthChannel()
    server.refresh_delay = 0.05
    async with _http(server) as http:
        a = AuthManager(http, channel=channel)
        b = AuthManager(http, channel=channel)
        await asyncio.gather(a.initialize(), b.initialize())
        assert server.refresh_calls == 1
        assert a.access_token == b.access_token == server.current

        await a.refresh_access_token()
        assert b.access_token == a.access_token == server.current

        await a.logout()
        assert b.state.status is AuthStatus.UNAUTHENTICATED
        a.dispose()
        b.dispose()


@pytest.mark.asyncio
async def test_lost_rotation_adopts_token_from_other_tab(server):
    channel = AuthChannel()
    async with _http(server) as http:
        async with AuthManager(http, channel=channel) as manager:
            winner = _access(900, 99)
            server.refresh_error = (401, "SessionInvalid")
            server.before_refresh_reply = lambda: channel.publish(
                TokenRefreshed(access_token=winner, user=USER, source="other-tab")
            )
            assert await manager.refresh_access_token() == winner
            assert manager.state.status is AuthStatus.AUTHENTICATED
            assert manager.access_token == winner


@pytest.mark.asyncio
async def test_refresh_is_scheduled_before_expiry():
    server = FakeAuthServer(ttl=2)
    async with _http(server) as http:
        async with AuthManager(http, refresh_skew=1.5):
            assert server.refresh_calls == 1
            await asyncio.sleep(1.0)
            assert server.refresh_calls >= 2


@pytest.mark.asyncio
async def test_login_with_two_factor(server):
    server.session_alive = False
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            assert await manager.login("2fa@example.com", "Passw0rd!") is LoginOutcome.TWO_FACTOR_REQUIRED
            assert manager.state.status is AuthStatus.AWAITING_TWO_FACTOR

            with pytest.raises(LoginFailed):
                await manager.submit_two_factor("000000")
            assert manager.state.status is AuthStatus.AWAITING_TWO_FACTOR

            assert await manager.submit_two_factor("123456") is LoginOutcome.AUTHENTICATED
            assert manager.state.status is AuthStatus.AUTHENTICATED


@pytest.mark.asyncio
async def test_failed_and_unverified_logins(server):
    server.session_alive = False
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            with pytest.raises(LoginFailed) as exc:
                await manager.login("ana@example.com", "wrong")
            assert exc.value.code == "InvalidCredentials"
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.state.error

            assert await manager.login("new@example.com", "Passw0rd!") is LoginOutcome.EMAIL_UNVERIFIED
            assert manager.state.status is AuthStatus.EMAIL_UNVERIFIED
            assert manager.access_token


@pytest.mark.asyncio
async def test_refresh_landing_after_logout_is_discarded(server):
    channel = AuthChannel()
    events = []
    channel.subscribe(events.append)
    async with _http(server) as http:
        async with AuthManager(http, channel=channel) as manager:
            server.refresh_delay = 0.1
            pending = asyncio.ensure_future(manager.refresh_access_token())
            await asyncio.sleep(0.01)
            seen = len(events)
            await manager.logout()

            with pytest.raises(SessionInvalid):
                await pending
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.access_token is None
            assert [type(e) for e in events[seen:]] == [SessionRevoked]


@pytest.mark.asyncio
async def test_signed_out_manager_does_not_sign_itself_back_in(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            await manager.logout()
            with pytest.raises(SessionInvalid):
                await manager.refresh_access_token()
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.access_token is None


@pytest.mark.asyncio
async def test_sibling_refresh_is_not_adopted_after_logout(server):
    channel = AuthChannel()
    async with _http(server) as http:
        async with AuthManager(http, channel=channel) as a:
            await a.logout()
            channel.publish(TokenRefreshed(access_token=_access(900, 7), user=USER, source="other-tab"))
            assert a.state.status is AuthStatus.UNAUTHENTICATED
            assert a.access_token is None


@pytest.mark.asyncio
async def test_email_not_verified_demotes_instead_of_signing_out(server):
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            resp = await manager.request("GET", "/api/restricted")
            assert resp.status_code == 403
            assert manager.state.status is AuthStatus.EMAIL_UNVERIFIED
            assert manager.state.email_verified is False
            assert manager.access_token == server.current


@pytest.mark.asyncio
async def test_initialize_resolves_on_unexpected_refusal(server):
    server.refresh_error = (403, "Forbidden")
    async with _http(server) as http:
        async with AuthManager(http) as manager:
            assert manager.state.status is AuthStatus.UNAUTHENTICATED
            assert manager.state.is_initialized
            assert manager.state.error
