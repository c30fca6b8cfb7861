# tenant_auth/client/manager.py
"""Client-side session owner.

The access token lives only in memory here; the refresh token stays in the
``httpx.AsyncClient`` cookie jar (httpOnly cookie set by the server), with the
body field used only as a fallback by the server.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from jose import jwt, JWTError

from tenant_auth.client.channel import AuthChannel, AuthEvent, LoggedIn, SessionRevoked, TokenRefreshed
from tenant_auth.client.errors import (
    AuthClientError,
    AuthUnavailable,
    LoginFailed,
    SessionExpired,
    SessionInvalid,
    error_from_response,
)
from tenant_auth.client.state import SIGNED_IN, AuthState, AuthStateMachine, AuthStatus

logger = logging.getLogger(__name__)

REFRESH_COOKIE_NAME = "refreshToken"
RETRY_DELAY_SECONDS = 30.0


class LoginOutcome(str, Enum):
    AUTHENTICATED = "authenticated"
    EMAIL_UNVERIFIED = "email_unverified"
    TWO_FACTOR_REQUIRED = "two_factor_required"


def token_expiry(token: Optional[str]) -> Optional[float]:
    if not token:
        return None
    try:
        exp = jwt.get_unverified_claims(token).get("exp")
    except JWTError:
        return None
    return float(exp) if exp is not None else None


class AuthManager:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        channel: Optional[AuthChannel] = None,
        refresh_skew: float = 60,
        tenant: Optional[str] = None,
        prefix: str = "/api/auth",
    ):
        self.id = uuid.uuid4().hex
        self.http = http
        self.channel = channel or AuthChannel()
        self.refresh_skew = refresh_skew
        self.tenant = tenant
        self.prefix = prefix.rstrip("/")
        self.machine = AuthStateMachine()

        self._access_token: Optional[str] = None
        self._preauth_token: Optional[str] = None
        self._remember_me = False
        self._timer: Optional[asyncio.Task] = None
        # muda a cada logout/login; refresh iniciado numa época anterior é descartado
        self._epoch = 0
        # initialize não alcançou o backend; o cookie ainda pode restaurar a sessão
        self._restorable = False
        self._unsubscribe = self.channel.subscribe(self._on_channel_event)

    @property
    def state(self) -> AuthState:
        return self.machine.state

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    async def __aenter__(self) -> "AuthManager":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    async def _send(self, method: str, path: str, *, json: Any = None,
                    token: Optional[str] = None) -> httpx.Response:
        headers = {}
        if self.tenant:
            headers["X-Tenant"] = self.tenant
        if token:
            headers["Authorization"] = f"Bearer {token}"
        url = path if path.startswith("/api/") else f"{self.prefix}{path}"
        try:
            resp = await self.http.request(method, url, json=json, headers=headers)
        except httpx.TransportError as exc:
            raise AuthUnavailable(str(exc) or type(exc).__name__) from exc
        if resp.status_code >= 500:
            raise error_from_response(resp)
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Dict[str, Any]:
        if resp.is_success:
            return resp.json()
        raise error_from_response(resp)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> AuthState:
        """One silent refresh to find out whether the cookie still holds a session."""
        if self.state.status is not AuthStatus.UNINITIALIZED:
            return self.state
        self.machine.begin_initialize()
        try:
            event = await self.channel.run_refresh(self._do_refresh)
        except SessionInvalid:
            self.machine.resolve_initialize()
        except AuthUnavailable as exc:
            logger.warning("session check unavailable: %s", exc.message)
            self._restorable = True
            self.machine.resolve_initialize(error=exc.message)
        except AuthClientError as exc:
            logger.warning("session check refused (%s): %s", exc.status, exc.message)
            self.machine.resolve_initialize(error=exc.message)
        else:
            self._access_token = event.access_token
            self.machine.resolve_initialize(event.user, event.access_token)
            self._schedule_refresh()
        return self.state

    def dispose(self) -> None:
        self._cancel_timer()
        self._unsubscribe()

    # ------------------------------------------------------------------
    # refresh
    # ------------------------------------------------------------------
    async def _do_refresh(self) -> TokenRefreshed:
        epoch = self._epoch
        generation = self.channel.generation
        resp = await self._send("POST", "/refresh")
        if self._epoch != epoch:
            raise SessionInvalid("Signed out while the refresh was in flight.")
        if resp.is_success:
            data = resp.json()
            event = TokenRefreshed(access_token=data["accessToken"], user=data["user"], source=self.id)
            self.channel.publish(event)
            return event

        err = error_from_response(resp)
        latest = self.channel.latest
        if (isinstance(err, SessionInvalid) and not isinstance(err, SessionExpired)
                and latest is not None and self.channel.generation > generation):
            logger.info("refresh lost the rotation; adopting the token published by another tab")
            return TokenRefreshed(access_token=latest.access_token, user=latest.user, source=latest.source)
        raise err

    async def refresh_access_token(self) -> str:
        epoch = self._epoch
        try:
            event = await self.channel.run_refresh(self._do_refresh)
        except SessionInvalid as exc:
            if self._epoch == epoch and self.state.status in SIGNED_IN:
                self._clear_local(exc.message)
                self.channel.publish(SessionRevoked(source=self.id, reason=exc.code or "SessionInvalid"))
            raise
        if self._epoch != epoch:
            logger.info("discarding refresh that finished after the session changed")
            raise SessionInvalid("Signed out while the refresh was in flight.")

        status = self.state.status
        if status is AuthStatus.INITIALIZING:
            # initialize resolve com o mesmo resultado
            return event.access_token
        if status in SIGNED_IN or (status is AuthStatus.UNAUTHENTICATED and self._restorable):
            self._adopt(event.user, event.access_token)
            return event.access_token
        raise SessionInvalid("Not signed in.")

    def _adopt(self, user: Dict[str, Any], access_token: str) -> None:
        if self.state.status in SIGNED_IN:
            self.machine.session_refreshed(user, access_token)
        else:
            self.machine.session_adopted(user, access_token)
        self._restorable = False
        self._access_token = access_token
        self._schedule_refresh()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _schedule_refresh(self, delay: Optional[float] = None) -> None:
        self._cancel_timer()
        if delay is None:
            exp = token_expiry(self._access_token)
            if exp is None:
                return
            delay = max(0.0, exp - time.time() - self.refresh_skew)
        self._timer = asyncio.get_running_loop().create_task(self._refresh_later(delay))

    async def _refresh_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        try:
            await self.refresh_access_token()
        except AuthUnavailable as exc:
            logger.warning("scheduled refresh failed (%s); retrying in %ss", exc.message, RETRY_DELAY_SECONDS)
            self._schedule_refresh(RETRY_DELAY_SECONDS)
        except SessionInvalid:
            logger.info("scheduled refresh: session is gone")

    # ------------------------------------------------------------------
    # cross-tab events
    # ------------------------------------------------------------------
    def _on_channel_event(self, event: AuthEvent) -> None:
        if event.source == self.id:
            return
        status = self.state.status
        if isinstance(event, TokenRefreshed):
            if status in SIGNED_IN:
                self._adopt(event.user, event.access_token)
        elif isinstance(event, LoggedIn):
            if status in SIGNED_IN | {AuthStatus.UNAUTHENTICATED}:
                self._epoch += 1
                self._adopt(event.user, event.access_token)
        elif isinstance(event, SessionRevoked) and status in SIGNED_IN:
            self._clear_local()

    def _clear_local(self, error: Optional[str] = None) -> None:
        self._epoch += 1
        self._restorable = False
        self._cancel_timer()
        self._access_token = None
        self._preauth_token = None
        if self.state.status in SIGNED_IN | {AuthStatus.AWAITING_TWO_FACTOR, AuthStatus.UNAUTHENTICATED}:
            self.machine.signed_out(error)

    # ------------------------------------------------------------------
    # login
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str, *, two_factor_token: Optional[str] = None,
                    remember_me: bool = False) -> LoginOutcome:
        self.machine.begin_login()
        self._epoch += 1
        self._restorable = False
        body: Dict[str, Any] = {"email": email, "password": password, "rememberMe": remember_me}
        if two_factor_token:
            body["twoFactorToken"] = two_factor_token
        self._remember_me = remember_me
        return await self._submit_login(body)

    async def submit_two_factor(self, code: str) -> LoginOutcome:
        if self.state.status is not AuthStatus.AWAITING_TWO_FACTOR or not self._preauth_token:
            raise AuthClientError("No two-factor challenge is pending.")
        self.machine.begin_login()
        return await self._submit_login(
            {"preAuthToken": self._preauth_token, "twoFactorToken": code, "rememberMe": self._remember_me}
        )

    def cancel_two_factor(self) -> None:
        self._preauth_token = None
        self.machine.cancel_two_factor()

    async def _submit_login(self, body: Dict[str, Any]) -> LoginOutcome:
        try:
            resp = await self._send("POST", "/login", json=body)
        except AuthUnavailable as exc:
            self.machine.login_failed(exc.message)
            raise

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code == 200 and data.get("requires2FA"):
            self._preauth_token = data["preAuthToken"]
            self.machine.require_two_factor()
            return LoginOutcome.TWO_FACTOR_REQUIRED

        # 403 EmailNotVerified ainda traz a sessão (restrita)
        granted = resp.status_code == 200 or (
            resp.status_code == 403 and data.get("code") == "EmailNotVerified" and data.get("accessToken")
        )
        if granted:
            self._preauth_token = None
            self._access_token = data["accessToken"]
            self.machine.login_succeeded(data["user"], data["accessToken"])
            self._schedule_refresh()
            self.channel.publish(LoggedIn(access_token=data["accessToken"], user=data["user"], source=self.id))
            if self.state.status is AuthStatus.EMAIL_UNVERIFIED:
                return LoginOutcome.EMAIL_UNVERIFIED
            return LoginOutcome.AUTHENTICATED

        err = error_from_response(resp)
        if err.code == "InvalidTwoFactorCode" and self._preauth_token:
            self.machine.require_two_factor(err.message)
        else:
            self._preauth_token = None
            self.machine.login_failed(err.message)
        raise LoginFailed(err.message, code=err.code, status=err.status, details=err.details)

    async def register(self, email: str, password: str, first_name: str, last_name: str,
                       confirm_password: Optional[str] = None) -> Dict[str, Any]:
        body = {"email": email, "password": password, "firstName": first_name, "lastName": last_name}
        if confirm_password is not None:
            body["confirmPassword"] = confirm_password
        return self._json(await self._send("POST", "/register", json=body))["user"]

    # ------------------------------------------------------------------
    # authenticated requests
    # ------------------------------------------------------------------
    async def request(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        """Bearer request; on 401 refreshes once and retries exactly once."""
        token = self._access_token
        if token is None:
            raise SessionInvalid("Not authenticated.")
        resp = await self._send(method, path, json=json, token=token)
        if resp.status_code != 401:
            return self._check_verification(resp)

        if self._access_token is not None and self._access_token != token:
            # outra chamada já renovou enquanto esta estava em voo
            new_token = self._access_token
        else:
            new_token = await self.refresh_access_token()
        return self._check_verification(await self._send(method, path, json=json, token=new_token))

    def _check_verification(self, resp: httpx.Response) -> httpx.Response:
        """403 EmailNotVerified demotes the session instead of ending it."""
        if resp.status_code == 403 and self.state.status is AuthStatus.AUTHENTICATED:
            try:
                code = resp.json().get("code")
            except ValueError:
                code = None
            if code == "EmailNotVerified":
                self.machine.email_unverified()
        return resp

    async def logout(self) -> None:
        token = self._access_token
        self._epoch += 1
        try:
            await self._send("POST", "/logout", token=token)
        except AuthUnavailable as exc:
            logger.warning("logout request failed (%s); clearing local session anyway", exc.message)
        finally:
            self.http.cookies.delete(REFRESH_COOKIE_NAME)
            self._clear_local()
            self.channel.publish(SessionRevoked(source=self.id, reason="logout"))

    async def logout_all(self) -> int:
        data = self._json(await self.request("POST", "/logout-all"))
        self.http.cookies.delete(REFRESH_COOKIE_NAME)
        self._clear_local()
        self.channel.publish(SessionRevoked(source=self.id, reason="logout_all"))
        return data.get("revokedSessions", 0)

    async def current_user(self) -> Dict[str, Any]:
        user = self._json(await self.request("GET", "/me"))["user"]
        if self.state.status in SIGNED_IN:
            self.machine.user_updated(user)
        return user

    async def set_menu_expanded(self, expanded: bool) -> bool:
        data = self._json(await self.request("PATCH", "/menu-preference", json={"menuExpanded": expanded}))
        if self.state.user is not None and self.state.status in SIGNED_IN:
            self.machine.user_updated({**self.state.user, "menuExpanded": data["menuExpanded"]})
        return data["menuExpanded"]

    async def list_sessions(self) -> List[Dict[str, Any]]:
        return self._json(await self.request("GET", "/sessions"))["sessions"]

    async def revoke_session(self, session_id: int) -> None:
        data = self._json(await self.request("DELETE", f"/sessions/{session_id}"))
        if data.get("current"):
            self.http.cookies.delete(REFRESH_COOKIE_NAME)
            self._clear_local()
            self.channel.publish(SessionRevoked(source=self.id, reason="revoked"))

    async def change_password(self, current_password: str, new_password: str,
                              confirm_password: Optional[str] = None) -> int:
        body = {"currentPassword": current_password, "newPassword": new_password}
        if confirm_password is not None:
            body["confirmPassword"] = confirm_password
        return self._json(await self.request("PUT", "/change-password", json=body)).get("revokedSessions", 0)
