# tenant_auth/client/channel.py
"""Cross-tab coordination.

Managers that share one ``AuthChannel`` (and one ``httpx.AsyncClient``, i.e.
one cookie jar) behave like browser tabs of the same app: they see each
other's refreshes, logins and logouts, and never run two refreshes at once.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenRefreshed:
    access_token: str
    user: Dict[str, Any]
    source: str


@dataclass(frozen=True)
class LoggedIn:
    access_token: str
    user: Dict[str, Any]
    source: str


@dataclass(frozen=True)
class SessionRevoked:
    source: str
    reason: str = "logout"


AuthEvent = Union[TokenRefreshed, LoggedIn, SessionRevoked]
EventListener = Callable[[AuthEvent], None]


class AuthChannel:
    def __init__(self) -> None:
        self._listeners: List[EventListener] = []
        self._inflight: Optional[asyncio.Future] = None
        # bumps on every published token so a losing refresh can tell it was overtaken
        self.generation = 0
        self.latest: Optional[Union[TokenRefreshed, LoggedIn]] = None

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: AuthEvent) -> None:
        if isinstance(event, (TokenRefreshed, LoggedIn)):
            self.generation += 1
            self.latest = event
        else:
            self.latest = None
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("auth channel listener failed on %s", type(event).__name__)

    async def run_refresh(self, refresh: Callable[[], Awaitable[TokenRefreshed]]) -> TokenRefreshed:
        """Single-flight: every caller awaits the one refresh already running."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(refresh())
        return await asyncio.shield(self._inflight)
