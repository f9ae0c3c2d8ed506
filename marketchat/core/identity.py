"""
Identity provider adapter.

Holds the current authenticated user id, which may be absent until the
initial session resolves (asynchronously) and again after sign-out. Consumers
register handlers instead of reading a global session.
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from marketchat.infra.logging_config import get_logger

logger = get_logger("identity")

SessionLoader = Callable[[], Awaitable[Optional[UUID]]]
IdentityHandler = Callable[[Optional[UUID]], Awaitable[None]]


class IdentityProvider:
    def __init__(self, session_loader: Optional[SessionLoader] = None) -> None:
        self._session_loader = session_loader
        self._identity: Optional[UUID] = None
        self._resolved = False
        self._handlers: List[IdentityHandler] = []

    def current_identity(self) -> Optional[UUID]:
        return self._identity

    @property
    def resolved(self) -> bool:
        """True once the initial session lookup has completed (signed in or not)."""
        return self._resolved

    def on_identity_change(self, handler: IdentityHandler) -> Callable[[], None]:
        """Register handler; returns a callable that unregisters it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def start(self) -> Optional[UUID]:
        """Resolve the initial session and announce it, even when absent."""
        identity = await self._session_loader() if self._session_loader else None
        self._resolved = True
        await self._emit(identity)
        return identity

    async def sign_in(self, user_id: UUID) -> None:
        self._resolved = True
        if user_id == self._identity:
            return
        await self._emit(user_id)

    async def sign_out(self) -> None:
        self._resolved = True
        if self._identity is None:
            return
        await self._emit(None)

    async def _emit(self, identity: Optional[UUID]) -> None:
        self._identity = identity
        logger.info("Identity changed: %s", identity if identity else "signed out")
        for handler in list(self._handlers):
            await handler(identity)


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed for the lifetime of one request or socket."""

    def __init__(self, user_id: Optional[UUID]) -> None:
        async def _load() -> Optional[UUID]:
            return user_id

        super().__init__(session_loader=_load)
