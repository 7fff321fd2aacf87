"""
Session Context — "the session currently being built", scoped per task.

Backed by a ContextVar: the value follows the asyncio task that set it
(and tasks it creates), so concurrent loops never see each other's
session. ``run`` restores whatever was current before it, including
nothing at all.

Usage:
    result = await SessionContext.run(session, lambda: processor.execute(...))

    # deep inside a tool
    parent = SessionContext.try_current()
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Awaitable, Callable, TypeVar

from agentloop.core.errors import ContextError
from agentloop.session.models import Session

T = TypeVar("T")

_current_session: ContextVar[Session | None] = ContextVar(
    "agentloop_current_session", default=None
)


class SessionContext:
    """Stack-scoped access to the active Session."""

    @staticmethod
    async def run(session: Session, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` with ``session`` as the current session."""
        token = _current_session.set(session)
        try:
            return await fn()
        finally:
            _current_session.reset(token)

    @staticmethod
    def current() -> Session:
        session = _current_session.get()
        if session is None:
            raise ContextError(
                "No active session: SessionContext.current() called outside run()"
            )
        return session

    @staticmethod
    def try_current() -> Session | None:
        return _current_session.get()

    @staticmethod
    def has_context() -> bool:
        return _current_session.get() is not None
