"""
Session Store — persistence for Session values.

The loop only needs get_or_create / save / get. Two implementations:

- InMemorySessionStore: dict-backed, for tests and short-lived processes
- SQLiteSessionStore: aiosqlite, one row per session holding its JSON

Usage:
    store = SQLiteSessionStore(db_path=Path("sessions.db"))
    await store.start()

    session = await store.get_or_create("s-1", "agent")
    await store.save(session)
    again = await store.get("s-1")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import aiosqlite

import agentloop.core.config as config_module
from agentloop.session import ops
from agentloop.session.models import Session

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Persistence interface consumed by the agent loop."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    @abstractmethod
    async def get(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def save(self, session: Session) -> None: ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool: ...

    async def exists(self, session_id: str) -> bool:
        return await self.get(session_id) is not None

    async def get_or_create(
        self,
        session_id: str,
        agent_name: str,
        parent_session_id: str | None = None,
    ) -> Session:
        """Fetch a session, or create, save and return an empty one."""
        session = await self.get(session_id)
        if session is not None:
            return session
        session = ops.create(session_id, agent_name, parent_session_id)
        await self.save(session)
        logger.debug("Created session %s (agent=%s)", session_id, agent_name)
        return session


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Sessions are immutable, so references are safe to keep."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def save(self, session: Session) -> None:
        self._sessions[session.id] = session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


class SQLiteSessionStore(SessionStore):
    """
    SQLite-backed session persistence.

    One table, one row per session; messages and metadata are stored as
    the session's JSON form. Single writer, multiple readers (WAL).
    """

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            db_path = Path(config_module.config.store.db_path)
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the database and create tables."""
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                agent_name TEXT NOT NULL,
                parent_session_id TEXT,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                data TEXT NOT NULL
            )
        """)
        await self._db.commit()
        logger.info("SessionStore started (db=%s)", self.db_path)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ─── CRUD ─────────────────────────────────────────────────────

    async def get(self, session_id: str) -> Session | None:
        assert self._db is not None, "SessionStore not started"
        async with self._db.execute(
            "SELECT data FROM sessions WHERE session_id = ?", (session_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return ops.from_json(row[0])

    async def save(self, session: Session) -> None:
        assert self._db is not None, "SessionStore not started"
        await self._db.execute(
            """
            INSERT INTO sessions
                (session_id, agent_name, parent_session_id, created_at, updated_at, data)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                agent_name = excluded.agent_name,
                parent_session_id = excluded.parent_session_id,
                updated_at = excluded.updated_at,
                data = excluded.data
            """,
            (
                session.id,
                session.agent_name,
                session.parent_session_id,
                session.metadata.created_at,
                session.metadata.updated_at,
                ops.to_json(session),
            ),
        )
        await self._db.commit()

    async def delete(self, session_id: str) -> bool:
        assert self._db is not None, "SessionStore not started"
        cursor = await self._db.execute(
            "DELETE FROM sessions WHERE session_id = ?", (session_id,)
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def exists(self, session_id: str) -> bool:
        assert self._db is not None, "SessionStore not started"
        async with self._db.execute(
            "SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)
        ) as cursor:
            return await cursor.fetchone() is not None
