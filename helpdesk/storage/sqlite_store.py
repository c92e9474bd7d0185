"""SQLite-backed session store with conditional version updates."""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import aiosqlite

from helpdesk.errors import VersionConflictError
from helpdesk.logging_context import get_turn_logger
from helpdesk.schemas.session_schema import TERMINAL_STATES, DialogState, Session
from helpdesk.storage.session_store import SessionStore, SweepResult

logger = get_turn_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    session_key       TEXT    PRIMARY KEY,
    version           INTEGER NOT NULL,
    state             TEXT    NOT NULL,
    expires_at        REAL    NOT NULL,
    last_activity_at  REAL    NOT NULL,
    data_json         TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_expiry
    ON sessions(state, expires_at);
"""

_TERMINAL_VALUES = tuple(s.value for s in TERMINAL_STATES)


class SqliteSessionStore(SessionStore):
    """Durable store; ``put`` is a conditional ``UPDATE ... WHERE version = ?``."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Open connection and create the schema."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("Session database initialized at %s", self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Session store not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Session database closed")

    async def get(self, session_key: str) -> Optional[Session]:
        async with self.conn.execute(
            "SELECT data_json FROM sessions WHERE session_key = ?", (session_key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return Session.model_validate_json(row["data_json"])

    async def put(self, session: Session) -> int:
        expected = session.version
        candidate = session.model_copy(update={"version": expected + 1})
        params = (
            candidate.version,
            candidate.state.value,
            candidate.expires_at.timestamp(),
            candidate.last_activity_at.timestamp(),
            candidate.model_dump_json(),
        )
        if expected == 0:
            cursor = await self.conn.execute(
                "INSERT OR IGNORE INTO sessions "
                "(version, state, expires_at, last_activity_at, data_json, session_key) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                params + (session.session_key,),
            )
        else:
            cursor = await self.conn.execute(
                "UPDATE sessions SET version = ?, state = ?, expires_at = ?, "
                "last_activity_at = ?, data_json = ? "
                "WHERE session_key = ? AND version = ?",
                params + (session.session_key, expected),
            )
        await self.conn.commit()
        if cursor.rowcount != 1:
            actual = await self._current_version(session.session_key)
            raise VersionConflictError(session.session_key, expected, actual)
        session.version = candidate.version
        return session.version

    async def delete(self, session_key: str) -> bool:
        cursor = await self.conn.execute(
            "DELETE FROM sessions WHERE session_key = ?", (session_key,)
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    async def evict_expired(
        self, now: datetime, tombstone_retention_sec: float
    ) -> SweepResult:
        placeholders = ",".join("?" for _ in _TERMINAL_VALUES)
        async with self.conn.execute(
            f"SELECT data_json FROM sessions "
            f"WHERE state NOT IN ({placeholders}) AND expires_at <= ?",
            _TERMINAL_VALUES + (now.timestamp(),),
        ) as cursor:
            rows = await cursor.fetchall()

        expired = 0
        for row in rows:
            session = Session.model_validate_json(row["data_json"])
            session.state = DialogState.EXPIRED
            try:
                await self.put(session)
            except VersionConflictError:
                logger.debug("Session %s changed during sweep; skipped", session.session_key)
                continue
            expired += 1

        cutoff = now - timedelta(seconds=tombstone_retention_sec)
        cursor = await self.conn.execute(
            f"DELETE FROM sessions WHERE state IN ({placeholders}) AND last_activity_at <= ?",
            _TERMINAL_VALUES + (cutoff.timestamp(),),
        )
        await self.conn.commit()
        return SweepResult(expired=expired, deleted=cursor.rowcount)

    async def _current_version(self, session_key: str) -> Optional[int]:
        async with self.conn.execute(
            "SELECT version FROM sessions WHERE session_key = ?", (session_key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row["version"] if row else None
