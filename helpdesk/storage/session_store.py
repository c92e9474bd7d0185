"""
Session persistence with compare-and-swap writes and a TTL sweep.

Every store keeps sessions as serialised JSON plus a version number.
``put()`` succeeds only when the caller's ``session.version`` matches the
stored version (0 for a session that has never been written) and bumps
it by one; otherwise it raises ``VersionConflictError``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from helpdesk.config import SessionConfig
from helpdesk.errors import VersionConflictError
from helpdesk.schemas.session_schema import DialogState, Session
from helpdesk.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    expired: int = 0
    deleted: int = 0


class SessionStore(ABC):
    """Atomic get/put of sessions keyed by ``session_key``."""

    async def initialize(self) -> None:
        """Open underlying resources; a no-op for in-process stores."""

    async def close(self) -> None:
        """Release underlying resources."""

    @abstractmethod
    async def get(self, session_key: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def put(self, session: Session) -> int:
        """Write ``session`` if its version is current; return the new version."""

    @abstractmethod
    async def delete(self, session_key: str) -> bool:
        ...

    @abstractmethod
    async def evict_expired(
        self, now: datetime, tombstone_retention_sec: float
    ) -> SweepResult:
        """Mark idle sessions Expired and drop old terminal records. Idempotent."""


class InMemorySessionStore(SessionStore):
    """Process-local store; each operation completes without suspending."""

    def __init__(self) -> None:
        self._records: dict[str, tuple[int, str]] = {}

    async def get(self, session_key: str) -> Optional[Session]:
        record = self._records.get(session_key)
        if record is None:
            return None
        return Session.model_validate_json(record[1])

    async def put(self, session: Session) -> int:
        record = self._records.get(session.session_key)
        current = record[0] if record else 0
        if current != session.version:
            raise VersionConflictError(
                session.session_key, session.version, current if record else None
            )
        session.version = current + 1
        self._records[session.session_key] = (session.version, session.model_dump_json())
        return session.version

    async def delete(self, session_key: str) -> bool:
        return self._records.pop(session_key, None) is not None

    async def evict_expired(
        self, now: datetime, tombstone_retention_sec: float
    ) -> SweepResult:
        expired = deleted = 0
        cutoff = now - timedelta(seconds=tombstone_retention_sec)
        for key in list(self._records):
            session = await self.get(key)
            if session is None:
                continue
            if session.is_terminal():
                if session.last_activity_at <= cutoff:
                    del self._records[key]
                    deleted += 1
            elif session.is_expired(now):
                session.state = DialogState.EXPIRED
                await self.put(session)
                expired += 1
        return SweepResult(expired=expired, deleted=deleted)

    def __len__(self) -> int:
        return len(self._records)


class SessionSweeper:
    """Background task running the store's TTL sweep on a fixed interval."""

    def __init__(
        self,
        store: SessionStore,
        config: SessionConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="session-sweeper")
        logger.info("Session sweeper started (every %.0fs)", self._config.sweep_interval_sec)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("Session sweeper stopped")

    async def run_once(self) -> SweepResult:
        result = await self._store.evict_expired(
            self._clock(), self._config.tombstone_retention_sec
        )
        if result.expired or result.deleted:
            logger.info(
                "Session sweep: %d expired, %d deleted", result.expired, result.deleted
            )
        return result

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Session sweep failed")
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._config.sweep_interval_sec
                )
            except asyncio.TimeoutError:
                continue
