"""
Message router: one in-flight turn per session, FIFO within a session,
full parallelism across sessions.

Each session key with work gets a single worker task that drains that
key's queue in arrival order. Workers share a bounded pool, so at most
``worker_pool_size`` turns run at once. The per-key queue holds at most
``max_queued_turns`` waiting turns; beyond that ``submit()`` raises
``SessionOverloadedError`` immediately.

A turn that was already waiting when a delivered handoff closed its session
is relayed to the human queue instead of being rejected; the first turn
that arrives after the queue drained meets the terminal record.

A ``VersionConflictError`` re-reads the session and re-applies the whole
turn, so collaborator calls made by the failed attempt run again. Those
collaborators de-duplicate by the idempotency keys carried on handoff and
ticket requests.

Usage:
    router = MessageRouter(config, store, dialog_manager)
    result = await router.route(envelope)
"""

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from helpdesk.config import AppConfig
from helpdesk.conversation.dialog_manager import DialogManager, TurnResult
from helpdesk.errors import SessionOverloadedError, SessionTerminalError, VersionConflictError
from helpdesk.logging_context import get_turn_logger, set_turn_context
from helpdesk.schemas.envelope_schema import MessageEnvelope
from helpdesk.schemas.session_schema import DialogState, Session
from helpdesk.storage.session_store import SessionStore
from helpdesk.utils import utcnow

logger = get_turn_logger(__name__)

OutboundHandler = Callable[[MessageEnvelope], Any]


@dataclass
class _Turn:
    envelope: MessageEnvelope
    future: "asyncio.Future[TurnResult]"
    queued: bool = False


class MessageRouter:
    """Serialises turns per session and dispatches them to the dialog manager."""

    def __init__(
        self,
        config: AppConfig,
        store: SessionStore,
        dialog: DialogManager,
        clock: Callable[[], datetime] = utcnow,
        on_outbound: Optional[OutboundHandler] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._dialog = dialog
        self._clock = clock
        self._on_outbound = on_outbound
        self._queues: dict[str, deque[_Turn]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._pool = asyncio.Semaphore(config.router.worker_pool_size)

    def submit(self, envelope: MessageEnvelope) -> "asyncio.Future[TurnResult]":
        """Enqueue a turn and return a future for its result."""
        key = envelope.session_key
        future: asyncio.Future[TurnResult] = asyncio.get_running_loop().create_future()
        turn = _Turn(envelope, future)

        if key not in self._workers:
            self._workers[key] = asyncio.create_task(self._drain(key, turn), name=f"turns:{key}")
            return future

        queue = self._queues.setdefault(key, deque())
        if len(queue) >= self._config.router.max_queued_turns:
            logger.warning("Session %s overloaded (%d turns waiting)", key, len(queue))
            raise SessionOverloadedError(key)
        turn.queued = True
        queue.append(turn)
        return future

    async def route(self, envelope: MessageEnvelope) -> TurnResult:
        return await self.submit(envelope)

    def queued(self, session_key: str) -> int:
        """Number of turns waiting behind the in-flight one."""
        return len(self._queues.get(session_key, ()))

    def is_busy(self, session_key: str) -> bool:
        return session_key in self._workers

    @property
    def active_sessions(self) -> int:
        return len(self._workers)

    async def close(self) -> None:
        """Cancel every worker; waiting turns are cancelled with them."""
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        for queue in self._queues.values():
            for turn in queue:
                turn.future.cancel()
        self._queues.clear()
        self._workers.clear()

    async def _drain(self, key: str, turn: Optional[_Turn]) -> None:
        try:
            while turn is not None:
                await self._run_turn(turn)
                queue = self._queues.get(key)
                turn = queue.popleft() if queue else None
        finally:
            self._workers.pop(key, None)
            for waiting in self._queues.pop(key, ()):
                waiting.future.cancel()

    async def _run_turn(self, turn: _Turn) -> None:
        if turn.future.done():
            return
        async with self._pool:
            try:
                result = await self._process(turn)
            except asyncio.CancelledError:
                turn.future.cancel()
                raise
            except Exception as exc:
                if not turn.future.done():
                    turn.future.set_exception(exc)
                return
        if not turn.future.done():
            turn.future.set_result(result)
        await self._deliver(result.outbound)

    async def _deliver(self, outbound: MessageEnvelope) -> None:
        if self._on_outbound is None:
            return
        try:
            delivered = self._on_outbound(outbound)
            if inspect.isawaitable(delivered):
                await delivered
        except Exception:
            logger.exception("Outbound delivery failed for %s", outbound.session_key)

    async def _process(self, turn: _Turn) -> TurnResult:
        envelope = turn.envelope
        set_turn_context(envelope.correlation_id, envelope.session_key)
        retries = self._config.router.version_conflict_retries
        for attempt in range(retries + 1):
            try:
                return await self._apply(envelope, turn.queued)
            except VersionConflictError as exc:
                logger.warning("%s (attempt %d of %d)", exc, attempt + 1, retries + 1)
        raise SessionOverloadedError(
            envelope.session_key,
            f"Session '{envelope.session_key}' kept changing underneath its turn",
        )

    async def _apply(self, envelope: MessageEnvelope, queued: bool = False) -> TurnResult:
        session = await self._load(envelope, queued)
        if session.state == DialogState.HANDOFF_PENDING or _handed_off(session):
            result = await self._dialog.relay_to_agent(session, envelope)
        else:
            result = await self._dialog.handle_turn(session, envelope)
        await self._store.put(session)
        return result

    async def _load(self, envelope: MessageEnvelope, queued: bool = False) -> Session:
        """Read the session, starting a new one or rejecting a terminal one."""
        key = envelope.session_key
        now = self._clock()
        session = await self._store.get(key)
        if session is None:
            logger.info("Starting session %s", key)
            return Session.start(
                key, envelope.channel, envelope.user_id, now,
                self._config.session.session_ttl_sec,
            )

        if not session.is_terminal() and session.is_expired(now):
            session.state = DialogState.EXPIRED
            logger.info("Session %s expired", key)

        if queued and _handed_off(session):
            logger.info("Relaying queued turn for handed-off session %s", key)
            return session

        if session.is_terminal():
            await self._store.delete(key)
            raise SessionTerminalError(key, session.state.value)
        return session


def _handed_off(session: Session) -> bool:
    return session.state == DialogState.CLOSED and session.handoff_reason is not None
