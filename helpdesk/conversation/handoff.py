"""
Handoff controller: decides when a conversation goes to a human agent and
delivers it to the human-agent queue.

Trigger policy is evaluated once per turn, after the dialog manager has
settled the turn's transitions. The first matching trigger wins:

1. explicit request phrase ("talk to agent", ...)
2. a reason forced by the dialog (slot retries exceeded, repeated rejected
   confirmations)
3. last sentiment score below ``sentiment_handoff_threshold``
4. ``consecutive_no_match_count`` reached ``max_no_match_before_handoff``

Delivery goes through the ``human_queue`` breaker. An undelivered
acknowledgment leaves the session in HandoffPending; later turns for the
session are forwarded with ``forward_to_agent`` until delivery succeeds.
Turns that were already queued when a delivered handoff closed the session
are forwarded the same way, refreshing the queued transcript.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from helpdesk.config import HandoffConfig
from helpdesk.connectors.contracts import HumanQueueConnector
from helpdesk.conversation.state_machine import DialogStateMachine, TransitionTrigger
from helpdesk.logging_context import get_turn_logger
from helpdesk.prompts import response_templates as replies
from helpdesk.resilience.fallbacks import HUMAN_QUEUE
from helpdesk.resilience.registry import BreakerRegistry
from helpdesk.schemas.connector_schema import HandoffAck, HandoffRequest
from helpdesk.schemas.session_schema import DialogState, HandoffReason, Session
from helpdesk.utils import compile_phrases, normalize_utterance, utcnow

logger = get_turn_logger(__name__)


@dataclass
class HandoffDecision:
    """Outcome of one trigger evaluation."""
    triggered: bool
    reason: Optional[HandoffReason] = None
    detail: str = ""


@dataclass
class HandoffOutcome:
    request: HandoffRequest
    ack: HandoffAck
    reply: str


class HandoffController:
    """Central, tunable handoff trigger policy plus queue delivery."""

    def __init__(
        self,
        config: HandoffConfig,
        registry: BreakerRegistry,
        human_queue: HumanQueueConnector,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._registry = registry
        self._queue = human_queue
        self._sleep = sleep
        self._phrases = compile_phrases(config.handoff_phrases)

    def is_explicit_request(self, text: str) -> bool:
        return bool(self._phrases.search(normalize_utterance(text)))

    def evaluate(
        self,
        session: Session,
        explicit: bool = False,
        forced_reason: Optional[HandoffReason] = None,
    ) -> HandoffDecision:
        """Decide whether this turn hands the session to a human."""
        if session.is_terminal() or session.state == DialogState.HANDOFF_PENDING:
            return HandoffDecision(triggered=False)

        if explicit:
            return HandoffDecision(True, HandoffReason.EXPLICIT, "user asked for an agent")

        if forced_reason is not None:
            return HandoffDecision(True, forced_reason, "forced by dialog")

        score = session.last_sentiment_score
        threshold = self._config.sentiment_handoff_threshold
        if score is not None and score < threshold:
            return HandoffDecision(
                True,
                HandoffReason.NEGATIVE_SENTIMENT,
                f"sentiment {score:.2f} below {threshold:.2f}",
            )

        limit = self._config.max_no_match_before_handoff
        if session.consecutive_no_match_count >= limit:
            return HandoffDecision(
                True,
                HandoffReason.REPEATED_NO_MATCH,
                f"{session.consecutive_no_match_count} consecutive no-match turns",
            )

        return HandoffDecision(triggered=False)

    def build_request(self, session: Session, reason: HandoffReason) -> HandoffRequest:
        return HandoffRequest(
            session_key=session.session_key,
            session_id=session.session_id,
            reason=reason,
            transcript_snapshot=tuple(session.transcript),
            requested_at=utcnow(),
        )

    async def execute(
        self,
        session: Session,
        machine: DialogStateMachine,
        reason: HandoffReason,
    ) -> HandoffOutcome:
        """Move the session to HandoffPending and try to deliver it."""
        machine.transition(TransitionTrigger.HANDOFF_REQUESTED)
        session.handoff_reason = reason
        session.clear_pending()
        logger.info("Handoff requested for %s (reason: %s)", session.session_key, reason.value)
        request = self.build_request(session, reason)
        ack = await self._deliver(request)
        return self._settle(session, machine, request, ack)

    async def forward_to_agent(
        self, session: Session, machine: DialogStateMachine
    ) -> HandoffOutcome:
        """Route a turn for a handed-off session straight to the human queue."""
        reason = session.handoff_reason or HandoffReason.EXPLICIT
        request = self.build_request(session, reason)
        ack = await self._deliver(request)
        outcome = self._settle(session, machine, request, ack)
        if ack.delivered:
            return outcome
        outcome.reply = replies.HANDOFF_FORWARDED
        return outcome

    async def _deliver(self, request: HandoffRequest) -> HandoffAck:
        """Enqueue with retries; the queue connector de-duplicates by session and reason."""
        delays = self._config.retry_backoff_sec
        ack = HandoffAck(delivered=False)
        for attempt in range(len(delays) + 1):
            ack = await self._registry.call(HUMAN_QUEUE, self._queue.enqueue, request)
            if ack.delivered:
                return ack
            if attempt == len(delays) or self._registry.is_open(HUMAN_QUEUE):
                break
            logger.debug(
                "Handoff for %s not delivered, retrying in %.1fs",
                request.session_key, delays[attempt],
            )
            await self._sleep(delays[attempt])
        logger.warning("Handoff for %s left pending", request.session_key)
        return ack

    def _settle(
        self,
        session: Session,
        machine: DialogStateMachine,
        request: HandoffRequest,
        ack: HandoffAck,
    ) -> HandoffOutcome:
        if not ack.delivered:
            return HandoffOutcome(request, ack, replies.HANDOFF_PENDING)
        if machine.current_state != DialogState.HANDOFF_PENDING:
            return HandoffOutcome(request, ack, replies.HANDOFF_FORWARDED)
        machine.transition(TransitionTrigger.HANDOFF_CONFIRMED)
        logger.info(
            "Handoff delivered for %s (queue position %s)",
            session.session_key, ack.queue_position,
        )
        return HandoffOutcome(
            request,
            ack,
            replies.HANDOFF_CONNECTED.format(position=ack.queue_position or 1),
        )
