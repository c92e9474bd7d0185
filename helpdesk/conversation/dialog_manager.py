"""
Dialog manager: runs one turn of a session through the dialog state machine.

A turn starts from the session's persisted state and always settles in
Idle, AwaitingIntent, AwaitingConfirmation, HandoffPending or Closed:

    Idle -> AwaitingIntent -> Resolving -> Responding -> Idle
                                  |-> AwaitingConfirmation (disambiguation turn)
                                  |-> AwaitingIntent (prompt for a missing slot)

Every external call goes through the breaker registry, so a degraded
classifier, knowledge base or ticket backend changes the reply but never
fails the turn. Handoff triggers are evaluated by the handoff controller
after the dialog transitions settle.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from helpdesk.config import AppConfig
from helpdesk.connectors.contracts import (
    EntityEnricher,
    IntentClassifier,
    KnowledgeConnector,
    SentimentAnalyzer,
    TicketConnector,
)
from helpdesk.conversation.handoff import HandoffController
from helpdesk.conversation.intents import IntentAction, IntentCatalog, IntentDefinition
from helpdesk.conversation.slot_manager import SlotManager
from helpdesk.conversation.state_machine import DialogStateMachine, TransitionTrigger
from helpdesk.errors import InvalidTransitionError, SlotResolutionTimeout
from helpdesk.logging_context import get_turn_logger
from helpdesk.prompts import response_templates as replies
from helpdesk.resilience.fallbacks import CLASSIFIER, ENRICHMENT, KNOWLEDGE, SENTIMENT, TICKETS
from helpdesk.resilience.registry import BreakerRegistry
from helpdesk.schemas.connector_schema import HandoffRequest, IntentResult, TicketRequest
from helpdesk.schemas.envelope_schema import Direction, MessageEnvelope
from helpdesk.schemas.session_schema import DialogState, HandoffReason, Session
from helpdesk.utils import normalize_utterance, utcnow

logger = get_turn_logger(__name__)

# Inbound messages quoted in a ticket description.
TICKET_CONTEXT_MESSAGES = 3

# (reply text, handoff reason forced by the dialog)
_Step = tuple[str, Optional[HandoffReason]]


@dataclass
class TurnResult:
    """What one processed turn produced."""
    outbound: MessageEnvelope
    state_trace: list[str] = field(default_factory=list)
    handoff: Optional[HandoffRequest] = None


class DialogManager:
    """Drives sessions through the dialog state machine, one turn at a time."""

    def __init__(
        self,
        config: AppConfig,
        registry: BreakerRegistry,
        classifier: IntentClassifier,
        knowledge: KnowledgeConnector,
        tickets: TicketConnector,
        sentiment: SentimentAnalyzer,
        handoff: HandoffController,
        catalog: Optional[IntentCatalog] = None,
        enricher: Optional[EntityEnricher] = None,
        clock: Callable = utcnow,
    ) -> None:
        self._config = config
        self._registry = registry
        self._classifier = classifier
        self._knowledge = knowledge
        self._tickets = tickets
        self._sentiment = sentiment
        self._handoff = handoff
        self._catalog = catalog or IntentCatalog()
        self._slots = SlotManager(self._catalog)
        self._enricher = enricher
        self._clock = clock

    async def handle_turn(self, session: Session, inbound: MessageEnvelope) -> TurnResult:
        """Process one inbound message and mutate ``session`` in place."""
        if session.is_terminal() or session.state == DialogState.HANDOFF_PENDING:
            raise InvalidTransitionError(
                f"Session '{session.session_key}' in state '{session.state.value}' "
                "cannot take an automated turn"
            )

        self._record(session, inbound)
        machine = DialogStateMachine(session.state)
        await self._score_sentiment(session, inbound.text)

        explicit = self._handoff.is_explicit_request(inbound.text)
        forced: Optional[HandoffReason] = None
        reply = ""
        if not explicit:
            reply, forced = await self._advance(session, machine, inbound.text)

        handoff_request = None
        decision = self._handoff.evaluate(session, explicit=explicit, forced_reason=forced)
        if decision.triggered:
            logger.info("Handoff triggered for %s: %s", session.session_key, decision.detail)
            outcome = await self._handoff.execute(session, machine, decision.reason)
            reply = outcome.reply
            handoff_request = outcome.request

        return self._finish(session, machine, inbound, reply, handoff_request)

    async def relay_to_agent(self, session: Session, inbound: MessageEnvelope) -> TurnResult:
        """Turns for a handed-off session bypass the dialog and go to the human queue."""
        self._record(session, inbound)
        machine = DialogStateMachine(session.state)
        outcome = await self._handoff.forward_to_agent(session, machine)
        return self._finish(session, machine, inbound, outcome.reply, outcome.request)

    def _record(self, session: Session, envelope: MessageEnvelope) -> None:
        session.append_to_transcript(envelope, self._config.session.transcript_retention)

    def _finish(
        self,
        session: Session,
        machine: DialogStateMachine,
        inbound: MessageEnvelope,
        reply: str,
        handoff_request: Optional[HandoffRequest],
    ) -> TurnResult:
        session.state = machine.current_state
        outbound = inbound.reply(reply, state=session.state.value)
        self._record(session, outbound)
        session.touch(self._clock(), self._config.session.session_ttl_sec)
        trace = machine.get_state_trace()
        logger.debug("Turn settled for %s: %s", session.session_key, " -> ".join(trace))
        return TurnResult(outbound=outbound, state_trace=trace, handoff=handoff_request)

    async def _score_sentiment(self, session: Session, text: str) -> None:
        if not text.strip():
            return
        score = await self._registry.call(SENTIMENT, self._sentiment.score, text)
        if score is not None:
            session.last_sentiment_score = score

    async def _advance(
        self, session: Session, machine: DialogStateMachine, text: str
    ) -> _Step:
        state = machine.current_state
        if state == DialogState.IDLE:
            machine.transition(TransitionTrigger.MESSAGE_RECEIVED)
            return await self._classify(session, machine, text)
        if state == DialogState.AWAITING_CONFIRMATION:
            return await self._handle_confirmation(session, machine, text)
        if state == DialogState.AWAITING_INTENT:
            if session.pending_slot:
                return await self._fill_slot(session, machine, text)
            return await self._classify(session, machine, text)
        raise InvalidTransitionError(f"A turn cannot start in state '{state.value}'")

    async def _classify(
        self, session: Session, machine: DialogStateMachine, text: str
    ) -> _Step:
        result: IntentResult = await self._registry.call(
            CLASSIFIER, self._classifier.classify, text, dict(session.context)
        )
        if result.is_fallback:
            machine.transition(TransitionTrigger.CLASSIFIER_UNAVAILABLE)
            session.consecutive_no_match_count += 1
            return self._complete(machine, replies.CLASSIFIER_FALLBACK), None

        machine.transition(TransitionTrigger.INTENT_CLASSIFIED)
        return await self._resolve(session, machine, result, text)

    async def _resolve(
        self,
        session: Session,
        machine: DialogStateMachine,
        result: IntentResult,
        text: str,
    ) -> _Step:
        dialog = self._config.dialog
        intent = self._catalog.get(result.intent_name)
        if intent is None or result.confidence < dialog.confidence_floor:
            machine.transition(TransitionTrigger.NO_MATCH)
            session.consecutive_no_match_count += 1
            session.clear_pending()
            logger.info(
                "No match for %s (%s at %.2f, %d in a row)",
                session.session_key, result.intent_name, result.confidence,
                session.consecutive_no_match_count,
            )
            return self._complete(machine, replies.NO_MATCH), None

        session.consecutive_no_match_count = 0
        self._slots.absorb_entities(session.context, result.entities)

        if result.confidence < dialog.confirmation_threshold:
            session.pending_intent = intent.name
            session.pending_slot = None
            machine.transition(TransitionTrigger.NEEDS_CONFIRMATION)
            return replies.CONFIRM_INTENT.format(display_name=intent.display_name), None

        return await self._resolve_slots(session, machine, intent, text)

    async def _resolve_slots(
        self,
        session: Session,
        machine: DialogStateMachine,
        intent: IntentDefinition,
        text: str,
    ) -> _Step:
        missing = self._slots.get_next_missing_slot(intent, session.context)
        if missing is None:
            machine.transition(TransitionTrigger.SLOTS_COMPLETE)
            reply = await self._fulfil(session, intent, text)
            return self._complete(machine, reply), None

        retry = session.pending_slot == missing.name
        session.pending_intent = intent.name
        session.pending_slot = missing.name
        machine.transition(TransitionTrigger.SLOT_MISSING)
        return self._slots.prompt_for(missing.name, retry=retry), None

    async def _fill_slot(
        self, session: Session, machine: DialogStateMachine, text: str
    ) -> _Step:
        slot_name = session.pending_slot
        intent = self._catalog.get(session.pending_intent or "")
        if intent is None or slot_name is None:
            session.clear_pending()
            return await self._classify(session, machine, text)

        slot = self._catalog.slot(slot_name)
        raw = self._catalog.extract_entities(text).get(slot_name, text)
        if self._enricher is not None:
            try:
                raw = await self._registry.call(
                    ENRICHMENT, self._enricher.enrich, slot_name, raw
                )
            except SlotResolutionTimeout:
                logger.warning("Enrichment for slot '%s' timed out", slot_name)
                return self._slot_retry(
                    session, replies.SLOT_REPHRASE.format(display_name=slot.display_name)
                )

        ok, value, message = self._slots.validate(slot_name, raw)
        if not ok:
            return self._slot_retry(
                session, replies.SLOT_INVALID.format(message=message, prompt=slot.prompt)
            )

        session.context[slot_name] = value
        session.pending_slot = None
        session.slot_retries = 0
        machine.transition(TransitionTrigger.SLOT_PROVIDED)
        return await self._resolve_slots(session, machine, intent, text)

    def _slot_retry(self, session: Session, reply: str) -> _Step:
        session.slot_retries += 1
        if session.slot_retries > self._config.dialog.max_slot_retries:
            logger.info(
                "Slot '%s' retries exhausted for %s", session.pending_slot, session.session_key
            )
            return reply, HandoffReason.SLOT_RETRIES_EXCEEDED
        return reply, None

    async def _handle_confirmation(
        self, session: Session, machine: DialogStateMachine, text: str
    ) -> _Step:
        intent = self._catalog.get(session.pending_intent or "")
        answer = interpret_confirmation(text) if intent is not None else None

        if answer is True:
            machine.transition(TransitionTrigger.USER_CONFIRMED)
            session.confirmation_attempts = 0
            return await self._resolve_slots(session, machine, intent, text)

        if answer is False:
            machine.transition(TransitionTrigger.USER_REJECTED)
            session.confirmation_attempts += 1
            session.clear_pending()
            if session.confirmation_attempts >= self._config.dialog.max_confirmation_attempts:
                return replies.REPHRASE, HandoffReason.LOW_CONFIDENCE
            return replies.REPHRASE, None

        machine.transition(TransitionTrigger.NEW_UTTERANCE)
        session.clear_pending()
        return await self._classify(session, machine, text)

    async def _fulfil(self, session: Session, intent: IntentDefinition, text: str) -> str:
        values = {name: session.context.get(name, "") for name in intent.required_slots}
        session.clear_pending()
        session.confirmation_attempts = 0
        session.consecutive_no_match_count = 0

        if intent.action == IntentAction.ANSWER:
            return intent.answer

        if intent.action == IntentAction.KNOWLEDGE:
            query = intent.knowledge_query.format(**values) if intent.knowledge_query else text
            snippets = await self._registry.call(
                KNOWLEDGE, self._knowledge.search, query, self._config.dialog.knowledge_top_k
            )
            if not snippets:
                return replies.KNOWLEDGE_EMPTY
            top = snippets[0]
            return replies.KNOWLEDGE_ANSWER.format(snippet=top.snippet, source_id=top.source_id)

        title = intent.ticket_title.format(**values) if intent.ticket_title else intent.display_name
        request = TicketRequest(
            title=title,
            description=self._describe(session),
            requester_id=session.user_id or session.session_key,
            priority=intent.ticket_priority,
            idempotency_key=self._ticket_key(session, intent),
        )
        receipt = await self._registry.call(TICKETS, self._tickets.create_ticket, request)
        if receipt.ticket_id:
            logger.info("Ticket %s created for %s", receipt.ticket_id, session.session_key)
            return replies.TICKET_CREATED.format(ticket_id=receipt.ticket_id, title=title)
        return replies.TICKET_QUEUED.format(title=title)

    @staticmethod
    def _ticket_key(session: Session, intent: IntentDefinition) -> str:
        """One ticket per inbound message and intent, however often the turn is re-applied."""
        turn = session.transcript[-1].correlation_id if session.transcript else ""
        return f"{session.session_key}:{turn}:{intent.name}"

    def _describe(self, session: Session) -> str:
        inbound = [e.text for e in session.transcript if e.direction == Direction.INBOUND and e.text]
        recent = inbound[-TICKET_CONTEXT_MESSAGES:]
        return "\n".join(f"> {line}" for line in recent) or "(no message text)"

    @staticmethod
    def _complete(machine: DialogStateMachine, reply: str) -> str:
        machine.transition(TransitionTrigger.TURN_COMPLETE)
        return reply


def interpret_confirmation(text: str) -> Optional[bool]:
    """Return True for yes, False for no, None for anything else."""
    normalized = normalize_utterance(text)
    if not normalized:
        return None
    first = normalized.split()[0]
    if normalized in replies.YES_WORDS or first in ("yes", "yeah", "yep", "sure", "correct"):
        return True
    if normalized in replies.NO_WORDS or first in ("no", "nope", "nah"):
        return False
    return None
