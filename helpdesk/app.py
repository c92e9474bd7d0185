"""Application orchestrator - wires all components and manages lifecycle."""

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from helpdesk.channels.gateway import ChannelGateway
from helpdesk.config import AppConfig
from helpdesk.connectors import (
    EntityEnricher,
    HumanQueueConnector,
    InMemoryHumanQueue,
    InMemoryKnowledgeBase,
    InMemoryTicketSystem,
    IntentClassifier,
    KeywordIntentClassifier,
    KnowledgeConnector,
    LexiconSentimentAnalyzer,
    SentimentAnalyzer,
    TicketConnector,
)
from helpdesk.conversation.dialog_manager import DialogManager
from helpdesk.conversation.handoff import HandoffController
from helpdesk.conversation.intents import IntentCatalog
from helpdesk.errors import (
    GENERIC_ERROR_MESSAGE,
    MalformedInputError,
    SessionOverloadedError,
    SessionTerminalError,
    user_message_for,
)
from helpdesk.logging_context import get_turn_logger
from helpdesk.resilience.circuit_breaker import BreakerTransition
from helpdesk.resilience.fallbacks import TicketOutbox, build_registry
from helpdesk.routing.router import MessageRouter
from helpdesk.schemas.connector_schema import TicketReceipt
from helpdesk.schemas.envelope_schema import Channel, MessageEnvelope
from helpdesk.storage.session_store import InMemorySessionStore, SessionStore, SessionSweeper
from helpdesk.storage.sqlite_store import SqliteSessionStore
from helpdesk.utils import utcnow

logger = get_turn_logger(__name__)


class Orchestrator:
    """Top-level facade: channel payload in, channel payload out."""

    def __init__(
        self,
        config: AppConfig,
        classifier: Optional[IntentClassifier] = None,
        knowledge: Optional[KnowledgeConnector] = None,
        tickets: Optional[TicketConnector] = None,
        human_queue: Optional[HumanQueueConnector] = None,
        sentiment: Optional[SentimentAnalyzer] = None,
        enricher: Optional[EntityEnricher] = None,
        store: Optional[SessionStore] = None,
        catalog: Optional[IntentCatalog] = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_outbound: Optional[Callable[[MessageEnvelope], Any]] = None,
    ) -> None:
        self.config = config
        self.catalog = catalog or IntentCatalog()
        self.classifier = classifier or KeywordIntentClassifier(self.catalog)
        self.knowledge = knowledge or InMemoryKnowledgeBase()
        self.tickets = tickets or InMemoryTicketSystem()
        self.human_queue = human_queue or InMemoryHumanQueue()
        self.sentiment = sentiment or LexiconSentimentAnalyzer()
        self.store = store or self._create_store(config)

        self.outbox = TicketOutbox()
        self.registry = build_registry(config, outbox=self.outbox, clock=monotonic)
        self.breaker_events: list[BreakerTransition] = []
        self.registry.add_listener(self.breaker_events.append)

        self.handoff = HandoffController(config.handoff, self.registry, self.human_queue, sleep=sleep)
        self.dialog = DialogManager(
            config,
            self.registry,
            classifier=self.classifier,
            knowledge=self.knowledge,
            tickets=self.tickets,
            sentiment=self.sentiment,
            handoff=self.handoff,
            catalog=self.catalog,
            enricher=enricher,
            clock=clock,
        )
        self.router = MessageRouter(
            config, self.store, self.dialog, clock=clock, on_outbound=on_outbound
        )
        self.gateway = ChannelGateway()
        self.sweeper = SessionSweeper(self.store, config.session, clock=clock)

    @staticmethod
    def _create_store(config: AppConfig) -> SessionStore:
        if config.session.db_path:
            return SqliteSessionStore(config.session.db_path)
        return InMemorySessionStore()

    async def start(self) -> None:
        """Initialize and start all components."""
        await self.store.initialize()
        await self.sweeper.start()
        logger.info(
            "%s started (dependencies: %s)",
            self.config.bot_name, ", ".join(self.registry.registered()),
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        await self.router.close()
        await self.sweeper.stop()
        await self.store.close()
        logger.info("%s stopped", self.config.bot_name)

    async def __aenter__(self) -> "Orchestrator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def handle(self, raw_event: Any, channel: Union[Channel, str]) -> dict[str, Any]:
        """Process one channel payload and return the channel-rendered reply."""
        try:
            envelope = self.gateway.normalize(raw_event, channel)
        except MalformedInputError as exc:
            logger.warning("Rejected %s event: %s", channel, exc)
            return self.gateway.render_error(user_message_for(exc), channel)

        try:
            result = await self.router.route(envelope)
        except (SessionOverloadedError, SessionTerminalError) as exc:
            logger.info("Turn for %s rejected: %s", envelope.session_key, exc)
            return self.gateway.render_error(user_message_for(exc), channel, envelope)
        except Exception:
            logger.exception("Turn for %s failed", envelope.session_key)
            return self.gateway.render_error(GENERIC_ERROR_MESSAGE, channel, envelope)

        return self.gateway.render(result.outbound)

    async def flush_tickets(self) -> list[TicketReceipt]:
        """Replay tickets parked while the ticket backend was degraded."""
        return await self.outbox.flush(self.registry, self.tickets)

    def health(self) -> dict[str, Any]:
        return {
            "active_sessions": self.router.active_sessions,
            "pending_tickets": len(self.outbox.pending),
            "breakers": self.registry.snapshot(),
        }
