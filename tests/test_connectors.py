"""Tests for the bundled in-memory collaborators."""

import pytest

from helpdesk.connectors import (
    IntentClassifier,
    InMemoryHumanQueue,
    InMemoryKnowledgeBase,
    InMemoryTicketSystem,
    KeywordIntentClassifier,
    KnowledgeConnector,
    LexiconSentimentAnalyzer,
)
from helpdesk.conversation.intents import IntentCatalog
from helpdesk.schemas.connector_schema import TicketPriority, TicketRequest


@pytest.fixture
def classifier():
    return KeywordIntentClassifier(IntentCatalog())


class TestKeywordClassifier:
    @pytest.mark.asyncio
    async def test_several_keywords_give_high_confidence(self, classifier):
        result = await classifier.classify("I forgot my password and I'm locked out", {})
        assert result.intent_name == "password_reset"
        assert result.confidence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_single_keyword_gives_medium_confidence(self, classifier):
        result = await classifier.classify("the printer", {})
        assert result.intent_name == "printer_issue"
        assert result.confidence == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_no_keywords(self, classifier):
        result = await classifier.classify("purple elephants", {})
        assert result.intent_name == "none"
        assert result.confidence == 0.0

    @pytest.mark.asyncio
    async def test_entities_extracted(self, classifier):
        result = await classifier.classify("printer on floor 4 has a paper jam", {})
        assert result.entities["printer_location"] == "floor 4"

    def test_satisfies_contract(self, classifier):
        assert isinstance(classifier, IntentClassifier)


class TestKnowledgeBase:
    @pytest.mark.asyncio
    async def test_ranks_best_overlap_first(self):
        kb = InMemoryKnowledgeBase()
        results = await kb.search("vpn connection", top_k=3)
        assert results[0].source_id == "KB-201"
        assert results[0].relevance_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self):
        results = await InMemoryKnowledgeBase().search("password reset", top_k=1)
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_empty_query(self):
        assert await InMemoryKnowledgeBase().search("  ", top_k=3) == []

    @pytest.mark.asyncio
    async def test_no_hits(self):
        assert await InMemoryKnowledgeBase().search("espresso machine", top_k=3) == []

    def test_satisfies_contract(self):
        assert isinstance(InMemoryKnowledgeBase(), KnowledgeConnector)


class TestTicketSystem:
    @pytest.mark.asyncio
    async def test_creates_incident(self):
        tickets = InMemoryTicketSystem()
        receipt = await tickets.create_ticket(TicketRequest(
            title="Printer problem at floor 3",
            description="jammed",
            requester_id="u1",
            priority=TicketPriority.HIGH,
        ))
        assert receipt.ticket_id.startswith("INC-")
        record = tickets.get_ticket(receipt.ticket_id)
        assert record["priority"] == "high"
        assert record["status"] == "open"

    @pytest.mark.asyncio
    async def test_missing_requester_rejected(self):
        tickets = InMemoryTicketSystem()
        with pytest.raises(ValueError, match="requester_id"):
            await tickets.create_ticket(TicketRequest(title="x", description="", requester_id=""))
        assert tickets.list_tickets() == []

    @pytest.mark.asyncio
    async def test_repeated_idempotency_key_returns_first_ticket(self):
        tickets = InMemoryTicketSystem()
        request = TicketRequest(
            title="VPN access request for Payroll",
            description="need vpn",
            requester_id="u1",
            idempotency_key="s1:c0ffee:vpn_access",
        )
        first = await tickets.create_ticket(request)
        again = await tickets.create_ticket(request)
        assert again.ticket_id == first.ticket_id
        assert len(tickets.list_tickets()) == 1

    @pytest.mark.asyncio
    async def test_requests_without_key_are_not_merged(self):
        tickets = InMemoryTicketSystem()
        request = TicketRequest(title="Printer problem at floor 3", description="", requester_id="u1")
        await tickets.create_ticket(request)
        await tickets.create_ticket(request)
        assert len(tickets.list_tickets()) == 2


class TestSentiment:
    @pytest.mark.asyncio
    async def test_negative(self):
        score = await LexiconSentimentAnalyzer().score("this is useless, a total waste of time")
        assert score == pytest.approx(-0.8)

    @pytest.mark.asyncio
    async def test_positive(self):
        assert await LexiconSentimentAnalyzer().score("thanks, that works now") > 0

    @pytest.mark.asyncio
    async def test_neutral(self):
        assert await LexiconSentimentAnalyzer().score("my printer is on floor 3") == 0.0

    @pytest.mark.asyncio
    async def test_clamped(self):
        text = "useless terrible awful worst hate"
        assert await LexiconSentimentAnalyzer().score(text) == -1.0


class TestHumanQueue:
    @pytest.mark.asyncio
    async def test_positions_follow_arrival(self):
        from helpdesk.schemas.connector_schema import HandoffRequest
        from helpdesk.schemas.session_schema import HandoffReason

        queue = InMemoryHumanQueue()
        first = await queue.enqueue(HandoffRequest(session_key="web:a", reason=HandoffReason.EXPLICIT))
        second = await queue.enqueue(HandoffRequest(session_key="web:b", reason=HandoffReason.EXPLICIT))
        assert (first.queue_position, second.queue_position) == (1, 2)
        assert [r.session_key for r in queue.entries()] == ["web:a", "web:b"]
