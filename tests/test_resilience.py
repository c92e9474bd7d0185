"""Tests for the breaker registry and dependency fallbacks."""

import asyncio

import pytest

from helpdesk.config import DependencyConfig
from helpdesk.connectors import InMemoryTicketSystem
from helpdesk.errors import SlotResolutionTimeout
from helpdesk.resilience import BreakerRegistry, BreakerState, TicketOutbox, build_registry
from helpdesk.resilience.fallbacks import CLASSIFIER, ENRICHMENT, TICKETS
from helpdesk.schemas.connector_schema import TicketRequest
from tests.conftest import FailingClassifier, SlowClassifier, SlowEnricher


def ticket(title="Printer problem at floor 3"):
    return TicketRequest(title=title, description="jammed", requester_id="u1")


class TestRegistration:
    def test_fallback_is_required(self, monotonic):
        registry = BreakerRegistry(clock=monotonic)
        with pytest.raises(ValueError, match="fallback"):
            registry.register(DependencyConfig(name="classifier"), None)

    def test_duplicate_rejected(self, monotonic):
        registry = BreakerRegistry(clock=monotonic)
        registry.register(DependencyConfig(name="knowledge"), lambda *a: [])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(DependencyConfig(name="knowledge"), lambda *a: [])

    def test_unknown_dependency(self, monotonic):
        with pytest.raises(KeyError):
            BreakerRegistry(clock=monotonic).breaker("nope")

    def test_build_registry_registers_everything(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        assert sorted(registry.registered()) == sorted(dep.name for dep in config.dependencies)


class TestCall:
    @pytest.mark.asyncio
    async def test_success_passes_through(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)

        async def classify(text, context):
            return "real"

        assert await registry.call(CLASSIFIER, classify, "hi", {}) == "real"

    @pytest.mark.asyncio
    async def test_error_uses_fallback(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        result = await registry.call(CLASSIFIER, FailingClassifier().classify, "hi", {})
        assert result.is_fallback
        assert registry.breaker(CLASSIFIER).consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        result = await registry.call(CLASSIFIER, SlowClassifier().classify, "hi", {})
        assert result.is_fallback
        assert registry.breaker(CLASSIFIER).consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_classifier_timeouts_open_breaker(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        slow = SlowClassifier()
        for _ in range(3):
            await registry.call(CLASSIFIER, slow.classify, "hi", {})
        assert registry.is_open(CLASSIFIER)

        result = await registry.call(CLASSIFIER, slow.classify, "hi", {})
        assert result.is_fallback
        assert slow.calls == 3

    @pytest.mark.asyncio
    async def test_open_breaker_skips_real_dependency(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        failing = FailingClassifier()
        for _ in range(10):
            await registry.call(CLASSIFIER, failing.classify, "hi", {})
        assert failing.calls == config.classifier.failure_threshold

    @pytest.mark.asyncio
    async def test_half_open_trial_after_reset(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        failing = FailingClassifier()
        for _ in range(3):
            await registry.call(CLASSIFIER, failing.classify, "hi", {})
        monotonic.advance(config.classifier.reset_timeout_sec)

        async def healthy(text, context):
            return "recovered"

        assert await registry.call(CLASSIFIER, healthy, "hi", {}) == "recovered"
        assert registry.breaker(CLASSIFIER).state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_cancellation_releases_trial(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        for _ in range(3):
            await registry.call(CLASSIFIER, FailingClassifier().classify, "hi", {})
        monotonic.advance(config.classifier.reset_timeout_sec)

        task = asyncio.create_task(registry.call(CLASSIFIER, SlowClassifier(0.05).classify, "hi", {}))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.breaker(CLASSIFIER).allow_request()

    @pytest.mark.asyncio
    async def test_slow_call_from_before_trip_does_not_settle_trial(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        breaker = registry.breaker(CLASSIFIER)
        release = asyncio.Event()

        async def slow_but_healthy(text, context):
            await release.wait()
            return "late"

        early = asyncio.create_task(registry.call(CLASSIFIER, slow_but_healthy, "hi", {}))
        await asyncio.sleep(0)
        for _ in range(3):
            await registry.call(CLASSIFIER, FailingClassifier().classify, "hi", {})
        monotonic.advance(config.classifier.reset_timeout_sec)
        trial = breaker.allow_request()

        release.set()
        assert await early == "late"
        assert breaker.state == BreakerState.HALF_OPEN

        breaker.record_success(trial)
        assert breaker.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_enrichment_fallback_raises_slot_timeout(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        with pytest.raises(SlotResolutionTimeout) as exc_info:
            await registry.call(ENRICHMENT, SlowEnricher().enrich, "printer_location", "floor 3")
        assert exc_info.value.slot_name == "printer_location"

    @pytest.mark.asyncio
    async def test_listener_receives_events_and_errors_are_contained(self, config, monotonic):
        registry = build_registry(config, clock=monotonic)
        seen = []

        def broken(event):
            raise RuntimeError("monitoring down")

        registry.add_listener(broken)
        registry.add_listener(seen.append)
        for _ in range(3):
            await registry.call(CLASSIFIER, FailingClassifier().classify, "hi", {})
        assert [e.to_state for e in seen] == [BreakerState.OPEN]
        assert registry.snapshot()[CLASSIFIER]["state"] == "open"


class TestTicketOutbox:
    @pytest.mark.asyncio
    async def test_failed_ticket_is_queued(self, config, monotonic):
        outbox = TicketOutbox()
        registry = build_registry(config, outbox=outbox, clock=monotonic)

        async def down(request):
            raise ConnectionError("itsm down")

        receipt = await registry.call(TICKETS, down, ticket())
        assert receipt.queued_for_retry
        assert receipt.ticket_id is None
        assert [r.title for r in outbox.pending] == ["Printer problem at floor 3"]

    @pytest.mark.asyncio
    async def test_flush_creates_parked_tickets(self, config, monotonic):
        outbox = TicketOutbox()
        registry = build_registry(config, outbox=outbox, clock=monotonic)
        outbox(ticket("a"))
        outbox(ticket("b"))

        system = InMemoryTicketSystem()
        receipts = await outbox.flush(registry, system)
        assert all(r.ticket_id and r.ticket_id.startswith("INC-") for r in receipts)
        assert outbox.pending == []
        assert len(system.list_tickets()) == 2
