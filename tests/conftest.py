"""Shared test fixtures and helpers."""

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import pytest

from helpdesk.app import Orchestrator
from helpdesk.config import AppConfig
from helpdesk.connectors import InMemoryHumanQueue
from helpdesk.conversation.state_machine import DialogStateMachine
from helpdesk.schemas.connector_schema import HandoffAck, HandoffRequest, IntentResult
from helpdesk.schemas.envelope_schema import Channel, Direction, MessageEnvelope
from helpdesk.schemas.session_schema import Session

START = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)


def make_config(**overrides: Any) -> AppConfig:
    """AppConfig with short deadlines and no handoff backoff; sections can be replaced."""
    base = AppConfig()
    fields: dict[str, Any] = {
        dep.name: dataclasses.replace(dep, timeout_ms=100) for dep in base.dependencies
    }
    fields["handoff"] = dataclasses.replace(base.handoff, retry_backoff_sec=(0.0, 0.0))
    fields["session"] = dataclasses.replace(base.session, db_path="")
    fields.update(overrides)
    return dataclasses.replace(base, **fields)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


async def no_sleep(delay: float) -> None:
    return None


class ScriptedClassifier:
    """Returns queued results in order, then ``default``."""

    def __init__(self, *results: IntentResult, default: Optional[IntentResult] = None) -> None:
        self._results = list(results)
        self._default = default or IntentResult(intent_name="none", confidence=0.0)
        self.calls: list[str] = []

    async def classify(self, text: str, prior_context: Mapping[str, Any]) -> IntentResult:
        self.calls.append(text)
        if self._results:
            return self._results.pop(0)
        return self._default


class FailingClassifier:
    def __init__(self) -> None:
        self.calls = 0

    async def classify(self, text: str, prior_context: Mapping[str, Any]) -> IntentResult:
        self.calls += 1
        raise ConnectionError("classifier unreachable")


class SlowClassifier:
    """Never answers inside a 100ms deadline."""

    def __init__(self, delay: float = 5.0) -> None:
        self.delay = delay
        self.calls = 0

    async def classify(self, text: str, prior_context: Mapping[str, Any]) -> IntentResult:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return IntentResult(intent_name="greeting", confidence=1.0)


class FixedSentiment:
    def __init__(self, score: Optional[float] = 0.0) -> None:
        self.value = score

    async def score(self, text: str) -> Optional[float]:
        return self.value


class FlakyHumanQueue(InMemoryHumanQueue):
    """Fails the first ``failures`` enqueue calls."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def enqueue(self, request: HandoffRequest) -> HandoffAck:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("agent desk unreachable")
        return await super().enqueue(request)


class SlowEnricher:
    async def enrich(self, slot_name: str, text: str) -> str:
        await asyncio.sleep(5)
        return text


def intent(name: str, confidence: float, **entities: str) -> IntentResult:
    return IntentResult(intent_name=name, confidence=confidence, entities=entities)


def inbound(text: str, user: str = "u1", channel: Channel = Channel.API) -> MessageEnvelope:
    return MessageEnvelope(
        channel=channel,
        session_key=f"{channel.value}:{user}",
        direction=Direction.INBOUND,
        text=text,
        user_id=user,
    )


def new_session(key: str = "api:u1", now: datetime = START, ttl: float = 1800) -> Session:
    return Session.start(key, Channel.API, key.split(":", 1)[1], now, ttl)


def make_orchestrator(config: Optional[AppConfig] = None, **kwargs: Any) -> Orchestrator:
    kwargs.setdefault("clock", FakeClock())
    kwargs.setdefault("monotonic", FakeMonotonic())
    kwargs.setdefault("sleep", no_sleep)
    kwargs.setdefault("sentiment", FixedSentiment(0.0))
    return Orchestrator(config or make_config(), **kwargs)


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def state_machine() -> DialogStateMachine:
    return DialogStateMachine()
