"""Tests for per-turn logging context."""

import asyncio
import logging

import pytest

from helpdesk.logging_context import (
    LOG_FORMAT,
    TurnContextFilter,
    get_correlation_id,
    get_session_key,
    get_turn_logger,
    set_turn_context,
)
from helpdesk.schemas.envelope_schema import Channel
from tests.conftest import inbound


def record():
    return logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)


class TestTurnContext:
    def test_filter_stamps_envelope_fields(self):
        envelope = inbound("hi", user="v-1", channel=Channel.WEB)
        set_turn_context(envelope.correlation_id, envelope.session_key)
        rec = record()
        assert TurnContextFilter().filter(rec) is True
        assert rec.correlation_id == envelope.correlation_id
        assert rec.session_key == "web:v-1"

    def test_format_renders_both_fields(self):
        set_turn_context("c0ffee", "api:u1")
        rec = record()
        TurnContextFilter().filter(rec)
        line = logging.Formatter(LOG_FORMAT).format(rec)
        assert "[api:u1 c0ffee]" in line

    def test_turn_logger_attaches_filter_once(self):
        logger = get_turn_logger("helpdesk.tests.once")
        get_turn_logger("helpdesk.tests.once")
        assert sum(isinstance(f, TurnContextFilter) for f in logger.filters) == 1

    @pytest.mark.asyncio
    async def test_context_isolated_between_session_tasks(self):
        async def turn(cid, key):
            set_turn_context(cid, key)
            await asyncio.sleep(0)
            return get_correlation_id(), get_session_key()

        assert await asyncio.gather(turn("one", "api:a"), turn("two", "api:b")) == [
            ("one", "api:a"),
            ("two", "api:b"),
        ]
