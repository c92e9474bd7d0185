"""Per-turn logging context.

The router binds each turn's envelope to the running task before any work
starts: its ``correlation_id`` (echoed back on the outbound reply) and its
``session_key``. Every log line emitted while that turn runs, in the
dialog manager, the handoff controller, the breaker registry or the
session store, carries both, so one user message can be followed end to
end and every turn of one conversation can be grepped by key.

Turns for different sessions run as separate tasks, and each task owns a
copy of the context, so concurrent turns never see each other's values.

Usage:
    from helpdesk.logging_context import get_turn_logger, set_turn_context

    set_turn_context(envelope.correlation_id, envelope.session_key)
    logger = get_turn_logger(__name__)
    logger.info("Classifying")  # -> [web:v-1 c0ffee] Classifying
"""

import logging
from contextvars import ContextVar

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")
_session_key: ContextVar[str] = ContextVar("session_key", default="-")

LOG_FORMAT = (
    "%(asctime)s [%(name)s] [%(session_key)s %(correlation_id)s] "
    "%(levelname)s: %(message)s"
)


def set_turn_context(correlation_id: str, session_key: str) -> None:
    """Bind the envelope being processed to the current task."""
    _correlation_id.set(correlation_id)
    _session_key.set(session_key)


def get_correlation_id() -> str:
    return _correlation_id.get()


def get_session_key() -> str:
    return _session_key.get()


class TurnContextFilter(logging.Filter):
    """Stamps ``correlation_id`` and ``session_key`` on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()  # type: ignore[attr-defined]
        record.session_key = _session_key.get()  # type: ignore[attr-defined]
        return True


def get_turn_logger(name: str) -> logging.Logger:
    """Return a logger whose records carry the current turn's context."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, TurnContextFilter) for f in logger.filters):
        logger.addFilter(TurnContextFilter())
    return logger


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler with the turn context in the format.

    The filter also goes on the handler so records from plain
    ``logging.getLogger`` loggers (connectors, breakers) format cleanly.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, TurnContextFilter) for f in handler.filters):
            handler.addFilter(TurnContextFilter())
