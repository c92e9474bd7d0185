"""
Centralized configuration with environment variable overrides.

Every threshold, timeout and capacity limit used by the orchestrator lives
here. ``load_config()`` builds one frozen ``AppConfig`` at startup and the
caller passes it by reference into each component's constructor.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_HANDOFF_PHRASES = (
    "talk to agent",
    "talk to an agent",
    "speak to agent",
    "speak to an agent",
    "speak to a person",
    "real person",
    "human agent",
    "live agent",
    "talk to a human",
)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_tuple(env_var: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Parse a comma-separated list from an env var, dropping blank items."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _safe_float_tuple(env_var: str, default: str) -> tuple[float, ...]:
    """Parse a comma-separated list of floats from an env var."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(float(item) for item in raw.split(",") if item.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class DialogConfig:
    """Confidence thresholds and retry limits for the dialog state machine."""

    confidence_floor: float = _safe_float("CONFIDENCE_FLOOR", "0.3")
    confirmation_threshold: float = _safe_float("CONFIRMATION_THRESHOLD", "0.7")
    max_slot_retries: int = _safe_int("MAX_SLOT_RETRIES", "3")
    max_confirmation_attempts: int = _safe_int("MAX_CONFIRMATION_ATTEMPTS", "2")
    knowledge_top_k: int = _safe_int("KNOWLEDGE_TOP_K", "3")


@dataclass(frozen=True)
class HandoffConfig:
    """Trigger policy for transferring a conversation to a human agent."""

    max_no_match_before_handoff: int = _safe_int("MAX_NO_MATCH_BEFORE_HANDOFF", "3")
    sentiment_handoff_threshold: float = _safe_float("SENTIMENT_HANDOFF_THRESHOLD", "-0.6")
    handoff_phrases: tuple[str, ...] = _safe_tuple("HANDOFF_PHRASES", DEFAULT_HANDOFF_PHRASES)
    retry_backoff_sec: tuple[float, ...] = _safe_float_tuple("HANDOFF_RETRY_BACKOFF", "0.5,1.0,2.0")


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime, transcript retention and persistence settings."""

    session_ttl_sec: float = _safe_float("SESSION_TTL", "1800")
    transcript_retention: int = _safe_int("TRANSCRIPT_RETENTION", "50")
    sweep_interval_sec: float = _safe_float("SESSION_SWEEP_INTERVAL", "60")
    tombstone_retention_sec: float = _safe_float("SESSION_TOMBSTONE_RETENTION", "3600")
    db_path: str = os.getenv("SESSION_DB_PATH", "")


@dataclass(frozen=True)
class RouterConfig:
    """Per-session queueing and worker pool limits."""

    max_queued_turns: int = _safe_int("MAX_QUEUED_TURNS", "5")
    worker_pool_size: int = _safe_int("WORKER_POOL_SIZE", "32")
    version_conflict_retries: int = _safe_int("VERSION_CONFLICT_RETRIES", "3")


@dataclass(frozen=True)
class DependencyConfig:
    """Deadline and circuit breaker settings for one external dependency."""

    name: str
    timeout_ms: int = 2000
    failure_threshold: int = 3
    failure_window_sec: float = 60.0
    reset_timeout_sec: float = 30.0
    max_reset_timeout_sec: float = 300.0

    @property
    def timeout_sec(self) -> float:
        return self.timeout_ms / 1000.0


def _dependency_config(name: str, timeout_ms: str = "2000") -> DependencyConfig:
    """Read ``<NAME>_TIMEOUT_MS`` and friends for a single dependency."""
    prefix = name.upper()
    return DependencyConfig(
        name=name,
        timeout_ms=_safe_int(f"{prefix}_TIMEOUT_MS", timeout_ms),
        failure_threshold=_safe_int(f"{prefix}_FAILURE_THRESHOLD", "3"),
        failure_window_sec=_safe_float(f"{prefix}_FAILURE_WINDOW", "60"),
        reset_timeout_sec=_safe_float(f"{prefix}_RESET_TIMEOUT", "30"),
        max_reset_timeout_sec=_safe_float(f"{prefix}_MAX_RESET_TIMEOUT", "300"),
    )


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    dialog: DialogConfig = field(default_factory=DialogConfig)
    handoff: HandoffConfig = field(default_factory=HandoffConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    classifier: DependencyConfig = field(
        default_factory=lambda: _dependency_config("classifier", "1500")
    )
    knowledge: DependencyConfig = field(default_factory=lambda: _dependency_config("knowledge"))
    tickets: DependencyConfig = field(default_factory=lambda: _dependency_config("tickets", "5000"))
    human_queue: DependencyConfig = field(
        default_factory=lambda: _dependency_config("human_queue", "5000")
    )
    sentiment: DependencyConfig = field(
        default_factory=lambda: _dependency_config("sentiment", "500")
    )
    enrichment: DependencyConfig = field(
        default_factory=lambda: _dependency_config("enrichment", "1000")
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    bot_name: str = os.getenv("BOT_NAME", "Help Desk Bot")

    @property
    def dependencies(self) -> tuple[DependencyConfig, ...]:
        return (
            self.classifier,
            self.knowledge,
            self.tickets,
            self.human_queue,
            self.sentiment,
            self.enrichment,
        )


def _validate_dependency(dep: DependencyConfig) -> None:
    prefix = dep.name.upper()
    if dep.timeout_ms < 1:
        raise ValueError(f"{prefix}_TIMEOUT_MS must be >= 1, got {dep.timeout_ms}")
    if dep.failure_threshold < 1:
        raise ValueError(
            f"{prefix}_FAILURE_THRESHOLD must be >= 1, got {dep.failure_threshold}"
        )
    if dep.failure_window_sec <= 0:
        raise ValueError(
            f"{prefix}_FAILURE_WINDOW must be > 0, got {dep.failure_window_sec}"
        )
    if dep.reset_timeout_sec <= 0:
        raise ValueError(f"{prefix}_RESET_TIMEOUT must be > 0, got {dep.reset_timeout_sec}")
    if dep.max_reset_timeout_sec < dep.reset_timeout_sec:
        raise ValueError(
            f"{prefix}_MAX_RESET_TIMEOUT must be >= {prefix}_RESET_TIMEOUT, "
            f"got {dep.max_reset_timeout_sec}"
        )


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    dialog = config.dialog
    for rate_name, rate_value in [
        ("CONFIDENCE_FLOOR", dialog.confidence_floor),
        ("CONFIRMATION_THRESHOLD", dialog.confirmation_threshold),
    ]:
        if not 0.0 <= rate_value <= 1.0:
            raise ValueError(f"{rate_name} must be between 0.0 and 1.0, got {rate_value}")
    if dialog.confidence_floor > dialog.confirmation_threshold:
        raise ValueError(
            "CONFIDENCE_FLOOR must not exceed CONFIRMATION_THRESHOLD, "
            f"got {dialog.confidence_floor} > {dialog.confirmation_threshold}"
        )
    if dialog.max_slot_retries < 1:
        raise ValueError(f"MAX_SLOT_RETRIES must be >= 1, got {dialog.max_slot_retries}")
    if dialog.max_confirmation_attempts < 1:
        raise ValueError(
            "MAX_CONFIRMATION_ATTEMPTS must be >= 1, "
            f"got {dialog.max_confirmation_attempts}"
        )
    if dialog.knowledge_top_k < 1:
        raise ValueError(f"KNOWLEDGE_TOP_K must be >= 1, got {dialog.knowledge_top_k}")

    handoff = config.handoff
    if handoff.max_no_match_before_handoff < 1:
        raise ValueError(
            "MAX_NO_MATCH_BEFORE_HANDOFF must be >= 1, "
            f"got {handoff.max_no_match_before_handoff}"
        )
    if not -1.0 <= handoff.sentiment_handoff_threshold <= 1.0:
        raise ValueError(
            "SENTIMENT_HANDOFF_THRESHOLD must be between -1.0 and 1.0, "
            f"got {handoff.sentiment_handoff_threshold}"
        )
    if any(delay < 0 for delay in handoff.retry_backoff_sec):
        raise ValueError(
            f"HANDOFF_RETRY_BACKOFF must not be negative, got {handoff.retry_backoff_sec}"
        )

    session = config.session
    if session.session_ttl_sec <= 0:
        raise ValueError(f"SESSION_TTL must be > 0, got {session.session_ttl_sec}")
    if session.transcript_retention < 1:
        raise ValueError(
            f"TRANSCRIPT_RETENTION must be >= 1, got {session.transcript_retention}"
        )
    if session.sweep_interval_sec <= 0:
        raise ValueError(
            f"SESSION_SWEEP_INTERVAL must be > 0, got {session.sweep_interval_sec}"
        )

    router = config.router
    if router.max_queued_turns < 0:
        raise ValueError(f"MAX_QUEUED_TURNS must be >= 0, got {router.max_queued_turns}")
    if router.worker_pool_size < 1:
        raise ValueError(f"WORKER_POOL_SIZE must be >= 1, got {router.worker_pool_size}")
    if router.version_conflict_retries < 0:
        raise ValueError(
            "VERSION_CONFLICT_RETRIES must be >= 0, "
            f"got {router.version_conflict_retries}"
        )

    for dep in config.dependencies:
        _validate_dependency(dep)


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logger.info("Configuration loaded for '%s'", config.bot_name)
    return config
