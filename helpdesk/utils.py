"""Shared utilities used across the help desk orchestrator."""

import re
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def normalize_utterance(value: str) -> str:
    """Lower-case a message and collapse punctuation and whitespace.

    Examples:
        >>> normalize_utterance("  Talk to   AGENT!! ")
        'talk to agent'
        >>> normalize_utterance("Yes, please.")
        'yes please'
    """
    value = re.sub(r"[^\w\s'-]", " ", value.lower())
    return re.sub(r"\s+", " ", value).strip()


def compile_phrases(phrases: list[str] | tuple[str, ...]) -> re.Pattern[str]:
    """Compile a list of phrases into a single word-boundary regex."""
    escaped = [re.escape(normalize_utterance(p)) for p in phrases if p.strip()]
    if not escaped:
        return re.compile(r"(?!x)x")
    return re.compile(r"\b(?:" + "|".join(escaped) + r")\b", re.IGNORECASE)
