"""
Keyword intent classifier.

In production this would call a hosted NLU model. This implementation
scores utterances against the intent catalog's keywords so the console
demo and tests run without network access.
"""

import logging
from typing import Any, Mapping

from helpdesk.conversation.intents import IntentCatalog
from helpdesk.schemas.connector_schema import IntentResult
from helpdesk.utils import compile_phrases, normalize_utterance

logger = logging.getLogger(__name__)

NO_INTENT = "none"
# Confidence contributed by the first and each additional keyword hit.
BASE_CONFIDENCE = 0.5
PER_HIT_CONFIDENCE = 0.25


class KeywordIntentClassifier:
    """Scores each intent by the number of its keywords found in the text."""

    def __init__(self, catalog: IntentCatalog) -> None:
        self._catalog = catalog
        self._patterns = {
            intent.name: compile_phrases(intent.keywords) for intent in catalog.intents()
        }

    async def classify(self, text: str, prior_context: Mapping[str, Any]) -> IntentResult:
        normalized = normalize_utterance(text)
        best_name = NO_INTENT
        best_hits = 0
        for name, pattern in self._patterns.items():
            hits = len(set(pattern.findall(normalized)))
            if hits > best_hits:
                best_name, best_hits = name, hits

        if best_hits == 0:
            logger.debug("No intent matched: '%s'", text)
            return IntentResult(intent_name=NO_INTENT, confidence=0.0)

        confidence = min(1.0, BASE_CONFIDENCE + PER_HIT_CONFIDENCE * (best_hits - 1))
        entities = self._catalog.extract_entities(text)
        logger.debug("Classified '%s' as %s (%.2f)", text, best_name, confidence)
        return IntentResult(intent_name=best_name, confidence=confidence, entities=entities)
