"""Lexicon sentiment analyzer returning scores in [-1, 1]."""

import logging
from typing import Optional

from helpdesk.utils import compile_phrases, normalize_utterance

logger = logging.getLogger(__name__)

NEGATIVE_PHRASES = [
    "useless", "ridiculous", "unacceptable", "terrible", "awful", "angry",
    "worst", "hate", "frustrated", "furious", "i already told you",
    "still broken", "waste of time",
]

POSITIVE_PHRASES = [
    "thanks", "thank you", "great", "perfect", "awesome", "helpful",
    "works now", "fixed", "brilliant",
]

# Each matched phrase moves the score this far from neutral.
PHRASE_WEIGHT = 0.4


class LexiconSentimentAnalyzer:
    """Scores text by counting positive and negative phrases."""

    def __init__(self) -> None:
        self._negative = compile_phrases(NEGATIVE_PHRASES)
        self._positive = compile_phrases(POSITIVE_PHRASES)

    async def score(self, text: str) -> Optional[float]:
        normalized = normalize_utterance(text)
        negative = len(self._negative.findall(normalized))
        positive = len(self._positive.findall(normalized))
        score = max(-1.0, min(1.0, PHRASE_WEIGHT * (positive - negative)))
        logger.debug("Sentiment %.2f for '%s'", score, text)
        return score
