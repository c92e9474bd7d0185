from helpdesk.connectors.classifier import KeywordIntentClassifier
from helpdesk.connectors.contracts import (
    EntityEnricher,
    HumanQueueConnector,
    IntentClassifier,
    KnowledgeConnector,
    SentimentAnalyzer,
    TicketConnector,
)
from helpdesk.connectors.human_queue import InMemoryHumanQueue
from helpdesk.connectors.knowledge import InMemoryKnowledgeBase
from helpdesk.connectors.sentiment import LexiconSentimentAnalyzer
from helpdesk.connectors.ticketing import InMemoryTicketSystem

__all__ = [
    "IntentClassifier",
    "KnowledgeConnector",
    "TicketConnector",
    "HumanQueueConnector",
    "SentimentAnalyzer",
    "EntityEnricher",
    "KeywordIntentClassifier",
    "InMemoryKnowledgeBase",
    "InMemoryTicketSystem",
    "InMemoryHumanQueue",
    "LexiconSentimentAnalyzer",
]
