"""Help desk knowledge base with keyword-overlap search."""

import logging
from typing import Optional

from helpdesk.schemas.connector_schema import KnowledgeSnippet
from helpdesk.utils import normalize_utterance

logger = logging.getLogger(__name__)

ARTICLE_CATALOG: dict[str, dict[str, str]] = {
    "KB-101": {
        "title": "Reset your email password",
        "body": "Go to the self-service portal, choose 'Forgot password' and follow "
                "the verification steps. Outlook picks up the new password within 15 minutes.",
        "tags": "password reset email outlook forgot locked",
    },
    "KB-102": {
        "title": "Reset your Windows password",
        "body": "Press Ctrl+Alt+Del, choose 'Change a password', or use the self-service "
                "portal from another device if you are locked out.",
        "tags": "password reset windows login locked unlock",
    },
    "KB-103": {
        "title": "Reset your VPN password",
        "body": "VPN credentials follow your directory password. Reset it in the "
                "self-service portal, then reconnect the VPN client.",
        "tags": "password reset vpn",
    },
    "KB-201": {
        "title": "Connect to the corporate VPN",
        "body": "Open the VPN client, choose the nearest gateway and sign in with your "
                "directory credentials. Restart the client if it hangs on 'Connecting'.",
        "tags": "vpn connection remote access connect home",
    },
    "KB-301": {
        "title": "Clear a printer paper jam",
        "body": "Open the front panel, remove jammed sheets gently and close the panel. "
                "If the error persists, power-cycle the printer.",
        "tags": "printer paper jam print",
    },
}


class InMemoryKnowledgeBase:
    """Ranks articles by how many query words appear in their title and tags."""

    def __init__(self, articles: Optional[dict[str, dict[str, str]]] = None) -> None:
        self._articles = articles if articles is not None else ARTICLE_CATALOG

    async def search(self, query_text: str, top_k: int) -> list[KnowledgeSnippet]:
        words = set(normalize_utterance(query_text).split())
        if not words:
            return []
        scored = []
        for source_id, article in self._articles.items():
            haystack = set(normalize_utterance(f"{article['title']} {article['tags']}").split())
            overlap = len(words & haystack)
            if overlap:
                scored.append(KnowledgeSnippet(
                    snippet=f"{article['title']}: {article['body']}",
                    source_id=source_id,
                    relevance_score=round(overlap / len(words), 3),
                ))
        scored.sort(key=lambda s: (-s.relevance_score, s.source_id))
        logger.debug("Knowledge search '%s' returned %d hits", query_text, len(scored))
        return scored[:top_k]
