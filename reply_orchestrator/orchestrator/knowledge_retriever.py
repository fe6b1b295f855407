"""
Knowledge Retriever
Hybrid search over a workspace's knowledge: vector similarity combined
with keyword matching, recency and intent-aware category boosting.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.orchestrator.types import ConversationTurn, Intent, RetrievedKnowledge
from reply_orchestrator.services.base import ChatBackend
from reply_orchestrator.storage.knowledge_store import KnowledgeStore
from reply_orchestrator.storage.models import KnowledgeItem

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "were", "to", "in", "on",
    "at", "for", "with", "about", "of", "this", "that", "it", "they", "we", "you", "i",
    "how", "what", "where", "when", "why", "who", "does", "do", "did", "can", "could",
    "would", "should", "will", "much", "many", "some", "any",
})

# Categories favoured for each intent
INTENT_CATEGORY_BOOST: Dict[Intent, Tuple[str, ...]] = {
    Intent.PRICE_CHECK: ("product", "service"),
    Intent.PRODUCT_INQUIRY: ("product", "service"),
    Intent.ORDER_INTENT: ("product", "service"),
    Intent.NEGOTIATION: ("product", "service"),
    Intent.DELIVERY_QUESTION: ("policy",),
    Intent.COMPLAINT: ("policy", "faq"),
    Intent.APPOINTMENT_REQUEST: ("service",),
}


class KnowledgeRetriever:
    """
    Ranks knowledge items for a customer message.

    hybrid = 0.5 * similarity + 0.25 * keyword + 0.1 * recency + 0.15 * intent_boost

    Items at or below the hybrid floor are dropped. Items related to the
    ranked ones are appended afterwards with a fixed low score.
    """

    SIMILARITY_WEIGHT = 0.5
    KEYWORD_WEIGHT = 0.25
    RECENCY_WEIGHT = 0.1
    INTENT_WEIGHT = 0.15

    RECENCY_WINDOW_DAYS = 90
    MAX_KEYWORDS = 5
    SHORT_QUERY_WORDS = 6
    RELATED_LIMIT = 5
    RELATED_SIMILARITY = 0.3

    def __init__(
        self,
        backend: ChatBackend,
        store: KnowledgeStore,
        settings: Settings
    ):
        self.backend = backend
        self.store = store
        self.vector_threshold = settings.vector_similarity_threshold
        self.hybrid_threshold = settings.hybrid_score_threshold
        self.default_max_results = settings.max_retrieval_results

    @staticmethod
    def extract_keywords(query: str, limit: int = MAX_KEYWORDS) -> List[str]:
        """Lowercase, strip punctuation, drop stop words and words of 2 chars or fewer."""
        cleaned = re.sub(r"[^\w\s]", "", query.lower())
        return [
            word for word in cleaned.split()
            if len(word) > 2 and word not in STOP_WORDS
        ][:limit]

    def build_search_text(self, query: str, history: Sequence[ConversationTurn]) -> str:
        """Prefix short follow-up queries ("how much is it?") with the last assistant turn."""
        if history and len(query.split()) < self.SHORT_QUERY_WORDS:
            for turn in reversed(list(history)):
                if turn.role == "assistant":
                    return f"Context: {turn.content[:100]}... Query: {query}"
        return query

    def intent_boost(self, intent: Intent, category: Optional[str]) -> float:
        if not category:
            return 0.0
        return 1.0 if category in INTENT_CATEGORY_BOOST.get(intent, ()) else 0.0

    def recency_boost(self, item: KnowledgeItem, now: datetime) -> float:
        """1.0 for items updated today, decaying linearly to 0 over the window."""
        if item.updated_at is None:
            return 0.0
        days_old = (now - item.updated_at).total_seconds() / 86400
        return max(0.0, min(1.0, 1 - days_old / self.RECENCY_WINDOW_DAYS))

    def hybrid_score(
        self,
        similarity: float,
        keyword_score: float,
        recency: float,
        intent_boost: float
    ) -> float:
        return (
            self.SIMILARITY_WEIGHT * similarity
            + self.KEYWORD_WEIGHT * keyword_score
            + self.RECENCY_WEIGHT * recency
            + self.INTENT_WEIGHT * intent_boost
        )

    async def _vector_search(
        self,
        workspace_id: str,
        search_text: str,
        limit: int,
        interaction_id: Optional[str]
    ) -> List[Tuple[KnowledgeItem, float]]:
        embedding = (await self.backend.embed(search_text, interaction_id=interaction_id)).embedding
        return await self.store.similarity_search(
            workspace_id,
            embedding,
            min_similarity=self.vector_threshold,
            limit=limit
        )

    async def retrieve(
        self,
        workspace_id: str,
        query: str,
        intent: Intent,
        history: Sequence[ConversationTurn] = (),
        interaction_id: Optional[str] = None,
        max_results: Optional[int] = None
    ) -> List[RetrievedKnowledge]:
        """
        Retrieve ranked knowledge for a query.

        Args:
            workspace_id: Workspace to search
            query: Customer message
            intent: Classified intent used for category boosting
            history: Recent turns, used to contextualize short queries
            interaction_id: For usage tracking
            max_results: Maximum ranked items (related items come on top)

        Returns:
            Items ordered by descending relevance; empty on any failure
        """
        max_results = max_results or self.default_max_results
        keywords = self.extract_keywords(query)
        search_text = self.build_search_text(query, history)

        try:
            vector_hits, keyword_hits = await asyncio.gather(
                self._vector_search(workspace_id, search_text, max_results + 2, interaction_id),
                self.store.keyword_search(workspace_id, keywords, max_results)
            )

            # item id -> [item, similarity, keyword score]
            candidates: Dict[str, list] = {}
            for item, similarity in vector_hits:
                candidates[item.id] = [item, similarity, 0.0]
            for item in keyword_hits:
                if item.id in candidates:
                    candidates[item.id][2] = 1.0
                else:
                    candidates[item.id] = [item, 0.0, 1.0]

            now = datetime.now()
            scored = []
            for item, similarity, keyword_score in candidates.values():
                score = self.hybrid_score(
                    similarity,
                    keyword_score,
                    self.recency_boost(item, now),
                    self.intent_boost(intent, item.category)
                )
                if score > self.hybrid_threshold:
                    scored.append((item, score))

            scored.sort(key=lambda pair: pair[1], reverse=True)
            ranked = scored[:max_results]

            results = [self._to_retrieved(item, score) for item, score in ranked]
            results.extend(await self._related_items(workspace_id, [item for item, _ in ranked]))

        except Exception as e:
            logger.warning(f"Hybrid search failed for workspace {workspace_id}: {e}")
            return []

        logger.debug(
            f"Retrieved {len(results)} knowledge items for workspace {workspace_id} "
            f"(vector={len(vector_hits)}, keyword={len(keyword_hits)})"
        )
        return results

    async def _related_items(
        self,
        workspace_id: str,
        ranked: List[KnowledgeItem]
    ) -> List[RetrievedKnowledge]:
        present = {item.id for item in ranked}
        related_ids: List[str] = []
        for item in ranked:
            for related_id in item.related_item_ids or []:
                if related_id not in present and related_id not in related_ids:
                    related_ids.append(related_id)

        if not related_ids:
            return []

        related = await self.store.get_items(workspace_id, related_ids)
        return [
            self._to_retrieved(item, self.RELATED_SIMILARITY)
            for item in related[:self.RELATED_LIMIT]
        ]

    @staticmethod
    def _to_retrieved(item: KnowledgeItem, score: float) -> RetrievedKnowledge:
        return RetrievedKnowledge(
            id=item.id,
            name=item.name,
            content=item.content,
            category=item.category,
            metadata=dict(item.metadata or {}),
            similarity=max(0.0, min(1.0, score)),
            source_id=item.source_id
        )
