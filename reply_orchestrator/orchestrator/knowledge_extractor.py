"""
Knowledge Extractor
Turns free text (typically a seller's answer to an escalation) into
typed, deduplicated knowledge items stored back into the knowledge store.
"""

import asyncio
import logging
import weakref
from typing import Dict, List, Optional

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.orchestrator.json_output import parse_json_output
from reply_orchestrator.orchestrator.prompts import JSON_ONLY_SYSTEM_PROMPT, knowledge_extraction_prompt
from reply_orchestrator.orchestrator.types import (
    ExtractedKnowledge,
    ExtractedKnowledgeItem,
    KnowledgeExtractionResult,
    KnowledgeType,
)
from reply_orchestrator.services.base import ChatBackend, ChatParams
from reply_orchestrator.storage.knowledge_store import KnowledgeStore
from reply_orchestrator.storage.models import KnowledgeItem

logger = logging.getLogger(__name__)

EXTRACTION_SOURCE_ID = "knowledge_extraction"

# Extraction type -> knowledge store category
CATEGORY_MAP: Dict[KnowledgeType, str] = {
    KnowledgeType.PRICING_RULE: "product",
    KnowledgeType.PRODUCT_VARIANT: "product",
    KnowledgeType.DELIVERY_RULE: "policy",
    KnowledgeType.NEGOTIATION_RULE: "policy",
    KnowledgeType.POLICY: "policy",
    KnowledgeType.FAQ: "faq",
    KnowledgeType.GENERAL: "general",
}


def map_type_to_category(knowledge_type: KnowledgeType) -> str:
    return CATEGORY_MAP.get(knowledge_type, "general")


class KnowledgeExtractor:
    """
    Extracts knowledge and stores the non-duplicate items.

    Candidate embeddings are computed concurrently. The duplicate check
    and insert run one candidate at a time under a per-workspace lock,
    so concurrent extraction runs cannot store near-duplicates.
    """

    def __init__(
        self,
        backend: ChatBackend,
        store: KnowledgeStore,
        settings: Settings
    ):
        self.backend = backend
        self.store = store
        self.dedup_threshold = settings.dedup_similarity_threshold
        self.confirmation_threshold = settings.seller_confirmation_threshold

        self._workspace_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _get_workspace_lock(self, workspace_id: str) -> asyncio.Lock:
        lock = self._workspace_locks.get(workspace_id)
        if lock is None:
            lock = asyncio.Lock()
            self._workspace_locks[workspace_id] = lock
        return lock

    async def _extract_candidates(
        self,
        source_text: str,
        context: str,
        interaction_id: Optional[str]
    ) -> List[ExtractedKnowledgeItem]:
        try:
            result = await self.backend.chat(
                ChatParams(
                    system_prompt=JSON_ONLY_SYSTEM_PROMPT,
                    user_message=knowledge_extraction_prompt(source_text, context),
                    temperature=0.2,
                    max_tokens=2048,
                    usage_type="knowledge_extraction"
                ),
                interaction_id=interaction_id
            )
            return parse_json_output(result.content, KnowledgeExtractionResult).knowledge_items
        except Exception as e:
            logger.warning(f"Knowledge extraction failed: {e}")
            return []

    async def _embed(self, text: str, interaction_id: Optional[str]) -> Optional[List[float]]:
        try:
            return (await self.backend.embed(text, interaction_id=interaction_id)).embedding
        except Exception as e:
            logger.warning(f"Embedding failed for '{text[:60]}', storing without deduplication: {e}")
            return None

    async def extract(
        self,
        workspace_id: str,
        source_text: str,
        context: str = "",
        interaction_id: Optional[str] = None
    ) -> List[ExtractedKnowledge]:
        """
        Extract, deduplicate and store knowledge from text.

        Args:
            workspace_id: Workspace receiving the knowledge
            source_text: Text to extract from
            context: What the text is answering
            interaction_id: For usage tracking

        Returns:
            The items that were stored (duplicates are left out)

        Raises:
            PersistenceError: A store write failed
        """
        candidates = await self._extract_candidates(source_text, context, interaction_id)
        if not candidates:
            return []

        embeddings = await asyncio.gather(*[
            self._embed(f"{c.name}: {c.content}", interaction_id) for c in candidates
        ])

        stored: List[ExtractedKnowledge] = []
        async with self._get_workspace_lock(workspace_id):
            for candidate, embedding in zip(candidates, embeddings):
                if embedding is not None and await self._is_duplicate(workspace_id, candidate, embedding):
                    continue

                needs_confirmation = candidate.confidence < self.confirmation_threshold
                await self.store.insert(KnowledgeItem(
                    workspace_id=workspace_id,
                    name=candidate.name,
                    content=candidate.content,
                    category=map_type_to_category(candidate.type),
                    metadata=dict(candidate.metadata or {}),
                    embedding=embedding,
                    is_verified=not needs_confirmation,
                    source_id=EXTRACTION_SOURCE_ID
                ))

                stored.append(ExtractedKnowledge(
                    type=candidate.type,
                    name=candidate.name,
                    content=candidate.content,
                    metadata=candidate.metadata,
                    confidence=candidate.confidence,
                    needs_seller_confirmation=needs_confirmation
                ))

        logger.info(
            f"Extracted {len(candidates)} knowledge candidate(s), stored {len(stored)} "
            f"in workspace {workspace_id}"
        )
        return stored

    async def _is_duplicate(
        self,
        workspace_id: str,
        candidate: ExtractedKnowledgeItem,
        embedding: List[float]
    ) -> bool:
        matches = await self.store.similarity_search(
            workspace_id,
            embedding,
            min_similarity=self.dedup_threshold,
            limit=1,
            include_expired=True
        )
        if matches:
            existing, similarity = matches[0]
            logger.info(
                f"Skipping duplicate '{candidate.name}' (matches '{existing.name}', "
                f"similarity {similarity:.3f})"
            )
            return True
        return False
