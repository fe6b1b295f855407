"""
Knowledge Store
Per-workspace collection of knowledge items with embeddings.

The pipeline depends only on the KnowledgeStore contract. The in-memory
implementation is the reference store used by tests and local runs;
production deployments plug in a vector engine adapter.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np

from reply_orchestrator.orchestrator.errors import PersistenceError
from reply_orchestrator.storage.models import KnowledgeItem

logger = logging.getLogger(__name__)


class KnowledgeStore(ABC):
    """Abstract knowledge store. Every method is scoped to one workspace."""

    @abstractmethod
    async def similarity_search(
        self,
        workspace_id: str,
        embedding: List[float],
        min_similarity: float,
        limit: int,
        include_expired: bool = False
    ) -> List[Tuple[KnowledgeItem, float]]:
        """
        Find items whose cosine similarity to the embedding exceeds min_similarity.

        Args:
            workspace_id: Workspace to search
            embedding: Query vector
            min_similarity: Exclusive lower bound on similarity
            limit: Maximum number of results
            include_expired: Also consider items past their expiry

        Returns:
            (item, similarity) pairs, most similar first
        """
        pass

    @abstractmethod
    async def keyword_search(
        self,
        workspace_id: str,
        keywords: List[str],
        limit: int
    ) -> List[KnowledgeItem]:
        """Non-expired items whose name or content contains any keyword (case-insensitive)."""
        pass

    @abstractmethod
    async def get_items(self, workspace_id: str, ids: List[str]) -> List[KnowledgeItem]:
        pass

    @abstractmethod
    async def insert(self, item: KnowledgeItem) -> KnowledgeItem:
        pass

    @abstractmethod
    async def update(self, item: KnowledgeItem) -> KnowledgeItem:
        pass

    @abstractmethod
    async def list_items(self, workspace_id: str) -> List[KnowledgeItem]:
        pass


class InMemoryKnowledgeStore(KnowledgeStore):
    """
    Knowledge store held in process memory.

    Similarity is brute-force cosine over all embedded items of the
    workspace, computed with numpy.
    """

    def __init__(self, items: Optional[List[KnowledgeItem]] = None):
        self._items: Dict[str, KnowledgeItem] = {}
        self._lock = asyncio.Lock()
        for item in items or []:
            self._items[item.id] = item

    def _workspace_items(
        self,
        workspace_id: str,
        include_expired: bool = False
    ) -> List[KnowledgeItem]:
        now = datetime.now()
        return [
            item for item in self._items.values()
            if item.workspace_id == workspace_id
            and (include_expired or not item.is_expired(now))
        ]

    async def similarity_search(
        self,
        workspace_id: str,
        embedding: List[float],
        min_similarity: float,
        limit: int,
        include_expired: bool = False
    ) -> List[Tuple[KnowledgeItem, float]]:
        candidates = [
            item for item in self._workspace_items(workspace_id, include_expired)
            if item.embedding
        ]
        if not candidates or limit <= 0:
            return []

        query = np.asarray(embedding, dtype=float)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        matrix = np.asarray([item.embedding for item in candidates], dtype=float)
        if matrix.shape[1] != query.shape[0]:
            logger.warning(
                f"Embedding dimension mismatch in workspace {workspace_id}: "
                f"query {query.shape[0]}, stored {matrix.shape[1]}"
            )
            return []

        norms = np.linalg.norm(matrix, axis=1) * query_norm
        norms[norms == 0] = np.inf
        scores = (matrix @ query) / norms

        ranked = sorted(
            ((item, float(score)) for item, score in zip(candidates, scores) if score > min_similarity),
            key=lambda pair: pair[1],
            reverse=True
        )
        return ranked[:limit]

    async def keyword_search(
        self,
        workspace_id: str,
        keywords: List[str],
        limit: int
    ) -> List[KnowledgeItem]:
        if not keywords:
            return []

        needles = [kw.lower() for kw in keywords]
        results = []
        for item in self._workspace_items(workspace_id):
            haystack = f"{item.name}\n{item.content or ''}".lower()
            if any(kw in haystack for kw in needles):
                results.append(item)
                if len(results) >= limit:
                    break
        return results

    async def get_items(self, workspace_id: str, ids: List[str]) -> List[KnowledgeItem]:
        return [
            self._items[item_id] for item_id in ids
            if item_id in self._items and self._items[item_id].workspace_id == workspace_id
        ]

    async def insert(self, item: KnowledgeItem) -> KnowledgeItem:
        async with self._lock:
            if item.id in self._items:
                raise PersistenceError(
                    f"Knowledge item {item.id} already exists",
                    context={"workspace_id": item.workspace_id}
                )
            self._items[item.id] = item
        logger.debug(f"Stored knowledge item '{item.name}' in workspace {item.workspace_id}")
        return item

    async def update(self, item: KnowledgeItem) -> KnowledgeItem:
        async with self._lock:
            existing = self._items.get(item.id)
            if existing is None or existing.workspace_id != item.workspace_id:
                raise PersistenceError(
                    f"Knowledge item {item.id} not found",
                    context={"workspace_id": item.workspace_id}
                )
            item.updated_at = datetime.now()
            self._items[item.id] = item
        return item

    async def list_items(self, workspace_id: str) -> List[KnowledgeItem]:
        return [item for item in self._items.values() if item.workspace_id == workspace_id]
