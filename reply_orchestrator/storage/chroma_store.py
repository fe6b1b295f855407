"""
ChromaDB Knowledge Store
Adapter mapping the KnowledgeStore contract onto a single ChromaDB
collection. Workspaces share the collection and are separated by the
workspace_id metadata filter on every query.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import chromadb

from reply_orchestrator.config.settings import Settings
from reply_orchestrator.orchestrator.errors import PersistenceError
from reply_orchestrator.storage.knowledge_store import KnowledgeStore
from reply_orchestrator.storage.models import KnowledgeItem

logger = logging.getLogger(__name__)


class ChromaKnowledgeStore(KnowledgeStore):
    """
    Knowledge store backed by a ChromaDB collection (cosine space).

    Chroma metadata values must be scalars, so item metadata and related
    ids are stored as JSON strings. The searchable document is the
    lowercased "name content" text; the original content lives in
    metadata. Items without an embedding get a placeholder vector and
    are excluded from similarity search.
    """

    def __init__(
        self,
        client: Any,
        collection_name: str = "knowledge_items",
        dimensions: int = 768
    ):
        """
        Initialize store.

        Args:
            client: chromadb client (HttpClient, PersistentClient or EphemeralClient)
            collection_name: Collection holding all workspaces' items
            dimensions: Embedding size, used for the placeholder vector
        """
        self.client = client
        self.dimensions = dimensions
        self.collection = client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChromaKnowledgeStore":
        if settings.chroma_persist_directory:
            client = chromadb.PersistentClient(path=settings.chroma_persist_directory)
        else:
            client = chromadb.HttpClient(host=settings.chroma_host, port=settings.chroma_port)
        logger.info(f"ChromaDB knowledge store using collection '{settings.chroma_collection}'")
        return cls(client, settings.chroma_collection, settings.embedding_dimensions)

    # ===== Conversion =====

    def _placeholder(self) -> List[float]:
        return [1.0] + [0.0] * (self.dimensions - 1)

    @staticmethod
    def _to_metadata(item: KnowledgeItem) -> Dict[str, Any]:
        return {
            "workspace_id": item.workspace_id,
            "name": item.name,
            "content": item.content or "",
            "category": item.category or "",
            "meta_json": json.dumps(item.metadata or {}, default=str),
            "is_verified": item.is_verified,
            "source_id": item.source_id or "",
            "related_json": json.dumps(item.related_item_ids or []),
            "has_embedding": item.embedding is not None,
            "expires_at": item.expires_at.timestamp() if item.expires_at else 0.0,
            "created_at": item.created_at.isoformat(),
            "updated_at": (item.updated_at or item.created_at).isoformat()
        }

    @staticmethod
    def _from_record(
        item_id: str,
        metadata: Dict[str, Any],
        embedding: Optional[List[float]] = None
    ) -> KnowledgeItem:
        expires = metadata.get("expires_at") or 0.0
        return KnowledgeItem(
            id=item_id,
            workspace_id=metadata["workspace_id"],
            name=metadata.get("name", ""),
            content=metadata.get("content") or None,
            category=metadata.get("category") or None,
            metadata=json.loads(metadata.get("meta_json") or "{}"),
            embedding=list(embedding) if embedding is not None and metadata.get("has_embedding") else None,
            is_verified=bool(metadata.get("is_verified", True)),
            source_id=metadata.get("source_id") or None,
            related_item_ids=json.loads(metadata.get("related_json") or "[]"),
            expires_at=datetime.fromtimestamp(expires) if expires else None,
            created_at=datetime.fromisoformat(metadata["created_at"]),
            updated_at=datetime.fromisoformat(metadata["updated_at"])
        )

    @staticmethod
    def _search_text(item: KnowledgeItem) -> str:
        return f"{item.name} {item.content or ''}".lower()

    # ===== KnowledgeStore =====

    async def similarity_search(
        self,
        workspace_id: str,
        embedding: List[float],
        min_similarity: float,
        limit: int,
        include_expired: bool = False
    ) -> List[Tuple[KnowledgeItem, float]]:
        if limit <= 0:
            return []

        results = await asyncio.to_thread(
            self.collection.query,
            query_embeddings=[embedding],
            n_results=limit * 2,
            where={"$and": [{"workspace_id": workspace_id}, {"has_embedding": True}]},
            include=["metadatas", "distances"]
        )

        matches: List[Tuple[KnowledgeItem, float]] = []
        if results and results["ids"] and results["ids"][0]:
            now = datetime.now()
            for i, item_id in enumerate(results["ids"][0]):
                # Cosine distance -> similarity
                similarity = 1 - results["distances"][0][i]
                if similarity <= min_similarity:
                    continue
                item = self._from_record(item_id, results["metadatas"][0][i])
                if not include_expired and item.is_expired(now):
                    continue
                matches.append((item, similarity))

        matches.sort(key=lambda pair: pair[1], reverse=True)
        return matches[:limit]

    async def keyword_search(
        self,
        workspace_id: str,
        keywords: List[str],
        limit: int
    ) -> List[KnowledgeItem]:
        if not keywords:
            return []

        conditions = [{"$contains": kw.lower()} for kw in keywords]
        where_document = conditions[0] if len(conditions) == 1 else {"$or": conditions}

        results = await asyncio.to_thread(
            self.collection.get,
            where={"workspace_id": workspace_id},
            where_document=where_document,
            include=["metadatas"]
        )

        now = datetime.now()
        items = []
        for item_id, metadata in zip(results["ids"], results["metadatas"]):
            item = self._from_record(item_id, metadata)
            if item.is_expired(now):
                continue
            items.append(item)
            if len(items) >= limit:
                break
        return items

    async def get_items(self, workspace_id: str, ids: List[str]) -> List[KnowledgeItem]:
        if not ids:
            return []
        results = await asyncio.to_thread(
            self.collection.get,
            ids=list(ids),
            where={"workspace_id": workspace_id},
            include=["metadatas", "embeddings"]
        )
        embeddings = results.get("embeddings")
        return [
            self._from_record(item_id, metadata, embeddings[i] if embeddings is not None else None)
            for i, (item_id, metadata) in enumerate(zip(results["ids"], results["metadatas"]))
        ]

    async def insert(self, item: KnowledgeItem) -> KnowledgeItem:
        try:
            await asyncio.to_thread(
                self.collection.add,
                ids=[item.id],
                embeddings=[item.embedding if item.embedding is not None else self._placeholder()],
                documents=[self._search_text(item)],
                metadatas=[self._to_metadata(item)]
            )
        except Exception as e:
            raise PersistenceError(
                f"Failed to insert knowledge item {item.id}: {e}",
                context={"workspace_id": item.workspace_id},
                cause=e
            ) from e
        return item

    async def update(self, item: KnowledgeItem) -> KnowledgeItem:
        item.updated_at = datetime.now()
        try:
            await asyncio.to_thread(
                self.collection.update,
                ids=[item.id],
                embeddings=[item.embedding if item.embedding is not None else self._placeholder()],
                documents=[self._search_text(item)],
                metadatas=[self._to_metadata(item)]
            )
        except Exception as e:
            raise PersistenceError(
                f"Failed to update knowledge item {item.id}: {e}",
                context={"workspace_id": item.workspace_id},
                cause=e
            ) from e
        return item

    async def list_items(self, workspace_id: str) -> List[KnowledgeItem]:
        results = await asyncio.to_thread(
            self.collection.get,
            where={"workspace_id": workspace_id},
            include=["metadatas"]
        )
        return [
            self._from_record(item_id, metadata)
            for item_id, metadata in zip(results["ids"], results["metadatas"])
        ]
