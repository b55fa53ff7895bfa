"""ChromaDB-backed vector and lexical search."""

import asyncio
import logging
from typing import Any

import chromadb
from chromadb import Collection
from chromadb.api import ClientAPI
from chromadb.config import Settings as ChromaSettings

from docchat.query.lexical import keyword_relevance, query_terms
from docchat.query.models import ScoredChunk

from .base import LexicalIndex, VectorIndex

logger = logging.getLogger(__name__)

MAX_LEXICAL_TERMS = 8


def create_chroma_client(host: str, port: int) -> ClientAPI:
    """Connect to a ChromaDB server."""
    client = chromadb.HttpClient(
        host=host,
        port=port,
        settings=ChromaSettings(anonymized_telemetry=False),
    )
    logger.info(f"Connected to ChromaDB at http://{host}:{port}")
    return client


def _to_chunk(chunk_id: str, content: str | None, metadata: dict[str, Any] | None, score: float) -> ScoredChunk:
    metadata = metadata or {}
    return ScoredChunk(
        id=chunk_id,
        document_id=str(metadata.get("document_id", chunk_id)),
        document_title=str(metadata.get("document_title") or metadata.get("title") or "Untitled Document"),
        document_author=metadata.get("document_author"),
        content=content or "",
        score=score,
    )


class _ChromaCollection:
    """Lazily resolves the collection; the client is synchronous."""

    def __init__(self, client: ClientAPI, collection_name: str) -> None:
        self.client = client
        self.collection_name = collection_name
        self._collection: Collection | None = None

    def collection(self) -> Collection:
        if self._collection is None:
            self._collection = self.client.get_collection(name=self.collection_name)
        return self._collection


class ChromaVectorIndex(_ChromaCollection, VectorIndex):
    """Semantic search over a ChromaDB collection."""

    async def query(self, vector: list[float], top_k: int) -> list[ScoredChunk]:
        """Nearest chunks to ``vector``.

        Similarity is ``1 - distance`` clamped to [0, 1].
        """
        results = await asyncio.to_thread(
            lambda: self.collection().query(
                query_embeddings=[vector],
                n_results=top_k,
                include=["documents", "metadatas", "distances"],
            )
        )

        chunks = []
        if results["ids"] and results["ids"][0]:
            documents = results["documents"][0] if results["documents"] else []
            metadatas = results["metadatas"][0] if results["metadatas"] else []
            distances = results["distances"][0] if results["distances"] else []
            for i, chunk_id in enumerate(results["ids"][0]):
                distance = distances[i] if i < len(distances) else 1.0
                chunks.append(
                    _to_chunk(
                        chunk_id,
                        documents[i] if i < len(documents) else "",
                        metadatas[i] if i < len(metadatas) else {},
                        min(max(1.0 - distance, 0.0), 1.0),
                    )
                )

        logger.debug(f"Vector search returned {len(chunks)} chunks from {self.collection_name}")
        return chunks


class ChromaLexicalIndex(_ChromaCollection, LexicalIndex):
    """Keyword search using ChromaDB document filters.

    Candidates are chunks containing any query term; each is then scored
    with ``keyword_relevance``.
    """

    async def search(self, text: str, top_k: int) -> list[ScoredChunk]:
        terms = list(dict.fromkeys(query_terms(text)))[:MAX_LEXICAL_TERMS]
        if not terms:
            return []

        clauses = []
        for term in terms:
            clauses.append({"$contains": term})
            clauses.append({"$contains": term.capitalize()})
        where_document = {"$or": clauses}

        results = await asyncio.to_thread(
            lambda: self.collection().get(
                where_document=where_document,
                limit=top_k * 2,
                include=["documents", "metadatas"],
            )
        )

        documents = results.get("documents") or []
        metadatas = results.get("metadatas") or []
        chunks = []
        for i, chunk_id in enumerate(results.get("ids") or []):
            content = documents[i] if i < len(documents) else ""
            score = keyword_relevance(text, content or "")
            if score > 0:
                chunks.append(_to_chunk(chunk_id, content, metadatas[i] if i < len(metadatas) else {}, score))

        chunks.sort(key=lambda c: (-c.score, c.id))
        logger.debug(f"Lexical search returned {len(chunks)} chunks from {self.collection_name}")
        return chunks[:top_k]


async def chroma_health_check(client: ClientAPI) -> bool:
    """Check if ChromaDB is reachable."""
    try:
        await asyncio.to_thread(client.heartbeat)
        return True
    except Exception as e:
        logger.warning(f"ChromaDB health check failed: {e}")
        return False
