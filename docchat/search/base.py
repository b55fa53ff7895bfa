"""Search backend interfaces."""

from abc import ABC, abstractmethod

from docchat.query.models import ScoredChunk


class VectorIndex(ABC):
    """Nearest-neighbour search over chunk embeddings."""

    @abstractmethod
    async def query(self, vector: list[float], top_k: int) -> list[ScoredChunk]:
        """Return up to ``top_k`` chunks by similarity, scores in [0, 1]."""
        pass


class LexicalIndex(ABC):
    """Keyword search over chunk text."""

    @abstractmethod
    async def search(self, text: str, top_k: int) -> list[ScoredChunk]:
        """Return up to ``top_k`` chunks by keyword relevance, scores in [0, 1]."""
        pass
