"""Search backends module."""

from .base import LexicalIndex, VectorIndex
from .chroma import ChromaLexicalIndex, ChromaVectorIndex, chroma_health_check, create_chroma_client

__all__ = [
    "ChromaLexicalIndex",
    "ChromaVectorIndex",
    "LexicalIndex",
    "VectorIndex",
    "chroma_health_check",
    "create_chroma_client",
]
