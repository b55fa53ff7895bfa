"""Cache key generation."""

import hashlib
import re
import unicodedata

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_question(question: str) -> str:
    """Normalize a question so trivially different phrasings share a key.

    Applies NFKC, lowercases, strips punctuation and collapses whitespace.
    """
    text = unicodedata.normalize("NFKC", question).lower().strip()
    text = _PUNCTUATION.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def question_cache_key(question: str, user_id: str) -> str:
    """Exact-match key for a (question, user) pair."""
    material = f"q:{normalize_question(question)}|user:{user_id}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]
