"""Keyword relevance scoring for lexical search hits."""

import re

_NON_WORD = re.compile(r"[^\w\s]")


def query_terms(query: str) -> list[str]:
    """Lowercased query terms longer than two characters."""
    return [term for term in _NON_WORD.sub(" ", query.lower()).split() if len(term) > 2]


def keyword_relevance(query: str, content: str) -> float:
    """Score how well ``content`` matches the terms of ``query``.

    Combines term frequency, a bonus for early first occurrence, a bonus for
    whole-word matches, a capped repetition bonus and coverage of the query
    terms. The result is in [0, 1].

    Args:
        query: Search text
        content: Chunk text

    Returns:
        Relevance score between 0 and 1
    """
    terms = query_terms(query)
    if not terms:
        return 0.0

    content_lower = content.lower()
    content_length = max(len(content_lower.split()), 1)

    total_score = 0.0
    matched_terms = 0

    for term in terms:
        escaped = re.escape(term)
        exact_matches = len(re.findall(rf"\b{escaped}\b", content_lower))
        partial_matches = len(re.findall(escaped, content_lower)) - exact_matches
        if exact_matches == 0 and partial_matches == 0:
            continue

        matched_terms += 1
        term_frequency = (exact_matches * 2 + partial_matches) / content_length
        first_position = content_lower.find(term)
        position_bonus = (1 - first_position / len(content_lower)) * 0.2 if first_position >= 0 else 0.0
        exact_bonus = 0.3 if exact_matches > 0 else 0.0
        frequency_bonus = min((exact_matches + partial_matches) * 0.1, 0.5)

        total_score += term_frequency + position_bonus + exact_bonus + frequency_bonus

    coverage = matched_terms / len(terms)
    return min((total_score + coverage * 0.4) * coverage, 1.0)
