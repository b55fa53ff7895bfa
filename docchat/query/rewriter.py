"""Contextual rewriting of follow-up questions."""

import logging
import re
from collections.abc import Sequence

from .models import ConversationTurn, RewrittenQuery

logger = logging.getLogger(__name__)

_FOLLOW_UP_PATTERNS = (
    re.compile(r"^(what|how|why|when|where|who)['’]?s?\s+(it|this|that|they|their|them|these|those)", re.IGNORECASE),
    re.compile(r"^(and|but|also|so|then)\s", re.IGNORECASE),
    re.compile(
        r"(tell me more|what about|how about|what else|anything else|can you|could you explain)",
        re.IGNORECASE,
    ),
)
_BARE_WH_WORD = re.compile(r"^(why|how|when|where|what|who)\??$", re.IGNORECASE)


def is_follow_up(question: str) -> bool:
    """Whether a question only makes sense against earlier turns."""
    question = question.strip()
    if any(pattern.search(question) for pattern in _FOLLOW_UP_PATTERNS):
        return True
    return len(question) < 10 and _BARE_WH_WORD.match(question) is not None


class QueryRewriter:
    """Prefixes follow-up questions with the recent history questions."""

    def __init__(self, history_turns: int = 3) -> None:
        self.history_turns = history_turns

    def rewrite(self, question: str, history: Sequence[ConversationTurn]) -> RewrittenQuery:
        """Build the search text for a question.

        Args:
            question: Literal user question
            history: Prior turns, newest first

        Returns:
            RewrittenQuery; ``was_rewritten`` is False when the text is the literal question
        """
        recent = list(history)[: self.history_turns]
        if not recent or not is_follow_up(question):
            return RewrittenQuery(text=question, was_rewritten=False)

        recent_topics = " ".join(turn.question for turn in recent)
        text = f"{recent_topics} {question}"
        logger.info(f"Enhanced search query with context: {question[:50]!r} -> {text[:100]!r}")
        return RewrittenQuery(text=text, was_rewritten=True)
