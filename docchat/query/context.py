"""Prompt context assembly: chunk selection, sources and the system prompt."""

from collections.abc import Sequence

from .models import ContextItem, ConversationTurn, PromptContext, RetrievalCandidate, Source

NO_CONTENT = "No content available"


def select_context(
    candidates: Sequence[RetrievalCandidate],
    chunk_limit: int = 8,
    chunks_per_document: int = 4,
) -> list[ContextItem]:
    """Pick the chunks that go into the prompt.

    Chunks are grouped by document title, each group keeps its first
    ``chunks_per_document`` chunks, groups are ordered by their best score
    and the flattened list is cut at ``chunk_limit``.
    """
    groups: dict[str, list[RetrievalCandidate]] = {}
    for candidate in candidates:
        groups.setdefault(candidate.document_title, []).append(candidate)

    ordered = sorted(
        (chunks[:chunks_per_document] for chunks in groups.values()),
        key=lambda chunks: chunks[0].fused_score,
        reverse=True,
    )
    selected = [chunk for chunks in ordered for chunk in chunks][:chunk_limit]
    return [
        ContextItem(title=c.document_title, content=c.content or NO_CONTENT, author=c.document_author)
        for c in selected
    ]


def collect_sources(candidates: Sequence[RetrievalCandidate], max_sources: int = 8) -> list[Source]:
    """One source per document title, in rank order."""
    sources: list[Source] = []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate.document_title in seen:
            continue
        seen.add(candidate.document_title)
        sources.append(
            Source(
                title=candidate.document_title,
                author=candidate.document_author,
                chunk_id=candidate.id,
                document_id=candidate.document_id,
            )
        )
        if len(sources) == max_sources:
            break
    return sources


def build_system_prompt(history: Sequence[ConversationTurn], items: Sequence[ContextItem]) -> str:
    """Grounded-answer instructions followed by recent history and the documents."""
    history_text = ""
    if history:
        lines = [f"User: {turn.question}\nAssistant: {turn.answer}\n" for turn in reversed(history)]
        history_text = "\n=== RECENT CONVERSATION HISTORY ===\n" + "\n".join(lines) + "=== END CONVERSATION HISTORY ===\n"

    documents = "\n\n".join(
        f"=== {item.title}{f' by {item.author}' if item.author else ''} ===\n{item.content}" for item in items
    )

    return f"""Answer only from the documents provided below. Never bring in outside knowledge.

- When the question spans several documents, combine them into one answer.
- Expand as far as the documents allow, in a warm, conversational tone.
- Do not cite sources; they are shown separately.
- Say "I don't have information about that in the available documents" only when the subject is absent from every document.
- When asked to restructure, expand or reformat earlier content, use only the previous answer and the documents below.
- When asked for a PDF, PowerPoint or Excel file, reply with a short confirmation; the file is generated separately.
{history_text}
Available documents:
{documents}"""


def build_prompt_context(
    candidates: Sequence[RetrievalCandidate],
    history: Sequence[ConversationTurn],
    chunk_limit: int = 8,
    chunks_per_document: int = 4,
    max_sources: int = 8,
) -> PromptContext:
    """Select context, collect sources and render the system prompt."""
    items = select_context(candidates, chunk_limit, chunks_per_document)
    return PromptContext(
        items=items,
        sources=collect_sources(candidates, max_sources),
        system_prompt=build_system_prompt(history, items),
    )
