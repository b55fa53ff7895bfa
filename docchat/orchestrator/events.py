"""Typed stream events and their server-sent-event framing."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StreamEvent(BaseModel):
    """Base class for events sent to the client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: str

    def to_sse(self) -> bytes:
        """Frame as ``data: {json}\\n\\n``."""
        return f"data: {self.model_dump_json(by_alias=True)}\n\n".encode("utf-8")


class SourcesEvent(StreamEvent):
    """Ranked source metadata. Always the first event of a stream."""

    type: Literal["sources"] = "sources"
    sources: list[dict] = []
    chunk_count: int = 0
    document_count: int = 0
    cached: bool = False


class ChunkEvent(StreamEvent):
    """Incremental answer text."""

    type: Literal["chunk"] = "chunk"
    content: str


class DocumentEvent(StreamEvent):
    """A generated artifact is ready."""

    type: Literal["document"] = "document"
    url: str
    filename: str
    format: str


class DocumentErrorEvent(StreamEvent):
    """Artifact generation failed; the answer itself is unaffected."""

    type: Literal["document_error"] = "document_error"
    message: str


class CompleteEvent(StreamEvent):
    """Final full text and how it was produced."""

    type: Literal["complete"] = "complete"
    content: str
    cached: bool = False
    clarification: bool = False
    refusal: bool = False
    suggestions: list[str] = []


class ErrorEvent(StreamEvent):
    """The stream failed and will close without completing."""

    type: Literal["error"] = "error"
    message: str
