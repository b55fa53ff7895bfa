"""Error taxonomy for the query pipeline.

Each error carries the HTTP status the transport maps it to. Only
``AuthError``, ``ForbiddenError``, ``ValidationError`` and
``RateLimitError`` ever reach the client as a status code; retrieval and
generation failures are surfaced inside the event stream, and persistence
failures are only logged.
"""

from datetime import datetime


class DocChatError(Exception):
    """Base class for pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(DocChatError):
    """No identity, or the identity could not be verified."""

    status_code = 401


class ForbiddenError(AuthError):
    """Identity is valid but does not own the requested session."""

    status_code = 403


class ValidationError(DocChatError):
    """Malformed input."""

    status_code = 400


class RateLimitError(DocChatError):
    """Identifier exceeded its admission window."""

    status_code = 429

    def __init__(self, message: str, reset_at: datetime | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class RetrievalError(DocChatError):
    """Both search backends failed."""

    def __init__(self, message: str, causes: list[BaseException] | None = None) -> None:
        super().__init__(message)
        self.causes = causes or []


class GenerationError(DocChatError):
    """The LLM stream failed before completing."""


class PersistenceError(DocChatError):
    """A bookkeeping write (cache, turn, memory, usage) failed."""
