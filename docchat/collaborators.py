"""External collaborator interfaces with in-memory reference implementations."""

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from docchat.errors import AuthError
from docchat.query.models import ConversationTurn, DocumentFormat
from docchat.ratelimit import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    user_id: str
    role: UserRole = UserRole.USER

    @property
    def identifier(self) -> str:
        """Rate-limit identifier."""
        return self.user_id


class TurnRecord(BaseModel):
    """One persisted question/answer exchange."""

    user_id: str
    session_id: str
    question: str
    answer: str
    sources: list[dict] = Field(default_factory=list)
    intent: str | None = None
    incomplete: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GeneratedDocument(BaseModel):
    """A produced artifact."""

    url: str
    filename: str
    format: DocumentFormat


class Authenticator(ABC):
    """Resolves request headers to a principal."""

    @abstractmethod
    async def authenticate(self, headers: Mapping[str, str]) -> Principal:
        """Return the caller's principal.

        Raises:
            AuthError: If no identity is present
        """
        pass


class HeaderAuthenticator(Authenticator):
    """Trusts identity headers set by an upstream gateway."""

    def __init__(self, user_header: str = "X-User-Id", role_header: str = "X-User-Role") -> None:
        self.user_header = user_header
        self.role_header = role_header

    async def authenticate(self, headers: Mapping[str, str]) -> Principal:
        user_id = (headers.get(self.user_header) or "").strip()
        if not user_id:
            raise AuthError("Unauthorized")

        raw_role = (headers.get(self.role_header) or UserRole.USER.value).strip().upper()
        try:
            role = UserRole(raw_role)
        except ValueError:
            logger.warning(f"Unknown role {raw_role!r} for user {user_id}, treating as {UserRole.USER.value}")
            role = UserRole.USER
        return Principal(user_id=user_id, role=role)


class ConversationStore(ABC):
    """Session ownership and conversation persistence."""

    @abstractmethod
    async def validate_session(self, session_id: str, user_id: str) -> bool:
        """Whether ``session_id`` exists and belongs to ``user_id``."""
        pass

    @abstractmethod
    async def get_history(self, session_id: str, user_id: str, limit: int) -> list[ConversationTurn]:
        """Most recent turns, newest first."""
        pass

    @abstractmethod
    async def persist_turn(self, record: TurnRecord) -> str:
        """Store a turn. Returns its id."""
        pass


class InMemoryConversationStore(ConversationStore):
    """Dict-backed conversation store for development and tests.

    With ``claim_unknown_sessions`` a session id nobody owns yet is
    assigned to the first user who presents it. Sessions owned by someone
    else are always refused.
    """

    def __init__(self, claim_unknown_sessions: bool = True) -> None:
        self.claim_unknown_sessions = claim_unknown_sessions
        self.sessions: dict[str, str] = {}
        self.turns: dict[str, list[TurnRecord]] = {}

    def create_session(self, user_id: str, session_id: str | None = None) -> str:
        session_id = session_id or str(uuid.uuid4())
        self.sessions[session_id] = user_id
        self.turns.setdefault(session_id, [])
        return session_id

    async def validate_session(self, session_id: str, user_id: str) -> bool:
        owner = self.sessions.get(session_id)
        if owner is None and self.claim_unknown_sessions:
            logger.info(f"Session {session_id} created for user {user_id}")
            self.create_session(user_id, session_id)
            return True
        return owner == user_id

    async def get_history(self, session_id: str, user_id: str, limit: int) -> list[ConversationTurn]:
        if self.sessions.get(session_id) != user_id:
            return []
        records = [r for r in self.turns.get(session_id, []) if not r.incomplete]
        return [ConversationTurn(question=r.question, answer=r.answer) for r in reversed(records)][:limit]

    async def persist_turn(self, record: TurnRecord) -> str:
        self.turns.setdefault(record.session_id, []).append(record)
        return f"{record.session_id}:{len(self.turns[record.session_id])}"


class DocumentGenerator(ABC):
    """Produces PDF, PPTX or XLSX artifacts from answer text."""

    @abstractmethod
    async def generate(self, content: str, document_format: DocumentFormat, title: str) -> GeneratedDocument:
        pass


class InMemoryDocumentGenerator(DocumentGenerator):
    """Keeps generated content in memory and hands back a placeholder URL."""

    def __init__(self) -> None:
        self.documents: dict[str, str] = {}

    async def generate(self, content: str, document_format: DocumentFormat, title: str) -> GeneratedDocument:
        if not content.strip():
            raise ValueError("Nothing to put in the document")
        document_id = uuid.uuid4().hex
        filename = f"{title or 'document'}.{document_format.value}"
        self.documents[document_id] = content
        return GeneratedDocument(url=f"memory://documents/{document_id}", filename=filename, format=document_format)
