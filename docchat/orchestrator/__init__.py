"""Request orchestration module."""

from .channel import EventChannel
from .events import (
    ChunkEvent,
    CompleteEvent,
    DocumentErrorEvent,
    DocumentEvent,
    ErrorEvent,
    SourcesEvent,
    StreamEvent,
)
from .orchestrator import RequestOrchestrator, RequestState
from .outcomes import Rejection, RejectionReason
from .post_process import CompletedTurn, PostProcessor

__all__ = [
    "ChunkEvent",
    "CompleteEvent",
    "CompletedTurn",
    "DocumentErrorEvent",
    "DocumentEvent",
    "ErrorEvent",
    "EventChannel",
    "PostProcessor",
    "Rejection",
    "RejectionReason",
    "RequestOrchestrator",
    "RequestState",
    "SourcesEvent",
    "StreamEvent",
]
