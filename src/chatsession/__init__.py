"""
Chatsession: a single-conversation chat session coordinator.

Sits between a user-facing interface and a text-generation backend, streams
replies into a display-ready transcript, supports mid-generation cancellation
and archives finished conversations to durable history.
"""

__version__ = "0.1.0"

from .backend import GenerationBackend, create_generation_backend
from .cancellation import CancellationToken
from .errors import (
    BackendUnavailableError,
    ChatSessionError,
    GenerationError,
    OperationCancelledError,
    PersistenceError,
)
from .history import ConversationRecord, HistoryStore, create_history_store
from .models import Author, GenerationState, Message, SessionIdentity, SessionSnapshot
from .session import ReconciliationBuffer, SessionCoordinator

__all__ = [
    "Author",
    "BackendUnavailableError",
    "CancellationToken",
    "ChatSessionError",
    "ConversationRecord",
    "GenerationBackend",
    "GenerationError",
    "GenerationState",
    "HistoryStore",
    "Message",
    "OperationCancelledError",
    "PersistenceError",
    "ReconciliationBuffer",
    "SessionCoordinator",
    "SessionIdentity",
    "SessionSnapshot",
    "create_generation_backend",
    "create_history_store",
]
