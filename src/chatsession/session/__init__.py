"""Active chat session: generation state machine and reconciliation."""

from ..cancellation import CancellationToken
from ..models import Author, GenerationState, Message, SessionIdentity, SessionSnapshot
from .coordinator import SessionCoordinator
from .reconcile import PLACEHOLDER_MARKER, ReconciliationBuffer, normalize_text

__all__ = [
    "Author",
    "CancellationToken",
    "GenerationState",
    "Message",
    "PLACEHOLDER_MARKER",
    "ReconciliationBuffer",
    "SessionCoordinator",
    "SessionIdentity",
    "SessionSnapshot",
    "normalize_text",
]
