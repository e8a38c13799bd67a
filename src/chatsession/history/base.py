"""Abstract base class for conversation history backends.

This module defines the interface for archived conversation storage.
The abstraction hides:
- Storage format (JSON document, in-memory list)
- Persistence mechanism and write policy
- Serialization of concurrent mutations
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ..models import Message, SessionIdentity
from .models import ConversationRecord


class HistoryStore(ABC):
    """Abstract store of archived conversations.

    Records are kept in archive order (most recent last). Write failures are
    logged by implementations and never raised to callers; the in-memory
    collection stays authoritative for the current process.
    """

    def __init__(self, identity: SessionIdentity | None = None):
        self.identity = identity or SessionIdentity()

    @abstractmethod
    async def load_all(self) -> list[ConversationRecord]:
        """Load the collection from durable storage (called at startup)."""

    @abstractmethod
    async def append(self, record: ConversationRecord) -> None:
        """Archive a record at the end of the collection."""

    @abstractmethod
    async def archive(self, messages: Sequence[Message]) -> ConversationRecord:
        """Archive a transcript as a new record with the next numbered title.

        Numbering and appending happen as one step under the writer lock.
        """

    @abstractmethod
    async def list(self) -> list[ConversationRecord]:
        """Get all records, most recent last."""

    @abstractmethod
    async def remove(self, record_id: str) -> bool:
        """Remove a record by id; no-op returning False if absent."""

    async def get(self, record_id: str) -> ConversationRecord | None:
        """Find a record by id."""
        for record in await self.list():
            if record.id == record_id:
                return record
        return None

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
