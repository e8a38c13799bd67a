"""In-memory history backend.

Simple list-based storage for session-only history.
Data is lost when the application exits.
"""

import asyncio

from collections.abc import Sequence

from ..models import Message, SessionIdentity
from .base import HistoryStore
from .models import ConversationRecord


class InMemoryHistoryStore(HistoryStore):
    """In-memory conversation history (session-only).

    Suitable for single-session use or testing.
    """

    def __init__(
        self,
        records: list[ConversationRecord] | None = None,
        identity: SessionIdentity | None = None
    ):
        super().__init__(identity)
        self._records: list[ConversationRecord] = list(records or [])
        self._lock = asyncio.Lock()

    async def load_all(self) -> list[ConversationRecord]:
        """Return the current records (nothing to load)."""
        return await self.list()

    async def append(self, record: ConversationRecord) -> None:
        async with self._lock:
            self._records.append(record)

    async def archive(self, messages: Sequence[Message]) -> ConversationRecord:
        async with self._lock:
            record = ConversationRecord(
                title=ConversationRecord.default_title(len(self._records) + 1),
                messages=tuple(messages),
            )
            self._records.append(record)
            return record

    async def list(self) -> list[ConversationRecord]:
        return list(self._records)

    async def remove(self, record_id: str) -> bool:
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.id != record_id]
            return len(self._records) != before

    @property
    def backend_type(self) -> str:
        return "memory"
