"""JSON document history backend.

Stores the full ordered collection of archived conversations in a single
JSON document. Every mutation rewrites the whole document; file I/O runs on a
worker thread so the event loop is never blocked.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from collections.abc import Sequence
from typing import Any

from ..errors import PersistenceError
from ..models import Message, SessionIdentity
from .base import HistoryStore
from .models import ConversationRecord, record_from_document, record_to_document

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILENAME = "chat_history.json"


class JsonHistoryStore(HistoryStore):
    """History persisted as one JSON document.

    Mutations are serialized by a single writer lock. A failed write is
    logged and does not roll back the in-memory collection, so memory and
    disk may diverge until the next successful write.
    """

    def __init__(
        self,
        path: str | Path = DEFAULT_HISTORY_FILENAME,
        identity: SessionIdentity | None = None
    ):
        super().__init__(identity)
        self._path = Path(path)
        self._records: list[ConversationRecord] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backend_type(self) -> str:
        return "json"

    # ------------------------------------------------------------------
    # Document I/O (runs on a worker thread)
    # ------------------------------------------------------------------

    def _read_document(self) -> Any:
        if not self._path.exists():
            return []
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read chat history: {e}", str(self._path)) from e

    def _write_document(self, document: list[dict[str, Any]]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(document, fh, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save chat history: {e}", str(self._path)) from e

    def _quarantine(self) -> Path:
        target = self._path.with_name(self._path.name + ".corrupt")
        os.replace(self._path, target)
        return target

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _decode(self, document: Any) -> list[ConversationRecord]:
        if not isinstance(document, list):
            raise ValueError("History document must be a JSON list")
        records = []
        for index, item in enumerate(document):
            try:
                records.append(record_from_document(item, self.identity))
            except ValueError as e:
                logger.warning("Skipping malformed chat record #%d in %s: %s", index, self._path, e)
        return records

    async def _load_locked(self) -> None:
        try:
            document = await asyncio.to_thread(self._read_document)
            self._records = self._decode(document)
        except PersistenceError as e:
            logger.error("%s", e)
            self._records = []
        except ValueError as e:
            logger.warning("Chat history %s is corrupt (%s); starting empty", self._path, e)
            self._records = []
            try:
                moved = await asyncio.to_thread(self._quarantine)
                logger.warning("Moved corrupt chat history to %s", moved)
            except OSError as move_error:
                logger.error("Failed to move corrupt chat history aside: %s", move_error)
        self._loaded = True

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self._load_locked()

    async def _persist_locked(self) -> bool:
        document = [record_to_document(r, self.identity) for r in self._records]
        try:
            await asyncio.to_thread(self._write_document, document)
        except PersistenceError as e:
            logger.error("%s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # HistoryStore interface
    # ------------------------------------------------------------------

    async def load_all(self) -> list[ConversationRecord]:
        """(Re)load the document from disk."""
        async with self._lock:
            await self._load_locked()
            return self._records.copy()

    async def append(self, record: ConversationRecord) -> None:
        async with self._lock:
            await self._ensure_loaded()
            self._records.append(record)
            await self._persist_locked()

    async def archive(self, messages: Sequence[Message]) -> ConversationRecord:
        async with self._lock:
            await self._ensure_loaded()
            record = ConversationRecord(
                title=ConversationRecord.default_title(len(self._records) + 1),
                messages=tuple(messages),
            )
            self._records.append(record)
            await self._persist_locked()
            return record

    async def remove(self, record_id: str) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            remaining = [r for r in self._records if r.id != record_id]
            if len(remaining) == len(self._records):
                return False
            self._records = remaining
            await self._persist_locked()
            return True

    async def flush(self) -> bool:
        """Rewrite the document from memory.

        Returns:
            True if the write succeeded
        """
        async with self._lock:
            await self._ensure_loaded()
            return await self._persist_locked()

    async def list(self) -> list[ConversationRecord]:
        async with self._lock:
            await self._ensure_loaded()
            return self._records.copy()
