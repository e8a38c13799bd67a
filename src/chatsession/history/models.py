"""Data models for archived conversations.

These models define the archived record and its persisted document form,
independent of the storage backend used.

Persisted format (one JSON document, ordered oldest first):

    [
      {
        "id": "3f0c...",
        "title": "Chat 1 - Mar 04",
        "date": "2025-03-04T10:15:00+00:00",
        "messages": ["User: Hi", "Assistant: Hello!"],
        "authors": ["user", "assistant"]
      }
    ]

Message authorship is encoded as a ``"<name>: "`` prefix. The optional
``authors`` list is written alongside so records survive renamed or colliding
display names; documents without it are decoded by prefix matching.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..models import Author, Message, SessionIdentity

# Epoch values above this are treated as milliseconds
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationRecord(BaseModel):
    """Immutable snapshot of an archived conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = Field(description="Human readable title shown in history lists")
    created_at: datetime = Field(default_factory=_utcnow)
    messages: tuple[Message, ...] = Field(default=())

    @staticmethod
    def default_title(number: int, when: datetime | None = None) -> str:
        """Build the default title, e.g. ``"Chat 3 - Mar 04"``."""
        moment = when or datetime.now()
        return f"Chat {number} - {moment.strftime('%b %d')}"

    def preview(self, limit: int = 80) -> str:
        """First user message, truncated for list displays."""
        for message in self.messages:
            if message.author == Author.USER:
                text = " ".join(message.text.split())
                return text[:limit] + "..." if len(text) > limit else text
        return ""


def encode_message(message: Message, identity: SessionIdentity) -> str:
    """Encode a message as ``"<name>: <text>"``."""
    return f"{identity.name_for(message.author)}: {message.text}"


def decode_message(
    entry: str,
    identity: SessionIdentity,
    author: Author | None = None
) -> Message:
    """Decode a ``"<name>: <text>"`` entry.

    Args:
        entry: Persisted message string
        identity: Names used to recognise the prefix
        author: Structured author, when the document carries one

    Returns:
        Decoded message
    """
    if author is not None:
        name = identity.name_for(author)
        return Message(author=author, text=_strip_prefix(entry, name))

    for candidate in (Author.USER, Author.ASSISTANT):
        name = identity.name_for(candidate)
        if entry.startswith(f"{name}:"):
            return Message(author=candidate, text=_strip_prefix(entry, name))

    # Unknown sender: keep the full line as assistant text
    return Message(author=Author.ASSISTANT, text=entry)


def _strip_prefix(entry: str, name: str) -> str:
    prefix = f"{name}:"
    if not entry.startswith(prefix):
        # Author known but written under another name; drop up to the first colon
        _, sep, rest = entry.partition(":")
        if not sep:
            return entry
        return rest[1:] if rest.startswith(" ") else rest
    rest = entry[len(prefix):]
    return rest[1:] if rest.startswith(" ") else rest


def _parse_date(value: Any) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Date out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        # fromisoformat only accepts a "Z" suffix from Python 3.11 on
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"Unsupported date value: {value!r}")


def record_to_document(record: ConversationRecord, identity: SessionIdentity) -> dict[str, Any]:
    """Convert a record to its persisted JSON object."""
    return {
        "id": record.id,
        "title": record.title,
        "date": record.created_at.isoformat(),
        "messages": [encode_message(m, identity) for m in record.messages],
        "authors": [m.author.value for m in record.messages],
    }


def record_from_document(data: dict[str, Any], identity: SessionIdentity) -> ConversationRecord:
    """Build a record from its persisted JSON object.

    Raises:
        ValueError: If required fields are missing or malformed
    """
    try:
        entries = data["messages"]
        record_id = str(data["id"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed conversation record: {e}") from e

    if not isinstance(entries, list):
        raise ValueError("Conversation record 'messages' must be a list")

    authors = data.get("authors")
    if not isinstance(authors, list) or len(authors) != len(entries):
        authors = [None] * len(entries)

    messages = tuple(
        decode_message(str(entry), identity, Author(author) if author else None)
        for entry, author in zip(entries, authors)
    )

    return ConversationRecord(
        id=record_id,
        title=str(data.get("title") or ""),
        created_at=_parse_date(data["date"]) if data.get("date") is not None else _utcnow(),
        messages=messages,
    )
