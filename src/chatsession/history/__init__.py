"""Conversation history module for chatsession.

Provides durable storage of archived conversations.
"""

from .base import HistoryStore
from .factory import create_history_store
from .models import ConversationRecord, record_from_document, record_to_document

__all__ = [
    "ConversationRecord",
    "HistoryStore",
    "create_history_store",
    "record_from_document",
    "record_to_document",
]
