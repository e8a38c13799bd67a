"""Factory for creating history backends."""

from typing import Any

from .base import HistoryStore


def create_history_store(
    backend: str = "json",
    **kwargs: Any
) -> HistoryStore:
    """Create a conversation history backend.

    Args:
        backend: Backend type ("json" or "memory")
        **kwargs: Backend-specific configuration
            For json:
                - path: str | Path (default: 'chat_history.json')
                - identity: SessionIdentity | None
            For memory:
                - records: list[ConversationRecord] | None
                - identity: SessionIdentity | None

    Returns:
        HistoryStore instance

    Raises:
        ValueError: If backend type is not supported
    """
    if backend == "memory":
        from .in_memory import InMemoryHistoryStore
        return InMemoryHistoryStore(**kwargs)

    elif backend == "json":
        from .json_file import JsonHistoryStore
        return JsonHistoryStore(**kwargs)

    raise ValueError(
        f"Unsupported history backend: {backend}. "
        f"Supported backends: json, memory"
    )
