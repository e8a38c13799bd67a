"""Abstract base class for text-generation backends.

This module hides the design decision of which inference engine produces
the reply. Implementations must handle engine-specific details like:
- Model loading and unloading
- Prompt formatting and conversational context
- Streaming fragments and honouring cancellation promptly
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..cancellation import CancellationToken
from .models import ChatMessage


class GenerationBackend(ABC):
    """Abstract base class for generation backends.

    Backends keep the conversational context of the current chat (previous
    prompts and replies); :meth:`reset` clears it.

    Supports async context manager protocol for proper resource cleanup:
        async with backend:
            async for fragment in backend.generate("Hi"):
                print(fragment, end="")
    """

    def __init__(self, system_prompt: str | None = None, max_context_messages: int = 50):
        self._system_prompt = system_prompt
        self._max_context_messages = max_context_messages
        self._context: list[ChatMessage] = []

    @abstractmethod
    def generate(
        self,
        prompt: str,
        cancellation: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        """Stream the reply to a prompt as text fragments.

        The sequence is finite. Implementations check ``cancellation`` at
        every fragment boundary and stop without yielding further fragments
        once it is set.

        Args:
            prompt: The user's prompt
            cancellation: Token signalled when the caller gives up

        Returns:
            Async iterator of text fragments

        Raises:
            BackendUnavailableError: If no model is loaded
            GenerationError: If the engine fails mid-stream
        """

    @abstractmethod
    async def cancel(self) -> None:
        """Best-effort request to stop the running generation promptly."""

    @abstractmethod
    async def load(self, model: str) -> None:
        """Load a model (a file path or model name, depending on the engine)."""

    @abstractmethod
    async def unload(self) -> None:
        """Release the loaded model."""

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Check if a model is ready to generate."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    @property
    def context(self) -> tuple[ChatMessage, ...]:
        """Conversational context sent along with the next prompt."""
        return tuple(self._context)

    async def reset(self) -> None:
        """Clear any conversational context held by the backend."""
        self._context.clear()

    async def close(self) -> None:
        """Release resources held by the backend."""
        await self.unload()

    def _build_messages(self, prompt: str) -> list[ChatMessage]:
        messages = []
        if self._system_prompt:
            messages.append(ChatMessage(role="system", content=self._system_prompt))
        messages.extend(self._context)
        messages.append(ChatMessage(role="user", content=prompt))
        return messages

    def _remember(self, prompt: str, reply: str) -> None:
        """Record a completed exchange in the conversational context."""
        self._context.append(ChatMessage(role="user", content=prompt))
        self._context.append(ChatMessage(role="assistant", content=reply))
        if len(self._context) > self._max_context_messages:
            self._context = self._context[-self._max_context_messages:]

    async def __aenter__(self) -> "GenerationBackend":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
