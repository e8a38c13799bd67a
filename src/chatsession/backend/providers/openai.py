from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from ...cancellation import CancellationToken, raise_if_cancelled
from ...errors import BackendUnavailableError, GenerationError
from ..base import GenerationBackend

# llama.cpp's bundled server speaks the Chat Completions protocol here
DEFAULT_BASE_URL = "http://localhost:8080/v1"

# Local servers ignore the key, but the client refuses to start without one
PLACEHOLDER_API_KEY = "sk-no-key-required"


class OpenAICompatibleBackend(GenerationBackend):
    """Backend for any server exposing the OpenAI Chat Completions API.

    Hidden design decisions:
    - OpenAI API client initialization
    - Message format conversion
    - Stream handling and early termination
    - "Loading" a model means selecting the model name served remotely
    """

    def __init__(
        self,
        model: str = "",
        api_key: str = PLACEHOLDER_API_KEY,
        base_url: str | None = DEFAULT_BASE_URL,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        max_context_messages: int = 50,
        **client_kwargs: Any
    ):
        """Initialize the backend.

        Args:
            model: Model name to request (empty means nothing loaded)
            api_key: API key (placeholder is fine for local servers)
            base_url: Server base URL
            system_prompt: Optional system instructions prepended to each request
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate per reply
            max_context_messages: Previous messages kept as context
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        super().__init__(system_prompt=system_prompt, max_context_messages=max_context_messages)
        self._model = model.strip()
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = AsyncOpenAI(
            api_key=api_key or PLACEHOLDER_API_KEY,
            base_url=base_url,
            **client_kwargs
        )
        self._current_stream: Any = None

    @property
    def model(self) -> str:
        """Get the selected model name."""
        return self._model

    @property
    def is_loaded(self) -> bool:
        return bool(self._model)

    @property
    def backend_type(self) -> str:
        return "openai"

    async def load(self, model: str) -> None:
        """Select the model served by the remote endpoint."""
        if not model or not model.strip():
            raise ValueError("Model name must not be empty")
        self._model = model.strip()
        self._context.clear()

    async def unload(self) -> None:
        self._model = ""
        self._context.clear()

    async def generate(
        self,
        prompt: str,
        cancellation: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        """Stream a reply using Chat Completions.

        Args:
            prompt: The user's prompt
            cancellation: Token checked before every fragment

        Yields:
            Text fragments as they are generated
        """
        if not self.is_loaded:
            raise BackendUnavailableError()
        raise_if_cancelled(cancellation)

        openai_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in self._build_messages(prompt)
        ]

        # Build request params, only including max_tokens if set
        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": openai_messages,
            "temperature": self._temperature,
            "stream": True,
        }
        if self._max_tokens is not None:
            request_params["max_tokens"] = self._max_tokens

        try:
            stream = await self._client.chat.completions.create(**request_params)
        except OpenAIError as e:
            raise GenerationError(f"Request failed: {e}", e) from e

        self._current_stream = stream
        parts: list[str] = []
        try:
            async for chunk in stream:
                if cancellation is not None and cancellation.cancelled:
                    return
                if chunk.choices and chunk.choices[0].delta.content:
                    fragment = chunk.choices[0].delta.content
                    parts.append(fragment)
                    yield fragment
        except OpenAIError as e:
            raise GenerationError(f"Stream failed: {e}", e) from e
        finally:
            self._current_stream = None
            await stream.close()

        self._remember(prompt, "".join(parts))

    async def cancel(self) -> None:
        """Close the response stream so the server stops producing tokens."""
        stream = self._current_stream
        if stream is not None:
            await stream.close()

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()
