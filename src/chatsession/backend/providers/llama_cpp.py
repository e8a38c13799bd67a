"""In-process llama.cpp backend.

Runs GGUF models through llama-cpp-python. Token production is blocking, so
it happens on a worker thread; fragments are handed to the event loop through
an asyncio queue.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from ...cancellation import CancellationToken, raise_if_cancelled
from ...errors import BackendUnavailableError, GenerationError
from ..base import GenerationBackend

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_SIZE = 8192
MODEL_FILE_SUFFIX = ".gguf"

_DONE = object()


def validate_model_path(path: str) -> Path:
    """Check that a path points at a GGUF model file.

    Raises:
        ValueError: If the path does not end in .gguf
        FileNotFoundError: If the file does not exist
    """
    if not path or not path.lower().endswith(MODEL_FILE_SUFFIX):
        raise ValueError("Please select a .gguf file")
    model_file = Path(path).expanduser()
    if not model_file.is_file():
        raise FileNotFoundError(f"Model file not found: {model_file}")
    return model_file


def _get_llama_class() -> Any:
    """Lazy import of the Llama class."""
    try:
        from llama_cpp import Llama
    except ImportError as e:
        raise ImportError(
            "llama.cpp backend requires llama-cpp-python. "
            "Install with: pip install 'chatsession[llama]'"
        ) from e
    return Llama


class LlamaCppBackend(GenerationBackend):
    """llama.cpp backend using llama-cpp-python.

    Hidden design decisions:
    - Lazy import and loading of the native library
    - Chat template application (delegated to the GGUF metadata)
    - Thread hand-off between the blocking token loop and asyncio
    """

    def __init__(
        self,
        model_path: str | None = None,
        n_ctx: int = DEFAULT_CONTEXT_SIZE,
        n_gpu_layers: int = 0,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        max_context_messages: int = 50,
        **llama_kwargs: Any
    ):
        """Initialize the backend (the model is loaded by :meth:`load`).

        Args:
            model_path: Path of the GGUF model to load on first use
            n_ctx: Context window size in tokens
            n_gpu_layers: Layers to offload to the GPU
            system_prompt: Optional system instructions
            temperature: Sampling temperature
            max_tokens: Maximum tokens per reply
            max_context_messages: Previous messages kept as context
            **llama_kwargs: Additional kwargs for ``Llama``
        """
        super().__init__(system_prompt=system_prompt, max_context_messages=max_context_messages)
        self._model_path = model_path or ""
        self._n_ctx = n_ctx
        self._n_gpu_layers = n_gpu_layers
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._llama_kwargs = llama_kwargs
        self._model: Any = None
        self._stop_event: threading.Event | None = None
        self._worker: asyncio.Future | None = None

    @property
    def model_path(self) -> str:
        return self._model_path

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def backend_type(self) -> str:
        return "llama_cpp"

    async def load(self, model: str) -> None:
        """Load a GGUF model file.

        Raises:
            ValueError: If the path is not a .gguf file
            FileNotFoundError: If the file does not exist
            ImportError: If llama-cpp-python is not installed
        """
        model_file = validate_model_path(model)
        llama_class = _get_llama_class()

        await self.unload()
        logger.info("Loading model with llama.cpp: %s", model_file.name)
        self._model = await asyncio.to_thread(
            llama_class,
            model_path=str(model_file),
            n_ctx=self._n_ctx,
            n_gpu_layers=self._n_gpu_layers,
            verbose=False,
            **self._llama_kwargs
        )
        self._model_path = str(model_file)
        self._context.clear()
        logger.info("Model loaded successfully: %s", model_file.name)

    async def unload(self) -> None:
        await self.cancel()
        await self._wait_for_worker()
        if self._model is not None:
            logger.info("Unloading model: %s", Path(self._model_path).name)
        self._model = None
        self._context.clear()

    async def reset(self) -> None:
        """Clear chat context and the model's cached evaluation state."""
        await super().reset()
        await self._wait_for_worker()
        if self._model is not None:
            self._model.reset()

    async def cancel(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def _wait_for_worker(self) -> None:
        worker = self._worker
        if worker is None:
            return
        try:
            await worker
        except Exception as e:
            logger.debug("Previous generation worker ended with error: %s", e)
        finally:
            if self._worker is worker:
                self._worker = None

    def _produce(
        self,
        messages: list[dict[str, str]],
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue,
        stop_event: threading.Event,
        cancellation: CancellationToken | None,
    ) -> None:
        """Blocking token loop run on a worker thread."""

        def hand_off(item: Any) -> None:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # Event loop already closed; nobody is listening anymore
                stop_event.set()

        params: dict[str, Any] = {
            "messages": messages,
            "temperature": self._temperature,
            "stream": True,
        }
        if self._max_tokens is not None:
            params["max_tokens"] = self._max_tokens

        try:
            for chunk in self._model.create_chat_completion(**params):
                if stop_event.is_set() or (cancellation is not None and cancellation.cancelled):
                    break
                delta = chunk["choices"][0].get("delta", {})
                content = delta.get("content")
                if content:
                    hand_off(content)
        except Exception as e:
            hand_off(e)
        finally:
            hand_off(_DONE)

    async def generate(
        self,
        prompt: str,
        cancellation: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        """Stream a reply from the local model.

        Args:
            prompt: The user's prompt
            cancellation: Token checked before every fragment

        Yields:
            Text fragments as they are generated
        """
        if not self.is_loaded:
            raise BackendUnavailableError()
        raise_if_cancelled(cancellation)

        # The model is not reentrant: let a superseded run reach its end first
        await self._wait_for_worker()

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop_event = threading.Event()
        self._stop_event = stop_event

        messages = [
            {"role": msg.role, "content": msg.content}
            for msg in self._build_messages(prompt)
        ]
        self._worker = loop.run_in_executor(
            None, self._produce, messages, loop, queue, stop_event, cancellation
        )

        parts: list[str] = []
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                if isinstance(item, Exception):
                    raise GenerationError(str(item), item) from item
                if stop_event.is_set() or (cancellation is not None and cancellation.cancelled):
                    return
                parts.append(item)
                yield item
        finally:
            stop_event.set()
            if self._stop_event is stop_event:
                self._stop_event = None

        self._remember(prompt, "".join(parts))
