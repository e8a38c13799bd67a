from typing import Any

from .base import GenerationBackend
from .providers import LlamaCppBackend, OpenAICompatibleBackend


def create_generation_backend(backend: str, **config: Any) -> GenerationBackend:
    """Create a generation backend instance.

    This factory function hides the instantiation logic for different engines.

    Args:
        backend: Backend type ('openai', 'llama_cpp')
        **config: Backend-specific configuration
            For OpenAI-compatible servers:
                - model: str (default: '' meaning nothing loaded)
                - api_key: str (default: placeholder key)
                - base_url: str (default: 'http://localhost:8080/v1')
                - system_prompt: str | None
            For llama.cpp:
                - model_path: str | None
                - n_ctx: int (default: 8192)
                - n_gpu_layers: int (default: 0)
                - system_prompt: str | None

    Returns:
        Initialized backend instance (models are loaded separately)

    Raises:
        ValueError: If backend type is not supported

    Examples:
        >>> backend = create_generation_backend(
        ...     "openai",
        ...     base_url="http://localhost:8080/v1",
        ...     model="qwen2.5-7b-instruct"
        ... )

        >>> backend = create_generation_backend("llama_cpp", n_ctx=4096)
    """
    backend_lower = backend.lower().replace("-", "_")

    if backend_lower in ("openai", "openai_compatible"):
        return OpenAICompatibleBackend(**config)

    if backend_lower in ("llama_cpp", "llamacpp", "llama"):
        return LlamaCppBackend(**config)

    raise ValueError(
        f"Unsupported backend: {backend}. "
        f"Supported backends: 'openai', 'llama_cpp'"
    )
