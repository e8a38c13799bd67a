from .base import GenerationBackend
from .factory import create_generation_backend
from .models import ChatMessage
from .providers import LlamaCppBackend, OpenAICompatibleBackend

__all__ = [
    "GenerationBackend",
    "create_generation_backend",
    "ChatMessage",
    "LlamaCppBackend",
    "OpenAICompatibleBackend",
]
