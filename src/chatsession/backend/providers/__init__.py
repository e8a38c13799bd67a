from .llama_cpp import LlamaCppBackend
from .openai import OpenAICompatibleBackend

__all__ = ["LlamaCppBackend", "OpenAICompatibleBackend"]
