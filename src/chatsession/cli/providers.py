"""Provider factory functions for CLI.

Centralizes creation of preferences, history store, backend and session
instances from environment variables. Hides configuration details from
command implementations.
"""

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from ..backend import GenerationBackend, create_generation_backend
from ..config import (
    CONTEXT_SIZE,
    DEFAULT_BACKEND,
    DEFAULT_DATA_DIR,
    DEFAULT_LOG_LEVEL,
    ENV_API_KEY,
    ENV_BACKEND,
    ENV_BASE_URL,
    ENV_DATA_DIR,
    ENV_LOG_LEVEL,
    ENV_MODEL,
    ENV_SYSTEM_PROMPT,
    HISTORY_FILENAME,
    MAX_CONTEXT_MESSAGES,
    PREFERENCES_FILENAME,
    LogLevel,
)
from ..history import HistoryStore, create_history_store
from ..preferences import JsonPreferencesStore, Preferences, load_preferences

# Default console for output
_console = Console()


def configure_logging(level: str | None = None, console: Console | None = None) -> None:
    """Route package logs through Rich.

    Environment variables:
        CHATSESSION_LOG_LEVEL: debug, info, warning or error (default: warning)
    """
    level_name = level or os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    package_logger = logging.getLogger("chatsession")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(LogLevel.from_string(level_name))
    package_logger.propagate = False


def get_data_dir() -> Path:
    """Get the directory holding preferences and history.

    Environment variables:
        CHATSESSION_DATA_DIR: Data directory (default: ~/.chatsession)
    """
    configured = os.getenv(ENV_DATA_DIR)
    return Path(configured).expanduser() if configured else DEFAULT_DATA_DIR


def get_preferences_store() -> JsonPreferencesStore:
    """Create the JSON preferences store inside the data directory."""
    return JsonPreferencesStore(get_data_dir() / PREFERENCES_FILENAME)


def get_preferences() -> Preferences:
    """Load typed preferences from the data directory."""
    return load_preferences(get_preferences_store())


def get_history(prefs: Preferences | None = None) -> HistoryStore:
    """Create the JSON history store.

    The ``historyDir`` preference overrides the data directory.
    """
    prefs = prefs or get_preferences()
    history_dir = Path(prefs.history_dir).expanduser() if prefs.history_dir else get_data_dir()
    return create_history_store(
        "json",
        path=history_dir / HISTORY_FILENAME,
        identity=prefs.identity,
    )


def get_model(prefs: Preferences | None = None) -> str:
    """Get the model to load: CHATSESSION_MODEL, else the ``modelPath`` preference."""
    prefs = prefs or get_preferences()
    return os.getenv(ENV_MODEL) or prefs.model_path


def get_backend(console: Console | None = None) -> GenerationBackend | None:
    """Create a generation backend from environment variables.

    Args:
        console: Optional Rich console for output

    Returns:
        Backend instance (not yet loaded), or None if misconfigured

    Environment variables:
        CHATSESSION_BACKEND: Backend type (openai, llama_cpp; default: openai)
        CHATSESSION_BASE_URL: Server URL for openai backend
            (default: http://localhost:8080/v1)
        CHATSESSION_API_KEY / OPENAI_API_KEY: API key for openai backend
        CHATSESSION_SYSTEM_PROMPT: Optional system instructions
    """
    con = console or _console
    backend = os.getenv(ENV_BACKEND, DEFAULT_BACKEND).lower()
    system_prompt = os.getenv(ENV_SYSTEM_PROMPT) or None

    if backend == "openai":
        config: dict = {
            "system_prompt": system_prompt,
            "max_context_messages": MAX_CONTEXT_MESSAGES,
        }
        base_url = os.getenv(ENV_BASE_URL)
        if base_url:
            config["base_url"] = base_url
        api_key = os.getenv(ENV_API_KEY) or os.getenv("OPENAI_API_KEY")
        if api_key:
            config["api_key"] = api_key
        return create_generation_backend("openai", **config)

    elif backend in ("llama_cpp", "llama"):
        return create_generation_backend(
            "llama_cpp",
            n_ctx=CONTEXT_SIZE,
            system_prompt=system_prompt,
            max_context_messages=MAX_CONTEXT_MESSAGES,
        )

    else:
        con.print(f"[red]Error: Unknown backend: {backend}[/red]")
        return None


async def load_backend_model(
    backend: GenerationBackend,
    model: str,
    console: Console | None = None
) -> bool:
    """Load a model into the backend, reporting problems on the console.

    Returns:
        True if the backend is ready to generate
    """
    con = console or _console
    if not model:
        con.print("[yellow]Warning: no model configured. Run 'chatsession setup' "
                  "or set CHATSESSION_MODEL.[/yellow]")
        return False
    try:
        await backend.load(model)
    except (ValueError, FileNotFoundError, ImportError) as e:
        con.print(f"[red]Failed to load model: {e}[/red]")
        return False
    return True
