"""Configuration constants.

Centralizes defaults and environment variable names for the package.
"""

from pathlib import Path


class LogLevel:
    """Log level constants with numeric values for comparison.

    Standard logging hierarchy: DEBUG < INFO < WARNING < ERROR
    Lower numeric value = more verbose (shows more messages).
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    _from_string = {
        "debug": DEBUG,
        "info": INFO,
        "warning": WARNING,
        "error": ERROR,
    }

    @classmethod
    def from_string(cls, level_str: str) -> int:
        """Convert string to log level. Returns WARNING if invalid."""
        return cls._from_string.get(level_str.strip().lower(), cls.WARNING)


# Environment variables
ENV_BACKEND = "CHATSESSION_BACKEND"
ENV_BASE_URL = "CHATSESSION_BASE_URL"
ENV_API_KEY = "CHATSESSION_API_KEY"
ENV_MODEL = "CHATSESSION_MODEL"
ENV_DATA_DIR = "CHATSESSION_DATA_DIR"
ENV_LOG_LEVEL = "CHATSESSION_LOG_LEVEL"
ENV_SYSTEM_PROMPT = "CHATSESSION_SYSTEM_PROMPT"

# Defaults
DEFAULT_BACKEND = "openai"
DEFAULT_DATA_DIR = Path.home() / ".chatsession"
DEFAULT_LOG_LEVEL = "warning"

# File names inside the data directory
PREFERENCES_FILENAME = "preferences.json"
HISTORY_FILENAME = "chat_history.json"

# Backend context configuration
CONTEXT_SIZE = 8192  # Tokens of context for in-process models
MAX_CONTEXT_MESSAGES = 50  # Previous messages sent back as context

# History display configuration
HISTORY_PREVIEW_LENGTH = 60  # Characters of the first prompt shown in listings
HISTORY_DATE_FORMAT = "%b %d, %I:%M %p"
