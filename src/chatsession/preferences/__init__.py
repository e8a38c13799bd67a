"""User preferences: display names, model selection and first-launch flag."""

from .base import PreferencesStore
from .models import (
    ASSISTANT_NAME_KEY,
    FIRST_LAUNCH_KEY,
    HISTORY_DIR_KEY,
    MODEL_PATH_KEY,
    STRING_KEYS,
    USER_NAME_KEY,
    Preferences,
)
from .store import InMemoryPreferencesStore, JsonPreferencesStore


def load_preferences(store: PreferencesStore) -> Preferences:
    """Read typed preferences from a store, applying defaults."""
    defaults = Preferences()
    return Preferences(
        user_name=store.get(USER_NAME_KEY, defaults.user_name) or defaults.user_name,
        assistant_name=store.get(ASSISTANT_NAME_KEY, defaults.assistant_name) or defaults.assistant_name,
        model_path=store.get(MODEL_PATH_KEY, ""),
        history_dir=store.get(HISTORY_DIR_KEY, ""),
        is_first_launch=store.get_bool(FIRST_LAUNCH_KEY, True),
    )


def save_preferences(store: PreferencesStore, prefs: Preferences) -> None:
    """Write preferences back; saving completes the first launch."""
    store.update({
        USER_NAME_KEY: prefs.user_name,
        ASSISTANT_NAME_KEY: prefs.assistant_name,
        MODEL_PATH_KEY: prefs.model_path,
        HISTORY_DIR_KEY: prefs.history_dir,
        FIRST_LAUNCH_KEY: "false",
    })


__all__ = [
    "ASSISTANT_NAME_KEY",
    "FIRST_LAUNCH_KEY",
    "HISTORY_DIR_KEY",
    "InMemoryPreferencesStore",
    "JsonPreferencesStore",
    "MODEL_PATH_KEY",
    "Preferences",
    "PreferencesStore",
    "STRING_KEYS",
    "USER_NAME_KEY",
    "load_preferences",
    "save_preferences",
]
