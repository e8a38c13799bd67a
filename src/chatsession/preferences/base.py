"""Abstract key/value preference storage."""

from abc import ABC, abstractmethod

_TRUE_VALUES = {"1", "true", "yes", "on"}


class PreferencesStore(ABC):
    """String key/value storage for user preferences."""

    @abstractmethod
    def get(self, key: str, default: str = "") -> str:
        """Get a string value, or ``default`` if unset."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Set a string value."""

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get(key, "")
        if raw == "":
            return default
        return raw.strip().lower() in _TRUE_VALUES

    def set_bool(self, key: str, value: bool) -> None:
        self.set(key, "true" if value else "false")

    def update(self, values: dict[str, str]) -> None:
        """Set several values at once."""
        for key, value in values.items():
            self.set(key, value)
