"""Preference store backends."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ..errors import PersistenceError
from .base import PreferencesStore

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES_FILENAME = "preferences.json"


class InMemoryPreferencesStore(PreferencesStore):
    """Dict-backed preferences, lost when the process exits."""

    def __init__(self, values: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(values or {})

    def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonPreferencesStore(PreferencesStore):
    """Preferences kept in a flat JSON object on disk.

    The file is read once and rewritten whole on every change.
    """

    def __init__(self, path: str | Path = DEFAULT_PREFERENCES_FILENAME):
        self._path = Path(path)
        self._values: dict[str, str] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring preferences file %s: expected a JSON object", self._path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(self._values, fh, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save preferences: {e}", str(self._path)) from e

    def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._write()

    def update(self, values: dict[str, str]) -> None:
        self._values.update(values)
        self._write()
