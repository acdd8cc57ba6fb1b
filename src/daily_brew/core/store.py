"""
Key-Value Persistence.

The engine persists two JSON blobs per user: the learned taste and the
focus-mode expiry. Stores only guarantee last-write-wins; callers treat any
PersistenceError as non-fatal and fall back to in-memory state.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .errors import PersistenceError
from .logging import get_logger

logger = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class KeyValueStore(Protocol):
    """Minimal get/set contract for JSON-serializable blobs."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """
    In-process store.

    Values are round-tripped through JSON so callers see the same
    serialization failures a file-backed store would raise.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(key, "read", f"corrupt JSON: {e}") from e

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, "write", str(e)) from e

    def set_raw(self, key: str, raw: str) -> None:
        """Store an unparsed string (used to simulate corrupt state)."""
        self._data[key] = raw

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """
    One JSON file per key under a state directory.

    Writes go to a temporary file and are atomically renamed into place.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key).strip("_") or "blob"
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Any | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError
            raise PersistenceError(key, "read", f"corrupt JSON in {path.name}: {e}") from e
        except OSError as e:
            raise PersistenceError(key, "read", str(e)) from e

    def set(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        try:
            payload = json.dumps(value, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, "write", str(e)) from e

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(key, "write", str(e)) from e

        logger.debug("Persisted %s (%d bytes)", key, len(payload))
