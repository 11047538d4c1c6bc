"""
store.py - Key-value persistence for per-installation settings

Holds the few things the app keeps between runs: template zones, the
uploaded background, the company profile, quote drafts and the generation
history. Everything sits in one JSON object file (like browser localStorage),
so a store is trivially swapped for MemoryStore in tests.
"""

import copy
import json
import os
import logging
import tempfile
import threading
from typing import Any, Optional

log = logging.getLogger("decoupe.store")


class KeyValueStore:
    """Capability: get / set / delete JSON-serialisable values by key."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[dict] = None):
        self._data = copy.deepcopy(initial) if initial else {}

    def get(self, key, default=None):
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key, value):
        self._data[key] = copy.deepcopy(value)

    def delete(self, key):
        return self._data.pop(key, None) is not None


class JsonFileStore(KeyValueStore):
    """Single JSON object on disk. Last write wins; writes are atomic replaces."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    def _read(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            log.warning("Store %s is corrupt (%s), treating as empty", self.path, e)
            return {}
        if not isinstance(data, dict):
            log.warning("Store %s does not hold an object, treating as empty", self.path)
            return {}
        return data

    def _write(self, data: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(prefix=".store-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def get(self, key, default=None):
        return self._read().get(key, default)

    def set(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key):
        with self._lock:
            data = self._read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
            return True


def default_store() -> JsonFileStore:
    """File store under the current DATA_DIR."""
    from decoupe.core.paths import settings_path
    return JsonFileStore(settings_path())
