"""
Shared client-local storage.

Plays the part of a browser profile's localStorage: a small string key/value
file that every client of the same profile directory reads and writes.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Optional

from ..core.locks import acquire_lock
from ..utils.fileio import atomic_write_json, read_json

STORAGE_FILE_NAME = "local_storage.json"


class SharedStorage:
    """String key/value store backed by <profile_dir>/local_storage.json."""

    def __init__(self, profile_dir: Path):
        self.profile_dir = Path(profile_dir)
        self.path = self.profile_dir / STORAGE_FILE_NAME
        self.lock_dir = self.profile_dir / "locks"
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        raw = read_json(self.path, {"items": {}})
        items = raw.get("items") or {}
        return {str(k): str(v) for k, v in items.items()}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            with acquire_lock(self.lock_dir, "lock:local_storage"):
                items = self._load()
                items[key] = value
                atomic_write_json(self.path, {"items": items})

    def remove(self, key: str) -> None:
        with self._lock:
            with acquire_lock(self.lock_dir, "lock:local_storage"):
                items = self._load()
                if items.pop(key, None) is not None:
                    atomic_write_json(self.path, {"items": items})
