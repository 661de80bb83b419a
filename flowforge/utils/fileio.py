"""JSON file persistence helpers shared by the stores."""

from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict

from .exceptions import StorageError


def atomic_write_json(path: Path, payload: Dict[str, Any]) -> None:
    """Atomically write JSON to the target path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", dir=str(path.parent), delete=False, encoding="utf-8"
    ) as tf:
        json.dump(payload, tf, indent=2, ensure_ascii=False, default=str)
        temp_path = Path(tf.name)
    try:
        shutil.move(str(temp_path), str(path))
    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise StorageError(f"Failed to save {path}: {str(e)}")


def read_json(path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
    """
    Read a JSON object from path.

    A missing file yields `default`. A corrupt file raises StorageError so a
    store never silently starts from empty and forgets revocations.
    """
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise StorageError(f"Failed to load {path}: {str(e)}")
    if not isinstance(data, dict):
        raise StorageError(f"Failed to load {path}: expected a JSON object")
    return data
