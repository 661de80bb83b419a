"""
Cross-process locking for the JSON-backed stores.

Keys: lock:sessions, lock:users, etc.
Uses O_CREAT|O_EXCL lock files so several server workers sharing a data
directory serialise their read-modify-write cycles. In-process callers still
take the store's RLock first; this lock only orders separate processes.
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

LOCK_TIMEOUT_SECONDS = 10
LOCK_POLL_INTERVAL = 0.02
# A lock file older than this is treated as left behind by a crashed process
STALE_LOCK_SECONDS = 30


def lock_path(lock_dir: Path, key: str) -> Path:
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
    return lock_dir / f"{safe}.lock"


def _is_stale(path: Path) -> bool:
    try:
        return (time.time() - path.stat().st_mtime) > STALE_LOCK_SECONDS
    except FileNotFoundError:
        return False


@contextmanager
def acquire_lock(
    lock_dir: Path, key: str, timeout_seconds: float = LOCK_TIMEOUT_SECONDS
) -> Generator[None, None, None]:
    """
    Acquire a named lock (e.g. lock:sessions).
    Blocks until acquired or raises TimeoutError.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    path = lock_path(lock_dir, key)
    start = time.monotonic()
    while True:
        try:
            fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if _is_stale(path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass
                continue
            if (time.monotonic() - start) >= timeout_seconds:
                raise TimeoutError(f"Could not acquire lock {key} within {timeout_seconds}s")
            time.sleep(LOCK_POLL_INTERVAL)
            continue
        try:
            os.write(fd, str(os.getpid()).encode())
        finally:
            os.close(fd)
        break

    try:
        yield
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
