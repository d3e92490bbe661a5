"""Per-patch serialization of mutating operations."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class PatchLocks:
    """Hands out one re-entrant lock per patch id.

    Two operations on the same patch never interleave; operations on
    different patches proceed in parallel.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, patch_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(patch_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[patch_id] = lock
            return lock

    @contextmanager
    def hold(self, patch_id: str) -> Iterator[None]:
        lock = self.lock_for(patch_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
