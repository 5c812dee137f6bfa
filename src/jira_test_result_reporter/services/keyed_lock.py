"""
Registry of per-key locks.

Each key gets its own lock object, created on first use and shared by every
caller asking for an equal key. Entries are reference counted and dropped once
no thread holds or waits for them, so the registry does not grow with the
number of distinct tests ever seen.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockRegistry:
    """Mutual exclusion per hashable key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def _acquire_entry(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            return entry

    def _release_entry(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the lock for key for the duration of the with-block.

        Args:
            key: Lock key (equal keys share one lock)
            timeout: Seconds to wait; None waits indefinitely

        Raises:
            TimeoutError: If the lock could not be acquired within timeout
        """
        entry = self._acquire_entry(key)
        try:
            acquired = entry.lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise TimeoutError(f"Timed out waiting for lock {key!r}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._release_entry(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
