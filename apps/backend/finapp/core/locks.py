from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Hashable, Iterator


class LockTable:
    """Process-local set of in-flight keys with non-blocking acquisition.

    ``try_acquire`` inserts the key if absent and reports whether it did;
    callers never wait on a held key. Nothing is persisted, so a restart
    simply starts with an empty table.
    """

    def __init__(self, name: str = "locks") -> None:
        self.name = name
        self._held: set[Hashable] = set()
        self._guard = Lock()

    def try_acquire(self, key: Hashable) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._guard:
            self._held.discard(key)

    def is_held(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._held

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[bool]:
        """Yield whether ``key`` was acquired; release it on every exit path."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._held)

    def __repr__(self) -> str:
        return f"LockTable(name={self.name!r}, held={len(self)})"
