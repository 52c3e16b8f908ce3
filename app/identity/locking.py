"""Process-wide named locks used to serialise work on overlapping clusters."""
from __future__ import annotations

import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from app.identity.errors import LockTimeout


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    refs: int = 0


class KeyedLock:
    """Registry of mutexes keyed by string.

    ``hold`` acquires several keys in sorted order, so two callers asking
    for overlapping key sets can never deadlock.  Entries are dropped once
    nobody holds or waits on them.  Not reentrant.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, key: str, entry: _Entry, *, release: bool) -> None:
        with self._guard:
            if release:
                entry.lock.release()
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: float | None = None) -> Iterator[None]:
        deadline = None if timeout is None else time.monotonic() + timeout
        held: list[tuple[str, _Entry]] = []
        try:
            for key in sorted(set(keys)):
                entry = self._checkout(key)
                if deadline is None:
                    acquired = entry.lock.acquire()
                else:
                    acquired = entry.lock.acquire(timeout=max(deadline - time.monotonic(), 0.0))
                if not acquired:
                    self._checkin(key, entry, release=False)
                    raise LockTimeout(key, timeout or 0.0)
                held.append((key, entry))
            yield
        finally:
            for key, entry in reversed(held):
                self._checkin(key, entry, release=True)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
