"""
Per-account mutual exclusion.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class AccountLocks:
    """
    Hands out one :class:`threading.Lock` per account id.

    An entry lives only while some thread holds or waits for it, so ids that
    are never seen again (typos, unknown accounts) leave nothing behind.
    """

    def __init__(self) -> None:
        # account_id -> [lock, number of holders + waiters]
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, account_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(account_id)
            if entry is None:
                entry = self._locks[account_id] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, account_id: str) -> None:
        with self._guard:
            entry = self._locks[account_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[account_id]

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        lock = self._acquire_entry(account_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(account_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
