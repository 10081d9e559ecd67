"""
Process-local counter store, used in tests and single-process deployments.
"""

import threading
from typing import Dict, FrozenSet

from core.errors import UnknownAccount
from storage.base import AccountRecord, CounterStore


class InMemoryCounterStore(CounterStore):
    """Thread-safe dict-backed store."""

    def __init__(self) -> None:
        self._records: Dict[str, AccountRecord] = {}
        self._lock = threading.Lock()

    def get(self, account_id: str) -> AccountRecord:
        with self._lock:
            try:
                return self._records[account_id]
            except KeyError:
                raise UnknownAccount(account_id) from None

    def enroll(self, record: AccountRecord) -> None:
        with self._lock:
            self._records[record.account_id] = record

    def advance(
        self,
        account_id: str,
        expected_counter: int,
        new_counter: int,
        accepted: FrozenSet[int],
    ) -> bool:
        with self._lock:
            record = self._records.get(account_id)
            if record is None:
                raise UnknownAccount(account_id)
            if record.counter != expected_counter:
                return False
            self._records[account_id] = record.advanced(new_counter, accepted)
            return True

    def delete(self, account_id: str) -> None:
        with self._lock:
            self._records.pop(account_id, None)

    def __contains__(self, account_id: str) -> bool:
        with self._lock:
            return account_id in self._records
