"""
Storage interface consumed by the validator.

Adapters hand back already-decrypted seeds; encryption at rest is the
adapter's business (see :mod:`storage.database`).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import FrozenSet

from core.errors import StoreUnavailable


@dataclass(frozen=True)
class AccountRecord:
    """HOTP state of one enrolled account."""

    account_id: str
    seed: bytes = field(repr=False)
    counter: int = 1
    accepted: FrozenSet[int] = frozenset()

    def advanced(self, counter: int, accepted: FrozenSet[int]) -> "AccountRecord":
        return replace(self, counter=counter, accepted=frozenset(accepted))


class CounterStore(ABC):
    """
    Durable per-account mapping ``account_id -> (seed, counter, accepted)``.

    Implementations raise :class:`core.errors.UnknownAccount` for missing
    accounts and :class:`core.errors.StoreUnavailable` when the backend fails.
    """

    @abstractmethod
    def get(self, account_id: str) -> AccountRecord:
        """Return the full record for ``account_id``."""

    @abstractmethod
    def enroll(self, record: AccountRecord) -> None:
        """Create the record, or overwrite it on re-enrollment."""

    @abstractmethod
    def advance(
        self,
        account_id: str,
        expected_counter: int,
        new_counter: int,
        accepted: FrozenSet[int],
    ) -> bool:
        """
        Atomically replace counter and accepted set.

        The write only happens if the stored counter still equals
        ``expected_counter``; returns False otherwise.  Either both values
        are written or neither is.
        """

    @abstractmethod
    def delete(self, account_id: str) -> None:
        """Remove the account's HOTP state (no-op if absent)."""

    # ── Derived operations ────────────────────────────────────────────────

    def load(self, account_id: str) -> int:
        """Return the stored counter."""
        return self.get(account_id).counter

    def is_accepted(self, account_id: str, counter: int) -> bool:
        return counter in self.get(account_id).accepted

    def mark_accepted(self, account_id: str, counter: int, attempts: int = 3) -> None:
        """
        Record ``counter`` as consumed without moving the stored counter.

        Raises:
            StoreUnavailable: If the counter kept changing under other
                writers for ``attempts`` tries; nothing was recorded.
        """
        for _ in range(attempts):
            record = self.get(account_id)
            if counter in record.accepted:
                return
            if self.advance(
                account_id,
                record.counter,
                record.counter,
                record.accepted | {counter},
            ):
                return
        raise StoreUnavailable(
            f"Could not mark counter {counter} for account {account_id!r}."
        )
