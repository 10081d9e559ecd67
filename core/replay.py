"""
Replay protection.

Every accepted counter is remembered (up to ``history`` values below the
current counter) so that a resubmitted code is reported as already used
instead of simply wrong, and so a counter can never be accepted twice even if
the stored counter is rewound by re-enrollment or a restore.
"""

from typing import FrozenSet, Optional, Union

from core.hotp import DEFAULT_DIGITS, codes_equal, generate_hotp
from core.utils import coerce_seed, is_well_formed_code, normalize_code
from storage.base import AccountRecord


class ReplayGuard:
    """Decides and records at-most-once acceptance per (account, counter)."""

    def __init__(self, history: int, digits: int = DEFAULT_DIGITS) -> None:
        """
        Args:
            history: Number of accepted counters to keep per account.
            digits:  OTP length, used when matching resubmitted codes.
        """
        if history < 1:
            raise ValueError("history must be at least 1.")
        self.history = history
        self.digits = digits

    def is_already_accepted(self, record: AccountRecord, counter: int) -> bool:
        return counter in record.accepted

    def mark_accepted(self, record: AccountRecord, counter: int) -> FrozenSet[int]:
        """
        Return the accepted set to commit after accepting ``counter``.

        Values older than ``history`` steps behind the new stored counter
        (``counter + 1``) are dropped.
        """
        floor = counter + 1 - self.history
        return frozenset(c for c in record.accepted | {counter} if c >= floor)

    def find_replayed(
        self, seed: Union[bytes, str], record: AccountRecord, submitted_code: str
    ) -> Optional[int]:
        """Return the already-accepted counter ``submitted_code`` belongs to, if any."""
        token = normalize_code(submitted_code)
        if not record.accepted or not is_well_formed_code(token, self.digits):
            return None
        secret_bytes = coerce_seed(seed)
        for counter in sorted(record.accepted, reverse=True):
            if codes_equal(token, generate_hotp(secret_bytes, counter, self.digits)):
                return counter
        return None
