"""
HOTP validation for enrollment and login.

:class:`Validator` ties together the resync search, replay guard and counter
store.  One attempt runs as::

    load record -> resync -> matched?  -> already accepted? -> commit / replay
                             no match? -> old accepted code? -> replay / invalid

The load-check-commit sequence runs under a per-account lock and commits with
a compare-and-swap on the stored counter, so two concurrent attempts can never
both consume the same counter.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Union

from core.config import ValidatorConfig
from core.errors import StoreUnavailable
from core.locks import AccountLocks
from core.replay import ReplayGuard
from core.resync import Resynchronizer
from core.seed import SeedGenerator
from core.utils import coerce_seed
from provisioning.uri import account_label, build_otpauth_uri
from storage.base import AccountRecord, CounterStore

logger = logging.getLogger(__name__)

INITIAL_COUNTER = 1

MSG_INVALID_CODE = "Invalid application code. Please try again."
MSG_REPLAY = "Invalid code, it was recently used for a login. Please try a new code."


class ValidationStatus(str, Enum):
    """Outcome of one validation attempt."""

    ACCEPTED = "accepted"
    INVALID_CODE = "invalid_code"
    REPLAY = "replay"


@dataclass(frozen=True)
class ValidationResult:
    status: ValidationStatus
    new_counter: Optional[int] = None      # set only when accepted
    matched_counter: Optional[int] = None  # counter the code belonged to

    @classmethod
    def accepted_at(cls, counter: int) -> "ValidationResult":
        return cls(ValidationStatus.ACCEPTED, new_counter=counter + 1, matched_counter=counter)

    @classmethod
    def invalid(cls) -> "ValidationResult":
        return cls(ValidationStatus.INVALID_CODE)

    @classmethod
    def replay(cls, counter: int) -> "ValidationResult":
        return cls(ValidationStatus.REPLAY, matched_counter=counter)

    @property
    def accepted(self) -> bool:
        return self.status is ValidationStatus.ACCEPTED

    @property
    def message(self) -> str:
        """End-user text for a rejection (empty when accepted)."""
        if self.status is ValidationStatus.REPLAY:
            return MSG_REPLAY
        if self.status is ValidationStatus.INVALID_CODE:
            return MSG_INVALID_CODE
        return ""


class Validator:
    """Validates HOTP codes against the counter state held in a store."""

    def __init__(
        self,
        store: CounterStore,
        config: Optional[ValidatorConfig] = None,
        seed_generator: Optional[SeedGenerator] = None,
        locks: Optional[AccountLocks] = None,
    ) -> None:
        """
        Args:
            store:          Counter/replay state backend.
            config:         Tunables; defaults to :class:`ValidatorConfig()`.
            seed_generator: Override for tests; built from ``config`` if None.
            locks:          Share one :class:`AccountLocks` between validators
                            that use the same store in one process.
        """
        self.config = config or ValidatorConfig()
        self._store = store
        self._resync = Resynchronizer(self.config.window_size, self.config.digits)
        self._guard = ReplayGuard(self.config.history, self.config.digits)
        self._seeds = seed_generator or SeedGenerator(self.config.seed_byte_length)
        self._locks = locks or AccountLocks()

    # ── Enrollment ────────────────────────────────────────────────────────

    def generate_seed(self) -> bytes:
        """Return a fresh secret for a new enrollment."""
        return self._seeds.generate()

    def provisioning_uri(self, seed: Union[bytes, str], label: str, issuer: str = "") -> str:
        """``otpauth://hotp/`` URI for authenticator apps, counter starting at 1."""
        return build_otpauth_uri(
            label=account_label(label, self.config.name_prefix),
            secret=coerce_seed(seed),
            counter=INITIAL_COUNTER,
            issuer=issuer,
        )

    def confirm_first_code(
        self, account_id: str, seed: Union[bytes, str], submitted_code: str
    ) -> bool:
        """
        Check the first code from a newly provisioned app and enroll on success.

        The code is checked against a fresh counter of 1.  Nothing is written
        unless it matches; on a match the seed, the advanced counter and the
        consumed counter are stored together, replacing any earlier
        enrollment of ``account_id``.

        Raises:
            InvalidSeed:      If ``seed`` is unusable.
            StoreUnavailable: If the store write fails.
        """
        pending = AccountRecord(account_id, coerce_seed(seed), counter=INITIAL_COUNTER)
        with self._locks.hold(account_id):
            result, accepted = self._check(pending, submitted_code)
            if not result.accepted:
                logger.info("Enrollment code rejected for account %s", account_id)
                return False
            self._store.enroll(pending.advanced(result.new_counter, accepted))
        logger.info(
            "Enrolled account %s at counter %d", account_id, result.new_counter
        )
        return True

    # ── Login ─────────────────────────────────────────────────────────────

    def validate(self, account_id: str, submitted_code: str) -> ValidationResult:
        """
        Validate ``submitted_code`` for ``account_id`` and advance its counter.

        Returns:
            ACCEPTED with the new stored counter, INVALID_CODE, or REPLAY.
            Rejections leave the stored state unchanged.

        Raises:
            UnknownAccount:   No state for ``account_id``.
            InvalidSeed:      The stored seed is unusable.
            StoreUnavailable: The store failed, or the counter kept moving
                              under concurrent writers.
        """
        with self._locks.hold(account_id):
            for _ in range(self.config.max_commit_attempts):
                record = self._store.get(account_id)
                result, accepted = self._check(record, submitted_code)
                if not result.accepted:
                    logger.warning(
                        "HOTP %s for account %s (stored counter %d)",
                        result.status.value, account_id, record.counter,
                    )
                    return result
                if self._store.advance(account_id, record.counter, result.new_counter, accepted):
                    logger.info(
                        "HOTP accepted for account %s: counter %d -> %d",
                        account_id, record.counter, result.new_counter,
                    )
                    return result
                logger.info("Counter for account %s changed during validation, retrying", account_id)
        raise StoreUnavailable(
            f"Counter for account {account_id!r} kept changing; giving up."
        )

    # ── Internals ─────────────────────────────────────────────────────────

    def _check(
        self, record: AccountRecord, submitted_code: str
    ) -> Tuple[ValidationResult, FrozenSet[int]]:
        matched = self._resync.resync(record.seed, record.counter, submitted_code)
        if matched is None:
            replayed = self._guard.find_replayed(record.seed, record, submitted_code)
            if replayed is not None:
                return ValidationResult.replay(replayed), record.accepted
            return ValidationResult.invalid(), record.accepted
        if self._guard.is_already_accepted(record, matched):
            return ValidationResult.replay(matched), record.accepted
        return ValidationResult.accepted_at(matched), self._guard.mark_accepted(record, matched)
