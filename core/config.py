"""
Validator configuration.

Passed explicitly to :class:`core.validator.Validator`; there is no global
settings object.
"""

import os
from dataclasses import dataclass
from typing import Optional

from core.utils import validate_digits


@dataclass(frozen=True)
class ValidatorConfig:
    """
    Tunables for HOTP validation.

    Attributes:
        window_size:         Number of counters searched past the stored
                             counter.  A larger window tolerates more codes
                             generated on the device without being used, but
                             each extra counter is one more code an attacker's
                             guess can hit (roughly ``(window + 1) / 10**digits``
                             per attempt).
        seed_byte_length:    Size of generated secrets (10 bytes = 16 base32
                             characters).
        digits:              OTP length.
        replay_history:      How many accepted counters are remembered for
                             replay detection.  Defaults to ``window_size + 1``.
        max_commit_attempts: Retries when another writer advanced the counter
                             between read and commit.
        name_prefix:         Prepended to account labels in provisioning URIs.
    """

    window_size: int = 10
    seed_byte_length: int = 10
    digits: int = 6
    replay_history: Optional[int] = None
    max_commit_attempts: int = 3
    name_prefix: str = ""

    def __post_init__(self) -> None:
        if self.window_size < 0:
            raise ValueError("window_size must be non-negative.")
        if self.seed_byte_length < 10:
            raise ValueError("seed_byte_length must be at least 10 bytes.")
        validate_digits(self.digits)
        if self.replay_history is not None and self.replay_history < 1:
            raise ValueError("replay_history must be at least 1.")
        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1.")

    @property
    def history(self) -> int:
        """Effective number of accepted counters kept for replay checks."""
        if self.replay_history is None:
            return self.window_size + 1
        return self.replay_history

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ValidatorConfig":
        """
        Build a config from ``HOTP_*`` environment variables.

        Recognised: ``HOTP_WINDOW_SIZE``, ``HOTP_SEED_BYTES``,
        ``HOTP_NAME_PREFIX``.  Unset variables keep the defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        try:
            if "HOTP_WINDOW_SIZE" in env:
                kwargs["window_size"] = int(env["HOTP_WINDOW_SIZE"])
            if "HOTP_SEED_BYTES" in env:
                kwargs["seed_byte_length"] = int(env["HOTP_SEED_BYTES"])
        except ValueError as exc:
            raise ValueError(f"Invalid HOTP configuration: {exc}") from exc
        if "HOTP_NAME_PREFIX" in env:
            kwargs["name_prefix"] = env["HOTP_NAME_PREFIX"]
        return cls(**kwargs)
