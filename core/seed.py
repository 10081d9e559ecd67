"""
Shared-secret generation for new enrollments.
"""

import secrets

from core.errors import InsufficientEntropy
from core.utils import encode_secret

DEFAULT_SEED_BYTES = 10  # 16 base32 characters


class SeedGenerator:
    """Produces random HOTP seeds from the OS CSPRNG."""

    def __init__(self, byte_length: int = DEFAULT_SEED_BYTES) -> None:
        if byte_length < 1:
            raise ValueError("byte_length must be positive.")
        self.byte_length = byte_length

    def generate(self) -> bytes:
        """
        Return ``byte_length`` random bytes.

        Raises:
            InsufficientEntropy: If the platform random source fails.
        """
        try:
            return secrets.token_bytes(self.byte_length)
        except (OSError, NotImplementedError) as exc:
            raise InsufficientEntropy("Random source unavailable.") from exc


def seed_to_text(seed: bytes) -> str:
    """Base32 form shown to the user during enrollment."""
    return encode_secret(seed)
