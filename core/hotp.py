"""
HOTP (HMAC-based One-Time Password) implementation following RFC 4226.

Produces codes identical to Google Authenticator and FreeOTP in counter mode.
"""

import hashlib
import hmac
import struct
from typing import Union

from core.utils import coerce_seed

MAX_COUNTER = 2**64 - 1
DEFAULT_DIGITS = 6


def generate_hotp(
    secret_bytes: bytes,
    counter: int,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """
    Generate an HOTP code.

    Args:
        secret_bytes: Raw decoded secret bytes.
        counter:      Synchronisation counter value (unsigned 64-bit).
        digits:       Number of OTP digits (6 or 8).

    Returns:
        Zero-padded OTP string.

    Raises:
        ValueError: If ``counter`` does not fit in 8 unsigned bytes.
    """
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError(f"Counter out of range: {counter}")
    msg = struct.pack(">Q", counter)
    digest = hmac.new(secret_bytes, msg, hashlib.sha1).digest()

    # Dynamic truncation (RFC 4226 §5.3)
    offset = digest[-1] & 0x0F
    code = (
        (digest[offset] & 0x7F) << 24
        | (digest[offset + 1] & 0xFF) << 16
        | (digest[offset + 2] & 0xFF) << 8
        | (digest[offset + 3] & 0xFF)
    )
    otp = code % (10**digits)
    return str(otp).zfill(digits)


def compute(seed: Union[bytes, str], counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """
    Return the code for ``seed`` at ``counter``.

    ``seed`` may be raw bytes or its base32 text form.

    Raises:
        InvalidSeed: If the seed is empty or not valid base32.
    """
    return generate_hotp(coerce_seed(seed), counter, digits)


def codes_equal(a: str, b: str) -> bool:
    """Return True if *a* == *b* in constant time (timing-safe)."""
    return hmac.compare_digest(a.encode(), b.encode())
