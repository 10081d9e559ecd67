"""
Counter resynchronisation.

An authenticator app advances its counter every time the user asks for a
code, while the server only advances on a successful login.  The server
therefore searches a bounded window of counters ahead of the stored one.
"""

import logging
from typing import Optional, Union

from core.hotp import DEFAULT_DIGITS, MAX_COUNTER, codes_equal, generate_hotp
from core.utils import coerce_seed, is_well_formed_code, normalize_code

logger = logging.getLogger(__name__)


def resync(
    seed: Union[bytes, str],
    stored_counter: int,
    submitted_code: str,
    window_size: int,
    digits: int = DEFAULT_DIGITS,
) -> Optional[int]:
    """
    Find the counter a submitted code was generated for.

    Counters ``stored_counter .. stored_counter + window_size`` are tried in
    ascending order.

    Args:
        seed:           Shared secret (raw bytes or base32 text).
        stored_counter: Next counter the server expects.
        submitted_code: Code typed by the user.
        window_size:    How far past ``stored_counter`` to look.
        digits:         Expected OTP length.

    Returns:
        The first matching counter, or None if the window holds no match.

    Raises:
        InvalidSeed: If the seed is unusable.
        ValueError:  If ``stored_counter`` or ``window_size`` is negative.
    """
    if window_size < 0:
        raise ValueError("window_size must be non-negative.")
    if stored_counter < 0:
        raise ValueError("stored_counter must be non-negative.")
    secret_bytes = coerce_seed(seed)
    token = normalize_code(submitted_code)
    if not is_well_formed_code(token, digits):
        return None

    last = min(stored_counter + window_size, MAX_COUNTER)
    for counter in range(stored_counter, last + 1):
        if codes_equal(token, generate_hotp(secret_bytes, counter, digits)):
            if counter != stored_counter:
                logger.debug("Resynchronised %d step(s) ahead", counter - stored_counter)
            return counter
    return None


class Resynchronizer:
    """:func:`resync` bound to a fixed window and code length."""

    def __init__(self, window_size: int, digits: int = DEFAULT_DIGITS) -> None:
        if window_size < 0:
            raise ValueError("window_size must be non-negative.")
        self.window_size = window_size
        self.digits = digits

    def resync(
        self, seed: Union[bytes, str], stored_counter: int, submitted_code: str
    ) -> Optional[int]:
        return resync(seed, stored_counter, submitted_code, self.window_size, self.digits)
