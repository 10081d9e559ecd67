"""
Utility helpers for the HOTP core.
"""

import base64
import binascii
import re
import unicodedata
from typing import Union

from core.errors import InvalidSeed


# ── Base32 ────────────────────────────────────────────────────────────────────

def normalize_secret(secret: str) -> str:
    """
    Normalise a base32 secret: strip spaces, uppercase, add padding.

    Args:
        secret: Raw user-supplied secret string.

    Returns:
        Uppercase base32 string with correct padding.

    Raises:
        InvalidSeed: If the string is empty or contains invalid base32
            characters.
    """
    secret = secret.strip().upper().replace(" ", "").replace("-", "")
    # Base32 alphabet: A-Z and 2-7
    if not re.fullmatch(r"[A-Z2-7]+=*", secret):
        raise InvalidSeed("Secret contains invalid base32 characters.")
    # Pad to multiple of 8
    pad = (8 - len(secret) % 8) % 8
    return secret + "=" * pad


def decode_secret(secret: str) -> bytes:
    """
    Decode a base32-encoded secret string to raw bytes.

    Raises:
        InvalidSeed: On invalid base32 input.
    """
    try:
        return base64.b32decode(normalize_secret(secret), casefold=True)
    except binascii.Error as exc:
        raise InvalidSeed(f"Invalid base32 secret: {exc}") from exc


def encode_secret(raw: bytes) -> str:
    """Encode raw bytes as a base32 string (no padding)."""
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def coerce_seed(seed: Union[bytes, str]) -> bytes:
    """Accept a seed as raw bytes or base32 text; return non-empty raw bytes."""
    raw = decode_secret(seed) if isinstance(seed, str) else bytes(seed)
    if not raw:
        raise InvalidSeed("Seed must not be empty.")
    return raw


# ── Codes ─────────────────────────────────────────────────────────────────────

def normalize_code(code: str) -> str:
    """Strip whitespace a user may type between digit groups (``123 456``)."""
    return "".join(str(code).split())


def is_well_formed_code(code: str, digits: int) -> bool:
    return len(code) == digits and code.isascii() and code.isdigit()


# ── Labels ────────────────────────────────────────────────────────────────────

def sanitise_label(text: str) -> str:
    """Remove control characters and limit label length."""
    text = unicodedata.normalize("NFC", text)
    text = "".join(ch for ch in text if unicodedata.category(ch)[0] != "C")
    return text[:128].strip()


# ── Validation ────────────────────────────────────────────────────────────────

def validate_digits(digits: int) -> None:
    if digits not in (6, 8):
        raise ValueError("Digits must be 6 or 8.")
