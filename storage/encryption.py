"""
Seed encryption at rest for :mod:`storage.database`.

Seeds are sealed with AES-256-GCM under a key stretched from the store
passphrase with PBKDF2-HMAC-SHA256.  Only the salt is persisted (in the
store's ``meta`` table); the key itself stays in memory.
"""

import base64
import hashlib
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

SALT_SIZE = 32
NONCE_SIZE = 12
KEY_SIZE = 32
PBKDF2_ITERATIONS = 480_000


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Stretch the store passphrase into an AES-256 key."""
    return hashlib.pbkdf2_hmac(
        "sha256", passphrase.encode("utf-8"), salt, PBKDF2_ITERATIONS, dklen=KEY_SIZE
    )


def generate_salt() -> bytes:
    return secrets.token_bytes(SALT_SIZE)


class FieldEncryptor:
    """Seals seed text into base64 blobs that fit a TEXT column."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: bytes) -> "FieldEncryptor":
        return cls(derive_key(passphrase, salt))

    def encrypt_field(self, plaintext: str) -> str:
        """
        Seal ``plaintext`` under a fresh nonce.

        The stored value is ``urlsafe_b64(nonce | ciphertext | tag)``, so
        encrypting the same seed twice never yields the same column value.
        """
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + sealed).decode("ascii")

    def decrypt_field(self, encoded: str) -> str:
        """
        Open a value written by :meth:`encrypt_field`.

        Raises:
            cryptography.exceptions.InvalidTag: Wrong key or altered value.
            ValueError: ``encoded`` is not base64 text.
        """
        blob = base64.urlsafe_b64decode(encoded.encode("ascii"))
        opened = self._aesgcm.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
        return opened.decode("utf-8")
