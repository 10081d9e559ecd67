"""
SQLite-backed counter store with AES-256-GCM encrypted seeds.

Schema
------
accounts
  account_id TEXT     PRIMARY KEY
  seed       TEXT     NOT NULL   -- encrypted base32 seed
  counter    INTEGER  NOT NULL   -- next expected HOTP counter (plain, used
                                    in the compare-and-swap)

accepted_counters
  account_id TEXT     NOT NULL
  counter    INTEGER  NOT NULL   -- counters already consumed by a login

meta
  key      TEXT PRIMARY KEY
  value    TEXT                -- salt stored as hex (NOT encrypted)
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import FrozenSet, Optional, Union

from cryptography.exceptions import InvalidTag

from core.errors import InvalidSeed, StoreUnavailable, UnknownAccount
from core.utils import decode_secret, encode_secret
from storage.base import AccountRecord, CounterStore
from storage.encryption import FieldEncryptor

logger = logging.getLogger(__name__)


class SqliteCounterStore(CounterStore):
    """Thread-safe SQLite store with transparent seed encryption."""

    def __init__(
        self,
        db_path: Union[str, Path],
        encryptor: Optional[FieldEncryptor] = None,
    ) -> None:
        """
        Args:
            db_path:   Path to the SQLite file, or ``":memory:"``.
            encryptor: :class:`~storage.encryption.FieldEncryptor` for seeds.
                       May be attached later with :meth:`set_encryptor`
                       (the salt must be readable first).
        """
        self._path = str(db_path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._encryptor = encryptor
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._bootstrap()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open counter store: {exc}") from exc

    # ── Schema ───────────────────────────────────────────────────────────

    def _bootstrap(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    account_id TEXT    PRIMARY KEY,
                    seed       TEXT    NOT NULL,
                    counter    INTEGER NOT NULL DEFAULT 1
                );
                CREATE TABLE IF NOT EXISTS accepted_counters (
                    account_id TEXT    NOT NULL,
                    counter    INTEGER NOT NULL,
                    PRIMARY KEY (account_id, counter)
                );
                CREATE TABLE IF NOT EXISTS meta (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

    # ── Salt / encryptor ─────────────────────────────────────────────────

    def get_salt(self) -> Optional[bytes]:
        """Return stored salt or None if the store is fresh."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM meta WHERE key='salt'"
            ).fetchone()
        return bytes.fromhex(row["value"]) if row else None

    def set_salt(self, salt: bytes) -> None:
        """Persist the salt (stored as hex, NOT encrypted)."""
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('salt', ?)",
                (salt.hex(),),
            )

    def set_encryptor(self, encryptor: FieldEncryptor) -> None:
        """Attach or replace the seed encryptor."""
        self._encryptor = encryptor

    def _enc(self, value: str) -> str:
        if self._encryptor is None:
            raise StoreUnavailable("Counter store is locked – no encryptor set.")
        return self._encryptor.encrypt_field(value)

    def _dec(self, value: str) -> str:
        if self._encryptor is None:
            raise StoreUnavailable("Counter store is locked – no encryptor set.")
        return self._encryptor.decrypt_field(value)

    # ── CounterStore ─────────────────────────────────────────────────────

    def get(self, account_id: str) -> AccountRecord:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT seed, counter FROM accounts WHERE account_id=?",
                    (account_id,),
                ).fetchone()
                accepted = self._conn.execute(
                    "SELECT counter FROM accepted_counters WHERE account_id=?",
                    (account_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Counter store read failed: {exc}") from exc
        if row is None:
            raise UnknownAccount(account_id)
        try:
            seed = decode_secret(self._dec(row["seed"]))
        except (InvalidTag, ValueError):
            # wrong key, tampered row, or a value that is not our ciphertext
            raise InvalidSeed(
                f"Seed for account {account_id!r} cannot be decrypted."
            ) from None
        return AccountRecord(
            account_id=account_id,
            seed=seed,
            counter=int(row["counter"]),
            accepted=frozenset(int(r["counter"]) for r in accepted),
        )

    def enroll(self, record: AccountRecord) -> None:
        encrypted_seed = self._enc(encode_secret(record.seed))
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO accounts (account_id, seed, counter) "
                    "VALUES (?, ?, ?)",
                    (record.account_id, encrypted_seed, record.counter),
                )
                self._replace_accepted(record.account_id, record.accepted)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Counter store write failed: {exc}") from exc
        logger.debug("Stored enrollment for account %s", record.account_id)

    def advance(
        self,
        account_id: str,
        expected_counter: int,
        new_counter: int,
        accepted: FrozenSet[int],
    ) -> bool:
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "UPDATE accounts SET counter=? WHERE account_id=? AND counter=?",
                    (new_counter, account_id, expected_counter),
                )
                if cursor.rowcount == 0:
                    exists = self._conn.execute(
                        "SELECT 1 FROM accounts WHERE account_id=?", (account_id,)
                    ).fetchone()
                    if exists is None:
                        raise UnknownAccount(account_id)
                    return False
                self._replace_accepted(account_id, accepted)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Counter store write failed: {exc}") from exc
        return True

    def delete(self, account_id: str) -> None:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM accounts WHERE account_id=?", (account_id,)
                )
                self._conn.execute(
                    "DELETE FROM accepted_counters WHERE account_id=?", (account_id,)
                )
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Counter store write failed: {exc}") from exc

    # ── Internals ─────────────────────────────────────────────────────────

    def _replace_accepted(self, account_id: str, accepted: FrozenSet[int]) -> None:
        # Caller holds the lock and the transaction.
        self._conn.execute(
            "DELETE FROM accepted_counters WHERE account_id=?", (account_id,)
        )
        self._conn.executemany(
            "INSERT INTO accepted_counters (account_id, counter) VALUES (?, ?)",
            [(account_id, c) for c in sorted(accepted)],
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
