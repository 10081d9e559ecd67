"""Tests for storage.database and storage.encryption."""

import sqlite3
from pathlib import Path

import pytest
from cryptography.exceptions import InvalidTag

import storage.encryption
from core.errors import InvalidSeed, StoreUnavailable, UnknownAccount
from core.hotp import compute
from core.validator import ValidationStatus, Validator
from storage.base import AccountRecord
from storage.database import SqliteCounterStore
from storage.memory import InMemoryCounterStore
from storage.encryption import KEY_SIZE, FieldEncryptor, derive_key, generate_salt

RFC_SECRET = b"12345678901234567890"


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(storage.encryption, "PBKDF2_ITERATIONS", 1_000)


def _encryptor(passphrase: str, salt: bytes) -> FieldEncryptor:
    return FieldEncryptor.from_passphrase(passphrase, salt)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def tmp_store(tmp_path: Path) -> SqliteCounterStore:
    """Return a fresh store with an encryptor attached."""
    store = SqliteCounterStore(tmp_path / "test.db")
    salt = generate_salt()
    store.set_salt(salt)
    store.set_encryptor(_encryptor("test_password_123", salt))
    yield store
    store.close()


@pytest.fixture()
def alice() -> AccountRecord:
    return AccountRecord("alice", RFC_SECRET, counter=5, accepted=frozenset({2, 4}))


# ── Salt / meta ───────────────────────────────────────────────────────────────

def test_fresh_store_no_salt(tmp_path: Path) -> None:
    store = SqliteCounterStore(tmp_path / "fresh.db")
    assert store.get_salt() is None
    store.close()


def test_set_and_get_salt(tmp_path: Path) -> None:
    store = SqliteCounterStore(tmp_path / "salt.db")
    salt = generate_salt()
    store.set_salt(salt)
    assert store.get_salt() == salt
    store.close()


# ── CounterStore ──────────────────────────────────────────────────────────────

def test_enroll_and_get(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    assert tmp_store.get("alice") == alice
    assert tmp_store.load("alice") == 5


def test_get_unknown_account(tmp_store: SqliteCounterStore) -> None:
    with pytest.raises(UnknownAccount):
        tmp_store.get("nobody")


def test_reenroll_replaces_state(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    tmp_store.enroll(AccountRecord("alice", b"another seed!!", counter=2, accepted=frozenset({1})))
    record = tmp_store.get("alice")
    assert record.seed == b"another seed!!"
    assert record.counter == 2
    assert record.accepted == frozenset({1})


def test_advance_compare_and_swap(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    assert tmp_store.advance("alice", 5, 8, frozenset({4, 7}))
    assert tmp_store.get("alice").accepted == frozenset({4, 7})

    # stale expectation: nothing written
    assert not tmp_store.advance("alice", 5, 12, frozenset({11}))
    record = tmp_store.get("alice")
    assert record.counter == 8
    assert record.accepted == frozenset({4, 7})


def test_advance_unknown_account(tmp_store: SqliteCounterStore) -> None:
    with pytest.raises(UnknownAccount):
        tmp_store.advance("nobody", 1, 2, frozenset({1}))


def test_mark_accepted(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    assert not tmp_store.is_accepted("alice", 3)
    tmp_store.mark_accepted("alice", 3)
    assert tmp_store.is_accepted("alice", 3)
    assert tmp_store.load("alice") == 5


def test_mark_accepted_is_idempotent(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    tmp_store.mark_accepted("alice", 4)
    assert tmp_store.get("alice").accepted == frozenset({2, 4})


def test_mark_accepted_retries_after_lost_race(alice: AccountRecord) -> None:
    class OneRace(InMemoryCounterStore):
        raced = False

        def advance(self, account_id, expected_counter, new_counter, accepted) -> bool:
            if not self.raced:
                self.raced = True
                super().advance(account_id, expected_counter, expected_counter + 1, frozenset())
            return super().advance(account_id, expected_counter, new_counter, accepted)

    store = OneRace()
    store.enroll(alice)
    store.mark_accepted("alice", 3)
    assert store.is_accepted("alice", 3)
    assert store.load("alice") == 6


def test_mark_accepted_reports_lost_write(alice: AccountRecord) -> None:
    class AlwaysLosing(InMemoryCounterStore):
        def advance(self, account_id, expected_counter, new_counter, accepted) -> bool:
            return False

    store = AlwaysLosing()
    store.enroll(alice)
    with pytest.raises(StoreUnavailable):
        store.mark_accepted("alice", 3)
    assert not store.is_accepted("alice", 3)


def test_delete(tmp_store: SqliteCounterStore, alice: AccountRecord) -> None:
    tmp_store.enroll(alice)
    tmp_store.delete("alice")
    with pytest.raises(UnknownAccount):
        tmp_store.get("alice")


def test_locked_store_refuses_enroll(tmp_path: Path, alice: AccountRecord) -> None:
    store = SqliteCounterStore(tmp_path / "locked.db")
    with pytest.raises(StoreUnavailable):
        store.enroll(alice)
    store.close()


def test_locked_store_refuses_get(tmp_path: Path, alice: AccountRecord) -> None:
    path = tmp_path / "locked2.db"
    store = SqliteCounterStore(path, _encryptor("pw", generate_salt()))
    store.enroll(alice)
    store.close()

    reopened = SqliteCounterStore(path)
    with pytest.raises(StoreUnavailable):
        reopened.get("alice")
    reopened.close()


def test_garbled_seed_column(tmp_path: Path, alice: AccountRecord) -> None:
    path = tmp_path / "garbled.db"
    store = SqliteCounterStore(path, _encryptor("pw", generate_salt()))
    store.enroll(alice)
    conn = sqlite3.connect(str(path))
    with conn:
        conn.execute("UPDATE accounts SET seed='not base64!' WHERE account_id='alice'")
    conn.close()

    with pytest.raises(InvalidSeed):
        store.get("alice")
    store.close()


# ── Encryption at rest ────────────────────────────────────────────────────────

def test_seed_not_stored_in_clear(tmp_path: Path, alice: AccountRecord) -> None:
    path = tmp_path / "clear.db"
    store = SqliteCounterStore(path)
    store.set_encryptor(_encryptor("pw", generate_salt()))
    store.enroll(alice)
    store.close()

    raw = path.read_bytes()
    assert b"GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ" not in raw
    assert RFC_SECRET not in raw


def test_wrong_key_cannot_decrypt(tmp_path: Path, alice: AccountRecord) -> None:
    """A store opened with the wrong key reports a broken seed."""
    path = tmp_path / "enc.db"
    salt = generate_salt()
    store = SqliteCounterStore(path, _encryptor("correct_password", salt))
    store.enroll(alice)
    store.close()

    store2 = SqliteCounterStore(path, _encryptor("wrong_password", salt))
    with pytest.raises(InvalidSeed):
        store2.get("alice")
    store2.close()


def test_field_encryptor_roundtrip() -> None:
    enc = FieldEncryptor(derive_key("test", generate_salt()))
    blob = enc.encrypt_field("JBSWY3DPEHPK3PXP")
    assert blob != enc.encrypt_field("JBSWY3DPEHPK3PXP")  # fresh nonce
    assert enc.decrypt_field(blob) == "JBSWY3DPEHPK3PXP"


def test_field_encryptor_tampered_raises() -> None:
    enc = FieldEncryptor(b"\x01" * KEY_SIZE)
    blob = enc.encrypt_field("secret")
    other = FieldEncryptor(b"\x02" * KEY_SIZE)
    with pytest.raises(InvalidTag):
        other.decrypt_field(blob)


def test_field_encryptor_key_size() -> None:
    with pytest.raises(ValueError):
        FieldEncryptor(b"short_key")


def test_derive_key_deterministic() -> None:
    salt = generate_salt()
    assert derive_key("hello", salt) == derive_key("hello", salt)
    assert derive_key("hello", salt) != derive_key("hellp", salt)


# ── Validator over SQLite ─────────────────────────────────────────────────────

def test_validator_end_to_end(tmp_store: SqliteCounterStore) -> None:
    validator = Validator(tmp_store)
    assert validator.confirm_first_code("bob", RFC_SECRET, compute(RFC_SECRET, 1))

    result = validator.validate("bob", compute(RFC_SECRET, 4))
    assert result.accepted
    assert result.new_counter == 5
    assert tmp_store.load("bob") == 5

    assert validator.validate("bob", compute(RFC_SECRET, 4)).status is ValidationStatus.REPLAY
    assert validator.validate("bob", compute(RFC_SECRET, 1)).status is ValidationStatus.REPLAY
    assert tmp_store.get("bob").accepted == frozenset({1, 4})
