"""Tests for the command line entry point."""

from pathlib import Path

import pytest

import main
import storage.encryption
from core.hotp import compute

RFC_SECRET = b"12345678901234567890"
RFC_SECRET_B32 = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(storage.encryption, "PBKDF2_ITERATIONS", 1_000)
    monkeypatch.setenv("HOTP_STORE_PASSPHRASE", "cli-test-passphrase")
    monkeypatch.setenv("HOTP_NAME_PREFIX", "example")
    return str(tmp_path / "cli.db")


def test_new_seed_prints_seed_and_uri(db: str, capsys: pytest.CaptureFixture) -> None:
    assert main.main(["--db", db, "new-seed", "alice"]) == main.EXIT_OK
    seed, uri = capsys.readouterr().out.split()
    assert len(seed) == 16
    assert uri == f"otpauth://hotp/example-alice?secret={seed}&counter=1"


def test_enroll_then_login(db: str, capsys: pytest.CaptureFixture) -> None:
    code1 = compute(RFC_SECRET, 1)
    assert main.main(["--db", db, "confirm", "alice", RFC_SECRET_B32, code1]) == main.EXIT_OK

    assert main.main(["--db", db, "validate", "alice", compute(RFC_SECRET, 3)]) == main.EXIT_OK
    assert main.main(["--db", db, "validate", "alice", compute(RFC_SECRET, 3)]) == main.EXIT_REJECTED
    assert main.main(["--db", db, "counter", "alice"]) == main.EXIT_OK

    out = capsys.readouterr().out.splitlines()
    assert out == [
        "enrolled",
        "accepted (counter 4)",
        "Invalid code, it was recently used for a login. Please try a new code.",
        "4",
    ]


def test_bad_confirmation_is_rejected(db: str, capsys: pytest.CaptureFixture) -> None:
    assert main.main(["--db", db, "confirm", "alice", RFC_SECRET_B32, "000000"]) == main.EXIT_REJECTED
    assert main.main(["--db", db, "validate", "alice", "000000"]) == main.EXIT_ERROR


def test_missing_passphrase_is_an_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HOTP_STORE_PASSPHRASE", raising=False)
    assert main.main(["--db", str(tmp_path / "x.db"), "counter", "alice"]) == main.EXIT_ERROR


def test_wrong_passphrase_is_an_error(db: str, capsys: pytest.CaptureFixture) -> None:
    assert main.main(["--db", db, "confirm", "alice", RFC_SECRET_B32, compute(RFC_SECRET, 1)]) == main.EXIT_OK
    # a different passphrase cannot open the stored seed
    assert main.main(["--db", db, "--passphrase", "wrong", "validate", "alice", "123456"]) == main.EXIT_ERROR
