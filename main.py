"""
hotp-guard – command line entry point.

Usage
-----
    python main.py --db hotp.db new-seed alice
    python main.py --db hotp.db confirm alice <SEED> <CODE>
    python main.py --db hotp.db validate alice <CODE>

The store passphrase is read from ``HOTP_STORE_PASSPHRASE`` unless
``--passphrase`` is given.

Exit status: 0 accepted / done, 1 rejected, 2 error.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from core.config import ValidatorConfig
from core.errors import HotpError
from core.seed import seed_to_text
from core.validator import Validator
from storage.database import SqliteCounterStore
from storage.encryption import FieldEncryptor, generate_salt

logger = logging.getLogger("hotp_guard")

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


# ── Bootstrap ─────────────────────────────────────────────────────────────────

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_encryptor(store: SqliteCounterStore, passphrase: str) -> FieldEncryptor:
    """Derive or create the seed encryption key for the store."""
    salt = store.get_salt()
    if salt is None:
        # First run – generate and store a new salt
        salt = generate_salt()
        store.set_salt(salt)
    return FieldEncryptor.from_passphrase(passphrase, salt)


def _open_store(db_path: Path, passphrase: str) -> SqliteCounterStore:
    store = SqliteCounterStore(db_path)
    store.set_encryptor(_build_encryptor(store, passphrase))
    return store


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotp-guard", description=__doc__.splitlines()[1])
    parser.add_argument("--db", type=Path, default=Path("hotp.db"), help="SQLite store path")
    parser.add_argument("--passphrase", help="store passphrase (default: $HOTP_STORE_PASSPHRASE)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("new-seed", help="generate a seed and its provisioning URI")
    p.add_argument("label", help="account name shown in the authenticator app")
    p.add_argument("--issuer", default="")

    p = sub.add_parser("confirm", help="confirm the first code and enroll")
    p.add_argument("account")
    p.add_argument("seed", help="base32 seed from new-seed")
    p.add_argument("code")

    p = sub.add_parser("validate", help="validate a login code")
    p.add_argument("account")
    p.add_argument("code")

    p = sub.add_parser("counter", help="print the stored counter")
    p.add_argument("account")
    return parser


# ── Commands ──────────────────────────────────────────────────────────────────

def _run(args: argparse.Namespace, validator: Validator, store: SqliteCounterStore) -> int:
    if args.command == "new-seed":
        seed = validator.generate_seed()
        print(seed_to_text(seed))
        print(validator.provisioning_uri(seed, args.label, issuer=args.issuer))
        return EXIT_OK

    if args.command == "confirm":
        if validator.confirm_first_code(args.account, args.seed, args.code):
            print("enrolled")
            return EXIT_OK
        print("Invalid application code. Please try again.")
        return EXIT_REJECTED

    if args.command == "validate":
        result = validator.validate(args.account, args.code)
        if result.accepted:
            print(f"accepted (counter {result.new_counter})")
            return EXIT_OK
        print(result.message)
        return EXIT_REJECTED

    print(store.load(args.account))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = ValidatorConfig.from_env()
    except ValueError as exc:
        logger.error("%s", exc)
        return EXIT_ERROR

    passphrase = args.passphrase or os.environ.get("HOTP_STORE_PASSPHRASE")
    if not passphrase:
        logger.error("A store passphrase is required (HOTP_STORE_PASSPHRASE).")
        return EXIT_ERROR

    try:
        store = _open_store(args.db, passphrase)
    except HotpError as exc:
        logger.error("%s", exc)
        return EXIT_ERROR

    try:
        return _run(args, Validator(store, config), store)
    except HotpError as exc:
        logger.error("HOTP error: %s", exc)
        return EXIT_ERROR
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
