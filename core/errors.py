"""
Exception types raised by the HOTP core.

Code rejections (wrong code, replayed code) are not exceptions: they come back
as :class:`core.validator.ValidationResult` values. The types below are the
conditions a caller must not confuse with a wrong code.
"""


class HotpError(Exception):
    """Base class for HOTP core errors."""


class InvalidSeed(HotpError, ValueError):
    """Secret is empty, undecodable or otherwise unusable."""


class UnknownAccount(HotpError):
    """No counter state is stored for the account."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"No HOTP state for account {account_id!r}.")
        self.account_id = account_id


class StoreUnavailable(HotpError):
    """Counter store read or write failed; no state was changed."""


class InsufficientEntropy(HotpError):
    """The operating system random source failed."""


class AccessDenied(HotpError):
    """Login refused; ``str(exc)`` is safe to show to the end user."""
