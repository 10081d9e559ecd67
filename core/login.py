"""
Login endpoint glue.

Turns a :class:`~core.validator.ValidationResult` into the accept/deny
answer a login service returns for a ``(id, code)`` request.
"""

import logging

from core.errors import AccessDenied, UnknownAccount
from core.validator import MSG_INVALID_CODE, Validator

logger = logging.getLogger(__name__)


class HotpLogin:
    """Second-factor login check for one request."""

    def __init__(self, validator: Validator) -> None:
        self._validator = validator

    def process(self, account_id: str, code: str) -> int:
        """
        Validate ``code`` for ``account_id``.

        Returns:
            1 when the login may proceed.

        Raises:
            AccessDenied:     Wrong, replayed or unenrolled code.  Unknown
                              accounts get the wrong-code message so the
                              response does not reveal who is enrolled.
            StoreUnavailable: Transient backend failure; retry the request.
            InvalidSeed:      Stored secret is broken (configuration error).
        """
        if not account_id or code is None:
            raise AccessDenied(MSG_INVALID_CODE)
        try:
            result = self._validator.validate(account_id, code)
        except UnknownAccount:
            logger.warning("HOTP login for account %s without enrollment", account_id)
            raise AccessDenied(MSG_INVALID_CODE) from None
        if not result.accepted:
            raise AccessDenied(result.message)
        return 1
