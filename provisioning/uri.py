"""
Build otpauth:// URIs as defined by the Google Authenticator Key URI Format.

Reference: https://github.com/google/google-authenticator/wiki/Key-Uri-Format

Only the string is produced here; rendering it as a QR image is left to the
caller's UI.
"""

import urllib.parse
from typing import Union

from core.utils import encode_secret, normalize_secret, sanitise_label


def account_label(username: str, name_prefix: str = "") -> str:
    """
    Label shown in the authenticator app: ``<prefix>-<username>``.

    Raises:
        ValueError: If the sanitised label is empty.
    """
    username = sanitise_label(username)
    prefix = sanitise_label(name_prefix)
    label = f"{prefix}-{username}" if prefix else username
    if not label:
        raise ValueError("Account label must not be empty.")
    return label[:128]


def build_otpauth_uri(
    label: str,
    secret: Union[bytes, str],
    counter: int = 1,
    issuer: str = "",
) -> str:
    """
    Build an ``otpauth://hotp/`` URI.

    Args:
        label:   Account label (already prefixed, see :func:`account_label`).
        secret:  Raw seed bytes or base32 text.
        counter: Counter the app should start from.
        issuer:  Optional issuer name.

    Returns:
        ``otpauth://hotp/<label>?secret=<BASE32>&counter=<n>[&issuer=...]``
    """
    if counter < 0:
        raise ValueError("'counter' must be non-negative.")
    if isinstance(secret, str):
        b32 = normalize_secret(secret).rstrip("=")
    else:
        b32 = encode_secret(secret)
    params = {"secret": b32, "counter": str(counter)}
    issuer = sanitise_label(issuer)
    if issuer:
        params["issuer"] = issuer

    query = urllib.parse.urlencode(params, quote_via=urllib.parse.quote)
    label_encoded = urllib.parse.quote(label, safe="")
    return f"otpauth://hotp/{label_encoded}?{query}"
