"""Base64url and multibase helpers."""

from __future__ import annotations

import base64
import binascii

BASE64URL_PREFIX = "u"


def base64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(data: str) -> bytes:
    """Decode base64url without padding.

    Raises:
        ValueError: If the input is not valid base64url.
    """
    # Add padding if needed
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    try:
        return base64.urlsafe_b64decode(data.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError(f"Invalid base64url data: {e}") from e


def multibase_encode(data: bytes) -> str:
    """Encode bytes as multibase base64url (``u`` prefix)."""
    return BASE64URL_PREFIX + base64url_encode(data)


def multibase_decode(value: str) -> bytes:
    """Decode a multibase base64url string.

    Raises:
        ValueError: If the prefix is not ``u`` or the body is invalid.
    """
    if not value.startswith(BASE64URL_PREFIX):
        raise ValueError(f"Unsupported multibase prefix: {value[:1]!r}")
    return base64url_decode(value[1:])
