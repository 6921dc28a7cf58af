"""
QR code text form of barcode payloads.

QR alphanumeric mode stores 5.5 bits per character, so payloads are carried
as ``VC1-`` followed by multibase base45 (prefix ``R``, RFC 9285), which
only uses characters from the alphanumeric set.
"""

from __future__ import annotations

import base45

from vc_barcodes.errors import MalformedPayload

QR_TEXT_PREFIX = "VC1-"
MULTIBASE_BASE45 = "R"


def encode_qr_text(payload: bytes) -> str:
    """Encode payload bytes as QR alphanumeric text."""
    return QR_TEXT_PREFIX + MULTIBASE_BASE45 + base45.b45encode(bytes(payload)).decode("ascii")


def decode_qr_text(text: str) -> bytes:
    """Decode QR text back into payload bytes.

    Raises:
        MalformedPayload: If the prefix, the multibase code or the base45
            data is invalid.
    """
    if not text.startswith(QR_TEXT_PREFIX):
        raise MalformedPayload(f"QR text does not start with {QR_TEXT_PREFIX!r}")
    encoded = text[len(QR_TEXT_PREFIX):]
    if not encoded.startswith(MULTIBASE_BASE45):
        raise MalformedPayload(f"Unsupported multibase prefix {encoded[:1]!r}")
    try:
        return base45.b45decode(encoded[1:])
    except ValueError as e:
        raise MalformedPayload(f"Invalid base45 data: {e}") from e
