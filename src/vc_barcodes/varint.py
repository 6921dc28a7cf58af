"""Unsigned LEB128 varints used for payload and signing input lengths."""

from __future__ import annotations

from vc_barcodes.errors import TruncatedPayload

MAX_VARINT_BYTES = 10


def encode_uvarint(value: int) -> bytes:
    """Encode a non-negative integer as an unsigned LEB128 varint."""
    if value < 0:
        raise ValueError(f"uvarint cannot encode negative value {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_uvarint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint at ``offset``.

    Returns:
        Tuple of (value, offset just past the varint).

    Raises:
        TruncatedPayload: If the data ends inside the varint.
        ValueError: If the varint is longer than 10 bytes or not minimal.
    """
    value = 0
    shift = 0
    for i in range(MAX_VARINT_BYTES):
        pos = offset + i
        if pos >= len(data):
            raise TruncatedPayload("Data ends inside a varint")
        byte = data[pos]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            # A trailing zero group means a second encoding of the same value.
            if byte == 0 and i > 0:
                raise ValueError("Non-minimal varint encoding")
            return value, pos + 1
        shift += 7
    raise ValueError("Varint exceeds 10 bytes")
