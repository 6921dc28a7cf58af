"""
Barcode payload assembly and parsing.

Byte layout::

    offset 0   version           1 byte   (dictionary/format version)
    offset 1   flags             1 byte   bits 0-1 compression tag,
                                          bits 2-4 proof algorithm id,
                                          bits 5-7 reserved (zero)
    offset 2   compressedLen     varint
               compressedBytes   compressedLen bytes
               keyIdLen, keyId            varint + UTF-8
               algorithmLen, algorithm    varint + 1 byte
               signatureLen, signature    varint + bytes

The payload must end exactly after the signature.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from vc_barcodes.compression import CompressedBytes
from vc_barcodes.dictionary import DICTIONARIES
from vc_barcodes.errors import MalformedPayload, PayloadTooLarge, TruncatedPayload
from vc_barcodes.proof import MAX_ALGORITHM_ID, ProofEnvelope
from vc_barcodes.varint import decode_uvarint, encode_uvarint

logger = logging.getLogger(__name__)

# QR code version 40, error correction level L, byte mode
DEFAULT_MAX_PAYLOAD_BYTES = 2953

COMPRESSION_MASK = 0b0000_0011
PROOF_SHIFT = 2
PROOF_MASK = 0b0001_1100
RESERVED_MASK = 0b1110_0000


def pack_flags(compression_tag: int, proof_algorithm: int) -> int:
    if not 0 <= compression_tag <= COMPRESSION_MASK:
        raise ValueError(f"Compression tag does not fit in two bits: {compression_tag}")
    if not 0 <= proof_algorithm <= MAX_ALGORITHM_ID:
        raise ValueError(f"Proof algorithm does not fit in three bits: {proof_algorithm}")
    return compression_tag | (proof_algorithm << PROOF_SHIFT)


def unpack_flags(flags: int) -> tuple[int, int]:
    """Split a flag byte into (compression tag, proof algorithm id)."""
    return flags & COMPRESSION_MASK, (flags & PROOF_MASK) >> PROOF_SHIFT


@dataclass(frozen=True)
class BarcodePayload:
    """An assembled, immutable barcode payload."""

    version: int
    flags: int
    compressed: CompressedBytes
    envelope: ProofEnvelope

    def to_bytes(self) -> bytes:
        key_id = self.envelope.key_id.encode("utf-8")
        out = bytearray([self.version, self.flags])
        out += encode_uvarint(len(self.compressed.data))
        out += self.compressed.data
        out += encode_uvarint(len(key_id))
        out += key_id
        out += encode_uvarint(1)
        out.append(self.envelope.algorithm)
        out += encode_uvarint(len(self.envelope.signature))
        out += self.envelope.signature
        return bytes(out)

    def __bytes__(self) -> bytes:
        return self.to_bytes()

    def __len__(self) -> int:
        return len(self.to_bytes())


class BarcodePayloadCodec:
    """Assembles and disassembles barcode payload bytes."""

    def __init__(self, max_payload_bytes: int | None = DEFAULT_MAX_PAYLOAD_BYTES) -> None:
        """Initialize the codec.

        Args:
            max_payload_bytes: Capacity of the target barcode symbol. None
                disables the limit (used for status list credentials, which
                are fetched rather than scanned).
        """
        self.max_payload_bytes = max_payload_bytes

    def assemble(self, compressed: CompressedBytes, envelope: ProofEnvelope) -> BarcodePayload:
        """Assemble a payload and enforce the capacity limit.

        Raises:
            PayloadTooLarge: If the payload exceeds ``max_payload_bytes``.
        """
        payload = BarcodePayload(
            version=compressed.dictionary_version,
            flags=pack_flags(compressed.algorithm, envelope.algorithm),
            compressed=compressed,
            envelope=envelope,
        )
        size = len(payload)
        if self.max_payload_bytes is not None and size > self.max_payload_bytes:
            raise PayloadTooLarge(size, self.max_payload_bytes)
        logger.debug("Assembled %d byte payload (version %d)", size, payload.version)
        return payload

    def disassemble(self, data: bytes) -> tuple[CompressedBytes, ProofEnvelope]:
        """Parse payload bytes.

        Raises:
            MalformedPayload: If the version is unknown, reserved flag bits
                are set, the envelope is inconsistent with the flags or bytes
                follow the signature.
            TruncatedPayload: If a declared section runs past the end.
        """
        data = bytes(data)
        if len(data) < 2:
            raise TruncatedPayload("Payload is shorter than its header")

        version, flags = data[0], data[1]
        if version not in DICTIONARIES:
            raise MalformedPayload(f"Unknown payload version {version}")
        if flags & RESERVED_MASK:
            raise MalformedPayload("Reserved flag bits are set")
        compression_tag, proof_algorithm = unpack_flags(flags)

        offset = 2
        compressed_data, offset = _read_section(data, offset, "compressed claims")
        key_id_bytes, offset = _read_section(data, offset, "key identifier")
        algorithm_bytes, offset = _read_section(data, offset, "algorithm identifier")
        signature, offset = _read_section(data, offset, "signature")
        if offset != len(data):
            raise MalformedPayload(f"{len(data) - offset} unexpected bytes after signature")

        if len(algorithm_bytes) != 1:
            raise MalformedPayload("Algorithm identifier must be one byte")
        if algorithm_bytes[0] != proof_algorithm:
            raise MalformedPayload("Envelope algorithm does not match the flag byte")
        try:
            key_id = key_id_bytes.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayload("Key identifier is not valid UTF-8") from None

        compressed = CompressedBytes(
            algorithm=compression_tag,
            data=compressed_data,
            dictionary_version=version,
        )
        envelope = ProofEnvelope(
            algorithm=proof_algorithm,
            key_id=key_id,
            signature=signature,
        )
        return compressed, envelope


def _read_section(data: bytes, offset: int, name: str) -> tuple[bytes, int]:
    try:
        length, offset = decode_uvarint(data, offset)
    except TruncatedPayload:
        raise TruncatedPayload(f"Payload ends inside the {name} length") from None
    except ValueError as e:
        raise MalformedPayload(f"Invalid {name} length: {e}") from e
    end = offset + length
    if end > len(data):
        raise TruncatedPayload(
            f"{name.capitalize()} declares {length} bytes but only "
            f"{len(data) - offset} remain"
        )
    return data[offset:end], end
