"""
Reversible compression of canonical claims bytes.

Three algorithms are available, identified by a two bit tag carried in the
payload flag byte:

- ``DICTIONARY``: rewrites the canonical CBOR into CBOR whose string values
  found in the dictionary's value table are replaced by tagged value codes
- ``DEFLATE``: raw DEFLATE over the canonical bytes
- ``RAW``: the canonical bytes unchanged

Compression is deterministic, because proofs are computed over its output.
"""

from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass
from enum import IntEnum

from vc_barcodes.canonical import CanonicalEncoder
from vc_barcodes.dictionary import DEFAULT_DICTIONARY, TermDictionary, get_dictionary
from vc_barcodes.errors import MalformedGraph, MalformedPayload, UnsupportedAlgorithmTag

logger = logging.getLogger(__name__)

DEFAULT_MAX_INFLATED_BYTES = 1024 * 1024

_DEFLATE_LEVEL = 9
_DEFLATE_WBITS = -15


class CompressionAlgorithm(IntEnum):
    """Compression algorithm tags (two bits of the flag byte)."""

    RAW = 0
    DICTIONARY = 1
    DEFLATE = 2


@dataclass(frozen=True)
class CompressedBytes:
    """Compressed claims and the tag needed to reverse the compression."""

    algorithm: int
    data: bytes
    dictionary_version: int = DEFAULT_DICTIONARY.version

    def __len__(self) -> int:
        return len(self.data)


class CompressionCodec:
    """Chooses and applies the smallest reversible compression."""

    def __init__(
        self,
        dictionary: TermDictionary = DEFAULT_DICTIONARY,
        max_inflated_bytes: int = DEFAULT_MAX_INFLATED_BYTES,
    ) -> None:
        self.dictionary = dictionary
        self.max_inflated_bytes = max_inflated_bytes

    def compress(self, data: bytes) -> CompressedBytes:
        """Compress canonical bytes.

        Dictionary substitution is preferred when it applies and beats
        DEFLATE; DEFLATE is used when it beats the raw size; otherwise the
        bytes are stored raw.
        """
        data = bytes(data)
        generic = deflate(data)
        substituted = self._substitute(data)

        if substituted is not None and len(substituted) < len(generic):
            algorithm, output = CompressionAlgorithm.DICTIONARY, substituted
        else:
            algorithm, output = CompressionAlgorithm.DEFLATE, generic
        if len(output) >= len(data):
            algorithm, output = CompressionAlgorithm.RAW, data

        logger.debug(
            "Compressed %d canonical bytes to %d with %s",
            len(data),
            len(output),
            algorithm.name,
        )
        return CompressedBytes(
            algorithm=int(algorithm),
            data=output,
            dictionary_version=self.dictionary.version,
        )

    def decompress(self, compressed: CompressedBytes) -> bytes:
        """Reverse ``compress``.

        Raises:
            UnsupportedAlgorithmTag: If the algorithm tag is unknown.
            MalformedPayload: If the data cannot be decompressed.
        """
        try:
            algorithm = CompressionAlgorithm(compressed.algorithm)
        except ValueError:
            raise UnsupportedAlgorithmTag(
                f"Unknown compression algorithm tag {compressed.algorithm}"
            ) from None

        if algorithm == CompressionAlgorithm.RAW:
            return compressed.data
        if algorithm == CompressionAlgorithm.DEFLATE:
            return inflate(compressed.data, self.max_inflated_bytes)

        dictionary = self.dictionary
        if compressed.dictionary_version != dictionary.version:
            dictionary = get_dictionary(compressed.dictionary_version)
        return self._expand(dictionary, compressed.data)

    def _substitute(self, data: bytes) -> bytes | None:
        encoder = CanonicalEncoder(self.dictionary)
        try:
            graph = encoder.decode(data)
        except MalformedGraph as e:
            logger.debug("Dictionary substitution not applicable: %s", e)
            return None
        return encoder.encode(graph, substitute_values=True)

    def _expand(self, dictionary: TermDictionary, data: bytes) -> bytes:
        encoder = CanonicalEncoder(dictionary)
        try:
            output = encoder.encode(encoder.decode_substituted(data))
        except MalformedGraph as e:
            raise MalformedPayload(f"Corrupt dictionary-compressed claims: {e}") from e
        if len(output) > self.max_inflated_bytes:
            raise MalformedPayload("Decompressed claims exceed the size limit")
        return output


def deflate(data: bytes) -> bytes:
    """Raw DEFLATE with fixed parameters."""
    compressor = zlib.compressobj(_DEFLATE_LEVEL, zlib.DEFLATED, _DEFLATE_WBITS)
    return compressor.compress(data) + compressor.flush()


def inflate(data: bytes, max_size: int = DEFAULT_MAX_INFLATED_BYTES) -> bytes:
    """Inverse of ``deflate`` with an output bound.

    Raises:
        MalformedPayload: If the stream is corrupt, incomplete, followed by
            extra bytes, or inflates beyond ``max_size``.
    """
    decompressor = zlib.decompressobj(_DEFLATE_WBITS)
    try:
        output = decompressor.decompress(data, max_size + 1)
    except zlib.error as e:
        raise MalformedPayload(f"Corrupt DEFLATE stream: {e}") from e
    if len(output) > max_size:
        raise MalformedPayload("Decompressed claims exceed the size limit")
    if not decompressor.eof or decompressor.unused_data:
        raise MalformedPayload("Incomplete or padded DEFLATE stream")
    return output


