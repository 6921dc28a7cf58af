"""
Optical data bound into barcode credential proofs.

A barcode printed next to human and machine readable text binds its proof
to a SHA-256 digest of that text, so the barcode cannot be moved onto
another document:

- MachineReadableZone: the three 30 character lines of a TD1 MRZ, each
  followed by a newline
- AamvaDriversLicenseScannableInformation: the DL subfile elements selected
  by a protected component index, each as ``<id><value>\\n``, sorted

https://w3c-ccg.github.io/vc-barcodes/#creating-opticaldatabytes
"""

from __future__ import annotations

import hashlib
from typing import Iterable, Mapping, Sequence

from vc_barcodes.errors import VCBarcodeError
from vc_barcodes.multibase import multibase_decode, multibase_encode

MRZ_LINES = 3
MRZ_LINE_LENGTH = 30

# Mandatory DL data elements, ordered by id
PROTECTED_COMPONENTS = (
    "DAC",  # first name
    "DAD",  # middle name
    "DAG",  # street address
    "DAI",  # city
    "DAJ",  # jurisdiction code
    "DAK",  # postal code
    "DAQ",  # customer id number
    "DAU",  # height
    "DAY",  # eye color
    "DBA",  # expiration date
    "DBB",  # date of birth
    "DBC",  # sex
    "DBD",  # issue date
    "DCA",  # vehicle class
    "DCB",  # restriction codes
    "DCD",  # endorsement codes
    "DCF",  # document discriminator
    "DCG",  # country identification
    "DCS",  # family name
    "DDE",  # family name truncation
    "DDF",  # first name truncation
    "DDG",  # middle name truncation
)

_INDEX_BYTES = 3
_INDEX_BITS = _INDEX_BYTES * 8


class OpticalDataError(VCBarcodeError):
    """Raised when optical data or a protected component index is invalid."""


def mrz_optical_data(lines: Sequence[str]) -> bytes:
    """Digest the three lines of a TD1 machine readable zone.

    Raises:
        OpticalDataError: If there are not three 30 character ASCII lines.
    """
    if len(lines) != MRZ_LINES:
        raise OpticalDataError(f"MRZ must have {MRZ_LINES} lines, got {len(lines)}")
    canonical = bytearray()
    for line in lines:
        if len(line) != MRZ_LINE_LENGTH or not line.isascii():
            raise OpticalDataError(
                f"MRZ lines must be {MRZ_LINE_LENGTH} ASCII characters: {line!r}"
            )
        canonical += line.encode("ascii")
        canonical += b"\n"
    return hashlib.sha256(canonical).digest()


class ProtectedComponentIndex:
    """Set of DL subfile elements covered by an AAMVA credential's proof.

    Element ``i`` of ``PROTECTED_COMPONENTS`` is bit ``23 - i`` of a 24 bit
    big-endian mask, carried as multibase base64url.
    """

    def __init__(self, elements: Iterable[str] = ()) -> None:
        self._mask = 0
        for element in elements:
            self.insert(element)

    @staticmethod
    def _bit(element: str) -> int:
        try:
            i = PROTECTED_COMPONENTS.index(element)
        except ValueError:
            raise OpticalDataError(f"{element!r} is not a mandatory DL element") from None
        return 1 << (_INDEX_BITS - 1 - i)

    def insert(self, element: str) -> None:
        self._mask |= self._bit(element)

    def remove(self, element: str) -> None:
        self._mask &= ~self._bit(element)

    def contains(self, element: str) -> bool:
        return bool(self._mask & self._bit(element))

    __contains__ = contains

    def __iter__(self):
        return (element for element in PROTECTED_COMPONENTS if self.contains(element))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProtectedComponentIndex):
            return NotImplemented
        return self._mask == other._mask

    def __repr__(self) -> str:
        return f"ProtectedComponentIndex({list(self)!r})"

    def to_int(self) -> int:
        return self._mask

    def encode(self) -> str:
        """Encode as multibase base64url of the three mask bytes."""
        return multibase_encode(self._mask.to_bytes(_INDEX_BYTES, byteorder="big"))

    @classmethod
    def decode(cls, encoded: str) -> ProtectedComponentIndex:
        """Decode a ``protectedComponentIndex`` claim.

        Raises:
            OpticalDataError: If the value is not multibase base64url of
                exactly three bytes, or sets bits beyond the element list.
        """
        try:
            data = multibase_decode(encoded)
        except ValueError as e:
            raise OpticalDataError(f"Invalid protected component index: {e}") from e
        if len(data) != _INDEX_BYTES:
            raise OpticalDataError(
                f"Protected component index must be {_INDEX_BYTES} bytes, got {len(data)}"
            )
        mask = int.from_bytes(data, byteorder="big")
        unused = (1 << (_INDEX_BITS - len(PROTECTED_COMPONENTS))) - 1
        if mask & unused:
            raise OpticalDataError("Protected component index sets unused bits")
        index = cls()
        index._mask = mask
        return index

    def optical_data(self, elements: Mapping[str, str | bytes]) -> bytes:
        """Digest the protected elements of a DL subfile.

        Args:
            elements: DL subfile element values keyed by element id.

        Raises:
            OpticalDataError: If a protected element is missing.
        """
        entries = []
        for element in self:
            value = elements.get(element)
            if value is None:
                raise OpticalDataError(f"DL subfile has no {element} element")
            if isinstance(value, str):
                value = value.encode("utf-8")
            entries.append(element.encode("ascii") + value + b"\n")
        return hashlib.sha256(b"".join(sorted(entries))).digest()
