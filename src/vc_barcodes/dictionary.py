"""
Versioned term dictionary shared by the canonical encoder and the compressor.

A dictionary assigns every known claim name a numeric term code (its position
in ``terms``) and every common string value a value code (its position in
``values``). Term order is the canonical serialization order. Dictionaries
are immutable and registered once at import time; payloads name the version
they were encoded with in their version byte.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from vc_barcodes.errors import MalformedPayload


class ValueType(Enum):
    """Value types a term may be restricted to."""

    ANY = "any"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    BYTES = "bytes"
    DATE = "date"
    DATETIME = "datetime"
    LIST = "list"
    MAP = "map"


@dataclass(frozen=True)
class Term:
    """A dictionary term and the value type it accepts."""

    name: str
    value_type: ValueType = ValueType.ANY


@dataclass(frozen=True)
class TermDictionary:
    """Immutable term and value table for one dictionary version."""

    version: int
    terms: tuple[Term, ...]
    values: tuple[str, ...]
    _term_codes: Mapping[str, int] = field(init=False, repr=False, compare=False)
    _value_codes: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not 0 < self.version < 256:
            raise ValueError(f"Dictionary version must fit in one byte: {self.version}")
        term_codes = {term.name: code for code, term in enumerate(self.terms)}
        if len(term_codes) != len(self.terms):
            raise ValueError(f"Duplicate term in dictionary v{self.version}")
        value_codes = {value: code for code, value in enumerate(self.values)}
        if len(value_codes) != len(self.values):
            raise ValueError(f"Duplicate value in dictionary v{self.version}")
        object.__setattr__(self, "_term_codes", MappingProxyType(term_codes))
        object.__setattr__(self, "_value_codes", MappingProxyType(value_codes))

    def term_code(self, name: str) -> int | None:
        """Get the code of a term, or None if the name is a literal."""
        return self._term_codes.get(name)

    def term(self, code: int) -> Term | None:
        if 0 <= code < len(self.terms):
            return self.terms[code]
        return None

    def value_code(self, value: str) -> int | None:
        return self._value_codes.get(value)

    def value(self, code: int) -> str | None:
        if 0 <= code < len(self.values):
            return self.values[code]
        return None


_DATETIME = ValueType.DATETIME
_DATE = ValueType.DATE
_INTEGER = ValueType.INTEGER

DICTIONARY_V1 = TermDictionary(
    version=1,
    terms=(
        # Credential envelope
        Term("@context"),
        Term("id"),
        Term("type"),
        Term("issuer"),
        Term("credentialSubject"),
        Term("credentialStatus"),
        Term("validFrom", _DATETIME),
        Term("validUntil", _DATETIME),
        Term("name"),
        Term("description"),
        # Terse bitstring status list entry
        Term("terseStatusListBaseUrl", ValueType.STRING),
        Term("terseStatusListIndex", _INTEGER),
        # Bitstring status list credential
        Term("statusPurpose", ValueType.STRING),
        Term("encodedList", ValueType.STRING),
        Term("statusListIndex", _INTEGER),
        Term("statusListCredential", ValueType.STRING),
        Term("ttl", _INTEGER),
        # Optical barcode credential subjects
        Term("protectedComponentIndex", ValueType.STRING),
        # Person and document claims
        Term("givenName"),
        Term("familyName"),
        Term("birthDate", _DATE),
        Term("birthCountry"),
        Term("gender"),
        Term("nationality"),
        Term("image"),
        Term("identifier"),
        Term("documentNumber"),
        Term("documentType"),
        Term("issuingCountry"),
        Term("issueDate", _DATE),
        Term("expiryDate", _DATE),
        Term("address"),
        Term("streetAddress"),
        Term("postalCode"),
        Term("addressLocality"),
        Term("addressRegion"),
        Term("addressCountry"),
        Term("residentSince", _DATE),
        Term("lprCategory"),
        Term("lprNumber"),
        Term("commuterClassification"),
        Term("drivingPrivileges"),
        Term("vehicleCategoryCode"),
        Term("restrictions"),
        Term("endorsements"),
        Term("height", _INTEGER),
        Term("weight", _INTEGER),
        Term("eyeColor"),
        Term("hairColor"),
        Term("organDonor", ValueType.BOOLEAN),
        Term("veteran", ValueType.BOOLEAN),
        Term("email"),
        Term("telephone"),
        Term("url"),
    ),
    values=(
        "https://www.w3.org/ns/credentials/v2",
        "https://w3id.org/vc-barcodes/v1",
        "https://w3id.org/citizenship/v2",
        "https://w3id.org/vdl/v2",
        "VerifiableCredential",
        "OpticalBarcodeCredential",
        "MachineReadableZone",
        "AamvaDriversLicenseScannableInformation",
        "TerseBitstringStatusListEntry",
        "BitstringStatusListCredential",
        "BitstringStatusList",
        "BitstringStatusListEntry",
        "revocation",
        "suspension",
        "message",
        "Person",
        "PermanentResident",
        "PermanentResidentCard",
        "EmploymentAuthorizationDocument",
        "Iso18013DriversLicenseCredential",
        "DriversLicense",
    ),
)

_DICTIONARIES: dict[int, TermDictionary] = {}

DICTIONARIES: Mapping[int, TermDictionary] = MappingProxyType(_DICTIONARIES)
"""Read-only view of every registered dictionary, keyed by version."""


def register_dictionary(dictionary: TermDictionary) -> TermDictionary:
    """Register a dictionary version.

    Meant to be called at import time. Re-registering an identical
    dictionary is a no-op; a conflicting one is refused because payloads
    already encoded with that version would decode differently.
    """
    existing = _DICTIONARIES.get(dictionary.version)
    if existing is not None:
        if existing != dictionary:
            raise ValueError(
                f"Dictionary version {dictionary.version} is already registered"
            )
        return existing
    _DICTIONARIES[dictionary.version] = dictionary
    return dictionary


def get_dictionary(version: int) -> TermDictionary:
    """Look up a registered dictionary.

    Raises:
        MalformedPayload: If no dictionary has that version.
    """
    try:
        return _DICTIONARIES[version]
    except KeyError:
        raise MalformedPayload(f"Unknown dictionary version {version}") from None


register_dictionary(DICTIONARY_V1)

DEFAULT_DICTIONARY = DICTIONARY_V1
