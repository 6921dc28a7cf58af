"""
Bitstring status list checking.

Implements W3C Bitstring Status List bitstring decoding and status checking
for barcode credentials, plus the terse status list entries vc-barcodes
uses to keep ``credentialStatus`` small.
https://www.w3.org/TR/vc-bitstring-status-list/
https://w3c-ccg.github.io/vc-barcodes/#terse-bitstring-status-list-entry

A status list credential is itself a barcode payload, so its proof is
verified with the same pipeline before any bit is trusted.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import logging
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from vc_barcodes.canonical import CanonicalEncoder
from vc_barcodes.compression import (
    DEFAULT_MAX_INFLATED_BYTES,
    CompressedBytes,
    CompressionCodec,
)
from vc_barcodes.dictionary import get_dictionary
from vc_barcodes.errors import RejectionReason, TrustResolutionError, VCBarcodeError
from vc_barcodes.multibase import multibase_decode, multibase_encode
from vc_barcodes.payload import BarcodePayloadCodec
from vc_barcodes.proof import ProofEngine, ProofEnvelope, SigningKey
from vc_barcodes.resolver import TrustResolver, maybe_await
from vc_barcodes.result import Accepted, Rejected, StageResult

logger = logging.getLogger(__name__)

DEFAULT_LIST_LENGTH = 131072

_GZIP_WBITS = 16 + zlib.MAX_WBITS

STATUS_LIST_CREDENTIAL_TYPE = "BitstringStatusListCredential"
STATUS_LIST_TYPE = "BitstringStatusList"
TERSE_ENTRY_TYPE = "TerseBitstringStatusListEntry"


class CredentialStatus(Enum):
    """Credential status values."""

    VALID = "valid"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"
    NOT_CHECKED = "not_checked"


class StatusPurpose(str, Enum):
    """What a set bit in a status list means."""

    REVOCATION = "revocation"
    SUSPENSION = "suspension"


class StatusListError(VCBarcodeError):
    """Raised when status list data cannot be decoded or converted."""


class StatusList:
    """A bit-packed status list.

    Per the W3C spec, bit 0 is the leftmost (most significant) bit of byte 0.
    """

    def __init__(self, length: int = DEFAULT_LIST_LENGTH) -> None:
        if length <= 0 or length % 8:
            raise StatusListError(f"Status list length must be a positive multiple of 8: {length}")
        self._bits = bytearray(length // 8)

    @classmethod
    def from_bytes(cls, bitstring: bytes) -> StatusList:
        status_list = cls.__new__(cls)
        status_list._bits = bytearray(bitstring)
        return status_list

    def __len__(self) -> int:
        return len(self._bits) * 8

    def get(self, index: int) -> bool | None:
        """Get the bit at ``index``, or None if the list does not cover it."""
        if index < 0 or index >= len(self):
            return None
        byte_index = index // 8
        bit_position = 7 - (index % 8)  # MSB first per W3C spec
        return bool((self._bits[byte_index] >> bit_position) & 1)

    def set(self, index: int, value: bool = True) -> None:
        if index < 0 or index >= len(self):
            raise StatusListError(f"Status list index {index} out of range [0, {len(self)})")
        byte_index = index // 8
        mask = 1 << (7 - (index % 8))
        if value:
            self._bits[byte_index] |= mask
        else:
            self._bits[byte_index] &= ~mask & 0xFF

    def to_bytes(self) -> bytes:
        return bytes(self._bits)

    def encode(self) -> str:
        """Encode as multibase base64url of the gzip'ed bitstring."""
        # mtime=0 keeps the encoding deterministic
        return multibase_encode(gzip.compress(self.to_bytes(), mtime=0))

    @classmethod
    def decode(
        cls, encoded_list: str, max_size: int = DEFAULT_MAX_INFLATED_BYTES
    ) -> StatusList:
        """Decode an ``encodedList`` value.

        Accepts multibase base64url (Bitstring Status List) and plain
        base64 (StatusList2021).

        Args:
            encoded_list: The encoded, gzip'ed bitstring.
            max_size: Largest bitstring, in bytes, that will be inflated.

        Raises:
            StatusListError: If decoding fails or the bitstring is too large.
        """
        decompressor = zlib.decompressobj(wbits=_GZIP_WBITS)
        try:
            if encoded_list.startswith("u"):
                compressed = multibase_decode(encoded_list)
            else:
                compressed = base64.b64decode(encoded_list, validate=True)
            bitstring = decompressor.decompress(compressed, max_size + 1)
        except (ValueError, binascii.Error, zlib.error) as e:
            raise StatusListError(f"Failed to decode bitstring: {e}") from e
        if len(bitstring) > max_size:
            raise StatusListError(f"Bitstring exceeds {max_size} bytes")
        if not decompressor.eof:
            raise StatusListError("Failed to decode bitstring: incomplete gzip data")
        return cls.from_bytes(bitstring)


@dataclass(frozen=True)
class StatusReference:
    """Where to look up a credential's status."""

    status_list_id: str
    index: int


@dataclass(frozen=True)
class TerseStatusListEntry:
    """Compact ``credentialStatus`` entry used by barcode credentials."""

    base_url: str
    index: int

    @classmethod
    def from_status_list_entry(
        cls,
        status_list_credential: str,
        status_list_index: int,
        status_purpose: str,
        list_len: int = DEFAULT_LIST_LENGTH,
    ) -> TerseStatusListEntry:
        """Compress a full status list entry.

        The status list URL must end in ``/<statusPurpose>/<listIndex>``.

        Raises:
            StatusListError: If the URL does not follow that shape.
        """
        base, _, list_index = status_list_credential.rpartition("/")
        base, _, purpose = base.rpartition("/")
        if not base or not list_index.isdigit():
            raise StatusListError(f"Missing list index in {status_list_credential}")
        if purpose != status_purpose:
            raise StatusListError(
                f"Status purpose {status_purpose!r} does not match URL purpose {purpose!r}"
            )
        if not 0 <= status_list_index < list_len:
            raise StatusListError(f"Status list index {status_list_index} exceeds list length")
        return cls(base_url=base, index=int(list_index) * list_len + status_list_index)

    def to_reference(
        self,
        list_len: int = DEFAULT_LIST_LENGTH,
        status_purpose: str = StatusPurpose.REVOCATION.value,
    ) -> StatusReference:
        """Expand into the status list URL and the index within that list."""
        list_index, status_list_index = divmod(self.index, list_len)
        return StatusReference(
            status_list_id=f"{self.base_url}/{status_purpose}/{list_index}",
            index=status_list_index,
        )

    def to_claims(self) -> dict[str, Any]:
        return {
            "type": TERSE_ENTRY_TYPE,
            "terseStatusListBaseUrl": self.base_url,
            "terseStatusListIndex": self.index,
        }

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> list[TerseStatusListEntry]:
        """Parse the terse entries in a credential's ``credentialStatus``.

        Raises:
            StatusListError: If a terse entry is malformed.
        """
        status_data = claims.get("credentialStatus")
        if not status_data:
            return []

        # Normalize to list
        if not isinstance(status_data, list):
            status_data = [status_data]

        entries: list[TerseStatusListEntry] = []
        for item in status_data:
            if not isinstance(item, Mapping) or item.get("type") != TERSE_ENTRY_TYPE:
                continue
            base_url = item.get("terseStatusListBaseUrl")
            index = item.get("terseStatusListIndex")
            if not isinstance(base_url, str) or not isinstance(index, int) or index < 0:
                raise StatusListError(f"Invalid terse status list entry: {dict(item)}")
            entries.append(cls(base_url=base_url, index=index))
        return entries


@dataclass
class StatusCheckResult:
    """Result of a status check."""

    status: CredentialStatus
    purpose: str
    index: int
    message: str
    status_list_id: str | None = None


def controller_of(key_id: str) -> str:
    """The DID (or other controller) part of a key identifier."""
    return key_id.split("#")[0]


class StatusListChecker:
    """Answers status queries from signed status list credentials."""

    def __init__(
        self,
        resolver: TrustResolver,
        status_purpose: str = StatusPurpose.REVOCATION.value,
        proof_engine: ProofEngine | None = None,
        max_inflated_bytes: int = DEFAULT_MAX_INFLATED_BYTES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the StatusList checker.

        Args:
            resolver: Supplies the status list signer's public key.
            status_purpose: Purpose a status list must declare to be used.
            proof_engine: Engine used to verify status list proofs.
            max_inflated_bytes: Decompression bound for status list claims
                and for the bitstring.
            clock: Returns the current time; used for ``validUntil``.
        """
        self.resolver = resolver
        self.status_purpose = status_purpose
        self.proof_engine = proof_engine or ProofEngine()
        self.max_inflated_bytes = max_inflated_bytes
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._payload_codec = BarcodePayloadCodec(max_payload_bytes=None)

    def check(
        self,
        credential: bytes | None,
        index: int,
        issuer: str | None = None,
        status_list_id: str | None = None,
    ) -> StatusCheckResult:
        """Check a credential index against a status list credential.

        Args:
            credential: Status list credential bytes, or None if unavailable.
            index: The credential's index in the list.
            issuer: Controller that must have signed the status list.
            status_list_id: Identifier the status list must carry.

        Returns:
            StatusCheckResult; UNKNOWN whenever the list cannot be trusted
            or does not cover ``index``.
        """
        opened = self._open(credential, index)
        if isinstance(opened, StatusCheckResult):
            return opened
        compressed, envelope = opened

        try:
            public_key = self.resolver.resolve_key(envelope.key_id)
        except TrustResolutionError as e:
            logger.warning("Status list signer %s not resolved: %s", envelope.key_id, e)
            public_key = None
        return self._evaluate(compressed, envelope, public_key, index, issuer, status_list_id)

    async def acheck(
        self,
        credential: bytes | None,
        index: int,
        issuer: str | None = None,
        status_list_id: str | None = None,
    ) -> StatusCheckResult:
        """Async variant of ``check`` for resolvers returning awaitables."""
        opened = self._open(credential, index)
        if isinstance(opened, StatusCheckResult):
            return opened
        compressed, envelope = opened

        try:
            public_key = await maybe_await(self.resolver.resolve_key(envelope.key_id))
        except TrustResolutionError as e:
            logger.warning("Status list signer %s not resolved: %s", envelope.key_id, e)
            public_key = None
        return self._evaluate(compressed, envelope, public_key, index, issuer, status_list_id)

    def _open(
        self, credential: bytes | None, index: int
    ) -> tuple[CompressedBytes, ProofEnvelope] | StatusCheckResult:
        if credential is None:
            return self._unknown(index, "Status list unavailable")
        try:
            return self._payload_codec.disassemble(credential)
        except VCBarcodeError as e:
            return self._unknown(index, f"Malformed status list credential: {e}")

    def _evaluate(
        self,
        compressed: CompressedBytes,
        envelope: ProofEnvelope,
        public_key: Any,
        index: int,
        issuer: str | None,
        status_list_id: str | None,
    ) -> StatusCheckResult:
        trusted = self._verify(compressed, envelope, public_key, issuer)
        if isinstance(trusted, Rejected):
            logger.warning("Status list not trusted: %s", trusted.detail)
            return self._unknown(index, f"Status list not trusted: {trusted.detail}")

        claims = trusted.value
        if status_list_id is not None and claims.get("id") != status_list_id:
            return self._unknown(index, f"Status list id is not {status_list_id}")

        valid_until = claims.get("validUntil")
        if isinstance(valid_until, datetime) and valid_until < self.clock():
            return self._unknown(index, "Status list has expired")

        subject = claims.get("credentialSubject")
        if not isinstance(subject, Mapping):
            return self._unknown(index, "Missing credentialSubject in status list")

        purpose = subject.get("statusPurpose")
        if purpose != self.status_purpose:
            return self._unknown(
                index, f"Status list purpose {purpose!r} is not {self.status_purpose!r}"
            )

        encoded_list = subject.get("encodedList")
        if not isinstance(encoded_list, str) or not encoded_list:
            return self._unknown(index, "Missing encodedList in status list")
        try:
            status_list = StatusList.decode(encoded_list, self.max_inflated_bytes)
        except StatusListError as e:
            return self._unknown(index, str(e))

        is_set = status_list.get(index)
        if is_set is None:
            return self._unknown(
                index, f"Status list index {index} out of range [0, {len(status_list)})"
            )

        if is_set:
            if purpose == StatusPurpose.SUSPENSION.value:
                status = CredentialStatus.SUSPENDED
                message = f"Credential is suspended (index {index})"
            else:
                status = CredentialStatus.REVOKED
                message = f"Credential is revoked (index {index})"
        else:
            status = CredentialStatus.VALID
            message = f"Credential status is valid ({purpose}, index {index})"

        return StatusCheckResult(
            status=status,
            purpose=purpose,
            index=index,
            message=message,
            status_list_id=claims.get("id"),
        )

    def _verify(
        self,
        compressed: CompressedBytes,
        envelope: ProofEnvelope,
        public_key: Any,
        issuer: str | None,
    ) -> StageResult[dict[str, Any]]:
        if public_key is None:
            return Rejected(RejectionReason.KEY_NOT_FOUND, f"Signer {envelope.key_id} not found")
        if issuer is not None and controller_of(envelope.key_id) != issuer:
            return Rejected(
                RejectionReason.INVALID_SIGNATURE,
                f"Signer {envelope.key_id} is not controlled by {issuer}",
            )
        try:
            if not self.proof_engine.verify(compressed, envelope, public_key):
                return Rejected(RejectionReason.INVALID_SIGNATURE, "Invalid signature")
            dictionary = get_dictionary(compressed.dictionary_version)
            codec = CompressionCodec(dictionary, self.max_inflated_bytes)
            claims = CanonicalEncoder(dictionary).decode(codec.decompress(compressed))
        except VCBarcodeError as e:
            return Rejected.from_error(e)
        return Accepted(claims)

    def _unknown(self, index: int, message: str) -> StatusCheckResult:
        return StatusCheckResult(
            status=CredentialStatus.UNKNOWN,
            purpose=self.status_purpose,
            index=index,
            message=message,
        )


def issue_status_list(
    status_list: StatusList,
    status_list_id: str,
    signing_key: SigningKey,
    status_purpose: str = StatusPurpose.REVOCATION.value,
    valid_until: datetime | None = None,
) -> bytes:
    """Create a signed status list credential.

    Returns:
        The status list credential as barcode payload bytes (without a
        capacity limit, since status lists are fetched, not scanned).
    """
    from vc_barcodes.issuer import BarcodeIssuer

    claims: dict[str, Any] = {
        "@context": ["https://www.w3.org/ns/credentials/v2"],
        "id": status_list_id,
        "type": ["VerifiableCredential", STATUS_LIST_CREDENTIAL_TYPE],
        "issuer": controller_of(signing_key.key_id),
        "credentialSubject": {
            "type": STATUS_LIST_TYPE,
            "statusPurpose": status_purpose,
            "encodedList": status_list.encode(),
        },
    }
    if valid_until is not None:
        claims["validUntil"] = valid_until

    issuer = BarcodeIssuer(signing_key, enforce_capacity=False)
    return issuer.encode(claims).to_bytes()
