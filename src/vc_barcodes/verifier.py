"""
Barcode credential verification.

Decodes and verifies barcode payloads as a fail-closed state machine:

    RAW -> DISASSEMBLED -> SIGNATURE_CHECKED -> STATUS_CHECKED -> VERIFIED

Each stage yields ``Accepted`` or ``Rejected``; the first rejection ends
verification. Reconstructed claims are only released with a VERIFIED result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from vc_barcodes.canonical import CanonicalEncoder
from vc_barcodes.compression import CompressedBytes, CompressionCodec
from vc_barcodes.config import CodecConfig
from vc_barcodes.dictionary import get_dictionary
from vc_barcodes.errors import RejectionReason, TrustResolutionError, VCBarcodeError
from vc_barcodes.payload import BarcodePayloadCodec
from vc_barcodes.proof import ProofEngine, ProofEnvelope, get_proof_algorithm
from vc_barcodes.resolver import TrustResolver, maybe_await
from vc_barcodes.result import Accepted, Rejected, StageResult
from vc_barcodes.statuslist import (
    CredentialStatus,
    StatusCheckResult,
    StatusListChecker,
    StatusListError,
    StatusReference,
    TerseStatusListEntry,
    controller_of,
)

logger = logging.getLogger(__name__)


class VerificationOutcome(Enum):
    """Overall verification outcome."""

    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationStage(Enum):
    """Last stage a payload passed."""

    RAW = "raw"
    DISASSEMBLED = "disassembled"
    SIGNATURE_CHECKED = "signature_checked"
    STATUS_CHECKED = "status_checked"
    VERIFIED = "verified"


class SignatureCheck(Enum):
    """Result of the proof check."""

    VALID = "valid"
    INVALID = "invalid"
    NOT_CHECKED = "not_checked"


_STATUS_REASONS = {
    CredentialStatus.REVOKED: RejectionReason.REVOKED,
    CredentialStatus.SUSPENDED: RejectionReason.SUSPENDED,
    CredentialStatus.UNKNOWN: RejectionReason.STATUS_UNKNOWN,
}


@dataclass
class VerificationResult:
    """Complete verification result, owned by the caller."""

    outcome: VerificationOutcome
    stage: VerificationStage
    reason: RejectionReason | None = None
    signature: SignatureCheck = SignatureCheck.NOT_CHECKED
    credential_status: CredentialStatus = CredentialStatus.NOT_CHECKED
    claims: dict[str, Any] | None = None
    key_id: str | None = None
    status_checks: tuple[StatusCheckResult, ...] = ()
    detail: str = ""

    @property
    def is_verified(self) -> bool:
        return self.outcome == VerificationOutcome.VERIFIED


@dataclass
class _Progress:
    """Mutable verification state while stages run."""

    stage: VerificationStage = VerificationStage.RAW
    signature: SignatureCheck = SignatureCheck.NOT_CHECKED
    credential_status: CredentialStatus = CredentialStatus.NOT_CHECKED
    key_id: str | None = None
    status_checks: tuple[StatusCheckResult, ...] = ()

    def reject(self, rejected: Rejected) -> VerificationResult:
        logger.info(
            "Rejected after %s: %s %s",
            self.stage.value,
            rejected.reason.value,
            rejected.detail,
        )
        return VerificationResult(
            outcome=VerificationOutcome.REJECTED,
            stage=self.stage,
            reason=rejected.reason,
            signature=self.signature,
            credential_status=self.credential_status,
            key_id=self.key_id,
            status_checks=self.status_checks,
            detail=rejected.detail,
        )

    def verified(self, claims: dict[str, Any]) -> VerificationResult:
        return VerificationResult(
            outcome=VerificationOutcome.VERIFIED,
            stage=VerificationStage.VERIFIED,
            signature=self.signature,
            credential_status=self.credential_status,
            claims=claims,
            key_id=self.key_id,
            status_checks=self.status_checks,
        )


class BarcodeVerifier:
    """Verifies barcode payloads against keys and status lists from a resolver."""

    def __init__(
        self,
        resolver: TrustResolver,
        config: CodecConfig | None = None,
        proof_engine: ProofEngine | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            resolver: Supplies signer keys and status list credentials.
            config: Codec settings. Defaults to ``CodecConfig()``.
            proof_engine: Engine used to verify proofs.
        """
        self.resolver = resolver
        self.config = config or CodecConfig()
        self.proof_engine = proof_engine or ProofEngine()
        # Scanned payloads are parsed whatever their size
        self.payload_codec = BarcodePayloadCodec(max_payload_bytes=None)
        self.status_checker = StatusListChecker(
            resolver,
            status_purpose=self.config.status_purpose,
            proof_engine=self.proof_engine,
            max_inflated_bytes=self.config.max_inflated_bytes,
        )

    def verify(
        self,
        data: bytes,
        status: StatusReference | None = None,
        bound_data: bytes = b"",
    ) -> VerificationResult:
        """Decode and verify a barcode payload.

        Args:
            data: Scanned payload bytes.
            status: Where to check the credential's status. If omitted the
                terse status entry in the signed claims is used.
            bound_data: Optical data the proof must be bound to, if any.

        Returns:
            VerificationResult; VERIFIED only if every stage succeeded and
            the credential status is confirmed.
        """
        progress = _Progress()

        opened = self._disassemble(data, progress)
        if isinstance(opened, Rejected):
            return progress.reject(opened)
        compressed, envelope = opened.value

        try:
            public_key = self.resolver.resolve_key(envelope.key_id)
        except TrustResolutionError as e:
            logger.warning("Key %s not resolved: %s", envelope.key_id, e)
            public_key = None
        checked = self._check_signature(compressed, envelope, public_key, bound_data, progress)
        if isinstance(checked, Rejected):
            return progress.reject(checked)

        references = self._status_references(status, compressed)
        if isinstance(references, Rejected):
            return progress.reject(references)
        refs, claims = references.value

        results = []
        for ref in refs:
            try:
                credential = self.resolver.fetch_status_list(ref.status_list_id)
            except TrustResolutionError as e:
                logger.warning("Status list %s unavailable: %s", ref.status_list_id, e)
                credential = None
            result = self.status_checker.check(
                credential,
                ref.index,
                issuer=controller_of(envelope.key_id),
                status_list_id=ref.status_list_id,
            )
            results.append(result)
            if result.status != CredentialStatus.VALID:
                break
        return self._finish(compressed, claims, results, progress)

    async def averify(
        self,
        data: bytes,
        status: StatusReference | None = None,
        bound_data: bytes = b"",
    ) -> VerificationResult:
        """Async variant of ``verify`` for resolvers returning awaitables."""
        progress = _Progress()

        opened = self._disassemble(data, progress)
        if isinstance(opened, Rejected):
            return progress.reject(opened)
        compressed, envelope = opened.value

        try:
            public_key = await maybe_await(self.resolver.resolve_key(envelope.key_id))
        except TrustResolutionError as e:
            logger.warning("Key %s not resolved: %s", envelope.key_id, e)
            public_key = None
        checked = self._check_signature(compressed, envelope, public_key, bound_data, progress)
        if isinstance(checked, Rejected):
            return progress.reject(checked)

        references = self._status_references(status, compressed)
        if isinstance(references, Rejected):
            return progress.reject(references)
        refs, claims = references.value

        results = []
        for ref in refs:
            try:
                credential = await maybe_await(
                    self.resolver.fetch_status_list(ref.status_list_id)
                )
            except TrustResolutionError as e:
                logger.warning("Status list %s unavailable: %s", ref.status_list_id, e)
                credential = None
            result = await self.status_checker.acheck(
                credential,
                ref.index,
                issuer=controller_of(envelope.key_id),
                status_list_id=ref.status_list_id,
            )
            results.append(result)
            if result.status != CredentialStatus.VALID:
                break
        return self._finish(compressed, claims, results, progress)

    def _disassemble(
        self, data: bytes, progress: _Progress
    ) -> StageResult[tuple[CompressedBytes, ProofEnvelope]]:
        try:
            compressed, envelope = self.payload_codec.disassemble(data)
            # Unknown algorithms are rejected before any key lookup
            get_proof_algorithm(envelope.algorithm)
        except VCBarcodeError as e:
            return Rejected.from_error(e)
        progress.stage = VerificationStage.DISASSEMBLED
        progress.key_id = envelope.key_id
        logger.debug(
            "Disassembled payload: version %d, compression %d, %s by %s",
            compressed.dictionary_version,
            compressed.algorithm,
            envelope.algorithm_name,
            envelope.key_id,
        )
        return Accepted((compressed, envelope))

    def _check_signature(
        self,
        compressed: CompressedBytes,
        envelope: ProofEnvelope,
        public_key: Any,
        bound_data: bytes,
        progress: _Progress,
    ) -> StageResult[None]:
        if public_key is None:
            return Rejected(RejectionReason.KEY_NOT_FOUND, f"Key {envelope.key_id} not found")
        try:
            valid = self.proof_engine.verify(compressed, envelope, public_key, bound_data)
        except VCBarcodeError as e:
            return Rejected.from_error(e)
        if not valid:
            progress.signature = SignatureCheck.INVALID
            return Rejected(RejectionReason.INVALID_SIGNATURE, "Invalid signature")
        progress.signature = SignatureCheck.VALID
        progress.stage = VerificationStage.SIGNATURE_CHECKED
        logger.debug("Signature by %s is valid", envelope.key_id)
        return Accepted(None)

    def _status_references(
        self, status: StatusReference | None, compressed: CompressedBytes
    ) -> StageResult[tuple[list[StatusReference], dict[str, Any] | None]]:
        """Status references to check, plus the claims if they had to be read."""
        if status is not None:
            return Accepted(([status], None))

        claims = self._reconstruct(compressed)
        if isinstance(claims, Rejected):
            return claims
        try:
            entries = TerseStatusListEntry.from_claims(claims.value)
        except StatusListError as e:
            return Rejected(RejectionReason.MALFORMED_GRAPH, str(e))
        refs = [
            entry.to_reference(self.config.status_list_length, self.config.status_purpose)
            for entry in entries
        ]
        return Accepted((refs, claims.value))

    def _reconstruct(self, compressed: CompressedBytes) -> StageResult[dict[str, Any]]:
        try:
            dictionary = get_dictionary(compressed.dictionary_version)
            codec = CompressionCodec(dictionary, self.config.max_inflated_bytes)
            canonical = codec.decompress(compressed)
            return Accepted(CanonicalEncoder(dictionary).decode(canonical))
        except VCBarcodeError as e:
            return Rejected.from_error(e)

    def _finish(
        self,
        compressed: CompressedBytes,
        claims: dict[str, Any] | None,
        results: list[StatusCheckResult],
        progress: _Progress,
    ) -> VerificationResult:
        progress.status_checks = tuple(results)
        if not results:
            progress.credential_status = CredentialStatus.UNKNOWN
            detail = "Credential carries no status entry"
        else:
            last = results[-1]
            progress.credential_status = last.status
            detail = last.message

        status = progress.credential_status
        if status in (CredentialStatus.REVOKED, CredentialStatus.SUSPENDED):
            return progress.reject(Rejected(_STATUS_REASONS[status], detail))
        if status == CredentialStatus.UNKNOWN and self.config.require_status:
            return progress.reject(Rejected(_STATUS_REASONS[status], detail))
        if status == CredentialStatus.UNKNOWN:
            logger.warning("Status not confirmed, accepted by configuration: %s", detail)
        progress.stage = VerificationStage.STATUS_CHECKED

        if claims is None:
            reconstructed = self._reconstruct(compressed)
            if isinstance(reconstructed, Rejected):
                return progress.reject(reconstructed)
            claims = reconstructed.value
        return progress.verified(claims)


def verify_payload(
    data: bytes,
    resolver: TrustResolver,
    status: StatusReference | None = None,
    config: CodecConfig | None = None,
    bound_data: bytes = b"",
) -> VerificationResult:
    """Convenience function to verify a barcode payload.

    Args:
        data: Scanned payload bytes.
        resolver: Supplies signer keys and status list credentials.
        status: Where to check the credential's status, if known.
        config: Codec settings.
        bound_data: Optical data the proof must be bound to, if any.

    Returns:
        VerificationResult with details of all checks.
    """
    return BarcodeVerifier(resolver, config).verify(data, status, bound_data)
