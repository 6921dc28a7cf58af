"""
Barcode credential issuance.

Encode direction: claims graph -> canonical bytes -> compressed bytes ->
proof -> assembled payload.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from vc_barcodes.canonical import CanonicalEncoder
from vc_barcodes.compression import CompressionCodec
from vc_barcodes.config import CodecConfig
from vc_barcodes.dictionary import get_dictionary
from vc_barcodes.optical import ProtectedComponentIndex
from vc_barcodes.payload import BarcodePayload, BarcodePayloadCodec
from vc_barcodes.proof import ProofEngine, SigningKey

logger = logging.getLogger(__name__)

CREDENTIALS_V2_CONTEXT = "https://www.w3.org/ns/credentials/v2"
VC_BARCODES_CONTEXT = "https://w3id.org/vc-barcodes/v1"


class BarcodeIssuer:
    """Encodes and signs claims graphs into barcode payloads."""

    def __init__(
        self,
        signing_key: SigningKey,
        config: CodecConfig | None = None,
        enforce_capacity: bool = True,
    ) -> None:
        """Initialize the issuer.

        Args:
            signing_key: Private key and the key identifier verifiers
                resolve it by.
            config: Codec settings. Defaults to ``CodecConfig()``.
            enforce_capacity: Apply ``config.max_payload_bytes``. Disabled
                for credentials that are fetched rather than scanned.
        """
        self.signing_key = signing_key
        self.config = config or CodecConfig()
        dictionary = get_dictionary(self.config.dictionary_version)
        self.encoder = CanonicalEncoder(dictionary)
        self.compression = CompressionCodec(dictionary, self.config.max_inflated_bytes)
        self.proof_engine = ProofEngine()
        self.payload_codec = BarcodePayloadCodec(
            self.config.max_payload_bytes if enforce_capacity else None
        )

    def encode(self, claims: Mapping[str, Any], bound_data: bytes = b"") -> BarcodePayload:
        """Encode and sign a claims graph.

        Args:
            claims: The claims graph.
            bound_data: Optical data to bind into the proof, if any.

        Returns:
            The assembled payload.

        Raises:
            MalformedGraph: If the claims cannot be canonicalized.
            PayloadTooLarge: If the payload exceeds the symbol capacity.
        """
        canonical = self.encoder.encode(claims)
        compressed = self.compression.compress(canonical)
        envelope = self.proof_engine.sign(compressed, self.signing_key, bound_data)
        payload = self.payload_codec.assemble(compressed, envelope)
        logger.info(
            "Issued %d byte payload signed by %s",
            len(payload),
            self.signing_key.key_id,
        )
        return payload


def issue_credential(
    claims: Mapping[str, Any],
    signing_key: SigningKey,
    config: CodecConfig | None = None,
    bound_data: bytes = b"",
) -> bytes:
    """Convenience function to issue a credential as payload bytes."""
    return BarcodeIssuer(signing_key, config).encode(claims, bound_data).to_bytes()


def build_optical_barcode_credential(
    issuer: str,
    credential_subject: Mapping[str, Any],
    credential_status: Mapping[str, Any] | None = None,
    extra_contexts: tuple[str, ...] = (),
    protected_component_index: ProtectedComponentIndex | None = None,
) -> dict[str, Any]:
    """Build the claims of an OpticalBarcodeCredential.

    Args:
        issuer: Issuer identifier, usually the DID controlling the key.
        credential_subject: Subject claims, e.g. ``{"type": "MachineReadableZone"}``.
        credential_status: Terse status list entry claims, if any.
        extra_contexts: Additional JSON-LD contexts after the base ones.
        protected_component_index: DL elements an AAMVA credential's
            optical data covers, stored as ``protectedComponentIndex``.
    """
    claims: dict[str, Any] = {
        "@context": [CREDENTIALS_V2_CONTEXT, VC_BARCODES_CONTEXT, *extra_contexts],
        "type": ["VerifiableCredential", "OpticalBarcodeCredential"],
        "issuer": issuer,
        "credentialSubject": dict(credential_subject),
    }
    if protected_component_index is not None:
        claims["credentialSubject"]["protectedComponentIndex"] = protected_component_index.encode()
    if credential_status is not None:
        claims["credentialStatus"] = dict(credential_status)
    return claims
