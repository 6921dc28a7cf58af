"""
Error taxonomy for barcode credential encoding and verification.

Component APIs raise these exceptions. The verifier turns them into
``Rejected`` stage results so that a verification call always ends in a
single ``VerificationResult``.
"""

from __future__ import annotations

from enum import Enum


class VCBarcodeError(Exception):
    """Base class for all barcode credential errors."""


class MalformedGraph(VCBarcodeError):
    """Raised when a claims graph or its canonical bytes are not well formed."""


class PayloadTooLarge(VCBarcodeError):
    """Raised when an assembled payload exceeds the symbol capacity."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        self.overage = size - limit
        super().__init__(
            f"Payload is {size} bytes, {self.overage} over the {limit} byte limit"
        )


class MalformedPayload(VCBarcodeError):
    """Raised when payload bytes are corrupt or use an unknown version."""


class TruncatedPayload(MalformedPayload):
    """Raised when a payload ends before its declared sections do."""


class UnsupportedAlgorithmTag(VCBarcodeError):
    """Raised for compression or proof algorithm tags this build does not know."""


class SignatureAlgorithmMismatch(VCBarcodeError):
    """Raised when a key does not belong to the envelope's algorithm family."""


class InvalidSignature(VCBarcodeError):
    """Raised when a proof does not verify. Carries no further detail."""

    def __init__(self) -> None:
        super().__init__("Invalid signature")


class TrustResolutionError(VCBarcodeError):
    """Raised by trust resolvers when key or status material cannot be obtained."""


class RejectionReason(Enum):
    """Why a verification was rejected."""

    MALFORMED_PAYLOAD = "malformed_payload"
    TRUNCATED_PAYLOAD = "truncated_payload"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    SIGNATURE_ALGORITHM_MISMATCH = "signature_algorithm_mismatch"
    KEY_NOT_FOUND = "key_not_found"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_GRAPH = "malformed_graph"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    STATUS_UNKNOWN = "status_unknown"


def reason_for(error: VCBarcodeError) -> RejectionReason:
    """Map a component exception onto its rejection reason."""
    if isinstance(error, TruncatedPayload):
        return RejectionReason.TRUNCATED_PAYLOAD
    if isinstance(error, MalformedPayload):
        return RejectionReason.MALFORMED_PAYLOAD
    if isinstance(error, UnsupportedAlgorithmTag):
        return RejectionReason.UNSUPPORTED_ALGORITHM
    if isinstance(error, SignatureAlgorithmMismatch):
        return RejectionReason.SIGNATURE_ALGORITHM_MISMATCH
    if isinstance(error, MalformedGraph):
        return RejectionReason.MALFORMED_GRAPH
    return RejectionReason.INVALID_SIGNATURE
