"""
VC Barcodes - Verifiable Credentials in optical barcodes.

Supports:
- Deterministic CBOR encoding over a versioned term dictionary
- Dictionary substitution and deflate compression
- ES256, ES384 and EdDSA proofs, optionally bound to printed optical data
- MRZ and AAMVA optical data digests for bound proofs
- Terse bitstring status lists for revocation/suspension checking
- did:web key resolution
"""

from vc_barcodes.canonical import CanonicalEncoder, claims_from_json, claims_to_json
from vc_barcodes.compression import CompressedBytes, CompressionAlgorithm, CompressionCodec
from vc_barcodes.config import CodecConfig
from vc_barcodes.errors import (
    InvalidSignature,
    MalformedGraph,
    MalformedPayload,
    PayloadTooLarge,
    RejectionReason,
    SignatureAlgorithmMismatch,
    TrustResolutionError,
    TruncatedPayload,
    UnsupportedAlgorithmTag,
    VCBarcodeError,
)
from vc_barcodes.issuer import BarcodeIssuer, build_optical_barcode_credential, issue_credential
from vc_barcodes.optical import OpticalDataError, ProtectedComponentIndex, mrz_optical_data
from vc_barcodes.payload import BarcodePayload, BarcodePayloadCodec
from vc_barcodes.proof import ProofEngine, ProofEnvelope, SigningKey
from vc_barcodes.qr_text import decode_qr_text, encode_qr_text
from vc_barcodes.resolver import HttpTrustResolver, StaticTrustResolver, TrustResolver
from vc_barcodes.statuslist import (
    CredentialStatus,
    StatusList,
    StatusListChecker,
    StatusReference,
    TerseStatusListEntry,
    issue_status_list,
)
from vc_barcodes.verifier import (
    BarcodeVerifier,
    VerificationOutcome,
    VerificationResult,
    verify_payload,
)

__version__ = "0.1.0"

__all__ = [
    "BarcodeIssuer",
    "BarcodePayload",
    "BarcodePayloadCodec",
    "BarcodeVerifier",
    "CanonicalEncoder",
    "CodecConfig",
    "CompressedBytes",
    "CompressionAlgorithm",
    "CompressionCodec",
    "CredentialStatus",
    "HttpTrustResolver",
    "InvalidSignature",
    "MalformedGraph",
    "MalformedPayload",
    "OpticalDataError",
    "PayloadTooLarge",
    "ProtectedComponentIndex",
    "ProofEngine",
    "ProofEnvelope",
    "RejectionReason",
    "SignatureAlgorithmMismatch",
    "SigningKey",
    "StaticTrustResolver",
    "StatusList",
    "StatusListChecker",
    "StatusReference",
    "TerseStatusListEntry",
    "TrustResolutionError",
    "TrustResolver",
    "TruncatedPayload",
    "UnsupportedAlgorithmTag",
    "VCBarcodeError",
    "VerificationOutcome",
    "VerificationResult",
    "build_optical_barcode_credential",
    "claims_from_json",
    "claims_to_json",
    "decode_qr_text",
    "encode_qr_text",
    "issue_credential",
    "issue_status_list",
    "mrz_optical_data",
    "verify_payload",
]
