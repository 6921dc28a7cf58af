"""
Proof creation and verification over compressed claims.

Proofs are computed over the compressed bytes, after compression, bound to
the payload version, the compression tag, the proof algorithm and the signer
key identifier under a domain separation tag. Optionally the digest of the
optical data printed next to the barcode (MRZ lines, AAMVA PDF417 text) is
bound into the proof as well, as the ecdsa-xi-2023 cryptosuite does.

Supported algorithms:
- ES256: ECDSA P-256 with SHA-256
- ES384: ECDSA P-384 with SHA-384
- EdDSA: Ed25519
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from cryptography.exceptions import InvalidSignature as BadSignatureError
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from vc_barcodes.compression import CompressedBytes
from vc_barcodes.errors import (
    InvalidSignature,
    SignatureAlgorithmMismatch,
    UnsupportedAlgorithmTag,
)
from vc_barcodes.varint import encode_uvarint

logger = logging.getLogger(__name__)

DOMAIN_TAG = b"vc-barcodes/v0.7/proof\x00"

MAX_ALGORITHM_ID = 0b111

_NO_BOUND_DATA = b"\x00"
_BOUND_DATA = b"\x01"


class ProofAlgorithm(ABC):
    """A signature algorithm that can appear in a proof envelope."""

    id: int
    name: str
    digest_name: str

    @abstractmethod
    def accepts_private_key(self, key: Any) -> bool:
        """Whether this algorithm signs with the given private key."""
        pass

    @abstractmethod
    def accepts_public_key(self, key: Any) -> bool:
        """Whether this algorithm verifies with the given public key."""
        pass

    @abstractmethod
    def digest(self, data: bytes) -> bytes:
        """Hash bound data with the algorithm's own digest."""
        pass

    @abstractmethod
    def sign(self, private_key: Any, message: bytes) -> bytes:
        """Sign a message, returning the raw signature."""
        pass

    @abstractmethod
    def verify(self, public_key: Any, signature: bytes, message: bytes) -> bool:
        """Check a raw signature over a message."""
        pass


class EcdsaAlgorithm(ProofAlgorithm):
    """ECDSA with deterministic nonces and fixed-width ``r || s`` signatures."""

    def __init__(
        self,
        id: int,
        name: str,
        curve: type[ec.EllipticCurve],
        hash_algorithm: type[hashes.HashAlgorithm],
    ) -> None:
        self.id = id
        self.name = name
        self.curve = curve
        self.hash_algorithm = hash_algorithm
        self.digest_name = hash_algorithm.name.upper()
        self.coordinate_size = (curve.key_size + 7) // 8

    def accepts_private_key(self, key: Any) -> bool:
        return isinstance(key, ec.EllipticCurvePrivateKey) and isinstance(key.curve, self.curve)

    def accepts_public_key(self, key: Any) -> bool:
        return isinstance(key, ec.EllipticCurvePublicKey) and isinstance(key.curve, self.curve)

    def digest(self, data: bytes) -> bytes:
        h = hashes.Hash(self.hash_algorithm())
        h.update(data)
        return h.finalize()

    def sign(self, private_key: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
        der = private_key.sign(
            message,
            ec.ECDSA(self.hash_algorithm(), deterministic_signing=True),
        )
        r, s = decode_dss_signature(der)
        size = self.coordinate_size
        return r.to_bytes(size, byteorder="big") + s.to_bytes(size, byteorder="big")

    def verify(
        self, public_key: ec.EllipticCurvePublicKey, signature: bytes, message: bytes
    ) -> bool:
        size = self.coordinate_size
        if len(signature) != 2 * size:
            return False
        r = int.from_bytes(signature[:size], byteorder="big")
        s = int.from_bytes(signature[size:], byteorder="big")
        try:
            public_key.verify(
                encode_dss_signature(r, s),
                message,
                ec.ECDSA(self.hash_algorithm()),
            )
        except (BadSignatureError, ValueError):
            return False
        return True


class Ed25519Algorithm(ProofAlgorithm):
    """EdDSA over Curve25519."""

    def __init__(self, id: int) -> None:
        self.id = id
        self.name = "EdDSA"
        self.digest_name = "SHA512"

    def accepts_private_key(self, key: Any) -> bool:
        return isinstance(key, ed25519.Ed25519PrivateKey)

    def accepts_public_key(self, key: Any) -> bool:
        return isinstance(key, ed25519.Ed25519PublicKey)

    def digest(self, data: bytes) -> bytes:
        h = hashes.Hash(hashes.SHA512())
        h.update(data)
        return h.finalize()

    def sign(self, private_key: ed25519.Ed25519PrivateKey, message: bytes) -> bytes:
        return private_key.sign(message)

    def verify(
        self, public_key: ed25519.Ed25519PublicKey, signature: bytes, message: bytes
    ) -> bool:
        if len(signature) != 64:
            return False
        try:
            public_key.verify(signature, message)
        except BadSignatureError:
            return False
        return True


ES256 = EcdsaAlgorithm(1, "ES256", ec.SECP256R1, hashes.SHA256)
ES384 = EcdsaAlgorithm(2, "ES384", ec.SECP384R1, hashes.SHA384)
EDDSA = Ed25519Algorithm(3)

_ALGORITHMS: dict[int, ProofAlgorithm] = {}

PROOF_ALGORITHMS: Mapping[int, ProofAlgorithm] = MappingProxyType(_ALGORITHMS)
"""Read-only view of the registered proof algorithms, keyed by id."""


def register_proof_algorithm(algorithm: ProofAlgorithm) -> ProofAlgorithm:
    """Register a proof algorithm under its three bit id.

    Meant to be called at import time.
    """
    if not 0 < algorithm.id <= MAX_ALGORITHM_ID:
        raise ValueError(f"Proof algorithm id must be 1..{MAX_ALGORITHM_ID}")
    existing = _ALGORITHMS.get(algorithm.id)
    if existing is not None and existing is not algorithm:
        raise ValueError(f"Proof algorithm id {algorithm.id} is taken by {existing.name}")
    _ALGORITHMS[algorithm.id] = algorithm
    return algorithm


for _algorithm in (ES256, ES384, EDDSA):
    register_proof_algorithm(_algorithm)


def get_proof_algorithm(algorithm_id: int) -> ProofAlgorithm:
    """Look up a proof algorithm by id.

    Raises:
        UnsupportedAlgorithmTag: If the id is not registered.
    """
    try:
        return _ALGORITHMS[algorithm_id]
    except KeyError:
        raise UnsupportedAlgorithmTag(f"Unknown proof algorithm id {algorithm_id}") from None


def algorithm_for_private_key(private_key: Any) -> ProofAlgorithm:
    """Find the registered algorithm that signs with this key type.

    Raises:
        UnsupportedAlgorithmTag: If no registered algorithm accepts the key.
    """
    for algorithm in _ALGORITHMS.values():
        if algorithm.accepts_private_key(private_key):
            return algorithm
    raise UnsupportedAlgorithmTag(
        f"No proof algorithm for key type {type(private_key).__name__}"
    )


@dataclass(frozen=True)
class SigningKey:
    """A private key and the identifier verifiers resolve its public key by."""

    private_key: Any
    key_id: str

    @property
    def algorithm(self) -> ProofAlgorithm:
        return algorithm_for_private_key(self.private_key)


@dataclass(frozen=True)
class ProofEnvelope:
    """Signature bound to the algorithm and key that produced it."""

    algorithm: int
    key_id: str
    signature: bytes

    @property
    def algorithm_name(self) -> str:
        algorithm = PROOF_ALGORITHMS.get(self.algorithm)
        return algorithm.name if algorithm else f"unknown({self.algorithm})"

    @property
    def digest_algorithm(self) -> str | None:
        algorithm = PROOF_ALGORITHMS.get(self.algorithm)
        return algorithm.digest_name if algorithm else None


class ProofEngine:
    """Signs and verifies compressed claims.

    The engine never resolves keys: callers pass an already resolved
    public key, so verification is a pure function of its inputs.
    """

    def signing_input(
        self,
        compressed: CompressedBytes,
        algorithm: ProofAlgorithm,
        key_id: str,
        bound_data: bytes = b"",
    ) -> bytes:
        """Build the exact bytes a proof signs."""
        key_id_bytes = key_id.encode("utf-8")
        message = bytearray(DOMAIN_TAG)
        message += bytes(
            [compressed.dictionary_version & 0xFF, compressed.algorithm & 0xFF, algorithm.id]
        )
        message += encode_uvarint(len(key_id_bytes))
        message += key_id_bytes
        message += encode_uvarint(len(compressed.data))
        message += compressed.data
        if bound_data:
            message += _BOUND_DATA
            message += algorithm.digest(bound_data)
        else:
            message += _NO_BOUND_DATA
        return bytes(message)

    def sign(
        self,
        compressed: CompressedBytes,
        signing_key: SigningKey,
        bound_data: bytes = b"",
    ) -> ProofEnvelope:
        """Sign compressed claims.

        Args:
            compressed: Output of the compression codec.
            signing_key: Private key and its key identifier.
            bound_data: Optical data to bind into the proof, if any.

        Returns:
            The proof envelope.

        Raises:
            UnsupportedAlgorithmTag: If the key type has no registered algorithm.
        """
        algorithm = signing_key.algorithm
        message = self.signing_input(compressed, algorithm, signing_key.key_id, bound_data)
        signature = algorithm.sign(signing_key.private_key, message)
        logger.debug(
            "Signed %d compressed bytes with %s key %s",
            len(compressed.data),
            algorithm.name,
            signing_key.key_id,
        )
        return ProofEnvelope(
            algorithm=algorithm.id,
            key_id=signing_key.key_id,
            signature=signature,
        )

    def verify(
        self,
        compressed: CompressedBytes,
        envelope: ProofEnvelope,
        public_key: Any,
        bound_data: bytes = b"",
    ) -> bool:
        """Verify a proof envelope against compressed claims.

        Returns:
            True if the signature is valid, False otherwise.

        Raises:
            UnsupportedAlgorithmTag: If the envelope names an unknown algorithm.
            SignatureAlgorithmMismatch: If the public key does not belong to
                the envelope's algorithm family.
        """
        algorithm = get_proof_algorithm(envelope.algorithm)
        if not algorithm.accepts_public_key(public_key):
            raise SignatureAlgorithmMismatch(
                f"Envelope declares {algorithm.name} but the key is a "
                f"{type(public_key).__name__}"
            )
        message = self.signing_input(compressed, algorithm, envelope.key_id, bound_data)
        return algorithm.verify(public_key, envelope.signature, message)

    def require_valid(
        self,
        compressed: CompressedBytes,
        envelope: ProofEnvelope,
        public_key: Any,
        bound_data: bytes = b"",
    ) -> None:
        """Like ``verify`` but raises ``InvalidSignature`` instead of returning False."""
        if not self.verify(compressed, envelope, public_key, bound_data):
            raise InvalidSignature()
