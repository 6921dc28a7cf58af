"""Tests for proof creation and verification."""

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from vc_barcodes.compression import CompressedBytes, CompressionAlgorithm
from vc_barcodes.errors import (
    InvalidSignature,
    SignatureAlgorithmMismatch,
    UnsupportedAlgorithmTag,
)
from vc_barcodes.proof import (
    DOMAIN_TAG,
    EDDSA,
    ES256,
    ES384,
    PROOF_ALGORITHMS,
    EcdsaAlgorithm,
    ProofAlgorithm,
    ProofEngine,
    ProofEnvelope,
    SigningKey,
    register_proof_algorithm,
)

from conftest import KEY_ID


@pytest.fixture
def engine():
    return ProofEngine()


@pytest.fixture
def compressed():
    return CompressedBytes(algorithm=CompressionAlgorithm.DICTIONARY, data=b"\x0a\x02\x08\x0b\x04")


def flip_bit(data: bytes, bit: int) -> bytes:
    out = bytearray(data)
    out[bit // 8] ^= 1 << (bit % 8)
    return bytes(out)


class TestProofEngine:
    """Tests for ProofEngine."""

    def test_sign_and_verify_es256(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)

        assert envelope.algorithm == ES256.id
        assert envelope.key_id == KEY_ID
        assert len(envelope.signature) == 64
        assert envelope.algorithm_name == "ES256"
        assert envelope.digest_algorithm == "SHA256"
        assert engine.verify(compressed, envelope, public_key) is True

    def test_sign_and_verify_es384(self, engine, compressed):
        private_key = ec.generate_private_key(ec.SECP384R1())
        envelope = engine.sign(compressed, SigningKey(private_key, KEY_ID))

        assert envelope.algorithm == ES384.id
        assert len(envelope.signature) == 96
        assert engine.verify(compressed, envelope, private_key.public_key()) is True

    def test_sign_and_verify_eddsa(self, engine, compressed, ed25519_key_pair):
        private_key, public_key = ed25519_key_pair
        envelope = engine.sign(compressed, SigningKey(private_key, KEY_ID))

        assert envelope.algorithm == EDDSA.id
        assert engine.verify(compressed, envelope, public_key) is True

    def test_deterministic_signatures(self, engine, compressed, signing_key):
        assert engine.sign(compressed, signing_key) == engine.sign(compressed, signing_key)

    def test_signing_input_has_domain_tag(self, engine, compressed):
        message = engine.signing_input(compressed, ES256, KEY_ID)
        assert message.startswith(DOMAIN_TAG)
        assert compressed.data in message

    def test_every_compressed_bit_flip_invalidates(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)
        for bit in range(len(compressed.data) * 8):
            tampered = CompressedBytes(
                algorithm=compressed.algorithm,
                data=flip_bit(compressed.data, bit),
            )
            assert engine.verify(tampered, envelope, public_key) is False

    def test_signature_bit_flip_invalidates(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)
        for bit in (0, 7, 255, 256, 511):
            tampered = ProofEnvelope(
                algorithm=envelope.algorithm,
                key_id=envelope.key_id,
                signature=flip_bit(envelope.signature, bit),
            )
            with pytest.raises(InvalidSignature):
                engine.require_valid(compressed, tampered, public_key)

    def test_key_id_is_signed(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)
        moved = ProofEnvelope(envelope.algorithm, "did:web:example.com#key-2", envelope.signature)
        assert engine.verify(compressed, moved, public_key) is False

    def test_compression_tag_is_signed(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)
        retagged = CompressedBytes(algorithm=CompressionAlgorithm.RAW, data=compressed.data)
        assert engine.verify(retagged, envelope, public_key) is False

    def test_bound_data(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        mrz = b"IAUTO0000007010SRC0000000701<<\n"
        envelope = engine.sign(compressed, signing_key, bound_data=mrz)

        assert engine.verify(compressed, envelope, public_key, bound_data=mrz) is True
        assert engine.verify(compressed, envelope, public_key) is False
        assert engine.verify(compressed, envelope, public_key, bound_data=mrz + b"X") is False

    def test_wrong_key_is_invalid(self, engine, compressed, signing_key):
        other = ec.generate_private_key(ec.SECP256R1()).public_key()
        envelope = engine.sign(compressed, signing_key)
        assert engine.verify(compressed, envelope, other) is False

    def test_algorithm_mismatch(self, engine, compressed, signing_key, ed25519_key_pair):
        _, ed_public = ed25519_key_pair
        envelope = engine.sign(compressed, signing_key)
        with pytest.raises(SignatureAlgorithmMismatch):
            engine.verify(compressed, envelope, ed_public)

    def test_curve_mismatch(self, engine, compressed, signing_key):
        p384 = ec.generate_private_key(ec.SECP384R1()).public_key()
        envelope = engine.sign(compressed, signing_key)
        with pytest.raises(SignatureAlgorithmMismatch):
            engine.verify(compressed, envelope, p384)

    def test_unknown_algorithm(self, engine, compressed, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = ProofEnvelope(algorithm=7, key_id=KEY_ID, signature=b"\x00" * 64)
        assert envelope.digest_algorithm is None
        with pytest.raises(UnsupportedAlgorithmTag):
            engine.verify(compressed, envelope, public_key)

    def test_truncated_signature_is_invalid(self, engine, compressed, signing_key, ec_key_pair):
        _, public_key = ec_key_pair
        envelope = engine.sign(compressed, signing_key)
        short = ProofEnvelope(envelope.algorithm, envelope.key_id, envelope.signature[:-1])
        assert engine.verify(compressed, short, public_key) is False


class TestAlgorithmRegistry:
    """Tests for the proof algorithm registry."""

    def test_default_algorithms(self):
        assert PROOF_ALGORITHMS[1] is ES256
        assert PROOF_ALGORITHMS[2] is ES384
        assert PROOF_ALGORITHMS[3] is EDDSA

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            PROOF_ALGORITHMS[4] = ES256

    def test_taken_id_refused(self):
        with pytest.raises(ValueError):
            register_proof_algorithm(EcdsaAlgorithm(1, "ES256K", ec.SECP256K1, hashes.SHA256))

    def test_id_must_fit_flag_bits(self):
        with pytest.raises(ValueError):
            register_proof_algorithm(EcdsaAlgorithm(8, "ES256-8", ec.SECP256R1, hashes.SHA256))

    def test_algorithm_must_implement_every_operation(self):
        class SignOnly(ProofAlgorithm):
            id = 6
            name = "SignOnly"
            digest_name = "SHA256"

            def sign(self, private_key, message):
                return b""

        with pytest.raises(TypeError):
            SignOnly()
