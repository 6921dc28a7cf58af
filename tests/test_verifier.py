"""End-to-end tests for barcode issuance and verification."""

import asyncio
from datetime import datetime, timezone

import pytest
import respx
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import Response

from vc_barcodes import (
    BarcodeIssuer,
    BarcodePayloadCodec,
    BarcodeVerifier,
    CanonicalEncoder,
    CodecConfig,
    CompressionCodec,
    HttpTrustResolver,
    ProofEnvelope,
    RejectionReason,
    StaticTrustResolver,
    StatusReference,
    TerseStatusListEntry,
    VerificationOutcome,
    build_optical_barcode_credential,
    decode_qr_text,
    encode_qr_text,
    issue_credential,
    verify_payload,
)
from vc_barcodes.statuslist import CredentialStatus
from vc_barcodes.verifier import SignatureCheck, VerificationStage

from conftest import ISSUER_DID, KEY_ID, STATUS_LIST_ID

ALICE = {"name": "Alice", "id": 42}
STATUS = StatusReference(STATUS_LIST_ID, 42)


@pytest.fixture
def payload(signing_key):
    return issue_credential(ALICE, signing_key)


@pytest.fixture
def verifier(resolver):
    return BarcodeVerifier(resolver)


def flip_byte(data: bytes, index: int) -> bytes:
    out = bytearray(data)
    out[index] ^= 0xFF
    return bytes(out)


class TestEndToEnd:
    """Encode, sign, assemble, then disassemble, verify and reconstruct."""

    def test_verified(self, payload, verifier):
        assert len(payload) <= 800

        result = verifier.verify(payload, STATUS)

        assert result.outcome == VerificationOutcome.VERIFIED
        assert result.is_verified
        assert result.reason is None
        assert result.stage == VerificationStage.VERIFIED
        assert result.signature == SignatureCheck.VALID
        assert result.credential_status == CredentialStatus.VALID
        assert result.claims == ALICE
        assert result.key_id == KEY_ID

    def test_deterministic_payload(self, signing_key):
        assert issue_credential(ALICE, signing_key) == issue_credential(dict(reversed(ALICE.items())), signing_key)

    def test_signature_byte_flipped(self, payload, verifier):
        result = verifier.verify(flip_byte(payload, len(payload) - 1), STATUS)

        assert result.outcome == VerificationOutcome.REJECTED
        assert result.reason == RejectionReason.INVALID_SIGNATURE
        assert result.signature == SignatureCheck.INVALID
        assert result.stage == VerificationStage.DISASSEMBLED
        assert result.claims is None
        assert result.detail == "Invalid signature"

    def test_compressed_byte_flipped(self, payload, verifier):
        result = verifier.verify(flip_byte(payload, 3), STATUS)

        assert result.reason == RejectionReason.INVALID_SIGNATURE
        assert result.claims is None

    def test_revoked(self, payload, ec_key_pair, make_status_list):
        _, public_key = ec_key_pair
        resolver = StaticTrustResolver(
            keys={KEY_ID: public_key},
            status_lists={STATUS_LIST_ID: make_status_list(revoked=[42])},
        )

        result = BarcodeVerifier(resolver).verify(payload, STATUS)

        assert result.outcome == VerificationOutcome.REJECTED
        assert result.reason == RejectionReason.REVOKED
        assert result.signature == SignatureCheck.VALID
        assert result.credential_status == CredentialStatus.REVOKED
        assert result.stage == VerificationStage.SIGNATURE_CHECKED
        assert result.claims is None

    def test_suspended(self, payload, ec_key_pair, make_status_list):
        _, public_key = ec_key_pair
        suspension_id = "https://example.com/status/suspension/0"
        resolver = StaticTrustResolver(
            keys={KEY_ID: public_key},
            status_lists={
                suspension_id: make_status_list(
                    revoked=[42], status_list_id=suspension_id, status_purpose="suspension"
                )
            },
        )
        config = CodecConfig(status_purpose="suspension")

        result = BarcodeVerifier(resolver, config).verify(payload, StatusReference(suspension_id, 42))

        assert result.reason == RejectionReason.SUSPENDED

    def test_status_list_unavailable(self, payload, ec_key_pair):
        _, public_key = ec_key_pair
        resolver = StaticTrustResolver(keys={KEY_ID: public_key})

        result = BarcodeVerifier(resolver).verify(payload, STATUS)

        assert result.reason == RejectionReason.STATUS_UNKNOWN
        assert result.credential_status == CredentialStatus.UNKNOWN
        assert result.claims is None

    def test_unknown_status_accepted_when_not_required(self, payload, ec_key_pair):
        _, public_key = ec_key_pair
        resolver = StaticTrustResolver(keys={KEY_ID: public_key})
        config = CodecConfig(require_status=False)

        result = BarcodeVerifier(resolver, config).verify(payload, STATUS)

        assert result.is_verified
        assert result.credential_status == CredentialStatus.UNKNOWN
        assert result.claims == ALICE

    def test_no_status_entry(self, payload, verifier):
        result = verifier.verify(payload)

        assert result.reason == RejectionReason.STATUS_UNKNOWN
        assert result.status_checks == ()

    def test_index_beyond_list(self, payload, verifier):
        result = verifier.verify(payload, StatusReference(STATUS_LIST_ID, 5000))

        assert result.reason == RejectionReason.STATUS_UNKNOWN

    def test_key_not_found(self, payload, make_status_list):
        resolver = StaticTrustResolver(status_lists={STATUS_LIST_ID: make_status_list()})

        result = BarcodeVerifier(resolver).verify(payload, STATUS)

        assert result.reason == RejectionReason.KEY_NOT_FOUND
        assert result.signature == SignatureCheck.NOT_CHECKED
        assert result.credential_status == CredentialStatus.NOT_CHECKED

    @respx.mock
    def test_did_document_with_malformed_jwk(self, payload, did_document):
        did_document["verificationMethod"][0]["publicKeyJwk"] = "not-a-jwk"
        respx.get("https://example.com/.well-known/did.json").mock(
            return_value=Response(200, json=did_document)
        )

        result = BarcodeVerifier(HttpTrustResolver()).verify(payload, STATUS)

        assert result.reason == RejectionReason.KEY_NOT_FOUND
        assert result.claims is None

    def test_unregistered_proof_algorithm(self, make_status_list):
        compressed = CompressionCodec().compress(CanonicalEncoder().encode(ALICE))
        envelope = ProofEnvelope(algorithm=5, key_id=KEY_ID, signature=bytes(64))
        data = BarcodePayloadCodec().assemble(compressed, envelope).to_bytes()
        resolver = StaticTrustResolver(status_lists={STATUS_LIST_ID: make_status_list()})

        result = BarcodeVerifier(resolver).verify(data, STATUS)

        assert result.reason == RejectionReason.UNSUPPORTED_ALGORITHM
        assert result.signature == SignatureCheck.NOT_CHECKED
        assert result.claims is None

    def test_wrong_key(self, payload):
        other = ec.generate_private_key(ec.SECP256R1()).public_key()

        result = BarcodeVerifier(StaticTrustResolver(keys={KEY_ID: other})).verify(payload, STATUS)

        assert result.reason == RejectionReason.INVALID_SIGNATURE

    def test_algorithm_mismatch(self, payload, ed25519_key_pair):
        _, ed_public = ed25519_key_pair

        result = BarcodeVerifier(StaticTrustResolver(keys={KEY_ID: ed_public})).verify(payload, STATUS)

        assert result.reason == RejectionReason.SIGNATURE_ALGORITHM_MISMATCH

    def test_unknown_version(self, payload, verifier):
        data = bytes([0x42]) + payload[1:]

        result = verifier.verify(data, STATUS)

        assert result.reason == RejectionReason.MALFORMED_PAYLOAD
        assert result.stage == VerificationStage.RAW
        assert result.key_id is None

    def test_truncated_scan(self, payload, verifier):
        result = verifier.verify(payload[:-10], STATUS)

        assert result.reason == RejectionReason.TRUNCATED_PAYLOAD
        assert result.stage == VerificationStage.RAW

    def test_bound_data(self, signing_key, verifier):
        mrz = b"IAUTO0000007010SRC0000000701<<\n8804192M2601058NOT<<<<<<<<<<<5\n"
        data = issue_credential(ALICE, signing_key, bound_data=mrz)

        assert verifier.verify(data, STATUS, bound_data=mrz).is_verified
        assert verifier.verify(data, STATUS).reason == RejectionReason.INVALID_SIGNATURE

    def test_qr_text_transport(self, payload, verifier):
        text = encode_qr_text(payload)

        assert verifier.verify(decode_qr_text(text), STATUS).claims == ALICE

    def test_verify_payload(self, payload, resolver):
        assert verify_payload(payload, resolver, STATUS).is_verified

    def test_averify(self, payload, resolver):
        class AsyncResolver:
            async def resolve_key(self, key_id):
                return resolver.resolve_key(key_id)

            async def fetch_status_list(self, status_list_id):
                return resolver.fetch_status_list(status_list_id)

        result = asyncio.run(BarcodeVerifier(AsyncResolver()).averify(payload, STATUS))

        assert result.is_verified
        assert result.claims == ALICE


class TestOpticalBarcodeCredential:
    """Credentials carrying a terse status entry."""

    @pytest.fixture
    def claims(self):
        entry = TerseStatusListEntry.from_status_list_entry(
            STATUS_LIST_ID, 42, "revocation", list_len=1024
        )
        return build_optical_barcode_credential(
            ISSUER_DID,
            {"type": "MachineReadableZone"},
            credential_status=entry.to_claims(),
        ) | {"validFrom": datetime(2025, 1, 15, tzinfo=timezone.utc)}

    @pytest.fixture
    def config(self):
        return CodecConfig(status_list_length=1024)

    def test_status_from_terse_entry(self, claims, config, signing_key, resolver):
        data = BarcodeIssuer(signing_key, config).encode(claims).to_bytes()

        result = BarcodeVerifier(resolver, config).verify(data)

        assert result.is_verified
        assert result.claims == claims
        assert [check.status_list_id for check in result.status_checks] == [STATUS_LIST_ID]
        assert result.status_checks[0].index == 42

    def test_revoked_through_terse_entry(self, claims, config, signing_key, ec_key_pair, make_status_list):
        _, public_key = ec_key_pair
        resolver = StaticTrustResolver(
            keys={KEY_ID: public_key},
            status_lists={STATUS_LIST_ID: make_status_list(revoked=[42])},
        )
        data = BarcodeIssuer(signing_key, config).encode(claims).to_bytes()

        result = BarcodeVerifier(resolver, config).verify(data)

        assert result.reason == RejectionReason.REVOKED
        assert result.claims is None

    def test_compact(self, claims, config, signing_key):
        payload = BarcodeIssuer(signing_key, config).encode(claims)

        assert payload.compressed.algorithm == 1  # dictionary substitution
        assert len(payload) < 256

    @respx.mock
    def test_online_verification(self, claims, config, signing_key, did_document, make_status_list):
        respx.get("https://example.com/.well-known/did.json").mock(
            return_value=Response(200, json=did_document)
        )
        respx.get(STATUS_LIST_ID).mock(return_value=Response(200, content=make_status_list()))
        data = BarcodeIssuer(signing_key, config).encode(claims).to_bytes()

        result = BarcodeVerifier(HttpTrustResolver(), config).verify(data)

        assert result.is_verified
        assert result.credential_status == CredentialStatus.VALID


class TestCodecConfig:
    def test_defaults(self):
        config = CodecConfig()
        assert config.max_payload_bytes == 2953
        assert config.require_status is True

    def test_from_env(self):
        config = CodecConfig.from_env(
            {
                "VCB_MAX_PAYLOAD_BYTES": "1200",
                "VCB_REQUIRE_STATUS": "false",
                "VCB_STATUS_PURPOSE": "suspension",
            }
        )
        assert config.max_payload_bytes == 1200
        assert config.require_status is False
        assert config.status_purpose == "suspension"

    def test_from_env_invalid(self):
        with pytest.raises(ValueError):
            CodecConfig.from_env({"VCB_MAX_PAYLOAD_BYTES": "lots"})
        with pytest.raises(ValueError):
            CodecConfig.from_env({"VCB_STATUS_PURPOSE": "archival"})
