"""Shared fixtures for VC barcode tests."""

import pytest
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from vc_barcodes.keys import public_key_to_jwk
from vc_barcodes.proof import SigningKey
from vc_barcodes.resolver import StaticTrustResolver
from vc_barcodes.statuslist import StatusList, issue_status_list

ISSUER_DID = "did:web:example.com"
KEY_ID = "did:web:example.com#key-1"
STATUS_LIST_ID = "https://example.com/status/revocation/0"


@pytest.fixture
def ec_key_pair():
    """Generate a test EC P-256 key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


@pytest.fixture
def ed25519_key_pair():
    private_key = ed25519.Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


@pytest.fixture
def signing_key(ec_key_pair):
    private_key, _ = ec_key_pair
    return SigningKey(private_key=private_key, key_id=KEY_ID)


@pytest.fixture
def public_key_jwk(ec_key_pair):
    """Get the public key as JWK."""
    _, public_key = ec_key_pair
    return public_key_to_jwk(public_key)


@pytest.fixture
def did_document(public_key_jwk):
    """Create a test DID Document."""
    return {
        "@context": [
            "https://www.w3.org/ns/did/v1",
            "https://w3id.org/security/jwk/v1",
        ],
        "id": ISSUER_DID,
        "verificationMethod": [
            {
                "id": KEY_ID,
                "type": "JsonWebKey",
                "controller": ISSUER_DID,
                "publicKeyJwk": public_key_jwk,
            }
        ],
        "authentication": [KEY_ID],
        "assertionMethod": [KEY_ID],
    }


@pytest.fixture
def make_status_list(signing_key):
    """Build a signed status list credential with the given indices set."""

    def _make(revoked=(), length=1024, status_list_id=STATUS_LIST_ID, **kwargs):
        bits = StatusList(length)
        for index in revoked:
            bits.set(index)
        return issue_status_list(bits, status_list_id, signing_key, **kwargs)

    return _make


@pytest.fixture
def resolver(ec_key_pair, make_status_list):
    """Offline resolver trusting the test key, with an empty status list."""
    _, public_key = ec_key_pair
    return StaticTrustResolver(
        keys={KEY_ID: public_key},
        status_lists={STATUS_LIST_ID: make_status_list()},
    )
