"""Tests for trust resolution."""

import httpx
import pytest
import respx
from httpx import Response

from vc_barcodes.errors import TrustResolutionError
from vc_barcodes.keys import InvalidKeyError, public_key_from_jwk, public_key_to_jwk
from vc_barcodes.resolver import HttpTrustResolver, StaticTrustResolver, did_web_to_url

from conftest import ISSUER_DID, KEY_ID, STATUS_LIST_ID

DID_URL = "https://example.com/.well-known/did.json"


class TestDidWebToUrl:
    """Tests for did:web URL conversion."""

    def test_simple(self):
        assert did_web_to_url("did:web:example.com") == DID_URL

    def test_with_path(self):
        url = did_web_to_url("did:web:example.com:users:alice")
        assert url == "https://example.com/users/alice/did.json"

    def test_with_port(self):
        url = did_web_to_url("did:web:example.com%3A8080")
        assert url == "https://example.com:8080/.well-known/did.json"

    def test_with_fragment(self):
        assert did_web_to_url(KEY_ID) == DID_URL

    def test_not_did_web(self):
        with pytest.raises(TrustResolutionError):
            did_web_to_url("did:key:z6Mk")


class TestKeys:
    def test_jwk_round_trip(self, ec_key_pair, ed25519_key_pair):
        for _, public_key in (ec_key_pair, ed25519_key_pair):
            jwk = public_key_to_jwk(public_key)
            assert public_key_to_jwk(public_key_from_jwk(jwk)) == jwk

    def test_unsupported_jwk(self):
        with pytest.raises(InvalidKeyError):
            public_key_from_jwk({"kty": "RSA", "n": "AQAB", "e": "AQAB"})

    def test_incomplete_jwk(self):
        with pytest.raises(InvalidKeyError):
            public_key_from_jwk({"kty": "EC", "crv": "P-256", "x": "AAAA"})

    @pytest.mark.parametrize("jwk", ["not-a-jwk", ["kty", "EC"], None])
    def test_jwk_not_an_object(self, jwk):
        with pytest.raises(InvalidKeyError):
            public_key_from_jwk(jwk)


class TestStaticTrustResolver:
    def test_lookup(self, ec_key_pair):
        _, public_key = ec_key_pair
        resolver = StaticTrustResolver(keys={KEY_ID: public_key})
        resolver.add_status_list(STATUS_LIST_ID, b"\x01")

        assert resolver.resolve_key(KEY_ID) is public_key
        assert resolver.resolve_key("did:web:other#key-1") is None
        assert resolver.fetch_status_list(STATUS_LIST_ID) == b"\x01"
        assert resolver.fetch_status_list("https://example.com/missing") is None


class TestHttpTrustResolver:
    """Tests for did:web resolution over HTTP."""

    @respx.mock
    def test_resolve_did(self, did_document):
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        document = HttpTrustResolver().resolve_did(ISSUER_DID)

        assert document.id == ISSUER_DID
        assert len(document.verification_methods) == 1
        assert document.verification_methods[0].id == KEY_ID

    @respx.mock
    def test_resolve_key(self, did_document, ec_key_pair):
        _, public_key = ec_key_pair
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        resolved = HttpTrustResolver().resolve_key(KEY_ID)

        assert public_key_to_jwk(resolved) == public_key_to_jwk(public_key)

    @respx.mock
    def test_documents_are_cached(self, did_document):
        route = respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        resolver = HttpTrustResolver()
        resolver.resolve_key(KEY_ID)
        resolver.resolve_key(KEY_ID)
        assert route.call_count == 1

        resolver.clear_cache()
        resolver.resolve_key(KEY_ID)
        assert route.call_count == 2

    @respx.mock
    def test_embedded_assertion_method(self, public_key_jwk):
        document = {
            "id": ISSUER_DID,
            "assertionMethod": [
                {
                    "id": KEY_ID,
                    "type": "JsonWebKey",
                    "controller": ISSUER_DID,
                    "publicKeyJwk": public_key_jwk,
                }
            ],
        }
        respx.get(DID_URL).mock(return_value=Response(200, json=document))

        assert HttpTrustResolver().resolve_key(KEY_ID) is not None

    @respx.mock
    def test_key_must_be_assertion_method(self, did_document):
        did_document["assertionMethod"] = []
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        assert HttpTrustResolver().resolve_key(KEY_ID) is None

    @respx.mock
    def test_jwk_not_an_object(self, did_document):
        did_document["verificationMethod"][0]["publicKeyJwk"] = "not-a-jwk"
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        assert HttpTrustResolver().resolve_key(KEY_ID) is None

    @respx.mock
    def test_unknown_key_not_found(self, did_document):
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        assert HttpTrustResolver().resolve_key(ISSUER_DID + "#key-9") is None

    @respx.mock
    def test_document_id_mismatch(self, did_document):
        did_document["id"] = "did:web:attacker.example"
        respx.get(DID_URL).mock(return_value=Response(200, json=did_document))

        with pytest.raises(TrustResolutionError):
            HttpTrustResolver().resolve_did(ISSUER_DID)

    @respx.mock
    def test_http_error(self):
        respx.get(DID_URL).mock(return_value=Response(404))

        resolver = HttpTrustResolver()
        with pytest.raises(TrustResolutionError):
            resolver.resolve_did(ISSUER_DID)
        assert resolver.resolve_key(KEY_ID) is None

    @respx.mock
    def test_network_error(self):
        respx.get(DID_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        assert HttpTrustResolver().resolve_key(KEY_ID) is None

    @respx.mock
    def test_invalid_json(self):
        respx.get(DID_URL).mock(return_value=Response(200, content=b"<html>"))

        with pytest.raises(TrustResolutionError):
            HttpTrustResolver().resolve_did(ISSUER_DID)

    @respx.mock
    def test_fetch_status_list(self):
        route = respx.get(STATUS_LIST_ID).mock(return_value=Response(200, content=b"\x01\x02"))

        resolver = HttpTrustResolver()
        assert resolver.fetch_status_list(STATUS_LIST_ID) == b"\x01\x02"
        assert resolver.fetch_status_list(STATUS_LIST_ID) == b"\x01\x02"
        assert route.call_count == 1

    @respx.mock
    def test_status_list_unavailable(self):
        respx.get(STATUS_LIST_ID).mock(return_value=Response(503))

        assert HttpTrustResolver().fetch_status_list(STATUS_LIST_ID) is None
