"""Tests for the QR text transport form."""

import string

import pytest

from vc_barcodes import issue_credential
from vc_barcodes.errors import MalformedPayload
from vc_barcodes.qr_text import decode_qr_text, encode_qr_text

QR_ALPHANUMERIC = set(string.digits + string.ascii_uppercase + " $%*+-./:")


class TestQrText:
    def test_round_trip(self, signing_key):
        payload = issue_credential({"name": "Alice"}, signing_key)
        assert decode_qr_text(encode_qr_text(payload)) == payload

    def test_prefix(self):
        assert encode_qr_text(b"\x01\x02").startswith("VC1-R")

    def test_alphanumeric_only(self):
        text = encode_qr_text(bytes(range(256)))
        assert set(text) <= QR_ALPHANUMERIC

    def test_known_value(self):
        # RFC 9285 test vector
        assert encode_qr_text(b"AB") == "VC1-RBB8"
        assert decode_qr_text("VC1-RBB8") == b"AB"

    @pytest.mark.parametrize(
        "text",
        [
            "RBB8",
            "VC2-RBB8",
            "VC1-zBB8",
            "VC1-Rbb8",
            "VC1-RB",
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(MalformedPayload):
            decode_qr_text(text)
