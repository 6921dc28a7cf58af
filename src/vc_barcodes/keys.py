"""
Key material helpers.

Converts between JSON Web Keys and ``cryptography`` key objects, and loads
PEM encoded keys for the command line.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from vc_barcodes.multibase import base64url_decode, base64url_encode

_CURVES: dict[str, type[ec.EllipticCurve]] = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
}
_CURVE_NAMES = {curve.name: jwk_name for jwk_name, curve in _CURVES.items()}

KEY_TYPES = ("ES256", "ES384", "EdDSA")


class InvalidKeyError(ValueError):
    """Raised when key material cannot be parsed."""


def public_key_from_jwk(jwk: Mapping[str, Any]) -> Any:
    """Build a public key object from a JWK.

    Supports EC P-256 and P-384 keys and OKP Ed25519 keys.

    Raises:
        InvalidKeyError: If the JWK is incomplete or of an unsupported type.
    """
    if not isinstance(jwk, Mapping):
        raise InvalidKeyError(f"JWK must be a JSON object, got {type(jwk).__name__}")
    kty = jwk.get("kty", "")
    crv = jwk.get("crv", "")
    try:
        if kty == "EC" and crv in _CURVES:
            x = int.from_bytes(base64url_decode(jwk["x"]), byteorder="big")
            y = int.from_bytes(base64url_decode(jwk["y"]), byteorder="big")
            public_numbers = ec.EllipticCurvePublicNumbers(x, y, _CURVES[crv]())
            return public_numbers.public_key()
        if kty == "OKP" and crv == "Ed25519":
            return ed25519.Ed25519PublicKey.from_public_bytes(base64url_decode(jwk["x"]))
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidKeyError(f"Invalid {kty} {crv} JWK: {e}") from e
    raise InvalidKeyError(f"Unsupported JWK key type: kty={kty!r} crv={crv!r}")


def public_key_to_jwk(public_key: Any) -> dict[str, str]:
    """Export a public key as a JWK."""
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        crv = _CURVE_NAMES.get(public_key.curve.name)
        if crv is None:
            raise InvalidKeyError(f"Unsupported curve: {public_key.curve.name}")
        numbers = public_key.public_numbers()
        size = (public_key.curve.key_size + 7) // 8
        return {
            "kty": "EC",
            "crv": crv,
            "x": base64url_encode(numbers.x.to_bytes(size, byteorder="big")),
            "y": base64url_encode(numbers.y.to_bytes(size, byteorder="big")),
        }
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        raw = public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return {"kty": "OKP", "crv": "Ed25519", "x": base64url_encode(raw)}
    raise InvalidKeyError(f"Unsupported public key type: {type(public_key).__name__}")


def generate_private_key(key_type: str = "ES256") -> Any:
    """Generate a private key for one of ``KEY_TYPES``."""
    if key_type == "ES256":
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == "ES384":
        return ec.generate_private_key(ec.SECP384R1())
    if key_type == "EdDSA":
        return ed25519.Ed25519PrivateKey.generate()
    raise InvalidKeyError(f"Unsupported key type: {key_type}")


def private_key_to_pem(private_key: Any) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key(path: str | Path) -> Any:
    """Load an unencrypted PEM private key."""
    try:
        return serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    except (ValueError, TypeError) as e:
        raise InvalidKeyError(f"Cannot load private key from {path}: {e}") from e
