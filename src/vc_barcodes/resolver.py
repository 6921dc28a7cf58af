"""
Trust resolution: verification keys and status list credentials.

The core only consumes the ``TrustResolver`` contract. ``StaticTrustResolver``
serves pre-provisioned material for offline verification;
``HttpTrustResolver`` resolves did:web verification methods and downloads
status list credentials over HTTPS.

A resolver returns None when a key is not found or a status list is
unavailable. Raising ``TrustResolutionError`` means the same thing.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Protocol, Union
from urllib.parse import quote

import httpx

from vc_barcodes.errors import TrustResolutionError
from vc_barcodes.keys import InvalidKeyError, public_key_from_jwk

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[Any, Awaitable[Any]]


class TrustResolver(Protocol):
    """Supplies key material and status lists to the verifier."""

    def resolve_key(self, key_id: str) -> MaybeAwaitable:
        """Return the public key for ``key_id``, or None if not found."""

    def fetch_status_list(self, status_list_id: str) -> MaybeAwaitable:
        """Return status list credential bytes, or None if unavailable."""


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if a resolver returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


class StaticTrustResolver:
    """Resolver over in-memory keys and status lists."""

    def __init__(
        self,
        keys: dict[str, Any] | None = None,
        status_lists: dict[str, bytes] | None = None,
    ) -> None:
        self.keys: dict[str, Any] = dict(keys or {})
        self.status_lists: dict[str, bytes] = dict(status_lists or {})

    def add_key(self, key_id: str, public_key: Any) -> None:
        self.keys[key_id] = public_key

    def add_status_list(self, status_list_id: str, credential: bytes) -> None:
        self.status_lists[status_list_id] = credential

    def resolve_key(self, key_id: str) -> Any | None:
        return self.keys.get(key_id)

    def fetch_status_list(self, status_list_id: str) -> bytes | None:
        return self.status_lists.get(status_list_id)


@dataclass
class VerificationMethod:
    """DID Document verification method."""

    id: str
    type: str
    controller: str
    public_key_jwk: dict[str, Any] | None = None


@dataclass
class DIDDocument:
    """W3C DID Document."""

    id: str
    verification_methods: list[VerificationMethod]
    assertion_method: list[str]

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Get a verification method by ID."""
        for vm in self.verification_methods:
            if vm.id == method_id:
                return vm
        return None


def did_web_to_url(did: str) -> str:
    """Convert a did:web identifier to its resolution URL.

    did:web:example.com -> https://example.com/.well-known/did.json
    did:web:example.com:path:to:doc -> https://example.com/path/to/doc/did.json
    did:web:example.com%3A8080 -> https://example.com:8080/.well-known/did.json

    Raises:
        TrustResolutionError: If the DID format is invalid.
    """
    if not did.startswith("did:web:"):
        raise TrustResolutionError(f"Invalid did:web identifier: {did}")

    domain_path = did[8:].split("#")[0]
    parts = domain_path.split(":")
    if not parts[0]:
        raise TrustResolutionError(f"Invalid did:web identifier: {did}")

    # First part is the domain (with potential port encoded as %3A)
    domain = parts[0].replace("%3A", ":")

    if len(parts) > 1:
        path = "/" + "/".join(quote(p, safe="") for p in parts[1:]) + "/did.json"
    else:
        path = "/.well-known/did.json"

    return f"https://{domain}{path}"


class HttpTrustResolver:
    """Resolves did:web keys and status lists over HTTPS."""

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the resolver.

        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._documents: dict[str, DIDDocument] = {}
        self._status_lists: dict[str, bytes] = {}

    def resolve_key(self, key_id: str) -> Any | None:
        """Resolve a did:web verification method to its public key.

        Only verification methods listed under ``assertionMethod`` are
        accepted.
        """
        try:
            return self._resolve_key(key_id)
        except TrustResolutionError as e:
            logger.warning("Key %s not resolved: %s", key_id, e)
            return None

    def _resolve_key(self, key_id: str) -> Any:
        did = key_id.split("#")[0]
        document = self.resolve_did(did)

        vm = document.get_verification_method(key_id)
        if vm is None:
            raise TrustResolutionError(
                f"Verification method {key_id} not found in DID Document"
            )
        if key_id not in document.assertion_method:
            raise TrustResolutionError(
                f"Verification method {key_id} is not an assertion method"
            )
        if vm.public_key_jwk is None:
            raise TrustResolutionError(f"No publicKeyJwk in verification method {key_id}")
        try:
            return public_key_from_jwk(vm.public_key_jwk)
        except InvalidKeyError as e:
            raise TrustResolutionError(str(e)) from e

    def resolve_did(self, did: str, use_cache: bool = True) -> DIDDocument:
        """Resolve a did:web identifier to its DID Document.

        Raises:
            TrustResolutionError: If resolution fails.
        """
        if use_cache and did in self._documents:
            return self._documents[did]

        url = did_web_to_url(did)
        response = self._get(url, "application/did+ld+json, application/json")
        try:
            data = response.json()
        except ValueError as e:
            raise TrustResolutionError(f"Invalid JSON in DID Document for {did}") from e
        if not isinstance(data, dict):
            raise TrustResolutionError(f"DID Document for {did} is not a JSON object")

        document = self._parse_did_document(data, did)
        if use_cache:
            self._documents[did] = document
        return document

    def fetch_status_list(self, status_list_id: str) -> bytes | None:
        """Download a status list credential, or None if unavailable."""
        if status_list_id in self._status_lists:
            return self._status_lists[status_list_id]
        try:
            content = self._get(status_list_id, "application/octet-stream").content
        except TrustResolutionError as e:
            logger.warning("Status list %s unavailable: %s", status_list_id, e)
            return None
        self._status_lists[status_list_id] = content
        return content

    def _get(self, url: str, accept: str) -> httpx.Response:
        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(url, headers={"Accept": accept})
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise TrustResolutionError(
                f"HTTP error fetching {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise TrustResolutionError(f"Network error fetching {url}: {e}") from e

    def _parse_did_document(self, data: dict[str, Any], did: str) -> DIDDocument:
        try:
            doc_id = data.get("id", "")
            if doc_id != did:
                raise TrustResolutionError(
                    f"DID Document id mismatch: expected {did}, got {doc_id}"
                )

            verification_methods = [
                VerificationMethod(
                    id=vm.get("id", ""),
                    type=vm.get("type", ""),
                    controller=vm.get("controller", ""),
                    public_key_jwk=vm.get("publicKeyJwk"),
                )
                for vm in data.get("verificationMethod", [])
            ]

            # Relationships can reference methods by id or embed them
            assertion_method: list[str] = []
            for item in data.get("assertionMethod", []):
                if isinstance(item, str):
                    assertion_method.append(item)
                elif isinstance(item, dict) and "id" in item:
                    assertion_method.append(item["id"])
                    if "publicKeyJwk" in item:
                        verification_methods.append(
                            VerificationMethod(
                                id=item["id"],
                                type=item.get("type", ""),
                                controller=item.get("controller", ""),
                                public_key_jwk=item["publicKeyJwk"],
                            )
                        )
        except (AttributeError, TypeError) as e:
            raise TrustResolutionError(f"Invalid DID Document for {did}: {e}") from e

        return DIDDocument(
            id=doc_id,
            verification_methods=verification_methods,
            assertion_method=assertion_method,
        )

    def clear_cache(self) -> None:
        """Clear the DID Document and status list caches."""
        self._documents.clear()
        self._status_lists.clear()
