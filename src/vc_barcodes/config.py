"""Codec configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping

from vc_barcodes.compression import DEFAULT_MAX_INFLATED_BYTES
from vc_barcodes.dictionary import DEFAULT_DICTIONARY
from vc_barcodes.payload import DEFAULT_MAX_PAYLOAD_BYTES
from vc_barcodes.statuslist import DEFAULT_LIST_LENGTH, StatusPurpose

ENV_PREFIX = "VCB_"


@dataclass(frozen=True)
class CodecConfig:
    """Settings shared by the issuer, the verifier and the CLI.

    Attributes:
        max_payload_bytes: Capacity of the barcode symbol. The default is
            the byte-mode capacity of a version 40-L QR code.
        dictionary_version: Term dictionary used when encoding.
        status_list_length: Bits per status list, for terse entries.
        status_purpose: Purpose status lists must declare.
        require_status: Reject credentials whose status cannot be confirmed.
        max_inflated_bytes: Upper bound on decompressed claims.
    """

    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    dictionary_version: int = DEFAULT_DICTIONARY.version
    status_list_length: int = DEFAULT_LIST_LENGTH
    status_purpose: str = StatusPurpose.REVOCATION.value
    require_status: bool = True
    max_inflated_bytes: int = DEFAULT_MAX_INFLATED_BYTES

    def __post_init__(self) -> None:
        if self.max_payload_bytes <= 0:
            raise ValueError("max_payload_bytes must be positive")
        if self.status_list_length <= 0 or self.status_list_length % 8:
            raise ValueError("status_list_length must be a positive multiple of 8")
        if self.status_purpose not in {p.value for p in StatusPurpose}:
            raise ValueError(f"Unknown status purpose: {self.status_purpose}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CodecConfig:
        """Build a config from ``VCB_*`` environment variables.

        For example ``VCB_MAX_PAYLOAD_BYTES=1200`` or
        ``VCB_REQUIRE_STATUS=false``. Unset variables keep their defaults.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in ("bool", bool):
                values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            elif f.type in ("int", int):
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ValueError(f"{ENV_PREFIX}{f.name.upper()} must be an integer") from None
            else:
                values[f.name] = raw
        return cls(**values)
