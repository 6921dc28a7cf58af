"""Tagged results passed from one verification stage to the next."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from vc_barcodes.errors import RejectionReason, VCBarcodeError, reason_for

T = TypeVar("T")


@dataclass(frozen=True)
class Accepted(Generic[T]):
    """A stage succeeded and produced ``value``."""

    value: T


@dataclass(frozen=True)
class Rejected:
    """A stage failed. Later stages must not run."""

    reason: RejectionReason
    detail: str = ""

    @classmethod
    def from_error(cls, error: VCBarcodeError) -> Rejected:
        return cls(reason=reason_for(error), detail=str(error))


StageResult = Union[Accepted[T], Rejected]
