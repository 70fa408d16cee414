"""Typed views over the provenance keys stored in invoice metadata.

Merged invoices record where they came from; invoices cancelled by a merge
record where they went. Both shapes live in the open ``metadata`` JSON column
and are validated here whenever they are written or read.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ValidationError

CANCELLED_REASON_MERGED = "merged"


class MergeProvenance(BaseModel):
    kind: Literal["merge"] = "merge"
    merged_from: list[UUID]
    merged_from_numbers: list[str]
    merged_by: str
    merged_at: datetime

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"kind"})


class CancellationProvenance(BaseModel):
    kind: Literal["cancellation"] = "cancellation"
    cancelled_reason: Literal["merged"] = CANCELLED_REASON_MERGED
    merged_into_invoice_id: UUID
    merged_into_invoice_number: str
    cancelled_at: datetime

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"kind"})


Provenance = MergeProvenance | CancellationProvenance


def read_provenance(metadata: dict[str, Any] | None) -> Provenance | None:
    """Extract the provenance recorded in an invoice's metadata, if any."""
    if not metadata:
        return None
    try:
        if "merged_from" in metadata:
            return MergeProvenance.model_validate(metadata)
        if metadata.get("cancelled_reason") == CANCELLED_REASON_MERGED:
            return CancellationProvenance.model_validate(metadata)
    except ValidationError:
        return None
    return None
