from app.schemas.invoice import (
    InvoiceAnalyticsResponse,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceSummaryResponse,
    InvoiceUpdate,
    LineItemCreate,
    LineItemResponse,
    LineItemUpdate,
    MergeInvoicesRequest,
    MergeInvoicesResponse,
    MergeSummary,
    StatusHistoryResponse,
)
from app.schemas.provenance import (
    CancellationProvenance,
    MergeProvenance,
    Provenance,
    read_provenance,
)

__all__ = [
    "CancellationProvenance",
    "InvoiceAnalyticsResponse",
    "InvoiceCreate",
    "InvoiceResponse",
    "InvoiceSummaryResponse",
    "InvoiceUpdate",
    "LineItemCreate",
    "LineItemResponse",
    "LineItemUpdate",
    "MergeInvoicesRequest",
    "MergeInvoicesResponse",
    "MergeProvenance",
    "MergeSummary",
    "Provenance",
    "StatusHistoryResponse",
    "read_provenance",
]
