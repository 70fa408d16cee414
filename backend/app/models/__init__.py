from app.models.invoice import Invoice, InvoiceStatus, InvoiceType, is_past_due
from app.models.invoice_line_item import InvoiceLineItem, LineItemType
from app.models.invoice_status_history import InvoiceStatusHistory

__all__ = [
    "Invoice",
    "InvoiceLineItem",
    "InvoiceStatus",
    "InvoiceStatusHistory",
    "InvoiceType",
    "LineItemType",
    "is_past_due",
]
