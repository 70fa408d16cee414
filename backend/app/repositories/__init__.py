from app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from app.repositories.invoice_repository import InvoiceRepository
from app.repositories.invoice_status_history_repository import InvoiceStatusHistoryRepository

__all__ = [
    "InvoiceLineItemRepository",
    "InvoiceRepository",
    "InvoiceStatusHistoryRepository",
]
