"""Repository for the append-only invoice status history."""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.invoice_status_history import InvoiceStatusHistory
from app.models.shared import utc_now


class InvoiceStatusHistoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        invoice_id: UUID,
        to_status: str,
        from_status: str | None = None,
        changed_by: str = "system",
        reason: str | None = None,
        changed_at: datetime | None = None,
        commit: bool = True,
    ) -> InvoiceStatusHistory:
        entry = InvoiceStatusHistory(
            invoice_id=invoice_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            changed_at=changed_at or utc_now(),
            reason=reason,
        )
        self.db.add(entry)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        return entry

    def get_by_invoice_id(self, invoice_id: UUID) -> list[InvoiceStatusHistory]:
        return (
            self.db.query(InvoiceStatusHistory)
            .filter(InvoiceStatusHistory.invoice_id == invoice_id)
            .order_by(InvoiceStatusHistory.changed_at.asc())
            .all()
        )

    def delete_many(self, entry_ids: list[UUID], commit: bool = True) -> int:
        """Remove history rows. Only used when compensating a failed operation."""
        if not entry_ids:
            return 0
        count = (
            self.db.query(InvoiceStatusHistory)
            .filter(InvoiceStatusHistory.id.in_(entry_ids))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()
        if commit:
            self.db.commit()
        return count

