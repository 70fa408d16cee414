from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, selectinload
from sqlalchemy.orm.attributes import flag_modified

from app.core.config import settings
from app.core.sorting import apply_order_by
from app.models.invoice import Invoice, InvoiceStatus, InvoiceType
from app.models.shared import utc_now

SORTABLE_COLUMNS = {
    "created_at": Invoice.created_at,
    "invoice_date": Invoice.invoice_date,
    "due_date": Invoice.due_date,
    "invoice_number": Invoice.invoice_number,
    "total_amount": Invoice.total_amount,
    "status": Invoice.status,
}


class InvoiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def generate_invoice_number(self, now: datetime | None = None) -> str:
        """Generate the next invoice number for the month (INV-YYYY-MM-NNN)."""
        current = now or utc_now()
        prefix = f"{settings.INVOICE_NUMBER_PREFIX}-{current.year}-{current.month:02d}-"

        rows = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{prefix}%"))
            .all()
        )
        last_num = 0
        for (number,) in rows:
            try:
                last_num = max(last_num, int(number.split("-")[-1]))
            except (ValueError, IndexError):
                continue

        return f"{prefix}{last_num + 1:03d}"

    def _filtered(
        self,
        status: InvoiceStatus | None = None,
        invoice_type: InvoiceType | None = None,
        customer_id: str | None = None,
        q: str | None = None,
        overdue: bool | None = None,
        now: datetime | None = None,
    ) -> "Query[Invoice]":
        query = self.db.query(Invoice)

        if status == InvoiceStatus.OVERDUE:
            overdue = True
        elif status:
            query = query.filter(Invoice.status == status.value)
        if invoice_type:
            query = query.filter(Invoice.invoice_type == invoice_type.value)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if q:
            pattern = f"%{q}%"
            query = query.filter(
                or_(
                    Invoice.invoice_number.ilike(pattern),
                    Invoice.customer_email.ilike(pattern),
                    Invoice.notes.ilike(pattern),
                )
            )
        if overdue is not None:
            past_due = (Invoice.status == InvoiceStatus.SENT.value) & (
                Invoice.due_date < (now or utc_now())
            )
            query = query.filter(past_due if overdue else ~past_due)
        return query

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        status: InvoiceStatus | None = None,
        invoice_type: InvoiceType | None = None,
        customer_id: str | None = None,
        q: str | None = None,
        overdue: bool | None = None,
        order_by: str | None = None,
    ) -> list[Invoice]:
        query = self._filtered(status, invoice_type, customer_id, q, overdue)
        query = apply_order_by(
            query, SORTABLE_COLUMNS, order_by, default=("invoice_date", "desc")
        )
        return query.offset(skip).limit(limit).all()

    def count(
        self,
        status: InvoiceStatus | None = None,
        invoice_type: InvoiceType | None = None,
        customer_id: str | None = None,
        q: str | None = None,
        overdue: bool | None = None,
    ) -> int:
        return self._filtered(status, invoice_type, customer_id, q, overdue).count()

    def get_by_id(self, invoice_id: UUID, with_relations: bool = False) -> Invoice | None:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if with_relations:
            query = query.options(
                selectinload(Invoice.line_items), selectinload(Invoice.status_history)
            )
        return query.first()

    def get_by_ids(self, invoice_ids: list[UUID]) -> list[Invoice]:
        if not invoice_ids:
            return []
        return self.db.query(Invoice).filter(Invoice.id.in_(invoice_ids)).all()

    def get_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        return self.db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()

    def create(self, data: dict[str, Any], commit: bool = True) -> Invoice:
        invoice = Invoice(**data)
        self.db.add(invoice)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(invoice)
        return invoice

    def update(self, invoice: Invoice, data: dict[str, Any], commit: bool = True) -> Invoice:
        for key, value in data.items():
            setattr(invoice, key, value)
        if "updated_at" in data:
            # Written even when equal to the loaded value, so onupdate does not replace it
            flag_modified(invoice, "updated_at")
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(invoice)
        return invoice

    def set_totals(
        self,
        invoice: Invoice,
        subtotal: Decimal,
        discount_amount: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        commit: bool = True,
    ) -> Invoice:
        return self.update(
            invoice,
            {
                "subtotal": subtotal,
                "discount_amount": discount_amount,
                "tax_amount": tax_amount,
                "total_amount": total_amount,
            },
            commit=commit,
        )

    def delete(self, invoice: Invoice, commit: bool = True) -> None:
        """Delete an invoice together with its line items and status history."""
        self.db.delete(invoice)
        self.db.flush()
        if commit:
            self.db.commit()

    def summary_rows(self, customer_id: str | None = None) -> list[Any]:
        """(status, invoice_type, total_amount, due_date) of every invoice."""
        query = self.db.query(
            Invoice.status, Invoice.invoice_type, Invoice.total_amount, Invoice.due_date
        )
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        return query.all()
