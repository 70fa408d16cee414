"""Invoice line item repository for data access."""

import copy
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.models.invoice_line_item import InvoiceLineItem
from app.models.shared import snapshot_columns


class InvoiceLineItemRepository:
    """Repository for InvoiceLineItem model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_invoice_id(self, invoice_id: UUID) -> list[InvoiceLineItem]:
        """Get all line items of an invoice in stored order."""
        return (
            self.db.query(InvoiceLineItem)
            .filter(InvoiceLineItem.invoice_id == invoice_id)
            .order_by(InvoiceLineItem.position.asc(), InvoiceLineItem.created_at.asc())
            .all()
        )

    def get_by_id(
        self, line_item_id: UUID, invoice_id: UUID | None = None
    ) -> InvoiceLineItem | None:
        """Get a line item, optionally scoped to its owning invoice."""
        query = self.db.query(InvoiceLineItem).filter(InvoiceLineItem.id == line_item_id)
        if invoice_id is not None:
            query = query.filter(InvoiceLineItem.invoice_id == invoice_id)
        return query.first()

    def next_position(self, invoice_id: UUID) -> int:
        current = (
            self.db.query(func.max(InvoiceLineItem.position))
            .filter(InvoiceLineItem.invoice_id == invoice_id)
            .scalar()
        )
        return 0 if current is None else int(current) + 1

    def create(
        self, invoice_id: UUID, data: dict[str, Any], commit: bool = True
    ) -> InvoiceLineItem:
        values = dict(data)
        values.setdefault("position", self.next_position(invoice_id))
        line_item = InvoiceLineItem(invoice_id=invoice_id, **values)
        self.db.add(line_item)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(line_item)
        return line_item

    def update(
        self, line_item: InvoiceLineItem, data: dict[str, Any], commit: bool = True
    ) -> InvoiceLineItem:
        for key, value in data.items():
            setattr(line_item, key, value)
        if "updated_at" in data:
            flag_modified(line_item, "updated_at")
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(line_item)
        return line_item

    def delete(self, line_item: InvoiceLineItem, commit: bool = True) -> None:
        self.db.delete(line_item)
        self.db.flush()
        if commit:
            self.db.commit()

    def delete_many(self, line_item_ids: list[UUID], commit: bool = True) -> int:
        """Delete line items by ID. Returns the number of rows removed."""
        if not line_item_ids:
            return 0
        items = self.db.query(InvoiceLineItem).filter(InvoiceLineItem.id.in_(line_item_ids)).all()
        for item in items:
            self.db.delete(item)
        self.db.flush()
        if commit:
            self.db.commit()
        return len(items)

    @staticmethod
    def snapshot(line_item: InvoiceLineItem) -> dict[str, Any]:
        """Column values of a line item, detached from the session."""
        return snapshot_columns(line_item)

    def restore(self, snapshot: dict[str, Any], commit: bool = True) -> InvoiceLineItem:
        """Re-insert a line item from a snapshot, keeping its original ID."""
        line_item = InvoiceLineItem(**copy.deepcopy(snapshot))
        self.db.add(line_item)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(line_item)
        return line_item
