"""Line item add/update/delete on draft invoices.

Every mutation runs as a two-step saga: write the line item, then recalculate
the invoice totals. If the recalculation fails the line item write is undone,
so an item change and the totals it affects are only ever seen together.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.database import atomic
from app.core.errors import NotFoundError
from app.models.invoice import Invoice
from app.models.invoice_line_item import InvoiceLineItem
from app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from app.repositories.invoice_repository import InvoiceRepository
from app.schemas.invoice import LineItemCreate, LineItemUpdate
from app.services.invoice_status import validate_editable
from app.services.invoice_totals import (
    InvoiceTotalsService,
    calculate_line_amounts,
    stored_amounts,
)
from app.services.saga import Saga, SagaContext, SagaStep, StepResponse

logger = logging.getLogger(__name__)

# Fields that may not be cleared by an explicit null in an update
REQUIRED_FIELDS = frozenset(
    {"item_type", "title", "quantity", "unit_price", "discount_amount", "tax_rate"}
)


def line_item_values(data: LineItemCreate) -> dict[str, Any]:
    """Column values for a new line item, including its derived amounts."""
    values = data.model_dump(exclude={"metadata", "item_type"})
    values["item_type"] = data.item_type.value
    values["metadata_"] = dict(data.metadata) if data.metadata else None
    amounts = calculate_line_amounts(
        data.quantity, data.unit_price, data.discount_amount, data.tax_rate
    )
    values.update(stored_amounts(amounts))
    return values


class LineItemService:
    """Service for line item mutations with totals kept in step."""

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.line_item_repo = InvoiceLineItemRepository(db)
        self.totals_service = InvoiceTotalsService(db)

    def _editable_invoice(self, invoice_id: UUID) -> Invoice:
        return validate_editable(self.invoice_repo.get_by_id(invoice_id))

    def _recalculate_step(self, invoice_id: UUID) -> SagaStep:
        def invoke(context: SagaContext) -> StepResponse:
            with atomic(self.db):
                totals = self.totals_service.recalculate(invoice_id, commit=False)
            return StepResponse(totals)

        return SagaStep("recalculate-totals", invoke)

    def add_line_item(self, invoice_id: UUID, data: LineItemCreate) -> InvoiceLineItem:
        """Add a line item to a draft invoice and recalculate its totals.

        Raises:
            NotFoundError: If the invoice does not exist.
            InvalidStateError: If the invoice is not a draft.
            InvalidDataError: If the amounts are out of range.
        """
        self._editable_invoice(invoice_id)
        values = line_item_values(data)

        def create(context: SagaContext) -> StepResponse:
            with atomic(self.db):
                line_item = self.line_item_repo.create(invoice_id, values, commit=False)
                line_item_id = line_item.id
            return StepResponse(line_item, line_item_id)

        def undo_create(line_item_id: UUID) -> None:
            with atomic(self.db):
                self.line_item_repo.delete_many([line_item_id], commit=False)

        saga = Saga(
            "add-line-item",
            [
                SagaStep("create-line-item", create, undo_create),
                self._recalculate_step(invoice_id),
            ],
        )
        result = saga.run()
        line_item: InvoiceLineItem = result.results["create-line-item"]
        self.db.refresh(line_item)
        return line_item

    def update_line_item(
        self, invoice_id: UUID, line_item_id: UUID, data: LineItemUpdate
    ) -> InvoiceLineItem:
        """Merge the supplied fields into a line item and recalculate totals.

        Raises:
            NotFoundError: If the invoice or the line item under it does not exist.
            InvalidStateError: If the invoice is not a draft.
            InvalidDataError: If the merged amounts are out of range.
        """
        self._editable_invoice(invoice_id)
        line_item = self.line_item_repo.get_by_id(line_item_id, invoice_id)
        if not line_item:
            raise NotFoundError(f"Line item {line_item_id} not found on invoice {invoice_id}")

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key not in REQUIRED_FIELDS
        }
        if "item_type" in changes:
            changes["item_type"] = changes["item_type"].value

        amounts = calculate_line_amounts(
            changes.get("quantity", line_item.quantity),
            changes.get("unit_price", line_item.unit_price),
            changes.get("discount_amount", line_item.discount_amount),
            changes.get("tax_rate", line_item.tax_rate),
        )
        changes.update(stored_amounts(amounts))
        previous = self.line_item_repo.snapshot(line_item)

        def update(context: SagaContext) -> StepResponse:
            with atomic(self.db):
                self.line_item_repo.update(line_item, changes, commit=False)
            return StepResponse(line_item, previous)

        def undo_update(snapshot: dict[str, Any]) -> None:
            with atomic(self.db):
                current = self.line_item_repo.get_by_id(snapshot["id"])
                if current is None:
                    return
                restored = {key: value for key, value in snapshot.items() if key != "id"}
                self.line_item_repo.update(current, restored, commit=False)

        saga = Saga(
            "update-line-item",
            [
                SagaStep("update-line-item", update, undo_update),
                self._recalculate_step(invoice_id),
            ],
        )
        saga.run()
        self.db.refresh(line_item)
        return line_item

    def delete_line_item(self, invoice_id: UUID, line_item_id: UUID) -> None:
        """Remove a line item and recalculate totals.

        Raises:
            NotFoundError: If the invoice or the line item under it does not exist.
            InvalidStateError: If the invoice is not a draft.
        """
        self._editable_invoice(invoice_id)
        line_item = self.line_item_repo.get_by_id(line_item_id, invoice_id)
        if not line_item:
            raise NotFoundError(f"Line item {line_item_id} not found on invoice {invoice_id}")

        snapshot = self.line_item_repo.snapshot(line_item)

        def delete(context: SagaContext) -> StepResponse:
            with atomic(self.db):
                self.line_item_repo.delete(line_item, commit=False)
            return StepResponse(None, snapshot)

        def undo_delete(deleted: dict[str, Any]) -> None:
            with atomic(self.db):
                self.line_item_repo.restore(deleted, commit=False)

        saga = Saga(
            "delete-line-item",
            [
                SagaStep("delete-line-item", delete, undo_delete),
                self._recalculate_step(invoice_id),
            ],
        )
        saga.run()
        logger.info("Deleted line item %s from invoice %s", line_item_id, invoice_id)
