"""Invoice lifecycle: creation, field updates, status changes and reporting."""

import logging
from collections import Counter
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.core import money
from app.core.config import settings
from app.core.database import atomic
from app.core.errors import NotFoundError
from app.models.invoice import Invoice, InvoiceStatus, InvoiceType, is_past_due
from app.models.invoice_status_history import InvoiceStatusHistory
from app.models.shared import as_utc, utc_now
from app.repositories.invoice_repository import InvoiceRepository
from app.repositories.invoice_status_history_repository import InvoiceStatusHistoryRepository
from app.schemas.invoice import InvoiceAnalyticsResponse, InvoiceCreate, InvoiceUpdate
from app.services.invoice_merge import parse_payment_terms
from app.services.invoice_status import validate_editable, validate_transition
from app.services.line_item_service import LineItemService, line_item_values
from app.services.saga import Saga, SagaContext, SagaStep, StepResponse

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.history_repo = InvoiceStatusHistoryRepository(db)
        self.line_item_service = LineItemService(db)

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.invoice_repo.get_by_id(invoice_id, with_relations=True)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def list_invoices(
        self, skip: int = 0, limit: int = 100, **filters: Any
    ) -> tuple[list[Invoice], int]:
        order_by = filters.pop("order_by", None)
        invoices = self.invoice_repo.get_all(skip=skip, limit=limit, order_by=order_by, **filters)
        return invoices, self.invoice_repo.count(**filters)

    def create_invoice(self, data: InvoiceCreate, created_by: str) -> Invoice:
        """Create a draft invoice with its customer snapshot and initial line items.

        Line items are added one by one through the line item service, so
        each of them goes through the same validation and totals
        recalculation as a later addition. If any of them fails, the invoice
        is removed again.

        Raises:
            InvalidDataError: If a line item is invalid.
        """
        # Reject bad line items before anything is written
        for item in data.line_items:
            line_item_values(item)

        invoice_date = data.invoice_date or utc_now()
        due_date = data.due_date or invoice_date + timedelta(
            days=parse_payment_terms(data.payment_terms)
        )

        def create(context: SagaContext) -> StepResponse:
            with atomic(self.db):
                invoice = self.invoice_repo.create(
                    {
                        "invoice_number": self.invoice_repo.generate_invoice_number(),
                        "customer_id": data.customer_id,
                        "order_id": data.order_id,
                        "service_order_id": data.service_order_id,
                        "invoice_type": data.invoice_type.value,
                        "status": InvoiceStatus.DRAFT.value,
                        "invoice_date": invoice_date,
                        "due_date": due_date,
                        "currency_code": (
                            data.currency_code or settings.INVOICE_DEFAULT_CURRENCY
                        ).upper(),
                        "billing_address": data.billing_address,
                        "shipping_address": data.shipping_address,
                        "customer_email": data.customer_email,
                        "customer_phone": data.customer_phone,
                        "payment_terms": data.payment_terms,
                        "notes": data.notes,
                        "internal_notes": data.internal_notes,
                        "created_by": created_by,
                        "metadata_": dict(data.metadata) if data.metadata else None,
                    },
                    commit=False,
                )
                self.history_repo.create(
                    invoice_id=invoice.id,
                    from_status=None,
                    to_status=InvoiceStatus.DRAFT.value,
                    changed_by=created_by,
                    reason="Invoice created",
                    commit=False,
                )
                invoice_id = invoice.id
            return StepResponse(invoice_id, invoice_id)

        def undo_create(invoice_id: UUID) -> None:
            with atomic(self.db):
                invoice = self.invoice_repo.get_by_id(invoice_id)
                if invoice is not None:
                    self.invoice_repo.delete(invoice, commit=False)

        def add_line_items(context: SagaContext) -> StepResponse:
            invoice_id = context.result("create-invoice")
            for item in data.line_items:
                self.line_item_service.add_line_item(invoice_id, item)
            return StepResponse(len(data.line_items))

        saga = Saga(
            "create-invoice",
            [
                SagaStep("create-invoice", create, undo_create),
                SagaStep("add-line-items", add_line_items),
            ],
        )
        result = saga.run()
        invoice = self.get_invoice(result.results["create-invoice"])
        logger.info(
            "Created invoice %s for customer %s", invoice.invoice_number, invoice.customer_id
        )
        return invoice

    def update_invoice(self, invoice_id: UUID, data: InvoiceUpdate, changed_by: str) -> Invoice:
        """Apply field changes and/or a status change.

        Both are validated before anything is written and are committed
        together; field changes are applied first.

        Raises:
            NotFoundError: If the invoice does not exist.
            InvalidStateError: If fields are changed on a non-draft invoice.
            InvalidTransitionError: If the status change is not allowed.
        """
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        changes = data.field_changes()
        if changes:
            validate_editable(invoice)
        if data.status is not None:
            validate_transition(invoice, data.status)

        with atomic(self.db):
            if changes:
                self.invoice_repo.update(invoice, changes, commit=False)
            if data.status is not None:
                self._write_status(invoice, data.status, changed_by, data.status_reason)

        return self.get_invoice(invoice_id)

    def _write_status(
        self, invoice: Invoice, new_status: InvoiceStatus, changed_by: str, reason: str | None
    ) -> InvoiceStatusHistory:
        now = utc_now()
        previous = invoice.status
        values: dict[str, Any] = {"status": new_status.value}
        if new_status == InvoiceStatus.SENT:
            values["sent_date"] = now
        elif new_status == InvoiceStatus.PAID:
            values["paid_date"] = now

        self.invoice_repo.update(invoice, values, commit=False)
        entry = self.history_repo.create(
            invoice_id=invoice.id,
            from_status=previous,
            to_status=new_status.value,
            changed_by=changed_by,
            changed_at=now,
            reason=reason or f"Status changed to {new_status.value}",
            commit=False,
        )
        logger.info(
            "Invoice %s status %s -> %s by %s",
            invoice.invoice_number,
            previous,
            new_status.value,
            changed_by,
        )
        return entry

    def delete_invoice(self, invoice_id: UUID) -> None:
        """Delete a draft invoice together with its line items and history."""
        invoice = validate_editable(self.invoice_repo.get_by_id(invoice_id))
        with atomic(self.db):
            self.invoice_repo.delete(invoice, commit=False)
        logger.info("Deleted invoice %s", invoice_id)

    def get_status_history(self, invoice_id: UUID) -> list[InvoiceStatusHistory]:
        if not self.invoice_repo.get_by_id(invoice_id):
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return self.history_repo.get_by_invoice_id(invoice_id)

    def get_analytics(self, customer_id: str | None = None) -> InvoiceAnalyticsResponse:
        rows = self.invoice_repo.summary_rows(customer_id)
        now = utc_now()

        total = money.quantize(money.sum_amounts(row.total_amount for row in rows))
        average = money.quantize(money.divide(total, len(rows)) if rows else money.ZERO)
        status_counts = Counter(str(row.status) for row in rows)
        type_counts = Counter(str(row.invoice_type) for row in rows)
        overdue = sum(1 for row in rows if is_past_due(row.status, as_utc(row.due_date), now))

        return InvoiceAnalyticsResponse(
            total_invoices=len(rows),
            total_amount=total,
            average_amount=average,
            overdue_count=overdue,
            status_breakdown={
                s.value: status_counts.get(s.value, 0)
                for s in InvoiceStatus
                if s != InvoiceStatus.OVERDUE
            },
            type_breakdown={t.value: type_counts.get(t.value, 0) for t in InvoiceType},
        )
