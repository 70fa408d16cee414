"""Merge several draft invoices of one customer into a single invoice.

The merge is a four-step saga:

1. validate the sources (read-only, no compensation),
2. create the merged invoice with its creation history row,
3. copy every source line item onto it and compute its totals,
4. cancel the sources, recording where they were merged into.

If step 3 or 4 fails, the completed steps are compensated in reverse order and
the database is left as it was before the merge started.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import atomic
from app.core.errors import InvalidDataError, NotFoundError
from app.models.invoice import Invoice, InvoiceStatus, InvoiceType
from app.models.invoice_line_item import InvoiceLineItem
from app.models.shared import as_utc, snapshot_columns, utc_now
from app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from app.repositories.invoice_repository import InvoiceRepository
from app.repositories.invoice_status_history_repository import InvoiceStatusHistoryRepository
from app.schemas.provenance import CancellationProvenance, MergeProvenance
from app.services.invoice_totals import (
    InvoiceTotals,
    InvoiceTotalsService,
    calculate_line_amounts,
    compute_totals,
    stored_amounts,
)
from app.services.saga import Saga, SagaContext, SagaStep, StepResponse

logger = logging.getLogger(__name__)

# Columns restored on a source invoice when its cancellation is undone
CANCELLATION_RESTORE_KEYS = ["status", "metadata_", "updated_at"]

# Line item columns carried over verbatim to the merged invoice
COPIED_LINE_ITEM_FIELDS = [
    "item_type",
    "product_id",
    "variant_id",
    "service_order_item_id",
    "title",
    "description",
    "sku",
    "quantity",
    "unit_price",
    "discount_amount",
    "tax_rate",
    "hours_worked",
    "hourly_rate",
    "notes",
]


def parse_payment_terms(payment_terms: str | None, default_days: int | None = None) -> int:
    """Number of days until due from a payment terms string like "NET45".

    The digits in the string are read as the day count; a string without
    digits, or with a zero count, falls back to the default.
    """
    fallback = settings.INVOICE_DEFAULT_DUE_DAYS if default_days is None else default_days
    if not payment_terms:
        return fallback
    digits = re.sub(r"\D", "", payment_terms)
    if not digits:
        return fallback
    days = int(digits)
    return days if days > 0 else fallback


@dataclass
class MergeRequest:
    invoice_ids: list[UUID]
    merged_by: str
    notes: str | None = None
    payment_terms: str | None = None


@dataclass
class CreatedInvoice:
    invoice_id: UUID
    history_ids: list[UUID]


@dataclass
class CopiedLineItems:
    merged_invoice_id: UUID
    line_item_ids: list[UUID]
    totals: InvoiceTotals


@dataclass
class CancelledSources:
    previous: dict[UUID, dict[str, Any]]
    history_ids: list[UUID] = field(default_factory=list)


@dataclass
class MergeResult:
    merged_invoice: Invoice
    cancelled_invoices: list[Invoice]
    line_items_count: int
    total_amount: Decimal

    @property
    def cancelled_invoice_ids(self) -> list[UUID]:
        return [invoice.id for invoice in self.cancelled_invoices]  # type: ignore[misc]

    @property
    def source_invoice_count(self) -> int:
        return len(self.cancelled_invoices)


class InvoiceMergeService:
    """Consolidates draft invoices into one new invoice."""

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.line_item_repo = InvoiceLineItemRepository(db)
        self.history_repo = InvoiceStatusHistoryRepository(db)
        self.totals_service = InvoiceTotalsService(db)

    def merge(
        self,
        invoice_ids: list[UUID],
        merged_by: str,
        notes: str | None = None,
        payment_terms: str | None = None,
    ) -> MergeResult:
        """Merge the given draft invoices.

        Args:
            invoice_ids: Between INVOICE_MERGE_MIN and INVOICE_MERGE_MAX invoice IDs.
            merged_by: Who requested the merge; recorded in metadata and history.
            notes: Appended to the synthesized merge note.
            payment_terms: Payment terms of the merged invoice, e.g. "NET45".

        Returns:
            The merged invoice, the cancelled sources and summary counters.

        Raises:
            InvalidDataError: If the invoices cannot be merged.
            NotFoundError: If an invoice does not exist.
            UnexpectedStateError: If a write failed; nothing is left changed.
        """
        request = MergeRequest(
            invoice_ids=list(invoice_ids),
            merged_by=merged_by,
            notes=notes,
            payment_terms=payment_terms,
        )
        saga = Saga(
            "merge-invoices",
            [
                SagaStep("validate-invoices-mergeable", self.validate_mergeable_step),
                SagaStep(
                    "create-merged-invoice",
                    self.create_merged_invoice_step,
                    self.compensate_create_merged_invoice,
                ),
                SagaStep(
                    "copy-line-items",
                    self.copy_line_items_step,
                    self.compensate_copy_line_items,
                ),
                SagaStep(
                    "cancel-source-invoices",
                    self.cancel_source_invoices_step,
                    self.compensate_cancel_source_invoices,
                ),
            ],
        )
        result = saga.run(request)

        created: CreatedInvoice = result.results["create-merged-invoice"]
        copied: CopiedLineItems = result.results["copy-line-items"]
        sources: list[Invoice] = result.results["validate-invoices-mergeable"]

        merged_invoice = self.invoice_repo.get_by_id(created.invoice_id, with_relations=True)
        if merged_invoice is None:
            raise NotFoundError(f"Merged invoice {created.invoice_id} not found")
        for source in sources:
            self.db.refresh(source)

        logger.info(
            "Merged %d invoices into %s (%d line items, total %s)",
            len(sources),
            merged_invoice.invoice_number,
            len(copied.line_item_ids),
            copied.totals.total_amount,
        )
        return MergeResult(
            merged_invoice=merged_invoice,
            cancelled_invoices=sources,
            line_items_count=len(copied.line_item_ids),
            total_amount=copied.totals.total_amount,
        )

    # Step 1

    def validate_mergeable(self, invoice_ids: list[UUID]) -> list[Invoice]:
        """Check every merge precondition; returns the sources oldest first."""
        count = len(invoice_ids)
        if count < settings.INVOICE_MERGE_MIN:
            raise InvalidDataError(
                f"At least {settings.INVOICE_MERGE_MIN} invoices are required for merging"
            )
        if count > settings.INVOICE_MERGE_MAX:
            raise InvalidDataError(
                f"Cannot merge more than {settings.INVOICE_MERGE_MAX} invoices at once"
            )
        if len(set(invoice_ids)) != count:
            raise InvalidDataError("Invoice IDs to merge must be unique")

        invoices = self.invoice_repo.get_by_ids(invoice_ids)
        found = {invoice.id for invoice in invoices}
        missing = [str(invoice_id) for invoice_id in invoice_ids if invoice_id not in found]
        if missing:
            raise NotFoundError(f"Invoices not found: {', '.join(missing)}")

        customers = {invoice.customer_id for invoice in invoices}
        if len(customers) > 1:
            raise InvalidDataError("All invoices must belong to the same customer")

        not_draft = [
            f"{invoice.invoice_number} ({invoice.status})"
            for invoice in invoices
            if invoice.status != InvoiceStatus.DRAFT.value
        ]
        if not_draft:
            raise InvalidDataError(
                f"Only draft invoices can be merged. Non-draft invoices: {', '.join(not_draft)}"
            )

        currencies = {invoice.currency_code for invoice in invoices}
        if len(currencies) > 1:
            raise InvalidDataError(
                f"All invoices must have the same currency. Found: {', '.join(sorted(currencies))}"  # type: ignore[arg-type]
            )

        paid = [
            str(invoice.invoice_number) for invoice in invoices if invoice.paid_date is not None
        ]
        if paid:
            raise InvalidDataError(f"Cannot merge invoices with payments: {', '.join(paid)}")

        return sorted(
            invoices,
            key=lambda invoice: (as_utc(invoice.invoice_date), str(invoice.invoice_number)),  # type: ignore[arg-type]
        )

    def validate_mergeable_step(self, context: SagaContext) -> StepResponse:
        request: MergeRequest = context.input
        return StepResponse(self.validate_mergeable(request.invoice_ids))

    # Step 2

    def create_merged_invoice_step(self, context: SagaContext) -> StepResponse:
        request: MergeRequest = context.input
        sources: list[Invoice] = context.result("validate-invoices-mergeable")
        template = sources[0]
        now = utc_now()

        invoice_types = {invoice.invoice_type for invoice in sources}
        invoice_type = (
            invoice_types.pop() if len(invoice_types) == 1 else InvoiceType.MIXED.value
        )
        numbers = [str(invoice.invoice_number) for invoice in sources]
        notes = f"Merged from invoices: {', '.join(numbers)}"
        if request.notes:
            notes = f"{notes}\n\n{request.notes}"

        provenance = MergeProvenance(
            merged_from=[invoice.id for invoice in sources],  # type: ignore[misc]
            merged_from_numbers=numbers,
            merged_by=request.merged_by,
            merged_at=now,
        )
        snapshot = snapshot_columns(
            template, ["billing_address", "shipping_address", "customer_email", "customer_phone"]
        )

        with atomic(self.db):
            invoice = self.invoice_repo.create(
                {
                    "invoice_number": self.invoice_repo.generate_invoice_number(now),
                    "customer_id": template.customer_id,
                    "invoice_type": invoice_type,
                    "status": InvoiceStatus.DRAFT.value,
                    "invoice_date": now,
                    "due_date": now + timedelta(days=parse_payment_terms(request.payment_terms)),
                    "currency_code": template.currency_code,
                    "payment_terms": request.payment_terms or template.payment_terms,
                    "notes": notes,
                    "created_by": request.merged_by,
                    "metadata_": provenance.to_metadata(),
                    **snapshot,
                    **InvoiceTotals.zero().as_dict(),
                },
                commit=False,
            )
            history = self.history_repo.create(
                invoice_id=invoice.id,
                from_status=None,
                to_status=InvoiceStatus.DRAFT.value,
                changed_by=request.merged_by,
                changed_at=now,
                reason=f"Invoice created from merge of {len(sources)} invoices",
                commit=False,
            )
            created = CreatedInvoice(invoice_id=invoice.id, history_ids=[history.id])  # type: ignore[arg-type]

        logger.debug("Created merged invoice %s", created.invoice_id)
        return StepResponse(created, created)

    def compensate_create_merged_invoice(self, created: CreatedInvoice) -> None:
        with atomic(self.db):
            self.history_repo.delete_many(created.history_ids, commit=False)
            invoice = self.invoice_repo.get_by_id(created.invoice_id)
            if invoice is not None:
                self.invoice_repo.delete(invoice, commit=False)

    # Step 3

    def copy_line_items_step(self, context: SagaContext) -> StepResponse:
        sources: list[Invoice] = context.result("validate-invoices-mergeable")
        created: CreatedInvoice = context.result("create-merged-invoice")
        merged_invoice_id = created.invoice_id

        copied_items: list[InvoiceLineItem] = []
        with atomic(self.db):
            position = 0
            for source in sources:
                for source_item in self.line_item_repo.get_by_invoice_id(source.id):  # type: ignore[arg-type]
                    values = self._copied_line_item_values(source, source_item)
                    values["position"] = position
                    copied_items.append(
                        self.line_item_repo.create(merged_invoice_id, values, commit=False)
                    )
                    position += 1

            totals = compute_totals(copied_items)
            merged_invoice = self.invoice_repo.get_by_id(merged_invoice_id)
            if merged_invoice is None:
                raise NotFoundError(f"Merged invoice {merged_invoice_id} not found")
            self.invoice_repo.set_totals(merged_invoice, **totals.as_dict(), commit=False)
            copied = CopiedLineItems(
                merged_invoice_id=merged_invoice_id,
                line_item_ids=[item.id for item in copied_items],  # type: ignore[misc]
                totals=totals,
            )

        return StepResponse(copied, copied)

    @staticmethod
    def _copied_line_item_values(source: Invoice, item: InvoiceLineItem) -> dict[str, Any]:
        values = snapshot_columns(item, COPIED_LINE_ITEM_FIELDS)
        amounts = calculate_line_amounts(
            values["quantity"], values["unit_price"], values["discount_amount"], values["tax_rate"]
        )
        values.update(stored_amounts(amounts))

        metadata = snapshot_columns(item, ["metadata_"])["metadata_"] or {}
        metadata["source_invoice_id"] = str(source.id)
        metadata["source_invoice_number"] = source.invoice_number
        values["metadata_"] = metadata
        return values

    def compensate_copy_line_items(self, copied: CopiedLineItems) -> None:
        with atomic(self.db):
            self.line_item_repo.delete_many(copied.line_item_ids, commit=False)
            self.totals_service.reset(copied.merged_invoice_id, commit=False)

    # Step 4

    def cancel_source_invoices_step(self, context: SagaContext) -> StepResponse:
        request: MergeRequest = context.input
        sources: list[Invoice] = context.result("validate-invoices-mergeable")
        created: CreatedInvoice = context.result("create-merged-invoice")

        merged_invoice = self.invoice_repo.get_by_id(created.invoice_id)
        if merged_invoice is None:
            raise NotFoundError(f"Merged invoice {created.invoice_id} not found")
        merged_number = str(merged_invoice.invoice_number)

        cancelled = CancelledSources(
            previous={source.id: snapshot_columns(source, CANCELLATION_RESTORE_KEYS) for source in sources}  # type: ignore[misc]
        )
        with atomic(self.db):
            for source in sources:
                now = utc_now()
                provenance = CancellationProvenance(
                    merged_into_invoice_id=created.invoice_id,
                    merged_into_invoice_number=merged_number,
                    cancelled_at=now,
                )
                metadata = {**(source.metadata_ or {}), **provenance.to_metadata()}
                previous_status = source.status
                self.invoice_repo.update(
                    source,
                    {"status": InvoiceStatus.CANCELLED.value, "metadata_": metadata},
                    commit=False,
                )
                history = self.history_repo.create(
                    invoice_id=source.id,
                    from_status=previous_status,
                    to_status=InvoiceStatus.CANCELLED.value,
                    changed_by=request.merged_by,
                    changed_at=now,
                    reason=f"Merged into invoice {merged_number}",
                    commit=False,
                )
                cancelled.history_ids.append(history.id)  # type: ignore[arg-type]

        return StepResponse(cancelled, cancelled)

    def compensate_cancel_source_invoices(self, cancelled: CancelledSources) -> None:
        with atomic(self.db):
            self.history_repo.delete_many(cancelled.history_ids, commit=False)
            for invoice_id, previous in cancelled.previous.items():
                invoice = self.invoice_repo.get_by_id(invoice_id)
                if invoice is None:
                    continue
                self.invoice_repo.update(invoice, previous, commit=False)
