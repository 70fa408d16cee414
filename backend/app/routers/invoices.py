from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth import get_current_actor
from app.core.database import get_db
from app.core.errors import InvalidDataError, error_body
from app.core.locks import invoice_locks
from app.models.invoice import Invoice, InvoiceStatus, InvoiceType
from app.models.invoice_line_item import InvoiceLineItem
from app.models.invoice_status_history import InvoiceStatusHistory
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
from app.services.invoice_merge import InvoiceMergeService
from app.services.invoice_service import InvoiceService
from app.services.line_item_service import LineItemService

router = APIRouter()

# Routes holding invoice_locks are plain functions so they run in the
# threadpool; on the event loop the lock would never be contended.

NOT_FOUND = {404: {"description": "Invoice not found"}}
BAD_REQUEST = {400: {"description": "Invalid data or invoice not editable in its status"}}


@router.get(
    "/",
    response_model=list[InvoiceResponse],
    summary="List invoices",
)
async def list_invoices(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    status: InvoiceStatus | None = None,
    invoice_type: InvoiceType | None = None,
    customer_id: str | None = None,
    q: str | None = Query(default=None, max_length=255),
    overdue: bool | None = None,
    order_by: str | None = None,
    db: Session = Depends(get_db),
) -> list[Invoice]:
    """List invoices with optional filters.

    `status=overdue` and `overdue=true` both select sent invoices whose due
    date has passed.
    """
    invoices, total = InvoiceService(db).list_invoices(
        skip=skip,
        limit=limit,
        status=status,
        invoice_type=invoice_type,
        customer_id=customer_id,
        q=q,
        overdue=overdue,
        order_by=order_by,
    )
    response.headers["X-Total-Count"] = str(total)
    return invoices


@router.get(
    "/analytics",
    response_model=InvoiceAnalyticsResponse,
    summary="Invoice analytics",
)
async def get_invoice_analytics(
    customer_id: str | None = None,
    db: Session = Depends(get_db),
) -> InvoiceAnalyticsResponse:
    """Counts and amounts across invoices, optionally for one customer."""
    return InvoiceService(db).get_analytics(customer_id)


@router.post(
    "/merge",
    response_model=MergeInvoicesResponse,
    summary="Merge draft invoices",
    responses={
        404: {"description": "One of the invoices does not exist"},
        409: {"description": "The invoices cannot be merged"},
        500: {"description": "Merge failed and was rolled back"},
    },
)
def merge_invoices(
    data: MergeInvoicesRequest,
    db: Session = Depends(get_db),
    actor: str = Depends(get_current_actor),
) -> MergeInvoicesResponse | JSONResponse:
    """Merge 2-10 draft invoices of one customer into a new invoice.

    The sources are cancelled and point at the merged invoice.
    """
    service = InvoiceMergeService(db)
    try:
        with invoice_locks.hold(*data.invoice_ids):
            result = service.merge(
                data.invoice_ids,
                merged_by=actor,
                notes=data.notes,
                payment_terms=data.payment_terms,
            )
    except InvalidDataError as e:
        return JSONResponse(status_code=409, content=error_body(e.code, e.message))

    return MergeInvoicesResponse(
        merged_invoice=InvoiceResponse.model_validate(result.merged_invoice),
        cancelled_invoices=[
            InvoiceSummaryResponse.model_validate(invoice) for invoice in result.cancelled_invoices
        ],
        summary=MergeSummary(
            line_items_count=result.line_items_count,
            total_amount=result.total_amount,
            source_invoice_count=result.source_invoice_count,
        ),
    )


@router.post(
    "/",
    response_model=InvoiceResponse,
    status_code=201,
    summary="Create invoice",
    responses=BAD_REQUEST,
)
async def create_invoice(
    data: InvoiceCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_current_actor),
) -> Invoice:
    """Create a draft invoice, optionally with its first line items."""
    return InvoiceService(db).create_invoice(data, created_by=actor)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get invoice",
    responses=NOT_FOUND,
)
async def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
) -> Invoice:
    """Get an invoice with its line items and status history."""
    return InvoiceService(db).get_invoice(invoice_id)


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Update invoice",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def update_invoice(
    invoice_id: UUID,
    data: InvoiceUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_current_actor),
) -> Invoice:
    """Change fields of a draft invoice and/or move it to a new status."""
    with invoice_locks.hold(invoice_id):
        return InvoiceService(db).update_invoice(invoice_id, data, changed_by=actor)


@router.delete(
    "/{invoice_id}",
    status_code=204,
    summary="Delete invoice",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
) -> None:
    """Delete a draft invoice with its line items and history."""
    with invoice_locks.hold(invoice_id):
        InvoiceService(db).delete_invoice(invoice_id)


@router.get(
    "/{invoice_id}/status_history",
    response_model=list[StatusHistoryResponse],
    summary="Invoice status history",
    responses=NOT_FOUND,
)
async def get_status_history(
    invoice_id: UUID,
    db: Session = Depends(get_db),
) -> list[InvoiceStatusHistory]:
    return InvoiceService(db).get_status_history(invoice_id)


@router.post(
    "/{invoice_id}/line-items",
    response_model=LineItemResponse,
    status_code=201,
    summary="Add line item",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def add_line_item(
    invoice_id: UUID,
    data: LineItemCreate,
    db: Session = Depends(get_db),
) -> InvoiceLineItem:
    """Add a line item to a draft invoice; totals are recalculated."""
    with invoice_locks.hold(invoice_id):
        return LineItemService(db).add_line_item(invoice_id, data)


@router.post(
    "/{invoice_id}/line-items/{line_item_id}",
    response_model=LineItemResponse,
    summary="Update line item",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def update_line_item(
    invoice_id: UUID,
    line_item_id: UUID,
    data: LineItemUpdate,
    db: Session = Depends(get_db),
) -> InvoiceLineItem:
    """Update the supplied fields of a line item; totals are recalculated."""
    with invoice_locks.hold(invoice_id):
        return LineItemService(db).update_line_item(invoice_id, line_item_id, data)


@router.delete(
    "/{invoice_id}/line-items/{line_item_id}",
    status_code=204,
    summary="Delete line item",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
def delete_line_item(
    invoice_id: UUID,
    line_item_id: UUID,
    db: Session = Depends(get_db),
) -> None:
    """Remove a line item; totals are recalculated."""
    with invoice_locks.hold(invoice_id):
        LineItemService(db).delete_line_item(invoice_id, line_item_id)
