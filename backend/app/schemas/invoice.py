from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, EmailStr, Field, computed_field

from app.models.invoice import InvoiceStatus, InvoiceType
from app.models.invoice_line_item import LineItemType
from app.schemas.provenance import Provenance, read_provenance


class LineItemCreate(BaseModel):
    item_type: LineItemType = LineItemType.PRODUCT
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    sku: str | None = Field(default=None, max_length=100)
    product_id: str | None = None
    variant_id: str | None = None
    service_order_item_id: str | None = None
    quantity: Decimal = Field(..., gt=0, decimal_places=4)
    unit_price: Decimal = Field(..., ge=0, decimal_places=4)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=6)
    hours_worked: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    hourly_rate: Decimal | None = Field(default=None, ge=0, decimal_places=4)
    notes: str | None = None
    metadata: dict[str, Any] | None = None


class LineItemUpdate(BaseModel):
    item_type: LineItemType | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    sku: str | None = Field(default=None, max_length=100)
    quantity: Decimal | None = Field(default=None, gt=0, decimal_places=4)
    unit_price: Decimal | None = Field(default=None, ge=0, decimal_places=4)
    discount_amount: Decimal | None = Field(default=None, ge=0, decimal_places=4)
    tax_rate: Decimal | None = Field(default=None, ge=0, decimal_places=6)
    hours_worked: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    hourly_rate: Decimal | None = Field(default=None, ge=0, decimal_places=4)
    notes: str | None = None


class LineItemResponse(BaseModel):
    id: UUID
    invoice_id: UUID
    position: int
    item_type: str
    product_id: str | None
    variant_id: str | None
    service_order_item_id: str | None
    title: str
    description: str | None
    sku: str | None
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    hours_worked: Decimal | None
    hourly_rate: Decimal | None
    notes: str | None
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class StatusHistoryResponse(BaseModel):
    id: UUID
    invoice_id: UUID
    from_status: str | None
    to_status: str
    changed_by: str
    changed_at: datetime
    reason: str | None

    model_config = {"from_attributes": True}


class InvoiceCreate(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=255)
    customer_email: EmailStr | None = None
    customer_phone: str | None = Field(default=None, max_length=50)
    billing_address: dict[str, Any] | None = None
    shipping_address: dict[str, Any] | None = None
    order_id: str | None = None
    service_order_id: str | None = None
    invoice_type: InvoiceType = InvoiceType.PRODUCT_SALE
    currency_code: str | None = Field(default=None, min_length=3, max_length=3)
    invoice_date: datetime | None = None
    due_date: datetime | None = None
    payment_terms: str | None = Field(default=None, max_length=50)
    notes: str | None = None
    internal_notes: str | None = None
    metadata: dict[str, Any] | None = None
    line_items: list[LineItemCreate] = Field(default_factory=list)


# Invoice columns an update may change but never clear
NON_NULLABLE_UPDATE_FIELDS = frozenset({"due_date"})


class InvoiceUpdate(BaseModel):
    status: InvoiceStatus | None = None
    status_reason: str | None = None
    due_date: datetime | None = None
    payment_terms: str | None = Field(default=None, max_length=50)
    notes: str | None = None
    internal_notes: str | None = None
    billing_address: dict[str, Any] | None = None
    shipping_address: dict[str, Any] | None = None
    customer_email: EmailStr | None = None
    customer_phone: str | None = Field(default=None, max_length=50)

    def field_changes(self) -> dict[str, Any]:
        """Explicitly supplied non-status fields.

        An explicit null is dropped for columns that cannot be cleared.
        """
        changes = self.model_dump(exclude_unset=True, exclude={"status", "status_reason"})
        return {
            key: value
            for key, value in changes.items()
            if value is not None or key not in NON_NULLABLE_UPDATE_FIELDS
        }


class InvoiceSummaryResponse(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: str
    status: str
    display_status: str
    invoice_type: str
    total_amount: Decimal
    currency_code: str
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: UUID
    invoice_number: str
    customer_id: str
    order_id: str | None
    service_order_id: str | None
    invoice_type: str
    status: str
    display_status: str
    is_overdue: bool
    invoice_date: datetime
    due_date: datetime
    sent_date: datetime | None
    paid_date: datetime | None
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency_code: str
    billing_address: dict[str, Any] | None
    shipping_address: dict[str, Any] | None
    customer_email: str | None
    customer_phone: str | None
    notes: str | None
    internal_notes: str | None
    payment_terms: str | None
    created_by: str | None
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    line_items: list[LineItemResponse] = Field(default_factory=list)
    status_history: list[StatusHistoryResponse] = Field(default_factory=list)
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def provenance(self) -> Provenance | None:
        return read_provenance(self.metadata)


class MergeInvoicesRequest(BaseModel):
    invoice_ids: list[UUID]
    notes: str | None = None
    payment_terms: str | None = Field(default=None, max_length=50)


class MergeSummary(BaseModel):
    line_items_count: int
    total_amount: Decimal
    source_invoice_count: int


class MergeInvoicesResponse(BaseModel):
    merged_invoice: InvoiceResponse
    cancelled_invoices: list[InvoiceSummaryResponse]
    summary: MergeSummary


class InvoiceAnalyticsResponse(BaseModel):
    total_invoices: int
    total_amount: Decimal
    average_amount: Decimal
    overdue_count: int
    status_breakdown: dict[str, int]
    type_breakdown: dict[str, int]
