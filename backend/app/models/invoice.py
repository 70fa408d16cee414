from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.shared import JSONDict, UUIDType, as_utc, generate_uuid, utc_now


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceType(str, Enum):
    PRODUCT_SALE = "product_sale"
    SERVICE_WORK = "service_work"
    MIXED = "mixed"


def is_past_due(status: str, due_date: datetime | None, now: datetime | None = None) -> bool:
    """Overdue is a derived view of a sent invoice whose due date has passed."""
    if status != InvoiceStatus.SENT.value or due_date is None:
        return False
    return as_utc(due_date) < (now or utc_now())  # type: ignore[operator]


class Invoice(Base):
    """Billable document owning its line items and status history.

    Totals are maintained by the totals engine only; callers never write
    subtotal/discount_amount/tax_amount/total_amount directly.
    """

    __tablename__ = "invoices"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_number = Column(String(50), unique=True, index=True, nullable=False)

    # External references
    customer_id = Column(String(255), nullable=False, index=True)
    order_id = Column(String(255), nullable=True)
    service_order_id = Column(String(255), nullable=True)

    invoice_type = Column(String(20), nullable=False, default=InvoiceType.PRODUCT_SALE.value)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)

    # Dates
    invoice_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    sent_date = Column(DateTime(timezone=True), nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)

    # Amounts (exact decimals, 4 decimal places)
    subtotal = Column(Numeric(18, 4), nullable=False, default=0)
    discount_amount = Column(Numeric(18, 4), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 4), nullable=False, default=0)
    total_amount = Column(Numeric(18, 4), nullable=False, default=0)

    currency_code = Column(String(3), nullable=False, default="EUR")

    # Customer snapshot captured at creation time
    billing_address = Column(JSON, nullable=True)
    shipping_address = Column(JSON, nullable=True)
    customer_email = Column(String(255), nullable=True, index=True)
    customer_phone = Column(String(50), nullable=True)

    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    payment_terms = Column(String(50), nullable=True)

    created_by = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSONDict, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLineItem.position",
    )
    status_history = relationship(
        "InvoiceStatusHistory",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceStatusHistory.changed_at",
    )

    @property
    def is_overdue(self) -> bool:
        return is_past_due(self.status, self.due_date)  # type: ignore[arg-type]

    @property
    def display_status(self) -> str:
        """Status shown to users; sent invoices past their due date read as overdue."""
        if self.is_overdue:
            return InvoiceStatus.OVERDUE.value
        return InvoiceStatus(self.status).value  # type: ignore[arg-type]
