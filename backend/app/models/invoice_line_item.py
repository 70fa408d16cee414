"""Invoice line item model."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.shared import JSONDict, UUIDType, generate_uuid


class LineItemType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"
    LABOR = "labor"
    SHIPPING = "shipping"
    DISCOUNT = "discount"


class InvoiceLineItem(Base):
    """One billable component of an invoice.

    total_price and tax_amount are derived from quantity, unit_price,
    discount_amount and tax_rate whenever the item is written.
    """

    __tablename__ = "invoice_line_items"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)

    item_type = Column(String(20), nullable=False, default=LineItemType.PRODUCT.value)

    # Source references
    product_id = Column(String(255), nullable=True)
    variant_id = Column(String(255), nullable=True)
    service_order_item_id = Column(String(255), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    sku = Column(String(100), nullable=True)

    quantity = Column(Numeric(18, 4), nullable=False)
    unit_price = Column(Numeric(18, 4), nullable=False)
    total_price = Column(Numeric(18, 4), nullable=False, default=0)

    discount_amount = Column(Numeric(18, 4), nullable=False, default=0)
    tax_rate = Column(Numeric(8, 6), nullable=False, default=0)
    tax_amount = Column(Numeric(18, 4), nullable=False, default=0)

    # Labor items
    hours_worked = Column(Numeric(10, 2), nullable=True)
    hourly_rate = Column(Numeric(18, 4), nullable=True)

    notes = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONDict, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    invoice = relationship("Invoice", back_populates="line_items")
