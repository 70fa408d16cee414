"""Append-only audit trail of invoice status changes."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class InvoiceStatusHistory(Base):
    __tablename__ = "invoice_status_history"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    invoice_id = Column(
        UUIDType, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null only for the creation entry
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    changed_by = Column(String(255), nullable=False, default="system")
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    reason = Column(Text, nullable=True)

    invoice = relationship("Invoice", back_populates="status_history")
