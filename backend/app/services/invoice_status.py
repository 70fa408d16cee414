"""Invoice status state machine.

Overdue is never written: it is how a sent invoice past its due date is
displayed and filtered, so no transition leads into or out of it.
"""

from app.core.errors import InvalidStateError, InvalidTransitionError, NotFoundError
from app.models.invoice import Invoice, InvoiceStatus

VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
    InvoiceStatus.OVERDUE: frozenset(),
}


def allowed_transitions(status: InvoiceStatus | str) -> frozenset[InvoiceStatus]:
    return VALID_TRANSITIONS.get(InvoiceStatus(status), frozenset())


def can_transition(from_status: InvoiceStatus | str, to_status: InvoiceStatus | str) -> bool:
    return InvoiceStatus(to_status) in allowed_transitions(from_status)


def validate_transition(invoice: Invoice | None, new_status: InvoiceStatus | str) -> None:
    """Reject a status change the state machine does not allow.

    Raises:
        NotFoundError: If the invoice does not exist.
        InvalidTransitionError: If new_status is not reachable from the current status.
    """
    if invoice is None:
        raise NotFoundError("Invoice not found")

    target = InvoiceStatus(new_status)
    current = InvoiceStatus(invoice.status)  # type: ignore[arg-type]
    if not can_transition(current, target):
        allowed = sorted(s.value for s in allowed_transitions(current)) or ["none"]
        raise InvalidTransitionError(
            f"Invalid status transition from {current.value} to {target.value}. "
            f"Allowed transitions: {', '.join(allowed)}"
        )


def is_editable(status: InvoiceStatus | str) -> bool:
    return InvoiceStatus(status) == InvoiceStatus.DRAFT


def validate_editable(invoice: Invoice | None) -> Invoice:
    """Only draft invoices may have their contents changed."""
    if invoice is None:
        raise NotFoundError("Invoice not found")
    if not is_editable(invoice.status):  # type: ignore[arg-type]
        raise InvalidStateError(
            f"Invoice {invoice.invoice_number} cannot be modified in status {invoice.status}"
        )
    return invoice
