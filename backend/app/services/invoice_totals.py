"""Derivation of line item amounts and invoice totals.

All amounts go through app.core.money; nothing here touches float.
"""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from app.core import money
from app.core.errors import InvalidDataError, NotFoundError
from app.models.invoice import Invoice
from app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from app.repositories.invoice_repository import InvoiceRepository

logger = logging.getLogger(__name__)


class LineAmountSource(Protocol):
    quantity: Any
    unit_price: Any
    discount_amount: Any
    tax_amount: Any


# Scale of the stored tax_rate column; amounts use MONEY_DECIMAL_PLACES
TAX_RATE_PLACES = 6


@dataclass(frozen=True)
class LineAmounts:
    """Line inputs at stored scale and the amounts derived from them."""

    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    total_price: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    @classmethod
    def zero(cls) -> "InvoiceTotals":
        return cls(money.ZERO, money.ZERO, money.ZERO, money.ZERO)

    @classmethod
    def of(cls, invoice: Invoice) -> "InvoiceTotals":
        """Totals currently stored on an invoice, at stored scale."""
        return cls(
            subtotal=money.quantize(invoice.subtotal),  # type: ignore[arg-type]
            discount_amount=money.quantize(invoice.discount_amount),  # type: ignore[arg-type]
            tax_amount=money.quantize(invoice.tax_amount),  # type: ignore[arg-type]
            total_amount=money.quantize(invoice.total_amount),  # type: ignore[arg-type]
        )

    def as_dict(self) -> dict[str, Decimal]:
        return asdict(self)

    def is_consistent(self) -> bool:
        expected = money.add(money.subtract(self.subtotal, self.discount_amount), self.tax_amount)
        return money.quantize(expected) == money.quantize(self.total_amount)


def calculate_line_amounts(
    quantity: money.MoneyInput | None,
    unit_price: money.MoneyInput | None,
    discount_amount: money.MoneyInput | None = None,
    tax_rate: money.MoneyInput | None = None,
) -> LineAmounts:
    """Compute total_price and tax_amount for one line item.

    total_price = quantity * unit_price - discount_amount
    tax_amount = total_price * tax_rate

    Inputs are first rounded to the scale they are stored at, and the amounts
    are derived from the rounded values, so stored inputs always reproduce
    the stored amounts.

    Raises:
        InvalidDataError: If any input is out of range.
    """
    if quantity is None or unit_price is None:
        raise InvalidDataError("Line item quantity and unit_price are required")

    try:
        qty = money.quantize(quantity)
        price = money.quantize(unit_price)
        discount = money.quantize(money.to_decimal(discount_amount))
        rate = money.quantize(money.to_decimal(tax_rate), TAX_RATE_PLACES)
    except (TypeError, ValueError) as exc:
        raise InvalidDataError(str(exc)) from None

    if qty <= 0:
        raise InvalidDataError("Line item quantity must be greater than zero")
    if price < 0:
        raise InvalidDataError("Line item unit_price must not be negative")
    if discount < 0:
        raise InvalidDataError("Line item discount_amount must not be negative")
    if rate < 0:
        raise InvalidDataError("Line item tax_rate must not be negative")

    gross = money.quantize(money.multiply(qty, price))
    if discount > gross:
        raise InvalidDataError(
            f"Line item discount_amount {discount} exceeds quantity x unit_price {gross}"
        )

    total_price = money.quantize(money.subtract(gross, discount))
    tax_amount = money.quantize(money.multiply(total_price, rate))
    return LineAmounts(
        quantity=qty,
        unit_price=price,
        discount_amount=discount,
        tax_rate=rate,
        total_price=total_price,
        tax_amount=tax_amount,
    )


def stored_amounts(amounts: LineAmounts) -> dict[str, Decimal]:
    """Line item column values for the rounded inputs and derived amounts."""
    return asdict(amounts)


def compute_totals(line_items: Iterable[LineAmountSource]) -> InvoiceTotals:
    """Invoice totals as a pure function of its line items.

    Item tax amounts are taken as stored; they are derived when the item is
    written, not here.
    """
    items = list(line_items)
    subtotal = money.sum_amounts(
        money.quantize(money.multiply(item.quantity, item.unit_price)) for item in items
    )
    discount = money.sum_amounts(item.discount_amount for item in items)
    tax = money.sum_amounts(item.tax_amount for item in items)
    total = money.add(money.subtract(subtotal, discount), tax)
    return InvoiceTotals(
        subtotal=money.quantize(subtotal),
        discount_amount=money.quantize(discount),
        tax_amount=money.quantize(tax),
        total_amount=money.quantize(total),
    )


class InvoiceTotalsService:
    """Keeps an invoice's stored totals in line with its line items."""

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.line_item_repo = InvoiceLineItemRepository(db)

    def recalculate(self, invoice_id: UUID, commit: bool = True) -> InvoiceTotals:
        """Recompute and persist the totals of an invoice.

        Writes nothing when the stored totals already match, so running it
        twice in a row leaves the row untouched.

        Raises:
            NotFoundError: If the invoice does not exist.
        """
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        totals = compute_totals(self.line_item_repo.get_by_invoice_id(invoice_id))
        if totals == InvoiceTotals.of(invoice):
            return totals

        logger.debug("Invoice %s totals -> %s", invoice.invoice_number, totals)
        self.invoice_repo.set_totals(invoice, **totals.as_dict(), commit=commit)
        return totals

    def reset(self, invoice_id: UUID, commit: bool = True) -> None:
        invoice = self.invoice_repo.get_by_id(invoice_id)
        if not invoice:
            return
        self.invoice_repo.set_totals(invoice, **InvoiceTotals.zero().as_dict(), commit=commit)
