"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core import database as db_module
from app.core.database import Base, enable_sqlite_foreign_keys
from app.models.invoice import Invoice, InvoiceStatus, InvoiceType
from app.models.invoice_line_item import InvoiceLineItem
from app.models.invoice_status_history import InvoiceStatusHistory
from app.services.invoice_totals import calculate_line_amounts, compute_totals, stored_amounts

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(_test_engine)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    # Patch module-level engine and session factory
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = ON"))

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        # The pragma is ignored inside a transaction
        conn.commit()
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    # Restore originals
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def invoice_factory():
    """Insert an invoice directly, bypassing the services.

    Line items are given as (quantity, unit_price, discount_amount, tax_rate)
    tuples; their derived amounts and the invoice totals are filled in.
    """
    counter = {"n": 0}

    def _create(
        db,
        customer_id="cust_1",
        status=InvoiceStatus.DRAFT,
        currency_code="EUR",
        invoice_type=InvoiceType.PRODUCT_SALE,
        invoice_date=None,
        due_date=None,
        paid_date=None,
        items=(),
        metadata=None,
        **extra,
    ):
        counter["n"] += 1
        invoice_date = invoice_date or datetime(2026, 1, counter["n"], 9, 0, tzinfo=UTC)
        invoice = Invoice(
            invoice_number=f"INV-2026-01-{counter['n']:03d}",
            customer_id=customer_id,
            status=status.value,
            invoice_type=invoice_type.value,
            currency_code=currency_code,
            invoice_date=invoice_date,
            due_date=due_date or invoice_date + timedelta(days=30),
            paid_date=paid_date,
            customer_email=f"{customer_id}@example.com",
            billing_address={"line_1": "Main Street 1", "city": "Utrecht"},
            metadata_=metadata,
            **extra,
        )
        db.add(invoice)
        db.flush()

        line_items = []
        for position, (quantity, unit_price, discount, tax_rate) in enumerate(items):
            amounts = calculate_line_amounts(quantity, unit_price, discount, tax_rate)
            line_item = InvoiceLineItem(
                invoice_id=invoice.id,
                position=position,
                title=f"Item {position + 1}",
                **stored_amounts(amounts),
            )
            db.add(line_item)
            line_items.append(line_item)
        db.flush()

        totals = compute_totals(line_items)
        for key, value in totals.as_dict().items():
            setattr(invoice, key, value)
        db.add(
            InvoiceStatusHistory(
                invoice_id=invoice.id,
                from_status=None,
                to_status=InvoiceStatus.DRAFT.value,
                changed_by="system",
                reason="Invoice created",
            )
        )
        db.commit()
        db.refresh(invoice)
        return invoice

    return _create
