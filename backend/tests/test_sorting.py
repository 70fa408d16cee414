"""Tests for the sorting utility and sorted invoice listings."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.sorting import apply_order_by, parse_order_by
from app.main import app
from app.models.invoice import Invoice
from app.repositories.invoice_repository import SORTABLE_COLUMNS, InvoiceRepository

DEFAULT = ("invoice_date", "desc")


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def db_session():
    """Create a database session for direct repository testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class TestParseOrderBy:
    def test_none_uses_default(self):
        assert parse_order_by(None, SORTABLE_COLUMNS, DEFAULT) == DEFAULT

    def test_empty_uses_default(self):
        assert parse_order_by("", SORTABLE_COLUMNS, DEFAULT) == DEFAULT

    def test_field_and_direction(self):
        result = parse_order_by("total_amount:desc", SORTABLE_COLUMNS, DEFAULT)
        assert result == ("total_amount", "desc")

    def test_missing_direction_is_ascending(self):
        assert parse_order_by("due_date", SORTABLE_COLUMNS, DEFAULT) == ("due_date", "asc")

    def test_unknown_field_uses_default(self):
        assert parse_order_by("customer_phone:asc", SORTABLE_COLUMNS, DEFAULT) == DEFAULT

    def test_unknown_direction_uses_default_direction(self):
        result = parse_order_by("status:sideways", SORTABLE_COLUMNS, DEFAULT)
        assert result == ("status", "desc")


class TestApplyOrderBy:
    def test_orders_query(self, db_session: Session, invoice_factory):
        invoice_factory(db_session, items=[(1, 30, 0, 0)])
        invoice_factory(db_session, items=[(1, 10, 0, 0)])
        invoice_factory(db_session, items=[(1, 20, 0, 0)])

        query = apply_order_by(db_session.query(Invoice), SORTABLE_COLUMNS, "total_amount:desc")

        assert [int(i.total_amount) for i in query.all()] == [30, 20, 10]

    def test_default_order(self, db_session: Session, invoice_factory):
        first = invoice_factory(db_session)
        second = invoice_factory(db_session)

        invoices = InvoiceRepository(db_session).get_all()

        assert [i.id for i in invoices] == [second.id, first.id]


class TestInvoiceListSorting:
    def test_sort_by_invoice_number(self, client, db_session, invoice_factory):
        for _ in range(3):
            invoice_factory(db_session)

        response = client.get("/v1/invoices/", params={"order_by": "invoice_number:asc"})

        numbers = [i["invoice_number"] for i in response.json()]
        assert numbers == sorted(numbers)

    def test_unknown_sort_field_is_ignored(self, client, db_session, invoice_factory):
        invoice_factory(db_session)

        response = client.get("/v1/invoices/", params={"order_by": "DROP TABLE:asc"})

        assert response.status_code == 200
        assert len(response.json()) == 1
