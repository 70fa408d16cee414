"""Tests for session helpers and step transactions."""

import pytest
from sqlalchemy import delete, inspect, text
from sqlalchemy.exc import OperationalError

from app.core import database as db_module
from app.core.database import atomic, get_db, init_db
from app.core.errors import UnexpectedStateError
from app.models.invoice import Invoice
from app.models.invoice_line_item import InvoiceLineItem


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class TestInitDb:
    def test_creates_tables_idempotently(self):
        init_db()

        tables = set(inspect(db_module.engine).get_table_names())
        assert {"invoices", "invoice_line_items", "invoice_status_history"} <= tables


class TestAtomic:
    def test_commits_on_success(self, db_session, invoice_factory):
        invoice = invoice_factory(db_session)

        with atomic(db_session):
            invoice.notes = "committed"

        db_session.expire_all()
        assert db_session.get(Invoice, invoice.id).notes == "committed"

    def test_rolls_back_on_error(self, db_session, invoice_factory):
        invoice = invoice_factory(db_session, notes="before")

        with pytest.raises(RuntimeError), atomic(db_session):
            invoice.notes = "after"
            db_session.flush()
            raise RuntimeError("step failed")

        assert db_session.get(Invoice, invoice.id).notes == "before"

    def test_wraps_database_errors(self, db_session, invoice_factory):
        invoice = invoice_factory(db_session, notes="before")

        with pytest.raises(UnexpectedStateError, match="Database write failed") as exc_info:
            with atomic(db_session):
                invoice.notes = "after"
                raise OperationalError("UPDATE invoices", {}, Exception("disk I/O error"))

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert db_session.get(Invoice, invoice.id).notes == "before"


class TestForeignKeys:
    # Repeated so that at least one run follows another test's teardown
    @pytest.mark.parametrize("run", [1, 2])
    def test_enforced_for_every_test(self, db_session, run):
        assert db_session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    @pytest.mark.parametrize("run", [1, 2])
    def test_invoice_delete_cascades_in_database(self, db_session, invoice_factory, run):
        invoice = invoice_factory(db_session, items=[(1, 10, 0, 0), (1, 20, 0, 0)])

        db_session.execute(delete(Invoice).where(Invoice.id == invoice.id))
        db_session.commit()

        assert db_session.query(InvoiceLineItem).count() == 0
