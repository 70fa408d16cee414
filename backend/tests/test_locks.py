"""Tests for per-invoice locking."""

import threading
import time
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.locks import KeyedLock, invoice_locks
from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class TestKeyedLock:
    def test_hold_and_release(self):
        locks = KeyedLock()
        key = uuid4()

        with locks.hold(key):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_reentrant_for_same_thread(self):
        locks = KeyedLock()
        key = uuid4()

        with locks.hold(key), locks.hold(key):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_duplicate_keys_held_once(self):
        locks = KeyedLock()
        key = uuid4()

        with locks.hold(key, key):
            assert len(locks) == 1

    def test_released_on_error(self):
        locks = KeyedLock()
        key = uuid4()

        try:
            with locks.hold(key):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert len(locks) == 0

    def test_serializes_same_key(self):
        locks = KeyedLock()
        key = uuid4()
        events: list[str] = []

        def worker(name: str) -> None:
            with locks.hold(key):
                events.append(f"{name}-in")
                time.sleep(0.02)
                events.append(f"{name}-out")

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Each holder leaves before the next one enters
        for i in range(0, len(events), 2):
            assert events[i].endswith("-in")
            assert events[i + 1] == events[i].replace("-in", "-out")
        assert len(locks) == 0

    def test_overlapping_key_sets_do_not_deadlock(self):
        locks = KeyedLock()
        first, second = uuid4(), uuid4()
        done: list[int] = []

        def worker(keys, marker):
            for _ in range(20):
                with locks.hold(*keys):
                    done.append(marker)

        threads = [
            threading.Thread(target=worker, args=((first, second), 1)),
            threading.Thread(target=worker, args=((second, first), 2)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert not any(t.is_alive() for t in threads)
        assert len(done) == 40

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other() -> None:
            with locks.hold(uuid4()):
                entered.set()

        with locks.hold(uuid4()):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=2)
            thread.join()


class TestInvoiceRoutes:
    def _send_in_thread(self, send):
        responses = []
        thread = threading.Thread(target=lambda: responses.append(send()))
        thread.start()
        return thread, responses

    def test_patch_waits_for_held_invoice(self, client, db_session, invoice_factory):
        invoice = invoice_factory(db_session)

        with invoice_locks.hold(invoice.id):
            thread, responses = self._send_in_thread(
                lambda: client.patch(f"/v1/invoices/{invoice.id}", json={"notes": "queued"})
            )
            thread.join(timeout=0.3)
            assert thread.is_alive()
            assert responses == []

        thread.join(timeout=5)
        assert not thread.is_alive()
        assert responses[0].status_code == 200
        assert responses[0].json()["notes"] == "queued"

    def test_line_item_add_waits_for_held_invoice(self, client, db_session, invoice_factory):
        invoice = invoice_factory(db_session)
        payload = {"title": "Labor", "quantity": "1", "unit_price": "10"}

        with invoice_locks.hold(invoice.id):
            thread, responses = self._send_in_thread(
                lambda: client.post(f"/v1/invoices/{invoice.id}/line-items", json=payload)
            )
            thread.join(timeout=0.3)
            assert thread.is_alive()

        thread.join(timeout=5)
        assert responses[0].status_code == 201

    def test_other_invoice_is_not_blocked(self, client, db_session, invoice_factory):
        held = invoice_factory(db_session)
        other = invoice_factory(db_session)

        with invoice_locks.hold(held.id):
            thread, responses = self._send_in_thread(
                lambda: client.patch(f"/v1/invoices/{other.id}", json={"notes": "free"})
            )
            thread.join(timeout=5)
            assert not thread.is_alive()

        assert responses[0].status_code == 200
