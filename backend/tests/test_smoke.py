"""Minimal smoke tests.

Proves the app boots, the invoice lifecycle works end to end, and endpoints
respond correctly.
"""

from decimal import Decimal

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


def _create_invoice(client: TestClient, customer_id: str = "smoke-cust") -> dict:
    response = client.post(
        "/v1/invoices/",
        json={
            "customer_id": customer_id,
            "line_items": [{"title": "Smoke test fee", "quantity": "1", "unit_price": "49.99"}],
        },
    )
    assert response.status_code == 201
    return response.json()


def test_app_starts():
    """The FastAPI app object can be imported and is a FastAPI instance."""
    assert isinstance(app, FastAPI)


def test_health_endpoint(client: TestClient):
    """GET / returns 200 with app info."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "app" in data
    assert "version" in data


def test_options_request(client: TestClient):
    """OPTIONS requests are answered without routing."""
    response = client.options("/v1/invoices/")
    assert response.status_code == 200


def test_create_invoice(client: TestClient):
    """POST /v1/invoices/ creates a draft invoice."""
    data = _create_invoice(client)
    assert data["status"] == "draft"
    assert Decimal(data["subtotal"]) == Decimal("49.99")
    assert Decimal(data["total_amount"]) == Decimal("49.99")


def test_invoice_lifecycle(client: TestClient):
    """Draft invoice is edited, sent and paid."""
    invoice = _create_invoice(client)
    url = f"/v1/invoices/{invoice['id']}"

    added = client.post(
        f"{url}/line-items", json={"title": "Extra", "quantity": "2", "unit_price": "5"}
    )
    assert added.status_code == 201

    assert client.patch(url, json={"status": "sent"}).status_code == 200
    paid = client.patch(url, json={"status": "paid"})
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"
    assert Decimal(paid.json()["total_amount"]) == Decimal("59.99")


def test_merge_invoices(client: TestClient):
    """POST /v1/invoices/merge merges two drafts."""
    first = _create_invoice(client)
    second = _create_invoice(client)

    response = client.post(
        "/v1/invoices/merge", json={"invoice_ids": [first["id"], second["id"]]}
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["summary"]["total_amount"]) == Decimal("99.98")
    assert {i["status"] for i in data["cancelled_invoices"]} == {"cancelled"}
