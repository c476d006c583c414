"""Testes dos endpoints HTTP (pagamentos e webhooks)."""

import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from checkout.main import app
from checkout.routers.payments import get_engine
from checkout.utils.security import create_access_token, sign_payload

OWNER_HEADERS = {"Authorization": f"Bearer {create_access_token({'sub': 'owner-1'})}"}
OTHER_HEADERS = {"Authorization": f"Bearer {create_access_token({'sub': 'owner-2'})}"}

PIX_BODY = {"customer_name": "Maria da Silva", "customer_document": "529.982.247-25"}
SLIP_BODY = {
    "customer_name": "Maria da Silva",
    "customer_document": "52998224725",
    "address": {
        "street": "Rua das Flores",
        "number": "100",
        "city": "São Paulo",
        "state": "SP",
        "zip_code": "01000-000",
    },
}


@pytest.fixture
def client(session_factory, make_engine):
    def override_engine():
        session = session_factory()
        try:
            yield make_engine(session)
        finally:
            session.close()

    app.dependency_overrides[get_engine] = override_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def initiate(client, amount="100.00", **extra) -> str:
    response = client.post(
        "/payments/initiate",
        json={"order_id": "order-api", "amount": amount, **extra},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()["transaction_id"]


def send_webhook(client, payload: dict, signature: str = None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["X-Webhook-Signature"] = signature or sign_payload(body)
    return client.post("/webhooks/payments", content=body, headers=headers)


class TestHealth:
    def test_root(self, client) -> None:
        assert client.get("/").json()["status"] == "running"

    def test_health(self, client) -> None:
        assert client.get("/health").json()["status"] == "healthy"


class TestInitiate:
    def test_initiate(self, client) -> None:
        response = client.post(
            "/payments/initiate",
            json={
                "order_id": "order-1",
                "amount": "1000.00",
                "rail": "card_credit",
                "installments": 3,
                "items": [{"product_id": "sku-1", "quantity": 2, "unit_price": "500.00"}],
            },
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert Decimal(data["final_amount"]) == Decimal("1030.00")
        assert Decimal(data["fees"]["installment_fee"]) == Decimal("30.00")

    def test_requires_token(self, client) -> None:
        response = client.post("/payments/initiate", json={"order_id": "x", "amount": "10.00"})
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client) -> None:
        response = client.post(
            "/payments/initiate",
            json={"order_id": "x", "amount": "10.00"},
            headers={"Authorization": "Bearer invalido"},
        )
        assert response.status_code == 401

    def test_amount_out_of_bounds(self, client) -> None:
        response = client.post(
            "/payments/initiate",
            json={"order_id": "x", "amount": "0.50", "rail": "card_credit"},
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "amount"

    def test_simulate_fees(self, client) -> None:
        response = client.get("/payments/fees", params={"amount": "100.00", "rail": "bank_slip"})
        assert response.status_code == 200
        assert Decimal(response.json()["final_amount"]) == Decimal("103.50")


class TestPixFlow:
    def test_pix_then_webhook(self, client) -> None:
        transaction_id = initiate(client)

        response = client.post(f"/payments/{transaction_id}/pix", json=PIX_BODY, headers=OWNER_HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "awaiting_payment"
        assert data["payload_text"].startswith("000201")
        assert data["payload_image"].startswith("data:image/png;base64,")

        response = send_webhook(client, {"transaction_id": transaction_id, "status": "paid", "amount": "100.00"})
        assert response.status_code == 200
        assert response.json() == {"received": True, "transaction_id": transaction_id, "status": "paid"}

        data = client.get(f"/payments/{transaction_id}", headers=OWNER_HEADERS).json()
        assert data["status"] == "paid"
        assert data["artifact"]["kind"] == "instant_transfer"

        events = client.get(f"/payments/{transaction_id}/events", headers=OWNER_HEADERS).json()
        assert [event["event_type"] for event in events] == [
            "INITIATED", "PIX_GENERATED", "WEBHOOK_RECEIVED", "PAYMENT_CONFIRMED",
        ]

    def test_invalid_document_returns_field(self, client) -> None:
        transaction_id = initiate(client)
        response = client.post(
            f"/payments/{transaction_id}/pix",
            json={**PIX_BODY, "customer_document": "12345678900"},
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "customer_document"

    def test_second_process_conflict(self, client) -> None:
        transaction_id = initiate(client)
        client.post(f"/payments/{transaction_id}/pix", json=PIX_BODY, headers=OWNER_HEADERS)

        response = client.post(f"/payments/{transaction_id}/pix", json=PIX_BODY, headers=OWNER_HEADERS)
        assert response.status_code == 409
        assert response.json()["current_status"] == "awaiting_payment"

    def test_other_owner_sees_nothing(self, client) -> None:
        transaction_id = initiate(client)
        assert client.get(f"/payments/{transaction_id}", headers=OTHER_HEADERS).status_code == 404
        response = client.post(f"/payments/{transaction_id}/pix", json=PIX_BODY, headers=OTHER_HEADERS)
        assert response.status_code == 404


class TestWebhook:
    @pytest.fixture
    def awaiting(self, client) -> str:
        transaction_id = initiate(client)
        client.post(f"/payments/{transaction_id}/pix", json=PIX_BODY, headers=OWNER_HEADERS)
        return transaction_id

    def test_bad_signature(self, client, awaiting) -> None:
        payload = {"transaction_id": awaiting, "status": "paid", "amount": "100.00"}
        response = send_webhook(client, payload, signature="0" * 64)
        assert response.status_code == 401

        data = client.get(f"/payments/{awaiting}", headers=OWNER_HEADERS).json()
        assert data["status"] == "awaiting_payment"

    def test_missing_signature(self, client, awaiting) -> None:
        payload = {"transaction_id": awaiting, "status": "paid", "amount": "100.00"}
        assert send_webhook(client, payload, signature=False).status_code == 401

    def test_signature_covers_raw_body(self, client, awaiting) -> None:
        original = json.dumps({"transaction_id": awaiting, "status": "paid", "amount": "1.00"}).encode()
        signature = sign_payload(original)
        forged = {"transaction_id": awaiting, "status": "paid", "amount": "100.00"}
        assert send_webhook(client, forged, signature=signature).status_code == 401

    def test_unknown_status(self, client, awaiting) -> None:
        response = send_webhook(client, {"transaction_id": awaiting, "status": "talvez"})
        assert response.status_code == 422
        assert response.json()["field"] == "status"

    def test_malformed_body(self, client) -> None:
        response = send_webhook(client, {"status": "paid"})
        assert response.status_code == 422

    def test_unknown_transaction(self, client) -> None:
        response = send_webhook(client, {"transaction_id": "nao-existe", "status": "paid", "amount": "1.00"})
        assert response.status_code == 404

    def test_duplicate_is_accepted(self, client, awaiting) -> None:
        payload = {"transaction_id": awaiting, "status": "paid", "amount": "100.00"}
        assert send_webhook(client, payload).status_code == 200
        response = send_webhook(client, payload)
        assert response.status_code == 200
        assert response.json()["status"] == "paid"

    def test_late_payment_redelivery_is_accepted(self, client, awaiting) -> None:
        payload = {
            "transaction_id": awaiting,
            "status": "paid",
            "amount": "100.00",
            "paid_at": "2026-10-19T14:00:00",
        }
        first = send_webhook(client, payload)
        assert first.status_code == 200
        assert first.json()["status"] == "expired"

        second = send_webhook(client, payload)
        assert second.status_code == 200
        assert second.json()["status"] == "expired"


class TestCard:
    def card_body(self, number: str = "5555555555554444", **extra) -> dict:
        return {
            "number": number,
            "holder_name": "MARIA DA SILVA",
            "expiry_month": 12,
            "expiry_year": 2030,
            "cvv": "123",
            **extra,
        }

    def test_approved(self, client) -> None:
        transaction_id = initiate(client)
        response = client.post(
            f"/payments/{transaction_id}/card", json=self.card_body(installments=2), headers=OWNER_HEADERS
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "paid"
        assert data["masked_number"] == "555555******4444"
        assert "5555555555554444" not in response.text

    def test_declined(self, client) -> None:
        transaction_id = initiate(client)
        response = client.post(
            f"/payments/{transaction_id}/card", json=self.card_body("4111111111111111"), headers=OWNER_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["failure_cause"] == "rejected"

    def test_debit_with_installments(self, client) -> None:
        transaction_id = initiate(client)
        response = client.post(
            f"/payments/{transaction_id}/card",
            json=self.card_body(debit=True, installments=2),
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 422
        assert response.json()["field"] == "installments"

    def test_cancel_paid_conflict(self, client) -> None:
        transaction_id = initiate(client)
        client.post(f"/payments/{transaction_id}/card", json=self.card_body(), headers=OWNER_HEADERS)

        response = client.post(f"/payments/{transaction_id}/cancel", json={}, headers=OWNER_HEADERS)
        assert response.status_code == 409
        assert response.json()["current_status"] == "paid"


class TestBankSlip:
    def test_generate_and_download(self, client) -> None:
        transaction_id = initiate(client, rail="bank_slip")

        response = client.post(f"/payments/{transaction_id}/bank-slip", json=SLIP_BODY, headers=OWNER_HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert len(data["barcode"]) == 44
        assert Decimal(data["amount"]) == Decimal("103.50")
        assert data["due_date"] == "2026-10-22"

        response = client.get(f"/payments/{transaction_id}/bank-slip/pdf", headers=OWNER_HEADERS)
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    def test_late_fees(self, client) -> None:
        transaction_id = initiate(client, rail="bank_slip")
        client.post(f"/payments/{transaction_id}/bank-slip", json=SLIP_BODY, headers=OWNER_HEADERS)

        response = client.get(
            f"/payments/{transaction_id}/bank-slip/late-fees",
            params={"payment_date": "2026-11-01"},
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["late_days"] == 10
        assert Decimal(data["total_amount"]) == Decimal("105.92")

    def test_missing_address(self, client) -> None:
        transaction_id = initiate(client)
        body = {key: value for key, value in SLIP_BODY.items() if key != "address"}
        response = client.post(f"/payments/{transaction_id}/bank-slip", json=body, headers=OWNER_HEADERS)
        assert response.status_code == 422
        assert response.json()["field"] == "address"

    def test_parse_line(self, client) -> None:
        line = "00190.50095 40144.816069 06809.350314 3 37370000000100"
        response = client.get("/payments/bank-slip/parse", params={"line": line}, headers=OWNER_HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["bank_code"] == "001"
        assert Decimal(data["amount"]) == Decimal("1.00")
        assert data["barcode"] == "00193373700000001000500940144816060680935031"

        bad = line.replace("00190.50095", "00190.50096")
        response = client.get("/payments/bank-slip/parse", params={"line": bad}, headers=OWNER_HEADERS)
        assert response.status_code == 422
        assert response.json()["field"] == "digitable_line"

    def test_pdf_without_slip(self, client) -> None:
        transaction_id = initiate(client)
        response = client.get(f"/payments/{transaction_id}/bank-slip/pdf", headers=OWNER_HEADERS)
        assert response.status_code == 404


class TestListAndCancel:
    def test_list_own_transactions(self, client) -> None:
        initiate(client)
        initiate(client)
        client.post(
            "/payments/initiate", json={"order_id": "other", "amount": "10.00"}, headers=OTHER_HEADERS
        )

        data = client.get("/payments", params={"per_page": 1}, headers=OWNER_HEADERS).json()
        assert data["total"] == 2
        assert len(data["transactions"]) == 1

    def test_cancel(self, client) -> None:
        transaction_id = initiate(client)
        response = client.post(
            f"/payments/{transaction_id}/cancel", json={"reason": "desistiu"}, headers=OWNER_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        data = client.get("/payments", params={"status": "cancelled"}, headers=OWNER_HEADERS).json()
        assert data["total"] == 1
