"""Tests for the checkout session endpoints and the full checkout flow."""

import hashlib
import hmac

import pytest
from fastapi import status
from fastapi.testclient import TestClient

SHIRT = {"product_id": 7, "name": "Linen Shirt", "price": 129900, "quantity": 1, "size": "M", "color": "white"}
JEANS = {"product_id": 12, "name": "Slim Jeans", "price": 199900, "quantity": 1, "size": "32", "color": "indigo"}
COAT = {"product_id": 31, "name": "Wool Coat", "price": 500000, "quantity": 1, "size": "L", "color": "grey"}


def sign(order_id: str, payment_id: str, secret: str) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def session_id(client: TestClient) -> str:
    response = client.post("/api/checkout/sessions", json={"lines": [SHIRT]})
    return response.json()["id"]


@pytest.fixture
def ready_session_id(client: TestClient, session_id: str, complete_shipping: dict[str, str]) -> str:
    """Session with a cart and complete shipping details."""
    client.patch(f"/api/checkout/sessions/{session_id}/shipping", json=complete_shipping)
    return session_id


class TestStartSession:
    """Tests for POST /api/checkout/sessions."""

    def test_start_session(self, client: TestClient) -> None:
        response = client.post("/api/checkout/sessions", json={"lines": [SHIRT, SHIRT]})

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "active"
        assert data["step"] == 1
        assert data["step_label"] == "Review"
        assert data["cart"]["lines"][0]["quantity"] == 2
        assert data["totals"] == {
            "subtotal": 259800,
            "shipping_fee": 0,
            "total": 259800,
            "currency": "INR",
            "free_shipping": True,
        }
        assert data["shipping_complete"] is False

    def test_client_chosen_session_id(self, client: TestClient) -> None:
        response = client.post("/api/checkout/sessions", json={"lines": [], "session_id": "sess-42"})
        assert response.json()["id"] == "sess-42"

    def test_taken_session_id_conflicts(self, client: TestClient) -> None:
        client.post("/api/checkout/sessions", json={"lines": [SHIRT], "session_id": "sess-42"})
        client.post("/api/checkout/sessions/sess-42/abandon")

        response = client.post("/api/checkout/sessions", json={"lines": [JEANS], "session_id": "sess-42"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "CHECKOUT_SESSION_EXISTS"
        session = client.get("/api/checkout/sessions/sess-42").json()
        assert session["status"] == "abandoned"
        assert session["cart"]["lines"][0]["name"] == "Linen Shirt"

    def test_invalid_line_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/checkout/sessions",
            json={"lines": [{**SHIRT, "quantity": 0}]},
        )

        assert response.status_code == 422
        data = response.json()
        assert data["error_code"] == "VALIDATION_ERROR"
        assert data["details"][0]["field"] == "body.lines.0.quantity"

    def test_unknown_session(self, client: TestClient) -> None:
        response = client.get("/api/checkout/sessions/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "CHECKOUT_SESSION_NOT_FOUND"


class TestStepNavigation:
    """Tests for the step endpoints."""

    def test_empty_cart_cannot_advance(self, client: TestClient) -> None:
        session = client.post("/api/checkout/sessions", json={"lines": []}).json()
        response = client.post(f"/api/checkout/sessions/{session['id']}/next")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "CART_EMPTY"

    def test_incomplete_shipping_blocks_payment(self, client: TestClient, session_id: str) -> None:
        client.post(f"/api/checkout/sessions/{session_id}/next")
        client.patch(f"/api/checkout/sessions/{session_id}/shipping", json={"name": "Asha", "phone": "12345"})

        response = client.post(f"/api/checkout/sessions/{session_id}/next")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["error_code"] == "SHIPPING_INFO_INCOMPLETE"
        assert "email" in data["details"]["missing"]
        assert data["details"]["invalid"] == {"phone": "Must be 10 digits"}

    def test_next_and_previous(self, client: TestClient, ready_session_id: str) -> None:
        base = f"/api/checkout/sessions/{ready_session_id}"
        assert client.post(f"{base}/next").json()["step"] == 2
        assert client.post(f"{base}/next").json()["step"] == 3
        assert client.post(f"{base}/next").json()["step"] == 3
        assert client.post(f"{base}/previous").json()["step"] == 2
        assert client.post(f"{base}/previous").json()["step"] == 1
        assert client.post(f"{base}/previous").json()["step"] == 1

    def test_go_to_step(self, client: TestClient, ready_session_id: str) -> None:
        response = client.put(f"/api/checkout/sessions/{ready_session_id}/step", json={"step": 3})
        assert response.json()["step"] == 3
        assert response.json()["step_label"] == "Payment"

    @pytest.mark.parametrize("step", [0, 4])
    def test_go_to_invalid_step(self, client: TestClient, session_id: str, step: int) -> None:
        response = client.put(f"/api/checkout/sessions/{session_id}/step", json={"step": step})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "INVALID_STEP"


class TestCartAndShipping:
    """Tests for cart replacement and shipping updates."""

    def test_replace_cart_recomputes_totals(self, client: TestClient, session_id: str) -> None:
        before = client.get(f"/api/checkout/sessions/{session_id}").json()
        assert before["totals"]["shipping_fee"] == 15000

        after = client.put(f"/api/checkout/sessions/{session_id}/cart", json={"lines": [SHIRT, JEANS]}).json()
        assert after["totals"]["subtotal"] == 329800
        assert after["totals"]["shipping_fee"] == 0

    def test_partial_shipping_update(self, client: TestClient, session_id: str) -> None:
        base = f"/api/checkout/sessions/{session_id}/shipping"
        client.patch(base, json={"name": "Asha Rao"})
        data = client.patch(base, json={"city": "Bengaluru", "address_type": "work"}).json()

        assert data["shipping"]["name"] == "Asha Rao"
        assert data["shipping"]["city"] == "Bengaluru"
        assert data["shipping"]["address_type"] == "work"
        assert "email" in data["missing_fields"]

    def test_reset_shipping(self, client: TestClient, ready_session_id: str) -> None:
        data = client.delete(f"/api/checkout/sessions/{ready_session_id}/shipping").json()
        assert data["shipping"]["name"] == ""
        assert data["shipping_complete"] is False


class TestPaymentAttempt:
    """Tests for POST /api/checkout/sessions/{id}/payment-attempt."""

    def test_attempt_returns_amount_and_key(self, client: TestClient, ready_session_id: str) -> None:
        response = client.post(f"/api/checkout/sessions/{ready_session_id}/payment-attempt")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["amount"] == 1449.0
        assert data["amount_minor"] == 144900
        assert data["idempotency_key"]

        again = client.post(f"/api/checkout/sessions/{ready_session_id}/payment-attempt").json()
        assert again["idempotency_key"] == data["idempotency_key"]
        assert client.get(f"/api/checkout/sessions/{ready_session_id}").json()["step"] == 3

    def test_attempt_requires_shipping(self, client: TestClient, session_id: str) -> None:
        response = client.post(f"/api/checkout/sessions/{session_id}/payment-attempt")
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestAbandon:
    """Tests for POST /api/checkout/sessions/{id}/abandon."""

    def test_abandon_closes_session(self, client: TestClient, session_id: str) -> None:
        response = client.post(f"/api/checkout/sessions/{session_id}/abandon", json={"reason": "closed tab"})
        assert response.json()["status"] == "abandoned"

        blocked = client.post(f"/api/checkout/sessions/{session_id}/next")
        assert blocked.status_code == status.HTTP_409_CONFLICT
        assert blocked.json()["error_code"] == "CHECKOUT_SESSION_CLOSED"

    def test_abandon_without_body(self, client: TestClient, session_id: str) -> None:
        response = client.post(f"/api/checkout/sessions/{session_id}/abandon")
        assert response.status_code == status.HTTP_200_OK

    def test_abandon_twice_conflicts(self, client: TestClient, session_id: str) -> None:
        client.post(f"/api/checkout/sessions/{session_id}/abandon")
        response = client.post(f"/api/checkout/sessions/{session_id}/abandon")
        assert response.status_code == status.HTTP_409_CONFLICT


class TestCheckoutFlow:
    """Cart to verified payment through the HTTP API."""

    def test_paid_checkout_completes_session(
        self, client: TestClient, ready_session_id: str, key_secret: str
    ) -> None:
        attempt = client.post(f"/api/checkout/sessions/{ready_session_id}/payment-attempt").json()

        order = client.post(
            "/api/payment/create-order",
            json={"amount": attempt["amount"], "checkout_session_id": ready_session_id},
            headers={"Idempotency-Key": attempt["idempotency_key"]},
        ).json()
        assert order["amount"] == 144900

        signature = hmac.new(
            key_secret.encode(), f"{order['id']}|pay_FLOW".encode(), hashlib.sha256
        ).hexdigest()
        verified = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": order["id"],
                "razorpay_payment_id": "pay_FLOW",
                "razorpay_signature": signature,
                "checkout_session_id": ready_session_id,
            },
        )
        assert verified.json()["success"] is True

        session = client.get(f"/api/checkout/sessions/{ready_session_id}").json()
        assert session["status"] == "completed"
        assert session["payment_order_id"] == order["receipt"]
        assert session["shipping"]["email"] == ""

    def test_verification_failure_keeps_session_open(
        self, client: TestClient, ready_session_id: str
    ) -> None:
        response = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": "order_TEST123",
                "razorpay_payment_id": "pay_FLOW",
                "razorpay_signature": "0" * 64,
                "checkout_session_id": ready_session_id,
            },
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert client.get(f"/api/checkout/sessions/{ready_session_id}").json()["status"] == "active"

    def test_verification_for_unknown_session_still_succeeds(
        self, client: TestClient, key_secret: str
    ) -> None:
        signature = hmac.new(key_secret.encode(), b"order_X|pay_X", hashlib.sha256).hexdigest()
        response = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": "order_X",
                "razorpay_payment_id": "pay_X",
                "razorpay_signature": signature,
                "checkout_session_id": "sess-gone",
            },
        )
        assert response.status_code == status.HTTP_200_OK

    def verify(self, client: TestClient, order_id: str, secret: str, session_id: str):
        return client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": "pay_OTHER",
                "razorpay_signature": sign(order_id, "pay_OTHER", secret),
                "checkout_session_id": session_id,
            },
        )

    def test_small_unrelated_payment_does_not_complete_session(
        self, client: TestClient, key_secret: str
    ) -> None:
        session_id = client.post("/api/checkout/sessions", json={"lines": [COAT]}).json()["id"]
        order = client.post("/api/payment/create-order", json={"amount": 1}).json()

        response = self.verify(client, order["id"], key_secret, session_id)

        assert response.status_code == status.HTTP_200_OK
        session = client.get(f"/api/checkout/sessions/{session_id}").json()
        assert session["status"] == "active"
        assert session["payment_order_id"] is None
        assert client.post(f"/api/checkout/sessions/{session_id}/next").status_code == 200

    def test_payment_for_another_session_does_not_complete(
        self, client: TestClient, ready_session_id: str, key_secret: str
    ) -> None:
        other = client.post("/api/checkout/sessions", json={"lines": [SHIRT]}).json()["id"]
        order = client.post(
            "/api/payment/create-order", json={"amount": 1449.0, "checkout_session_id": other}
        ).json()

        response = self.verify(client, order["id"], key_secret, ready_session_id)

        assert response.status_code == status.HTTP_200_OK
        assert client.get(f"/api/checkout/sessions/{ready_session_id}").json()["status"] == "active"

    def test_payment_for_unknown_gateway_order_does_not_complete(
        self, client: TestClient, ready_session_id: str, key_secret: str
    ) -> None:
        response = self.verify(client, "order_UNKNOWN", key_secret, ready_session_id)

        assert response.status_code == status.HTTP_200_OK
        assert client.get(f"/api/checkout/sessions/{ready_session_id}").json()["status"] == "active"

    def test_cart_change_after_payment_keeps_session_open(
        self, client: TestClient, ready_session_id: str, key_secret: str
    ) -> None:
        attempt = client.post(f"/api/checkout/sessions/{ready_session_id}/payment-attempt").json()
        order = client.post(
            "/api/payment/create-order",
            json={"amount": attempt["amount"], "checkout_session_id": ready_session_id},
            headers={"Idempotency-Key": attempt["idempotency_key"]},
        ).json()
        client.put(f"/api/checkout/sessions/{ready_session_id}/cart", json={"lines": [SHIRT, JEANS]})

        self.verify(client, order["id"], key_secret, ready_session_id)

        assert client.get(f"/api/checkout/sessions/{ready_session_id}").json()["status"] == "active"
