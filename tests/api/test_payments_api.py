"""Tests for the payment endpoints.

Tests:
- POST /api/payment/create-order
- POST /api/payment/verify
- GET /api/payment/status/{order_id}
"""

import hashlib
import hmac

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from storefront.infrastructure.gateway_client import GatewayError, GatewayTimeoutError


def sign(order_id: str, payment_id: str, secret: str) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def flip_one_char(signature: str) -> str:
    return ("1" if signature[0] == "0" else "0") + signature[1:]


# ============================================================================
# Create Order
# ============================================================================


class TestCreateOrder:
    """Tests for POST /api/payment/create-order."""

    def test_amount_is_sent_in_minor_units(self, client: TestClient, gateway) -> None:
        response = client.post("/api/payment/create-order", json={"amount": 25})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == "order_TEST123"
        assert data["amount"] == 2500
        assert data["currency"] == "INR"
        assert data["receipt"]
        assert gateway.create_order.await_args.kwargs["amount_minor"] == 2500

    def test_fractional_amount_rounds_to_paisa(self, client: TestClient) -> None:
        response = client.post("/api/payment/create-order", json={"amount": 1449.99})
        assert response.json()["amount"] == 144999

    @pytest.mark.parametrize(
        "body",
        [
            {"amount": 0},
            {"amount": -10},
            {"amount": "25"},
            {"amount": True},
            {"amount": None},
            {},
            {"amount": 0.001},
            {"amount": 1e30},
        ],
    )
    def test_invalid_amount_rejected(self, client: TestClient, gateway, body: dict) -> None:
        response = client.post("/api/payment/create-order", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid amount"}
        gateway.create_order.assert_not_awaited()

    def test_unparsable_body_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/payment/create-order",
            content=b"amount=25",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_gateway_error_is_generic(self, client: TestClient, gateway) -> None:
        gateway.create_order.side_effect = GatewayError(
            "The api key provided is invalid", status_code=401, error_code="BAD_REQUEST_ERROR"
        )
        response = client.post("/api/payment/create-order", json={"amount": 25})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Error creating order"}
        assert "api key" not in response.text

    def test_gateway_timeout_is_generic(self, client: TestClient, gateway) -> None:
        gateway.create_order.side_effect = GatewayTimeoutError("Request timed out: /orders")
        response = client.post("/api/payment/create-order", json={"amount": 25})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Error creating order"}

    def test_key_secret_never_returned(self, client: TestClient, key_secret: str) -> None:
        response = client.post("/api/payment/create-order", json={"amount": 25})
        assert key_secret not in response.text

    def test_idempotency_key_replays_order(self, client: TestClient, gateway) -> None:
        headers = {"Idempotency-Key": "attempt-1"}
        first = client.post("/api/payment/create-order", json={"amount": 25}, headers=headers)
        second = client.post("/api/payment/create-order", json={"amount": 25}, headers=headers)

        assert first.status_code == second.status_code == status.HTTP_200_OK
        assert first.json() == second.json()
        gateway.create_order.assert_awaited_once()

    def test_idempotency_key_with_other_amount_conflicts(self, client: TestClient) -> None:
        headers = {"Idempotency-Key": "attempt-1"}
        client.post("/api/payment/create-order", json={"amount": 25}, headers=headers)
        response = client.post("/api/payment/create-order", json={"amount": 30}, headers=headers)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "IDEMPOTENCY_CONFLICT"

    def test_without_key_each_call_creates_order(self, client: TestClient, gateway) -> None:
        client.post("/api/payment/create-order", json={"amount": 25})
        client.post("/api/payment/create-order", json={"amount": 25})
        assert gateway.create_order.await_count == 2


# ============================================================================
# Verify Payment
# ============================================================================


class TestVerifyPayment:
    """Tests for POST /api/payment/verify."""

    def test_valid_signature(self, client: TestClient, key_secret: str) -> None:
        response = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": "order_TEST123",
                "razorpay_payment_id": "pay_ABC",
                "razorpay_signature": sign("order_TEST123", "pay_ABC", key_secret),
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "message": "Payment verified successfully"}

    def test_tampered_signature(self, client: TestClient, key_secret: str) -> None:
        """Flipping one hex character fails verification with a 400."""
        signature = sign("order_TEST123", "pay_ABC", key_secret)
        response = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": "order_TEST123",
                "razorpay_payment_id": "pay_ABC",
                "razorpay_signature": flip_one_char(signature),
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"success": False, "message": "Invalid signature"}

    def test_signature_from_other_secret(self, client: TestClient) -> None:
        response = client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": "order_TEST123",
                "razorpay_payment_id": "pay_ABC",
                "razorpay_signature": sign("order_TEST123", "pay_ABC", "guessed-secret"),
            },
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"razorpay_order_id": "order_TEST123", "razorpay_payment_id": "pay_ABC"},
            {"razorpay_order_id": "", "razorpay_payment_id": "pay_ABC", "razorpay_signature": "x"},
            {"razorpay_order_id": 5, "razorpay_payment_id": "pay_ABC", "razorpay_signature": "x"},
        ],
    )
    def test_missing_fields(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/payment/verify", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"success": False, "message": "Missing payment verification data"}

    @pytest.mark.parametrize("content", [b"{not json", b"[1, 2]"])
    def test_unreadable_body(self, client: TestClient, content: bytes) -> None:
        response = client.post(
            "/api/payment/verify",
            content=content,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Internal Server Error"}

    def test_lone_surrogate_is_internal_error(self, client: TestClient) -> None:
        content = (
            b'{"razorpay_order_id": "\\ud800", "razorpay_payment_id": "pay_1",'
            b' "razorpay_signature": "abc"}'
        )
        response = TestClient(client.app, raise_server_exceptions=False).post(
            "/api/payment/verify",
            content=content,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Internal Server Error"}

    def test_verification_marks_order_paid(self, client: TestClient, key_secret: str) -> None:
        created = client.post("/api/payment/create-order", json={"amount": 25}).json()

        client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": created["id"],
                "razorpay_payment_id": "pay_ABC",
                "razorpay_signature": sign(created["id"], "pay_ABC", key_secret),
            },
        )

        order = client.get(f"/api/payment/status/{created['receipt']}").json()
        assert order["payment_status"] == "paid"
        assert order["payment_id"] == "pay_ABC"
        assert order["paid_at"] is not None

    def test_failed_verification_leaves_order_pending(self, client: TestClient, key_secret: str) -> None:
        created = client.post("/api/payment/create-order", json={"amount": 25}).json()
        client.post(
            "/api/payment/verify",
            json={
                "razorpay_order_id": created["id"],
                "razorpay_payment_id": "pay_ABC",
                "razorpay_signature": flip_one_char(sign(created["id"], "pay_ABC", key_secret)),
            },
        )

        order = client.get(f"/api/payment/status/{created['id']}").json()
        assert order["payment_status"] == "pending"


# ============================================================================
# Payment Status
# ============================================================================


class TestPaymentStatus:
    """Tests for GET /api/payment/status/{order_id}."""

    def test_lookup_by_gateway_id(self, client: TestClient) -> None:
        created = client.post("/api/payment/create-order", json={"amount": 25}).json()

        response = client.get(f"/api/payment/status/{created['id']}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["order_id"] == created["receipt"]
        assert data["gateway_order_id"] == "order_TEST123"
        assert data["amount"] == 2500

    def test_unknown_order(self, client: TestClient) -> None:
        response = client.get("/api/payment/status/order_UNKNOWN")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        data = response.json()
        assert data["error_code"] == "ORDER_NOT_FOUND"
        assert "request_id" in data
