"""Storefront API client.

Thin HTTP client for the checkout and payment endpoints, used by the
payment widget adapter and by scripts driving a checkout end to end.
Transport failures are reported, never retried.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


@dataclass
class APIError:
    """Represents an API error response."""

    error_code: str
    message: str
    status_code: int
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class APIResponse:
    """Represents an API response."""

    success: bool
    data: dict[str, Any] | list[Any] | None = None
    error: APIError | None = None


def _error_from_response(response: httpx.Response) -> APIError:
    # Payment routes answer {error} or {success, message}; the rest use the error envelope
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return APIError(
            error_code=f"HTTP_{response.status_code}",
            message=f"Request failed with status {response.status_code}",
            status_code=response.status_code,
        )
    details = body.get("details")
    return APIError(
        error_code=body.get("error_code") or f"HTTP_{response.status_code}",
        message=body.get("message") or body.get("error") or "Unknown error",
        status_code=response.status_code,
        details=details if isinstance(details, dict) else {},
    )


class StorefrontAPIClient:
    """HTTP client for the storefront checkout API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            base_url: Storefront API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StorefrontAPIClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> APIResponse:
        """Make an API request.

        Args:
            method: HTTP method.
            path: API endpoint path.
            json: Request body as JSON.
            idempotency_key: Optional idempotency key.

        Returns:
            APIResponse with success status and data or error.
        """
        client = await self._get_client()

        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            logger.debug("Making API request", method=method, path=path, has_body=json is not None)
            response = await client.request(method=method, url=path, json=json, headers=headers)

            if response.status_code >= 400:
                return APIResponse(success=False, error=_error_from_response(response))
            if response.status_code == 204:
                return APIResponse(success=True, data=None)
            return APIResponse(success=True, data=response.json())

        except httpx.TimeoutException as e:
            logger.error("API request timeout", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="TIMEOUT",
                    message=f"Request timed out: {path}",
                    status_code=504,
                ),
            )
        except httpx.RequestError as e:
            logger.error("API request failed", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="REQUEST_ERROR",
                    message=f"Request failed: {e}",
                    status_code=500,
                ),
            )
        except ValueError as e:
            logger.error("Unreadable API response", path=path, error=str(e))
            return APIResponse(
                success=False,
                error=APIError(
                    error_code="INVALID_RESPONSE",
                    message="Response body is not valid JSON",
                    status_code=502,
                ),
            )

    # =========================================================================
    # Payment Endpoints
    # =========================================================================

    async def create_order(
        self,
        amount: float,
        idempotency_key: str | None = None,
        checkout_session_id: str | None = None,
    ) -> APIResponse:
        """Create a gateway order.

        Args:
            amount: Amount in major units.
            idempotency_key: Key of the checkout attempt.
            checkout_session_id: Session the payment belongs to.

        Returns:
            APIResponse with ``{id, currency, amount, receipt}``.
        """
        body: dict[str, Any] = {"amount": amount}
        if checkout_session_id:
            body["checkout_session_id"] = checkout_session_id
        return await self._request(
            "POST", "/api/payment/create-order", json=body, idempotency_key=idempotency_key
        )

    async def verify_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        checkout_session_id: str | None = None,
    ) -> APIResponse:
        """Send the hosted checkout's callback fields for verification."""
        body: dict[str, Any] = {
            "razorpay_order_id": gateway_order_id,
            "razorpay_payment_id": gateway_payment_id,
            "razorpay_signature": signature,
        }
        if checkout_session_id:
            body["checkout_session_id"] = checkout_session_id
        return await self._request("POST", "/api/payment/verify", json=body)

    async def get_payment_status(self, order_id: str) -> APIResponse:
        return await self._request("GET", f"/api/payment/status/{order_id}")

    # =========================================================================
    # Checkout Session Endpoints
    # =========================================================================

    async def start_session(
        self,
        lines: list[dict[str, Any]],
        session_id: str | None = None,
    ) -> APIResponse:
        """Start checkout for cart lines.

        Args:
            lines: Cart lines with product_id, name, price, quantity, size, color.
            session_id: Optional client-chosen session key.
        """
        body: dict[str, Any] = {"lines": lines}
        if session_id:
            body["session_id"] = session_id
        return await self._request("POST", "/api/checkout/sessions", json=body)

    async def get_session(self, session_id: str) -> APIResponse:
        return await self._request("GET", f"/api/checkout/sessions/{session_id}")

    async def replace_cart(self, session_id: str, lines: list[dict[str, Any]]) -> APIResponse:
        return await self._request(
            "PUT", f"/api/checkout/sessions/{session_id}/cart", json={"lines": lines}
        )

    async def next_step(self, session_id: str) -> APIResponse:
        return await self._request("POST", f"/api/checkout/sessions/{session_id}/next")

    async def prev_step(self, session_id: str) -> APIResponse:
        return await self._request("POST", f"/api/checkout/sessions/{session_id}/previous")

    async def go_to_step(self, session_id: str, step: int) -> APIResponse:
        return await self._request(
            "PUT", f"/api/checkout/sessions/{session_id}/step", json={"step": step}
        )

    async def update_shipping(self, session_id: str, **fields: str) -> APIResponse:
        return await self._request(
            "PATCH", f"/api/checkout/sessions/{session_id}/shipping", json=fields
        )

    async def reset_shipping(self, session_id: str) -> APIResponse:
        return await self._request("DELETE", f"/api/checkout/sessions/{session_id}/shipping")

    async def begin_payment(self, session_id: str) -> APIResponse:
        """Get the amount and idempotency key for the session's payment."""
        return await self._request(
            "POST", f"/api/checkout/sessions/{session_id}/payment-attempt"
        )

    async def abandon_session(self, session_id: str, reason: str = "abandoned") -> APIResponse:
        return await self._request(
            "POST", f"/api/checkout/sessions/{session_id}/abandon", json={"reason": reason}
        )
