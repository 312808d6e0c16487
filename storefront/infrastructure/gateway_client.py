"""Payment gateway HTTP client.

Talks to the Razorpay Orders API over httpx. Only the calls the checkout
needs are implemented: creating a hosted order and reading one back.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from storefront.infrastructure.config import settings

logger = structlog.get_logger()


class GatewayError(Exception):
    """Error from a payment gateway call.

    The message may contain provider details; it is meant for server logs
    and must not be forwarded to API callers.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(f"[gateway] {message}")


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer in time; the outcome is unknown."""

    pass


@dataclass
class GatewayOrder:
    """Order as returned by the gateway."""

    id: str
    amount: int
    currency: str
    receipt: str | None
    status: str
    attempts: int = 0
    notes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "GatewayOrder":
        notes = data.get("notes") or {}
        return cls(
            id=data["id"],
            amount=int(data["amount"]),
            currency=data.get("currency", "INR"),
            receipt=data.get("receipt"),
            status=data.get("status", "created"),
            attempts=int(data.get("attempts", 0)),
            # The API sends an empty list instead of an empty object
            notes=notes if isinstance(notes, dict) else {},
        )


class RazorpayClient:
    """Async client for the Razorpay REST API.

    Authenticates with HTTP basic auth using the key id and key secret.
    Requests are never retried here: a timed-out order creation may or may
    not exist on the gateway, and the caller decides what to do about it.
    """

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            key_id: Gateway key id.
            key_secret: Gateway key secret.
            base_url: API base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.key_id = key_id or settings.razorpay_key_id
        self._key_secret = key_secret or settings.razorpay_key_secret
        self.base_url = (base_url or settings.razorpay_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                auth=(self.key_id, self._key_secret),
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a gateway request and return the decoded body.

        Raises:
            GatewayTimeoutError: If the request timed out.
            GatewayError: On transport failures and non-2xx responses.
        """
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error("Gateway request timeout", path=path, error=str(e))
            raise GatewayTimeoutError(f"Request timed out: {path}") from e
        except httpx.RequestError as e:
            logger.error("Gateway request failed", path=path, error=str(e))
            raise GatewayError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            error_code, description = _parse_error(response)
            logger.error(
                "Gateway returned error",
                path=path,
                status_code=response.status_code,
                error_code=error_code,
                description=description,
            )
            raise GatewayError(
                description,
                status_code=response.status_code,
                error_code=error_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError("Gateway returned a non-JSON body", response.status_code) from e

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        """Create a hosted order.

        Args:
            amount_minor: Amount in minor units (paisa).
            currency: ISO currency code.
            receipt: Merchant receipt, at most 40 characters.
            notes: Optional key/value notes stored with the order.

        Returns:
            The created gateway order.
        """
        body: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
        }
        if notes:
            body["notes"] = notes

        data = await self._request("POST", "/orders", json=body)
        order = GatewayOrder.from_api_response(data)
        logger.info(
            "Gateway order created",
            gateway_order_id=order.id,
            amount=order.amount,
            currency=order.currency,
            receipt=receipt,
        )
        return order


def _parse_error(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("description") or f"HTTP {response.status_code}"
    return None, f"HTTP {response.status_code}"


# Global client instance
_gateway_client: RazorpayClient | None = None


def get_gateway_client() -> RazorpayClient:
    """Get or create the gateway client singleton."""
    global _gateway_client
    if _gateway_client is None:
        _gateway_client = RazorpayClient()
    return _gateway_client


async def close_gateway_client() -> None:
    global _gateway_client
    if _gateway_client is not None:
        await _gateway_client.close()
        _gateway_client = None
