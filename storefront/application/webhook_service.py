"""Gateway webhook processing service.

Handles payment notifications the gateway posts to the server:
- HMAC signature verification over the raw body
- Event deduplication
- Payment status updates for captured, failed and refunded payments
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from storefront.application.payment_service import (
    PaymentOrderRepository,
    get_payment_service,
    log_domain_events,
)
from storefront.domain.entities import PaymentOrder
from storefront.infrastructure.config import settings

logger = structlog.get_logger()


class GatewayEventType(str, Enum):
    """Webhook events the service acts on."""

    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    REFUND_CREATED = "refund.created"


class EventStatus(str, Enum):
    """Status of a webhook event in the event log."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"
    DUPLICATE = "duplicate"


class InvalidWebhookPayloadError(ValueError):
    """Raised when a webhook body is not a gateway event."""


@dataclass
class GatewayWebhookEvent:
    """A webhook delivery from the payment gateway.

    Attributes:
        event_id: Delivery identifier, used for deduplication.
        event_type: Event name such as ``payment.captured``.
        payload: The event's ``payload`` object.
        created_at: Event time reported by the gateway, if any.
    """

    event_id: str
    event_type: str
    payload: dict[str, Any]
    created_at: datetime | None = None

    @classmethod
    def parse(cls, body: bytes, event_id: str | None = None) -> "GatewayWebhookEvent":
        """Parse a raw webhook body.

        Without a delivery id header the SHA-256 of the body stands in,
        so redelivery of identical bytes is still recognised.

        Raises:
            InvalidWebhookPayloadError: If the body is not an event object.
        """
        try:
            data = json.loads(body)
        except ValueError as e:
            raise InvalidWebhookPayloadError("Webhook body is not JSON") from e
        if not isinstance(data, dict) or not isinstance(data.get("event"), str):
            raise InvalidWebhookPayloadError("Webhook body has no event name")

        created = data.get("created_at")
        return cls(
            event_id=event_id or hashlib.sha256(body).hexdigest(),
            event_type=data["event"],
            payload=data.get("payload") or {},
            created_at=(
                datetime.fromtimestamp(created, tz=timezone.utc)
                if isinstance(created, int)
                else None
            ),
        )

    def entity(self, name: str) -> dict[str, Any]:
        """Return ``payload[name]["entity"]`` or raise if it is missing."""
        try:
            entity = self.payload[name]["entity"]
        except (KeyError, TypeError) as e:
            raise InvalidWebhookPayloadError(f"{self.event_type} has no {name} entity") from e
        if not isinstance(entity, dict):
            raise InvalidWebhookPayloadError(f"{self.event_type} has no {name} entity")
        return entity


@dataclass
class WebhookResult:
    """Result of webhook processing."""

    success: bool
    event_id: str
    status: EventStatus
    message: str
    duplicate: bool = False


class WebhookSignatureVerifier:
    """Verifies ``X-Razorpay-Signature`` headers.

    The header carries the hex HMAC-SHA256 of the raw request body keyed
    with the webhook secret.
    """

    def __init__(self, secret: str | None) -> None:
        self._secret = secret

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def verify(self, body: bytes, signature: str | None) -> bool:
        if not self._secret:
            return False
        if not signature:
            logger.warning("Missing webhook signature")
            return False

        computed = hmac.new(self._secret.encode(), body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(computed.encode(), signature.encode()):
            logger.warning("Webhook signature mismatch")
            return False
        return True


class InMemoryEventLog:
    """In-memory log of webhook deliveries for deduplication."""

    def __init__(self) -> None:
        self._events: dict[str, dict[str, Any]] = {}

    async def is_done(self, event_id: str) -> bool:
        """Whether a delivery was already handled.

        Failed deliveries are not done, so the gateway's retry is processed.
        """
        entry = self._events.get(event_id)
        return entry is not None and entry["status"] in (
            EventStatus.PROCESSED.value,
            EventStatus.IGNORED.value,
        )

    async def record(
        self,
        event: GatewayWebhookEvent,
        status: EventStatus,
        error_message: str | None = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        entry = self._events.setdefault(
            event.event_id,
            {
                "event_id": event.event_id,
                "event_type": event.event_type,
                "received_at": now,
            },
        )
        entry["status"] = status.value
        entry["error_message"] = error_message
        if status in (EventStatus.PROCESSED, EventStatus.IGNORED):
            entry["processed_at"] = now

    async def get(self, event_id: str) -> dict[str, Any] | None:
        return self._events.get(event_id)


class GatewayWebhookService:
    """Applies gateway payment notifications to payment orders."""

    def __init__(
        self,
        order_repo: PaymentOrderRepository | None = None,
        event_log: InMemoryEventLog | None = None,
        signature_verifier: WebhookSignatureVerifier | None = None,
    ) -> None:
        """Initialize webhook service.

        Args:
            order_repo: Repository holding the orders to update.
            event_log: Event log for deduplication.
            signature_verifier: Webhook signature verifier.
        """
        self.order_repo = order_repo or get_payment_service().order_repo
        self.event_log = event_log or InMemoryEventLog()
        self.signature_verifier = signature_verifier or WebhookSignatureVerifier(
            settings.razorpay_webhook_secret
        )

    @property
    def enabled(self) -> bool:
        """Deliveries are only processed when a webhook secret is set."""
        return self.signature_verifier.configured

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        return self.signature_verifier.verify(body, signature)

    async def process_event(
        self,
        event: GatewayWebhookEvent,
        request_id: str | None = None,
    ) -> WebhookResult:
        """Process a verified webhook event.

        Args:
            event: The parsed event.
            request_id: Request ID for correlation.

        Returns:
            Processing result.
        """
        logger.info(
            "Processing webhook event",
            event_id=event.event_id,
            event_type=event.event_type,
            request_id=request_id,
        )

        if await self.event_log.is_done(event.event_id):
            logger.info("Duplicate webhook event ignored", event_id=event.event_id)
            return WebhookResult(
                success=True,
                event_id=event.event_id,
                status=EventStatus.DUPLICATE,
                message="Event already processed",
                duplicate=True,
            )

        await self.event_log.record(event, EventStatus.PROCESSING)

        handlers = {
            GatewayEventType.PAYMENT_CAPTURED.value: self._handle_payment_captured,
            GatewayEventType.PAYMENT_FAILED.value: self._handle_payment_failed,
            GatewayEventType.REFUND_CREATED.value: self._handle_refund_created,
        }
        handler = handlers.get(event.event_type)
        if handler is None:
            logger.info("Unhandled webhook event", event_type=event.event_type)
            await self.event_log.record(event, EventStatus.IGNORED)
            return WebhookResult(
                success=True,
                event_id=event.event_id,
                status=EventStatus.IGNORED,
                message="Event type not handled",
            )

        try:
            await handler(event)
        except Exception as e:
            logger.error(
                "Failed to process webhook event",
                event_id=event.event_id,
                event_type=event.event_type,
                error=str(e),
                request_id=request_id,
            )
            await self.event_log.record(event, EventStatus.FAILED, error_message=str(e))
            return WebhookResult(
                success=False,
                event_id=event.event_id,
                status=EventStatus.FAILED,
                message="Webhook processing failed",
            )

        await self.event_log.record(event, EventStatus.PROCESSED)
        return WebhookResult(
            success=True,
            event_id=event.event_id,
            status=EventStatus.PROCESSED,
            message="Event processed successfully",
        )

    async def _handle_payment_captured(self, event: GatewayWebhookEvent) -> None:
        payment = event.entity("payment")
        order = await self.order_repo.get_by_gateway_order_id(payment.get("order_id") or "")
        if order is None:
            logger.info("Captured payment for unknown order", gateway_order_id=payment.get("order_id"))
            return
        if order.status.is_settled():
            logger.info("Captured payment for settled order", order_id=order.id, status=order.status.value)
            return
        if order.mark_paid(payment["id"]):
            await self._save(order)
            logger.info("Order marked paid via webhook", order_id=order.id)

    async def _handle_payment_failed(self, event: GatewayWebhookEvent) -> None:
        payment = event.entity("payment")
        order = await self.order_repo.get_by_gateway_order_id(payment.get("order_id") or "")
        if order is None:
            logger.info("Failed payment for unknown order", gateway_order_id=payment.get("order_id"))
            return
        reason = payment.get("error_description") or payment.get("error_code") or "payment failed"
        order.mark_failed(reason)
        await self._save(order)
        logger.info("Order payment failed via webhook", order_id=order.id, status=order.status.value)

    async def _handle_refund_created(self, event: GatewayWebhookEvent) -> None:
        refund = event.entity("refund")
        order = await self.order_repo.get_by_gateway_payment_id(refund.get("payment_id") or "")
        if order is None:
            logger.info("Refund for unknown payment", gateway_payment_id=refund.get("payment_id"))
            return
        if not order.status.is_settled():
            logger.info("Refund for unsettled order", order_id=order.id, status=order.status.value)
            return
        if order.mark_refunded():
            await self._save(order)
            logger.info("Order refunded via webhook", order_id=order.id)

    async def _save(self, order: PaymentOrder) -> None:
        await self.order_repo.save(order)
        log_domain_events(order)


# Global service instance
_webhook_service: GatewayWebhookService | None = None


def get_webhook_service() -> GatewayWebhookService:
    """Get or create the webhook service instance."""
    global _webhook_service
    if _webhook_service is None:
        _webhook_service = GatewayWebhookService()
    return _webhook_service


def reset_webhook_service() -> None:
    """Drop the service instance (for testing)."""
    global _webhook_service
    _webhook_service = None
