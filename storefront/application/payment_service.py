"""Payment application service.

Creates gateway orders for checkout totals and verifies the signed
callbacks the gateway hands back to the browser:
- Internal payment orders are persisted before the gateway is called
- Retries with the same idempotency key reuse the stored order
- Callback signatures are checked in constant time
- Verified payments mark the matching order paid
"""

import asyncio
import hashlib
import hmac
from dataclasses import dataclass
from typing import Protocol

import structlog

from storefront.domain.base import AggregateRoot
from storefront.domain.entities import PaymentOrder
from storefront.domain.exceptions import (
    IdempotencyConflictError,
    InvalidStateTransitionError,
    PaymentOrderNotFoundError,
)
from storefront.domain.value_objects import Money
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session_factory
from storefront.infrastructure.gateway_client import (
    GatewayError,
    GatewayTimeoutError,
    RazorpayClient,
    get_gateway_client,
)
from storefront.infrastructure.repositories import SqlPaymentOrderRepository

logger = structlog.get_logger()

CREATE_ORDER_FAILED_MESSAGE = "Error creating order"
VERIFIED_MESSAGE = "Payment verified successfully"
INVALID_SIGNATURE_MESSAGE = "Invalid signature"


# ============================================================================
# Signature Verification
# ============================================================================


def compute_signature(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """Signature the gateway attaches to a completed payment.

    HMAC-SHA256 keyed with the key secret over ``"{order_id}|{payment_id}"``,
    as a lowercase hex digest.
    """
    message = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


class PaymentSignatureVerifier:
    """Checks payment callbacks against the gateway key secret."""

    def __init__(self, secret: str | None = None) -> None:
        self._secret = secret or settings.razorpay_key_secret

    def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Return True only for a signature produced with our key secret.

        The comparison runs in constant time.
        """
        expected = compute_signature(gateway_order_id, gateway_payment_id, self._secret)
        return hmac.compare_digest(expected.encode(), signature.encode())


# ============================================================================
# Repository
# ============================================================================


class PaymentOrderRepository(Protocol):
    """Storage for payment orders."""

    async def get(self, order_id: str) -> PaymentOrder | None: ...

    async def get_by_idempotency_key(self, key: str) -> PaymentOrder | None: ...

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> PaymentOrder | None: ...

    async def get_by_gateway_payment_id(self, gateway_payment_id: str) -> PaymentOrder | None: ...

    async def save(self, order: PaymentOrder) -> None: ...


class InMemoryPaymentOrderRepository:
    """Payment orders kept for the lifetime of the process."""

    def __init__(self) -> None:
        self._orders: dict[str, PaymentOrder] = {}
        self._by_idempotency_key: dict[str, str] = {}
        self._by_gateway_order_id: dict[str, str] = {}
        self._by_gateway_payment_id: dict[str, str] = {}

    async def get(self, order_id: str) -> PaymentOrder | None:
        return self._orders.get(order_id)

    async def get_by_idempotency_key(self, key: str) -> PaymentOrder | None:
        order_id = self._by_idempotency_key.get(key)
        return self._orders.get(order_id) if order_id else None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> PaymentOrder | None:
        order_id = self._by_gateway_order_id.get(gateway_order_id)
        return self._orders.get(order_id) if order_id else None

    async def get_by_gateway_payment_id(self, gateway_payment_id: str) -> PaymentOrder | None:
        order_id = self._by_gateway_payment_id.get(gateway_payment_id)
        return self._orders.get(order_id) if order_id else None

    async def save(self, order: PaymentOrder) -> None:
        self._orders[order.id] = order
        if order.idempotency_key:
            self._by_idempotency_key[order.idempotency_key] = order.id
        if order.gateway_order_id:
            self._by_gateway_order_id[order.gateway_order_id] = order.id
        if order.gateway_payment_id:
            self._by_gateway_payment_id[order.gateway_payment_id] = order.id


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CreatePaymentOrderResult:
    """Result of creating a gateway order.

    ``replayed`` is set when an earlier attempt with the same idempotency
    key had already created the gateway order.
    """

    order: PaymentOrder | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    replayed: bool = False


@dataclass
class VerifyPaymentResult:
    """Result of verifying a payment callback."""

    success: bool
    message: str
    order: PaymentOrder | None = None
    error_code: str | None = None


def log_domain_events(aggregate: AggregateRoot, request_id: str | None = None) -> None:
    """Log and clear the events an aggregate recorded."""
    for event in aggregate.collect_events():
        logger.info("Domain event", request_id=request_id, **event.to_dict())


# ============================================================================
# Payment Service
# ============================================================================


class PaymentService:
    """Application service for gateway orders and payment verification."""

    def __init__(
        self,
        order_repo: PaymentOrderRepository | None = None,
        gateway: RazorpayClient | None = None,
        verifier: PaymentSignatureVerifier | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            order_repo: Payment order repository.
            gateway: Gateway HTTP client.
            verifier: Callback signature verifier.
            request_id: Request ID for correlation.
        """
        self.order_repo = order_repo or InMemoryPaymentOrderRepository()
        self.gateway = gateway or get_gateway_client()
        self.verifier = verifier or PaymentSignatureVerifier()
        self.request_id = request_id
        self._key_locks: dict[str, asyncio.Lock] = {}

    async def create_order(
        self,
        amount: Money,
        idempotency_key: str | None = None,
        checkout_session_id: str | None = None,
    ) -> CreatePaymentOrderResult:
        """Create a gateway order for an amount.

        The internal order is saved before the gateway is called. A retry
        carrying the same key returns the stored gateway order, or, when the
        first attempt never got one, calls the gateway again with the same
        receipt.

        Args:
            amount: Amount to collect.
            idempotency_key: Key identifying the checkout attempt.
            checkout_session_id: Session the payment belongs to.

        Returns:
            CreatePaymentOrderResult with the payment order.

        Raises:
            InvalidPaymentAmountError: If the amount is zero.
            IdempotencyConflictError: If the key was used for another amount.
        """
        if not idempotency_key:
            order = PaymentOrder.create(amount, checkout_session_id=checkout_session_id)
            await self.order_repo.save(order)
            log_domain_events(order, self.request_id)
            return await self._request_gateway_order(order)

        lock = self._key_locks.setdefault(idempotency_key, asyncio.Lock())
        async with lock:
            existing = await self.order_repo.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.amount != amount:
                    raise IdempotencyConflictError(
                        idempotency_key,
                        existing.amount.amount_minor,
                        amount.amount_minor,
                    )
                if existing.has_gateway_order:
                    logger.info(
                        "Returning existing gateway order for idempotency key",
                        idempotency_key=idempotency_key,
                        order_id=existing.id,
                        gateway_order_id=existing.gateway_order_id,
                        request_id=self.request_id,
                    )
                    return CreatePaymentOrderResult(order=existing, replayed=True)
                logger.info(
                    "Retrying gateway order creation",
                    idempotency_key=idempotency_key,
                    order_id=existing.id,
                    request_id=self.request_id,
                )
                return await self._request_gateway_order(existing)

            order = PaymentOrder.create(
                amount,
                idempotency_key=idempotency_key,
                checkout_session_id=checkout_session_id,
            )
            await self.order_repo.save(order)
            log_domain_events(order, self.request_id)
            return await self._request_gateway_order(order)

    async def _request_gateway_order(self, order: PaymentOrder) -> CreatePaymentOrderResult:
        try:
            gateway_order = await self.gateway.create_order(
                amount_minor=order.amount.amount_minor,
                currency=order.amount.currency,
                receipt=order.receipt,
                notes={"order_id": order.id},
            )
        except GatewayTimeoutError as e:
            order.record_gateway_failure("timeout")
            await self.order_repo.save(order)
            logger.error(
                "Gateway order creation timed out",
                order_id=order.id,
                error=e.message,
                request_id=self.request_id,
            )
            return CreatePaymentOrderResult(
                order=order,
                success=False,
                error=CREATE_ORDER_FAILED_MESSAGE,
                error_code="GATEWAY_TIMEOUT",
            )
        except GatewayError as e:
            order.record_gateway_failure(e.error_code or "gateway_error")
            await self.order_repo.save(order)
            logger.error(
                "Gateway order creation failed",
                order_id=order.id,
                error=e.message,
                gateway_status=e.status_code,
                gateway_error_code=e.error_code,
                request_id=self.request_id,
            )
            return CreatePaymentOrderResult(
                order=order,
                success=False,
                error=CREATE_ORDER_FAILED_MESSAGE,
                error_code="GATEWAY_ERROR",
            )

        order.attach_gateway_order(gateway_order.id)
        await self.order_repo.save(order)
        log_domain_events(order, self.request_id)

        logger.info(
            "Payment order created",
            order_id=order.id,
            gateway_order_id=gateway_order.id,
            amount=order.amount.amount_minor,
            currency=order.amount.currency,
            request_id=self.request_id,
        )
        return CreatePaymentOrderResult(order=order)

    async def verify_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> VerifyPaymentResult:
        """Verify a payment callback and record the payment.

        Only a matching signature marks the order paid. A forged or
        tampered signature leaves the order untouched.

        Args:
            gateway_order_id: Gateway order id from the callback.
            gateway_payment_id: Gateway payment id from the callback.
            signature: Signature from the callback.

        Returns:
            VerifyPaymentResult; ``success`` is False on signature mismatch.
        """
        if not self.verifier.verify(gateway_order_id, gateway_payment_id, signature):
            logger.warning(
                "Payment signature mismatch",
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                request_id=self.request_id,
            )
            return VerifyPaymentResult(
                success=False,
                message=INVALID_SIGNATURE_MESSAGE,
                error_code="INVALID_SIGNATURE",
            )

        order = await self.order_repo.get_by_gateway_order_id(gateway_order_id)
        if order is None:
            logger.warning(
                "Verified payment for unknown gateway order",
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                request_id=self.request_id,
            )
            return VerifyPaymentResult(success=True, message=VERIFIED_MESSAGE)

        try:
            changed = order.mark_paid(gateway_payment_id, signature)
        except InvalidStateTransitionError:
            logger.warning(
                "Verified payment for order that cannot be paid",
                order_id=order.id,
                status=order.status.value,
                request_id=self.request_id,
            )
            return VerifyPaymentResult(success=True, message=VERIFIED_MESSAGE, order=order)

        if changed:
            await self.order_repo.save(order)
            log_domain_events(order, self.request_id)
            logger.info(
                "Payment verified",
                order_id=order.id,
                gateway_order_id=gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                request_id=self.request_id,
            )
        return VerifyPaymentResult(success=True, message=VERIFIED_MESSAGE, order=order)

    async def get_payment_order(self, order_id: str) -> PaymentOrder:
        """Look up an order by internal or gateway order id.

        Raises:
            PaymentOrderNotFoundError: If neither id matches.
        """
        order = await self.order_repo.get(order_id)
        if order is None:
            order = await self.order_repo.get_by_gateway_order_id(order_id)
        if order is None:
            raise PaymentOrderNotFoundError(order_id)
        return order


# Global service instance
_payment_service: PaymentService | None = None


def get_payment_service() -> PaymentService:
    """Get or create the payment service instance."""
    global _payment_service
    if _payment_service is None:
        _payment_service = PaymentService(order_repo=get_payment_order_repository())
    return _payment_service


def reset_payment_service() -> None:
    """Drop the service instance (for testing)."""
    global _payment_service
    _payment_service = None


def get_payment_order_repository() -> PaymentOrderRepository:
    """Repository for the configured persistence backend."""
    if settings.persistence_backend == "database":
        return SqlPaymentOrderRepository(get_session_factory())
    return InMemoryPaymentOrderRepository()
