"""Payment API endpoints.

Provides:
- POST /api/payment/create-order - create a gateway order for an amount
- POST /api/payment/verify - verify the signed payment callback
- GET /api/payment/status/{order_id} - payment status of an order
- POST /api/payment/webhook - gateway payment notifications

These routes answer with the flat shapes the checkout page expects
(``{error}`` / ``{success, message}``) rather than the error envelope
used elsewhere. Gateway and internal errors are logged, never returned.
"""

import json
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from storefront.api.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentStatusResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAckResponse,
)
from storefront.application.checkout_service import CheckoutService, get_checkout_service
from storefront.application.payment_service import PaymentService, get_payment_service
from storefront.application.webhook_service import (
    GatewayWebhookEvent,
    GatewayWebhookService,
    InvalidWebhookPayloadError,
    get_webhook_service,
)
from storefront.domain.exceptions import (
    DomainError,
    InvalidPaymentAmountError,
    MoneyError,
)
from storefront.domain.value_objects import Money
from storefront.infrastructure.config import settings

logger = structlog.get_logger()

router = APIRouter(prefix="/api/payment", tags=["Payments"])

INVALID_AMOUNT = {"error": "Invalid amount"}
CREATE_ORDER_FAILED = {"error": "Error creating order"}
INTERNAL_SERVER_ERROR = {"error": "Internal Server Error"}
MISSING_VERIFICATION_DATA = {"success": False, "message": "Missing payment verification data"}


# ============================================================================
# Dependencies
# ============================================================================


def get_payments() -> PaymentService:
    return get_payment_service()


def get_webhooks() -> GatewayWebhookService:
    return get_webhook_service()


def get_checkouts() -> CheckoutService:
    return get_checkout_service()


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/create-order",
    response_model=CreateOrderResponse,
    responses={400: {"description": "Invalid amount"}, 500: {"description": "Gateway failure"}},
    summary="Create gateway order",
)
async def create_order(
    request: Request,
    service: Annotated[PaymentService, Depends(get_payments)],
    idempotency_key: Annotated[str | None, Header(max_length=255)] = None,
) -> Any:
    """Create a gateway order for an amount in major units.

    The amount is converted to minor units (x100, rounded half-up). With an
    ``Idempotency-Key`` header, retries of the same attempt return the
    gateway order created the first time.
    """
    try:
        payload = CreateOrderRequest.model_validate(json.loads(await request.body()))
    except (ValueError, ValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=INVALID_AMOUNT)

    try:
        amount = Money.from_float(payload.amount, settings.currency)
        result = await service.create_order(
            amount,
            idempotency_key=idempotency_key,
            checkout_session_id=payload.checkout_session_id,
        )
    except (InvalidPaymentAmountError, MoneyError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=INVALID_AMOUNT)

    if not result.success or result.order is None or result.order.gateway_order_id is None:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=CREATE_ORDER_FAILED,
        )

    order = result.order
    return CreateOrderResponse(
        id=order.gateway_order_id,
        currency=order.amount.currency,
        amount=order.amount.amount_minor,
        receipt=order.receipt,
    )


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    responses={400: {"model": VerifyPaymentResponse}, 500: {"description": "Internal error"}},
    summary="Verify payment signature",
)
async def verify_payment(
    request: Request,
    service: Annotated[PaymentService, Depends(get_payments)],
    checkouts: Annotated[CheckoutService, Depends(get_checkouts)],
) -> Any:
    """Verify the signature the hosted checkout returned for a payment.

    Answers 200 only when the signature matches; a mismatch is a 400 with
    ``success: false``. When ``checkout_session_id`` is given, that
    session is completed when the verified payment belongs to it and
    covers its total; otherwise the session stays active.
    """
    try:
        data = json.loads(await request.body())
    except ValueError:
        logger.warning("Unreadable payment verification body")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=INTERNAL_SERVER_ERROR,
        )
    if not isinstance(data, dict):
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=INTERNAL_SERVER_ERROR,
        )

    try:
        payload = VerifyPaymentRequest.model_validate(data)
    except ValidationError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=MISSING_VERIFICATION_DATA,
        )
    if not (payload.razorpay_order_id and payload.razorpay_payment_id and payload.razorpay_signature):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=MISSING_VERIFICATION_DATA,
        )

    result = await service.verify_payment(
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
    )
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": result.message},
        )

    if payload.checkout_session_id:
        try:
            await checkouts.complete(payload.checkout_session_id, result.order)
        except DomainError as e:
            logger.warning(
                "Could not complete checkout session after payment",
                session_id=payload.checkout_session_id,
                error_code=e.error_code,
                error=e.message,
            )

    return VerifyPaymentResponse(success=True, message=result.message)


@router.get(
    "/status/{order_id}",
    response_model=PaymentStatusResponse,
    summary="Get payment status",
)
async def get_payment_status(
    order_id: str,
    service: Annotated[PaymentService, Depends(get_payments)],
) -> PaymentStatusResponse:
    """Look up an order by internal or gateway order id."""
    order = await service.get_payment_order(order_id)
    return PaymentStatusResponse(**order.to_status_dict())


@router.post(
    "/webhook",
    response_model=WebhookAckResponse,
    responses={400: {"description": "Invalid signature or payload"}},
    summary="Receive gateway webhook",
)
async def receive_webhook(
    request: Request,
    service: Annotated[GatewayWebhookService, Depends(get_webhooks)],
    x_razorpay_signature: Annotated[str | None, Header()] = None,
    x_razorpay_event_id: Annotated[str | None, Header()] = None,
) -> Any:
    """Apply a payment notification from the gateway.

    The signature covers the raw body, so it is verified before parsing.
    Without a webhook secret configured, deliveries are acknowledged and
    dropped.
    """
    body = await request.body()

    if not service.enabled:
        logger.info("Webhook secret not configured, delivery ignored")
        return WebhookAckResponse(received=True, status="ignored")

    if not service.verify_signature(body, x_razorpay_signature):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid webhook signature"},
        )

    try:
        event = GatewayWebhookEvent.parse(body, event_id=x_razorpay_event_id)
    except InvalidWebhookPayloadError as e:
        logger.warning("Invalid webhook payload", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid webhook payload"},
        )

    request_id = getattr(request.state, "request_id", None)
    result = await service.process_event(event, request_id=request_id)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Webhook processing failed"},
        )
    return WebhookAckResponse(received=True, status=result.status.value)
