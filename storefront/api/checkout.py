"""Checkout session API endpoints.

Provides endpoints for the checkout page:
- POST /api/checkout/sessions - start checkout for a cart
- GET /api/checkout/sessions/{id} - current session state and totals
- PUT /api/checkout/sessions/{id}/cart - replace the cart snapshot
- POST /api/checkout/sessions/{id}/next - advance one step
- POST /api/checkout/sessions/{id}/previous - go back one step
- PUT /api/checkout/sessions/{id}/step - jump to a step
- PATCH /api/checkout/sessions/{id}/shipping - update shipping fields
- DELETE /api/checkout/sessions/{id}/shipping - clear shipping details
- POST /api/checkout/sessions/{id}/payment-attempt - amount and key for create-order
- POST /api/checkout/sessions/{id}/abandon - leave checkout
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from storefront.api.schemas import (
    AbandonSessionRequest,
    ErrorResponse,
    GoToStepRequest,
    PaymentAttemptResponse,
    ReplaceCartRequest,
    SessionResponse,
    ShippingUpdateRequest,
    StartSessionRequest,
)
from storefront.application.checkout_service import CheckoutService, get_checkout_service
from storefront.domain.entities import CheckoutSession

router = APIRouter(prefix="/api/checkout/sessions", tags=["Checkout"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def get_service() -> CheckoutService:
    """Get the checkout service."""
    return get_checkout_service()


def session_to_response(session: CheckoutSession, service: CheckoutService) -> SessionResponse:
    return SessionResponse.from_session(session, service.policy)


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Start checkout",
)
async def start_session(
    request: StartSessionRequest,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    """Start a checkout session on the cart step."""
    currency = service.policy.currency
    session = await service.start_session(
        [line.to_domain(currency) for line in request.lines],
        session_id=request.session_id,
    )
    return session_to_response(session, service)


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Get checkout session",
)
async def get_session(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    session = await service.get_session(session_id)
    return session_to_response(session, service)


@router.put(
    "/{session_id}/cart",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Replace cart",
)
async def replace_cart(
    session_id: str,
    request: ReplaceCartRequest,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    """Replace the cart snapshot; totals are recomputed from the new lines."""
    currency = service.policy.currency
    session = await service.replace_cart(
        session_id, [line.to_domain(currency) for line in request.lines]
    )
    return session_to_response(session, service)


@router.post(
    "/{session_id}/next",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Advance one step",
)
async def next_step(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    """Advance one step; stays on the payment step once there.

    Leaving the cart step needs a non-empty cart, and leaving shipping
    needs complete shipping details.
    """
    session = await service.next_step(session_id)
    return session_to_response(session, service)


@router.post(
    "/{session_id}/previous",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Go back one step",
)
async def prev_step(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    session = await service.prev_step(session_id)
    return session_to_response(session, service)


@router.put(
    "/{session_id}/step",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Jump to step",
)
async def go_to_step(
    session_id: str,
    request: GoToStepRequest,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    """Jump to step 1, 2 or 3; other values are rejected."""
    session = await service.go_to_step(session_id, request.step)
    return session_to_response(session, service)


@router.patch(
    "/{session_id}/shipping",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Update shipping details",
)
async def update_shipping(
    session_id: str,
    request: ShippingUpdateRequest,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    """Update the shipping fields present in the body.

    Fields may be saved incomplete; they are validated when the customer
    moves on to payment.
    """
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    session = await service.update_shipping(session_id, **changes)
    return session_to_response(session, service)


@router.delete(
    "/{session_id}/shipping",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Clear shipping details",
)
async def reset_shipping(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> SessionResponse:
    session = await service.reset_shipping(session_id)
    return session_to_response(session, service)


@router.post(
    "/{session_id}/payment-attempt",
    response_model=PaymentAttemptResponse,
    responses=ERROR_RESPONSES,
    summary="Start payment attempt",
)
async def begin_payment(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
) -> PaymentAttemptResponse:
    """Return the amount to charge and the idempotency key for create-order.

    The key is reused until the cart changes, so a retried create-order
    for the same attempt never opens a second gateway order.
    """
    attempt = await service.begin_payment(session_id)
    return PaymentAttemptResponse(**attempt.to_dict())


@router.post(
    "/{session_id}/abandon",
    response_model=SessionResponse,
    responses=ERROR_RESPONSES,
    summary="Abandon checkout",
)
async def abandon_session(
    session_id: str,
    service: Annotated[CheckoutService, Depends(get_service)],
    request: AbandonSessionRequest | None = None,
) -> SessionResponse:
    reason = request.reason if request else "abandoned"
    session = await service.abandon(session_id, reason)
    return session_to_response(session, service)
