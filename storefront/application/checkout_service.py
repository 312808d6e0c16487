"""Checkout session application service.

Owns checkout sessions from the moment a customer enters checkout until
they pay or leave:
1. Start a session from the cart snapshot
2. Move between the cart, shipping and payment steps
3. Collect shipping details
4. Start a payment attempt for the current total
5. Complete after a verified payment, or abandon

Sessions are written to a keyed store as versioned JSON documents so cart
and shipping details survive a reload. The active step is not stored; a
session loaded back from the store starts on the first step.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog

from storefront.application.payment_service import log_domain_events
from storefront.domain.base import utcnow
from storefront.domain.entities import CheckoutSession, PaymentOrder
from storefront.domain.exceptions import (
    CheckoutSessionExistsError,
    CheckoutSessionNotFoundError,
    DomainError,
    PaymentSessionMismatchError,
)
from storefront.domain.pricing import OrderTotals, ShippingPolicy
from storefront.domain.state_machines import CheckoutSessionStatus, CheckoutStep
from storefront.domain.value_objects import CartLine, CartSnapshot, ShippingInfo
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session_factory
from storefront.infrastructure.repositories import SqlSessionStateStore

logger = structlog.get_logger()


# ============================================================================
# Session Serialization
# ============================================================================

SESSION_SCHEMA_VERSION = 2


class SessionDecodeError(ValueError):
    """Raised when a stored session document cannot be read."""


def encode_session(session: CheckoutSession) -> dict[str, Any]:
    """Serialize a session to the current document schema."""
    return {
        "schema_version": SESSION_SCHEMA_VERSION,
        "session_id": session.id,
        "status": session.status.value,
        "cart": {
            "currency": session.cart.currency,
            "lines": [line.to_dict() for line in session.cart.lines],
        },
        "shipping": session.shipping.to_dict(),
        "attempt_key": session.attempt_key,
        "payment_order_id": session.payment_order_id,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
    }


def _migrate_v1(document: dict[str, Any]) -> dict[str, Any]:
    # v1 named the address fields street/zip and used camelCase keys
    shipping = dict(document.get("shipping") or {})
    renames = {"street": "address", "zip": "pincode", "addressType": "address_type"}
    for old, new in renames.items():
        if old in shipping:
            shipping[new] = shipping.pop(old)

    cart = dict(document.get("cart") or {})
    lines = []
    for line in cart.get("lines", []):
        line = dict(line)
        if "productId" in line:
            line["product_id"] = line.pop("productId")
        lines.append(line)
    cart["lines"] = lines

    return {**document, "schema_version": 2, "shipping": shipping, "cart": cart}


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _migrate_v1,
}


def decode_session(document: dict[str, Any]) -> CheckoutSession:
    """Rebuild a session from a stored document of any known version.

    Older documents are migrated step by step to the current schema.
    Documents without a version are treated as version 1.

    Raises:
        SessionDecodeError: If the version is unknown or the document is malformed.
    """
    version = document.get("schema_version", 1)
    if not isinstance(version, int) or version < 1 or version > SESSION_SCHEMA_VERSION:
        raise SessionDecodeError(f"Unsupported session schema version: {version!r}")

    try:
        while version < SESSION_SCHEMA_VERSION:
            document = _MIGRATIONS[version](document)
            version = document["schema_version"]

        cart_data = document.get("cart") or {}
        cart = CartSnapshot.from_lines(
            (CartLine.from_dict(line) for line in cart_data.get("lines", [])),
            currency=cart_data.get("currency", settings.currency),
        )
        session = CheckoutSession(
            id=document["session_id"],
            cart=cart,
            shipping=ShippingInfo.from_dict(document.get("shipping") or {}),
            status=CheckoutSessionStatus(document.get("status", "active")),
            attempt_key=document.get("attempt_key"),
            payment_order_id=document.get("payment_order_id"),
        )
        if document.get("created_at"):
            session.created_at = datetime.fromisoformat(document["created_at"])
        if document.get("updated_at"):
            session.updated_at = datetime.fromisoformat(document["updated_at"])
    except (DomainError, KeyError, TypeError, ValueError) as e:
        raise SessionDecodeError(f"Malformed session document: {e}") from e
    return session


# ============================================================================
# Session Store
# ============================================================================


class SessionStateStore(Protocol):
    """Keyed storage for serialized sessions."""

    async def load(self, session_id: str) -> dict[str, Any] | None: ...

    async def store(self, session_id: str, document: dict[str, Any], ttl: timedelta) -> None: ...

    async def discard(self, session_id: str) -> None: ...


class InMemorySessionStateStore:
    """Session documents held in process memory until they expire."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utcnow
        self._documents: dict[str, tuple[dict[str, Any], datetime]] = {}

    async def load(self, session_id: str) -> dict[str, Any] | None:
        entry = self._documents.get(session_id)
        if entry is None:
            return None
        document, expires_at = entry
        if expires_at <= self._clock():
            del self._documents[session_id]
            return None
        return document

    async def store(self, session_id: str, document: dict[str, Any], ttl: timedelta) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._documents.items() if expires_at <= now]
        for key in expired:
            del self._documents[key]
        self._documents[session_id] = (document, now + ttl)

    async def discard(self, session_id: str) -> None:
        self._documents.pop(session_id, None)


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class PaymentAttempt:
    """What the client needs to create the gateway order for a session."""

    session_id: str
    idempotency_key: str
    totals: OrderTotals

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "idempotency_key": self.idempotency_key,
            "amount": float(self.totals.total.to_decimal()),
            "amount_minor": self.totals.total.amount_minor,
            "currency": self.totals.currency,
            "totals": self.totals.to_dict(),
        }


# ============================================================================
# Checkout Service
# ============================================================================


class CheckoutService:
    """Application service for checkout sessions.

    Active sessions are kept in memory with their step controller until
    they close or sit idle past the TTL; every change is also written to
    the session store. A session that is not held in memory is loaded
    from the store, starting again on the first step.
    """

    def __init__(
        self,
        store: SessionStateStore | None = None,
        policy: ShippingPolicy | None = None,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Store for serialized sessions.
            policy: Shipping policy used for totals.
            ttl: How long an idle session stays loadable.
            clock: Source of the current time for expiry.
            request_id: Request ID for correlation.
        """
        self.store = store or InMemorySessionStateStore(clock=clock)
        self.policy = policy or settings.shipping_policy()
        self.ttl = ttl or timedelta(hours=settings.session_ttl_hours)
        self.request_id = request_id
        self._clock = clock or utcnow
        self._live: dict[str, tuple[CheckoutSession, datetime]] = {}

    async def start_session(
        self,
        lines: Iterable[CartLine],
        session_id: str | None = None,
    ) -> CheckoutSession:
        """Start checkout for a cart.

        Repeated lines for the same product variant are merged.

        Raises:
            CheckoutSessionExistsError: If ``session_id`` is already in use.
        """
        self._evict_expired()
        if session_id is not None and (
            session_id in self._live or await self.store.load(session_id) is not None
        ):
            raise CheckoutSessionExistsError(session_id)

        cart = CartSnapshot.from_lines(lines, currency=self.policy.currency)
        session = CheckoutSession.start(cart, session_id)
        await self._persist(session)

        logger.info(
            "Checkout session started",
            session_id=session.id,
            item_count=cart.item_count,
            subtotal=cart.get_total(),
            request_id=self.request_id,
        )
        return session

    async def get_session(self, session_id: str) -> CheckoutSession:
        """Return a session, loading it from the store if it is not live.

        Loading an active session back counts as activity: it becomes live
        again and its stored copy gets a fresh TTL.

        Raises:
            CheckoutSessionNotFoundError: If the session is unknown or expired.
        """
        entry = self._live.get(session_id)
        if entry is not None:
            session, expires_at = entry
            if expires_at > self._clock():
                return session
            del self._live[session_id]
            await self.store.discard(session_id)
            logger.info("Checkout session expired", session_id=session_id)
            raise CheckoutSessionNotFoundError(session_id)

        document = await self.store.load(session_id)
        if document is None:
            raise CheckoutSessionNotFoundError(session_id)
        try:
            session = decode_session(document)
        except SessionDecodeError as e:
            logger.warning(
                "Discarding unreadable checkout session",
                session_id=session_id,
                error=str(e),
            )
            await self.store.discard(session_id)
            raise CheckoutSessionNotFoundError(session_id) from e

        if session.is_active:
            await self._persist(session)
            logger.info(
                "Checkout session resumed",
                session_id=session.id,
                step=session.step.value,
                request_id=self.request_id,
            )
        return session

    def totals(self, session: CheckoutSession) -> OrderTotals:
        return session.totals(self.policy)

    async def replace_cart(self, session_id: str, lines: Iterable[CartLine]) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.replace_cart(CartSnapshot.from_lines(lines, currency=self.policy.currency))
        await self._persist(session)
        return session

    async def next_step(self, session_id: str) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.next_step()
        await self._persist(session)
        return session

    async def prev_step(self, session_id: str) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.prev_step()
        await self._persist(session)
        return session

    async def go_to_step(self, session_id: str, step: int) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.go_to_step(step)
        await self._persist(session)
        return session

    async def update_shipping(self, session_id: str, **changes: Any) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.update_shipping(**changes)
        await self._persist(session)
        return session

    async def reset_shipping(self, session_id: str) -> CheckoutSession:
        session = await self.get_session(session_id)
        session.reset_shipping()
        await self._persist(session)
        return session

    async def begin_payment(self, session_id: str) -> PaymentAttempt:
        """Start (or resume) the payment attempt for the current total.

        The session is moved to the payment step; the returned key stays
        the same until the cart changes.

        Raises:
            CartEmptyError: If the cart is empty.
            ShippingInfoIncompleteError: If shipping details are incomplete.
            InvalidPaymentAmountError: If the total is zero.
        """
        session = await self.get_session(session_id)
        attempt_key, totals = session.begin_payment_attempt(self.policy)
        if session.step != CheckoutStep.PAYMENT:
            session.go_to_step(CheckoutStep.PAYMENT)
        await self._persist(session)

        logger.info(
            "Payment attempt started",
            session_id=session.id,
            idempotency_key=attempt_key,
            amount=totals.total.amount_minor,
            request_id=self.request_id,
        )
        return PaymentAttempt(session_id=session.id, idempotency_key=attempt_key, totals=totals)

    async def complete(self, session_id: str, payment: PaymentOrder | None) -> CheckoutSession:
        """Close the session with the verified payment that settles it.

        ``payment`` is the internal order the verified callback refers to,
        or None when the gateway order is not one of ours.

        Raises:
            PaymentSessionMismatchError: If the payment is unknown, belongs to
                another session, is unpaid or does not cover the total.
        """
        session = await self.get_session(session_id)
        if payment is None:
            raise PaymentSessionMismatchError(session_id, None, "unknown payment order")
        session.complete(payment, self.policy)
        await self._persist(session)
        logger.info(
            "Checkout session completed",
            session_id=session.id,
            payment_order_id=payment.id,
            amount=payment.amount.amount_minor,
            request_id=self.request_id,
        )
        return session

    async def abandon(self, session_id: str, reason: str = "abandoned") -> CheckoutSession:
        session = await self.get_session(session_id)
        session.abandon(reason)
        await self._persist(session)
        logger.info(
            "Checkout session abandoned",
            session_id=session.id,
            reason=reason,
            request_id=self.request_id,
        )
        return session

    async def _persist(self, session: CheckoutSession) -> None:
        # Closed sessions are served from the store until their TTL runs out
        if session.is_active:
            self._live[session.id] = (session, self._clock() + self.ttl)
        else:
            self._live.pop(session.id, None)
        await self.store.store(session.id, encode_session(session), self.ttl)
        log_domain_events(session, self.request_id)

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._live.items() if expires_at <= now]
        for key in expired:
            del self._live[key]


# Global service instance
_checkout_service: CheckoutService | None = None


def get_checkout_service() -> CheckoutService:
    """Get or create the checkout service instance."""
    global _checkout_service
    if _checkout_service is None:
        _checkout_service = CheckoutService(store=get_session_state_store())
    return _checkout_service


def reset_checkout_service() -> None:
    """Drop the service instance (for testing)."""
    global _checkout_service
    _checkout_service = None


def get_session_state_store() -> SessionStateStore:
    """Session store for the configured persistence backend."""
    if settings.persistence_backend == "database":
        return SqlSessionStateStore(get_session_factory())
    return InMemorySessionStateStore()

