"""SQLAlchemy models for database tables.

Provides ORM models for payment orders and serialized checkout sessions.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from storefront.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentOrderModel(Base):
    """Internal payment order and its mapping to the gateway order.

    A row is written before the gateway is called, so ``gateway_order_id``
    is empty until the gateway answers.
    """

    __tablename__ = "payment_orders"

    id = Column(String(36), primary_key=True)
    idempotency_key = Column(String(255), nullable=True, unique=True, index=True)
    checkout_session_id = Column(String(36), nullable=True, index=True)
    gateway_order_id = Column(String(64), nullable=True, unique=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True, index=True)
    gateway_signature = Column(String(128), nullable=True)

    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="pending", index=True)
    failure_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<PaymentOrder {self.id} gateway={self.gateway_order_id} status={self.status}>"


class CheckoutSessionModel(Base):
    """Serialized checkout session keyed by session id.

    ``payload`` holds the versioned JSON document; ``schema_version``
    mirrors the document's version for inspection.
    """

    __tablename__ = "checkout_sessions"

    id = Column(String(64), primary_key=True)
    schema_version = Column(Integer, nullable=False)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<CheckoutSession {self.id} v{self.schema_version}>"
