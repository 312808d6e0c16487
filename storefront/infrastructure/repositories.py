"""SQLAlchemy repositories.

Database-backed counterparts of the in-memory payment order repository
and checkout session store. Each call runs in its own session and commits
before returning.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.entities import PaymentOrder
from storefront.domain.state_machines import PaymentStatus
from storefront.domain.value_objects import Money
from storefront.infrastructure.models import CheckoutSessionModel, PaymentOrderModel


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored value is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlPaymentOrderRepository:
    """Payment orders stored in the ``payment_orders`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, order_id: str) -> PaymentOrder | None:
        async with self._session_factory() as session:
            model = await session.get(PaymentOrderModel, order_id)
            return self._to_entity(model) if model else None

    async def get_by_idempotency_key(self, key: str) -> PaymentOrder | None:
        return await self._find_one(PaymentOrderModel.idempotency_key == key)

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> PaymentOrder | None:
        return await self._find_one(PaymentOrderModel.gateway_order_id == gateway_order_id)

    async def get_by_gateway_payment_id(self, gateway_payment_id: str) -> PaymentOrder | None:
        return await self._find_one(PaymentOrderModel.gateway_payment_id == gateway_payment_id)

    async def save(self, order: PaymentOrder) -> None:
        """Insert or update the row for an order."""
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(PaymentOrderModel, order.id)
                if model is None:
                    model = PaymentOrderModel(id=order.id, created_at=order.created_at)
                    session.add(model)
                model.idempotency_key = order.idempotency_key
                model.checkout_session_id = order.checkout_session_id
                model.gateway_order_id = order.gateway_order_id
                model.gateway_payment_id = order.gateway_payment_id
                model.gateway_signature = order.gateway_signature
                model.amount_minor = order.amount.amount_minor
                model.currency = order.amount.currency
                model.status = order.status.value
                model.failure_reason = order.failure_reason
                model.version = order.version
                model.paid_at = order.paid_at
                model.updated_at = order.updated_at

    async def _find_one(self, condition: Any) -> PaymentOrder | None:
        async with self._session_factory() as session:
            result = await session.execute(select(PaymentOrderModel).where(condition))
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    @staticmethod
    def _to_entity(model: PaymentOrderModel) -> PaymentOrder:
        return PaymentOrder(
            id=model.id,
            amount=Money(amount_minor=model.amount_minor, currency=model.currency),
            idempotency_key=model.idempotency_key,
            checkout_session_id=model.checkout_session_id,
            gateway_order_id=model.gateway_order_id,
            gateway_payment_id=model.gateway_payment_id,
            gateway_signature=model.gateway_signature,
            status=PaymentStatus(model.status),
            failure_reason=model.failure_reason,
            paid_at=_aware(model.paid_at),
            version=model.version,
            created_at=_aware(model.created_at),
            updated_at=_aware(model.updated_at),
        )


class SqlSessionStateStore:
    """Serialized checkout sessions stored in the ``checkout_sessions`` table.

    Documents are opaque JSON objects carrying a ``schema_version`` key.
    Expired rows are treated as absent and removed when read.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, session_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(CheckoutSessionModel, session_id)
                if model is None:
                    return None
                if _aware(model.expires_at) <= datetime.now(timezone.utc):
                    await session.delete(model)
                    return None
                return json.loads(model.payload)

    async def store(self, session_id: str, document: dict[str, Any], ttl: timedelta) -> None:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(CheckoutSessionModel, session_id)
                if model is None:
                    model = CheckoutSessionModel(id=session_id)
                    session.add(model)
                model.schema_version = int(document.get("schema_version", 0))
                model.payload = json.dumps(document, sort_keys=True)
                model.updated_at = now
                model.expires_at = now + ttl

    async def discard(self, session_id: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(CheckoutSessionModel).where(CheckoutSessionModel.id == session_id)
                )
