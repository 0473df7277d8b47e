"""
worksheet_services.order_gateway -- The engine's narrow view of orders.

Responsibility:
    Order management lives outside the engine.  The lifecycle service needs
    only two things from it: read an order (to number a new worksheet) and
    reset an order's status when its worksheet is cancelled or deleted.
    ``OrderGateway`` names that capability; ``SqlOrderGateway`` implements
    it against the ``orders`` table in the same session and transaction.

Architecture position:
    Services -- adapter over a kernel model.

Invariants enforced:
    - Every status reset writes one Order audit entry in the caller's
      transaction.
    - A reset to the status the order already has is still recorded, so
      the worksheet's cancellation always has a matching order entry.

Failure modes:
    - OrderNotFoundError for unknown order ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock, SystemClock
from worksheet_kernel.exceptions import OrderNotFoundError
from worksheet_kernel.logging_config import get_logger
from worksheet_kernel.models.order import Order, OrderStatus
from worksheet_kernel.services.auditor_service import AuditorService

logger = get_logger("services.order_gateway")


@dataclass(frozen=True)
class OrderInfo:
    """What the lifecycle engine knows about an order."""

    order_id: UUID
    order_number: str
    status: str


@dataclass(frozen=True)
class OrderReset:
    order_id: UUID
    from_status: str
    to_status: str


@runtime_checkable
class OrderGateway(Protocol):
    """Capability the lifecycle service needs from order management."""

    def get_order(self, order_id: UUID) -> OrderInfo:
        ...

    def reset_status(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: str,
        to_status: str = OrderStatus.PENDING.value,
    ) -> OrderReset:
        ...


class SqlOrderGateway:
    """OrderGateway backed by the ``orders`` table."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = AuditorService(session, self._clock)

    def get_order(self, order_id: UUID) -> OrderInfo:
        order = self._session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return OrderInfo(
            order_id=order.id,
            order_number=order.order_number,
            status=OrderStatus(order.status).value,
        )

    def reset_status(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: str,
        to_status: str = OrderStatus.PENDING.value,
    ) -> OrderReset:
        target = OrderStatus(to_status).value
        order = self._session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))

        previous = OrderStatus(order.status).value
        order.status = target
        order.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_order_reset(order.id, previous, target, actor_id, reason)

        logger.info(
            "order_status_reset",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "from_status": previous,
                "to_status": target,
            },
        )
        return OrderReset(order_id=order.id, from_status=previous, to_status=target)
