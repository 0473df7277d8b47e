"""
Module: worksheet_kernel.models.order
Responsibility: ORM persistence for customer orders, the parent of every
    worksheet.  Order management is external; the engine reads orders and
    resets their status when a worksheet is cancelled or deleted.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - order_number is unique (uq_order_number).

Audit relevance:
    Order status resets performed by the engine produce their own
    AuditEvent (entity_type "Order").
"""

from enum import Enum

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from worksheet_kernel.db.base import TrackedBase


class OrderStatus(str, Enum):
    """Order status as seen by the lifecycle engine."""

    PENDING = "pending"
    IN_PRODUCTION = "in_production"
    QC_PENDING = "qc_pending"
    QC_APPROVED = "qc_approved"
    INVOICED = "invoiced"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(TrackedBase):
    """
    A laboratory order placed by a dentist.

    Contract:
        The engine never creates or deletes orders.  It reads them to number
        worksheets and writes ``status`` only through OrderGateway.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_order_number"),
        Index("idx_order_status", "status"),
    )

    # Display number, e.g. "25001"
    order_number: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )

    patient_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"
