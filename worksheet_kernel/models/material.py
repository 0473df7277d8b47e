"""
Module: worksheet_kernel.models.material
Responsibility: ORM persistence for materials and their physical lots (the
    lot inventory ledger).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - 0 <= quantity_available <= quantity_received (CHECK constraints).
    - quantity_received > 0.
    - lot_number is unique per material (uq_lot_material_number).
    - FIFO ordering support: (material_id, arrival_date) index; ties are
      broken by lot id in every query that walks lots.
    - status == depleted iff quantity_available reached 0 through
      consumption.  Maintained by FifoConsumptionService in the same
      UPDATE that decrements the quantity.

Failure modes:
    - IntegrityError on a CHECK violation (over-consumption that escaped
      the service layer) or a duplicate lot number.

Audit relevance:
    A lot is the unit of traceability: a consumption record on a worksheet
    names exactly one lot, so a recall can be traced forward to every
    device that used it.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worksheet_kernel.db.base import TrackedBase, UUIDString


class LotStatus(str, Enum):
    """Lot ledger status.

    available -> depleted is automatic (consumption reached zero).
    available -> expired / recalled is a manual or scheduled move.
    expired / recalled -> available is an explicit corrective action.
    """

    AVAILABLE = "available"
    DEPLETED = "depleted"
    EXPIRED = "expired"
    RECALLED = "recalled"


class Material(TrackedBase):
    """
    A raw material used to manufacture devices (alloy, ceramic, resin...).

    Compliance flags are copied into traceability reports.
    """

    __tablename__ = "materials"

    __table_args__ = (UniqueConstraint("code", name="uq_material_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    material_type: Mapped[str] = mapped_column(String(50), nullable=False)

    manufacturer: Mapped[str | None] = mapped_column(String(200), nullable=True)

    unit: Mapped[str] = mapped_column(String(20), default="g", nullable=False)

    biocompatible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    iso10993_cert: Mapped[str | None] = mapped_column(String(100), nullable=True)

    ce_marked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    ce_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    lots: Mapped[list["MaterialLot"]] = relationship(
        back_populates="material",
        order_by=lambda: [MaterialLot.arrival_date, MaterialLot.id],
    )

    def __repr__(self) -> str:
        return f"<Material {self.code}>"


class MaterialLot(TrackedBase):
    """
    One physical batch of a material.

    Contract:
        quantity_received is fixed at arrival.  quantity_available only
        moves down, through FifoConsumptionService.

    Guarantees:
        - CHECK constraints keep quantity_available within [0, received].
    """

    __tablename__ = "material_lots"

    __table_args__ = (
        UniqueConstraint("material_id", "lot_number", name="uq_lot_material_number"),
        CheckConstraint("quantity_received > 0", name="ck_lot_received_positive"),
        CheckConstraint("quantity_available >= 0", name="ck_lot_available_non_negative"),
        CheckConstraint(
            "quantity_available <= quantity_received",
            name="ck_lot_available_within_received",
        ),
        Index("idx_lot_fifo", "material_id", "arrival_date"),
        Index("idx_lot_status", "status"),
        Index("idx_lot_expiry", "expiry_date"),
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    arrival_date: Mapped[date] = mapped_column(nullable=False)

    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    quantity_received: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_available: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[LotStatus] = mapped_column(
        String(20),
        default=LotStatus.AVAILABLE.value,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    material: Mapped["Material"] = relationship(back_populates="lots")

    def __repr__(self) -> str:
        return (
            f"<MaterialLot {self.lot_number} available={self.quantity_available} "
            f"status={self.status}>"
        )

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today
