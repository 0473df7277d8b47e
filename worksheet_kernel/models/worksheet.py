"""
Module: worksheet_kernel.models.worksheet
Responsibility: ORM persistence for worksheets (the managed device record)
    and their line-level children: teeth, products and material
    assignments.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain state definition.  MUST NOT import from services/ or outer
    layers.

Invariants enforced:
    - (order_id, revision) is unique: revisions never repeat per order.
    - worksheet_number and sequence_number are unique.
    - status is always a WorksheetStatus value (written only by the
      lifecycle service after validate_transition).
    - Terminal worksheets are frozen and no worksheet is ever hard-deleted
      (ORM listeners in db/immutability.py, triggers in db/sql/).
    - A WorksheetMaterial with material_lot_id set is a consumption record
      and is immutable; one with material_lot_id NULL is a planning record.

Audit relevance:
    The worksheet row plus its consumption records are the regulated device
    record.  deleted_at and void_reason distinguish the two retained
    end-of-life outcomes (soft-deleted draft vs. administratively voided).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worksheet_kernel.db.base import Base, TrackedBase, UUIDString
from worksheet_kernel.domain.worksheet_lifecycle import WorksheetStatus


class Worksheet(TrackedBase):
    """
    A manufactured dental device record.

    Contract:
        Created in EDITABLE by WorksheetService.create_from_order.  Content
        (teeth, products, material plans) changes only while EDITABLE.
        Status changes only through WorksheetService.transition / delete.

    Guarantees:
        - revision starts at 1 and strictly increases per order.
        - Once status is terminal, no column changes again.

    Non-goals:
        - Does not validate transitions itself; see domain.worksheet_lifecycle.
    """

    __tablename__ = "worksheets"

    __table_args__ = (
        UniqueConstraint("order_id", "revision", name="uq_worksheet_order_revision"),
        UniqueConstraint("worksheet_number", name="uq_worksheet_number"),
        UniqueConstraint("sequence_number", name="uq_worksheet_sequence"),
        CheckConstraint("revision >= 1", name="ck_worksheet_revision_positive"),
        Index("idx_worksheet_order", "order_id"),
        Index("idx_worksheet_status", "status"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    # Display number derived from the order, e.g. "DN-25003" / "DN-25003-R1"
    worksheet_number: Mapped[str] = mapped_column(String(40), nullable=False)

    # Global monotonic number from the "worksheet_number" sequence series
    sequence_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    revision: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    status: Mapped[WorksheetStatus] = mapped_column(
        String(20),
        default=WorksheetStatus.EDITABLE.value,
        nullable=False,
    )

    # Manufacturing metadata
    device_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    intended_use: Mapped[str | None] = mapped_column(Text, nullable=True)
    technical_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    manufacture_date: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Soft-delete marker; only ever set while the worksheet was editable
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    teeth: Mapped[list["WorksheetTooth"]] = relationship(
        back_populates="worksheet",
        cascade="all, delete-orphan",
        order_by="WorksheetTooth.tooth_number",
    )

    products: Mapped[list["WorksheetProduct"]] = relationship(
        back_populates="worksheet",
        cascade="all, delete-orphan",
    )

    materials: Mapped[list["WorksheetMaterial"]] = relationship(
        back_populates="worksheet",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Worksheet {self.worksheet_number} status={self.status}>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_active(self) -> bool:
        """Counts against the one-active-worksheet-per-order rule."""
        return not self.is_deleted and self.status != WorksheetStatus.VOIDED


class WorksheetTooth(Base):
    """One tooth (FDI notation) worked on by the worksheet."""

    __tablename__ = "worksheet_teeth"

    __table_args__ = (
        UniqueConstraint("worksheet_id", "tooth_number", name="uq_worksheet_tooth"),
    )

    worksheet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worksheets.id"),
        nullable=False,
    )

    tooth_number: Mapped[str] = mapped_column(String(2), nullable=False)

    work_type: Mapped[str] = mapped_column(String(50), nullable=False)

    shade: Mapped[str | None] = mapped_column(String(20), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    worksheet: Mapped["Worksheet"] = relationship(back_populates="teeth")


class WorksheetProduct(Base):
    """A product line with the price captured when it was selected."""

    __tablename__ = "worksheet_products"

    worksheet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worksheets.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    price_at_selection: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    worksheet: Mapped["Worksheet"] = relationship(back_populates="products")


class WorksheetMaterial(Base):
    """
    Binds a worksheet to a material and, once consumed, to one lot.

    material_lot_id NULL   -> planning record (editable worksheets only)
    material_lot_id set    -> consumption record (immutable)
    """

    __tablename__ = "worksheet_materials"

    __table_args__ = (
        CheckConstraint("quantity_planned > 0", name="ck_worksheet_material_qty_positive"),
        Index("idx_worksheet_material_worksheet", "worksheet_id"),
        Index("idx_worksheet_material_lot", "material_lot_id"),
    )

    worksheet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("worksheets.id"),
        nullable=False,
    )

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    material_lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("material_lots.id"),
        nullable=True,
    )

    quantity_planned: Mapped[Decimal] = mapped_column(nullable=False)

    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    worksheet: Mapped["Worksheet"] = relationship(back_populates="materials")

    @property
    def is_consumed(self) -> bool:
        return self.material_lot_id is not None
