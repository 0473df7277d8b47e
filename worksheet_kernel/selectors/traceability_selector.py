"""
Module: worksheet_kernel.selectors.traceability_selector
Responsibility: Material traceability in both directions.  Reverse trace:
    which materials and lots went into a worksheet.  Forward trace: which
    worksheets consumed a given lot (the recall query).
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Only consumption records (material_lot_id set) appear in a trace;
      planning records are not traceability facts.
    - Results are ordered deterministically (material code, lot number for
      the reverse trace; consumption time, worksheet number for forward).

Failure modes:
    - WorksheetNotFoundError / LotNotFoundError for unknown ids.
    - A worksheet with no consumption yet yields an empty tuple.

Audit relevance:
    The reverse trace feeds the compliance document (material, lot, expiry,
    biocompatibility and CE certification per device).  The forward trace
    answers "which patients' devices contain lot X?" during a recall.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_kernel.domain.worksheet_lifecycle import WorksheetStatus
from worksheet_kernel.exceptions import LotNotFoundError, WorksheetNotFoundError
from worksheet_kernel.models.material import LotStatus, Material, MaterialLot
from worksheet_kernel.models.order import Order
from worksheet_kernel.models.worksheet import Worksheet, WorksheetMaterial
from worksheet_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MaterialTraceDTO:
    """One consumed material on a worksheet, with its lot and compliance flags."""

    material_id: UUID
    material_code: str
    material_name: str
    manufacturer: str | None
    lot_id: UUID
    lot_number: str
    quantity: Decimal
    expiry_date: date | None
    biocompatible: bool
    ce_marked: bool
    ce_number: str | None
    iso10993_cert: str | None
    consumed_at: datetime | None


@dataclass(frozen=True)
class LotUsageEntryDTO:
    """One worksheet that consumed from a lot."""

    worksheet_id: UUID
    worksheet_number: str
    worksheet_status: str
    order_id: UUID
    order_number: str
    patient_name: str | None
    quantity: Decimal
    consumed_at: datetime | None


@dataclass(frozen=True)
class LotUsageDTO:
    """Forward trace of a lot."""

    lot_id: UUID
    lot_number: str
    material_id: UUID
    material_code: str
    lot_status: str
    quantity_received: Decimal
    quantity_available: Decimal
    entries: tuple[LotUsageEntryDTO, ...]

    @property
    def total_consumed(self) -> Decimal:
        return sum((e.quantity for e in self.entries), Decimal("0"))

    @property
    def worksheet_count(self) -> int:
        return len({e.worksheet_id for e in self.entries})


class TraceabilitySelector(BaseSelector):
    """
    Read-only traceability queries.

    Contract:
        Returns frozen DTOs; never ORM instances.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def worksheet_materials(self, worksheet_id: UUID) -> tuple[MaterialTraceDTO, ...]:
        """Reverse trace: the lots consumed by ``worksheet_id``."""
        exists = self.session.execute(
            select(Worksheet.id).where(Worksheet.id == worksheet_id)
        ).scalar_one_or_none()
        if exists is None:
            raise WorksheetNotFoundError(str(worksheet_id))

        rows = self.session.execute(
            select(WorksheetMaterial, Material, MaterialLot)
            .join(Material, WorksheetMaterial.material_id == Material.id)
            .join(MaterialLot, WorksheetMaterial.material_lot_id == MaterialLot.id)
            .where(WorksheetMaterial.worksheet_id == worksheet_id)
            .order_by(Material.code, MaterialLot.lot_number, WorksheetMaterial.id)
        ).all()

        return tuple(
            MaterialTraceDTO(
                material_id=material.id,
                material_code=material.code,
                material_name=material.name,
                manufacturer=material.manufacturer,
                lot_id=lot.id,
                lot_number=lot.lot_number,
                quantity=record.quantity_planned,
                expiry_date=lot.expiry_date,
                biocompatible=material.biocompatible,
                ce_marked=material.ce_marked,
                ce_number=material.ce_number,
                iso10993_cert=material.iso10993_cert,
                consumed_at=record.consumed_at,
            )
            for record, material, lot in rows
        )

    def lot_usage(self, lot_id: UUID) -> LotUsageDTO:
        """Forward trace: every worksheet that consumed from ``lot_id``."""
        row = self.session.execute(
            select(MaterialLot, Material)
            .join(Material, MaterialLot.material_id == Material.id)
            .where(MaterialLot.id == lot_id)
        ).one_or_none()
        if row is None:
            raise LotNotFoundError(str(lot_id))
        lot, material = row

        usage = self.session.execute(
            select(WorksheetMaterial, Worksheet, Order)
            .join(Worksheet, WorksheetMaterial.worksheet_id == Worksheet.id)
            .join(Order, Worksheet.order_id == Order.id)
            .where(WorksheetMaterial.material_lot_id == lot_id)
            .order_by(WorksheetMaterial.consumed_at, Worksheet.worksheet_number)
        ).all()

        entries = tuple(
            LotUsageEntryDTO(
                worksheet_id=worksheet.id,
                worksheet_number=worksheet.worksheet_number,
                worksheet_status=WorksheetStatus(worksheet.status).value,
                order_id=order.id,
                order_number=order.order_number,
                patient_name=order.patient_name,
                quantity=record.quantity_planned,
                consumed_at=record.consumed_at,
            )
            for record, worksheet, order in usage
        )

        return LotUsageDTO(
            lot_id=lot.id,
            lot_number=lot.lot_number,
            material_id=material.id,
            material_code=material.code,
            lot_status=LotStatus(lot.status).value,
            quantity_received=lot.quantity_received,
            quantity_available=lot.quantity_available,
            entries=entries,
        )
