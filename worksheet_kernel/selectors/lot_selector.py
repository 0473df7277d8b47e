"""
Module: worksheet_kernel.selectors.lot_selector
Responsibility: Read-only stock queries over material lots: FIFO-eligible
    lots, lots approaching or past expiry, depleted lots, usable quantity
    per material and materials running low.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/clock.py and selectors/base.py.

Invariants enforced:
    - Eligibility here is the same rule FifoConsumptionService applies:
      status available, quantity_available > 0, expiry NULL or >= as_of.
    - FIFO ordering: arrival_date ASC, id ASC.

Failure modes:
    - Unknown material ids yield empty results, not errors.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock, SystemClock
from worksheet_kernel.models.material import LotStatus, Material, MaterialLot
from worksheet_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LotDTO:
    """A lot as seen by stock reports."""

    lot_id: UUID
    material_id: UUID
    material_code: str
    lot_number: str
    arrival_date: date
    expiry_date: date | None
    quantity_received: Decimal
    quantity_available: Decimal
    status: str
    supplier_name: str | None

    def days_until_expiry(self, as_of: date) -> int | None:
        if self.expiry_date is None:
            return None
        return (self.expiry_date - as_of).days


@dataclass(frozen=True)
class LowStockDTO:
    """A material whose usable stock is below the alert threshold."""

    material_id: UUID
    material_code: str
    material_name: str
    material_type: str
    unit: str
    total_available: Decimal
    threshold: Decimal
    percentage_of_threshold: Decimal


def _eligible(as_of: date):
    return (
        MaterialLot.status == LotStatus.AVAILABLE.value,
        MaterialLot.quantity_available > 0,
        or_(MaterialLot.expiry_date.is_(None), MaterialLot.expiry_date >= as_of),
    )


class LotSelector(BaseSelector):
    """
    Stock queries.

    Contract:
        ``as_of`` defaults to today from the injected clock.  The expiry
        window and low-stock threshold default to the values given at
        construction (the ``inventory`` configuration section).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        expiry_warning_days: int = 30,
        low_stock_threshold: int = 20,
    ):
        super().__init__(session)
        self.clock = clock or SystemClock()
        self.expiry_warning_days = expiry_warning_days
        self.low_stock_threshold = low_stock_threshold

    def _to_dto(self, lot: MaterialLot, material_code: str) -> LotDTO:
        return LotDTO(
            lot_id=lot.id,
            material_id=lot.material_id,
            material_code=material_code,
            lot_number=lot.lot_number,
            arrival_date=lot.arrival_date,
            expiry_date=lot.expiry_date,
            quantity_received=lot.quantity_received,
            quantity_available=lot.quantity_available,
            status=LotStatus(lot.status).value,
            supplier_name=lot.supplier_name,
        )

    def _query(self, stmt) -> list[LotDTO]:
        return [
            self._to_dto(lot, code)
            for lot, code in self.session.execute(stmt).all()
        ]

    def eligible_lots(self, material_id: UUID, as_of: date | None = None) -> list[LotDTO]:
        """Lots FIFO consumption may draw from, oldest first."""
        as_of = as_of or self.clock.today()
        stmt = (
            select(MaterialLot, Material.code)
            .join(Material, MaterialLot.material_id == Material.id)
            .where(MaterialLot.material_id == material_id)
            .where(*_eligible(as_of))
            .order_by(MaterialLot.arrival_date.asc(), MaterialLot.id.asc())
        )
        return self._query(stmt)

    def expiring_lots(
        self,
        within_days: int | None = None,
        as_of: date | None = None,
    ) -> list[LotDTO]:
        """Eligible lots whose expiry date falls within ``within_days`` of ``as_of``."""
        if within_days is None:
            within_days = self.expiry_warning_days
        if within_days < 0:
            raise ValueError("within_days must be >= 0")
        as_of = as_of or self.clock.today()
        horizon = as_of + timedelta(days=within_days)
        stmt = (
            select(MaterialLot, Material.code)
            .join(Material, MaterialLot.material_id == Material.id)
            .where(*_eligible(as_of))
            .where(MaterialLot.expiry_date.is_not(None))
            .where(MaterialLot.expiry_date <= horizon)
            .order_by(MaterialLot.expiry_date.asc(), MaterialLot.id.asc())
        )
        return self._query(stmt)

    def expired_lots(self, as_of: date | None = None) -> list[LotDTO]:
        """
        Lots past their expiry date that still hold stock.

        Includes lots not yet swept (status still available) as well as
        those already marked expired.
        """
        as_of = as_of or self.clock.today()
        stmt = (
            select(MaterialLot, Material.code)
            .join(Material, MaterialLot.material_id == Material.id)
            .where(MaterialLot.expiry_date.is_not(None))
            .where(MaterialLot.expiry_date < as_of)
            .where(MaterialLot.quantity_available > 0)
            .where(
                MaterialLot.status.in_(
                    [LotStatus.AVAILABLE.value, LotStatus.EXPIRED.value]
                )
            )
            .order_by(MaterialLot.expiry_date.asc(), MaterialLot.id.asc())
        )
        return self._query(stmt)

    def available_quantity(self, material_id: UUID, as_of: date | None = None) -> Decimal:
        """Sum of quantity_available over eligible lots of ``material_id``."""
        as_of = as_of or self.clock.today()
        total = self.session.execute(
            select(func.coalesce(func.sum(MaterialLot.quantity_available), 0))
            .where(MaterialLot.material_id == material_id)
            .where(*_eligible(as_of))
        ).scalar_one()
        return Decimal(str(total))

    def low_stock_materials(
        self,
        threshold: Decimal | int | None = None,
        as_of: date | None = None,
    ) -> list[LowStockDTO]:
        """
        Active materials whose usable stock is below ``threshold``.

        Usable stock counts eligible lots only, so a material whose every lot
        is expired or recalled reports zero.  Sorted by percentage of the
        threshold, emptiest first, then by material code.
        """
        threshold = Decimal(str(threshold if threshold is not None else self.low_stock_threshold))
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        as_of = as_of or self.clock.today()

        stock = (
            select(
                MaterialLot.material_id,
                func.sum(MaterialLot.quantity_available).label("total"),
            )
            .where(*_eligible(as_of))
            .group_by(MaterialLot.material_id)
            .subquery()
        )
        rows = self.session.execute(
            select(Material, func.coalesce(stock.c.total, 0))
            .outerjoin(stock, stock.c.material_id == Material.id)
            .where(Material.active.is_(True))
        ).all()

        alerts = []
        for material, total in rows:
            total = Decimal(str(total))
            if total >= threshold:
                continue
            alerts.append(
                LowStockDTO(
                    material_id=material.id,
                    material_code=material.code,
                    material_name=material.name,
                    material_type=material.material_type,
                    unit=material.unit,
                    total_available=total,
                    threshold=threshold,
                    percentage_of_threshold=(total / threshold * 100).quantize(Decimal("0.01")),
                )
            )
        alerts.sort(key=lambda a: (a.percentage_of_threshold, a.material_code))
        return alerts

    def depleted_lots(self) -> list[LotDTO]:
        """Lots marked depleted with nothing left, ready for archival."""
        stmt = (
            select(MaterialLot, Material.code)
            .join(Material, MaterialLot.material_id == Material.id)
            .where(MaterialLot.status == LotStatus.DEPLETED.value)
            .where(MaterialLot.quantity_available <= 0)
            .order_by(MaterialLot.arrival_date.asc(), MaterialLot.id.asc())
        )
        return self._query(stmt)
