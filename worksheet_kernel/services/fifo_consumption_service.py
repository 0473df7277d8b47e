"""
FifoConsumptionService -- first-in-first-out consumption of lot stock.

Responsibility:
    Given a material, a required quantity and a worksheet, select the
    oldest eligible lot that can cover the whole requirement, decrement it,
    and turn the worksheet's planning record into a consumption record
    pointing at that lot.

Architecture position:
    Kernel > Services -- imperative shell.  Invoked by the side-effect
    dispatcher when a worksheet enters production.  Writes no audit entry
    of its own: it returns a ConsumptionResult that the caller folds into
    the single audit entry of the enclosing transition.

Invariants enforced:
    - Eligibility: status available, quantity_available > 0, and expiry
      date NULL or >= today (from the injected clock).
    - FIFO order: arrival_date ASC, then id ASC.
    - Single lot per requirement: the first lot with
      quantity_available >= required wins.  Requirements are never split
      across lots, so a consumption record always names exactly one lot.
    - No double spend: candidate rows are locked FOR UPDATE and the
      decrement is a compare-and-swap on (quantity_available, status).
      A lost race re-reads candidates and retries, bounded by
      ``max_attempts``.
    - Reaching exactly zero sets status depleted in the same UPDATE.

Failure modes:
    - InsufficientStockError: no single eligible lot suffices.  Nothing is
      written.
    - OptimisticLockError: compare-and-swap lost ``max_attempts`` times.
    - InvalidQuantityError / MaterialNotFoundError on bad input.

Audit relevance:
    The consumption record (worksheet, material, lot, quantity) is the
    traceability link used for recalls.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock
from worksheet_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
    OptimisticLockError,
)
from worksheet_kernel.logging_config import get_logger
from worksheet_kernel.models.material import LotStatus, Material, MaterialLot
from worksheet_kernel.models.worksheet import WorksheetMaterial
from worksheet_kernel.services.base import BaseService

logger = get_logger("services.fifo")

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ConsumptionResult:
    """What one consume() call took, and from where."""

    record_id: UUID
    material_id: UUID
    material_code: str
    lot_id: UUID
    lot_number: str
    quantity: Decimal
    quantity_remaining: Decimal
    depleted: bool
    attempts: int

    def as_report(self) -> dict:
        return {
            "material_id": str(self.material_id),
            "material_code": self.material_code,
            "lot_id": str(self.lot_id),
            "lot_number": self.lot_number,
            "quantity": str(self.quantity),
            "quantity_remaining": str(self.quantity_remaining),
            "depleted": self.depleted,
        }


class FifoConsumptionService(BaseService):
    """
    Lot selection and decrement.

    Contract:
        ``consume()`` either leaves one lot decremented and one consumption
        record created, or raises without writing anything.

    Non-goals:
        - Does NOT split a requirement over several lots.
        - Does NOT commit; runs inside the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        super().__init__(session, clock)
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts

    def eligible_lots(self, material_id: UUID, lock: bool = False) -> list[MaterialLot]:
        """Eligible lots for ``material_id`` in FIFO order."""
        today = self.clock.today()
        stmt = (
            select(MaterialLot)
            .where(MaterialLot.material_id == material_id)
            .where(MaterialLot.status == LotStatus.AVAILABLE.value)
            .where(MaterialLot.quantity_available > 0)
            .where(
                or_(
                    MaterialLot.expiry_date.is_(None),
                    MaterialLot.expiry_date >= today,
                )
            )
            .order_by(MaterialLot.arrival_date.asc(), MaterialLot.id.asc())
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars().all())

    def consume(
        self,
        material_id: UUID,
        quantity: Decimal,
        worksheet_id: UUID,
        actor_id: UUID,
        planning_record: WorksheetMaterial | None = None,
    ) -> ConsumptionResult:
        """
        Consume ``quantity`` of a material for a worksheet from one FIFO lot.

        When ``planning_record`` is given it is deleted and replaced by the
        consumption record in the same transaction.
        """
        required = Decimal(quantity)
        if required <= 0:
            raise InvalidQuantityError(str(required), f"material {material_id}")

        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))

        lot, remaining, attempts = self._decrement_oldest_sufficient_lot(
            material, required, worksheet_id, actor_id,
        )

        notes = None
        if planning_record is not None:
            notes = planning_record.notes
            self.session.delete(planning_record)
            self.session.flush()

        record = WorksheetMaterial(
            worksheet_id=worksheet_id,
            material_id=material_id,
            material_lot_id=lot.id,
            quantity_planned=required,
            consumed_at=self.clock.now(),
            notes=notes,
        )
        self.session.add(record)
        self.session.flush()

        depleted = remaining == 0
        logger.info(
            "lot_consumed",
            extra={
                "material_id": str(material_id),
                "material_code": material.code,
                "lot_id": str(lot.id),
                "lot_number": lot.lot_number,
                "quantity": str(required),
                "quantity_remaining": str(remaining),
                "depleted": depleted,
                "worksheet_id": str(worksheet_id),
            },
        )
        if depleted:
            logger.info(
                "lot_depleted",
                extra={"lot_id": str(lot.id), "lot_number": lot.lot_number},
            )

        return ConsumptionResult(
            record_id=record.id,
            material_id=material_id,
            material_code=material.code,
            lot_id=lot.id,
            lot_number=lot.lot_number,
            quantity=required,
            quantity_remaining=remaining,
            depleted=depleted,
            attempts=attempts,
        )

    def _decrement_oldest_sufficient_lot(
        self,
        material: Material,
        required: Decimal,
        worksheet_id: UUID,
        actor_id: UUID,
    ) -> tuple[MaterialLot, Decimal, int]:
        last_lot_id: UUID | None = None

        for attempt in range(1, self._max_attempts + 1):
            candidates = self.eligible_lots(material.id, lock=True)
            lot = next(
                (c for c in candidates if c.quantity_available >= required),
                None,
            )
            if lot is None:
                best = max(
                    (c.quantity_available for c in candidates),
                    default=Decimal("0"),
                )
                logger.warning(
                    "insufficient_stock",
                    extra={
                        "material_id": str(material.id),
                        "material_code": material.code,
                        "required": str(required),
                        "best_available": str(best),
                        "candidate_lots": len(candidates),
                    },
                )
                raise InsufficientStockError(
                    material_id=str(material.id),
                    material_code=material.code,
                    required=str(required),
                    best_available=str(best),
                    worksheet_id=str(worksheet_id),
                )

            observed = lot.quantity_available
            remaining = observed - required
            new_status = LotStatus.DEPLETED if remaining == 0 else LotStatus.AVAILABLE

            result = self.session.execute(
                update(MaterialLot)
                .where(MaterialLot.id == lot.id)
                .where(MaterialLot.quantity_available == observed)
                .where(MaterialLot.status == LotStatus.AVAILABLE.value)
                .values(
                    quantity_available=remaining,
                    status=new_status.value,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.session.expire(lot)
                return lot, remaining, attempt

            last_lot_id = lot.id
            logger.warning(
                "lot_consumption_conflict",
                extra={
                    "lot_id": str(lot.id),
                    "attempt": attempt,
                    "max_attempts": self._max_attempts,
                },
            )

        raise OptimisticLockError("MaterialLot", str(last_lot_id), self._max_attempts)
