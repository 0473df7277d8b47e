"""
LotLedgerService -- stock arrivals and manual lot status changes.

Responsibility:
    Owns every write to ``material_lots`` except consumption: recording
    stock arrivals, recalls, expiry, the explicit corrective restoration of
    a recalled/expired lot, and removal of lots that were never used.

Architecture position:
    Kernel > Services -- imperative shell.  Consumption lives in
    FifoConsumptionService; this service never decrements quantities.

Invariants enforced:
    - quantity_available == quantity_received at arrival.
    - Lot numbers are unique per material.
    - Status moves are one-directional (available -> expired | recalled)
      except the explicit restoration expired | recalled -> available,
      which requires a reason and remaining stock.
    - depleted is never set or cleared here.
    - A lot referenced by any consumption record is never deleted.

Failure modes:
    - MaterialNotFoundError, LotNotFoundError.
    - DuplicateLotError on a repeated lot number.
    - InvalidQuantityError on a non-positive received quantity.
    - InvalidLotStatusChangeError on any other status move.
    - LotInUseError when deleting a consumed lot.

Audit relevance:
    Each public operation writes exactly one AuditEvent; the expiry sweep
    writes one summarizing entry for all lots it touched.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock
from worksheet_kernel.exceptions import (
    DuplicateLotError,
    InvalidLotStatusChangeError,
    InvalidQuantityError,
    LotInUseError,
    LotNotFoundError,
    MaterialNotFoundError,
)
from worksheet_kernel.logging_config import get_logger
from worksheet_kernel.models.material import LotStatus, Material, MaterialLot
from worksheet_kernel.models.worksheet import WorksheetMaterial
from worksheet_kernel.services.auditor_service import AuditorService
from worksheet_kernel.services.base import BaseService

logger = get_logger("services.lot_ledger")

_MANUAL_MOVES: dict[LotStatus, frozenset[LotStatus]] = {
    LotStatus.AVAILABLE: frozenset({LotStatus.RECALLED, LotStatus.EXPIRED}),
    LotStatus.RECALLED: frozenset({LotStatus.AVAILABLE}),
    LotStatus.EXPIRED: frozenset({LotStatus.AVAILABLE}),
    LotStatus.DEPLETED: frozenset(),
}


def lot_snapshot(lot: MaterialLot) -> dict:
    return {
        "material_id": lot.material_id,
        "lot_number": lot.lot_number,
        "arrival_date": lot.arrival_date,
        "expiry_date": lot.expiry_date,
        "supplier_name": lot.supplier_name,
        "quantity_received": lot.quantity_received,
        "quantity_available": lot.quantity_available,
        "status": LotStatus(lot.status).value,
    }


class LotLedgerService(BaseService):
    """
    Stock arrival and lot status management.

    Contract:
        Every public method runs inside its own savepoint: it either
        applies its writes plus one audit entry, or nothing.

    Non-goals:
        - Does NOT consume stock.
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._auditor = AuditorService(session, self.clock)

    def _get_lot_for_update(self, lot_id: UUID) -> MaterialLot:
        lot = self.session.execute(
            select(MaterialLot)
            .where(MaterialLot.id == lot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if lot is None:
            raise LotNotFoundError(str(lot_id))
        return lot

    def record_stock_arrival(
        self,
        material_id: UUID,
        lot_number: str,
        quantity_received: Decimal,
        actor_id: UUID,
        arrival_date: date | None = None,
        expiry_date: date | None = None,
        supplier_name: str | None = None,
        notes: str | None = None,
    ) -> MaterialLot:
        """
        Record a newly arrived lot with its full quantity available.

        ``arrival_date`` defaults to today (from the clock).
        """
        quantity = Decimal(quantity_received)
        if quantity <= 0:
            raise InvalidQuantityError(str(quantity), f"lot {lot_number} arrival")

        with self.session.begin_nested():
            material = self.session.get(Material, material_id)
            if material is None:
                raise MaterialNotFoundError(str(material_id))

            existing = self.session.execute(
                select(MaterialLot.id)
                .where(MaterialLot.material_id == material_id)
                .where(MaterialLot.lot_number == lot_number)
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateLotError(str(material_id), lot_number)

            lot = MaterialLot(
                material_id=material_id,
                lot_number=lot_number,
                arrival_date=arrival_date or self.clock.today(),
                expiry_date=expiry_date,
                supplier_name=supplier_name,
                quantity_received=quantity,
                quantity_available=quantity,
                status=LotStatus.AVAILABLE.value,
                notes=notes,
                created_by_id=actor_id,
            )
            self.session.add(lot)
            try:
                self.session.flush()
            except IntegrityError as exc:
                # Concurrent arrival of the same lot number
                raise DuplicateLotError(str(material_id), lot_number) from exc

            self._auditor.record_lot_received(lot.id, lot_snapshot(lot), actor_id)

        logger.info(
            "lot_received",
            extra={
                "material_id": str(material_id),
                "material_code": material.code,
                "lot_id": str(lot.id),
                "lot_number": lot_number,
                "quantity": str(quantity),
            },
        )
        return lot

    def change_lot_status(
        self,
        lot_id: UUID,
        new_status: LotStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> MaterialLot:
        """
        Apply a manual status move (recall, expire, or corrective restore).

        Raises:
            InvalidLotStatusChangeError: move not permitted, restoration
                without a reason, or restoration of a lot with no stock left.
        """
        target = LotStatus(new_status)

        with self.session.begin_nested():
            lot = self._get_lot_for_update(lot_id)
            current = LotStatus(lot.status)

            if target not in _MANUAL_MOVES[current]:
                raise InvalidLotStatusChangeError(
                    str(lot_id), current.value, target.value,
                    "not a permitted manual status change",
                )
            if target == LotStatus.AVAILABLE:
                if not reason:
                    raise InvalidLotStatusChangeError(
                        str(lot_id), current.value, target.value,
                        "restoring a lot to available requires a reason",
                    )
                if lot.quantity_available <= 0:
                    raise InvalidLotStatusChangeError(
                        str(lot_id), current.value, target.value,
                        "lot has no remaining quantity",
                    )

            lot.status = target.value
            lot.updated_by_id = actor_id
            self.session.flush()
            self._auditor.record_lot_status_change(
                lot.id, current.value, target.value, actor_id, reason,
            )

        log = logger.warning if target == LotStatus.RECALLED else logger.info
        log(
            "lot_status_changed",
            extra={
                "lot_id": str(lot_id),
                "lot_number": lot.lot_number,
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return lot

    def expire_lots(self, actor_id: UUID, as_of: date | None = None) -> list[MaterialLot]:
        """
        Mark every available lot whose expiry date is before ``as_of`` as expired.

        Returns the lots changed.  Writes one summarizing audit entry when
        at least one lot changed, none otherwise.
        """
        as_of = as_of or self.clock.today()

        with self.session.begin_nested():
            lots = list(
                self.session.execute(
                    select(MaterialLot)
                    .where(MaterialLot.status == LotStatus.AVAILABLE.value)
                    .where(MaterialLot.expiry_date.is_not(None))
                    .where(MaterialLot.expiry_date < as_of)
                    .order_by(MaterialLot.expiry_date, MaterialLot.id)
                    .with_for_update()
                ).scalars().all()
            )
            if not lots:
                return []

            for lot in lots:
                lot.status = LotStatus.EXPIRED.value
                lot.updated_by_id = actor_id
            self.session.flush()

            self._auditor.record_lots_expired(
                material_ids=[lot.material_id for lot in lots],
                lots=[
                    {
                        "lot_id": lot.id,
                        "lot_number": lot.lot_number,
                        "expiry_date": lot.expiry_date,
                        "quantity_available": lot.quantity_available,
                    }
                    for lot in lots
                ],
                as_of=as_of,
                actor_id=actor_id,
            )

        logger.info(
            "lots_expired",
            extra={"as_of": as_of, "count": len(lots)},
        )
        return lots

    def delete_unused_lot(self, lot_id: UUID, actor_id: UUID) -> None:
        """
        Hard-delete a lot that no worksheet ever consumed (e.g. entry error).

        Raises:
            LotInUseError: the lot is referenced by consumption records;
                recall it instead.
        """
        with self.session.begin_nested():
            lot = self._get_lot_for_update(lot_id)
            usage_count = self.session.execute(
                select(func.count(WorksheetMaterial.id))
                .where(WorksheetMaterial.material_lot_id == lot_id)
            ).scalar_one()
            if usage_count:
                raise LotInUseError(str(lot_id), usage_count)

            snapshot = lot_snapshot(lot)
            self.session.delete(lot)
            self.session.flush()
            self._auditor.record_lot_deleted(lot_id, snapshot, actor_id)

        logger.info(
            "lot_deleted",
            extra={"lot_id": str(lot_id), "lot_number": snapshot["lot_number"]},
        )
