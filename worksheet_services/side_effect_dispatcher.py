"""
worksheet_services.side_effect_dispatcher -- Entry effects of worksheet states.

Responsibility:
    Runs, in declared order, the side effects a worksheet state declares on
    entry (see ``side_effects_on_enter``) and collects one JSON-safe report
    per effect for the transition's audit entry.

Architecture position:
    Services -- stateful orchestration over kernel services.  Called only by
    WorksheetService.transition / delete, inside their savepoint.

Invariants enforced:
    - Closed set: every SideEffect member has exactly one handler, bound at
      class definition time.  Construction fails otherwise.
    - All effects share the caller's transaction.  A failing effect
      propagates unchanged and the caller's savepoint discards the work of
      every effect that ran before it.
    - Consumption only touches planning records (material_lot_id NULL), so
      re-entering production after a rejection never consumes twice.
    - The manufacture date is stamped once, on the first approval.

Failure modes:
    - InsufficientStockError / OptimisticLockError from FIFO consumption.
    - OrderNotFoundError from the order gateway.

Audit relevance:
    The returned reports become ``new_values.effects`` of the status-change
    entry: consumed lots, stamped dates and the document request.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock, SystemClock
from worksheet_kernel.domain.worksheet_lifecycle import SideEffect
from worksheet_kernel.logging_config import get_logger
from worksheet_kernel.models.material import Material
from worksheet_kernel.models.order import OrderStatus
from worksheet_kernel.models.worksheet import Worksheet
from worksheet_kernel.services.fifo_consumption_service import (
    DEFAULT_MAX_ATTEMPTS,
    FifoConsumptionService,
)
from worksheet_services.order_gateway import OrderGateway, SqlOrderGateway

logger = get_logger("services.side_effects")

COMPLIANCE_DOCUMENT_TYPE = "annex_xiii"


@dataclass(frozen=True)
class EffectContext:
    """Everything a handler may read.  Handlers mutate only ``worksheet``."""

    worksheet: Worksheet
    actor_id: UUID
    role: str
    now: datetime
    reason: str | None = None


class SideEffectDispatcher:
    """
    Executes declared entry effects.

    Contract:
        ``dispatch(effects, context)`` returns ``{effect_name: report}`` in
        execution order, or raises the first handler error.
    """

    _HANDLERS: dict[SideEffect, str] = {
        SideEffect.CONSUME_MATERIALS: "_consume_materials",
        SideEffect.STAMP_MANUFACTURE_DATE: "_stamp_manufacture_date",
        SideEffect.GENERATE_COMPLIANCE_DOCUMENT: "_generate_compliance_document",
        SideEffect.STAMP_COMPLETION_DATE: "_stamp_completion_date",
        SideEffect.RESET_ORDER: "_reset_order",
    }

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        order_gateway: OrderGateway | None = None,
        consumption_attempts: int = DEFAULT_MAX_ATTEMPTS,
        order_reset_status: str = OrderStatus.PENDING.value,
    ):
        missing = [e.value for e in SideEffect if e not in self._HANDLERS]
        if missing:
            raise ValueError(f"No handler registered for side effects: {missing}")

        self._session = session
        self._clock = clock or SystemClock()
        self._order_gateway = order_gateway or SqlOrderGateway(session, self._clock)
        self._fifo = FifoConsumptionService(
            session, self._clock, max_attempts=consumption_attempts,
        )
        self._order_reset_status = OrderStatus(order_reset_status).value
        self._bound: dict[SideEffect, Callable[[EffectContext], dict[str, Any]]] = {
            effect: getattr(self, name) for effect, name in self._HANDLERS.items()
        }

    def dispatch(
        self,
        effects: Iterable[SideEffect],
        context: EffectContext,
    ) -> dict[str, Any]:
        reports: dict[str, Any] = {}
        for effect in effects:
            handler = self._bound[SideEffect(effect)]
            reports[SideEffect(effect).value] = handler(context)
            logger.debug(
                "side_effect_applied",
                extra={
                    "effect": SideEffect(effect).value,
                    "worksheet_id": str(context.worksheet.id),
                },
            )
        return reports

    # Handlers

    def _consume_materials(self, context: EffectContext) -> dict[str, Any]:
        worksheet = context.worksheet
        planned = [m for m in worksheet.materials if m.material_lot_id is None]
        codes: dict[UUID, str] = {}
        if planned:
            result = self._session.execute(
                select(Material.id, Material.code).where(
                    Material.id.in_([p.material_id for p in planned])
                )
            )
            codes = {material_id: code for material_id, code in result}
        planned.sort(key=lambda p: (codes.get(p.material_id, ""), str(p.id)))

        consumed = []
        for record in planned:
            result = self._fifo.consume(
                material_id=record.material_id,
                quantity=record.quantity_planned,
                worksheet_id=worksheet.id,
                actor_id=context.actor_id,
                planning_record=record,
            )
            consumed.append(result.as_report())

        # Planning records were replaced; reload the collection on next access
        self._session.expire(worksheet, ["materials"])
        return {"consumed": consumed}

    def _stamp_manufacture_date(self, context: EffectContext) -> dict[str, Any]:
        worksheet = context.worksheet
        if worksheet.manufacture_date is not None:
            return {"manufacture_date": worksheet.manufacture_date, "stamped": False}
        worksheet.manufacture_date = context.now
        return {"manufacture_date": context.now, "stamped": True}

    def _generate_compliance_document(self, context: EffectContext) -> dict[str, Any]:
        worksheet = context.worksheet
        logger.info(
            "compliance_document_requested",
            extra={
                "worksheet_id": str(worksheet.id),
                "worksheet_number": worksheet.worksheet_number,
                "document_type": COMPLIANCE_DOCUMENT_TYPE,
            },
        )
        return {
            "document_request": {
                "document_type": COMPLIANCE_DOCUMENT_TYPE,
                "worksheet_number": worksheet.worksheet_number,
                "requested_at": context.now,
            }
        }

    def _stamp_completion_date(self, context: EffectContext) -> dict[str, Any]:
        context.worksheet.completed_at = context.now
        return {"completed_at": context.now}

    def _reset_order(self, context: EffectContext) -> dict[str, Any]:
        worksheet = context.worksheet
        reset = self._order_gateway.reset_status(
            worksheet.order_id,
            context.actor_id,
            reason=context.reason or f"Worksheet {worksheet.worksheet_number} cancelled",
            to_status=self._order_reset_status,
        )
        return {
            "order_id": reset.order_id,
            "from_status": reset.from_status,
            "to_status": reset.to_status,
        }
