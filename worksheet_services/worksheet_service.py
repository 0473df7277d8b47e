"""
worksheet_services.worksheet_service -- Worksheet lifecycle orchestration.

Responsibility:
    The single write path for worksheets: creation from an order, wholesale
    assignment of teeth / products / material plans while editable, audited
    metadata corrections, status transitions (validation, entry effects,
    status write, audit), voiding and soft deletion.

Architecture position:
    Services -- stateful orchestration over the pure state table
    (``worksheet_kernel.domain.worksheet_lifecycle``), kernel services
    (sequence, auditor, FIFO consumption via the dispatcher) and the order
    gateway.

Invariants enforced:
    - At most one active (not deleted, not voided) worksheet per order.
      Creation locks the order row first, so concurrent creations for the
      same order serialize.
    - Revisions come from a per-order counter and never repeat.
    - Assignments change only while the worksheet is editable and not
      deleted.  Metadata may be corrected until the worksheet is terminal,
      with a reason once it has left editable.
    - Status changes only through ``validate_transition``; the worksheet
      row is re-read FOR UPDATE at the start of every mutation.
    - One audit entry per logical mutation (plus the order entry when an
      order is reset).
    - Every public mutating operation runs in ``session.begin_nested()``:
      on any error its writes are discarded and the original exception
      propagates unchanged.

Failure modes:
    - OrderNotFoundError, WorksheetNotFoundError.
    - DuplicateActiveWorksheetError naming the active worksheet.
    - NotEditableError, MissingEditReasonError, NotDeletableError.
    - InvalidStateError, IllegalTransitionError, UnauthorizedTransitionError,
      MissingTransitionNotesError.
    - InvalidReferenceError, InvalidToothNumberError, InvalidQuantityError.
    - InsufficientStockError / OptimisticLockError from consumption.

Audit relevance:
    Status-change entries carry the reports of every side effect, which
    is where consumed lots and document requests are recorded.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_config.schema import EngineConfig
from worksheet_kernel.domain.clock import Clock, SystemClock
from worksheet_kernel.domain.fdi import parse_tooth, sort_teeth
from worksheet_kernel.domain.numbering import format_worksheet_number, revision_series
from worksheet_kernel.domain.worksheet_lifecycle import (
    Role,
    WorksheetStatus,
    is_terminal,
    parse_status,
    side_effects_on_enter,
    validate_transition,
)
from worksheet_kernel.exceptions import (
    DuplicateActiveWorksheetError,
    InvalidQuantityError,
    InvalidReferenceError,
    InvalidToothNumberError,
    MissingEditReasonError,
    MissingTransitionNotesError,
    NotDeletableError,
    NotEditableError,
    OrderNotFoundError,
    WorksheetKernelError,
    WorksheetNotFoundError,
)
from worksheet_kernel.logging_config import LogContext, get_logger
from worksheet_kernel.models.audit_event import AuditAction
from worksheet_kernel.models.material import Material
from worksheet_kernel.models.order import Order
from worksheet_kernel.models.product import Product
from worksheet_kernel.models.worksheet import (
    Worksheet,
    WorksheetMaterial,
    WorksheetProduct,
    WorksheetTooth,
)
from worksheet_kernel.selectors.traceability_selector import (
    MaterialTraceDTO,
    TraceabilitySelector,
)
from worksheet_kernel.services.auditor_service import AuditorService, AuditTraceEntry
from worksheet_kernel.services.sequence_service import SequenceService
from worksheet_services.order_gateway import OrderGateway, SqlOrderGateway
from worksheet_services.side_effect_dispatcher import EffectContext, SideEffectDispatcher

logger = get_logger("services.worksheet")

_METADATA_FIELDS = ("device_description", "intended_use", "technical_notes")

_EDIT_HISTORY_ACTIONS = frozenset({
    AuditAction.CREATE.value,
    AuditAction.METADATA_EDIT.value,
    AuditAction.DELETE.value,
})


# ---------------------------------------------------------------------------
# Assignment payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToothAssignment:
    tooth_number: str
    work_type: str
    shade: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ProductAssignment:
    product_id: UUID
    quantity: int = 1
    # None -> snapshot the product's current price
    price_at_selection: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MaterialAssignment:
    material_id: UUID
    quantity: Decimal
    notes: str | None = None


def _coerce(cls: type, item: Any) -> Any:
    if isinstance(item, cls):
        return item
    if isinstance(item, Mapping):
        return cls(**item)
    raise TypeError(f"Expected {cls.__name__} or mapping, got {type(item).__name__}")


def _parse_quantity(value: Any, context: str) -> Decimal:
    """Finite Decimal from ``value``; anything unparseable is InvalidQuantityError."""
    if isinstance(value, bool):
        raise InvalidQuantityError(str(value), context, "must be a number")
    try:
        quantity = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidQuantityError(str(value), context, "must be a number") from exc
    if not quantity.is_finite():
        raise InvalidQuantityError(str(value), context, "must be a number")
    return quantity


def _product_quantity(item: ProductAssignment) -> int:
    context = f"product {item.product_id}"
    quantity = _parse_quantity(item.quantity, context)
    if quantity != quantity.to_integral_value() or quantity < 1:
        raise InvalidQuantityError(str(item.quantity), context, "must be a whole number >= 1")
    return int(quantity)


def _material_quantity(item: MaterialAssignment) -> Decimal:
    context = f"material {item.material_id}"
    quantity = _parse_quantity(item.quantity, context)
    if quantity <= 0:
        raise InvalidQuantityError(str(item.quantity), context)
    return quantity


# ---------------------------------------------------------------------------
# Snapshots for audit payloads
# ---------------------------------------------------------------------------


def worksheet_snapshot(worksheet: Worksheet) -> dict[str, Any]:
    return {
        "order_id": worksheet.order_id,
        "worksheet_number": worksheet.worksheet_number,
        "sequence_number": worksheet.sequence_number,
        "revision": worksheet.revision,
        "status": WorksheetStatus(worksheet.status).value,
        "device_description": worksheet.device_description,
        "intended_use": worksheet.intended_use,
        "technical_notes": worksheet.technical_notes,
    }


def _tooth_item(t: WorksheetTooth) -> dict[str, Any]:
    return {
        "tooth_number": t.tooth_number,
        "work_type": t.work_type,
        "shade": t.shade,
        "notes": t.notes,
    }


def _product_item(p: WorksheetProduct) -> dict[str, Any]:
    return {
        "product_id": p.product_id,
        "quantity": p.quantity,
        "price_at_selection": p.price_at_selection,
        "notes": p.notes,
    }


def _material_item(m: WorksheetMaterial) -> dict[str, Any]:
    return {
        "material_id": m.material_id,
        "material_lot_id": m.material_lot_id,
        "quantity_planned": m.quantity_planned,
        "notes": m.notes,
    }


class WorksheetService:
    """
    Lifecycle engine for worksheets.

    Contract:
        Accepts a Session from the caller and never commits.  Wrap calls in
        ``session_scope()`` (or commit yourself) to make them durable.

    Non-goals:
        - Does NOT authenticate; ``actor_id`` and ``role`` are trusted input.
        - Does NOT render the compliance document; it records the request.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        order_gateway: OrderGateway | None = None,
        config: EngineConfig | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()
        self._order_gateway = order_gateway or SqlOrderGateway(session, self.clock)
        self._auditor = AuditorService(session, self.clock)
        self._sequences = SequenceService(session)
        self._dispatcher = SideEffectDispatcher(
            session,
            self.clock,
            order_gateway=self._order_gateway,
            consumption_attempts=self.config.inventory.consumption_lock_retries,
            order_reset_status=self.config.lifecycle.order_reset_status,
        )

    # ------------------------------------------------------------------
    # Loading and locking
    # ------------------------------------------------------------------

    def _lock_worksheet(self, worksheet_id: UUID) -> Worksheet:
        worksheet = self.session.execute(
            select(Worksheet)
            .where(Worksheet.id == worksheet_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if worksheet is None:
            raise WorksheetNotFoundError(str(worksheet_id))
        return worksheet

    def _lock_editable(self, worksheet_id: UUID, operation: str) -> Worksheet:
        worksheet = self._lock_worksheet(worksheet_id)
        status = parse_status(worksheet.status, str(worksheet_id))
        if worksheet.is_deleted or status != WorksheetStatus.EDITABLE:
            raise NotEditableError(
                str(worksheet_id),
                "deleted" if worksheet.is_deleted else status.value,
                operation,
            )
        return worksheet

    def get_worksheet(self, worksheet_id: UUID) -> Worksheet:
        worksheet = self.session.get(Worksheet, worksheet_id)
        if worksheet is None:
            raise WorksheetNotFoundError(str(worksheet_id))
        return worksheet

    def find_active_worksheet(self, order_id: UUID) -> Worksheet | None:
        """The order's worksheet that is neither deleted nor voided, if any."""
        return self.session.execute(
            select(Worksheet)
            .where(Worksheet.order_id == order_id)
            .where(Worksheet.deleted_at.is_(None))
            .where(Worksheet.status != WorksheetStatus.VOIDED.value)
            .order_by(Worksheet.revision.desc())
            .limit(1)
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_from_order(
        self,
        order_id: UUID,
        metadata: Mapping[str, Any] | None,
        actor_id: UUID,
    ) -> Worksheet:
        """
        Create the next revision of an order's worksheet in ``editable``.

        Args:
            metadata: Optional ``device_description``, ``intended_use`` and
                ``technical_notes``.  Other keys are rejected.

        Raises:
            OrderNotFoundError: Unknown order.
            DuplicateActiveWorksheetError: The order already has an active
                worksheet.
        """
        metadata = dict(metadata or {})
        unknown = sorted(set(metadata) - set(_METADATA_FIELDS))
        if unknown:
            raise ValueError(f"Unknown worksheet metadata field(s): {', '.join(unknown)}")

        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            with self.session.begin_nested():
                # Lock the order so creations for the same order serialize
                order = self.session.execute(
                    select(Order)
                    .where(Order.id == order_id)
                    .with_for_update()
                ).scalar_one_or_none()
                if order is None:
                    raise OrderNotFoundError(str(order_id))

                existing = self.find_active_worksheet(order_id)
                if existing is not None:
                    logger.warning(
                        "duplicate_active_worksheet",
                        extra={
                            "existing_worksheet_id": str(existing.id),
                            "existing_worksheet_number": existing.worksheet_number,
                        },
                    )
                    raise DuplicateActiveWorksheetError(
                        order_id=str(order_id),
                        existing_worksheet_id=str(existing.id),
                        existing_worksheet_number=existing.worksheet_number,
                        existing_status=WorksheetStatus(existing.status).value,
                    )

                revision = self._sequences.next_value(revision_series(order_id))
                sequence_number = self._sequences.next_value(
                    self.config.numbering.worksheet_series
                )
                worksheet = Worksheet(
                    order_id=order_id,
                    worksheet_number=format_worksheet_number(
                        order.order_number,
                        revision,
                        prefix=self.config.numbering.worksheet_prefix,
                    ),
                    sequence_number=sequence_number,
                    revision=revision,
                    status=WorksheetStatus.EDITABLE.value,
                    created_by_id=actor_id,
                    **metadata,
                )
                self.session.add(worksheet)
                self.session.flush()

                self._auditor.record_worksheet_created(
                    worksheet.id, worksheet_snapshot(worksheet), actor_id,
                )

            logger.info(
                "worksheet_created",
                extra={
                    "worksheet_id": str(worksheet.id),
                    "worksheet_number": worksheet.worksheet_number,
                    "revision": revision,
                    "sequence_number": sequence_number,
                },
            )
        return worksheet

    # ------------------------------------------------------------------
    # Assignments (wholesale replace)
    # ------------------------------------------------------------------

    def assign_teeth(
        self,
        worksheet_id: UUID,
        teeth: Iterable[ToothAssignment | Mapping[str, Any]],
        actor_id: UUID,
    ) -> list[WorksheetTooth]:
        """Replace the worksheet's teeth.  FDI numbers, no duplicates."""
        items = [_coerce(ToothAssignment, t) for t in teeth]
        seen: set[str] = set()
        normalized: dict[str, ToothAssignment] = {}
        for item in items:
            tooth = parse_tooth(item.tooth_number)
            if tooth.number in seen:
                raise InvalidToothNumberError(item.tooth_number, "duplicate tooth in assignment")
            seen.add(tooth.number)
            normalized[tooth.number] = item

        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            with self.session.begin_nested():
                worksheet = self._lock_editable(worksheet_id, "assign teeth")
                old_items = [_tooth_item(t) for t in worksheet.teeth]

                worksheet.teeth.clear()
                self.session.flush()
                worksheet.teeth.extend(
                    WorksheetTooth(
                        tooth_number=number,
                        work_type=normalized[number].work_type,
                        shade=normalized[number].shade,
                        notes=normalized[number].notes,
                    )
                    for number in sort_teeth(list(normalized))
                )
                worksheet.updated_by_id = actor_id
                self.session.flush()

                new_items = [_tooth_item(t) for t in worksheet.teeth]
                self._auditor.record_assignment(
                    worksheet.id, AuditAction.TEETH_ASSIGN, old_items, new_items, actor_id,
                )

            logger.info("teeth_assigned", extra={"count": len(new_items)})
        return list(worksheet.teeth)

    def assign_products(
        self,
        worksheet_id: UUID,
        products: Iterable[ProductAssignment | Mapping[str, Any]],
        actor_id: UUID,
    ) -> list[WorksheetProduct]:
        """Replace the worksheet's products, snapshotting prices."""
        items = [_coerce(ProductAssignment, p) for p in products]
        quantities = [_product_quantity(item) for item in items]

        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            with self.session.begin_nested():
                worksheet = self._lock_editable(worksheet_id, "assign products")
                catalog = self._load_references(
                    Product, "Product", [item.product_id for item in items],
                )
                old_items = [_product_item(p) for p in worksheet.products]

                worksheet.products.clear()
                self.session.flush()
                for item, quantity in zip(items, quantities):
                    price = item.price_at_selection
                    if price is None:
                        price = catalog[item.product_id].current_price
                    worksheet.products.append(
                        WorksheetProduct(
                            product_id=item.product_id,
                            quantity=quantity,
                            price_at_selection=Decimal(price),
                            notes=item.notes,
                        )
                    )
                worksheet.updated_by_id = actor_id
                self.session.flush()

                new_items = [_product_item(p) for p in worksheet.products]
                self._auditor.record_assignment(
                    worksheet.id, AuditAction.PRODUCT_ASSIGN, old_items, new_items, actor_id,
                )

            logger.info("products_assigned", extra={"count": len(new_items)})
        return list(worksheet.products)

    def assign_materials(
        self,
        worksheet_id: UUID,
        materials: Iterable[MaterialAssignment | Mapping[str, Any]],
        actor_id: UUID,
    ) -> list[WorksheetMaterial]:
        """Replace the worksheet's material plans (no lot until production)."""
        items = [_coerce(MaterialAssignment, m) for m in materials]
        quantities = [_material_quantity(item) for item in items]

        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            with self.session.begin_nested():
                worksheet = self._lock_editable(worksheet_id, "assign materials")
                self._load_references(
                    Material, "Material", [item.material_id for item in items],
                )
                old_items = [_material_item(m) for m in worksheet.materials]

                worksheet.materials.clear()
                self.session.flush()
                worksheet.materials.extend(
                    WorksheetMaterial(
                        material_id=item.material_id,
                        material_lot_id=None,
                        quantity_planned=quantity,
                        notes=item.notes,
                    )
                    for item, quantity in zip(items, quantities)
                )
                worksheet.updated_by_id = actor_id
                self.session.flush()

                new_items = [_material_item(m) for m in worksheet.materials]
                self._auditor.record_assignment(
                    worksheet.id, AuditAction.MATERIAL_ASSIGN, old_items, new_items, actor_id,
                )

            logger.info("materials_assigned", extra={"count": len(new_items)})
        return list(worksheet.materials)

    def _load_references(self, model: type, entity_type: str, ids: list[UUID]) -> dict:
        """Load active reference rows by id, or raise InvalidReferenceError."""
        if not ids:
            return {}
        rows = {
            row.id: row
            for row in self.session.execute(
                select(model).where(model.id.in_(list(set(ids))))
            ).scalars()
        }
        for ref_id in ids:
            row = rows.get(ref_id)
            if row is None:
                raise InvalidReferenceError(entity_type, str(ref_id))
            if not row.active:
                raise InvalidReferenceError(entity_type, str(ref_id), "inactive")
        return rows

    # ------------------------------------------------------------------
    # Metadata edits
    # ------------------------------------------------------------------

    def update_metadata(
        self,
        worksheet_id: UUID,
        changes: Mapping[str, str | None],
        actor_id: UUID,
        reason: str | None = None,
    ) -> Worksheet:
        """
        Correct a worksheet's descriptive fields.

        Allowed in every non-terminal state.  Past ``editable`` a reason of
        at least ``lifecycle.edit_reason_min_length`` characters is
        required.  Only fields whose value differs are written; the single
        audit entry holds the old and new values of exactly those fields.
        A call that changes nothing writes nothing.

        Raises:
            ValueError: ``changes`` names a field that is not metadata.
            NotEditableError: Worksheet is terminal (this includes deleted).
            MissingEditReasonError: Reason missing or too short.
        """
        unknown = sorted(set(changes) - set(_METADATA_FIELDS))
        if unknown:
            raise ValueError(f"Unknown worksheet metadata field(s): {', '.join(unknown)}")
        reason = reason.strip() if reason else None

        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            with self.session.begin_nested():
                worksheet = self._lock_worksheet(worksheet_id)
                status = parse_status(worksheet.status, str(worksheet_id))
                if is_terminal(status):
                    raise NotEditableError(
                        str(worksheet_id),
                        "deleted" if worksheet.is_deleted else status.value,
                        "edit metadata",
                        requirement="terminal worksheets are frozen",
                    )
                min_length = self.config.lifecycle.edit_reason_min_length
                if status != WorksheetStatus.EDITABLE and (
                    reason is None or len(reason) < min_length
                ):
                    raise MissingEditReasonError(str(worksheet_id), status.value, min_length)

                old_values: dict[str, Any] = {}
                new_values: dict[str, Any] = {}
                for field in _METADATA_FIELDS:
                    if field in changes and getattr(worksheet, field) != changes[field]:
                        old_values[field] = getattr(worksheet, field)
                        new_values[field] = changes[field]

                if new_values:
                    for field, value in new_values.items():
                        setattr(worksheet, field, value)
                    worksheet.updated_by_id = actor_id
                    self.session.flush()

                    self._auditor.record_metadata_edit(
                        worksheet.id, status.value, old_values, new_values, actor_id, reason,
                    )

            logger.info(
                "worksheet_metadata_updated" if new_values else "worksheet_metadata_unchanged",
                extra={"status": status.value, "fields": sorted(new_values)},
            )
        return worksheet

    def get_edit_history(self, worksheet_id: UUID) -> tuple[AuditTraceEntry, ...]:
        """Creation, metadata edits and deletion of a worksheet, newest first."""
        trace = self._auditor.get_trace("Worksheet", worksheet_id)
        return tuple(
            entry for entry in reversed(trace.entries)
            if entry.action in _EDIT_HISTORY_ACTIONS
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        worksheet_id: UUID,
        target: WorksheetStatus | str,
        actor_id: UUID,
        role: Role | str,
        notes: str | None = None,
    ) -> WorksheetStatus:
        """
        Move a worksheet to ``target``, running the target's entry effects.

        Validation, effects, the status write and the audit entry happen in
        one savepoint.  Returns the new status.
        """
        role_value = role.value if isinstance(role, Role) else str(role)
        target_value = target.value if isinstance(target, WorksheetStatus) else str(target)
        start = time.monotonic()
        from_status: str | None = None

        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            try:
                with self.session.begin_nested():
                    worksheet = self._lock_worksheet(worksheet_id)
                    current = parse_status(worksheet.status, str(worksheet_id))
                    from_status = current.value
                    transition = validate_transition(
                        current, target_value, role_value, str(worksheet_id),
                    )
                    new_status = WorksheetStatus(transition.to_state)
                    self._require_notes(new_status, notes, worksheet_id)

                    reports = self._dispatcher.dispatch(
                        side_effects_on_enter(new_status),
                        EffectContext(
                            worksheet=worksheet,
                            actor_id=actor_id,
                            role=role_value,
                            now=self.clock.now(),
                            reason=notes,
                        ),
                    )

                    worksheet.status = new_status.value
                    if notes:
                        if new_status == WorksheetStatus.VOIDED:
                            worksheet.void_reason = notes
                        else:
                            worksheet.review_notes = notes
                    worksheet.updated_by_id = actor_id
                    self.session.flush()

                    self._auditor.record_status_change(
                        worksheet.id,
                        from_status=current.value,
                        to_status=new_status.value,
                        actor_id=actor_id,
                        role=role_value,
                        reason=notes,
                        effects=reports,
                    )
            except WorksheetKernelError as exc:
                logger.warning(
                    "transition_rejected",
                    extra={
                        "from_status": from_status,
                        "to_status": target_value,
                        "role": role_value,
                        "error_code": exc.code,
                    },
                )
                raise

            logger.info(
                "transition_committed",
                extra={
                    "from_status": current.value,
                    "to_status": new_status.value,
                    "role": role_value,
                    "effects": list(reports),
                    "duration_ms": round((time.monotonic() - start) * 1000, 3),
                },
            )
        return new_status

    def _require_notes(
        self,
        target: WorksheetStatus,
        notes: str | None,
        worksheet_id: UUID,
    ) -> None:
        needs_notes = target == WorksheetStatus.VOIDED or (
            target == WorksheetStatus.REJECTED
            and self.config.lifecycle.require_rejection_notes
        )
        if needs_notes and not (notes and notes.strip()):
            raise MissingTransitionNotesError(target.value, str(worksheet_id))

    def void(
        self,
        worksheet_id: UUID,
        actor_id: UUID,
        role: Role | str,
        reason: str,
    ) -> WorksheetStatus:
        """Administratively void a non-terminal worksheet.  ``reason`` is required."""
        return self.transition(
            worksheet_id, WorksheetStatus.VOIDED, actor_id, role, notes=reason,
        )

    # ------------------------------------------------------------------
    # Soft delete
    # ------------------------------------------------------------------

    def delete(self, worksheet_id: UUID, actor_id: UUID) -> Worksheet:
        """
        Soft-delete an editable worksheet and reset its order.

        The row is retained with ``deleted_at`` set and status ``cancelled``.

        Raises:
            NotDeletableError: Already deleted, or no longer editable.
        """
        with LogContext.bind(worksheet_id=worksheet_id, actor_id=actor_id):
            with self.session.begin_nested():
                worksheet = self._lock_worksheet(worksheet_id)
                status = parse_status(worksheet.status, str(worksheet_id))
                if worksheet.is_deleted:
                    raise NotDeletableError(str(worksheet_id), status.value, "already deleted")
                if status != WorksheetStatus.EDITABLE:
                    raise NotDeletableError(
                        str(worksheet_id),
                        status.value,
                        "only editable worksheets can be deleted; void it instead",
                    )

                deleted_at = self.clock.now()
                worksheet.deleted_at = deleted_at
                worksheet.status = WorksheetStatus.CANCELLED.value
                worksheet.updated_by_id = actor_id
                self.session.flush()

                self._auditor.record_worksheet_deleted(
                    worksheet.id, status.value, deleted_at, actor_id,
                )
                self._order_gateway.reset_status(
                    worksheet.order_id,
                    actor_id,
                    reason=f"Worksheet {worksheet.worksheet_number} deleted",
                    to_status=self.config.lifecycle.order_reset_status,
                )

            logger.info(
                "worksheet_deleted",
                extra={"worksheet_number": worksheet.worksheet_number},
            )
        return worksheet

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_material_traceability(self, worksheet_id: UUID) -> tuple[MaterialTraceDTO, ...]:
        """Materials and lots consumed by the worksheet, with compliance flags."""
        return TraceabilitySelector(self.session).worksheet_materials(worksheet_id)
