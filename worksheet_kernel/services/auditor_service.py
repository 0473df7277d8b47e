"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every logical mutation
    of the lifecycle engine and the lot ledger.  Provides chain validation
    for tamper detection and per-entity trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by WorksheetService,
    the side-effect dispatcher, the order gateway and LotLedgerService.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never MAX(seq)+1).
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``; ``payload_hash`` covers old values, new
      values and reason.
    - Append-only: audit events are never modified or deleted (ORM
      listener + PostgreSQL trigger on AuditEvent).
    - One entry per logical mutation.  Multi-row side effects are summarized
      inside the single entry's ``new_values``.

Failure modes:
    - AuditChainBrokenError: recomputed hash or payload hash does not match,
      or prev_hash does not match the predecessor's hash.

Audit relevance:
    This IS the audit service.  Every recorder below funnels through
    ``record()``, which enforces hash chain linkage before persisting.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock, SystemClock
from worksheet_kernel.exceptions import AuditChainBrokenError
from worksheet_kernel.logging_config import get_logger
from worksheet_kernel.models.audit_event import AuditAction, AuditEvent
from worksheet_kernel.services.sequence_service import SequenceService
from worksheet_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    reason: str | None
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


def _payload(
    old_values: dict[str, Any] | None,
    new_values: dict[str, Any] | None,
    reason: str | None,
) -> dict[str, Any]:
    return {"old_values": old_values, "new_values": new_values, "reason": reason}


def _action_value(action: AuditAction | str) -> str:
    return action.value if isinstance(action, AuditAction) else str(action)


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Contract:
        ``record()`` appends one AuditEvent and flushes.  Typed recorders
        (``record_worksheet_created``, ``record_status_change`` ...) fix the
        entity type, action and snapshot shape for each mutation kind.

    Guarantees:
        - Every event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Sequence numbers come from the locked ``audit_event`` counter,
          which also serializes concurrent writers of the chain.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT render documents or notify anyone about requested ones.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> AuditEvent:
        """
        Append one audit event with hash chain linkage.

        Postconditions:
            - A new AuditEvent row is flushed with the next ``seq`` and a
              valid chain link.
            - Stored snapshots are JSON-normalized (Decimal and UUID become
              strings) so that re-hashing the stored row reproduces
              ``payload_hash``.
        """
        # The counter lock is taken first so prev_hash is read under it
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        safe_old = to_json_safe(old_values) if old_values is not None else None
        safe_new = to_json_safe(new_values) if new_values is not None else None
        computed_payload_hash = hash_payload(_payload(safe_old, safe_new, reason))

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=_action_value(action),
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=_action_value(action),
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            old_values=safe_old,
            new_values=safe_new,
            reason=reason,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": _action_value(action),
                "seq": seq,
            },
        )

        return audit_event

    # Worksheet recorders

    def record_worksheet_created(
        self,
        worksheet_id: UUID,
        snapshot: dict[str, Any],
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            entity_type="Worksheet",
            entity_id=worksheet_id,
            action=AuditAction.CREATE,
            actor_id=actor_id,
            new_values=snapshot,
        )

    def record_assignment(
        self,
        worksheet_id: UUID,
        action: AuditAction,
        old_items: list[dict[str, Any]],
        new_items: list[dict[str, Any]],
        actor_id: UUID,
    ) -> AuditEvent:
        """One entry per assignment call, whatever the number of rows replaced."""
        return self.record(
            entity_type="Worksheet",
            entity_id=worksheet_id,
            action=action,
            actor_id=actor_id,
            old_values={"items": old_items},
            new_values={"items": new_items},
        )

    def record_metadata_edit(
        self,
        worksheet_id: UUID,
        status: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        actor_id: UUID,
        reason: str | None = None,
    ) -> AuditEvent:
        """Only the changed fields are stored; ``status`` is the state edited in."""
        return self.record(
            entity_type="Worksheet",
            entity_id=worksheet_id,
            action=AuditAction.METADATA_EDIT,
            actor_id=actor_id,
            old_values=old_values,
            new_values=new_values,
            reason=reason or f"Metadata edited while {status}",
        )

    def record_status_change(
        self,
        worksheet_id: UUID,
        from_status: str,
        to_status: str,
        actor_id: UUID,
        role: str,
        reason: str | None = None,
        effects: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Record one transition, including the reports of its side effects.

        ``effects`` maps effect name -> report (consumption details, stamped
        dates, the document generation request).
        """
        new_values: dict[str, Any] = {"status": to_status, "role": role}
        if effects:
            new_values["effects"] = effects
        return self.record(
            entity_type="Worksheet",
            entity_id=worksheet_id,
            action=AuditAction.STATUS_CHANGE,
            actor_id=actor_id,
            old_values={"status": from_status},
            new_values=new_values,
            reason=reason or f"Status changed from {from_status} to {to_status}",
        )

    def record_worksheet_deleted(
        self,
        worksheet_id: UUID,
        from_status: str,
        deleted_at: datetime,
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            entity_type="Worksheet",
            entity_id=worksheet_id,
            action=AuditAction.DELETE,
            actor_id=actor_id,
            old_values={"status": from_status, "deleted_at": None},
            new_values={"status": "cancelled", "deleted_at": deleted_at},
            reason="Worksheet soft-deleted",
        )

    def record_order_reset(
        self,
        order_id: UUID,
        from_status: str,
        to_status: str,
        actor_id: UUID,
        reason: str,
    ) -> AuditEvent:
        return self.record(
            entity_type="Order",
            entity_id=order_id,
            action=AuditAction.UPDATE,
            actor_id=actor_id,
            old_values={"status": from_status},
            new_values={"status": to_status},
            reason=reason,
        )

    # Lot ledger recorders

    def record_lot_received(
        self,
        lot_id: UUID,
        snapshot: dict[str, Any],
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            entity_type="MaterialLot",
            entity_id=lot_id,
            action=AuditAction.LOT_RECEIVED,
            actor_id=actor_id,
            new_values=snapshot,
        )

    def record_lot_status_change(
        self,
        lot_id: UUID,
        from_status: str,
        to_status: str,
        actor_id: UUID,
        reason: str | None,
    ) -> AuditEvent:
        return self.record(
            entity_type="MaterialLot",
            entity_id=lot_id,
            action=AuditAction.LOT_STATUS_CHANGE,
            actor_id=actor_id,
            old_values={"status": from_status},
            new_values={"status": to_status},
            reason=reason,
        )

    def record_lots_expired(
        self,
        material_ids: list[UUID],
        lots: list[dict[str, Any]],
        as_of: Any,
        actor_id: UUID,
    ) -> AuditEvent:
        """Summarizing entry for a scheduled expiry sweep (entity is the actor)."""
        return self.record(
            entity_type="LotExpirySweep",
            entity_id=actor_id,
            action=AuditAction.LOTS_EXPIRED,
            actor_id=actor_id,
            new_values={
                "as_of": as_of,
                "material_ids": sorted(str(m) for m in set(material_ids)),
                "lots": lots,
            },
            reason=f"{len(lots)} lot(s) past expiry",
        )

    def record_lot_deleted(
        self,
        lot_id: UUID,
        snapshot: dict[str, Any],
        actor_id: UUID,
    ) -> AuditEvent:
        return self.record(
            entity_type="MaterialLot",
            entity_id=lot_id,
            action=AuditAction.LOT_DELETED,
            actor_id=actor_id,
            old_values=snapshot,
            reason="Unused lot removed",
        )

    # Validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's stored payload hashes
              to ``payload_hash``, every ``hash`` matches the recomputed
              value, and every ``prev_hash`` matches its predecessor.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(
                str(events[0].id),
                "None",
                events[0].prev_hash,
            )

        for i, event in enumerate(events):
            expected_payload_hash = hash_payload(
                _payload(event.old_values, event.new_values, event.reason)
            )
            if event.payload_hash != expected_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_payload_hash,
                    event.payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=_action_value(event.action),
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_hash,
                    event.hash,
                )

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        str(event.id),
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Full audit history of one entity, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=e.seq,
                action=_action_value(e.action),
                occurred_at=e.occurred_at,
                actor_id=e.actor_id,
                old_values=e.old_values,
                new_values=e.new_values,
                reason=e.reason,
                hash=e.hash,
            )
            for e in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(
            self._session.execute(
                select(AuditEvent)
                .order_by(AuditEvent.seq.desc())
                .limit(limit)
            ).scalars().all()
        )
