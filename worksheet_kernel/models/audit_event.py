"""
Module: worksheet_kernel.models.audit_event
Responsibility: ORM persistence for the append-only, hash-chained audit
    trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener +
      PostgreSQL trigger).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every logical mutation -- worksheet
    creation, each assignment call, each status change, order resets, lot
    arrivals and lot status changes -- produces exactly one AuditEvent in
    the same transaction as the mutation.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from worksheet_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Generic record lifecycle
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Worksheet lifecycle
    STATUS_CHANGE = "status_change"
    TEETH_ASSIGN = "teeth_assign"
    PRODUCT_ASSIGN = "product_assign"
    MATERIAL_ASSIGN = "material_assign"
    METADATA_EDIT = "metadata_edit"

    # Inventory
    LOT_RECEIVED = "lot_received"
    LOT_STATUS_CHANGE = "lot_status_change"
    LOTS_EXPIRED = "lots_expired"
    LOT_DELETED = "lot_deleted"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        AuditEvent rows are append-only, never updated or deleted.
        Each row's hash includes the previous row's hash.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT compute hashes; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    # e.g. "Worksheet", "Order", "MaterialLot"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Snapshot before the mutation (None for creations)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Snapshot after the mutation, plus side-effect reports
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # hash = H(entity_type + entity_id + action + payload_hash + prev_hash)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
