"""
Module: worksheet_kernel.selectors.document_request_selector
Responsibility: List the compliance-document requests recorded by approval
    transitions so an external renderer can pick them up.
Architecture position: Kernel > Selectors.  Reads audit_events only.

Invariants enforced:
    - A request exists iff a Worksheet STATUS_CHANGE entry carries a
      ``document_request`` block under
      ``new_values.effects.generate_compliance_document``.  Requests are
      never stored anywhere else.
    - Ordered by audit ``seq``, so a renderer can resume from the last seq
      it handled.

Failure modes:
    - Entries without the block are skipped; malformed JSON cannot occur
      because payloads are normalized before hashing.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from worksheet_kernel.models.audit_event import AuditAction, AuditEvent
from worksheet_kernel.selectors.base import BaseSelector

DOCUMENT_EFFECT_KEY = "generate_compliance_document"


@dataclass(frozen=True)
class DocumentRequestDTO:
    """A durable "generate this document" fact."""

    seq: int
    audit_event_id: UUID
    worksheet_id: UUID
    document_type: str
    worksheet_number: str | None
    requested_at: datetime
    requested_by: UUID


class DocumentRequestSelector(BaseSelector):
    """Read side of compliance document generation."""

    def __init__(self, session: Session):
        super().__init__(session)

    def pending_requests(self, after_seq: int | None = None) -> list[DocumentRequestDTO]:
        """
        Document requests in audit order.

        Args:
            after_seq: Only return requests recorded after this audit seq.
        """
        # JSON filtering happens in Python to stay portable across backends
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.entity_type == "Worksheet")
            .where(AuditEvent.action == AuditAction.STATUS_CHANGE.value)
            .order_by(AuditEvent.seq)
        )
        if after_seq is not None:
            stmt = stmt.where(AuditEvent.seq > after_seq)

        requests = []
        for event in self.session.execute(stmt).scalars():
            effects = (event.new_values or {}).get("effects") or {}
            block = (effects.get(DOCUMENT_EFFECT_KEY) or {}).get("document_request")
            if not block:
                continue
            requests.append(
                DocumentRequestDTO(
                    seq=event.seq,
                    audit_event_id=event.id,
                    worksheet_id=event.entity_id,
                    document_type=block["document_type"],
                    worksheet_number=block.get("worksheet_number"),
                    requested_at=event.occurred_at,
                    requested_by=event.actor_id,
                )
            )
        return requests

    def requests_for_worksheet(self, worksheet_id: UUID) -> list[DocumentRequestDTO]:
        return [r for r in self.pending_requests() if r.worksheet_id == worksheet_id]
