"""Soft delete tests: editable worksheets only, retained, order reset."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from worksheet_kernel.domain.worksheet_lifecycle import Role, WorksheetStatus
from worksheet_kernel.exceptions import (
    IllegalTransitionError,
    NotDeletableError,
    WorksheetNotFoundError,
)
from worksheet_kernel.models.audit_event import AuditAction, AuditEvent
from worksheet_kernel.models.order import OrderStatus
from worksheet_kernel.models.worksheet import Worksheet


class TestSoftDelete:
    def test_row_retained_as_cancelled(
        self, session, worksheet_service, editable_worksheet, test_actor_id,
    ):
        worksheet = editable_worksheet()

        worksheet_service.delete(worksheet.id, test_actor_id)

        row = session.get(Worksheet, worksheet.id)
        assert row is not None
        assert row.is_deleted
        assert WorksheetStatus(row.status) == WorksheetStatus.CANCELLED
        assert not row.is_active

    def test_order_reset_and_audited(
        self, session, worksheet_service, create_order, test_actor_id,
    ):
        order = create_order(status=OrderStatus.IN_PRODUCTION)
        worksheet = worksheet_service.create_from_order(order.id, {}, test_actor_id)

        worksheet_service.delete(worksheet.id, test_actor_id)

        session.refresh(order)
        assert OrderStatus(order.status) == OrderStatus.PENDING

        ws_actions = [
            AuditAction(e.action)
            for e in session.execute(
                select(AuditEvent)
                .where(AuditEvent.entity_id == worksheet.id)
                .order_by(AuditEvent.seq)
            ).scalars()
        ]
        assert ws_actions == [AuditAction.CREATE, AuditAction.DELETE]

        order_events = session.execute(
            select(AuditEvent).where(AuditEvent.entity_id == order.id)
        ).scalars().all()
        assert len(order_events) == 1
        assert order_events[0].new_values == {"status": "pending"}

    def test_delete_twice_refused(self, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        worksheet_service.delete(worksheet.id, test_actor_id)

        with pytest.raises(NotDeletableError) as exc_info:
            worksheet_service.delete(worksheet.id, test_actor_id)
        assert exc_info.value.reason == "already deleted"

    def test_in_production_must_be_voided_instead(
        self, worksheet_service, editable_worksheet, test_actor_id,
    ):
        worksheet = editable_worksheet()
        worksheet_service.transition(
            worksheet.id, WorksheetStatus.IN_PRODUCTION, test_actor_id, Role.TECHNICIAN,
        )

        with pytest.raises(NotDeletableError) as exc_info:
            worksheet_service.delete(worksheet.id, test_actor_id)
        assert exc_info.value.status == "in_production"
        assert worksheet.deleted_at is None

    def test_unknown_worksheet(self, worksheet_service, test_actor_id):
        with pytest.raises(WorksheetNotFoundError):
            worksheet_service.delete(uuid4(), test_actor_id)

    def test_deleted_worksheet_refuses_transitions(
        self, worksheet_service, editable_worksheet, test_actor_id,
    ):
        worksheet = editable_worksheet()
        worksheet_service.delete(worksheet.id, test_actor_id)

        with pytest.raises(IllegalTransitionError) as exc_info:
            worksheet_service.transition(
                worksheet.id, WorksheetStatus.IN_PRODUCTION, test_actor_id, Role.ADMIN,
            )
        assert exc_info.value.current == "cancelled"

    def test_logged(self, captured_logs, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        worksheet_service.delete(worksheet.id, test_actor_id)

        record = next(r for r in captured_logs() if r["message"] == "worksheet_deleted")
        assert record["worksheet_number"] == worksheet.worksheet_number
        assert record["worksheet_id"] == str(worksheet.id)
