"""
Assignment tests: teeth, products and material plans are replaced
wholesale while the worksheet is editable, with one audit entry per call.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from worksheet_kernel.domain.worksheet_lifecycle import Role, WorksheetStatus
from worksheet_kernel.exceptions import (
    InvalidQuantityError,
    InvalidReferenceError,
    InvalidToothNumberError,
    NotEditableError,
    WorksheetNotFoundError,
)
from worksheet_kernel.models.audit_event import AuditAction, AuditEvent
from worksheet_kernel.models.worksheet import WorksheetTooth
from worksheet_services.worksheet_service import (
    MaterialAssignment,
    ProductAssignment,
    ToothAssignment,
)


def _assignment_events(session, worksheet_id, action):
    return session.execute(
        select(AuditEvent)
        .where(AuditEvent.entity_id == worksheet_id)
        .where(AuditEvent.action == action.value)
        .order_by(AuditEvent.seq)
    ).scalars().all()


class TestAssignTeeth:
    def test_replaces_previous_set(self, session, worksheet_service, editable_worksheet, test_actor_id):
        """Assign {11, 21}, then {11, 12}: final set is exactly {11, 12}."""
        worksheet = editable_worksheet()

        worksheet_service.assign_teeth(
            worksheet.id,
            [ToothAssignment("11", "crown"), ToothAssignment("21", "crown")],
            test_actor_id,
        )
        worksheet_service.assign_teeth(
            worksheet.id,
            [ToothAssignment("11", "crown"), ToothAssignment("12", "veneer")],
            test_actor_id,
        )

        rows = session.execute(
            select(WorksheetTooth).where(WorksheetTooth.worksheet_id == worksheet.id)
        ).scalars().all()
        assert sorted(t.tooth_number for t in rows) == ["11", "12"]

        events = _assignment_events(session, worksheet.id, AuditAction.TEETH_ASSIGN)
        assert len(events) == 2
        last = events[-1]
        assert [i["tooth_number"] for i in last.old_values["items"]] == ["11", "21"]
        assert [i["tooth_number"] for i in last.new_values["items"]] == ["11", "12"]

    def test_accepts_mappings(self, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        teeth = worksheet_service.assign_teeth(
            worksheet.id,
            [{"tooth_number": "36", "work_type": "crown", "shade": "A2"}],
            test_actor_id,
        )
        assert teeth[0].shade == "A2"

    def test_sorted_by_fdi_order(self, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        teeth = worksheet_service.assign_teeth(
            worksheet.id,
            [ToothAssignment("21", "crown"), ToothAssignment("13", "crown"), ToothAssignment("11", "crown")],
            test_actor_id,
        )
        assert [t.tooth_number for t in teeth] == ["11", "13", "21"]

    def test_empty_clears(self, session, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        worksheet_service.assign_teeth(worksheet.id, [ToothAssignment("11", "crown")], test_actor_id)
        assert worksheet_service.assign_teeth(worksheet.id, [], test_actor_id) == []

    def test_invalid_fdi_rejected_and_nothing_changes(
        self, session, worksheet_service, editable_worksheet, test_actor_id,
    ):
        worksheet = editable_worksheet()
        worksheet_service.assign_teeth(worksheet.id, [ToothAssignment("11", "crown")], test_actor_id)

        with pytest.raises(InvalidToothNumberError):
            worksheet_service.assign_teeth(
                worksheet.id,
                [ToothAssignment("12", "crown"), ToothAssignment("19", "crown")],
                test_actor_id,
            )

        rows = session.execute(
            select(WorksheetTooth.tooth_number).where(WorksheetTooth.worksheet_id == worksheet.id)
        ).scalars().all()
        assert rows == ["11"]
        assert len(_assignment_events(session, worksheet.id, AuditAction.TEETH_ASSIGN)) == 1

    def test_duplicate_tooth_rejected(self, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        with pytest.raises(InvalidToothNumberError, match="duplicate"):
            worksheet_service.assign_teeth(
                worksheet.id,
                [ToothAssignment("11", "crown"), ToothAssignment("11", "veneer")],
                test_actor_id,
            )


class TestAssignProducts:
    def test_price_snapshot(
        self, session, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        product = create_product(price=Decimal("150.00"))
        worksheet = editable_worksheet()

        lines = worksheet_service.assign_products(
            worksheet.id, [ProductAssignment(product.id, quantity=2)], test_actor_id,
        )
        product.current_price = Decimal("175.00")
        session.flush()

        assert lines[0].price_at_selection == Decimal("150.00")
        assert lines[0].quantity == 2

    def test_explicit_price_kept(self, worksheet_service, editable_worksheet, create_product, test_actor_id):
        product = create_product(price=Decimal("150.00"))
        worksheet = editable_worksheet()
        lines = worksheet_service.assign_products(
            worksheet.id,
            [ProductAssignment(product.id, price_at_selection=Decimal("99.90"))],
            test_actor_id,
        )
        assert lines[0].price_at_selection == Decimal("99.90")

    def test_replaces_previous_lines(
        self, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        a, b = create_product(), create_product()
        worksheet = editable_worksheet()
        worksheet_service.assign_products(worksheet.id, [ProductAssignment(a.id)], test_actor_id)
        lines = worksheet_service.assign_products(worksheet.id, [ProductAssignment(b.id)], test_actor_id)
        assert [line.product_id for line in lines] == [b.id]

    def test_zero_quantity_rejected(
        self, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        product = create_product()
        worksheet = editable_worksheet()
        with pytest.raises(InvalidQuantityError):
            worksheet_service.assign_products(
                worksheet.id, [ProductAssignment(product.id, quantity=0)], test_actor_id,
            )

    @pytest.mark.parametrize("quantity", [1.7, Decimal("2.5"), "abc", "NaN", True, None])
    def test_fractional_or_non_numeric_quantity_rejected(
        self, quantity, session, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        product = create_product()
        worksheet = editable_worksheet()
        with pytest.raises(InvalidQuantityError) as exc_info:
            worksheet_service.assign_products(
                worksheet.id, [ProductAssignment(product.id, quantity=quantity)], test_actor_id,
            )
        assert exc_info.value.code == "INVALID_QUANTITY"
        assert _assignment_events(session, worksheet.id, AuditAction.PRODUCT_ASSIGN) == []

    @pytest.mark.parametrize("quantity, stored", [(Decimal("2.0"), 2), ("3", 3), (4, 4)])
    def test_whole_quantity_accepted(
        self, quantity, stored, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        product = create_product()
        worksheet = editable_worksheet()
        (line,) = worksheet_service.assign_products(
            worksheet.id, [ProductAssignment(product.id, quantity=quantity)], test_actor_id,
        )
        assert line.quantity == stored

    def test_unknown_product(self, worksheet_service, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        with pytest.raises(InvalidReferenceError) as exc_info:
            worksheet_service.assign_products(
                worksheet.id, [ProductAssignment(uuid4())], test_actor_id,
            )
        assert exc_info.value.entity_type == "Product"

    def test_inactive_product(
        self, worksheet_service, editable_worksheet, create_product, test_actor_id,
    ):
        product = create_product(active=False)
        worksheet = editable_worksheet()
        with pytest.raises(InvalidReferenceError) as exc_info:
            worksheet_service.assign_products(
                worksheet.id, [ProductAssignment(product.id)], test_actor_id,
            )
        assert exc_info.value.reason == "inactive"


class TestAssignMaterials:
    def test_plans_have_no_lot(
        self, worksheet_service, editable_worksheet, create_material, test_actor_id,
    ):
        material = create_material()
        worksheet = editable_worksheet()

        plans = worksheet_service.assign_materials(
            worksheet.id, [MaterialAssignment(material.id, Decimal("1.5"))], test_actor_id,
        )

        assert len(plans) == 1
        assert plans[0].material_lot_id is None
        assert not plans[0].is_consumed
        assert plans[0].quantity_planned == Decimal("1.5")

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-2"), "lots", "Infinity"])
    def test_non_positive_or_non_numeric_rejected(
        self, quantity, worksheet_service, editable_worksheet, create_material, test_actor_id,
    ):
        material = create_material()
        worksheet = editable_worksheet()
        with pytest.raises(InvalidQuantityError):
            worksheet_service.assign_materials(
                worksheet.id, [MaterialAssignment(material.id, quantity)], test_actor_id,
            )

    def test_inactive_material(
        self, worksheet_service, editable_worksheet, create_material, test_actor_id,
    ):
        material = create_material(active=False)
        worksheet = editable_worksheet()
        with pytest.raises(InvalidReferenceError):
            worksheet_service.assign_materials(
                worksheet.id, [MaterialAssignment(material.id, Decimal("1"))], test_actor_id,
            )

    def test_audit_entry_per_call(
        self, session, worksheet_service, editable_worksheet, create_material, test_actor_id,
    ):
        m1, m2 = create_material(), create_material()
        worksheet = editable_worksheet()

        worksheet_service.assign_materials(
            worksheet.id,
            [MaterialAssignment(m1.id, Decimal("1")), MaterialAssignment(m2.id, Decimal("2"))],
            test_actor_id,
        )

        events = _assignment_events(session, worksheet.id, AuditAction.MATERIAL_ASSIGN)
        assert len(events) == 1
        assert len(events[0].new_values["items"]) == 2
        assert events[0].old_values["items"] == []


class TestEditableGate:
    def test_assignments_refused_after_production_start(
        self, worksheet_service, editable_worksheet, create_material, test_actor_id,
    ):
        worksheet = editable_worksheet()
        worksheet_service.transition(
            worksheet.id, WorksheetStatus.IN_PRODUCTION, test_actor_id, Role.TECHNICIAN,
        )

        with pytest.raises(NotEditableError) as exc_info:
            worksheet_service.assign_teeth(worksheet.id, [ToothAssignment("11", "crown")], test_actor_id)
        assert exc_info.value.status == "in_production"

        with pytest.raises(NotEditableError):
            worksheet_service.assign_materials(
                worksheet.id, [MaterialAssignment(create_material().id, Decimal("1"))], test_actor_id,
            )

    def test_assignments_refused_after_delete(
        self, worksheet_service, editable_worksheet, test_actor_id,
    ):
        worksheet = editable_worksheet()
        worksheet_service.delete(worksheet.id, test_actor_id)

        with pytest.raises(NotEditableError) as exc_info:
            worksheet_service.assign_teeth(worksheet.id, [], test_actor_id)
        assert exc_info.value.status == "deleted"

    def test_unknown_worksheet(self, worksheet_service, test_actor_id):
        with pytest.raises(WorksheetNotFoundError):
            worksheet_service.assign_teeth(uuid4(), [], test_actor_id)
