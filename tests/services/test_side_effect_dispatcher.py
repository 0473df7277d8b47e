"""
Side effect dispatcher tests.

Verifies:
- Every declared effect has a handler; construction fails otherwise
- Effects run in the declared order and report under their own name
- Consumption walks planning records in material-code order
- The manufacture date is never re-stamped
- Order resets go through the OrderGateway capability
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from worksheet_kernel.domain.worksheet_lifecycle import SideEffect
from worksheet_kernel.models.order import OrderStatus
from worksheet_services.order_gateway import OrderGateway, OrderInfo, OrderReset
from worksheet_services.side_effect_dispatcher import (
    COMPLIANCE_DOCUMENT_TYPE,
    EffectContext,
    SideEffectDispatcher,
)
from worksheet_services.worksheet_service import MaterialAssignment


class RecordingOrderGateway:
    """In-memory OrderGateway that remembers every reset."""

    def __init__(self):
        self.resets: list[tuple[UUID, str, str]] = []

    def get_order(self, order_id: UUID) -> OrderInfo:
        return OrderInfo(order_id=order_id, order_number="99999", status="in_production")

    def reset_status(
        self,
        order_id: UUID,
        actor_id: UUID,
        reason: str,
        to_status: str = OrderStatus.PENDING.value,
    ) -> OrderReset:
        self.resets.append((order_id, reason, to_status))
        return OrderReset(order_id=order_id, from_status="in_production", to_status=to_status)


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def gateway():
    return RecordingOrderGateway()


@pytest.fixture
def dispatcher(session, deterministic_clock, gateway):
    return SideEffectDispatcher(session, deterministic_clock, order_gateway=gateway)


def _context(worksheet, actor_id, reason=None):
    return EffectContext(
        worksheet=worksheet, actor_id=actor_id, role="technician", now=NOW, reason=reason,
    )


class TestHandlerTable:
    def test_every_effect_has_a_handler(self):
        assert set(SideEffectDispatcher._HANDLERS) == set(SideEffect)

    def test_missing_handler_fails_construction(self, session, deterministic_clock):
        class Incomplete(SideEffectDispatcher):
            _HANDLERS = {
                k: v for k, v in SideEffectDispatcher._HANDLERS.items()
                if k != SideEffect.RESET_ORDER
            }

        with pytest.raises(ValueError, match="reset_order"):
            Incomplete(session, deterministic_clock)

    def test_fake_gateway_satisfies_protocol(self, gateway):
        assert isinstance(gateway, OrderGateway)

    def test_unknown_reset_status_rejected(self, session, deterministic_clock):
        with pytest.raises(ValueError):
            SideEffectDispatcher(session, deterministic_clock, order_reset_status="shipped")


class TestDispatch:
    def test_reports_in_declared_order(self, dispatcher, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()

        reports = dispatcher.dispatch(
            [SideEffect.STAMP_MANUFACTURE_DATE, SideEffect.GENERATE_COMPLIANCE_DOCUMENT],
            _context(worksheet, test_actor_id),
        )

        assert list(reports) == ["stamp_manufacture_date", "generate_compliance_document"]
        request = reports["generate_compliance_document"]["document_request"]
        assert request["document_type"] == COMPLIANCE_DOCUMENT_TYPE
        assert request["worksheet_number"] == worksheet.worksheet_number

    def test_no_effects_no_reports(self, dispatcher, editable_worksheet, test_actor_id):
        assert dispatcher.dispatch([], _context(editable_worksheet(), test_actor_id)) == {}

    def test_accepts_effect_values(self, dispatcher, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        reports = dispatcher.dispatch(["stamp_completion_date"], _context(worksheet, test_actor_id))
        assert reports == {"stamp_completion_date": {"completed_at": NOW}}
        assert worksheet.completed_at == NOW


class TestStampManufactureDate:
    def test_first_stamp(self, dispatcher, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        report = dispatcher.dispatch(
            [SideEffect.STAMP_MANUFACTURE_DATE], _context(worksheet, test_actor_id),
        )["stamp_manufacture_date"]

        assert report == {"manufacture_date": NOW, "stamped": True}
        assert worksheet.manufacture_date == NOW

    def test_existing_date_kept(self, dispatcher, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        earlier = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
        worksheet.manufacture_date = earlier

        report = dispatcher.dispatch(
            [SideEffect.STAMP_MANUFACTURE_DATE], _context(worksheet, test_actor_id),
        )["stamp_manufacture_date"]

        assert report == {"manufacture_date": earlier, "stamped": False}
        assert worksheet.manufacture_date == earlier


class TestConsumeMaterials:
    @pytest.mark.filterwarnings("error::sqlalchemy.exc.SADeprecationWarning")
    def test_consumes_in_material_code_order(
        self, dispatcher, worksheet_service, editable_worksheet,
        create_material, create_lot, test_actor_id,
    ):
        worksheet = editable_worksheet()
        zinc = create_material(code="ZZ-ZINC")
        alloy = create_material(code="AA-ALLOY")
        create_lot(zinc, quantity="5")
        create_lot(alloy, quantity="5")
        worksheet_service.assign_materials(
            worksheet.id,
            [
                MaterialAssignment(zinc.id, Decimal("1")),
                MaterialAssignment(alloy.id, Decimal("2")),
            ],
            test_actor_id,
        )

        report = dispatcher.dispatch(
            [SideEffect.CONSUME_MATERIALS], _context(worksheet, test_actor_id),
        )["consume_materials"]

        assert [c["material_code"] for c in report["consumed"]] == ["AA-ALLOY", "ZZ-ZINC"]
        assert all(m.material_lot_id is not None for m in worksheet.materials)

    def test_second_run_consumes_nothing(
        self, dispatcher, stocked_worksheet, test_actor_id,
    ):
        worksheet, _, lot = stocked_worksheet(quantity=Decimal("3"))
        dispatcher.dispatch([SideEffect.CONSUME_MATERIALS], _context(worksheet, test_actor_id))

        again = dispatcher.dispatch(
            [SideEffect.CONSUME_MATERIALS], _context(worksheet, test_actor_id),
        )

        assert again["consume_materials"] == {"consumed": []}
        assert lot.quantity_available == Decimal("7")


class TestResetOrder:
    def test_routes_through_gateway(self, dispatcher, gateway, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()

        report = dispatcher.dispatch(
            [SideEffect.RESET_ORDER], _context(worksheet, test_actor_id, reason="patient declined"),
        )["reset_order"]

        assert gateway.resets == [(worksheet.order_id, "patient declined", "pending")]
        assert report == {
            "order_id": worksheet.order_id,
            "from_status": "in_production",
            "to_status": "pending",
        }

    def test_default_reason_names_worksheet(self, dispatcher, gateway, editable_worksheet, test_actor_id):
        worksheet = editable_worksheet()
        dispatcher.dispatch([SideEffect.RESET_ORDER], _context(worksheet, test_actor_id))
        assert worksheet.worksheet_number in gateway.resets[0][1]

    def test_configured_reset_status(
        self, session, deterministic_clock, gateway, editable_worksheet, test_actor_id,
    ):
        dispatcher = SideEffectDispatcher(
            session, deterministic_clock, order_gateway=gateway,
            order_reset_status="in_production",
        )
        dispatcher.dispatch(
            [SideEffect.RESET_ORDER], _context(editable_worksheet(), test_actor_id),
        )
        assert gateway.resets[0][2] == "in_production"
