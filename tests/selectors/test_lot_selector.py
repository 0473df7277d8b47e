"""Lot selector tests: eligibility, expiry windows, usable stock and stock alerts."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from worksheet_config.loader import parse_config
from worksheet_kernel.models.material import LotStatus
from worksheet_kernel.selectors.lot_selector import LotSelector
from worksheet_services.bootstrap import build_lot_selector


@pytest.fixture
def selector(session, deterministic_clock):
    return LotSelector(session, deterministic_clock)


class TestEligibleLots:
    def test_fifo_order_and_filters(self, selector, create_material, create_lot):
        material = create_material()
        newer = create_lot(material, arrival_date=date(2024, 2, 1))
        older = create_lot(material, arrival_date=date(2024, 1, 1))
        create_lot(material, arrival_date=date(2023, 12, 1), status=LotStatus.RECALLED)
        create_lot(material, arrival_date=date(2023, 11, 1), expiry_date=date(2024, 2, 29))
        create_lot(
            material, arrival_date=date(2023, 10, 1), quantity="0",
            quantity_received="5", status=LotStatus.DEPLETED,
        )

        lots = selector.eligible_lots(material.id)

        assert [lot.lot_id for lot in lots] == [older.id, newer.id]
        assert lots[0].material_code == material.code

    def test_expiring_today_still_eligible(self, selector, create_material, create_lot):
        material = create_material()
        lot = create_lot(material, expiry_date=date(2024, 3, 1))
        assert [x.lot_id for x in selector.eligible_lots(material.id)] == [lot.id]

    def test_unknown_material_empty(self, selector):
        assert selector.eligible_lots(uuid4()) == []


class TestExpiry:
    def test_expiring_within_window(self, selector, create_material, create_lot):
        material = create_material()
        soon = create_lot(material, expiry_date=date(2024, 3, 20))
        create_lot(material, expiry_date=date(2024, 6, 1))
        create_lot(material, expiry_date=None)

        lots = selector.expiring_lots(within_days=30)

        assert [x.lot_id for x in lots] == [soon.id]
        assert lots[0].days_until_expiry(date(2024, 3, 1)) == 19

    def test_negative_window_rejected(self, selector):
        with pytest.raises(ValueError):
            selector.expiring_lots(within_days=-1)

    def test_expired_includes_unswept_and_swept(self, selector, create_material, create_lot):
        material = create_material()
        unswept = create_lot(material, expiry_date=date(2024, 1, 10))
        swept = create_lot(material, expiry_date=date(2024, 1, 20), status=LotStatus.EXPIRED)
        create_lot(material, expiry_date=date(2024, 1, 5), status=LotStatus.RECALLED)
        create_lot(material, expiry_date=date(2024, 3, 1))

        lots = selector.expired_lots()

        assert [x.lot_id for x in lots] == [unswept.id, swept.id]

    def test_days_until_expiry_none_without_date(self, selector, create_material, create_lot):
        material = create_material()
        create_lot(material)
        (lot,) = selector.eligible_lots(material.id)
        assert lot.days_until_expiry(date(2024, 3, 1)) is None


class TestAvailableQuantity:
    def test_sums_eligible_lots_only(self, selector, create_material, create_lot):
        material = create_material()
        create_lot(material, quantity="4.5")
        create_lot(material, quantity="3")
        create_lot(material, quantity="100", status=LotStatus.RECALLED)
        create_lot(material, quantity="50", expiry_date=date(2024, 1, 1))

        assert selector.available_quantity(material.id) == Decimal("7.5")

    def test_no_stock_is_zero(self, selector, create_material):
        assert selector.available_quantity(create_material().id) == Decimal("0")

    def test_as_of_in_future_excludes_lots_expiring_before(
        self, selector, create_material, create_lot,
    ):
        material = create_material()
        create_lot(material, quantity="5", expiry_date=date(2024, 4, 1))
        assert selector.available_quantity(material.id, as_of=date(2024, 5, 1)) == Decimal("0")


class TestLowStock:
    def test_below_threshold_emptiest_first(self, selector, create_material, create_lot):
        low = create_material(code="LOW")
        empty = create_material(code="EMPTY")
        plenty = create_material(code="PLENTY")
        retired = create_material(code="RETIRED", active=False)
        create_lot(low, quantity="5")
        create_lot(plenty, quantity="30")
        create_lot(retired, quantity="1")

        alerts = selector.low_stock_materials()

        assert [a.material_code for a in alerts] == ["EMPTY", "LOW"]
        assert alerts[0].material_id == empty.id
        assert alerts[0].total_available == Decimal("0")
        assert alerts[0].percentage_of_threshold == Decimal("0")
        assert alerts[1].total_available == Decimal("5")
        assert alerts[1].threshold == Decimal("20")
        assert alerts[1].percentage_of_threshold == Decimal("25.00")
        assert plenty.id not in {a.material_id for a in alerts}
        assert retired.id not in {a.material_id for a in alerts}

    def test_only_usable_lots_count(self, selector, create_material, create_lot):
        material = create_material()
        create_lot(material, quantity="3")
        create_lot(material, quantity="100", status=LotStatus.RECALLED)
        create_lot(material, quantity="100", expiry_date=date(2024, 1, 1))

        (alert,) = selector.low_stock_materials()

        assert alert.total_available == Decimal("3")
        assert alert.unit == "g"
        assert alert.material_type == "alloy"

    def test_explicit_threshold(self, selector, create_material, create_lot):
        material = create_material()
        create_lot(material, quantity="5")

        assert selector.low_stock_materials(threshold=5) == []
        assert [a.material_id for a in selector.low_stock_materials(threshold=6)] == [material.id]

    def test_threshold_from_construction(self, session, deterministic_clock, create_material, create_lot):
        material = create_material()
        create_lot(material, quantity="5")

        assert LotSelector(session, deterministic_clock, low_stock_threshold=5).low_stock_materials() == []

    @pytest.mark.parametrize("threshold", [0, -3])
    def test_non_positive_threshold_rejected(self, selector, threshold):
        with pytest.raises(ValueError):
            selector.low_stock_materials(threshold=threshold)


class TestDepletedLots:
    def test_only_empty_depleted_lots(self, selector, create_material, create_lot):
        material = create_material()
        later = create_lot(
            material, arrival_date=date(2024, 2, 1), quantity="0",
            quantity_received="5", status=LotStatus.DEPLETED,
        )
        earlier = create_lot(
            material, arrival_date=date(2024, 1, 1), quantity="0",
            quantity_received="8", status=LotStatus.DEPLETED,
        )
        create_lot(material, quantity="2")
        create_lot(material, quantity="0", quantity_received="4", status=LotStatus.RECALLED)

        lots = selector.depleted_lots()

        assert [x.lot_id for x in lots] == [earlier.id, later.id]
        assert all(x.status == LotStatus.DEPLETED.value for x in lots)
        assert lots[0].quantity_received == Decimal("8")

    def test_none_depleted(self, selector, create_material, create_lot):
        create_lot(create_material())
        assert selector.depleted_lots() == []


class TestConfiguredDefaults:
    def test_expiry_window_from_construction(
        self, session, deterministic_clock, create_material, create_lot,
    ):
        material = create_material()
        soon = create_lot(material, expiry_date=date(2024, 3, 5))
        create_lot(material, expiry_date=date(2024, 3, 20))

        selector = LotSelector(session, deterministic_clock, expiry_warning_days=10)

        assert [x.lot_id for x in selector.expiring_lots()] == [soon.id]

    def test_built_from_inventory_config(
        self, session, deterministic_clock, create_material, create_lot,
    ):
        config = parse_config({"inventory": {"low_stock_threshold": 7, "expiry_warning_days": 5}})
        material = create_material()
        create_lot(material, quantity="6", expiry_date=date(2024, 3, 4))

        selector = build_lot_selector(session, config, deterministic_clock)

        assert selector.expiry_warning_days == 5
        assert [a.material_id for a in selector.low_stock_materials()] == [material.id]
        assert len(selector.expiring_lots()) == 1
