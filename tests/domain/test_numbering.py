"""Display number formatting tests."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from worksheet_kernel.domain.numbering import (
    format_order_number,
    format_worksheet_number,
    order_series,
    parse_worksheet_number,
    revision_series,
)


class TestOrderNumber:
    def test_two_digit_year_and_padded_counter(self):
        assert format_order_number(2025, 3) == "25003"

    def test_counter_widens_past_999(self):
        assert format_order_number(2025, 1234) == "251234"

    def test_century_rollover(self):
        assert format_order_number(2100, 1) == "00001"

    def test_counter_must_be_positive(self):
        with pytest.raises(ValueError):
            format_order_number(2025, 0)

    def test_series_is_per_year(self):
        assert order_series(2025) != order_series(2026)


class TestWorksheetNumber:
    def test_first_revision_has_no_suffix(self):
        assert format_worksheet_number("25003") == "DN-25003"

    def test_second_revision_is_r1(self):
        assert format_worksheet_number("25003", 2) == "DN-25003-R1"

    def test_third_revision_is_r2(self):
        assert format_worksheet_number("25003", 3) == "DN-25003-R2"

    def test_custom_prefix(self):
        assert format_worksheet_number("25003", 1, prefix="WS") == "WS-25003"

    def test_revision_must_be_positive(self):
        with pytest.raises(ValueError):
            format_worksheet_number("25003", 0)

    def test_revision_series_is_per_order(self):
        assert revision_series("a") != revision_series("b")


class TestParseWorksheetNumber:
    def test_without_suffix(self):
        parsed = parse_worksheet_number("DN-25003")
        assert parsed.prefix == "DN"
        assert parsed.order_number == "25003"
        assert parsed.revision == 1

    def test_with_suffix(self):
        assert parse_worksheet_number("DN-25003-R2").revision == 3

    @pytest.mark.parametrize("text", ["", "25003", "DN25003", "dn-25003", "DN-25003-R0", "DN-25003-X1"])
    def test_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            parse_worksheet_number(text)

    @given(
        order_number=st.from_regex(r"[0-9]{5,6}", fullmatch=True),
        revision=st.integers(min_value=1, max_value=500),
        prefix=st.sampled_from(["DN", "WS", "LAB"]),
    )
    def test_format_then_parse(self, order_number, revision, prefix):
        parsed = parse_worksheet_number(
            format_worksheet_number(order_number, revision, prefix=prefix)
        )
        assert (parsed.prefix, parsed.order_number, parsed.revision) == (
            prefix,
            order_number,
            revision,
        )
