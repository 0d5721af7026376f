"""
Unit tests for the quality-check sampling policy.
"""
import pytest
from decimal import Decimal

from mesflow.exceptions import ValidationError
from mesflow.services.sampling_policy import (
    LARGE_LOT_SAMPLE,
    SMALL_LOT_LIMIT,
    calculate_sample_size,
    lot_size_from_quantity,
    table_sample_size,
    validate_sampling_size,
)


class TestTableSampleSize:

    @pytest.mark.parametrize("lot,expected", [
        (1, 1),
        (8, 8),
        (9, 5),
        (15, 5),
        (16, 8),
        (25, 8),
        (50, 13),
        (51, 20),
        (90, 20),
        (150, 32),
        (280, 50),
        (500, 80),
        (1200, 125),
        (3200, 200),
        (10000, 315),
        (10001, 500),
        (250000, 500),
    ])
    def test_breakpoints(self, lot, expected):
        assert table_sample_size(lot) == expected

    def test_small_lots_are_inspected_in_full(self):
        for lot in range(1, SMALL_LOT_LIMIT + 1):
            assert table_sample_size(lot) == lot

    def test_non_decreasing_above_small_lot_limit(self):
        previous = 0
        for lot in range(SMALL_LOT_LIMIT + 1, 12001):
            size = table_sample_size(lot)
            assert size >= previous, f"sample size dropped at lot {lot}"
            previous = size
        assert previous == LARGE_LOT_SAMPLE

    def test_rejects_empty_lot(self):
        with pytest.raises(ValidationError):
            table_sample_size(0)


class TestCalculateSampleSize:

    def test_table_used_without_explicit_size(self):
        assert calculate_sample_size(50) == 13

    def test_explicit_size_wins(self):
        assert calculate_sample_size(100, sampling_size=7) == 7

    def test_explicit_size_capped_at_lot(self):
        assert calculate_sample_size(4, sampling_size=10) == 4

    @pytest.mark.parametrize("bad", [0, -3, 2.5, "5", True])
    def test_malformed_explicit_size(self, bad):
        with pytest.raises(ValidationError):
            calculate_sample_size(100, sampling_size=bad)


class TestLotSize:

    def test_fraction_rounds_up(self):
        assert lot_size_from_quantity(Decimal("12.2")) == 13

    def test_whole_quantity(self):
        assert lot_size_from_quantity(Decimal("60.0000")) == 60

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            lot_size_from_quantity(0)
        assert exc_info.value.details["field"] == "quantity"


def test_validate_sampling_size_accepts_none():
    validate_sampling_size(None)
