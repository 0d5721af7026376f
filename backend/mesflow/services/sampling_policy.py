"""
Quality-check sampling policy

Lot sampling follows the ISO 2859-1 general inspection level II sample
size code letters (single sampling, normal inspection).
"""
from decimal import Decimal, ROUND_CEILING
from typing import List, Optional, Tuple

from mesflow.exceptions import ValidationError

# (max lot size, sample size); lots above the last breakpoint use LARGE_LOT_SAMPLE
SAMPLE_SIZE_TABLE: List[Tuple[int, int]] = [
    (15, 5),
    (25, 8),
    (50, 13),
    (90, 20),
    (150, 32),
    (280, 50),
    (500, 80),
    (1200, 125),
    (3200, 200),
    (10000, 315),
]
SMALL_LOT_LIMIT = 8  # lots this small are inspected in full
LARGE_LOT_SAMPLE = 500


def lot_size_from_quantity(quantity) -> int:
    """Whole units in a lot; fractional quantities round up."""
    lot = int(Decimal(str(quantity)).to_integral_value(rounding=ROUND_CEILING))
    if lot <= 0:
        raise ValidationError("Lot size must be greater than zero", field="quantity", value=quantity)
    return lot


def table_sample_size(lot_size: int) -> int:
    """Sample size for a lot from the fixed breakpoint table."""
    if lot_size <= 0:
        raise ValidationError("Lot size must be greater than zero", field="lot_size", value=lot_size)
    if lot_size <= SMALL_LOT_LIMIT:
        return lot_size
    for max_lot, sample in SAMPLE_SIZE_TABLE:
        if lot_size <= max_lot:
            return sample
    return LARGE_LOT_SAMPLE


def validate_sampling_size(sampling_size: Optional[int]) -> None:
    if sampling_size is None:
        return
    if isinstance(sampling_size, bool) or not isinstance(sampling_size, int) or sampling_size <= 0:
        raise ValidationError(
            "Sampling size must be a positive whole number",
            field="sampling_size",
            value=sampling_size,
        )


def calculate_sample_size(lot_size: int, sampling_size: Optional[int] = None) -> int:
    """
    Number of units to inspect.

    An explicit ``sampling_size`` wins but never exceeds the lot; otherwise
    the table decides.
    """
    if lot_size <= 0:
        raise ValidationError("Lot size must be greater than zero", field="lot_size", value=lot_size)
    if sampling_size is not None:
        validate_sampling_size(sampling_size)
        return min(sampling_size, lot_size)
    return table_sample_size(lot_size)
