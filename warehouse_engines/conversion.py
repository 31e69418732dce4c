"""
warehouse_engines.conversion -- Unit conversion between pieces and base quantity.

Responsibility:
    Items are stocked in a base unit (meters, kilograms, units) but are often
    handled in packages ("pieces"): a coil of 25 m, a box of 100 screws.
    The per-item coefficient maps one to the other:

        base quantity = pieces x coefficient
        pieces        = base quantity / coefficient

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - coefficient > 0, checked on construction (InvalidCoefficientError).
    - Exact Decimal arithmetic; nothing is rounded here.  Where two measures
      must agree, within_tolerance() compares them against the configured
      quantity tolerance.

Failure modes:
    - InvalidCoefficientError on coefficient <= 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from warehouse_kernel.exceptions import InvalidCoefficientError

DEFAULT_QUANTITY_TOLERANCE = Decimal("0.001")

_ONE = Decimal("1")


@dataclass(frozen=True, slots=True)
class UnitConversionRule:
    """
    Conversion rule of one item.

    coefficient == 1 means the item is not packaged: one piece is one base
    unit and both measures are always equal.
    """

    coefficient: Decimal
    tolerance: Decimal = DEFAULT_QUANTITY_TOLERANCE

    def __post_init__(self) -> None:
        if self.coefficient is None or self.coefficient <= 0:
            raise InvalidCoefficientError(str(self.coefficient))

    @property
    def is_packaged(self) -> bool:
        return self.coefficient != _ONE

    def to_base(self, pieces: Decimal) -> Decimal:
        return pieces * self.coefficient

    def to_pieces(self, base_quantity: Decimal) -> Decimal:
        return base_quantity / self.coefficient

    def within_tolerance(self, a: Decimal, b: Decimal) -> bool:
        return abs(a - b) <= self.tolerance
