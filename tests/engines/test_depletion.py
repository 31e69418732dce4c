"""
Tests for batch remainder arithmetic.

Covers:
- Depletion by quantity, by pieces, and with both supplied
- Restock and the original bound
- Snapping of the derived measure within tolerance
- Net planning of line replacements
- Bounds property under arbitrary sequences (hypothesis)
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from warehouse_engines.conversion import UnitConversionRule
from warehouse_engines.depletion import (
    BatchBalance,
    BatchEffect,
    plan_depletion,
    plan_line_replacement,
    plan_restock,
)
from warehouse_kernel.exceptions import (
    ExceedsOriginalError,
    InsufficientBatchQuantityError,
    InvalidQuantityError,
)

COIL = UnitConversionRule(coefficient=Decimal("25"))
LOOSE = UnitConversionRule(coefficient=Decimal("1"))


def coil_batch(remaining_pieces="4", remaining_quantity=None, original_pieces="4"):
    remaining_pieces = Decimal(remaining_pieces)
    return BatchBalance(
        batch_id=uuid4(),
        original_quantity=Decimal(original_pieces) * 25,
        original_pieces=Decimal(original_pieces),
        remaining_quantity=(
            Decimal(remaining_quantity) if remaining_quantity is not None
            else remaining_pieces * 25
        ),
        remaining_pieces=remaining_pieces,
    )


def loose_batch(remaining="30", original="100"):
    return BatchBalance(
        batch_id=uuid4(),
        original_quantity=Decimal(original),
        original_pieces=None,
        remaining_quantity=Decimal(remaining),
        remaining_pieces=None,
    )


class TestPlanDepletion:
    """Taking stock out of a batch."""

    def test_one_piece_from_coil(self):
        """4 coils of 25 m, take one: 75 m and 3 pieces left."""
        plan = plan_depletion(coil_batch(), COIL, pieces=Decimal("1"))
        assert plan.quantity_after == Decimal("75")
        assert plan.pieces_after == Decimal("3")
        assert plan.quantity_delta == Decimal("-25")
        assert plan.pieces_delta == Decimal("-1")

    def test_quantity_drives_pieces(self):
        plan = plan_depletion(coil_batch(), COIL, quantity=Decimal("50"))
        assert plan.quantity_after == Decimal("50")
        assert plan.pieces_after == Decimal("2")

    def test_pieces_win_when_both_supplied(self):
        plan = plan_depletion(
            coil_batch(), COIL, quantity=Decimal("10"), pieces=Decimal("2")
        )
        assert plan.pieces_after == Decimal("2")
        assert plan.quantity_after == Decimal("50")

    def test_overdraw_rejected_not_clamped(self):
        balance = loose_batch(remaining="30")
        with pytest.raises(InsufficientBatchQuantityError) as exc_info:
            plan_depletion(balance, LOOSE, quantity=Decimal("50"))
        err = exc_info.value
        assert err.code == "INSUFFICIENT_BATCH_QUANTITY"
        assert err.requested == "50"
        assert err.available == "30"
        assert err.dimension == "quantity"

    def test_pieces_overdraw_rejected(self):
        with pytest.raises(InsufficientBatchQuantityError) as exc_info:
            plan_depletion(coil_batch(remaining_pieces="1"), COIL, pieces=Decimal("2"))
        assert exc_info.value.dimension == "pieces"

    def test_derived_quantity_snaps_to_zero_within_tolerance(self):
        """Last piece taken: a 0.0005 m residue is rounding noise."""
        balance = coil_batch(remaining_pieces="1", remaining_quantity="25.0005")
        plan = plan_depletion(balance, COIL, pieces=Decimal("1"))
        assert plan.pieces_after == Decimal("0")
        assert plan.quantity_after == Decimal("0")

    def test_derived_quantity_shortfall_beyond_tolerance_rejected(self):
        balance = coil_batch(remaining_pieces="1", remaining_quantity="24")
        with pytest.raises(InsufficientBatchQuantityError) as exc_info:
            plan_depletion(balance, COIL, pieces=Decimal("1"))
        assert exc_info.value.dimension == "quantity"

    def test_non_tracked_batch_ignores_pieces_when_quantity_given(self):
        plan = plan_depletion(
            loose_batch(), LOOSE, quantity=Decimal("5"), pieces=Decimal("99")
        )
        assert plan.quantity_after == Decimal("25")
        assert plan.pieces_after is None

    def test_non_tracked_batch_with_pieces_only_uses_coefficient(self):
        rule = UnitConversionRule(coefficient=Decimal("2"))
        plan = plan_depletion(loose_batch(), rule, pieces=Decimal("3"))
        assert plan.quantity_after == Decimal("24")

    @pytest.mark.parametrize("kwargs", [
        {},
        {"quantity": Decimal("0")},
        {"quantity": Decimal("-1")},
        {"pieces": Decimal("0")},
    ])
    def test_missing_or_non_positive_amount_rejected(self, kwargs):
        with pytest.raises(InvalidQuantityError):
            plan_depletion(coil_batch(), COIL, **kwargs)


class TestPlanRestock:
    """Putting stock back into a batch."""

    def test_restock_one_piece(self):
        plan = plan_restock(coil_batch(remaining_pieces="3"), COIL, pieces=Decimal("1"))
        assert plan.pieces_after == Decimal("4")
        assert plan.quantity_after == Decimal("100")

    def test_restock_above_original_rejected(self):
        with pytest.raises(ExceedsOriginalError) as exc_info:
            plan_restock(loose_batch(remaining="95"), LOOSE, quantity=Decimal("10"))
        err = exc_info.value
        assert err.code == "EXCEEDS_ORIGINAL"
        assert err.original == "100"

    def test_derived_pieces_snap_to_original(self):
        rule = UnitConversionRule(coefficient=Decimal("3"))
        balance = BatchBalance(
            batch_id=uuid4(),
            original_quantity=Decimal("10"),
            original_pieces=Decimal("3.3333"),
            remaining_quantity=Decimal("0"),
            remaining_pieces=Decimal("0"),
        )
        plan = plan_restock(balance, rule, quantity=Decimal("10"))
        assert plan.quantity_after == Decimal("10")
        assert plan.pieces_after == Decimal("3.3333")


class TestPlanLineReplacement:
    """Netting old and new line effects per batch."""

    def test_identical_effects_cancel(self):
        batch = uuid4()
        effect = BatchEffect(batch, Decimal("-10"))
        assert plan_line_replacement([effect], [effect]) == []

    def test_smaller_exit_restocks_the_difference(self):
        batch = uuid4()
        deltas = plan_line_replacement(
            [BatchEffect(batch, Decimal("-10"))],
            [BatchEffect(batch, Decimal("-4"))],
        )
        assert len(deltas) == 1
        assert deltas[0].quantity == Decimal("6")
        assert deltas[0].is_restock

    def test_moving_line_to_other_batch(self):
        old_batch, new_batch = uuid4(), uuid4()
        deltas = plan_line_replacement(
            [BatchEffect(old_batch, Decimal("-10"))],
            [BatchEffect(new_batch, Decimal("-10"))],
        )
        by_batch = {d.batch_id: d for d in deltas}
        assert by_batch[old_batch].quantity == Decimal("10")
        assert by_batch[new_batch].quantity == Decimal("-10")
        assert not by_batch[new_batch].is_restock

    def test_deltas_sorted_by_batch_id(self):
        batches = [uuid4() for _ in range(5)]
        deltas = plan_line_replacement(
            [], [BatchEffect(b, Decimal("-1")) for b in batches]
        )
        assert [d.batch_id for d in deltas] == sorted(batches, key=str)

    def test_pieces_dropped_when_any_contribution_lacks_them(self):
        batch = uuid4()
        deltas = plan_line_replacement(
            [BatchEffect(batch, Decimal("-25"), Decimal("-1"))],
            [BatchEffect(batch, Decimal("-50"))],
        )
        assert deltas[0].pieces is None
        assert deltas[0].quantity == Decimal("-25")


class TestBatchBoundsProperty:
    """0 <= remaining <= original under any accepted sequence."""

    @given(
        original=st.integers(min_value=1, max_value=50),
        steps=st.lists(
            st.tuples(st.booleans(), st.integers(min_value=1, max_value=20)),
            max_size=30,
        ),
    )
    @settings(max_examples=150)
    def test_remaining_stays_within_bounds(self, original, steps):
        balance = coil_batch(
            remaining_pieces=str(original), original_pieces=str(original)
        )
        for is_restock, pieces in steps:
            planner = plan_restock if is_restock else plan_depletion
            try:
                plan = planner(balance, COIL, pieces=Decimal(pieces))
            except (InsufficientBatchQuantityError, ExceedsOriginalError):
                continue
            balance = BatchBalance(
                batch_id=balance.batch_id,
                original_quantity=balance.original_quantity,
                original_pieces=balance.original_pieces,
                remaining_quantity=plan.quantity_after,
                remaining_pieces=plan.pieces_after,
            )
            assert Decimal("0") <= balance.remaining_pieces <= balance.original_pieces
            assert Decimal("0") <= balance.remaining_quantity <= balance.original_quantity
