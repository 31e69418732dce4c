"""
Tests for the movement payload and its idempotency hash.

The hash identifies the logical content of a movement: retries with the same
content must hash the same, any change in lines, header, job or kind must not.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_kernel.domain.lines import (
    FictitiousLine,
    MovementHeader,
    MovementKind,
    RealLine,
    movement_payload,
)
from warehouse_kernel.utils.hashing import canonicalize_json, hash_payload

ITEM = uuid4()
BATCH = uuid4()
JOB = uuid4()


def _hash(kind=MovementKind.EXIT, lines=None, job_id=JOB, header=None):
    lines = lines if lines is not None else [
        RealLine(item_id=ITEM, quantity=Decimal("4"), batch_id=BATCH)
    ]
    return hash_payload(movement_payload(kind, lines, job_id, header or MovementHeader()))


class TestPayloadHashStability:
    """Same logical content, same hash."""

    def test_hash_is_deterministic(self):
        assert _hash() == _hash()
        assert len(_hash()) == 64

    def test_decimal_scale_does_not_matter(self):
        a = _hash(lines=[RealLine(item_id=ITEM, quantity=Decimal("4"), batch_id=BATCH)])
        b = _hash(lines=[RealLine(item_id=ITEM, quantity=Decimal("4.000"), batch_id=BATCH)])
        assert a == b

    def test_list_or_tuple_of_lines(self):
        line = RealLine(item_id=ITEM, quantity=Decimal("4"), batch_id=BATCH)
        assert _hash(lines=[line]) == _hash(lines=(line,))

    def test_canonical_json_sorts_keys(self):
        assert canonicalize_json({"b": 1, "a": Decimal("1.50")}) == '{"a":"1.5","b":1}'


class TestPayloadHashSensitivity:
    """Any change in content changes the hash."""

    def test_quantity_changes_hash(self):
        other = [RealLine(item_id=ITEM, quantity=Decimal("5"), batch_id=BATCH)]
        assert _hash(lines=other) != _hash()

    def test_batch_changes_hash(self):
        other = [RealLine(item_id=ITEM, quantity=Decimal("4"), batch_id=uuid4())]
        assert _hash(lines=other) != _hash()

    def test_line_order_changes_hash(self):
        first = RealLine(item_id=ITEM, quantity=Decimal("4"), batch_id=BATCH)
        second = FictitiousLine(item_id=ITEM, quantity=Decimal("1"))
        assert _hash(lines=[first, second]) != _hash(lines=[second, first])

    def test_fictitious_differs_from_real(self):
        real = [RealLine(item_id=ITEM, quantity=Decimal("4"))]
        fictitious = [FictitiousLine(item_id=ITEM, quantity=Decimal("4"))]
        assert _hash(lines=real) != _hash(lines=fictitious)

    @pytest.mark.parametrize(
        "header",
        [
            MovementHeader(document_number="DDT-12"),
            MovementHeader(movement_date=date(2024, 3, 1)),
            MovementHeader(packages_count=3),
            MovementHeader(notes="consegna urgente"),
        ],
    )
    def test_header_changes_hash(self, header):
        assert _hash(header=header) != _hash()

    def test_job_changes_hash(self):
        assert _hash(job_id=uuid4()) != _hash()
        assert _hash(job_id=None) != _hash()

    def test_kind_changes_hash(self):
        assert _hash(kind=MovementKind.SALE) != _hash()


class TestMovementKind:

    def test_outbound_kinds(self):
        assert MovementKind.EXIT.is_outbound
        assert MovementKind.SALE.is_outbound
        assert not MovementKind.ENTRY.is_outbound
