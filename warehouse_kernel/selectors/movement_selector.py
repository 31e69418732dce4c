"""
Module: warehouse_kernel.selectors.movement_selector
Responsibility: Read-only queries over committed movements and their lines.
    The stock projector, job cost aggregator and job site balance all read
    the ledger through here.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    DTOs and selectors/base.py.  MUST NOT import from services/ or engines.

Invariants enforced:
    - Sums are NOT computed in SQL.  Lines are returned as Decimal DTOs and
      aggregated by the pure engines, so the result does not depend on how a
      backend sums NUMERIC columns.
    - Ordering is deterministic: committed_at, then movement id, then line_no.

Audit relevance:
    Every derived figure (on_hand replay, job material cost, job site
    balance) is a pure function of the rows returned here.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from warehouse_kernel.domain.dtos import (
    AppliedLine,
    LedgerLine,
    MovementRecord,
)
from warehouse_kernel.domain.lines import MovementKind
from warehouse_kernel.models.batch import BatchModel
from warehouse_kernel.models.movement import MovementLineModel, MovementModel
from warehouse_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector[MovementModel]):
    """Read-only access to the movement ledger."""

    def get(self, movement_id: UUID) -> MovementRecord | None:
        model = self.session.get(MovementModel, movement_id)
        if model is None:
            return None
        return MovementRecord.from_model(model)

    def ledger_lines(self, item_id: UUID | None = None) -> list[LedgerLine]:
        """All committed lines, optionally for one item, in ledger order."""
        stmt = (
            select(MovementLineModel, MovementModel)
            .join(MovementModel, MovementLineModel.movement_id == MovementModel.id)
            .order_by(
                MovementModel.committed_at,
                MovementModel.id,
                MovementLineModel.line_no,
            )
        )
        if item_id is not None:
            stmt = stmt.where(MovementLineModel.item_id == item_id)
        return [self._to_ledger_line(line, mv) for line, mv in self.session.execute(stmt)]

    def job_lines(self, job_id: UUID) -> list[LedgerLine]:
        """All committed lines of movements attached to a job."""
        stmt = (
            select(MovementLineModel, MovementModel)
            .join(MovementModel, MovementLineModel.movement_id == MovementModel.id)
            .where(MovementModel.job_id == job_id)
            .order_by(
                MovementModel.committed_at,
                MovementModel.id,
                MovementLineModel.line_no,
            )
        )
        return [self._to_ledger_line(line, mv) for line, mv in self.session.execute(stmt)]

    def job_batch_lines(self, job_id: UUID, batch_id: UUID) -> list[LedgerLine]:
        """Real lines of a job that drew from or returned to one batch."""
        stmt = (
            select(MovementLineModel, MovementModel)
            .join(MovementModel, MovementLineModel.movement_id == MovementModel.id)
            .where(
                MovementModel.job_id == job_id,
                MovementLineModel.batch_id == batch_id,
                MovementLineModel.is_fictitious.is_(False),
            )
            .order_by(MovementModel.committed_at, MovementLineModel.line_no)
        )
        return [self._to_ledger_line(line, mv) for line, mv in self.session.execute(stmt)]

    def batch_remainders(self, item_id: UUID | None = None) -> list[tuple[UUID, Decimal]]:
        """(item_id, remaining_quantity) of every batch."""
        stmt = select(BatchModel.item_id, BatchModel.remaining_quantity)
        if item_id is not None:
            stmt = stmt.where(BatchModel.item_id == item_id)
        return [(row[0], row[1]) for row in self.session.execute(stmt)]

    @staticmethod
    def _to_ledger_line(line: MovementLineModel, movement: MovementModel) -> LedgerLine:
        return LedgerLine(
            movement_id=movement.id,
            kind=MovementKind(movement.kind),
            job_id=movement.job_id,
            committed_at=movement.committed_at,
            movement_date=movement.movement_date,
            document_number=movement.document_number,
            line=AppliedLine.from_model(line),
        )
