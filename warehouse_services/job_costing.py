"""
warehouse_services.job_costing -- Job material cost and job site balances.

Responsibility:
    Reads the movement lines attached to a job and derives:
    - material cost: sum of exit and sale lines at their recorded prices
    - per-item cost breakdown, with the count of lines awaiting a price
    - per-batch material still on the job site, used to validate returns

Architecture position:
    Services -- read-only over the ledger (MovementSelector); the sums are
    pure functions in warehouse_engines.costing / projection.

Invariants enforced:
    - Prices are the ones fixed on the lines at recording time.
    - Fictitious lines count toward cost but never toward site balances.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from warehouse_engines.costing import aggregate_material_cost
from warehouse_engines.projection import job_batch_balances
from warehouse_kernel.domain.dtos import JobBatchBalance, JobMaterialCost
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.selectors.movement_selector import MovementSelector

logger = get_logger("services.job_costing")

_ZERO = Decimal("0")


class JobCostAggregator:
    """Job-level reads over the movement ledger."""

    def __init__(self, session: Session):
        self.session = session
        self.selector = MovementSelector(session)

    def material_cost(self, job_id: UUID) -> Decimal:
        """Raw total; no rounding, no redaction."""
        return self.material_cost_breakdown(job_id).total

    def material_cost_breakdown(self, job_id: UUID) -> JobMaterialCost:
        cost = aggregate_material_cost(job_id, self.selector.job_lines(job_id))
        logger.debug("job_material_cost_computed", extra={
            "job_id": str(job_id),
            "total": str(cost.total),
            "item_count": len(cost.items),
            "lines_needing_review": cost.lines_needing_review,
        })
        return cost

    def job_batch_balance(self, job_id: UUID) -> list[JobBatchBalance]:
        return job_batch_balances(job_id, self.selector.job_lines(job_id))

    def on_site_quantity(
        self,
        job_id: UUID,
        batch_id: UUID,
        exclude_movement_id: UUID | None = None,
    ) -> Decimal:
        """
        Quantity from one batch currently on a job site.

        exclude_movement_id leaves one movement out, so that a movement whose
        lines are being replaced is not counted against itself.
        """
        issued, returned = self.batch_site_totals(job_id, batch_id, exclude_movement_id)
        return issued - returned

    def batch_site_totals(
        self,
        job_id: UUID,
        batch_id: UUID,
        exclude_movement_id: UUID | None = None,
    ) -> tuple[Decimal, Decimal]:
        """Issued and returned quantity of one batch for a job."""
        lines = [
            entry
            for entry in self.selector.job_batch_lines(job_id, batch_id)
            if entry.movement_id != exclude_movement_id
        ]
        balances = job_batch_balances(job_id, lines)
        return (
            sum((b.issued for b in balances), _ZERO),
            sum((b.returned for b in balances), _ZERO),
        )
