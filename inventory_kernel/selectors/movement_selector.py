"""
Module: inventory_kernel.selectors.movement_selector
Responsibility: Read-only aggregates over the movement ledger: in/out/net
    totals for a location and period, the adjustment history that feeds
    variance analysis, and the applied inbound receipts that feed weighted
    average costing.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/, selectors/base.py and the engine input value types.  MUST NOT
    import from services/.

Invariants enforced:
    - Only applied movements are aggregated.  Approval requests (and their
      approve/reject stamps) never count; an approved request is counted
      through the movement it posted.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import case, func, select

from inventory_engines.valuation.cost_layers import InboundReceipt
from inventory_engines.variance import AdjustmentSample
from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.values import MovementType, StockKey
from inventory_kernel.models.movement import InventoryMovementModel
from inventory_kernel.selectors.base import BaseSelector, key_clause

_M = InventoryMovementModel


def _applied():
    return _M.requires_approval.is_(False)


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class MovementSummary:
    """Totals of applied movements for one location and period."""

    location_id: str
    start: datetime | None
    end: datetime | None
    total_in: Decimal
    total_out: Decimal
    movement_count: int

    @property
    def net(self) -> Decimal:
        return self.total_in - self.total_out


class MovementSelector(BaseSelector[InventoryMovementModel]):

    def summary(
        self,
        tenant_id: str,
        location_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> MovementSummary:
        """Quantity in, quantity out (as a magnitude) and movement count."""
        stmt = select(
            func.coalesce(func.sum(case((_M.quantity > 0, _M.quantity), else_=0)), 0),
            func.coalesce(func.sum(case((_M.quantity < 0, -_M.quantity), else_=0)), 0),
            func.count(_M.id),
        ).where(
            _M.tenant_id == tenant_id,
            _M.location_id == location_id,
            _applied(),
        )
        if start is not None:
            stmt = stmt.where(_M.occurred_at >= start)
        if end is not None:
            stmt = stmt.where(_M.occurred_at <= end)

        total_in, total_out, count = self.session.execute(stmt).one()
        return MovementSummary(
            location_id=location_id,
            start=start,
            end=end,
            total_in=_dec(total_in),
            total_out=_dec(total_out),
            movement_count=int(count),
        )

    def adjustment_samples(
        self,
        tenant_id: str,
        location_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AdjustmentSample]:
        """Applied adjustment movements reduced for variance analysis."""
        stmt = select(_M).where(
            _M.tenant_id == tenant_id,
            _M.movement_type == MovementType.ADJUSTMENT.value,
            _applied(),
        )
        if location_id is not None:
            stmt = stmt.where(_M.location_id == location_id)
        if start is not None:
            stmt = stmt.where(_M.occurred_at >= start)
        if end is not None:
            stmt = stmt.where(_M.occurred_at <= end)
        stmt = stmt.order_by(_M.occurred_at.asc(), _M.sequence.asc())

        return [
            AdjustmentSample(
                product_id=m.product_id,
                reason=m.reason,
                quantity=m.quantity,
                value=m.total_cost if m.total_cost is not None else ZERO,
                day=m.occurred_at.date(),
            )
            for m in self.session.scalars(stmt)
        ]

    def adjusted_product_count(
        self, tenant_id: str, location_id: str, since: datetime
    ) -> int:
        """Distinct products with an applied adjustment since ``since``."""
        return int(
            self.session.scalar(
                select(func.count(func.distinct(_M.product_id))).where(
                    _M.tenant_id == tenant_id,
                    _M.location_id == location_id,
                    _M.movement_type == MovementType.ADJUSTMENT.value,
                    _M.occurred_at >= since,
                    _applied(),
                )
            )
            or 0
        )

    def inbound_receipts(
        self, key: StockKey, as_of_date: date | None = None
    ) -> list[InboundReceipt]:
        """Applied inbound movements with a positive unit cost, oldest first."""
        stmt = select(_M.quantity, _M.unit_cost, _M.occurred_at).where(
            key_clause(_M, key),
            _applied(),
            _M.quantity > 0,
            _M.unit_cost > 0,
        )
        stmt = stmt.order_by(_M.sequence.asc())
        receipts = []
        for quantity, unit_cost, occurred_at in self.session.execute(stmt):
            if as_of_date is not None and occurred_at.date() > as_of_date:
                continue
            receipts.append(InboundReceipt(quantity=_dec(quantity), unit_cost=_dec(unit_cost)))
        return receipts
