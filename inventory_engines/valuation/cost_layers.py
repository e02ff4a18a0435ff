"""
inventory_engines.valuation.cost_layers -- Pure batch ordering and costing.

Responsibility:
    Orders cost layers (batches) for picking under FIFO, LIFO and FEFO, and
    values an on-hand quantity under the FIFO, LIFO, weighted-average and
    specific-identification conventions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Takes CostLayer and
    InboundReceipt values built by the caller; the stateful ValuationService
    lives in inventory_services/.

Invariants enforced:
    - Decimal-only arithmetic.
    - Greedy layer walk: each layer contributes min(remaining, layer qty);
      the walk stops as soon as the on-hand quantity is covered.
    - FEFO places layers without an expiry date last.
    - Ties in any ordering break on batch number, so results are
      deterministic for identical inputs.

Failure modes:
    - ValueError from CostLayer on negative quantity or cost.
    - valuate_* return None when the on-hand quantity is zero (nothing to value).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import ZERO, round_money, round_unit_cost
from inventory_kernel.domain.values import ConsumptionOrder, ValuationMethod
from inventory_kernel.logging_config import get_logger

logger = get_logger("engines.valuation.cost_layers")

# Sorts after every real date for FEFO.
_NO_EXPIRY = date.max


@dataclass(frozen=True, slots=True)
class CostLayer:
    """Remaining stock of one batch at its receipt cost."""

    batch_number: str
    quantity: Decimal
    unit_cost: Decimal
    received_date: date
    expiry_date: date | None = None

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Layer quantity cannot be negative, got {self.quantity}")
        if self.unit_cost < 0:
            raise ValueError(f"Layer cost cannot be negative, got {self.unit_cost}")

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class LayerTake:
    """Quantity drawn from one layer during a walk."""

    batch_number: str
    quantity: Decimal
    unit_cost: Decimal

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class InboundReceipt:
    """An applied inbound movement with a known unit cost."""

    quantity: Decimal
    unit_cost: Decimal


@dataclass(frozen=True, slots=True)
class ValuationResult:
    method: ValuationMethod
    current_quantity: Decimal
    unit_cost: Decimal
    total_value: Decimal
    breakdown: tuple[LayerTake, ...] = ()
    as_of_date: date | None = None

    @property
    def uncovered_quantity(self) -> Decimal:
        """On-hand quantity not backed by any cost layer (valued at zero)."""
        if self.method is ValuationMethod.AVERAGE:
            return ZERO
        covered = sum((t.quantity for t in self.breakdown), ZERO)
        return max(self.current_quantity - covered, ZERO)

    def rounded(self, money_places: int = 2, unit_cost_places: int = 4) -> ValuationResult:
        """Presentation copy: money and unit cost rounded half-up."""
        return replace(
            self,
            unit_cost=round_unit_cost(self.unit_cost, unit_cost_places),
            total_value=round_money(self.total_value, money_places),
        )


@dataclass(frozen=True, slots=True)
class PickPlan:
    takes: tuple[LayerTake, ...]
    requested: Decimal

    @property
    def planned(self) -> Decimal:
        return sum((t.quantity for t in self.takes), ZERO)

    @property
    def shortfall(self) -> Decimal:
        return max(self.requested - self.planned, ZERO)

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def order_layers(layers: Iterable[CostLayer], order: ConsumptionOrder) -> list[CostLayer]:
    """Return layers in pick order for ``order``."""
    items = list(layers)
    if order is ConsumptionOrder.FIFO:
        return sorted(items, key=lambda l: (l.received_date, l.batch_number))
    if order is ConsumptionOrder.LIFO:
        # Newest first; batch-number tiebreak stays ascending.
        by_number = sorted(items, key=lambda l: l.batch_number)
        return sorted(by_number, key=lambda l: l.received_date, reverse=True)
    if order is ConsumptionOrder.FEFO:
        return sorted(
            items,
            key=lambda l: (l.expiry_date or _NO_EXPIRY, l.received_date, l.batch_number),
        )
    raise ValueError(f"Unknown consumption order: {order}")


def _walk(layers: Sequence[CostLayer], quantity: Decimal) -> list[LayerTake]:
    remaining = quantity
    takes: list[LayerTake] = []
    for layer in layers:
        if remaining <= 0:
            break
        take = min(remaining, layer.quantity)
        if take <= 0:
            continue
        takes.append(LayerTake(layer.batch_number, take, layer.unit_cost))
        remaining -= take
    return takes


@traced_engine("batch.pick_plan", "1.0", fingerprint_fields=("quantity", "order"))
def plan_picks(
    *, layers: Iterable[CostLayer], quantity: Decimal, order: ConsumptionOrder
) -> PickPlan:
    """Which batches to draw ``quantity`` from, in ``order``."""
    if quantity <= 0:
        raise ValueError(f"Pick quantity must be positive, got {quantity}")
    takes = _walk(order_layers(layers, order), quantity)
    return PickPlan(takes=tuple(takes), requested=quantity)


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------


def _eligible(layers: Iterable[CostLayer], as_of_date: date | None) -> list[CostLayer]:
    if as_of_date is None:
        return list(layers)
    return [l for l in layers if l.received_date <= as_of_date]


def _layered(
    method: ValuationMethod,
    order: ConsumptionOrder,
    layers: Iterable[CostLayer],
    on_hand: Decimal,
    as_of_date: date | None,
) -> ValuationResult | None:
    if on_hand <= 0:
        return None
    ordered = order_layers(_eligible(layers, as_of_date), order)
    takes = _walk(ordered, on_hand)
    total = sum((t.value for t in takes), ZERO)
    result = ValuationResult(
        method=method,
        current_quantity=on_hand,
        unit_cost=total / on_hand,
        total_value=total,
        breakdown=tuple(takes),
        as_of_date=as_of_date,
    )
    if result.uncovered_quantity > 0:
        logger.warning(
            "valuation_layers_short",
            extra={
                "method": method.value,
                "on_hand": on_hand,
                "uncovered": result.uncovered_quantity,
            },
        )
    return result


@traced_engine("valuation.fifo", "1.0", fingerprint_fields=("on_hand", "as_of_date"))
def valuate_fifo(
    *, layers: Iterable[CostLayer], on_hand: Decimal, as_of_date: date | None = None
) -> ValuationResult | None:
    """Value ``on_hand`` from the oldest layers first."""
    return _layered(ValuationMethod.FIFO, ConsumptionOrder.FIFO, layers, on_hand, as_of_date)


@traced_engine("valuation.lifo", "1.0", fingerprint_fields=("on_hand", "as_of_date"))
def valuate_lifo(
    *, layers: Iterable[CostLayer], on_hand: Decimal, as_of_date: date | None = None
) -> ValuationResult | None:
    """Value ``on_hand`` from the newest layers first."""
    return _layered(ValuationMethod.LIFO, ConsumptionOrder.LIFO, layers, on_hand, as_of_date)


def weighted_average_cost(receipts: Iterable[InboundReceipt]) -> Decimal:
    """Σ(qty·cost)/Σqty over receipts with a positive quantity and cost."""
    total_qty = ZERO
    total_cost = ZERO
    for receipt in receipts:
        if receipt.quantity > 0 and receipt.unit_cost > 0:
            total_qty += receipt.quantity
            total_cost += receipt.quantity * receipt.unit_cost
    if total_qty == 0:
        return ZERO
    return total_cost / total_qty


@traced_engine("valuation.average", "1.0", fingerprint_fields=("on_hand", "as_of_date"))
def valuate_average(
    *,
    receipts: Iterable[InboundReceipt],
    on_hand: Decimal,
    as_of_date: date | None = None,
) -> ValuationResult | None:
    if on_hand <= 0:
        return None
    unit_cost = weighted_average_cost(receipts)
    return ValuationResult(
        method=ValuationMethod.AVERAGE,
        current_quantity=on_hand,
        unit_cost=unit_cost,
        total_value=on_hand * unit_cost,
        as_of_date=as_of_date,
    )


@traced_engine("valuation.specific", "1.0", fingerprint_fields=("on_hand",))
def valuate_specific(
    *, layers: Iterable[CostLayer], on_hand: Decimal, as_of_date: date | None = None
) -> ValuationResult | None:
    """Every remaining batch at its own cost."""
    if on_hand <= 0:
        return None
    eligible = [l for l in _eligible(layers, as_of_date) if l.quantity > 0]
    total = sum((l.value for l in eligible), ZERO)
    return ValuationResult(
        method=ValuationMethod.SPECIFIC,
        current_quantity=on_hand,
        unit_cost=total / on_hand,
        total_value=total,
        breakdown=tuple(LayerTake(l.batch_number, l.quantity, l.unit_cost) for l in eligible),
        as_of_date=as_of_date,
    )
