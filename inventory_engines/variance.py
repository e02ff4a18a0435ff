"""
inventory_engines.variance -- Count variance and adjustment analysis.

Responsibility:
    Compares counted quantities with system quantities (reconciliation),
    scores count accuracy, and summarizes historical adjustment movements
    by reason, product and day.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The coordinator in
    inventory_services supplies system quantities, costs and movements.

Invariants enforced:
    - variance = expected - system; a variance counts only when
      |variance| > epsilon (default 0.001).
    - Accuracy is clamped to [0, 100] and is 100 when nothing was counted.
    - Decimal-only arithmetic, including the volatility square root.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import ZERO

VARIANCE_EPSILON = Decimal("0.001")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CountVariance:
    system_quantity: Decimal
    expected_quantity: Decimal
    variance: Decimal
    unit_cost: Decimal
    variance_value: Decimal
    is_significant: bool

    @property
    def is_shrinkage(self) -> bool:
        return self.variance < 0


@traced_engine(
    "variance.count",
    "1.0",
    fingerprint_fields=("system_quantity", "expected_quantity", "unit_cost"),
)
def compute_count_variance(
    *,
    system_quantity: Decimal,
    expected_quantity: Decimal,
    unit_cost: Decimal,
    epsilon: Decimal = VARIANCE_EPSILON,
) -> CountVariance:
    variance = expected_quantity - system_quantity
    return CountVariance(
        system_quantity=system_quantity,
        expected_quantity=expected_quantity,
        variance=variance,
        unit_cost=unit_cost,
        variance_value=variance * unit_cost,
        is_significant=abs(variance) > epsilon,
    )


def accuracy_percentage(total_items: int, items_with_variance: int) -> Decimal:
    """(total - with_variance) / total * 100, clamped to [0, 100]."""
    if total_items <= 0:
        return _HUNDRED
    raw = Decimal(total_items - items_with_variance) / Decimal(total_items) * _HUNDRED
    return min(max(raw, ZERO), _HUNDRED)


# ---------------------------------------------------------------------------
# Adjustment analysis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdjustmentSample:
    """One adjustment movement, reduced to what the analysis needs."""

    product_id: str
    reason: str | None
    quantity: Decimal
    value: Decimal
    day: date


@dataclass(frozen=True)
class ReasonBreakdown:
    reason: str
    count: int
    total_value: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class ProductBreakdown:
    product_id: str
    adjustment_count: int
    total_variance: Decimal
    total_variance_value: Decimal

    @property
    def average_variance(self) -> Decimal:
        if self.adjustment_count == 0:
            return ZERO
        return self.total_variance / self.adjustment_count


@dataclass(frozen=True)
class DailyVariance:
    day: date
    count: int
    value: Decimal


@dataclass(frozen=True)
class VarianceAnalysis:
    total_adjustments: int
    total_variance_value: Decimal
    most_common_reason: str | None
    by_reason: tuple[ReasonBreakdown, ...]
    by_product: tuple[ProductBreakdown, ...]
    daily: tuple[DailyVariance, ...]
    is_increasing: bool
    volatility: Decimal

    @property
    def average_variance_per_adjustment(self) -> Decimal:
        if self.total_adjustments == 0:
            return ZERO
        return self.total_variance_value / self.total_adjustments


def _mean(values: list[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / len(values)


def _population_stddev(values: list[Decimal]) -> Decimal:
    if not values:
        return ZERO
    mean = _mean(values)
    return (sum(((v - mean) ** 2 for v in values), ZERO) / len(values)).sqrt()


@traced_engine("variance.analysis", "1.0")
def analyse_adjustments(samples: Iterable[AdjustmentSample]) -> VarianceAnalysis:
    """
    Summarize adjustments by reason, product and day.

    Values are absolute (a shrinkage and an overage of the same size weigh
    the same).  The trend compares the mean daily value of the later half
    of the observed days with the earlier half.
    """
    reasons: dict[str, list[Decimal]] = defaultdict(list)
    products: dict[str, list[AdjustmentSample]] = defaultdict(list)
    days: dict[date, list[Decimal]] = defaultdict(list)

    items = list(samples)
    for sample in items:
        value = abs(sample.value)
        reasons[sample.reason or "unknown"].append(value)
        products[sample.product_id].append(sample)
        days[sample.day].append(value)

    total = len(items)
    total_value = sum((abs(s.value) for s in items), ZERO)

    by_reason = sorted(
        (
            ReasonBreakdown(
                reason=reason,
                count=len(values),
                total_value=sum(values, ZERO),
                percentage=Decimal(len(values)) / Decimal(total) * _HUNDRED,
            )
            for reason, values in reasons.items()
        ),
        key=lambda r: (-r.count, r.reason),
    )

    by_product = sorted(
        (
            ProductBreakdown(
                product_id=product_id,
                adjustment_count=len(group),
                total_variance=sum((abs(s.quantity) for s in group), ZERO),
                total_variance_value=sum((abs(s.value) for s in group), ZERO),
            )
            for product_id, group in products.items()
        ),
        key=lambda p: (-p.total_variance_value, p.product_id),
    )

    daily = [
        DailyVariance(day=day, count=len(values), value=sum(values, ZERO))
        for day, values in sorted(days.items())
    ]
    half = len(daily) // 2
    first_half = [d.value for d in daily[:half]]
    second_half = [d.value for d in daily[half:]]

    return VarianceAnalysis(
        total_adjustments=total,
        total_variance_value=total_value,
        most_common_reason=by_reason[0].reason if by_reason else None,
        by_reason=tuple(by_reason),
        by_product=tuple(by_product),
        daily=tuple(daily),
        is_increasing=_mean(second_half) > _mean(first_half),
        volatility=_population_stddev([d.value for d in daily]),
    )
