"""
Module: inventory_engines
Responsibility:
    Pure calculation engines: batch ordering and cost-layer valuation,
    count variance and adjustment analysis.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import inventory_kernel.domain values, db.types helpers and logging.
    MUST NOT import inventory_services.

Invariants enforced:
    - Engines never read the clock; dates are explicit parameters.
    - Decimal-only arithmetic.
    - Identical inputs always produce identical outputs.
"""

from inventory_engines.valuation import (
    CostLayer,
    InboundReceipt,
    LayerTake,
    PickPlan,
    ValuationResult,
    order_layers,
    plan_picks,
    valuate_average,
    valuate_fifo,
    valuate_lifo,
    valuate_specific,
)
from inventory_engines.variance import (
    VARIANCE_EPSILON,
    AdjustmentSample,
    CountVariance,
    VarianceAnalysis,
    accuracy_percentage,
    analyse_adjustments,
    compute_count_variance,
)

__all__ = [
    "CostLayer",
    "InboundReceipt",
    "LayerTake",
    "PickPlan",
    "ValuationResult",
    "order_layers",
    "plan_picks",
    "valuate_average",
    "valuate_fifo",
    "valuate_lifo",
    "valuate_specific",
    "VARIANCE_EPSILON",
    "AdjustmentSample",
    "CountVariance",
    "VarianceAnalysis",
    "accuracy_percentage",
    "analyse_adjustments",
    "compute_count_variance",
]
