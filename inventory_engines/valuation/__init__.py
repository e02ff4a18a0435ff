"""
Valuation - pure batch ordering and costing (FIFO/LIFO/FEFO, average, specific).

The stateful ValuationService lives in inventory_services.valuation_service.
"""

from inventory_engines.valuation.cost_layers import (
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
    weighted_average_cost,
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
    "weighted_average_cost",
]
