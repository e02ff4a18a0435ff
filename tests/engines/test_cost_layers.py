"""
Tests for the cost-layer valuation engine.

Covers:
- FIFO / LIFO / FEFO layer ordering and tie-breaks
- FIFO, LIFO, weighted-average and specific-identification valuation
- as_of_date filtering
- Pick planning and shortfalls
- Presentation rounding
"""

from datetime import date
from decimal import Decimal

import pytest

from inventory_engines.valuation import (
    CostLayer,
    InboundReceipt,
    order_layers,
    plan_picks,
    valuate_average,
    valuate_fifo,
    valuate_lifo,
    valuate_specific,
    weighted_average_cost,
)
from inventory_kernel.domain.values import ConsumptionOrder, ValuationMethod

DAY1 = date(2024, 1, 1)
DAY2 = date(2024, 1, 2)
DAY3 = date(2024, 1, 3)


@pytest.fixture
def two_layers():
    return [
        CostLayer("B-1", Decimal("10"), Decimal("5"), DAY1),
        CostLayer("B-2", Decimal("10"), Decimal("7"), DAY2),
    ]


class TestOrderLayers:
    """Pick order for each consumption policy."""

    def test_fifo_oldest_first(self, two_layers):
        ordered = order_layers(reversed(two_layers), ConsumptionOrder.FIFO)
        assert [l.batch_number for l in ordered] == ["B-1", "B-2"]

    def test_lifo_newest_first(self, two_layers):
        ordered = order_layers(two_layers, ConsumptionOrder.LIFO)
        assert [l.batch_number for l in ordered] == ["B-2", "B-1"]

    def test_fefo_soonest_expiry_first_and_no_expiry_last(self):
        layers = [
            CostLayer("NO-EXP", Decimal("1"), Decimal("1"), DAY1),
            CostLayer("LATE", Decimal("1"), Decimal("1"), DAY1, expiry_date=date(2024, 6, 1)),
            CostLayer("SOON", Decimal("1"), Decimal("1"), DAY2, expiry_date=date(2024, 2, 1)),
        ]
        ordered = order_layers(layers, ConsumptionOrder.FEFO)
        assert [l.batch_number for l in ordered] == ["SOON", "LATE", "NO-EXP"]

    def test_same_received_date_breaks_tie_on_batch_number(self):
        layers = [
            CostLayer("B-9", Decimal("1"), Decimal("1"), DAY1),
            CostLayer("B-3", Decimal("1"), Decimal("1"), DAY1),
        ]
        assert [l.batch_number for l in order_layers(layers, ConsumptionOrder.FIFO)] == [
            "B-3",
            "B-9",
        ]
        assert [l.batch_number for l in order_layers(layers, ConsumptionOrder.LIFO)] == [
            "B-3",
            "B-9",
        ]


class TestCostLayer:

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError):
            CostLayer("B-1", Decimal("-1"), Decimal("5"), DAY1)

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError):
            CostLayer("B-1", Decimal("1"), Decimal("-5"), DAY1)


class TestLayeredValuation:
    """FIFO and LIFO walk layers greedily until on-hand is covered."""

    def test_fifo_two_batches(self, two_layers):
        result = valuate_fifo(layers=two_layers, on_hand=Decimal("15"))

        assert result.method is ValuationMethod.FIFO
        assert result.total_value == Decimal("85")
        assert result.rounded().unit_cost == Decimal("5.6667")
        assert [(t.batch_number, t.quantity) for t in result.breakdown] == [
            ("B-1", Decimal("10")),
            ("B-2", Decimal("5")),
        ]

    def test_lifo_two_batches(self, two_layers):
        result = valuate_lifo(layers=two_layers, on_hand=Decimal("15"))

        assert result.total_value == Decimal("95")
        assert [(t.batch_number, t.quantity) for t in result.breakdown] == [
            ("B-2", Decimal("10")),
            ("B-1", Decimal("5")),
        ]

    def test_zero_on_hand_returns_none(self, two_layers):
        assert valuate_fifo(layers=two_layers, on_hand=Decimal("0")) is None
        assert valuate_lifo(layers=two_layers, on_hand=Decimal("0")) is None

    def test_as_of_date_excludes_later_receipts(self, two_layers):
        result = valuate_fifo(layers=two_layers, on_hand=Decimal("15"), as_of_date=DAY1)

        assert result.total_value == Decimal("50")
        assert result.uncovered_quantity == Decimal("5")
        assert result.as_of_date == DAY1

    def test_uncovered_quantity_valued_at_zero_and_logged(self, captured_logs):
        layers = [CostLayer("B-1", Decimal("4"), Decimal("2"), DAY1)]
        result = valuate_fifo(layers=layers, on_hand=Decimal("10"))

        assert result.total_value == Decimal("8")
        assert result.uncovered_quantity == Decimal("6")
        assert any(r["message"] == "valuation_layers_short" for r in captured_logs())

    def test_no_layers_leaves_everything_uncovered(self):
        result = valuate_lifo(layers=[], on_hand=Decimal("3"))

        assert result.total_value == Decimal("0")
        assert result.uncovered_quantity == Decimal("3")


class TestAverageValuation:

    def test_weighted_average_of_receipts(self):
        receipts = [
            InboundReceipt(Decimal("10"), Decimal("5")),
            InboundReceipt(Decimal("30"), Decimal("9")),
        ]
        assert weighted_average_cost(receipts) == Decimal("8")

    def test_zero_cost_and_non_positive_receipts_ignored(self):
        receipts = [
            InboundReceipt(Decimal("10"), Decimal("4")),
            InboundReceipt(Decimal("10"), Decimal("0")),
            InboundReceipt(Decimal("-5"), Decimal("100")),
        ]
        assert weighted_average_cost(receipts) == Decimal("4")

    def test_no_receipts_gives_zero_cost(self):
        result = valuate_average(receipts=[], on_hand=Decimal("5"))

        assert result.unit_cost == Decimal("0")
        assert result.total_value == Decimal("0")
        assert result.uncovered_quantity == Decimal("0")

    def test_values_on_hand_at_average(self):
        receipts = [InboundReceipt(Decimal("10"), Decimal("5")), InboundReceipt(Decimal("10"), Decimal("7"))]
        result = valuate_average(receipts=receipts, on_hand=Decimal("15"))

        assert result.method is ValuationMethod.AVERAGE
        assert result.unit_cost == Decimal("6")
        assert result.total_value == Decimal("90")

    def test_zero_on_hand_returns_none(self):
        assert valuate_average(receipts=[], on_hand=Decimal("0")) is None


class TestSpecificValuation:

    def test_sums_every_remaining_layer(self, two_layers):
        result = valuate_specific(layers=two_layers, on_hand=Decimal("15"))

        assert result.total_value == Decimal("120")
        assert len(result.breakdown) == 2

    def test_empty_layers_skipped(self):
        layers = [
            CostLayer("B-1", Decimal("0"), Decimal("5"), DAY1),
            CostLayer("B-2", Decimal("4"), Decimal("3"), DAY2),
        ]
        result = valuate_specific(layers=layers, on_hand=Decimal("4"))

        assert [t.batch_number for t in result.breakdown] == ["B-2"]
        assert result.unit_cost == Decimal("3")


class TestPickPlan:

    def test_plan_follows_order(self, two_layers):
        plan = plan_picks(layers=two_layers, quantity=Decimal("12"), order=ConsumptionOrder.LIFO)

        assert [(t.batch_number, t.quantity) for t in plan.takes] == [
            ("B-2", Decimal("10")),
            ("B-1", Decimal("2")),
        ]
        assert plan.is_complete

    def test_shortfall_reported(self, two_layers):
        plan = plan_picks(layers=two_layers, quantity=Decimal("25"), order=ConsumptionOrder.FIFO)

        assert plan.planned == Decimal("20")
        assert plan.shortfall == Decimal("5")
        assert not plan.is_complete

    def test_non_positive_quantity_rejected(self, two_layers):
        with pytest.raises(ValueError):
            plan_picks(layers=two_layers, quantity=Decimal("0"), order=ConsumptionOrder.FIFO)


class TestRounding:

    def test_rounded_copy_uses_half_up(self):
        layers = [CostLayer("B-1", Decimal("3"), Decimal("0.335"), DAY3)]
        result = valuate_fifo(layers=layers, on_hand=Decimal("3")).rounded(2, 2)

        assert result.total_value == Decimal("1.01")
        assert result.unit_cost == Decimal("0.34")
