"""
Tests for the count variance and adjustment analysis engine.
"""

from datetime import date
from decimal import Decimal

from inventory_engines.variance import (
    AdjustmentSample,
    accuracy_percentage,
    analyse_adjustments,
    compute_count_variance,
)


class TestCountVariance:

    def test_shortage(self):
        result = compute_count_variance(
            system_quantity=Decimal("100"),
            expected_quantity=Decimal("95"),
            unit_cost=Decimal("2.50"),
        )

        assert result.variance == Decimal("-5")
        assert result.variance_value == Decimal("-12.50")
        assert result.is_significant
        assert result.is_shrinkage

    def test_within_epsilon_is_not_significant(self):
        result = compute_count_variance(
            system_quantity=Decimal("10"),
            expected_quantity=Decimal("10.0005"),
            unit_cost=Decimal("1"),
        )
        assert not result.is_significant

    def test_custom_epsilon(self):
        result = compute_count_variance(
            system_quantity=Decimal("10"),
            expected_quantity=Decimal("10.5"),
            unit_cost=Decimal("1"),
            epsilon=Decimal("1"),
        )
        assert not result.is_significant

    def test_overage_is_not_shrinkage(self):
        result = compute_count_variance(
            system_quantity=Decimal("3"),
            expected_quantity=Decimal("5"),
            unit_cost=Decimal("1"),
        )
        assert result.variance == Decimal("2")
        assert not result.is_shrinkage


class TestAccuracyPercentage:

    def test_zero_items_is_one_hundred(self):
        assert accuracy_percentage(0, 0) == Decimal("100")

    def test_partial_accuracy(self):
        assert accuracy_percentage(4, 1) == Decimal("75")

    def test_clamped_to_zero(self):
        assert accuracy_percentage(2, 5) == Decimal("0")


class TestAnalyseAdjustments:

    def _sample(self, product, reason, qty, value, day):
        return AdjustmentSample(product, reason, Decimal(qty), Decimal(value), day)

    def test_empty_history(self):
        analysis = analyse_adjustments([])

        assert analysis.total_adjustments == 0
        assert analysis.total_variance_value == Decimal("0")
        assert analysis.most_common_reason is None
        assert analysis.average_variance_per_adjustment == Decimal("0")
        assert analysis.volatility == Decimal("0")
        assert not analysis.is_increasing

    def test_breakdowns_use_absolute_values(self):
        samples = [
            self._sample("P-1", "cycle_count", "-5", "-50", date(2024, 1, 1)),
            self._sample("P-1", "cycle_count", "2", "20", date(2024, 1, 2)),
            self._sample("P-2", "damaged_goods", "-1", "-5", date(2024, 1, 2)),
            self._sample("P-3", None, "-1", "-1", date(2024, 1, 3)),
        ]
        analysis = analyse_adjustments(samples)

        assert analysis.total_adjustments == 4
        assert analysis.total_variance_value == Decimal("76")
        assert analysis.most_common_reason == "cycle_count"
        assert analysis.by_reason[0].count == 2
        assert analysis.by_reason[0].percentage == Decimal("50")
        assert {r.reason for r in analysis.by_reason} == {"cycle_count", "damaged_goods", "unknown"}

        top = analysis.by_product[0]
        assert top.product_id == "P-1"
        assert top.total_variance == Decimal("7")
        assert top.total_variance_value == Decimal("70")
        assert top.average_variance == Decimal("3.5")

    def test_trend_and_volatility(self):
        samples = [
            self._sample("P-1", "other", "-1", "10", date(2024, 1, 1)),
            self._sample("P-1", "other", "-1", "30", date(2024, 1, 2)),
        ]
        analysis = analyse_adjustments(samples)

        assert [d.value for d in analysis.daily] == [Decimal("10"), Decimal("30")]
        assert analysis.is_increasing
        assert analysis.volatility == Decimal("10")
