"""
Property-based tests for the valuation engine.

- Layered valuation never reports more quantity than on hand, and covers
  all of it when the layers hold enough.
- FIFO and LIFO agree when every layer has the same cost.
- Specific identification equals the sum of layer values.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from inventory_engines.valuation import (
    CostLayer,
    valuate_fifo,
    valuate_lifo,
    valuate_specific,
)

quantities = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("10000"), places=3)
costs = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000"), places=4)


@st.composite
def layer_sets(draw, min_size=1, max_size=8):
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    base = date(2024, 1, 1)
    return [
        CostLayer(
            batch_number=f"B-{i:03d}",
            quantity=draw(quantities),
            unit_cost=draw(costs),
            received_date=base + timedelta(days=draw(st.integers(0, 30))),
        )
        for i in range(count)
    ]


class TestLayeredValuationProperties:

    @given(layers=layer_sets(), on_hand=quantities)
    @settings(max_examples=100, deadline=None)
    def test_takes_never_exceed_on_hand(self, layers, on_hand):
        for valuate in (valuate_fifo, valuate_lifo):
            result = valuate(layers=layers, on_hand=on_hand)
            taken = sum((t.quantity for t in result.breakdown), Decimal("0"))
            assert taken <= on_hand
            available = sum((l.quantity for l in layers), Decimal("0"))
            if available >= on_hand:
                assert taken == on_hand
                assert result.uncovered_quantity == 0

    @given(layers=layer_sets(), on_hand=quantities, cost=costs)
    @settings(max_examples=50, deadline=None)
    def test_fifo_equals_lifo_for_uniform_cost(self, layers, on_hand, cost):
        uniform = [
            CostLayer(l.batch_number, l.quantity, cost, l.received_date) for l in layers
        ]
        fifo = valuate_fifo(layers=uniform, on_hand=on_hand)
        lifo = valuate_lifo(layers=uniform, on_hand=on_hand)
        assert fifo.total_value == lifo.total_value

    @given(layers=layer_sets())
    @settings(max_examples=50, deadline=None)
    def test_specific_is_sum_of_layer_values(self, layers):
        on_hand = sum((l.quantity for l in layers), Decimal("0"))
        result = valuate_specific(layers=layers, on_hand=on_hand)
        assert result.total_value == sum((l.value for l in layers), Decimal("0"))
