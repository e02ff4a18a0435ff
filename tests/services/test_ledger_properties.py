"""
Property-based tests for the ledger and level invariants.

Random sequences of stock changes and reservations are applied through
the coordinator and checked against a simple model:

- every movement's new_level equals previous_level plus its quantity, and
  chains onto the movement before it;
- the level's current_level equals the last applied movement's new_level;
- available_level == current_level - reserved_level after every step;
- only adjustments drive the level below zero or below the reserved
  quantity.
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.dtos import LevelRegistration, StockChange
from inventory_kernel.domain.values import MovementType, StockKey
from inventory_kernel.exceptions import InsufficientAvailabilityError, NegativeInventoryError

TENANT = "tenant-1"

amounts = st.decimals(min_value=Decimal("1"), max_value=Decimal("40"), places=0)

operations = st.lists(
    st.one_of(
        st.tuples(st.just(MovementType.PURCHASE), amounts),
        st.tuples(st.just(MovementType.SALE), amounts),
        st.tuples(st.just(MovementType.DAMAGE), amounts),
        st.tuples(st.just(MovementType.ADJUSTMENT), st.one_of(amounts, amounts.map(lambda a: -a))),
        st.tuples(st.just("reserve"), amounts),
    ),
    min_size=1,
    max_size=15,
)


class TestLedgerProperties:

    @given(ops=operations)
    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_level_follows_ledger(self, coordinator, test_actor_id, ops):
        # Fresh key per example: the session fixture is shared across examples.
        key = StockKey(TENANT, f"P-{uuid4().hex[:8]}", "WH-A")
        coordinator.register_inventory_level(LevelRegistration(key=key), test_actor_id)
        expected = Decimal("0")
        reserved = Decimal("0")
        adjusted = False

        for kind, amount in ops:
            if kind == "reserve":
                try:
                    coordinator.reservations.reserve(key, amount, "order", "SO", test_actor_id)
                    reserved += amount
                except InsufficientAvailabilityError:
                    assert expected - reserved < amount
                continue

            delta = amount if kind in (MovementType.PURCHASE, MovementType.ADJUSTMENT) else -amount
            try:
                coordinator.update_perpetual_inventory(StockChange(key, kind, amount), test_actor_id)
                expected += delta
            except NegativeInventoryError:
                assert kind is not MovementType.ADJUSTMENT
                assert expected + delta < 0
            except InsufficientAvailabilityError:
                assert kind is not MovementType.ADJUSTMENT
                assert 0 <= expected + delta < reserved

            if kind is MovementType.ADJUSTMENT:
                adjusted = True

            level = coordinator.levels.require(key)
            assert level.current_level == expected
            assert level.available_level == level.current_level - level.reserved_level
            if not adjusted:
                assert level.reserved_level <= level.current_level

        history = coordinator.ledger.history(key)
        for movement in history:
            assert movement.new_level == movement.previous_level + movement.quantity
        for earlier, later in zip(history, history[1:]):
            assert later.previous_level == earlier.new_level
        if history:
            assert history[-1].new_level == expected
        assert coordinator.levels.require(key).reserved_level == reserved
