"""
Tests for PerpetualInventoryCoordinator stock changes.

Covers the update path (ledger append, level application, batch
consumption), the negative-stock rule, registration, batch receipts,
reservation fulfilment, batch lifecycle events and event delivery.
"""

from datetime import date
from decimal import Decimal

import pytest

from inventory_kernel.domain.dtos import LevelRegistration, StockChange
from inventory_kernel.domain.values import (
    AdjustmentReason,
    BatchStatus,
    ConsumptionOrder,
    MovementType,
    StockKey,
)
from inventory_kernel.exceptions import (
    DuplicateInventoryLevelError,
    InsufficientAvailabilityError,
    InvalidQuantityError,
    InventoryLevelNotFoundError,
    NegativeInventoryError,
)
from inventory_services import notifications
from inventory_services.notifications import EventDispatcher
from inventory_services.perpetual_inventory import PerpetualInventoryCoordinator

TENANT = "tenant-1"


class _FailingSink:
    def emit(self, event_name, payload):
        raise ConnectionError("bus unavailable")


@pytest.fixture
def stocked(seed_level, event_sink):
    key = seed_level("P-1", "WH-A", quantity="10", cost="2", reorder_point="5", reorder_quantity="20")
    event_sink.clear()
    return key


class TestUpdatePerpetualInventory:

    def test_purchase_raises_level_and_records_movement(self, coordinator, stocked, test_actor_id):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.PURCHASE, Decimal("5"), unit_cost=Decimal("2")),
            test_actor_id,
        )

        assert result.applied is True
        assert result.movement.previous_level == Decimal("10")
        assert result.movement.new_level == Decimal("15")
        assert result.movement.quantity == Decimal("5")
        assert result.level.current_level == Decimal("15")

    def test_outbound_magnitude_is_signed_negative(self, coordinator, stocked, test_actor_id):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("3")), test_actor_id
        )

        assert result.movement.quantity == Decimal("-3")
        assert result.level.current_level == Decimal("7")
        assert result.level.available_level == Decimal("7")

    def test_movement_chain_links_levels(self, coordinator, stocked, test_actor_id):
        for change in (
            StockChange(stocked, MovementType.SALE, Decimal("4")),
            StockChange(stocked, MovementType.RETURN, Decimal("1")),
            StockChange(stocked, MovementType.DAMAGE, Decimal("2")),
        ):
            coordinator.update_perpetual_inventory(change, test_actor_id)

        history = coordinator.ledger.history(stocked)
        for earlier, later in zip(history, history[1:]):
            assert later.previous_level == earlier.new_level
            assert later.sequence > earlier.sequence
        assert history[-1].new_level == coordinator.levels.require(stocked).current_level

    def test_sale_below_zero_rejected(self, coordinator, stocked, test_actor_id, captured_logs):
        with pytest.raises(NegativeInventoryError) as exc_info:
            coordinator.update_perpetual_inventory(
                StockChange(stocked, MovementType.SALE, Decimal("11")), test_actor_id
            )

        assert exc_info.value.code == "NEGATIVE_INVENTORY"
        assert coordinator.levels.require(stocked).current_level == Decimal("10")
        assert len(coordinator.ledger.history(stocked)) == 1
        messages = [r["message"] for r in captured_logs()]
        assert "negative_inventory_rejected" in messages
        assert "operation_rolled_back" in messages

    def test_adjustment_may_go_negative(self, coordinator, stocked, test_actor_id):
        result = coordinator.update_perpetual_inventory(
            StockChange(
                stocked, MovementType.ADJUSTMENT, Decimal("-15"), reason=AdjustmentReason.THEFT_LOSS
            ),
            test_actor_id,
        )

        assert result.level.current_level == Decimal("-5")

    def test_recount_below_zero_rejected(self, coordinator, stocked, test_actor_id):
        with pytest.raises(NegativeInventoryError):
            coordinator.update_perpetual_inventory(
                StockChange(stocked, MovementType.RECOUNT, Decimal("-15")), test_actor_id
            )

        assert coordinator.levels.require(stocked).current_level == Decimal("10")
        assert len(coordinator.ledger.history(stocked)) == 1

    def test_recount_applies_signed_quantity(self, coordinator, stocked, test_actor_id):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.RECOUNT, Decimal("-4")), test_actor_id
        )

        assert result.movement.quantity == Decimal("-4")
        assert result.level.current_level == Decimal("6")

    def test_sale_cannot_take_reserved_stock(
        self, coordinator, stocked, test_actor_id, captured_logs
    ):
        coordinator.reservations.reserve(stocked, Decimal("8"), "order", "SO-1", test_actor_id)

        with pytest.raises(InsufficientAvailabilityError) as exc_info:
            coordinator.update_perpetual_inventory(
                StockChange(stocked, MovementType.SALE, Decimal("5")), test_actor_id
            )

        assert exc_info.value.available == Decimal("2")
        assert exc_info.value.requested == Decimal("5")
        level = coordinator.levels.require(stocked)
        assert level.current_level == Decimal("10")
        assert level.reserved_level <= level.current_level
        assert len(coordinator.ledger.history(stocked)) == 1
        assert "reserved_stock_protected" in [r["message"] for r in captured_logs()]

    @pytest.mark.parametrize(
        "movement_type", [MovementType.DAMAGE, MovementType.TRANSFER_OUT, MovementType.RECOUNT]
    )
    def test_other_reductions_respect_reservations(
        self, coordinator, stocked, test_actor_id, movement_type
    ):
        coordinator.reservations.reserve(stocked, Decimal("8"), "order", "SO-1", test_actor_id)

        with pytest.raises(InsufficientAvailabilityError):
            coordinator.update_perpetual_inventory(
                StockChange(stocked, movement_type, Decimal("-3")), test_actor_id
            )

    def test_sale_within_available_allowed(self, coordinator, stocked, test_actor_id):
        coordinator.reservations.reserve(stocked, Decimal("8"), "order", "SO-1", test_actor_id)

        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("2")), test_actor_id
        )

        assert result.level.current_level == Decimal("8")
        assert result.level.available_level == 0

    def test_adjustment_may_cut_into_reserved(self, coordinator, stocked, test_actor_id):
        coordinator.reservations.reserve(stocked, Decimal("8"), "order", "SO-1", test_actor_id)

        result = coordinator.update_perpetual_inventory(
            StockChange(
                stocked, MovementType.ADJUSTMENT, Decimal("-5"), reason=AdjustmentReason.DAMAGED_GOODS
            ),
            test_actor_id,
        )

        assert result.level.current_level == Decimal("5")
        assert result.level.available_level == Decimal("-3")

    def test_zero_quantity_rejected(self, coordinator, stocked, test_actor_id):
        with pytest.raises(InvalidQuantityError):
            coordinator.update_perpetual_inventory(
                StockChange(stocked, MovementType.ADJUSTMENT, Decimal("0")), test_actor_id
            )

    def test_unknown_level(self, coordinator, test_actor_id):
        with pytest.raises(InventoryLevelNotFoundError):
            coordinator.update_perpetual_inventory(
                StockChange(StockKey(TENANT, "NOPE", "WH-A"), MovementType.SALE, Decimal("1")),
                test_actor_id,
            )

    def test_level_changed_event_published(self, coordinator, stocked, test_actor_id, event_sink):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("2")), test_actor_id
        )

        [payload] = event_sink.named(notifications.LEVEL_CHANGED)
        assert payload["movement_id"] == str(result.movement.id)
        assert payload["previous_level"] == Decimal("10")
        assert payload["new_level"] == Decimal("8")
        assert event_sink.named(notifications.LOW_STOCK) == []

    def test_low_stock_event_at_reorder_point(self, coordinator, stocked, test_actor_id, event_sink):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("5")), test_actor_id
        )

        assert result.low_stock is True
        [payload] = event_sink.named(notifications.LOW_STOCK)
        assert payload["current_level"] == Decimal("5")
        assert payload["reorder_quantity"] == Decimal("20")

    def test_no_events_when_rejected(self, coordinator, stocked, test_actor_id, event_sink):
        with pytest.raises(NegativeInventoryError):
            coordinator.update_perpetual_inventory(
                StockChange(stocked, MovementType.SALE, Decimal("50")), test_actor_id
            )

        assert event_sink.events == []

    def test_sink_failure_does_not_fail_change(
        self, session, deterministic_clock, stocked, test_actor_id, captured_logs
    ):
        coordinator = PerpetualInventoryCoordinator(
            session, clock=deterministic_clock, events=EventDispatcher(_FailingSink())
        )

        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("1")), test_actor_id
        )

        assert result.level.current_level == Decimal("9")
        failures = [r for r in captured_logs() if r["message"] == "event_delivery_failed"]
        assert failures and failures[0]["event_name"] == notifications.LEVEL_CHANGED


class TestBatchConsumption:

    def test_sale_draws_down_named_batch(self, coordinator, receive, test_actor_id):
        batch, _ = receive("B-1", "10", "5", date(2024, 1, 1))

        coordinator.update_perpetual_inventory(
            StockChange(batch.key, MovementType.SALE, Decimal("4"), batch_number="B-1"),
            test_actor_id,
        )

        assert coordinator.batches.find(batch.key, "B-1").current_quantity == Decimal("6")

    def test_selling_whole_batch_marks_it_consumed(self, coordinator, receive, test_actor_id):
        batch, _ = receive("B-1", "3", "5", date(2024, 1, 1))

        coordinator.update_perpetual_inventory(
            StockChange(batch.key, MovementType.SALE, Decimal("3"), batch_number="B-1"),
            test_actor_id,
        )

        assert coordinator.batches.find(batch.key, "B-1").status is BatchStatus.CONSUMED

    def test_untracked_batch_number_is_logged(
        self, coordinator, stocked, test_actor_id, captured_logs
    ):
        result = coordinator.update_perpetual_inventory(
            StockChange(stocked, MovementType.SALE, Decimal("1"), batch_number="UNKNOWN"),
            test_actor_id,
        )

        assert result.movement.batch_number == "UNKNOWN"
        assert any(r["message"] == "movement_batch_untracked" for r in captured_logs())

    def test_suggest_picks_uses_configured_order(self, coordinator, receive):
        receive("LATE-EXPIRY", "5", "1", date(2024, 1, 1), expiry_date=date(2024, 12, 1))
        receive("EARLY-EXPIRY", "5", "1", date(2024, 1, 2), expiry_date=date(2024, 3, 1))
        key = StockKey(TENANT, "P-1", "WH-A")

        default_plan = coordinator.suggest_picks(key, Decimal("2"))
        fifo_plan = coordinator.suggest_picks(key, Decimal("2"), ConsumptionOrder.FIFO)

        assert default_plan.takes[0].batch_number == "EARLY-EXPIRY"
        assert fifo_plan.takes[0].batch_number == "LATE-EXPIRY"


class TestRegisterInventoryLevel:

    def test_without_stock_records_no_movement(self, coordinator, test_actor_id):
        key = StockKey(TENANT, "P-9", "WH-A")
        result = coordinator.register_inventory_level(LevelRegistration(key=key), test_actor_id)

        assert result.movement is None
        assert result.applied is False
        assert result.level.key == key
        assert result.level.current_level == 0
        assert coordinator.ledger.history(key) == []

    def test_opening_stock_posted_as_adjustment(self, coordinator, test_actor_id):
        key = StockKey(TENANT, "P-9", "WH-A")
        result = coordinator.register_inventory_level(
            LevelRegistration(key=key, initial_quantity=Decimal("25"), average_cost=Decimal("4")),
            test_actor_id,
        )

        assert result.movement.movement_type is MovementType.ADJUSTMENT
        assert result.movement.reason is AdjustmentReason.OTHER
        assert result.movement.previous_level == 0
        assert result.applied is True
        assert result.level.current_level == Decimal("25")
        assert result.level.average_cost == Decimal("4")

    def test_duplicate_rejected(self, coordinator, stocked, test_actor_id):
        with pytest.raises(DuplicateInventoryLevelError):
            coordinator.register_inventory_level(LevelRegistration(key=stocked), test_actor_id)


class TestReceiveBatch:

    def test_receipt_posts_purchase_and_keeps_batch_full(self, coordinator, receive):
        batch, result = receive("B-1", "10", "5", date(2024, 1, 1))

        assert result.movement.movement_type is MovementType.PURCHASE
        assert result.movement.batch_number == "B-1"
        assert result.movement.reference_id == str(batch.id)
        assert result.level.current_level == Decimal("10")
        assert coordinator.batches.find(batch.key, "B-1").current_quantity == Decimal("10")

    def test_receipts_move_average_cost(self, coordinator, receive):
        receive("B-1", "10", "5", date(2024, 1, 1))
        _, result = receive("B-2", "10", "7", date(2024, 1, 2))

        assert result.level.current_level == Decimal("20")
        assert result.level.average_cost == Decimal("6")


class TestFulfilReservation:

    def test_fulfilment_ships_reserved_quantity(self, coordinator, stocked, test_actor_id):
        reservation = coordinator.reservations.reserve(
            stocked, Decimal("4"), "order", "SO-1", test_actor_id
        )

        result = coordinator.fulfil_reservation(reservation.id, test_actor_id)

        assert result.movement.movement_type is MovementType.SALE
        assert result.movement.quantity == Decimal("-4")
        assert result.movement.reference_id == "SO-1"
        assert result.level.current_level == Decimal("6")
        assert result.level.reserved_level == 0
        assert result.level.available_level == Decimal("6")

    def test_fully_reserved_stock_can_be_fulfilled(self, coordinator, stocked, test_actor_id):
        reservation = coordinator.reservations.reserve(
            stocked, Decimal("10"), "order", "SO-1", test_actor_id
        )

        result = coordinator.fulfil_reservation(reservation.id, test_actor_id)

        assert result.level.current_level == 0
        assert result.level.reserved_level == 0

    def test_inbound_type_rejected(self, coordinator, stocked, test_actor_id):
        reservation = coordinator.reservations.reserve(
            stocked, Decimal("1"), "order", "SO-1", test_actor_id
        )

        with pytest.raises(ValueError):
            coordinator.fulfil_reservation(
                reservation.id, test_actor_id, movement_type=MovementType.PURCHASE
            )


class TestBatchLifecycleEvents:

    def test_recall_publishes_once(self, coordinator, receive, test_actor_id, event_sink):
        receive("LOT-7", "10", "5", date(2024, 1, 1))
        receive("LOT-7", "4", "5", date(2024, 1, 1), location_id="WH-B")
        event_sink.clear()

        recalled = coordinator.recall_batch(TENANT, "LOT-7", test_actor_id)
        coordinator.recall_batch(TENANT, "LOT-7", test_actor_id)

        assert len(recalled) == 2
        locations = sorted(p["location_id"] for p in event_sink.named(notifications.BATCH_RECALLED))
        assert locations == ["WH-A", "WH-B"]

    def test_expiry_publishes_expired_batches(self, coordinator, receive, test_actor_id, event_sink):
        receive("OLD", "10", "5", date(2024, 1, 1), expiry_date=date(2024, 1, 15))
        receive("FRESH", "10", "5", date(2024, 1, 1), expiry_date=date(2024, 6, 1))
        event_sink.clear()

        expired = coordinator.expire_batches(TENANT, test_actor_id, as_of=date(2024, 2, 1))

        assert [b.batch_number for b in expired] == ["OLD"]
        [payload] = event_sink.named(notifications.BATCH_EXPIRED)
        assert payload["batch_number"] == "OLD"
        assert payload["expiry_date"] == date(2024, 1, 15)

    def test_expiry_defaults_to_clock_date(self, coordinator, receive, test_actor_id):
        receive("OLD", "10", "5", date(2023, 12, 1), expiry_date=date(2023, 12, 31))

        assert [b.batch_number for b in coordinator.expire_batches(TENANT, test_actor_id)] == [
            "OLD"
        ]


class TestAnalyseVariance:

    def test_adjustments_grouped_by_reason(self, coordinator, stocked, test_actor_id):
        for quantity, reason in (
            ("-2", AdjustmentReason.DAMAGED_GOODS),
            ("-1", AdjustmentReason.DAMAGED_GOODS),
            ("3", AdjustmentReason.SUPPLIER_ERROR),
        ):
            coordinator.update_perpetual_inventory(
                StockChange(
                    stocked,
                    MovementType.ADJUSTMENT,
                    Decimal(quantity),
                    unit_cost=Decimal("2"),
                    reason=reason,
                ),
                test_actor_id,
            )

        analysis = coordinator.analyse_variance(TENANT, "WH-A")

        # Opening stock is an adjustment too.
        assert analysis.total_adjustments == 4
        assert analysis.most_common_reason == AdjustmentReason.DAMAGED_GOODS.value
