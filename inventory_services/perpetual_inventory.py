"""
inventory_services.perpetual_inventory -- The perpetual inventory coordinator.

Responsibility:
    The single entry point for stock changes.  Validates a requested change
    against the locked level, appends the movement, applies it to the level
    and the named batch, then publishes change notifications and drops
    stale cache entries.  Composes the same steps into approvals, level
    registration, batch receipts, count reconciliation, transfers and
    reservation fulfilment, and reports the perpetual inventory status of
    a location.

Architecture position:
    Services -- stateful orchestration over kernel services and the pure
    variance engine.

Invariants enforced:
    - The movement is appended before the level changes, and both happen in
      one SAVEPOINT: a failure at any step leaves neither.
    - Only adjustment and recount may drive a level below zero.
    - Approval requests never move the level; approving one posts a new
      applied movement re-derived against the present level.
    - Transfers lock both level rows in location order.
    - Events are published and caches invalidated only after the SAVEPOINT
      has been released.

Failure modes:
    - Kernel errors propagate unchanged after the SAVEPOINT rolls back.
    - Event sink and cache failures are logged and never fail the change.

Audit relevance:
    Every entry point logs one ``*_completed`` record carrying the ids of
    the movements it wrote.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_config.settings import EngineSettings
from inventory_engines.valuation.cost_layers import PickPlan
from inventory_engines.variance import (
    VarianceAnalysis,
    accuracy_percentage,
    analyse_adjustments,
    compute_count_variance,
)
from inventory_kernel.db.types import ZERO, round_money
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BatchReceipt,
    BatchRecord,
    InventoryLevelRecord,
    LevelRegistration,
    MovementRecord,
    NewMovement,
    PerpetualUpdateResult,
    ReconciliationRequest,
    ReconciliationResult,
    ReconciliationSummary,
    ReconciliationVariance,
    StockChange,
    TransferRequest,
    TransferResult,
)
from inventory_kernel.domain.values import (
    AdjustmentReason,
    ConsumptionOrder,
    Direction,
    MovementType,
    StockKey,
    signed_quantity,
)
from inventory_kernel.exceptions import (
    InsufficientAvailabilityError,
    InvalidQuantityError,
    InvalidTransferError,
    NegativeInventoryError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_level import InventoryLevelModel
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.batch_tracker import BatchTracker
from inventory_kernel.services.level_store import LevelStore
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.services.reservation_manager import ReservationManager
from inventory_services import notifications
from inventory_services.cache import (
    CacheBackend,
    CacheKey,
    cache_get,
    cache_set,
    invalidate_stock,
)
from inventory_services.notifications import EventDispatcher

logger = get_logger("services.perpetual_inventory")

APPROVAL_REFERENCE = "approval"
TRANSFER_REFERENCE = "transfer"
RECONCILIATION_REFERENCE = "reconciliation"
RESERVATION_REFERENCE = "reservation"
BATCH_RECEIPT_REFERENCE = "batch_receipt"


# ---------------------------------------------------------------------------
# Status report types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockAlert:
    alert_type: str  # negative_inventory | low_stock | stale_inventory
    severity: str
    product_id: str
    variant_id: str | None
    description: str
    value: Decimal


@dataclass(frozen=True)
class Recommendation:
    recommendation_type: str  # investigate | reorder | cycle_count
    product_id: str
    variant_id: str | None
    description: str
    priority: str


@dataclass(frozen=True)
class StatusSummary:
    total_products: int
    total_value: Decimal
    last_reconciliation: datetime | None
    accuracy_score: Decimal
    pending_adjustments: int


@dataclass(frozen=True)
class PerpetualInventoryStatus:
    tenant_id: str
    location_id: str
    as_of: datetime
    summary: StatusSummary
    alerts: tuple[StockAlert, ...]
    recommendations: tuple[Recommendation, ...]


@dataclass
class _Outbox:
    """Events and cache invalidations held until the SAVEPOINT is released."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    touched: set[tuple[str, str, str]] = field(default_factory=set)

    def add(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, payload))

    def touch(self, key: StockKey) -> None:
        self.touched.add((key.tenant_id, key.product_id, key.location_id))


def _level_payload(
    level: InventoryLevelModel, movement: MovementRecord, actor_id: UUID
) -> dict[str, Any]:
    key = movement.key
    return {
        "tenant_id": key.tenant_id,
        "product_id": key.product_id,
        "variant_id": key.variant_id,
        "location_id": key.location_id,
        "movement_id": str(movement.id),
        "movement_type": movement.movement_type.value,
        "previous_level": movement.previous_level,
        "new_level": movement.new_level,
        "available_level": level.available_level,
        "actor_id": str(actor_id),
    }


class PerpetualInventoryCoordinator:
    """
    Orchestrates every stock change across ledger, levels and batches.

    Contract:
        Receives a Session and optional clock, settings, event dispatcher
        and cache.  Flushes within the caller's transaction and never
        commits; multi-row operations run inside a SAVEPOINT.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        events: EventDispatcher | None = None,
        cache: CacheBackend | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._events = events or EventDispatcher()
        self._cache = cache

        self.levels = LevelStore(session, self._clock)
        self.ledger = MovementLedger(session, self._clock)
        self.batches = BatchTracker(session, self._clock)
        self.reservations = ReservationManager(session, self._clock, self.levels)
        self._movements = MovementSelector(session)
        self._inventory = InventorySelector(session)

    # ------------------------------------------------------------------
    # Unit-of-work plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[_Outbox]:
        outbox = _Outbox()
        savepoint = self._session.begin_nested()
        try:
            yield outbox
        except Exception:
            savepoint.rollback()
            logger.warning("operation_rolled_back", extra={"operation": operation})
            raise
        savepoint.commit()

        for tenant_id, product_id, location_id in sorted(outbox.touched):
            invalidate_stock(self._cache, tenant_id, product_id, location_id)
        for event_name, payload in outbox.events:
            self._events.publish(event_name, payload)

    def _post(
        self,
        outbox: _Outbox,
        level: InventoryLevelModel,
        key: StockKey,
        movement_type: MovementType,
        delta: Decimal,
        actor_id: UUID,
        *,
        unit_cost: Decimal | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        reference_number: str | None = None,
        batch_number: str | None = None,
        reason: AdjustmentReason | None = None,
        notes: str | None = None,
        requires_approval: bool = False,
        adjust_batch: bool = True,
    ) -> MovementRecord:
        """Append one movement against a locked level and, unless it is a request, apply it."""
        previous = level.current_level
        new_level = previous + delta
        if new_level < 0 and not movement_type.allows_negative_result:
            logger.warning(
                "negative_inventory_rejected",
                extra={
                    "product_id": key.product_id,
                    "location_id": key.location_id,
                    "current_level": previous,
                    "requested_change": delta,
                    "movement_type": movement_type.value,
                },
            )
            raise NegativeInventoryError(key.product_id, key.location_id, previous, delta)
        below_reserved = delta < 0 and new_level < level.reserved_level
        if below_reserved and not movement_type.allows_negative_result:
            available = previous - level.reserved_level
            logger.warning(
                "reserved_stock_protected",
                extra={
                    "product_id": key.product_id,
                    "location_id": key.location_id,
                    "available": available,
                    "requested_change": delta,
                    "movement_type": movement_type.value,
                },
            )
            raise InsufficientAvailabilityError(key.product_id, key.location_id, available, -delta)

        now = self._clock.now_utc()
        sequence = self.levels.allocate_sequence(level)
        movement = self.ledger.append(
            NewMovement(
                key=key,
                movement_type=movement_type,
                quantity=delta,
                previous_level=previous,
                new_level=new_level,
                unit_cost=unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                batch_number=batch_number,
                reason=reason,
                notes=notes,
                requires_approval=requires_approval,
            ),
            actor_id,
            sequence,
            occurred_at=now,
        )
        if requires_approval:
            return movement

        received_cost = unit_cost if movement_type.direction is not Direction.OUTBOUND else None
        self.levels.apply_level(level, new_level, actor_id, now, received_cost=received_cost)
        if batch_number and adjust_batch:
            self._adjust_batch(key, batch_number, delta, actor_id)

        outbox.touch(key)
        outbox.add(notifications.LEVEL_CHANGED, _level_payload(level, movement, actor_id))
        if new_level <= level.reorder_point:
            outbox.add(
                notifications.LOW_STOCK,
                {
                    "tenant_id": key.tenant_id,
                    "product_id": key.product_id,
                    "variant_id": key.variant_id,
                    "location_id": key.location_id,
                    "current_level": new_level,
                    "reorder_point": level.reorder_point,
                    "reorder_quantity": level.reorder_quantity,
                },
            )
        return movement

    def _adjust_batch(
        self, key: StockKey, batch_number: str, delta: Decimal, actor_id: UUID
    ) -> None:
        if self.batches.find(key, batch_number) is None:
            logger.warning(
                "movement_batch_untracked",
                extra={"batch_number": batch_number, "location_id": key.location_id},
            )
            return
        self.batches.adjust_quantity(key, batch_number, delta, actor_id)

    # ------------------------------------------------------------------
    # Stock changes
    # ------------------------------------------------------------------

    def update_perpetual_inventory(
        self, change: StockChange, actor_id: UUID
    ) -> PerpetualUpdateResult:
        """
        Record one stock change and apply it to the level.

        With ``requires_approval`` the movement is recorded as a request and
        the level is left untouched until ``approve_movement``.
        """
        if change.quantity == 0:
            raise InvalidQuantityError(change.quantity, "movement quantity must be non-zero")

        key = change.key
        delta = signed_quantity(change.movement_type, change.quantity)
        with self._atomic("update_perpetual_inventory") as outbox:
            level = self.levels.lock(key)
            movement = self._post(
                outbox,
                level,
                key,
                change.movement_type,
                delta,
                actor_id,
                unit_cost=change.unit_cost,
                reference_type=change.reference_type,
                reference_id=change.reference_id,
                reference_number=change.reference_number,
                batch_number=change.batch_number,
                reason=change.reason,
                notes=change.notes,
                requires_approval=change.requires_approval,
            )
            record = InventoryLevelRecord.from_model(level)

        applied = not change.requires_approval
        logger.info(
            "perpetual_update_completed",
            extra={
                "movement_id": str(movement.id),
                "movement_type": change.movement_type.value,
                "applied": applied,
                "new_level": record.current_level,
            },
        )
        return PerpetualUpdateResult(
            movement=movement,
            level=record,
            applied=applied,
            low_stock=applied and record.is_low_stock,
        )

    def approve_movement(self, movement_id: UUID, approver_id: UUID) -> PerpetualUpdateResult:
        """Stamp a pending request approved and post it against the present level."""
        with self._atomic("approve_movement") as outbox:
            request = self.ledger.stamp_approval(movement_id, approver_id)
            level = self.levels.lock(request.key)
            movement = self._post(
                outbox,
                level,
                request.key,
                request.movement_type,
                request.quantity,
                approver_id,
                unit_cost=request.unit_cost,
                reference_type=APPROVAL_REFERENCE,
                reference_id=str(request.id),
                reference_number=request.reference_number,
                batch_number=request.batch_number,
                reason=request.reason,
                notes=request.notes,
            )
            outbox.add(
                notifications.MOVEMENT_APPROVED,
                {
                    "tenant_id": request.key.tenant_id,
                    "request_id": str(request.id),
                    "movement_id": str(movement.id),
                    "approved_by": str(approver_id),
                    "quantity": request.quantity,
                },
            )
            record = InventoryLevelRecord.from_model(level)

        logger.info(
            "movement_approval_completed",
            extra={"request_id": str(movement_id), "movement_id": str(movement.id)},
        )
        return PerpetualUpdateResult(
            movement=movement, level=record, applied=True, low_stock=record.is_low_stock
        )

    def reject_movement(self, movement_id: UUID, rejecter_id: UUID) -> MovementRecord:
        """Stamp a pending request rejected. It stays on the ledger unapplied."""
        with self._atomic("reject_movement"):
            return self.ledger.stamp_rejection(movement_id, rejecter_id)

    # ------------------------------------------------------------------
    # Registration and receipts
    # ------------------------------------------------------------------

    def register_inventory_level(
        self, registration: LevelRegistration, actor_id: UUID
    ) -> PerpetualUpdateResult:
        """
        Create the level for a new key.

        A positive initial quantity is recorded as an establishing adjustment
        (0 -> initial, reason ``other``). Without one the result carries no
        movement and is not applied.
        """
        key = registration.key
        with self._atomic("register_inventory_level") as outbox:
            self.levels.create(registration, actor_id, self._settings.default_valuation_method)
            level = self.levels.lock(key)
            outbox.touch(key)
            movement = None
            if registration.initial_quantity > 0:
                movement = self._post(
                    outbox,
                    level,
                    key,
                    MovementType.ADJUSTMENT,
                    registration.initial_quantity,
                    actor_id,
                    unit_cost=registration.average_cost or None,
                    reason=AdjustmentReason.OTHER,
                    notes="Initial inventory",
                )
            record = InventoryLevelRecord.from_model(level)

        logger.info(
            "inventory_level_registered",
            extra={"level_id": str(record.id), "initial_quantity": registration.initial_quantity},
        )
        applied = movement is not None
        return PerpetualUpdateResult(
            movement=movement,
            level=record,
            applied=applied,
            low_stock=applied and record.is_low_stock,
        )

    def receive_batch(
        self, receipt: BatchReceipt, actor_id: UUID
    ) -> tuple[BatchRecord, PerpetualUpdateResult]:
        """Register a batch and record its purchase movement atomically."""
        key = receipt.key
        with self._atomic("receive_batch") as outbox:
            level, _ = self.levels.ensure(key, actor_id, self._settings.default_valuation_method)
            batch = self.batches.register(receipt, actor_id)
            movement = self._post(
                outbox,
                level,
                key,
                MovementType.PURCHASE,
                receipt.quantity,
                actor_id,
                unit_cost=receipt.unit_cost,
                reference_type=receipt.reference_type or BATCH_RECEIPT_REFERENCE,
                reference_id=receipt.reference_id or str(batch.id),
                batch_number=receipt.batch_number,
                notes=receipt.notes,
                adjust_batch=False,
            )
            record = InventoryLevelRecord.from_model(level)

        logger.info(
            "batch_receipt_completed",
            extra={"batch_id": str(batch.id), "movement_id": str(movement.id)},
        )
        return batch, PerpetualUpdateResult(
            movement=movement, level=record, applied=True, low_stock=record.is_low_stock
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def perform_inventory_reconciliation(
        self, request: ReconciliationRequest, actor_id: UUID
    ) -> ReconciliationResult:
        """
        Compare counted quantities with the system and post the differences.

        Keys without a level are created at the counted quantity with an
        establishing adjustment; they are not variances.  The batch named on
        an item is recorded on its movement, not adjusted.
        """
        reconciliation_id = uuid4()
        reason = request.reconciliation_type.adjustment_reason
        note = f"Reconciliation {reconciliation_id}"
        if request.notes:
            note = f"{note}. {request.notes}"

        variances: list[ReconciliationVariance] = []
        adjustment_ids: list[UUID] = []
        created: list[StockKey] = []

        with self._atomic("perform_inventory_reconciliation") as outbox:
            now = self._clock.now_utc()
            for item in request.items:
                key = request.key_for(item)
                level = self.levels.lock_or_none(key)

                if level is None:
                    level, _ = self.levels.ensure(
                        key, actor_id, self._settings.default_valuation_method
                    )
                    created.append(key)
                    if item.expected_quantity > 0:
                        movement = self._post(
                            outbox,
                            level,
                            key,
                            MovementType.ADJUSTMENT,
                            item.expected_quantity,
                            actor_id,
                            reference_type=RECONCILIATION_REFERENCE,
                            reference_id=str(reconciliation_id),
                            batch_number=item.batch_number,
                            reason=reason,
                            notes=f"Initial inventory from reconciliation {reconciliation_id}",
                            adjust_batch=False,
                        )
                        adjustment_ids.append(movement.id)
                    self.levels.mark_counted(level, actor_id, now)
                    continue

                counted = compute_count_variance(
                    system_quantity=level.current_level,
                    expected_quantity=item.expected_quantity,
                    unit_cost=level.average_cost,
                    epsilon=self._settings.variance_epsilon,
                )
                if counted.is_significant:
                    movement = self._post(
                        outbox,
                        level,
                        key,
                        MovementType.ADJUSTMENT,
                        counted.variance,
                        actor_id,
                        unit_cost=counted.unit_cost,
                        reference_type=RECONCILIATION_REFERENCE,
                        reference_id=str(reconciliation_id),
                        batch_number=item.batch_number,
                        reason=reason,
                        notes=item.notes or note,
                        adjust_batch=False,
                    )
                    adjustment_ids.append(movement.id)
                    variances.append(
                        ReconciliationVariance(
                            key=key,
                            system_quantity=counted.system_quantity,
                            expected_quantity=counted.expected_quantity,
                            variance=counted.variance,
                            unit_cost=counted.unit_cost,
                            variance_value=counted.variance_value,
                            movement_id=movement.id,
                            batch_number=item.batch_number,
                        )
                    )
                    outbox.add(
                        notifications.VARIANCE_DETECTED,
                        {
                            "tenant_id": key.tenant_id,
                            "product_id": key.product_id,
                            "variant_id": key.variant_id,
                            "location_id": key.location_id,
                            "system_quantity": counted.system_quantity,
                            "expected_quantity": counted.expected_quantity,
                            "variance": counted.variance,
                            "variance_value": counted.variance_value,
                        },
                    )
                self.levels.mark_counted(level, actor_id, now)

            total_variance_value = sum((abs(v.variance_value) for v in variances), ZERO)
            summary = ReconciliationSummary(
                total_items=len(request.items),
                items_with_variance=len(variances),
                total_variance_value=round_money(
                    total_variance_value, self._settings.money_places
                ),
                accuracy_percentage=accuracy_percentage(len(request.items), len(variances)),
            )
            outbox.add(
                notifications.RECONCILIATION_COMPLETED,
                {
                    "tenant_id": request.tenant_id,
                    "reconciliation_id": str(reconciliation_id),
                    "location_id": request.location_id,
                    "accuracy_percentage": summary.accuracy_percentage,
                    "items_with_variance": summary.items_with_variance,
                    "total_variance_value": summary.total_variance_value,
                },
            )
            # The status report reads last_count_at, so drop it even when nothing moved.
            for key in (request.key_for(i) for i in request.items):
                outbox.touch(key)

        logger.info(
            "reconciliation_completed",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "location_id": request.location_id,
                "total_items": summary.total_items,
                "items_with_variance": summary.items_with_variance,
                "accuracy_percentage": summary.accuracy_percentage,
            },
        )
        return ReconciliationResult(
            reconciliation_id=reconciliation_id,
            location_id=request.location_id,
            reconciliation_type=request.reconciliation_type,
            summary=summary,
            variances=tuple(variances),
            adjustment_movement_ids=tuple(adjustment_ids),
            created_levels=tuple(created),
            completed_at=now,
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(self, request: TransferRequest, actor_id: UUID) -> TransferResult:
        """
        Move stock between two locations as one atomic unit.

        A missing destination level is created with a zero baseline inside
        the same unit.  With a batch number the batch's stock moves too: the
        source batch is drawn down and the destination batch of the same
        number is topped up or registered with the source's cost and dates.
        """
        if request.from_location_id == request.to_location_id:
            raise InvalidTransferError(
                request.from_location_id, request.to_location_id, "same source and destination"
            )
        if request.quantity <= 0:
            raise InvalidTransferError(
                request.from_location_id, request.to_location_id, "quantity must be positive"
            )

        source_key = request.source_key()
        destination_key = request.destination_key()
        reference_id = request.reference_id or str(uuid4())

        with self._atomic("transfer") as outbox:
            locked: dict[str, InventoryLevelModel] = {}
            destination_created = False
            for location_id in sorted((request.from_location_id, request.to_location_id)):
                if location_id == request.from_location_id:
                    locked[location_id] = self.levels.lock(source_key)
                else:
                    locked[location_id], destination_created = self.levels.ensure(
                        destination_key, actor_id, self._settings.default_valuation_method
                    )
            source = locked[request.from_location_id]
            destination = locked[request.to_location_id]

            if source.available_level < request.quantity:
                logger.warning(
                    "transfer_insufficient_availability",
                    extra={
                        "product_id": request.product_id,
                        "from_location_id": request.from_location_id,
                        "available": source.available_level,
                        "requested": request.quantity,
                    },
                )
                raise InsufficientAvailabilityError(
                    request.product_id,
                    request.from_location_id,
                    source.available_level,
                    request.quantity,
                )

            unit_cost = source.average_cost
            outbound = self._post(
                outbox,
                source,
                source_key,
                MovementType.TRANSFER_OUT,
                -request.quantity,
                actor_id,
                unit_cost=unit_cost,
                reference_type=TRANSFER_REFERENCE,
                reference_id=reference_id,
                reference_number=request.reference_number,
                batch_number=request.batch_number,
                notes=request.notes,
            )
            inbound = self._post(
                outbox,
                destination,
                destination_key,
                MovementType.TRANSFER_IN,
                request.quantity,
                actor_id,
                unit_cost=unit_cost,
                reference_type=TRANSFER_REFERENCE,
                reference_id=reference_id,
                reference_number=request.reference_number,
                batch_number=request.batch_number,
                notes=request.notes,
                adjust_batch=False,
            )
            if request.batch_number:
                self._receive_transferred_batch(request, actor_id)

            outbox.add(
                notifications.TRANSFER_COMPLETED,
                {
                    "tenant_id": request.tenant_id,
                    "product_id": request.product_id,
                    "variant_id": source_key.variant_id,
                    "from_location_id": request.from_location_id,
                    "to_location_id": request.to_location_id,
                    "quantity": request.quantity,
                    "reference_id": reference_id,
                    "actor_id": str(actor_id),
                },
            )
            source_record = InventoryLevelRecord.from_model(source)
            destination_record = InventoryLevelRecord.from_model(destination)

        logger.info(
            "transfer_completed",
            extra={
                "reference_id": reference_id,
                "product_id": request.product_id,
                "from_location_id": request.from_location_id,
                "to_location_id": request.to_location_id,
                "quantity": request.quantity,
                "destination_created": destination_created,
            },
        )
        return TransferResult(
            reference_id=reference_id,
            outbound=outbound,
            inbound=inbound,
            source=source_record,
            destination=destination_record,
            destination_created=destination_created,
        )

    def _receive_transferred_batch(self, request: TransferRequest, actor_id: UUID) -> None:
        source_batch = self.batches.find(request.source_key(), request.batch_number)
        if source_batch is None:
            return
        destination_key = request.destination_key()
        if self.batches.find(destination_key, request.batch_number) is not None:
            self.batches.adjust_quantity(
                destination_key, request.batch_number, request.quantity, actor_id
            )
            return
        self.batches.register(
            BatchReceipt(
                key=destination_key,
                batch_number=source_batch.batch_number,
                quantity=request.quantity,
                unit_cost=source_batch.unit_cost,
                received_date=source_batch.received_date,
                expiry_date=source_batch.expiry_date,
                lot_number=source_batch.lot_number,
                quality_status=source_batch.quality_status,
                supplier_id=source_batch.supplier_id,
                supplier_batch_number=source_batch.supplier_batch_number,
            ),
            actor_id,
            original_quantity=source_batch.original_quantity,
        )

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def fulfil_reservation(
        self,
        reservation_id: UUID,
        actor_id: UUID,
        movement_type: MovementType = MovementType.SALE,
        reference_number: str | None = None,
    ) -> PerpetualUpdateResult:
        """Consume a reservation and ship its quantity in one atomic unit."""
        if movement_type.direction is not Direction.OUTBOUND:
            raise ValueError(f"Fulfilment needs an outbound movement type, got {movement_type.value}")

        with self._atomic("fulfil_reservation") as outbox:
            reservation = self.reservations.consume(reservation_id, actor_id)
            level = self.levels.lock(reservation.key)
            movement = self._post(
                outbox,
                level,
                reservation.key,
                movement_type,
                -reservation.quantity,
                actor_id,
                reference_type=RESERVATION_REFERENCE,
                reference_id=reservation.reference_id,
                reference_number=reference_number,
                batch_number=reservation.batch_number,
                notes=f"Fulfils reservation {reservation.id}",
            )
            record = InventoryLevelRecord.from_model(level)

        logger.info(
            "reservation_fulfilled",
            extra={"reservation_id": str(reservation_id), "movement_id": str(movement.id)},
        )
        return PerpetualUpdateResult(
            movement=movement, level=record, applied=True, low_stock=record.is_low_stock
        )

    # ------------------------------------------------------------------
    # Batch lifecycle events
    # ------------------------------------------------------------------

    def suggest_picks(
        self, key: StockKey, quantity: Decimal, order: ConsumptionOrder | None = None
    ) -> PickPlan:
        """Plan which batches to pick from; the configured pick order by default."""
        return self.batches.suggest_picks(key, quantity, order or self._settings.default_pick_order)

    def recall_batch(
        self, tenant_id: str, batch_number: str, actor_id: UUID
    ) -> list[BatchRecord]:
        """Recall a batch number everywhere; one event per batch that transitioned."""
        with self._atomic("recall_batch") as outbox:
            recalled = self.batches.recall(tenant_id, batch_number, actor_id)
            for batch in recalled:
                outbox.touch(batch.key)
                outbox.add(
                    notifications.BATCH_RECALLED,
                    {
                        "tenant_id": tenant_id,
                        "batch_id": str(batch.id),
                        "batch_number": batch.batch_number,
                        "product_id": batch.key.product_id,
                        "location_id": batch.key.location_id,
                        "quantity": batch.current_quantity,
                    },
                )
        return recalled

    def expire_batches(
        self, tenant_id: str, actor_id: UUID, as_of: date | None = None
    ) -> list[BatchRecord]:
        as_of = as_of or self._clock.today()
        with self._atomic("expire_batches") as outbox:
            expired = self.batches.expire_batches(tenant_id, as_of, actor_id)
            for batch in expired:
                outbox.touch(batch.key)
                outbox.add(
                    notifications.BATCH_EXPIRED,
                    {
                        "tenant_id": tenant_id,
                        "batch_id": str(batch.id),
                        "batch_number": batch.batch_number,
                        "product_id": batch.key.product_id,
                        "location_id": batch.key.location_id,
                        "expiry_date": batch.expiry_date,
                        "quantity": batch.current_quantity,
                    },
                )
        return expired

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def analyse_variance(
        self,
        tenant_id: str,
        location_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> VarianceAnalysis:
        samples = self._movements.adjustment_samples(tenant_id, location_id, start, end)
        return analyse_adjustments(samples)

    def get_perpetual_inventory_status(
        self, tenant_id: str, location_id: str
    ) -> PerpetualInventoryStatus:
        cache_key = CacheKey.status(tenant_id, location_id)
        cached = cache_get(self._cache, cache_key)
        if cached is not None:
            return cached

        status = self._build_status(tenant_id, location_id)
        cache_set(self._cache, cache_key, status, self._settings.cache_ttl_seconds)
        return status

    def _build_status(self, tenant_id: str, location_id: str) -> PerpetualInventoryStatus:
        as_of = self._clock.now_utc()
        levels = self._inventory.levels(tenant_id, location_id)

        alerts: list[StockAlert] = []
        recommendations: list[Recommendation] = []
        total_value = ZERO
        for level in levels:
            total_value += level.current_level * level.average_cost
            product_id, variant_id = level.key.product_id, level.key.variant_id

            if level.current_level <= 0:
                alerts.append(
                    StockAlert(
                        "negative_inventory",
                        "high",
                        product_id,
                        variant_id,
                        f"Product has negative or zero inventory: {level.current_level}",
                        level.current_level,
                    )
                )
                recommendations.append(
                    Recommendation(
                        "investigate",
                        product_id,
                        variant_id,
                        "Investigate negative inventory and perform cycle count",
                        "high",
                    )
                )
            elif level.current_level <= level.reorder_point:
                alerts.append(
                    StockAlert(
                        "low_stock",
                        "medium",
                        product_id,
                        variant_id,
                        f"Product below reorder point: {level.current_level} <= {level.reorder_point}",
                        level.current_level,
                    )
                )
                recommendations.append(
                    Recommendation(
                        "reorder",
                        product_id,
                        variant_id,
                        f"Reorder {level.reorder_quantity} units",
                        "medium",
                    )
                )

            if level.last_movement_at is not None:
                idle_days = (as_of - level.last_movement_at).days
                if idle_days > self._settings.stale_inventory_days:
                    alerts.append(
                        StockAlert(
                            "stale_inventory",
                            "low",
                            product_id,
                            variant_id,
                            f"No movement for {idle_days} days",
                            Decimal(idle_days),
                        )
                    )
                    recommendations.append(
                        Recommendation(
                            "cycle_count",
                            product_id,
                            variant_id,
                            "Perform cycle count to verify accuracy",
                            "low",
                        )
                    )

        window_start = as_of - timedelta(days=self._settings.status_adjustment_window_days)
        adjusted = self._movements.adjusted_product_count(tenant_id, location_id, window_start)
        pending = self.ledger.find_pending_approval(tenant_id, location_id)

        return PerpetualInventoryStatus(
            tenant_id=tenant_id,
            location_id=location_id,
            as_of=as_of,
            summary=StatusSummary(
                total_products=len(levels),
                total_value=round_money(total_value, self._settings.money_places),
                last_reconciliation=self._inventory.last_count_at(tenant_id, location_id),
                accuracy_score=accuracy_percentage(len(levels), adjusted),
                pending_adjustments=len(pending),
            ),
            alerts=tuple(alerts),
            recommendations=tuple(recommendations),
        )
