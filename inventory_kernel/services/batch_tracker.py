"""
BatchTracker -- receipt batches (lots) and their lifecycle.

Responsibility:
    Registers batches, consumes and adjusts batch quantities, orders
    pickable batches FIFO/LIFO/FEFO, recalls a batch number across every
    location, and sweeps expired batches.

Architecture position:
    Kernel > Services.  Ordering and pick planning delegate to the pure
    functions in inventory_engines.valuation.  Never commits.

Invariants enforced:
    - 0 <= current_quantity <= original_quantity.
    - Only active batches are consumed; reaching zero marks them consumed.
    - expired and recalled are terminal: no transition leaves them.
    - Recall is idempotent: a second recall of the same number changes
      nothing and reports no transitions.

Failure modes:
    - DuplicateBatchError for a batch number already used at a location.
    - BatchNotFoundError, BatchNotConsumableError,
      InsufficientBatchQuantityError, InvalidBatchQuantityError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from inventory_engines.valuation.cost_layers import (
    CostLayer,
    PickPlan,
    order_layers,
    plan_picks,
)
from inventory_kernel.domain.dtos import BatchReceipt, BatchRecord
from inventory_kernel.domain.values import (
    BatchStatus,
    ConsumptionOrder,
    QualityStatus,
    StockKey,
)
from inventory_kernel.exceptions import (
    BatchNotConsumableError,
    BatchNotFoundError,
    DuplicateBatchError,
    InsufficientBatchQuantityError,
    InvalidBatchQuantityError,
    InvalidQuantityError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import BatchModel
from inventory_kernel.selectors.base import key_clause
from inventory_kernel.services.base import BaseService

logger = get_logger("services.batch_tracker")


def to_layer(batch: BatchModel | BatchRecord) -> CostLayer:
    return CostLayer(
        batch_number=batch.batch_number,
        quantity=batch.current_quantity,
        unit_cost=batch.unit_cost,
        received_date=batch.received_date,
        expiry_date=batch.expiry_date,
    )


class BatchTracker(BaseService[BatchModel]):

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        receipt: BatchReceipt,
        actor_id: UUID,
        original_quantity: Decimal | None = None,
    ) -> BatchRecord:
        """
        Create an active batch holding its full received quantity.

        original_quantity overrides the lot size for a batch that arrives
        in parts, such as a lot moved between locations by transfers.

        The insert runs in a SAVEPOINT so a unique-constraint race is
        reported as DuplicateBatchError without poisoning the caller's
        transaction.
        """
        key = receipt.key
        if self._find_by_number(key.tenant_id, key.location_id, receipt.batch_number) is not None:
            logger.warning(
                "batch_duplicate_rejected",
                extra={"batch_number": receipt.batch_number, "location_id": key.location_id},
            )
            raise DuplicateBatchError(receipt.batch_number, key.location_id)
        lot_size = receipt.quantity if original_quantity is None else original_quantity
        if lot_size < receipt.quantity:
            raise InvalidBatchQuantityError(
                receipt.batch_number, receipt.quantity, lot_size, receipt.quantity
            )

        model = BatchModel(
            tenant_id=key.tenant_id,
            product_id=key.product_id,
            variant_id=key.variant_id,
            location_id=key.location_id,
            batch_number=receipt.batch_number,
            lot_number=receipt.lot_number,
            original_quantity=lot_size,
            current_quantity=receipt.quantity,
            unit_cost=receipt.unit_cost,
            received_date=receipt.received_date,
            expiry_date=receipt.expiry_date,
            quality_status=receipt.quality_status.value,
            status=BatchStatus.ACTIVE.value,
            supplier_id=receipt.supplier_id,
            supplier_batch_number=receipt.supplier_batch_number,
            notes=receipt.notes,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(model)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateBatchError(receipt.batch_number, key.location_id) from exc
        savepoint.commit()

        logger.info(
            "batch_registered",
            extra={
                "batch_id": str(model.id),
                "batch_number": model.batch_number,
                "product_id": key.product_id,
                "location_id": key.location_id,
                "quantity": receipt.quantity,
                "unit_cost": receipt.unit_cost,
                "expiry_date": receipt.expiry_date,
            },
        )
        return BatchRecord.from_model(model)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, batch_id: UUID) -> BatchRecord:
        return BatchRecord.from_model(self._load(batch_id))

    def find(self, key: StockKey, batch_number: str) -> BatchRecord | None:
        model = self._find_by_number(key.tenant_id, key.location_id, batch_number)
        return BatchRecord.from_model(model) if model is not None else None

    def list_for_key(
        self,
        key: StockKey,
        statuses: tuple[BatchStatus, ...] = (BatchStatus.ACTIVE,),
    ) -> list[BatchRecord]:
        stmt = select(BatchModel).where(key_clause(BatchModel, key))
        if statuses:
            stmt = stmt.where(BatchModel.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(BatchModel.received_date.asc(), BatchModel.batch_number.asc())
        return [BatchRecord.from_model(m) for m in self.session.scalars(stmt)]

    def ordered(self, key: StockKey, order: ConsumptionOrder) -> list[BatchRecord]:
        """Pickable batches (active, approved quality, non-empty) in pick order."""
        pickable = {b.batch_number: b for b in self.list_for_key(key) if b.is_pickable}
        layers = order_layers((to_layer(b) for b in pickable.values()), order)
        return [pickable[layer.batch_number] for layer in layers]

    def suggest_picks(
        self, key: StockKey, quantity: Decimal, order: ConsumptionOrder
    ) -> PickPlan:
        batches = self.ordered(key, order)
        return plan_picks(layers=[to_layer(b) for b in batches], quantity=quantity, order=order)

    def expiring(self, tenant_id: str, on_or_before: date) -> list[BatchRecord]:
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.tenant_id == tenant_id,
                BatchModel.status == BatchStatus.ACTIVE.value,
                BatchModel.expiry_date.is_not(None),
                BatchModel.expiry_date <= on_or_before,
            )
            .order_by(BatchModel.expiry_date.asc(), BatchModel.batch_number.asc())
        )
        return [BatchRecord.from_model(m) for m in self.session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Quantity changes
    # ------------------------------------------------------------------

    def consume(
        self,
        batch_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BatchRecord:
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "consumption quantity must be positive")
        model = self._lock(batch_id)
        if model.status != BatchStatus.ACTIVE.value:
            raise BatchNotConsumableError(model.batch_number, model.status)
        if model.current_quantity < quantity:
            raise InsufficientBatchQuantityError(
                model.batch_number, model.current_quantity, quantity
            )

        model.current_quantity = model.current_quantity - quantity
        if model.current_quantity == 0:
            model.status = BatchStatus.CONSUMED.value
        model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "batch_consumed",
            extra={
                "batch_id": str(model.id),
                "batch_number": model.batch_number,
                "quantity": quantity,
                "remaining": model.current_quantity,
                "status": model.status,
                "reason": reason,
            },
        )
        return BatchRecord.from_model(model)

    def adjust_quantity(
        self,
        key: StockKey,
        batch_number: str,
        delta: Decimal,
        actor_id: UUID,
    ) -> BatchRecord:
        """
        Apply a level delta to the batch named on a movement.

        A consumed batch that is replenished (a return, a positive count
        correction) becomes active again; terminal batches never do.
        """
        model = self._find_by_number(key.tenant_id, key.location_id, batch_number, lock=True)
        if model is None or model.product_id != key.product_id:
            raise BatchNotFoundError(batch_number)
        if BatchStatus(model.status).is_terminal:
            raise BatchNotConsumableError(model.batch_number, model.status)

        new_quantity = model.current_quantity + delta
        if new_quantity < 0 or new_quantity > model.original_quantity:
            logger.warning(
                "batch_adjustment_out_of_range",
                extra={"batch_number": batch_number, "delta": delta},
            )
            raise InvalidBatchQuantityError(
                batch_number, model.current_quantity, model.original_quantity, delta
            )

        model.current_quantity = new_quantity
        if new_quantity == 0:
            model.status = BatchStatus.CONSUMED.value
        elif model.status == BatchStatus.CONSUMED.value:
            model.status = BatchStatus.ACTIVE.value
        model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "batch_quantity_adjusted",
            extra={
                "batch_number": batch_number,
                "delta": delta,
                "current_quantity": new_quantity,
                "status": model.status,
            },
        )
        return BatchRecord.from_model(model)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def recall(self, tenant_id: str, batch_number: str, actor_id: UUID) -> list[BatchRecord]:
        """
        Recall every active batch carrying ``batch_number``, at any location.

        Returns only the batches that transitioned on this call.
        """
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.tenant_id == tenant_id,
                BatchModel.batch_number == batch_number,
                BatchModel.status == BatchStatus.ACTIVE.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        models = list(self.session.scalars(stmt))
        for model in models:
            model.status = BatchStatus.RECALLED.value
            model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "batch_recalled",
            extra={
                "batch_number": batch_number,
                "transitioned": len(models),
                "locations": sorted(m.location_id for m in models),
            },
        )
        return [BatchRecord.from_model(m) for m in models]

    def expire_batches(self, tenant_id: str, as_of: date, actor_id: UUID) -> list[BatchRecord]:
        """Active batches with expiry_date before ``as_of`` become expired."""
        stmt = (
            select(BatchModel)
            .where(
                BatchModel.tenant_id == tenant_id,
                BatchModel.status == BatchStatus.ACTIVE.value,
                BatchModel.expiry_date.is_not(None),
                BatchModel.expiry_date < as_of,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        models = list(self.session.scalars(stmt))
        for model in models:
            model.status = BatchStatus.EXPIRED.value
            model.updated_by_id = actor_id
        self.session.flush()
        if models:
            logger.info(
                "batches_expired",
                extra={"count": len(models), "as_of": as_of},
            )
        return [BatchRecord.from_model(m) for m in models]

    def set_quality_status(
        self, batch_id: UUID, quality_status: QualityStatus, actor_id: UUID
    ) -> BatchRecord:
        model = self._lock(batch_id)
        model.quality_status = quality_status.value
        model.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "batch_quality_status_changed",
            extra={"batch_number": model.batch_number, "quality_status": quality_status.value},
        )
        return BatchRecord.from_model(model)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, batch_id: UUID) -> BatchModel:
        model = self.session.get(BatchModel, batch_id)
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model

    def _lock(self, batch_id: UUID) -> BatchModel:
        model = self.session.execute(
            select(BatchModel)
            .where(BatchModel.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise BatchNotFoundError(str(batch_id))
        return model

    def _find_by_number(
        self, tenant_id: str, location_id: str, batch_number: str, lock: bool = False
    ) -> BatchModel | None:
        stmt = select(BatchModel).where(
            BatchModel.tenant_id == tenant_id,
            BatchModel.location_id == location_id,
            BatchModel.batch_number == batch_number,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()
