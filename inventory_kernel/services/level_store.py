"""
LevelStore -- the inventory level projection for each stock key.

Responsibility:
    Creates, locks and updates InventoryLevel rows.  It is the only writer of
    current/available/reserved quantities and of the per-key movement
    sequence counter.

Architecture position:
    Kernel > Services.  Used by the coordinator, the reservation manager and
    the valuation service.  Never commits.

Invariants enforced:
    - available_level == current_level - reserved_level after every write.
    - Row lock (SELECT ... FOR UPDATE, populate_existing) before any
      mutation; on backends without row locks the version column turns a
      lost update into OptimisticLockError.
    - At most one active level per key, including the NULL-variant key that
      the unique constraint cannot cover.

Failure modes:
    - InventoryLevelNotFoundError when no active level exists for a key.
    - DuplicateInventoryLevelError on a second registration.
    - OptimisticLockError when the row version moved underneath a flush.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.dtos import InventoryLevelRecord, LevelRegistration
from inventory_kernel.domain.values import StockKey, ValuationMethod
from inventory_kernel.exceptions import (
    DuplicateInventoryLevelError,
    InventoryLevelNotFoundError,
    OptimisticLockError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.inventory_level import InventoryLevelModel
from inventory_kernel.selectors.base import key_clause
from inventory_kernel.services.base import BaseService

logger = get_logger("services.level_store")


def _not_found(key: StockKey) -> InventoryLevelNotFoundError:
    return InventoryLevelNotFoundError(key.product_id, key.location_id, key.variant_id)


class LevelStore(BaseService[InventoryLevelModel]):
    """Per-key stock levels with pessimistic and optimistic concurrency."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, key: StockKey) -> InventoryLevelModel | None:
        """Active level row for ``key`` without locking."""
        return self.session.execute(
            select(InventoryLevelModel).where(
                key_clause(InventoryLevelModel, key),
                InventoryLevelModel.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def get(self, key: StockKey) -> InventoryLevelRecord | None:
        model = self.find(key)
        return InventoryLevelRecord.from_model(model) if model is not None else None

    def require(self, key: StockKey) -> InventoryLevelRecord:
        model = self.find(key)
        if model is None:
            raise _not_found(key)
        return InventoryLevelRecord.from_model(model)

    def lock(self, key: StockKey) -> InventoryLevelModel:
        """
        Load the active level row for ``key`` under a row lock.

        populate_existing refreshes an instance already in the identity map
        so the caller always sees the committed row it now holds the lock on.
        """
        model = self.session.execute(
            select(InventoryLevelModel)
            .where(
                key_clause(InventoryLevelModel, key),
                InventoryLevelModel.is_active.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise _not_found(key)
        return model

    def lock_or_none(self, key: StockKey) -> InventoryLevelModel | None:
        try:
            return self.lock(key)
        except InventoryLevelNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        registration: LevelRegistration,
        actor_id: UUID,
        default_method: ValuationMethod = ValuationMethod.FIFO,
    ) -> InventoryLevelModel:
        """
        Insert a zero-quantity level for a new key.

        The initial quantity is NOT applied here: the caller records it as an
        adjustment movement so the ledger stays the system of record.  A
        previously deactivated row for the key is reactivated instead of
        inserting a second row.
        """
        key = registration.key
        existing = self.session.execute(
            select(InventoryLevelModel).where(key_clause(InventoryLevelModel, key))
        ).scalar_one_or_none()

        if existing is not None and existing.is_active:
            logger.warning(
                "inventory_level_duplicate",
                extra={"product_id": key.product_id, "location_id": key.location_id},
            )
            raise DuplicateInventoryLevelError(key.product_id, key.location_id)

        method = registration.valuation_method or default_method
        if existing is not None:
            model = existing
            model.is_active = True
            model.updated_by_id = actor_id
        else:
            model = InventoryLevelModel(
                tenant_id=key.tenant_id,
                product_id=key.product_id,
                variant_id=key.variant_id,
                location_id=key.location_id,
                current_level=Decimal("0"),
                available_level=Decimal("0"),
                reserved_level=Decimal("0"),
                last_movement_sequence=0,
                created_by_id=actor_id,
            )
            self.session.add(model)

        model.min_stock_level = registration.min_stock_level
        model.max_stock_level = registration.max_stock_level
        model.reorder_point = registration.reorder_point
        model.reorder_quantity = registration.reorder_quantity
        model.valuation_method = method.value
        model.average_cost = registration.average_cost
        model.total_value = model.current_level * registration.average_cost
        self._flush(model)

        logger.info(
            "inventory_level_created",
            extra={
                "level_id": str(model.id),
                "product_id": key.product_id,
                "location_id": key.location_id,
                "variant": key.variant_id,
                "reactivated": existing is not None,
                "valuation_method": method.value,
            },
        )
        return model

    def ensure(
        self,
        key: StockKey,
        actor_id: UUID,
        default_method: ValuationMethod = ValuationMethod.FIFO,
    ) -> tuple[InventoryLevelModel, bool]:
        """Lock the level for ``key``, creating a zero baseline if absent."""
        model = self.lock_or_none(key)
        if model is not None:
            return model, False
        self.create(LevelRegistration(key=key), actor_id, default_method)
        return self.lock(key), True

    def allocate_sequence(self, model: InventoryLevelModel) -> int:
        """Next movement sequence number for a locked level row."""
        model.last_movement_sequence += 1
        self._flush(model)
        return model.last_movement_sequence

    def apply_level(
        self,
        model: InventoryLevelModel,
        new_level: Decimal,
        actor_id: UUID,
        at: datetime,
        received_cost: Decimal | None = None,
    ) -> InventoryLevelModel:
        """
        Set the on-hand level of a locked row; available follows.

        A priced receipt (``received_cost`` with a level increase) moves the
        average cost to the weighted mean of the stock already on hand and
        the received quantity.
        """
        delta = new_level - model.current_level
        if received_cost is not None and delta > 0:
            prior = max(model.current_level, ZERO)
            model.average_cost = (
                prior * model.average_cost + delta * received_cost
            ) / (prior + delta)
        model.current_level = new_level
        model.available_level = new_level - model.reserved_level
        model.last_movement_at = at
        model.total_value = new_level * model.average_cost
        model.updated_by_id = actor_id
        return self._flush(model)

    def adjust_reserved(
        self, model: InventoryLevelModel, delta: Decimal, actor_id: UUID
    ) -> InventoryLevelModel:
        """Move ``delta`` between available and reserved on a locked row."""
        model.reserved_level = model.reserved_level + delta
        model.available_level = model.current_level - model.reserved_level
        model.updated_by_id = actor_id
        return self._flush(model)

    def mark_counted(
        self, model: InventoryLevelModel, actor_id: UUID, at: datetime
    ) -> InventoryLevelModel:
        model.last_count_at = at
        model.updated_by_id = actor_id
        return self._flush(model)

    def set_valuation(
        self,
        model: InventoryLevelModel,
        average_cost: Decimal,
        total_value: Decimal,
        actor_id: UUID,
    ) -> InventoryLevelModel:
        model.average_cost = average_cost
        model.total_value = total_value
        model.updated_by_id = actor_id
        return self._flush(model)

    def update_thresholds(
        self,
        key: StockKey,
        actor_id: UUID,
        *,
        min_stock_level: Decimal | None = None,
        max_stock_level: Decimal | None = None,
        reorder_point: Decimal | None = None,
        reorder_quantity: Decimal | None = None,
        valuation_method: ValuationMethod | None = None,
    ) -> InventoryLevelRecord:
        """Change replenishment settings. Quantities are untouched."""
        model = self.lock(key)
        if min_stock_level is not None:
            model.min_stock_level = min_stock_level
        if max_stock_level is not None:
            model.max_stock_level = max_stock_level
        if model.max_stock_level is not None and model.max_stock_level < model.min_stock_level:
            raise ValueError("max_stock_level must be >= min_stock_level")
        if reorder_point is not None:
            model.reorder_point = reorder_point
        if reorder_quantity is not None:
            model.reorder_quantity = reorder_quantity
        if valuation_method is not None:
            model.valuation_method = valuation_method.value
        model.updated_by_id = actor_id
        self._flush(model)
        logger.info(
            "inventory_level_thresholds_updated",
            extra={"level_id": str(model.id), "reorder_point": model.reorder_point},
        )
        return InventoryLevelRecord.from_model(model)

    def deactivate(self, key: StockKey, actor_id: UUID) -> InventoryLevelRecord:
        model = self.lock(key)
        model.is_active = False
        model.updated_by_id = actor_id
        self._flush(model)
        logger.info("inventory_level_deactivated", extra={"level_id": str(model.id)})
        return InventoryLevelRecord.from_model(model)

    def _flush(self, model: InventoryLevelModel) -> InventoryLevelModel:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "inventory_level_version_conflict",
                extra={"level_id": str(model.id), "version": model.version},
            )
            raise OptimisticLockError("InventoryLevel", str(model.id)) from exc
        return model
