"""
ReservationManager -- holds on available stock.

Responsibility:
    reserve() moves quantity from available to reserved on the level row;
    release() moves it back; consume() clears the hold so that the
    matching outbound movement (posted by the coordinator) can reduce the
    on-hand level.

Architecture position:
    Kernel > Services.  Works on level rows locked through LevelStore.
    Never commits.

Invariants enforced:
    - reserve requires available_level >= quantity at lock time.
    - Only active reservations may be released or consumed; release is
      therefore not idempotent (a second release raises).
    - Sum of active reservations for a key == reserved_level.

Failure modes:
    - InsufficientAvailabilityError, InvalidQuantityError.
    - ReservationNotFoundError, ReservationNotActiveError.
    - InventoryLevelNotFoundError when the key has no level.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import ReservationRecord, key_of
from inventory_kernel.domain.values import ReservationStatus, StockKey
from inventory_kernel.exceptions import (
    InsufficientAvailabilityError,
    InvalidQuantityError,
    ReservationNotActiveError,
    ReservationNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.reservation import ReservationModel
from inventory_kernel.selectors.base import key_clause
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.level_store import LevelStore

logger = get_logger("services.reservation_manager")


class ReservationManager(BaseService[ReservationModel]):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        levels: LevelStore | None = None,
    ):
        super().__init__(session, clock)
        self._levels = levels or LevelStore(session, self.clock)

    def reserve(
        self,
        key: StockKey,
        quantity: Decimal,
        reserved_for: str,
        reference_id: str,
        actor_id: UUID,
        reserved_until: datetime | None = None,
        batch_number: str | None = None,
        notes: str | None = None,
    ) -> ReservationRecord:
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "reservation quantity must be positive")

        level = self._levels.lock(key)
        if level.available_level < quantity:
            logger.warning(
                "reservation_insufficient_availability",
                extra={
                    "product_id": key.product_id,
                    "location_id": key.location_id,
                    "available": level.available_level,
                    "requested": quantity,
                },
            )
            raise InsufficientAvailabilityError(
                key.product_id, key.location_id, level.available_level, quantity
            )

        model = ReservationModel(
            tenant_id=key.tenant_id,
            product_id=key.product_id,
            variant_id=key.variant_id,
            location_id=key.location_id,
            quantity=quantity,
            reserved_for=reserved_for,
            reference_id=reference_id,
            batch_number=batch_number,
            reserved_until=reserved_until,
            status=ReservationStatus.ACTIVE.value,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self._levels.adjust_reserved(level, quantity, actor_id)

        logger.info(
            "stock_reserved",
            extra={
                "reservation_id": str(model.id),
                "product_id": key.product_id,
                "location_id": key.location_id,
                "quantity": quantity,
                "reserved_for": reserved_for,
                "reference_id": reference_id,
                "available_after": level.available_level,
            },
        )
        return ReservationRecord.from_model(model)

    def release(self, reservation_id: UUID, actor_id: UUID) -> ReservationRecord:
        """Return the held quantity to available."""
        model = self._load_active(reservation_id)
        level = self._levels.lock(key_of(model))

        model.status = ReservationStatus.RELEASED.value
        model.released_at = self.clock.now_utc()
        model.updated_by_id = actor_id
        self._levels.adjust_reserved(level, -model.quantity, actor_id)

        logger.info(
            "reservation_released",
            extra={"reservation_id": str(reservation_id), "quantity": model.quantity},
        )
        return ReservationRecord.from_model(model)

    def consume(self, reservation_id: UUID, actor_id: UUID) -> ReservationRecord:
        """
        Clear the hold ahead of the outbound movement that ships it.

        The level's on-hand quantity is untouched here; the caller posts the
        movement in the same transaction.
        """
        model = self._load_active(reservation_id)
        level = self._levels.lock(key_of(model))

        model.status = ReservationStatus.CONSUMED.value
        model.consumed_at = self.clock.now_utc()
        model.updated_by_id = actor_id
        self._levels.adjust_reserved(level, -model.quantity, actor_id)

        logger.info(
            "reservation_consumed",
            extra={"reservation_id": str(reservation_id), "quantity": model.quantity},
        )
        return ReservationRecord.from_model(model)

    def get(self, reservation_id: UUID) -> ReservationRecord:
        model = self.session.get(ReservationModel, reservation_id)
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        return ReservationRecord.from_model(model)

    def active_for(self, key: StockKey) -> list[ReservationRecord]:
        stmt = (
            select(ReservationModel)
            .where(
                key_clause(ReservationModel, key),
                ReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .order_by(ReservationModel.created_at.asc())
        )
        return [ReservationRecord.from_model(m) for m in self.session.scalars(stmt)]

    def active_total(self, key: StockKey) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(ReservationModel.quantity), 0)).where(
                key_clause(ReservationModel, key),
                ReservationModel.status == ReservationStatus.ACTIVE.value,
            )
        )
        return Decimal(str(total))

    def overdue(self, tenant_id: str, as_of: datetime | None = None) -> list[ReservationRecord]:
        """Active reservations whose reserved_until has passed."""
        as_of = as_of or self.clock.now_utc()
        stmt = (
            select(ReservationModel)
            .where(
                ReservationModel.tenant_id == tenant_id,
                ReservationModel.status == ReservationStatus.ACTIVE.value,
                ReservationModel.reserved_until.is_not(None),
                ReservationModel.reserved_until < as_of,
            )
            .order_by(ReservationModel.reserved_until.asc())
        )
        return [ReservationRecord.from_model(m) for m in self.session.scalars(stmt)]

    def _load_active(self, reservation_id: UUID) -> ReservationModel:
        model = self.session.execute(
            select(ReservationModel)
            .where(ReservationModel.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        if model.status != ReservationStatus.ACTIVE.value:
            logger.warning(
                "reservation_not_active",
                extra={"reservation_id": str(reservation_id), "status": model.status},
            )
            raise ReservationNotActiveError(str(reservation_id), model.status)
        return model
