"""
MovementLedger -- the append-only record of every stock change.

Responsibility:
    Validates and appends movements, stamps approval decisions on pending
    movements, and answers the ledger's own queries (filtered history,
    pending approvals, last applied movement of a key).

Architecture position:
    Kernel > Services.  Called by the coordinator and the reservation
    manager.  Never commits.

Invariants enforced:
    - new_level == previous_level + quantity, checked before insert.
    - Quantity sign agrees with the movement type's direction.
    - No update other than a single decision stamp; no delete (backed by
      db/immutability.py listeners).

Failure modes:
    - MovementSignError / MovementLevelMismatchError: nothing is written.
    - MovementNotFoundError, MovementAlreadyDecidedError,
      ApprovalNotRequiredError on stamping.

Audit relevance:
    Each append logs ``movement_appended`` with the key, type, quantity and
    both levels, so the log alone can replay a key's level history.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import MovementRecord, NewMovement
from inventory_kernel.domain.values import MovementType, StockKey, VariantKey, sign_matches
from inventory_kernel.exceptions import (
    ApprovalNotRequiredError,
    MovementAlreadyDecidedError,
    MovementLevelMismatchError,
    MovementNotFoundError,
    MovementSignError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import InventoryMovementModel
from inventory_kernel.selectors.base import key_clause, variant_clause
from inventory_kernel.services.base import BaseService

logger = get_logger("services.movement_ledger")


@dataclass(frozen=True)
class MovementFilter:
    """Query filters; every field is optional and combined with AND."""

    tenant_id: str
    product_id: str | None = None
    variant: VariantKey | None = None
    location_id: str | None = None
    movement_types: tuple[MovementType, ...] = ()
    reference_type: str | None = None
    reference_id: str | None = None
    batch_number: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    pending_only: bool = False


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = 50
    newest_first: bool = True

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= self.limit <= 1000:
            raise ValueError("limit must be between 1 and 1000")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pending_clause():
    return (
        InventoryMovementModel.requires_approval.is_(True)
        & InventoryMovementModel.approved_at.is_(None)
        & InventoryMovementModel.rejected_at.is_(None)
    )


def applied_clause():
    return InventoryMovementModel.requires_approval.is_(False)


class MovementLedger(BaseService[InventoryMovementModel]):

    def append(
        self,
        movement: NewMovement,
        actor_id: UUID,
        sequence: int,
        occurred_at: datetime | None = None,
    ) -> MovementRecord:
        """
        Validate and append one movement.

        ``sequence`` comes from the locked level row of the movement's key
        (LevelStore.allocate_sequence).
        """
        if not sign_matches(movement.movement_type, movement.quantity):
            logger.warning(
                "movement_sign_rejected",
                extra={
                    "movement_type": movement.movement_type.value,
                    "quantity": movement.quantity,
                },
            )
            raise MovementSignError(movement.movement_type.value, movement.quantity)

        if movement.previous_level + movement.quantity != movement.new_level:
            logger.warning(
                "movement_level_mismatch_rejected",
                extra={
                    "previous_level": movement.previous_level,
                    "quantity": movement.quantity,
                    "new_level": movement.new_level,
                },
            )
            raise MovementLevelMismatchError(
                movement.previous_level, movement.quantity, movement.new_level
            )

        key = movement.key
        model = InventoryMovementModel(
            tenant_id=key.tenant_id,
            product_id=key.product_id,
            variant_id=key.variant_id,
            location_id=key.location_id,
            sequence=sequence,
            movement_type=movement.movement_type.value,
            quantity=movement.quantity,
            unit_cost=movement.unit_cost,
            total_cost=movement.total_cost,
            previous_level=movement.previous_level,
            new_level=movement.new_level,
            reference_type=movement.reference_type,
            reference_id=movement.reference_id,
            reference_number=movement.reference_number,
            batch_number=movement.batch_number,
            reason=movement.reason.value if movement.reason else None,
            notes=movement.notes,
            requires_approval=movement.requires_approval,
            occurred_at=occurred_at or self.clock.now_utc(),
            created_by_id=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "movement_appended",
            extra={
                "movement_id": str(model.id),
                "tenant_id": key.tenant_id,
                "product_id": key.product_id,
                "location_id": key.location_id,
                "variant": key.variant_id,
                "sequence": sequence,
                "movement_type": movement.movement_type.value,
                "quantity": movement.quantity,
                "previous_level": movement.previous_level,
                "new_level": movement.new_level,
                "requires_approval": movement.requires_approval,
            },
        )
        return MovementRecord.from_model(model)

    def get(self, movement_id: UUID) -> MovementRecord:
        return MovementRecord.from_model(self._load(movement_id))

    def stamp_approval(self, movement_id: UUID, approver_id: UUID) -> MovementRecord:
        model = self._load_pending(movement_id)
        model.approved_by = approver_id
        model.approved_at = self.clock.now_utc()
        model.updated_by_id = approver_id
        self.session.flush()
        logger.info(
            "movement_approved",
            extra={"movement_id": str(movement_id), "approved_by": str(approver_id)},
        )
        return MovementRecord.from_model(model)

    def stamp_rejection(self, movement_id: UUID, rejecter_id: UUID) -> MovementRecord:
        """Mark a pending movement rejected. It stays on the ledger, unapplied."""
        model = self._load_pending(movement_id)
        model.rejected_by = rejecter_id
        model.rejected_at = self.clock.now_utc()
        model.updated_by_id = rejecter_id
        self.session.flush()
        logger.info(
            "movement_rejected",
            extra={"movement_id": str(movement_id), "rejected_by": str(rejecter_id)},
        )
        return MovementRecord.from_model(model)

    def query(
        self, filters: MovementFilter, pagination: Pagination | None = None
    ) -> list[MovementRecord]:
        pagination = pagination or Pagination()
        stmt = select(InventoryMovementModel).where(
            InventoryMovementModel.tenant_id == filters.tenant_id
        )
        if filters.product_id is not None:
            stmt = stmt.where(InventoryMovementModel.product_id == filters.product_id)
        if filters.variant is not None:
            stmt = stmt.where(variant_clause(InventoryMovementModel.variant_id, filters.variant))
        if filters.location_id is not None:
            stmt = stmt.where(InventoryMovementModel.location_id == filters.location_id)
        if filters.movement_types:
            stmt = stmt.where(
                InventoryMovementModel.movement_type.in_(
                    [t.value for t in filters.movement_types]
                )
            )
        if filters.reference_type is not None:
            stmt = stmt.where(InventoryMovementModel.reference_type == filters.reference_type)
        if filters.reference_id is not None:
            stmt = stmt.where(InventoryMovementModel.reference_id == filters.reference_id)
        if filters.batch_number is not None:
            stmt = stmt.where(InventoryMovementModel.batch_number == filters.batch_number)
        if filters.date_from is not None:
            stmt = stmt.where(InventoryMovementModel.occurred_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(InventoryMovementModel.occurred_at <= filters.date_to)
        if filters.pending_only:
            stmt = stmt.where(pending_clause())

        if pagination.newest_first:
            stmt = stmt.order_by(
                InventoryMovementModel.occurred_at.desc(),
                InventoryMovementModel.sequence.desc(),
            )
        else:
            stmt = stmt.order_by(
                InventoryMovementModel.occurred_at.asc(),
                InventoryMovementModel.sequence.asc(),
            )
        stmt = stmt.offset(pagination.offset).limit(pagination.limit)

        return [MovementRecord.from_model(m) for m in self.session.scalars(stmt)]

    def history(self, key: StockKey) -> list[MovementRecord]:
        """Every movement of one key in sequence order."""
        stmt = (
            select(InventoryMovementModel)
            .where(key_clause(InventoryMovementModel, key))
            .order_by(InventoryMovementModel.sequence.asc())
        )
        return [MovementRecord.from_model(m) for m in self.session.scalars(stmt)]

    def find_pending_approval(
        self, tenant_id: str, location_id: str | None = None
    ) -> list[MovementRecord]:
        stmt = select(InventoryMovementModel).where(
            InventoryMovementModel.tenant_id == tenant_id,
            pending_clause(),
        )
        if location_id is not None:
            stmt = stmt.where(InventoryMovementModel.location_id == location_id)
        stmt = stmt.order_by(InventoryMovementModel.occurred_at.asc(), InventoryMovementModel.sequence.asc())
        return [MovementRecord.from_model(m) for m in self.session.scalars(stmt)]

    def latest_applied(self, key: StockKey) -> MovementRecord | None:
        """
        Most recently applied movement of ``key``.

        Approval requests (requires_approval=True) never move the level; an
        approved request is posted as its own applied movement.
        """
        stmt = (
            select(InventoryMovementModel)
            .where(key_clause(InventoryMovementModel, key), applied_clause())
            .order_by(InventoryMovementModel.sequence.desc())
            .limit(1)
        )
        model = self.session.scalars(stmt).first()
        return MovementRecord.from_model(model) if model is not None else None

    def _load(self, movement_id: UUID) -> InventoryMovementModel:
        model = self.session.get(InventoryMovementModel, movement_id)
        if model is None:
            raise MovementNotFoundError(str(movement_id))
        return model

    def _load_pending(self, movement_id: UUID) -> InventoryMovementModel:
        model = self._load(movement_id)
        if not model.requires_approval:
            raise ApprovalNotRequiredError(str(movement_id))
        if model.approved_at is not None:
            raise MovementAlreadyDecidedError(str(movement_id), "approved")
        if model.rejected_at is not None:
            raise MovementAlreadyDecidedError(str(movement_id), "rejected")
        return model
