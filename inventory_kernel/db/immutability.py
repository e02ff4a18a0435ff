"""
ORM-Level Immutability Enforcement for the movement ledger.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are emitted:

    session.flush()
         |
         v
    [before_update] --> _check_movement_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_movement_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|-------------------------------------------------------
InventoryMovement   | Never deleted.  Never updated, except:
                    |   - audit metadata (updated_at, updated_by_id)
                    |   - one decision stamp on a pending movement: the
                    |     approved_* or rejected_* pair, each written once
                    |     from NULL, never both.

Inventory levels, batches and reservations are mutable projections and are
not covered here.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (idempotent)

    unregister_immutability_listeners()  # TESTS ONLY
"""

from sqlalchemy import event, inspect

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import (
    DECISION_STAMP_FIELDS,
    InventoryMovementModel,
)

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _violation(target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "InventoryMovement",
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type="InventoryMovement",
        entity_id=str(target.id),
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    insp = inspect(target)
    stamped: set[str] = set()
    for attr in insp.attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if attr.key not in DECISION_STAMP_FIELDS:
            raise _violation(
                target,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a recorded movement",
                attr.key,
            )
        if hist.deleted and hist.deleted[0] is not None:
            raise _violation(
                target,
                "UPDATE",
                f"Decision stamp '{attr.key}' is already set",
                attr.key,
            )
        stamped.add(attr.key)

    if not stamped:
        return
    if not target.requires_approval:
        raise _violation(
            target, "UPDATE", "Movement was applied without approval and cannot be stamped"
        )
    approved = target.approved_by is not None or target.approved_at is not None
    rejected = target.rejected_by is not None or target.rejected_at is not None
    if approved and rejected:
        raise _violation(
            target, "UPDATE", "Movement cannot be both approved and rejected"
        )


def _check_movement_delete(mapper, connection, target):
    raise _violation(target, "DELETE", "Movements are append-only and cannot be deleted")


_LISTENERS = (
    ("before_update", _check_movement_update),
    ("before_delete", _check_movement_delete),
)


def register_immutability_listeners() -> None:
    """Register ledger immutability listeners (idempotent)."""
    for event_name, fn in _LISTENERS:
        if not event.contains(InventoryMovementModel, event_name, fn):
            event.listen(InventoryMovementModel, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove ledger immutability listeners.

    WARNING: Only for tests that need to verify the service-level guard in
    isolation.
    """
    for event_name, fn in _LISTENERS:
        if event.contains(InventoryMovementModel, event_name, fn):
            event.remove(InventoryMovementModel, event_name, fn)
