"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- InventoryLevelNotFoundError
    |   +-- BatchNotFoundError
    |   +-- ReservationNotFoundError
    |   +-- MovementNotFoundError
    |
    +-- InvalidStateError
    |   +-- NegativeInventoryError
    |   +-- InvalidQuantityError
    |   +-- InvalidTransferError
    |   +-- InsufficientBatchQuantityError
    |   +-- BatchNotConsumableError
    |   +-- InvalidBatchQuantityError
    |   +-- ReservationNotActiveError
    |   +-- MovementSignError
    |   +-- MovementLevelMismatchError
    |   +-- MovementAlreadyDecidedError
    |   +-- ApprovalNotRequiredError
    |   +-- UnsupportedValuationMethodError
    |
    +-- ConflictError
    |   +-- DuplicateBatchError
    |   +-- DuplicateInventoryLevelError
    |   +-- OptimisticLockError
    |
    +-- InsufficientAvailabilityError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
NotFound        | INVENTORY_LEVEL_NOT_FOUND     | No level row for the stock key
                | BATCH_NOT_FOUND               | Batch id/number doesn't exist
                | RESERVATION_NOT_FOUND         | Reservation id doesn't exist
                | MOVEMENT_NOT_FOUND            | Movement id doesn't exist
----------------|-------------------------------|--------------------------------------
InvalidState    | NEGATIVE_INVENTORY            | Non-adjustment change would go < 0
                | INVALID_QUANTITY              | Zero/negative quantity where > 0 needed
                | INVALID_TRANSFER              | Same location or bad transfer quantity
                | INSUFFICIENT_BATCH_QUANTITY   | Batch holds less than requested
                | BATCH_NOT_CONSUMABLE          | Batch is not active
                | INVALID_BATCH_QUANTITY        | Delta would break 0 <= qty <= original
                | RESERVATION_NOT_ACTIVE        | Release/consume of a non-active hold
                | MOVEMENT_SIGN_MISMATCH        | Quantity sign contradicts type
                | MOVEMENT_LEVEL_MISMATCH       | new != previous + quantity
                | MOVEMENT_ALREADY_DECIDED      | Approval/rejection stamped twice
                | APPROVAL_NOT_REQUIRED         | Approving an auto-applied movement
                | UNSUPPORTED_VALUATION_METHOD  | Unknown costing method
----------------|-------------------------------|--------------------------------------
Conflict        | DUPLICATE_BATCH               | Batch number reused at a location
                | DUPLICATE_INVENTORY_LEVEL     | Level already registered for key
                | OPTIMISTIC_LOCK_CONFLICT      | Level version changed underneath us
----------------|-------------------------------|--------------------------------------
Availability    | INSUFFICIENT_AVAILABILITY     | available < requested (reserve/transfer)
----------------|-------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Movement update/delete attempted

Only OptimisticLockError is retryable (see
inventory_kernel.services.retry.retry_on_conflict).
===============================================================================
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class InventoryLevelNotFoundError(NotFoundError):
    """No inventory level exists for the given stock key."""

    code: str = "INVENTORY_LEVEL_NOT_FOUND"

    def __init__(self, product_id: str, location_id: str, variant: str | None = None):
        self.product_id = product_id
        self.location_id = location_id
        self.variant = variant
        suffix = f" variant {variant}" if variant else ""
        super().__init__(
            f"Inventory level not found: product {product_id}{suffix} "
            f"at location {location_id}"
        )


class BatchNotFoundError(NotFoundError):
    """Batch with the given identifier was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_ref: str):
        self.batch_ref = batch_ref
        super().__init__(f"Batch not found: {batch_ref}")


class ReservationNotFoundError(NotFoundError):
    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found: {reservation_id}")


class MovementNotFoundError(NotFoundError):
    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement not found: {movement_id}")


# Invalid-state exceptions


class InvalidStateError(InventoryKernelError):
    """Base exception for operations rejected by the current state."""

    code: str = "INVALID_STATE"


class NegativeInventoryError(InvalidStateError):
    """
    A non-adjustment change would drive the on-hand level below zero.

    Only adjustment and recount movements may produce a negative level.
    """

    code: str = "NEGATIVE_INVENTORY"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        current_level: Decimal,
        requested_change: Decimal,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.current_level = current_level
        self.requested_change = requested_change
        super().__init__(
            f"Insufficient inventory for product {product_id} at {location_id}: "
            f"current {current_level}, change {requested_change}"
        )


class InvalidQuantityError(InvalidStateError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class InvalidTransferError(InvalidStateError):
    """Transfer request is malformed (same location, non-positive qty)."""

    code: str = "INVALID_TRANSFER"

    def __init__(self, from_location_id: str, to_location_id: str, reason: str):
        self.from_location_id = from_location_id
        self.to_location_id = to_location_id
        self.reason = reason
        super().__init__(
            f"Invalid transfer {from_location_id} -> {to_location_id}: {reason}"
        )


class InsufficientBatchQuantityError(InvalidStateError):
    code: str = "INSUFFICIENT_BATCH_QUANTITY"

    def __init__(self, batch_number: str, available: Decimal, requested: Decimal):
        self.batch_number = batch_number
        self.available = available
        self.requested = requested
        super().__init__(
            f"Batch {batch_number} holds {available}, requested {requested}"
        )


class BatchNotConsumableError(InvalidStateError):
    """Batch is not in the active state."""

    code: str = "BATCH_NOT_CONSUMABLE"

    def __init__(self, batch_number: str, status: str):
        self.batch_number = batch_number
        self.status = status
        super().__init__(
            f"Batch {batch_number} cannot be consumed in status {status}"
        )


class InvalidBatchQuantityError(InvalidStateError):
    """Applying a delta would break 0 <= current <= original."""

    code: str = "INVALID_BATCH_QUANTITY"

    def __init__(
        self,
        batch_number: str,
        current_quantity: Decimal,
        original_quantity: Decimal,
        delta: Decimal,
    ):
        self.batch_number = batch_number
        self.current_quantity = current_quantity
        self.original_quantity = original_quantity
        self.delta = delta
        super().__init__(
            f"Batch {batch_number}: applying {delta} to {current_quantity} "
            f"leaves the range [0, {original_quantity}]"
        )


class ReservationNotActiveError(InvalidStateError):
    code: str = "RESERVATION_NOT_ACTIVE"

    def __init__(self, reservation_id: str, status: str):
        self.reservation_id = reservation_id
        self.status = status
        super().__init__(
            f"Reservation {reservation_id} is {status}, expected active"
        )


class MovementSignError(InvalidStateError):
    """Quantity sign contradicts the movement type's direction."""

    code: str = "MOVEMENT_SIGN_MISMATCH"

    def __init__(self, movement_type: str, quantity: Decimal):
        self.movement_type = movement_type
        self.quantity = quantity
        super().__init__(
            f"Quantity {quantity} has the wrong sign for movement type {movement_type}"
        )


class MovementLevelMismatchError(InvalidStateError):
    code: str = "MOVEMENT_LEVEL_MISMATCH"

    def __init__(
        self, previous_level: Decimal, quantity: Decimal, new_level: Decimal
    ):
        self.previous_level = previous_level
        self.quantity = quantity
        self.new_level = new_level
        super().__init__(
            f"Movement levels inconsistent: {previous_level} + {quantity} "
            f"!= {new_level}"
        )


class MovementAlreadyDecidedError(InvalidStateError):
    """Movement already carries an approval or rejection stamp."""

    code: str = "MOVEMENT_ALREADY_DECIDED"

    def __init__(self, movement_id: str, decision: str):
        self.movement_id = movement_id
        self.decision = decision
        super().__init__(f"Movement {movement_id} was already {decision}")


class ApprovalNotRequiredError(InvalidStateError):
    code: str = "APPROVAL_NOT_REQUIRED"

    def __init__(self, movement_id: str):
        self.movement_id = movement_id
        super().__init__(f"Movement {movement_id} does not require approval")


class UnsupportedValuationMethodError(InvalidStateError):
    code: str = "UNSUPPORTED_VALUATION_METHOD"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unsupported valuation method: {method}")


# Conflict exceptions


class ConflictError(InventoryKernelError):
    """Base exception for uniqueness and concurrency conflicts."""

    code: str = "CONFLICT"


class DuplicateBatchError(ConflictError):
    code: str = "DUPLICATE_BATCH"

    def __init__(self, batch_number: str, location_id: str):
        self.batch_number = batch_number
        self.location_id = location_id
        super().__init__(
            f"Batch number {batch_number} already exists at location {location_id}"
        )


class DuplicateInventoryLevelError(ConflictError):
    code: str = "DUPLICATE_INVENTORY_LEVEL"

    def __init__(self, product_id: str, location_id: str):
        self.product_id = product_id
        self.location_id = location_id
        super().__init__(
            f"Inventory level already exists for product {product_id} "
            f"at location {location_id}"
        )


class OptimisticLockError(ConflictError):
    """Level row version changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Availability


class InsufficientAvailabilityError(InventoryKernelError):
    """
    Requested quantity exceeds the available (unreserved) quantity.

    A named business outcome rather than a state violation: callers
    typically surface it to the user as-is.
    """

    code: str = "INSUFFICIENT_AVAILABILITY"

    def __init__(
        self,
        product_id: str,
        location_id: str,
        available: Decimal,
        requested: Decimal,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient available stock for product {product_id} at "
            f"{location_id}: available {available}, requested {requested}"
        )


# Immutability


class ImmutabilityViolationError(InventoryKernelError):
    """Attempted to modify or delete an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
