"""
Values -- Immutable domain value objects and enumerations.

Responsibility:
    Movement types and their direction, costing/ordering methods, the status
    vocabularies for batches and reservations, and the stock key that
    identifies one inventory level: (tenant, product, variant, location).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every MovementType has exactly one Direction.  signed_quantity() is the
      single place that turns a caller-supplied magnitude into the ledger sign.
    - The variant dimension is an explicit sum type: NoVariant | Variant.
      Nothing outside variant_value() sees the nullable column encoding.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    EITHER = "either"


class MovementType(str, Enum):
    """Kind of stock change recorded on the ledger."""

    SALE = "sale"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    RETURN = "return"
    DAMAGE = "damage"
    THEFT = "theft"
    EXPIRED = "expired"
    RECOUNT = "recount"
    PRODUCTION = "production"
    CONSUMPTION = "consumption"

    @property
    def direction(self) -> Direction:
        return _DIRECTIONS[self]

    @property
    def allows_negative_result(self) -> bool:
        """Only an adjustment may leave the level below zero or below the reserved quantity."""
        return self is MovementType.ADJUSTMENT


_DIRECTIONS: dict[MovementType, Direction] = {
    MovementType.SALE: Direction.OUTBOUND,
    MovementType.TRANSFER_OUT: Direction.OUTBOUND,
    MovementType.DAMAGE: Direction.OUTBOUND,
    MovementType.THEFT: Direction.OUTBOUND,
    MovementType.EXPIRED: Direction.OUTBOUND,
    MovementType.CONSUMPTION: Direction.OUTBOUND,
    MovementType.PURCHASE: Direction.INBOUND,
    MovementType.TRANSFER_IN: Direction.INBOUND,
    MovementType.RETURN: Direction.INBOUND,
    MovementType.PRODUCTION: Direction.INBOUND,
    MovementType.ADJUSTMENT: Direction.EITHER,
    MovementType.RECOUNT: Direction.EITHER,
}


def signed_quantity(movement_type: MovementType, quantity: Decimal) -> Decimal:
    """
    Convert a requested quantity into the signed ledger delta.

    Outbound types subtract abs(quantity), inbound types add abs(quantity),
    adjustment/recount apply the caller's sign unchanged.
    """
    direction = movement_type.direction
    if direction is Direction.OUTBOUND:
        return -abs(quantity)
    if direction is Direction.INBOUND:
        return abs(quantity)
    return quantity


def sign_matches(movement_type: MovementType, quantity: Decimal) -> bool:
    direction = movement_type.direction
    if direction is Direction.OUTBOUND:
        return quantity <= 0
    if direction is Direction.INBOUND:
        return quantity >= 0
    return True


class AdjustmentReason(str, Enum):
    MANUAL_COUNT = "manual_count"
    CYCLE_COUNT = "cycle_count"
    DAMAGED_GOODS = "damaged_goods"
    EXPIRED_GOODS = "expired_goods"
    THEFT_LOSS = "theft_loss"
    SUPPLIER_ERROR = "supplier_error"
    SYSTEM_ERROR = "system_error"
    RETURN_TO_VENDOR = "return_to_vendor"
    PROMOTIONAL_USE = "promotional_use"
    INTERNAL_USE = "internal_use"
    OTHER = "other"


class ValuationMethod(str, Enum):
    """Costing convention used to value on-hand stock."""

    FIFO = "fifo"
    LIFO = "lifo"
    AVERAGE = "average"
    SPECIFIC = "specific"


class ConsumptionOrder(str, Enum):
    """Order in which batches are picked. FEFO is an ordering only."""

    FIFO = "fifo"
    LIFO = "lifo"
    FEFO = "fefo"


class BatchStatus(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    RECALLED = "recalled"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.EXPIRED, BatchStatus.RECALLED)


class QualityStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    QUARANTINE = "quarantine"
    TESTING = "testing"


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    CONSUMED = "consumed"


class ReconciliationType(str, Enum):
    FULL = "full"
    CYCLE = "cycle"
    SPOT = "spot"

    @property
    def adjustment_reason(self) -> AdjustmentReason:
        if self is ReconciliationType.CYCLE:
            return AdjustmentReason.CYCLE_COUNT
        return AdjustmentReason.MANUAL_COUNT


# ---------------------------------------------------------------------------
# Variant sum type
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NoVariant:
    """The product is stocked without a variant dimension."""

    def __str__(self) -> str:
        return "-"


@dataclass(frozen=True, slots=True)
class Variant:
    variant_id: str

    def __post_init__(self) -> None:
        if not self.variant_id:
            raise ValueError("variant_id must be non-empty; use NoVariant()")

    def __str__(self) -> str:
        return self.variant_id


VariantKey = NoVariant | Variant

NO_VARIANT = NoVariant()


def variant_from_value(value: str | None) -> VariantKey:
    """Decode the nullable column representation."""
    if value is None:
        return NO_VARIANT
    return Variant(value)


def variant_value(variant: VariantKey) -> str | None:
    """Encode to the nullable column representation."""
    match variant:
        case NoVariant():
            return None
        case Variant(variant_id=variant_id):
            return variant_id
    raise TypeError(f"Not a variant key: {variant!r}")


@dataclass(frozen=True, slots=True)
class StockKey:
    """Identity of one inventory level."""

    tenant_id: str
    product_id: str
    location_id: str
    variant: VariantKey = NO_VARIANT

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise ValueError("tenant_id is required")
        if not self.product_id:
            raise ValueError("product_id is required")
        if not self.location_id:
            raise ValueError("location_id is required")

    def at_location(self, location_id: str) -> StockKey:
        return StockKey(
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            location_id=location_id,
            variant=self.variant,
        )

    @property
    def variant_id(self) -> str | None:
        return variant_value(self.variant)

    def __str__(self) -> str:
        return f"{self.tenant_id}/{self.product_id}/{self.variant}/{self.location_id}"
