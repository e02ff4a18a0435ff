"""
Module: inventory_kernel.selectors.base
Responsibility: Abstract base for read-only query selectors, and the shared
    SQL predicates that address one stock key.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/values.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Selectors return frozen records, not ORM instances.
    - The variant dimension is matched exhaustively: NoVariant filters on
      IS NULL (a plain ``== None`` comparison is never emitted by hand).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import and_
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from inventory_kernel.db.base import Base
from inventory_kernel.domain.values import NoVariant, StockKey, Variant, VariantKey

ModelType = TypeVar("ModelType", bound=Base)


def variant_clause(column, variant: VariantKey) -> ColumnElement[bool]:
    match variant:
        case NoVariant():
            return column.is_(None)
        case Variant(variant_id=variant_id):
            return column == variant_id
    raise TypeError(f"Not a variant key: {variant!r}")


def key_clause(model, key: StockKey) -> ColumnElement[bool]:
    """WHERE clause selecting the rows of ``model`` that belong to ``key``."""
    return and_(
        model.tenant_id == key.tenant_id,
        model.product_id == key.product_id,
        model.location_id == key.location_id,
        variant_clause(model.variant_id, key.variant),
    )


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns records or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
