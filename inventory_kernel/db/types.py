"""
Module: inventory_kernel.db.types
Responsibility: Annotated column aliases and the rounding/coercion helpers for
    quantities and money.  Centralizes precision so every model and service
    uses identical definitions.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/, or selectors/.

Invariants enforced:
    - No floats anywhere.  to_decimal() rejects float input outright.
    - round_money() and round_unit_cost() are the only sanctioned rounding
      helpers; stored values keep full Numeric(38, 9) precision and are only
      rounded for presentation.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Stock quantity (units may be fractional: kg, litres)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Monetary amount or unit cost
Money = Annotated[Decimal, Numeric(38, 9)]

# External identifiers (product, location, tenant, supplier)
ExternalId = Annotated[str, String(100)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
UNIT_COST_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int/str/Decimal to Decimal.

    Raises:
        TypeError: If value is a float (binary floats are never accepted
            for quantities or money).
    """
    if isinstance(value, float):
        raise TypeError(f"Float values are not accepted: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_unit_cost(
    value: Decimal,
    decimal_places: int = UNIT_COST_DECIMAL_PLACES,
) -> Decimal:
    """Round a per-unit cost (finer precision than money totals)."""
    return round_money(value, decimal_places)
