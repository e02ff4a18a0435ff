"""
Engine settings (``inventory_config.settings``).

Responsibility
--------------
The one typed settings object the services read: database URL, logging
level, reconciliation epsilon, default costing and picking policies,
status-report windows, cache TTL, conflict retry budget and presentation
rounding.

Invariants enforced
-------------------
* Frozen dataclass; every field is validated in ``__post_init__`` and a
  bad value raises ``ValueError`` naming the field.
* Decimal fields are never built from floats.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from decimal import Decimal

from inventory_kernel.domain.values import ConsumptionOrder, ValuationMethod

DEFAULT_DATABASE_URL = "sqlite://"


@dataclass(frozen=True)
class EngineSettings:
    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "INFO"
    variance_epsilon: Decimal = Decimal("0.001")
    default_valuation_method: ValuationMethod = ValuationMethod.FIFO
    default_pick_order: ConsumptionOrder = ConsumptionOrder.FEFO
    stale_inventory_days: int = 90
    status_adjustment_window_days: int = 30
    cache_ttl_seconds: int = 300
    conflict_retry_attempts: int = 3
    money_places: int = 2
    unit_cost_places: int = 4

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must be non-empty")
        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG,
            logging.INFO,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
        ):
            raise ValueError(f"log_level: unknown level {self.log_level!r}")
        if not isinstance(self.variance_epsilon, Decimal) or self.variance_epsilon < 0:
            raise ValueError("variance_epsilon must be a non-negative Decimal")
        if not isinstance(self.default_valuation_method, ValuationMethod):
            raise ValueError("default_valuation_method must be a ValuationMethod")
        if not isinstance(self.default_pick_order, ConsumptionOrder):
            raise ValueError("default_pick_order must be a ConsumptionOrder")
        for name in ("stale_inventory_days", "status_adjustment_window_days"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")
        if self.conflict_retry_attempts < 1:
            raise ValueError("conflict_retry_attempts must be >= 1")
        for name in ("money_places", "unit_cost_places"):
            if not 0 <= getattr(self, name) <= 9:
                raise ValueError(f"{name} must be between 0 and 9")

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))
