"""
inventory_services.valuation_service -- Inventory valuation by costing method.

Responsibility:
    Loads the on-hand quantity of a stock key, its batches (cost layers) or
    its applied inbound receipts, and dispatches to the pure valuation
    functions in inventory_engines.valuation.  Also values many keys at
    once, summarizes by location and product, and writes a key's valuation
    back onto its level.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Zero or no on-hand stock values to None, never to a zero result.
    - Layer methods walk active batches only (consumed, expired and
      recalled batches hold no valued stock).
    - Average cost replays applied inbound movements with a positive cost;
      approval requests are excluded.
    - Presentation rounding happens once, on the way out.

Failure modes:
    - UnsupportedValuationMethodError for a method with no valuation rule.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config.settings import EngineSettings
from inventory_engines.valuation.cost_layers import (
    ValuationResult,
    valuate_average,
    valuate_fifo,
    valuate_lifo,
    valuate_specific,
)
from inventory_kernel.db.types import ZERO
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import InventoryLevelRecord
from inventory_kernel.domain.values import BatchStatus, StockKey, ValuationMethod
from inventory_kernel.exceptions import UnsupportedValuationMethodError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.inventory_selector import InventorySelector
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.batch_tracker import BatchTracker, to_layer
from inventory_kernel.services.level_store import LevelStore
from inventory_services.cache import CacheBackend, CacheKey, cache_get, cache_set

logger = get_logger("services.valuation")


@dataclass(frozen=True)
class KeyValuation:
    key: StockKey
    result: ValuationResult


@dataclass(frozen=True)
class ValuationGroup:
    group: str
    item_count: int
    total_quantity: Decimal
    total_value: Decimal

    @property
    def average_unit_cost(self) -> Decimal:
        if self.total_quantity == 0:
            return ZERO
        return self.total_value / self.total_quantity


@dataclass(frozen=True)
class ValuationSummary:
    tenant_id: str
    method: ValuationMethod | None
    as_of_date: date | None
    item_count: int
    total_quantity: Decimal
    total_value: Decimal
    by_location: tuple[ValuationGroup, ...]
    by_product: tuple[ValuationGroup, ...]


def _group(items: list[KeyValuation], attr: str) -> tuple[ValuationGroup, ...]:
    buckets: dict[str, list[ValuationResult]] = defaultdict(list)
    for item in items:
        buckets[getattr(item.key, attr)].append(item.result)
    return tuple(
        ValuationGroup(
            group=name,
            item_count=len(results),
            total_quantity=sum((r.current_quantity for r in results), ZERO),
            total_value=sum((r.total_value for r in results), ZERO),
        )
        for name, results in sorted(buckets.items())
    )


class ValuationService:
    """
    Values on-hand stock under FIFO, LIFO, weighted average or specific
    identification.

    Contract:
        Receives a Session plus optional clock, settings and cache.  Reads
        only, except ``refresh_level_valuation`` which flushes the level.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        cache: CacheBackend | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._cache = cache
        self._levels = LevelStore(session, self._clock)
        self._batches = BatchTracker(session, self._clock)
        self._movements = MovementSelector(session)
        self._inventory = InventorySelector(session)

    def valuate(
        self,
        key: StockKey,
        method: ValuationMethod | None = None,
        as_of_date: date | None = None,
    ) -> ValuationResult | None:
        """
        Value the on-hand quantity of ``key``.

        ``method`` defaults to the level's configured method.  The result
        is rounded for presentation; None when nothing is on hand.
        """
        level = self._levels.get(key)
        if level is None:
            return None
        result = self._compute(level, method or level.valuation_method, as_of_date)
        if result is None:
            return None
        return result.rounded(self._settings.money_places, self._settings.unit_cost_places)

    def valuate_cached(self, key: StockKey) -> ValuationResult | None:
        """``valuate`` with the level's own method, read through the cache."""
        cache_key = CacheKey.valuation(
            key.tenant_id, key.product_id, key.location_id, key.variant_id
        )
        cached = cache_get(self._cache, cache_key)
        if cached is not None:
            return cached
        result = self.valuate(key)
        if result is not None:
            cache_set(self._cache, cache_key, result, self._settings.cache_ttl_seconds)
        return result

    def valuate_many(
        self,
        tenant_id: str,
        location_id: str | None = None,
        product_id: str | None = None,
        method: ValuationMethod | None = None,
        as_of_date: date | None = None,
    ) -> list[KeyValuation]:
        """Every active level matching the filters that has stock on hand."""
        valued = []
        for level in self._inventory.levels(tenant_id, location_id, product_id):
            result = self._compute(level, method or level.valuation_method, as_of_date)
            if result is None:
                continue
            valued.append(
                KeyValuation(
                    key=level.key,
                    result=result.rounded(
                        self._settings.money_places, self._settings.unit_cost_places
                    ),
                )
            )
        return valued

    def summary(
        self,
        tenant_id: str,
        location_id: str | None = None,
        product_id: str | None = None,
        method: ValuationMethod | None = None,
        as_of_date: date | None = None,
    ) -> ValuationSummary:
        items = self.valuate_many(tenant_id, location_id, product_id, method, as_of_date)
        summary = ValuationSummary(
            tenant_id=tenant_id,
            method=method,
            as_of_date=as_of_date,
            item_count=len(items),
            total_quantity=sum((i.result.current_quantity for i in items), ZERO),
            total_value=sum((i.result.total_value for i in items), ZERO),
            by_location=_group(items, "location_id"),
            by_product=_group(items, "product_id"),
        )
        logger.info(
            "valuation_summary_computed",
            extra={
                "tenant_id": tenant_id,
                "location_id": location_id,
                "item_count": summary.item_count,
                "total_value": summary.total_value,
            },
        )
        return summary

    def refresh_level_valuation(
        self, key: StockKey, actor_id: UUID
    ) -> InventoryLevelRecord:
        """
        Write average_cost / total_value onto the level using its own method.

        With nothing on hand the average cost is kept and the value is zero.
        """
        model = self._levels.lock(key)
        level = InventoryLevelRecord.from_model(model)
        result = self._compute(level, level.valuation_method, None)
        if result is None:
            average_cost, total_value = model.average_cost, ZERO
        else:
            rounded = result.rounded(self._settings.money_places, self._settings.unit_cost_places)
            average_cost, total_value = rounded.unit_cost, rounded.total_value
        self._levels.set_valuation(model, average_cost, total_value, actor_id)
        logger.info(
            "level_valuation_refreshed",
            extra={
                "level_id": str(model.id),
                "method": level.valuation_method.value,
                "average_cost": average_cost,
                "total_value": total_value,
            },
        )
        return InventoryLevelRecord.from_model(model)

    def _compute(
        self,
        level: InventoryLevelRecord,
        method: ValuationMethod,
        as_of_date: date | None,
    ) -> ValuationResult | None:
        on_hand = level.current_level
        if on_hand <= 0:
            return None

        if method is ValuationMethod.AVERAGE:
            receipts = self._movements.inbound_receipts(level.key, as_of_date)
            return valuate_average(receipts=receipts, on_hand=on_hand, as_of_date=as_of_date)

        layers = [
            to_layer(b)
            for b in self._batches.list_for_key(level.key, (BatchStatus.ACTIVE,))
            if b.current_quantity > 0
        ]
        if method is ValuationMethod.FIFO:
            return valuate_fifo(layers=layers, on_hand=on_hand, as_of_date=as_of_date)
        if method is ValuationMethod.LIFO:
            return valuate_lifo(layers=layers, on_hand=on_hand, as_of_date=as_of_date)
        if method is ValuationMethod.SPECIFIC:
            return valuate_specific(layers=layers, on_hand=on_hand, as_of_date=as_of_date)

        logger.warning("valuation_method_unsupported", extra={"method": str(method)})
        raise UnsupportedValuationMethodError(str(method))
