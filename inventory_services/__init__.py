"""
Module: inventory_services
Responsibility:
    Stateful orchestration over the kernel and the engines: the perpetual
    inventory coordinator, valuation, change notifications and the optional
    read-through cache.

Architecture position:
    Services -- may import inventory_kernel, inventory_engines and
    inventory_config.  Nothing below this layer imports it.
"""

from inventory_services.cache import CacheBackend, CacheKey, InMemoryCache
from inventory_services.notifications import (
    EventDispatcher,
    EventSink,
    NullEventSink,
    RecordingEventSink,
)
from inventory_services.perpetual_inventory import (
    PerpetualInventoryCoordinator,
    PerpetualInventoryStatus,
    Recommendation,
    StatusSummary,
    StockAlert,
)
from inventory_services.valuation_service import (
    KeyValuation,
    ValuationGroup,
    ValuationService,
    ValuationSummary,
)

__all__ = [
    "CacheBackend",
    "CacheKey",
    "InMemoryCache",
    "EventDispatcher",
    "EventSink",
    "NullEventSink",
    "RecordingEventSink",
    "PerpetualInventoryCoordinator",
    "PerpetualInventoryStatus",
    "Recommendation",
    "StatusSummary",
    "StockAlert",
    "KeyValuation",
    "ValuationGroup",
    "ValuationService",
    "ValuationSummary",
]
