"""
inventory_services.notifications -- Change notifications to external systems.

Responsibility:
    Defines the EventSink protocol that receives inventory events, and the
    EventDispatcher the coordinator publishes through.  Delivery is
    synchronous and best-effort: a failing sink is logged and never fails
    the stock change that triggered it.

Architecture position:
    Services -- outbound boundary.  Sinks are supplied by the host
    application (message bus publisher, webhook client, ...).

Invariants enforced:
    - Events are published only after the change they describe has been
      flushed.
    - A sink exception is contained here and logged as
      ``event_delivery_failed``; it never propagates to the caller.

Usage:
    dispatcher = EventDispatcher(RecordingEventSink())
    dispatcher.publish(LEVEL_CHANGED, {"product_id": "P-1", ...})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from inventory_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

LEVEL_CHANGED = "inventory.level.changed"
LOW_STOCK = "inventory.low_stock"
VARIANCE_DETECTED = "inventory.variance.detected"
RECONCILIATION_COMPLETED = "inventory.reconciliation.completed"
TRANSFER_COMPLETED = "inventory.transfer.completed"
BATCH_RECALLED = "inventory.batch.recalled"
BATCH_EXPIRED = "inventory.batch.expired"
MOVEMENT_APPROVED = "inventory.movement.approved"

EVENT_NAMES = frozenset(
    {
        LEVEL_CHANGED,
        LOW_STOCK,
        VARIANCE_DETECTED,
        RECONCILIATION_COMPLETED,
        TRANSFER_COMPLETED,
        BATCH_RECALLED,
        BATCH_EXPIRED,
        MOVEMENT_APPROVED,
    }
)


@runtime_checkable
class EventSink(Protocol):
    """Receives one event at a time. Implementations may raise."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None: ...


class NullEventSink:
    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        return None


@dataclass
class RecordingEventSink:
    """Keeps every event in memory; used by tests and local tooling."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self.events.append((event_name, dict(payload)))

    def named(self, event_name: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_name]

    def clear(self) -> None:
        self.events.clear()


class EventDispatcher:
    """
    Publishes events to a sink, isolating the caller from sink failures.

    Contract:
        ``publish`` returns True when the sink accepted the event and False
        when it raised.  Unknown event names are a programming error and
        raise ValueError before the sink is called.
    """

    def __init__(self, sink: EventSink | None = None):
        self._sink = sink or NullEventSink()

    @property
    def sink(self) -> EventSink:
        return self._sink

    def publish(self, event_name: str, payload: dict[str, Any]) -> bool:
        if event_name not in EVENT_NAMES:
            raise ValueError(f"Unknown inventory event: {event_name}")
        try:
            self._sink.emit(event_name, payload)
        except Exception:
            logger.exception(
                "event_delivery_failed",
                extra={"event_name": event_name, "sink": type(self._sink).__name__},
            )
            return False
        logger.debug("event_published", extra={"event_name": event_name})
        return True
