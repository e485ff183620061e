# NetSentinel Agent - Event Bus
"""
In-process publish/subscribe for discovery and detection events.

Delivery is at-least-once and unordered across event types. Nothing is
persisted; an event published with no subscribers is dropped.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from ..models import Device, NetworkInterfaceSnapshot, ScanResult, SecurityAlert, utcnow

logger = logging.getLogger("netsentinel.agent.events")


class EventType(str, Enum):
    """Event kinds published on the bus."""
    DEVICE_DISCOVERED = "device_discovered"
    SCAN_COMPLETED = "scan_completed"
    NETWORK_CHANGED = "network_changed"
    ALERT_RAISED = "alert_raised"


@dataclass(frozen=True)
class DeviceDiscovered:
    device: Device
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ScanCompleted:
    result: ScanResult
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class NetworkChanged:
    old_gateway: str | None
    new_gateway: str | None
    interface: NetworkInterfaceSnapshot | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class AlertRaised:
    alert: SecurityAlert
    timestamp: datetime = field(default_factory=utcnow)


Callback = Callable[[Any], Any]


class EventBus:
    """
    Explicit event bus handed to every component that publishes.

    Sync callbacks run inline during publish(). Coroutine callbacks are
    scheduled as tasks so a slow subscriber never blocks the publisher;
    drain() waits for them.
    """

    def __init__(self):
        self._subscribers: dict[EventType, list[Callback]] = {t: [] for t in EventType}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, callback: Callback) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers[event_type].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers[event_type])

    def publish(self, event_type: EventType, payload: Any) -> None:
        for callback in list(self._subscribers[event_type]):
            try:
                result = callback(payload)
            except Exception as e:
                logger.debug(f"Subscriber error on {event_type.value}: {e}")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._deliver(event_type, result))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, event_type: EventType, awaitable) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.debug(f"Subscriber error on {event_type.value}: {e}")

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)
