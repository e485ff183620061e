# NetSentinel Agent - Alert Service
"""Records alerts, logs them and announces them on the event bus."""

import logging

from ..models import SecurityAlert
from ..storage import Store
from .events import AlertRaised, EventBus, EventType

logger = logging.getLogger("netsentinel.agent.alerts")


class AlertService:
    """Alert sink used by the security detector."""

    def __init__(self, store: Store, bus: EventBus | None = None, notify: bool = True):
        self.store = store
        self.bus = bus or EventBus()
        self.notify = notify
        self.raised = 0

    async def raise_alert(self, alert: SecurityAlert) -> SecurityAlert:
        try:
            await self.store.record_alert(alert)
        except Exception as e:
            logger.error(f"Failed to record alert '{alert.title}': {e}")

        self.raised += 1
        if self.notify:
            logger.warning(f"[{alert.severity.value.upper()}] {alert.title}: {alert.description}")

        self.bus.publish(EventType.ALERT_RAISED, AlertRaised(alert))
        return alert

    async def recent(self, count: int = 50) -> list[SecurityAlert]:
        return await self.store.recent_alerts(count)

    async def mark_read(self, alert_id: str) -> bool:
        return await self.store.mark_alert_read(alert_id)

    async def unread_count(self, window: int = 1000) -> int:
        return sum(1 for a in await self.store.recent_alerts(window) if not a.is_read)
