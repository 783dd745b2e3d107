"""
Owner Notification Service.

Called after every committed lifecycle transition. Delivery is
fire-and-forget: failures, timeouts and an open circuit are logged and
swallowed, never surfaced to the driver and never retried in the request.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.ext.asyncio import async_sessionmaker

from haulcore.app.core.config import settings
from haulcore.app.core.reliability import notification_circuit_breaker, CircuitOpenError
from haulcore.app.models.notification import OwnerNotification

logger = logging.getLogger("haulcore.notifications")


class OwnerEvent:
    """Event kinds sent to the owner."""
    LOAD_ACCEPTED = "load_accepted"
    LOADING_STARTED = "loading_started"
    LOADING_FINISHED = "loading_finished"
    PICKUP_COMPLETED = "pickup_completed"
    DELIVERY_STARTED = "delivery_started"
    DELIVERY_COMPLETED = "delivery_completed"
    STORAGE_DROP_COMPLETED = "storage_drop_completed"
    LOAD_CANCELLED = "load_cancelled"
    TRIP_STARTED = "trip_started"
    TRIP_EN_ROUTE = "trip_en_route"
    TRIP_COMPLETED = "trip_completed"
    TRIP_SETTLED = "trip_settled"
    TRIP_CANCELLED = "trip_cancelled"


class OwnerNotificationService(Protocol):
    async def notify(self, event_kind: str, entity_id: int, payload: Dict[str, Any]) -> None:
        ...


class DatabaseOwnerNotificationService:
    """
    Persists notifications to ``owner_notifications``.

    Uses its own session so a notification failure can never touch the
    transaction of the transition that triggered it.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def notify(self, event_kind: str, entity_id: int, payload: Dict[str, Any]) -> None:
        async with self.session_factory() as session:
            session.add(OwnerNotification(
                company_id=payload["company_id"],
                event_kind=event_kind,
                entity_id=entity_id,
                metadata_payload=payload,
            ))
            await session.commit()


_owner_notifier: Optional[OwnerNotificationService] = None


def get_owner_notifier() -> OwnerNotificationService:
    global _owner_notifier
    if _owner_notifier is None:
        from haulcore.app.db.session import AsyncSessionLocal
        _owner_notifier = DatabaseOwnerNotificationService(AsyncSessionLocal)
    return _owner_notifier


def set_owner_notifier(notifier: Optional[OwnerNotificationService]) -> None:
    """Swap the notifier (application startup, tests)."""
    global _owner_notifier
    _owner_notifier = notifier


async def notify_owner(event_kind: str, entity_id: int, payload: Dict[str, Any]) -> bool:
    """
    Deliver one notification. Never raises.

    Returns:
        True if the notifier accepted the event, False otherwise
    """
    notifier = get_owner_notifier()
    try:
        await asyncio.wait_for(
            notification_circuit_breaker.call(notifier.notify, event_kind, entity_id, payload),
            timeout=settings.notification_timeout_seconds,
        )
        return True
    except CircuitOpenError:
        logger.warning("Owner notification skipped, circuit open: %s entity=%s", event_kind, entity_id)
    except asyncio.TimeoutError:
        notification_circuit_breaker.record_failure()
        logger.warning("Owner notification timed out: %s entity=%s", event_kind, entity_id)
    except Exception:
        logger.exception("Owner notification failed: %s entity=%s", event_kind, entity_id)
    return False
