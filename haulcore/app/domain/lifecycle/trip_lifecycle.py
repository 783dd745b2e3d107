"""
Trip Lifecycle Controller.

planned -> active -> en_route -> completed -> settled, with cancelled
reachable from any non-terminal state. Also owns the trip's
current_delivery_index, the counter the delivery-order guard reads.
"""

import enum
import logging
from typing import Any, List, Optional

from sqlalchemy import exists, select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.config import settings
from haulcore.app.core.exceptions import (
    DomainValidationError, IncompleteDeliveriesError, InvalidTransitionError, ResourceNotFoundError
)
from haulcore.app.db.session import unit_of_work
from haulcore.app.domain.billing.settlement_calculator import SettlementCalculator
from haulcore.app.domain.lifecycle.transitions import TransitionTable, apply_transition, utcnow
from haulcore.app.domain.money import parse_numeric
from haulcore.app.domain.results import ActionResult, DriverIdentity
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import DELIVERED_STATUSES
from haulcore.app.models.settlement import Settlement
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_enums import TripStatus
from haulcore.app.models.trip_load import TripLoad
from haulcore.app.services.audit import log_event, AuditAction
from haulcore.app.services.notification_service import notify_owner, OwnerEvent

logger = logging.getLogger("haulcore.lifecycle.trip")


class TripAction(str, enum.Enum):
    START = "start"
    DEPART = "depart"
    COMPLETE = "complete"
    SETTLE = "settle"
    CANCEL = "cancel"


TRIP_TRANSITIONS = TransitionTable("Trip", {
    TripAction.START: ({TripStatus.PLANNED}, TripStatus.ACTIVE),
    TripAction.DEPART: ({TripStatus.ACTIVE}, TripStatus.EN_ROUTE),
    TripAction.COMPLETE: ({TripStatus.ACTIVE, TripStatus.EN_ROUTE}, TripStatus.COMPLETED),
    # Re-settling a settled trip recalculates its settlement
    TripAction.SETTLE: ({TripStatus.COMPLETED, TripStatus.SETTLED}, TripStatus.SETTLED),
    TripAction.CANCEL: ({TripStatus.PLANNED, TripStatus.ACTIVE, TripStatus.EN_ROUTE}, TripStatus.CANCELLED),
})


def trip_scope(identity: DriverIdentity) -> List[Any]:
    """Tenant predicate; drivers only see trips assigned to them."""
    scope = [Trip.company_id == identity.company_id]
    if identity.driver_id is not None and not identity.is_owner:
        scope.append(Trip.driver_id == identity.driver_id)
    return scope


def _trip_payload(trip: Trip, **extra) -> dict:
    payload = {
        "company_id": trip.company_id,
        "driver_id": trip.driver_id,
        "trip_number": trip.trip_number,
        "status": trip.status.value,
    }
    payload.update(extra)
    return payload


def _all_loads_delivered():
    """Completion predicate evaluated inside the trip's status UPDATE."""
    return ~exists(
        select(TripLoad.id)
        .join(Load, Load.id == TripLoad.load_id)
        .where(TripLoad.trip_id == Trip.id, Load.status.not_in(DELIVERED_STATUSES))
        .correlate(Trip)
    )


async def _incomplete_deliveries(db: AsyncSession, trip_id: int) -> IncompleteDeliveriesError:
    undelivered = await TripLifecycleController.count_undelivered_loads(db, trip_id)
    logger.info("Trip %s completion refused at write time: %s loads undelivered", trip_id, undelivered)
    return IncompleteDeliveriesError(trip_id, undelivered)


class TripLifecycleController:

    @staticmethod
    async def get_trip(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[Trip]:
        result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id, *trip_scope(identity))
            .execution_options(populate_existing=True)
        )
        trip = result.scalar_one_or_none()
        if not trip:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))
        return ActionResult.success(trip)

    @staticmethod
    async def count_undelivered_loads(db: AsyncSession, trip_id: int) -> int:
        result = await db.execute(
            select(func.count(Load.id))
            .join(TripLoad, TripLoad.load_id == Load.id)
            .where(TripLoad.trip_id == trip_id, Load.status.not_in(DELIVERED_STATUSES))
        )
        return result.scalar()

    @staticmethod
    async def _transition(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        action: TripAction,
        audit_action: str,
        event: str,
        values: Optional[dict] = None,
        metadata: Optional[dict] = None,
        **guarded,
    ) -> ActionResult[Trip]:
        async with unit_of_work(db):
            moved = await apply_transition(
                db, Trip, trip_id, trip_scope(identity), TRIP_TRANSITIONS, action, values, **guarded
            )
            if not moved.ok:
                logger.info("Trip %s %s rejected: %s", trip_id, action.value, moved.error.message)
                return ActionResult.failure(moved.error)
            await log_event(db, identity, audit_action, "trip", trip_id, metadata=metadata)

        trip = (await TripLifecycleController.get_trip(db, identity, trip_id)).value
        await notify_owner(event, trip.id, _trip_payload(trip, **(metadata or {})))
        return ActionResult.success(trip)

    @staticmethod
    async def start_trip(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        odometer_start,
        photo_url: Optional[str] = None,
    ) -> ActionResult[Trip]:
        """
        Start a planned trip and record the odometer baseline.

        Validates:
        - Odometer reading present, numeric and not negative
        - Photo present when settings.require_odometer_photos is on
        - Trip is PLANNED and visible to the caller
        """
        reading = parse_numeric(odometer_start)
        if reading is None:
            return ActionResult.failure(DomainValidationError(
                "Starting odometer reading is required and must be a number", field="odometer_start"
            ))
        if reading < 0:
            return ActionResult.failure(DomainValidationError(
                "Starting odometer reading cannot be negative", field="odometer_start"
            ))
        if settings.require_odometer_photos and not photo_url:
            return ActionResult.failure(DomainValidationError(
                "Starting odometer photo is required", field="odometer_start_photo_url"
            ))

        return await TripLifecycleController._transition(
            db, identity, trip_id, TripAction.START, AuditAction.TRIP_STARTED, OwnerEvent.TRIP_STARTED,
            values={
                "odometer_start": reading,
                "odometer_start_photo_url": photo_url,
                "started_at": utcnow(),
            },
            metadata={"odometer_start": str(reading)},
        )

    @staticmethod
    async def mark_en_route(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[Trip]:
        return await TripLifecycleController._transition(
            db, identity, trip_id, TripAction.DEPART, AuditAction.TRIP_EN_ROUTE, OwnerEvent.TRIP_EN_ROUTE,
        )

    @staticmethod
    async def complete_trip(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        odometer_end,
        photo_url: Optional[str] = None,
    ) -> ActionResult[Trip]:
        """
        Complete an active or en-route trip.

        Undelivered loads are reported before any odometer problem: the
        driver has to finish deliveries first either way. The same check is
        repeated in the WHERE clause of the status UPDATE, so a load attached
        after the count still blocks completion.
        """
        found = await TripLifecycleController.get_trip(db, identity, trip_id)
        if not found.ok:
            return found
        trip = found.value

        if trip.status not in TRIP_TRANSITIONS.sources(TripAction.COMPLETE):
            return ActionResult.failure(InvalidTransitionError(
                "Trip", trip_id, trip.status.value, TripAction.COMPLETE.value
            ))

        undelivered = await TripLifecycleController.count_undelivered_loads(db, trip.id)
        if undelivered:
            return ActionResult.failure(IncompleteDeliveriesError(trip.id, undelivered))

        reading = parse_numeric(odometer_end)
        if reading is None:
            return ActionResult.failure(DomainValidationError(
                "Ending odometer reading is required and must be a number", field="odometer_end"
            ))
        if trip.odometer_start is not None and reading < trip.odometer_start:
            return ActionResult.failure(DomainValidationError(
                f"Ending odometer ({reading}) cannot be lower than starting odometer ({trip.odometer_start})",
                field="odometer_end",
            ))
        if settings.require_odometer_photos and not photo_url:
            return ActionResult.failure(DomainValidationError(
                "Ending odometer photo is required", field="odometer_end_photo_url"
            ))

        return await TripLifecycleController._transition(
            db, identity, trip_id, TripAction.COMPLETE, AuditAction.TRIP_COMPLETED, OwnerEvent.TRIP_COMPLETED,
            values={
                "odometer_end": reading,
                "odometer_end_photo_url": photo_url,
                "completed_at": utcnow(),
            },
            metadata={"odometer_end": str(reading)},
            guards=[_all_loads_delivered()],
            on_guard_failure=lambda: _incomplete_deliveries(db, trip_id),
        )

    @staticmethod
    async def cancel_trip(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[Trip]:
        return await TripLifecycleController._transition(
            db, identity, trip_id, TripAction.CANCEL, AuditAction.TRIP_CANCELLED, OwnerEvent.TRIP_CANCELLED,
            values={"cancelled_at": utcnow()},
        )

    @staticmethod
    async def advance_delivery_index(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        completed_delivery_order: Optional[int],
    ) -> bool:
        """
        Move current_delivery_index forward by exactly one.

        Only applies when ``completed_delivery_order`` equals the current
        index, checked inside the UPDATE itself (compare-and-set), so retried
        or racing completions cannot double-advance. Joins the caller's
        transaction.

        Returns:
            True if the counter advanced
        """
        if completed_delivery_order is None:
            return False

        result = await db.execute(
            update(Trip)
            .where(
                Trip.id == trip_id,
                Trip.company_id == identity.company_id,
                Trip.current_delivery_index == completed_delivery_order,
            )
            .values(current_delivery_index=Trip.current_delivery_index + 1)
            .execution_options(synchronize_session=False)
        )
        advanced = result.rowcount == 1
        if advanced:
            await log_event(
                db, identity, AuditAction.DELIVERY_INDEX_ADVANCED, "trip", trip_id,
                metadata={"from": completed_delivery_order, "to": completed_delivery_order + 1},
            )
        else:
            logger.info(
                "Delivery index of trip %s not advanced for delivery #%s", trip_id, completed_delivery_order
            )
        return advanced

    @staticmethod
    async def settle_trip(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[Settlement]:
        """
        Settle a completed trip, or recalculate a settled one.

        The status write, the calculation and the stored settlement commit
        together.
        """
        async with unit_of_work(db):
            moved = await apply_transition(
                db, Trip, trip_id, trip_scope(identity), TRIP_TRANSITIONS, TripAction.SETTLE,
                {"settled_at": utcnow()},
            )
            if not moved.ok:
                return ActionResult.failure(moved.error)

            totals = await SettlementCalculator.compute(db, identity, trip_id)
            if not totals.ok:
                await db.rollback()
                return ActionResult.failure(totals.error)

            settlement = await SettlementCalculator.store(db, identity, totals.value)

        trip = (await TripLifecycleController.get_trip(db, identity, trip_id)).value
        await notify_owner(OwnerEvent.TRIP_SETTLED, trip.id, _trip_payload(
            trip, settlement_id=settlement.id, net_amount=str(settlement.net_amount)
        ))
        return ActionResult.success(settlement)
