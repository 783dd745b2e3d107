"""
Delivery Order Guard.

Decides whether a load may enter its delivery phase:
1. Every load on the trip must have finished its pickup phase.
2. Loads must be delivered in ``delivery_order`` sequence, tracked by the
   trip's ``current_delivery_index``.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.domain.results import BlockingLoad, DeliveryOrderCheck, DriverIdentity
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import LoadStatus, DELIVERY_PHASE_STATUSES, DELIVERED_STATUSES
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_load import TripLoad

logger = logging.getLogger("haulcore.lifecycle.delivery_order")


def evaluate_delivery_order(
    load: Load,
    trip_loads: Sequence[Load],
    current_index: Optional[int],
) -> DeliveryOrderCheck:
    """
    Pure decision for a load that is on a trip.

    Args:
        load: The load asking to start delivery
        trip_loads: Every load on the same trip (including ``load``)
        current_index: The trip's current_delivery_index (None treated as 1)
    """
    this_order = load.delivery_order

    # Cancelled loads will never be picked up, so they do not gate anything
    active_loads = [l for l in trip_loads if l.status != LoadStatus.CANCELLED]

    still_loading = [l for l in active_loads if l.status not in DELIVERY_PHASE_STATUSES]
    if still_loading:
        count = len(still_loading)
        plural = "s" if count > 1 else ""
        return DeliveryOrderCheck(
            allowed=False,
            reason=f"{count} load{plural} still need to be loaded before delivery can start",
            this_load_order=this_order,
        )

    if this_order is None:
        return DeliveryOrderCheck(allowed=True, this_load_order=None)

    index = current_index or 1

    if this_order <= index:
        return DeliveryOrderCheck(allowed=True, current_index=index, this_load_order=this_order)

    earlier = sorted(
        (
            l for l in active_loads
            if l.delivery_order is not None
            and l.delivery_order < this_order
            and l.status not in DELIVERED_STATUSES
        ),
        key=lambda l: (l.delivery_order, l.id),
    )
    if not earlier:
        return DeliveryOrderCheck(allowed=True, current_index=index, this_load_order=this_order)

    first = earlier[0]
    blocker = BlockingLoad(
        id=first.id,
        delivery_order=first.delivery_order,
        customer_name=first.customer_name,
        delivery_city=first.delivery_city,
        delivery_state=first.delivery_state,
    )
    return DeliveryOrderCheck(
        allowed=False,
        reason=f"Complete delivery #{blocker.delivery_order} ({blocker.display_name}) first",
        blocking_load=blocker,
        current_index=index,
        this_load_order=this_order,
    )


class DeliveryOrderGuard:

    @staticmethod
    async def check(db: AsyncSession, identity: DriverIdentity, load_id: int) -> DeliveryOrderCheck:
        """
        Check whether ``load_id`` may start delivery now.

        Read-only; the caller performs the transition.
        """
        load_result = await db.execute(
            select(Load)
            .where(Load.id == load_id, Load.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        load = load_result.scalar_one_or_none()
        if not load:
            return DeliveryOrderCheck(allowed=False, reason="Load not found")

        trip_load_result = await db.execute(
            select(TripLoad).where(TripLoad.load_id == load.id)
        )
        trip_load = trip_load_result.scalar_one_or_none()
        if not trip_load:
            logger.warning(
                "Load %s is not on any trip; allowing delivery without order check", load.id
            )
            return DeliveryOrderCheck(allowed=True, this_load_order=load.delivery_order)

        trip_result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_load.trip_id, Trip.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        trip = trip_result.scalar_one_or_none()
        if not trip:
            return DeliveryOrderCheck(
                allowed=False, reason="Trip not found", this_load_order=load.delivery_order
            )

        siblings_result = await db.execute(
            select(Load)
            .join(TripLoad, TripLoad.load_id == Load.id)
            .where(TripLoad.trip_id == trip.id, Load.company_id == identity.company_id)
            .order_by(Load.id)
            .execution_options(populate_existing=True)
        )
        siblings = list(siblings_result.scalars().all())

        decision = evaluate_delivery_order(load, siblings, trip.current_delivery_index)
        if not decision.allowed:
            logger.info("Delivery of load %s blocked: %s", load.id, decision.reason)
        return decision
