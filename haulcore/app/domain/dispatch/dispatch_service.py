"""
Dispatch Service (Domain Logic).

Owner-side setup that feeds the lifecycle: posting loads, creating trips,
and attaching loads to trips with their pickup and delivery positions.
"""

import logging
from typing import Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import DomainValidationError, InvalidTransitionError, ResourceNotFoundError
from haulcore.app.db.session import unit_of_work
from haulcore.app.domain.billing.settlement_calculator import SettlementCalculator
from haulcore.app.domain.ledger.expense_ledger import ExpenseLedger
from haulcore.app.domain.money import parse_numeric, to_money, to_optional_money
from haulcore.app.domain.results import ActionResult, DriverIdentity, TripDetail
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import LoadStatus, LoadSource, PostingType
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_enums import TripStatus, TERMINAL_TRIP_STATUSES
from haulcore.app.models.trip_load import TripLoad
from haulcore.app.services.audit import log_event, AuditAction

logger = logging.getLogger("haulcore.dispatch")

# Once a load is rolling towards the customer it stays on its trip
UNDETACHABLE_STATUSES = frozenset({
    LoadStatus.IN_TRANSIT,
    LoadStatus.DELIVERED,
    LoadStatus.STORAGE_COMPLETED,
})


def _validate_delivery_order(delivery_order: Optional[int]) -> Optional[DomainValidationError]:
    if delivery_order is not None and delivery_order < 1:
        return DomainValidationError("Delivery order must be 1 or greater", field="delivery_order")
    return None


class DispatchService:

    @staticmethod
    async def post_load(
        db: AsyncSession,
        identity: DriverIdentity,
        contract_balance_due=0,
        customer_name: Optional[str] = None,
        delivery_city: Optional[str] = None,
        delivery_state: Optional[str] = None,
        rate_per_cuft=None,
        linehaul_total=None,
        load_source: LoadSource = LoadSource.OWN,
        posting_type: PostingType = PostingType.LOAD,
    ) -> ActionResult[Load]:
        """Create a pending load with nothing collected yet."""
        due = parse_numeric(contract_balance_due)
        if due is None or due < 0:
            return ActionResult.failure(DomainValidationError(
                "Contract balance due must be a non-negative number", field="contract_balance_due"
            ))

        async with unit_of_work(db):
            load = Load(
                company_id=identity.company_id,
                status=LoadStatus.PENDING,
                load_source=load_source,
                posting_type=posting_type,
                customer_name=customer_name,
                delivery_city=delivery_city,
                delivery_state=delivery_state,
                rate_per_cuft=to_optional_money(parse_numeric(rate_per_cuft)),
                contract_linehaul_total=to_optional_money(parse_numeric(linehaul_total)),
                contract_balance_due=to_money(due),
                amount_collected_at_pickup=to_money(0),
                amount_collected_on_delivery=to_money(0),
                remaining_balance=to_money(due),
            )
            db.add(load)
            await db.flush()
            await log_event(
                db, identity, AuditAction.LOAD_POSTED, "load", load.id,
                metadata={"load_source": load_source.value, "posting_type": posting_type.value},
            )

        logger.info("Load %s posted for company %s", load.id, identity.company_id)
        return ActionResult.success(load)

    @staticmethod
    async def create_trip(
        db: AsyncSession,
        identity: DriverIdentity,
        driver_id: Optional[int],
        trip_number: Optional[str] = None,
    ) -> ActionResult[Trip]:
        async with unit_of_work(db):
            trip = Trip(
                company_id=identity.company_id,
                driver_id=driver_id,
                trip_number=trip_number,
                status=TripStatus.PLANNED,
                current_delivery_index=1,
            )
            db.add(trip)
            await db.flush()
            await log_event(
                db, identity, AuditAction.TRIP_CREATED, "trip", trip.id,
                metadata={"driver_id": driver_id, "trip_number": trip_number},
            )

        return ActionResult.success(trip)

    @staticmethod
    async def _get_trip(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> Optional[Trip]:
        result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id, Trip.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_load(db: AsyncSession, identity: DriverIdentity, load_id: int) -> Optional[Load]:
        result = await db.execute(
            select(Load)
            .where(Load.id == load_id, Load.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def attach_load(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        load_id: int,
        sequence_index: Optional[int] = None,
        delivery_order: Optional[int] = None,
    ) -> ActionResult[TripLoad]:
        """
        Put a load on a trip.

        Validates:
        - Trip and load belong to the caller's company
        - Trip is not completed, settled or cancelled
        - Load is not cancelled and not already on a trip

        ``sequence_index`` defaults to the next pickup position on the trip.
        ``delivery_order`` is written to the load when given.
        """
        invalid = _validate_delivery_order(delivery_order)
        if invalid:
            return ActionResult.failure(invalid)

        trip = await DispatchService._get_trip(db, identity, trip_id)
        if not trip:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))
        if trip.status in TERMINAL_TRIP_STATUSES:
            return ActionResult.failure(InvalidTransitionError(
                "Trip", trip_id, trip.status.value, "attach a load to"
            ))

        load = await DispatchService._get_load(db, identity, load_id)
        if not load:
            return ActionResult.failure(ResourceNotFoundError("Load", load_id))
        if load.status == LoadStatus.CANCELLED:
            return ActionResult.failure(InvalidTransitionError(
                "Load", load_id, load.status.value, "attach"
            ))

        existing = (await db.execute(
            select(TripLoad.trip_id).where(TripLoad.load_id == load_id)
        )).scalar_one_or_none()
        if existing is not None:
            return ActionResult.failure(DomainValidationError(
                f"Load {load_id} is already on trip {existing}", field="load_id"
            ))

        if sequence_index is None:
            count = (await db.execute(
                select(func.count(TripLoad.id)).where(TripLoad.trip_id == trip_id)
            )).scalar()
            sequence_index = count + 1

        async with unit_of_work(db):
            trip_load = TripLoad(trip_id=trip_id, load_id=load_id, sequence_index=sequence_index)
            db.add(trip_load)
            if delivery_order is not None:
                load.delivery_order = delivery_order
            await db.flush()
            await log_event(
                db, identity, AuditAction.TRIP_LOAD_ATTACHED, "trip", trip_id,
                metadata={
                    "load_id": load_id,
                    "sequence_index": sequence_index,
                    "delivery_order": load.delivery_order,
                },
            )

        return ActionResult.success(trip_load)

    @staticmethod
    async def detach_load(
        db: AsyncSession, identity: DriverIdentity, trip_id: int, load_id: int
    ) -> ActionResult[None]:
        """Take a load off a trip before its delivery has started."""
        trip = await DispatchService._get_trip(db, identity, trip_id)
        if not trip:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))
        if trip.status in {TripStatus.COMPLETED, TripStatus.SETTLED}:
            return ActionResult.failure(InvalidTransitionError(
                "Trip", trip_id, trip.status.value, "detach a load from"
            ))

        load = await DispatchService._get_load(db, identity, load_id)
        if not load:
            return ActionResult.failure(ResourceNotFoundError("Load", load_id))
        if load.status in UNDETACHABLE_STATUSES:
            return ActionResult.failure(InvalidTransitionError(
                "Load", load_id, load.status.value, "detach"
            ))

        async with unit_of_work(db):
            result = await db.execute(
                delete(TripLoad)
                .where(TripLoad.trip_id == trip_id, TripLoad.load_id == load_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return ActionResult.failure(ResourceNotFoundError("Trip load", load_id))
            await log_event(
                db, identity, AuditAction.TRIP_LOAD_DETACHED, "trip", trip_id,
                metadata={"load_id": load_id},
            )

        return ActionResult.success()

    @staticmethod
    async def get_trip_detail(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[TripDetail]:
        trip = await DispatchService._get_trip(db, identity, trip_id)
        if not trip:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))

        loads_result = await db.execute(
            select(Load)
            .join(TripLoad, TripLoad.load_id == Load.id)
            .where(TripLoad.trip_id == trip_id, Load.company_id == identity.company_id)
            .order_by(TripLoad.sequence_index, Load.id)
            .execution_options(populate_existing=True)
        )

        return ActionResult.success(TripDetail(
            trip=trip,
            loads=list(loads_result.scalars().all()),
            expenses=await ExpenseLedger.list_expenses(db, identity, trip_id),
            settlement=await SettlementCalculator.get_settlement(db, identity, trip_id),
        ))
