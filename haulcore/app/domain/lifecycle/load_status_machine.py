"""
Load Status Machine.

pending -> accepted -> loading -> loaded -> in_transit -> delivered
[-> storage_completed], with cancelled reachable from any non-terminal state.

Every write is one conditional UPDATE carrying the company scope and the
allowed from-states. Money moves in the same unit of work as the status
change, and balance columns are recomputed inside that UPDATE from the
row's own values so the balance identity holds after every write.
"""

import enum
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, case
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import (
    DomainValidationError, InvalidTransitionError, OrderViolationError, ResourceNotFoundError
)
from haulcore.app.db.session import unit_of_work
from haulcore.app.domain.ledger.payment_ledger import PaymentLedger, validate_collection
from haulcore.app.domain.lifecycle.delivery_order_guard import DeliveryOrderGuard
from haulcore.app.domain.lifecycle.transitions import TransitionTable, apply_transition, utcnow
from haulcore.app.domain.lifecycle.trip_lifecycle import TripLifecycleController
from haulcore.app.domain.money import ZERO, money_sum, parse_numeric, to_money, to_optional_money
from haulcore.app.domain.results import ActionResult, DriverIdentity, GatingDecision
from haulcore.app.models.billing_enums import PaymentMethod, PaymentType
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import LoadStatus, LoadSource, PostingType, TERMINAL_LOAD_STATUSES
from haulcore.app.models.trip_load import TripLoad
from haulcore.app.services.audit import log_event, AuditAction
from haulcore.app.services.notification_service import notify_owner, OwnerEvent

logger = logging.getLogger("haulcore.lifecycle.load")

ACCESSORIAL_KEYS = ("shuttle", "long_carry", "stairs", "bulky", "packing", "other")

CONTRACT_SOURCES = frozenset({LoadSource.PARTNER, LoadSource.MARKETPLACE})


class LoadAction(str, enum.Enum):
    ACCEPT = "accept"
    START_LOADING = "start_loading"
    FINISH_LOADING = "finish_loading"
    COMPLETE_PICKUP = "complete_pickup"
    START_DELIVERY = "start_delivery"
    COMPLETE_DELIVERY = "complete_delivery"
    COMPLETE_STORAGE_DROP = "complete_storage_drop"
    CANCEL = "cancel"


LOAD_TRANSITIONS = TransitionTable("Load", {
    LoadAction.ACCEPT: ({LoadStatus.PENDING}, LoadStatus.ACCEPTED),
    LoadAction.START_LOADING: ({LoadStatus.ACCEPTED}, LoadStatus.LOADING),
    LoadAction.FINISH_LOADING: ({LoadStatus.LOADING}, LoadStatus.LOADED),
    LoadAction.COMPLETE_PICKUP: ({LoadStatus.ACCEPTED, LoadStatus.LOADING}, LoadStatus.LOADED),
    LoadAction.START_DELIVERY: ({LoadStatus.LOADED, LoadStatus.LOADING}, LoadStatus.IN_TRANSIT),
    LoadAction.COMPLETE_DELIVERY: ({LoadStatus.IN_TRANSIT}, LoadStatus.DELIVERED),
    LoadAction.COMPLETE_STORAGE_DROP: (
        {LoadStatus.IN_TRANSIT, LoadStatus.DELIVERED}, LoadStatus.STORAGE_COMPLETED
    ),
    LoadAction.CANCEL: (
        {LoadStatus.PENDING, LoadStatus.ACCEPTED, LoadStatus.LOADING, LoadStatus.LOADED, LoadStatus.IN_TRANSIT},
        LoadStatus.CANCELLED,
    ),
})


def load_scope(identity: DriverIdentity) -> List[Any]:
    return [Load.company_id == identity.company_id]


def _load_payload(load: Load, **extra) -> dict:
    payload = {
        "company_id": load.company_id,
        "status": load.status.value,
        "customer_name": load.customer_name,
        "delivery_order": load.delivery_order,
    }
    payload.update(extra)
    return payload


def _parse_volume(value, field: str) -> ActionResult[Optional[Decimal]]:
    """Optional non-negative volume reading."""
    if value is None:
        return ActionResult.success(None)
    volume = parse_numeric(value)
    if volume is None:
        return ActionResult.failure(DomainValidationError(f"{field} must be a number", field=field))
    if volume < 0:
        return ActionResult.failure(DomainValidationError(f"{field} cannot be negative", field=field))
    return ActionResult.success(volume)


def _parse_required_amount(value, field: str) -> ActionResult[Decimal]:
    amount = parse_numeric(value)
    if amount is None:
        return ActionResult.failure(DomainValidationError(f"{field} is required and must be a number", field=field))
    if amount < 0:
        return ActionResult.failure(DomainValidationError(f"{field} cannot be negative", field=field))
    return ActionResult.success(amount)


def accessorials_total(accessorials: Optional[Dict[str, Any]]) -> ActionResult[Optional[Decimal]]:
    """Sum the accessorial breakdown; None when nothing was charged."""
    if not accessorials:
        return ActionResult.success(None)
    amounts = []
    for key in ACCESSORIAL_KEYS:
        raw = accessorials.get(key)
        if raw is None:
            continue
        amount = parse_numeric(raw)
        if amount is None or amount < 0:
            return ActionResult.failure(DomainValidationError(
                f"Accessorial '{key}' must be a non-negative number", field=f"accessorials.{key}"
            ))
        amounts.append(amount)
    total = money_sum(amounts)
    return ActionResult.success(total if total else None)


class LoadStatusMachine:

    @staticmethod
    async def get_load(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[Load]:
        result = await db.execute(
            select(Load)
            .where(Load.id == load_id, *load_scope(identity))
            .execution_options(populate_existing=True)
        )
        load = result.scalar_one_or_none()
        if not load:
            return ActionResult.failure(ResourceNotFoundError("Load", load_id))
        return ActionResult.success(load)

    @staticmethod
    async def _transition(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        action: LoadAction,
        audit_action: str,
        event: str,
        values: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> ActionResult[Load]:
        async with unit_of_work(db):
            moved = await apply_transition(
                db, Load, load_id, load_scope(identity), LOAD_TRANSITIONS, action, values
            )
            if not moved.ok:
                logger.info("Load %s %s rejected: %s", load_id, action.value, moved.error.message)
                return ActionResult.failure(moved.error)
            await log_event(db, identity, audit_action, "load", load_id, metadata=metadata)

        return await LoadStatusMachine._after_commit(db, identity, load_id, event, metadata)

    @staticmethod
    async def _after_commit(
        db: AsyncSession, identity: DriverIdentity, load_id: int, event: str, metadata: Optional[dict]
    ) -> ActionResult[Load]:
        load = (await LoadStatusMachine.get_load(db, identity, load_id)).value
        await notify_owner(event, load.id, _load_payload(load, **(metadata or {})))
        return ActionResult.success(load)

    @staticmethod
    async def accept_load(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[Load]:
        return await LoadStatusMachine._transition(
            db, identity, load_id, LoadAction.ACCEPT, AuditAction.LOAD_ACCEPTED, OwnerEvent.LOAD_ACCEPTED,
            values={"accepted_at": utcnow()},
        )

    @staticmethod
    async def start_loading(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        starting_volume=None,
        photo_url: Optional[str] = None,
    ) -> ActionResult[Load]:
        volume = _parse_volume(starting_volume, "starting_volume")
        if not volume.ok:
            return ActionResult.failure(volume.error)

        return await LoadStatusMachine._transition(
            db, identity, load_id, LoadAction.START_LOADING, AuditAction.LOADING_STARTED, OwnerEvent.LOADING_STARTED,
            values={
                "starting_volume": volume.value,
                "loading_start_photo_url": photo_url,
                "loading_started_at": utcnow(),
            },
            metadata={"starting_volume": str(volume.value) if volume.value is not None else None},
        )

    @staticmethod
    async def finish_loading(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        ending_volume=None,
        photo_url: Optional[str] = None,
    ) -> ActionResult[Load]:
        """
        loading -> loaded.

        actual_volume = ending - starting when both readings exist, otherwise
        the raw ending figure. Computed in the UPDATE against the stored
        starting reading.
        """
        volume = _parse_volume(ending_volume, "ending_volume")
        if not volume.ok:
            return ActionResult.failure(volume.error)
        ending = volume.value

        if ending is None:
            actual = None
        else:
            actual = case(
                (Load.starting_volume.is_(None), ending),
                else_=ending - Load.starting_volume,
            )

        return await LoadStatusMachine._transition(
            db, identity, load_id, LoadAction.FINISH_LOADING, AuditAction.LOADING_FINISHED,
            OwnerEvent.LOADING_FINISHED,
            values={
                "ending_volume": ending,
                "actual_volume": actual,
                "loading_end_photo_url": photo_url,
                "loading_finished_at": utcnow(),
            },
            metadata={"ending_volume": str(ending) if ending is not None else None},
        )

    @staticmethod
    async def save_contract_details(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        contract_balance_due,
        rate_per_cuft=None,
        linehaul_total=None,
        accessorials: Optional[Dict[str, Any]] = None,
        job_number: Optional[str] = None,
        customer_name: Optional[str] = None,
        delivery_city: Optional[str] = None,
        delivery_state: Optional[str] = None,
    ) -> ActionResult[Load]:
        """
        Record the customer contract captured from partner/marketplace paperwork.

        Not a status change. Rejected once the load is terminal. The remaining
        balance is recomputed against whatever has already been collected.
        """
        balance = _parse_required_amount(contract_balance_due, "contract_balance_due")
        if not balance.ok:
            return ActionResult.failure(balance.error)
        extras = accessorials_total(accessorials)
        if not extras.ok:
            return ActionResult.failure(extras.error)
        for field, raw in (("rate_per_cuft", rate_per_cuft), ("linehaul_total", linehaul_total)):
            if raw is not None and (parse_numeric(raw) is None or parse_numeric(raw) < 0):
                return ActionResult.failure(DomainValidationError(
                    f"{field} must be a non-negative number", field=field
                ))

        due = to_money(balance.value)
        values = {
            "contract_balance_due": due,
            "rate_per_cuft": to_optional_money(parse_numeric(rate_per_cuft)),
            "contract_linehaul_total": to_optional_money(parse_numeric(linehaul_total)),
            "contract_accessorials_total": extras.value,
            "contract_job_number": job_number,
            "remaining_balance": due - Load.amount_collected_at_pickup - Load.amount_collected_on_delivery,
            "contract_details_entered_at": utcnow(),
        }
        # Only overwrite customer fields the driver actually filled in
        for key, value in (
            ("customer_name", customer_name),
            ("delivery_city", delivery_city),
            ("delivery_state", delivery_state),
        ):
            if value:
                values[key] = value

        async with unit_of_work(db):
            result = await db.execute(
                update(Load)
                .where(Load.id == load_id, *load_scope(identity), Load.status.not_in(TERMINAL_LOAD_STATUSES))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                found = await LoadStatusMachine.get_load(db, identity, load_id)
                if not found.ok:
                    return found
                return ActionResult.failure(InvalidTransitionError(
                    "Load", load_id, found.value.status.value, "save contract details for"
                ))
            await log_event(
                db, identity, AuditAction.CONTRACT_DETAILS_SAVED, "load", load_id,
                metadata={"contract_balance_due": str(due)},
            )

        return await LoadStatusMachine.get_load(db, identity, load_id)

    @staticmethod
    async def complete_pickup(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        contract_balance_due,
        actual_volume=None,
        rate_per_cuft=None,
        linehaul_total=None,
        accessorials: Optional[Dict[str, Any]] = None,
        amount_collected=None,
        method: Optional[PaymentMethod] = None,
    ) -> ActionResult[Load]:
        """
        Pickup-posting shortcut: accepted/loading -> loaded in one step.

        Captures the contract figures and the deposit taken at pickup. The
        deposit Payment row is written in the same transaction as the status
        change.
        """
        balance = _parse_required_amount(contract_balance_due, "contract_balance_due")
        if not balance.ok:
            return ActionResult.failure(balance.error)
        volume = _parse_volume(actual_volume, "actual_volume")
        if not volume.ok:
            return ActionResult.failure(volume.error)
        extras = accessorials_total(accessorials)
        if not extras.ok:
            return ActionResult.failure(extras.error)
        invalid = validate_collection(amount_collected, method)
        if invalid:
            return ActionResult.failure(invalid)

        due = to_money(balance.value)
        deposit = to_money(amount_collected)
        now = utcnow()
        values = {
            "contract_balance_due": due,
            "rate_per_cuft": to_optional_money(parse_numeric(rate_per_cuft)),
            "contract_linehaul_total": to_optional_money(parse_numeric(linehaul_total)),
            "contract_accessorials_total": extras.value,
            "amount_collected_at_pickup": Load.amount_collected_at_pickup + deposit,
            "remaining_balance": (
                due - Load.amount_collected_at_pickup - deposit - Load.amount_collected_on_delivery
            ),
            "loading_finished_at": now,
            "pickup_completed_at": now,
        }
        if volume.value is not None:
            values["actual_volume"] = volume.value
        if method is not None:
            values["payment_method"] = method

        metadata = {"contract_balance_due": str(due), "amount_collected": str(deposit)}
        async with unit_of_work(db):
            moved = await apply_transition(
                db, Load, load_id, load_scope(identity), LOAD_TRANSITIONS, LoadAction.COMPLETE_PICKUP, values
            )
            if not moved.ok:
                return ActionResult.failure(moved.error)
            await log_event(db, identity, AuditAction.PICKUP_COMPLETED, "load", load_id, metadata=metadata)
            if deposit > ZERO:
                await PaymentLedger.record_payment(
                    db, identity, load_id, PaymentType.DEPOSIT, deposit, method
                )

        return await LoadStatusMachine._after_commit(db, identity, load_id, OwnerEvent.PICKUP_COMPLETED, metadata)

    @staticmethod
    async def start_delivery(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        collected_amount=None,
        method: Optional[PaymentMethod] = None,
    ) -> ActionResult[Load]:
        """
        loaded/loading -> in_transit, gated by the delivery-order guard.

        Flow:
        1. Validate the collected amount and method
        2. Reject loads not in a start-delivery state
        3. In one transaction, ask DeliveryOrderGuard (a denial becomes
           OrderViolationError), then write the status and collection Payment
        """
        invalid = validate_collection(collected_amount, method)
        if invalid:
            return ActionResult.failure(invalid)

        found = await LoadStatusMachine.get_load(db, identity, load_id)
        if not found.ok:
            return found
        load = found.value
        if LOAD_TRANSITIONS.next_status(load.status, LoadAction.START_DELIVERY) is None:
            return ActionResult.failure(InvalidTransitionError(
                "Load", load_id, load.status.value, LoadAction.START_DELIVERY.value
            ))

        collected = to_money(collected_amount)
        values = {
            "amount_collected_on_delivery": Load.amount_collected_on_delivery + collected,
            "remaining_balance": (
                Load.contract_balance_due - Load.amount_collected_at_pickup
                - Load.amount_collected_on_delivery - collected
            ),
            "delivery_started_at": utcnow(),
        }
        if method is not None:
            values["payment_method"] = method

        metadata = {"amount_collected": str(collected), "delivery_order": load.delivery_order}
        async with unit_of_work(db):
            check = await DeliveryOrderGuard.check(db, identity, load_id)
            if not check.allowed:
                blocker = check.blocking_load
                return ActionResult.failure(OrderViolationError(
                    check.reason,
                    blocking_load_id=blocker.id if blocker else None,
                    blocking_delivery_order=blocker.delivery_order if blocker else None,
                ))

            moved = await apply_transition(
                db, Load, load_id, load_scope(identity), LOAD_TRANSITIONS, LoadAction.START_DELIVERY, values
            )
            if not moved.ok:
                return ActionResult.failure(moved.error)
            await log_event(db, identity, AuditAction.DELIVERY_STARTED, "load", load_id, metadata=metadata)
            if collected > ZERO:
                await PaymentLedger.record_payment(
                    db, identity, load_id, PaymentType.COLLECTION, collected, method
                )

        return await LoadStatusMachine._after_commit(db, identity, load_id, OwnerEvent.DELIVERY_STARTED, metadata)

    @staticmethod
    async def complete_delivery(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[Load]:
        """
        in_transit -> delivered, advancing the trip's delivery index in the
        same transaction.
        """
        found = await LoadStatusMachine.get_load(db, identity, load_id)
        if not found.ok:
            return found
        delivery_order = found.value.delivery_order

        metadata = {"delivery_order": delivery_order}
        async with unit_of_work(db):
            moved = await apply_transition(
                db, Load, load_id, load_scope(identity), LOAD_TRANSITIONS, LoadAction.COMPLETE_DELIVERY,
                {"delivery_finished_at": utcnow()},
            )
            if not moved.ok:
                return ActionResult.failure(moved.error)
            await log_event(db, identity, AuditAction.DELIVERY_COMPLETED, "load", load_id, metadata=metadata)

            trip_id = (await db.execute(
                select(TripLoad.trip_id).where(TripLoad.load_id == load_id)
            )).scalar_one_or_none()
            if trip_id is not None:
                metadata["trip_id"] = trip_id
                metadata["index_advanced"] = await TripLifecycleController.advance_delivery_index(
                    db, identity, trip_id, delivery_order
                )

        return await LoadStatusMachine._after_commit(db, identity, load_id, OwnerEvent.DELIVERY_COMPLETED, metadata)

    @staticmethod
    async def complete_storage_drop(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[Load]:
        return await LoadStatusMachine._transition(
            db, identity, load_id, LoadAction.COMPLETE_STORAGE_DROP, AuditAction.STORAGE_DROP_COMPLETED,
            OwnerEvent.STORAGE_DROP_COMPLETED,
            values={"storage_completed_at": utcnow()},
        )

    @staticmethod
    async def cancel_load(
        db: AsyncSession, identity: DriverIdentity, load_id: int, reason: Optional[str] = None
    ) -> ActionResult[Load]:
        return await LoadStatusMachine._transition(
            db, identity, load_id, LoadAction.CANCEL, AuditAction.LOAD_CANCELLED, OwnerEvent.LOAD_CANCELLED,
            values={"cancelled_at": utcnow()},
            metadata={"reason": reason},
        )

    @staticmethod
    async def requires_contract_details(
        db: AsyncSession, identity: DriverIdentity, load_id: int
    ) -> ActionResult[GatingDecision]:
        """Partner and marketplace loads need contract details before delivery."""
        found = await LoadStatusMachine.get_load(db, identity, load_id)
        if not found.ok:
            return ActionResult.failure(found.error)
        load = found.value
        return ActionResult.success(GatingDecision(
            required=load.load_source in CONTRACT_SOURCES and load.contract_details_entered_at is None,
            load_source=load.load_source.value,
            posting_type=load.posting_type.value,
        ))

    @staticmethod
    async def requires_pickup_completion(
        db: AsyncSession, identity: DriverIdentity, load_id: int
    ) -> ActionResult[GatingDecision]:
        """Pickup postings need the pickup-completion form before delivery."""
        found = await LoadStatusMachine.get_load(db, identity, load_id)
        if not found.ok:
            return ActionResult.failure(found.error)
        load = found.value
        return ActionResult.success(GatingDecision(
            required=load.posting_type == PostingType.PICKUP and load.pickup_completed_at is None,
            load_source=load.load_source.value,
            posting_type=load.posting_type.value,
        ))
