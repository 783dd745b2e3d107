"""
Settlement Calculator (Domain Logic).

Aggregates a trip's mileage, revenue, collected payments and expenses into a
settlement. Rows are read in id order and summed as Decimal, so running the
calculation twice over the same rows yields equal results.
"""

from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import ResourceNotFoundError
from haulcore.app.domain.lifecycle.transitions import utcnow
from haulcore.app.domain.money import ZERO, money_sum, to_money
from haulcore.app.domain.results import ActionResult, DriverIdentity, SettlementLine, SettlementTotals
from haulcore.app.models.billing_enums import PaymentType, SettlementLineCategory
from haulcore.app.models.load import Load
from haulcore.app.models.load_enums import DELIVERED_STATUSES
from haulcore.app.models.load_payment import LoadPayment
from haulcore.app.models.settlement import Settlement, SettlementLineItem
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_expense import TripExpense
from haulcore.app.models.trip_load import TripLoad
from haulcore.app.services.audit import log_event, AuditAction

PAYMENT_DESCRIPTIONS = {
    PaymentType.DEPOSIT: "Collected at pickup",
    PaymentType.COLLECTION: "Collected on delivery",
}


class SettlementCalculator:

    @staticmethod
    async def compute(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> ActionResult[SettlementTotals]:
        """
        Compute a trip's settlement without writing anything.

        Flow:
        1. Miles from the odometer readings (0 when either is missing)
        2. Volume and revenue over delivered / storage-completed loads
        3. Collected money over every payment on the trip's loads
        4. Expenses, with the driver-paid share as reimbursable
        5. net = collected - expenses
        """
        trip_result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id, Trip.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        trip = trip_result.scalar_one_or_none()
        if not trip:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))

        lines: List[SettlementLine] = []

        if trip.odometer_start is not None and trip.odometer_end is not None:
            miles = to_money(trip.odometer_end) - to_money(trip.odometer_start)
        else:
            miles = ZERO

        loads_result = await db.execute(
            select(Load)
            .join(TripLoad, TripLoad.load_id == Load.id)
            .where(TripLoad.trip_id == trip.id, Load.company_id == identity.company_id)
            .order_by(Load.id)
            .execution_options(populate_existing=True)
        )
        loads = list(loads_result.scalars().all())
        delivered = [l for l in loads if l.status in DELIVERED_STATUSES]

        for load in delivered:
            if load.contract_linehaul_total:
                lines.append(SettlementLine(
                    SettlementLineCategory.REVENUE.value, "Linehaul (contract)",
                    to_money(load.contract_linehaul_total), load.id,
                ))
            if load.contract_accessorials_total:
                lines.append(SettlementLine(
                    SettlementLineCategory.REVENUE.value, "Contract accessorials",
                    to_money(load.contract_accessorials_total), load.id,
                ))

        payments: List[LoadPayment] = []
        load_ids = [l.id for l in loads]
        if load_ids:
            payments_result = await db.execute(
                select(LoadPayment)
                .where(LoadPayment.load_id.in_(load_ids), LoadPayment.company_id == identity.company_id)
                .order_by(LoadPayment.id)
            )
            payments = list(payments_result.scalars().all())
        for payment in payments:
            lines.append(SettlementLine(
                SettlementLineCategory.COLLECTION.value,
                PAYMENT_DESCRIPTIONS[payment.payment_type],
                to_money(payment.amount), payment.load_id,
            ))

        expenses_result = await db.execute(
            select(TripExpense)
            .where(TripExpense.trip_id == trip.id, TripExpense.company_id == identity.company_id)
            .order_by(TripExpense.id)
        )
        expenses = list(expenses_result.scalars().all())
        for expense in expenses:
            lines.append(SettlementLine(
                SettlementLineCategory.EXPENSE.value,
                expense.description or expense.category.value.capitalize(),
                to_money(expense.amount),
            ))

        total_collected = money_sum(p.amount for p in payments)
        total_expenses = money_sum(e.amount for e in expenses)

        return ActionResult.success(SettlementTotals(
            trip_id=trip.id,
            total_miles=miles,
            total_volume=money_sum(l.actual_volume for l in delivered),
            total_revenue=money_sum(
                to_money(l.contract_linehaul_total) + to_money(l.contract_accessorials_total)
                for l in delivered
            ),
            total_collected=total_collected,
            total_expenses=total_expenses,
            reimbursable_expenses=money_sum(e.amount for e in expenses if e.reimbursable),
            net_amount=total_collected - total_expenses,
            line_items=lines,
        ))

    @staticmethod
    async def store(db: AsyncSession, identity: DriverIdentity, totals: SettlementTotals) -> Settlement:
        """
        Write ``totals`` as the trip's settlement, replacing any earlier one.

        Does not commit.
        """
        existing_result = await db.execute(
            select(Settlement).where(
                Settlement.trip_id == totals.trip_id,
                Settlement.company_id == identity.company_id,
            )
        )
        settlement = existing_result.scalar_one_or_none()
        if settlement is None:
            settlement = Settlement(company_id=identity.company_id, trip_id=totals.trip_id)
            db.add(settlement)
        else:
            await db.execute(
                delete(SettlementLineItem).where(SettlementLineItem.settlement_id == settlement.id)
            )

        settlement.total_miles = totals.total_miles
        settlement.total_volume = totals.total_volume
        settlement.total_revenue = totals.total_revenue
        settlement.total_collected = totals.total_collected
        settlement.total_expenses = totals.total_expenses
        settlement.reimbursable_expenses = totals.reimbursable_expenses
        settlement.net_amount = totals.net_amount
        settlement.calculated_at = utcnow()
        await db.flush()

        db.add_all([
            SettlementLineItem(
                settlement_id=settlement.id,
                load_id=line.load_id,
                position=position,
                category=SettlementLineCategory(line.category),
                description=line.description,
                amount=line.amount,
            )
            for position, line in enumerate(totals.line_items, start=1)
        ])
        await db.flush()

        await log_event(
            db, identity, AuditAction.SETTLEMENT_CALCULATED, "trip", totals.trip_id,
            metadata={"settlement_id": settlement.id, "net_amount": str(totals.net_amount)},
        )
        return settlement

    @staticmethod
    async def get_settlement(db: AsyncSession, identity: DriverIdentity, trip_id: int) -> Optional[Settlement]:
        result = await db.execute(
            select(Settlement)
            .where(Settlement.trip_id == trip_id, Settlement.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_line_items(db: AsyncSession, settlement_id: int) -> List[SettlementLineItem]:
        result = await db.execute(
            select(SettlementLineItem)
            .where(SettlementLineItem.settlement_id == settlement_id)
            .order_by(SettlementLineItem.position)
        )
        return list(result.scalars().all())
