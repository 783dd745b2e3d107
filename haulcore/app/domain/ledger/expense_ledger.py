"""
Expense Ledger.

Trip-level costs recorded by the driver. Removal is two-phase: the row is
first marked pending deletion (hidden from lists, still counted in
settlement), then either committed (row deleted) or cancelled. The commit is
scheduled by the caller, never inside this module.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import DomainValidationError, InvalidTransitionError, ResourceNotFoundError
from haulcore.app.db.session import unit_of_work
from haulcore.app.domain.lifecycle.transitions import utcnow
from haulcore.app.domain.money import parse_numeric, to_money
from haulcore.app.domain.results import ActionResult, DriverIdentity
from haulcore.app.models.trip import Trip
from haulcore.app.models.trip_enums import ExpenseCategory, ExpensePaidBy, TripStatus
from haulcore.app.models.trip_expense import TripExpense
from haulcore.app.services.audit import log_event, AuditAction

logger = logging.getLogger("haulcore.ledger.expenses")

# Expenses are frozen once the trip is closed out
CLOSED_TRIP_STATUSES = frozenset({TripStatus.CANCELLED, TripStatus.SETTLED})


def _on_open_trip(identity: DriverIdentity):
    return TripExpense.trip_id.in_(
        select(Trip.id).where(
            Trip.company_id == identity.company_id,
            Trip.status.not_in(CLOSED_TRIP_STATUSES),
        )
    )


class ExpenseLedger:

    @staticmethod
    async def record_expense(
        db: AsyncSession,
        identity: DriverIdentity,
        trip_id: int,
        category: ExpenseCategory,
        amount,
        paid_by: ExpensePaidBy,
        description: Optional[str] = None,
    ) -> ActionResult[TripExpense]:
        parsed = parse_numeric(amount)
        if parsed is None or parsed <= 0:
            return ActionResult.failure(DomainValidationError(
                "Expense amount must be greater than zero", field="amount"
            ))

        trip_result = await db.execute(
            select(Trip.status).where(Trip.id == trip_id, Trip.company_id == identity.company_id)
        )
        trip_status = trip_result.scalar_one_or_none()
        if trip_status is None:
            return ActionResult.failure(ResourceNotFoundError("Trip", trip_id))
        if trip_status in CLOSED_TRIP_STATUSES:
            return ActionResult.failure(InvalidTransitionError(
                "Trip", trip_id, trip_status.value, "record an expense on"
            ))

        async with unit_of_work(db):
            expense = TripExpense(
                company_id=identity.company_id,
                trip_id=trip_id,
                category=category,
                amount=to_money(parsed),
                paid_by=paid_by,
                description=description,
            )
            db.add(expense)
            await db.flush()
            await log_event(
                db, identity, AuditAction.EXPENSE_RECORDED, "expense", expense.id,
                metadata={"trip_id": trip_id, "category": category.value, "amount": str(expense.amount)},
            )

        return ActionResult.success(expense)

    @staticmethod
    async def get_expense(db: AsyncSession, identity: DriverIdentity, expense_id: int) -> ActionResult[TripExpense]:
        result = await db.execute(
            select(TripExpense)
            .where(TripExpense.id == expense_id, TripExpense.company_id == identity.company_id)
            .execution_options(populate_existing=True)
        )
        expense = result.scalar_one_or_none()
        if not expense:
            return ActionResult.failure(ResourceNotFoundError("Expense", expense_id))
        return ActionResult.success(expense)

    @staticmethod
    async def list_expenses(
        db: AsyncSession, identity: DriverIdentity, trip_id: int, include_pending: bool = False
    ) -> List[TripExpense]:
        query = select(TripExpense).where(
            TripExpense.trip_id == trip_id,
            TripExpense.company_id == identity.company_id,
        )
        if not include_pending:
            query = query.where(TripExpense.pending_deletion_at.is_(None))
        result = await db.execute(query.order_by(TripExpense.id))
        return list(result.scalars().all())

    @staticmethod
    async def _refusal(
        db: AsyncSession, identity: DriverIdentity, expense_id: int, state: Optional[str], verb: str
    ) -> ActionResult:
        """Explain why a conditional expense write matched nothing."""
        found = await ExpenseLedger.get_expense(db, identity, expense_id)
        if not found.ok:
            return ActionResult.failure(found.error)
        expense = found.value

        trip_status = (await db.execute(
            select(Trip.status).where(Trip.id == expense.trip_id, Trip.company_id == identity.company_id)
        )).scalar_one_or_none()
        if trip_status in CLOSED_TRIP_STATUSES:
            return ActionResult.failure(InvalidTransitionError(
                "Trip", expense.trip_id, trip_status.value, f"{verb} an expense on"
            ))
        if state is None:
            state = "pending deletion" if expense.pending_deletion_at else "active"
        return ActionResult.failure(InvalidTransitionError("Expense", expense_id, state, verb))

    @staticmethod
    async def _mark(
        db: AsyncSession,
        identity: DriverIdentity,
        expense_id: int,
        pending: bool,
        audit_action: str,
        verb: str,
    ) -> ActionResult[TripExpense]:
        # pending=True only matches live rows, pending=False only pending ones
        currently_pending = TripExpense.pending_deletion_at.is_(None) if pending \
            else TripExpense.pending_deletion_at.is_not(None)

        async with unit_of_work(db):
            result = await db.execute(
                update(TripExpense)
                .where(
                    TripExpense.id == expense_id,
                    TripExpense.company_id == identity.company_id,
                    currently_pending,
                    _on_open_trip(identity),
                )
                .values(pending_deletion_at=utcnow() if pending else None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return await ExpenseLedger._refusal(db, identity, expense_id, None, verb)
            await log_event(db, identity, audit_action, "expense", expense_id)

        return await ExpenseLedger.get_expense(db, identity, expense_id)

    @staticmethod
    async def mark_pending_deletion(
        db: AsyncSession, identity: DriverIdentity, expense_id: int
    ) -> ActionResult[TripExpense]:
        return await ExpenseLedger._mark(
            db, identity, expense_id, True, AuditAction.EXPENSE_DELETION_PENDING, "delete"
        )

    @staticmethod
    async def cancel_deletion(
        db: AsyncSession, identity: DriverIdentity, expense_id: int
    ) -> ActionResult[TripExpense]:
        return await ExpenseLedger._mark(
            db, identity, expense_id, False, AuditAction.EXPENSE_DELETION_CANCELLED, "restore"
        )

    @staticmethod
    async def commit_deletion(db: AsyncSession, identity: DriverIdentity, expense_id: int) -> ActionResult[None]:
        """Delete an expense previously marked pending. Live rows are refused."""
        async with unit_of_work(db):
            result = await db.execute(
                delete(TripExpense)
                .where(
                    TripExpense.id == expense_id,
                    TripExpense.company_id == identity.company_id,
                    TripExpense.pending_deletion_at.is_not(None),
                    _on_open_trip(identity),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return await ExpenseLedger._refusal(db, identity, expense_id, "active", "commit deletion of")
            await log_event(db, identity, AuditAction.EXPENSE_DELETED, "expense", expense_id)

        logger.info("Expense %s deleted", expense_id)
        return ActionResult.success()
