"""
Payment Ledger.

Append-only audit trail of money collected in the field. The load row holds
the current balance; the ledger must always agree with it:

    contract_balance_due - sum(payments) == loads.remaining_balance
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import DomainValidationError, ResourceNotFoundError
from haulcore.app.domain.money import money_sum, parse_numeric, to_money
from haulcore.app.domain.results import ActionResult, DriverIdentity
from haulcore.app.models.billing_enums import PaymentType, PaymentMethod, PaymentCollector
from haulcore.app.models.load import Load
from haulcore.app.models.load_payment import LoadPayment
from haulcore.app.services.audit import log_event, AuditAction


def validate_collection(amount, method: Optional[PaymentMethod]) -> Optional[DomainValidationError]:
    """Input rules shared by every path that collects money."""
    if amount is None:
        return None
    parsed = parse_numeric(amount)
    if parsed is None:
        return DomainValidationError("Amount collected must be a number", field="amount")
    if parsed < 0:
        return DomainValidationError("Amount collected cannot be negative", field="amount")
    if method == PaymentMethod.ALREADY_PAID and parsed != 0:
        return DomainValidationError(
            "Amount must be zero when the customer already paid", field="amount"
        )
    if parsed > 0 and method is None:
        return DomainValidationError("Payment method is required when collecting money", field="method")
    return None


class PaymentLedger:

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        identity: DriverIdentity,
        load_id: int,
        payment_type: PaymentType,
        amount,
        method: PaymentMethod,
        collector: PaymentCollector = PaymentCollector.DRIVER,
        notes: Optional[str] = None,
    ) -> ActionResult[LoadPayment]:
        """
        Append a Payment row to the caller's transaction.

        Does not touch the load's balance fields and does not commit: the
        status machine writes the load and the payment in one unit of work.
        """
        parsed = parse_numeric(amount)
        if parsed is None:
            return ActionResult.failure(DomainValidationError("Payment amount must be a number", field="amount"))
        amount = to_money(parsed)
        if amount < 0:
            return ActionResult.failure(DomainValidationError("Payment amount cannot be negative", field="amount"))

        payment = LoadPayment(
            company_id=identity.company_id,
            load_id=load_id,
            payment_type=payment_type,
            amount=amount,
            method=method,
            collected_by=collector,
            notes=notes,
        )
        db.add(payment)
        await db.flush()

        await log_event(
            db, identity, AuditAction.PAYMENT_RECORDED, "load", load_id,
            metadata={
                "payment_id": payment.id,
                "payment_type": payment_type.value,
                "amount": str(amount),
                "method": method.value,
            },
        )
        return ActionResult.success(payment)

    @staticmethod
    async def payments_for_load(db: AsyncSession, identity: DriverIdentity, load_id: int) -> List[LoadPayment]:
        result = await db.execute(
            select(LoadPayment)
            .where(LoadPayment.load_id == load_id, LoadPayment.company_id == identity.company_id)
            .order_by(LoadPayment.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def current_balance(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[Decimal]:
        """Remaining balance derived from the contract minus recorded payments."""
        load_result = await db.execute(
            select(Load.contract_balance_due)
            .where(Load.id == load_id, Load.company_id == identity.company_id)
        )
        row = load_result.one_or_none()
        if row is None:
            return ActionResult.failure(ResourceNotFoundError("Load", load_id))

        payments = await PaymentLedger.payments_for_load(db, identity, load_id)
        return ActionResult.success(to_money(row.contract_balance_due) - money_sum(p.amount for p in payments))

    @staticmethod
    async def balance_agrees(db: AsyncSession, identity: DriverIdentity, load_id: int) -> ActionResult[bool]:
        """True when the derived balance matches the load's stored remaining_balance."""
        derived = await PaymentLedger.current_balance(db, identity, load_id)
        if not derived.ok:
            return ActionResult.failure(derived.error)

        stored_result = await db.execute(
            select(Load.remaining_balance)
            .where(Load.id == load_id, Load.company_id == identity.company_id)
        )
        stored = stored_result.scalar_one()
        return ActionResult.success(to_money(stored) == derived.value)
