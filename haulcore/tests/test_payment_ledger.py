"""
Payment Ledger Tests.
"""

import pytest
from decimal import Decimal

from haulcore.app.core.exceptions import DomainValidationError, ResourceNotFoundError
from haulcore.app.domain.ledger.payment_ledger import PaymentLedger, validate_collection
from haulcore.app.domain.lifecycle.load_status_machine import LoadStatusMachine
from haulcore.app.models.billing_enums import PaymentCollector, PaymentMethod, PaymentType
from haulcore.app.models.load_enums import LoadStatus
from haulcore.app.services.audit import get_audit_trail, AuditAction


@pytest.mark.parametrize("amount,method,field", [
    (-1, PaymentMethod.CASH, "amount"),
    ("25.00", PaymentMethod.ALREADY_PAID, "amount"),
    (10, None, "method"),
])
def test_validate_collection_rejects(amount, method, field):
    error = validate_collection(amount, method)

    assert isinstance(error, DomainValidationError)
    assert error.details["field"] == field


@pytest.mark.parametrize("amount,method", [
    (None, None),
    (0, None),
    (0, PaymentMethod.ALREADY_PAID),
    ("199.99", PaymentMethod.VENMO),
])
def test_validate_collection_accepts(amount, method):
    assert validate_collection(amount, method) is None


async def test_record_payment_appends_row_and_audit(db_session, factory, driver):
    load = await factory.load(contract_balance_due=500)

    result = await PaymentLedger.record_payment(
        db_session, driver, load.id, PaymentType.DEPOSIT, "200", PaymentMethod.CASH
    )
    await db_session.commit()

    payment = result.value
    assert payment.amount == Decimal("200.00")
    assert payment.collected_by == PaymentCollector.DRIVER
    assert payment.company_id == driver.company_id
    trail = await get_audit_trail(db_session, driver.company_id, action=AuditAction.PAYMENT_RECORDED)
    assert trail[0].meta_data["payment_id"] == payment.id
    assert trail[0].meta_data["method"] == "cash"


async def test_record_payment_rejects_negative(db_session, factory, driver):
    load = await factory.load(contract_balance_due=500)

    result = await PaymentLedger.record_payment(
        db_session, driver, load.id, PaymentType.COLLECTION, -5, PaymentMethod.CASH
    )

    assert isinstance(result.error, DomainValidationError)
    assert await PaymentLedger.payments_for_load(db_session, driver, load.id) == []


async def test_balance_derived_from_payments(db_session, factory, driver):
    """500 due, 200 deposit at pickup: 300 left, and the load row agrees."""
    load = await factory.load(status=LoadStatus.ACCEPTED, contract_balance_due=500)
    await LoadStatusMachine.complete_pickup(
        db_session, driver, load.id, contract_balance_due=500, amount_collected=200, method=PaymentMethod.CASH,
    )

    balance = await PaymentLedger.current_balance(db_session, driver, load.id)

    assert balance.value == Decimal("300")
    assert (await PaymentLedger.balance_agrees(db_session, driver, load.id)).value is True


async def test_balance_can_go_negative_on_overpayment(db_session, factory, driver):
    load = await factory.load(status=LoadStatus.LOADED, contract_balance_due=100)

    result = await LoadStatusMachine.start_delivery(db_session, driver, load.id, 140, PaymentMethod.CASH)

    assert result.value.remaining_balance == Decimal("-40")
    assert (await PaymentLedger.balance_agrees(db_session, driver, load.id)).value is True


async def test_balance_disagreement_is_detected(db_session, factory, driver):
    load = await factory.load(contract_balance_due=500)
    load.remaining_balance = Decimal("450")  # written without a payment row
    await db_session.commit()

    assert (await PaymentLedger.balance_agrees(db_session, driver, load.id)).value is False


async def test_balance_for_other_company_is_not_found(db_session, factory, outsider):
    load = await factory.load(contract_balance_due=500)

    result = await PaymentLedger.current_balance(db_session, outsider, load.id)

    assert isinstance(result.error, ResourceNotFoundError)
    assert await PaymentLedger.payments_for_load(db_session, outsider, load.id) == []


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity"])
def test_validate_collection_rejects_non_numbers(amount):
    error = validate_collection(amount, PaymentMethod.CASH)

    assert isinstance(error, DomainValidationError)
    assert error.message == "Amount collected must be a number"
    assert error.details["field"] == "amount"


async def test_record_payment_rejects_non_number(db_session, factory, driver):
    load = await factory.load(contract_balance_due=500)

    result = await PaymentLedger.record_payment(
        db_session, driver, load.id, PaymentType.COLLECTION, "abc", PaymentMethod.CASH
    )

    assert isinstance(result.error, DomainValidationError)
    assert await PaymentLedger.payments_for_load(db_session, driver, load.id) == []


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity"])
async def test_malformed_collection_comes_back_as_validation_error(db_session, factory, driver, amount):
    loaded = await factory.load(status=LoadStatus.LOADED, contract_balance_due=500)
    accepted = await factory.load(status=LoadStatus.ACCEPTED, contract_balance_due=500)

    delivery = await LoadStatusMachine.start_delivery(db_session, driver, loaded.id, amount, PaymentMethod.CASH)
    pickup = await LoadStatusMachine.complete_pickup(
        db_session, driver, accepted.id, contract_balance_due=500, amount_collected=amount, method=PaymentMethod.CASH,
    )

    assert isinstance(delivery.error, DomainValidationError)
    assert isinstance(pickup.error, DomainValidationError)
    assert (await LoadStatusMachine.get_load(db_session, driver, loaded.id)).value.status == LoadStatus.LOADED
    assert (await LoadStatusMachine.get_load(db_session, driver, accepted.id)).value.status == LoadStatus.ACCEPTED
