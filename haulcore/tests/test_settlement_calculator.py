"""
Settlement Calculator Tests.
"""

from decimal import Decimal

from haulcore.app.core.exceptions import ResourceNotFoundError
from haulcore.app.domain.billing.settlement_calculator import SettlementCalculator
from haulcore.app.domain.ledger.expense_ledger import ExpenseLedger
from haulcore.app.domain.ledger.payment_ledger import PaymentLedger
from haulcore.app.models.billing_enums import PaymentMethod, PaymentType, SettlementLineCategory
from haulcore.app.models.load_enums import LoadStatus
from haulcore.app.models.trip_enums import ExpenseCategory, ExpensePaidBy, TripStatus


async def build_trip(db_session, factory, owner):
    """Two delivered loads, one still in transit, payments and expenses."""
    trip = await factory.trip(
        status=TripStatus.COMPLETED, odometer_start=Decimal("12000"), odometer_end=Decimal("12480.5")
    )
    first = await factory.load(
        status=LoadStatus.DELIVERED,
        contract_linehaul_total=Decimal("1000"),
        contract_accessorials_total=Decimal("150"),
        actual_volume=Decimal("300"),
    )
    stored = await factory.load(
        status=LoadStatus.STORAGE_COMPLETED,
        contract_linehaul_total=Decimal("600"),
        actual_volume=Decimal("220"),
    )
    moving = await factory.load(
        status=LoadStatus.IN_TRANSIT,
        contract_linehaul_total=Decimal("999"),
        actual_volume=Decimal("100"),
    )
    await factory.attach(trip, first, stored, moving)

    await PaymentLedger.record_payment(db_session, owner, first.id, PaymentType.DEPOSIT, 200, PaymentMethod.CASH)
    await PaymentLedger.record_payment(db_session, owner, first.id, PaymentType.COLLECTION, 300, PaymentMethod.ZELLE)
    await PaymentLedger.record_payment(db_session, owner, moving.id, PaymentType.DEPOSIT, 50, PaymentMethod.CARD)
    await db_session.commit()

    await ExpenseLedger.record_expense(
        db_session, owner, trip.id, ExpenseCategory.FUEL, 200, ExpensePaidBy.COMPANY_CARD
    )
    await ExpenseLedger.record_expense(
        db_session, owner, trip.id, ExpenseCategory.LODGING, "80", ExpensePaidBy.DRIVER_CASH, "Motel 6"
    )
    return trip, first, stored, moving


async def test_compute_totals(db_session, factory, owner):
    trip, *_ = await build_trip(db_session, factory, owner)

    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    assert totals.total_miles == Decimal("480.50")
    # Revenue and volume only count delivered or storage-completed loads
    assert totals.total_revenue == Decimal("1750")
    assert totals.total_volume == Decimal("520")
    # Collections count every payment on the trip
    assert totals.total_collected == Decimal("550")
    assert totals.total_expenses == Decimal("280")
    assert totals.reimbursable_expenses == Decimal("80")
    assert totals.net_amount == Decimal("270")


async def test_compute_line_items(db_session, factory, owner):
    trip, first, stored, moving = await build_trip(db_session, factory, owner)

    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    described = [(line.category, line.description, line.amount, line.load_id) for line in totals.line_items]
    assert described == [
        ("revenue", "Linehaul (contract)", Decimal("1000.00"), first.id),
        ("revenue", "Contract accessorials", Decimal("150.00"), first.id),
        ("revenue", "Linehaul (contract)", Decimal("600.00"), stored.id),
        ("collection", "Collected at pickup", Decimal("200.00"), first.id),
        ("collection", "Collected on delivery", Decimal("300.00"), first.id),
        ("collection", "Collected at pickup", Decimal("50.00"), moving.id),
        ("expense", "Fuel", Decimal("200.00"), None),
        ("expense", "Motel 6", Decimal("80.00"), None),
    ]


async def test_compute_is_repeatable(db_session, factory, owner):
    trip, *_ = await build_trip(db_session, factory, owner)

    first = await SettlementCalculator.compute(db_session, owner, trip.id)
    second = await SettlementCalculator.compute(db_session, owner, trip.id)

    assert first.value == second.value


async def test_trip_with_nothing_but_mileage(db_session, factory, owner):
    trip = await factory.trip(
        status=TripStatus.COMPLETED, odometer_start=Decimal("100"), odometer_end=Decimal("350")
    )

    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    assert totals.total_miles == Decimal("250")
    assert totals.total_revenue == Decimal("0")
    assert totals.total_collected == Decimal("0")
    assert totals.total_expenses == Decimal("0")
    assert totals.reimbursable_expenses == Decimal("0")
    assert totals.net_amount == Decimal("0")
    assert totals.line_items == []


async def test_missing_odometer_means_zero_miles(db_session, factory, owner):
    trip = await factory.trip(status=TripStatus.COMPLETED, odometer_start=Decimal("100"))

    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    assert totals.total_miles == Decimal("0")


async def test_expense_pending_deletion_still_counts(db_session, factory, owner):
    trip = await factory.trip(status=TripStatus.COMPLETED)
    expense = (await ExpenseLedger.record_expense(
        db_session, owner, trip.id, ExpenseCategory.TOLLS, 35, ExpensePaidBy.DRIVER_PERSONAL
    )).value
    await ExpenseLedger.mark_pending_deletion(db_session, owner, expense.id)

    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    assert totals.total_expenses == Decimal("35")
    assert totals.reimbursable_expenses == Decimal("35")


async def test_store_replaces_line_items(db_session, factory, owner):
    trip, *_ = await build_trip(db_session, factory, owner)
    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value

    first = await SettlementCalculator.store(db_session, owner, totals)
    await db_session.commit()
    second = await SettlementCalculator.store(db_session, owner, totals)
    await db_session.commit()

    assert first.id == second.id
    items = await SettlementCalculator.get_line_items(db_session, second.id)
    assert [item.position for item in items] == list(range(1, 9))
    assert items[0].category == SettlementLineCategory.REVENUE
    stored = await SettlementCalculator.get_settlement(db_session, owner, trip.id)
    assert stored.net_amount == Decimal("270")


async def test_compute_missing_trip(db_session, owner):
    result = await SettlementCalculator.compute(db_session, owner, 777)

    assert isinstance(result.error, ResourceNotFoundError)


async def test_settlement_hidden_from_other_company(db_session, factory, owner, outsider):
    trip = await factory.trip(status=TripStatus.COMPLETED)
    totals = (await SettlementCalculator.compute(db_session, owner, trip.id)).value
    await SettlementCalculator.store(db_session, owner, totals)
    await db_session.commit()

    assert await SettlementCalculator.get_settlement(db_session, outsider, trip.id) is None
