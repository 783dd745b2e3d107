"""
Driver Trip API Endpoints.

Trip start/complete with odometer readings, and the trip's expense log.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.guards import require_driver
from haulcore.app.db.session import get_db
from haulcore.app.domain.ledger.expense_ledger import ExpenseLedger
from haulcore.app.domain.lifecycle.trip_lifecycle import TripLifecycleController
from haulcore.app.domain.results import DriverIdentity
from haulcore.app.schemas.trip import (
    TripStartRequest, TripCompleteRequest, TripResponse, ExpenseCreate, ExpenseResponse
)

router = APIRouter(prefix="/driver/trips", tags=["Driver - Trips"])


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await TripLifecycleController.get_trip(db, identity, trip_id)
    return TripResponse.model_validate(result.unwrap())


@router.post("/{trip_id}/start", response_model=TripResponse)
async def start_trip(
    request: TripStartRequest,
    trip_id: int = Path(..., description="Trip ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a planned trip (Driver only).

    Validates:
    - Trip is PLANNED and assigned to the caller
    - Starting odometer present and numeric
    """
    result = await TripLifecycleController.start_trip(
        db, identity, trip_id, request.odometer_start, request.photo_url
    )
    return TripResponse.model_validate(result.unwrap())


@router.post("/{trip_id}/en-route", response_model=TripResponse)
async def mark_en_route(
    trip_id: int = Path(..., description="Trip ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await TripLifecycleController.mark_en_route(db, identity, trip_id)
    return TripResponse.model_validate(result.unwrap())


@router.post("/{trip_id}/complete", response_model=TripResponse)
async def complete_trip(
    request: TripCompleteRequest,
    trip_id: int = Path(..., description="Trip ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """
    Complete a trip (Driver only).

    Fails with 409 while any load on the trip is undelivered, even when the
    odometer reading is also wrong.
    """
    result = await TripLifecycleController.complete_trip(
        db, identity, trip_id, request.odometer_end, request.photo_url
    )
    return TripResponse.model_validate(result.unwrap())


@router.get("/{trip_id}/expenses", response_model=list[ExpenseResponse])
async def list_expenses(
    trip_id: int = Path(..., description="Trip ID"),
    include_pending: bool = Query(False, description="Include expenses pending deletion"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    (await TripLifecycleController.get_trip(db, identity, trip_id)).unwrap()
    expenses = await ExpenseLedger.list_expenses(db, identity, trip_id, include_pending=include_pending)
    return [ExpenseResponse.model_validate(e) for e in expenses]


@router.post("/{trip_id}/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def record_expense(
    request: ExpenseCreate,
    trip_id: int = Path(..., description="Trip ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    (await TripLifecycleController.get_trip(db, identity, trip_id)).unwrap()
    result = await ExpenseLedger.record_expense(
        db, identity, trip_id, request.category, request.amount, request.paid_by, request.description
    )
    return ExpenseResponse.model_validate(result.unwrap())


@router.post("/expenses/{expense_id}/delete", response_model=ExpenseResponse)
async def mark_expense_pending_deletion(
    expense_id: int = Path(..., description="Expense ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """
    First phase of deletion: hide the expense and let the client offer undo.

    The client confirms with /commit-delete once its undo window has passed.
    """
    result = await ExpenseLedger.mark_pending_deletion(db, identity, expense_id)
    return ExpenseResponse.model_validate(result.unwrap())


@router.post("/expenses/{expense_id}/undo-delete", response_model=ExpenseResponse)
async def cancel_expense_deletion(
    expense_id: int = Path(..., description="Expense ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await ExpenseLedger.cancel_deletion(db, identity, expense_id)
    return ExpenseResponse.model_validate(result.unwrap())


@router.post("/expenses/{expense_id}/commit-delete", status_code=status.HTTP_204_NO_CONTENT)
async def commit_expense_deletion(
    expense_id: int = Path(..., description="Expense ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    (await ExpenseLedger.commit_deletion(db, identity, expense_id)).unwrap()
