"""
Owner API Endpoints.

Dispatch (posting loads, building trips), owner overrides (cancellation)
and trip settlement.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.exceptions import ResourceNotFoundError
from haulcore.app.core.guards import require_owner
from haulcore.app.db.session import get_db
from haulcore.app.domain.billing.settlement_calculator import SettlementCalculator
from haulcore.app.domain.dispatch.dispatch_service import DispatchService
from haulcore.app.domain.lifecycle.load_status_machine import LoadStatusMachine
from haulcore.app.domain.lifecycle.trip_lifecycle import TripLifecycleController
from haulcore.app.domain.results import DriverIdentity
from haulcore.app.models.settlement import Settlement
from haulcore.app.schemas.load import LoadCreate, LoadResponse, CancelLoadRequest
from haulcore.app.schemas.trip import (
    TripCreate, TripResponse, AttachLoadRequest, TripLoadResponse, TripDetailResponse,
    ExpenseResponse, SettlementResponse, SettlementLineItemResponse
)
from haulcore.app.services.audit import get_audit_trail

router = APIRouter(prefix="/owner", tags=["Owner - Dispatch"])


async def _settlement_response(db: AsyncSession, settlement: Settlement) -> SettlementResponse:
    items = await SettlementCalculator.get_line_items(db, settlement.id)
    return SettlementResponse(
        id=settlement.id,
        trip_id=settlement.trip_id,
        total_miles=settlement.total_miles,
        total_volume=settlement.total_volume,
        total_revenue=settlement.total_revenue,
        total_collected=settlement.total_collected,
        total_expenses=settlement.total_expenses,
        reimbursable_expenses=settlement.reimbursable_expenses,
        net_amount=settlement.net_amount,
        calculated_at=settlement.calculated_at,
        line_items=[SettlementLineItemResponse.model_validate(i) for i in items],
    )


@router.post("/loads", response_model=LoadResponse, status_code=status.HTTP_201_CREATED)
async def post_load(
    request: LoadCreate,
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    result = await DispatchService.post_load(
        db, owner,
        contract_balance_due=request.contract_balance_due,
        customer_name=request.customer_name,
        delivery_city=request.delivery_city,
        delivery_state=request.delivery_state,
        rate_per_cuft=request.rate_per_cuft,
        linehaul_total=request.linehaul_total,
        load_source=request.load_source,
        posting_type=request.posting_type,
    )
    return LoadResponse.model_validate(result.unwrap())


@router.post("/loads/{load_id}/cancel", response_model=LoadResponse)
async def cancel_load(
    load_id: int = Path(..., description="Load ID"),
    request: Optional[CancelLoadRequest] = None,
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    reason = request.reason if request else None
    result = await LoadStatusMachine.cancel_load(db, owner, load_id, reason)
    return LoadResponse.model_validate(result.unwrap())


@router.post("/trips", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    request: TripCreate,
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    result = await DispatchService.create_trip(db, owner, request.driver_id, request.trip_number)
    return TripResponse.model_validate(result.unwrap())


@router.get("/trips/{trip_id}", response_model=TripDetailResponse)
async def get_trip_detail(
    trip_id: int = Path(..., description="Trip ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    detail = (await DispatchService.get_trip_detail(db, owner, trip_id)).unwrap()
    return TripDetailResponse(
        trip=TripResponse.model_validate(detail.trip),
        loads=[LoadResponse.model_validate(l) for l in detail.loads],
        expenses=[ExpenseResponse.model_validate(e) for e in detail.expenses],
        settlement=await _settlement_response(db, detail.settlement) if detail.settlement else None,
    )


@router.post("/trips/{trip_id}/loads", response_model=TripLoadResponse, status_code=status.HTTP_201_CREATED)
async def attach_load(
    request: AttachLoadRequest,
    trip_id: int = Path(..., description="Trip ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    result = await DispatchService.attach_load(
        db, owner, trip_id, request.load_id, request.sequence_index, request.delivery_order
    )
    return TripLoadResponse.model_validate(result.unwrap())


@router.delete("/trips/{trip_id}/loads/{load_id}", status_code=status.HTTP_204_NO_CONTENT)
async def detach_load(
    trip_id: int = Path(..., description="Trip ID"),
    load_id: int = Path(..., description="Load ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    (await DispatchService.detach_load(db, owner, trip_id, load_id)).unwrap()


@router.post("/trips/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: int = Path(..., description="Trip ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    result = await TripLifecycleController.cancel_trip(db, owner, trip_id)
    return TripResponse.model_validate(result.unwrap())


@router.post("/trips/{trip_id}/settle", response_model=SettlementResponse)
async def settle_trip(
    trip_id: int = Path(..., description="Trip ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    """
    Settle a completed trip (Owner only).

    Calling it again on a settled trip recalculates and replaces the
    settlement.
    """
    settlement = (await TripLifecycleController.settle_trip(db, owner, trip_id)).unwrap()
    return await _settlement_response(db, settlement)


@router.get("/trips/{trip_id}/settlement", response_model=SettlementResponse)
async def get_settlement(
    trip_id: int = Path(..., description="Trip ID"),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    settlement = await SettlementCalculator.get_settlement(db, owner, trip_id)
    if not settlement:
        raise ResourceNotFoundError("Settlement", trip_id)
    return await _settlement_response(db, settlement)


@router.get("/audit")
async def audit_trail(
    entity_type: Optional[str] = Query(None, description="load, trip or expense"),
    entity_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    owner: DriverIdentity = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    """Company audit trail, oldest first."""
    logs = await get_audit_trail(db, owner.company_id, entity_type=entity_type, entity_id=entity_id, limit=limit)
    return [
        {
            "id": log.id,
            "action": log.action,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "actor_driver_id": log.actor_driver_id,
            "metadata": log.meta_data,
            "timestamp": log.timestamp,
        }
        for log in logs
    ]
