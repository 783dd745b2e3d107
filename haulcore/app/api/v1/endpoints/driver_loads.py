"""
Driver Load API Endpoints.

Drivers move their loads through pickup and delivery. Business-rule failures
come back from the domain as typed errors and are rendered by the global
AppException handler.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from haulcore.app.core.guards import require_driver
from haulcore.app.db.session import get_db
from haulcore.app.domain.ledger.payment_ledger import PaymentLedger
from haulcore.app.domain.lifecycle.delivery_order_guard import DeliveryOrderGuard
from haulcore.app.domain.lifecycle.load_status_machine import LoadStatusMachine
from haulcore.app.domain.results import DriverIdentity
from haulcore.app.schemas.load import (
    StartLoadingRequest, FinishLoadingRequest, ContractDetailsRequest, PickupCompletionRequest,
    StartDeliveryRequest, LoadResponse, GatingResponse, DeliveryOrderCheckResponse,
    BlockingLoadResponse, PaymentResponse, BalanceResponse
)

router = APIRouter(prefix="/driver/loads", tags=["Driver - Loads"])


def _accessorials(request) -> Optional[dict]:
    if request.accessorials is None:
        return None
    return request.accessorials.model_dump(exclude_none=True)


@router.get("/{load_id}", response_model=LoadResponse)
async def get_load(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.get_load(db, identity, load_id)
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/accept", response_model=LoadResponse)
async def accept_load(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.accept_load(db, identity, load_id)
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/start-loading", response_model=LoadResponse)
async def start_loading(
    load_id: int = Path(..., description="Load ID"),
    request: Optional[StartLoadingRequest] = None,
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    request = request or StartLoadingRequest()
    result = await LoadStatusMachine.start_loading(
        db, identity, load_id, request.starting_volume, request.photo_url
    )
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/finish-loading", response_model=LoadResponse)
async def finish_loading(
    load_id: int = Path(..., description="Load ID"),
    request: Optional[FinishLoadingRequest] = None,
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    request = request or FinishLoadingRequest()
    result = await LoadStatusMachine.finish_loading(
        db, identity, load_id, request.ending_volume, request.photo_url
    )
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/contract-details", response_model=LoadResponse)
async def save_contract_details(
    request: ContractDetailsRequest,
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.save_contract_details(
        db, identity, load_id,
        contract_balance_due=request.contract_balance_due,
        rate_per_cuft=request.rate_per_cuft,
        linehaul_total=request.linehaul_total,
        accessorials=_accessorials(request),
        job_number=request.job_number,
        customer_name=request.customer_name,
        delivery_city=request.delivery_city,
        delivery_state=request.delivery_state,
    )
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/pickup-completion", response_model=LoadResponse)
async def complete_pickup(
    request: PickupCompletionRequest,
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.complete_pickup(
        db, identity, load_id,
        contract_balance_due=request.contract_balance_due,
        actual_volume=request.actual_volume,
        rate_per_cuft=request.rate_per_cuft,
        linehaul_total=request.linehaul_total,
        accessorials=_accessorials(request),
        amount_collected=request.amount_collected,
        method=request.payment_method,
    )
    return LoadResponse.model_validate(result.unwrap())


@router.get("/{load_id}/delivery-check", response_model=DeliveryOrderCheckResponse)
async def check_delivery_order(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """
    Ask whether this load may start delivery now (read-only).

    The driver app uses this to show which delivery has to happen first.
    """
    check = await DeliveryOrderGuard.check(db, identity, load_id)
    blocker = None
    if check.blocking_load:
        blocker = BlockingLoadResponse(
            id=check.blocking_load.id,
            delivery_order=check.blocking_load.delivery_order,
            display_name=check.blocking_load.display_name,
        )
    return DeliveryOrderCheckResponse(
        load_id=load_id,
        allowed=check.allowed,
        reason=check.reason,
        blocking_load=blocker,
        current_index=check.current_index,
        this_load_order=check.this_load_order,
    )


@router.post("/{load_id}/start-delivery", response_model=LoadResponse)
async def start_delivery(
    load_id: int = Path(..., description="Load ID"),
    request: Optional[StartDeliveryRequest] = None,
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    request = request or StartDeliveryRequest()
    result = await LoadStatusMachine.start_delivery(
        db, identity, load_id, request.collected_amount, request.payment_method
    )
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/complete-delivery", response_model=LoadResponse)
async def complete_delivery(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.complete_delivery(db, identity, load_id)
    return LoadResponse.model_validate(result.unwrap())


@router.post("/{load_id}/storage-drop", response_model=LoadResponse)
async def complete_storage_drop(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    result = await LoadStatusMachine.complete_storage_drop(db, identity, load_id)
    return LoadResponse.model_validate(result.unwrap())


@router.get("/{load_id}/requirements/contract-details", response_model=GatingResponse)
async def contract_details_required(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    decision = (await LoadStatusMachine.requires_contract_details(db, identity, load_id)).unwrap()
    return GatingResponse(load_id=load_id, **decision.__dict__)


@router.get("/{load_id}/requirements/pickup-completion", response_model=GatingResponse)
async def pickup_completion_required(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    decision = (await LoadStatusMachine.requires_pickup_completion(db, identity, load_id)).unwrap()
    return GatingResponse(load_id=load_id, **decision.__dict__)


@router.get("/{load_id}/payments", response_model=list[PaymentResponse])
async def list_payments(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    (await LoadStatusMachine.get_load(db, identity, load_id)).unwrap()
    payments = await PaymentLedger.payments_for_load(db, identity, load_id)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/{load_id}/balance", response_model=BalanceResponse)
async def get_balance(
    load_id: int = Path(..., description="Load ID"),
    identity: DriverIdentity = Depends(require_driver),
    db: AsyncSession = Depends(get_db)
):
    """Stored remaining balance next to the one derived from the payment ledger."""
    load = (await LoadStatusMachine.get_load(db, identity, load_id)).unwrap()
    derived = (await PaymentLedger.current_balance(db, identity, load_id)).unwrap()
    return BalanceResponse(
        load_id=load_id,
        remaining_balance=load.remaining_balance,
        derived_balance=derived,
        agrees=derived == load.remaining_balance,
    )
