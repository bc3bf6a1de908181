import uuid

from fastapi import APIRouter, Depends, Query

from rentline.core.config import settings
from rentline.core.deps import get_scope
from rentline.schemas.common import LeaseStatus
from rentline.schemas.lease import (
    DeleteResponse,
    LeaseCreate,
    LeaseDetailResponse,
    LeaseRenew,
    LeaseRenewResponse,
    LeaseResponse,
    LeaseTerminate,
    LeaseUpdate,
)
from rentline.services import lease_lifecycle
from rentline.services.tenancy import OrgScope

router = APIRouter(prefix="/leases", tags=["leases"])


@router.get("/", response_model=list[LeaseResponse])
async def list_leases(
    status: LeaseStatus | None = None,
    include_expired: bool = False,
    scope: OrgScope = Depends(get_scope),
):
    return await lease_lifecycle.list_leases(scope, status=status, include_expired=include_expired)


@router.post("/", response_model=LeaseResponse, status_code=201)
async def create_lease(payload: LeaseCreate, scope: OrgScope = Depends(get_scope)):
    return await lease_lifecycle.create_lease(scope, payload)


# Declared before /{lease_id} so "expiring" is not parsed as an id
@router.get("/expiring", response_model=list[LeaseResponse])
async def get_expiring_soon(
    days: int = Query(default=settings.expiring_window_days, ge=1, le=365),
    scope: OrgScope = Depends(get_scope),
):
    return await lease_lifecycle.get_expiring_soon(scope, days=days)


@router.get("/{lease_id}", response_model=LeaseDetailResponse)
async def get_lease(lease_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    lease = await lease_lifecycle.get_lease(scope, lease_id)
    balance = await lease_lifecycle.lease_balance(scope, lease.id)
    return LeaseDetailResponse(**LeaseResponse.model_validate(lease).model_dump(), **balance)


@router.patch("/{lease_id}", response_model=LeaseResponse)
async def update_lease(
    lease_id: uuid.UUID, payload: LeaseUpdate, scope: OrgScope = Depends(get_scope)
):
    return await lease_lifecycle.update_lease(scope, lease_id, payload)


@router.post("/{lease_id}/terminate", response_model=LeaseResponse)
async def terminate_lease(
    lease_id: uuid.UUID, payload: LeaseTerminate, scope: OrgScope = Depends(get_scope)
):
    return await lease_lifecycle.terminate_lease(
        scope, lease_id, move_out_date=payload.move_out_date, reason=payload.reason
    )


@router.post("/{lease_id}/renew", response_model=LeaseRenewResponse)
async def renew_lease(
    lease_id: uuid.UUID, payload: LeaseRenew, scope: OrgScope = Depends(get_scope)
):
    lease = await lease_lifecycle.renew_lease(
        scope, lease_id, payload.new_end_date, new_rent_amount=payload.new_rent_amount
    )
    return LeaseRenewResponse(lease=LeaseResponse.model_validate(lease), previous_lease_id=lease_id)


@router.delete("/{lease_id}", response_model=DeleteResponse)
async def delete_lease(lease_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    await lease_lifecycle.delete_lease(scope, lease_id)
    return DeleteResponse()
