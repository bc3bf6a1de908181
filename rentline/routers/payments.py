import uuid

from fastapi import APIRouter, Depends, Query

from rentline.core.deps import get_scope
from rentline.schemas.lease import DeleteResponse
from rentline.schemas.payment import (
    PaymentCreate,
    PaymentMethodResponse,
    PaymentResponse,
    PaymentSummary,
    PaymentUpdate,
)
from rentline.services import payments
from rentline.services.tenancy import OrgScope

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/", response_model=list[PaymentResponse])
async def list_payments(lease_id: uuid.UUID | None = None, scope: OrgScope = Depends(get_scope)):
    return await payments.list_payments(scope, lease_id=lease_id)


@router.post("/", response_model=PaymentResponse, status_code=201)
async def record_payment(payload: PaymentCreate, scope: OrgScope = Depends(get_scope)):
    return await payments.record_payment(scope, payload)


@router.get("/summary", response_model=PaymentSummary)
async def payment_summary(
    lease_id: uuid.UUID | None = None,
    year: int | None = Query(default=None, ge=1900, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    scope: OrgScope = Depends(get_scope),
):
    return await payments.payment_summary(scope, lease_id=lease_id, year=year, month=month)


@router.get("/methods", response_model=list[PaymentMethodResponse])
async def list_payment_methods(scope: OrgScope = Depends(get_scope)):
    return await payments.list_payment_methods(scope)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    return await payments.get_payment(scope, payment_id)


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: uuid.UUID, payload: PaymentUpdate, scope: OrgScope = Depends(get_scope)
):
    return await payments.update_payment(scope, payment_id, payload)


@router.delete("/{payment_id}", response_model=DeleteResponse)
async def delete_payment(payment_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    await payments.delete_payment(scope, payment_id)
    return DeleteResponse()
