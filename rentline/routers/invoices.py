import uuid

from fastapi import APIRouter, Depends, Request

from rentline.core.deps import get_scope
from rentline.core.limiter import limiter
from rentline.schemas.common import InvoiceStatus
from rentline.schemas.invoice import (
    InvoiceCreate,
    InvoiceGenerateRequest,
    InvoiceGenerateResponse,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceUpdate,
    MarkPaidRequest,
    MarkPaidResponse,
    OverdueSweepResponse,
)
from rentline.schemas.lease import DeleteResponse
from rentline.schemas.payment import PaymentResponse
from rentline.services import invoices, overdue, payments
from rentline.services.invoice_generator import generate_recurring
from rentline.services.tenancy import OrgScope

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    lease_id: uuid.UUID | None = None,
    status: InvoiceStatus | None = None,
    scope: OrgScope = Depends(get_scope),
):
    return await invoices.list_invoices(scope, lease_id=lease_id, status=status)


@router.post("/", response_model=InvoiceResponse, status_code=201)
async def create_invoice(payload: InvoiceCreate, scope: OrgScope = Depends(get_scope)):
    return await invoices.create_invoice(scope, payload)


# ─── Batch operations ─────────────────────────────────────────────────────────

@router.post("/generate", response_model=InvoiceGenerateResponse, status_code=201)
@limiter.limit("30/minute")
async def generate_invoices(
    request: Request, payload: InvoiceGenerateRequest, scope: OrgScope = Depends(get_scope)
):
    created = await generate_recurring(
        scope,
        payload.lease_id,
        payload.start_date,
        payload.end_date,
        payload.amount,
        description=payload.description,
    )
    return InvoiceGenerateResponse(
        invoices=[InvoiceResponse.model_validate(inv) for inv in created],
        count=len(created),
    )


@router.post("/update-overdue", response_model=OverdueSweepResponse)
@limiter.limit("10/minute")
async def update_overdue(request: Request, scope: OrgScope = Depends(get_scope)):
    return OverdueSweepResponse(updated_count=await overdue.update_overdue(scope))


# ─── Single invoice ───────────────────────────────────────────────────────────

@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    return await invoices.get_invoice(scope, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: uuid.UUID, payload: InvoiceUpdate, scope: OrgScope = Depends(get_scope)
):
    return await invoices.update_invoice(scope, invoice_id, payload)


@router.delete("/{invoice_id}", response_model=DeleteResponse)
async def delete_invoice(invoice_id: uuid.UUID, scope: OrgScope = Depends(get_scope)):
    await invoices.delete_invoice(scope, invoice_id)
    return DeleteResponse()


@router.post("/{invoice_id}/mark-paid", response_model=MarkPaidResponse)
async def mark_paid(
    invoice_id: uuid.UUID, payload: MarkPaidRequest, scope: OrgScope = Depends(get_scope)
):
    invoice, payment = await payments.mark_invoice_paid(
        scope, invoice_id, payment_method_id=payload.payment_method_id, reference=payload.reference
    )
    return MarkPaidResponse(
        invoice=InvoiceResponse.model_validate(invoice),
        payment=PaymentResponse.model_validate(payment),
    )
