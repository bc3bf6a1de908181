import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rentline.schemas.common import InvoiceStatus, LineItem
from rentline.schemas.payment import PaymentResponse


# ─── Invoice ───────────────────────────────────────────────────────────────

class InvoiceCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    lease_id: uuid.UUID
    due_date: date
    amount: Decimal = Field(gt=0, decimal_places=2)
    currency_id: str | None = Field(default=None, min_length=3, max_length=3)  # defaults to the lease's
    invoice_number: str | None = Field(default=None, max_length=30)  # auto-assigned when omitted
    line_items: list[LineItem] = []
    notes: str | None = None
    status: InvoiceStatus = InvoiceStatus.pending


class InvoiceUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    due_date: date | None = None
    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    line_items: list[LineItem] | None = None
    notes: str | None = None
    status: InvoiceStatus | None = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    lease_id: uuid.UUID
    invoice_number: str
    due_date: date
    amount: Decimal
    currency_id: str
    line_items: list[LineItem]
    status: str
    paid_amount: Decimal
    issued_at: datetime
    paid_at: datetime | None
    notes: str | None


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]
    total: int
    overdue_count: int
    pending_total: Decimal


# ─── Recurring generation ──────────────────────────────────────────────────

class InvoiceGenerateRequest(BaseModel):
    lease_id: uuid.UUID
    start_date: date
    end_date: date
    amount: Decimal = Field(gt=0, decimal_places=2)
    description: str = "Monthly Rent"

    @model_validator(mode="after")
    def validate_range(self) -> "InvoiceGenerateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class InvoiceGenerateResponse(BaseModel):
    invoices: list[InvoiceResponse]
    count: int


class OverdueSweepResponse(BaseModel):
    updated_count: int


# ─── Settlement ────────────────────────────────────────────────────────────

class MarkPaidRequest(BaseModel):
    payment_method_id: uuid.UUID | None = None
    reference: str | None = Field(default=None, max_length=255)


class MarkPaidResponse(BaseModel):
    invoice: InvoiceResponse
    payment: PaymentResponse
