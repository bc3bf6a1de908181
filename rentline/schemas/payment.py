import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from rentline.schemas.common import PaymentStatus, PaymentType


# ─── Payment ───────────────────────────────────────────────────────────────

class PaymentCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    lease_id: uuid.UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    currency_id: str = Field(min_length=3, max_length=3)
    payment_method_id: uuid.UUID | None = None
    type: PaymentType
    status: PaymentStatus = PaymentStatus.completed
    payment_date: date | None = None  # defaults to today
    period_start: date | None = None
    period_end: date | None = None
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class PaymentUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    payment_method_id: uuid.UUID | None = None
    type: PaymentType | None = None
    status: PaymentStatus | None = None
    payment_date: date | None = None
    period_start: date | None = None
    period_end: date | None = None
    reference: str | None = Field(default=None, max_length=255)
    notes: str | None = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    lease_id: uuid.UUID
    invoice_id: uuid.UUID | None
    amount: Decimal
    currency_id: str
    payment_method_id: uuid.UUID | None
    type: str
    status: str
    payment_date: date
    period_start: date | None
    period_end: date | None
    reference: str | None
    notes: str | None
    created_at: datetime


class PaymentSummary(BaseModel):
    total_rent: Decimal
    rent_payments: int
    total_deposits: Decimal
    deposit_payments: int
    total_fees: Decimal
    fee_payments: int
    total_refunds: Decimal
    refund_payments: int
    net_total: Decimal


class PaymentMethodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
