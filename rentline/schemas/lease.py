import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rentline.schemas.common import (
    AdditionalCharge,
    LateFeeTier,
    LeaseContactRole,
    LeaseStatus,
    LeaseType,
    PaymentFrequency,
)


class LeaseContactIn(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    contact_id: uuid.UUID
    role: LeaseContactRole


# ─── Lease ─────────────────────────────────────────────────────────────────

class LeaseCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    # Exactly one of property_id (whole-property lease) or unit_id
    property_id: uuid.UUID | None = None
    unit_id: uuid.UUID | None = None
    tenant_contact_id: uuid.UUID
    lease_type: LeaseType = LeaseType.fixed
    start_date: date
    end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    rent_amount: Decimal = Field(gt=0, decimal_places=2)
    deposit_amount: Decimal | None = Field(default=None, ge=0)
    currency_id: str = Field(min_length=3, max_length=3)
    payment_due_day: int = Field(default=1, ge=1, le=28)
    payment_frequency: PaymentFrequency = PaymentFrequency.monthly
    status: LeaseStatus = LeaseStatus.draft
    additional_charges: list[AdditionalCharge] = []
    late_fee_tiers: list[LateFeeTier] = []
    grace_period_days: int | None = Field(default=None, ge=0)
    auto_renew: bool = False
    renewal_notice_days: int | None = Field(default=None, ge=0)
    terms: str | None = None
    notes: str | None = None
    contacts: list[LeaseContactIn] = []

    @model_validator(mode="after")
    def validate_scope_and_dates(self) -> "LeaseCreate":
        if (self.property_id is None) == (self.unit_id is None):
            raise ValueError("Exactly one of property_id or unit_id is required")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LeaseUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    tenant_contact_id: uuid.UUID | None = None
    lease_type: LeaseType | None = None
    start_date: date | None = None
    end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    rent_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    deposit_amount: Decimal | None = Field(default=None, ge=0)
    currency_id: str | None = Field(default=None, min_length=3, max_length=3)
    payment_due_day: int | None = Field(default=None, ge=1, le=28)
    payment_frequency: PaymentFrequency | None = None
    status: LeaseStatus | None = None
    additional_charges: list[AdditionalCharge] | None = None
    late_fee_tiers: list[LateFeeTier] | None = None
    grace_period_days: int | None = Field(default=None, ge=0)
    auto_renew: bool | None = None
    renewal_notice_days: int | None = Field(default=None, ge=0)
    terms: str | None = None
    notes: str | None = None


class LeaseTerminate(BaseModel):
    move_out_date: date | None = None  # defaults to today
    reason: str | None = None


class LeaseRenew(BaseModel):
    new_end_date: date
    new_rent_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)


class LeaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    property_id: uuid.UUID | None
    unit_id: uuid.UUID | None
    tenant_contact_id: uuid.UUID
    lease_type: str
    start_date: date
    end_date: date | None
    move_in_date: date | None
    move_out_date: date | None
    rent_amount: Decimal
    deposit_amount: Decimal | None
    currency_id: str
    payment_due_day: int
    payment_frequency: str
    status: str
    additional_charges: list[AdditionalCharge]
    late_fee_tiers: list[LateFeeTier]
    grace_period_days: int | None
    auto_renew: bool
    renewal_notice_days: int | None
    terms: str | None
    notes: str | None
    renewed_from_id: uuid.UUID | None
    created_at: datetime


class LeaseDetailResponse(LeaseResponse):
    total_paid: Decimal
    total_due: Decimal
    balance: Decimal


class LeaseRenewResponse(BaseModel):
    lease: LeaseResponse
    previous_lease_id: uuid.UUID


class DeleteResponse(BaseModel):
    success: bool = True
