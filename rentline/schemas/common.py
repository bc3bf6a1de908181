"""Closed status/type vocabularies and the ordered value types stored on rows."""
import enum
from decimal import Decimal

from pydantic import BaseModel, Field


class LeaseStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    active = "active"
    expired = "expired"
    terminated = "terminated"


class LeaseType(str, enum.Enum):
    fixed = "fixed"
    month_to_month = "month_to_month"
    annual = "annual"


class PaymentFrequency(str, enum.Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class UnitStatus(str, enum.Enum):
    available = "available"
    occupied = "occupied"
    maintenance = "maintenance"
    reserved = "reserved"


class LeaseContactRole(str, enum.Enum):
    owner = "owner"
    agent = "agent"
    guarantor = "guarantor"
    emergency_contact = "emergency_contact"


class InvoiceStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"
    partial = "partial"


class PaymentType(str, enum.Enum):
    rent = "rent"
    deposit = "deposit"
    fee = "fee"
    refund = "refund"
    pet_deposit = "pet_deposit"
    security_deposit = "security_deposit"
    late_fee = "late_fee"
    other = "other"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


# ─── Value types (JSON columns) ───────────────────────────────────────────────

class AdditionalCharge(BaseModel):
    description: str
    amount: Decimal = Field(gt=0)


class LateFeeTier(BaseModel):
    days_late: int = Field(ge=1)
    amount: Decimal = Field(gt=0)


class LineItem(BaseModel):
    description: str
    amount: Decimal
    quantity: Decimal = Decimal(1)
