import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from rentline.core.database import Base, PydanticJSONList
from rentline.schemas.common import AdditionalCharge, LateFeeTier

_ACTIVE = text("status = 'active'")
_ACTIVE_WHOLE_PROPERTY = text("status = 'active' AND unit_id IS NULL")


class Lease(Base):
    """Occupancy and rent terms for a whole property or a single unit."""
    __tablename__ = "leases"
    __table_args__ = (
        CheckConstraint(
            "(property_id IS NULL) <> (unit_id IS NULL)", name="ck_leases_property_xor_unit"
        ),
        CheckConstraint("rent_amount > 0", name="ck_leases_rent_positive"),
        CheckConstraint(
            "payment_due_day BETWEEN 1 AND 28", name="ck_leases_payment_due_day"
        ),
        # At most one active lease per unit, and one active whole-property lease
        Index(
            "uq_leases_active_unit", "unit_id", unique=True,
            postgresql_where=_ACTIVE, sqlite_where=_ACTIVE,
        ),
        Index(
            "uq_leases_active_property", "property_id", unique=True,
            postgresql_where=_ACTIVE_WHOLE_PROPERTY, sqlite_where=_ACTIVE_WHOLE_PROPERTY,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), index=True
    )
    property_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("properties.id"), index=True
    )
    unit_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("units.id"), index=True
    )
    tenant_contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id"), index=True
    )
    lease_type: Mapped[str] = mapped_column(String(20), default="fixed")  # fixed | month_to_month | annual
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)  # NULL = open-ended
    move_in_date: Mapped[date | None] = mapped_column(Date)
    move_out_date: Mapped[date | None] = mapped_column(Date)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    currency_id: Mapped[str] = mapped_column(String(3))
    payment_due_day: Mapped[int] = mapped_column(Integer, default=1)
    payment_frequency: Mapped[str] = mapped_column(String(20), default="monthly")
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    additional_charges: Mapped[list[AdditionalCharge]] = mapped_column(
        PydanticJSONList(AdditionalCharge), default=list
    )
    late_fee_tiers: Mapped[list[LateFeeTier]] = mapped_column(
        PydanticJSONList(LateFeeTier), default=list
    )
    grace_period_days: Mapped[int | None] = mapped_column(Integer)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    renewal_notice_days: Mapped[int | None] = mapped_column(Integer)
    terms: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    renewed_from_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leases.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class LeaseContact(Base):
    """Secondary people on a lease besides the tenant."""
    __tablename__ = "lease_contacts"
    __table_args__ = (
        UniqueConstraint("lease_id", "contact_id", "role", name="uq_lease_contacts_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lease_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leases.id", ondelete="CASCADE"), index=True
    )
    contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contacts.id"), index=True
    )
    role: Mapped[str] = mapped_column(String(30))  # owner | agent | guarantor | emergency_contact
