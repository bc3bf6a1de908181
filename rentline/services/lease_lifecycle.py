"""
Lease state machine.

Lease status is caller-settable, but every change goes through
``_apply_status``: it checks the transition table, enforces that a unit (or a
whole property) has at most one active lease, and keeps ``Unit.status`` in
step. ``_sync_unit_status`` is the only code that writes ``Unit.status``.

    draft ──► pending ──► active ──► expired | terminated
      ▲          │
      └──────────┘   (draft/pending may also jump straight to any other state)

Expired and terminated leases are closed for good; continuing a tenancy means
``renew_lease``, which appends a new lease row to the renewal chain.

Unit occupancy rules:
  * a unit with an active lease is ``occupied``, except that a unit manually
    put in ``maintenance`` or ``reserved`` is left alone on activation;
  * when the last active lease leaves, an ``occupied`` unit becomes
    ``available``; terminate vacates the unit whatever its manual status.
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentline.core.errors import ConflictError, InvalidInputError
from rentline.models.contact import Contact
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease, LeaseContact
from rentline.models.payment import Payment
from rentline.models.property import Property, Unit
from rentline.schemas.common import InvoiceStatus, LeaseStatus, PaymentStatus, UnitStatus
from rentline.schemas.lease import LeaseCreate, LeaseUpdate
from rentline.services.billing_dates import utc_today
from rentline.services.tenancy import OrgScope

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[LeaseStatus, frozenset[LeaseStatus]] = {
    LeaseStatus.draft: frozenset(
        {LeaseStatus.pending, LeaseStatus.active, LeaseStatus.expired, LeaseStatus.terminated}
    ),
    LeaseStatus.pending: frozenset(
        {LeaseStatus.draft, LeaseStatus.active, LeaseStatus.expired, LeaseStatus.terminated}
    ),
    LeaseStatus.active: frozenset({LeaseStatus.expired, LeaseStatus.terminated}),
    LeaseStatus.expired: frozenset(),
    LeaseStatus.terminated: frozenset(),
}

# Manual unit states that activation does not override
_PROTECTED_UNIT_STATES = frozenset({UnitStatus.maintenance.value, UnitStatus.reserved.value})

# Columns an update may not null out
_NON_NULLABLE_FIELDS = frozenset({
    "tenant_contact_id", "lease_type", "start_date", "rent_amount", "currency_id",
    "payment_due_day", "payment_frequency", "additional_charges", "late_fee_tiers", "auto_renew",
})


def check_transition(current: LeaseStatus, target: LeaseStatus) -> None:
    """Raise ``ConflictError`` unless ``current → target`` is allowed."""
    if target == current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        if not ALLOWED_TRANSITIONS[current]:
            raise ConflictError(f"Lease is {current.value} and can no longer change status")
        raise ConflictError(f"Cannot change lease status from {current.value} to {target.value}")


# ─── Helpers ─────────────────────────────────────────────────────────────────

async def _flush(db: AsyncSession) -> None:
    # The partial unique indexes are the race-free backstop for exclusivity
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("Lease conflicts with an existing active lease") from exc


async def _active_lease_exists(
    scope: OrgScope,
    *,
    unit_id: uuid.UUID | None = None,
    property_id: uuid.UUID | None = None,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    stmt = scope.select(Lease, Lease.id).where(Lease.status == LeaseStatus.active.value)
    if unit_id is not None:
        stmt = stmt.where(Lease.unit_id == unit_id)
    else:
        # Whole-property leases only; unit leases are a separate billable scope
        stmt = stmt.where(Lease.property_id == property_id, Lease.unit_id.is_(None))
    if exclude_id is not None:
        stmt = stmt.where(Lease.id != exclude_id)
    result = await scope.db.execute(stmt.limit(1))
    return result.first() is not None


async def _ensure_exclusive(
    scope: OrgScope,
    *,
    unit_id: uuid.UUID | None,
    property_id: uuid.UUID | None,
    exclude_id: uuid.UUID | None = None,
) -> None:
    if await _active_lease_exists(
        scope, unit_id=unit_id, property_id=property_id, exclude_id=exclude_id
    ):
        target = "unit" if unit_id is not None else "property"
        logger.warning("Rejected second active lease on %s %s", target, unit_id or property_id)
        raise ConflictError(f"This {target} already has an active lease")


async def _sync_unit_status(scope: OrgScope, unit_id: uuid.UUID, *, force_vacate: bool = False) -> None:
    unit = await scope.get(Unit, unit_id, "Unit")
    occupied = await _active_lease_exists(scope, unit_id=unit_id)

    if occupied:
        if unit.status in _PROTECTED_UNIT_STATES:
            return
        new_status = UnitStatus.occupied.value
    elif force_vacate or unit.status == UnitStatus.occupied.value:
        new_status = UnitStatus.available.value
    else:
        return

    if unit.status != new_status:
        logger.info("Unit %s: %s -> %s", unit.id, unit.status, new_status)
        unit.status = new_status
        await scope.db.flush()


async def _apply_status(
    scope: OrgScope, lease: Lease, target: LeaseStatus, *, force_vacate: bool = False
) -> None:
    """The single path for changing a lease's status."""
    current = LeaseStatus(lease.status)
    if target == current:
        return
    check_transition(current, target)

    if target == LeaseStatus.active:
        await _ensure_exclusive(
            scope, unit_id=lease.unit_id, property_id=lease.property_id, exclude_id=lease.id
        )

    lease.status = target.value
    await _flush(scope.db)
    logger.info("Lease %s: %s -> %s", lease.id, current.value, target.value)

    if lease.unit_id is not None:
        await _sync_unit_status(scope, lease.unit_id, force_vacate=force_vacate)


async def _count(scope: OrgScope, model, *criteria) -> int:
    result = await scope.db.execute(scope.select(model, func.count(model.id)).where(*criteria))
    return result.scalar_one()


async def _sum(scope: OrgScope, column, model, *criteria) -> Decimal:
    result = await scope.db.execute(
        scope.select(model, func.coalesce(func.sum(column), 0)).where(*criteria)
    )
    return Decimal(result.scalar_one() or 0)


# ─── Reads ───────────────────────────────────────────────────────────────────

async def get_lease(scope: OrgScope, lease_id: uuid.UUID) -> Lease:
    return await scope.get(Lease, lease_id, "Lease")


async def lease_balance(scope: OrgScope, lease_id: uuid.UUID) -> dict[str, Decimal]:
    """Completed payments vs. open (pending/overdue) invoice amounts."""
    total_paid = await _sum(
        scope, Payment.amount, Payment,
        Payment.lease_id == lease_id,
        Payment.status == PaymentStatus.completed.value,
    )
    total_due = await _sum(
        scope, Invoice.amount, Invoice,
        Invoice.lease_id == lease_id,
        Invoice.status.in_([InvoiceStatus.pending.value, InvoiceStatus.overdue.value]),
    )
    return {"total_paid": total_paid, "total_due": total_due, "balance": total_due - total_paid}


async def list_leases(
    scope: OrgScope, status: LeaseStatus | None = None, include_expired: bool = False
) -> list[Lease]:
    stmt = scope.select(Lease).order_by(Lease.start_date.desc())
    if status is not None:
        stmt = stmt.where(Lease.status == LeaseStatus(status).value)
    elif not include_expired:
        stmt = stmt.where(
            Lease.status.not_in([LeaseStatus.expired.value, LeaseStatus.terminated.value])
        )
    result = await scope.db.execute(stmt)
    return list(result.scalars().all())


async def get_expiring_soon(scope: OrgScope, days: int = 30, today: date | None = None) -> list[Lease]:
    """Active leases whose end date falls within the next ``days`` days."""
    if not 1 <= days <= 365:
        raise InvalidInputError("days must be between 1 and 365")
    today = today or utc_today()
    result = await scope.db.execute(
        scope.select(Lease)
        .where(
            Lease.status == LeaseStatus.active.value,
            Lease.end_date.is_not(None),
            Lease.end_date >= today,
            Lease.end_date <= today + timedelta(days=days),
        )
        .order_by(Lease.end_date.asc())
    )
    return list(result.scalars().all())


# ─── Mutations ───────────────────────────────────────────────────────────────

async def create_lease(scope: OrgScope, payload: LeaseCreate) -> Lease:
    if (payload.property_id is None) == (payload.unit_id is None):
        raise InvalidInputError("Exactly one of property_id or unit_id is required")

    if payload.unit_id is not None:
        await scope.get(Unit, payload.unit_id, "Unit")
    else:
        await scope.get(Property, payload.property_id, "Property")

    status = LeaseStatus(payload.status)
    if status == LeaseStatus.active:
        await _ensure_exclusive(scope, unit_id=payload.unit_id, property_id=payload.property_id)

    await scope.get(Contact, payload.tenant_contact_id, "Tenant contact")
    for link in payload.contacts:
        await scope.get(Contact, link.contact_id, "Contact")

    fields = payload.model_dump(exclude={"contacts", "additional_charges", "late_fee_tiers"})
    lease = Lease(
        organization_id=scope.organization_id,
        **fields,
        additional_charges=payload.additional_charges,
        late_fee_tiers=payload.late_fee_tiers,
    )
    lease.status = status.value
    scope.db.add(lease)
    await _flush(scope.db)

    for link in payload.contacts:
        scope.db.add(LeaseContact(lease_id=lease.id, contact_id=link.contact_id, role=link.role))
    await _flush(scope.db)

    if lease.unit_id is not None:
        await _sync_unit_status(scope, lease.unit_id)

    await scope.db.refresh(lease)
    logger.info("Created %s lease %s", lease.status, lease.id)
    return lease


async def update_lease(scope: OrgScope, lease_id: uuid.UUID, payload: LeaseUpdate) -> Lease:
    lease = await get_lease(scope, lease_id)
    changes = payload.model_dump(exclude_unset=True)
    target = changes.pop("status", None)

    for field, value in changes.items():
        if value is None and field in _NON_NULLABLE_FIELDS:
            raise InvalidInputError(f"{field} cannot be null")
    if "status" in payload.model_fields_set and target is None:
        raise InvalidInputError("status cannot be null")

    if "tenant_contact_id" in changes:
        await scope.get(Contact, changes["tenant_contact_id"], "Tenant contact")

    if "currency_id" in changes and changes["currency_id"] != lease.currency_id:
        billed = await _count(scope, Invoice, Invoice.lease_id == lease.id)
        paid = await _count(scope, Payment, Payment.lease_id == lease.id)
        if billed or paid:
            raise ConflictError("Cannot change the currency of a lease that has invoices or payments")

    for field, value in changes.items():
        if field in ("additional_charges", "late_fee_tiers"):
            value = getattr(payload, field)
        setattr(lease, field, value)

    if lease.end_date is not None and lease.end_date < lease.start_date:
        raise InvalidInputError("end_date must be on or after start_date")

    if target is not None:
        await _apply_status(scope, lease, LeaseStatus(target))

    await _flush(scope.db)
    await scope.db.refresh(lease)
    return lease


async def terminate_lease(
    scope: OrgScope,
    lease_id: uuid.UUID,
    move_out_date: date | None = None,
    reason: str | None = None,
) -> Lease:
    lease = await get_lease(scope, lease_id)
    check_transition(LeaseStatus(lease.status), LeaseStatus.terminated)
    if lease.status == LeaseStatus.terminated.value:
        raise ConflictError("Lease is already terminated")

    lease.move_out_date = move_out_date or utc_today()
    if reason:
        lease.notes = f"{lease.notes or ''}\n\nTermination reason: {reason}".strip()

    await _apply_status(scope, lease, LeaseStatus.terminated, force_vacate=True)
    await scope.db.refresh(lease)
    return lease


async def renew_lease(
    scope: OrgScope,
    lease_id: uuid.UUID,
    new_end_date: date,
    new_rent_amount: Decimal | None = None,
) -> Lease:
    """
    Continue a tenancy as a new lease row; the predecessor is kept as history.

    The new lease starts where the old one ended (today for open-ended
    leases), is active immediately and copies tenant, scope and billing
    terms. The predecessor is marked expired unless it was already closed.
    """
    predecessor = await get_lease(scope, lease_id)

    already_renewed = await _count(scope, Lease, Lease.renewed_from_id == predecessor.id)
    if already_renewed:
        raise ConflictError("Lease has already been renewed")

    start_date = predecessor.end_date or utc_today()
    if new_end_date <= start_date:
        raise InvalidInputError("new_end_date must be after the renewal start date")
    rent_amount = new_rent_amount if new_rent_amount is not None else predecessor.rent_amount
    if rent_amount <= 0:
        raise InvalidInputError("Rent amount must be positive")

    if predecessor.status not in (LeaseStatus.expired.value, LeaseStatus.terminated.value):
        await _apply_status(scope, predecessor, LeaseStatus.expired)

    await _ensure_exclusive(
        scope,
        unit_id=predecessor.unit_id,
        property_id=predecessor.property_id,
        exclude_id=predecessor.id,
    )

    lease = Lease(
        organization_id=scope.organization_id,
        property_id=predecessor.property_id,
        unit_id=predecessor.unit_id,
        tenant_contact_id=predecessor.tenant_contact_id,
        lease_type=predecessor.lease_type,
        start_date=start_date,
        end_date=new_end_date,
        rent_amount=rent_amount,
        deposit_amount=predecessor.deposit_amount,
        currency_id=predecessor.currency_id,
        payment_due_day=predecessor.payment_due_day,
        payment_frequency=predecessor.payment_frequency,
        additional_charges=list(predecessor.additional_charges),
        late_fee_tiers=list(predecessor.late_fee_tiers),
        grace_period_days=predecessor.grace_period_days,
        auto_renew=predecessor.auto_renew,
        renewal_notice_days=predecessor.renewal_notice_days,
        terms=predecessor.terms,
        notes=f"Renewed from lease {predecessor.id}",
        renewed_from_id=predecessor.id,
        status=LeaseStatus.active.value,
    )
    scope.db.add(lease)
    await _flush(scope.db)

    links = (
        await scope.db.execute(select(LeaseContact).where(LeaseContact.lease_id == predecessor.id))
    ).scalars().all()
    for link in links:
        scope.db.add(LeaseContact(lease_id=lease.id, contact_id=link.contact_id, role=link.role))
    await _flush(scope.db)

    if lease.unit_id is not None:
        await _sync_unit_status(scope, lease.unit_id)

    await scope.db.refresh(lease)
    logger.info("Renewed lease %s as %s until %s", predecessor.id, lease.id, new_end_date)
    return lease


async def delete_lease(scope: OrgScope, lease_id: uuid.UUID) -> None:
    lease = await get_lease(scope, lease_id)

    payments = await _count(scope, Payment, Payment.lease_id == lease.id)
    if lease.status == LeaseStatus.active.value and payments:
        raise ConflictError(
            "Cannot delete active lease with payment history. Terminate it instead."
        )
    paid_invoices = await _count(
        scope, Invoice, Invoice.lease_id == lease.id, Invoice.status == InvoiceStatus.paid.value
    )
    if paid_invoices:
        raise ConflictError("Cannot delete a lease with paid invoices")

    unit_id = lease.unit_id

    db = scope.db
    await db.execute(
        update(Lease)
        .where(Lease.organization_id == scope.organization_id, Lease.renewed_from_id == lease.id)
        .values(renewed_from_id=None)
    )
    await db.execute(delete(Payment).where(Payment.lease_id == lease.id))
    await db.execute(delete(Invoice).where(Invoice.lease_id == lease.id))
    await db.execute(delete(LeaseContact).where(LeaseContact.lease_id == lease.id))
    await db.delete(lease)
    await db.flush()
    logger.info("Deleted lease %s", lease_id)

    if unit_id is not None:
        await _sync_unit_status(scope, unit_id)
