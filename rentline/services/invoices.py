"""
Manual invoice maintenance and the guards around paid invoices.

A paid invoice is final: its due date, amount, line items and status cannot
change and it cannot be deleted. Only the payment reconciler moves an invoice
to ``paid`` and only the overdue sweep moves one to ``overdue``; both go
through the same transition table as manual edits.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import update

from rentline.core.errors import ConflictError, InvalidInputError
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease
from rentline.models.payment import Payment
from rentline.schemas.common import InvoiceStatus
from rentline.schemas.invoice import InvoiceCreate, InvoiceUpdate
from rentline.services.invoice_numbering import flush_numbered, invoice_number_taken, next_invoice_number
from rentline.services.billing_dates import utc_today
from rentline.services.tenancy import OrgScope

logger = logging.getLogger(__name__)


INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.pending: frozenset(
        {InvoiceStatus.overdue, InvoiceStatus.partial, InvoiceStatus.cancelled, InvoiceStatus.paid}
    ),
    InvoiceStatus.overdue: frozenset(
        {InvoiceStatus.pending, InvoiceStatus.partial, InvoiceStatus.cancelled, InvoiceStatus.paid}
    ),
    InvoiceStatus.partial: frozenset(
        {InvoiceStatus.pending, InvoiceStatus.cancelled, InvoiceStatus.paid}
    ),
    InvoiceStatus.cancelled: frozenset({InvoiceStatus.pending}),
    InvoiceStatus.paid: frozenset(),
}

# Statuses a caller may set directly; overdue and paid are derived
_MANUAL_STATUSES = frozenset({InvoiceStatus.pending, InvoiceStatus.cancelled, InvoiceStatus.partial})
_CREATE_STATUSES = frozenset({InvoiceStatus.pending, InvoiceStatus.cancelled})

# Edits that would rewrite a settled invoice
_SETTLED_FIELDS = ("due_date", "amount", "status", "line_items")


def apply_invoice_status(invoice: Invoice, target: InvoiceStatus) -> None:
    """The single path for changing an invoice's status."""
    current = InvoiceStatus(invoice.status)
    if target == current:
        return
    if current == InvoiceStatus.paid:
        raise ConflictError("Cannot modify a paid invoice")
    if target not in INVOICE_TRANSITIONS[current]:
        raise ConflictError(f"Cannot change invoice status from {current.value} to {target.value}")
    invoice.status = target.value
    logger.info("Invoice %s: %s -> %s", invoice.id, current.value, target.value)


# ─── Reads ───────────────────────────────────────────────────────────────────

async def get_invoice(scope: OrgScope, invoice_id: uuid.UUID) -> Invoice:
    return await scope.get(Invoice, invoice_id, "Invoice")


async def list_invoices(
    scope: OrgScope,
    lease_id: uuid.UUID | None = None,
    status: InvoiceStatus | None = None,
) -> dict:
    stmt = scope.select(Invoice).order_by(Invoice.due_date.desc())
    if lease_id is not None:
        stmt = stmt.where(Invoice.lease_id == lease_id)
    if status is not None:
        stmt = stmt.where(Invoice.status == InvoiceStatus(status).value)
    invoices = list((await scope.db.execute(stmt)).scalars().all())

    open_statuses = (InvoiceStatus.pending.value, InvoiceStatus.overdue.value)
    return {
        "invoices": invoices,
        "total": len(invoices),
        "overdue_count": sum(1 for inv in invoices if inv.status == InvoiceStatus.overdue.value),
        "pending_total": sum(
            (inv.amount for inv in invoices if inv.status in open_statuses), Decimal("0")
        ),
    }


# ─── Mutations ───────────────────────────────────────────────────────────────

async def create_invoice(scope: OrgScope, payload: InvoiceCreate) -> Invoice:
    lease = await scope.get(Lease, payload.lease_id, "Lease")

    currency_id = payload.currency_id or lease.currency_id
    if currency_id != lease.currency_id:
        raise InvalidInputError(
            f"Invoice currency {currency_id} does not match lease currency {lease.currency_id}"
        )

    status = InvoiceStatus(payload.status)
    if status not in _CREATE_STATUSES:
        raise InvalidInputError("New invoices must be pending or cancelled")

    invoice = Invoice(
        organization_id=scope.organization_id,
        lease_id=lease.id,
        due_date=payload.due_date,
        amount=payload.amount,
        currency_id=currency_id,
        line_items=payload.line_items,
        status=status.value,
        notes=payload.notes,
        issued_at=datetime.now(timezone.utc),
    )

    if payload.invoice_number:
        if await invoice_number_taken(scope.db, scope.organization_id, payload.invoice_number):
            raise ConflictError(f"Invoice number {payload.invoice_number} is already in use")
        invoice.invoice_number = payload.invoice_number
    else:
        invoice.invoice_number = await next_invoice_number(
            scope.db, scope.organization_id, invoice.issued_at
        )

    scope.db.add(invoice)
    await flush_numbered(scope.db)
    await scope.db.refresh(invoice)
    logger.info("Created invoice %s for lease %s", invoice.invoice_number, lease.id)
    return invoice


async def update_invoice(scope: OrgScope, invoice_id: uuid.UUID, payload: InvoiceUpdate) -> Invoice:
    invoice = await get_invoice(scope, invoice_id)
    changes = payload.model_dump(exclude_unset=True)

    if invoice.status == InvoiceStatus.paid.value and any(f in changes for f in _SETTLED_FIELDS):
        logger.warning("Rejected edit of paid invoice %s", invoice.id)
        raise ConflictError("Cannot modify a paid invoice")

    for field in ("due_date", "amount", "status", "line_items"):
        if field in changes and changes[field] is None:
            raise InvalidInputError(f"{field} cannot be null")

    target = changes.pop("status", None)
    if target is not None and InvoiceStatus(target) not in _MANUAL_STATUSES:
        raise InvalidInputError(f"Invoice status cannot be set to {target} directly")

    for field, value in changes.items():
        if field == "line_items":
            value = payload.line_items
        setattr(invoice, field, value)

    if target is not None:
        apply_invoice_status(invoice, InvoiceStatus(target))
    elif (
        "due_date" in changes
        and invoice.status == InvoiceStatus.overdue.value
        and invoice.due_date >= utc_today()
    ):
        # Due date moved out of the past
        apply_invoice_status(invoice, InvoiceStatus.pending)

    await scope.db.flush()
    await scope.db.refresh(invoice)
    return invoice


async def delete_invoice(scope: OrgScope, invoice_id: uuid.UUID) -> None:
    invoice = await get_invoice(scope, invoice_id)
    if invoice.status == InvoiceStatus.paid.value:
        logger.warning("Rejected delete of paid invoice %s", invoice.id)
        raise ConflictError("Cannot delete paid invoice")

    # Payments stay on the lease, unlinked
    await scope.db.execute(
        update(Payment)
        .where(Payment.organization_id == scope.organization_id, Payment.invoice_id == invoice.id)
        .values(invoice_id=None)
    )
    await scope.db.delete(invoice)
    await scope.db.flush()
    logger.info("Deleted invoice %s", invoice.invoice_number)

