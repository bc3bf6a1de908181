"""
Payment reconciler.

``mark_invoice_paid`` is the only way an invoice becomes ``paid``. It writes
the settling payment and the invoice's paid state inside one savepoint, so
either both rows change or neither does. ``record_payment`` stores money
received against a lease and never touches invoices.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import and_, extract, func, select

from rentline.core.errors import ConflictError, InvalidInputError, NotFoundError
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease
from rentline.models.payment import Payment, PaymentMethod
from rentline.schemas.common import InvoiceStatus, PaymentStatus, PaymentType
from rentline.schemas.payment import PaymentCreate, PaymentUpdate
from rentline.services.invoices import apply_invoice_status
from rentline.services.billing_dates import utc_today
from rentline.services.tenancy import OrgScope

logger = logging.getLogger(__name__)

# Summary buckets
_RENT_TYPES = (PaymentType.rent.value,)
_DEPOSIT_TYPES = (
    PaymentType.deposit.value,
    PaymentType.security_deposit.value,
    PaymentType.pet_deposit.value,
)
_FEE_TYPES = (PaymentType.fee.value, PaymentType.late_fee.value)
_REFUND_TYPES = (PaymentType.refund.value,)


async def _get_payment_method(scope: OrgScope, payment_method_id: uuid.UUID) -> PaymentMethod:
    # Payment methods are a global lookup, not organization data
    method = await scope.db.get(PaymentMethod, payment_method_id)
    if method is None:
        raise NotFoundError("Payment method")
    return method


# ─── Settlement ──────────────────────────────────────────────────────────────

def _record_settlement(
    scope: OrgScope,
    invoice: Invoice,
    amount: Decimal,
    payment_method_id: uuid.UUID | None,
    reference: str | None,
) -> Payment:
    payment = Payment(
        organization_id=scope.organization_id,
        lease_id=invoice.lease_id,
        invoice_id=invoice.id,
        amount=amount,
        currency_id=invoice.currency_id,
        payment_method_id=payment_method_id,
        type=PaymentType.rent.value,
        status=PaymentStatus.completed.value,
        payment_date=utc_today(),
        reference=reference,
    )
    scope.db.add(payment)
    return payment


def _settle_invoice(invoice: Invoice) -> None:
    apply_invoice_status(invoice, InvoiceStatus.paid)
    invoice.paid_amount = invoice.amount
    invoice.paid_at = datetime.now(timezone.utc)


async def mark_invoice_paid(
    scope: OrgScope,
    invoice_id: uuid.UUID,
    payment_method_id: uuid.UUID | None = None,
    reference: str | None = None,
) -> tuple[Invoice, Payment]:
    """
    Settle an invoice in full.

    The payment is for the invoice amount; partial settlements are not
    recorded against invoices, so ``paid_amount`` is zero until now. The
    invoice row is locked for the duration so two concurrent settlements
    cannot both succeed.
    """
    invoice = await scope.get_for_update(Invoice, invoice_id, "Invoice")
    if invoice.status == InvoiceStatus.paid.value:
        raise ConflictError("Invoice is already paid")
    if invoice.status == InvoiceStatus.cancelled.value:
        raise ConflictError("Cannot pay a cancelled invoice")
    if payment_method_id is not None:
        await _get_payment_method(scope, payment_method_id)

    try:
        async with scope.db.begin_nested():
            payment = _record_settlement(scope, invoice, invoice.amount, payment_method_id, reference)
            _settle_invoice(invoice)
    except Exception:
        logger.warning("Settlement of invoice %s rolled back", invoice_id)
        raise

    await scope.db.refresh(invoice)
    await scope.db.refresh(payment)
    logger.info(
        "Invoice %s paid: %s %s (payment %s)",
        invoice.invoice_number, payment.amount, payment.currency_id, payment.id,
    )
    return invoice, payment


# ─── Free-standing payments ──────────────────────────────────────────────────

async def record_payment(scope: OrgScope, payload: PaymentCreate) -> Payment:
    lease = await scope.get(Lease, payload.lease_id, "Lease")
    if payload.currency_id != lease.currency_id:
        raise InvalidInputError(
            f"Payment currency {payload.currency_id} does not match lease currency {lease.currency_id}"
        )
    if payload.payment_method_id is not None:
        await _get_payment_method(scope, payload.payment_method_id)

    payment = Payment(
        organization_id=scope.organization_id,
        **payload.model_dump(exclude={"payment_date"}),
        payment_date=payload.payment_date or utc_today(),
    )
    scope.db.add(payment)
    await scope.db.flush()
    await scope.db.refresh(payment)
    logger.info("Recorded %s payment %s on lease %s", payment.type, payment.id, lease.id)
    return payment


async def _settles_paid_invoice(scope: OrgScope, payment: Payment) -> bool:
    if payment.invoice_id is None:
        return False
    invoice = await scope.find(Invoice, payment.invoice_id)
    return invoice is not None and invoice.status == InvoiceStatus.paid.value


async def update_payment(scope: OrgScope, payment_id: uuid.UUID, payload: PaymentUpdate) -> Payment:
    payment = await scope.get(Payment, payment_id, "Payment")
    changes = payload.model_dump(exclude_unset=True)

    for field in ("amount", "type", "status", "payment_date"):
        if field in changes and changes[field] is None:
            raise InvalidInputError(f"{field} cannot be null")

    if ("amount" in changes or "status" in changes) and await _settles_paid_invoice(scope, payment):
        logger.warning("Rejected edit of payment %s settling a paid invoice", payment.id)
        raise ConflictError("Payment settles a paid invoice and cannot be changed")

    if changes.get("payment_method_id") is not None:
        await _get_payment_method(scope, changes["payment_method_id"])

    for field, value in changes.items():
        setattr(payment, field, value)

    await scope.db.flush()
    await scope.db.refresh(payment)
    return payment


async def delete_payment(scope: OrgScope, payment_id: uuid.UUID) -> None:
    payment = await scope.get(Payment, payment_id, "Payment")
    if await _settles_paid_invoice(scope, payment):
        logger.warning("Rejected delete of payment %s settling a paid invoice", payment.id)
        raise ConflictError("Payment settles a paid invoice and cannot be deleted")
    await scope.db.delete(payment)
    await scope.db.flush()
    logger.info("Deleted payment %s", payment_id)


# ─── Reads ───────────────────────────────────────────────────────────────────

async def get_payment(scope: OrgScope, payment_id: uuid.UUID) -> Payment:
    return await scope.get(Payment, payment_id, "Payment")


async def list_payments(scope: OrgScope, lease_id: uuid.UUID | None = None) -> list[Payment]:
    stmt = scope.select(Payment).order_by(Payment.payment_date.desc())
    if lease_id is not None:
        stmt = stmt.where(Payment.lease_id == lease_id)
    result = await scope.db.execute(stmt)
    return list(result.scalars().all())


async def list_payment_methods(scope: OrgScope) -> list[PaymentMethod]:
    """All payment methods, by name. The table is shared by every organization."""
    result = await scope.db.execute(select(PaymentMethod).order_by(PaymentMethod.name))
    return list(result.scalars().all())


async def payment_summary(
    scope: OrgScope,
    lease_id: uuid.UUID | None = None,
    year: int | None = None,
    month: int | None = None,
) -> dict:
    """Completed payments bucketed by type; refunds count against the net total."""
    criteria = [Payment.status == PaymentStatus.completed.value]
    if lease_id is not None:
        criteria.append(Payment.lease_id == lease_id)
    if year is not None:
        criteria.append(extract("year", Payment.payment_date) == year)
    if month is not None:
        if not 1 <= month <= 12:
            raise InvalidInputError("month must be between 1 and 12")
        criteria.append(extract("month", Payment.payment_date) == month)

    result = await scope.db.execute(
        scope.select(Payment, Payment.type, func.count(Payment.id), func.sum(Payment.amount))
        .where(and_(*criteria))
        .group_by(Payment.type)
    )

    totals = {"rent": Decimal("0"), "deposits": Decimal("0"), "fees": Decimal("0"), "refunds": Decimal("0")}
    counts = dict.fromkeys(totals, 0)
    for payment_type, count, amount in result.all():
        if payment_type in _RENT_TYPES:
            bucket = "rent"
        elif payment_type in _DEPOSIT_TYPES:
            bucket = "deposits"
        elif payment_type in _FEE_TYPES:
            bucket = "fees"
        elif payment_type in _REFUND_TYPES:
            bucket = "refunds"
        else:
            continue
        totals[bucket] += Decimal(amount or 0)
        counts[bucket] += count

    return {
        "total_rent": totals["rent"],
        "rent_payments": counts["rent"],
        "total_deposits": totals["deposits"],
        "deposit_payments": counts["deposits"],
        "total_fees": totals["fees"],
        "fee_payments": counts["fees"],
        "total_refunds": totals["refunds"],
        "refund_payments": counts["refunds"],
        "net_total": totals["rent"] + totals["deposits"] + totals["fees"] - totals["refunds"],
    }
