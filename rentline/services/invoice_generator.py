"""
Recurring invoice generation from a lease's payment terms.

Not idempotent: generating over a range that was already invoiced creates a
second set of invoices. Callers pick non-overlapping ranges.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from rentline.core.errors import InvalidInputError
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease
from rentline.schemas.common import InvoiceStatus, LineItem
from rentline.services.billing_dates import billing_dates
from rentline.services.invoice_numbering import flush_numbered, next_invoice_number
from rentline.services.tenancy import OrgScope

logger = logging.getLogger(__name__)


async def generate_recurring(
    scope: OrgScope,
    lease_id: uuid.UUID,
    start_date: date,
    end_date: date,
    amount: Decimal,
    description: str = "Monthly Rent",
) -> list[Invoice]:
    """Create one pending invoice per billing date between the two dates."""
    lease = await scope.get(Lease, lease_id, "Lease")
    if amount <= 0:
        raise InvalidInputError("Amount must be positive")
    if end_date < start_date:
        raise InvalidInputError("end_date must be on or after start_date")

    issued_at = datetime.now(timezone.utc)
    invoices: list[Invoice] = []
    for due_date in billing_dates(start_date, end_date, lease.payment_due_day):
        invoice = Invoice(
            organization_id=scope.organization_id,
            lease_id=lease.id,
            invoice_number=await next_invoice_number(scope.db, scope.organization_id, issued_at),
            due_date=due_date,
            amount=amount,
            currency_id=lease.currency_id,
            line_items=[LineItem(description=description, amount=amount, quantity=Decimal(1))],
            status=InvoiceStatus.pending.value,
            paid_amount=Decimal("0"),
            issued_at=issued_at,
        )
        scope.db.add(invoice)
        await flush_numbered(scope.db)
        invoices.append(invoice)

    for invoice in invoices:
        await scope.db.refresh(invoice)

    logger.info(
        "Generated %d invoice(s) for lease %s (%s..%s)",
        len(invoices), lease.id, start_date, end_date,
    )
    return invoices
