"""
Invoice numbers: ``INV-{year}-{sequence:05d}``, sequence per organization and
calendar year of issue.

The next value is taken from a locked ``invoice_sequences`` row inside the
caller's transaction, so two concurrent generations can never hand out the
same number and a rolled-back insert gives its number back. The counter for a
new year is seeded from the invoices already issued that year, which keeps
numbering continuous for organizations that invoiced before the counter
existed.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentline.core.errors import ConflictError
from rentline.models.invoice import Invoice, InvoiceSequence

logger = logging.getLogger(__name__)


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:05d}"


async def next_invoice_number(
    db: AsyncSession, organization_id: uuid.UUID, issued_at: datetime
) -> str:
    year = issued_at.year
    sequence = await _next_sequence_value(db, organization_id, year)
    return format_invoice_number(year, sequence)


def _locked_counter(organization_id: uuid.UUID, year: int):
    return (
        select(InvoiceSequence)
        .where(
            InvoiceSequence.organization_id == organization_id,
            InvoiceSequence.year == year,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def _issued_count(db: AsyncSession, organization_id: uuid.UUID, year: int) -> int:
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    result = await db.execute(
        select(func.count(Invoice.id)).where(
            Invoice.organization_id == organization_id,
            Invoice.issued_at >= start,
            Invoice.issued_at < end,
        )
    )
    return result.scalar_one()


async def invoice_number_taken(
    db: AsyncSession, organization_id: uuid.UUID, invoice_number: str
) -> bool:
    result = await db.execute(
        select(Invoice.id)
        .where(Invoice.organization_id == organization_id, Invoice.invoice_number == invoice_number)
        .limit(1)
    )
    return result.first() is not None


async def flush_numbered(db: AsyncSession) -> None:
    """Flush a pending invoice insert, reporting a number collision as a conflict."""
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("Invoice number is already in use") from exc


async def _next_sequence_value(db: AsyncSession, organization_id: uuid.UUID, year: int) -> int:
    counter = (await db.execute(_locked_counter(organization_id, year))).scalar_one_or_none()

    if counter is None:
        seed = await _issued_count(db, organization_id, year)
        try:
            # Savepoint: losing the creation race must not roll back the caller's work
            async with db.begin_nested():
                counter = InvoiceSequence(
                    organization_id=organization_id, year=year, last_value=seed
                )
                db.add(counter)
        except IntegrityError:
            logger.debug("Invoice counter for %s/%s created concurrently, retrying", organization_id, year)
            counter = (await db.execute(_locked_counter(organization_id, year))).scalar_one()

    counter.last_value += 1
    # Manually numbered invoices may already hold values ahead of the counter
    while await invoice_number_taken(db, organization_id, format_invoice_number(year, counter.last_value)):
        counter.last_value += 1
    await db.flush()
    logger.debug("Allocated invoice sequence %s/%s -> %d", organization_id, year, counter.last_value)
    return counter.last_value
