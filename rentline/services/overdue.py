"""Overdue sweep.

Flips ``pending`` invoices whose due date is in the past to ``overdue`` with
one bulk UPDATE per organization. Re-running it only touches rows that still
match, so the sweep is safe to repeat. Paid, cancelled, partial and already
overdue invoices are never selected.

Runs on demand through the API and daily through Celery beat.
"""

import logging
import uuid
from datetime import date

from sqlalchemy import Update, create_engine, select, update
from sqlalchemy.orm import Session

from rentline.core.config import settings
from rentline.models.invoice import Invoice
from rentline.models.organization import Organization
from rentline.schemas.common import InvoiceStatus
from rentline.services.billing_dates import utc_today
from rentline.services.tenancy import OrgScope
from rentline.worker import celery_app

logger = logging.getLogger(__name__)


def overdue_statement(organization_id: uuid.UUID, today: date) -> Update:
    """An invoice is overdue from the day after its due date."""
    return (
        update(Invoice)
        .where(
            Invoice.organization_id == organization_id,
            Invoice.status == InvoiceStatus.pending.value,
            Invoice.due_date < today,
        )
        .values(status=InvoiceStatus.overdue.value)
        .execution_options(synchronize_session="fetch")
    )


async def update_overdue(scope: OrgScope, today: date | None = None) -> int:
    today = today or utc_today()
    result = await scope.db.execute(overdue_statement(scope.organization_id, today))
    if result.rowcount:
        logger.info("Marked %d invoice(s) overdue for org %s", result.rowcount, scope.organization_id)
    return result.rowcount


# ─── Celery task ────────────────────────────────────────────────────────────────

@celery_app.task(name="rentline.services.overdue.sweep_all_organizations")
def sweep_all_organizations():
    """Run the overdue sweep for every organization (daily, see rentline.worker)."""
    today = utc_today()
    engine = create_engine(settings.database_url_sync, pool_pre_ping=True)
    total = 0

    with Session(engine) as db:
        org_ids = db.execute(select(Organization.id)).scalars().all()
        for org_id in org_ids:
            try:
                result = db.execute(overdue_statement(org_id, today))
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Overdue sweep failed for org %s", org_id)
                continue
            total += result.rowcount

    engine.dispose()
    logger.info("Overdue sweep done: %d invoice(s) across %d organization(s)", total, len(org_ids))
    return total
