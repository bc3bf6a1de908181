"""
Shared fixtures: an in-memory SQLite database built from the ORM metadata,
one session per test, and small factories for the rows leases hang off.

Run with:
    python -m pytest -v
"""
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATELIMIT_STORAGE_URL", "memory://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("API_SECRET_KEY", "test-secret-key-with-at-least-32-characters")

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from rentline.core.database import Base
from rentline.models.contact import Contact
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease
from rentline.models.organization import Organization
from rentline.models.payment import PaymentMethod
from rentline.models.property import Property, Unit
from rentline.services.tenancy import OrgScope


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def org(db):
    organization = Organization(name="Harbor Lane Properties")
    db.add(organization)
    await db.flush()
    return organization


@pytest.fixture
async def other_org(db):
    organization = Organization(name="Elm Street Rentals")
    db.add(organization)
    await db.flush()
    return organization


@pytest.fixture
def scope(db, org):
    return OrgScope(db, org.id)


@pytest.fixture
def other_scope(db, other_org):
    return OrgScope(db, other_org.id)


@pytest.fixture
async def prop(db, org):
    row = Property(organization_id=org.id, name="12 Harbor Lane", address="12 Harbor Lane")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def unit(db, org, prop):
    row = Unit(organization_id=org.id, property_id=prop.id, unit_number="1A")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def second_unit(db, org, prop):
    row = Unit(organization_id=org.id, property_id=prop.id, unit_number="1B")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def tenant(db, org):
    row = Contact(organization_id=org.id, first_name="Dana", last_name="Reyes", email="dana@example.com")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def guarantor(db, org):
    row = Contact(organization_id=org.id, first_name="Sam", last_name="Reyes")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def bank_transfer(db):
    row = PaymentMethod(name="Bank transfer")
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
def make_lease(db, org, tenant):
    """Insert a lease row directly, bypassing the lifecycle rules."""

    async def _make(unit=None, prop=None, **overrides) -> Lease:
        fields = dict(
            organization_id=org.id,
            unit_id=unit.id if unit is not None else None,
            property_id=prop.id if prop is not None and unit is None else None,
            tenant_contact_id=tenant.id,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            rent_amount=Decimal("1000.00"),
            currency_id="USD",
            payment_due_day=15,
            status="draft",
        )
        fields.update(overrides)
        lease = Lease(**fields)
        db.add(lease)
        await db.flush()
        return lease

    return _make


@pytest.fixture
def make_invoice(db, org):
    counter = {"n": 0}

    async def _make(lease: Lease, **overrides) -> Invoice:
        counter["n"] += 1
        fields = dict(
            organization_id=org.id,
            lease_id=lease.id,
            invoice_number=f"TEST-{counter['n']:04d}",
            due_date=date(2024, 1, 15),
            amount=Decimal("1000.00"),
            currency_id=lease.currency_id,
            status="pending",
        )
        fields.update(overrides)
        invoice = Invoice(**fields)
        db.add(invoice)
        await db.flush()
        return invoice

    return _make
