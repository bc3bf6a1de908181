"""lease_billing_engine

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-03-02 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "a7c1e2d3f4b5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    # ── Tenant boundary and inventory ───────────────────────────────────────

    op.create_table(
        "organizations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_properties_organization_id"), "properties", ["organization_id"], unique=False)

    op.create_table(
        "units",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("property_id", sa.UUID(), nullable=False),
        sa.Column("unit_number", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="available"),
        _created_at(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_units_organization_id"), "units", ["organization_id"], unique=False)
    op.create_index(op.f("ix_units_property_id"), "units", ["property_id"], unique=False)

    op.create_table(
        "contacts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_contacts_organization_id"), "contacts", ["organization_id"], unique=False)

    # ── Leases ──────────────────────────────────────────────────────────────

    op.create_table(
        "leases",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("property_id", sa.UUID(), nullable=True),
        sa.Column("unit_id", sa.UUID(), nullable=True),
        sa.Column("tenant_contact_id", sa.UUID(), nullable=False),
        sa.Column("lease_type", sa.String(length=20), nullable=False, server_default="fixed"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("move_in_date", sa.Date(), nullable=True),
        sa.Column("move_out_date", sa.Date(), nullable=True),
        sa.Column("rent_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("currency_id", sa.String(length=3), nullable=False),
        sa.Column("payment_due_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payment_frequency", sa.String(length=20), nullable=False, server_default="monthly"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("additional_charges", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("late_fee_tiers", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("grace_period_days", sa.Integer(), nullable=True),
        sa.Column("auto_renew", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("renewal_notice_days", sa.Integer(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("renewed_from_id", sa.UUID(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("(property_id IS NULL) <> (unit_id IS NULL)", name="ck_leases_property_xor_unit"),
        sa.CheckConstraint("rent_amount > 0", name="ck_leases_rent_positive"),
        sa.CheckConstraint("payment_due_day BETWEEN 1 AND 28", name="ck_leases_payment_due_day"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["property_id"], ["properties.id"]),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["tenant_contact_id"], ["contacts.id"]),
        sa.ForeignKeyConstraint(["renewed_from_id"], ["leases.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_leases_organization_id"), "leases", ["organization_id"], unique=False)
    op.create_index(op.f("ix_leases_property_id"), "leases", ["property_id"], unique=False)
    op.create_index(op.f("ix_leases_unit_id"), "leases", ["unit_id"], unique=False)
    op.create_index(op.f("ix_leases_tenant_contact_id"), "leases", ["tenant_contact_id"], unique=False)
    op.create_index(op.f("ix_leases_status"), "leases", ["status"], unique=False)
    # One active lease per unit; one active whole-property lease per property
    op.create_index(
        "uq_leases_active_unit", "leases", ["unit_id"], unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "uq_leases_active_property", "leases", ["property_id"], unique=True,
        postgresql_where=sa.text("status = 'active' AND unit_id IS NULL"),
    )

    op.create_table(
        "lease_contacts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("lease_id", sa.UUID(), nullable=False),
        sa.Column("contact_id", sa.UUID(), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lease_id", "contact_id", "role", name="uq_lease_contacts_role"),
    )
    op.create_index(op.f("ix_lease_contacts_lease_id"), "lease_contacts", ["lease_id"], unique=False)
    op.create_index(op.f("ix_lease_contacts_contact_id"), "lease_contacts", ["contact_id"], unique=False)

    # ── Billing ─────────────────────────────────────────────────────────────

    op.create_table(
        "invoices",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("lease_id", sa.UUID(), nullable=False),
        sa.Column("invoice_number", sa.String(length=30), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency_id", sa.String(length=3), nullable=False),
        sa.Column("line_items", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("issued_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_invoices_amount_positive"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "invoice_number", name="uq_invoices_org_number"),
    )
    op.create_index(op.f("ix_invoices_organization_id"), "invoices", ["organization_id"], unique=False)
    op.create_index(op.f("ix_invoices_lease_id"), "invoices", ["lease_id"], unique=False)
    op.create_index(
        "ix_invoices_org_status_due", "invoices", ["organization_id", "status", "due_date"], unique=False
    )

    op.create_table(
        "invoice_sequences",
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("organization_id", "year"),
    )

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organization_id", sa.UUID(), nullable=False),
        sa.Column("lease_id", sa.UUID(), nullable=False),
        sa.Column("invoice_id", sa.UUID(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency_id", sa.String(length=3), nullable=False),
        sa.Column("payment_method_id", sa.UUID(), nullable=True),
        sa.Column("type", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="completed"),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["lease_id"], ["leases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["payment_method_id"], ["payment_methods.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payments_organization_id"), "payments", ["organization_id"], unique=False)
    op.create_index(op.f("ix_payments_lease_id"), "payments", ["lease_id"], unique=False)
    op.create_index(op.f("ix_payments_invoice_id"), "payments", ["invoice_id"], unique=False)

    # ── Seed lookups ────────────────────────────────────────────────────────
    methods = sa.table("payment_methods", sa.column("id", sa.UUID()), sa.column("name", sa.String()))
    op.bulk_insert(
        methods,
        [
            {"id": "5b0f1c58-2a3e-4c55-9b0e-3f1a1e0c0001", "name": "Bank transfer"},
            {"id": "5b0f1c58-2a3e-4c55-9b0e-3f1a1e0c0002", "name": "Cash"},
            {"id": "5b0f1c58-2a3e-4c55-9b0e-3f1a1e0c0003", "name": "Check"},
            {"id": "5b0f1c58-2a3e-4c55-9b0e-3f1a1e0c0004", "name": "Card"},
        ],
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_payments_invoice_id"), table_name="payments")
    op.drop_index(op.f("ix_payments_lease_id"), table_name="payments")
    op.drop_index(op.f("ix_payments_organization_id"), table_name="payments")
    op.drop_table("payments")
    op.drop_table("payment_methods")
    op.drop_table("invoice_sequences")
    op.drop_index("ix_invoices_org_status_due", table_name="invoices")
    op.drop_index(op.f("ix_invoices_lease_id"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_organization_id"), table_name="invoices")
    op.drop_table("invoices")
    op.drop_index(op.f("ix_lease_contacts_contact_id"), table_name="lease_contacts")
    op.drop_index(op.f("ix_lease_contacts_lease_id"), table_name="lease_contacts")
    op.drop_table("lease_contacts")
    op.drop_index("uq_leases_active_property", table_name="leases")
    op.drop_index("uq_leases_active_unit", table_name="leases")
    op.drop_index(op.f("ix_leases_status"), table_name="leases")
    op.drop_index(op.f("ix_leases_tenant_contact_id"), table_name="leases")
    op.drop_index(op.f("ix_leases_unit_id"), table_name="leases")
    op.drop_index(op.f("ix_leases_property_id"), table_name="leases")
    op.drop_index(op.f("ix_leases_organization_id"), table_name="leases")
    op.drop_table("leases")
    op.drop_index(op.f("ix_contacts_organization_id"), table_name="contacts")
    op.drop_table("contacts")
    op.drop_index(op.f("ix_units_property_id"), table_name="units")
    op.drop_index(op.f("ix_units_organization_id"), table_name="units")
    op.drop_table("units")
    op.drop_index(op.f("ix_properties_organization_id"), table_name="properties")
    op.drop_table("properties")
    op.drop_table("organizations")
