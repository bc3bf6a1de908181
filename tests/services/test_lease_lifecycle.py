"""
Lease state machine: transitions, unit occupancy, renewal chain and the
deletion guard. Runs against the in-memory database from conftest.
"""
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rentline.core.errors import ConflictError, InvalidInputError, NotFoundError
from rentline.models.invoice import Invoice
from rentline.models.lease import Lease, LeaseContact
from rentline.models.payment import Payment
from rentline.models.property import Property, Unit
from rentline.schemas.common import AdditionalCharge, LateFeeTier, LeaseStatus
from rentline.schemas.lease import LeaseCreate, LeaseUpdate
from rentline.services import lease_lifecycle
from rentline.services.billing_dates import utc_today
from rentline.services.lease_lifecycle import (
    check_transition,
    create_lease,
    delete_lease,
    get_expiring_soon,
    get_lease,
    lease_balance,
    list_leases,
    renew_lease,
    terminate_lease,
    update_lease,
)


def lease_payload(tenant, unit=None, prop=None, **overrides) -> LeaseCreate:
    fields = dict(
        unit_id=unit.id if unit is not None else None,
        property_id=prop.id if prop is not None else None,
        tenant_contact_id=tenant.id,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 12, 31),
        rent_amount=Decimal("1200.00"),
        currency_id="USD",
        payment_due_day=1,
    )
    fields.update(overrides)
    return LeaseCreate(**fields)


async def active_count(db, unit) -> int:
    result = await db.execute(
        select(func.count(Lease.id)).where(Lease.unit_id == unit.id, Lease.status == "active")
    )
    return result.scalar_one()


async def add_payment(db, lease, amount="500.00", status="completed", **extra) -> Payment:
    payment = Payment(
        organization_id=lease.organization_id,
        lease_id=lease.id,
        amount=Decimal(amount),
        currency_id=lease.currency_id,
        type="rent",
        status=status,
        payment_date=date(2024, 1, 15),
        **extra,
    )
    db.add(payment)
    await db.flush()
    return payment


# ── Transition table ────────────────────────────────────────────────────────

class TestTransitionTable:
    @pytest.mark.parametrize("current,target", [
        (LeaseStatus.draft, LeaseStatus.pending),
        (LeaseStatus.draft, LeaseStatus.active),
        (LeaseStatus.pending, LeaseStatus.draft),
        (LeaseStatus.pending, LeaseStatus.active),
        (LeaseStatus.active, LeaseStatus.expired),
        (LeaseStatus.active, LeaseStatus.terminated),
    ])
    def test_allowed(self, current, target):
        check_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (LeaseStatus.active, LeaseStatus.draft),
        (LeaseStatus.active, LeaseStatus.pending),
        (LeaseStatus.expired, LeaseStatus.active),
        (LeaseStatus.terminated, LeaseStatus.active),
        (LeaseStatus.terminated, LeaseStatus.expired),
    ])
    def test_rejected(self, current, target):
        with pytest.raises(ConflictError):
            check_transition(current, target)

    def test_same_status_is_noop(self):
        check_transition(LeaseStatus.expired, LeaseStatus.expired)


# ── Create ──────────────────────────────────────────────────────────────────

class TestCreateLease:
    async def test_active_lease_occupies_unit(self, scope, unit, tenant):
        lease = await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        assert lease.status == "active"
        assert lease.organization_id == scope.organization_id
        assert unit.status == "occupied"

    async def test_draft_lease_leaves_unit_available(self, scope, unit, tenant):
        lease = await create_lease(scope, lease_payload(tenant, unit=unit))
        assert lease.status == "draft"
        assert unit.status == "available"

    async def test_second_active_lease_on_unit_conflicts(self, db, scope, unit, tenant):
        await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        with pytest.raises(ConflictError):
            await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        assert await active_count(db, unit) == 1

    async def test_draft_lease_allowed_next_to_active_one(self, db, scope, unit, tenant):
        await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        await create_lease(scope, lease_payload(tenant, unit=unit, status="draft"))
        assert await active_count(db, unit) == 1

    async def test_index_backstops_the_precheck(self, scope, unit, tenant, monkeypatch):
        await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))

        async def _skip_check(*args, **kwargs):
            return None

        monkeypatch.setattr(lease_lifecycle, "_ensure_exclusive", _skip_check)
        with pytest.raises(ConflictError):
            await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))

    async def test_whole_property_exclusivity(self, scope, prop, tenant):
        await create_lease(scope, lease_payload(tenant, prop=prop, status="active"))
        with pytest.raises(ConflictError):
            await create_lease(scope, lease_payload(tenant, prop=prop, status="active"))

    async def test_unit_lease_does_not_block_property_lease(self, scope, prop, unit, tenant):
        await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        lease = await create_lease(scope, lease_payload(tenant, prop=prop, status="active"))
        assert lease.unit_id is None

    async def test_maintenance_unit_not_overridden_on_activation(self, db, scope, unit, tenant):
        unit.status = "maintenance"
        await db.flush()
        await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        assert unit.status == "maintenance"

    async def test_secondary_contacts_stored(self, db, scope, unit, tenant, guarantor):
        lease = await create_lease(
            scope,
            lease_payload(
                tenant, unit=unit, contacts=[{"contact_id": guarantor.id, "role": "guarantor"}]
            ),
        )
        links = (
            await db.execute(select(LeaseContact).where(LeaseContact.lease_id == lease.id))
        ).scalars().all()
        assert [(link.contact_id, link.role) for link in links] == [(guarantor.id, "guarantor")]

    async def test_value_lists_round_trip_as_models(self, scope, unit, tenant):
        lease = await create_lease(
            scope,
            lease_payload(
                tenant,
                unit=unit,
                additional_charges=[{"description": "Parking", "amount": "75.00"}],
                late_fee_tiers=[{"days_late": 5, "amount": "50"}, {"days_late": 15, "amount": "100"}],
            ),
        )
        assert lease.additional_charges == [AdditionalCharge(description="Parking", amount=Decimal("75.00"))]
        assert [tier.days_late for tier in lease.late_fee_tiers] == [5, 15]
        assert isinstance(lease.late_fee_tiers[0], LateFeeTier)

    async def test_unit_from_other_org_not_found(self, db, scope, other_org, tenant):
        foreign_prop = Property(organization_id=other_org.id, name="Elsewhere")
        db.add(foreign_prop)
        await db.flush()
        foreign_unit = Unit(organization_id=other_org.id, property_id=foreign_prop.id, unit_number="9")
        db.add(foreign_unit)
        await db.flush()

        with pytest.raises(NotFoundError):
            await create_lease(scope, lease_payload(tenant, unit=foreign_unit))

    async def test_unknown_tenant_not_found(self, scope, unit, guarantor):
        payload = lease_payload(guarantor, unit=unit)
        payload.tenant_contact_id = uuid.uuid4()
        with pytest.raises(NotFoundError):
            await create_lease(scope, payload)

    def test_property_and_unit_both_rejected_by_schema(self, prop, unit, tenant):
        with pytest.raises(ValueError):
            lease_payload(tenant, unit=unit, prop=prop)

    def test_neither_property_nor_unit_rejected_by_schema(self, tenant):
        with pytest.raises(ValueError):
            lease_payload(tenant)


# ── Update ──────────────────────────────────────────────────────────────────

class TestUpdateLease:
    async def test_activation_through_update_occupies_unit(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        await update_lease(scope, lease.id, LeaseUpdate(status="active"))
        assert lease.status == "active"
        assert unit.status == "occupied"

    async def test_expiring_frees_unit(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        await update_lease(scope, lease.id, LeaseUpdate(status="active"))
        await update_lease(scope, lease.id, LeaseUpdate(status="expired"))
        assert unit.status == "available"

    async def test_cannot_reactivate_expired_lease(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="expired")
        with pytest.raises(ConflictError):
            await update_lease(scope, lease.id, LeaseUpdate(status="active"))

    async def test_cannot_move_active_back_to_draft(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="active")
        with pytest.raises(ConflictError):
            await update_lease(scope, lease.id, LeaseUpdate(status="draft"))

    async def test_activation_blocked_by_other_active_lease(self, scope, unit, make_lease):
        await make_lease(unit=unit, status="active")
        draft = await make_lease(unit=unit)
        with pytest.raises(ConflictError):
            await update_lease(scope, draft.id, LeaseUpdate(status="active"))

    async def test_plain_field_update(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        updated = await update_lease(scope, lease.id, LeaseUpdate(rent_amount=Decimal("1350.00"), notes="Raised"))
        assert updated.rent_amount == Decimal("1350.00")
        assert updated.notes == "Raised"
        assert updated.status == "draft"

    async def test_end_before_start_rejected(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        with pytest.raises(InvalidInputError):
            await update_lease(scope, lease.id, LeaseUpdate(end_date=date(2023, 6, 1)))

    async def test_currency_locked_once_billed(self, scope, unit, make_lease, make_invoice):
        lease = await make_lease(unit=unit)
        await make_invoice(lease)
        with pytest.raises(ConflictError):
            await update_lease(scope, lease.id, LeaseUpdate(currency_id="EUR"))

    async def test_other_org_lease_not_found(self, other_scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        with pytest.raises(NotFoundError):
            await update_lease(other_scope, lease.id, LeaseUpdate(notes="x"))


# ── Terminate ───────────────────────────────────────────────────────────────

class TestTerminateLease:
    async def test_terminates_and_vacates(self, scope, unit, tenant):
        lease = await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        result = await terminate_lease(scope, lease.id, move_out_date=date(2024, 6, 30), reason="Relocation")
        assert result.status == "terminated"
        assert result.move_out_date == date(2024, 6, 30)
        assert result.notes == "Termination reason: Relocation"
        assert unit.status == "available"

    async def test_reason_appended_after_existing_notes(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="active", notes="Pays by check")
        result = await terminate_lease(scope, lease.id, reason="Non-payment")
        assert result.notes == "Pays by check\n\nTermination reason: Non-payment"

    async def test_move_out_defaults_to_today(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="active")
        result = await terminate_lease(scope, lease.id)
        assert result.move_out_date == utc_today()

    async def test_forces_unit_available_over_manual_status(self, db, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="active")
        unit.status = "maintenance"
        await db.flush()
        await terminate_lease(scope, lease.id)
        assert unit.status == "available"

    async def test_draft_lease_can_be_terminated(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        result = await terminate_lease(scope, lease.id)
        assert result.status == "terminated"

    async def test_already_terminated_conflicts(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="terminated")
        with pytest.raises(ConflictError):
            await terminate_lease(scope, lease.id)

    async def test_expired_lease_cannot_be_terminated(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="expired")
        with pytest.raises(ConflictError):
            await terminate_lease(scope, lease.id)


# ── Renew ───────────────────────────────────────────────────────────────────

class TestRenewLease:
    async def test_renewal_preserves_history(self, db, scope, unit, tenant):
        original = await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))

        renewed = await renew_lease(scope, original.id, date(2025, 12, 31), Decimal("1300.00"))

        assert original.status == "expired"
        assert original.rent_amount == Decimal("1200.00")
        assert renewed.id != original.id
        assert renewed.status == "active"
        assert renewed.rent_amount == Decimal("1300.00")
        assert renewed.start_date == date(2024, 12, 31)
        assert renewed.end_date == date(2025, 12, 31)
        assert renewed.renewed_from_id == original.id
        assert renewed.notes == f"Renewed from lease {original.id}"
        assert await active_count(db, unit) == 1
        assert unit.status == "occupied"

    async def test_rent_defaults_to_predecessor(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="active")
        renewed = await renew_lease(scope, original.id, date(2025, 12, 31))
        assert renewed.rent_amount == Decimal("1000.00")

    async def test_copies_billing_terms_and_contacts(self, db, scope, unit, tenant, guarantor):
        original = await create_lease(
            scope,
            lease_payload(
                tenant,
                unit=unit,
                status="active",
                payment_due_day=5,
                deposit_amount=Decimal("2400.00"),
                grace_period_days=3,
                late_fee_tiers=[{"days_late": 5, "amount": "50"}],
                additional_charges=[{"description": "Storage", "amount": "40"}],
                contacts=[{"contact_id": guarantor.id, "role": "guarantor"}],
            ),
        )
        renewed = await renew_lease(scope, original.id, date(2025, 12, 31))

        assert renewed.tenant_contact_id == tenant.id
        assert renewed.unit_id == unit.id
        assert renewed.currency_id == "USD"
        assert renewed.payment_due_day == 5
        assert renewed.deposit_amount == Decimal("2400.00")
        assert renewed.grace_period_days == 3
        assert renewed.late_fee_tiers == original.late_fee_tiers
        assert renewed.additional_charges == original.additional_charges
        roles = (
            await db.execute(select(LeaseContact.role).where(LeaseContact.lease_id == renewed.id))
        ).scalars().all()
        assert roles == ["guarantor"]

    async def test_open_ended_lease_renews_from_today(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="active", end_date=None)
        renewed = await renew_lease(scope, original.id, utc_today() + timedelta(days=365))
        assert renewed.start_date == utc_today()

    async def test_terminated_predecessor_keeps_its_status(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="terminated")
        renewed = await renew_lease(scope, original.id, date(2025, 12, 31))
        assert original.status == "terminated"
        assert renewed.status == "active"

    async def test_second_renewal_of_same_lease_conflicts(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="active")
        await renew_lease(scope, original.id, date(2025, 12, 31))
        with pytest.raises(ConflictError):
            await renew_lease(scope, original.id, date(2026, 12, 31))

    async def test_end_must_follow_new_start(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="active")
        with pytest.raises(InvalidInputError):
            await renew_lease(scope, original.id, date(2024, 12, 31))

    async def test_blocked_by_another_active_lease_on_unit(self, scope, unit, make_lease):
        await make_lease(unit=unit, status="active")
        expired = await make_lease(unit=unit, status="expired")
        with pytest.raises(ConflictError):
            await renew_lease(scope, expired.id, date(2025, 12, 31))


# ── Delete ──────────────────────────────────────────────────────────────────

class TestDeleteLease:
    async def test_active_lease_with_payments_conflicts(self, db, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="active")
        await add_payment(db, lease)
        with pytest.raises(ConflictError):
            await delete_lease(scope, lease.id)
        assert await scope.find(Lease, lease.id) is not None

    async def test_draft_lease_without_payments_deleted(self, scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        await delete_lease(scope, lease.id)
        assert await scope.find(Lease, lease.id) is None

    async def test_deleting_frees_occupied_unit(self, db, scope, unit, make_lease):
        lease = await make_lease(unit=unit, status="expired")
        unit.status = "occupied"
        await db.flush()
        await delete_lease(scope, lease.id)
        assert unit.status == "available"

    async def test_active_lease_without_payments_deleted_and_unit_freed(self, scope, unit, tenant):
        lease = await create_lease(scope, lease_payload(tenant, unit=unit, status="active"))
        assert unit.status == "occupied"
        await delete_lease(scope, lease.id)
        assert unit.status == "available"

    async def test_paid_invoice_blocks_delete(self, scope, unit, make_lease, make_invoice):
        lease = await make_lease(unit=unit, status="expired")
        await make_invoice(lease, status="paid", paid_amount=Decimal("1000.00"))
        with pytest.raises(ConflictError):
            await delete_lease(scope, lease.id)

    async def test_unpaid_invoices_and_payments_removed(self, db, scope, unit, make_lease, make_invoice):
        lease = await make_lease(unit=unit, status="expired")
        await make_invoice(lease)
        await add_payment(db, lease)
        await delete_lease(scope, lease.id)

        invoices = await db.execute(select(func.count(Invoice.id)).where(Invoice.lease_id == lease.id))
        payments = await db.execute(select(func.count(Payment.id)).where(Payment.lease_id == lease.id))
        assert invoices.scalar_one() == 0
        assert payments.scalar_one() == 0

    async def test_successor_link_cleared(self, scope, unit, make_lease):
        original = await make_lease(unit=unit, status="active")
        renewed = await renew_lease(scope, original.id, date(2025, 12, 31))
        await delete_lease(scope, original.id)
        assert renewed.renewed_from_id is None


# ── Reads ───────────────────────────────────────────────────────────────────

class TestLeaseReads:
    async def test_balance_counts_open_invoices_and_completed_payments(
        self, db, scope, unit, make_lease, make_invoice
    ):
        lease = await make_lease(unit=unit, status="active")
        await make_invoice(lease, status="pending")
        await make_invoice(lease, status="overdue")
        await make_invoice(lease, status="paid", paid_amount=Decimal("1000.00"))
        await add_payment(db, lease, amount="500.00")
        await add_payment(db, lease, amount="300.00", status="failed")

        balance = await lease_balance(scope, lease.id)
        assert balance == {
            "total_paid": Decimal("500.00"),
            "total_due": Decimal("2000.00"),
            "balance": Decimal("1500.00"),
        }

    async def test_list_hides_closed_leases_by_default(self, scope, unit, second_unit, make_lease):
        active = await make_lease(unit=unit, status="active")
        await make_lease(unit=second_unit, status="expired")
        await make_lease(unit=second_unit, status="terminated")

        assert [lease.id for lease in await list_leases(scope)] == [active.id]
        assert len(await list_leases(scope, include_expired=True)) == 3
        assert len(await list_leases(scope, status=LeaseStatus.terminated)) == 1

    async def test_expiring_soon_window(self, scope, unit, second_unit, prop, make_lease):
        today = date(2024, 6, 1)
        soon = await make_lease(unit=unit, status="active", end_date=date(2024, 6, 20))
        later = await make_lease(prop=prop, status="active", end_date=date(2024, 6, 10))
        await make_lease(unit=second_unit, status="active", end_date=date(2024, 9, 1))
        await make_lease(unit=second_unit, status="draft", end_date=date(2024, 6, 5))

        result = await get_expiring_soon(scope, days=30, today=today)
        assert [lease.id for lease in result] == [later.id, soon.id]

    async def test_expiring_soon_days_bounds(self, scope):
        with pytest.raises(InvalidInputError):
            await get_expiring_soon(scope, days=0)
        with pytest.raises(InvalidInputError):
            await get_expiring_soon(scope, days=366)

    async def test_cross_org_get_is_not_found(self, other_scope, unit, make_lease):
        lease = await make_lease(unit=unit)
        with pytest.raises(NotFoundError):
            await get_lease(other_scope, lease.id)
