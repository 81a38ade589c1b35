# rentledger/services/rent_roll.py
import calendar
from collections import defaultdict
from datetime import date

from sqlalchemy import func, select

from ..config import LedgerConfig
from ..enums import AmountType, ChargeCategory, LeaseStatus
from ..errors import aggregation_guard
from ..models import Lease, LeaseCharge, PaymentLineItem, Property, RentPayment, Unit, User


def _fetch_leases(session, organization_id):
    return session.execute(
        select(Lease, Unit, Property, User)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .join(User, Lease.tenant_id == User.id)
        .where(Property.organization_id == organization_id,
               Lease.status.in_(LedgerConfig.RENT_ROLL_LEASE_STATUSES))
        .order_by(Property.name, Unit.unit_number, Lease.id)
    ).all()


def _fetch_active_charges(session, lease_ids):
    return session.execute(
        select(LeaseCharge)
        .where(LeaseCharge.lease_id.in_(lease_ids), LeaseCharge.is_active.is_(True))
        .order_by(LeaseCharge.lease_id, LeaseCharge.id)
    ).scalars().all()


def _fetch_balances(session, lease_ids):
    rows = session.execute(
        select(RentPayment.lease_id,
               func.coalesce(func.sum(RentPayment.amount_due), 0),
               func.coalesce(func.sum(RentPayment.amount_paid), 0))
        .where(RentPayment.lease_id.in_(lease_ids))
        .group_by(RentPayment.lease_id)
    ).all()
    return {lease_id: int(due) - int(paid) for lease_id, due, paid in rows}


def charge_breakdown(lease, charges):
    """
    Returns (lines, total_monthly_charges) for one lease.
    Exactly one rent line comes first: the first explicit rent charge, or one
    synthesized from monthly_rent. The total is always monthly_rent plus the
    active non-rent charges, whatever the explicit rent charge says.
    """
    rent_line = None
    lines = []
    total = lease.monthly_rent
    for charge in charges:
        if charge.category == ChargeCategory.RENT:
            if rent_line is None:
                rent_line = charge.to_dict()
            continue
        line = charge.to_dict()
        total += line['amount']
        lines.append(line)
    if rent_line is None:
        rent_line = {
            'category': ChargeCategory.RENT.value,
            'name': 'Rent',
            'amount': lease.monthly_rent,
            'amount_type': AmountType.FIXED.value,
        }
    return [rent_line] + lines, total


def get_rent_roll(session, organization_id):
    """
    Builds the rent roll for an organization in three batched queries: the
    leases with unit, property and tenant; their active charges; and their
    due/paid totals grouped by lease. Either all three succeed or
    AggregationUnavailable is raised.
    """
    with aggregation_guard('Rent roll'):
        rows = _fetch_leases(session, organization_id)
        lease_ids = [lease.id for lease, _, _, _ in rows]
        charges = _fetch_active_charges(session, lease_ids)
        balances = _fetch_balances(session, lease_ids)

    charges_by_lease = defaultdict(list)
    for charge in charges:
        charges_by_lease[charge.lease_id].append(charge)

    entries = []
    for lease, unit, prop, tenant in rows:
        lines, total_monthly_charges = charge_breakdown(lease, charges_by_lease[lease.id])
        entries.append({
            'property_id': prop.id,
            'property_name': prop.name,
            'address': prop.address,
            'full_address': prop.full_address,
            'unit_id': unit.id,
            'unit_number': unit.unit_number,
            'tenant_id': tenant.id,
            'tenant_name': tenant.name,
            'tenant_email': tenant.email,
            'tenant_phone': tenant.phone,
            'lease_id': lease.id,
            'lease_status': LeaseStatus(lease.status).value,
            'start_date': lease.start_date.isoformat(),
            'end_date': lease.end_date.isoformat(),
            'monthly_rent': lease.monthly_rent,
            'security_deposit': lease.security_deposit,
            'late_fee_amount': lease.late_fee_amount,
            'total_monthly_charges': total_monthly_charges,
            # Positive = tenant owes, negative = credit
            'current_balance': balances.get(lease.id, 0),
            'charges': lines,
        })
    return entries


def calculate_rent_roll_totals(entries):
    return {
        'total_units': len(entries),
        'total_monthly_rent': sum(e['monthly_rent'] for e in entries),
        'total_monthly_charges': sum(e['total_monthly_charges'] for e in entries),
        'total_balance': sum(e['current_balance'] for e in entries),
        'total_security_deposits': sum(e['security_deposit'] or 0 for e in entries),
    }


def get_monthly_payments(session, organization_id, year):
    """
    Per-category amounts for every payment period starting in ``year``,
    bucketed by month. A payment without line items shows as one rent entry.
    """
    with aggregation_guard('Monthly payments'):
        rows = session.execute(
            select(RentPayment, PaymentLineItem)
            .join(Lease, RentPayment.lease_id == Lease.id)
            .join(Unit, Lease.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .outerjoin(PaymentLineItem, PaymentLineItem.rent_payment_id == RentPayment.id)
            .where(Property.organization_id == organization_id,
                   RentPayment.period_start >= date(year, 1, 1),
                   RentPayment.period_start <= date(year, 12, 31))
            .order_by(RentPayment.period_start, RentPayment.lease_id, PaymentLineItem.id)
        ).all()

    entries_by_month = defaultdict(list)
    for payment, item in rows:
        if item is not None:
            category, due, paid = ChargeCategory(item.category).value, item.amount_due, item.amount_paid or 0
        else:
            category, due, paid = ChargeCategory.RENT.value, payment.amount_due, payment.amount_paid or 0
        entries_by_month[payment.period_start.month].append({
            'lease_id': payment.lease_id,
            'payment_id': payment.id,
            'category': category,
            'amount_due': due,
            'amount_paid': paid,
            'balance': due - paid,
        })

    return [
        {
            'month': f'{year:04d}-{month:02d}',
            'month_name': calendar.month_name[month],
            'year': year,
            'entries': entries_by_month[month],
        }
        for month in range(1, 13)
    ]
