# rentledger/services/ledger.py
from datetime import date, timedelta

from sqlalchemy import func, select

from ..config import LedgerConfig
from ..enums import ChargeCategory, PaymentStatus
from ..errors import aggregation_guard
from ..models import Lease, PaymentLineItem, Property, RentPayment, Unit, User
from .schedule import grace_days


def settled_status(amount_due, amount_paid):
    """Stored status after a payment is applied: paid once fully covered, partial before."""
    return PaymentStatus.PAID if amount_paid >= amount_due else PaymentStatus.PARTIAL


def status_as_of(payment, as_of, grace):
    """
    Derives a payment's status on a given date without writing it.
    Past the grace window an unsettled payment is late, even if partly paid.
    """
    paid = payment.amount_paid or 0
    if paid >= payment.amount_due:
        return PaymentStatus.PAID
    if as_of > payment.due_date + timedelta(days=grace):
        return PaymentStatus.LATE
    if paid > 0:
        return PaymentStatus.PARTIAL
    if as_of >= payment.due_date - timedelta(days=LedgerConfig.DUE_SOON_DAYS):
        return PaymentStatus.DUE
    return PaymentStatus.UPCOMING


def get_payments_for_lease(session, lease_id):
    return session.execute(
        select(RentPayment).where(RentPayment.lease_id == lease_id).order_by(RentPayment.due_date)
    ).scalars().all()


def get_lease_balance(session, lease_id):
    total_due, total_paid = session.execute(
        select(func.coalesce(func.sum(RentPayment.amount_due), 0),
               func.coalesce(func.sum(RentPayment.amount_paid), 0))
        .where(RentPayment.lease_id == lease_id)
    ).one()
    return int(total_due) - int(total_paid)


def get_line_items(session, payment):
    """Stored line items, or the payment itself as a single rent line."""
    items = session.execute(
        select(PaymentLineItem)
        .where(PaymentLineItem.rent_payment_id == payment.id)
        .order_by(PaymentLineItem.id)
    ).scalars().all()
    if items:
        return [item.to_dict() for item in items]
    return [{
        'category': ChargeCategory.RENT.value,
        'name': 'Rent',
        'amount_due': payment.amount_due,
        'amount_paid': payment.amount_paid or 0,
    }]


def _organization_payments(organization_id):
    return (
        select(RentPayment, Lease, User.name, Property.name)
        .join(Lease, RentPayment.lease_id == Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .join(User, Lease.tenant_id == User.id)
        .where(Property.organization_id == organization_id,
               RentPayment.amount_paid < RentPayment.amount_due)
    )


def _payment_row(payment, lease, tenant_name, property_name, as_of):
    row = payment.to_dict()
    row['status'] = status_as_of(payment, as_of, grace_days(lease)).value
    row['tenant_name'] = tenant_name or 'Unknown'
    row['property_name'] = property_name
    return row


def get_upcoming_payments(session, organization_id, as_of, days_ahead=None):
    """Unsettled payments due between ``as_of`` and ``as_of + days_ahead`` inclusive."""
    if days_ahead is None:
        days_ahead = LedgerConfig.UPCOMING_DAYS_AHEAD
    # Capped at date.max
    horizon = as_of + timedelta(days=min(days_ahead, (date.max - as_of).days))
    with aggregation_guard('Upcoming payments'):
        rows = session.execute(
            _organization_payments(organization_id)
            .where(RentPayment.due_date >= as_of, RentPayment.due_date <= horizon)
            .order_by(RentPayment.due_date, RentPayment.id)
        ).all()
    return [_payment_row(p, lease, tenant, prop, as_of) for p, lease, tenant, prop in rows]


def get_overdue_payments(session, organization_id, as_of):
    """Unsettled payments whose grace window closed before ``as_of``."""
    with aggregation_guard('Overdue payments'):
        rows = session.execute(
            _organization_payments(organization_id)
            .where(RentPayment.due_date < as_of)
            .order_by(RentPayment.due_date, RentPayment.id)
        ).all()
    return [
        _payment_row(p, lease, tenant, prop, as_of)
        for p, lease, tenant, prop in rows
        if status_as_of(p, as_of, grace_days(lease)) == PaymentStatus.LATE
    ]
