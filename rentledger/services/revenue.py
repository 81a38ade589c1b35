# rentledger/services/revenue.py
import calendar
from collections import defaultdict
from datetime import datetime

from sqlalchemy import and_, func, select

from ..enums import AssignmentStatus
from ..errors import aggregation_guard
from ..models import Lease, Property, PropertyManagerAssignment, RentPayment, Unit
from ..money import clamp_percentage, percent_of


def _collected_payments(manager_id):
    """Payments with money on them under the manager's accepted properties."""
    return (
        select(RentPayment.id, RentPayment.paid_at, RentPayment.amount_paid,
               PropertyManagerAssignment.id, PropertyManagerAssignment.split_percentage)
        .select_from(PropertyManagerAssignment)
        .join(Property, PropertyManagerAssignment.property_id == Property.id)
        .join(Unit, Unit.property_id == Property.id)
        .join(Lease, Lease.unit_id == Unit.id)
        .join(RentPayment, RentPayment.lease_id == Lease.id)
        .where(PropertyManagerAssignment.manager_id == manager_id,
               PropertyManagerAssignment.status == AssignmentStatus.ACCEPTED,
               RentPayment.amount_paid > 0)
    )


def pm_revenue_by_property(session, manager_id):
    """
    One row per property the manager has an accepted assignment on.
    The share is rounded once on the property's collected total.
    """
    collected = func.coalesce(func.sum(RentPayment.amount_paid), 0)
    with aggregation_guard('Manager revenue by property'):
        rows = session.execute(
            select(Property.id, Property.name, Property.address, Property.city, Property.state,
                   PropertyManagerAssignment.split_percentage,
                   collected,
                   func.count(func.distinct(RentPayment.id)))
            .select_from(PropertyManagerAssignment)
            .join(Property, PropertyManagerAssignment.property_id == Property.id)
            .outerjoin(Unit, Unit.property_id == Property.id)
            .outerjoin(Lease, Lease.unit_id == Unit.id)
            .outerjoin(RentPayment, and_(RentPayment.lease_id == Lease.id, RentPayment.amount_paid > 0))
            .where(PropertyManagerAssignment.manager_id == manager_id,
                   PropertyManagerAssignment.status == AssignmentStatus.ACCEPTED)
            .group_by(PropertyManagerAssignment.id, Property.id, Property.name, Property.address,
                      Property.city, Property.state, PropertyManagerAssignment.split_percentage)
        ).all()

    result = []
    for prop_id, name, address, city, state, split, total, count in rows:
        total = int(total or 0)
        split = clamp_percentage(split)
        result.append({
            'property_id': prop_id,
            'property_name': name,
            'property_address': f'{address}, {city}, {state}',
            'split_percentage': split,
            'total_collected': total,
            'pm_share': percent_of(total, split),
            'payment_count': int(count or 0),
        })
    result.sort(key=lambda r: (-r['total_collected'], r['property_name']))
    return result


def pm_revenue_summary(session, manager_id):
    by_property = pm_revenue_by_property(session, manager_id)
    return {
        'total_collected': sum(p['total_collected'] for p in by_property),
        'total_pm_share': sum(p['pm_share'] for p in by_property),
        'property_count': len(by_property),
        'payment_count': sum(p['payment_count'] for p in by_property),
    }


def pm_revenue_by_month(session, manager_id, year):
    """
    Twelve rows for ``year``, bucketed by the month each payment was settled.
    Each payment's share is rounded, then summed within its month. Payments
    that never reached paid (no paid_at) are not counted.
    """
    start = datetime(year, 1, 1)
    end = datetime(year + 1, 1, 1)
    with aggregation_guard('Manager revenue by month'):
        rows = session.execute(
            _collected_payments(manager_id)
            .where(RentPayment.paid_at >= start, RentPayment.paid_at < end)
        ).all()

    months = defaultdict(lambda: {'total_collected': 0, 'pm_share': 0, 'payment_count': 0})
    for _, paid_at, amount_paid, _, split in rows:
        bucket = months[paid_at.month]
        bucket['total_collected'] += amount_paid
        bucket['pm_share'] += percent_of(amount_paid, split)
        bucket['payment_count'] += 1

    return [
        {
            'month': f'{year:04d}-{month:02d}',
            'month_name': calendar.month_name[month],
            'year': year,
            **months[month],
        }
        for month in range(1, 13)
    ]


def pm_revenue_for_date_range(session, manager_id, start_date, end_date):
    """Summary over payments settled between two dates, both inclusive."""
    start = datetime.combine(start_date, datetime.min.time())
    end = datetime.combine(end_date, datetime.max.time())
    with aggregation_guard('Manager revenue for date range'):
        rows = session.execute(
            _collected_payments(manager_id)
            .where(RentPayment.paid_at >= start, RentPayment.paid_at <= end)
        ).all()
        property_count = session.execute(
            select(func.count(func.distinct(PropertyManagerAssignment.property_id)))
            .where(PropertyManagerAssignment.manager_id == manager_id,
                   PropertyManagerAssignment.status == AssignmentStatus.ACCEPTED)
        ).scalar()

    collected = defaultdict(int)
    splits = {}
    payment_ids = set()
    for payment_id, _, amount_paid, assignment_id, split in rows:
        collected[assignment_id] += amount_paid
        splits[assignment_id] = split
        payment_ids.add(payment_id)

    return {
        'total_collected': sum(collected.values()),
        'total_pm_share': sum(percent_of(total, splits[a]) for a, total in collected.items()),
        'property_count': int(property_count or 0),
        'payment_count': len(payment_ids),
    }
