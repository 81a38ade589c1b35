# rentledger/services/schedule.py
import calendar
import logging
from datetime import timedelta, date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..config import LedgerConfig
from ..enums import PaymentStatus
from ..errors import InvalidLeaseTerm
from ..models import RentPayment
from ..money import prorate

logger = logging.getLogger(__name__)


def _month_end(day):
    return date(day.year, day.month, calendar.monthrange(day.year, day.month)[1])


def grace_days(lease):
    days = lease.late_fee_grace_days
    if days is None:
        days = LedgerConfig.DEFAULT_LATE_FEE_GRACE_DAYS
    return max(0, min(LedgerConfig.MAX_GRACE_DAYS, days))


def billing_periods(start_date, end_date):
    """
    Splits a lease term into calendar-month periods.
    The first period opens on the start date, later ones on the 1st; the last
    one closes on the end date (the lease's last active day).
    """
    periods = []
    current = start_date
    while current <= end_date:
        period_end = min(_month_end(current), end_date)
        periods.append((current, period_end))
        current = _month_end(current) + timedelta(days=1)
    return periods


def _validate_term(lease):
    if lease.start_date is None or lease.end_date is None:
        raise InvalidLeaseTerm(f'Lease {lease.id} is missing start or end date')
    if lease.end_date <= lease.start_date:
        raise InvalidLeaseTerm(
            f'Lease {lease.id} ends on {lease.end_date.isoformat()}, '
            f'which is not after its start {lease.start_date.isoformat()}'
        )
    if lease.monthly_rent is None or lease.monthly_rent < 0:
        raise InvalidLeaseTerm(f'Lease {lease.id} has an invalid monthly rent')


def _amount_due(lease, period_start, period_end):
    if not LedgerConfig.PRORATE_PARTIAL_PERIODS:
        return lease.monthly_rent
    days_in_month = calendar.monthrange(period_start.year, period_start.month)[1]
    active_days = (period_end - period_start).days + 1
    return prorate(lease.monthly_rent, active_days, days_in_month)


def _scheduled_periods(session, lease_id):
    return set(session.execute(
        select(RentPayment.period_start).where(RentPayment.lease_id == lease_id)
    ).scalars())


def generate_payment_schedule(session, lease):
    """
    Creates one upcoming RentPayment per billing month of the lease.
    Periods already on the ledger are skipped, so calling this again only fills
    gaps. Returns the payments created by this call. Raises InvalidLeaseTerm
    before anything is written when the term is malformed.
    """
    _validate_term(lease)

    for attempt in range(2):
        scheduled = _scheduled_periods(session, lease.id)
        created = [
            RentPayment(
                lease_id=lease.id,
                period_start=period_start,
                period_end=period_end,
                due_date=period_start,
                amount_due=_amount_due(lease, period_start, period_end),
                amount_paid=0,
                status=PaymentStatus.UPCOMING,
            )
            for period_start, period_end in billing_periods(lease.start_date, lease.end_date)
            if period_start not in scheduled
        ]
        if not created:
            logger.info("Lease %s already fully scheduled (%d periods)", lease.id, len(scheduled))
            return []

        session.add_all(created)
        try:
            session.commit()
        except IntegrityError:
            # Another caller committed some of the same periods first
            session.rollback()
            if attempt:
                raise
            logger.warning("Concurrent schedule generation for lease %s; retrying with the committed periods",
                           lease.id)
            continue

        logger.info("Scheduled %d payments for lease %s (%d already present)",
                    len(created), lease.id, len(scheduled))
        return created
