# tests/test_schedule.py
import pytest
from datetime import date
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from rentledger import db
from rentledger.config import LedgerConfig
from rentledger.enums import PaymentStatus
from rentledger.errors import InvalidLeaseTerm
from rentledger.models import RentPayment
from rentledger.services import schedule
from rentledger.services.schedule import generate_payment_schedule, billing_periods, grace_days


def _payments(db_session, lease):
    return db_session.query(RentPayment).filter_by(lease_id=lease.id).order_by(RentPayment.period_start).all()


def test_full_year_lease_gets_twelve_monthly_payments(db_session, build):
    lease = build.lease(monthly_rent=150000, start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))

    created = generate_payment_schedule(db_session, lease)

    assert len(created) == 12
    payments = _payments(db_session, lease)
    assert [p.period_start for p in payments] == [date(2024, m, 1) for m in range(1, 13)]
    assert payments[0].period_end == date(2024, 1, 31)
    assert payments[1].period_end == date(2024, 2, 29)  # leap year
    assert payments[-1].period_end == date(2024, 12, 31)
    for p in payments:
        assert p.amount_due == 150000
        assert p.amount_paid == 0
        assert p.status == PaymentStatus.UPCOMING
        assert p.due_date == p.period_start
        assert p.paid_at is None


def test_mid_month_term_has_partial_first_and_last_periods(db_session, build):
    lease = build.lease(start_date=date(2024, 1, 15), end_date=date(2024, 3, 10))

    generate_payment_schedule(db_session, lease)

    periods = [(p.period_start, p.period_end) for p in _payments(db_session, lease)]
    assert periods == [
        (date(2024, 1, 15), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 29)),
        (date(2024, 3, 1), date(2024, 3, 10)),
    ]


def test_billing_periods_cross_year_boundary():
    periods = billing_periods(date(2024, 12, 20), date(2025, 1, 5))
    assert periods == [(date(2024, 12, 20), date(2024, 12, 31)), (date(2025, 1, 1), date(2025, 1, 5))]


def test_regenerating_does_not_duplicate(db_session, build):
    lease = build.lease()
    generate_payment_schedule(db_session, lease)

    again = generate_payment_schedule(db_session, lease)

    assert again == []
    assert len(_payments(db_session, lease)) == 12


def test_regenerating_fills_only_missing_periods(db_session, build):
    lease = build.lease()
    generate_payment_schedule(db_session, lease)
    march = db_session.query(RentPayment).filter_by(lease_id=lease.id, period_start=date(2024, 3, 1)).one()
    db_session.delete(march)
    db_session.commit()

    created = generate_payment_schedule(db_session, lease)

    assert [p.period_start for p in created] == [date(2024, 3, 1)]
    assert len(_payments(db_session, lease)) == 12


def test_rent_change_only_applies_to_new_periods(db_session, build):
    lease = build.lease(monthly_rent=100000, start_date=date(2024, 1, 1), end_date=date(2024, 6, 30))
    generate_payment_schedule(db_session, lease)
    lease.monthly_rent = 120000
    lease.end_date = date(2024, 8, 31)
    db_session.commit()

    created = generate_payment_schedule(db_session, lease)

    assert [p.amount_due for p in created] == [120000, 120000]
    assert {p.amount_due for p in _payments(db_session, lease)[:6]} == {100000}


@pytest.mark.parametrize("start, end", [
    (date(2024, 1, 1), date(2024, 1, 1)),   # same day
    (date(2024, 6, 1), date(2024, 1, 1)),   # ends before it starts
])
def test_invalid_term_raises_and_writes_nothing(db_session, build, start, end):
    lease = build.lease(start_date=start, end_date=end)

    with pytest.raises(InvalidLeaseTerm):
        generate_payment_schedule(db_session, lease)

    assert _payments(db_session, lease) == []


def test_partial_periods_are_prorated_when_enabled(db_session, build, monkeypatch):
    monkeypatch.setattr(LedgerConfig, 'PRORATE_PARTIAL_PERIODS', True)
    lease = build.lease(monthly_rent=31000, start_date=date(2024, 1, 15), end_date=date(2024, 2, 29))

    generate_payment_schedule(db_session, lease)

    jan, feb = _payments(db_session, lease)
    assert jan.amount_due == 17000  # 17 of 31 days
    assert feb.amount_due == 31000


def test_grace_days_are_clamped(build):
    assert grace_days(build.lease(late_fee_grace_days=3)) == 3
    assert grace_days(build.lease(late_fee_grace_days=90)) == LedgerConfig.MAX_GRACE_DAYS
    assert grace_days(build.lease(late_fee_grace_days=-2)) == 0


# --- Concurrent generation ---

def _other_worker_schedules(lease_id, *period_starts):
    with Session(db.engine) as other:
        other.add_all([
            RentPayment(lease_id=lease_id, period_start=start, period_end=start, due_date=start,
                        amount_due=99, amount_paid=0, status='upcoming')
            for start in period_starts
        ])
        other.commit()


def test_concurrent_generation_retries_and_fills_remaining_gaps(committed_build, monkeypatch):
    lease = committed_build.lease()
    lease_id = lease.id
    real_periods = schedule._scheduled_periods
    calls = []

    def periods_read_before_other_worker(session, lid):
        calls.append(lid)
        if len(calls) == 1:
            _other_worker_schedules(lid, date(2024, 3, 1))
            return set()
        return real_periods(session, lid)
    monkeypatch.setattr(schedule, '_scheduled_periods', periods_read_before_other_worker)

    created = generate_payment_schedule(db.session, lease)

    assert len(created) == 11
    assert date(2024, 3, 1) not in [p.period_start for p in created]
    payments = db.session.query(RentPayment).filter_by(lease_id=lease_id).order_by(RentPayment.period_start).all()
    assert len(payments) == 12
    assert payments[2].amount_due == 99


def test_repeated_conflicts_are_raised(committed_build, monkeypatch):
    lease = committed_build.lease()
    generate_payment_schedule(db.session, lease)
    monkeypatch.setattr(schedule, '_scheduled_periods', lambda session, lid: set())

    with pytest.raises(IntegrityError):
        generate_payment_schedule(db.session, lease)
