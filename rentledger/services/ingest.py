"""Applies confirmed payment events to the ledger.

This is the only code path that changes ``amount_paid``. Each event is keyed by
its external transaction id; the check for an earlier application and the
increment run inside one transaction with the payment row locked, and the
unique constraint on ``PaymentTransaction.external_transaction_id`` rejects a
concurrent duplicate that gets past the check.
"""
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..enums import ChargeCategory, PaymentMethod, PaymentStatus
from ..errors import InvalidPaymentAmount, InvalidPaymentEvent, PaymentNotFound
from ..models import PaymentTransaction, RentPayment
from .ledger import settled_status

logger = logging.getLogger(__name__)

PAYMENT_REF_KEYS = ('payment_id', 'paymentId', 'client_reference_id')
LEASE_REF_KEYS = ('lease_id', 'leaseId')


class IngestOutcome(str, enum.Enum):
    APPLIED = 'applied'
    # Extra money on a payment that was already paid; recorded as a credit
    ALREADY_SETTLED = 'already_settled'
    # Same external transaction seen before; nothing changed
    DUPLICATE = 'duplicate'


@dataclass
class PaymentEvent:
    amount: int
    external_transaction_id: str
    occurred_at: Optional[datetime] = None
    payment_ref: Optional[Any] = None
    lease_ref: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    payment_method: Optional[PaymentMethod] = None


@dataclass
class IngestResult:
    outcome: IngestOutcome
    payment: RentPayment

    @property
    def changed(self):
        return self.outcome != IngestOutcome.DUPLICATE

    def to_dict(self):
        return {
            'outcome': self.outcome.value,
            'changed': self.changed,
            'payment': self.payment.to_dict(),
        }


def _naive_utc(moment):
    if moment is None:
        moment = datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _as_id(value, what):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PaymentNotFound(f'{what} {value!r} is not a valid reference')


def _first(metadata, keys):
    for key in keys:
        if metadata.get(key) not in (None, ''):
            return metadata[key]
    return None


def _validate(event):
    if isinstance(event.amount, bool) or not isinstance(event.amount, int):
        raise InvalidPaymentAmount(f'Payment amount must be an integer number of cents, got {event.amount!r}')
    if event.amount <= 0:
        raise InvalidPaymentAmount(f'Payment amount must be positive, got {event.amount}')
    if not event.external_transaction_id:
        raise InvalidPaymentEvent('external_transaction_id is required')


def resolve_payment(session, event, lock=True):
    """
    Finds the RentPayment an event pays for.
    An explicit payment reference wins, then a payment id carried in metadata,
    then lease plus period start, then the lease's earliest unsettled payment.
    """
    metadata = event.metadata or {}
    stmt = None
    payment_ref = event.payment_ref if event.payment_ref is not None else _first(metadata, PAYMENT_REF_KEYS)
    if payment_ref is not None:
        stmt = select(RentPayment).where(RentPayment.id == _as_id(payment_ref, 'Payment'))
    else:
        lease_ref = event.lease_ref if event.lease_ref is not None else _first(metadata, LEASE_REF_KEYS)
        if lease_ref is not None:
            stmt = select(RentPayment).where(RentPayment.lease_id == _as_id(lease_ref, 'Lease'))
            period_start = metadata.get('period_start')
            if period_start:
                try:
                    stmt = stmt.where(RentPayment.period_start == date.fromisoformat(str(period_start)))
                except ValueError:
                    raise PaymentNotFound(f'period_start {period_start!r} is not an ISO date')
            else:
                stmt = (stmt.where(RentPayment.amount_paid < RentPayment.amount_due)
                        .order_by(RentPayment.due_date, RentPayment.id)
                        .limit(1))

    payment = None
    if stmt is not None:
        if lock:
            stmt = stmt.with_for_update()
        payment = session.execute(stmt).scalars().first()
    if payment is None:
        logger.error("No ledger record for payment event %s (payment_ref=%r, lease_ref=%r, metadata=%r)",
                     event.external_transaction_id, event.payment_ref, event.lease_ref, metadata)
        raise PaymentNotFound(f'No rent payment matches transaction {event.external_transaction_id}')
    return payment


def _find_transaction(session, external_transaction_id):
    return session.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.external_transaction_id == external_transaction_id)
    ).scalars().first()


def _allocate_line_items(payment, amount):
    """Spreads an increment over line items, rent first; overpayment lands on the first line."""
    items = sorted(payment.line_items, key=lambda i: (i.category != ChargeCategory.RENT, i.id or 0))
    remaining = amount
    for item in items:
        outstanding = item.amount_due - (item.amount_paid or 0)
        if outstanding <= 0:
            continue
        take = min(outstanding, remaining)
        item.amount_paid = (item.amount_paid or 0) + take
        remaining -= take
        if not remaining:
            break
    if remaining and items:
        items[0].amount_paid = (items[0].amount_paid or 0) + remaining


def _replayed(session, transaction):
    payment = transaction.rent_payment
    # Release the row lock; nothing is pending
    session.commit()
    logger.warning("Ignoring replayed transaction %s for payment %s",
                   transaction.external_transaction_id, payment.id)
    return IngestResult(IngestOutcome.DUPLICATE, payment)


def apply_payment_event(session, event):
    _validate(event)
    tx_id = str(event.external_transaction_id)

    # Replays match on the transaction id alone: after the first delivery a
    # lease-only reference resolves to a different period, or to none.
    seen = _find_transaction(session, tx_id)
    if seen is not None:
        return _replayed(session, seen)

    payment = resolve_payment(session, event)
    seen = _find_transaction(session, tx_id)
    if seen is not None:
        # Applied by another worker while this one waited on the row lock
        return _replayed(session, seen)

    occurred_at = _naive_utc(event.occurred_at)
    was_settled = (payment.amount_paid or 0) >= payment.amount_due

    payment.amount_paid = (payment.amount_paid or 0) + event.amount
    payment.status = settled_status(payment.amount_due, payment.amount_paid)
    if payment.status == PaymentStatus.PAID and payment.paid_at is None:
        payment.paid_at = occurred_at
    payment.external_transaction_id = tx_id
    if event.payment_method:
        payment.payment_method = PaymentMethod(event.payment_method)
    _allocate_line_items(payment, event.amount)

    session.add(PaymentTransaction(
        rent_payment_id=payment.id,
        external_transaction_id=tx_id,
        amount=event.amount,
        occurred_at=occurred_at,
        payment_method=payment.payment_method,
    ))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        seen = _find_transaction(session, tx_id)
        if seen is None:
            raise
        logger.warning("Transaction %s was applied concurrently; treating as replay", tx_id)
        return IngestResult(IngestOutcome.DUPLICATE, seen.rent_payment)

    outcome = IngestOutcome.ALREADY_SETTLED if was_settled else IngestOutcome.APPLIED
    logger.info("Applied %s cents from %s to payment %s: paid %s/%s (%s)",
                event.amount, tx_id, payment.id, payment.amount_paid, payment.amount_due, payment.status.value)
    return IngestResult(outcome, payment)


def record_manual_payment(session, payment_id, amount, payment_method, reference=None, occurred_at=None):
    """Cash/check entries go through the same idempotent path as gateway events."""
    if reference:
        tx_id = f'manual:{payment_id}:{reference}'
    else:
        tx_id = f'manual:{uuid.uuid4().hex}'
    return apply_payment_event(session, PaymentEvent(
        amount=amount,
        external_transaction_id=tx_id,
        occurred_at=occurred_at,
        payment_ref=payment_id,
        payment_method=payment_method,
    ))
