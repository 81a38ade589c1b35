# rentledger/models.py
from . import db
from .config import LedgerConfig
from .enums import (AmountType, AssignmentStatus, ChargeCategory, LeaseStatus,
                    PaymentMethod, PaymentStatus)
from sqlalchemy.orm import validates


def _enum(enum_cls):
    # Stored by value ('rent', 'paid', ...) as plain strings
    return db.Enum(enum_cls, native_enum=False, length=20, validate_strings=True,
                   values_callable=lambda e: [m.value for m in e])


def _iso(value):
    return value.isoformat() if value else None


def _value(member):
    # Enum member or the raw string assigned before a flush
    return getattr(member, 'value', member)


class Property(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(200), nullable=False, default='')
    city = db.Column(db.String(100), nullable=False, default='')
    state = db.Column(db.String(50), nullable=False, default='')
    zip = db.Column(db.String(20), nullable=False, default='')

    units = db.relationship('Unit', back_populates='property', lazy='dynamic')
    manager_assignments = db.relationship('PropertyManagerAssignment', back_populates='property', lazy='dynamic')

    @property
    def full_address(self):
        return f"{self.address}, {self.city}, {self.state} {self.zip}"

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'name': self.name,
            'full_address': self.full_address,
        }


class Unit(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'), nullable=False)
    unit_number = db.Column(db.String(50), nullable=False)

    property = db.relationship('Property', back_populates='units')
    leases = db.relationship('Lease', back_populates='unit', lazy='dynamic')


class User(db.Model):
    """A tenant or a property manager."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    phone = db.Column(db.String(50), nullable=True)

    leases = db.relationship('Lease', back_populates='tenant', lazy='dynamic')


class Lease(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey('unit.id'), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    monthly_rent = db.Column(db.Integer, nullable=False)  # cents
    security_deposit = db.Column(db.Integer, nullable=True)
    late_fee_amount = db.Column(db.Integer, nullable=True)
    late_fee_grace_days = db.Column(db.Integer, nullable=False, default=LedgerConfig.DEFAULT_LATE_FEE_GRACE_DAYS)
    status = db.Column(_enum(LeaseStatus), nullable=False, default=LeaseStatus.DRAFT)

    unit = db.relationship('Unit', back_populates='leases')
    tenant = db.relationship('User', back_populates='leases')
    charges = db.relationship('LeaseCharge', back_populates='lease', lazy='dynamic')
    payments = db.relationship('RentPayment', back_populates='lease', lazy='dynamic',
                               order_by='RentPayment.period_start')

    def to_dict(self):
        return {
            'id': self.id,
            'unit_id': self.unit_id,
            'tenant_id': self.tenant_id,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'monthly_rent': self.monthly_rent,
            'security_deposit': self.security_deposit,
            'late_fee_amount': self.late_fee_amount,
            'late_fee_grace_days': self.late_fee_grace_days,
            'status': _value(self.status),
        }


class LeaseCharge(db.Model):
    """A recurring obligation attached to a lease beyond (or including) base rent."""
    id = db.Column(db.Integer, primary_key=True)
    lease_id = db.Column(db.Integer, db.ForeignKey('lease.id'), nullable=False, index=True)
    category = db.Column(_enum(ChargeCategory), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    amount_type = db.Column(_enum(AmountType), nullable=False, default=AmountType.FIXED)
    fixed_amount = db.Column(db.Integer, nullable=True)
    # Default/estimate for variable charges
    estimated_amount = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    lease = db.relationship('Lease', back_populates='charges')

    @property
    def amount(self):
        if self.amount_type == AmountType.VARIABLE:
            preferred, fallback = self.estimated_amount, self.fixed_amount
        else:
            preferred, fallback = self.fixed_amount, self.estimated_amount
        if preferred is not None:
            return preferred
        return fallback or 0

    def to_dict(self):
        return {
            'category': _value(self.category),
            'name': self.name,
            'amount': self.amount,
            'amount_type': _value(self.amount_type),
        }


class RentPayment(db.Model):
    """One billing period of a lease's ledger."""
    __table_args__ = (db.UniqueConstraint('lease_id', 'period_start', name='uq_rent_payment_lease_period'),)

    id = db.Column(db.Integer, primary_key=True)
    lease_id = db.Column(db.Integer, db.ForeignKey('lease.id'), nullable=False, index=True)

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    amount_due = db.Column(db.Integer, nullable=False)
    amount_paid = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.UPCOMING)

    paid_at = db.Column(db.DateTime, nullable=True)
    external_transaction_id = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(_enum(PaymentMethod), nullable=True)

    lease = db.relationship('Lease', back_populates='payments')
    line_items = db.relationship('PaymentLineItem', back_populates='rent_payment',
                                 order_by='PaymentLineItem.id', lazy='select')
    transactions = db.relationship('PaymentTransaction', back_populates='rent_payment',
                                   order_by='PaymentTransaction.id', lazy='dynamic')

    @property
    def balance(self):
        return self.amount_due - (self.amount_paid or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'lease_id': self.lease_id,
            'period_start': _iso(self.period_start),
            'period_end': _iso(self.period_end),
            'due_date': _iso(self.due_date),
            'amount_due': self.amount_due,
            'amount_paid': self.amount_paid or 0,
            'balance': self.balance,
            'status': _value(self.status),
            'paid_at': _iso(self.paid_at),
            'external_transaction_id': self.external_transaction_id,
            'payment_method': _value(self.payment_method),
        }


class PaymentLineItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    rent_payment_id = db.Column(db.Integer, db.ForeignKey('rent_payment.id'), nullable=False, index=True)
    lease_charge_id = db.Column(db.Integer, db.ForeignKey('lease_charge.id'), nullable=True)
    category = db.Column(_enum(ChargeCategory), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    amount_due = db.Column(db.Integer, nullable=False)
    amount_paid = db.Column(db.Integer, nullable=False, default=0)

    rent_payment = db.relationship('RentPayment', back_populates='line_items')

    def to_dict(self):
        return {
            'category': _value(self.category),
            'name': self.name,
            'amount_due': self.amount_due,
            'amount_paid': self.amount_paid or 0,
        }


class PaymentTransaction(db.Model):
    """An applied payment event. The unique transaction id makes replays no-ops."""
    id = db.Column(db.Integer, primary_key=True)
    rent_payment_id = db.Column(db.Integer, db.ForeignKey('rent_payment.id'), nullable=False, index=True)
    external_transaction_id = db.Column(db.String(255), nullable=False, unique=True)
    amount = db.Column(db.Integer, nullable=False)
    occurred_at = db.Column(db.DateTime, nullable=False)
    payment_method = db.Column(_enum(PaymentMethod), nullable=True)

    rent_payment = db.relationship('RentPayment', back_populates='transactions')


class PropertyManagerAssignment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'), nullable=False, index=True)
    manager_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    split_percentage = db.Column(db.Integer, nullable=False)
    status = db.Column(_enum(AssignmentStatus), nullable=False, default=AssignmentStatus.PROPOSED)

    property = db.relationship('Property', back_populates='manager_assignments')
    manager = db.relationship('User')

    @validates('split_percentage')
    def clamp_split_percentage(self, key, value):
        return max(0, min(100, int(value)))
