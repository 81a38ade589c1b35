from flask import Blueprint, request, jsonify
from ..enums import PaymentMethod
from ..models import RentPayment
from ..services.ingest import PaymentEvent, apply_payment_event, record_manual_payment
from ..services.ledger import get_line_items
from .. import db
from datetime import datetime

payments_bp = Blueprint('payments', __name__)

PAYMENT_METHODS = [m.value for m in PaymentMethod]


def _parse_occurred_at(value):
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected an ISO 8601 string, got {value!r}")
    return datetime.fromisoformat(value)


# Entry point for the gateway webhook handler once it has verified an event
@payments_bp.route('/payments/events', methods=['POST'])
def ingest_payment_event():
    data = request.json
    required_fields = ['amount', 'external_transaction_id']
    if not data or not all(field in data for field in required_fields):
        return jsonify({'error': 'amount and external_transaction_id are required'}), 400
    if data.get('payment_method') and data['payment_method'] not in PAYMENT_METHODS:
        return jsonify({'error': f'payment_method must be one of {PAYMENT_METHODS}'}), 400
    try:
        occurred_at = _parse_occurred_at(data.get('occurred_at'))
    except ValueError:
        return jsonify({'error': 'Invalid occurred_at. Use an ISO 8601 timestamp'}), 400
    metadata = data.get('metadata') or {}
    if not isinstance(metadata, dict):
        return jsonify({'error': 'metadata must be an object'}), 400
    event = PaymentEvent(
        amount=data['amount'],
        external_transaction_id=data['external_transaction_id'],
        occurred_at=occurred_at,
        payment_ref=data.get('payment_id'),
        lease_ref=data.get('lease_id'),
        metadata=metadata,
        payment_method=data.get('payment_method'),
    )
    result = apply_payment_event(db.session, event)
    return jsonify(result.to_dict()), 200


@payments_bp.route('/payments/<int:id>/record', methods=['POST'])
def record_payment(id):
    data = request.json
    if not data or 'amount' not in data or 'payment_method' not in data:
        return jsonify({'error': 'amount and payment_method are required'}), 400
    if data['payment_method'] not in PAYMENT_METHODS:
        return jsonify({'error': f'payment_method must be one of {PAYMENT_METHODS}'}), 400
    try:
        occurred_at = _parse_occurred_at(data.get('paid_at'))
    except ValueError:
        return jsonify({'error': 'Invalid paid_at. Use an ISO 8601 timestamp'}), 400
    result = record_manual_payment(
        db.session, id, data['amount'], data['payment_method'],
        reference=data.get('reference'), occurred_at=occurred_at,
    )
    return jsonify(result.to_dict()), 200


@payments_bp.route('/payments/<int:id>/line-items', methods=['GET'])
def payment_line_items(id):
    payment = db.session.get(RentPayment, id)
    if not payment:
        return jsonify({'error': 'Payment not found'}), 404
    return jsonify(get_line_items(db.session, payment)), 200
