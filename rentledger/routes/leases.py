from flask import Blueprint, request, jsonify
from ..models import Lease
from ..services.schedule import generate_payment_schedule, grace_days
from ..services.ledger import get_payments_for_lease, get_lease_balance, status_as_of
from .. import db
from datetime import date

leases_bp = Blueprint('leases', __name__)


# Called by the lease-creation workflow right after a lease is saved
@leases_bp.route('/leases/<int:id>/payment-schedule', methods=['POST'])
def create_payment_schedule(id):
    lease = db.session.get(Lease, id)
    if not lease:
        return jsonify({'error': 'Lease not found'}), 404
    created = generate_payment_schedule(db.session, lease)
    return jsonify({
        'lease_id': id,
        'created': len(created),
        'payments': [p.to_dict() for p in created],
    }), 201


@leases_bp.route('/leases/<int:id>/payments', methods=['GET'])
def lease_payments(id):
    lease = db.session.get(Lease, id)
    if not lease:
        return jsonify({'error': 'Lease not found'}), 404
    as_of_str = request.args.get('as_of')
    try:
        as_of = date.fromisoformat(as_of_str) if as_of_str else date.today()
    except ValueError:
        return jsonify({'error': 'Invalid date format. Use YYYY-MM-DD'}), 400
    grace = grace_days(lease)
    out = []
    for payment in get_payments_for_lease(db.session, id):
        row = payment.to_dict()
        row['status_as_of'] = status_as_of(payment, as_of, grace).value
        out.append(row)
    return jsonify(out), 200


@leases_bp.route('/leases/<int:id>/balance', methods=['GET'])
def lease_balance(id):
    lease = db.session.get(Lease, id)
    if not lease:
        return jsonify({'error': 'Lease not found'}), 404
    return jsonify({'lease_id': id, 'current_balance': get_lease_balance(db.session, id)}), 200
