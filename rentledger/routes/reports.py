from flask import Blueprint, request, jsonify
from ..services.rent_roll import get_rent_roll, calculate_rent_roll_totals, get_monthly_payments
from ..services.ledger import get_upcoming_payments, get_overdue_payments
from .. import db
from datetime import date

reports_bp = Blueprint('reports', __name__)


def _organization_id():
    org = request.args.get('organization_id')
    if not org:
        return None
    return int(org)


def _as_of():
    as_of = request.args.get('as_of')
    return date.fromisoformat(as_of) if as_of else date.today()


@reports_bp.route('/reports/rent-roll', methods=['GET'])
def rent_roll():
    try:
        org_id = _organization_id()
    except ValueError:
        return jsonify({'error': 'organization_id must be an integer'}), 400
    if org_id is None:
        return jsonify({'error': 'organization_id is required'}), 400
    entries = get_rent_roll(db.session, org_id)
    return jsonify({'entries': entries, 'totals': calculate_rent_roll_totals(entries)}), 200


@reports_bp.route('/reports/monthly-payments', methods=['GET'])
def monthly_payments():
    org_id = request.args.get('organization_id')
    year = request.args.get('year')
    if not all([org_id, year]):
        return jsonify({'error': 'organization_id and year are required'}), 400
    try:
        org_id = int(org_id)
        year = int(year)
    except (ValueError, TypeError):
        return jsonify({'error': 'organization_id and year must be integers'}), 400
    if year < 1 or year > 9998:
        return jsonify({'error': 'Year is out of range'}), 400
    return jsonify(get_monthly_payments(db.session, org_id, year)), 200


@reports_bp.route('/reports/upcoming-payments', methods=['GET'])
def upcoming_payments():
    try:
        org_id = _organization_id()
        as_of = _as_of()
        days_ahead = request.args.get('days_ahead', type=int)
    except ValueError:
        return jsonify({'error': 'Invalid organization_id or as_of. Use an integer and YYYY-MM-DD'}), 400
    if org_id is None:
        return jsonify({'error': 'organization_id is required'}), 400
    if days_ahead is not None and days_ahead < 0:
        return jsonify({'error': 'days_ahead must not be negative'}), 400
    return jsonify(get_upcoming_payments(db.session, org_id, as_of, days_ahead)), 200


@reports_bp.route('/reports/overdue-payments', methods=['GET'])
def overdue_payments():
    try:
        org_id = _organization_id()
        as_of = _as_of()
    except ValueError:
        return jsonify({'error': 'Invalid organization_id or as_of. Use an integer and YYYY-MM-DD'}), 400
    if org_id is None:
        return jsonify({'error': 'organization_id is required'}), 400
    return jsonify(get_overdue_payments(db.session, org_id, as_of)), 200
