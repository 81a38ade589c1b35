from flask import Blueprint, request, jsonify
from ..services.revenue import (pm_revenue_by_property, pm_revenue_summary,
                                pm_revenue_by_month, pm_revenue_for_date_range)
from .. import db
from datetime import date

revenue_bp = Blueprint('revenue', __name__)


@revenue_bp.route('/managers/<int:manager_id>/revenue/properties', methods=['GET'])
def revenue_by_property(manager_id):
    return jsonify(pm_revenue_by_property(db.session, manager_id)), 200


@revenue_bp.route('/managers/<int:manager_id>/revenue/summary', methods=['GET'])
def revenue_summary(manager_id):
    return jsonify(pm_revenue_summary(db.session, manager_id)), 200


@revenue_bp.route('/managers/<int:manager_id>/revenue/monthly', methods=['GET'])
def revenue_by_month(manager_id):
    year = request.args.get('year')
    if not year:
        return jsonify({'error': 'year is required'}), 400
    try:
        year = int(year)
    except ValueError:
        return jsonify({'error': 'year must be an integer'}), 400
    if year < 1 or year > 9998:
        return jsonify({'error': 'Year is out of range'}), 400
    return jsonify(pm_revenue_by_month(db.session, manager_id, year)), 200


@revenue_bp.route('/managers/<int:manager_id>/revenue/range', methods=['GET'])
def revenue_for_range(manager_id):
    start_date = request.args.get('start_date')
    end_date = request.args.get('end_date')
    if not all([start_date, end_date]):
        return jsonify({'error': 'start_date and end_date are required'}), 400
    try:
        start_dt = date.fromisoformat(start_date)
        end_dt = date.fromisoformat(end_date)
    except ValueError:
        return jsonify({'error': 'Invalid date format. Use YYYY-MM-DD'}), 400
    if end_dt < start_dt:
        return jsonify({'error': 'End date must be on or after start date.'}), 400
    return jsonify(pm_revenue_for_date_range(db.session, manager_id, start_dt, end_dt)), 200
