from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError
from models import db
from services import payboard_service
from services.exceptions import ValidationError, serialize_db_error
from utils import parse_id
from .decorators import json_body

payboard_bp = Blueprint('payboard', __name__, url_prefix='/api/payboard')


def _location_arg():
    location_id = request.args.get('location_id', 'all').strip()
    if location_id != 'all' and parse_id(location_id) is None:
        raise ValidationError('invalid_location_id')
    return location_id


@payboard_bp.route('/jobs')
@login_required
def list_jobs():
    try:
        jobs = payboard_service.list_jobs(
            month=request.args.get('month', '').strip() or None,
            location_id=_location_arg(),
        )
    except ValidationError as e:
        return jsonify({'error': e.code}), 400
    return jsonify({'jobs': jobs})


@payboard_bp.route('/jobs', methods=['POST'])
@login_required
def create_job():
    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    try:
        job = payboard_service.create_job(data)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': e.code}), 400
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Job insert failed: {e}")
        return jsonify({'error': 'job_insert_failed', 'details': serialize_db_error(e)}), 500

    return jsonify({'job': job.to_dict()}), 201


@payboard_bp.route('/payments', methods=['POST'])
@login_required
def create_payment():
    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    try:
        payment = payboard_service.create_payment(data)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': e.code}), 400
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Payment insert failed: {e}")
        return jsonify({'error': 'payment_insert_failed', 'details': serialize_db_error(e)}), 500

    return jsonify({'payment': payment.to_dict()}), 201


@payboard_bp.route('/revenue')
@login_required
def revenue():
    try:
        totals = payboard_service.monthly_revenue(
            month=request.args.get('month', '').strip() or None,
            location_id=_location_arg(),
        )
    except ValidationError as e:
        return jsonify({'error': e.code}), 400
    return jsonify(totals)
