from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from sqlalchemy import func
from models import db, Location
from .decorators import admin_required, json_body

locations_bp = Blueprint('locations', __name__, url_prefix='/api/locations')


@locations_bp.route('')
@login_required
def list_locations():
    """Admin-only locations (e.g. the import fallback) are hidden from staff."""
    query = Location.query
    if not current_user.is_admin:
        query = query.filter(Location.is_admin_only.is_(False))
    locations = query.order_by(Location.name.asc()).all()
    return jsonify({'locations': [location.to_dict() for location in locations]})


@locations_bp.route('', methods=['POST'])
@admin_required
def create_location():
    data = json_body()
    name = (data.get('name') or '').strip() if data else ''
    if not name:
        return jsonify({'error': 'missing_name'}), 400

    if Location.query.filter(func.lower(Location.name) == name.lower()).first():
        return jsonify({'error': 'location_exists'}), 409

    location = Location(name=name, is_admin_only=bool(data.get('is_admin_only', False)))
    db.session.add(location)
    db.session.commit()
    return jsonify({'ok': True, 'location': location.to_dict()}), 201
