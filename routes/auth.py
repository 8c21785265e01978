from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user
from models import db, Location, Profile
from services import auth_service
from services.exceptions import ValidationError
from utils import parse_id
from .decorators import json_body

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


@auth_bp.route('/auth/login', methods=['POST'])
def login():
    """Email/password sign in; the access token is returned and set as cookie."""
    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'missing_credentials'}), 400

    try:
        token, user = auth_service.sign_in(email, password)
    except ValidationError as e:
        return jsonify({'error': e.code}), 401

    auth_service.ensure_profile(user['id'])
    current_app.logger.info(f"User {email} logged in")

    response = jsonify({'ok': True, 'user': user, 'access_token': token})
    response.set_cookie(
        current_app.config['AUTH_COOKIE_NAME'],
        token,
        httponly=True,
        samesite='Lax',
        secure=not current_app.config.get('TESTING', False),
        max_age=int(current_app.config['PERMANENT_SESSION_LIFETIME'].total_seconds()),
    )
    return response


@auth_bp.route('/auth/logout', methods=['POST'])
def logout():
    response = jsonify({'ok': True})
    response.delete_cookie(current_app.config['AUTH_COOKIE_NAME'])
    return response


@auth_bp.route('/whoami')
def whoami():
    if not current_user.is_authenticated:
        return jsonify({'authenticated': False, 'email': None, 'userId': None})

    return jsonify({
        'authenticated': True,
        'email': current_user.email,
        'userId': current_user.id,
        'role': current_user.role,
        'mode': current_user.mode,
    })


@auth_bp.route('/profile')
@login_required
def get_profile():
    profile = db.session.get(Profile, current_user.id)
    return jsonify({'profile': profile.to_dict() if profile else None})


@auth_bp.route('/profile', methods=['POST'])
@login_required
def create_profile():
    """Create the caller's staff profile if it does not exist yet."""
    profile = auth_service.ensure_profile(current_user.id)
    return jsonify({'profile': profile.to_dict()})


@auth_bp.route('/profile', methods=['PATCH'])
@login_required
def update_profile():
    data = json_body()
    location_id = data.get('location_id') if data else None
    if not location_id:
        return jsonify({'error': 'missing_location_id'}), 400

    location_id = parse_id(location_id)
    if location_id is None:
        return jsonify({'error': 'invalid_location_id'}), 400
    if db.session.get(Location, location_id) is None:
        return jsonify({'error': 'location_not_found'}), 404

    profile = auth_service.ensure_profile(current_user.id)
    profile.location_id = location_id
    db.session.commit()
    return jsonify({'profile': profile.to_dict()})
