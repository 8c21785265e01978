from flask import Blueprint, jsonify
from flask_login import login_required
from sqlalchemy.exc import IntegrityError
from models import db, Artist
from services.exceptions import is_unique_violation, serialize_db_error
from .decorators import json_body

artists_bp = Blueprint('artists', __name__, url_prefix='/api/artists')

MIN_NAME_LENGTH = 2


def _valid_name(value):
    name = (value or '').strip() if isinstance(value, str) else ''
    return name if len(name) >= MIN_NAME_LENGTH else None


def _commit_or_error(action):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if is_unique_violation(e):
            return jsonify({'error': 'artist_exists'}), 409
        return jsonify({'error': f'artist_{action}_failed', 'details': serialize_db_error(e)}), 500
    return None


@artists_bp.route('')
@login_required
def list_artists():
    artists = Artist.query.order_by(Artist.is_active.desc(), Artist.name.asc()).all()
    return jsonify({'artists': [artist.to_dict() for artist in artists]})


@artists_bp.route('', methods=['POST'])
@login_required
def create_artist():
    data = json_body() or {}
    name = _valid_name(data.get('name'))
    if not name:
        return jsonify({'error': 'invalid_name'}), 400

    artist = Artist(name=name)
    db.session.add(artist)
    error = _commit_or_error('insert')
    if error:
        return error
    return jsonify({'artist': artist.to_dict()}), 201


@artists_bp.route('/<int:artist_id>', methods=['PATCH'])
@login_required
def update_artist(artist_id):
    artist = db.get_or_404(Artist, artist_id)
    data = json_body() or {}

    if not {'name', 'is_active'} & set(data):
        return jsonify({'error': 'no_updates'}), 400

    if 'name' in data:
        name = _valid_name(data['name'])
        if not name:
            return jsonify({'error': 'invalid_name'}), 400
        artist.name = name

    if 'is_active' in data:
        artist.is_active = bool(data['is_active'])

    error = _commit_or_error('update')
    if error:
        return error
    return jsonify({'ok': True, 'artist': artist.to_dict()})
