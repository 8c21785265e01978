from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required
from models import db, Artist, ArtistAvailability, Location
from utils import parse_id, parse_optional_datetime, to_naive_utc
from .decorators import json_body

availability_bp = Blueprint('availability', __name__, url_prefix='/api/availability')


def _parse_time(value):
    """Client timestamps -> naive UTC; naive input is studio local time."""
    if not value:
        return None
    return to_naive_utc(parse_optional_datetime(str(value), current_app.config['TIMEZONE']))


@availability_bp.route('')
@login_required
def list_slots():
    """Slots overlapping [start, end)."""
    start = _parse_time(request.args.get('start'))
    end = _parse_time(request.args.get('end'))
    if start is None or end is None:
        return jsonify({'error': 'missing_start_or_end'}), 400

    query = ArtistAvailability.query.filter(
        ArtistAvailability.start_at < end,
        ArtistAvailability.end_at > start,
    )

    location_id = request.args.get('location_id', 'all')
    if location_id != 'all':
        location_id = parse_id(location_id)
        if location_id is None:
            return jsonify({'error': 'invalid_location_id'}), 400
        query = query.filter(ArtistAvailability.location_id == location_id)

    slots = query.order_by(ArtistAvailability.start_at.asc()).all()
    return jsonify({'slots': [slot.to_dict() for slot in slots]})


@availability_bp.route('', methods=['POST'])
@login_required
def create_slot():
    data = json_body() or {}

    artist_id = data.get('artist_id')
    location_id = data.get('location_id')
    start_at = _parse_time(data.get('start_at'))
    end_at = _parse_time(data.get('end_at'))

    if not artist_id or not location_id or start_at is None or end_at is None:
        return jsonify({'error': 'missing_required_fields'}), 400
    if end_at <= start_at:
        return jsonify({'error': 'end_before_start'}), 400

    artist_id = parse_id(artist_id)
    location_id = parse_id(location_id)
    if artist_id is None:
        return jsonify({'error': 'invalid_artist_id'}), 400
    if location_id is None:
        return jsonify({'error': 'invalid_location_id'}), 400

    if db.session.get(Artist, artist_id) is None:
        return jsonify({'error': 'artist_not_found'}), 404
    if db.session.get(Location, location_id) is None:
        return jsonify({'error': 'location_not_found'}), 404

    slot = ArtistAvailability(
        artist_id=artist_id,
        location_id=location_id,
        start_at=start_at,
        end_at=end_at,
        note=(data.get('note') or '').strip() or None,
    )
    db.session.add(slot)
    db.session.commit()
    return jsonify({'ok': True, 'slot': slot.to_dict()}), 201


@availability_bp.route('/<int:slot_id>', methods=['PATCH'])
@login_required
def update_slot(slot_id):
    slot = db.get_or_404(ArtistAvailability, slot_id)
    data = json_body() or {}

    if not {'artist_id', 'location_id', 'start_at', 'end_at', 'note'} & set(data):
        return jsonify({'error': 'no_updates'}), 400

    if 'artist_id' in data:
        artist_id = parse_id(data['artist_id'])
        if artist_id is None:
            return jsonify({'error': 'invalid_artist_id'}), 400
        if db.session.get(Artist, artist_id) is None:
            return jsonify({'error': 'artist_not_found'}), 404
        slot.artist_id = artist_id

    if 'location_id' in data:
        location_id = parse_id(data['location_id'])
        if location_id is None:
            return jsonify({'error': 'invalid_location_id'}), 400
        if db.session.get(Location, location_id) is None:
            return jsonify({'error': 'location_not_found'}), 404
        slot.location_id = location_id

    for key in ('start_at', 'end_at'):
        if key in data:
            parsed = _parse_time(data[key])
            if parsed is None:
                return jsonify({'error': f'invalid_{key}'}), 400
            setattr(slot, key, parsed)

    if 'note' in data:
        slot.note = (data['note'] or '').strip() or None

    # Checked against the merged values, not just the submitted ones
    if slot.end_at <= slot.start_at:
        db.session.rollback()
        return jsonify({'error': 'end_before_start'}), 400

    db.session.commit()
    return jsonify({'ok': True, 'slot': slot.to_dict()})


@availability_bp.route('/<int:slot_id>', methods=['DELETE'])
@login_required
def delete_slot(slot_id):
    slot = db.get_or_404(ArtistAvailability, slot_id)
    db.session.delete(slot)
    db.session.commit()
    return jsonify({'ok': True})
