from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from models import db, Label
from services.exceptions import is_unique_violation, serialize_db_error
from .decorators import admin_required, json_body

labels_bp = Blueprint('labels', __name__, url_prefix='/api/labels')


def _name_taken(name, exclude_id=None):
    query = Label.query.filter(func.lower(Label.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Label.id != exclude_id)
    return query.first() is not None


@labels_bp.route('')
@login_required
def list_labels():
    query = Label.query
    if request.args.get('include_archived') != 'true':
        query = query.filter(Label.is_archived.is_(False))
    labels = query.order_by(Label.sort_order.asc(), Label.name.asc()).all()
    return jsonify({'labels': [label.to_dict() for label in labels]})


@labels_bp.route('', methods=['POST'])
@admin_required
def create_label():
    data = json_body()
    name = (data.get('name') or '').strip() if data else ''
    if not name:
        return jsonify({'error': 'missing_name'}), 400

    try:
        sort_order = int(data.get('sort_order', 1000))
    except (TypeError, ValueError):
        return jsonify({'error': 'invalid_sort_order'}), 400

    if _name_taken(name):
        return jsonify({'error': 'label_exists'}), 409

    label = Label(name=name, sort_order=sort_order)
    db.session.add(label)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if is_unique_violation(e):
            return jsonify({'error': 'label_exists'}), 409
        return jsonify({'error': 'label_insert_failed', 'details': serialize_db_error(e)}), 500

    return jsonify({'ok': True, 'label': label.to_dict()}), 201


@labels_bp.route('/<int:label_id>', methods=['PATCH'])
@login_required
def update_label(label_id):
    label = db.get_or_404(Label, label_id)
    data = json_body() or {}

    updated = False
    if isinstance(data.get('name'), str) and data['name'].strip():
        name = data['name'].strip()
        if _name_taken(name, exclude_id=label.id):
            return jsonify({'error': 'label_exists'}), 409
        label.name = name
        updated = True

    if 'sort_order' in data:
        try:
            label.sort_order = int(data['sort_order'])
            updated = True
        except (TypeError, ValueError):
            pass

    if isinstance(data.get('is_archived'), bool):
        label.is_archived = data['is_archived']
        updated = True

    if not updated:
        return jsonify({'error': 'no_updates'}), 400

    db.session.commit()
    return jsonify({'ok': True, 'label': label.to_dict()})
