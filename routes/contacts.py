from flask import Blueprint, request, Response, jsonify, current_app
from flask_login import login_required
from models import db, Contact, ContactFile, Label, Location
from services import contact_service
from services import supabase_storage
from services.exceptions import serialize_db_error
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from utils import normalize_phone, parse_id
from .decorators import json_body

contacts_bp = Blueprint('contacts', __name__, url_prefix='/api/contacts')


def _label_filter():
    """Label ids from ``?label=1&label=2`` or ``?label=1,2``."""
    label_ids = []
    for value in request.args.getlist('label'):
        label_ids.extend(parse_id(part) for part in value.split(',') if parse_id(part))
    return label_ids


def _filters():
    return {
        'search': request.args.get('q', '').strip() or None,
        'location_id': request.args.get('location_id', 'all').strip(),
        'status': request.args.get('status', 'all').strip(),
        'label_ids': _label_filter(),
    }


@contacts_bp.route('')
@login_required
def list_contacts():
    filters = _filters()
    location_id = filters['location_id']
    if location_id != 'all' and parse_id(location_id) is None:
        return jsonify({'error': 'invalid_location_id'}), 400

    try:
        page_index = int(request.args.get('page', 0))
        page_size = int(request.args.get('page_size', 100))
    except ValueError:
        return jsonify({'error': 'invalid_pagination'}), 400

    contacts, total = contact_service.list_contacts(
        sort_key=request.args.get('sort', 'created_at'),
        sort_dir=request.args.get('dir', 'desc'),
        page_index=page_index,
        page_size=page_size,
        **filters
    )

    return jsonify({
        'contacts': [contact_service.contact_to_dict(c) for c in contacts],
        'total': total,
        'page': max(0, page_index),
    })


@contacts_bp.route('/stats')
@login_required
def contact_stats():
    return jsonify(contact_service.contact_stats())


@contacts_bp.route('/export')
@login_required
def export_contacts():
    filters = _filters()
    if filters['location_id'] != 'all' and parse_id(filters['location_id']) is None:
        return jsonify({'error': 'invalid_location_id'}), 400

    csv_text = contact_service.export_contacts_csv(**filters)
    filename = f"contacts_{datetime.utcnow().strftime('%Y-%m-%d')}.csv"

    return Response(
        csv_text,
        mimetype='text/csv',
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-type": "text/csv; charset=utf-8"
        }
    )


@contacts_bp.route('/<int:contact_id>')
@login_required
def get_contact(contact_id):
    contact = db.get_or_404(Contact, contact_id)
    return jsonify({'contact': contact_service.contact_to_dict(contact)})


@contacts_bp.route('', methods=['POST'])
@login_required
def create_contact():
    """Manual entry: upsert by phone number, then attach labels."""
    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    phone_raw = (data.get('phone_raw') or '').strip()
    if not phone_raw:
        return jsonify({'error': 'missing_phone'}), 400

    location_id = data.get('location_id')
    if not location_id:
        return jsonify({'error': 'missing_location'}), 400

    phone_e164 = normalize_phone(phone_raw, current_app.config['DEFAULT_COUNTRY_CODE'])
    if not phone_e164:
        return jsonify({'error': 'invalid_phone'}), 400

    location_id = parse_id(location_id)
    if location_id is None:
        return jsonify({'error': 'invalid_location_id'}), 400
    if db.session.get(Location, location_id) is None:
        return jsonify({'error': 'location_not_found'}), 400

    values = {
        'phone_e164': phone_e164,
        'phone_raw': phone_raw,
        'location_id': location_id,
    }
    name = (data.get('name') or '').strip()
    if name:
        values['name'] = name

    try:
        contact_service.upsert_contact(values)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Contact create failed for {phone_e164}: {e}")
        return jsonify({'error': 'create_failed', 'details': serialize_db_error(e)}), 500

    contact_id = contact_service.find_contact_id(phone_e164)

    labels = [str(label).strip() for label in data.get('labels') or [] if str(label).strip()]
    if labels:
        label_map = contact_service.load_label_map()
        for label_name in labels:
            try:
                label_id = contact_service.resolve_label_id(label_name, label_map)
                contact_service.link_label(contact_id, label_id)
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                label_map.pop(label_name.lower(), None)
                current_app.logger.warning(f"Skipped label {label_name!r} for contact {contact_id}: {e}")

    return jsonify({'ok': True, 'id': contact_id}), 201


@contacts_bp.route('/<int:contact_id>', methods=['PATCH'])
@login_required
def update_status(contact_id):
    contact = db.get_or_404(Contact, contact_id)

    data = json_body()
    status = data.get('status') if data else None
    if status not in Contact.STATUSES:
        return jsonify({'error': 'invalid_status'}), 400

    contact.status = status
    db.session.commit()
    return jsonify({'ok': True})


@contacts_bp.route('/<int:contact_id>', methods=['DELETE'])
@login_required
def delete_contact(contact_id):
    contact = db.get_or_404(Contact, contact_id)

    try:
        db.session.delete(contact)
        db.session.commit()
        return jsonify({'ok': True})
    except SQLAlchemyError as e:
        db.session.rollback()
        return jsonify({'error': 'delete_failed', 'details': serialize_db_error(e)}), 500


@contacts_bp.route('/<int:contact_id>/labels', methods=['POST'])
@login_required
def add_label(contact_id):
    db.get_or_404(Contact, contact_id)

    data = json_body()
    label_id = data.get('label_id') if data else None
    if not label_id:
        return jsonify({'error': 'missing_label_id'}), 400
    label_id = parse_id(label_id)
    if label_id is None:
        return jsonify({'error': 'invalid_label_id'}), 400
    if db.session.get(Label, label_id) is None:
        return jsonify({'error': 'label_not_found'}), 404

    contact_service.link_label(contact_id, label_id)
    db.session.commit()
    return jsonify({'ok': True})


@contacts_bp.route('/<int:contact_id>/labels', methods=['DELETE'])
@login_required
def remove_label(contact_id):
    label_id = parse_id(request.args.get('label_id'))
    if label_id is None:
        return jsonify({'error': 'missing_label_id'}), 400

    contact_service.unlink_label(contact_id, label_id)
    db.session.commit()
    return jsonify({'ok': True})


# =============================================================================
# CONTACT FILES
# =============================================================================

@contacts_bp.route('/<int:contact_id>/files')
@login_required
def list_files(contact_id):
    contact = db.get_or_404(Contact, contact_id)
    files = contact.files.order_by(ContactFile.created_at.desc()).all()
    return jsonify({'ok': True, 'files': [f.to_dict() for f in files]})


@contacts_bp.route('/<int:contact_id>/files', methods=['POST'])
@login_required
def upload_file(contact_id):
    db.get_or_404(Contact, contact_id)

    if 'file' not in request.files:
        return jsonify({'error': 'no_file'}), 400
    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'no_file'}), 400

    file_data = file.read()
    try:
        upload = supabase_storage.upload_contact_file(contact_id, file_data, file.filename, file.mimetype)
    except Exception as e:
        current_app.logger.error(f"Upload failed for contact {contact_id}: {e}")
        return jsonify({'error': 'upload_failed', 'details': str(e)}), 502

    record = ContactFile(
        contact_id=contact_id,
        file_name=file.filename,
        file_type=file.mimetype,
        file_size=upload['size'],
        file_path=upload['path'],
        note=(request.form.get('note') or '').strip() or None,
    )
    db.session.add(record)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        supabase_storage.delete_contact_file(upload['path'])
        return jsonify({'error': 'file_insert_failed', 'details': serialize_db_error(e)}), 500

    return jsonify({'ok': True, 'file': record.to_dict()}), 201


@contacts_bp.route('/<int:contact_id>/files/<int:file_id>/url')
@login_required
def file_url(contact_id, file_id):
    record = ContactFile.query.filter_by(id=file_id, contact_id=contact_id).first_or_404()
    try:
        url = supabase_storage.get_contact_file_url(record.file_path)
    except Exception as e:
        current_app.logger.error(f"Signed URL failed for {record.file_path}: {e}")
        return jsonify({'error': 'signed_url_failed', 'details': str(e)}), 502
    return jsonify({'url': url})
