# routes/imports.py
"""
Spreadsheet import API: preview (which rows already exist) and confirm.
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from services.exceptions import LookupTableError, SpreadsheetError
from services.import_service import (
    ImportConfirmer,
    NormalizedContact,
    find_existing_phones,
    map_rows,
    reject_item,
)
from services.spreadsheet import is_supported_file, read_rows
from .decorators import json_body

imports_bp = Blueprint('imports', __name__, url_prefix='/api/import')


@imports_bp.route('/preview', methods=['POST'])
@login_required
def preview():
    """
    Either check a list of phones (JSON ``{phones}``) or parse an uploaded
    CSV/XLSX file (multipart ``file``) and report what an import would do.
    """
    if 'file' in request.files:
        return _preview_file(request.files['file'])

    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    phones = data.get('phones')
    if not isinstance(phones, list):
        return jsonify({'error': 'invalid_phones'}), 400

    phones = [str(phone) for phone in phones if phone]
    return jsonify({'existing': find_existing_phones(phones)})


def _preview_file(file):
    if not file.filename:
        return jsonify({'error': 'no_file_selected'}), 400
    if not is_supported_file(file.filename):
        return jsonify({'error': 'unsupported_file_type'}), 400

    try:
        rows = read_rows(file.read(), file.filename)
    except SpreadsheetError as e:
        current_app.logger.warning(f"Import preview failed for {file.filename}: {e}")
        return jsonify({'error': 'invalid_file', 'message': str(e), 'details': e.details}), 400

    contacts, issues = map_rows(rows)
    existing = set(find_existing_phones([contact.phone_e164 for contact in contacts]))

    return jsonify({
        'existing': sorted(existing),
        'contacts': [contact.to_dict() for contact in contacts],
        'issues': [issue.to_dict() for issue in issues],
        'total_rows': len(rows),
        'new_count': sum(1 for contact in contacts if contact.phone_e164 not in existing),
        'existing_count': sum(1 for contact in contacts if contact.phone_e164 in existing),
    })


@imports_bp.route('/confirm', methods=['POST'])
@login_required
def confirm():
    """Import one batch of previewed contacts."""
    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    items = data.get('contacts')
    if not isinstance(items, list):
        return jsonify({'error': 'invalid_contacts'}), 400

    max_batch = current_app.config['IMPORT_MAX_BATCH']
    if len(items) > max_batch:
        return jsonify({'error': 'batch_too_large', 'max': max_batch}), 400

    contacts = []
    rejected = []
    for item in items:
        contact = NormalizedContact.from_dict(item) if isinstance(item, dict) else None
        if contact is None:
            rejected.append(reject_item(item))
        else:
            contacts.append(contact)

    confirmer = ImportConfirmer(fallback_location=current_app.config['IMPORT_FALLBACK_LOCATION'])
    try:
        result = confirmer.confirm(contacts, rejected=rejected)
    except LookupTableError as e:
        current_app.logger.error(f"Import aborted, lookup tables unavailable: {e}")
        return jsonify({'error': 'lookup_failed', 'message': str(e)}), 500

    return jsonify(result.to_dict())
