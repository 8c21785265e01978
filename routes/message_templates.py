from flask import Blueprint, jsonify
from flask_login import login_required
from models import db, MessageTemplate
from .decorators import json_body

templates_bp = Blueprint('message_templates', __name__, url_prefix='/api/templates')


@templates_bp.route('')
@login_required
def list_templates():
    templates = MessageTemplate.query.order_by(MessageTemplate.created_at.desc(),
                                               MessageTemplate.id.desc()).all()
    return jsonify({'templates': [t.to_dict() for t in templates]})


@templates_bp.route('', methods=['POST'])
@login_required
def create_template():
    data = json_body() or {}
    title = (data.get('title') or '').strip()
    body = (data.get('body') or '').strip()
    if not title or not body:
        return jsonify({'error': 'missing_fields'}), 400

    template = MessageTemplate(title=title, body=body)
    db.session.add(template)
    db.session.commit()
    return jsonify({'template': template.to_dict()}), 201


@templates_bp.route('/<int:template_id>', methods=['PATCH'])
@login_required
def update_template(template_id):
    template = db.get_or_404(MessageTemplate, template_id)

    data = json_body()
    if data is None:
        return jsonify({'error': 'invalid_json'}), 400

    updated = False
    for key in ('title', 'body'):
        if isinstance(data.get(key), str) and data[key].strip():
            setattr(template, key, data[key].strip())
            updated = True
    if isinstance(data.get('is_archived'), bool):
        template.is_archived = data['is_archived']
        updated = True

    if not updated:
        return jsonify({'error': 'no_updates'}), 400

    db.session.commit()
    return jsonify({'template': template.to_dict()})


@templates_bp.route('/<int:template_id>', methods=['DELETE'])
@login_required
def delete_template(template_id):
    template = db.get_or_404(MessageTemplate, template_id)
    db.session.delete(template)
    db.session.commit()
    return jsonify({'ok': True})
