from datetime import datetime
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from models import db
from services.exceptions import serialize_db_error

main_bp = Blueprint('main', __name__, url_prefix='/api')


@main_bp.route('/health')
def health():
    """Database round trip; no authentication."""
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Health check failed: {e}")
        return jsonify({'ok': False, 'error': serialize_db_error(e)}), 503

    return jsonify({'ok': True, 'time': datetime.utcnow().isoformat()})
