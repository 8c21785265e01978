import logging

from flask import Flask, jsonify
from flask_login import LoginManager
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException
from models import db
from routes import register_blueprints
from services.auth_service import load_user_from_request
from services.exceptions import ValidationError


def configure_logging(app):
    """Root logging for the service modules; Flask's own logger follows the same level."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app.logger.setLevel(level)


def create_app(config_class='config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate = Migrate(app, db)

    # API only: every request brings its own access token
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'not_authenticated'}), 401

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({'error': e.code, 'field': e.field}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.name.lower().replace(' ', '_')}), e.code

    register_blueprints(app)

    return app

app = create_app()

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5005, debug=True)
