from .auth import auth_bp
from .contacts import contacts_bp
from .imports import imports_bp
from .labels import labels_bp
from .locations import locations_bp
from .artists import artists_bp
from .availability import availability_bp
from .message_templates import templates_bp
from .payboard import payboard_bp
from .main import main_bp

def register_blueprints(app):
    app.register_blueprint(auth_bp)
    app.register_blueprint(contacts_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(labels_bp)
    app.register_blueprint(locations_bp)
    app.register_blueprint(artists_bp)
    app.register_blueprint(availability_bp)
    app.register_blueprint(templates_bp)
    app.register_blueprint(payboard_bp)
    app.register_blueprint(main_bp)
