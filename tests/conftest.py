# tests/conftest.py

import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from flask import g

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from models import db, Location, Profile

STAFF_ID = '11111111-1111-1111-1111-111111111111'
ADMIN_ID = '22222222-2222-2222-2222-222222222222'

# Shaped like a JWT so the bearer header is accepted
STAFF_TOKEN = 'staffheader0.staffpayload0.staffsignature'
ADMIN_TOKEN = 'adminheader0.adminpayload0.adminsignature'

TOKENS = {
    STAFF_TOKEN: {'id': STAFF_ID, 'email': 'studio@local'},
    ADMIN_TOKEN: {'id': ADMIN_ID, 'email': 'admin@local'},
}


@pytest.fixture(scope="function")
def app():
    """Create a test application backed by an in-memory SQLite database."""
    flask_app = create_app('config.TestingConfig')

    @flask_app.before_request
    def forget_previous_user():
        # Requests share the fixture's app context, and with it flask.g
        g.pop('_login_user', None)

    with flask_app.app_context():
        db.create_all()
        db.session.add(Profile(id=ADMIN_ID, role=Profile.ROLE_ADMIN))
        db.session.commit()

        yield flask_app

        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def fake_supabase_auth():
    """Resolve the test tokens without talking to Supabase."""
    with patch('services.auth_service.fetch_auth_user', side_effect=lambda token: TOKENS.get(token)) as fake:
        yield fake


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def staff_headers():
    return {'Authorization': f'Bearer {STAFF_TOKEN}'}


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}


@pytest.fixture
def location(app):
    location = Location(name='Berlin')
    db.session.add(location)
    db.session.commit()
    return location
