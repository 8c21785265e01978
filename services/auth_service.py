# services/auth_service.py
"""
Authentication glue for the hosted Supabase auth provider.

Requests authenticate with a Supabase access token, either as an
``Authorization: Bearer`` header or in the access-token cookie set by
the login endpoint. Roles come from the local ``profiles`` table.
"""

import logging

from flask import current_app
from flask_login import UserMixin
from supabase import AuthError

from models import db, Profile
from services.exceptions import ValidationError
from services.supabase_storage import get_supabase_client

logger = logging.getLogger(__name__)

AUTH_MODE_BEARER = 'bearer'
AUTH_MODE_COOKIE = 'cookie'


class AuthUser(UserMixin):
    """The authenticated caller of the current request."""

    def __init__(self, id, email=None, role=Profile.ROLE_STAFF, location_id=None, mode=None):
        self.id = id
        self.email = email
        self.role = role
        self.location_id = location_id
        self.mode = mode

    @property
    def is_admin(self):
        return self.role == Profile.ROLE_ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role,
            'location_id': self.location_id,
            'mode': self.mode,
        }


def get_bearer_token(request):
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    header = request.headers.get('Authorization', '')
    parts = header.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1].strip() or None


def looks_like_jwt(token):
    """Only real JWT access tokens are accepted as bearer tokens."""
    parts = token.split('.')
    if len(parts) != 3:
        return False
    return all(len(part) > 10 for part in parts)


def get_access_token(request):
    """
    Find the caller's access token.

    Returns:
        tuple: (token, mode) or (None, None)
    """
    token = get_bearer_token(request)
    if token and looks_like_jwt(token):
        return token, AUTH_MODE_BEARER

    cookie = request.cookies.get(current_app.config['AUTH_COOKIE_NAME'])
    if cookie:
        return cookie, AUTH_MODE_COOKIE

    return None, None


def fetch_auth_user(token):
    """
    Ask Supabase who owns the token.

    Returns:
        dict with 'id' and 'email', or None for invalid/expired tokens
    """
    client = get_supabase_client()
    try:
        response = client.auth.get_user(token)
    except AuthError as e:
        logger.info(f"Rejected access token: {e}")
        return None

    user = getattr(response, 'user', None)
    if user is None:
        return None
    return {'id': str(user.id), 'email': user.email}


def load_user_from_request(request):
    """Flask-Login request loader: resolve the caller from token + profile."""
    token, mode = get_access_token(request)
    if not token:
        return None

    info = fetch_auth_user(token)
    if not info:
        return None

    profile = db.session.get(Profile, info['id'])
    return AuthUser(
        id=info['id'],
        email=info['email'],
        role=profile.role if profile else Profile.ROLE_STAFF,
        location_id=profile.location_id if profile else None,
        mode=mode,
    )


def sign_in(email, password):
    """
    Sign in with email and password against Supabase.

    Returns:
        tuple: (access_token, user dict)

    Raises:
        ValidationError: on wrong credentials
    """
    client = get_supabase_client()
    try:
        response = client.auth.sign_in_with_password({'email': email, 'password': password})
    except AuthError as e:
        logger.info(f"Login failed for {email}: {e}")
        raise ValidationError('invalid_credentials', str(e))

    if response.session is None:
        raise ValidationError('invalid_credentials')

    return response.session.access_token, {'id': str(response.user.id), 'email': response.user.email}


def ensure_profile(user_id):
    """Return the caller's profile, creating a staff profile on first use."""
    profile = db.session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, role=Profile.ROLE_STAFF, location_id=None)
        db.session.add(profile)
        db.session.commit()
    return profile
