import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


class Config:
    # Environment
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///studio_crm.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PERMANENT_SESSION_LIFETIME = timedelta(minutes=30)

    # Supabase (auth + file storage)
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY')
    AUTH_COOKIE_NAME = os.getenv('AUTH_COOKIE_NAME', 'sb-access-token')
    CONTACT_FILES_BUCKET = os.getenv('CONTACT_FILES_BUCKET', 'contact-files')

    # Studio defaults
    TIMEZONE = os.getenv('STUDIO_TIMEZONE', 'Europe/Berlin')
    DEFAULT_COUNTRY_CODE = os.getenv('DEFAULT_COUNTRY_CODE', '49')

    # Spreadsheet import
    IMPORT_FALLBACK_LOCATION = 'Unbekannt'
    IMPORT_CHUNK_SIZE = int(os.getenv('IMPORT_CHUNK_SIZE', 200))
    IMPORT_MAX_BATCH = int(os.getenv('IMPORT_MAX_BATCH', 1000))
    IMPORT_REQUEST_TIMEOUT = int(os.getenv('IMPORT_REQUEST_TIMEOUT', 60))
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024


class TestingConfig(Config):
    TESTING = True
    LOG_LEVEL = 'DEBUG'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test-secret-key-for-testing-only'
    SUPABASE_URL = 'http://supabase.test'
    SUPABASE_KEY = 'test-anon-key'
    IMPORT_MAX_BATCH = 50
