#!/usr/bin/env python3
"""
Database Management Script
Creates, seeds, migrates and backs up the studio database.
"""

import os
import shutil
import sys
from datetime import datetime
from flask import Flask
from flask_migrate import Migrate, init, migrate, upgrade, current, history
from sqlalchemy import func
from config import Config
from models import db, Label, Location, Profile

STARTER_LABELS = [
    {"name": "Rückruf", "sort_order": 10},
    {"name": "Cover-Up", "sort_order": 20},
    {"name": "Fineline", "sort_order": 30},
    {"name": "Stammkunde", "sort_order": 40},
]


def create_app(config_class=Config):
    """Create Flask application with specified config."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize database
    db.init_app(app)

    # Initialize Flask-Migrate
    migrate_obj = Migrate(app, db)

    return app, migrate_obj


def _sqlite_file(db_uri):
    if db_uri.startswith('sqlite:///'):
        return db_uri.replace('sqlite:///', '')
    return None


def init_database(app=None):
    """Create all tables."""
    if app is None:
        app, _ = create_app()

    with app.app_context():
        print(f"Initializing database: {app.config['SQLALCHEMY_DATABASE_URI']}")

        db_file = _sqlite_file(app.config['SQLALCHEMY_DATABASE_URI'])
        if db_file and os.path.dirname(db_file):
            os.makedirs(os.path.dirname(db_file), exist_ok=True)

        db.create_all()
        print("Database tables created successfully!")


def seed_database(app=None):
    """
    Add the import fallback location and the starter labels.

    Safe to run repeatedly; existing names (any case) are left alone.
    """
    if app is None:
        app, _ = create_app()

    with app.app_context():
        fallback = app.config['IMPORT_FALLBACK_LOCATION']
        if not Location.query.filter(func.lower(Location.name) == fallback.lower()).first():
            print(f"Adding fallback location: {fallback}")
            db.session.add(Location(name=fallback, is_admin_only=True))

        for label_data in STARTER_LABELS:
            if Label.query.filter(func.lower(Label.name) == label_data['name'].lower()).first():
                continue
            print(f"Adding label: {label_data['name']}")
            db.session.add(Label(**label_data))

        db.session.commit()
        print("Seed data in place!")


def promote_admin(user_id, app=None):
    """Give an auth user the admin role, creating the profile if needed."""
    if app is None:
        app, _ = create_app()

    with app.app_context():
        profile = db.session.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id)
            db.session.add(profile)
        profile.role = Profile.ROLE_ADMIN
        db.session.commit()
        print(f"User {user_id} is now an admin")


def setup_migrations():
    """Set up Flask-Migrate for the current database."""
    app, migrate_obj = create_app()

    with app.app_context():
        print(f"Setting up migrations for: {app.config['SQLALCHEMY_DATABASE_URI']}")
        init()
        print("Migration repository initialized!")


def create_migration(message="auto migration"):
    """Create a new migration."""
    app, migrate_obj = create_app()

    with app.app_context():
        print(f"Creating migration for: {app.config['SQLALCHEMY_DATABASE_URI']}")
        migrate(message=message)
        print(f"Migration created with message: {message}")


def upgrade_database():
    """Upgrade database to latest migration."""
    app, migrate_obj = create_app()

    with app.app_context():
        print(f"Upgrading database: {app.config['SQLALCHEMY_DATABASE_URI']}")
        upgrade()
        print("Database upgraded successfully!")


def show_migration_status():
    """Show current migration status."""
    app, migrate_obj = create_app()

    with app.app_context():
        print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
        print("\nCurrent revision:")
        current()
        print("\nMigration history:")
        history()


def backup_database(app=None):
    """
    Copy the SQLite database file next to itself with a timestamp suffix.

    Returns:
        Path of the backup, or None when nothing was copied
    """
    if app is None:
        app, _ = create_app()

    db_file = _sqlite_file(app.config['SQLALCHEMY_DATABASE_URI'])
    if db_file is None:
        print("Backup only supported for SQLite databases")
        return None

    if not os.path.exists(db_file):
        print("Database file not found!")
        return None

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    backup_file = f"{db_file}.backup_{timestamp}"

    shutil.copy2(db_file, backup_file)
    print(f"Database backed up to: {backup_file}")
    return backup_file


def main():
    if len(sys.argv) < 2:
        print("Usage: python manage_db.py <command>")
        print("Commands:")
        print("  init        - Create all tables")
        print("  seed        - Add fallback location and starter labels")
        print("  promote ID  - Make an auth user an admin")
        print("  setup       - Set up migration repository")
        print("  migrate     - Create new migration")
        print("  upgrade     - Upgrade database to latest migration")
        print("  status      - Show migration status")
        print("  backup      - Create database backup")
        return

    command = sys.argv[1]

    try:
        if command == 'init':
            init_database()
        elif command == 'seed':
            seed_database()
        elif command == 'promote':
            if len(sys.argv) < 3:
                print("Usage: python manage_db.py promote <user_id>")
                sys.exit(1)
            promote_admin(sys.argv[2])
        elif command == 'setup':
            setup_migrations()
        elif command == 'migrate':
            message = sys.argv[2] if len(sys.argv) > 2 else "auto migration"
            create_migration(message)
        elif command == 'upgrade':
            upgrade_database()
        elif command == 'status':
            show_migration_status()
        elif command == 'backup':
            backup_database()
        else:
            print(f"Unknown command: {command}")
            sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
