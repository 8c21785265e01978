# models.py
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

# Define the association table first, before the models
contact_labels = db.Table('contact_labels',
    db.Column('contact_id', db.Integer, db.ForeignKey('contacts.id', ondelete='CASCADE'), primary_key=True),
    db.Column('label_id', db.Integer, db.ForeignKey('labels.id', ondelete='CASCADE'), primary_key=True)
)


class Profile(db.Model):
    """Studio staff profile, keyed by the auth provider's user id."""
    __tablename__ = 'profiles'

    ROLE_ADMIN = 'admin'
    ROLE_STAFF = 'staff'

    id = db.Column(db.String(36), primary_key=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_STAFF)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    location = db.relationship('Location')

    def to_dict(self):
        return {
            'id': self.id,
            'role': self.role,
            'location_id': self.location_id,
        }


class Location(db.Model):
    __tablename__ = 'locations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    is_admin_only = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # One location per case-insensitive name
    __table_args__ = (db.Index('uq_locations_name_lower', db.func.lower(name), unique=True),)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'is_admin_only': self.is_admin_only,
        }

    def __repr__(self):
        return f'<Location {self.name}>'


class Label(db.Model):
    __tablename__ = 'labels'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=1000)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (db.Index('uq_labels_name_lower', db.func.lower(name), unique=True),)

    contacts = db.relationship('Contact',
                               secondary=contact_labels,
                               back_populates='labels',
                               lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'sort_order': self.sort_order,
            'is_archived': self.is_archived,
        }

    def __repr__(self):
        return f'<Label {self.name}>'


class Contact(db.Model):
    __tablename__ = 'contacts'

    STATUSES = ['neu', 'in_bearbeitung', 'tattoo_termin', 'abgeschlossen', 'tot']

    id = db.Column(db.Integer, primary_key=True)
    phone_e164 = db.Column(db.String(20), unique=True, nullable=False)
    phone_raw = db.Column(db.String(50))
    name = db.Column(db.String(200))
    first_name = db.Column(db.String(80))
    last_name = db.Column(db.String(80))
    gender = db.Column(db.String(20))
    email = db.Column(db.String(120))
    telegram = db.Column(db.String(120))
    source_origin = db.Column(db.String(120))
    form_size = db.Column(db.String(120))
    artist_booking = db.Column(db.String(120))
    status = db.Column(db.String(20), nullable=False, default='neu')
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'))

    # Pricing in integer euro cents
    price_deposit_cents = db.Column(db.Integer)
    price_total_cents = db.Column(db.Integer)

    # Dates carried over from the studio spreadsheet
    created_in_system_at = db.Column(db.DateTime)
    date_erstgespraech = db.Column(db.Date)
    date_tattoo_termin = db.Column(db.Date)
    last_sent_at = db.Column(db.DateTime)
    last_received_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    location = db.relationship('Location', backref=db.backref('contacts', lazy='dynamic'))
    labels = db.relationship('Label',
                             secondary=contact_labels,
                             back_populates='contacts',
                             lazy='selectin')

    @property
    def display_name(self):
        if self.name:
            return self.name
        return ' '.join(part for part in [self.first_name, self.last_name] if part).strip()

    def __repr__(self):
        return f'<Contact {self.phone_e164}>'


class ContactFile(db.Model):
    __tablename__ = 'contact_files'

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(100))
    file_size = db.Column(db.Integer)
    file_path = db.Column(db.String(500), nullable=False)
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    contact = db.relationship('Contact', backref=db.backref('files', lazy='dynamic',
                                                            cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'file_name': self.file_name,
            'file_type': self.file_type,
            'file_size': self.file_size,
            'file_path': self.file_path,
            'note': self.note,
            'created_at': self.created_at.isoformat(),
        }


class Artist(db.Model):
    __tablename__ = 'artists'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


class ArtistAvailability(db.Model):
    __tablename__ = 'artist_availability'

    id = db.Column(db.Integer, primary_key=True)
    artist_id = db.Column(db.Integer, db.ForeignKey('artists.id', ondelete='CASCADE'), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False)
    start_at = db.Column(db.DateTime, nullable=False)
    end_at = db.Column(db.DateTime, nullable=False)
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    artist = db.relationship('Artist', backref=db.backref('availability', lazy='dynamic'))
    location = db.relationship('Location')

    def to_dict(self):
        return {
            'id': self.id,
            'start_at': self.start_at.isoformat(),
            'end_at': self.end_at.isoformat(),
            'note': self.note,
            'artist': {
                'id': self.artist.id,
                'name': self.artist.name,
                'is_active': self.artist.is_active,
            },
            'location': {'id': self.location.id, 'name': self.location.name},
        }


class MessageTemplate(db.Model):
    __tablename__ = 'message_templates'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'body': self.body,
            'is_archived': self.is_archived,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


class Job(db.Model):
    __tablename__ = 'jobs'

    STATUSES = ['geplant', 'in_arbeit', 'abgeschlossen']

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey('contacts.id'), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('locations.id'), nullable=False)
    artist_free_text = db.Column(db.String(200))
    session_date = db.Column(db.Date)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    deposit_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='geplant')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    contact = db.relationship('Contact', backref=db.backref('jobs', lazy='dynamic'))
    location = db.relationship('Location')
    payments = db.relationship('Payment', backref='job', lazy='dynamic',
                               cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'contact_id': self.contact_id,
            'location_id': self.location_id,
            'artist_free_text': self.artist_free_text,
            'session_date': self.session_date.isoformat() if self.session_date else None,
            'total_cents': self.total_cents,
            'deposit_cents': self.deposit_cents,
            'status': self.status,
            'created_at': self.created_at.isoformat(),
        }


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    method = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'paid_cents': self.paid_cents,
            'paid_at': self.paid_at.isoformat(),
            'method': self.method,
        }
