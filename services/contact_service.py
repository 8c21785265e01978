# services/contact_service.py
"""
Contact Service - storage operations shared by the contact routes and the
spreadsheet import: upserts keyed by canonical phone, label resolution and
linking, list/search queries, stats and CSV export.
"""

import csv
from datetime import datetime
from io import StringIO

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite

from models import db, Contact, Label, Location, contact_labels

FALLBACK_LOCATION_NAME = 'Unbekannt'

SORTABLE_FIELDS = ['created_at', 'updated_at', 'name', 'first_name', 'last_name', 'phone_e164', 'status']
MAX_PAGE_SIZE = 500
MAX_EXPORT = 10000

EXPORT_HEADER = ['Name', 'Telefon', 'Standort', 'Status', 'Labels', 'Erstkontakt',
                 'Letzte_Nachricht_Gesendet', 'Letzte_Antwort']


# =============================================================================
# UPSERT HELPERS
# =============================================================================

def _insert(table):
    """Dialect specific INSERT so ON CONFLICT clauses are available."""
    if db.session.get_bind().dialect.name == 'postgresql':
        return postgresql.insert(table)
    return sqlite.insert(table)


def upsert_contact(values: dict, keep=()):
    """
    Insert a contact or update the existing one with the same ``phone_e164``.

    Columns named in ``keep`` are only written on insert. The unique
    constraint on the phone column is the source of truth; callers that
    need created-vs-updated have to check before calling.
    """
    stmt = _insert(Contact.__table__).values(**values)
    changes = {key: stmt.excluded[key] for key in values
               if key != 'phone_e164' and key not in keep}
    changes['updated_at'] = datetime.utcnow()
    stmt = stmt.on_conflict_do_update(index_elements=['phone_e164'], set_=changes)
    db.session.execute(stmt)


def find_contact_id(phone_e164: str):
    return db.session.execute(
        select(Contact.id).where(Contact.phone_e164 == phone_e164)
    ).scalar_one_or_none()


def load_label_map() -> dict:
    """Lower-cased label name -> label id for every label."""
    rows = db.session.execute(select(Label.id, Label.name)).all()
    return {name.lower(): label_id for label_id, name in rows}


def resolve_label_id(name: str, label_map: dict) -> int:
    """
    Resolve a label by case-insensitive name, creating it on a miss.

    ``label_map`` is the caller's lookup cache and is updated in place.
    """
    key = name.lower()
    if key in label_map:
        return label_map[key]

    existing = db.session.execute(
        select(Label.id).where(func.lower(Label.name) == key)
    ).scalar_one_or_none()

    if existing is None:
        stmt = _insert(Label.__table__).values(name=name).on_conflict_do_nothing(index_elements=['name'])
        db.session.execute(stmt)
        existing = db.session.execute(
            select(Label.id).where(func.lower(Label.name) == key)
        ).scalar_one()

    label_map[key] = existing
    return existing


def link_label(contact_id: int, label_id: int):
    """Attach a label to a contact; re-adding an existing pair is a no-op."""
    stmt = _insert(contact_labels).values(contact_id=contact_id, label_id=label_id)
    stmt = stmt.on_conflict_do_nothing(index_elements=['contact_id', 'label_id'])
    db.session.execute(stmt)


def unlink_label(contact_id: int, label_id: int):
    db.session.execute(
        contact_labels.delete().where(
            contact_labels.c.contact_id == contact_id,
            contact_labels.c.label_id == label_id,
        )
    )


# =============================================================================
# QUERIES
# =============================================================================

def contact_to_dict(contact: Contact) -> dict:
    def iso(value):
        return value.isoformat() if value else None

    return {
        'id': contact.id,
        'phone_e164': contact.phone_e164,
        'phone_raw': contact.phone_raw,
        'name': contact.name,
        'first_name': contact.first_name,
        'last_name': contact.last_name,
        'display_name': contact.display_name,
        'gender': contact.gender,
        'email': contact.email,
        'telegram': contact.telegram,
        'source_origin': contact.source_origin,
        'form_size': contact.form_size,
        'artist_booking': contact.artist_booking,
        'status': contact.status,
        'price_deposit_cents': contact.price_deposit_cents,
        'price_total_cents': contact.price_total_cents,
        'created_in_system_at': iso(contact.created_in_system_at),
        'date_erstgespraech': iso(contact.date_erstgespraech),
        'date_tattoo_termin': iso(contact.date_tattoo_termin),
        'last_sent_at': iso(contact.last_sent_at),
        'last_received_at': iso(contact.last_received_at),
        'location_id': contact.location_id,
        'location': {'id': contact.location.id, 'name': contact.location.name} if contact.location else None,
        'labels': [label.to_dict() for label in sorted(contact.labels, key=lambda l: (l.sort_order, l.name))],
        'created_at': iso(contact.created_at),
        'updated_at': iso(contact.updated_at),
    }


def build_contact_query(search=None, location_id=None, status=None, label_ids=None):
    """Filtered contact query shared by the list and export endpoints."""
    query = Contact.query

    if location_id and location_id != 'all':
        query = query.filter(Contact.location_id == int(location_id))

    if status and status != 'all':
        query = query.filter(Contact.status == status)

    if search:
        term = f"%{search.replace('%', '').strip()}%"
        query = query.filter(or_(
            Contact.phone_e164.ilike(term),
            Contact.name.ilike(term),
            Contact.first_name.ilike(term),
            Contact.last_name.ilike(term),
        ))

    # Contacts must carry every requested label
    for label_id in label_ids or []:
        query = query.filter(Contact.labels.any(Label.id == int(label_id)))

    return query


def list_contacts(search=None, location_id=None, status=None, label_ids=None,
                  sort_key='created_at', sort_dir='desc', page_index=0, page_size=100):
    """
    Return one page of contacts plus the total match count.

    Returns:
        tuple: (list of Contact, total count)
    """
    query = build_contact_query(search, location_id, status, label_ids)
    total = query.count()

    if sort_key not in SORTABLE_FIELDS:
        sort_key = 'created_at'
    column = getattr(Contact, sort_key)
    query = query.order_by(column.asc() if sort_dir == 'asc' else column.desc(), Contact.id.asc())

    page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))
    page_index = max(0, int(page_index))
    contacts = query.offset(page_index * page_size).limit(page_size).all()

    return contacts, total


def contact_stats():
    """Total count, contacts without any name and the ten biggest locations."""
    total = db.session.scalar(select(func.count(Contact.id)))

    def blank(column):
        return or_(column.is_(None), column == '')

    missing_name = db.session.scalar(
        select(func.count(Contact.id)).where(
            blank(Contact.name), blank(Contact.first_name), blank(Contact.last_name)
        )
    )

    rows = db.session.execute(
        select(Location.name, func.count(Contact.id).label('count'))
        .select_from(Contact)
        .outerjoin(Location, Contact.location_id == Location.id)
        .group_by(Location.name)
    ).all()

    counts = {}
    for name, count in rows:
        key = name.strip() if name and name.strip() else FALLBACK_LOCATION_NAME
        counts[key] = counts.get(key, 0) + count

    location_counts = sorted(
        ({'name': name, 'count': count} for name, count in counts.items()),
        key=lambda item: item['count'],
        reverse=True
    )[:10]

    return {
        'total_count': total or 0,
        'missing_name_count': missing_name or 0,
        'location_counts': location_counts,
    }


def export_contacts_csv(search=None, location_id=None, status=None, label_ids=None) -> str:
    """Render the filtered contacts as CSV text."""
    contacts = (
        build_contact_query(search, location_id, status, label_ids)
        .order_by(Contact.created_at.desc())
        .limit(MAX_EXPORT)
        .all()
    )

    output = StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(EXPORT_HEADER)

    for contact in contacts:
        writer.writerow([
            contact.display_name,
            contact.phone_e164 or '',
            contact.location.name if contact.location else '',
            contact.status or '',
            '; '.join(label.name for label in contact.labels),
            contact.date_erstgespraech.isoformat() if contact.date_erstgespraech else '',
            contact.last_sent_at.isoformat() if contact.last_sent_at else '',
            contact.last_received_at.isoformat() if contact.last_received_at else '',
        ])

    return output.getvalue()
