# services/import_service.py
"""
Spreadsheet Contact Import

Pipeline: raw spreadsheet rows are mapped to NormalizedContact records
(map_row), checked against existing contacts (find_existing_phones) and,
after the user confirms, written by ImportConfirmer.

The confirmer processes one batch strictly sequentially. Each write is
committed on its own, so a failing row never takes earlier rows with it.
Failures loading the lookup tables abort the batch; everything that goes
wrong inside the row loop is recorded and the loop continues.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models import db, Contact, Location
from services import contact_service
from services.exceptions import LookupTableError, serialize_db_error
from utils import (
    is_scientific_notation,
    normalize_phone,
    parse_euro_cents,
    parse_optional_date,
    parse_optional_datetime,
    to_date,
    to_naive_utc,
)

logger = logging.getLogger(__name__)

RawRow = Dict[str, str]

PHONE_COLUMN = 'Telefon'
LOCATION_COLUMN = 'Standort'
LABELS_COLUMN = 'Labels'

TEXT_COLUMNS = {
    'gender': 'Geschlecht',
    'first_name': 'Vorname',
    'last_name': 'Nachname',
    'email': 'E-Mail-Adresse',
    'telegram': 'Telegram Account',
    'source_origin': 'Herkunft',
    'form_size': 'Formular | Größe Tattoo',
    'artist_booking': 'Buchung bei Artist',
}
DATE_COLUMNS = {
    'date_erstgespraech': 'Datum Erstgespräch',
    'date_tattoo_termin': 'Datum Tattoo-Termin',
}
DATETIME_COLUMNS = {
    'created_in_system_at': 'Datum Eintragung',
    'last_sent_at': 'Zuletzt gesendete Nachricht am',
    'last_received_at': 'Zuletzt empfangene Nachricht am',
}
CENTS_COLUMNS = {
    'price_deposit_cents': 'Preis | Anzahlung',
    'price_total_cents': 'Preis | Gesamt',
}

MSG_SCIENTIFIC_PHONE = 'Excel-Notation erkannt (E+). Bitte Spalte als Text formatieren.'
MSG_INVALID_PHONE = 'Telefonnummer nicht gültig'

# Never written to the contacts table directly
NON_CONTACT_FIELDS = ('location_name', 'labels', 'source_row')

DEFAULT_CHUNK_SIZE = 200


@dataclass
class NormalizedContact:
    """One spreadsheet row after normalization; the unit of import."""
    phone_e164: str
    phone_raw: Optional[str] = None
    gender: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    telegram: Optional[str] = None
    source_origin: Optional[str] = None
    form_size: Optional[str] = None
    artist_booking: Optional[str] = None
    created_in_system_at: Optional[str] = None
    date_erstgespraech: Optional[str] = None
    date_tattoo_termin: Optional[str] = None
    price_deposit_cents: Optional[int] = None
    price_total_cents: Optional[int] = None
    last_sent_at: Optional[str] = None
    last_received_at: Optional[str] = None
    location_name: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    source_row: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Optional['NormalizedContact']:
        """
        Rebuild a contact from the confirm endpoint payload.

        Unknown keys are ignored. Returns None when the payload has no
        usable phone number.
        """
        phone = normalize_phone(str(data.get('phone_e164') or ''))
        if not phone:
            return None

        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values['phone_e164'] = phone

        for key in CENTS_COLUMNS:
            values[key] = _as_int(values.get(key))

        labels = values.get('labels') or []
        if isinstance(labels, str):
            labels = labels.split(',')
        elif not isinstance(labels, list):
            labels = []
        values['labels'] = [str(label).strip() for label in labels if str(label).strip()]

        row = values.get('source_row')
        values['source_row'] = _as_int(row)

        return cls(**values)

    def unique_labels(self) -> List[str]:
        """Label names with case-insensitive duplicates removed, first spelling wins."""
        seen = set()
        unique = []
        for label in self.labels:
            key = label.strip().lower()
            if key and key not in seen:
                seen.add(key)
                unique.append(label.strip())
        return unique

    def contact_values(self) -> dict:
        """Column values for the contacts table: non-empty fields only."""
        values = {}
        for f in fields(self):
            if f.name in NON_CONTACT_FIELDS:
                continue
            value = getattr(self, f.name)
            if value is None or value == '':
                continue
            if f.name in DATE_COLUMNS:
                value = to_date(value)
            elif f.name in DATETIME_COLUMNS:
                value = to_naive_utc(value)
            if value is None:
                continue
            values[f.name] = value
        return values


@dataclass
class ImportIssue:
    row: int
    field: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RowMapping:
    contact: Optional[NormalizedContact]
    issues: List[ImportIssue]


@dataclass
class RowError:
    row: Optional[int]
    phone: Optional[str]
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ImportBatchResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[RowError] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        """Summary for batches that imported nothing."""
        if self.created + self.updated > 0:
            return None
        if self.errors:
            first = self.errors[0]
            return f"row {first.row}: {first.reason}" if first.row is not None else first.reason
        return 'no contacts imported'

    def to_dict(self) -> dict:
        result = {
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'errors': [error.to_dict() for error in self.errors],
        }
        if self.reason is not None:
            result['reason'] = self.reason
        return result


def _as_int(value):
    if value is None or value == '':
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def _text(value) -> str:
    return '' if value is None else str(value).strip()


def reject_item(item) -> RowError:
    """RowError for a confirm payload item that has no usable phone number."""
    if not isinstance(item, dict):
        return RowError(row=None, phone=None, reason='invalid contact')
    phone = item.get('phone_raw') or item.get('phone_e164')
    return RowError(
        row=_as_int(item.get('source_row')),
        phone=str(phone) if phone else None,
        reason=MSG_INVALID_PHONE,
    )


# =============================================================================
# ROW MAPPER
# =============================================================================

def split_labels(value: str) -> List[str]:
    return [label.strip() for label in value.split(',') if label.strip()]


def map_row(row: RawRow, row_index: int) -> RowMapping:
    """
    Map one spreadsheet row to a NormalizedContact.

    A row without a usable phone number is dropped entirely and reported
    as one issue on the phone column. Unparseable dates and amounts just
    become None.
    """
    phone_raw = _text(row.get(PHONE_COLUMN))
    phone_e164 = normalize_phone(phone_raw)

    if not phone_e164:
        message = MSG_SCIENTIFIC_PHONE if is_scientific_notation(phone_raw) else MSG_INVALID_PHONE
        return RowMapping(contact=None, issues=[ImportIssue(row=row_index, field=PHONE_COLUMN, message=message)])

    values = {column: _text(row.get(header)) or None for column, header in TEXT_COLUMNS.items()}
    for column, header in DATE_COLUMNS.items():
        values[column] = parse_optional_date(_text(row.get(header)))
    for column, header in DATETIME_COLUMNS.items():
        values[column] = parse_optional_datetime(_text(row.get(header)))
    for column, header in CENTS_COLUMNS.items():
        raw = _text(row.get(header))
        values[column] = parse_euro_cents(raw) if raw else None

    contact = NormalizedContact(
        phone_e164=phone_e164,
        phone_raw=phone_raw or None,
        location_name=_text(row.get(LOCATION_COLUMN)) or None,
        labels=split_labels(_text(row.get(LABELS_COLUMN))),
        source_row=row_index,
        **values
    )
    return RowMapping(contact=contact, issues=[])


def map_rows(rows: List[RawRow], first_row: int = 2):
    """
    Map a whole sheet. Row numbers match the spreadsheet (header is row 1).

    Returns:
        tuple: (list of NormalizedContact, list of ImportIssue)
    """
    contacts = []
    issues = []
    for offset, row in enumerate(rows):
        mapping = map_row(row, first_row + offset)
        issues.extend(mapping.issues)
        if mapping.contact is not None:
            contacts.append(mapping.contact)
    return contacts, issues


def chunked(items: list, size: int = DEFAULT_CHUNK_SIZE):
    """Split a list into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError('chunk size must be positive')
    return [items[start:start + size] for start in range(0, len(items), size)]


# =============================================================================
# PREVIEW RECONCILER
# =============================================================================

def find_existing_phones(phones: List[str]) -> List[str]:
    """Return the canonical phones that already belong to a contact (read-only)."""
    wanted = list(dict.fromkeys(phone for phone in phones if phone))
    if not wanted:
        return []
    rows = db.session.execute(
        select(Contact.phone_e164).where(Contact.phone_e164.in_(wanted))
    ).scalars().all()
    return list(rows)


# =============================================================================
# IMPORT CONFIRMER
# =============================================================================

@dataclass
class LocationRef:
    id: int
    is_admin_only: bool


@dataclass
class LookupTables:
    """Name -> id caches for one confirm call; never shared between calls."""
    locations: Dict[str, LocationRef]
    labels: Dict[str, int]

    @classmethod
    def load(cls) -> 'LookupTables':
        try:
            rows = db.session.execute(
                select(Location.id, Location.name, Location.is_admin_only)
            ).all()
            labels = contact_service.load_label_map()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise LookupTableError(serialize_db_error(e)['message'])

        locations = {name.lower(): LocationRef(id=loc_id, is_admin_only=admin_only)
                     for loc_id, name, admin_only in rows}
        return cls(locations=locations, labels=labels)


class _RowFailed(Exception):
    """Internal: stops processing of the current row."""


class ImportConfirmer:
    """Writes one confirmed batch of normalized contacts."""

    def __init__(self, fallback_location: str = contact_service.FALLBACK_LOCATION_NAME):
        self.fallback_location = fallback_location

    def confirm(self, contacts: List[NormalizedContact],
                rejected: Optional[List[RowError]] = None) -> ImportBatchResult:
        """
        Import a batch.

        ``rejected`` holds payload items that never became contacts; they
        count as skipped rows.

        Raises:
            LookupTableError: the location/label tables could not be read
        """
        rejected = list(rejected or [])
        result = ImportBatchResult(skipped=len(rejected), errors=rejected)
        if not contacts:
            return result

        tables = LookupTables.load()

        for contact in contacts:
            try:
                self._import_contact(contact, tables, result)
            except _RowFailed:
                result.skipped += 1

        logger.info(
            f"Import batch done: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )
        return result

    def _record(self, result, contact, reason):
        logger.warning(f"Import row {contact.source_row} ({contact.phone_e164}): {reason}")
        result.errors.append(RowError(
            row=contact.source_row,
            phone=contact.phone_raw or contact.phone_e164,
            reason=reason,
        ))

    def _write(self, result, contact, action, fatal=True):
        """
        Run one storage write and commit it.

        A failure is rolled back and recorded; ``fatal`` failures end the row.
        Returns True on success.
        """
        try:
            action()
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            self._record(result, contact, serialize_db_error(e)['message'])
            if fatal:
                raise _RowFailed()
            return False

    def create_location(self, name: str) -> LocationRef:
        location = Location(name=name, is_admin_only=(name == self.fallback_location))
        db.session.add(location)
        db.session.flush()
        return LocationRef(id=location.id, is_admin_only=location.is_admin_only)

    def _location_name(self, contact) -> str:
        return (contact.location_name or '').strip() or self.fallback_location

    def _resolve_location(self, contact, tables, result) -> int:
        name = self._location_name(contact)
        key = name.lower()

        if key not in tables.locations:
            def create():
                tables.locations[key] = self.create_location(name)
            try:
                self._write(result, contact, create)
            except _RowFailed:
                # The flushed id went away with the rollback
                tables.locations.pop(key, None)
                raise

        return tables.locations[key].id

    def _import_contact(self, contact, tables, result):
        location_id = self._resolve_location(contact, tables, result)

        # Advisory only: the upsert below decides what actually happens
        existed = contact_service.find_contact_id(contact.phone_e164) is not None

        values = contact.contact_values()
        values['phone_e164'] = contact.phone_e164
        values['location_id'] = location_id

        # Rows without a real location never move a known contact to the fallback
        keep = ()
        if self._location_name(contact).lower() == self.fallback_location.lower():
            keep = ('location_id',)

        self._write(result, contact, lambda: contact_service.upsert_contact(values, keep=keep))

        if existed:
            result.updated += 1
        else:
            result.created += 1

        labels = contact.unique_labels()
        if labels:
            self._link_labels(contact, labels, tables, result)

    def _link_labels(self, contact, labels, tables, result):
        contact_id = contact_service.find_contact_id(contact.phone_e164)
        if contact_id is None:
            self._record(result, contact, 'contact not found after upsert')
            return

        for name in labels:
            resolved = {}

            def resolve():
                resolved['id'] = contact_service.resolve_label_id(name, tables.labels)

            if not self._write(result, contact, resolve, fatal=False):
                # Cache entry may point at a rolled back insert
                tables.labels.pop(name.lower(), None)
                continue

            self._write(
                result, contact,
                lambda: contact_service.link_label(contact_id, resolved['id']),
                fatal=False
            )
