"""
Writing confirmed import batches.

Run with: python -m pytest tests/test_import_confirm.py -v
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import db, Contact, Label, Location
from services.exceptions import LookupTableError
from services.import_service import ImportConfirmer, NormalizedContact, find_existing_phones, reject_item


def contact(phone='+491512345678', row=2, **kwargs):
    return NormalizedContact(phone_e164=phone, phone_raw=kwargs.pop('phone_raw', phone), source_row=row, **kwargs)


class TestFindExistingPhones:
    """Preview reconciliation."""

    def test_returns_known_subset(self, app, location):
        """Only phones already stored come back."""
        db.session.add(Contact(phone_e164='+491512345678', location_id=location.id))
        db.session.commit()

        existing = find_existing_phones(['+491512345678', '+491719999999'])
        assert existing == ['+491512345678']

    def test_empty_input(self, app):
        assert find_existing_phones([]) == []


class TestConfirmCounts:
    """Created / updated / skipped accounting."""

    def test_same_row_twice(self, app):
        """First run creates, second run updates, still one contact."""
        confirmer = ImportConfirmer()

        first = confirmer.confirm([contact(first_name='Mia')])
        assert (first.created, first.updated) == (1, 0)

        second = confirmer.confirm([contact(first_name='Mia', last_name='Schulz')])
        assert (second.created, second.updated) == (0, 1)

        assert Contact.query.count() == 1
        assert Contact.query.one().last_name == 'Schulz'

    def test_empty_fields_do_not_overwrite(self, app):
        """Blank values in a later import keep the stored ones."""
        confirmer = ImportConfirmer()
        confirmer.confirm([contact(email='mia@example.de')])
        confirmer.confirm([contact(first_name='Mia')])

        stored = Contact.query.one()
        assert stored.email == 'mia@example.de'
        assert stored.first_name == 'Mia'

    def test_empty_batch(self, app):
        """Nothing to do still answers with a reason."""
        result = ImportConfirmer().confirm([])
        assert result.to_dict() == {
            'created': 0, 'updated': 0, 'skipped': 0, 'errors': [],
            'reason': 'no contacts imported',
        }

    def test_reason_only_when_nothing_imported(self, app):
        """A successful batch carries no reason."""
        result = ImportConfirmer().confirm([contact()])
        assert 'reason' not in result.to_dict()

    def test_values_stored(self, app):
        """Dates and cents reach the database in their column types."""
        ImportConfirmer().confirm([contact(
            price_total_cents=123450,
            date_erstgespraech='2024-02-05',
            created_in_system_at='2024-02-01T13:00:00+00:00',
        )])

        stored = Contact.query.one()
        assert stored.price_total_cents == 123450
        assert stored.date_erstgespraech.isoformat() == '2024-02-05'
        assert stored.created_in_system_at.hour == 13


class TestConfirmLocations:
    """Location resolution."""

    def test_blank_location_uses_fallback(self, app):
        """Rows without a location go to the admin-only fallback."""
        ImportConfirmer().confirm([contact()])

        location = Location.query.filter_by(name='Unbekannt').one()
        assert location.is_admin_only is True
        assert Contact.query.one().location_id == location.id

    def test_new_location_created_once(self, app):
        """Locations are matched case-insensitively within and across batches."""
        ImportConfirmer().confirm([
            contact('+491511111111', 2, location_name='Hamburg'),
            contact('+491512222222', 3, location_name='hamburg'),
        ])

        assert Location.query.count() == 1
        location = Location.query.one()
        assert location.name == 'Hamburg'
        assert location.is_admin_only is False

    def test_existing_location_reused(self, app, location):
        ImportConfirmer().confirm([contact(location_name='BERLIN')])
        assert Location.query.count() == 1
        assert Contact.query.one().location_id == location.id

    def test_location_failure_skips_only_that_row(self, app):
        """A failing location insert is a row error; other rows still import."""
        confirmer = ImportConfirmer()
        original = confirmer.create_location

        def create_location(name):
            if name == 'Kaputt':
                raise SQLAlchemyError('location insert failed')
            return original(name)

        with patch.object(confirmer, 'create_location', side_effect=create_location):
            result = confirmer.confirm([
                contact('+491511111111', 2, location_name='Berlin'),
                contact('+491512222222', 3, location_name='Kaputt', phone_raw='0151 2222222'),
                contact('+491513333333', 4, location_name='Berlin'),
            ])

        assert result.created == 2
        assert result.skipped == 1
        assert len(result.errors) == 1
        assert result.errors[0].row == 3
        assert result.errors[0].phone == '0151 2222222'
        assert 'location insert failed' in result.errors[0].reason
        assert Contact.query.count() == 2

    def test_failed_location_commit_is_not_cached(self, app):
        """A location rolled back after its flush is created again for later rows."""
        real_commit = db.session.commit
        calls = []

        def commit():
            calls.append(1)
            if len(calls) == 1:
                raise SQLAlchemyError('commit failed')
            return real_commit()

        with patch.object(db.session, 'commit', side_effect=commit):
            result = ImportConfirmer().confirm([
                contact('+491511111111', 2, location_name='Hamburg'),
                contact('+491512222222', 3, location_name='Hamburg'),
            ])

        assert result.created == 1
        assert result.skipped == 1
        stored = Contact.query.one()
        assert stored.phone_e164 == '+491512222222'
        assert db.session.get(Location, stored.location_id) is not None
        assert Location.query.count() == 1

    def test_blank_location_keeps_existing_assignment(self, app, location):
        """Re-importing without a location does not move a known contact to the fallback."""
        ImportConfirmer().confirm([contact(location_name='Berlin')])

        result = ImportConfirmer().confirm([contact(first_name='Mia')])

        assert result.updated == 1
        stored = Contact.query.one()
        assert stored.location_id == location.id
        assert stored.first_name == 'Mia'

    def test_named_location_moves_existing_contact(self, app, location):
        ImportConfirmer().confirm([contact(location_name='Berlin')])
        ImportConfirmer().confirm([contact(location_name='Hamburg')])

        hamburg = Location.query.filter_by(name='Hamburg').one()
        assert Contact.query.one().location_id == hamburg.id


class TestConfirmLabels:
    """Label resolution and linking."""

    def test_labels_case_insensitive_across_rows(self, app):
        """VIP and vip are the same label."""
        ImportConfirmer().confirm([
            contact('+491511111111', 2, labels=['VIP']),
            contact('+491512222222', 3, labels=['vip']),
        ])

        assert Label.query.count() == 1
        label = Label.query.one()
        assert label.name == 'VIP'
        assert label.contacts.count() == 2

    def test_existing_label_reused(self, app):
        db.session.add(Label(name='Fineline'))
        db.session.commit()

        ImportConfirmer().confirm([contact(labels=['FINELINE'])])

        assert Label.query.count() == 1
        assert [l.name for l in Contact.query.one().labels] == ['Fineline']

    def test_duplicate_labels_in_one_row(self, app):
        """The same label twice in a row links once."""
        result = ImportConfirmer().confirm([contact(labels=['VIP', 'vip', 'VIP'])])

        assert result.errors == []
        assert len(Contact.query.one().labels) == 1

    def test_relinking_is_idempotent(self, app):
        """Importing the same labels again does not fail."""
        confirmer = ImportConfirmer()
        confirmer.confirm([contact(labels=['VIP'])])
        result = confirmer.confirm([contact(labels=['VIP'])])

        assert result.errors == []
        assert result.updated == 1

    def test_label_failure_keeps_row(self, app):
        """A failing label is reported; the contact still counts as created."""
        from services import contact_service
        original = contact_service.resolve_label_id

        def resolve(name, label_map):
            if name == 'Kaputt':
                raise SQLAlchemyError('label insert failed')
            return original(name, label_map)

        with patch('services.contact_service.resolve_label_id', side_effect=resolve):
            result = ImportConfirmer().confirm([contact(labels=['Kaputt', 'VIP'])])

        assert result.created == 1
        assert result.skipped == 0
        assert len(result.errors) == 1
        assert [l.name for l in Contact.query.one().labels] == ['VIP']

    def test_link_failure_keeps_counters(self, app):
        """A failing join insert does not undo the created count."""
        with patch('services.contact_service.link_label', side_effect=SQLAlchemyError('link failed')):
            result = ImportConfirmer().confirm([contact(labels=['VIP'])])

        assert result.created == 1
        assert len(result.errors) == 1
        assert 'reason' not in result.to_dict()


class TestConfirmFailures:
    """Row level and batch level failures."""

    def test_upsert_failure_is_a_row_error(self, app):
        """A failed upsert skips the row and its labels."""
        with patch('services.contact_service.upsert_contact', side_effect=SQLAlchemyError('upsert failed')):
            result = ImportConfirmer().confirm([contact(labels=['VIP'])])

        assert result.skipped == 1
        assert result.created == 0
        assert Label.query.count() == 0
        assert result.to_dict()['reason'] == 'row 2: upsert failed'

    def test_lookup_failure_is_fatal(self, app):
        """Unreadable lookup tables abort the batch."""
        with patch('services.contact_service.load_label_map', side_effect=SQLAlchemyError('down')):
            with pytest.raises(LookupTableError):
                ImportConfirmer().confirm([contact()])

        assert Contact.query.count() == 0

    def test_rejected_items_count_as_skipped(self, app):
        """Payload items without a phone are skipped next to the imported rows."""
        rejected = [reject_item({'phone_raw': 'abc', 'source_row': 7})]

        result = ImportConfirmer().confirm([contact()], rejected=rejected)

        assert result.created == 1
        assert result.skipped == 1
        assert result.errors[0].row == 7
        assert result.errors[0].phone == 'abc'
        assert 'reason' not in result.to_dict()
