"""
Contact API: manual entry, listing, status, labels, stats, export and files.

Run with: python -m pytest tests/test_contacts_routes.py -v
"""

from io import BytesIO
from unittest.mock import patch

import pytest

from models import db, Contact, ContactFile, Label, Location


@pytest.fixture
def contacts(app, location):
    """Three contacts: two in Berlin, one without location."""
    vip = Label(name='VIP')
    fineline = Label(name='Fineline')
    mia = Contact(phone_e164='+491511111111', name='Mia Schulz', location_id=location.id,
                  labels=[vip, fineline])
    tom = Contact(phone_e164='+491712222222', first_name='Tom', location_id=location.id,
                  status='tattoo_termin', labels=[vip])
    anon = Contact(phone_e164='+491603333333')
    db.session.add_all([mia, tom, anon])
    db.session.commit()
    return {'mia': mia, 'tom': tom, 'anon': anon, 'vip': vip, 'fineline': fineline}


class TestCreateContact:
    """POST /api/contacts"""

    def test_create(self, client, staff_headers, location):
        response = client.post('/api/contacts', headers=staff_headers, json={
            'name': 'Mia', 'phone_raw': '0151 2345678', 'location_id': location.id, 'labels': ['VIP', 'vip'],
        })

        assert response.status_code == 201
        contact = db.session.get(Contact, response.get_json()['id'])
        assert contact.phone_e164 == '+491512345678'
        assert [l.name for l in contact.labels] == ['VIP']

    def test_same_phone_updates(self, client, staff_headers, location):
        """Manual entry upserts by phone."""
        body = {'phone_raw': '0151 2345678', 'location_id': location.id}
        first = client.post('/api/contacts', headers=staff_headers, json=dict(body, name='Mia'))
        second = client.post('/api/contacts', headers=staff_headers, json=dict(body, name='Mia S.'))

        assert first.get_json()['id'] == second.get_json()['id']
        assert Contact.query.one().name == 'Mia S.'

    @pytest.mark.parametrize('body, error', [
        ({'location_id': 1}, 'missing_phone'),
        ({'phone_raw': '0151 2345678'}, 'missing_location'),
        ({'phone_raw': '123', 'location_id': 1}, 'invalid_phone'),
        ({'phone_raw': '0151 2345678', 'location_id': 999}, 'location_not_found'),
        ({'phone_raw': '0151 2345678', 'location_id': 'abc'}, 'invalid_location_id'),
    ])
    def test_validation(self, client, staff_headers, location, body, error):
        response = client.post('/api/contacts', headers=staff_headers, json=body)
        assert response.status_code == 400
        assert response.get_json()['error'] == error


class TestListContacts:
    """GET /api/contacts"""

    def test_list_all(self, client, staff_headers, contacts):
        data = client.get('/api/contacts', headers=staff_headers).get_json()
        assert data['total'] == 3
        assert len(data['contacts']) == 3

    def test_search(self, client, staff_headers, contacts):
        data = client.get('/api/contacts?q=schulz', headers=staff_headers).get_json()
        assert [c['phone_e164'] for c in data['contacts']] == ['+491511111111']

    def test_label_filter_requires_all(self, client, staff_headers, contacts):
        """Several labels mean the contact needs every one of them."""
        ids = f"{contacts['vip'].id},{contacts['fineline'].id}"
        data = client.get(f'/api/contacts?label={ids}', headers=staff_headers).get_json()
        assert data['total'] == 1

    def test_status_and_location(self, client, staff_headers, contacts, location):
        data = client.get(f'/api/contacts?status=tattoo_termin&location_id={location.id}',
                          headers=staff_headers).get_json()
        assert [c['display_name'] for c in data['contacts']] == ['Tom']

    def test_sort_and_page(self, client, staff_headers, contacts):
        data = client.get('/api/contacts?sort=phone_e164&dir=asc&page=1&page_size=2',
                          headers=staff_headers).get_json()
        assert data['total'] == 3
        assert [c['phone_e164'] for c in data['contacts']] == ['+491712222222']

    def test_invalid_location(self, client, staff_headers):
        response = client.get('/api/contacts?location_id=abc', headers=staff_headers)
        assert response.status_code == 400


class TestUpdateContact:
    """Status, labels and deletion."""

    def test_status(self, client, staff_headers, contacts):
        contact_id = contacts['anon'].id
        response = client.patch(f'/api/contacts/{contact_id}', headers=staff_headers, json={'status': 'tot'})
        assert response.status_code == 200
        assert db.session.get(Contact, contact_id).status == 'tot'

    def test_invalid_status(self, client, staff_headers, contacts):
        response = client.patch(f"/api/contacts/{contacts['anon'].id}", headers=staff_headers,
                                json={'status': 'weg'})
        assert response.status_code == 400

    def test_unknown_contact(self, client, staff_headers):
        response = client.patch('/api/contacts/999', headers=staff_headers, json={'status': 'tot'})
        assert response.status_code == 404
        assert response.get_json() == {'error': 'not_found'}

    def test_add_and_remove_label(self, client, staff_headers, contacts):
        contact_id = contacts['anon'].id
        label_id = contacts['vip'].id

        client.post(f'/api/contacts/{contact_id}/labels', headers=staff_headers, json={'label_id': label_id})
        client.post(f'/api/contacts/{contact_id}/labels', headers=staff_headers, json={'label_id': label_id})
        db.session.expire_all()
        assert [l.id for l in db.session.get(Contact, contact_id).labels] == [label_id]

        response = client.delete(f'/api/contacts/{contact_id}/labels?label_id={label_id}', headers=staff_headers)
        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Contact, contact_id).labels == []

    def test_add_label_with_bad_id(self, client, staff_headers, contacts):
        """A non-numeric label id is a 400, not a server error."""
        response = client.post(f"/api/contacts/{contacts['anon'].id}/labels", headers=staff_headers,
                               json={'label_id': 'vip'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_label_id'

    def test_delete(self, client, staff_headers, contacts):
        contact_id = contacts['mia'].id
        response = client.delete(f'/api/contacts/{contact_id}', headers=staff_headers)
        assert response.status_code == 200
        assert db.session.get(Contact, contact_id) is None
        assert Label.query.count() == 2


class TestStatsAndExport:
    """Dashboard numbers and CSV export."""

    def test_stats(self, client, staff_headers, contacts):
        data = client.get('/api/contacts/stats', headers=staff_headers).get_json()

        assert data['total_count'] == 3
        assert data['missing_name_count'] == 1
        assert data['location_counts'] == [
            {'name': 'Berlin', 'count': 2},
            {'name': 'Unbekannt', 'count': 1},
        ]

    def test_export(self, client, staff_headers, contacts):
        response = client.get('/api/contacts/export?status=tattoo_termin', headers=staff_headers)

        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        lines = response.get_data(as_text=True).strip().split('\n')
        assert lines[0].startswith('Name,Telefon,Standort,Status,Labels')
        assert lines[1].startswith('Tom,+491712222222,Berlin,tattoo_termin,VIP')
        assert len(lines) == 2


class TestContactFiles:
    """Uploads go to Supabase storage; metadata stays local."""

    def test_upload_and_list(self, client, staff_headers, contacts):
        contact_id = contacts['mia'].id
        upload = {'path': f'contacts/{contact_id}/abc.jpg', 'filename': 'abc.jpg', 'size': 4}

        with patch('services.supabase_storage.upload_contact_file', return_value=upload) as fake_upload:
            response = client.post(
                f'/api/contacts/{contact_id}/files',
                headers=staff_headers,
                data={'file': (BytesIO(b'data'), 'motiv.jpg'), 'note': 'Vorlage'},
                content_type='multipart/form-data'
            )

        assert response.status_code == 201
        assert fake_upload.call_args[0][:3] == (contact_id, b'data', 'motiv.jpg')

        files = client.get(f'/api/contacts/{contact_id}/files', headers=staff_headers).get_json()['files']
        assert [(f['file_name'], f['note']) for f in files] == [('motiv.jpg', 'Vorlage')]

    def test_signed_url(self, client, staff_headers, contacts):
        contact_id = contacts['mia'].id
        record = ContactFile(contact_id=contact_id, file_name='motiv.jpg', file_path='contacts/1/abc.jpg')
        db.session.add(record)
        db.session.commit()

        with patch('services.supabase_storage.get_contact_file_url', return_value='https://signed') as fake_url:
            response = client.get(f'/api/contacts/{contact_id}/files/{record.id}/url', headers=staff_headers)

        assert response.get_json() == {'url': 'https://signed'}
        fake_url.assert_called_once_with('contacts/1/abc.jpg')

    def test_upload_failure(self, client, staff_headers, contacts):
        contact_id = contacts['mia'].id
        with patch('services.supabase_storage.upload_contact_file', side_effect=Exception('bucket missing')):
            response = client.post(
                f'/api/contacts/{contact_id}/files',
                headers=staff_headers,
                data={'file': (BytesIO(b'data'), 'motiv.jpg')},
                content_type='multipart/form-data'
            )
        assert response.status_code == 502
        assert ContactFile.query.count() == 0
