"""
Command line importer: chunking, timeouts and the summary.

Run with: python -m pytest tests/test_import_client.py -v
"""

from unittest.mock import MagicMock

import requests

import import_contacts
from import_contacts import ImportClient, run_import
from services.import_service import NormalizedContact


def make_contacts(count):
    return [NormalizedContact(phone_e164=f'+4915100000{i:03d}', source_row=i + 2) for i in range(count)]


def fake_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestImportClient:
    """HTTP calls made by the client."""

    def test_bearer_header_and_timeout(self):
        session = MagicMock()
        session.headers = {}
        session.post.return_value = fake_response({'existing': ['+4915100000000']})

        client = ImportClient('http://crm.test/', 'tok', timeout=5, session=session)
        existing = client.preview(['+4915100000000'])

        assert existing == ['+4915100000000']
        assert session.headers['Authorization'] == 'Bearer tok'
        session.post.assert_called_once_with(
            'http://crm.test/api/import/preview',
            json={'phones': ['+4915100000000']},
            timeout=5
        )


class TestRunImport:
    """Chunked submission."""

    def test_chunks_and_totals(self):
        client = MagicMock()
        client.confirm.side_effect = [
            {'created': 2, 'updated': 0, 'skipped': 0, 'errors': []},
            {'created': 0, 'updated': 1, 'skipped': 1, 'errors': [{'row': 6, 'phone': 'x', 'reason': 'boom'}]},
            {'created': 1, 'updated': 0, 'skipped': 0, 'errors': []},
        ]

        summary = run_import(client, make_contacts(5), chunk_size=2)

        assert [len(call.args[0]) for call in client.confirm.call_args_list] == [2, 2, 1]
        assert summary['created'] == 3
        assert summary['updated'] == 1
        assert summary['skipped'] == 1
        assert summary['errors'] == [{'row': 6, 'phone': 'x', 'reason': 'boom'}]
        assert summary['failed_chunks'] == []

    def test_failed_chunk_not_retried(self):
        """A timed out chunk is reported; later chunks still go out."""
        client = MagicMock()
        client.timeout = 1
        client.confirm.side_effect = [
            requests.exceptions.Timeout(),
            {'created': 2, 'updated': 0, 'skipped': 0, 'errors': []},
            requests.exceptions.ConnectionError('down'),
        ]

        summary = run_import(client, make_contacts(6), chunk_size=2)

        assert client.confirm.call_count == 3
        assert summary['failed_chunks'] == [1, 3]
        assert summary['created'] == 2


class TestMain:
    """End to end with a fake server."""

    def test_missing_token(self, tmp_path, monkeypatch):
        monkeypatch.delenv('STUDIO_CRM_TOKEN', raising=False)
        path = tmp_path / 'kontakte.csv'
        path.write_text('Telefon\n0151 2345678\n', encoding='utf-8')
        assert import_contacts.main([str(path)]) == 2

    def test_import_file(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / 'kontakte.csv'
        path.write_text('Telefon;Vorname\n0151 2345678;Mia\n123;Kaputt\n', encoding='utf-8')

        fake_client = MagicMock()
        fake_client.preview.return_value = []
        fake_client.confirm.return_value = {'created': 1, 'updated': 0, 'skipped': 0, 'errors': []}
        monkeypatch.setattr(import_contacts, 'ImportClient', lambda *args, **kwargs: fake_client)

        exit_code = import_contacts.main([str(path), '--token', 'tok'])

        output = capsys.readouterr().out
        assert exit_code == 0
        assert '2 rows read, 1 importable, 1 issues' in output
        assert 'Row 3 (Telefon)' in output
        assert 'Created: 1' in output

    def test_dry_run_does_not_import(self, tmp_path, monkeypatch):
        path = tmp_path / 'kontakte.csv'
        path.write_text('Telefon\n0151 2345678\n', encoding='utf-8')

        fake_client = MagicMock()
        fake_client.preview.return_value = ['+491512345678']
        monkeypatch.setattr(import_contacts, 'ImportClient', lambda *args, **kwargs: fake_client)

        assert import_contacts.main([str(path), '--token', 'tok', '--dry-run']) == 0
        fake_client.confirm.assert_not_called()
