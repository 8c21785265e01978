"""
Reading uploaded CSV and XLSX files.

Run with: python -m pytest tests/test_spreadsheet.py -v
"""

from datetime import datetime
from io import BytesIO

import pytest
from openpyxl import Workbook

from services.exceptions import SpreadsheetError
from services.spreadsheet import is_supported_file, read_rows


def build_xlsx(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestCsv:
    """CSV exports from Excel and Google Sheets."""

    def test_semicolon_delimited(self):
        """German Excel exports use semicolons."""
        data = 'Telefon;Vorname;Standort\n0151 2345678;Mia;Berlin\n'.encode('utf-8')
        rows = read_rows(data, 'kontakte.csv')
        assert rows == [{'Telefon': '0151 2345678', 'Vorname': 'Mia', 'Standort': 'Berlin'}]

    def test_comma_delimited_with_bom(self):
        """The UTF-8 byte order mark does not end up in the first header."""
        data = '\ufeffTelefon,Vorname\n0151 2345678,Jörg\n'.encode('utf-8')
        rows = read_rows(data, 'KONTAKTE.CSV')
        assert rows[0]['Telefon'] == '0151 2345678'
        assert rows[0]['Vorname'] == 'Jörg'

    def test_windows_encoding(self):
        """cp1252 files are decoded as well."""
        data = 'Telefon;Formular | Größe Tattoo\n0151 2345678;groß\n'.encode('cp1252')
        rows = read_rows(data, 'kontakte.csv')
        assert rows[0]['Formular | Größe Tattoo'] == 'groß'

    def test_blank_rows_skipped(self):
        """Rows without any value are ignored."""
        data = 'Telefon;Vorname\n;\n0151 2345678;Mia\n'.encode('utf-8')
        assert len(read_rows(data, 'kontakte.csv')) == 1

    def test_empty_file(self):
        assert read_rows(b'', 'kontakte.csv') == []


class TestXlsx:
    """Excel workbooks."""

    def test_first_sheet_read(self):
        """Header row plus data rows, numbers and dates as text."""
        data = build_xlsx([
            ['Telefon', 'Vorname', 'Datum Erstgespräch'],
            ['0151 2345678', 'Mia', datetime(2024, 2, 5)],
            [None, None, None],
            [491712345678, 'Tom', None],
        ])
        rows = read_rows(data, 'kontakte.xlsx')

        assert len(rows) == 2
        assert rows[0]['Datum Erstgespräch'] == '2024-02-05T00:00:00'
        assert rows[1]['Telefon'] == '491712345678'
        assert rows[1]['Datum Erstgespräch'] == ''

    def test_corrupt_workbook(self):
        """Garbage bytes raise a SpreadsheetError."""
        with pytest.raises(SpreadsheetError):
            read_rows(b'not a zip file', 'kontakte.xlsx')


class TestFileTypes:
    """Supported extensions."""

    def test_supported(self):
        assert is_supported_file('a.csv')
        assert is_supported_file('a.XLSX')
        assert not is_supported_file('a.xls')
        assert not is_supported_file('')

    def test_unsupported_raises(self):
        with pytest.raises(SpreadsheetError) as exc:
            read_rows(b'data', 'kontakte.pdf')
        assert exc.value.details == {'name': 'kontakte.pdf'}
