# services/spreadsheet.py
"""
Read uploaded CSV / XLSX files into raw rows (column header -> cell text).
Only the first worksheet of a workbook is read.
"""

import csv
from datetime import date, datetime
from io import BytesIO, StringIO

from openpyxl import load_workbook

from services.exceptions import SpreadsheetError

CSV_EXTENSIONS = ('.csv',)
XLSX_EXTENSIONS = ('.xlsx', '.xlsm')


def is_supported_file(filename: str) -> bool:
    name = (filename or '').lower()
    return name.endswith(CSV_EXTENSIONS + XLSX_EXTENSIONS)


def _cell_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _decode(data: bytes) -> str:
    try:
        return data.decode('utf-8-sig')
    except UnicodeDecodeError:
        # Excel on Windows exports ANSI
        return data.decode('cp1252')


def read_csv_rows(data: bytes) -> list:
    text = _decode(data)
    if not text.strip():
        return []

    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=',;\t')
    except csv.Error:
        dialect = csv.excel

    reader = csv.DictReader(StringIO(text, newline=None), dialect=dialect)
    if not reader.fieldnames:
        return []

    rows = []
    for row in reader:
        cleaned = {
            (key or '').strip(): _cell_text(value)
            for key, value in row.items()
            if key is not None
        }
        if any(cleaned.values()):
            rows.append(cleaned)
    return rows


def read_xlsx_rows(data: bytes) -> list:
    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise SpreadsheetError('failed to parse file', {'error': str(e)})

    try:
        if not workbook.sheetnames:
            raise SpreadsheetError('no sheets found in file')
        sheet = workbook[workbook.sheetnames[0]]

        row_iter = sheet.iter_rows(values_only=True)
        header = next(row_iter, None)
        if header is None:
            return []
        columns = [_cell_text(cell) for cell in header]

        rows = []
        for values in row_iter:
            row = {
                column: _cell_text(value)
                for column, value in zip(columns, values)
                if column
            }
            if any(row.values()):
                rows.append(row)
        return rows
    finally:
        workbook.close()


def read_rows(data: bytes, filename: str) -> list:
    """
    Parse an uploaded spreadsheet into raw rows.

    Raises:
        SpreadsheetError: unsupported extension or unreadable content
    """
    name = (filename or '').lower()
    if name.endswith(CSV_EXTENSIONS):
        try:
            return read_csv_rows(data)
        except csv.Error as e:
            raise SpreadsheetError('failed to parse file', {'error': str(e)})
    if name.endswith(XLSX_EXTENSIONS):
        return read_xlsx_rows(data)
    raise SpreadsheetError('unsupported file type', {'name': name})
