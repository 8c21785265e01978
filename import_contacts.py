#!/usr/bin/env python3
"""
Import a studio spreadsheet (CSV / XLSX) through the running API.

Rows are mapped locally, the server is asked which phones already exist,
and the contacts are then sent in chunks. Every chunk is its own request
and commits on its own; a chunk that fails or times out is reported and
not retried.

    python import_contacts.py kontakte.xlsx --url http://localhost:5005 --token <access token>
"""

import argparse
import logging
import os
import sys

import requests

from config import Config
from services.exceptions import SpreadsheetError
from services.import_service import DEFAULT_CHUNK_SIZE, chunked, map_rows
from services.spreadsheet import read_rows

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class ImportClient:
    """Thin wrapper around the import endpoints."""

    def __init__(self, base_url, token, timeout=Config.IMPORT_REQUEST_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
        })

    def preview(self, phones):
        response = self.session.post(
            f'{self.base_url}/api/import/preview',
            json={'phones': phones},
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json().get('existing', [])

    def confirm(self, contacts):
        response = self.session.post(
            f'{self.base_url}/api/import/confirm',
            json={'contacts': [contact.to_dict() for contact in contacts]},
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()


def run_import(client, contacts, chunk_size=DEFAULT_CHUNK_SIZE):
    """
    Send all contacts chunk by chunk and add up the results.

    Returns:
        dict with created/updated/skipped counts, the row errors and the
        numbers (1-based) of chunks that failed
    """
    summary = {'created': 0, 'updated': 0, 'skipped': 0, 'errors': [], 'failed_chunks': []}
    chunks = chunked(contacts, chunk_size)

    for number, chunk in enumerate(chunks, start=1):
        try:
            result = client.confirm(chunk)
        except requests.exceptions.Timeout:
            logger.error(f"Chunk {number}/{len(chunks)} timed out after {client.timeout}s")
            summary['failed_chunks'].append(number)
            continue
        except requests.exceptions.RequestException as e:
            logger.error(f"Chunk {number}/{len(chunks)} failed: {e}")
            summary['failed_chunks'].append(number)
            continue

        summary['created'] += result.get('created', 0)
        summary['updated'] += result.get('updated', 0)
        summary['skipped'] += result.get('skipped', 0)
        summary['errors'].extend(result.get('errors', []))
        logger.info(
            f"Chunk {number}/{len(chunks)}: {result.get('created', 0)} created, "
            f"{result.get('updated', 0)} updated, {result.get('skipped', 0)} skipped"
        )

    return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import contacts from a CSV or XLSX file")
    parser.add_argument("file", help="Spreadsheet to import")
    parser.add_argument("--url", default=os.getenv('STUDIO_CRM_URL', 'http://localhost:5005'),
                        help="Base URL of the API")
    parser.add_argument("--token", default=os.getenv('STUDIO_CRM_TOKEN'),
                        help="Access token (defaults to STUDIO_CRM_TOKEN)")
    parser.add_argument("--chunk-size", type=int, default=Config.IMPORT_CHUNK_SIZE)
    parser.add_argument("--timeout", type=int, default=Config.IMPORT_REQUEST_TIMEOUT,
                        help="Seconds per request")
    parser.add_argument("--dry-run", action="store_true", help="Only map and preview, do not import")
    args = parser.parse_args(argv)

    if not args.token:
        print("An access token is required (--token or STUDIO_CRM_TOKEN)")
        return 2

    try:
        with open(args.file, 'rb') as f:
            rows = read_rows(f.read(), args.file)
    except (OSError, SpreadsheetError) as e:
        print(f"Could not read {args.file}: {e}")
        return 1

    contacts, issues = map_rows(rows)
    print(f"{len(rows)} rows read, {len(contacts)} importable, {len(issues)} issues")
    for issue in issues:
        print(f"  Row {issue.row} ({issue.field}): {issue.message}")

    if not contacts:
        return 1

    client = ImportClient(args.url, args.token, timeout=args.timeout)

    try:
        existing = set(client.preview([contact.phone_e164 for contact in contacts]))
    except requests.exceptions.RequestException as e:
        print(f"Preview failed: {e}")
        return 1

    print(f"{len(contacts) - len(existing)} new, {len(existing)} already known")
    if args.dry_run:
        return 0

    summary = run_import(client, contacts, chunk_size=args.chunk_size)

    print(f"Created: {summary['created']}")
    print(f"Updated: {summary['updated']}")
    print(f"Skipped: {summary['skipped']}")
    for error in summary['errors']:
        print(f"  Row {error.get('row')} ({error.get('phone')}): {error.get('reason')}")
    if summary['failed_chunks']:
        print(f"Failed chunks (not retried): {', '.join(str(n) for n in summary['failed_chunks'])}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
