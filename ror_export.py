"""
Exports extracted ROR IDs and resolved organisation records.

- ids as plain text, one per line
- records as pretty-printed JSON
- records as CSV (basic, or extended with id/url/type/status columns)
- ids to the clipboard
"""

import json
import logging
import re
from collections.abc import Callable
from pathlib import Path

import pyperclip

from ror_client import UNAVAILABLE, OrganisationRecord

log = logging.getLogger(__name__)


## constants --------------------------------------------------------
IDS_FILENAME: str = 'ror-ids.txt'
JSON_FILENAME: str = 'ror-organisations.json'
CSV_FILENAME: str = 'ror-organisations.csv'
CSV_HEADER: list[str] = ['Name', 'Website', 'Location', 'Country', 'Active']
CSV_EXTENDED_HEADER: list[str] = ['ID', 'URL', 'Name', 'Website', 'Location', 'Country', 'Type', 'Status', 'Active']
PROTOCOL_PATTERN: re.Pattern = re.compile(r'^https?://')
CSV_SPECIAL_CHARS: tuple[str, ...] = (',', '"', '\n', '\r')


class ExportError(Exception):
    """
    Raised when there's nothing to export yet.
    """


def strip_protocol(website: str) -> str:
    """
    Removes a leading `http://` or `https://`; leaves bare domains and `N/A` alone.
    """
    if website == UNAVAILABLE or not website.strip():
        return website
    return PROTOCOL_PATTERN.sub('', website)


def is_active(status: str) -> str:
    return 'Yes' if status and status.lower() == 'active' else 'No'


def csv_field(value: object) -> str:
    """
    Quotes a field containing a comma, quote, or newline; doubles any inner quotes.
    eg `Acme, "Inc"` is wrapped in quotes, and each of its inner quotes is written twice.
    """
    if value is None:
        return '""'
    text: str = str(value)
    if any(char in text for char in CSV_SPECIAL_CHARS):
        return '"' + text.replace('"', '""') + '"'
    return text


def ids_to_text(ids: list[str]) -> str:
    """
    Called by: RorSession.export_ids()
    """
    if not ids:
        raise ExportError('No IDs to download. Extract IDs first.')
    return '\n'.join(ids)


def record_to_export_dict(record: OrganisationRecord) -> dict[str, str]:
    return {
        'name': record.name,
        'website': strip_protocol(record.website),
        'location': record.city,
        'country': record.country,
        'active': is_active(record.status),
    }


def records_to_json(records: list[OrganisationRecord]) -> str:
    """
    Called by: RorSession.export_json()
    """
    if not records:
        raise ExportError('No organisation data to download. Fetch details first.')
    export_list: list[dict[str, str]] = [record_to_export_dict(record) for record in records]
    jsn: str = json.dumps(export_list, ensure_ascii=False, indent=2)
    return jsn


def records_to_csv(records: list[OrganisationRecord], extended: bool = False) -> str:
    """
    Builds CSV text with a trailing newline after every row, header included.
    Called by: RorSession.export_csv()
    """
    if not records:
        raise ExportError('No organisation data to download. Fetch details first.')
    header: list[str] = CSV_EXTENDED_HEADER if extended else CSV_HEADER
    lines: list[str] = [','.join(header)]
    for record in records:
        row: list[object] = [
            record.name,
            strip_protocol(record.website),
            record.city,
            record.country,
            is_active(record.status),
        ]
        if extended:
            row = [record.ror_id, record.url, *row[:4], record.types, record.status, row[4]]
        lines.append(','.join(csv_field(value) for value in row))
    return '\n'.join(lines) + '\n'


def save_export(path: Path, content: str) -> Path:
    """
    Writes export content as UTF-8 and returns the path written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('w', encoding='utf-8', newline='') as fh:
        fh.write(content)
    log.debug(f'saved export to ``{path}``')
    return path


def copy_to_clipboard(text: str, copier: Callable[[str], None] | None = None) -> bool:
    """
    Copies text to the clipboard; reports failure as False instead of raising.
    """
    copy: Callable[[str], None] = copier if copier is not None else pyperclip.copy
    try:
        copy(text)
    except pyperclip.PyperclipException as exc:
        log.warning(f'failed to copy to clipboard: {exc!r}')
        return False
    return True
