# /// script
# requires-python = "==3.12.*"
# dependencies = [
#   "httpx~=0.28.0",
#   "tqdm",
#   "humanize",
#   "pyperclip"
# ]
# ///

"""
Extracts ROR IDs from text, looks each one up in the ROR API, and prints the results as JSON.

Usage:
  uv run ./extract_ror_ids.py --input-file "../notes.txt" --output-dir "../output_dir"
  cat notes.txt | uv run ./extract_ror_ids.py --ids-only
  uv run ./extract_ror_ids.py --sample

Args:
  --input-file (optional) -- text to scan; reads stdin when omitted
  --sample (optional) -- scan built-in sample text instead
  --ids-only (optional) -- skip the API lookups
  --output-dir (optional) -- write ror-ids.txt, ror-organisations.json, ror-organisations.csv
  --extended-csv (optional) -- add ID/URL/Type/Status columns to the csv
  --copy (optional) -- copy the ids to the clipboard
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import httpx
import humanize

from ror_batch import BatchFetcher, BatchResult
from ror_client import ROR_API_URL, RorClient
from ror_export import CSV_FILENAME, IDS_FILENAME, JSON_FILENAME, ExportError, save_export
from ror_ids import InputError
from ror_session import RorSession

## setup logging ----------------------------------------------------
log_level_name: str = os.getenv('LOG_LEVEL', 'INFO').upper()
log_level = getattr(
    logging, log_level_name, logging.INFO
)  # maps the string name to the corresponding logging level constant; defaults to INFO
logging.basicConfig(
    level=log_level,
    format='[%(asctime)s] %(levelname)s [%(module)s-%(funcName)s()::%(lineno)d] %(message)s',
    datefmt='%d/%b/%Y %H:%M:%S',
)
if log_level <= logging.INFO:
    for noisy in ('httpx', 'httpcore'):  # prevent httpx from logging
        lg = logging.getLogger(noisy)
        lg.setLevel(logging.WARNING)
        lg.propagate = False  # don't bubble up to root
log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse cli args.
    """
    parser = argparse.ArgumentParser(
        description='Extracts ROR IDs from text and fetches organisation details from the ROR API.'
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument('--input-file', default=None, help='Text file to scan; reads stdin when omitted')
    source.add_argument('--sample', action='store_true', help='Scan built-in sample text')
    parser.add_argument('--ids-only', action='store_true', help='Only extract ids; skip the ROR API lookups')
    parser.add_argument('--output-dir', default=None, help='Directory to write export files to')
    parser.add_argument('--extended-csv', action='store_true', help='Add ID/URL/Type/Status columns to the csv')
    parser.add_argument('--copy', action='store_true', help='Copy the extracted ids to the clipboard')
    return parser.parse_args(argv)


def read_input_text(args: argparse.Namespace) -> str:
    """
    Returns the text to scan, from sample, file, or stdin.
    An unreadable input file is reported as an InputError.
    Called by: main()
    """
    if args.sample:
        return RorSession.load_sample()
    if args.input_file:
        path: Path = Path(args.input_file).expanduser().resolve()
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise InputError(f'Input file not found: {path}')
        except UnicodeDecodeError:
            raise InputError(f'Input file is not valid UTF-8 text: {path}')
    return sys.stdin.read()


def write_exports(session: RorSession, out_dir: Path, extended_csv: bool) -> dict[str, str]:
    """
    Writes the export files that have data, and returns their human-readable sizes.
    Called by: main()
    """
    written: dict[str, Path] = {}
    written[IDS_FILENAME] = save_export(out_dir / IDS_FILENAME, session.export_ids())
    if session.records:
        written[JSON_FILENAME] = save_export(out_dir / JSON_FILENAME, session.export_json())
        written[CSV_FILENAME] = save_export(out_dir / CSV_FILENAME, session.export_csv(extended=extended_csv))
    return {str(path): humanize.naturalsize(path.stat().st_size) for path in written.values()}


def build_response(session: RorSession, start_time: datetime, exports: dict[str, str]) -> str:
    """
    Builds the JSON response printed at the end of a run.
    Called by: main()
    """
    time_taken: float = (datetime.now() - start_time).total_seconds()
    extracted = session.extracted
    result: BatchResult | None = session.result
    meta: dict[str, object] = {
        'time_stamp': start_time.isoformat(),
        'time_taken': humanize.precisedelta(time_taken, minimum_unit='milliseconds'),
        'total_found': extracted.total_found if extracted is not None else 0,
        'unique_count': extracted.unique_count if extracted is not None else 0,
        'ror_api_url': ROR_API_URL,
    }
    rsp_dct: dict[str, object] = {
        'meta': meta,
        'ids': session.ids,
        'records': [record.as_dict() for record in session.records],
    }
    if result is not None:
        rsp_dct['summary'] = {
            'succeeded': result.succeeded,
            'failed': result.failed,
            'message': result.summary_message(),
        }
    if exports:
        rsp_dct['exports'] = exports
    jsn: str = json.dumps(rsp_dct, ensure_ascii=False, indent=2)
    return jsn


def main(argv: list[str] | None = None) -> int:
    """
    Main manager.

    Flow:
    - Reads text; extracts ids (a blank or id-free text is reported, exit 1).
    - Unless --ids-only, fetches each id sequentially from the ROR API.
    - Optionally writes export files and copies ids to the clipboard.
    - Prints a JSON response.

    Called by: dundermain
    """
    args: argparse.Namespace = parse_args(argv)
    start_time: datetime = datetime.now()
    try:
        text: str = read_input_text(args)
    except InputError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    headers: dict[str, str] = {'user-agent': 'ror-api-tools/1.0', 'accept': 'application/json'}
    with httpx.Client(headers=headers) as client:
        session = RorSession(BatchFetcher(RorClient(client), show_progress_bar=sys.stderr.isatty()))
        try:
            session.extract(text)
            if not args.ids_only:
                result: BatchResult = session.fetch()
                print(result.summary_message(), file=sys.stderr)
            exports: dict[str, str] = {}
            if args.output_dir:
                out_dir: Path = Path(args.output_dir).expanduser().resolve()
                exports = write_exports(session, out_dir, args.extended_csv)
            if args.copy:
                session.copy_ids()
        except (InputError, ExportError) as exc:
            print(str(exc), file=sys.stderr)
            return 1

    jsn: str = build_response(session, start_time, exports)
    print(jsn)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
