"""
Holds the working state for one user session: the current extracted ids and fetched records.

Each extraction replaces the previous ids (and drops any records); each fetch replaces the records.
Nothing is persisted.
"""

import logging

from ror_batch import BatchFetcher, BatchResult
from ror_client import OrganisationRecord
from ror_export import ExportError, copy_to_clipboard, ids_to_text, records_to_csv, records_to_json
from ror_ids import SAMPLE_TEXT, ExtractedSet, InputError, extract

log = logging.getLogger(__name__)


class RorSession:
    def __init__(self, fetcher: BatchFetcher | None = None) -> None:
        self.fetcher: BatchFetcher | None = fetcher
        self.extracted: ExtractedSet | None = None
        self.result: BatchResult | None = None

    @property
    def ids(self) -> list[str]:
        return list(self.extracted.ids) if self.extracted is not None else []

    @property
    def records(self) -> list[OrganisationRecord]:
        return list(self.result.records) if self.result is not None else []

    @staticmethod
    def load_sample() -> str:
        return SAMPLE_TEXT

    def extract(self, text: str) -> ExtractedSet:
        """
        Extracts ids from text and replaces the working set.
        On InputError the previous state is left untouched.
        """
        extracted: ExtractedSet = extract(text)
        self.extracted = extracted
        self.result = None
        log.info(f'Found {extracted.unique_count} unique ROR ID(s)! ({extracted.total_found} match(es) in total)')
        return extracted

    def fetch(self, progress=None) -> BatchResult:
        """
        Resolves the current ids, replacing any previous records.
        """
        if not self.ids:
            raise InputError('No ROR IDs to fetch. Extract IDs first.')
        if self.fetcher is None:
            raise RuntimeError('no BatchFetcher configured for this session')
        self.result = None
        result: BatchResult = self.fetcher.run_batch(self.ids, progress=progress)
        self.result = result
        return result

    def extract_and_fetch(self, text: str, progress=None) -> BatchResult:
        self.extract(text)
        return self.fetch(progress=progress)

    def clear(self) -> None:
        self.extracted = None
        self.result = None
        log.info('Results cleared!')

    ## exports ------------------------------------------------------
    def export_ids(self) -> str:
        return ids_to_text(self.ids)

    def export_json(self) -> str:
        return records_to_json(self.records)

    def export_csv(self, extended: bool = False) -> str:
        return records_to_csv(self.records, extended=extended)

    def copy_ids(self, copier=None) -> bool:
        """
        Copies the newline-joined ids to the clipboard; returns False if the clipboard is unavailable.
        """
        if not self.ids:
            raise ExportError('No IDs to copy. Extract IDs first.')
        copied: bool = copy_to_clipboard('\n'.join(self.ids), copier=copier)
        if copied:
            log.info('IDs copied to clipboard!')
        else:
            log.warning('Failed to copy to clipboard. Please try downloading instead.')
        return copied
