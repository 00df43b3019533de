"""
Drives the RorClient over a list of ROR IDs, one request at a time.

It's server-friendly, in that requests are strictly sequential with a slight pause between them,
  and it backs off on rate-limit (429) and network failures.

Every identifier ends up with exactly one record; failed lookups get a placeholder record
  whose name describes the failure, so `len(records) == len(ids)` always holds.
"""

import enum
import logging
import time
from collections.abc import Callable, Iterable

from tqdm import tqdm

from ror_client import (
    Fetched,
    OrganisationRecord,
    RateLimited,
    RorClient,
    TransientNetworkError,
    UpstreamError,
    placeholder_record,
)

log = logging.getLogger(__name__)


## default knobs ----------------------------------------------------
MAX_TRIES: int = 3                          # attempts per id, for rate-limit and network outcomes
RATE_LIMIT_COOLDOWN_SECONDS: int = 300      # ROR allows 2000 requests per 5 minutes
NETWORK_RETRY_SECONDS: float = 10.0
REQUEST_PAUSE_SECONDS: float = 0.2          # polite pause between requests
LARGE_BATCH_THRESHOLD: int = 100
LARGE_BATCH_PAUSE_SECONDS: float = 2.0
VERY_LARGE_BATCH_THRESHOLD: int = 1000

RATE_LIMIT_EXHAUSTED: str = 'Rate limit exceeded - max retries reached'
NETWORK_EXHAUSTED: str = 'Network error - max retries reached'


class FetchState(enum.Enum):
    PENDING = 'pending'
    ATTEMPTING = 'attempting'
    RETRYING = 'retrying'
    SUCCESS = 'success'
    FAILED = 'failed'           # http error; never retried
    EXHAUSTED = 'exhausted'     # retry budget used up


class BatchResult:
    """
    Records in input order, plus success/failure counts.
    """

    def __init__(self) -> None:
        self.records: list[OrganisationRecord] = []
        self.states: list[FetchState] = []
        self.succeeded: int = 0
        self.failed: int = 0

    def add(self, record: OrganisationRecord, state: FetchState) -> None:
        self.records.append(record)
        self.states.append(state)
        if state is FetchState.SUCCESS:
            self.succeeded += 1
        else:
            self.failed += 1

    def summary_message(self) -> str:
        message: str = f'Successfully fetched details for {self.succeeded} organisation(s)!'
        if self.failed > 0:
            message += f' {self.failed} request(s) failed (see table for details).'
        if len(self.records) > VERY_LARGE_BATCH_THRESHOLD:
            message += ' Note: Large batches may hit ROR API rate limits (2000 requests per 5 minutes).'
        return message


def format_countdown(seconds: int) -> str:
    """
    Formats seconds as `M:SS`, eg `4:05`.
    """
    minutes, secs = divmod(seconds, 60)
    return f'{minutes}:{secs:02d}'


def _sleep(backoff_s: float) -> None:
    """
    Sleeps for given seconds; centralizes sleep for easier tweaking.
    """
    time.sleep(backoff_s)


class BatchFetcher:
    """
    Resolves ids sequentially with a per-id state machine:
      PENDING -> ATTEMPTING -> SUCCESS | RETRYING | FAILED | EXHAUSTED, where RETRYING -> ATTEMPTING.
    - RateLimited: cool down (with a once-a-second countdown message), then retry.
    - TransientNetworkError: wait a shorter interval, then retry.
    - UpstreamError: placeholder record, no retry.
    - After an id resolved on its first attempt, pause briefly before the next one.
    `sleep` and `progress` are injectable so tests can run without real delays.
    """

    def __init__(
        self,
        client: RorClient,
        *,
        sleep: Callable[[float], None] = _sleep,
        max_tries: int = MAX_TRIES,
        rate_limit_cooldown_s: int = RATE_LIMIT_COOLDOWN_SECONDS,
        network_retry_s: float = NETWORK_RETRY_SECONDS,
        request_pause_s: float = REQUEST_PAUSE_SECONDS,
        show_progress_bar: bool = True,
    ) -> None:
        self.client: RorClient = client
        self.sleep: Callable[[float], None] = sleep
        self.max_tries: int = max_tries
        self.rate_limit_cooldown_s: int = rate_limit_cooldown_s
        self.network_retry_s: float = network_retry_s
        self.request_pause_s: float = request_pause_s
        self.show_progress_bar: bool = show_progress_bar
        self._progress: Callable[[str], None] | None = None
        self._bar: tqdm | None = None

    def report(self, message: str) -> None:
        log.debug(message)
        if self._bar is not None and not self._bar.disable:
            self._bar.set_postfix_str(message, refresh=True)
        if self._progress is not None:
            self._progress(message)

    def run_batch(self, ids: Iterable[str], progress: Callable[[str], None] | None = None) -> BatchResult:
        """
        Fetches every id exactly once, in order; never aborts on a single id's failure.
        Called by: RorSession.fetch()
        """
        id_list: list[str] = list(ids)
        total: int = len(id_list)
        result = BatchResult()
        self._progress = progress
        try:
            with tqdm(total=total, desc='Fetching ROR records', disable=not self.show_progress_bar) as bar:
                self._bar = bar
                if total > LARGE_BATCH_THRESHOLD:
                    self.report(
                        f'Processing {total} IDs. Note: ROR API allows 2000 requests per 5 minutes.'
                    )
                    self.sleep(LARGE_BATCH_PAUSE_SECONDS)
                for index, ror_id in enumerate(id_list, start=1):
                    record, state, tries = self.fetch_one(ror_id, index, total)
                    result.add(record, state)
                    bar.update(1)
                    ## pause before the next request, unless we already waited on a retry
                    if index < total and tries == 1:
                        self.sleep(self.request_pause_s)
        finally:
            self._bar = None
            self._progress = None
        log.info(result.summary_message())
        return result

    def fetch_one(self, ror_id: str, index: int, total: int) -> tuple[OrganisationRecord, FetchState, int]:
        """
        Runs the state machine for a single id.
        Returns the record, its terminal state, and the number of attempts made.
        Called by: run_batch()
        """
        state: FetchState = FetchState.PENDING
        tries: int = 0
        while True:
            state = FetchState.ATTEMPTING
            tries += 1
            self.report(f'Fetching {index} of {total}: {ror_id}')
            outcome = self.client.resolve(ror_id)

            if isinstance(outcome, Fetched):
                return outcome.record, FetchState.SUCCESS, tries

            if isinstance(outcome, UpstreamError):
                return placeholder_record(ror_id, f'Error {outcome.status}: {outcome.reason}'), FetchState.FAILED, tries

            if isinstance(outcome, RateLimited):
                if tries >= self.max_tries:
                    log.warning(f'rate limit exceeded and max retries reached for ``{ror_id}``')
                    return placeholder_record(ror_id, RATE_LIMIT_EXHAUSTED), FetchState.EXHAUSTED, tries
                state = FetchState.RETRYING
                self.cool_down(ror_id, tries)
                continue

            if isinstance(outcome, TransientNetworkError):
                if tries >= self.max_tries:
                    log.warning(f'network error and max retries reached for ``{ror_id}``: {outcome.message}')
                    return placeholder_record(ror_id, NETWORK_EXHAUSTED), FetchState.EXHAUSTED, tries
                state = FetchState.RETRYING
                self.report(
                    f'Network error. Retrying {tries}/{self.max_tries} for {ror_id} in {self.network_retry_s:g} seconds...'
                )
                self.sleep(self.network_retry_s)
                continue

            raise TypeError(f'unexpected fetch outcome, ``{outcome!r}``; state was {state}')

    def cool_down(self, ror_id: str, retry_number: int) -> None:
        """
        Waits out the rate-limit window one second at a time, reporting a live countdown.
        Called by: fetch_one()
        """
        log.warning(
            f'ROR API rate limit exceeded; waiting {self.rate_limit_cooldown_s}s before retry '
            f'{retry_number}/{self.max_tries} for ``{ror_id}``'
        )
        for remaining in range(self.rate_limit_cooldown_s, 0, -1):
            self.report(
                f'Rate limit exceeded. Retrying in {format_countdown(remaining)} '
                f'({retry_number}/{self.max_tries}) for {ror_id}'
            )
            self.sleep(1)
