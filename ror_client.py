"""
Resolves a ROR ID against the ROR API, and maps the response to an OrganisationRecord.

The client makes exactly one request per call and never loops; retry policy lives in `ror_batch.py`.
Both the v2 response schema and the older, flatter v1 schema are understood.
"""

import logging
import os
from dataclasses import asdict, dataclass

import httpx

log = logging.getLogger(__name__)


## constants --------------------------------------------------------
ROR_API_URL: str = os.getenv('ROR_API_URL', 'https://api.ror.org/v2/organizations').rstrip('/')
ROR_ORG_URL_TPL: str = 'https://ror.org/{ror_id}'
UNAVAILABLE: str = 'N/A'
REQUEST_TIMEOUT: httpx.Timeout = httpx.Timeout(30.0)


@dataclass(frozen=True)
class OrganisationRecord:
    """
    Resolved registry data for one ROR ID. Missing values are `N/A`, never None.
    """

    ror_id: str
    url: str
    name: str = UNAVAILABLE
    country: str = UNAVAILABLE
    country_code: str = UNAVAILABLE
    city: str = UNAVAILABLE
    types: str = UNAVAILABLE
    status: str = UNAVAILABLE
    established: int | str = UNAVAILABLE
    website: str = UNAVAILABLE

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


## fetch outcomes ---------------------------------------------------
@dataclass(frozen=True)
class Fetched:
    record: OrganisationRecord


@dataclass(frozen=True)
class UpstreamError:
    """
    Non-2xx, non-429 response. Not retried.
    """

    status: int
    reason: str


@dataclass(frozen=True)
class TransientNetworkError:
    message: str


@dataclass(frozen=True)
class RateLimited:
    """
    HTTP 429. The batch fetcher decides whether to cool down and retry.
    """


FetchOutcome = Fetched | UpstreamError | TransientNetworkError | RateLimited


## response mapping -------------------------------------------------
def org_url(ror_id: str) -> str:
    return ROR_ORG_URL_TPL.format(ror_id=ror_id)


def placeholder_record(ror_id: str, reason: str) -> OrganisationRecord:
    """
    Builds the record used when a lookup ultimately fails; the reason takes the place of the name.
    """
    return OrganisationRecord(ror_id=ror_id, url=org_url(ror_id), name=reason)


def _or_unavailable(value: object) -> object:
    if value is None or value == '' or value == []:
        return UNAVAILABLE
    return value


def join_types(types: object) -> str:
    """
    Joins type labels. v2 may give `{'label': ...}` mappings or plain strings; v1 gives strings.
    """
    if not isinstance(types, list):
        return UNAVAILABLE
    labels: list[str] = []
    for entry in types:
        if isinstance(entry, dict):
            label: object = entry.get('label')
            if label:
                labels.append(str(label))
        elif isinstance(entry, str) and entry:
            labels.append(entry)
    return ', '.join(labels) or UNAVAILABLE


def display_name_v2(names: list[dict[str, object]]) -> str:
    """
    Prefers the `ror_display` name, then the first listed name.
    """
    for name in names:
        if isinstance(name, dict) and 'ror_display' in (name.get('types') or []) and name.get('value'):
            return str(name['value'])
    if names and isinstance(names[0], dict) and names[0].get('value'):
        return str(names[0]['value'])
    return UNAVAILABLE


def website_v2(links: list[object]) -> str:
    """
    Prefers a link typed `website`, then the first listed link.
    """
    dict_links: list[dict[str, object]] = [link for link in links if isinstance(link, dict)]
    for link in dict_links:
        if link.get('type') == 'website' and link.get('value'):
            return str(link['value'])
    if dict_links and dict_links[0].get('value'):
        return str(dict_links[0]['value'])
    return UNAVAILABLE


def record_from_v2(ror_id: str, data: dict[str, object]) -> OrganisationRecord:
    locations: list[dict[str, object]] = data.get('locations') or []  # type: ignore[assignment]
    geonames: dict[str, object] = {}
    if locations and isinstance(locations[0], dict):
        geonames = locations[0].get('geonames_details') or {}  # type: ignore[assignment]
    return OrganisationRecord(
        ror_id=ror_id,
        url=org_url(ror_id),
        name=display_name_v2(data.get('names') or []),  # type: ignore[arg-type]
        country=str(_or_unavailable(geonames.get('country_name'))),
        country_code=str(_or_unavailable(geonames.get('country_code'))),
        city=str(_or_unavailable(geonames.get('name'))),
        types=join_types(data.get('types')),
        status=str(_or_unavailable(data.get('status'))),
        established=_or_unavailable(data.get('established')),  # type: ignore[arg-type]
        website=website_v2(data.get('links') or []),  # type: ignore[arg-type]
    )


def record_from_v1(ror_id: str, data: dict[str, object]) -> OrganisationRecord:
    country: dict[str, object] = data.get('country') or {}  # type: ignore[assignment]
    addresses: list[dict[str, object]] = data.get('addresses') or []  # type: ignore[assignment]
    city: object = None
    if addresses and isinstance(addresses[0], dict):
        city = addresses[0].get('city') or (addresses[0].get('geonames_city') or {}).get('city')
    links: list[object] = data.get('links') or []  # type: ignore[assignment]
    website: str = str(links[0]) if links and links[0] else UNAVAILABLE
    return OrganisationRecord(
        ror_id=ror_id,
        url=org_url(ror_id),
        name=str(_or_unavailable(data.get('name'))),
        country=str(_or_unavailable(country.get('country_name'))),
        country_code=str(_or_unavailable(country.get('country_code'))),
        city=str(_or_unavailable(city)),
        types=join_types(data.get('types')),
        status=str(_or_unavailable(data.get('status'))),
        established=_or_unavailable(data.get('established')),  # type: ignore[arg-type]
        website=website,
    )


def record_from_json(ror_id: str, data: dict[str, object]) -> OrganisationRecord:
    """
    Maps an API response to a record; checks for the richer v2 shape first.
    """
    if isinstance(data.get('names'), list) or isinstance(data.get('locations'), list):
        return record_from_v2(ror_id, data)
    return record_from_v1(ror_id, data)


## client -----------------------------------------------------------
class RorClient:
    """
    Looks up one ROR ID per call.
    - 2xx with a JSON body -> Fetched
    - 429 -> RateLimited
    - other statuses -> UpstreamError
    - request failures (transport errors, redirect loops, undecodable bodies), or a non-JSON body -> TransientNetworkError
    """

    def __init__(self, client: httpx.Client, base_url: str = ROR_API_URL) -> None:
        self.client: httpx.Client = client
        self.base_url: str = base_url.rstrip('/')

    def lookup_url(self, ror_id: str) -> str:
        return f'{self.base_url}/{ror_id}'

    def resolve(self, ror_id: str) -> FetchOutcome:
        url: str = self.lookup_url(ror_id)
        log.debug(f'trying lookup url, ``{url}``')
        try:
            resp: httpx.Response = self.client.get(url, timeout=REQUEST_TIMEOUT, follow_redirects=True)
        except httpx.RequestError as exc:
            log.warning(f'network error for ``{ror_id}``: {exc!r}')
            return TransientNetworkError(str(exc) or exc.__class__.__name__)
        if resp.status_code == 429:
            log.warning(f'rate limited on ``{ror_id}``')
            return RateLimited()
        if not resp.is_success:
            log.warning(f'failed to fetch data for ``{ror_id}``: {resp.status_code} {resp.reason_phrase}')
            return UpstreamError(status=resp.status_code, reason=resp.reason_phrase)
        try:
            data: object = resp.json()
        except ValueError as exc:
            log.warning(f'unreadable body for ``{ror_id}``: {exc!r}')
            return TransientNetworkError(f'invalid JSON response: {exc}')
        if not isinstance(data, dict):
            return TransientNetworkError('unexpected JSON response shape')
        return Fetched(record_from_json(ror_id, data))
