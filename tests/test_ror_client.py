import json
import unittest
from pathlib import Path

import httpx

from ror_batch import NETWORK_EXHAUSTED, BatchFetcher
from ror_client import (
    UNAVAILABLE,
    Fetched,
    OrganisationRecord,
    RateLimited,
    RorClient,
    TransientNetworkError,
    UpstreamError,
    join_types,
    placeholder_record,
    record_from_json,
)

TEST_DATA_DIR: Path = Path(__file__).parent / 'test_data'


def load_fixture(name: str) -> dict:
    fixture_path: Path = TEST_DATA_DIR / name
    with fixture_path.open('r', encoding='utf-8') as fh:
        return json.load(fh)


def make_client(handler) -> RorClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return RorClient(http_client, base_url='https://api.ror.org/v2/organizations')


class TestRecordFromJson(unittest.TestCase):
    """
    Tests mapping of v2 and v1 API responses.
    """

    def test_v2_response(self) -> None:
        """
        Checks the v2 mapping: ror_display name, first location, website-typed link preferred over first link.
        """
        computed: OrganisationRecord = record_from_json('03vek6s52', load_fixture('ror_v2_03vek6s52.json'))
        expected = OrganisationRecord(
            ror_id='03vek6s52',
            url='https://ror.org/03vek6s52',
            name='Harvard University',
            country='United States',
            country_code='US',
            city='Cambridge',
            types='education, funder',
            status='active',
            established=1636,
            website='https://www.harvard.edu',
        )
        self.assertEqual(computed, expected)

    def test_v1_response(self) -> None:
        """
        Checks the flatter v1 mapping.
        """
        computed: OrganisationRecord = record_from_json('00hx57361', load_fixture('ror_v1_00hx57361.json'))
        expected = OrganisationRecord(
            ror_id='00hx57361',
            url='https://ror.org/00hx57361',
            name='Princeton University',
            country='United States',
            country_code='US',
            city='Princeton',
            types='Education',
            status='active',
            established=1746,
            website='http://www.princeton.edu/',
        )
        self.assertEqual(computed, expected)

    def test_v2_fallbacks(self) -> None:
        """
        Checks first-name and first-link fallbacks, and the N/A sentinel for missing fields.
        """
        data: dict = {
            'names': [{'value': 'Some Institute', 'types': ['label']}],
            'links': [{'type': 'wikipedia', 'value': 'https://en.wikipedia.org/wiki/Some'}],
            'locations': [],
            'types': [{'label': 'Facility'}],
        }
        computed: OrganisationRecord = record_from_json('05abc1234', data)
        self.assertEqual(computed.name, 'Some Institute')
        self.assertEqual(computed.website, 'https://en.wikipedia.org/wiki/Some')
        self.assertEqual(computed.types, 'Facility')
        self.assertEqual(computed.city, UNAVAILABLE)
        self.assertEqual(computed.country, UNAVAILABLE)
        self.assertEqual(computed.status, UNAVAILABLE)
        self.assertEqual(computed.established, UNAVAILABLE)

    def test_empty_names_and_links(self) -> None:
        computed: OrganisationRecord = record_from_json('05abc1234', {'names': [], 'links': []})
        self.assertEqual(computed.name, UNAVAILABLE)
        self.assertEqual(computed.website, UNAVAILABLE)

    def test_join_types(self) -> None:
        self.assertEqual(join_types(['education', {'label': 'Funder'}]), 'education, Funder')
        self.assertEqual(join_types([]), UNAVAILABLE)
        self.assertEqual(join_types(None), UNAVAILABLE)

    def test_placeholder_record(self) -> None:
        computed: OrganisationRecord = placeholder_record('03vek6s52', 'Error 404: Not Found')
        self.assertEqual(computed.name, 'Error 404: Not Found')
        self.assertEqual(computed.url, 'https://ror.org/03vek6s52')
        self.assertEqual(computed.website, UNAVAILABLE)


class TestRorClient(unittest.TestCase):
    """
    Tests RorClient.resolve() against a mock transport.
    """

    def test_success(self) -> None:
        seen_urls: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_urls.append(str(request.url))
            return httpx.Response(200, json=load_fixture('ror_v2_03vek6s52.json'))

        outcome = make_client(handler).resolve('03vek6s52')
        self.assertIsInstance(outcome, Fetched)
        self.assertEqual(outcome.record.name, 'Harvard University')
        self.assertEqual(seen_urls, ['https://api.ror.org/v2/organizations/03vek6s52'])

    def test_rate_limited(self) -> None:
        outcome = make_client(lambda request: httpx.Response(429)).resolve('03vek6s52')
        self.assertEqual(outcome, RateLimited())

    def test_http_error(self) -> None:
        outcome = make_client(lambda request: httpx.Response(404)).resolve('03vek6s52')
        self.assertEqual(outcome, UpstreamError(status=404, reason='Not Found'))

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        outcome = make_client(handler).resolve('03vek6s52')
        self.assertIsInstance(outcome, TransientNetworkError)
        self.assertIn('connection refused', outcome.message)

    def test_invalid_json_is_transient(self) -> None:
        outcome = make_client(lambda request: httpx.Response(200, text='<html>oops</html>')).resolve('03vek6s52')
        self.assertIsInstance(outcome, TransientNetworkError)

    def test_redirect_loop_is_transient(self) -> None:
        """
        Checks that a redirect loop is reported as an outcome, not raised.
        """

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={'location': str(request.url)})

        outcome = make_client(handler).resolve('03vek6s52')
        self.assertIsInstance(outcome, TransientNetworkError)

    def test_undecodable_body_is_transient(self) -> None:
        """
        Checks that a body that doesn't match its content-encoding is reported as an outcome, not raised.
        """

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={'content-encoding': 'gzip'}, stream=httpx.ByteStream(b'not gzip'))

        outcome = make_client(handler).resolve('03vek6s52')
        self.assertIsInstance(outcome, TransientNetworkError)


class TestBatchWithRorClient(unittest.TestCase):
    """
    Tests that request-level httpx errors for one id don't abort a batch.
    """

    def test_redirect_loop_and_bad_encoding_still_yield_one_record_per_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            ror_id: str = request.url.path.rsplit('/', 1)[-1]
            if ror_id == 'aaa111bbb':
                return httpx.Response(302, headers={'location': str(request.url)})
            if ror_id == 'bbb222ccc':
                return httpx.Response(200, headers={'content-encoding': 'gzip'}, stream=httpx.ByteStream(b'not gzip'))
            return httpx.Response(200, json={'names': [{'value': f'Org {ror_id}', 'types': ['ror_display']}]})

        fetcher = BatchFetcher(make_client(handler), sleep=lambda seconds: None, show_progress_bar=False)
        result = fetcher.run_batch(['aaa111bbb', 'bbb222ccc', 'ccc333ddd'])
        computed: list = [record.name for record in result.records]
        expected: list = [NETWORK_EXHAUSTED, NETWORK_EXHAUSTED, 'Org ccc333ddd']
        self.assertEqual(computed, expected)
        self.assertEqual((result.succeeded, result.failed), (1, 2))


if __name__ == '__main__':
    unittest.main()
