import unittest
from unittest import mock
import abcp_search.api.server as server
from abcp_search.api import orchestrator
from abcp_search.api.server import app
from abcp_search.ingestion.base import TransportError
from abcp_search.ingestion.firecrawl import FirecrawlClient


class TestAPIExtras(unittest.TestCase):
    def setUp(self):
        app.testing = True
        # Clear API key and rate limiter state to avoid cross-test leakage
        app.config['API_KEY'] = None
        app.config.pop('RATE_LIMIT_N', None)
        app.config.pop('RATE_LIMIT_WINDOW_SEC', None)
        app.config.pop('FIRECRAWL_API_KEY', None)
        server._recent.clear()
        self.client = app.test_client()

    def tearDown(self):
        orchestrator.configure(None)

    def test_openapi_endpoint(self):
        rv = self.client.get('/openapi.json')
        self.assertEqual(rv.status_code, 200)
        spec = rv.get_json()
        self.assertIn('openapi', spec)
        for path in ('/searches', '/searches/{run_id}', '/extract', '/documents', '/history'):
            self.assertIn(path, spec.get('paths', {}))

    def test_rate_limit_post_searches(self):
        app.config['RATE_LIMIT_N'] = 1
        app.config['RATE_LIMIT_WINDOW_SEC'] = 1.0
        # First request passes the limiter (then 400 on missing issuer)
        rv1 = self.client.post('/searches', json={})
        self.assertEqual(rv1.status_code, 400)
        rv2 = self.client.post('/searches', json={'issuer': 'B'})
        self.assertEqual(rv2.status_code, 429)
        self.assertEqual(rv2.get_json().get('error'), 'rate_limited')
        self.assertIn('Retry-After', rv2.headers)

    def test_extract_is_not_rate_limited(self):
        app.config['RATE_LIMIT_N'] = 1
        for _ in range(3):
            rv = self.client.post('/extract', json={'text': '', 'issuer': 'A'})
            self.assertEqual(rv.status_code, 200)

    def test_auth_api_key(self):
        app.config['API_KEY'] = 'secret'
        rv = self.client.get('/searches/not-exist')
        self.assertEqual(rv.status_code, 401)
        rv2 = self.client.get('/searches/not-exist', headers={'X-API-Key': 'secret'})
        self.assertEqual(rv2.status_code, 404)
        # Query planning is public
        self.assertEqual(self.client.get('/queries?issuer=Acme').status_code, 200)

    def test_missing_credentials_rejected_before_queueing(self):
        env = {'SEARCH_PROVIDER': 'serpapi'}
        with mock.patch.dict('os.environ', env, clear=True):
            orchestrator.configure(None)
            rv = self.client.post('/searches', json={'issuer': 'Acme Funding LLC'})
        self.assertEqual(rv.status_code, 400)
        body = rv.get_json()
        self.assertEqual(body['error'], 'configuration_error')
        self.assertIn('serpapi', body['detail'])

    def test_scrape_requires_url_and_key(self):
        rv = self.client.post('/scrape', json={})
        self.assertEqual(rv.status_code, 400)
        with mock.patch.dict('os.environ', {}, clear=True):
            rv2 = self.client.post('/scrape', json={'url': 'https://example.com'})
        self.assertEqual(rv2.status_code, 400)
        self.assertEqual(rv2.get_json()['error'], 'configuration_error')

    def test_scrape_extracts_from_page(self):
        app.config['FIRECRAWL_API_KEY'] = 'fc-key'
        data = {'markdown': 'ABCP program. Liquidity Provider: Royal Bank of Canada.', 'metadata': {'title': 'RBC'}}
        with mock.patch.object(FirecrawlClient, 'scrape', return_value=data):
            rv = self.client.post('/scrape', json={'url': 'https://example.com/abcp', 'issuer': 'Acme'})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(body['pages'], 1)
        self.assertEqual(body['results'][0]['liquidityProviders'], ['Royal Bank of Canada'])
        self.assertEqual(body['results'][0]['source'], 'https://example.com/abcp')

    def test_scrape_transport_failure(self):
        app.config['FIRECRAWL_API_KEY'] = 'fc-key'
        with mock.patch.object(FirecrawlClient, 'scrape', side_effect=TransportError('Unauthorized')):
            rv = self.client.post('/scrape', json={'url': 'https://example.com'})
        self.assertEqual(rv.status_code, 502)
        self.assertEqual(rv.get_json()['error'], 'scrape_failed')

    def test_settings_api_key(self):
        rv = self.client.post('/settings/api-key', json={})
        self.assertEqual(rv.status_code, 400)
        with mock.patch.object(FirecrawlClient, 'test_api_key', return_value=False):
            rv2 = self.client.post('/settings/api-key', json={'api_key': 'bad'})
        self.assertEqual(rv2.get_json()['error'], 'invalid_api_key')
        with mock.patch.dict('os.environ', {'SEARCH_PROVIDER': 'firecrawl'}, clear=True), \
                mock.patch.object(FirecrawlClient, 'test_api_key', return_value=True):
            rv3 = self.client.post('/settings/api-key', json={'api_key': 'good'})
            self.assertEqual(rv3.status_code, 200)
            self.assertEqual(app.config['FIRECRAWL_API_KEY'], 'good')
            orch = orchestrator.get_orchestrator()
        self.assertEqual(orch.config.api_key, 'good')
        self.assertEqual(orch.provider.name, 'firecrawl')


if __name__ == '__main__':
    unittest.main()
