import unittest
from unittest import mock
from typing import Any, Dict, List

import requests

from abcp_search.config.env import ConfigurationError, FirecrawlConfig, SearchConfig
from abcp_search.ingestion.base import SearchHit, TransportError
from abcp_search.ingestion.firecrawl import (
    GOOGLE_SEARCH_URL, FirecrawlClient, FirecrawlSearch, build_crawl_payload, build_scrape_payload, crawl_documents,
)
from abcp_search.ingestion.fixture import MAX_RECORDED_QUERIES, FixtureSearch, issuer_from_query
from abcp_search.ingestion.providers import build_firecrawl_client, build_search_provider
from abcp_search.ingestion import web_search
from abcp_search.ingestion.web_search import (
    BingSearch, GoogleCSESearch, SerpAPISearch, parse_bing, parse_google_cse, parse_serpapi,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """Replays queued responses and records each call."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, **kw):
        self.calls.append({"method": method, "url": url, **kw})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def post(self, url, **kw):
        return self._next("POST", url, **kw)

    def get(self, url, **kw):
        return self._next("GET", url, **kw)


class TestSearchHit(unittest.TestCase):
    def test_text_skips_duplicate_snippet(self):
        h = SearchHit(url="u", title="T", content="same", snippet="same")
        self.assertEqual(h.text, "T\nsame")
        h2 = SearchHit(url="u", title="T", content="body", snippet="snip")
        self.assertEqual(h2.text, "T\nsnip\nbody")
        self.assertEqual(SearchHit(url="u").text, "")


class TestWebSearchParsers(unittest.TestCase):
    def test_module_describes_backends(self):
        self.assertIn("SerpAPI", web_search.__doc__)

    def test_parse_serpapi(self):
        payload = {"organic_results": [
            {"link": "https://a.example", "title": "A", "snippet": "ABCP liquidity"},
            {"title": "no link"},
        ]}
        hits = parse_serpapi(payload)
        self.assertEqual(len(hits), 1)
        self.assertEqual(hits[0].url, "https://a.example")
        self.assertEqual(hits[0].snippet, "ABCP liquidity")
        self.assertEqual(parse_serpapi({}), [])

    def test_parse_bing(self):
        payload = {"webPages": {"value": [{"url": "https://b.example", "name": "B", "snippet": "s"}]}}
        hits = parse_bing(payload)
        self.assertEqual(hits[0].title, "B")
        self.assertEqual(parse_bing({"webPages": None}), [])

    def test_parse_google_cse(self):
        hits = parse_google_cse({"items": [{"link": "https://c.example", "title": "C", "snippet": "s"}]})
        self.assertEqual(hits[0].url, "https://c.example")
        self.assertEqual(parse_google_cse({}), [])

    def test_serpapi_search(self):
        session = FakeSession([FakeResponse(200, {"organic_results": [{"link": "https://a.example"}] * 3})])
        hits = SerpAPISearch("k", session=session).search('"Acme" ABCP', num_results=2)
        self.assertEqual(len(hits), 2)
        self.assertEqual(session.calls[0]["params"]["q"], '"Acme" ABCP')
        self.assertEqual(session.calls[0]["params"]["api_key"], "k")

    def test_bing_sends_subscription_header(self):
        session = FakeSession([FakeResponse(200, {"webPages": {"value": []}})])
        self.assertEqual(BingSearch("k", session=session).search("q"), [])
        self.assertEqual(session.calls[0]["headers"], {"Ocp-Apim-Subscription-Key": "k"})

    def test_google_caps_num(self):
        session = FakeSession([FakeResponse(200, {"items": []})])
        GoogleCSESearch("k", "cx1", session=session).search("q", num_results=25)
        self.assertEqual(session.calls[0]["params"]["num"], 10)
        self.assertEqual(session.calls[0]["params"]["cx"], "cx1")

    def test_transport_errors(self):
        for resp in (FakeResponse(500, {}), FakeResponse(200, None), requests.ConnectionError("down")):
            with self.assertRaises(TransportError):
                SerpAPISearch("k", session=FakeSession([resp])).search("q")


class TestFirecrawl(unittest.TestCase):
    def _client(self, responses, sleeps=None, max_polls=3):
        cfg = FirecrawlConfig(base_url="https://fc.test", poll_interval_sec=2.0, max_polls=max_polls)
        session = FakeSession(responses)
        sleep = sleeps.append if sleeps is not None else (lambda s: None)
        return FirecrawlClient("fc-key", config=cfg, session=session, sleep=sleep), session

    def test_payloads(self):
        p = build_scrape_payload("https://x.example")
        self.assertEqual(p["formats"], ["markdown", "html"])
        self.assertTrue(p["onlyMainContent"])
        self.assertIn("script", p["excludeTags"])
        c = build_crawl_payload("https://x.example", limit=7)
        self.assertEqual(c["limit"], 7)
        self.assertIn("table", c["scrapeOptions"]["includeTags"])

    def test_scrape_success(self):
        client, session = self._client([FakeResponse(200, {"success": True, "data": {"markdown": "# Hi"}})])
        self.assertEqual(client.scrape("https://x.example")["markdown"], "# Hi")
        call = session.calls[0]
        self.assertEqual(call["url"], "https://fc.test/v0/scrape")
        self.assertEqual(call["headers"]["Authorization"], "Bearer fc-key")

    def test_scrape_errors(self):
        client, _ = self._client([FakeResponse(401, {"error": "Unauthorized"})])
        with self.assertRaises(TransportError) as ctx:
            client.scrape("https://x.example")
        self.assertIn("Unauthorized", str(ctx.exception))
        client, _ = self._client([FakeResponse(200, {"success": False})])
        with self.assertRaises(TransportError):
            client.scrape("https://x.example")
        client, _ = self._client([requests.Timeout("slow")])
        with self.assertRaises(TransportError):
            client.scrape("https://x.example")

    def test_crawl_polls_until_completed(self):
        sleeps = []
        client, session = self._client([
            FakeResponse(200, {"success": True, "jobId": "job1"}),
            FakeResponse(200, {"status": "active"}),
            FakeResponse(200, {"status": "completed", "data": [
                {"markdown": "ABCP page", "metadata": {"sourceURL": "https://x.example/a", "title": "A"}},
                {"markdown": "", "metadata": {"sourceURL": "https://x.example/empty"}},
            ]}),
        ], sleeps=sleeps)
        status = client.crawl("https://x.example", limit=5)
        self.assertEqual(sleeps, [2.0, 2.0])
        self.assertEqual(session.calls[1]["url"], "https://fc.test/v0/crawl/status/job1")
        pages = crawl_documents(status)
        self.assertEqual(len(pages), 1)
        self.assertEqual(pages[0].url, "https://x.example/a")
        self.assertEqual(pages[0].title, "A")

    def test_crawl_failed_and_timeout(self):
        client, _ = self._client([
            FakeResponse(200, {"success": True, "jobId": "j"}),
            FakeResponse(200, {"status": "failed"}),
        ])
        with self.assertRaises(TransportError):
            client.crawl("https://x.example")
        client, _ = self._client([FakeResponse(200, {"success": True, "jobId": "j"})]
                                 + [FakeResponse(200, {"status": "active"})] * 2, max_polls=2)
        with self.assertRaises(TransportError) as ctx:
            client.crawl("https://x.example")
        self.assertIn("timed out", str(ctx.exception))

    def test_api_key_check(self):
        client, _ = self._client([FakeResponse(200, {"success": True})])
        self.assertTrue(client.test_api_key("other"))
        client, _ = self._client([FakeResponse(401, {})])
        self.assertFalse(client.test_api_key())
        client, _ = self._client([requests.ConnectionError("down")])
        self.assertFalse(client.test_api_key())

    def test_search_scrapes_google_results(self):
        client, session = self._client([FakeResponse(200, {"success": True, "data": {
            "markdown": "Liquidity Provider: Citibank", "metadata": {"title": "Results"}}})])
        hits = FirecrawlSearch(client).search('"Acme" ABCP')
        self.assertEqual(len(hits), 1)
        self.assertTrue(hits[0].url.startswith(GOOGLE_SEARCH_URL))
        self.assertIn("%22Acme%22+ABCP", hits[0].url)
        self.assertEqual(hits[0].content, "Liquidity Provider: Citibank")
        client, _ = self._client([FakeResponse(200, {"success": True, "data": {}})])
        self.assertEqual(FirecrawlSearch(client).search("q"), [])


class TestFixtureAndProviders(unittest.TestCase):
    def test_issuer_from_query(self):
        self.assertEqual(issuer_from_query('site:sec.gov "Acme Funding" ABCP'), "Acme Funding")
        self.assertEqual(issuer_from_query("plain"), "plain")

    def test_fixture_fills_issuer(self):
        f = FixtureSearch()
        hits = f.search('"Acme Funding LLC" ABCP liquidity provider facility')
        self.assertEqual(len(hits), 2)
        self.assertIn("Sponsor: Acme Funding LLC.", hits[0].content)
        self.assertEqual(hits[0].title, "ABCP Program Information for Acme Funding LLC")
        self.assertEqual(len(f.queries), 1)
        self.assertEqual(len(f.search('"X"', num_results=1)), 1)

    def test_fixture_keeps_recent_queries_only(self):
        f = FixtureSearch()
        for i in range(MAX_RECORDED_QUERIES + 50):
            f.search(f'"Issuer {i}" ABCP')
        self.assertEqual(len(f.queries), MAX_RECORDED_QUERIES)
        self.assertEqual(f.queries[0], '"Issuer 50" ABCP')
        self.assertEqual(f.queries[-1], f'"Issuer {MAX_RECORDED_QUERIES + 49}" ABCP')

    def test_build_firecrawl_client(self):
        with mock.patch.dict("os.environ", {"FIRECRAWL_BASE_URL": "https://fc.env/", "FIRECRAWL_MAX_POLLS": "4"}):
            client = build_firecrawl_client("fc-key")
        self.assertEqual(client.api_key, "fc-key")
        self.assertEqual(client.config.base_url, "https://fc.env")
        self.assertEqual(client.config.max_polls, 4)
        session = FakeSession([FakeResponse(200, {"success": True, "data": {"markdown": "ok"}})])
        client = build_firecrawl_client("k2", FirecrawlConfig(base_url="https://fc.test"), session=session, timeout=5)
        self.assertEqual(client.scrape("https://x.example")["markdown"], "ok")
        self.assertEqual(session.calls[0]["url"], "https://fc.test/v0/scrape")
        self.assertEqual(session.calls[0]["timeout"], 5)
        provider = build_search_provider(SearchConfig(provider="firecrawl", api_key="k3", timeout_sec=7))
        self.assertEqual(provider.client.api_key, "k3")
        self.assertEqual(provider.client.timeout, 7)

    def test_build_search_provider(self):
        self.assertIsInstance(build_search_provider(SearchConfig(provider="fixture")), FixtureSearch)
        self.assertIsInstance(build_search_provider(SearchConfig(provider="serpapi", api_key="k")), SerpAPISearch)
        self.assertIsInstance(build_search_provider(SearchConfig(provider="bing", api_key="k")), BingSearch)
        self.assertIsInstance(build_search_provider(SearchConfig(provider="firecrawl", api_key="k")), FirecrawlSearch)
        g = build_search_provider(SearchConfig(provider="google", api_key="k", google_cx="cx"))
        self.assertEqual(g.cx, "cx")

    def test_build_search_provider_rejects_bad_config(self):
        for cfg in (
            SearchConfig(provider="firecrawl"),
            SearchConfig(provider="altavista", api_key="k"),
            SearchConfig(provider="google", api_key="k"),
        ):
            with self.assertRaises(ConfigurationError):
                build_search_provider(cfg)


if __name__ == "__main__":
    unittest.main()
