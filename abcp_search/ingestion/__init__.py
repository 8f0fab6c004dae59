"""Transports: where extractor input text comes from.

- base.py: SearchHit / SearchProvider interface, TransportError
- firecrawl.py: Firecrawl scrape/crawl client and Google-scrape provider
- web_search.py: SerpAPI, Bing and Google Custom Search providers
- fixture.py: offline canned provider
- providers.py: provider selection from SearchConfig
- documents.py: uploaded PDF / text reader
"""
