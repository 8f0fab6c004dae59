"""Query planner.

Turns an ABCP issuer name into a fixed, ordered list of web-search queries
biased toward filings, rating agencies and financial news. See `core.py`.
"""
