"""Exports & reporting: per-run CSVs and a Markdown summary.

- writers.py: results.csv / queries.csv emitters
- reports.py: summary.md generator
"""
