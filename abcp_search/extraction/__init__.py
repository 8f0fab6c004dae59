"""ABCP entity extraction.

- core.py: regex role extraction and confidence scoring for one text block
- aggregate.py: de-duplication and ranking across text blocks
- cli.py: run extraction over local files
"""
