import argparse
import json
import logging
import sys

from abcp_search.config.logging import setup_logging
from abcp_search.extraction.aggregate import aggregate
from abcp_search.extraction.core import DOCUMENT_CONFIG, WEB_SEARCH_CONFIG, extract
from abcp_search.ingestion.documents import DocumentError, read_document_path

logger = logging.getLogger(__name__)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="python -m abcp_search.extraction.cli",
        description="Extract ABCP liquidity providers, administrator and sponsor from local files.",
    )
    parser.add_argument("files", nargs="+", help="PDF or text files")
    parser.add_argument("--issuer", required=True, help="ABCP issuer name")
    parser.add_argument("--document", action="store_true", help="use the document-analysis configuration")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    cfg = DOCUMENT_CONFIG if args.document else WEB_SEARCH_CONFIG

    records = []
    for path in args.files:
        try:
            text = read_document_path(path)
        except (OSError, DocumentError) as e:
            logger.error(f"Skipping {path}: {e}")
            continue
        rec = extract(text, args.issuer, cfg)
        if rec is not None:
            records.append(rec.with_source(path))

    ranked = aggregate(records)
    print(json.dumps([r.to_dict() for r in ranked], indent=2))
    if not ranked:
        sys.exit(1)


if __name__ == "__main__":
    main()
