"""
Logging setup shared by the API server and the extraction CLI.
"""

import logging
import sys

NOISY_LOGGERS = ("urllib3", "pdfminer", "werkzeug")


def setup_logging(level: int | str = logging.INFO, stream=None) -> logging.Logger:
    """
    Configure root logging once for a process.

    Args:
        level: Root log level (name or number)
        stream: Output stream, stderr by default

    Returns:
        The ``abcp_search`` package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=stream or sys.stderr,
    )

    # Third-party loggers print connection chatter at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("abcp_search")
