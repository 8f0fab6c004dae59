from __future__ import annotations
import io
import logging
from pathlib import Path
from typing import BinaryIO, Union

from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.psparser import PSException

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 20 * 1024 * 1024
PDF_MAGIC = b"%PDF"


class DocumentError(ValueError):
    """Upload is empty, too large or unreadable."""


def is_pdf(data: bytes, filename: str = "") -> bool:
    return data[:4] == PDF_MAGIC or filename.lower().endswith(".pdf")


def read_uploaded_document(stream: Union[BinaryIO, bytes], filename: str = "") -> str:
    """Return the text of an uploaded PDF or plain-text document."""
    data = stream if isinstance(stream, bytes) else stream.read(MAX_DOCUMENT_BYTES + 1)
    if not data:
        raise DocumentError("empty document")
    if len(data) > MAX_DOCUMENT_BYTES:
        raise DocumentError("File size must be less than 20MB")

    if is_pdf(data, filename):
        try:
            text = pdf_extract_text(io.BytesIO(data))
        except PSException as e:
            raise DocumentError(f"unreadable PDF: {e}") from e
        logger.info(f"Extracted {len(text)} characters from PDF {filename or '<upload>'}")
        return text
    return data.decode("utf-8", errors="replace")


def read_document_path(path: Union[str, Path]) -> str:
    p = Path(path)
    with p.open("rb") as fh:
        return read_uploaded_document(fh, p.name)
