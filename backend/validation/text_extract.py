"""
Text Extraction: Best-Effort Text Recovery from PDF Bytes

Two passes:

1. Text layer: open the document with pypdf and join the text of every page.
2. Printable scan: if pass 1 recovers nothing (unparseable file, image-only
   pages), collect runs of printable ASCII of a minimum length straight from
   the raw bytes.

The result is lower-cased with whitespace collapsed, ready for phrase
matching.
"""

from __future__ import annotations

from io import BytesIO
from typing import List, Tuple
import logging
import re

from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

METHOD_TEXT_OBJECTS = "text_objects"
METHOD_PRINTABLE_SCAN = "printable_scan"
METHOD_NONE = "none"


def normalize_text(text: str) -> str:
    """Lower-case and collapse whitespace runs to single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


def extract_text_layer(data: bytes) -> str:
    """Pass 1: page text as pypdf reads it. Empty when the file won't open."""
    try:
        reader = PdfReader(BytesIO(data))
        pages = list(reader.pages)
    except PdfReadError as e:
        logger.debug(f"[TEXT] pypdf could not open candidate: {e}")
        return ""
    except Exception as e:
        # Captured blobs are routinely truncated or mangled
        logger.debug(f"[TEXT] pypdf failed on candidate: {type(e).__name__}: {e}")
        return ""

    chunks: List[str] = []
    for index, page in enumerate(pages):
        try:
            text = page.extract_text() or ""
        except Exception as e:
            logger.debug(f"[TEXT] Page {index} text extraction failed: {type(e).__name__}: {e}")
            continue
        if text.strip():
            chunks.append(text)
    return "\n".join(chunks)


def extract_printable_runs(data: bytes, min_run: int = 4) -> str:
    """Pass 2: runs of printable ASCII at least min_run long."""
    pattern = re.compile(rb"[\x20-\x7e]{%d,}" % max(1, min_run))
    return " ".join(run.decode("ascii") for run in pattern.findall(data))


def extract_text(data: bytes, min_run: int = 4) -> Tuple[str, str]:
    """
    Best-effort text extraction.

    Args:
        data: Raw file bytes
        min_run: Minimum printable run length for the fallback scan

    Returns:
        Tuple of (normalized_text, method) where method is one of
        "text_objects", "printable_scan" or "none"
    """
    text = normalize_text(extract_text_layer(data))
    if text:
        return text, METHOD_TEXT_OBJECTS

    text = normalize_text(extract_printable_runs(data, min_run))
    if text:
        logger.debug("[TEXT] No text layer found, used printable scan")
        return text, METHOD_PRINTABLE_SCAN

    return "", METHOD_NONE
