#!/usr/bin/env python3

from __future__ import annotations

import logging
from pathlib import Path

import chardet

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "latin-1"
MIN_CONFIDENCE = 0.7
SAMPLE_SIZE = 20000


class LedgerReadError(Exception):
    """Raised when a ledger file cannot be read or decoded."""

    pass


def detect_encoding(raw: bytes) -> str:
    """Guess the encoding of a ledger export.

    Brazilian SPED files are usually ISO-8859-1, so ASCII-only samples and
    low-confidence guesses are read as latin-1.
    """
    if raw.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    result = chardet.detect(raw[:SAMPLE_SIZE])
    encoding = result.get("encoding") or DEFAULT_ENCODING
    confidence = result.get("confidence") or 0.0
    if confidence < MIN_CONFIDENCE or encoding.lower() == "ascii":
        return DEFAULT_ENCODING
    return encoding


def decode_ledger(raw: bytes, encoding: str | None = None) -> list[str]:
    encoding = encoding or detect_encoding(raw)
    try:
        text = raw.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise LedgerReadError(f"Cannot decode ledger as {encoding}: {e}") from e
    return text.lstrip("\ufeff").splitlines()


def read_ledger_lines(source: str | Path | bytes, encoding: str | None = None) -> list[str]:
    """Return the text lines of a ledger given its path or raw bytes."""
    if isinstance(source, bytes):
        return decode_ledger(source, encoding)

    path = Path(source)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise LedgerReadError(f"Cannot read ledger {path}: {e}") from e
    lines = decode_ledger(raw, encoding)
    logger.debug(f"Read {len(lines)} lines from {path.name}")
    return lines
