#!/usr/bin/env python3

from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Iterable

from sped_analyzer.models import DocumentFamily

logger = logging.getLogger(__name__)

SCAN_LINE_LIMIT = 100

# Most specific family first; the goods ledger matches the broadest names.
FILENAME_PATTERNS: tuple[tuple[DocumentFamily, tuple[re.Pattern[str], ...]], ...] = (
    (
        DocumentFamily.CONTRIBUTIONS,
        tuple(
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"contribuic(?:o|õ)es",
                r"pis[_-]?cofins",
                r"efd[_-]?contribuic",
                r"efd[_-]?pis",
                r"sped[_-]?contribuic",
                r"sped[_-]?pis",
            )
        ),
    ),
    (
        DocumentFamily.INCOME_TAX,
        tuple(
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"^ecf[_-]",
                r"[_-]ecf[_.-]",
                r"escriturac(?:a|ã)o[_-]?contabil[_-]?fiscal",
                r"sped[_-]?ecf",
            )
        ),
    ),
    (
        DocumentFamily.ACCOUNTING,
        tuple(
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"^ecd[_-]",
                r"[_-]ecd[_.-]",
                r"escriturac(?:a|ã)o[_ -]?contabil[_ -]?digital",
                r"sped[_-]?ecd",
                r"contabil[_-]?digital",
            )
        ),
    ),
    (
        DocumentFamily.GOODS,
        tuple(
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"^efd[_-]",
                r"fiscal",
                r"icms[_-]?ipi",
                r"sped[_-]?fiscal",
                r"efd[_-]?icms",
            )
        ),
    ),
)

SIGNATURE_CODES: dict[DocumentFamily, frozenset[str]] = {
    DocumentFamily.GOODS: frozenset(
        "0005 0190 0200 C100 C170 C190 C197 E100 E110 E111 E116 E200 E210 E500 E520 H005 H010 H020 K100 K200".split()
    ),
    DocumentFamily.CONTRIBUTIONS: frozenset(
        (
            "0110 0140 A100 A170 C180 C181 C185 D101 D105 F100 F120 F130 F150 M100 M105 M110 M200 M210 "
            "M215 M220 M400 M410 M500 M505 M600 M610 M615 M800 M810 P100 P200 1100 1500"
        ).split()
    ),
    DocumentFamily.INCOME_TAX: frozenset(
        (
            "0010 0020 J050 J051 K155 K156 K355 L100 L300 M300 M350 N500 N600 N620 N630 N650 N660 N670 "
            "P130 P150 P230 Y540 T120 U100"
        ).split()
    ),
    DocumentFamily.ACCOUNTING: frozenset(
        "I010 I012 I015 I030 I050 I051 I052 I150 I155 I200 I250 I300 I350 I355 J005 J100 J150 J210 J800".split()
    ),
}

LEDGER_EXTENSIONS = {".efd", ".sped"}


def classify_by_filename(filename: str | None) -> DocumentFamily | None:
    if not filename:
        return None
    name = PurePath(filename).name
    for family, patterns in FILENAME_PATTERNS:
        if any(pattern.search(name) for pattern in patterns):
            return family

    if PurePath(name).suffix.lower() in LEDGER_EXTENSIONS:
        lowered = name.lower()
        if "pis" in lowered or "cofins" in lowered or "contribuic" in lowered:
            return DocumentFamily.CONTRIBUTIONS
        if "ecf" in lowered:
            return DocumentFamily.INCOME_TAX
        if "ecd" in lowered:
            return DocumentFamily.ACCOUNTING
        return DocumentFamily.GOODS
    return None


def record_code(line: str) -> str:
    fields = line.strip().split("|")
    if len(fields) < 2:
        return ""
    return fields[1].strip().upper()


def score_lines(lines: Iterable[str], limit: int = SCAN_LINE_LIMIT) -> dict[DocumentFamily, int]:
    scores = {family: 0 for family in SIGNATURE_CODES}
    scanned = 0
    for line in lines:
        if not line.strip():
            continue
        scanned += 1
        if scanned > limit:
            break
        code = record_code(line)
        for family, codes in SIGNATURE_CODES.items():
            if code in codes:
                scores[family] += 1
    return scores


def classify_by_content(lines: Iterable[str], limit: int = SCAN_LINE_LIMIT) -> DocumentFamily:
    scores = score_lines(lines, limit)
    best_score = max(scores.values())
    leaders = [family for family, score in scores.items() if score == best_score]
    if best_score == 0 or len(leaders) > 1:
        return DocumentFamily.GOODS
    return leaders[0]


def classify(lines: Iterable[str], filename: str | None = None) -> DocumentFamily:
    """Pick the ledger family: filename hints first, then record-code tallies."""
    family = classify_by_filename(filename)
    if family is not None:
        logger.debug(f"Classified {filename} as {family.value} from its name")
        return family
    family = classify_by_content(lines)
    logger.debug(f"Classified {filename or 'input'} as {family.value} from its records")
    return family
