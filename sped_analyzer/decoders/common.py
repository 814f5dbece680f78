#!/usr/bin/env python3

from __future__ import annotations

import unicodedata
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Sequence

from sped_analyzer.models import DetailEntry, Entity, PeriodEntry
from sped_analyzer.numeric import normalize_amount, normalize_percentage

if TYPE_CHECKING:
    from sped_analyzer.reconciliation import ReconciliationContext


Decoder = Callable[[Sequence[str], "ReconciliationContext"], "Entity | None"]

SPED_DATE_FORMAT = "%d%m%Y"


def field_at(fields: Sequence[str], index: int) -> str:
    if index < len(fields):
        return fields[index].strip()
    return ""


def amount_at(fields: Sequence[str], index: int) -> Decimal:
    return normalize_amount(field_at(fields, index))


def percent_at(fields: Sequence[str], index: int) -> Decimal:
    return normalize_percentage(field_at(fields, index))


def data_field_count(fields: Sequence[str]) -> int:
    """Count fields between the leading and trailing delimiters."""
    count = len(fields) - 1
    if fields and fields[-1] == "":
        count -= 1
    return count


def strip_accents(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(char for char in normalized if not unicodedata.combining(char))


def normalize_description(text: str) -> str:
    return " ".join(strip_accents(text).upper().split())


def parse_sped_date(value: str) -> datetime | None:
    value = value.strip()
    if len(value) != 8 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, SPED_DATE_FORMAT)
    except ValueError:
        return None


def period_days(start: str, end: str) -> int:
    """Inclusive number of days between two DDMMYYYY dates, 0 when unknown."""
    start_date = parse_sped_date(start)
    end_date = parse_sped_date(end)
    if start_date is None or end_date is None or end_date < start_date:
        return 0
    return (end_date - start_date).days + 1


def period_entry(type_code: str, start: str, end: str) -> PeriodEntry:
    return PeriodEntry(type_code=type_code, start_date=start, end_date=end, days=period_days(start, end))


def detail_entry(
    fields: Sequence[str],
    label: str,
    attributes: dict[str, int] | None = None,
    amounts: dict[str, int] | None = None,
) -> DetailEntry:
    """Build a generic detail entity from named field positions."""
    return DetailEntry(
        type_code=field_at(fields, 1),
        label=label,
        attributes={name: field_at(fields, index) for name, index in (attributes or {}).items()},
        amounts={name: amount_at(fields, index) for name, index in (amounts or {}).items()},
    )


def decode_block_opening(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # Block openers (x001): IND_MOV 0 = block has data, 1 = no data.
    return detail_entry(fields, "block", attributes={"movement": 2})


def decode_block_closing(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "block", amounts={"line_count": 2})


def decode_record_count(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # 9900: REG_BLC, QTD_REG_BLC
    return detail_entry(fields, "control", attributes={"record": 2}, amounts={"count": 3})


def decode_file_closing(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "control", amounts={"line_count": 2})


def control_schemas(blocks: str, min_fields: int = 3) -> dict[str, tuple[int, Decoder]]:
    """Opening/closing records for each block letter plus the block 9 records."""
    table: dict[str, tuple[int, Decoder]] = {}
    for letter in f"{blocks}9":
        table[f"{letter}001"] = (min_fields, decode_block_opening)
        table[f"{letter}990"] = (min_fields, decode_block_closing)
    table["9900"] = (4, decode_record_count)
    table["9999"] = (3, decode_file_closing)
    return table
