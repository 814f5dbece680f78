#!/usr/bin/env python3

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sped_analyzer.decoders import accounting, contributions, goods, income_tax
from sped_analyzer.decoders.common import Decoder
from sped_analyzer.models import DocumentFamily


@dataclass(frozen=True)
class RecordSchema:
    type_code: str
    min_fields: int
    decode: Decoder

    def accepts(self, fields: Sequence[str]) -> bool:
        """Structural guard: leading empty field and enough positions."""
        return len(fields) >= self.min_fields and fields[0] == ""


def build_table(layouts: dict[str, tuple[int, Decoder]]) -> dict[str, RecordSchema]:
    return {
        type_code: RecordSchema(type_code=type_code, min_fields=min_fields, decode=decode)
        for type_code, (min_fields, decode) in layouts.items()
    }


SCHEMA_REGISTRY: dict[DocumentFamily, dict[str, RecordSchema]] = {
    DocumentFamily.GOODS: build_table(goods.RECORD_LAYOUTS),
    DocumentFamily.CONTRIBUTIONS: build_table(contributions.RECORD_LAYOUTS),
    DocumentFamily.INCOME_TAX: build_table(income_tax.RECORD_LAYOUTS),
    DocumentFamily.ACCOUNTING: build_table(accounting.RECORD_LAYOUTS),
}


def lookup_schema(family: DocumentFamily, type_code: str) -> RecordSchema | None:
    return SCHEMA_REGISTRY[family].get(type_code)


def known_codes(family: DocumentFamily) -> frozenset[str]:
    return frozenset(SCHEMA_REGISTRY[family])
