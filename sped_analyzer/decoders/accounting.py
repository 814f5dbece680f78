#!/usr/bin/env python3
"""Record decoders for the general accounting ledger (ECD)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from sped_analyzer.decoders.common import (
    Decoder,
    amount_at,
    control_schemas,
    detail_entry,
    field_at,
    period_entry,
)
from sped_analyzer.decoders.income_tax import decode_account_balance, decode_chart_account
from sped_analyzer.models import (
    BalanceSheetEntry,
    CompanyInfo,
    Entity,
    IncomeStatementEntry,
    Participant,
)

if TYPE_CHECKING:
    from sped_analyzer.reconciliation import ReconciliationContext

# J100/J150 gained opening values and parent codes in layout 7; older files are shorter.
CURRENT_BALANCE_SHEET_FIELDS = 13
CURRENT_INCOME_STATEMENT_FIELDS = 14


def decode_opening(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(
        type_code="0000",
        start_date=field_at(fields, 3),
        end_date=field_at(fields, 4),
        name=field_at(fields, 5),
        cnpj=field_at(fields, 6),
        uf=field_at(fields, 7),
        state_registration=field_at(fields, 8),
        municipality_code=field_at(fields, 9),
    )


def decode_participant(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    if not code:
        return None
    return Participant(
        type_code="0150",
        code=code,
        name=field_at(fields, 3),
        country_code=field_at(fields, 4),
        cnpj=field_at(fields, 5),
        cpf=field_at(fields, 6),
        state_registration=field_at(fields, 9),
    )


def decode_bookkeeping(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "bookkeeping", attributes={"form": 2, "layout": 3})


def decode_opening_term(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "opening_term",
        attributes={"book_number": 3, "book_nature": 4, "company": 6, "nire": 7},
        amounts={"line_count": 5},
    )


def decode_referential_mapping(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "referential_mapping", attributes={"cost_center": 2, "referential_account": 3})


def decode_balance_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return period_entry(field_at(fields, 1), field_at(fields, 2), field_at(fields, 3))


def decode_journal_entry(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "journal_entry",
        attributes={"number": 2, "date": 3, "entry_type": 5},
        amounts={"value": 4},
    )


def decode_journal_line(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "journal_line",
        attributes={"account": 2, "cost_center": 3, "dc": 5, "history": 8},
        amounts={"value": 4},
    )


def decode_result_closing(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "result_closing", attributes={"date": 2})


def decode_result_balance(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # I355: result accounts before closing, classified by chart-of-accounts prefix.
    code = field_at(fields, 2)
    if not code:
        return None
    return IncomeStatementEntry(
        type_code="I355",
        code=code,
        value=amount_at(fields, 4),
        dc=field_at(fields, 5),
        layout="account",
    )


def decode_statement_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return period_entry("J005", field_at(fields, 2), field_at(fields, 3))


def decode_balance_sheet(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    if not code:
        return None
    if len(fields) >= CURRENT_BALANCE_SHEET_FIELDS:
        return BalanceSheetEntry(
            type_code="J100",
            account_code=code,
            level=field_at(fields, 4),
            group=field_at(fields, 6),
            description=field_at(fields, 7),
            opening_value=amount_at(fields, 8),
            opening_dc=field_at(fields, 9),
            final_value=amount_at(fields, 10),
            final_dc=field_at(fields, 11),
        )
    return BalanceSheetEntry(
        type_code="J100",
        account_code=code,
        level=field_at(fields, 3),
        group=field_at(fields, 4),
        description=field_at(fields, 5),
        final_value=amount_at(fields, 6),
        final_dc=field_at(fields, 7),
        layout="legacy",
    )


def decode_income_statement(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    if len(fields) >= CURRENT_INCOME_STATEMENT_FIELDS:
        code = field_at(fields, 3)
        if not code:
            return None
        return IncomeStatementEntry(
            type_code="J150",
            code=code,
            description=field_at(fields, 7),
            value=amount_at(fields, 10),
            dc=field_at(fields, 11),
            group=field_at(fields, 12),
        )
    code = field_at(fields, 2)
    if not code:
        return None
    return IncomeStatementEntry(
        type_code="J150",
        code=code,
        description=field_at(fields, 4),
        value=amount_at(fields, 5),
        dc=field_at(fields, 6),
        layout="legacy",
    )


def decode_equity_changes(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "equity_changes", attributes={"code": 3, "description": 4}, amounts={"value": 5})


def decode_signatory(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "signatory", attributes={"name": 2, "document": 3, "role": 4})


def decode_consolidation_detail(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        f"consolidation_{field_at(fields, 1).lower()}",
        attributes={"field_2": 2, "field_3": 3, "field_4": 4},
        amounts={"value": 5},
    )


RECORD_LAYOUTS: dict[str, tuple[int, Decoder]] = {
    **control_schemas("0IJK"),
    "0000": (7, decode_opening),
    "0150": (4, decode_participant),
    "I010": (4, decode_bookkeeping),
    "I030": (7, decode_opening_term),
    "I050": (9, decode_chart_account),
    "I051": (4, decode_referential_mapping),
    "I150": (4, decode_balance_period),
    "I155": (10, decode_account_balance),
    "I200": (5, decode_journal_entry),
    "I250": (6, decode_journal_line),
    "I350": (3, decode_result_closing),
    "I355": (6, decode_result_balance),
    "J005": (4, decode_statement_period),
    "J100": (8, decode_balance_sheet),
    "J150": (7, decode_income_statement),
    "J210": (6, decode_equity_changes),
    "J930": (5, decode_signatory),
    "K030": (4, decode_balance_period),
    "K100": (6, decode_consolidation_detail),
    "K110": (6, decode_consolidation_detail),
    "K200": (6, decode_consolidation_detail),
    "K300": (6, decode_consolidation_detail),
}
