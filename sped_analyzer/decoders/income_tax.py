#!/usr/bin/env python3
"""Record decoders for the corporate income-tax ledger (ECF)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from sped_analyzer.decoders.common import (
    Decoder,
    amount_at,
    control_schemas,
    detail_entry,
    field_at,
    normalize_description,
    period_entry,
)
from sped_analyzer.models import (
    BalanceSheetEntry,
    ChartAccount,
    CompanyInfo,
    DebitEntry,
    Entity,
    IncomeStatementEntry,
    RegimeFlag,
)

if TYPE_CHECKING:
    from sped_analyzer.reconciliation import ReconciliationContext

logger = logging.getLogger(__name__)

TAXATION_FORMS = {
    "1": "lucro real",
    "2": "lucro real/arbitrado",
    "3": "lucro presumido/real",
    "4": "lucro presumido/real/arbitrado",
    "5": "lucro presumido",
    "6": "lucro arbitrado",
    "7": "lucro presumido/arbitrado",
    "8": "imune do IRPJ",
    "9": "isento do IRPJ",
}

# Computation records whose "payable" line feeds the IRPJ/CSLL figures.
IRPJ_COMPUTATION_RECORDS = {"N630", "P300"}
CSLL_COMPUTATION_RECORDS = {"N670", "P500"}
PAYABLE_MARKER = "A PAGAR"


def decode_opening(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(
        type_code="0000",
        layout_version=field_at(fields, 3),
        cnpj=field_at(fields, 4),
        name=field_at(fields, 5),
        start_date=field_at(fields, 10),
        end_date=field_at(fields, 11),
    )


def decode_parameters(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 5)
    if not code:
        return None
    return RegimeFlag(
        type_code="0010",
        category="income_tax",
        code=code,
        description=TAXATION_FORMS.get(code, ""),
        credit_method=field_at(fields, 6),
    )


def decode_complementary_parameters(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "parameters", attributes={"special_situation": 2, "flags": 3})


def decode_registration(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(
        type_code="0030",
        activity=field_at(fields, 3),
        uf=field_at(fields, 8),
        municipality_code=field_at(fields, 9),
    )


def decode_chart_account(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # J050 (ECF) and I050 (ECD) share the layout.
    code = field_at(fields, 6)
    if not code:
        return None
    return ChartAccount(
        type_code=field_at(fields, 1),
        code=code,
        nature=field_at(fields, 3),
        account_type=field_at(fields, 4),
        level=field_at(fields, 5),
        parent_code=field_at(fields, 7),
        name=field_at(fields, 8),
    )


def decode_cost_center(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "cost_center", attributes={"date": 2, "code": 3, "name": 4})


def decode_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return period_entry(field_at(fields, 1), field_at(fields, 2), field_at(fields, 3))


def decode_account_balance(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # K155 (ECF) and I155 (ECD) share the layout.
    code = field_at(fields, 2)
    if not code:
        return None
    return BalanceSheetEntry(
        type_code=field_at(fields, 1),
        account_code=code,
        opening_value=amount_at(fields, 4),
        opening_dc=field_at(fields, 5),
        debits=amount_at(fields, 6),
        credits=amount_at(fields, 7),
        final_value=amount_at(fields, 8),
        final_dc=field_at(fields, 9),
        layout="account",
    )


def decode_referential_balance(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "referential_balance", attributes={"account": 2, "dc": 4}, amounts={"value": 3})


def decode_result_balance(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "result_balance",
        attributes={"account": 2, "cost_center": 3, "dc": 5},
        amounts={"value": 4},
    )


def decode_referential_balance_sheet(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # L100, P100 and U100: balance sheet in the referential chart of accounts.
    code = field_at(fields, 2)
    if not code:
        return None
    return BalanceSheetEntry(
        type_code=field_at(fields, 1),
        account_code=code,
        description=field_at(fields, 3),
        group=field_at(fields, 4),
        level=field_at(fields, 5),
        opening_value=amount_at(fields, 8),
        opening_dc=field_at(fields, 9),
        debits=amount_at(fields, 10),
        credits=amount_at(fields, 11),
        final_value=amount_at(fields, 12),
        final_dc=field_at(fields, 13),
    )


def decode_referential_income_statement(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # L300, P150 and U150: income statement in the referential chart of accounts.
    code = field_at(fields, 2)
    if not code:
        return None
    return IncomeStatementEntry(
        type_code=field_at(fields, 1),
        code=code,
        description=field_at(fields, 3),
        group=field_at(fields, 4),
        value=amount_at(fields, 8),
        dc=field_at(fields, 9),
    )


def decode_lalur_entry(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    label = "lalur" if field_at(fields, 1) == "M300" else "lacs"
    return detail_entry(
        fields,
        label,
        attributes={"code": 2, "description": 3, "entry_type": 4, "relation": 5},
        amounts={"value": 6},
    )


def decode_computation_line(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    """Code/description/value lines of the N, P, T and U computation blocks.

    A line of an IRPJ or CSLL computation record whose description marks the
    amount as payable becomes a debit for that tax; everything else is kept
    as detail.
    """
    type_code = field_at(fields, 1)
    description = field_at(fields, 3)
    value = amount_at(fields, 4)
    category = ""
    if type_code in IRPJ_COMPUTATION_RECORDS:
        category = "irpj"
    elif type_code in CSLL_COMPUTATION_RECORDS:
        category = "csll"

    if category and PAYABLE_MARKER in normalize_description(description):
        return DebitEntry(
            type_code=type_code,
            category=category,
            total_debits=value,
            payable=value,
            code=field_at(fields, 2),
            description=description,
        )
    return detail_entry(
        fields,
        f"computation_{type_code.lower()}",
        attributes={"code": 2, "description": 3},
        amounts={"value": 4},
    )


def decode_establishment_revenue(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    logger.warning(
        f"Line {context.line_number}: record Y540 is deprecated in current ECF layouts; "
        "its revenue is used only when no income statement is present."
    )
    return detail_entry(
        fields,
        "establishment_revenue",
        attributes={"cnpj": 2, "cnae": 4},
        amounts={"revenue": 3},
    )


def decode_partner(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "partner", attributes={"country": 3, "document": 5, "name": 6}, amounts={"share": 8})


COMPUTATION_RECORDS = (
    "N500 N600 N610 N615 N620 N630 N650 N660 N670 "
    "P130 P200 P230 P300 P400 P500 T120 T150 T170 T181"
).split()

RECORD_LAYOUTS: dict[str, tuple[int, Decoder]] = {
    **control_schemas("0CEJKLMNPQTUVWXY"),
    "0000": (12, decode_opening),
    "0010": (6, decode_parameters),
    "0020": (4, decode_complementary_parameters),
    "0030": (10, decode_registration),
    "J050": (9, decode_chart_account),
    "J100": (5, decode_cost_center),
    "K030": (4, decode_period),
    "K155": (10, decode_account_balance),
    "K156": (5, decode_referential_balance),
    "K355": (6, decode_result_balance),
    "L030": (4, decode_period),
    "L100": (13, decode_referential_balance_sheet),
    "L300": (9, decode_referential_income_statement),
    "M300": (7, decode_lalur_entry),
    "M350": (7, decode_lalur_entry),
    "P030": (4, decode_period),
    "P100": (13, decode_referential_balance_sheet),
    "P150": (9, decode_referential_income_statement),
    "U030": (4, decode_period),
    "U100": (13, decode_referential_balance_sheet),
    "U150": (9, decode_referential_income_statement),
    "Y540": (5, decode_establishment_revenue),
    "Y600": (9, decode_partner),
    **{code: (5, decode_computation_line) for code in COMPUTATION_RECORDS},
}
