#!/usr/bin/env python3
"""Record decoders for the contributions ledger (EFD Contribuicoes, PIS/COFINS).

PIS and COFINS share most layouts: the PIS record sits in the M100-M400 or
1100/1300 range and its COFINS twin in M500-M800 or 1500/1700.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from sped_analyzer.decoders.common import (
    Decoder,
    amount_at,
    control_schemas,
    data_field_count,
    detail_entry,
    field_at,
)
from sped_analyzer.decoders.goods import decode_invoice, decode_invoice_item, decode_item_master, decode_participant
from sped_analyzer.models import (
    AdjustmentDetail,
    AdjustmentDirection,
    AdjustmentEntry,
    AggregateRecord,
    AnalyticEntry,
    CompanyInfo,
    CreditEntry,
    DebitEntry,
    Entity,
    FiscalDocument,
    LineItem,
    NonTaxedRevenue,
    RegimeFlag,
    TotalsEntry,
)

if TYPE_CHECKING:
    from sped_analyzer.reconciliation import ReconciliationContext

INCIDENCE_REGIMES = {
    "1": "non-cumulative",
    "2": "cumulative",
    "3": "non-cumulative and cumulative",
}

# M210/M610 carry 16 fields (REG included) since the 2019 layout, 13 before.
CURRENT_AGGREGATE_FIELDS = 16
LEGACY_AGGREGATE_FIELDS = 13

# IND_AJ / IND_AJ_BC: 0 reduction, 1 increase.
ADJUSTMENT_DIRECTIONS = {
    "0": AdjustmentDirection.DECREASE,
    "1": AdjustmentDirection.INCREASE,
}

PIS_RECORDS = {"C181", "D101", "1100", "1300"}


def tax_category(type_code: str) -> str:
    """PIS records use M100-M499, their COFINS twins M500-M899."""
    if type_code in PIS_RECORDS or (type_code[:1] == "M" and type_code[1:2] in "1234"):
        return "pis"
    return "cofins"


def decode_opening(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(
        type_code="0000",
        layout_version=field_at(fields, 2),
        start_date=field_at(fields, 6),
        end_date=field_at(fields, 7),
        name=field_at(fields, 8),
        cnpj=field_at(fields, 9),
        uf=field_at(fields, 10),
        municipality_code=field_at(fields, 11),
        activity=field_at(fields, 14),
    )


def decode_incidence_regime(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    if code not in INCIDENCE_REGIMES:
        return None
    return RegimeFlag(
        type_code="0110",
        category="contributions",
        code=code,
        description=INCIDENCE_REGIMES[code],
        credit_method=field_at(fields, 3),
        contribution_type=field_at(fields, 4),
    )


def decode_establishment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "establishment",
        attributes={"code": 2, "name": 3, "cnpj": 4, "uf": 5, "state_registration": 6, "municipality_code": 7},
    )


def decode_block_establishment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "establishment", attributes={"cnpj": 2})


def decode_service_document(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return FiscalDocument(
        type_code="A100",
        operation=field_at(fields, 2),
        participant_code=field_at(fields, 4),
        series=field_at(fields, 6),
        number=field_at(fields, 8),
        access_key=field_at(fields, 9),
        issue_date=field_at(fields, 10),
        total_value=amount_at(fields, 12),
        goods_value=amount_at(fields, 12) - amount_at(fields, 14),
        pis_value=amount_at(fields, 16),
        cofins_value=amount_at(fields, 18),
        iss_value=amount_at(fields, 21),
    )


def decode_service_item(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return LineItem(
        type_code="A170",
        item_number=field_at(fields, 2),
        item_code=field_at(fields, 3),
        description=field_at(fields, 4),
        value=amount_at(fields, 5),
        discount=amount_at(fields, 6),
        cst=field_at(fields, 9),
    )


def decode_consolidated_sales(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "consolidated_sales",
        attributes={"model": 2, "start_date": 3, "end_date": 4, "item_code": 5, "ncm": 6},
        amounts={"total": 8},
    )


def decode_consolidated_sales_tax(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return AnalyticEntry(
        type_code=type_code,
        category=tax_category(type_code),
        cst=field_at(fields, 2),
        cfop=field_at(fields, 3),
        operation_value=amount_at(fields, 4),
        base=amount_at(fields, 6),
        rate=amount_at(fields, 7),
        tax_value=amount_at(fields, 10),
    )


def decode_freight_credit(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return CreditEntry(
        type_code=type_code,
        category=tax_category(type_code),
        value=amount_at(fields, 8),
        role="document",
        code=field_at(fields, 5),
        base=amount_at(fields, 6),
        rate=amount_at(fields, 7),
    )


def decode_other_operation(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "other_operations",
        attributes={"operation": 2, "participant_code": 3, "item_code": 4, "date": 5},
        amounts={"value": 6, "pis": 10, "cofins": 14},
    )


def decode_asset_credit(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    pis_index, cofins_index = {"F120": (11, 15), "F130": (14, 18)}[type_code]
    return detail_entry(
        fields,
        "asset_credit",
        attributes={"nature": 2},
        amounts={"pis": pis_index, "cofins": cofins_index},
    )


def decode_opening_stock_credit(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "opening_stock_credit", attributes={"nature": 2}, amounts={"pis": 9, "cofins": 12})


def decode_credit(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return CreditEntry(
        type_code=type_code,
        category=tax_category(type_code),
        value=amount_at(fields, 8),
        role="period",
        code=field_at(fields, 2),
        base=amount_at(fields, 4),
        rate=amount_at(fields, 5),
        available=amount_at(fields, 12),
        discounted=amount_at(fields, 14),
    )


def decode_credit_base(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "credit_base",
        attributes={"nature": 2, "cst": 3},
        amounts={"total_base": 4, "cumulative_base": 5, "non_cumulative_base": 6, "base": 7},
    )


def decode_credit_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return AdjustmentEntry(
        type_code=type_code,
        category=tax_category(type_code),
        value=amount_at(fields, 3),
        direction=ADJUSTMENT_DIRECTIONS.get(field_at(fields, 2)),
        code=field_at(fields, 4),
        description=field_at(fields, 6),
    )


def decode_period_contribution(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return DebitEntry(
        type_code=type_code,
        category=tax_category(type_code),
        total_debits=amount_at(fields, 2) + amount_at(fields, 9),
        total_credits=amount_at(fields, 3) + amount_at(fields, 4),
        balance=amount_at(fields, 5),
        deductions=amount_at(fields, 6) + amount_at(fields, 7) + amount_at(fields, 10) + amount_at(fields, 11),
        payable=amount_at(fields, 13),
    )


def decode_contribution_due(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "contribution_due", attributes={"field": 2, "revenue_code": 3}, amounts={"value": 4})


def decode_contribution_aggregate(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    count = data_field_count(fields)
    if count >= CURRENT_AGGREGATE_FIELDS:
        aggregate = AggregateRecord(
            type_code=type_code,
            category=tax_category(type_code),
            contribution_code=field_at(fields, 2),
            gross_revenue=amount_at(fields, 3),
            original_base=amount_at(fields, 4),
            base_increases=amount_at(fields, 5),
            base_decreases=amount_at(fields, 6),
            adjusted_base=amount_at(fields, 7),
            rate=amount_at(fields, 8),
            quantity_base=amount_at(fields, 9),
            quantity_rate=amount_at(fields, 10),
            apportioned=amount_at(fields, 11),
            contribution_increases=amount_at(fields, 12),
            contribution_decreases=amount_at(fields, 13),
            deferred=amount_at(fields, 14),
            deferred_prior=amount_at(fields, 15),
            final_value=amount_at(fields, 16),
            layout="current",
        )
    elif count >= LEGACY_AGGREGATE_FIELDS:
        base = amount_at(fields, 4)
        aggregate = AggregateRecord(
            type_code=type_code,
            category=tax_category(type_code),
            contribution_code=field_at(fields, 2),
            gross_revenue=amount_at(fields, 3),
            original_base=base,
            adjusted_base=base,
            rate=amount_at(fields, 5),
            quantity_base=amount_at(fields, 6),
            quantity_rate=amount_at(fields, 7),
            apportioned=amount_at(fields, 8),
            contribution_increases=amount_at(fields, 9),
            contribution_decreases=amount_at(fields, 10),
            deferred=amount_at(fields, 11),
            deferred_prior=amount_at(fields, 12),
            final_value=amount_at(fields, 13),
            layout="legacy",
        )
    else:
        return None
    context.open_aggregate(aggregate)
    return aggregate


def decode_base_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    direction = ADJUSTMENT_DIRECTIONS.get(field_at(fields, 2))
    if direction is None:
        return None
    detail = AdjustmentDetail(
        type_code=type_code,
        category=tax_category(type_code),
        target="base",
        direction=direction,
        value=amount_at(fields, 3),
        code=field_at(fields, 4),
        document_number=field_at(fields, 5),
        description=field_at(fields, 6),
        reference_date=field_at(fields, 7),
        account_code=field_at(fields, 8),
        cnpj=field_at(fields, 9),
        info=field_at(fields, 10),
    )
    context.attach(detail)
    return detail


def decode_contribution_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    direction = ADJUSTMENT_DIRECTIONS.get(field_at(fields, 2))
    if direction is None:
        return None
    detail = AdjustmentDetail(
        type_code=type_code,
        category=tax_category(type_code),
        target="contribution",
        direction=direction,
        value=amount_at(fields, 3),
        code=field_at(fields, 4),
        document_number=field_at(fields, 5),
        description=field_at(fields, 6),
        reference_date=field_at(fields, 7),
    )
    context.attach(detail)
    return detail


def decode_contribution_adjustment_detail(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "contribution_adjustment_detail",
        attributes={"cst": 3, "date": 6, "description": 7, "account_code": 8},
        amounts={"value": 2, "base": 4, "rate": 5},
    )


def decode_non_taxed_revenue(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return NonTaxedRevenue(
        type_code=type_code,
        category=tax_category(type_code),
        value=amount_at(fields, 3),
        cst=field_at(fields, 2),
        account_code=field_at(fields, 4),
        description=field_at(fields, 5),
    )


def decode_non_taxed_revenue_detail(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "non_taxed_revenue_detail",
        attributes={"nature_code": 2, "account_code": 4, "description": 5},
        amounts={"value": 3},
    )


def decode_credit_control(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return TotalsEntry(
        type_code=type_code,
        category=tax_category(type_code),
        reference=field_at(fields, 2),
        amounts={
            "computed": amount_at(fields, 8),
            "available": amount_at(fields, 12),
            "discounted": amount_at(fields, 13),
            "ending_balance": amount_at(fields, 18),
        },
    )


def decode_withholding_control(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    type_code = field_at(fields, 1)
    return TotalsEntry(
        type_code=type_code,
        category=f"{tax_category(type_code)}_withholding",
        reference=field_at(fields, 3),
        amounts={
            "withheld": amount_at(fields, 4),
            "deducted": amount_at(fields, 5),
            "refunded": amount_at(fields, 6),
            "compensated": amount_at(fields, 7),
            "balance": amount_at(fields, 8),
        },
    )


def decode_payroll_revenue(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "payroll_revenue",
        attributes={"start_date": 2, "end_date": 3, "activity_code": 5},
        amounts={"total_revenue": 4, "activity_revenue": 6, "exclusions": 7, "base": 8, "rate": 9, "contribution": 10},
    )


def decode_payroll_contribution(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return DebitEntry(
        type_code="P200",
        category="cprb",
        total_debits=amount_at(fields, 3),
        credit_adjustments=amount_at(fields, 4),
        debit_adjustments=amount_at(fields, 5),
        payable=amount_at(fields, 6),
        code=field_at(fields, 7),
        description=field_at(fields, 2),
    )


RECORD_LAYOUTS: dict[str, tuple[int, Decoder]] = {
    **control_schemas("0ACDFIMP1"),
    "0000": (12, decode_opening),
    "0110": (3, decode_incidence_regime),
    "0140": (5, decode_establishment),
    "0150": (4, decode_participant),
    "0200": (4, decode_item_master),
    "A010": (3, decode_block_establishment),
    "A100": (13, decode_service_document),
    "A170": (6, decode_service_item),
    "C010": (3, decode_block_establishment),
    "C100": (13, decode_invoice),
    "C170": (8, decode_invoice_item),
    "C180": (9, decode_consolidated_sales),
    "C181": (11, decode_consolidated_sales_tax),
    "C185": (11, decode_consolidated_sales_tax),
    "D010": (3, decode_block_establishment),
    "D101": (9, decode_freight_credit),
    "D105": (9, decode_freight_credit),
    "F010": (3, decode_block_establishment),
    "F100": (15, decode_other_operation),
    "F120": (16, decode_asset_credit),
    "F130": (19, decode_asset_credit),
    "F150": (13, decode_opening_stock_credit),
    "M100": (9, decode_credit),
    "M105": (8, decode_credit_base),
    "M110": (4, decode_credit_adjustment),
    "M200": (14, decode_period_contribution),
    "M205": (5, decode_contribution_due),
    "M210": (14, decode_contribution_aggregate),
    "M215": (5, decode_base_adjustment),
    "M220": (5, decode_contribution_adjustment),
    "M225": (3, decode_contribution_adjustment_detail),
    "M400": (4, decode_non_taxed_revenue),
    "M410": (4, decode_non_taxed_revenue_detail),
    "M500": (9, decode_credit),
    "M505": (8, decode_credit_base),
    "M510": (4, decode_credit_adjustment),
    "M600": (14, decode_period_contribution),
    "M605": (5, decode_contribution_due),
    "M610": (14, decode_contribution_aggregate),
    "M615": (5, decode_base_adjustment),
    "M620": (5, decode_contribution_adjustment),
    "M625": (3, decode_contribution_adjustment_detail),
    "M800": (4, decode_non_taxed_revenue),
    "M810": (4, decode_non_taxed_revenue_detail),
    "P010": (3, decode_block_establishment),
    "P100": (11, decode_payroll_revenue),
    "P200": (7, decode_payroll_contribution),
    "1100": (14, decode_credit_control),
    "1300": (9, decode_withholding_control),
    "1500": (14, decode_credit_control),
    "1700": (9, decode_withholding_control),
}
