#!/usr/bin/env python3
"""Record decoders for the goods ledger (EFD ICMS/IPI).

Field positions follow the official layout. ``fields`` is the raw split of
the line on ``|``, so ``fields[0]`` is empty and ``fields[1]`` is the record
code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from sped_analyzer.decoders.common import (
    Decoder,
    amount_at,
    control_schemas,
    detail_entry,
    field_at,
    percent_at,
    period_entry,
)
from sped_analyzer.models import (
    AdjustmentDirection,
    AdjustmentEntry,
    AnalyticEntry,
    CompanyInfo,
    DebitEntry,
    Entity,
    FiscalDocument,
    InventoryEntry,
    ItemMaster,
    LineItem,
    Participant,
)
from sped_analyzer.reconciliation import validate_icms_balance

if TYPE_CHECKING:
    from sped_analyzer.reconciliation import ReconciliationContext

# Fourth character of an E111/E220 adjustment code.
DEBIT_SIDE_ADJUSTMENT_TYPES = {"0", "1", "5"}
CREDIT_SIDE_ADJUSTMENT_TYPES = {"2", "3", "4"}


def adjustment_direction_from_code(code: str) -> AdjustmentDirection | None:
    adjustment_type = code[3:4]
    if adjustment_type in DEBIT_SIDE_ADJUSTMENT_TYPES:
        return AdjustmentDirection.INCREASE
    if adjustment_type in CREDIT_SIDE_ADJUSTMENT_TYPES:
        return AdjustmentDirection.DECREASE
    return None


def decode_opening(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(
        type_code="0000",
        layout_version=field_at(fields, 2),
        start_date=field_at(fields, 4),
        end_date=field_at(fields, 5),
        name=field_at(fields, 6),
        cnpj=field_at(fields, 7) or field_at(fields, 8),
        uf=field_at(fields, 9),
        state_registration=field_at(fields, 10),
        municipality_code=field_at(fields, 11),
        activity=field_at(fields, 15),
    )


def decode_complementary_data(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return CompanyInfo(type_code="0005", trade_name=field_at(fields, 2))


def decode_accountant(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "accountant", attributes={"name": 2, "cpf": 3, "crc": 4, "cnpj": 5})


def decode_participant(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    if not code:
        return None
    return Participant(
        type_code=field_at(fields, 1),
        code=code,
        name=field_at(fields, 3),
        country_code=field_at(fields, 4),
        cnpj=field_at(fields, 5),
        cpf=field_at(fields, 6),
        state_registration=field_at(fields, 7),
        municipality_code=field_at(fields, 8),
    )


def decode_unit(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "unit", attributes={"unit": 2, "description": 3})


def decode_item_master(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    if not code:
        return None
    return ItemMaster(
        type_code=field_at(fields, 1),
        code=code,
        description=field_at(fields, 3),
        unit=field_at(fields, 6),
        item_type=field_at(fields, 7),
        ncm=field_at(fields, 8),
    )


def decode_invoice(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    # C100: shared by the goods and contributions ledgers.
    return FiscalDocument(
        type_code="C100",
        operation=field_at(fields, 2),
        participant_code=field_at(fields, 4),
        model=field_at(fields, 5),
        series=field_at(fields, 7),
        number=field_at(fields, 8),
        access_key=field_at(fields, 9),
        issue_date=field_at(fields, 10),
        total_value=amount_at(fields, 12),
        goods_value=amount_at(fields, 16),
        icms_value=amount_at(fields, 22),
        ipi_value=amount_at(fields, 25),
        pis_value=amount_at(fields, 26),
        cofins_value=amount_at(fields, 27),
    )


def decode_invoice_item(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return LineItem(
        type_code="C170",
        item_number=field_at(fields, 2),
        item_code=field_at(fields, 3),
        description=field_at(fields, 4),
        quantity=amount_at(fields, 5),
        unit=field_at(fields, 6),
        value=amount_at(fields, 7),
        discount=amount_at(fields, 8),
        movement=field_at(fields, 9),
        cst=field_at(fields, 10),
        cfop=field_at(fields, 11),
        icms_base=amount_at(fields, 13),
        icms_rate=percent_at(fields, 14),
        icms_value=amount_at(fields, 15),
        icms_st_base=amount_at(fields, 16),
        icms_st_value=amount_at(fields, 18),
        ipi_value=amount_at(fields, 24),
    )


def decode_invoice_analytic(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return AnalyticEntry(
        type_code="C190",
        category="icms",
        cst=field_at(fields, 2),
        cfop=field_at(fields, 3),
        rate=percent_at(fields, 4),
        operation_value=amount_at(fields, 5),
        base=amount_at(fields, 6),
        tax_value=amount_at(fields, 7),
        st_base=amount_at(fields, 8),
        st_value=amount_at(fields, 9),
        reduced_base=amount_at(fields, 10),
        ipi_value=amount_at(fields, 11),
    )


def decode_invoice_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    return AdjustmentEntry(
        type_code="C197",
        category="icms",
        value=amount_at(fields, 7),
        direction=adjustment_direction_from_code(code),
        code=code,
        description=field_at(fields, 3),
    )


def decode_transport_document(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return FiscalDocument(
        type_code="D100",
        operation=field_at(fields, 2),
        participant_code=field_at(fields, 4),
        model=field_at(fields, 5),
        series=field_at(fields, 7),
        number=field_at(fields, 9),
        access_key=field_at(fields, 10),
        issue_date=field_at(fields, 11),
        total_value=amount_at(fields, 15),
        icms_value=amount_at(fields, 20),
    )


def decode_transport_analytic(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return AnalyticEntry(
        type_code="D190",
        category="icms",
        cst=field_at(fields, 2),
        cfop=field_at(fields, 3),
        rate=percent_at(fields, 4),
        operation_value=amount_at(fields, 5),
        base=amount_at(fields, 6),
        tax_value=amount_at(fields, 7),
        reduced_base=amount_at(fields, 8),
    )


def decode_icms_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return period_entry("E100", field_at(fields, 2), field_at(fields, 3))


def decode_icms_apuration(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    entry = DebitEntry(
        type_code="E110",
        category="icms",
        total_debits=amount_at(fields, 2),
        debit_adjustments=amount_at(fields, 3),
        total_debit_adjustments=amount_at(fields, 4),
        credit_reversals=amount_at(fields, 5),
        total_credits=amount_at(fields, 6),
        credit_adjustments=amount_at(fields, 7),
        total_credit_adjustments=amount_at(fields, 8),
        debit_reversals=amount_at(fields, 9),
        prior_credit_balance=amount_at(fields, 10),
        balance=amount_at(fields, 11),
        deductions=amount_at(fields, 12),
        payable=amount_at(fields, 13),
        credit_carryforward=amount_at(fields, 14),
        special_debits=amount_at(fields, 15),
    )
    context.record(validate_icms_balance(entry, subject=f"ICMS E110 (line {context.line_number})"))
    return entry


def decode_icms_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    code = field_at(fields, 2)
    return AdjustmentEntry(
        type_code=field_at(fields, 1),
        category="icms_st" if field_at(fields, 1) == "E220" else "icms",
        value=amount_at(fields, 4),
        direction=adjustment_direction_from_code(code),
        code=code,
        description=field_at(fields, 3),
    )


def decode_icms_obligation(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "icms_obligation",
        attributes={"code": 2, "due_date": 4, "revenue_code": 5},
        amounts={"value": 3},
    )


def decode_icms_st_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "icms_st_period", attributes={"uf": 2, "start_date": 3, "end_date": 4})


def decode_icms_st_apuration(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return DebitEntry(
        type_code="E210",
        category="icms_st",
        prior_credit_balance=amount_at(fields, 3),
        total_credits=amount_at(fields, 4) + amount_at(fields, 5),
        credit_adjustments=amount_at(fields, 6),
        total_credit_adjustments=amount_at(fields, 7),
        total_debits=amount_at(fields, 8),
        debit_adjustments=amount_at(fields, 9),
        total_debit_adjustments=amount_at(fields, 10),
        balance=amount_at(fields, 11),
        deductions=amount_at(fields, 12),
        payable=amount_at(fields, 13),
        credit_carryforward=amount_at(fields, 14),
        special_debits=amount_at(fields, 15),
    )


def decode_ipi_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "ipi_period", attributes={"indicator": 2, "start_date": 3, "end_date": 4})


def decode_ipi_analytic(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    ipi_value = amount_at(fields, 6)
    return AnalyticEntry(
        type_code="E510",
        category="ipi",
        cfop=field_at(fields, 2),
        cst=field_at(fields, 3),
        operation_value=amount_at(fields, 4),
        base=amount_at(fields, 5),
        tax_value=ipi_value,
        ipi_value=ipi_value,
    )


def decode_ipi_apuration(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return DebitEntry(
        type_code="E520",
        category="ipi",
        prior_credit_balance=amount_at(fields, 2),
        total_debits=amount_at(fields, 3),
        total_credits=amount_at(fields, 4),
        debit_adjustments=amount_at(fields, 5),
        credit_adjustments=amount_at(fields, 6),
        credit_carryforward=amount_at(fields, 7),
        balance=amount_at(fields, 8),
        payable=amount_at(fields, 8),
    )


def decode_ipi_adjustment(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    indicator = field_at(fields, 2)
    # IND_AJ: 0 debit adjustment, 1 credit adjustment.
    direction = {"0": AdjustmentDirection.INCREASE, "1": AdjustmentDirection.DECREASE}.get(indicator)
    return AdjustmentEntry(
        type_code="E530",
        category="ipi",
        value=amount_at(fields, 3),
        direction=direction,
        code=field_at(fields, 4),
        description=field_at(fields, 7),
    )


def decode_inventory_total(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return InventoryEntry(
        type_code="H005",
        level="total",
        inventory_date=field_at(fields, 2),
        value=amount_at(fields, 3),
    )


def decode_inventory_item(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return InventoryEntry(
        type_code="H010",
        level="item",
        item_code=field_at(fields, 2),
        unit=field_at(fields, 3),
        quantity=amount_at(fields, 4),
        unit_value=amount_at(fields, 5),
        value=amount_at(fields, 6),
    )


def decode_inventory_icms(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(fields, "inventory_icms", attributes={"cst": 2}, amounts={"base": 3, "icms": 4})


def decode_production_period(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return period_entry("K100", field_at(fields, 2), field_at(fields, 3))


def decode_stock_position(fields: Sequence[str], context: ReconciliationContext) -> Entity | None:
    return detail_entry(
        fields,
        "stock_position",
        attributes={"date": 2, "item_code": 3, "owner": 5, "participant_code": 6},
        amounts={"quantity": 4},
    )


RECORD_LAYOUTS: dict[str, tuple[int, Decoder]] = {
    **control_schemas("0BCDEGHK1"),
    "0000": (16, decode_opening),
    "0005": (3, decode_complementary_data),
    "0100": (5, decode_accountant),
    "0150": (4, decode_participant),
    "0190": (4, decode_unit),
    "0200": (4, decode_item_master),
    "C100": (13, decode_invoice),
    "C170": (8, decode_invoice_item),
    "C190": (8, decode_invoice_analytic),
    "C197": (8, decode_invoice_adjustment),
    "D100": (16, decode_transport_document),
    "D190": (8, decode_transport_analytic),
    "E100": (4, decode_icms_period),
    "E110": (14, decode_icms_apuration),
    "E111": (5, decode_icms_adjustment),
    "E116": (6, decode_icms_obligation),
    "E200": (5, decode_icms_st_period),
    "E210": (14, decode_icms_st_apuration),
    "E220": (5, decode_icms_adjustment),
    "E500": (5, decode_ipi_period),
    "E510": (7, decode_ipi_analytic),
    "E520": (9, decode_ipi_apuration),
    "E530": (4, decode_ipi_adjustment),
    "H005": (4, decode_inventory_total),
    "H010": (7, decode_inventory_item),
    "H020": (5, decode_inventory_icms),
    "K100": (4, decode_production_period),
    "K200": (5, decode_stock_position),
}
