#!/usr/bin/env python3

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

from sped_analyzer.numeric import ZERO, as_float


class DocumentFamily(str, Enum):
    GOODS = "goods"
    CONTRIBUTIONS = "contributions"
    INCOME_TAX = "income_tax"
    ACCOUNTING = "accounting"

    @property
    def label(self) -> str:
        return FAMILY_LABELS[self]


FAMILY_LABELS = {
    DocumentFamily.GOODS: "EFD ICMS/IPI",
    DocumentFamily.CONTRIBUTIONS: "EFD Contribuicoes",
    DocumentFamily.INCOME_TAX: "ECF",
    DocumentFamily.ACCOUNTING: "ECD",
}

# Company fields are taken from the first family in this order that has them.
FAMILY_PRIORITY = (
    DocumentFamily.GOODS,
    DocumentFamily.CONTRIBUTIONS,
    DocumentFamily.INCOME_TAX,
    DocumentFamily.ACCOUNTING,
)


class EntityKind(str, Enum):
    COMPANY = "company"
    DOCUMENT = "document"
    LINE_ITEM = "line_item"
    ITEM_MASTER = "item_master"
    ANALYTIC = "analytic"
    PARTICIPANT = "participant"
    CREDIT = "credit"
    DEBIT = "debit"
    ADJUSTMENT = "adjustment"
    AGGREGATE = "aggregate"
    ADJUSTMENT_DETAIL = "adjustment_detail"
    REGIME = "regime"
    NON_TAXED_REVENUE = "non_taxed_revenue"
    ACCOUNT = "account"
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    INVENTORY = "inventory"
    TOTALS = "totals"
    PERIOD = "period"
    DETAIL = "detail"


class AdjustmentDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class FigureSource(str, Enum):
    DECLARED = "declared"
    ALTERNATE = "alternate"
    ESTIMATED = "estimated"


@dataclass
class CompanyInfo:
    type_code: str
    name: str = ""
    trade_name: str = ""
    cnpj: str = ""
    state_registration: str = ""
    uf: str = ""
    municipality_code: str = ""
    activity: str = ""
    start_date: str = ""
    end_date: str = ""
    layout_version: str = ""
    regime: str = ""

    kind: ClassVar[EntityKind] = EntityKind.COMPANY

    MERGE_FIELDS: ClassVar[tuple[str, ...]] = (
        "name",
        "trade_name",
        "cnpj",
        "state_registration",
        "uf",
        "municipality_code",
        "activity",
        "start_date",
        "end_date",
        "layout_version",
        "regime",
    )

    def merge(self, other: CompanyInfo) -> None:
        for name in self.MERGE_FIELDS:
            value = getattr(other, name)
            if value:
                setattr(self, name, value)


@dataclass
class Participant:
    type_code: str
    code: str
    name: str = ""
    country_code: str = ""
    cnpj: str = ""
    cpf: str = ""
    state_registration: str = ""
    municipality_code: str = ""

    kind: ClassVar[EntityKind] = EntityKind.PARTICIPANT


@dataclass
class ItemMaster:
    type_code: str
    code: str
    description: str = ""
    unit: str = ""
    item_type: str = ""
    ncm: str = ""

    kind: ClassVar[EntityKind] = EntityKind.ITEM_MASTER


@dataclass
class FiscalDocument:
    type_code: str
    operation: str
    participant_code: str = ""
    model: str = ""
    series: str = ""
    number: str = ""
    access_key: str = ""
    issue_date: str = ""
    total_value: Decimal = ZERO
    goods_value: Decimal = ZERO
    icms_value: Decimal = ZERO
    ipi_value: Decimal = ZERO
    pis_value: Decimal = ZERO
    cofins_value: Decimal = ZERO
    iss_value: Decimal = ZERO
    participant: Participant | None = None

    kind: ClassVar[EntityKind] = EntityKind.DOCUMENT

    @property
    def is_output(self) -> bool:
        return self.operation == "1"


@dataclass
class LineItem:
    type_code: str
    item_number: str = ""
    item_code: str = ""
    description: str = ""
    quantity: Decimal = ZERO
    unit: str = ""
    value: Decimal = ZERO
    discount: Decimal = ZERO
    movement: str = ""
    cst: str = ""
    cfop: str = ""
    icms_base: Decimal = ZERO
    icms_rate: Decimal = ZERO
    icms_value: Decimal = ZERO
    icms_st_base: Decimal = ZERO
    icms_st_value: Decimal = ZERO
    ipi_value: Decimal = ZERO
    item_master: ItemMaster | None = None

    kind: ClassVar[EntityKind] = EntityKind.LINE_ITEM


@dataclass
class AnalyticEntry:
    type_code: str
    category: str
    cst: str = ""
    cfop: str = ""
    rate: Decimal = ZERO
    operation_value: Decimal = ZERO
    base: Decimal = ZERO
    tax_value: Decimal = ZERO
    st_base: Decimal = ZERO
    st_value: Decimal = ZERO
    reduced_base: Decimal = ZERO
    ipi_value: Decimal = ZERO

    kind: ClassVar[EntityKind] = EntityKind.ANALYTIC

    @property
    def is_output(self) -> bool:
        return self.cfop[:1] in ("5", "6", "7")

    @property
    def is_input(self) -> bool:
        return self.cfop[:1] in ("1", "2", "3")


@dataclass
class CreditEntry:
    type_code: str
    category: str
    value: Decimal
    role: str = "period"
    code: str = ""
    base: Decimal = ZERO
    rate: Decimal = ZERO
    available: Decimal = ZERO
    discounted: Decimal = ZERO

    kind: ClassVar[EntityKind] = EntityKind.CREDIT

    @property
    def best_value(self) -> Decimal:
        for candidate in (self.discounted, self.available, self.value):
            if candidate > ZERO:
                return candidate
        return ZERO


@dataclass
class DebitEntry:
    type_code: str
    category: str
    total_debits: Decimal = ZERO
    debit_adjustments: Decimal = ZERO
    total_debit_adjustments: Decimal = ZERO
    credit_reversals: Decimal = ZERO
    total_credits: Decimal = ZERO
    credit_adjustments: Decimal = ZERO
    total_credit_adjustments: Decimal = ZERO
    debit_reversals: Decimal = ZERO
    prior_credit_balance: Decimal = ZERO
    balance: Decimal = ZERO
    deductions: Decimal = ZERO
    payable: Decimal = ZERO
    credit_carryforward: Decimal = ZERO
    special_debits: Decimal = ZERO
    code: str = ""
    description: str = ""

    kind: ClassVar[EntityKind] = EntityKind.DEBIT

    @property
    def debit_side(self) -> Decimal:
        return self.total_debits + self.debit_adjustments + self.total_debit_adjustments + self.credit_reversals

    @property
    def credit_side(self) -> Decimal:
        return (
            self.total_credits
            + self.credit_adjustments
            + self.total_credit_adjustments
            + self.debit_reversals
            + self.prior_credit_balance
        )


@dataclass
class AdjustmentEntry:
    type_code: str
    category: str
    value: Decimal
    direction: AdjustmentDirection | None = None
    code: str = ""
    description: str = ""

    kind: ClassVar[EntityKind] = EntityKind.ADJUSTMENT


@dataclass
class ValidationOutcome:
    is_valid: bool
    divergence: Decimal
    formula: str
    subject: str = ""
    declared: Decimal | None = None
    computed: Decimal | None = None

    def describe(self) -> str:
        status = "ok" if self.is_valid else "FAILED"
        sides = ""
        if self.declared is not None and self.computed is not None:
            sides = f" (declared {self.declared:.2f}, computed {self.computed:.2f})"
        subject = f"{self.subject}: " if self.subject else ""
        return f"{subject}{self.formula} {status}{sides}, divergence {self.divergence:.2f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "divergence": as_float(self.divergence),
            "formula": self.formula,
            "subject": self.subject,
            "declared": as_float(self.declared),
            "computed": as_float(self.computed),
        }


@dataclass
class AdjustmentDetail:
    type_code: str
    category: str
    target: str
    direction: AdjustmentDirection
    value: Decimal
    code: str = ""
    description: str = ""
    document_number: str = ""
    reference_date: str = ""
    account_code: str = ""
    cnpj: str = ""
    info: str = ""
    orphaned: bool = False

    kind: ClassVar[EntityKind] = EntityKind.ADJUSTMENT_DETAIL


@dataclass
class AggregateRecord:
    type_code: str
    category: str
    contribution_code: str = ""
    gross_revenue: Decimal = ZERO
    original_base: Decimal = ZERO
    base_increases: Decimal = ZERO
    base_decreases: Decimal = ZERO
    adjusted_base: Decimal = ZERO
    rate: Decimal = ZERO
    quantity_base: Decimal = ZERO
    quantity_rate: Decimal = ZERO
    apportioned: Decimal = ZERO
    contribution_increases: Decimal = ZERO
    contribution_decreases: Decimal = ZERO
    deferred: Decimal = ZERO
    deferred_prior: Decimal = ZERO
    final_value: Decimal = ZERO
    layout: str = "current"
    line_number: int = 0
    children: list[AdjustmentDetail] = field(default_factory=list)
    validations: list[ValidationOutcome] = field(default_factory=list)

    kind: ClassVar[EntityKind] = EntityKind.AGGREGATE

    @property
    def label(self) -> str:
        code = f" code {self.contribution_code}" if self.contribution_code else ""
        return f"{self.category.upper()} {self.type_code}{code} (line {self.line_number})"


@dataclass
class RegimeFlag:
    type_code: str
    category: str
    code: str
    description: str = ""
    credit_method: str = ""
    contribution_type: str = ""

    kind: ClassVar[EntityKind] = EntityKind.REGIME


@dataclass
class NonTaxedRevenue:
    type_code: str
    category: str
    value: Decimal
    cst: str = ""
    nature_code: str = ""
    account_code: str = ""
    description: str = ""

    kind: ClassVar[EntityKind] = EntityKind.NON_TAXED_REVENUE


@dataclass
class ChartAccount:
    type_code: str
    code: str
    name: str = ""
    nature: str = ""
    account_type: str = ""
    level: str = ""
    parent_code: str = ""

    kind: ClassVar[EntityKind] = EntityKind.ACCOUNT


@dataclass
class BalanceSheetEntry:
    type_code: str
    account_code: str
    description: str = ""
    group: str = ""
    level: str = ""
    opening_value: Decimal = ZERO
    opening_dc: str = ""
    debits: Decimal = ZERO
    credits: Decimal = ZERO
    final_value: Decimal = ZERO
    final_dc: str = ""
    layout: str = "current"

    kind: ClassVar[EntityKind] = EntityKind.BALANCE_SHEET


@dataclass
class IncomeStatementEntry:
    type_code: str
    code: str
    description: str = ""
    value: Decimal = ZERO
    dc: str = ""
    group: str = ""
    layout: str = "current"

    kind: ClassVar[EntityKind] = EntityKind.INCOME_STATEMENT


@dataclass
class InventoryEntry:
    type_code: str
    level: str
    value: Decimal
    item_code: str = ""
    unit: str = ""
    quantity: Decimal = ZERO
    unit_value: Decimal = ZERO
    inventory_date: str = ""

    kind: ClassVar[EntityKind] = EntityKind.INVENTORY


@dataclass
class TotalsEntry:
    type_code: str
    category: str
    amounts: dict[str, Decimal] = field(default_factory=dict)
    reference: str = ""

    kind: ClassVar[EntityKind] = EntityKind.TOTALS


@dataclass
class PeriodEntry:
    type_code: str
    start_date: str = ""
    end_date: str = ""
    days: int = 0

    kind: ClassVar[EntityKind] = EntityKind.PERIOD


@dataclass
class DetailEntry:
    type_code: str
    label: str
    attributes: dict[str, str] = field(default_factory=dict)
    amounts: dict[str, Decimal] = field(default_factory=dict)

    kind: ClassVar[EntityKind] = EntityKind.DETAIL


Entity = Union[
    CompanyInfo,
    FiscalDocument,
    LineItem,
    ItemMaster,
    AnalyticEntry,
    Participant,
    CreditEntry,
    DebitEntry,
    AdjustmentEntry,
    AggregateRecord,
    AdjustmentDetail,
    RegimeFlag,
    NonTaxedRevenue,
    ChartAccount,
    BalanceSheetEntry,
    IncomeStatementEntry,
    InventoryEntry,
    TotalsEntry,
    PeriodEntry,
    DetailEntry,
]


@dataclass(frozen=True)
class Record:
    type_code: str
    raw_fields: tuple[str, ...]
    decoded: Entity
    line_number: int


@dataclass
class ParseError:
    line_number: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"line_number": self.line_number, "message": self.message}


@dataclass
class ParseMetadata:
    family: DocumentFamily
    lines_total: int = 0
    records_decoded: int = 0
    records_skipped: int = 0
    errors: list[ParseError] = field(default_factory=list)
    filename: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "family": self.family.value,
            "filename": self.filename,
            "lines_total": self.lines_total,
            "records_decoded": self.records_decoded,
            "records_skipped": self.records_skipped,
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class CategoryTotals:
    category: str
    debits: Decimal = ZERO
    credits: Decimal = ZERO
    debit_adjustments: Decimal = ZERO
    credit_adjustments: Decimal = ZERO
    prior_balance: Decimal = ZERO
    original_base: Decimal = ZERO
    base_increases: Decimal = ZERO
    base_decreases: Decimal = ZERO
    adjusted_base: Decimal = ZERO
    total: Decimal = ZERO


@dataclass
class ParsedDocument:
    family: DocumentFamily
    metadata: ParseMetadata
    company: CompanyInfo | None = None
    documents: list[FiscalDocument] = field(default_factory=list)
    line_items: list[LineItem] = field(default_factory=list)
    item_master: list[ItemMaster] = field(default_factory=list)
    analytic: list[AnalyticEntry] = field(default_factory=list)
    participants: list[Participant] = field(default_factory=list)
    credits: dict[str, list[CreditEntry]] = field(default_factory=dict)
    debits: dict[str, list[DebitEntry]] = field(default_factory=dict)
    adjustments: dict[str, list[AdjustmentEntry]] = field(default_factory=dict)
    aggregates: dict[str, list[AggregateRecord]] = field(default_factory=dict)
    adjustment_details: dict[str, list[AdjustmentDetail]] = field(default_factory=dict)
    regimes: dict[str, RegimeFlag] = field(default_factory=dict)
    non_taxed_revenues: dict[str, list[NonTaxedRevenue]] = field(default_factory=dict)
    accounts: list[ChartAccount] = field(default_factory=list)
    balance_sheet: list[BalanceSheetEntry] = field(default_factory=list)
    income_statement: list[IncomeStatementEntry] = field(default_factory=list)
    inventory: list[InventoryEntry] = field(default_factory=list)
    totals: dict[str, list[TotalsEntry]] = field(default_factory=dict)
    periods: list[PeriodEntry] = field(default_factory=list)
    detail: dict[str, list[DetailEntry]] = field(default_factory=dict)
    category_totals: dict[str, CategoryTotals] = field(default_factory=dict)
    validations: list[ValidationOutcome] = field(default_factory=list)

    @property
    def failed_validations(self) -> list[ValidationOutcome]:
        return [outcome for outcome in self.validations if not outcome.is_valid]

    def bucket_sizes(self) -> dict[str, int]:
        sizes = {
            "company": 1 if self.company else 0,
            "documents": len(self.documents),
            "line_items": len(self.line_items),
            "item_master": len(self.item_master),
            "analytic": len(self.analytic),
            "participants": len(self.participants),
            "regimes": len(self.regimes),
            "accounts": len(self.accounts),
            "balance_sheet": len(self.balance_sheet),
            "income_statement": len(self.income_statement),
            "inventory": len(self.inventory),
            "periods": len(self.periods),
        }
        keyed: dict[str, dict[str, list[Any]]] = {
            "credits": dict(self.credits),
            "debits": dict(self.debits),
            "adjustments": dict(self.adjustments),
            "aggregates": dict(self.aggregates),
            "adjustment_details": dict(self.adjustment_details),
            "non_taxed_revenues": dict(self.non_taxed_revenues),
            "totals": dict(self.totals),
            "detail": dict(self.detail),
        }
        for bucket, groups in keyed.items():
            for key, entries in groups.items():
                sizes[f"{bucket}.{key}"] = len(entries)
        return sizes


@dataclass
class TaxFigure:
    value: Decimal
    source: FigureSource
    basis: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"value": as_float(self.value), "source": self.source.value, "basis": self.basis}


@dataclass
class TaxComposition:
    revenue: Decimal = ZERO
    debits: dict[str, Decimal] = field(default_factory=dict)
    credits: dict[str, Decimal] = field(default_factory=dict)
    net_liabilities: dict[str, Decimal] = field(default_factory=dict)
    effective_rates: dict[str, Decimal] = field(default_factory=dict)
    total_liability: Decimal = ZERO
    total_effective_rate: Decimal = ZERO
    figures: dict[str, TaxFigure] = field(default_factory=dict)
    credit_utilization: dict[str, Decimal] = field(default_factory=dict)
    income_taxes: dict[str, Decimal] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)
    observations: list[str] = field(default_factory=list)


@dataclass
class FinancialResults:
    gross_revenue: Decimal = ZERO
    deductions: Decimal = ZERO
    net_revenue: Decimal = ZERO
    costs: Decimal = ZERO
    operating_expenses: Decimal = ZERO
    gross_profit: Decimal = ZERO
    operating_profit: Decimal = ZERO
    net_profit: Decimal = ZERO
    gross_margin: Decimal = ZERO
    operating_margin: Decimal = ZERO
    net_margin: Decimal = ZERO
    has_statement: bool = False
    sources: list[str] = field(default_factory=list)
    observations: list[str] = field(default_factory=list)


@dataclass
class CashCycle:
    receivable_days: Decimal
    inventory_days: Decimal
    payable_days: Decimal
    operating_cycle: Decimal = ZERO
    net_cycle: Decimal = ZERO
    estimated: bool = True
    sources: list[str] = field(default_factory=list)
    observations: list[str] = field(default_factory=list)


@dataclass
class YearProjection:
    year: int
    current_weight: Decimal
    target_weight: Decimal
    current_regime_tax: Decimal
    target_regime_tax: Decimal
    total_tax: Decimal
    effective_rate: Decimal
    cash_flow_impact: Decimal


@dataclass
class TransitionProjection:
    target_rate: Decimal
    years: list[YearProjection] = field(default_factory=list)
    cumulative_impact: Decimal = ZERO
    final_variation: Decimal = ZERO
    observations: list[str] = field(default_factory=list)


@dataclass
class QualityScore:
    score: int
    level: str
    criteria: dict[str, int] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)


def _decimal_map(values: dict[str, Decimal]) -> dict[str, float | None]:
    return {key: as_float(value) for key, value in values.items()}


@dataclass(frozen=True)
class ConsolidatedReport:
    """Result of one consolidation call.

    Only the report itself is frozen. Its sections (company, composition,
    cash cycle, quality...) are the mutable dataclasses filled in while
    consolidating; they are not copied, so callers must treat them as read-only.
    """

    company: CompanyInfo
    tax_composition: TaxComposition
    financial_results: FinancialResults
    cash_cycle: CashCycle
    quality: QualityScore
    families: tuple[DocumentFamily, ...] = ()
    transition: TransitionProjection | None = None
    observations: tuple[str, ...] = ()
    validations: tuple[ValidationOutcome, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        company = self.company
        taxes = self.tax_composition
        financials = self.financial_results
        cycle = self.cash_cycle
        payload: dict[str, Any] = {
            "company": {name: getattr(company, name) for name in CompanyInfo.MERGE_FIELDS},
            "families": [family.value for family in self.families],
            "tax_composition": {
                "revenue": as_float(taxes.revenue),
                "debits": _decimal_map(taxes.debits),
                "credits": _decimal_map(taxes.credits),
                "net_liabilities": _decimal_map(taxes.net_liabilities),
                "effective_rates": _decimal_map(taxes.effective_rates),
                "total_liability": as_float(taxes.total_liability),
                "total_effective_rate": as_float(taxes.total_effective_rate),
                "figures": {key: figure.to_dict() for key, figure in taxes.figures.items()},
                "credit_utilization": _decimal_map(taxes.credit_utilization),
                "income_taxes": _decimal_map(taxes.income_taxes),
                "sources": list(taxes.sources),
                "observations": list(taxes.observations),
            },
            "financial_results": {
                "gross_revenue": as_float(financials.gross_revenue),
                "deductions": as_float(financials.deductions),
                "net_revenue": as_float(financials.net_revenue),
                "costs": as_float(financials.costs),
                "operating_expenses": as_float(financials.operating_expenses),
                "gross_profit": as_float(financials.gross_profit),
                "operating_profit": as_float(financials.operating_profit),
                "net_profit": as_float(financials.net_profit),
                "gross_margin": as_float(financials.gross_margin),
                "operating_margin": as_float(financials.operating_margin),
                "net_margin": as_float(financials.net_margin),
                "has_statement": financials.has_statement,
                "sources": list(financials.sources),
                "observations": list(financials.observations),
            },
            "cash_cycle": {
                "receivable_days": as_float(cycle.receivable_days),
                "inventory_days": as_float(cycle.inventory_days),
                "payable_days": as_float(cycle.payable_days),
                "operating_cycle": as_float(cycle.operating_cycle),
                "net_cycle": as_float(cycle.net_cycle),
                "estimated": cycle.estimated,
                "sources": list(cycle.sources),
                "observations": list(cycle.observations),
            },
            "transition": None,
            "quality": {
                "score": self.quality.score,
                "level": self.quality.level,
                "criteria": dict(self.quality.criteria),
                "recommendations": list(self.quality.recommendations),
            },
            "observations": list(self.observations),
            "validations": [outcome.to_dict() for outcome in self.validations],
        }
        if self.transition is not None:
            payload["transition"] = {
                "target_rate": as_float(self.transition.target_rate),
                "years": [
                    {
                        "year": projection.year,
                        "current_weight": float(projection.current_weight),
                        "target_weight": float(projection.target_weight),
                        "current_regime_tax": as_float(projection.current_regime_tax),
                        "target_regime_tax": as_float(projection.target_regime_tax),
                        "total_tax": as_float(projection.total_tax),
                        "effective_rate": as_float(projection.effective_rate),
                        "cash_flow_impact": as_float(projection.cash_flow_impact),
                    }
                    for projection in self.transition.years
                ],
                "cumulative_impact": as_float(self.transition.cumulative_impact),
                "final_variation": as_float(self.transition.final_variation),
                "observations": list(self.transition.observations),
            }
        return payload
