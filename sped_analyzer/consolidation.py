#!/usr/bin/env python3

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sped_analyzer.decoders.common import normalize_description, period_days
from sped_analyzer.fallback import TAXES, FallbackChain
from sped_analyzer.financials import compute_financial_results, statement_revenue
from sped_analyzer.models import (
    FAMILY_PRIORITY,
    CashCycle,
    CompanyInfo,
    ConsolidatedReport,
    DocumentFamily,
    FigureSource,
    FinancialResults,
    ParsedDocument,
    TaxComposition,
    TransitionProjection,
    YearProjection,
)
from sped_analyzer.numeric import HUNDRED, ZERO, format_money, format_percent, safe_ratio
from sped_analyzer.quality import score_quality

logger = logging.getLogger(__name__)

# Year -> (current-regime weight, target-regime weight).
TRANSITION_SCHEDULE: dict[int, tuple[Decimal, Decimal]] = {
    2026: (Decimal("0.90"), Decimal("0.10")),
    2027: (Decimal("0.75"), Decimal("0.25")),
    2028: (Decimal("0.60"), Decimal("0.40")),
    2029: (Decimal("0.45"), Decimal("0.55")),
    2030: (Decimal("0.30"), Decimal("0.70")),
    2031: (Decimal("0.15"), Decimal("0.85")),
    2032: (Decimal("0.05"), Decimal("0.95")),
    2033: (Decimal("0.00"), Decimal("1.00")),
}
CBS_RATE = Decimal("8.8")
IBS_RATE = Decimal("17.7")
TARGET_RATE = CBS_RATE + IBS_RATE

MAX_EFFECTIVE_RATE = Decimal("100")
HIGH_TOTAL_RATE = Decimal("50")
LOW_TOTAL_RATE = Decimal("5")
SIMPLIFIED_REGIME_RATE = Decimal("10")
HIGH_BURDEN_RATE = Decimal("25")
HIGH_OPERATING_MARGIN = Decimal("50")
LOW_OPERATING_MARGIN = Decimal("-10")

DEFAULT_CYCLE_DAYS = Decimal("30")
DEFAULT_PERIOD_DAYS = 365
MAX_RECEIVABLE_DAYS = Decimal("180")
MAX_PAYABLE_DAYS = Decimal("180")
MAX_INVENTORY_DAYS = Decimal("365")

RECEIVABLE_MARKERS = ("CLIENTES", "RECEBER")
PAYABLE_MARKERS = ("FORNECEDORES",)
INVENTORY_MARKERS = ("ESTOQUE",)

# Family that declares each tax; used for "not declared" observations.
DECLARING_FAMILY = {
    "icms": DocumentFamily.GOODS,
    "ipi": DocumentFamily.GOODS,
    "pis": DocumentFamily.CONTRIBUTIONS,
    "cofins": DocumentFamily.CONTRIBUTIONS,
    "iss": DocumentFamily.CONTRIBUTIONS,
}


class ExtractionError(Exception):
    """Raised when consolidation fails unexpectedly."""

    pass


@dataclass
class ConsolidationOptions:
    estimate_missing: bool = False
    include_transition: bool = True
    target_rate: Decimal = TARGET_RATE
    schedule: dict[int, tuple[Decimal, Decimal]] = field(default_factory=lambda: dict(TRANSITION_SCHEDULE))
    default_cycle_days: Decimal = DEFAULT_CYCLE_DAYS
    revenue_divergence_tolerance: Decimal = Decimal("0.05")
    region: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ConsolidationOptions:
        options = cls()
        if "estimate_missing" in payload:
            options.estimate_missing = bool(payload["estimate_missing"])
        if "include_transition" in payload:
            options.include_transition = bool(payload["include_transition"])
        if "target_rate" in payload:
            options.target_rate = Decimal(str(payload["target_rate"]))
        if "schedule" in payload:
            options.schedule = {
                int(year): (Decimal(str(weights["current"])), Decimal(str(weights["target"])))
                for year, weights in payload["schedule"].items()
            }
        if "default_cycle_days" in payload:
            options.default_cycle_days = Decimal(str(payload["default_cycle_days"]))
        if "revenue_divergence_tolerance" in payload:
            options.revenue_divergence_tolerance = Decimal(str(payload["revenue_divergence_tolerance"]))
        if payload.get("region"):
            options.region = str(payload["region"]).upper()
        return options


def documents_of(documents: list[ParsedDocument], family: DocumentFamily) -> list[ParsedDocument]:
    return [document for document in documents if document.family is family]


def consolidate_company(documents: list[ParsedDocument]) -> CompanyInfo:
    """Each field takes the first non-empty value in family priority order."""
    company = CompanyInfo(type_code="")
    for family in FAMILY_PRIORITY:
        for document in documents_of(documents, family):
            if document.company is None:
                continue
            for name in CompanyInfo.MERGE_FIELDS:
                if not getattr(company, name) and getattr(document.company, name):
                    setattr(company, name, getattr(document.company, name))
    for document in documents_of(documents, DocumentFamily.INCOME_TAX):
        regime = document.regimes.get("income_tax")
        if regime is not None and regime.description:
            company.regime = regime.description
    if not company.regime:
        for document in documents_of(documents, DocumentFamily.CONTRIBUTIONS):
            regime = document.regimes.get("contributions")
            if regime is not None:
                company.regime = f"PIS/COFINS {regime.description}"
    return company


def document_revenue(document: ParsedDocument) -> tuple[Decimal, str]:
    """Best revenue figure a single document declares, with the records it came from."""
    if document.family is DocumentFamily.GOODS:
        invoices = sum(
            (entry.total_value for entry in document.documents if entry.type_code == "C100" and entry.is_output),
            ZERO,
        )
        if invoices > ZERO:
            return invoices, "C100 output invoices"
        analytic = sum(
            (entry.operation_value for entry in document.analytic if entry.type_code == "C190" and entry.is_output),
            ZERO,
        )
        return analytic, "C190 output operations"

    if document.family is DocumentFamily.CONTRIBUTIONS:
        per_tax = [
            sum((aggregate.gross_revenue for aggregate in document.aggregates.get(tax, [])), ZERO)
            for tax in ("pis", "cofins")
        ]
        declared = max(per_tax)
        if declared > ZERO:
            return declared, "M210/M610 gross revenue"
        services = sum(
            (entry.total_value for entry in document.documents if entry.type_code == "A100" and entry.is_output),
            ZERO,
        )
        return services, "A100 services rendered"

    revenue = statement_revenue(document)
    if revenue > ZERO:
        return revenue, "income statement gross revenue"
    if document.family is DocumentFamily.INCOME_TAX:
        establishments = sum(
            (entry.amounts.get("revenue", ZERO) for entry in document.detail.get("establishment_revenue", [])),
            ZERO,
        )
        return establishments, "Y540 establishment revenue"
    return ZERO, ""


def consolidate_revenue(documents: list[ParsedDocument]) -> tuple[Decimal, list[str]]:
    """Maximum across documents: each ledger sees the same sales from a different angle."""
    revenue = ZERO
    sources: list[str] = []
    for document in documents:
        value, basis = document_revenue(document)
        if value <= ZERO:
            continue
        sources.append(f"{document.family.label}: {basis} {format_money(value)}")
        revenue = max(revenue, value)
    return revenue, sources


def effective_rate(liability: Decimal, revenue: Decimal) -> tuple[Decimal, bool]:
    """Liability over revenue as a percentage; (0, True) when outside [0, 100]."""
    rate = safe_ratio(liability, revenue) * HUNDRED
    if rate < ZERO or rate > MAX_EFFECTIVE_RATE:
        return ZERO, True
    return rate, False


def compute_tax_composition(
    documents: list[ParsedDocument],
    revenue: Decimal,
    options: ConsolidationOptions,
    region: str | None = None,
) -> tuple[TaxComposition, bool]:
    composition = TaxComposition(revenue=revenue)
    chain = FallbackChain(
        documents,
        revenue=revenue,
        estimate_missing=options.estimate_missing,
        region=options.region or region,
    )
    composition.figures = chain.resolve_all()
    present = {document.family for document in documents}
    clamped = False

    for tax in TAXES:
        debit = composition.figures.get(f"{tax}_debit")
        credit = composition.figures.get(f"{tax}_credit")
        debit_value = debit.value if debit is not None else ZERO
        credit_value = credit.value if credit is not None else ZERO
        composition.debits[tax] = debit_value
        composition.credits[tax] = credit_value
        liability = max(ZERO, debit_value - credit_value)
        composition.net_liabilities[tax] = liability

        rate, tax_clamped = effective_rate(liability, revenue)
        composition.effective_rates[tax] = rate
        if tax_clamped:
            clamped = True
            composition.observations.append(
                f"{tax.upper()}: effective rate of {format_money(liability)} over revenue "
                f"{format_money(revenue)} is implausible; reset to 0%."
            )

        if debit is None and DECLARING_FAMILY[tax] in present:
            composition.observations.append(
                f"{tax.upper()}: no debits declared in the {DECLARING_FAMILY[tax].label} ledger; reported as zero."
            )
        for direction, figure in (("debits", debit), ("credits", credit)):
            if figure is not None and figure.source is FigureSource.ESTIMATED:
                composition.observations.append(f"{tax.upper()} {direction} estimated: {figure.basis}.")

        if debit_value > ZERO and credit_value == ZERO:
            composition.observations.append(f"{tax.upper()}: debits found without matching credits.")
        if credit_value > debit_value:
            composition.observations.append(f"{tax.upper()}: credits exceed debits; a credit balance is likely.")

    composition.total_liability = sum(composition.net_liabilities.values(), ZERO)
    total_rate, total_clamped = effective_rate(composition.total_liability, revenue)
    composition.total_effective_rate = total_rate
    if total_clamped:
        clamped = True
        composition.observations.append(
            f"Total effective rate of {format_money(composition.total_liability)} over revenue "
            f"{format_money(revenue)} is implausible; reset to 0%."
        )
    if composition.total_liability <= ZERO:
        composition.observations.append("Total net tax liability is zero; check the tax ledgers provided.")

    for tax in ("pis", "cofins"):
        debits = composition.debits[tax]
        credits = composition.credits[tax]
        utilization = HUNDRED if debits <= ZERO else min(credits / debits * HUNDRED, HUNDRED)
        composition.credit_utilization[tax] = utilization

    for tax in ("irpj", "csll"):
        composition.income_taxes[tax] = sum(
            (
                entry.payable
                for document in documents_of(documents, DocumentFamily.INCOME_TAX)
                for entry in document.debits.get(tax, [])
            ),
            ZERO,
        )

    composition.sources = sorted({f"{figure.source.value}: {figure.basis}" for figure in composition.figures.values()})
    return composition, clamped


def ledger_period_days(documents: list[ParsedDocument]) -> int:
    days = [
        period_days(document.company.start_date, document.company.end_date)
        for document in documents
        if document.company is not None
    ]
    days = [value for value in days if value > 0]
    return max(days) if days else DEFAULT_PERIOD_DAYS


def closing_balances(document: ParsedDocument) -> dict[str, Decimal]:
    """Closing balance of receivable, payable and inventory accounts in an ECD."""
    names = {account.code: normalize_description(account.name) for account in document.accounts}
    latest: dict[str, Decimal] = {}
    for entry in document.balance_sheet:
        if entry.type_code == "I155":
            latest[entry.account_code] = abs(entry.final_value)

    balances = {"receivables": ZERO, "payables": ZERO, "inventory": ZERO}
    for code, value in latest.items():
        name = names.get(code, "")
        if any(marker in name for marker in RECEIVABLE_MARKERS):
            balances["receivables"] += value
        elif any(marker in name for marker in PAYABLE_MARKERS):
            balances["payables"] += value
        elif any(marker in name for marker in INVENTORY_MARKERS):
            balances["inventory"] += value
    return balances


def goods_inventory(documents: list[ParsedDocument]) -> Decimal:
    total = ZERO
    for document in documents_of(documents, DocumentFamily.GOODS):
        declared = sum((entry.value for entry in document.inventory if entry.level == "total"), ZERO)
        if declared <= ZERO:
            declared = sum((entry.value for entry in document.inventory if entry.level == "item"), ZERO)
        total += declared
    return total


def bounded_days(
    label: str,
    balance: Decimal,
    denominator: Decimal,
    days: int,
    maximum: Decimal,
    default: Decimal,
    cycle: CashCycle,
) -> tuple[Decimal, bool]:
    if balance <= ZERO or denominator <= ZERO:
        return default, False
    value = balance / denominator * Decimal(days)
    if ZERO < value <= maximum:
        return value, True
    cycle.observations.append(f"{label} of {value:.0f} days is outside (0, {maximum}]; using {default} days.")
    return default, False


def compute_cash_cycle(
    documents: list[ParsedDocument],
    revenue: Decimal,
    financials: FinancialResults,
    options: ConsolidationOptions,
) -> CashCycle:
    default = options.default_cycle_days
    cycle = CashCycle(receivable_days=default, inventory_days=default, payable_days=default)
    days = ledger_period_days(documents)
    cost_base = financials.costs if financials.costs > ZERO else revenue

    balances = {"receivables": ZERO, "payables": ZERO, "inventory": ZERO}
    for document in documents_of(documents, DocumentFamily.ACCOUNTING):
        for key, value in closing_balances(document).items():
            balances[key] += value
    if balances["inventory"] <= ZERO:
        balances["inventory"] = goods_inventory(documents)
        if balances["inventory"] > ZERO:
            cycle.sources.append("EFD ICMS/IPI inventory (H005/H010)")
    if any(balances[key] > ZERO for key in ("receivables", "payables")):
        cycle.sources.append("ECD closing balances (I155)")

    cycle.receivable_days, receivable_derived = bounded_days(
        "Receivable days", balances["receivables"], revenue, days, MAX_RECEIVABLE_DAYS, default, cycle
    )
    cycle.payable_days, payable_derived = bounded_days(
        "Payable days", balances["payables"], cost_base, days, MAX_PAYABLE_DAYS, default, cycle
    )
    cycle.inventory_days, inventory_derived = bounded_days(
        "Inventory days", balances["inventory"], cost_base, days, MAX_INVENTORY_DAYS, default, cycle
    )

    cycle.receivable_days = cycle.receivable_days.quantize(Decimal("1"))
    cycle.payable_days = cycle.payable_days.quantize(Decimal("1"))
    cycle.inventory_days = cycle.inventory_days.quantize(Decimal("1"))
    cycle.operating_cycle = cycle.receivable_days + cycle.inventory_days
    cycle.net_cycle = cycle.operating_cycle - cycle.payable_days
    cycle.estimated = not (receivable_derived and payable_derived and inventory_derived)
    if cycle.estimated:
        cycle.sources.append(f"default of {default} days where ledgers give no usable balance")
    if cycle.net_cycle < ZERO:
        cycle.observations.append("Net cash cycle is negative: suppliers finance the operating cycle.")
    return cycle


def project_transition(
    composition: TaxComposition,
    options: ConsolidationOptions,
) -> TransitionProjection:
    """Blend current liability and target-regime tax per year of the statutory schedule."""
    revenue = composition.revenue
    liability = composition.total_liability
    target_tax = revenue * options.target_rate / HUNDRED
    projection = TransitionProjection(target_rate=options.target_rate)

    for year in sorted(options.schedule):
        current_weight, target_weight = options.schedule[year]
        current_portion = liability * current_weight
        target_portion = target_tax * target_weight
        total = current_portion + target_portion
        projection.years.append(
            YearProjection(
                year=year,
                current_weight=current_weight,
                target_weight=target_weight,
                current_regime_tax=current_portion,
                target_regime_tax=target_portion,
                total_tax=total,
                effective_rate=safe_ratio(total, revenue) * HUNDRED,
                cash_flow_impact=target_portion * target_weight,
            )
        )

    projection.cumulative_impact = sum((year.cash_flow_impact for year in projection.years), ZERO)
    projection.final_variation = target_tax - liability

    current_rate = composition.total_effective_rate
    if options.target_rate > current_rate:
        projection.observations.append(
            f"Tax burden rises from {format_percent(current_rate)} to {format_percent(options.target_rate)}."
        )
    elif options.target_rate < current_rate:
        projection.observations.append(
            f"Tax burden falls from {format_percent(current_rate)} to {format_percent(options.target_rate)}."
        )
    else:
        projection.observations.append(f"Tax burden stays at about {format_percent(current_rate)}.")
    if projection.years:
        first, last = projection.years[0].year, projection.years[-1].year
        projection.observations.append(f"Gradual transition from {first} to {last} with split payment phased in.")
    if projection.cumulative_impact > ZERO:
        projection.observations.append("Split payment is expected to weigh on working capital.")
    return projection


def integrity_observations(
    composition: TaxComposition,
    financials: FinancialResults,
    options: ConsolidationOptions,
) -> list[str]:
    observations: list[str] = []
    tax_revenue = composition.revenue
    financial_revenue = financials.gross_revenue or financials.net_revenue
    if tax_revenue > ZERO and financial_revenue > ZERO:
        divergence = abs(tax_revenue - financial_revenue) / tax_revenue
        if divergence > options.revenue_divergence_tolerance:
            observations.append(
                f"Revenue diverges between tax ledgers ({format_money(tax_revenue)}) "
                f"and financial statements ({format_money(financial_revenue)})."
            )

    total_rate = composition.total_effective_rate
    if total_rate > HIGH_TOTAL_RATE:
        observations.append(f"Total effective rate {format_percent(total_rate)} is very high; check the data.")
    elif total_rate < LOW_TOTAL_RATE:
        observations.append(f"Total effective rate {format_percent(total_rate)} is very low; check the tax regime.")

    if financials.has_statement:
        margin = financials.operating_margin
        if margin > HIGH_OPERATING_MARGIN:
            observations.append(f"Operating margin {format_percent(margin)} is very high; check the data.")
        elif margin < LOW_OPERATING_MARGIN:
            observations.append(f"Operating margin {format_percent(margin)} indicates an operating loss.")
        if financials.costs > financials.net_revenue:
            observations.append("Costs exceed net revenue.")

    if ZERO < total_rate < SIMPLIFIED_REGIME_RATE:
        observations.append("Low tax burden suggests a simplified regime (Simples Nacional).")
    elif total_rate > HIGH_BURDEN_RATE:
        observations.append("High tax burden suggests Lucro Real with few credits.")

    sources = list(dict.fromkeys(composition.sources + financials.sources))
    if sources:
        observations.append(f"Data extracted from: {', '.join(sources)}")
    return observations


def _consolidate(documents: list[ParsedDocument], options: ConsolidationOptions) -> ConsolidatedReport:
    company = consolidate_company(documents)
    revenue, revenue_sources = consolidate_revenue(documents)
    composition, clamped = compute_tax_composition(documents, revenue, options, region=company.uf)
    composition.sources = revenue_sources + composition.sources
    financials = compute_financial_results(documents)
    cycle = compute_cash_cycle(documents, revenue, financials, options)
    transition = project_transition(composition, options) if options.include_transition else None

    validations = tuple(outcome for document in documents for outcome in document.validations)
    failed = [outcome for outcome in validations if not outcome.is_valid]
    families = tuple(family for family in FAMILY_PRIORITY if any(d.family is family for d in documents))

    observations: list[str] = []
    observations.extend(composition.observations)
    observations.extend(financials.observations)
    observations.extend(cycle.observations)
    observations.extend(outcome.describe() for outcome in failed)
    observations.extend(integrity_observations(composition, financials, options))
    if transition is not None:
        observations.extend(transition.observations)

    quality = score_quality(
        composition,
        financials,
        failed_validations=len(failed),
        families=len(families),
        rate_clamped=clamped,
    )
    return ConsolidatedReport(
        company=company,
        tax_composition=composition,
        financial_results=financials,
        cash_cycle=cycle,
        quality=quality,
        families=families,
        transition=transition,
        observations=tuple(observations),
        validations=validations,
    )


def consolidate(
    documents: list[ParsedDocument],
    options: ConsolidationOptions | None = None,
) -> ConsolidatedReport:
    """Merge parsed ledgers into one report.

    Missing families only leave their figures at zero. Any unexpected failure
    is raised once as ExtractionError; no partial report is returned.
    """
    options = options or ConsolidationOptions()
    try:
        report = _consolidate(documents, options)
    except Exception as exc:
        logger.error(f"Consolidation of {len(documents)} documents failed: {exc}")
        raise ExtractionError(f"extraction failed: {exc}") from exc
    logger.info(
        f"Consolidated {len(documents)} documents: revenue {report.tax_composition.revenue}, "
        f"liability {report.tax_composition.total_liability}, quality {report.quality.level}"
    )
    return report


def report_to_markdown(report: ConsolidatedReport) -> str:
    company = report.company
    taxes = report.tax_composition
    financials = report.financial_results
    cycle = report.cash_cycle

    lines: list[str] = []
    lines.append("# SPED Consolidated Report")
    lines.append("")
    lines.append(f"- Company: {company.name or 'n/a'}")
    lines.append(f"- CNPJ: {company.cnpj or 'n/a'}")
    if company.regime:
        lines.append(f"- Regime: {company.regime}")
    lines.append(f"- Ledgers: {', '.join(family.label for family in report.families) or 'none'}")
    lines.append(f"- Quality: {report.quality.level} ({report.quality.score}/100)")
    lines.append("")

    lines.append("## Tax Composition")
    lines.append(f"- Revenue: {format_money(taxes.revenue)}")
    lines.append("")
    lines.append("| Tax | Debits | Credits | Net | Effective Rate | Source |")
    lines.append("| :--- | ---: | ---: | ---: | ---: | :--- |")
    for tax in TAXES:
        figure = taxes.figures.get(f"{tax}_debit")
        source = figure.source.value if figure is not None else "-"
        lines.append(
            f"| {tax.upper()} | {format_money(taxes.debits.get(tax))} | {format_money(taxes.credits.get(tax))} "
            f"| {format_money(taxes.net_liabilities.get(tax))} | {format_percent(taxes.effective_rates.get(tax))} "
            f"| {source} |"
        )
    lines.append(
        f"| **Total** | | | {format_money(taxes.total_liability)} | {format_percent(taxes.total_effective_rate)} | |"
    )
    if any(value > ZERO for value in taxes.income_taxes.values()):
        lines.append("")
        lines.append(f"- IRPJ payable: {format_money(taxes.income_taxes.get('irpj'))}")
        lines.append(f"- CSLL payable: {format_money(taxes.income_taxes.get('csll'))}")
    lines.append("")

    lines.append("## Financial Results")
    if financials.has_statement:
        lines.append(f"- Gross Revenue: {format_money(financials.gross_revenue)}")
        lines.append(f"- Net Revenue: {format_money(financials.net_revenue)}")
        lines.append(f"- Costs: {format_money(financials.costs)}")
        lines.append(f"- Operating Expenses: {format_money(financials.operating_expenses)}")
        lines.append(f"- Gross Margin: {format_percent(financials.gross_margin)}")
        lines.append(f"- Operating Margin: {format_percent(financials.operating_margin)}")
        lines.append(f"- Net Margin: {format_percent(financials.net_margin)}")
    else:
        lines.append("- No income statement available.")
    lines.append("")

    lines.append("## Cash Conversion Cycle")
    lines.append(f"- Receivable Days: {cycle.receivable_days}")
    lines.append(f"- Inventory Days: {cycle.inventory_days}")
    lines.append(f"- Payable Days: {cycle.payable_days}")
    lines.append(f"- Operating Cycle: {cycle.operating_cycle}")
    lines.append(f"- Net Cycle: {cycle.net_cycle}")
    lines.append(f"- Estimated: `{cycle.estimated}`")
    lines.append("")

    if report.transition is not None:
        lines.append("## Transition Projection")
        lines.append(f"- Target Rate: {format_percent(report.transition.target_rate)}")
        lines.append("")
        lines.append("| Year | Current Share | Target Share | Total Tax | Effective Rate |")
        lines.append("| :--- | ---: | ---: | ---: | ---: |")
        for year in report.transition.years:
            lines.append(
                f"| {year.year} | {format_money(year.current_regime_tax)} | {format_money(year.target_regime_tax)} "
                f"| {format_money(year.total_tax)} | {format_percent(year.effective_rate)} |"
            )
        lines.append("")
        lines.append(f"- Cumulative Cash-Flow Impact: {format_money(report.transition.cumulative_impact)}")
        lines.append(f"- Final Variation: {format_money(report.transition.final_variation)}")
        lines.append("")

    if report.quality.recommendations:
        lines.append("## Recommendations")
        for recommendation in report.quality.recommendations:
            lines.append(f"- {recommendation}")
        lines.append("")

    if report.observations:
        lines.append("## Observations")
        for observation in report.observations:
            lines.append(f"- {observation}")
        lines.append("")

    return "\n".join(lines)
