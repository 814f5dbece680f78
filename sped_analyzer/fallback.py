#!/usr/bin/env python3

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Iterable

from sped_analyzer.models import (
    AggregateRecord,
    DocumentFamily,
    FigureSource,
    ParsedDocument,
    TaxFigure,
)
from sped_analyzer.numeric import HUNDRED, ZERO

logger = logging.getLogger(__name__)

MAX_PLAUSIBLE_FIGURE = Decimal("1000000000")

TAXES = ("icms", "ipi", "pis", "cofins", "iss")
DIRECTIONS = ("debit", "credit")

NON_CUMULATIVE_RATES = {"pis": Decimal("1.65"), "cofins": Decimal("7.6")}
CUMULATIVE_RATES = {"pis": Decimal("0.65"), "cofins": Decimal("3.0")}
CUMULATIVE_REGIME_CODE = "2"

# Share of revenue assumed to carry credits when nothing is declared.
CREDIT_BASE_FRACTION = {
    "pis": Decimal("0.4"),
    "cofins": Decimal("0.4"),
    "icms": Decimal("0.6"),
    "ipi": Decimal("0.6"),
}
DEBIT_BASE_FRACTION = Decimal("1.0")

IPI_AVERAGE_RATE = Decimal("5")
ISS_AVERAGE_RATE = Decimal("5")
DEFAULT_ICMS_RATE = Decimal("18")
INDUSTRIAL_ACTIVITY = "0"

# Internal ICMS rates per state; states absent here use DEFAULT_ICMS_RATE.
ICMS_RATE_BY_UF = {
    "AC": Decimal("19"),
    "AL": Decimal("19"),
    "AM": Decimal("20"),
    "AP": Decimal("18"),
    "BA": Decimal("20.5"),
    "CE": Decimal("20"),
    "DF": Decimal("20"),
    "ES": Decimal("17"),
    "GO": Decimal("19"),
    "MA": Decimal("23"),
    "MG": Decimal("18"),
    "MS": Decimal("17"),
    "MT": Decimal("17"),
    "PA": Decimal("19"),
    "PB": Decimal("20"),
    "PE": Decimal("20.5"),
    "PI": Decimal("22.5"),
    "PR": Decimal("19.5"),
    "RJ": Decimal("22"),
    "RN": Decimal("20"),
    "RO": Decimal("19.5"),
    "RR": Decimal("20"),
    "RS": Decimal("17"),
    "SC": Decimal("17"),
    "SE": Decimal("19"),
    "SP": Decimal("18"),
    "TO": Decimal("20"),
}

Strategy = tuple[FigureSource, str, Callable[[], Decimal]]


def is_plausible(value: Decimal) -> bool:
    return ZERO < value < MAX_PLAUSIBLE_FIGURE


def first_plausible(strategies: Iterable[Strategy]) -> TaxFigure | None:
    """Run strategies in order and keep the first plausible value.

    Later strategies are never evaluated once one succeeds.
    """
    for source, basis, compute in strategies:
        value = compute()
        if is_plausible(value):
            return TaxFigure(value=value, source=source, basis=basis)
        logger.debug(f"Strategy '{basis}' produced no usable value ({value})")
    return None


def aggregate_contribution(aggregate: AggregateRecord) -> Decimal:
    """Contribution declared by one M210/M610: final value, then apportioned, then rate x base."""
    if aggregate.final_value > ZERO:
        return aggregate.final_value
    if aggregate.apportioned > ZERO:
        return aggregate.apportioned
    if aggregate.rate > ZERO and aggregate.adjusted_base > ZERO:
        return aggregate.adjusted_base * aggregate.rate / HUNDRED
    return aggregate.quantity_base * aggregate.quantity_rate


def icms_rate_for(uf: str | None) -> Decimal:
    if not uf:
        return DEFAULT_ICMS_RATE
    return ICMS_RATE_BY_UF.get(uf.strip().upper(), DEFAULT_ICMS_RATE)


class FallbackChain:
    """Resolve every (tax, debit/credit) figure from a set of parsed documents.

    Declared and alternate-layout strategies always run. The correlated-tax
    ratio and the turnover estimate only run with ``estimate_missing``.
    """

    def __init__(
        self,
        documents: list[ParsedDocument],
        revenue: Decimal = ZERO,
        estimate_missing: bool = False,
        region: str | None = None,
    ) -> None:
        self.documents = documents
        self.revenue = revenue
        self.estimate_missing = estimate_missing
        self.region = region
        self.resolved: dict[str, TaxFigure] = {}

    def of_family(self, family: DocumentFamily) -> list[ParsedDocument]:
        return [document for document in self.documents if document.family is family]

    @property
    def cumulative_regime(self) -> bool:
        for document in self.of_family(DocumentFamily.CONTRIBUTIONS):
            regime = document.regimes.get("contributions")
            if regime is not None and regime.code == CUMULATIVE_REGIME_CODE:
                return True
        return False

    @property
    def industrial(self) -> bool:
        return any(
            document.company is not None and document.company.activity == INDUSTRIAL_ACTIVITY
            for document in self.of_family(DocumentFamily.GOODS)
        )

    @property
    def contribution_rates(self) -> dict[str, Decimal]:
        return CUMULATIVE_RATES if self.cumulative_regime else NON_CUMULATIVE_RATES

    def resolve_all(self) -> dict[str, TaxFigure]:
        for tax in TAXES:
            for direction in DIRECTIONS:
                figure = first_plausible(self.declared_strategies(tax, direction))
                if figure is not None:
                    self.resolved[f"{tax}_{direction}"] = figure

        if self.estimate_missing:
            for tax in TAXES:
                for direction in DIRECTIONS:
                    key = f"{tax}_{direction}"
                    if key in self.resolved:
                        continue
                    figure = first_plausible(self.estimation_strategies(tax, direction))
                    if figure is not None:
                        self.resolved[key] = figure

        for key, figure in self.resolved.items():
            logger.debug(f"{key}: {figure.value} ({figure.source.value}: {figure.basis})")
        return dict(self.resolved)

    def resolve(self, tax: str, direction: str) -> TaxFigure | None:
        key = f"{tax}_{direction}"
        if key in self.resolved:
            return self.resolved[key]
        strategies = list(self.declared_strategies(tax, direction))
        if self.estimate_missing:
            strategies.extend(self.estimation_strategies(tax, direction))
        figure = first_plausible(strategies)
        if figure is not None:
            self.resolved[key] = figure
        return figure

    def declared_strategies(self, tax: str, direction: str) -> list[Strategy]:
        if tax in ("pis", "cofins"):
            if direction == "debit":
                return self._contribution_debit_strategies(tax)
            return self._contribution_credit_strategies(tax)
        if tax == "icms":
            return self._icms_strategies(direction)
        if tax == "ipi":
            return self._ipi_strategies(direction)
        if tax == "iss" and direction == "debit":
            return [(FigureSource.DECLARED, "A100 ISS on services rendered", self._service_iss)]
        return []

    def estimation_strategies(self, tax: str, direction: str) -> list[Strategy]:
        label = tax.upper()
        strategies: list[Strategy] = []
        if tax in ("pis", "cofins"):
            strategies.append(
                (
                    FigureSource.ESTIMATED,
                    f"{label} from correlated contribution ratio",
                    lambda: self._ratio(tax, direction),
                )
            )
        strategies.append(
            (
                FigureSource.ESTIMATED,
                f"{label} from revenue and average rate",
                lambda: self._turnover(tax, direction),
            )
        )
        return strategies

    def _sum(self, family: DocumentFamily, extract: Callable[[ParsedDocument], Decimal]) -> Decimal:
        return sum((extract(document) for document in self.of_family(family)), ZERO)

    def _contribution_debit_strategies(self, tax: str) -> list[Strategy]:
        family = DocumentFamily.CONTRIBUTIONS

        def aggregates(*layouts: str) -> Decimal:
            return self._sum(
                family,
                lambda document: sum(
                    (
                        aggregate_contribution(aggregate)
                        for aggregate in document.aggregates.get(tax, [])
                        if aggregate.layout in layouts
                    ),
                    ZERO,
                ),
            )

        code = "M210" if tax == "pis" else "M610"
        totals_code = "M200" if tax == "pis" else "M600"
        layouts = {
            aggregate.layout
            for document in self.of_family(family)
            for aggregate in document.aggregates.get(tax, [])
        }
        declared_basis = f"{code} period contribution"
        if {"current", "legacy"} <= layouts:
            declared_basis += " (current and legacy layouts)"

        def declared() -> Decimal:
            # Legacy records count as declared once any current-layout record is present.
            if "current" not in layouts:
                return ZERO
            return aggregates("current", "legacy")

        return [
            (FigureSource.DECLARED, declared_basis, declared),
            (FigureSource.ALTERNATE, f"{code} legacy layout", lambda: aggregates("legacy")),
            (
                FigureSource.ALTERNATE,
                f"{totals_code} period totals",
                lambda: self._sum(
                    family,
                    lambda document: sum(
                        (
                            entry.total_debits
                            for entry in document.debits.get(tax, [])
                            if entry.type_code == totals_code
                        ),
                        ZERO,
                    ),
                ),
            ),
            (
                FigureSource.ALTERNATE,
                "consolidated sales and service documents",
                lambda: self._sum(family, lambda document: self._document_contribution(document, tax)),
            ),
        ]

    @staticmethod
    def _document_contribution(document: ParsedDocument, tax: str) -> Decimal:
        analytic = sum((entry.tax_value for entry in document.analytic if entry.category == tax), ZERO)
        services = sum(
            (
                getattr(fiscal_document, f"{tax}_value")
                for fiscal_document in document.documents
                if fiscal_document.type_code == "A100" and fiscal_document.is_output
            ),
            ZERO,
        )
        return analytic + services

    def _contribution_credit_strategies(self, tax: str) -> list[Strategy]:
        family = DocumentFamily.CONTRIBUTIONS
        code = "M100" if tax == "pis" else "M500"
        totals_code = "M200" if tax == "pis" else "M600"
        control_code = "1100" if tax == "pis" else "1500"
        return [
            (
                FigureSource.DECLARED,
                f"{code} period credits",
                lambda: self._sum(
                    family,
                    lambda document: sum(
                        (credit.best_value for credit in document.credits.get(tax, []) if credit.role == "period"),
                        ZERO,
                    ),
                ),
            ),
            (
                FigureSource.ALTERNATE,
                f"{totals_code} credits discounted",
                lambda: self._sum(
                    family,
                    lambda document: sum(
                        (
                            entry.total_credits
                            for entry in document.debits.get(tax, [])
                            if entry.type_code == totals_code
                        ),
                        ZERO,
                    ),
                ),
            ),
            (
                FigureSource.ALTERNATE,
                f"{control_code} credit control",
                lambda: self._sum(
                    family,
                    lambda document: sum(
                        (entry.amounts.get("discounted", ZERO) for entry in document.totals.get(tax, [])),
                        ZERO,
                    ),
                ),
            ),
            (
                FigureSource.ALTERNATE,
                "freight document credits",
                lambda: self._sum(
                    family,
                    lambda document: sum(
                        (credit.value for credit in document.credits.get(tax, []) if credit.role == "document"),
                        ZERO,
                    ),
                ),
            ),
        ]

    def _icms_strategies(self, direction: str) -> list[Strategy]:
        family = DocumentFamily.GOODS
        output = direction == "debit"

        def apuration(document: ParsedDocument) -> Decimal:
            entries = [entry for entry in document.debits.get("icms", []) if entry.type_code == "E110"]
            return sum((entry.debit_side if output else entry.credit_side for entry in entries), ZERO)

        def analytic(document: ParsedDocument) -> Decimal:
            return sum(
                (
                    entry.tax_value
                    for entry in document.analytic
                    if entry.category == "icms" and (entry.is_output if output else entry.is_input)
                ),
                ZERO,
            )

        def invoices(document: ParsedDocument) -> Decimal:
            return sum(
                (
                    fiscal_document.icms_value
                    for fiscal_document in document.documents
                    if fiscal_document.is_output == output
                ),
                ZERO,
            )

        side = "debits" if output else "credits"
        return [
            (FigureSource.DECLARED, f"E110 ICMS {side}", lambda: self._sum(family, apuration)),
            (FigureSource.ALTERNATE, f"C190/D190 analytic ICMS {side}", lambda: self._sum(family, analytic)),
            (FigureSource.ALTERNATE, f"C100 invoice ICMS {side}", lambda: self._sum(family, invoices)),
        ]

    def _ipi_strategies(self, direction: str) -> list[Strategy]:
        family = DocumentFamily.GOODS
        output = direction == "debit"

        def apuration(document: ParsedDocument) -> Decimal:
            entries = [entry for entry in document.debits.get("ipi", []) if entry.type_code == "E520"]
            if output:
                return sum((entry.total_debits + entry.debit_adjustments for entry in entries), ZERO)
            return sum((entry.total_credits + entry.credit_adjustments for entry in entries), ZERO)

        def analytic(document: ParsedDocument) -> Decimal:
            # E510 already rolls up the C190 operations of the period.
            entries = [entry for entry in document.analytic if entry.type_code == "E510"]
            if not entries:
                entries = [entry for entry in document.analytic if entry.type_code == "C190"]
            return sum(
                (entry.ipi_value for entry in entries if (entry.is_output if output else entry.is_input)),
                ZERO,
            )

        def invoices(document: ParsedDocument) -> Decimal:
            return sum(
                (
                    fiscal_document.ipi_value
                    for fiscal_document in document.documents
                    if fiscal_document.is_output == output
                ),
                ZERO,
            )

        side = "debits" if output else "credits"
        return [
            (FigureSource.DECLARED, f"E520 IPI {side}", lambda: self._sum(family, apuration)),
            (FigureSource.ALTERNATE, f"E510/C190 analytic IPI {side}", lambda: self._sum(family, analytic)),
            (FigureSource.ALTERNATE, f"C100 invoice IPI {side}", lambda: self._sum(family, invoices)),
        ]

    def service_revenue(self) -> Decimal:
        return self._sum(
            DocumentFamily.CONTRIBUTIONS,
            lambda document: sum(
                (
                    fiscal_document.total_value
                    for fiscal_document in document.documents
                    if fiscal_document.type_code == "A100" and fiscal_document.is_output
                ),
                ZERO,
            ),
        )

    def _service_iss(self) -> Decimal:
        return self._sum(
            DocumentFamily.CONTRIBUTIONS,
            lambda document: sum(
                (
                    fiscal_document.iss_value
                    for fiscal_document in document.documents
                    if fiscal_document.type_code == "A100" and fiscal_document.is_output
                ),
                ZERO,
            ),
        )

    def _ratio(self, tax: str, direction: str) -> Decimal:
        other = "cofins" if tax == "pis" else "pis"
        figure = self.resolved.get(f"{other}_{direction}")
        if figure is None:
            return ZERO
        rates = self.contribution_rates
        return figure.value * rates[tax] / rates[other]

    def _turnover(self, tax: str, direction: str) -> Decimal:
        if self.revenue <= ZERO:
            return ZERO
        fraction = DEBIT_BASE_FRACTION if direction == "debit" else CREDIT_BASE_FRACTION.get(tax, ZERO)
        if tax in ("pis", "cofins"):
            if direction == "credit" and self.cumulative_regime:
                return ZERO
            return self.revenue * fraction * self.contribution_rates[tax] / HUNDRED
        if tax == "icms":
            return self.revenue * fraction * icms_rate_for(self.region) / HUNDRED
        if tax == "ipi":
            if not self.industrial:
                return ZERO
            return self.revenue * fraction * IPI_AVERAGE_RATE / HUNDRED
        if tax == "iss" and direction == "debit":
            return self.service_revenue() * ISS_AVERAGE_RATE / HUNDRED
        return ZERO
