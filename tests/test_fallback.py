import unittest
from decimal import Decimal
from unittest.mock import patch

import pytest

from sped_analyzer.fallback import FallbackChain, aggregate_contribution, first_plausible, icms_rate_for
from sped_analyzer.models import (
    AggregateRecord,
    AnalyticEntry,
    CompanyInfo,
    DebitEntry,
    DocumentFamily,
    FigureSource,
    FiscalDocument,
    ParsedDocument,
    ParseMetadata,
    RegimeFlag,
)


def empty_document(family: DocumentFamily) -> ParsedDocument:
    return ParsedDocument(family=family, metadata=ParseMetadata(family=family))


def contributions_with_pis(value: str, layout: str = "current") -> ParsedDocument:
    document = empty_document(DocumentFamily.CONTRIBUTIONS)
    document.aggregates["pis"] = [
        AggregateRecord(type_code="M210", category="pis", final_value=Decimal(value), layout=layout)
    ]
    return document


@pytest.mark.unit
class FallbackOrderTests(unittest.TestCase):
    def test_declared_value_wins_without_running_estimates(self) -> None:
        chain = FallbackChain(
            [contributions_with_pis("500")],
            revenue=Decimal("100000"),
            estimate_missing=True,
        )
        with (
            patch.object(FallbackChain, "_ratio") as ratio,
            patch.object(FallbackChain, "_turnover") as turnover,
        ):
            figure = chain.resolve("pis", "debit")

        self.assertEqual(figure.value, Decimal("500"))
        self.assertEqual(figure.source, FigureSource.DECLARED)
        ratio.assert_not_called()
        turnover.assert_not_called()

    def test_legacy_layout_is_alternate(self) -> None:
        chain = FallbackChain([contributions_with_pis("300", layout="legacy")])
        figure = chain.resolve("pis", "debit")
        self.assertEqual(figure.value, Decimal("300"))
        self.assertEqual(figure.source, FigureSource.ALTERNATE)

    def test_period_totals_used_when_no_aggregate(self) -> None:
        document = empty_document(DocumentFamily.CONTRIBUTIONS)
        document.debits["pis"] = [DebitEntry(type_code="M200", category="pis", total_debits=Decimal("420"))]
        figure = FallbackChain([document]).resolve("pis", "debit")
        self.assertEqual(figure.value, Decimal("420"))
        self.assertIn("M200", figure.basis)

    def test_missing_tax_without_estimation(self) -> None:
        chain = FallbackChain([contributions_with_pis("500")], revenue=Decimal("100000"))
        figures = chain.resolve_all()
        self.assertIn("pis_debit", figures)
        self.assertNotIn("cofins_debit", figures)
        self.assertNotIn("icms_debit", figures)

    def test_correlated_ratio_estimate(self) -> None:
        chain = FallbackChain([contributions_with_pis("165")], revenue=Decimal("100000"), estimate_missing=True)
        figures = chain.resolve_all()
        cofins = figures["cofins_debit"]
        self.assertEqual(cofins.source, FigureSource.ESTIMATED)
        self.assertEqual(cofins.value, Decimal("760"))

    def test_turnover_estimate_uses_region_rate(self) -> None:
        chain = FallbackChain(
            [empty_document(DocumentFamily.GOODS)],
            revenue=Decimal("10000"),
            estimate_missing=True,
            region="RJ",
        )
        figure = chain.resolve("icms", "debit")
        self.assertEqual(figure.value, Decimal("2200"))
        self.assertEqual(figure.source, FigureSource.ESTIMATED)

    def test_ipi_estimate_only_for_industry(self) -> None:
        document = empty_document(DocumentFamily.GOODS)
        document.company = CompanyInfo(type_code="0000", activity="1")
        chain = FallbackChain([document], revenue=Decimal("10000"), estimate_missing=True)
        self.assertIsNone(chain.resolve("ipi", "debit"))

        document.company.activity = "0"
        chain = FallbackChain([document], revenue=Decimal("10000"), estimate_missing=True)
        self.assertEqual(chain.resolve("ipi", "debit").value, Decimal("500"))

    def test_cumulative_regime_has_no_credit_estimate(self) -> None:
        document = empty_document(DocumentFamily.CONTRIBUTIONS)
        document.regimes["contributions"] = RegimeFlag(type_code="0110", category="contributions", code="2")
        chain = FallbackChain([document], revenue=Decimal("10000"), estimate_missing=True)
        self.assertTrue(chain.cumulative_regime)
        self.assertEqual(chain.resolve("pis", "debit").value, Decimal("65"))
        self.assertIsNone(chain.resolve("pis", "credit"))

    def test_mixed_layouts_are_summed_as_declared(self) -> None:
        chain = FallbackChain([contributions_with_pis("500"), contributions_with_pis("300", layout="legacy")])
        figure = chain.resolve("pis", "debit")
        self.assertEqual(figure.value, Decimal("800"))
        self.assertEqual(figure.source, FigureSource.DECLARED)
        self.assertEqual(figure.basis, "M210 period contribution (current and legacy layouts)")


def goods_with(
    apuration: list[DebitEntry] | None = None,
    analytic: list[AnalyticEntry] | None = None,
    invoices: list[FiscalDocument] | None = None,
) -> ParsedDocument:
    document = empty_document(DocumentFamily.GOODS)
    for entry in apuration or []:
        document.debits.setdefault(entry.category, []).append(entry)
    document.analytic.extend(analytic or [])
    document.documents.extend(invoices or [])
    return document


ICMS_APURATION = DebitEntry(
    type_code="E110", category="icms", total_debits=Decimal("800"), total_credits=Decimal("300")
)
ICMS_ANALYTIC = [
    AnalyticEntry(type_code="C190", category="icms", cfop="5102", tax_value=Decimal("700")),
    AnalyticEntry(type_code="C190", category="icms", cfop="1102", tax_value=Decimal("200")),
]
ICMS_INVOICES = [
    FiscalDocument(type_code="C100", operation="1", icms_value=Decimal("650")),
    FiscalDocument(type_code="C100", operation="0", icms_value=Decimal("150")),
]


@pytest.mark.unit
class GoodsStrategyTests(unittest.TestCase):
    def resolve(self, document: ParsedDocument, tax: str, direction: str):
        return FallbackChain([document]).resolve(tax, direction)

    def test_icms_apuration_is_declared(self) -> None:
        document = goods_with([ICMS_APURATION], ICMS_ANALYTIC, ICMS_INVOICES)
        debit = self.resolve(document, "icms", "debit")
        credit = self.resolve(document, "icms", "credit")
        self.assertEqual((debit.value, debit.source), (Decimal("800"), FigureSource.DECLARED))
        self.assertEqual((credit.value, credit.source), (Decimal("300"), FigureSource.DECLARED))

    def test_icms_analytic_without_apuration(self) -> None:
        document = goods_with(analytic=ICMS_ANALYTIC, invoices=ICMS_INVOICES)
        debit = self.resolve(document, "icms", "debit")
        credit = self.resolve(document, "icms", "credit")
        self.assertEqual((debit.value, debit.source), (Decimal("700"), FigureSource.ALTERNATE))
        self.assertEqual(debit.basis, "C190/D190 analytic ICMS debits")
        self.assertEqual(credit.value, Decimal("200"))

    def test_icms_invoices_last(self) -> None:
        document = goods_with(invoices=ICMS_INVOICES)
        debit = self.resolve(document, "icms", "debit")
        credit = self.resolve(document, "icms", "credit")
        self.assertEqual((debit.value, debit.source), (Decimal("650"), FigureSource.ALTERNATE))
        self.assertEqual(debit.basis, "C100 invoice ICMS debits")
        self.assertEqual(credit.value, Decimal("150"))

    def test_ipi_apuration_is_declared(self) -> None:
        apuration = DebitEntry(
            type_code="E520", category="ipi", total_debits=Decimal("400"), debit_adjustments=Decimal("50")
        )
        analytic = [AnalyticEntry(type_code="E510", category="ipi", cfop="5101", ipi_value=Decimal("999"))]
        figure = self.resolve(goods_with([apuration], analytic), "ipi", "debit")
        self.assertEqual((figure.value, figure.source), (Decimal("450"), FigureSource.DECLARED))

    def test_ipi_roll_up_is_not_added_to_its_operations(self) -> None:
        analytic = [
            AnalyticEntry(type_code="C190", category="icms", cfop="5101", ipi_value=Decimal("500")),
            AnalyticEntry(type_code="E510", category="ipi", cfop="5101", ipi_value=Decimal("500")),
            AnalyticEntry(type_code="E510", category="ipi", cfop="1101", ipi_value=Decimal("120")),
        ]
        document = goods_with(analytic=analytic)
        debit = self.resolve(document, "ipi", "debit")
        credit = self.resolve(document, "ipi", "credit")
        self.assertEqual((debit.value, debit.source), (Decimal("500"), FigureSource.ALTERNATE))
        self.assertEqual(debit.basis, "E510/C190 analytic IPI debits")
        self.assertEqual(credit.value, Decimal("120"))

    def test_ipi_from_invoice_analytic_without_roll_up(self) -> None:
        analytic = [AnalyticEntry(type_code="C190", category="icms", cfop="6101", ipi_value=Decimal("500"))]
        invoices = [FiscalDocument(type_code="C100", operation="1", ipi_value=Decimal("480"))]
        figure = self.resolve(goods_with(analytic=analytic, invoices=invoices), "ipi", "debit")
        self.assertEqual(figure.value, Decimal("500"))
        self.assertEqual(figure.source, FigureSource.ALTERNATE)

    def test_ipi_invoices_last(self) -> None:
        invoices = [FiscalDocument(type_code="C100", operation="1", ipi_value=Decimal("300"))]
        figure = self.resolve(goods_with(invoices=invoices), "ipi", "debit")
        self.assertEqual(figure.value, Decimal("300"))
        self.assertEqual(figure.basis, "C100 invoice IPI debits")
        self.assertIsNone(self.resolve(goods_with(invoices=invoices), "ipi", "credit"))


def test_implausible_values_are_skipped():
    strategies = [
        (FigureSource.DECLARED, "negative", lambda: Decimal("-5")),
        (FigureSource.DECLARED, "huge", lambda: Decimal("5000000000")),
        (FigureSource.ALTERNATE, "usable", lambda: Decimal("12")),
    ]
    figure = first_plausible(strategies)
    assert figure.basis == "usable"
    assert figure.source is FigureSource.ALTERNATE


def test_aggregate_contribution_falls_back_to_rate_times_base():
    aggregate = AggregateRecord(
        type_code="M210",
        category="pis",
        adjusted_base=Decimal("10000"),
        rate=Decimal("1.65"),
    )
    assert aggregate_contribution(aggregate) == Decimal("165")
    aggregate.rate = Decimal("0")
    aggregate.quantity_base = Decimal("100")
    aggregate.quantity_rate = Decimal("0.5")
    assert aggregate_contribution(aggregate) == Decimal("50")


def test_icms_rate_defaults():
    assert icms_rate_for(None) == Decimal("18")
    assert icms_rate_for("rj") == Decimal("22")
    assert icms_rate_for("XX") == Decimal("18")
