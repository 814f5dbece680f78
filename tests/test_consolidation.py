import dataclasses
import unittest
from decimal import Decimal
from unittest.mock import patch

import pytest

from sped_analyzer.consolidation import (
    ConsolidationOptions,
    ExtractionError,
    compute_cash_cycle,
    consolidate,
    consolidate_revenue,
    integrity_observations,
    project_transition,
    report_to_markdown,
)
from sped_analyzer.dispatch import parse_lines
from sped_analyzer.models import (
    AggregateRecord,
    DebitEntry,
    DocumentFamily,
    FinancialResults,
    FiscalDocument,
    ParsedDocument,
    ParseMetadata,
    TaxComposition,
)


def empty_document(family: DocumentFamily) -> ParsedDocument:
    return ParsedDocument(family=family, metadata=ParseMetadata(family=family))


def goods_with_invoice(total: str) -> ParsedDocument:
    document = empty_document(DocumentFamily.GOODS)
    document.documents.append(FiscalDocument(type_code="C100", operation="1", total_value=Decimal(total)))
    return document


@pytest.mark.unit
class ConsolidationTests(unittest.TestCase):
    def test_revenue_is_max_not_sum(self) -> None:
        contributions = empty_document(DocumentFamily.CONTRIBUTIONS)
        contributions.aggregates["pis"] = [
            AggregateRecord(type_code="M210", category="pis", gross_revenue=Decimal("100000"))
        ]
        revenue, sources = consolidate_revenue([contributions, goods_with_invoice("95000")])
        self.assertEqual(revenue, Decimal("100000"))
        self.assertEqual(len(sources), 2)

    def test_implausible_effective_rate_is_clamped(self) -> None:
        goods = goods_with_invoice("1000")
        goods.debits["icms"] = [
            DebitEntry(type_code="E110", category="icms", total_debits=Decimal("10000000"), balance=Decimal("10000000"))
        ]
        report = consolidate([goods])
        taxes = report.tax_composition
        self.assertEqual(taxes.net_liabilities["icms"], Decimal("10000000"))
        self.assertEqual(taxes.effective_rates["icms"], Decimal("0"))
        self.assertEqual(taxes.total_effective_rate, Decimal("0"))
        self.assertTrue(any("implausible" in observation for observation in report.observations))

    def test_unexpected_failure_is_wrapped_once(self) -> None:
        with patch("sped_analyzer.consolidation.compute_financial_results", side_effect=RuntimeError("boom")):
            with self.assertRaises(ExtractionError) as caught:
                consolidate([goods_with_invoice("1000")])
        self.assertEqual(str(caught.exception), "extraction failed: boom")
        self.assertIsInstance(caught.exception.__cause__, RuntimeError)

    def test_report_fields_cannot_be_reassigned(self) -> None:
        report = consolidate([goods_with_invoice("1000")])
        with self.assertRaises(dataclasses.FrozenInstanceError):
            report.transition = None
        with self.assertRaises(dataclasses.FrozenInstanceError):
            report.observations = ()

    def test_no_documents_gives_empty_report(self) -> None:
        report = consolidate([])
        self.assertEqual(report.tax_composition.total_liability, Decimal("0"))
        self.assertEqual(report.families, ())
        self.assertEqual(report.quality.level, "Low")


def test_end_to_end_goods_and_contributions(goods_document, contributions_document):
    report = consolidate([goods_document, contributions_document])
    taxes = report.tax_composition

    assert taxes.revenue == Decimal("50000.00")
    assert taxes.net_liabilities["icms"] == Decimal("5000.00")
    assert taxes.net_liabilities["pis"] == Decimal("450.00")
    assert taxes.total_liability == Decimal("5450.00")
    assert taxes.total_effective_rate == Decimal("10.9")
    assert taxes.figures["pis_debit"].basis == "M210 period contribution"
    assert any("COFINS" in observation for observation in report.observations)

    assert report.company.name == "EMPRESA TESTE LTDA"
    assert report.company.regime == "PIS/COFINS non-cumulative"
    assert report.families == (DocumentFamily.GOODS, DocumentFamily.CONTRIBUTIONS)
    assert report.quality.level == "High"
    assert report.transition is not None
    assert len(report.transition.years) == 8


def test_estimate_missing_fills_cofins(goods_document, contributions_document):
    report = consolidate(
        [goods_document, contributions_document],
        ConsolidationOptions(estimate_missing=True, include_transition=False),
    )
    figure = report.tax_composition.figures["cofins_debit"]
    assert figure.source.value == "estimated"
    assert report.transition is None


def test_income_statement_and_income_taxes(goods_document, income_tax_lines):
    income_tax = parse_lines(income_tax_lines, family=DocumentFamily.INCOME_TAX)
    report = consolidate([goods_document, income_tax])
    financials = report.financial_results

    assert financials.has_statement
    assert financials.net_revenue == Decimal("90000.00")
    assert financials.operating_profit == Decimal("20000.00")
    assert financials.gross_margin.quantize(Decimal("0.01")) == Decimal("44.44")
    assert report.tax_composition.revenue == Decimal("100000.00")
    assert report.tax_composition.income_taxes == {"irpj": Decimal("1500.00"), "csll": Decimal("900.00")}
    assert report.company.regime == "lucro real"
    assert not any("Revenue diverges" in observation for observation in report.observations)


def test_integrity_flags_revenue_divergence():
    composition = TaxComposition(revenue=Decimal("100000"), total_effective_rate=Decimal("12"))
    financials = FinancialResults(gross_revenue=Decimal("80000"), net_revenue=Decimal("80000"))
    observations = integrity_observations(composition, financials, ConsolidationOptions())
    assert any("Revenue diverges" in observation for observation in observations)
    assert not any("very low" in observation for observation in observations)


def test_cash_cycle_from_closing_balances(accounting_lines):
    accounting = parse_lines(accounting_lines, family=DocumentFamily.ACCOUNTING)
    cycle = compute_cash_cycle([accounting], Decimal("366000"), FinancialResults(), ConsolidationOptions())

    assert cycle.receivable_days == Decimal("10")
    assert cycle.payable_days == Decimal("20")
    assert cycle.inventory_days == Decimal("15")
    assert cycle.operating_cycle == Decimal("25")
    assert cycle.net_cycle == Decimal("5")
    assert not cycle.estimated


def test_cash_cycle_defaults_without_balances():
    cycle = compute_cash_cycle([], Decimal("1000"), FinancialResults(), ConsolidationOptions())
    assert cycle.receivable_days == Decimal("30")
    assert cycle.net_cycle == Decimal("30")
    assert cycle.estimated


def test_transition_projection_blends_regimes():
    composition = TaxComposition(
        revenue=Decimal("100000"),
        total_liability=Decimal("10000"),
        total_effective_rate=Decimal("10"),
    )
    projection = project_transition(composition, ConsolidationOptions())
    first = projection.years[0]

    assert first.year == 2026
    assert first.current_regime_tax == Decimal("9000")
    assert first.target_regime_tax == Decimal("2650")
    assert first.total_tax == Decimal("11650")
    assert first.effective_rate == Decimal("11.65")
    assert first.cash_flow_impact == Decimal("265")
    assert projection.years[-1].total_tax == Decimal("26500")
    assert projection.final_variation == Decimal("16500")
    assert "rises" in projection.observations[0]


def test_options_from_dict():
    options = ConsolidationOptions.from_dict(
        {"estimate_missing": True, "target_rate": 28, "schedule": {"2027": {"current": 0.5, "target": 0.5}}}
    )
    assert options.estimate_missing
    assert options.target_rate == Decimal("28")
    assert options.schedule == {2027: (Decimal("0.5"), Decimal("0.5"))}
    assert options.include_transition


def test_markdown_report(goods_document, contributions_document):
    markdown = report_to_markdown(consolidate([goods_document, contributions_document]))
    assert "# SPED Consolidated Report" in markdown
    assert "| ICMS | R$ 8.000,00 | R$ 3.000,00 | R$ 5.000,00 | 10.00% | declared |" in markdown
    assert "## Transition Projection" in markdown
    assert "EMPRESA TESTE LTDA" in markdown
