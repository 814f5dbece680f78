import unittest
from decimal import Decimal

import pytest

from sped_analyzer.models import FinancialResults, TaxComposition
from sped_analyzer.quality import quality_level, score_quality


def composition(revenue: str, liability: str, rate: str) -> TaxComposition:
    return TaxComposition(
        revenue=Decimal(revenue),
        total_liability=Decimal(liability),
        total_effective_rate=Decimal(rate),
    )


@pytest.mark.unit
class QualityTests(unittest.TestCase):
    def test_levels(self) -> None:
        self.assertEqual(quality_level(80), "High")
        self.assertEqual(quality_level(79), "Medium")
        self.assertEqual(quality_level(60), "Medium")
        self.assertEqual(quality_level(59), "Low")

    def test_complete_consistent_report_scores_full(self) -> None:
        financials = FinancialResults(has_statement=True, operating_margin=Decimal("20"))
        quality = score_quality(composition("100000", "12000", "12"), financials, families=4)

        self.assertEqual(quality.score, 100)
        self.assertEqual(quality.level, "High")
        self.assertEqual(
            quality.criteria, {"completeness": 25, "consistency": 25, "plausibility": 25, "diversity": 25}
        )
        self.assertEqual(quality.recommendations, [])

    def test_failed_validations_reduce_consistency(self) -> None:
        quality = score_quality(composition("100000", "12000", "12"), FinancialResults(), failed_validations=3)
        self.assertEqual(quality.criteria["consistency"], 10)
        self.assertEqual(quality.criteria["completeness"], 20)
        self.assertTrue(any("reconciliations" in message for message in quality.recommendations))

    def test_consistency_never_negative(self) -> None:
        quality = score_quality(composition("0", "0", "0"), FinancialResults(), failed_validations=10)
        self.assertEqual(quality.criteria["consistency"], 0)

    def test_implausible_figures_reduce_plausibility(self) -> None:
        financials = FinancialResults(has_statement=True, operating_margin=Decimal("-75"))
        quality = score_quality(composition("1000", "10", "1"), financials, rate_clamped=True)
        self.assertEqual(quality.criteria["plausibility"], 5)

    def test_diversity_is_capped(self) -> None:
        one = score_quality(composition("1", "1", "10"), FinancialResults(), families=1)
        many = score_quality(composition("1", "1", "10"), FinancialResults(), families=6)
        self.assertEqual(one.criteria["diversity"], 8)
        self.assertEqual(many.criteria["diversity"], 25)
        self.assertTrue(any("ledger families" in message for message in one.recommendations))
