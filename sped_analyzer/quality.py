#!/usr/bin/env python3

from __future__ import annotations

from decimal import Decimal

from sped_analyzer.models import FinancialResults, QualityScore, TaxComposition
from sped_analyzer.numeric import ZERO

COMPLETENESS_WEIGHTS = {"revenue": 10, "liabilities": 10, "financials": 5}
CONSISTENCY_MAX = 25
CONSISTENCY_PENALTY = 5
PLAUSIBILITY_MAX = 25
RATE_PENALTY = 10
MARGIN_PENALTY = 5
CLAMP_PENALTY = 5
DIVERSITY_PER_FAMILY = 8
DIVERSITY_MAX = 25

PLAUSIBLE_RATE_RANGE = (Decimal("2"), Decimal("50"))
PLAUSIBLE_MARGIN = Decimal("50")

HIGH_LEVEL = 80
MEDIUM_LEVEL = 60

RECOMMENDATIONS = {
    "completeness": (20, "Provide ledgers that declare revenue, tax liabilities and an income statement (ECF or ECD)."),
    "consistency": (15, "Review the failed reconciliations: aggregate totals do not match their detail records."),
    "plausibility": (15, "Effective rate or margins are outside expected bounds; check the period and the files."),
    "diversity": (16, "Add more ledger families (EFD ICMS/IPI, EFD Contribuicoes, ECF, ECD) to cross-check figures."),
}


def quality_level(score: int) -> str:
    if score >= HIGH_LEVEL:
        return "High"
    if score >= MEDIUM_LEVEL:
        return "Medium"
    return "Low"


def score_quality(
    composition: TaxComposition,
    financials: FinancialResults,
    failed_validations: int = 0,
    families: int = 0,
    rate_clamped: bool = False,
) -> QualityScore:
    """Score a consolidation 0-100 from completeness, consistency, plausibility and source diversity."""
    completeness = 0
    if composition.revenue > ZERO:
        completeness += COMPLETENESS_WEIGHTS["revenue"]
    if composition.total_liability > ZERO:
        completeness += COMPLETENESS_WEIGHTS["liabilities"]
    if financials.has_statement:
        completeness += COMPLETENESS_WEIGHTS["financials"]

    consistency = max(0, CONSISTENCY_MAX - CONSISTENCY_PENALTY * failed_validations)

    plausibility = PLAUSIBILITY_MAX
    low, high = PLAUSIBLE_RATE_RANGE
    if composition.total_effective_rate > high or composition.total_effective_rate < low:
        plausibility -= RATE_PENALTY
    if financials.has_statement and abs(financials.operating_margin) > PLAUSIBLE_MARGIN:
        plausibility -= MARGIN_PENALTY
    if rate_clamped:
        plausibility -= CLAMP_PENALTY

    diversity = min(DIVERSITY_MAX, families * DIVERSITY_PER_FAMILY)

    criteria = {
        "completeness": completeness,
        "consistency": consistency,
        "plausibility": plausibility,
        "diversity": diversity,
    }
    score = sum(criteria.values())
    recommendations = [
        message for name, (threshold, message) in RECOMMENDATIONS.items() if criteria[name] < threshold
    ]
    return QualityScore(score=score, level=quality_level(score), criteria=criteria, recommendations=recommendations)
