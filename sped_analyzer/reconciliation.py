#!/usr/bin/env python3

from __future__ import annotations

import logging
from decimal import Decimal

from sped_analyzer.models import (
    AdjustmentDetail,
    AdjustmentDirection,
    AggregateRecord,
    DebitEntry,
    DocumentFamily,
    ValidationOutcome,
)
from sped_analyzer.numeric import ZERO

logger = logging.getLogger(__name__)

ABSOLUTE_TOLERANCE = Decimal("0.01")
RELATIVE_TOLERANCE = Decimal("0.01")

BASE_FORMULA = "adjusted_base = original_base + increases - decreases"
FINAL_FORMULA = "final_value = apportioned + increases - decreases - deferred + deferred_prior"
CHILD_SUM_FORMULA = "sum({target} adjustments) = declared {target} increases/decreases"
ICMS_BALANCE_FORMULA = "balance = max(0, debit side - credit side)"

TARGET_TOTALS = {
    "base": ("base_increases", "base_decreases"),
    "contribution": ("contribution_increases", "contribution_decreases"),
}


def validate_base_formula(aggregate: AggregateRecord) -> ValidationOutcome:
    computed = aggregate.original_base + aggregate.base_increases - aggregate.base_decreases
    divergence = abs(aggregate.adjusted_base - computed)
    return ValidationOutcome(
        is_valid=divergence <= ABSOLUTE_TOLERANCE,
        divergence=divergence,
        formula=BASE_FORMULA,
        subject=aggregate.label,
        declared=aggregate.adjusted_base,
        computed=computed,
    )


def validate_final_contribution(aggregate: AggregateRecord) -> ValidationOutcome:
    computed = (
        aggregate.apportioned
        + aggregate.contribution_increases
        - aggregate.contribution_decreases
        - aggregate.deferred
        + aggregate.deferred_prior
    )
    divergence = abs(aggregate.final_value - computed)
    tolerance = abs(aggregate.final_value) * RELATIVE_TOLERANCE
    return ValidationOutcome(
        is_valid=divergence <= tolerance,
        divergence=divergence,
        formula=FINAL_FORMULA,
        subject=aggregate.label,
        declared=aggregate.final_value,
        computed=computed,
    )


def validate_child_sums(aggregate: AggregateRecord, target: str) -> ValidationOutcome | None:
    """Compare attached children of one target against the aggregate's declared totals.

    Returns None when the aggregate has no children for that target: many
    files omit the detail records, which is not an inconsistency.
    """
    children = [child for child in aggregate.children if child.target == target]
    if not children:
        return None

    increases = sum(
        (child.value for child in children if child.direction is AdjustmentDirection.INCREASE),
        ZERO,
    )
    decreases = sum(
        (child.value for child in children if child.direction is AdjustmentDirection.DECREASE),
        ZERO,
    )
    increase_field, decrease_field = TARGET_TOTALS[target]
    declared_increases: Decimal = getattr(aggregate, increase_field)
    declared_decreases: Decimal = getattr(aggregate, decrease_field)
    divergence = max(abs(declared_increases - increases), abs(declared_decreases - decreases))
    return ValidationOutcome(
        is_valid=divergence <= ABSOLUTE_TOLERANCE,
        divergence=divergence,
        formula=CHILD_SUM_FORMULA.format(target=target),
        subject=aggregate.label,
        declared=declared_increases - declared_decreases,
        computed=increases - decreases,
    )


def validate_aggregate(aggregate: AggregateRecord) -> list[ValidationOutcome]:
    outcomes = [validate_base_formula(aggregate), validate_final_contribution(aggregate)]
    for target in TARGET_TOTALS:
        outcome = validate_child_sums(aggregate, target)
        if outcome is not None:
            outcomes.append(outcome)
    return outcomes


def validate_icms_balance(entry: DebitEntry, subject: str = "") -> ValidationOutcome:
    computed = max(ZERO, entry.debit_side - entry.credit_side)
    divergence = abs(entry.balance - computed)
    return ValidationOutcome(
        is_valid=divergence <= ABSOLUTE_TOLERANCE,
        divergence=divergence,
        formula=ICMS_BALANCE_FORMULA,
        subject=subject or f"ICMS {entry.type_code}",
        declared=entry.balance,
        computed=computed,
    )


class ReconciliationContext:
    """Per-document parent/child state, threaded through every decoder call.

    Each tax type moves from "no parent" to "has parent" when its aggregate
    record is decoded. Detail records attach to the open aggregate of their
    tax type; an aggregate is validated when the next aggregate of the same
    tax type arrives or when the document ends.
    """

    def __init__(self, family: DocumentFamily) -> None:
        self.family = family
        self.line_number = 0
        self.current_aggregate_by_tax_type: dict[str, AggregateRecord] = {}
        self.outcomes: list[ValidationOutcome] = []
        self.orphaned: list[AdjustmentDetail] = []
        self.finalized = False

    def has_parent(self, tax_type: str) -> bool:
        return tax_type in self.current_aggregate_by_tax_type

    def open_aggregate(self, aggregate: AggregateRecord) -> None:
        previous = self.current_aggregate_by_tax_type.get(aggregate.category)
        if previous is not None:
            self._close(previous)
        aggregate.line_number = self.line_number
        self.current_aggregate_by_tax_type[aggregate.category] = aggregate

    def attach(self, detail: AdjustmentDetail) -> bool:
        parent = self.current_aggregate_by_tax_type.get(detail.category)
        if parent is None:
            detail.orphaned = True
            self.orphaned.append(detail)
            logger.warning(
                f"Line {self.line_number}: {detail.type_code} adjustment has no open "
                f"{detail.category.upper()} aggregate and was kept as orphaned."
            )
            return False
        parent.children.append(detail)
        return True

    def record(self, outcome: ValidationOutcome) -> None:
        self.outcomes.append(outcome)
        if not outcome.is_valid:
            logger.warning(f"Line {self.line_number}: {outcome.describe()}")

    def finalize(self) -> list[ValidationOutcome]:
        if not self.finalized:
            for aggregate in list(self.current_aggregate_by_tax_type.values()):
                self._close(aggregate)
            self.current_aggregate_by_tax_type.clear()
            self.finalized = True
        return list(self.outcomes)

    def _close(self, aggregate: AggregateRecord) -> None:
        outcomes = validate_aggregate(aggregate)
        aggregate.validations.extend(outcomes)
        self.outcomes.extend(outcomes)
        for outcome in outcomes:
            if not outcome.is_valid:
                logger.warning(outcome.describe())
