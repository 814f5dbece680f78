#!/usr/bin/env python3

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sped_analyzer.classifier import classify
from sped_analyzer.models import (
    AdjustmentDetail,
    AdjustmentEntry,
    AggregateRecord,
    AnalyticEntry,
    BalanceSheetEntry,
    CategoryTotals,
    ChartAccount,
    CompanyInfo,
    CreditEntry,
    DebitEntry,
    DetailEntry,
    DocumentFamily,
    Entity,
    FiscalDocument,
    IncomeStatementEntry,
    InventoryEntry,
    ItemMaster,
    LineItem,
    NonTaxedRevenue,
    ParsedDocument,
    ParseError,
    ParseMetadata,
    Participant,
    PeriodEntry,
    Record,
    RegimeFlag,
    TotalsEntry,
)
from sped_analyzer.numeric import ZERO
from sped_analyzer.reconciliation import ReconciliationContext
from sped_analyzer.registry import lookup_schema

logger = logging.getLogger(__name__)

DELIMITER = "|"


def split_line(line: str) -> list[str]:
    return line.strip().split(DELIMITER)


def decode_line(
    family: DocumentFamily,
    fields: Sequence[str],
    context: ReconciliationContext,
) -> Record | None:
    """Decode one split line into a Record, None when unknown or structurally invalid.

    Exceptions raised by a decoder propagate to the caller.
    """
    type_code = fields[1].strip().upper() if len(fields) > 1 else ""
    schema = lookup_schema(family, type_code)
    if schema is None:
        logger.debug(f"Line {context.line_number}: no {family.value} decoder for '{type_code}'")
        return None
    if not schema.accepts(fields):
        logger.warning(
            f"Line {context.line_number}: {type_code} has {len(fields)} fields, "
            f"at least {schema.min_fields} expected; skipped."
        )
        return None
    decoded = schema.decode(fields, context)
    if decoded is None:
        logger.warning(f"Line {context.line_number}: {type_code} could not be decoded; skipped.")
        return None
    return Record(type_code=type_code, raw_fields=tuple(fields), decoded=decoded, line_number=context.line_number)


def route_entity(document: ParsedDocument, entity: Entity) -> None:
    """Place a decoded entity in its bucket. Every entity kind has exactly one bucket."""
    if isinstance(entity, CompanyInfo):
        if document.company is None:
            document.company = entity
        else:
            document.company.merge(entity)
    elif isinstance(entity, FiscalDocument):
        document.documents.append(entity)
    elif isinstance(entity, LineItem):
        document.line_items.append(entity)
    elif isinstance(entity, ItemMaster):
        document.item_master.append(entity)
    elif isinstance(entity, AnalyticEntry):
        document.analytic.append(entity)
    elif isinstance(entity, Participant):
        document.participants.append(entity)
    elif isinstance(entity, CreditEntry):
        document.credits.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, DebitEntry):
        document.debits.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, AdjustmentEntry):
        document.adjustments.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, AggregateRecord):
        document.aggregates.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, AdjustmentDetail):
        document.adjustment_details.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, RegimeFlag):
        document.regimes[entity.category] = entity
    elif isinstance(entity, NonTaxedRevenue):
        document.non_taxed_revenues.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, ChartAccount):
        document.accounts.append(entity)
    elif isinstance(entity, BalanceSheetEntry):
        document.balance_sheet.append(entity)
    elif isinstance(entity, IncomeStatementEntry):
        document.income_statement.append(entity)
    elif isinstance(entity, InventoryEntry):
        document.inventory.append(entity)
    elif isinstance(entity, TotalsEntry):
        document.totals.setdefault(entity.category, []).append(entity)
    elif isinstance(entity, PeriodEntry):
        document.periods.append(entity)
    elif isinstance(entity, DetailEntry):
        document.detail.setdefault(entity.label, []).append(entity)
    else:
        raise TypeError(f"Unroutable entity type: {type(entity).__name__}")


def process_line(
    document: ParsedDocument,
    context: ReconciliationContext,
    line: str,
    line_number: int,
) -> None:
    """Decode one line into ``document``, updating its metadata counters."""
    metadata = document.metadata
    context.line_number = line_number
    fields = split_line(line)
    try:
        record = decode_line(document.family, fields, context)
    except Exception as exc:
        type_code = fields[1] if len(fields) > 1 else ""
        message = f"{type_code}: {type(exc).__name__}: {exc}"
        logger.warning(f"Line {line_number}: decode error in {message}")
        metadata.errors.append(ParseError(line_number=line_number, message=message))
        return

    if record is None:
        metadata.records_skipped += 1
        return
    route_entity(document, record.decoded)
    metadata.records_decoded += 1


def link_relations(document: ParsedDocument) -> None:
    participants = {participant.code: participant for participant in document.participants}
    for fiscal_document in document.documents:
        if fiscal_document.participant_code:
            fiscal_document.participant = participants.get(fiscal_document.participant_code)

    items = {item.code: item for item in document.item_master}
    for line_item in document.line_items:
        if line_item.item_code:
            line_item.item_master = items.get(line_item.item_code)


def compute_category_totals(document: ParsedDocument) -> dict[str, CategoryTotals]:
    """Per-tax totals: max(0, debits + debit adjustments - credits - credit adjustments - prior balance).

    PIS/COFINS debits come from the M210/M610 aggregates when present and
    from the M200/M600 period totals otherwise; credits from the M100/M500
    period credits when present.
    """
    categories = set(document.debits) | set(document.aggregates) | set(document.credits)
    totals: dict[str, CategoryTotals] = {}
    for category in sorted(categories):
        summary = CategoryTotals(category=category)
        aggregates = document.aggregates.get(category, [])
        period_credits = [entry for entry in document.credits.get(category, []) if entry.role == "period"]
        debit_entries = document.debits.get(category, [])

        for aggregate in aggregates:
            summary.debits += aggregate.final_value
            summary.original_base += aggregate.original_base
            summary.base_increases += aggregate.base_increases
            summary.base_decreases += aggregate.base_decreases
            summary.adjusted_base += aggregate.adjusted_base

        for entry in debit_entries:
            if not aggregates:
                summary.debits += entry.total_debits
                summary.debit_adjustments += entry.debit_side - entry.total_debits
            if not period_credits:
                summary.credits += entry.total_credits
                summary.credit_adjustments += entry.credit_side - entry.total_credits - entry.prior_credit_balance
                summary.prior_balance += entry.prior_credit_balance

        for credit in period_credits:
            summary.credits += credit.best_value

        summary.total = max(
            ZERO,
            summary.debits
            + summary.debit_adjustments
            - summary.credits
            - summary.credit_adjustments
            - summary.prior_balance,
        )
        totals[category] = summary
    return totals


def parse_lines(
    lines: Iterable[str],
    family: DocumentFamily | None = None,
    filename: str = "",
) -> ParsedDocument:
    """Decode a ledger's lines into a ParsedDocument.

    Unknown record codes and structurally invalid records are counted as
    skipped; decoder exceptions are collected as ParseErrors. Nothing raises
    out of here for bad input lines.
    """
    lines = list(lines)
    if family is None:
        family = classify(lines, filename or None)

    metadata = ParseMetadata(family=family, lines_total=len(lines), filename=filename)
    document = ParsedDocument(family=family, metadata=metadata)
    context = ReconciliationContext(family)

    for index, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        process_line(document, context, line, index)

    document.validations = context.finalize()
    link_relations(document)
    document.category_totals = compute_category_totals(document)

    failed = len(document.failed_validations)
    logger.info(
        f"Parsed {filename or 'input'} as {family.value}: {metadata.records_decoded} decoded, "
        f"{metadata.records_skipped} skipped, {len(metadata.errors)} errors, {failed} failed validations"
    )
    return document
