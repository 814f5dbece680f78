#!/usr/bin/env python3

from __future__ import annotations

import logging
from decimal import Decimal

from sped_analyzer.decoders.common import normalize_description
from sped_analyzer.models import DocumentFamily, FinancialResults, IncomeStatementEntry, ParsedDocument
from sped_analyzer.numeric import HUNDRED, ZERO, safe_ratio

logger = logging.getLogger(__name__)

REVENUE = "revenue"
DEDUCTIONS = "deductions"
COSTS = "costs"
EXPENSES = "operating_expenses"

# Checked in this order: deduction lines often mention "RECEITA BRUTA" too.
CODE_PREFIXES = (
    (DEDUCTIONS, ("3.01.01.02", "3.01.01.03", "3.01.01.04")),
    (REVENUE, ("3.01.01.01",)),
    (COSTS, ("3.02.01.01",)),
    (EXPENSES, ("3.03.01", "3.04.01")),
)
DESCRIPTION_MARKERS = (
    (DEDUCTIONS, ("DEDUCOES DA RECEITA", "IMPOSTOS INCIDENTES", "DEVOLUCOES")),
    (REVENUE, ("RECEITA BRUTA",)),
    (COSTS, ("CUSTO DAS MERCADORIAS", "CUSTO DOS PRODUTOS", "CUSTO DOS SERVICOS")),
    (EXPENSES, ("DESPESAS OPERACIONAIS", "DESPESAS COM VENDAS", "DESPESAS ADMINISTRATIVAS")),
)
# Chart-of-accounts prefixes for ECD I355 balances (dots removed).
ACCOUNT_PREFIXES = (
    (REVENUE, "31"),
    (COSTS, "32"),
    (EXPENSES, "33"),
)

STATEMENT_RECORDS = {
    DocumentFamily.INCOME_TAX: ("L300", "P150", "U150"),
    DocumentFamily.ACCOUNTING: ("J150",),
}


def classify_statement_line(entry: IncomeStatementEntry) -> str | None:
    if entry.layout == "account":
        code = entry.code.replace(".", "")
        for category, prefix in ACCOUNT_PREFIXES:
            if code.startswith(prefix):
                return category
        return None

    for category, prefixes in CODE_PREFIXES:
        if entry.code.startswith(prefixes):
            return category
    description = normalize_description(entry.description)
    for category, markers in DESCRIPTION_MARKERS:
        if any(marker in description for marker in markers):
            return category
    return None


def top_level_lines(entries: list[IncomeStatementEntry]) -> list[IncomeStatementEntry]:
    """Drop lines nested under another line of the same list (code prefix followed by a dot)."""
    codes = {entry.code for entry in entries}
    return [
        entry
        for entry in entries
        if not any(entry.code != code and entry.code.startswith(f"{code}.") for code in codes)
    ]


def summarize_statement(entries: list[IncomeStatementEntry]) -> dict[str, Decimal]:
    grouped: dict[str, list[IncomeStatementEntry]] = {REVENUE: [], DEDUCTIONS: [], COSTS: [], EXPENSES: []}
    for entry in entries:
        category = classify_statement_line(entry)
        if category is not None:
            grouped[category].append(entry)
    return {
        category: sum((abs(entry.value) for entry in top_level_lines(lines)), ZERO)
        for category, lines in grouped.items()
    }


def statement_lines(document: ParsedDocument) -> list[IncomeStatementEntry]:
    records = STATEMENT_RECORDS.get(document.family, ())
    return [entry for entry in document.income_statement if entry.type_code in records]


def account_lines(document: ParsedDocument) -> list[IncomeStatementEntry]:
    return [entry for entry in document.income_statement if entry.layout == "account"]


def statement_revenue(document: ParsedDocument) -> Decimal:
    """Gross revenue declared in one document's income statement, 0 when absent."""
    lines = statement_lines(document) or account_lines(document)
    return summarize_statement(lines)[REVENUE]


def select_statement(documents: list[ParsedDocument]) -> tuple[list[IncomeStatementEntry], str]:
    for family in (DocumentFamily.INCOME_TAX, DocumentFamily.ACCOUNTING):
        for document in documents:
            if document.family is family:
                lines = statement_lines(document)
                if lines:
                    return lines, f"{family.label} income statement"
    for document in documents:
        if document.family is DocumentFamily.ACCOUNTING:
            lines = account_lines(document)
            if lines:
                return lines, "ECD I355 result balances"
    return [], ""


def compute_financial_results(documents: list[ParsedDocument]) -> FinancialResults:
    results = FinancialResults()
    lines, source = select_statement(documents)
    if not lines:
        results.observations.append("No income statement found; financial results and margins left at zero.")
        return results

    summary = summarize_statement(lines)
    results.has_statement = True
    results.sources.append(source)
    results.gross_revenue = summary[REVENUE]
    results.deductions = summary[DEDUCTIONS]
    results.net_revenue = results.gross_revenue - results.deductions
    results.costs = summary[COSTS]
    results.operating_expenses = summary[EXPENSES]
    results.gross_profit = results.net_revenue - results.costs
    results.operating_profit = results.gross_profit - results.operating_expenses
    results.net_profit = results.operating_profit

    base = results.net_revenue if results.net_revenue > ZERO else results.gross_revenue
    if base <= ZERO:
        results.observations.append("Income statement has no positive revenue; margins left at zero.")
        return results

    results.gross_margin = safe_ratio(results.gross_profit, base) * HUNDRED
    results.operating_margin = safe_ratio(results.operating_profit, base) * HUNDRED
    results.net_margin = safe_ratio(results.net_profit, base) * HUNDRED
    logger.debug(
        f"Financial results from {source}: revenue {results.gross_revenue}, "
        f"operating margin {results.operating_margin:.2f}%"
    )
    return results
