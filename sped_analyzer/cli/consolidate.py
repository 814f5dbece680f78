"""
CLI Entry Point: sped-consolidate

Decode several SPED ledgers of one company and period, consolidate them into a
single report and write it as JSON and Markdown.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from sped_analyzer.consolidation import (
    ConsolidationOptions,
    ExtractionError,
    consolidate,
    report_to_markdown,
)
from sped_analyzer.dispatch import parse_lines
from sped_analyzer.models import ConsolidatedReport, DocumentFamily, ParsedDocument
from sped_analyzer.numeric import format_money, format_percent
from sped_analyzer.reader import LedgerReadError, read_ledger_lines
from sped_analyzer.utils.console import print_error, print_step, print_success, print_table, print_warning
from sped_analyzer.utils.contracts import ContractError, validate_options, validate_output
from sped_analyzer.utils.logging_config import configure_logging


def read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data: dict[str, Any] = json.load(handle)
        return data


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def load_options(args: argparse.Namespace) -> ConsolidationOptions:
    payload: dict[str, Any] = {}
    if args.options:
        payload = read_json(args.options)
        validate_options(payload, mode="FILING")
    options = ConsolidationOptions.from_dict(payload)
    if args.estimate_missing:
        options.estimate_missing = True
    if args.no_transition:
        options.include_transition = False
    if args.region:
        options.region = args.region.upper()
    return options


def parse_ledgers(paths: list[Path], family: DocumentFamily | None) -> list[ParsedDocument]:
    documents = []
    for path in paths:
        lines = read_ledger_lines(path)
        document = parse_lines(lines, family=family, filename=path.name)
        metadata = document.metadata
        print(
            f"{path.name}: {document.family.label}, {metadata.records_decoded} decoded, "
            f"{metadata.records_skipped} skipped, {len(metadata.errors)} errors"
        )
        documents.append(document)
    return documents


def print_summary(report: ConsolidatedReport) -> None:
    taxes = report.tax_composition
    print_step("Tax Composition")
    rows = [
        [
            tax.upper(),
            format_money(taxes.debits.get(tax)),
            format_money(taxes.credits.get(tax)),
            format_money(taxes.net_liabilities.get(tax)),
            format_percent(taxes.effective_rates.get(tax)),
        ]
        for tax in taxes.net_liabilities
    ]
    rows.append(["TOTAL", "", "", format_money(taxes.total_liability), format_percent(taxes.total_effective_rate)])
    print_table(f"Revenue {format_money(taxes.revenue)}", ["Tax", "Debits", "Credits", "Net", "Rate"], rows)
    print(f"Quality: {report.quality.level} ({report.quality.score}/100)")
    for recommendation in report.quality.recommendations:
        print_warning(recommendation)


def main() -> None:
    parser = argparse.ArgumentParser(description="Consolidate SPED ledgers into one tax and financial report.")
    parser.add_argument("ledgers", nargs="+", type=Path, help="Ledger text files of the same company and period.")
    parser.add_argument(
        "--family",
        choices=[family.value for family in DocumentFamily],
        default=None,
        help="Force one ledger family for every file (default: detect per file).",
    )
    parser.add_argument("--options", type=Path, default=None, help="JSON file with consolidation options.")
    parser.add_argument("--estimate-missing", action="store_true", help="Estimate taxes no ledger declares.")
    parser.add_argument("--no-transition", action="store_true", help="Skip the transition projection.")
    parser.add_argument("--region", default=None, help="UF used for ICMS estimates (default: company UF).")
    parser.add_argument(
        "--contract-mode",
        choices=["FILING", "REVIEW"],
        default="FILING",
        help="FILING fails on report contract violations; REVIEW only warns.",
    )
    parser.add_argument("--json-out", type=Path, default=Path("output/sped_report.json"), help="Report JSON path.")
    parser.add_argument("--md-out", type=Path, default=Path("output/sped_report.md"), help="Report Markdown path.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    args = parser.parse_args()

    configure_logging(args.log_level)

    missing = [str(path) for path in args.ledgers if not path.exists()]
    if missing:
        print_error(f"File(s) not found: {', '.join(missing)}", exit_code=1)

    try:
        options = load_options(args)
    except (ContractError, json.JSONDecodeError, OSError) as e:
        print_error(f"Invalid options file: {e}", exit_code=1)
        return

    family = DocumentFamily(args.family) if args.family else None
    try:
        documents = parse_ledgers(args.ledgers, family)
        report = consolidate(documents, options)
    except (LedgerReadError, ExtractionError) as e:
        print_error(str(e), exit_code=1)
        return

    payload = report.to_dict()
    try:
        validate_output(payload, "consolidated_report", mode=args.contract_mode)
    except ContractError as e:
        print_error(str(e), exit_code=1)
        return

    write_json(args.json_out, payload)
    write_markdown(args.md_out, report_to_markdown(report))
    print_summary(report)
    print_success(f"Report JSON: {args.json_out}")
    print_success(f"Report Markdown: {args.md_out}")


if __name__ == "__main__":
    main()
