"""
CLI Entry Point: sped-parse

Decode one SPED ledger file and report its buckets, totals and reconciliation.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from sped_analyzer.dispatch import parse_lines
from sped_analyzer.models import DocumentFamily, ParsedDocument
from sped_analyzer.numeric import as_float, format_money
from sped_analyzer.reader import LedgerReadError, read_ledger_lines
from sped_analyzer.utils.console import print_error, print_step, print_success, print_table, print_warning
from sped_analyzer.utils.logging_config import configure_logging


def document_to_json(document: ParsedDocument) -> dict[str, Any]:
    company = document.company
    return {
        "metadata": document.metadata.to_dict(),
        "company": {"name": company.name, "cnpj": company.cnpj, "uf": company.uf} if company else None,
        "buckets": document.bucket_sizes(),
        "category_totals": {
            category: {
                "debits": as_float(totals.debits),
                "credits": as_float(totals.credits),
                "total": as_float(totals.total),
            }
            for category, totals in document.category_totals.items()
        },
        "validations": [outcome.to_dict() for outcome in document.validations],
    }


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def output_human(document: ParsedDocument) -> None:
    metadata = document.metadata
    print_step(f"{metadata.filename or 'ledger'} ({document.family.label})")
    if document.company is not None:
        print(f"Company: {document.company.name} ({document.company.cnpj})")
    print(
        f"Lines: {metadata.lines_total} | Decoded: {metadata.records_decoded} | "
        f"Skipped: {metadata.records_skipped} | Errors: {len(metadata.errors)}"
    )

    buckets = [[name, str(size)] for name, size in document.bucket_sizes().items() if size]
    print_table("Buckets", ["Bucket", "Entries"], buckets)

    totals = [
        [category, format_money(entry.debits), format_money(entry.credits), format_money(entry.total)]
        for category, entry in document.category_totals.items()
    ]
    print_table("Category Totals", ["Category", "Debits", "Credits", "Total"], totals)

    for error in metadata.errors:
        print_warning(f"Line {error.line_number}: {error.message}")
    failed = document.failed_validations
    for outcome in failed:
        print_warning(outcome.describe())
    if not failed:
        print_success(f"{len(document.validations)} reconciliation checks passed.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Decode a SPED ledger file.")
    parser.add_argument("ledger", type=Path, help="Ledger text file.")
    parser.add_argument(
        "--family",
        choices=[family.value for family in DocumentFamily],
        default=None,
        help="Ledger family (default: detect from file name and records).",
    )
    parser.add_argument("--encoding", default=None, help="Force a text encoding instead of detecting it.")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON.")
    parser.add_argument("--json-out", type=Path, default=None, help="Also write the JSON summary to this file.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    args = parser.parse_args()

    configure_logging(args.log_level)

    try:
        lines = read_ledger_lines(args.ledger, encoding=args.encoding)
    except LedgerReadError as e:
        print_error(str(e), exit_code=1)
        return

    family = DocumentFamily(args.family) if args.family else None
    document = parse_lines(lines, family=family, filename=args.ledger.name)
    payload = document_to_json(document)

    if args.json_out:
        write_json(args.json_out, payload)
    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        output_human(document)


if __name__ == "__main__":
    main()
