from sped_analyzer.numeric import (
    as_float,
    format_brl,
    format_money,
    normalize_amount,
    normalize_percentage,
)
from sped_analyzer.models import (
    ConsolidatedReport,
    DocumentFamily,
    EntityKind,
    FigureSource,
    ParsedDocument,
    ParseMetadata,
    TaxFigure,
    ValidationOutcome,
)
from sped_analyzer.classifier import classify
from sped_analyzer.registry import RecordSchema, lookup_schema
from sped_analyzer.reconciliation import (
    ReconciliationContext,
    validate_base_formula,
    validate_child_sums,
    validate_final_contribution,
)
from sped_analyzer.dispatch import parse_lines, process_line
from sped_analyzer.fallback import FallbackChain
from sped_analyzer.consolidation import (
    ConsolidationOptions,
    ExtractionError,
    consolidate,
    report_to_markdown,
)
from sped_analyzer.quality import score_quality
from sped_analyzer.reader import LedgerReadError, read_ledger_lines

__all__ = [
    "ConsolidatedReport",
    "ConsolidationOptions",
    "DocumentFamily",
    "EntityKind",
    "ExtractionError",
    "FallbackChain",
    "FigureSource",
    "LedgerReadError",
    "ParsedDocument",
    "ParseMetadata",
    "RecordSchema",
    "ReconciliationContext",
    "TaxFigure",
    "ValidationOutcome",
    "as_float",
    "classify",
    "consolidate",
    "format_brl",
    "format_money",
    "lookup_schema",
    "normalize_amount",
    "normalize_percentage",
    "parse_lines",
    "process_line",
    "read_ledger_lines",
    "report_to_markdown",
    "score_quality",
    "validate_base_formula",
    "validate_child_sums",
    "validate_final_contribution",
]
