import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List

import jsonschema
from jsonschema.exceptions import ValidationError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).parent.parent / "schemas"
OPTIONS_SCHEMA = "consolidation_options"
WEIGHT_TOLERANCE = Decimal("0.001")


class ContractError(Exception):
    """Raised when a report or options payload violates its data contract."""

    pass


def load_schema(schema_name: str) -> Dict[str, Any]:
    """Load a JSON schema shipped with the package."""
    schema_path = SCHEMA_DIR / f"{schema_name}.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_name}")

    with open(schema_path, "r", encoding="utf-8") as f:
        return dict(json.load(f))


def validate_output(data: Dict[str, Any], schema_name: str, mode: str = "FILING") -> None:
    """
    Validate data against a JSON schema.

    Args:
        data: The dictionary to validate.
        schema_name: Name of the schema file (without .json extension).
        mode: 'FILING' (raises error) or 'REVIEW' (logs warning).

    Raises:
        ContractError: If validation fails and mode is FILING.
    """
    try:
        schema = load_schema(schema_name)
        jsonschema.validate(instance=data, schema=schema)
    except (ValidationError, FileNotFoundError) as e:
        msg = f"Data Contract Violation ({schema_name}): {str(e)}"
        if mode == "FILING":
            raise ContractError(msg) from e
        logger.warning(msg)


def schedule_violations(payload: Dict[str, Any]) -> List[str]:
    """Years of a transition schedule whose two weights do not add up to 1."""
    violations: List[str] = []
    schedule = payload.get("schedule")
    if not isinstance(schedule, dict):
        return violations
    for year, weights in sorted(schedule.items()):
        if not isinstance(weights, dict):
            continue
        current, target = weights.get("current"), weights.get("target")
        if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in (current, target)):
            continue
        total = Decimal(str(current)) + Decimal(str(target))
        if abs(total - Decimal("1")) > WEIGHT_TOLERANCE:
            violations.append(f"schedule year {year}: current + target = {total}, expected 1")
    return violations


def validate_options(payload: Dict[str, Any], mode: str = "FILING") -> None:
    """Validate a consolidation options payload: JSON schema, then schedule weights."""
    validate_output(payload, OPTIONS_SCHEMA, mode=mode)
    violations = schedule_violations(payload)
    if violations:
        msg = f"Data Contract Violation ({OPTIONS_SCHEMA}): {'; '.join(violations)}"
        if mode == "FILING":
            raise ContractError(msg)
        logger.warning(msg)
