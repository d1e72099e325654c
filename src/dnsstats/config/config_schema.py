"""JSON Schema-based validation for dnsstats YAML configuration.

The schema lives in ``assets/config-schema.json`` at the project root.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

_EXTRA_PROPERTY_VALIDATORS = {"additionalProperties", "unevaluatedProperties"}


def get_default_schema_path() -> Path:
    """Brief: Resolve the default JSON Schema path for configuration.

    Inputs:
      - None.

    Outputs:
      - Path to ``assets/config-schema.json`` in the nearest ancestor
        directory that has one, or the expected location next to the source
        tree when none is found.
    """

    here = Path(__file__).resolve()
    for ancestor in here.parents:
        candidate = ancestor / "assets" / "config-schema.json"
        if candidate.is_file():
            return candidate
    return here.parents[3] / "assets" / "config-schema.json"


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"- {instance_path}: {err.message}")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Validate a parsed YAML configuration mapping against JSON Schema.

    Inputs:
      - cfg: Dict loaded from YAML.
      - schema_path: Optional explicit schema path; defaults to
        get_default_schema_path().
      - config_path: Optional YAML path, used only in error messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: on validation failure, or on unknown keys when
        ``unknown_keys`` is "error".

    Example:
      >>> validate_config({"statistics": {"top_n": 10}})
    """
    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    effective_schema_path = schema_path or get_default_schema_path()
    if not effective_schema_path.is_file():
        logger.warning(
            "Configuration schema file %s not found; skipping JSON Schema validation",
            effective_schema_path,
        )
        return None

    try:
        with effective_schema_path.open("r", encoding="utf-8") as f:
            schema = json.load(f)
        validator = Draft202012Validator(schema)
    except (OSError, json.JSONDecodeError, SchemaError) as exc:
        logger.warning(
            "Failed to load configuration schema at %s: %s; skipping JSON Schema validation",
            effective_schema_path,
            exc,
        )
        return None

    errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not errors:
        return None

    extra = [e for e in errors if e.validator in _EXTRA_PROPERTY_VALIDATORS]
    other = [e for e in errors if e.validator not in _EXTRA_PROPERTY_VALIDATORS]

    if other:
        raise ValueError(_format_errors(other + extra, config_path=config_path))

    message = _format_errors(extra, config_path=config_path)
    if unknown_keys == "error":
        raise ValueError(message)
    if unknown_keys == "warn":
        logger.warning(message)
    return None
