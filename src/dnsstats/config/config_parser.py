"""Configuration parsing helpers for dnsstats.

Brief:
  Reads the YAML config file, validates it against the JSON Schema and turns
  the ``statistics`` block into engine settings.

Inputs:
  - YAML config paths and parsed config dicts

Outputs:
  - Validated config dicts and normalized statistics settings
"""

from __future__ import annotations

import os
from typing import Any, Dict

import yaml

from .config_schema import validate_config

DEFAULT_DB_PATH = "./var/stats.db"


def parse_config_file(config_path: str, *, unknown_keys: str = "warn") -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML file.
      - unknown_keys: Policy passed to validate_config().

    Outputs:
      - dict: Parsed configuration mapping (empty file gives {}).

    Raises:
      - ValueError: when the file is not a mapping or fails validation.
      - OSError: when the file cannot be read.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"{config_path}: top-level configuration must be a mapping")

    validate_config(cfg, config_path=config_path, unknown_keys=unknown_keys)
    return cfg


def normalize_statistics_config(cfg: Dict[str, Any], config_path: str | None = None) -> Dict[str, Any]:
    """Brief: Extract engine settings from the ``statistics`` block.

    Inputs:
      - cfg: Parsed configuration mapping.
      - config_path: Optional config file path; a relative ``db_path`` is
        resolved against the config file's directory.

    Outputs:
      - dict with keys enabled, db_path (str or None), top_n and
        rotation_interval_seconds.

    Example:
      >>> normalize_statistics_config({"statistics": {"persistence": False}})["db_path"] is None
      True
    """

    stats_cfg = cfg.get("statistics") or {}

    db_path: str | None = None
    if stats_cfg.get("persistence", True):
        db_path = str(stats_cfg.get("db_path") or DEFAULT_DB_PATH)
        if config_path and not os.path.isabs(db_path):
            base = os.path.dirname(os.path.abspath(config_path))
            db_path = os.path.normpath(os.path.join(base, db_path))

    return {
        "enabled": bool(stats_cfg.get("enabled", True)),
        "db_path": db_path,
        "top_n": int(stats_cfg.get("top_n", 100)),
        "rotation_interval_seconds": float(
            stats_cfg.get("rotation_interval_seconds", 60)
        ),
    }
