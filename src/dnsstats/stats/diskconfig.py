"""Durable retention setting stored in the YAML configuration file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

from .errors import StatsStorageError

logger = logging.getLogger(__name__)

DISK_CONFIG_KEY = "statistics_interval"
DEFAULT_INTERVAL_DAYS = 1


@dataclass
class DiskConfig:
    """Configuration settings that are stored on disk.

    Inputs (constructor):
      - interval: Statistics retention interval in days (YAML key
        ``statistics_interval``).
    """

    interval: int = DEFAULT_INTERVAL_DAYS


def _read_yaml_mapping(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise StatsStorageError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise StatsStorageError(f"{path} does not contain a YAML mapping")
    return data


def load_disk_config(path: str) -> DiskConfig:
    """Brief: Read the persisted retention interval from a YAML file.

    Inputs:
      - path: YAML file path. A missing file yields the default interval.

    Outputs:
      - DiskConfig.

    Raises:
      - StatsStorageError: when the file exists but is not a readable mapping
        or the stored interval is not an integer.

    Example:
      >>> load_disk_config("/nonexistent.yaml").interval
      1
    """

    data = _read_yaml_mapping(path)
    raw = data.get(DISK_CONFIG_KEY, DEFAULT_INTERVAL_DAYS)
    try:
        return DiskConfig(interval=int(raw))
    except (TypeError, ValueError) as exc:
        raise StatsStorageError(
            f"{path}: {DISK_CONFIG_KEY} must be an integer, got {raw!r}"
        ) from exc


def save_disk_config(path: str, dc: DiskConfig) -> None:
    """Brief: Persist DiskConfig into a YAML file atomically.

    Inputs:
      - path: YAML file path. Other keys already in the file are preserved.
      - dc: DiskConfig to store.

    Outputs:
      - None.

    Notes:
      - The file is written to a temporary sibling and moved into place with
        os.replace, so an interrupted write leaves the previous file intact.

    Raises:
      - StatsStorageError: when the file cannot be read or written.
    """

    data = _read_yaml_mapping(path)
    data[DISK_CONFIG_KEY] = int(dc.interval)

    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = os.path.join(directory, f".{os.path.basename(path)}.tmp")
    try:
        os.makedirs(directory, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            logger.debug("Stats: cannot remove %s", tmp_path, exc_info=True)
        raise StatsStorageError(f"cannot write {path}: {exc}") from exc

    logger.info("Stats: saved %s=%d to %s", DISK_CONFIG_KEY, dc.interval, path)
