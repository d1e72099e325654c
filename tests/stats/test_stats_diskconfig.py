"""
Brief: Tests for the YAML-backed retention setting.

Inputs:
  - None

Outputs:
  - None
"""

import pytest
import yaml

from dnsstats.stats import DiskConfig, StatsStorageError, load_disk_config, save_disk_config


def test_missing_file_gives_default(tmp_path):
    assert load_disk_config(str(tmp_path / "missing.yaml")).interval == 1


def test_save_and_load_preserves_other_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("webserver:\n  port: 8080\nstatistics_interval: 1\n")
    save_disk_config(str(path), DiskConfig(interval=30))

    assert load_disk_config(str(path)).interval == 30
    data = yaml.safe_load(path.read_text())
    assert data["webserver"] == {"port": 8080}
    assert not (tmp_path / ".config.yaml.tmp").exists()


def test_save_creates_file(tmp_path):
    path = tmp_path / "new.yaml"
    save_disk_config(str(path), DiskConfig(interval=7))
    assert yaml.safe_load(path.read_text()) == {"statistics_interval": 7}


def test_load_rejects_bad_content(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(StatsStorageError):
        load_disk_config(str(path))
    path.write_text("statistics_interval: weekly\n")
    with pytest.raises(StatsStorageError):
        load_disk_config(str(path))
