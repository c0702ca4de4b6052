from __future__ import annotations

from pathlib import Path

import pytest

from boq_import.config.loader import ConfigError, load_config, settings_from_dict
from boq_import.models.config_models import CommitMode, ImportSettings


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert isinstance(cfg, ImportSettings)
    assert cfg.max_rows == 2000
    assert cfg.categories[0] == "Prelims"
    assert cfg.commit_mode is CommitMode.SEQUENTIAL
    assert cfg.add_ons.prelims_pct == 10.0
    assert cfg.add_ons.for_group("est", 2).tax_pct == 6.0
    assert cfg.database.user == "appuser"


def test_defaults_for_empty_file(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("", encoding="utf-8")
    cfg = load_config(p)
    assert cfg == ImportSettings()
    assert cfg.uoms[0] == "LS"
    assert cfg.fallback_category == "Other"


def test_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "nope.yml")
    assert load_config(temp_workdir / "nope.yml", missing_ok=True) == ImportSettings()


def test_invalid_yaml(temp_workdir: Path):
    p = temp_workdir / "bad.yml"
    p.write_text("max_rows: [1, 2\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(p)


def test_root_must_be_mapping():
    with pytest.raises(ConfigError, match="mapping"):
        settings_from_dict(["a"])  # type: ignore[arg-type]


def test_fallback_must_be_a_category():
    with pytest.raises(ConfigError, match="fallback_category"):
        settings_from_dict({"categories": ["Civil"], "fallback_category": "Other"})


def test_atomic_mode_and_custom_categories():
    cfg = settings_from_dict(
        {"commit_mode": "atomic", "categories": ["Civil", "Misc"], "fallback_category": "Misc", "max_rows": 10}
    )
    assert cfg.commit_mode is CommitMode.ATOMIC
    assert cfg.categories == ("Civil", "Misc")
    assert cfg.max_rows == 10
