# Shared pytest fixtures
from __future__ import annotations

import io
from pathlib import Path

import pandas as pd
import pytest

from boq_import.db.store import InMemoryStore
from boq_import.logging.init import reset_logging
from boq_import.models.context import ImportContext
from boq_import.models.line_record import Revision

REVISION_ID = "rev-1"
GROUP_ID = "est-1"
ACTOR_ID = "user-1"

FULL_HEADERS = [
    "row_type",
    "external_key",
    "section",
    "description",
    "uom",
    "qty",
    "rate",
    "amount",
    "category",
    "measurement",
    "assumptions",
    "action",
]


def full_row(**cells: str) -> list[str]:
    """One data row in FULL_HEADERS order; unspecified cells are empty."""
    return [cells.get(h, "") for h in FULL_HEADERS]


def make_xlsx(sheets: dict[str, list[list[object]]]) -> bytes:
    """Build an in-memory workbook; each sheet's first row is the header."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("PGDSN", raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """max_rows: 2000
rounding_decimals: 2
categories: [Prelims, Labour, Material, Equipment, Subcon, Other]
fallback_category: Other
commit_mode: sequential
storage_directory: ./import-files
add_ons:
  prelims_pct: 10
  contingency_pct: 5
  profit_pct: 10
  tax_pct: 6
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_revision(Revision(id=REVISION_ID, revision_group_id=GROUP_ID, label="Rev A"))
    return s


@pytest.fixture()
def context() -> ImportContext:
    return ImportContext(
        revision_id=REVISION_ID,
        revision_group_id=GROUP_ID,
        actor_id=ACTOR_ID,
        file_name="boq.csv",
        file_type="csv",
    )


@pytest.fixture()
def scenario_csv() -> bytes:
    """1 SectionHeader + 2 LineItems (10 x 5 and 4 x 25) in section Civil."""
    return (
        "row_type,external_key,section,description,uom,qty,rate,category\n"
        "SectionHeader,CIV,Civil,Civil works,,,,\n"
        "LineItem,CIV-1,Civil,Excavation,m3,10,5,Labour\n"
        "LineItem,CIV-2,Civil,Concrete,m3,4,25,Material\n"
    ).encode("utf-8")
