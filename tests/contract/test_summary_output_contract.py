from __future__ import annotations

import re
from pathlib import Path

from boq_import.cli.__main__ import main as cli_main

SUMMARY_RE = re.compile(r"^SUMMARY created=(\d+) updated=(\d+) deleted=(\d+) warnings=(\d+) processed=(\d+)$")


def test_summary_line_format(temp_workdir: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    f = temp_workdir / "data" / "boq.csv"
    f.write_text(
        "description,uom,qty,rate,category,amount\n"
        "Excavation,m3,10,5,Labour,\n"
        "Pump hire,day,2,80,Plant,160\n",
        encoding="utf-8",
    )
    assert cli_main(["commit", str(f), "--revision", "r", "--group", "g"]) == 0
    lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("SUMMARY")]
    assert len(lines) == 1
    m = SUMMARY_RE.match(lines[0])
    assert m is not None
    assert tuple(int(x) for x in m.groups()) == (2, 0, 0, 2, 2)


def test_every_output_line_is_labeled(temp_workdir: Path, monkeypatch, scenario_csv: bytes, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    f = temp_workdir / "data" / "boq.csv"
    f.write_bytes(scenario_csv)
    cli_main(["commit", str(f), "--revision", "r", "--group", "g"])
    for line in capsys.readouterr().out.splitlines():
        assert re.match(r"^(INFO|WARN|ERROR|SUMMARY|DEBUG) ", line), line
