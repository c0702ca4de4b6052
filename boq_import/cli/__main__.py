from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import replace
from pathlib import Path
from typing import TypeVar

import psycopg2
from dotenv import load_dotenv

from boq_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from boq_import.db.file_storage import LocalFileStorage
from boq_import.db.postgres import PostgresStore, db_connection
from boq_import.db.store import InMemoryStore, LineRecordStore
from boq_import.errors import (
    ImportPipelineError,
    MappingError,
    ParseError,
    PersistenceFailure,
    RevisionFrozenError,
    StoreUnavailable,
    ValidationBlocked,
)
from boq_import.excel.reader import list_sheet_names
from boq_import.excel.template import generate_csv_template, generate_xlsx_template
from boq_import.logging.error_log import IssueLogBuffer
from boq_import.logging.init import log_summary, set_debug, setup_logging
from boq_import.models.config_models import CommitMode, ImportSettings
from boq_import.models.context import ImportContext
from boq_import.models.line_record import Revision
from boq_import.models.raw_table import TableFormat
from boq_import.services.column_mapper import unmapped_headers
from boq_import.services.orchestrator import (
    PreparedImport,
    compute_totals,
    load_table,
    prepare_import,
    run_import,
)
from boq_import.services.summary import render_summary_line, render_totals_lines, render_validation_line
from boq_import.services.validator import preview_amount

"""CLI entrypoint.

Subcommands:
- template: write the CSV or XLSX import template
- inspect:  print sheet names, headers, proposed mapping and sample rows
- validate: map + validate a file, print issues and preview amounts (no writes)
- commit:   map + validate + reconcile into a revision, print SUMMARY
- totals:   print subtotals and the add-on cascade for a revision

Exit codes: 0 success, 1 fatal (config/parse/mapping/persistence),
2 validation errors block the commit.

Set DISABLE_DB_CONNECT=1 to run against an in-memory store (mock mode).
When the database cannot be reached, read-only commands fall back to mock
mode; commit exits 1 without writing anything.
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_VALIDATION_BLOCKED = 2

T = TypeVar("T")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True により .env の値で既存環境変数を上書きし、PostgreSQL 接続情報を最優先化。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_overrides(pairs: list[str] | None) -> dict[str, int | None]:
    """``--map field=index`` pairs; ``field=`` or ``field=-1`` unmaps."""
    overrides: dict[str, int | None] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise MappingError(f"invalid --map value: {pair!r} (expected field=index)")
        value = value.strip()
        if value in ("", "-1"):
            overrides[name.strip()] = None
            continue
        try:
            overrides[name.strip()] = int(value)
        except ValueError as e:
            raise MappingError(f"invalid column index in --map {pair!r}") from e
    return overrides


def _add_file_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", type=Path, help="CSV or XLSX file to import")
    p.add_argument("--sheet", help="Sheet name (XLSX only; default: first sheet)")
    p.add_argument("--map", action="append", metavar="FIELD=INDEX", help="Override a column mapping (repeatable)")


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--revision", required=True, help="Target revision id")
    p.add_argument("--group", required=True, help="Revision group (estimate) id")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="boq-import", description="Cost table (BoQ) bulk importer")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    sub = p.add_subparsers(dest="command", required=True)

    tp = sub.add_parser("template", help="Write the import template")
    tp.add_argument("--format", choices=[f.value for f in TableFormat], default=TableFormat.DELIMITED.value)
    tp.add_argument("--output", type=Path, default=None, help="Output path (CSV defaults to stdout)")

    ip = sub.add_parser("inspect", help="Print headers, proposed mapping and sample rows")
    _add_file_args(ip)
    ip.add_argument("--rows", type=int, default=3, help="Sample rows to print")

    vp = sub.add_parser("validate", help="Validate a file without writing")
    _add_file_args(vp)

    cp = sub.add_parser("commit", help="Validate and commit a file into a revision")
    _add_file_args(cp)
    _add_target_args(cp)
    cp.add_argument("--actor", default="cli", help="Acting user id recorded on the job and audit entry")
    cp.add_argument("--mode", choices=[m.value for m in CommitMode], default=None)
    cp.add_argument("--decimals", type=int, default=None, help="Rounding decimals (default: estimate / config)")

    sp = sub.add_parser("totals", help="Print subtotals and add-on breakdown")
    _add_target_args(sp)
    return p.parse_args(argv)


def _load_settings(args: argparse.Namespace) -> ImportSettings:
    if args.config is None:
        return load_config(DEFAULT_CONFIG_PATH, missing_ok=True)
    return load_config(args.config)


def _mock_store(args: argparse.Namespace) -> InMemoryStore:
    store = InMemoryStore()
    store.add_revision(Revision(id=args.revision, revision_group_id=args.group, label="mock"))
    return store


def _with_store(
    settings: ImportSettings,
    args: argparse.Namespace,
    fn: Callable[[LineRecordStore], T],
    *,
    mock_fallback: bool = True,
) -> T:
    """Run ``fn`` against the live store, or the in-memory one in mock mode.

    Only a failure to open the connection falls back to mock mode, and only
    when ``mock_fallback`` is set. Writing commands pass False so that an
    unreachable database fails the command instead of faking a commit.
    """
    logger = setup_logging()
    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return fn(_mock_store(args))
    with ExitStack() as stack:
        try:
            cur = stack.enter_context(db_connection(settings.database))
        except psycopg2.OperationalError as db_e:
            if not mock_fallback:
                raise StoreUnavailable(f"DB connection failed: {db_e}") from db_e
            logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")
            return fn(_mock_store(args))
        logger.debug("mode=live")
        return fn(PostgresStore(cur))


def _cmd_template(args: argparse.Namespace, settings: ImportSettings) -> int:
    if args.format == TableFormat.SPREADSHEET.value:
        output = args.output or Path("boq_import_template.xlsx")
        output.write_bytes(generate_xlsx_template(settings.categories, settings.uoms, settings.max_rows))
        print(f"template written: {output}")
        return EXIT_SUCCESS
    text = generate_csv_template()
    if args.output is None:
        print(text)
    else:
        args.output.write_text(text + "\n", encoding="utf-8")
        print(f"template written: {args.output}")
    return EXIT_SUCCESS


def _context(args: argparse.Namespace, settings: ImportSettings, data: bytes, **ids: str) -> ImportContext:
    return ImportContext.from_settings(
        settings,
        revision_id=ids.get("revision_id", ""),
        revision_group_id=ids.get("revision_group_id", ""),
        actor_id=ids.get("actor_id", ""),
        rounding_decimals=getattr(args, "decimals", None),
        file_name=args.file.name,
        file_type=TableFormat.from_file_name(args.file.name).value,
        file_bytes=data,
    )


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise ParseError(f"cannot read {path}: {e}") from e


def _cmd_inspect(args: argparse.Namespace, settings: ImportSettings) -> int:
    data = _read_file(args.file)
    print(f"FILE: {args.file.name}")
    if TableFormat.from_file_name(args.file.name) is TableFormat.SPREADSHEET:
        print(f"  sheets={list_sheet_names(data)}")
    table = load_table(data, args.file.name, sheet_name=args.sheet, max_rows=settings.max_rows)
    prepared = prepare_import(table, _context(args, settings, data), overrides=_parse_overrides(args.map))
    print(f"  headers={table.headers}")
    for fld, idx in prepared.mapping:
        print(f"  map {fld.value} <- [{idx}] {table.headers[idx]}")
    unmapped = [table.headers[i] for i in unmapped_headers(table.headers, prepared.mapping)]
    if unmapped:
        print(f"  unmapped={unmapped}")
    for row in table.rows[: max(args.rows, 0)]:
        print(f"    {row}")
    return EXIT_SUCCESS


def _print_issues(prepared: PreparedImport) -> None:
    for issue in prepared.result.errors:
        print(f"ERROR {issue.message}")
    for issue in prepared.result.warnings:
        print(f"WARN {issue.message}")


def _cmd_validate(args: argparse.Namespace, settings: ImportSettings) -> int:
    logger = setup_logging()
    data = _read_file(args.file)
    table = load_table(data, args.file.name, sheet_name=args.sheet, max_rows=settings.max_rows)
    context = _context(args, settings, data)
    prepared = prepare_import(table, context, overrides=_parse_overrides(args.map))
    _print_issues(prepared)
    decimals = context.rounding_decimals
    for row in prepared.result.valid_rows:
        amount = preview_amount(row, decimals)
        if amount is not None:
            print(f"  row {row.row_index + 2} {row.description}: amount={amount:.{decimals}f}")
    logger.info(f"validation {render_validation_line(prepared.result)}")
    if not prepared.result.can_commit:
        return EXIT_VALIDATION_BLOCKED
    return EXIT_SUCCESS


def _cmd_commit(args: argparse.Namespace, settings: ImportSettings) -> int:
    logger = setup_logging()
    data = _read_file(args.file)
    context = _context(
        args,
        settings,
        data,
        revision_id=args.revision,
        revision_group_id=args.group,
        actor_id=args.actor,
    )
    table = load_table(data, args.file.name, sheet_name=args.sheet, max_rows=settings.max_rows)
    prepared = prepare_import(table, context, overrides=_parse_overrides(args.map))
    _print_issues(prepared)
    mode = CommitMode(args.mode) if args.mode else settings.commit_mode

    def _commit(store: LineRecordStore):
        # 見積単位の丸め設定があれば CLI 指定が無い限りそれを使う
        ctx = context
        if args.decimals is None:
            config = store.get_add_on_config(args.group)
            if config is not None:
                ctx = replace(context, rounding_decimals=config.rounding_decimals)
        return run_import(
            prepared,
            ctx,
            store,
            mode=mode,
            file_storage=LocalFileStorage(settings.storage_directory),
            issue_log=IssueLogBuffer(),
        )

    try:
        outcome = _with_store(settings, args, _commit, mock_fallback=False)
    except ValidationBlocked as e:
        logger.error(str(e))
        return EXIT_VALIDATION_BLOCKED
    except PersistenceFailure as e:
        logger.error(f"commit failed: {e} rolled_back={e.rolled_back} applied={len(e.applied)}")
        log_summary(render_summary_line(e.report))
        return EXIT_FATAL

    logger.info(f"job={outcome.job.id} revision={args.revision} mode={mode.value}")
    log_summary(render_summary_line(outcome.report))
    return EXIT_SUCCESS


def _cmd_totals(args: argparse.Namespace, settings: ImportSettings) -> int:
    totals = _with_store(
        settings, args, lambda store: compute_totals(store, args.revision, args.group, settings)
    )
    for line in render_totals_lines(totals):
        print(line)
    return EXIT_SUCCESS


_COMMANDS = {
    "template": _cmd_template,
    "inspect": _cmd_inspect,
    "validate": _cmd_validate,
    "commit": _cmd_commit,
    "totals": _cmd_totals,
}


def main(argv: list[str] | None = None) -> int:
    # Initialize logging system with labeled prefixes
    logger = setup_logging()

    # NOTE: 空リスト [] が与えられた場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    try:
        settings = _load_settings(args)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return _COMMANDS[args.command](args, settings)
    except RevisionFrozenError as e:
        logger.error(f"revision: {e}")
        return EXIT_FATAL
    except ImportPipelineError as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        # 接続後のクエリ失敗: モックへは切り替えない
        logger.error(f"{args.command}: database error: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
