from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

import typer

from typeinference.analysis.collectors import TraceRecorder
from typeinference.config import TomlTable, build_settings
from typeinference.editor import InstructionOutcome
from typeinference.exceptions import ConfigurationError
from typeinference.ingest import DEFAULT_EXCLUDE_DIRS
from typeinference.runner import run_inference

app = typer.Typer(add_completion=False, help="Infer and insert missing type annotations.")

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_cli_handler: logging.Handler | None = None


def _configure_logging(verbose: int) -> logging.Logger:
    global _cli_handler
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logger = logging.getLogger("typeinference")
    logger.setLevel(level)
    if _cli_handler is not None:
        logger.removeHandler(_cli_handler)
    _cli_handler = logging.StreamHandler(sys.stderr)
    _cli_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(_cli_handler)
    return logger


def _split_csv_entries(entries: Optional[List[str]]) -> list[str] | None:
    if not entries:
        return None
    merged: list[str] = []
    for entry in entries:
        merged.extend([part.strip() for part in entry.split(",") if part.strip()])
    return merged


def _fail(message: str) -> NoReturn:
    typer.secho(f"Configuration error: {message}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=2)


@app.command()
def infer(
    target: Path = typer.Argument(..., help="Project directory or single file to annotate."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without writing."),
    show_diff: bool = typer.Option(True, "--diff/--no-diff", help="Print a unified diff per edited file."),
    source: Optional[List[str]] = typer.Option(None, "--source", help="Evidence source to enable (repeatable)."),
    disable_source: Optional[List[str]] = typer.Option(None, "--disable-source", help="Evidence source to disable."),
    trace: Optional[Path] = typer.Option(None, "--trace", help="JSON-lines trace file."),
    schema: Optional[Path] = typer.Option(None, "--schema", help="Schema metadata JSON."),
    schema_db: Optional[Path] = typer.Option(None, "--schema-db", help="SQLite database to introspect."),
    catalog: Optional[List[str]] = typer.Option(None, "--catalog", help="Extra directory of classes for docstrings."),
    max_arity: Optional[int] = typer.Option(None, "--max-arity"),
    precedence: Optional[str] = typer.Option(None, "--precedence", help="Comma separated source ranking."),
    union_style: Optional[str] = typer.Option(None, "--union-style", help="pep604 or typing."),
    insert_imports: Optional[bool] = typer.Option(None, "--insert-imports/--no-insert-imports"),
    docblocks: Optional[bool] = typer.Option(None, "--docblocks/--no-docblocks"),
    jobs: Optional[int] = typer.Option(None, "--jobs"),
    config: Optional[Path] = typer.Option(None, "--config"),
    json_output: bool = typer.Option(False, "--json", help="Print the run report as JSON."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True),
) -> None:
    """Annotate TARGET with the types its evidence supports."""
    logger = _configure_logging(verbose)
    overrides: TomlTable = {
        "sources": _split_csv_entries(source),
        "disable_sources": _split_csv_entries(disable_source),
        "trace": str(trace) if trace is not None else None,
        "schema": str(schema) if schema is not None else None,
        "schema_db": str(schema_db) if schema_db is not None else None,
        "catalog": _split_csv_entries(catalog),
        "max_arity": max_arity,
        "precedence": precedence,
        "union_style": union_style,
        "insert_imports": insert_imports,
        "update_docblocks": docblocks,
        "jobs": jobs,
        "dry_run": dry_run or None,
    }
    try:
        settings = build_settings(target, config_path=config, overrides=overrides)
    except ConfigurationError as exc:
        _fail(str(exc))

    try:
        report = run_inference(settings, logger=logger)
    except ConfigurationError as exc:
        _fail(str(exc))
    if json_output:
        typer.echo(report.to_dto().model_dump_json(indent=2))
        return
    if show_diff:
        for diff in report.diffs:
            typer.echo(diff, nl=False)
    outcomes = report.outcome_counts
    verb = "would apply" if settings.dry_run else "applied"
    typer.echo(
        f"{report.files_scanned} files, {report.functions_analyzed} functions: "
        f"{verb} {outcomes[InstructionOutcome.APPLIED]} edits "
        f"({outcomes[InstructionOutcome.UNCHANGED]} unchanged, "
        f"{outcomes[InstructionOutcome.LOOKUP_MISS]} not located, "
        f"{outcomes[InstructionOutcome.UNBOUND_TYPE]} unbound types, "
        f"{outcomes[InstructionOutcome.PERSISTENCE_FAILURE]} write failures); "
        f"{report.inference_misses} slots left untyped."
    )
    if report.collector_failures:
        typer.secho(f"{len(report.collector_failures)} files only partially analyzed.", fg=typer.colors.YELLOW)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def record(
    ctx: typer.Context,
    script: Optional[Path] = typer.Argument(None, help="Script to run; remaining arguments are passed to it."),
    module: Optional[str] = typer.Option(None, "--module", "-m", help="Run a module instead of a script."),
    output: Path = typer.Option(Path("traces.jsonl"), "--output", "-o"),
    root: Path = typer.Option(Path("."), "--root", help="Only calls into files under this directory are recorded."),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True),
) -> None:
    """Run a script or module and append observed call types to a trace file."""
    logger = _configure_logging(verbose)
    if (script is None) == (module is None):
        raise typer.BadParameter("Pass exactly one of SCRIPT or --module.")
    if script is not None and not script.is_file():
        raise typer.BadParameter(f"Script not found: {script}")
    if not root.is_dir():
        raise typer.BadParameter(f"Root is not a directory: {root}")
    recorder = TraceRecorder(root, output, exclude_dirs=DEFAULT_EXCLUDE_DIRS, logger=logger)
    exit_code = 0
    try:
        if module is not None:
            recorder.run_module(module, ctx.args)
        else:
            recorder.run_script(script, ctx.args)  # type: ignore[arg-type]
    except SystemExit as exc:
        exit_code = exc.code if isinstance(exc.code, int) else (0 if exc.code is None else 1)
    typer.echo(f"Recorded {recorder.records_written} calls to {output}")
    if exit_code:
        raise typer.Exit(code=exit_code)
