"""Command-line interface for gridcalc."""

from __future__ import annotations

import json
from pathlib import Path

import click

from gridcalc import __version__


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
def main() -> None:
    """gridcalc -- evaluate tabular formula documents."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _project_dir(file: str, directory: str | None) -> Path:
    return Path(directory) if directory else Path(file).resolve().parent


def _load_config(project_dir: Path) -> dict:
    from gridcalc.project import load_project_config

    try:
        return load_project_config(project_dir)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_grid(file: str, delimiter: str):
    from gridcalc.formulas.errors import FormulaParseError
    from gridcalc.grid import Grid

    text = Path(file).read_text(encoding="utf-8")
    try:
        return Grid.from_text(text, delimiter)
    except (FormulaParseError, ValueError) as exc:
        raise click.ClickException(f"{file}: {exc}") from exc


# ---------------------------------------------------------------------------
# Eval
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project", "directory", default=None, type=click.Path(exists=True, file_okay=False), help="Project directory (default: the file's directory).")
@click.option("--delimiter", default=None, help="Cell delimiter (overrides gridcalc.yaml).")
@click.option("--deadline", "deadline", default=None, type=float, help="Evaluation deadline in seconds.")
@click.option("--precision", default=None, type=int, help="Decimal places for non-integral floats.")
@click.option("--json", "as_json", is_flag=True, help="Output cell outcomes as JSON.")
@click.option("--csv", "csv_path", default=None, type=click.Path(dir_okay=False), help="Also write rendered values to a CSV file.")
@click.option("--strict", is_flag=True, help="Exit with status 1 if any cell failed.")
def eval_cmd(
    file: str,
    directory: str | None,
    delimiter: str | None,
    deadline: float | None,
    precision: int | None,
    as_json: bool,
    csv_path: str | None,
    strict: bool,
) -> None:
    """Evaluate FILE and print the resulting grid."""
    from gridcalc.engine import Engine
    from gridcalc.logging.events import set_project_dir
    from gridcalc.results import CellState

    project_dir = _project_dir(file, directory)
    config = _load_config(project_dir)
    set_project_dir(project_dir)

    delimiter = delimiter or config["delimiter"]
    deadline = deadline if deadline is not None else config["deadline_seconds"]
    precision = precision if precision is not None else config["float_precision"]

    grid = _load_grid(file, delimiter)
    try:
        engine = Engine(grid, deadline_seconds=deadline, source=Path(file).name)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    results = engine.evaluate()

    if as_json:
        payload = {"run_id": engine.last_run_id, "cells": results.to_dict()}
        click.echo(json.dumps(payload, indent=2, default=str))
    else:
        click.echo(results.render(separator=config["render_separator"], precision=precision))

    if csv_path:
        results.to_frame(precision).write_csv(csv_path)
        if not as_json:
            click.echo(f"Wrote {csv_path}")

    failed = results.count(CellState.failed) + results.count(CellState.incomplete)
    if failed and not as_json:
        click.echo(f"{failed} cell(s) did not evaluate (run {engine.last_run_id})", err=True)
    if strict and failed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Check
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project", "directory", default=None, type=click.Path(exists=True, file_okay=False), help="Project directory (default: the file's directory).")
@click.option("--delimiter", default=None, help="Cell delimiter (overrides gridcalc.yaml).")
def check(file: str, directory: str | None, delimiter: str | None) -> None:
    """Report parse errors, unknown references and cycles in FILE without evaluating."""
    from gridcalc.formulas.ast import iter_function_names, iter_references
    from gridcalc.formulas.errors import FormulaError
    from gridcalc.formulas.resolver import ReferenceResolver
    from gridcalc.functions import default_registry
    from gridcalc.graph import DependencyGraph, schedule
    from gridcalc.grid import CellKind
    from gridcalc.labels import LabelRegistry

    config = _load_config(_project_dir(file, directory))
    grid = _load_grid(file, delimiter or config["delimiter"])
    labels = LabelRegistry.from_grid(grid)
    resolver = ReferenceResolver(grid, labels)
    functions = default_registry()
    problems: list[str] = []

    for cell in grid:
        if cell.kind is CellKind.invalid:
            problems.append(f"{cell.address}: {cell.error}")
            continue
        if cell.expression is None:
            continue
        for ref in iter_references(cell.expression):
            try:
                resolver.targets(ref, cell.address)
            except FormulaError as exc:
                problems.append(f"{cell.address}: {exc}")
        for name in iter_function_names(cell.expression):
            if name not in functions:
                problems.append(f"{cell.address}: Unknown function: {name!r}")

    sched = schedule(DependencyGraph.build(grid, resolver))
    for cycle in sched.cycles:
        problems.append("Circular reference: " + ", ".join(str(a) for a in cycle))

    click.echo(f"{len(grid)} cells, {len(labels)} labels, {len(grid.row_numbers)} rows")
    if not problems:
        click.echo("No problems found.")
        return
    for problem in problems:
        click.echo(f"  {problem}")
    raise click.ClickException(f"{len(problems)} problem(s) found")


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


@main.command("functions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def functions_cmd(as_json: bool) -> None:
    """List the built-in functions."""
    from gridcalc.functions import default_registry

    specs = default_registry().specs()
    if as_json:
        click.echo(json.dumps(
            [{"name": s.name, "signature": s.signature(), "doc": s.doc} for s in specs],
            indent=2,
        ))
        return
    for spec in specs:
        line = spec.signature()
        if spec.doc:
            line += f"  -- {spec.doc}"
        click.echo(line)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--run-id", default=None, help="Filter by run ID.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    run_id: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from gridcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, run_id=run_id, limit=limit)

    if not events:
        click.echo("No events found.")
        return
    for evt in events:
        click.echo(_format_event(evt))


@main.command("run-log")
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.argument("run_id", required=False)
def run_log_cmd(directory: str, run_id: str | None) -> None:
    """Show the event log of one run (the latest if RUN_ID is omitted)."""
    from gridcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    if run_id is None:
        runs = sink.list_runs()
        if not runs:
            click.echo("No runs found.")
            return
        run_id = runs[0]

    events = sink.read_run_log(run_id)
    if not events:
        raise click.ClickException(f"No events for run {run_id!r}")
    click.echo(f"Run {run_id}")
    for evt in events:
        click.echo(_format_event(evt))


def _format_event(evt: dict) -> str:
    ts = evt.get("ts", "")
    lvl = evt.get("level", "").upper()
    etype = evt.get("event_type", "")
    msg = evt.get("message", "")
    line = f"[{ts}] {lvl:7s} {etype}: {msg}"
    err = evt.get("error_code")
    if err:
        line += f"  ({err})"
    return line
