"""Command-line tools for inspecting engine behaviour."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import click

from .changeset import format_line
from .config import GridOptions
from .engine import GridEngine
from .geometry import sort_entries
from .oplog import OpLog
from .responsive import Breakpoint, ColumnPolicy, resolve_column
from .types import ColumnFlags, ContractViolation, Entry, GridBox, MoveOptions

logger = logging.getLogger("gridflow.cli")

ENTRY_ATTRS = (
    "min_w",
    "min_h",
    "max_w",
    "max_h",
    "locked",
    "no_move",
    "no_resize",
    "auto_position",
)


def _configure_logging(verbose: int) -> None:
    root = logging.getLogger("gridflow")
    root.setLevel(logging.DEBUG if verbose > 1 else logging.INFO if verbose else logging.WARNING)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(handler)


def _box(spec: Dict[str, Any]) -> GridBox:
    if "box" not in spec:
        return GridBox()
    return GridBox.from_sequence(spec["box"])


def _flags(spec: Dict[str, Any], default: ColumnFlags) -> ColumnFlags:
    if "flags" not in spec:
        return default
    return ColumnFlags.from_string(spec["flags"])


def _entry(spec: Dict[str, Any]) -> Entry:
    attrs = {k: spec[k] for k in ENTRY_ATTRS if k in spec}
    return Entry(spec["id"], position=_box(spec), **attrs)


def _lookup(grid: GridEngine, entry_id) -> Entry:
    entry = grid.get(entry_id)
    if entry is None:
        raise click.ClickException(f"Unknown entry {entry_id!r}")
    return entry


def run_operations(grid: GridEngine, operations: List[Dict[str, Any]]) -> None:
    """Apply scenario operations to `grid` in order."""
    for op in operations:
        kind = op.get("op")
        if kind == "insert":
            if grid.insert(_entry(op)) is None:
                logger.warning(f"No room for {op['id']!r}")
        elif kind == "move":
            result = grid.move(_lookup(grid, op["id"]), MoveOptions(box=_box(op)))
            if not result.resolved:
                logger.warning(f"Move of {op['id']!r} could not be resolved")
        elif kind == "remove":
            grid.remove(_lookup(grid, op["id"]))
        elif kind == "column":
            grid.set_column(int(op["count"]), _flags(op, ColumnFlags.MOVE_SCALE))
        elif kind == "compact":
            grid.compact(_flags(op, ColumnFlags.COMPACT))
        elif kind == "batch":
            with grid.batch():
                run_operations(grid, op.get("operations", []))
        else:
            raise click.ClickException(f"Unknown operation {kind!r}")


@click.group()
def cli() -> None:
    """Grid layout engine tools."""


@cli.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--oplog/--no-oplog", default=False, help="Print the operation log after the layout.")
@click.option("-v", "--verbose", count=True, help="Log engine activity (repeat for debug).")
def replay(scenario: Path, oplog: bool, verbose: int) -> None:
    """Run a JSON SCENARIO and print the resulting layout."""
    _configure_logging(verbose)
    try:
        data = json.loads(scenario.read_text())
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid scenario {scenario}: {exc}")

    try:
        options = GridOptions.from_dict(data.get("options", {}))
    except (TypeError, ValueError) as exc:
        raise click.ClickException(str(exc))

    log = OpLog()
    grid = GridEngine(options, oplog=log)
    try:
        with grid.batch():
            for spec in data.get("entries", []):
                grid.insert(_entry(spec))
        run_operations(grid, data.get("operations", []))
    except ContractViolation as exc:
        raise click.ClickException(str(exc))

    click.echo(format_line("GRID", {"column": grid.column, "rows": grid.get_occupied_row_count()}))
    for entry in sort_entries(grid.entries):
        click.echo(format_line("ENTRY", {"id": entry.entry_id, "box": entry.position}))
    if oplog:
        click.echo(log.to_plaintext(), nl=False)


def _breakpoint(value: str) -> Breakpoint:
    width, _, column = value.partition(":")
    try:
        return Breakpoint(width=float(width), column=int(column))
    except ValueError:
        raise click.BadParameter(f"expected WIDTH:COLUMN, got {value!r}")


@cli.command()
@click.argument("width", type=float)
@click.option("--column-width", type=float, default=None, help="Fixed pixel width of one column.")
@click.option("--max", "column_max", type=int, default=12, show_default=True, help="Most columns to use.")
@click.option("--breakpoint", "breakpoints", multiple=True, help="WIDTH:COLUMN, may be repeated.")
@click.option("--current", type=int, default=12, show_default=True, help="Current column count.")
def columns(width: float, column_width, column_max: int, breakpoints, current: int) -> None:
    """Print the column count a grid WIDTH pixels wide would use."""
    policy = ColumnPolicy(
        column_width=column_width,
        column_max=column_max,
        breakpoints=[_breakpoint(b) for b in breakpoints],
    )
    column, flags = resolve_column(policy, width, current)
    names = flags.describe()
    click.echo(format_line("COLUMNS", {"width": width, "column": column, "flags": names}))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
