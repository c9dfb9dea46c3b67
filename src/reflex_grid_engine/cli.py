"""CLI for reflex-grid-engine -- inspect a data file through a grid session.

Usage::

    # First page of a CSV / TSV / Parquet file
    reflex-grid-engine view data.csv

    # Page 3, 20 rows per page, sorted by age (descending) then name
    reflex-grid-engine view people.parquet --page 3 --per-page 20 --sort age:desc --sort name

    # Filter: COLUMN:OPERATION[:VALUE]; dates take START or START..END
    reflex-grid-engine view people.parquet --filter name:contains:ann --filter joined:between:2024-01-01..2024-06-30

    # Show the available filter operations
    reflex-grid-engine operations

The same filter, sort and paging logic backs ``GridStateMixin`` in a
Reflex app; this command runs it headless and prints the result.
"""

from datetime import date
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from reflex_grid_engine import log
from reflex_grid_engine.config import get_settings
from reflex_grid_engine.exceptions import GridEngineError
from reflex_grid_engine.filters import (
    DateOperation,
    DateRange,
    FilterClause,
    FilterFamily,
    OPERATION_TYPES,
    family_for_column_type,
    operation_requires_value,
    parse_operation,
)
from reflex_grid_engine.polars_utils import ROW_ID_FIELD, LazyFrameRowSource, scan_file
from reflex_grid_engine.session import GridSession
from reflex_grid_engine.types import Column, GridCallbacks

app = typer.Typer(
    name="reflex-grid-engine",
    help="Filter, sort and page tabular data files through a grid session.",
    no_args_is_help=True,
)

_MAX_CELL_WIDTH = 24


def _parse_sort(spec: str) -> tuple[str, bool]:
    """Parse ``COLUMN[:asc|desc]`` into ``(column, descending)``."""
    column, _, direction = spec.partition(":")
    direction = direction.lower() or "asc"
    if direction not in ("asc", "desc"):
        raise typer.BadParameter(f"sort direction must be asc or desc: {spec}")
    return column, direction == "desc"


def _coerce_value(family: FilterFamily, raw: str) -> Any:
    if family is FilterFamily.NUMBER:
        try:
            return int(raw)
        except ValueError:
            try:
                return float(raw)
            except ValueError:
                raise typer.BadParameter(f"not a number: {raw}") from None
    return raw


def _parse_date_range(operation: DateOperation, raw: str) -> DateRange:
    try:
        if operation is DateOperation.BETWEEN:
            start, sep, end = raw.partition("..")
            if not sep:
                raise typer.BadParameter(f"between takes START..END: {raw}")
            return DateRange(date.fromisoformat(start), date.fromisoformat(end))
        return DateRange(date.fromisoformat(raw))
    except ValueError:
        raise typer.BadParameter(f"not an ISO date range: {raw}") from None


def _parse_filter(spec: str, columns: dict[str, Column]) -> FilterClause:
    """Parse ``COLUMN:OPERATION[:VALUE]`` against the file's columns."""
    column_id, _, rest = spec.partition(":")
    name, _, raw_value = rest.partition(":")
    column = columns.get(column_id)
    if column is None:
        raise typer.BadParameter(f"unknown column in filter: {column_id}")
    family = family_for_column_type(column.column_type)
    try:
        operation = parse_operation(name, family)
    except GridEngineError as exc:
        raise typer.BadParameter(str(exc)) from None

    value: Any = None
    if operation_requires_value(operation):
        if not raw_value:
            raise typer.BadParameter(f"{name} needs a value: {spec}")
        if isinstance(operation, DateOperation):
            value = _parse_date_range(operation, raw_value)
        else:
            value = _coerce_value(family, raw_value)
    try:
        return FilterClause(column_id, operation, value)
    except GridEngineError as exc:
        raise typer.BadParameter(str(exc)) from None


def _format_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    if len(text) > _MAX_CELL_WIDTH:
        return text[: _MAX_CELL_WIDTH - 3] + "..."
    return text


def _render_table(session: GridSession) -> str:
    views = session.column_views()
    header = ["#"] + [view.label for view in views]
    lines: list[list[str]] = []
    for i, row in enumerate(session.rows.window):
        cells = [str(session.rows.global_index(i))]
        cells.extend(_format_cell(session.cell_view(row, view.column_id).value) for view in views)
        lines.append(cells)

    widths = [len(h) for h in header]
    for cells in lines:
        widths = [max(w, len(c)) for w, c in zip(widths, cells)]

    def fmt(cells: list[str]) -> str:
        return "  ".join(c.ljust(w) for c, w in zip(cells, widths)).rstrip()

    out = [fmt(header), fmt(["-" * w for w in widths])]
    out.extend(fmt(cells) for cells in lines)
    return "\n".join(out)


@app.command()
def view(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, NDJSON, IPC)")],
    page: Annotated[int, typer.Option("--page", "-p", min=1, help="1-indexed page to show")] = 1,
    per_page: Annotated[Optional[int], typer.Option("--per-page", "-n", min=1, help="Rows per page")] = None,
    sort: Annotated[Optional[list[str]], typer.Option("--sort", "-s", help="COLUMN[:asc|desc], repeatable")] = None,
    filter_: Annotated[
        Optional[list[str]], typer.Option("--filter", "-f", help="COLUMN:OPERATION[:VALUE], repeatable")
    ] = None,
    columns: Annotated[Optional[str], typer.Option("--columns", "-c", help="Comma-separated columns to show")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log every state change")] = False,
) -> None:
    """Print one page of a data file after filtering and sorting it.

    Supports: CSV, TSV, Parquet, JSON, NDJSON, IPC/Arrow/Feather.
    """
    if verbose:
        log.enable_debug()

    file = file.resolve()
    if not file.exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(code=1)
    try:
        lf = scan_file(file)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    source = LazyFrameRowSource(lf)
    all_columns = source.columns()
    by_id = {column.id: column for column in all_columns}
    hidden: list[str] = []
    if columns:
        wanted = [c.strip() for c in columns.split(",") if c.strip()]
        unknown = [c for c in wanted if c not in by_id]
        if unknown:
            typer.echo(f"Error: unknown column(s): {', '.join(unknown)}", err=True)
            raise typer.Exit(code=1)
        hidden = [c.id for c in all_columns if c.id not in wanted]

    per_page = per_page or get_settings().page_size
    requested: list[int] = []
    session = GridSession(
        all_columns,
        get_row_id=ROW_ID_FIELD,
        hidden=hidden,
        callbacks=GridCallbacks(on_page_change=requested.append),
    )

    try:
        for spec in filter_ or []:
            clause = _parse_filter(spec, by_id)
            session.set_filter(clause.column_id, clause)
        for spec in sort or []:
            column_id, descending = _parse_sort(spec)
            session.toggle_sort(column_id)
            if descending:
                session.toggle_sort(column_id)
    except GridEngineError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    source.set_query(session.filters.filters, session.filters.sorts)
    rows, info = source.page(1, per_page)
    session.set_source(rows, page_info=info)
    if page != 1:
        session.change_page(page)
        if not requested:
            typer.echo(f"Error: page {page} out of range 1..{info.last_page}", err=True)
            raise typer.Exit(code=1)
        rows, info = source.page(requested[-1], per_page)
        session.set_source(rows, page_info=info)

    typer.echo(f"{file.name} | {session.filters.describe()}")
    typer.echo(_render_table(session))
    typer.echo(session.footer_summary())


@app.command()
def operations() -> None:
    """List the filter operations of every column type family."""
    for family, op_type in OPERATION_TYPES.items():
        names = ", ".join(op.value for op in op_type)  # type: ignore[attr-defined]
        typer.echo(f"{family.value}: {names}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
