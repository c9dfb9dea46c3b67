"""Polars adapters: run grid clauses on LazyFrames and serve row windows.

Filter and sort clauses are translated into polars expressions, so a
:class:`LazyFrameRowSource` can feed a :class:`GridSession` page by page
(or chunk by chunk when scrolling) without ever collecting the full data
set.
"""

import time
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

import polars as pl

from reflex_grid_engine import log
from reflex_grid_engine.filters import (
    BooleanOperation,
    DateOperation,
    DateRange,
    FilterClause,
    NumberOperation,
    SortClause,
    TextOperation,
)
from reflex_grid_engine.types import Column, ColumnType, LoadMoreParams, PageInfo, SortDirection, humanize_field_name


ROW_ID_FIELD = "__row_id__"


def polars_dtype_to_column_type(dtype: pl.DataType) -> ColumnType:
    """Map a polars DataType to the closest grid column type.

    Categorical and Enum columns become ``select``; every other
    non-numeric, non-temporal type is shown as text.
    """
    if isinstance(dtype, pl.Boolean):
        return ColumnType.BOOLEAN
    if dtype.is_numeric():
        return ColumnType.NUMBER
    if isinstance(dtype, (pl.Date, pl.Datetime)):
        return ColumnType.DATE
    if isinstance(dtype, (pl.Categorical, pl.Enum)):
        return ColumnType.SELECT
    return ColumnType.TEXT


def build_columns_from_schema(
    schema: pl.Schema | Mapping[str, pl.DataType],
    *,
    column_descriptions: dict[str, str] | None = None,
    id_field: str | None = ROW_ID_FIELD,
    show_id_field: bool = False,
) -> list[Column]:
    """Build :class:`Column` descriptors from a polars schema without collecting data.

    Args:
        schema: A polars ``Schema`` (e.g. ``lf.collect_schema()``).
        column_descriptions: Optional ``{column: description}`` mapping
            for header tooltips.
        id_field: Column used as the row identifier.
        show_id_field: Whether to include the *id_field* column.

    Returns:
        One column per schema field, in schema order.
    """
    descriptions = column_descriptions or {}
    columns: list[Column] = []
    for name, dtype in schema.items():
        if not show_id_field and name == id_field:
            continue
        columns.append(
            Column(
                id=name,
                label=humanize_field_name(name),
                column_type=polars_dtype_to_column_type(dtype),
                description=descriptions.get(name),
            )
        )
    return columns


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _col_to_str_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr:
    """Convert a column expression to a String, joining List/Array values."""
    if isinstance(dtype, (pl.List, pl.Array)):
        return col.cast(pl.List(pl.String)).list.join(",")
    return col.cast(pl.String)


def _col_to_date_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr | None:
    if isinstance(dtype, pl.Date):
        return col
    if isinstance(dtype, pl.Datetime):
        return col.dt.date()
    if isinstance(dtype, pl.String):
        return col.str.to_date(strict=False)
    return None


def _text_expr(op: TextOperation, str_col: pl.Expr, value: str) -> pl.Expr | None:
    lowered = str_col.str.to_lowercase()
    wanted = value.lower()
    if op is TextOperation.CONTAINS:
        return lowered.str.contains(wanted, literal=True)
    if op is TextOperation.NOT_CONTAINS:
        return ~lowered.str.contains(wanted, literal=True)
    if op is TextOperation.EQUALS:
        return lowered == wanted
    if op is TextOperation.NOT_EQUALS:
        return lowered != wanted
    if op is TextOperation.STARTS_WITH:
        return lowered.str.starts_with(wanted)
    if op is TextOperation.ENDS_WITH:
        return lowered.str.ends_with(wanted)
    return None


def _number_expr(op: NumberOperation, col: pl.Expr, value: float) -> pl.Expr | None:
    if op is NumberOperation.EQUALS:
        return col == value
    if op is NumberOperation.NOT_EQUALS:
        return col != value
    if op is NumberOperation.GREATER_THAN:
        return col > value
    if op is NumberOperation.GREATER_OR_EQUAL:
        return col >= value
    if op is NumberOperation.LESS_THAN:
        return col < value
    if op is NumberOperation.LESS_OR_EQUAL:
        return col <= value
    return None


def _date_expr(op: DateOperation, date_col: pl.Expr, value: DateRange) -> pl.Expr | None:
    start: date | None = value.start
    if op is DateOperation.BETWEEN:
        return date_col.is_between(pl.lit(start), pl.lit(value.end), closed="both")
    if op is DateOperation.IS:
        return date_col == pl.lit(start)
    if op is DateOperation.IS_NOT:
        return date_col != pl.lit(start)
    if op is DateOperation.IS_BEFORE:
        return date_col < pl.lit(start)
    if op is DateOperation.IS_AFTER:
        return date_col > pl.lit(start)
    if op is DateOperation.ON_OR_BEFORE:
        return date_col <= pl.lit(start)
    if op is DateOperation.ON_OR_AFTER:
        return date_col >= pl.lit(start)
    return None


def filter_clause_to_expr(clause: FilterClause, schema: pl.Schema | Mapping[str, pl.DataType]) -> pl.Expr | None:
    """Translate a single filter clause to a polars expression.

    Mirrors :meth:`FilterClause.matches`: text comparisons ignore case and
    date comparisons use calendar days.

    Returns:
        A polars expression, or ``None`` if the clause does not constrain
        anything (boolean ``all``) or cannot be applied to the column
        (unknown column, incompatible dtype).
    """
    if clause.column_id not in schema:
        return None

    op = clause.operation
    col = pl.col(clause.column_id)
    dtype = schema[clause.column_id]
    str_col = _col_to_str_expr(col, dtype)

    if op in (TextOperation.IS_EMPTY, NumberOperation.IS_EMPTY, DateOperation.IS_EMPTY):
        return col.is_null() | (str_col == "")
    if op in (TextOperation.IS_NOT_EMPTY, NumberOperation.IS_NOT_EMPTY, DateOperation.IS_NOT_EMPTY):
        return col.is_not_null() & (str_col != "")

    if isinstance(op, BooleanOperation):
        if op is BooleanOperation.ALL:
            return None
        return col.cast(pl.Boolean) == (op is BooleanOperation.TRUE)
    if isinstance(op, TextOperation):
        return _text_expr(op, str_col, clause.value)
    if isinstance(op, NumberOperation):
        if not dtype.is_numeric():
            col = col.cast(pl.Float64, strict=False)
        return _number_expr(op, col, clause.value)
    date_col = _col_to_date_expr(col, dtype)
    if date_col is None:
        return None
    return _date_expr(op, date_col, clause.value)


def apply_filter_clauses(
    lf: pl.LazyFrame,
    clauses: Iterable[FilterClause] | Mapping[str, FilterClause],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """AND-combine filter clauses onto a LazyFrame -- **no collect**.

    Args:
        lf: The polars LazyFrame to filter.
        clauses: Clauses, or the ``{column_id: clause}`` map of a
            :class:`FilterSortModel`.
        schema: Optional schema; obtained from ``lf.collect_schema()``
            when omitted.
    """
    if isinstance(clauses, Mapping):
        clauses = clauses.values()
    clauses = list(clauses)
    if not clauses:
        return lf
    if schema is None:
        schema = lf.collect_schema()

    exprs = [expr for expr in (filter_clause_to_expr(c, schema) for c in clauses) if expr is not None]
    if not exprs:
        return lf

    combined = exprs[0]
    for expr in exprs[1:]:
        combined = combined & expr
    return lf.filter(combined)


def apply_sort_clauses(
    lf: pl.LazyFrame,
    sorts: Iterable[SortClause],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Apply an ordered sort list -- **no collect**.  Nulls sort last."""
    sorts = list(sorts)
    if not sorts:
        return lf
    if schema is None:
        schema = lf.collect_schema()

    by: list[str] = []
    descending: list[bool] = []
    for sort in sorts:
        if sort.column_id not in schema:
            continue
        by.append(sort.column_id)
        descending.append(sort.direction is SortDirection.DESC)
    if not by:
        return lf
    return lf.sort(by=by, descending=descending, nulls_last=True, maintain_order=True)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def dataframe_to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to a list of JSON-safe dicts.

    * Temporal columns (Date, Datetime, Time, Duration) -> ISO-8601 strings.
    * List and Array columns -> comma-joined strings.
    * Struct columns -> cast to String.
    """
    exprs: list[pl.Expr] = []
    needs_cast = False
    for name, dtype in df.schema.items():
        col = pl.col(name)
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration, pl.Struct)):
            exprs.append(col.cast(pl.String))
            needs_cast = True
        elif isinstance(dtype, (pl.List, pl.Array)):
            exprs.append(col.cast(pl.List(pl.String)).list.join(","))
            needs_cast = True
        else:
            exprs.append(col)

    if not needs_cast:
        return df.to_dicts()
    return df.select(exprs).to_dicts()


def scan_file(path: Path) -> pl.LazyFrame:
    """Scan a tabular data file into a LazyFrame.

    Auto-detects the format from the extension: ``.parquet``/``.pq``,
    ``.csv``, ``.tsv``, ``.json`` (read eagerly, no streaming scan),
    ``.ndjson``/``.jsonl`` and ``.ipc``/``.arrow``/``.feather``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the extension is not recognised.
    """
    if not path.exists():
        raise FileNotFoundError(path)

    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path, try_parse_dates=True)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t", try_parse_dates=True)
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)
    raise ValueError(f"Unsupported file format: {path.suffix}")


# ---------------------------------------------------------------------------
# Row source
# ---------------------------------------------------------------------------


class LazyFrameRowSource:
    """Serves filtered and sorted row windows from a LazyFrame.

    Every row gets a stable ``__row_id__``: its position in the unfiltered
    frame. Ids stay unique across pages and chunks and follow the row
    through every sort and filter, so selections and heights keyed by id
    survive a requery. A frame that already carries ``__row_id__`` keeps it.

    Example::

        source = LazyFrameRowSource(pl.scan_parquet("people.parquet"))
        session = GridSession(source.columns(), get_row_id=ROW_ID_FIELD)
        source.set_query(session.filters.filters, session.filters.sorts)
        rows, info = source.page(1, 50)
        session.set_source(rows, page_info=info)
    """

    def __init__(self, lf: pl.LazyFrame, column_descriptions: dict[str, str] | None = None) -> None:
        self.schema: pl.Schema = lf.collect_schema()
        self.lf = lf if ROW_ID_FIELD in self.schema else lf.with_row_index(ROW_ID_FIELD)
        self.column_descriptions = column_descriptions or {}
        self._filters: list[FilterClause] = []
        self._sorts: list[SortClause] = []
        self._row_count: int | None = None

    def columns(self) -> list[Column]:
        return build_columns_from_schema(self.schema, column_descriptions=self.column_descriptions)

    def set_query(
        self,
        filters: Iterable[FilterClause] | Mapping[str, FilterClause],
        sorts: Iterable[SortClause],
    ) -> None:
        """Replace the active filters and sorts; the row count is recomputed lazily."""
        if isinstance(filters, Mapping):
            filters = filters.values()
        self._filters = list(filters)
        self._sorts = list(sorts)
        self._row_count = None

    def _query(self) -> pl.LazyFrame:
        lf = apply_filter_clauses(self.lf, self._filters, self.schema)
        return apply_sort_clauses(lf, self._sorts, self.schema)

    def count(self) -> int:
        """Number of rows matching the filters (a single ``select(pl.len())``)."""
        if self._row_count is None:
            t0 = time.perf_counter()
            lf = apply_filter_clauses(self.lf, self._filters, self.schema)
            self._row_count = lf.select(pl.len()).collect().item()
            log.debug(
                f"[LazyFrameRowSource] row count: {self._row_count:,} "
                f"({(time.perf_counter() - t0) * 1000:.1f}ms)"
            )
        return self._row_count

    def slice(self, offset: int, length: int) -> list[dict[str, Any]]:
        """Collect rows ``offset .. offset + length - 1`` of the result."""
        if length <= 0:
            return []
        t0 = time.perf_counter()
        df = self._query().slice(offset, length).collect()
        rows = dataframe_to_dicts(df)
        log.debug(
            f"[LazyFrameRowSource] slice offset={offset}, rows={len(rows)}, "
            f"elapsed={(time.perf_counter() - t0) * 1000:.1f}ms"
        )
        return rows

    def page(self, page: int, per_page: int) -> tuple[list[dict[str, Any]], PageInfo]:
        """Rows of a 1-indexed page together with its :class:`PageInfo`.

        Pages past the end are clamped to the last page.
        """
        total = self.count()
        last_page = max(1, -(-total // per_page))
        page = min(max(page, 1), last_page)
        offset = (page - 1) * per_page
        rows = self.slice(offset, per_page)
        info = PageInfo(
            current_page=page,
            per_page=per_page,
            total=total,
            first_item=offset + 1 if rows else None,
            last_item=offset + len(rows) if rows else None,
        )
        return rows, info

    async def load_more(self, params: LoadMoreParams) -> list[dict[str, Any]]:
        """Incremental loader for :class:`GridCallbacks.on_load_more_rows`."""
        start = params.visible_start_index
        return self.slice(start, params.visible_stop_index - start + 1)
