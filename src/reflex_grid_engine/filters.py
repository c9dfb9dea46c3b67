"""Typed filter and sort clauses, and the model that owns them.

Filters are held per column: at most one :class:`FilterClause` per column
id, combined with AND.  Sorts are an ordered list of :class:`SortClause`
where earlier entries take precedence.  Both can be exported to and loaded
from a JSON preset of the shape::

    {
        "filter_model": [
            {"column_id": "name", "type": "text", "operation": "contains", "value": "ann"},
            {"column_id": "joined", "type": "date", "operation": "between",
             "value": {"start": "2024-01-01", "end": "2024-06-30"}}
        ],
        "sort_model": [{"column_id": "age", "direction": "desc"}]
    }

The same clauses can be evaluated in memory (:func:`filter_rows`,
:func:`sort_rows`) or translated to polars expressions
(:mod:`reflex_grid_engine.polars_utils`).
"""

import json
import numbers
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, TypeAlias

from reflex_grid_engine import log
from reflex_grid_engine.exceptions import InvalidFilterClauseError, PresetError
from reflex_grid_engine.types import Column, ColumnType, Row, SortDirection


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class FilterFamily(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class TextOperation(str, Enum):
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class NumberOperation(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_THAN = "lessThan"
    LESS_OR_EQUAL = "lessOrEqual"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class DateOperation(str, Enum):
    IS = "is"
    IS_NOT = "isNot"
    IS_BEFORE = "isBefore"
    IS_AFTER = "isAfter"
    ON_OR_BEFORE = "onOrBefore"
    ON_OR_AFTER = "onOrAfter"
    BETWEEN = "between"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class BooleanOperation(str, Enum):
    TRUE = "true"
    FALSE = "false"
    ALL = "all"


FilterOperation: TypeAlias = TextOperation | NumberOperation | DateOperation | BooleanOperation

OPERATION_TYPES: dict[FilterFamily, type[Enum]] = {
    FilterFamily.TEXT: TextOperation,
    FilterFamily.NUMBER: NumberOperation,
    FilterFamily.DATE: DateOperation,
    FilterFamily.BOOLEAN: BooleanOperation,
}

_EMPTY_OPERATIONS = frozenset(
    {
        TextOperation.IS_EMPTY,
        NumberOperation.IS_EMPTY,
        DateOperation.IS_EMPTY,
    }
)
_NOT_EMPTY_OPERATIONS = frozenset(
    {
        TextOperation.IS_NOT_EMPTY,
        NumberOperation.IS_NOT_EMPTY,
        DateOperation.IS_NOT_EMPTY,
    }
)

# Column types whose filter family is not obvious from the name.
_COLUMN_FAMILY: dict[ColumnType, FilterFamily] = {
    ColumnType.NUMBER: FilterFamily.NUMBER,
    ColumnType.DATE: FilterFamily.DATE,
    ColumnType.BOOLEAN: FilterFamily.BOOLEAN,
}


def operation_family(operation: FilterOperation) -> FilterFamily:
    """Return the filter family an operation belongs to."""
    for family, op_type in OPERATION_TYPES.items():
        if isinstance(operation, op_type):
            return family
    raise InvalidFilterClauseError(f"Not a filter operation: {operation!r}")


def operation_requires_value(operation: FilterOperation) -> bool:
    """Return True if clauses with *operation* must carry a value.

    Empty/not-empty checks and every boolean operation are value-less.
    """
    if isinstance(operation, BooleanOperation):
        return False
    return operation not in _EMPTY_OPERATIONS and operation not in _NOT_EMPTY_OPERATIONS


def family_for_column_type(column_type: ColumnType | str) -> FilterFamily:
    """Map a column type to the filter family its header offers.

    Select, country and phone columns filter as text.
    """
    return _COLUMN_FAMILY.get(ColumnType(column_type), FilterFamily.TEXT)


def parse_operation(name: str, family: FilterFamily | str) -> FilterOperation:
    """Resolve an operation name within *family*.

    Raises:
        InvalidFilterClauseError: If the name is not an operation of the family.
    """
    try:
        op_type = OPERATION_TYPES[FilterFamily(family)]
        return op_type(name)  # type: ignore[return-value]
    except ValueError as exc:
        raise InvalidFilterClauseError(
            f"Unknown {family} filter operation: {name!r}", operation=name, family=str(family)
        ) from exc


# ---------------------------------------------------------------------------
# Clauses
# ---------------------------------------------------------------------------


def _as_date(value: Any) -> date | None:
    """Coerce dates, datetimes and ISO strings to a calendar date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class DateRange:
    """Value of a date filter.

    ``between`` uses both bounds (inclusive); every other date operation
    compares against ``start`` only.
    """

    start: date | None = None
    end: date | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "start": self.start.isoformat() if self.start is not None else None,
            "end": self.end.isoformat() if self.end is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DateRange":
        return cls(start=_as_date(data.get("start")), end=_as_date(data.get("end")))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class FilterClause:
    """One active filter on one column.

    The clause validates itself on construction: ``value`` is present iff
    the operation requires one, and its type matches the operation family.

    Raises:
        InvalidFilterClauseError: On any inconsistency.
    """

    column_id: str
    operation: FilterOperation
    value: Any = None

    def __post_init__(self) -> None:
        family = operation_family(self.operation)
        requires = operation_requires_value(self.operation)
        ctx = {"column_id": self.column_id, "operation": self.operation.value}

        if not requires:
            if self.value is not None:
                raise InvalidFilterClauseError("Operation does not take a value", **ctx)
            return
        if self.value is None:
            raise InvalidFilterClauseError("Operation requires a value", **ctx)

        if family is FilterFamily.TEXT and not isinstance(self.value, str):
            raise InvalidFilterClauseError("Text filters take a string value", **ctx)
        if family is FilterFamily.NUMBER and not _is_number(self.value):
            raise InvalidFilterClauseError("Number filters take a numeric value", **ctx)
        if family is FilterFamily.DATE:
            self._check_date_range(ctx)

    def _check_date_range(self, ctx: dict[str, Any]) -> None:
        if not isinstance(self.value, DateRange):
            raise InvalidFilterClauseError("Date filters take a DateRange value", **ctx)
        if self.operation is DateOperation.BETWEEN:
            if self.value.start is None or self.value.end is None:
                raise InvalidFilterClauseError("'between' requires both start and end", **ctx)
            if self.value.start > self.value.end:
                raise InvalidFilterClauseError("'between' requires start <= end", **ctx)
        elif self.value.start is None:
            raise InvalidFilterClauseError("Date filter requires a start date", **ctx)

    @property
    def family(self) -> FilterFamily:
        return operation_family(self.operation)

    def matches(self, cell_value: Any) -> bool:
        """Evaluate the clause against a single cell value in memory.

        Text comparisons are case-insensitive.  Date comparisons use
        calendar days.  A missing value only satisfies ``isEmpty``.
        """
        op = self.operation
        blank = cell_value is None or cell_value == ""

        if isinstance(op, BooleanOperation):
            if op is BooleanOperation.ALL:
                return True
            if cell_value is None:
                return False
            return bool(cell_value) == (op is BooleanOperation.TRUE)
        if op in _EMPTY_OPERATIONS:
            return blank
        if op in _NOT_EMPTY_OPERATIONS:
            return not blank
        if cell_value is None:
            return False

        if isinstance(op, TextOperation):
            return _match_text(op, str(cell_value).lower(), str(self.value).lower())
        if isinstance(op, NumberOperation):
            try:
                number = float(cell_value)
            except (TypeError, ValueError):
                return False
            return _match_number(op, number, float(self.value))
        cell_date = _as_date(cell_value)
        if cell_date is None:
            return False
        return _match_date(op, cell_date, self.value)  # type: ignore[arg-type]

    def describe(self) -> str:
        if self.value is None:
            return f"{self.column_id} {self.operation.value}"
        if isinstance(self.value, DateRange):
            if self.operation is DateOperation.BETWEEN:
                return f"{self.column_id} between {self.value.start} and {self.value.end}"
            return f"{self.column_id} {self.operation.value} {self.value.start}"
        return f"{self.column_id} {self.operation.value} {self.value!r}"

    def to_dict(self) -> dict[str, Any]:
        value: Any = self.value
        if isinstance(value, DateRange):
            value = value.to_dict()
        return {
            "column_id": self.column_id,
            "type": self.family.value,
            "operation": self.operation.value,
            "value": value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilterClause":
        """Rebuild a clause from :meth:`to_dict` output.

        Raises:
            InvalidFilterClauseError: If the entry is malformed.
        """
        column_id = data.get("column_id")
        family = data.get("type")
        name = data.get("operation")
        if not column_id or not family or not name:
            raise InvalidFilterClauseError("Filter entry needs column_id, type and operation")
        operation = parse_operation(name, family)
        value = data.get("value")
        if isinstance(operation, DateOperation) and isinstance(value, Mapping):
            value = DateRange.from_dict(value)
        return cls(column_id=column_id, operation=operation, value=value)


def _match_text(op: TextOperation, cell: str, wanted: str) -> bool:
    if op is TextOperation.CONTAINS:
        return wanted in cell
    if op is TextOperation.NOT_CONTAINS:
        return wanted not in cell
    if op is TextOperation.EQUALS:
        return cell == wanted
    if op is TextOperation.NOT_EQUALS:
        return cell != wanted
    if op is TextOperation.STARTS_WITH:
        return cell.startswith(wanted)
    if op is TextOperation.ENDS_WITH:
        return cell.endswith(wanted)
    return True


def _match_number(op: NumberOperation, cell: float, wanted: float) -> bool:
    if op is NumberOperation.EQUALS:
        return cell == wanted
    if op is NumberOperation.NOT_EQUALS:
        return cell != wanted
    if op is NumberOperation.GREATER_THAN:
        return cell > wanted
    if op is NumberOperation.GREATER_OR_EQUAL:
        return cell >= wanted
    if op is NumberOperation.LESS_THAN:
        return cell < wanted
    if op is NumberOperation.LESS_OR_EQUAL:
        return cell <= wanted
    return True


def _match_date(op: DateOperation, cell: date, wanted: DateRange) -> bool:
    start = wanted.start
    if op is DateOperation.BETWEEN:
        return start <= cell <= wanted.end  # type: ignore[operator]
    if op is DateOperation.IS:
        return cell == start
    if op is DateOperation.IS_NOT:
        return cell != start
    if op is DateOperation.IS_BEFORE:
        return cell < start  # type: ignore[operator]
    if op is DateOperation.IS_AFTER:
        return cell > start  # type: ignore[operator]
    if op is DateOperation.ON_OR_BEFORE:
        return cell <= start  # type: ignore[operator]
    if op is DateOperation.ON_OR_AFTER:
        return cell >= start  # type: ignore[operator]
    return True


@dataclass(frozen=True)
class SortClause:
    column_id: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> dict[str, str]:
        return {"column_id": self.column_id, "direction": self.direction.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SortClause":
        column_id = data.get("column_id")
        if not column_id:
            raise PresetError("Sort entry needs a column_id", entry=dict(data))
        try:
            direction = SortDirection(data.get("direction", "asc"))
        except ValueError as exc:
            raise PresetError("Invalid sort direction", entry=dict(data)) from exc
        return cls(column_id=column_id, direction=direction)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class FilterSortModel:
    """Owns the active filter clauses and the ordered sort list.

    Args:
        on_filter_change: Called as ``on_filter_change(clause_or_none, column_id)``
            after every filter change.
        on_sort_change: Called with the new sort list after every change.
    """

    def __init__(
        self,
        *,
        on_filter_change: Callable[[FilterClause | None, str], Any] | None = None,
        on_sort_change: Callable[[list[SortClause]], Any] | None = None,
    ) -> None:
        self._filters: dict[str, FilterClause] = {}
        self._sorts: list[SortClause] = []
        self.on_filter_change = on_filter_change
        self.on_sort_change = on_sort_change

    @property
    def filters(self) -> dict[str, FilterClause]:
        return dict(self._filters)

    @property
    def sorts(self) -> list[SortClause]:
        return list(self._sorts)

    # -- filters --

    def set_filter(self, column_id: str, clause: FilterClause | None) -> None:
        """Replace (or with ``None`` clear) the filter of *column_id*."""
        if clause is not None and clause.column_id != column_id:
            raise InvalidFilterClauseError(
                "Clause belongs to another column", column_id=column_id, clause_column=clause.column_id
            )
        if clause is None:
            self._filters.pop(column_id, None)
        else:
            self._filters[column_id] = clause
        log.debug(f"[FilterSortModel] filter {column_id}: {clause.describe() if clause else 'cleared'}")
        if self.on_filter_change is not None:
            self.on_filter_change(clause, column_id)

    def clear_filter(self, column_id: str) -> None:
        self.set_filter(column_id, None)

    def clear_filters(self) -> None:
        """Clear every filter, notifying once per previously filtered column."""
        for column_id in list(self._filters):
            self.set_filter(column_id, None)

    def get_active_filter(
        self,
        column_id: str,
        family: FilterFamily | str | None = None,
    ) -> FilterClause | None:
        """Return the column's clause, optionally only if it is of *family*."""
        clause = self._filters.get(column_id)
        if clause is None or family is None:
            return clause
        return clause if clause.family is FilterFamily(family) else None

    # -- sorting --

    def toggle_sort(self, column_id: str) -> list[SortClause]:
        """Advance the column through absent -> asc -> desc -> absent.

        A newly sorted column is appended with the lowest precedence; the
        relative order of the other columns is never changed.
        """
        for i, sort in enumerate(self._sorts):
            if sort.column_id != column_id:
                continue
            if sort.direction is SortDirection.ASC:
                self._sorts[i] = SortClause(column_id, SortDirection.DESC)
            else:
                del self._sorts[i]
            break
        else:
            self._sorts.append(SortClause(column_id, SortDirection.ASC))

        log.debug(f"[FilterSortModel] sort: {self._describe_sorts() or 'none'}")
        self._notify_sort()
        return self.sorts

    def set_sorts(self, sorts: Iterable[SortClause]) -> None:
        """Replace the whole sort list (duplicates keep their first entry)."""
        seen: set[str] = set()
        ordered: list[SortClause] = []
        for sort in sorts:
            if sort.column_id in seen:
                continue
            seen.add(sort.column_id)
            ordered.append(sort)
        self._sorts = ordered
        self._notify_sort()

    def clear_sort(self) -> None:
        self._sorts = []
        self._notify_sort()

    def get_sort_direction(self, column_id: str) -> SortDirection | None:
        for sort in self._sorts:
            if sort.column_id == column_id:
                return sort.direction
        return None

    def get_sort_priority(self, column_id: str) -> int | None:
        """1-based precedence of the column in the sort list."""
        for i, sort in enumerate(self._sorts):
            if sort.column_id == column_id:
                return i + 1
        return None

    def _notify_sort(self) -> None:
        if self.on_sort_change is not None:
            self.on_sort_change(self.sorts)

    # -- presets --

    def to_preset(self) -> dict[str, Any]:
        return {
            "filter_model": [clause.to_dict() for clause in self._filters.values()],
            "sort_model": [sort.to_dict() for sort in self._sorts],
        }

    def to_preset_json(self) -> str:
        return json.dumps(self.to_preset(), indent=2, ensure_ascii=False)

    def load_preset(self, preset: Mapping[str, Any] | str) -> None:
        """Replace filters and sorts with those of a preset.

        The preset is fully parsed before anything changes, so a malformed
        preset leaves the model untouched.

        Args:
            preset: A dict as produced by :meth:`to_preset`, or its JSON text.

        Raises:
            PresetError: If the preset cannot be parsed.
        """
        if isinstance(preset, str):
            try:
                preset = json.loads(preset)
            except json.JSONDecodeError as exc:
                raise PresetError("Preset is not valid JSON") from exc
        if not isinstance(preset, Mapping):
            raise PresetError("Preset must be a JSON object")

        try:
            clauses = [FilterClause.from_dict(entry) for entry in preset.get("filter_model", [])]
        except (InvalidFilterClauseError, AttributeError, TypeError) as exc:
            raise PresetError(f"Invalid filter entry: {exc}") from exc
        try:
            sorts = [SortClause.from_dict(entry) for entry in preset.get("sort_model", [])]
        except (AttributeError, TypeError) as exc:
            raise PresetError(f"Invalid sort entry: {exc}") from exc

        self.clear_filters()
        for clause in clauses:
            self.set_filter(clause.column_id, clause)
        self.set_sorts(sorts)
        log.info(f"[FilterSortModel] preset applied: {len(clauses)} filter(s), {len(sorts)} sort(s)")

    # -- summary --

    def _describe_sorts(self) -> str:
        return ", ".join(f"{s.column_id} {s.direction.value}" for s in self._sorts)

    def describe(self) -> str:
        """Compact one-line summary of the active filters and sorts."""
        parts: list[str] = []
        if self._filters:
            fields = list(self._filters)
            shown = ", ".join(fields) if len(fields) <= 3 else f"{len(fields)} columns"
            parts.append(f"{len(fields)} filter(s) on {shown}")
        if self._sorts:
            parts.append(f"{len(self._sorts)} sort(s): {self._describe_sorts()}")
        return " | ".join(parts) if parts else "No active filters or sorts."


# ---------------------------------------------------------------------------
# In-memory evaluation
# ---------------------------------------------------------------------------


def filter_rows(
    rows: Sequence[Row],
    filters: Mapping[str, FilterClause],
    columns: Sequence[Column],
) -> list[Row]:
    """Return the rows satisfying every clause.

    Clauses on columns that are not in *columns* are ignored.
    """
    by_id = {column.id: column for column in columns}
    active = [(by_id[cid], clause) for cid, clause in filters.items() if cid in by_id]
    if not active:
        return list(rows)
    return [row for row in rows if all(clause.matches(col.value(row)) for col, clause in active)]


def _sort_key(value: Any) -> tuple[Any, ...]:
    """Order key that never compares values of unrelated kinds.

    Numbers come first, then strings (ignoring case), then dates, then
    anything else grouped by type name and ordered by its text.
    """
    if isinstance(value, numbers.Real):
        return (0, value)
    if isinstance(value, str):
        return (1, value.lower())
    if isinstance(value, datetime):
        return (2, value.replace(tzinfo=None))
    if isinstance(value, date):
        return (2, datetime.combine(value, time.min))
    return (3, type(value).__name__, str(value))


def sort_rows(
    rows: Sequence[Row],
    sorts: Sequence[SortClause],
    columns: Sequence[Column],
) -> list[Row]:
    """Stable multi-key sort; missing values sort last in either direction.

    A column holding values of mixed kinds sorts them in groups (numbers,
    strings, dates, others) rather than failing on the comparison.
    """
    by_id = {column.id: column for column in columns}
    result = list(rows)
    # Sort by the lowest precedence key first so that stability keeps
    # the higher precedence keys on top.
    for sort in reversed([s for s in sorts if s.column_id in by_id]):
        column = by_id[sort.column_id]
        descending = sort.direction is SortDirection.DESC
        present = [row for row in result if column.value(row) is not None]
        missing = [row for row in result if column.value(row) is None]
        present.sort(key=lambda row: _sort_key(column.value(row)), reverse=descending)
        result = present + missing
    return result
