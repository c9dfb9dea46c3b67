"""Core data model of the grid engine.

Everything here is plain dataclasses and enums so the engine can be used
without a running Reflex app: the column descriptor and its optional edit
capability, the page descriptor of a paginated source, the parameters of an
incremental load, and the read-only views the orchestrator hands to a
renderer.
"""

import math
from collections.abc import Awaitable, Callable, Hashable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias


Row: TypeAlias = Any
RowId: TypeAlias = Hashable


class ColumnType(str, Enum):
    """Semantic type of a column; selects its filter family and editor."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    COUNTRY = "country"
    PHONE = "phone"


class PinSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def humanize_field_name(field_name: str) -> str:
    """Convert a snake_case or raw field name to a human-friendly header.

    Examples:
        ``"first_name"`` -> ``"First Name"``
        ``"__row_id__"`` -> ``"Row Id"``
    """
    return field_name.strip("_").replace("_", " ").title()


@dataclass
class EditCapability:
    """Everything a column needs to be edited in place.

    Attributes:
        on_update: Persists a committed value.  Called as
            ``on_update(row_id, value)``; may return an awaitable, which
            the engine schedules without awaiting.
        validator: Returns an error message for an invalid value, or
            ``None``.  Must not raise.
        edit_renderer: Opaque handle for the UI layer's input widget.
        options: Allowed values for ``select``-like columns.
    """

    on_update: Callable[[RowId, Any], Awaitable[None] | None]
    validator: Callable[[Any], str | None] | None = None
    edit_renderer: Any = None
    options: list[Any] | None = None

    def validate(self, value: Any) -> str | None:
        if self.validator is None:
            return None
        return self.validator(value)


@dataclass
class Column:
    """Description of one grid column.

    ``accessor`` is either a callable ``row -> value`` or the key used to
    read the value from a mapping row (attribute name for object rows).
    It defaults to the column ``id``.
    """

    id: str
    label: str | None = None
    accessor: Callable[[Row], Any] | str | None = None
    column_type: ColumnType = ColumnType.TEXT
    min_width: int | None = None
    max_width: int | None = None
    initial_width: int | None = None
    resizable: bool = True
    sortable: bool = True
    filterable: bool = True
    width_storage_key: str | None = None
    description: str | None = None
    view_renderer: Any = None
    edit: EditCapability | None = None

    def __post_init__(self) -> None:
        if self.label is None:
            self.label = humanize_field_name(self.id)
        self.column_type = ColumnType(self.column_type)

    def value(self, row: Row) -> Any:
        """Read this column's value from *row*."""
        if callable(self.accessor):
            return self.accessor(row)
        key = self.accessor or self.id
        if isinstance(row, Mapping):
            return row.get(key)
        return getattr(row, key, None)

    def lower_bound(self, floor: int) -> int:
        """Smallest width this column may take given the global *floor*."""
        return max(self.min_width or 0, floor)

    def clamp_width(self, width: float, floor: int) -> int:
        """Clamp *width* into ``[max(min_width, floor), max_width]``.

        A NaN or negative infinite width falls to the lower bound; a positive
        infinite one goes to ``max_width``, or to the lower bound when the
        column has no maximum.
        """
        lower = self.lower_bound(floor)
        upper = None if self.max_width is None else max(self.max_width, lower)
        if not math.isfinite(width):
            if width > 0 and upper is not None:
                return upper
            return lower
        clamped = max(lower, int(round(width)))
        if upper is not None:
            clamped = min(clamped, upper)
        return clamped


def is_editable_column(column: Column) -> bool:
    """Return True if *column* carries an edit capability."""
    return column.edit is not None


@dataclass(frozen=True)
class PageInfo:
    """Page descriptor of a paginated source.  Pages are 1-indexed."""

    current_page: int
    per_page: int
    total: int
    first_item: int | None = None
    last_item: int | None = None

    @property
    def last_page(self) -> int:
        if self.per_page <= 0:
            return 1
        return max(1, -(-self.total // self.per_page))

    @property
    def offset(self) -> int:
        """Zero-based index of the first row of the current page."""
        return (self.current_page - 1) * self.per_page


@dataclass(frozen=True)
class LoadMoreParams:
    """Inclusive index range requested from an incremental loader."""

    visible_start_index: int
    visible_stop_index: int


@dataclass
class CellEditState:
    """State of one cell that is being edited."""

    is_editing: bool = True
    pending_value: Any = None
    error_message: str | None = None


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowView:
    row_id: RowId
    index: int
    global_index: int
    height: int
    selected: bool
    style: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class ColumnView:
    column_id: str
    label: str
    column_type: ColumnType
    width: int
    pin: PinSide | None
    sort_direction: SortDirection | None
    sort_priority: int | None
    active_filter: Any
    editable: bool
    resizable: bool
    sortable: bool
    filterable: bool
    description: str | None = None


@dataclass(frozen=True)
class CellView:
    row_id: RowId
    column_id: str
    value: Any
    is_editing: bool = False
    pending_value: Any = None
    error_message: str | None = None
    save_pending: bool = False
    save_error: str | None = None


@dataclass
class GridCallbacks:
    """Optional observers of grid state changes.

    Every callback is optional.  They are invoked after the engine state
    has been updated.
    """

    on_resize_column: Callable[[str, int], Any] | None = None
    on_pin_column: Callable[[str, PinSide | None], Any] | None = None
    on_hide_column: Callable[[str], Any] | None = None
    on_show_column: Callable[[str], Any] | None = None
    on_autosize_column: Callable[[str, int], Any] | None = None
    on_row_resize: Callable[[RowId, int], Any] | None = None
    on_selection_change: Callable[[list[RowId]], Any] | None = None
    on_sort_change: Callable[[list[Any]], Any] | None = None
    on_filter_change: Callable[[Any, str], Any] | None = None
    on_page_change: Callable[[int], Any] | None = None
    on_rows_per_page_change: Callable[[int], Any] | None = None
    on_load_more_rows: Callable[[LoadMoreParams], Awaitable[Any]] | None = None
    on_save_error: Callable[[RowId, str, BaseException], Any] | None = None
    on_scroll_reset: Callable[[], Any] | None = None
