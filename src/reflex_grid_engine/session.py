"""Grid orchestrator: one :class:`GridSession` per rendered grid.

A session composes the four state owners (columns, rows, filter/sort,
cell edits), accepts the data source, routes UI intents to the owner of
the affected state and derives the read-only views a renderer needs.  It
holds no layout or selection state of its own apart from the scroll
position.

Typical usage::

    session = GridSession(
        [Column("name"), Column("age", column_type="number")],
        get_row_id="id",
        callbacks=GridCallbacks(on_load_more_rows=fetch_rows),
    )
    session.set_source(first_rows, total_rows=10_000)
    await session.handle_scroll(0, 0, 40)
"""

import asyncio
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from reflex_grid_engine import log
from reflex_grid_engine.columns import ColumnRegistry, ContentMeasurer
from reflex_grid_engine.config import GridSettings, get_settings
from reflex_grid_engine.editing import CellEditLifecycle
from reflex_grid_engine.exceptions import (
    ColumnCapabilityError,
    InvalidFilterClauseError,
    UnknownRowError,
)
from reflex_grid_engine.filters import (
    FilterClause,
    FilterSortModel,
    SortClause,
    family_for_column_type,
    filter_rows,
    sort_rows,
)
from reflex_grid_engine.rows import RowRegistry
from reflex_grid_engine.storage import WidthStore
from reflex_grid_engine.types import (
    CellView,
    Column,
    ColumnView,
    GridCallbacks,
    PageInfo,
    PinSide,
    Row,
    RowId,
    RowView,
    is_editable_column,
)


class GridSession:
    """Interaction state of one grid.

    Args:
        columns: Column descriptors in display order.
        get_row_id: Row id accessor (callable or mapping key).
        settings: Engine policy; defaults to :func:`get_settings`.
        callbacks: Observers of state changes and the incremental loader.
        width_store: Persistence for columns with a ``width_storage_key``.
        measurer: Measures rendered content for column autosizing.
        get_row_style: ``(row, visual_index) -> style`` override.
        selection_enabled: Whether the checkbox gutter is shown.
        hidden: Column ids hidden initially.
        pinned: Initial pin sides.
        selected_row_ids: Externally controlled selection.
    """

    def __init__(
        self,
        columns: Sequence[Column],
        *,
        get_row_id: Callable[[Row], RowId] | str = "id",
        settings: GridSettings | None = None,
        callbacks: GridCallbacks | None = None,
        width_store: WidthStore | None = None,
        measurer: ContentMeasurer | None = None,
        get_row_style: Callable[[Row, int], Mapping[str, Any] | None] | None = None,
        selection_enabled: bool = False,
        hidden: Iterable[str] = (),
        pinned: Mapping[str, PinSide | str] | None = None,
        selected_row_ids: Iterable[RowId] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.callbacks = callbacks or GridCallbacks()
        cb = self.callbacks

        self.columns = ColumnRegistry(
            columns,
            settings=self.settings,
            width_store=width_store,
            measurer=measurer,
            hidden=hidden,
            pinned=pinned,
            on_resize_column=cb.on_resize_column,
            on_pin_column=cb.on_pin_column,
            on_hide_column=cb.on_hide_column,
            on_show_column=cb.on_show_column,
            on_autosize_column=cb.on_autosize_column,
        )
        self.rows = RowRegistry(
            get_row_id,
            settings=self.settings,
            load_more_rows=cb.on_load_more_rows,
            selected_row_ids=selected_row_ids,
            on_row_resize=cb.on_row_resize,
            on_selection_change=cb.on_selection_change,
        )
        self.filters = FilterSortModel(
            on_filter_change=cb.on_filter_change,
            on_sort_change=cb.on_sort_change,
        )
        self.edits = CellEditLifecycle(on_save_error=cb.on_save_error)

        self.get_row_style = get_row_style
        self.selection_enabled = selection_enabled
        self.scroll_top: float = 0

    # ------------------------------------------------------------------
    # Source
    # ------------------------------------------------------------------

    def set_source(
        self,
        rows: Sequence[Row],
        *,
        is_loading: bool = False,
        page_info: PageInfo | None = None,
        total_rows: int | None = None,
    ) -> None:
        """Replace the rows shown by the grid.

        Moving to another page resets the scroll position to the top.
        Edit state of rows that left the window and every save error mark
        are dropped.
        """
        previous = self.rows.page_info
        self.rows.set_source(rows, is_loading=is_loading, page_info=page_info, total_rows=total_rows)
        self.edits.prune(self.rows.window_ids)
        self.edits.clear_save_errors()

        if page_info is not None and (previous is None or previous.current_page != page_info.current_page):
            self.reset_scroll()

    def append_rows(self, rows: Iterable[Row]) -> None:
        self.rows.append_rows(rows)

    def set_loading(self, is_loading: bool) -> None:
        self.rows.is_loading = is_loading

    def reset_scroll(self) -> None:
        self.scroll_top = 0
        if self.callbacks.on_scroll_reset is not None:
            self.callbacks.on_scroll_reset()

    async def handle_scroll(self, scroll_top: float, visible_start_index: int, visible_stop_index: int) -> bool:
        """Record the scroll position and load more rows when near the end."""
        self.scroll_top = scroll_top
        return await self.rows.load_more_rows_if_needed(visible_start_index, visible_stop_index)

    # ------------------------------------------------------------------
    # Pagination intents
    # ------------------------------------------------------------------

    def change_page(self, page: int) -> None:
        """Ask the source for another (1-indexed) page."""
        info = self.rows.page_info
        if info is not None and not 1 <= page <= info.last_page:
            log.warn(f"[GridSession] page {page} out of range 1..{info.last_page}")
            return
        if self.callbacks.on_page_change is not None:
            self.callbacks.on_page_change(page)

    def change_rows_per_page(self, per_page: int) -> None:
        if per_page < 1:
            log.warn(f"[GridSession] ignoring rows per page {per_page}")
            return
        if self.callbacks.on_rows_per_page_change is not None:
            self.callbacks.on_rows_per_page_change(per_page)

    # ------------------------------------------------------------------
    # Column intents
    # ------------------------------------------------------------------

    def resize_column(self, column_id: str, width: float) -> int | None:
        return self.columns.resize(column_id, width)

    def pin_column(self, column_id: str, side: PinSide | str | None) -> None:
        self.columns.pin(column_id, side)

    def hide_column(self, column_id: str) -> None:
        self.columns.hide(column_id)

    def show_column(self, column_id: str) -> None:
        self.columns.show(column_id)

    def autosize_column(self, column_id: str) -> int | None:
        return self.columns.autosize(column_id)

    def fit_to_container(self, container_width: float) -> dict[str, int]:
        return self.columns.fit_to_container(container_width, self.gutter_width)

    def scale_to_container(self, container_width: float) -> dict[str, int]:
        return self.columns.scale_to_container(container_width, self.gutter_width)

    # ------------------------------------------------------------------
    # Sort and filter intents
    # ------------------------------------------------------------------

    def toggle_sort(self, column_id: str) -> list[SortClause]:
        """Cycle the sort of a column.

        Raises:
            UnknownColumnError: If the column does not exist.
            ColumnCapabilityError: If the column is not sortable.
        """
        column = self.columns.column(column_id)
        if not column.sortable:
            raise ColumnCapabilityError(column_id, "sortable")
        return self.filters.toggle_sort(column_id)

    def set_filter(self, column_id: str, clause: FilterClause | None) -> None:
        """Set or clear the filter of a column.

        Raises:
            UnknownColumnError: If the column does not exist.
            ColumnCapabilityError: If the column is not filterable.
            InvalidFilterClauseError: If the clause family does not match
                the column type.
        """
        column = self.columns.column(column_id)
        if not column.filterable:
            raise ColumnCapabilityError(column_id, "filterable")
        if clause is not None and clause.family is not family_for_column_type(column.column_type):
            raise InvalidFilterClauseError(
                "Filter family does not match column type",
                column_id=column_id,
                family=clause.family.value,
                column_type=column.column_type.value,
            )
        self.filters.set_filter(column_id, clause)

    def clear_filter(self, column_id: str) -> None:
        self.filters.clear_filter(column_id)

    def clear_filters(self) -> None:
        self.filters.clear_filters()

    def clear_sort(self) -> None:
        self.filters.clear_sort()

    def apply_filters_and_sorts(self, rows: Sequence[Row]) -> list[Row]:
        """Filter and sort *rows* in memory with the active clauses."""
        columns = self.columns.columns
        filtered = filter_rows(rows, self.filters.filters, columns)
        return sort_rows(filtered, self.filters.sorts, columns)

    # ------------------------------------------------------------------
    # Row intents
    # ------------------------------------------------------------------

    def resize_row(self, row_id: RowId, height: float) -> int:
        return self.rows.resize_row_height(row_id, height)

    def toggle_row_selection(self, row_id: RowId) -> None:
        self.rows.toggle_row(row_id)

    def toggle_all_rows_selection(self, checked: bool) -> None:
        self.rows.toggle_all_on_current_window(checked)

    def clear_selection(self) -> None:
        self.rows.clear_all()

    # ------------------------------------------------------------------
    # Edit intents
    # ------------------------------------------------------------------

    def _require_row(self, row_id: RowId) -> Row:
        row = self.rows.find_row(row_id)
        if row is None:
            raise UnknownRowError(row_id)
        return row

    def begin_edit(self, row_id: RowId, column_id: str) -> bool:
        """Start editing a cell with its current value.

        Raises:
            UnknownRowError: If the row is not in the window.
            UnknownColumnError: If the column does not exist.
        """
        column = self.columns.column(column_id)
        row = self._require_row(row_id)
        return self.edits.begin_edit(row_id, column, column.value(row))

    def change_value(self, row_id: RowId, column_id: str, value: Any) -> str | None:
        return self.edits.change_value(row_id, column_id, value)

    def commit_edit(self, row_id: RowId, column_id: str) -> asyncio.Future | None:
        row = self.rows.find_row(row_id)
        column = self.columns.get(column_id)
        if row is None or column is None:
            return self.edits.commit(row_id, column_id)
        return self.edits.commit(row_id, column_id, column.value(row))

    def cancel_edit(self, row_id: RowId, column_id: str) -> None:
        self.edits.cancel(row_id, column_id)

    def cancel_active_edit(self) -> bool:
        return self.edits.cancel_active_edit()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def row_view(self, index: int) -> RowView:
        """View of the window row at *index* (0-based, visual order)."""
        row = self.rows.window[index]
        row_id = self.rows.get_row_id(row)
        style = self.get_row_style(row, index) if self.get_row_style is not None else None
        return RowView(
            row_id=row_id,
            index=index,
            global_index=self.rows.global_index(index),
            height=self.rows.row_height(row_id),
            selected=self.rows.is_selected(row_id),
            style=style,
        )

    def row_views(self) -> list[RowView]:
        return [self.row_view(i) for i in range(len(self.rows.window))]

    def column_view(self, column_id: str) -> ColumnView:
        column = self.columns.column(column_id)
        return ColumnView(
            column_id=column.id,
            label=column.label or column.id,
            column_type=column.column_type,
            width=self.columns.width(column.id),
            pin=self.columns.pin_side(column.id),
            sort_direction=self.filters.get_sort_direction(column.id),
            sort_priority=self.filters.get_sort_priority(column.id),
            active_filter=self.filters.get_active_filter(column.id),
            editable=is_editable_column(column),
            resizable=column.resizable,
            sortable=column.sortable,
            filterable=column.filterable,
            description=column.description,
        )

    def column_views(self) -> list[ColumnView]:
        """Views of the visible columns, in display order."""
        return [self.column_view(c.id) for c in self.columns.visible_columns]

    def cell_view(self, row: Row, column_id: str) -> CellView:
        column = self.columns.column(column_id)
        row_id = self.rows.get_row_id(row)
        state = self.edits.state(row_id, column_id)
        return CellView(
            row_id=row_id,
            column_id=column_id,
            value=column.value(row),
            is_editing=state is not None and state.is_editing,
            pending_value=state.pending_value if state is not None else None,
            error_message=state.error_message if state is not None else None,
            save_pending=self.edits.save_pending(row_id, column_id),
            save_error=self.edits.save_error(row_id, column_id),
        )

    @property
    def index_column_width(self) -> int:
        """Width of the row-number gutter, wide enough for the largest number."""
        digits = len(str(max(self.rows.total_rows, 1)))
        s = self.settings
        return max(s.min_column_width, digits * s.index_digit_width + s.index_padding)

    @property
    def gutter_width(self) -> int:
        width = self.index_column_width
        if self.selection_enabled:
            width += self.settings.selection_column_width
        return width

    @property
    def total_width(self) -> int:
        return self.columns.visible_width + self.gutter_width

    @property
    def col_span(self) -> int:
        """Cells an empty-state row must span."""
        return len(self.columns.visible_columns) + 1 + (1 if self.selection_enabled else 0)

    def footer_summary(self) -> str:
        loaded = len(self.rows.window)
        parts = [f"{loaded:,} of {self.rows.total_rows:,} rows"]
        info = self.rows.page_info
        if info is not None:
            parts.append(f"page {info.current_page}/{info.last_page}")
        parts.append(f"{len(self.columns.visible_columns)} columns")
        selected = len(self.rows.selected_row_ids)
        if selected:
            parts.append(f"{selected:,} selected")
        return " | ".join(parts)
