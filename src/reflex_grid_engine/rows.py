"""Row registry: the data window, row heights and row selection.

The registry runs in one of two mutually exclusive modes, chosen by the
source it is given:

* **paginated**: the source comes with a :class:`PageInfo`; the window is
  exactly the rows of the current page and scrolling never loads more.
* **incremental**: the window starts with the first ``page_size`` rows and
  grows as the user scrolls near its end, fetching more rows through the
  ``load_more_rows`` coroutine.  At most one load is in flight.
"""

import math
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any

from reflex_grid_engine import log
from reflex_grid_engine.config import GridSettings, get_settings
from reflex_grid_engine.types import LoadMoreParams, PageInfo, Row, RowId


RowLoader = Callable[[LoadMoreParams], Awaitable[Iterable[Row] | None]]


def row_id_getter(get_row_id: Callable[[Row], RowId] | str) -> Callable[[Row], RowId]:
    """Normalize a row-id accessor; a string is read as a mapping key."""
    if callable(get_row_id):
        return get_row_id
    key = get_row_id

    def _get(row: Row) -> RowId:
        return row[key]

    return _get


class RowRegistry:
    """Owns the data window, per-row heights and the selected row ids.

    Args:
        get_row_id: Callable returning a row's id, or the key holding it.
        settings: Height and paging policy; defaults to :func:`get_settings`.
        load_more_rows: Coroutine function fetching the rows of a
            :class:`LoadMoreParams` range.  It may return the new rows, or
            return ``None`` after extending the source itself through
            :meth:`append_rows`.  Without it the whole source is the window.
        selected_row_ids: Externally controlled selection.  When given,
            selection changes are only reported through
            ``on_selection_change`` and the caller feeds the new ids back
            with :meth:`set_controlled_selection`.
    """

    def __init__(
        self,
        get_row_id: Callable[[Row], RowId] | str = "id",
        *,
        settings: GridSettings | None = None,
        load_more_rows: RowLoader | None = None,
        selected_row_ids: Iterable[RowId] | None = None,
        on_row_resize: Callable[[RowId, int], Any] | None = None,
        on_selection_change: Callable[[list[RowId]], Any] | None = None,
    ) -> None:
        self.get_row_id = row_id_getter(get_row_id)
        self.settings = settings or get_settings()
        self.load_more_rows = load_more_rows
        self.on_row_resize = on_row_resize
        self.on_selection_change = on_selection_change

        self._source: list[Row] = []
        self._window_length = 0
        self._page_info: PageInfo | None = None
        self._total_rows: int | None = None
        self.is_loading = False
        self._is_loading_more = False

        self._heights: dict[RowId, int] = {}
        self._selected: list[RowId] = []
        self._controlled: list[RowId] | None = (
            list(selected_row_ids) if selected_row_ids is not None else None
        )

    # ------------------------------------------------------------------
    # Source and window
    # ------------------------------------------------------------------

    def set_source(
        self,
        rows: Sequence[Row],
        *,
        is_loading: bool = False,
        page_info: PageInfo | None = None,
        total_rows: int | None = None,
    ) -> None:
        """Replace the source rows and reset the window."""
        self._source = list(rows)
        self.is_loading = is_loading
        self._page_info = page_info
        self._total_rows = total_rows
        if page_info is not None or self.load_more_rows is None:
            self._window_length = len(self._source)
        else:
            self._window_length = min(self.settings.page_size, len(self._source))
        self._sync_heights()
        log.debug(
            f"[RowRegistry] source replaced: {len(self._source)} row(s), "
            f"window={self._window_length}, mode={'paginated' if self.is_paginated else 'incremental'}"
        )

    def append_rows(self, rows: Iterable[Row]) -> None:
        """Extend the source without touching the current window."""
        added = list(rows)
        self._source.extend(added)
        if self.load_more_rows is None and self._page_info is None:
            self._window_length = len(self._source)
            self._sync_heights()

    @property
    def is_paginated(self) -> bool:
        return self._page_info is not None

    @property
    def page_info(self) -> PageInfo | None:
        return self._page_info

    @property
    def is_loading_more(self) -> bool:
        return self._is_loading_more

    @property
    def window(self) -> list[Row]:
        """The materialized rows, in display order."""
        return self._source[: self._window_length]

    @property
    def window_ids(self) -> list[RowId]:
        return [self.get_row_id(row) for row in self.window]

    @property
    def total_rows(self) -> int:
        """Best known size of the full data set."""
        if self._page_info is not None:
            return self._page_info.total
        if self._total_rows is not None:
            return self._total_rows
        return len(self._source)

    def global_index(self, index: int) -> int:
        """1-based row number of the window row at *index*, across pages."""
        if self._page_info is not None:
            return self._page_info.offset + index + 1
        return index + 1

    def find_row(self, row_id: RowId) -> Row | None:
        for row in self.window:
            if self.get_row_id(row) == row_id:
                return row
        return None

    async def load_more_rows_if_needed(self, visible_start_index: int, visible_stop_index: int) -> bool:
        """Fetch the next chunk when the visible range nears the window end.

        No-op in paginated mode, without a loader, while the source is
        loading, while another load is in flight, or once every row of a
        known total is materialized.

        Returns:
            True if a load was performed.
        """
        if self._page_info is not None:
            return False
        if self.load_more_rows is None or self._is_loading_more or self.is_loading:
            return False

        length = self._window_length
        if self._total_rows is not None and length >= self._total_rows:
            return False
        threshold_index = min(length - 1, visible_stop_index + self.settings.load_more_threshold)
        if threshold_index < length - 1:
            return False

        params = LoadMoreParams(
            visible_start_index=length,
            visible_stop_index=min(length + self.settings.page_size - 1, self.total_rows - 1),
        )
        if params.visible_stop_index < params.visible_start_index:
            # Total unknown: ask for a full page.
            params = LoadMoreParams(length, length + self.settings.page_size - 1)

        self._is_loading_more = True
        log.debug(f"[RowRegistry] loading rows {params.visible_start_index}..{params.visible_stop_index}")
        try:
            fetched = await self.load_more_rows(params)
            if fetched is not None:
                self._source.extend(fetched)
            self._window_length = max(
                self._window_length,
                min(len(self._source), params.visible_stop_index + 1),
            )
            self._sync_heights()
        finally:
            self._is_loading_more = False
        log.debug(f"[RowRegistry] window grown to {self._window_length} row(s)")
        return True

    # ------------------------------------------------------------------
    # Heights
    # ------------------------------------------------------------------

    def _sync_heights(self) -> None:
        ids = self.window_ids
        current = set(ids)
        for stale in [rid for rid in self._heights if rid not in current]:
            del self._heights[stale]
        for rid in ids:
            self._heights.setdefault(rid, self.settings.default_row_height)

    def row_height(self, row_id: RowId) -> int:
        return self._heights.get(row_id, self.settings.default_row_height)

    @property
    def heights(self) -> dict[RowId, int]:
        return dict(self._heights)

    def resize_row_height(self, row_id: RowId, height: float) -> int:
        """Set a row height, never below the minimum row height.

        Heights that are not finite fall back to the minimum row height.
        """
        floor = self.settings.min_row_height
        applied = max(int(round(height)), floor) if math.isfinite(height) else floor
        self._heights[row_id] = applied
        log.debug(f"[RowRegistry] row {row_id!r} height -> {applied}")
        if self.on_row_resize is not None:
            self.on_row_resize(row_id, applied)
        return applied

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_row_ids(self) -> list[RowId]:
        if self._controlled is not None:
            return list(self._controlled)
        return list(self._selected)

    def set_controlled_selection(self, row_ids: Iterable[RowId] | None) -> None:
        """Feed an externally owned selection back in (``None`` releases it)."""
        self._controlled = list(row_ids) if row_ids is not None else None

    def _apply_selection(self, row_ids: list[RowId]) -> None:
        if self._controlled is None:
            self._selected = row_ids
        log.debug(f"[RowRegistry] selection: {len(row_ids)} row(s)")
        if self.on_selection_change is not None:
            self.on_selection_change(list(row_ids))

    def is_selected(self, row_id: RowId) -> bool:
        return row_id in self.selected_row_ids

    def toggle_row(self, row_id: RowId) -> None:
        current = self.selected_row_ids
        if row_id in current:
            current.remove(row_id)
        else:
            current.append(row_id)
        self._apply_selection(current)

    def toggle_all_on_current_window(self, checked: bool) -> None:
        """Select or deselect every row of the window.

        Selections outside the window (other pages) are preserved.
        """
        current = self.selected_row_ids
        window_ids = self.window_ids
        if checked:
            chosen = set(current)
            current.extend(rid for rid in window_ids if rid not in chosen)
        else:
            on_window = set(window_ids)
            current = [rid for rid in current if rid not in on_window]
        self._apply_selection(current)

    def clear_all(self) -> None:
        self._apply_selection([])

    @property
    def all_selected(self) -> bool | None:
        """Header checkbox state: True, False, or None when indeterminate."""
        window_ids = self.window_ids
        if not window_ids:
            return False
        selected = set(self.selected_row_ids)
        hits = sum(1 for rid in window_ids if rid in selected)
        if hits == len(window_ids):
            return True
        return None if hits else False
