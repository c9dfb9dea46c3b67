"""Reflex state mixin driving a :class:`GridSession` from UI events.

Sessions hold callables (validators, loaders, ``on_update`` handlers) and
polars LazyFrames, none of which can be serialised into ``rx.State``.  They
live in a module-level registry keyed by the state class name and client
token; the state only carries JSON-safe ``grid_*`` vars derived from the
session after every event.

Typical usage::

    from reflex_grid_engine import GridStateMixin, scan_file

    class PeopleGrid(GridStateMixin, rx.State):
        def load(self):
            yield from self.set_grid_lazyframe(scan_file(Path("people.parquet")))

Or, for an editable in-memory grid::

    class Todos(GridStateMixin, rx.State):
        def load(self):
            session = GridSession(COLUMNS, get_row_id="id", selection_enabled=True)
            session.set_source(TODO_ROWS)
            self.set_grid_session(session)
"""

import asyncio
import json
import time
from collections.abc import Mapping, Sequence
from typing import Any

import polars as pl
import reflex as rx

from reflex_grid_engine import log
from reflex_grid_engine.config import GridSettings, get_settings
from reflex_grid_engine.exceptions import GridEngineError
from reflex_grid_engine.filters import FilterClause
from reflex_grid_engine.models import column_def_from_view
from reflex_grid_engine.polars_utils import ROW_ID_FIELD, LazyFrameRowSource
from reflex_grid_engine.session import GridSession
from reflex_grid_engine.types import Column, GridCallbacks, Row, RowId


# ---------------------------------------------------------------------------
# Module-level session registry
# ---------------------------------------------------------------------------


class _GridCache:
    """Holds a session and, for LazyFrame grids, its row source."""

    def __init__(self) -> None:
        self.session: GridSession | None = None
        self.source: LazyFrameRowSource | None = None
        self.paginated: bool = False
        self.per_page: int = get_settings().page_size
        self.pending_saves: set[asyncio.Future] = set()

    # Callbacks wired into LazyFrame-backed sessions.

    def load_page(self, page: int) -> None:
        if self.session is None or self.source is None:
            return
        rows, info = self.source.page(page, self.per_page)
        self.session.set_source(rows, page_info=info)

    def set_per_page(self, per_page: int) -> None:
        self.per_page = per_page
        self.load_page(1)

    def requery(self, *_args: Any) -> None:
        """Re-run the query after a filter or sort change and rewind."""
        if self.session is None or self.source is None:
            return
        self.source.set_query(self.session.filters.filters, self.session.filters.sorts)
        if self.paginated:
            self.load_page(1)
        else:
            self.session.set_source(
                self.source.slice(0, self.session.settings.page_size),
                total_rows=self.source.count(),
            )
            self.session.reset_scroll()


_cache_registry: dict[str, _GridCache] = {}


def _get_cache(cache_id: str) -> _GridCache:
    """Return (or create) the cache entry for *cache_id*."""
    if cache_id not in _cache_registry:
        _cache_registry[cache_id] = _GridCache()
    return _cache_registry[cache_id]


def drop_grid_cache(cache_id: str) -> None:
    """Forget a session, e.g. when its client disconnects."""
    _cache_registry.pop(cache_id, None)


def _row_to_dict(row: Row, row_id: RowId, columns: Sequence[Column]) -> dict[str, Any]:
    """Frontend copy of a window row: its own fields, every column value and its id.

    Rows may be mappings or plain objects; object rows contribute only the
    values their columns read.
    """
    data: dict[str, Any] = dict(row) if isinstance(row, Mapping) else {}
    data.update({column.id: column.value(row) for column in columns})
    data[ROW_ID_FIELD] = row_id
    return data


# ---------------------------------------------------------------------------
# Mixin
# ---------------------------------------------------------------------------


class GridStateMixin(rx.State, mixin=True):
    """Reflex state mixin exposing a grid session to the frontend.

    This is a Reflex **mixin** (``mixin=True``): every subclass gets its own
    independent set of ``grid_*`` vars, so several grids can share a page.
    Subclasses must also inherit from ``rx.State``::

        class MyGrid(GridStateMixin, rx.State):
            ...

    Event handlers that may run a polars query are generators, so the
    loading flag reaches the frontend before the query runs.
    """

    # -- Frontend state vars --
    grid_rows: list[dict[str, Any]] = []
    grid_columns: list[dict[str, Any]] = []
    grid_row_heights: dict[str, int] = {}
    grid_row_count: int = 0
    grid_loading: bool = False
    grid_loaded: bool = False
    grid_stats: str = ""
    grid_filter_summary: str = "No active filters or sorts."
    grid_filter_preset_json: str = ""
    grid_selected_ids: list[Any] = []
    grid_all_selected: bool = False
    grid_some_selected: bool = False
    grid_paginated: bool = False
    grid_page: int = 1
    grid_per_page: int = 50
    grid_last_page: int = 1
    grid_scroll_top: float = 0
    grid_total_width: int = 0
    grid_index_width: int = 0
    grid_editing: dict[str, Any] = {}
    grid_save_errors: list[str] = []

    # -- Backend-only vars (not sent to frontend) --
    _grid_cache_id: str = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _grid_cache(self) -> _GridCache:
        if not self._grid_cache_id:
            token = self.router.session.client_token or "default"
            self._grid_cache_id = f"{type(self).__name__}:{token}"  # type: ignore[assignment]
        return _get_cache(self._grid_cache_id)

    def _grid_session(self) -> GridSession | None:
        if not self._grid_cache_id:
            return None
        return _get_cache(self._grid_cache_id).session

    def set_grid_session(self, session: GridSession) -> None:
        """Drive an existing session (in-memory rows, editable columns...)."""
        cache = self._grid_cache()
        cache.session = session
        cache.source = None
        cache.paginated = session.rows.is_paginated
        self.grid_loaded = True  # type: ignore[assignment]
        self._sync_grid_vars()

    def set_grid_lazyframe(
        self,
        lf: pl.LazyFrame,
        descriptions: dict[str, str] | None = None,
        *,
        paginated: bool = False,
        per_page: int | None = None,
        selection_enabled: bool = True,
        settings: GridSettings | None = None,
    ):
        """Browse a LazyFrame with server-side filtering, sorting and paging.

        This is a **generator** -- use ``yield from self.set_grid_lazyframe(...)``
        inside your event handler so the loading state is sent first.

        Args:
            lf: The polars LazyFrame to browse.
            descriptions: Optional ``{column: description}`` header tooltips.
            paginated: Page through the data instead of growing the window
                while scrolling.
            per_page: Rows per page (paginated) or per chunk (scrolling);
                defaults to the configured page size.
            selection_enabled: Show the checkbox gutter.
            settings: Engine policy; defaults to :func:`get_settings`.
        """
        self.grid_loading = True  # type: ignore[assignment]
        self.grid_stats = "Preparing LazyFrame..."  # type: ignore[assignment]
        yield

        t0 = time.perf_counter()
        settings = settings or get_settings()
        if per_page is not None:
            settings = settings.model_copy(update={"page_size": per_page})

        cache = self._grid_cache()
        source = LazyFrameRowSource(lf, descriptions)
        cache.source = source
        cache.paginated = paginated
        cache.per_page = settings.page_size
        cache.session = GridSession(
            source.columns(),
            get_row_id=ROW_ID_FIELD,
            settings=settings,
            selection_enabled=selection_enabled,
            callbacks=GridCallbacks(
                on_sort_change=cache.requery,
                on_filter_change=cache.requery,
                on_page_change=cache.load_page,
                on_rows_per_page_change=cache.set_per_page,
                on_load_more_rows=None if paginated else source.load_more,
            ),
        )
        if paginated:
            cache.load_page(1)
        else:
            cache.session.set_source(source.slice(0, settings.page_size), total_rows=source.count())

        self.grid_loaded = True  # type: ignore[assignment]
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()
        log.info(
            f"[GridState] {type(self).__name__}: {source.count():,} rows, "
            f"{len(source.schema)} columns ({(time.perf_counter() - t0) * 1000:.1f}ms)"
        )

    # ------------------------------------------------------------------
    # Column events
    # ------------------------------------------------------------------

    def handle_grid_column_resize(self, column_id: str, width: float) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.resize_column(column_id, width)
        self._sync_grid_vars()

    def handle_grid_column_autosize(self, column_id: str) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.autosize_column(column_id)
        self._sync_grid_vars()

    def handle_grid_column_pin(self, column_id: str, side: str) -> None:
        """Pin to ``"left"``/``"right"``; an empty side unpins."""
        session = self._grid_session()
        if session is None:
            return
        session.pin_column(column_id, side or None)
        self._sync_grid_vars()

    def handle_grid_column_hide(self, column_id: str) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.hide_column(column_id)
        self._sync_grid_vars()

    def handle_grid_column_show(self, column_id: str) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.show_column(column_id)
        self._sync_grid_vars()

    def handle_grid_container_resize(self, width: float) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.scale_to_container(width)
        self._sync_grid_vars()

    # ------------------------------------------------------------------
    # Sort / filter events
    # ------------------------------------------------------------------

    def handle_grid_sort(self, column_id: str):
        """Cycle a column's sort and rewind to the first rows."""
        session = self._grid_session()
        if session is None:
            return
        self.grid_loading = True  # type: ignore[assignment]
        self.grid_stats = "Sorting..."  # type: ignore[assignment]
        yield

        try:
            session.toggle_sort(column_id)
        except GridEngineError as exc:
            log.warn(f"[GridState] sort rejected: {exc}")
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    def handle_grid_filter(self, column_id: str, clause: dict[str, Any]):
        """Set a column filter from its JSON form; an empty dict clears it.

        The clause dict has the shape produced by :meth:`FilterClause.to_dict`
        (``column_id`` may be omitted).
        """
        session = self._grid_session()
        if session is None:
            return
        self.grid_loading = True  # type: ignore[assignment]
        self.grid_stats = "Filtering..."  # type: ignore[assignment]
        yield

        try:
            parsed = FilterClause.from_dict({**clause, "column_id": column_id}) if clause else None
            session.set_filter(column_id, parsed)
        except GridEngineError as exc:
            log.warn(f"[GridState] filter rejected: {exc}")
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    def clear_grid_filters(self):
        session = self._grid_session()
        if session is None:
            return
        self.grid_loading = True  # type: ignore[assignment]
        self.grid_stats = "Clearing filters..."  # type: ignore[assignment]
        yield

        session.clear_filters()
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    def download_grid_preset(self) -> rx.event.EventSpec | None:
        """Download the current filters and sorts as ``filter_preset.json``."""
        session = self._grid_session()
        if session is None:
            return None
        return rx.download(  # type: ignore[return-value]
            data=session.filters.to_preset_json(),
            filename="filter_preset.json",
        )

    async def handle_grid_preset_upload(self, files: list[rx.UploadFile]):
        """Apply an uploaded JSON filter/sort preset."""
        session = self._grid_session()
        if session is None or not files:
            return
        self.grid_loading = True  # type: ignore[assignment]
        self.grid_stats = "Applying preset..."  # type: ignore[assignment]
        yield

        content = await files[0].read()
        text = content.decode("utf-8") if isinstance(content, bytes) else content
        try:
            session.filters.load_preset(text)
        except GridEngineError as exc:
            log.warn(f"[GridState] preset rejected: {exc}")
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    # ------------------------------------------------------------------
    # Window events
    # ------------------------------------------------------------------

    async def handle_grid_scroll(self, scroll_top: float, visible_start: int, visible_stop: int):
        """Record the scroll position; load the next chunk near the end."""
        session = self._grid_session()
        if session is None:
            return
        t0 = time.perf_counter()
        before = len(session.rows.window)
        loaded = await session.handle_scroll(scroll_top, visible_start, visible_stop)
        if loaded:
            log.debug(
                f"[GridState] scroll chunk: {before} -> {len(session.rows.window)} rows, "
                f"elapsed={(time.perf_counter() - t0) * 1000:.1f}ms"
            )
        self._sync_grid_vars()

    def handle_grid_page_change(self, page: int):
        session = self._grid_session()
        if session is None:
            return
        self.grid_loading = True  # type: ignore[assignment]
        yield

        session.change_page(page)
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    def handle_grid_rows_per_page_change(self, per_page: int):
        session = self._grid_session()
        if session is None:
            return
        self.grid_loading = True  # type: ignore[assignment]
        yield

        session.change_rows_per_page(per_page)
        self.grid_loading = False  # type: ignore[assignment]
        self._sync_grid_vars()

    # ------------------------------------------------------------------
    # Row events
    # ------------------------------------------------------------------

    def handle_grid_row_toggle(self, row_id: Any) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.toggle_row_selection(row_id)
        self._sync_grid_vars()

    def handle_grid_toggle_all(self, checked: bool) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.toggle_all_rows_selection(checked)
        self._sync_grid_vars()

    def clear_grid_selection(self) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.clear_selection()
        self._sync_grid_vars()

    def handle_grid_row_resize(self, row_id: Any, height: float) -> None:
        session = self._grid_session()
        if session is None:
            return
        session.resize_row(row_id, height)
        self._sync_grid_vars()

    # ------------------------------------------------------------------
    # Edit events
    # ------------------------------------------------------------------

    def handle_grid_edit_begin(self, row_id: Any, column_id: str) -> None:
        session = self._grid_session()
        if session is None:
            return
        try:
            session.begin_edit(row_id, column_id)
        except GridEngineError as exc:
            log.warn(f"[GridState] edit rejected: {exc}")
        self._sync_grid_vars()

    def handle_grid_edit_change(self, value: Any) -> None:
        session = self._grid_session()
        if session is None or session.edits.active_cell is None:
            return
        row_id, column_id = session.edits.active_cell
        session.change_value(row_id, column_id, value)
        self._sync_grid_vars()

    def handle_grid_edit_commit(self):
        """Commit the active cell.

        The cell leaves edit mode at once.  An asynchronous save keeps
        running after this handler returns; :meth:`refresh_grid_after_saves`
        picks up its outcome, so further events (and further saves) are
        not held back while it is in flight.
        """
        session = self._grid_session()
        if session is None or session.edits.active_cell is None:
            return None
        row_id, column_id = session.edits.active_cell
        pending = session.commit_edit(row_id, column_id)
        self._sync_grid_vars()
        if pending is None:
            return None

        cache = self._grid_cache()
        cache.pending_saves.add(pending)
        pending.add_done_callback(cache.pending_saves.discard)
        return type(self).refresh_grid_after_saves

    @rx.event(background=True)
    async def refresh_grid_after_saves(self):
        """Wait for in-flight saves without the state lock, then re-sync."""
        async with self:
            pending = set(self._grid_cache().pending_saves)
        if not pending:
            return
        # Failures are recorded by the session and surface in grid_save_errors.
        await asyncio.wait(pending)
        async with self:
            self._sync_grid_vars()

    def handle_grid_edit_cancel(self) -> None:
        """Escape: cancel whichever cell is being edited."""
        session = self._grid_session()
        if session is None:
            return
        session.cancel_active_edit()
        self._sync_grid_vars()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _sync_grid_vars(self) -> None:
        """Copy the session's derived views into the frontend vars."""
        session = self._grid_session()
        if session is None:
            return

        rows = session.rows
        columns = session.columns.columns
        self.grid_rows = [  # type: ignore[assignment]
            _row_to_dict(row, rows.get_row_id(row), columns) for row in rows.window
        ]
        self.grid_columns = [  # type: ignore[assignment]
            column_def_from_view(view, session.columns.get(view.column_id)).dict()
            for view in session.column_views()
        ]
        self.grid_row_heights = {str(rid): h for rid, h in rows.heights.items()}  # type: ignore[assignment]
        self.grid_row_count = rows.total_rows  # type: ignore[assignment]
        self.grid_stats = session.footer_summary()  # type: ignore[assignment]
        self.grid_filter_summary = session.filters.describe()  # type: ignore[assignment]
        preset = session.filters.to_preset()
        has_content = bool(preset["filter_model"]) or bool(preset["sort_model"])
        self.grid_filter_preset_json = (  # type: ignore[assignment]
            json.dumps(preset, indent=2, ensure_ascii=False) if has_content else ""
        )

        self.grid_selected_ids = rows.selected_row_ids  # type: ignore[assignment]
        all_selected = rows.all_selected
        self.grid_all_selected = all_selected is True  # type: ignore[assignment]
        self.grid_some_selected = all_selected is None  # type: ignore[assignment]

        info = rows.page_info
        self.grid_paginated = info is not None  # type: ignore[assignment]
        if info is not None:
            self.grid_page = info.current_page  # type: ignore[assignment]
            self.grid_per_page = info.per_page  # type: ignore[assignment]
            self.grid_last_page = info.last_page  # type: ignore[assignment]
        else:
            self.grid_per_page = session.settings.page_size  # type: ignore[assignment]
        self.grid_scroll_top = session.scroll_top  # type: ignore[assignment]
        self.grid_total_width = session.total_width  # type: ignore[assignment]
        self.grid_index_width = session.index_column_width  # type: ignore[assignment]

        editing: dict[str, Any] = {}
        if session.edits.active_cell is not None:
            row_id, column_id = session.edits.active_cell
            state = session.edits.state(row_id, column_id)
            if state is not None:
                editing = {
                    "row_id": row_id,
                    "column_id": column_id,
                    "value": state.pending_value,
                    "error": state.error_message or "",
                }
        self.grid_editing = editing  # type: ignore[assignment]
        self.grid_save_errors = [  # type: ignore[assignment]
            f"{row_id}:{column_id}: {message}"
            for (row_id, column_id), message in session.edits.save_errors.items()
        ]
