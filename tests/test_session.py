"""Tests for the grid orchestrator."""

import pytest

from reflex_grid_engine.exceptions import (
    ColumnCapabilityError,
    InvalidFilterClauseError,
    UnknownColumnError,
    UnknownRowError,
)
from reflex_grid_engine.filters import FilterClause, NumberOperation, TextOperation
from reflex_grid_engine.session import GridSession
from reflex_grid_engine.types import (
    Column,
    ColumnType,
    EditCapability,
    GridCallbacks,
    LoadMoreParams,
    PageInfo,
    PinSide,
    SortDirection,
)


def _rows(start: int, stop: int) -> list[dict]:
    return [{"id": i, "name": f"user {i}", "age": 20 + i % 50} for i in range(start, stop)]


def _columns() -> list[Column]:
    return [Column("id", sortable=False), Column("name"), Column("age", column_type=ColumnType.NUMBER)]


@pytest.fixture
def session(settings) -> GridSession:
    grid = GridSession(_columns(), settings=settings)
    grid.set_source(_rows(0, 3))
    return grid


class TestSource:
    def test_page_change_resets_scroll(self, settings) -> None:
        resets = []
        grid = GridSession(_columns(), settings=settings, callbacks=GridCallbacks(on_scroll_reset=lambda: resets.append(1)))
        grid.set_source(_rows(0, 10), page_info=PageInfo(1, 10, 25))
        assert len(resets) == 1

        grid.scroll_top = 300
        grid.set_source(_rows(0, 10), page_info=PageInfo(1, 10, 25))
        assert grid.scroll_top == 300
        assert len(resets) == 1

        grid.set_source(_rows(10, 20), page_info=PageInfo(2, 10, 25))
        assert grid.scroll_top == 0
        assert len(resets) == 2

    def test_change_page_checks_range(self, settings) -> None:
        pages = []
        grid = GridSession(_columns(), settings=settings, callbacks=GridCallbacks(on_page_change=pages.append))
        grid.set_source(_rows(0, 10), page_info=PageInfo(1, 10, 25))
        grid.change_page(4)
        grid.change_page(0)
        grid.change_page(3)
        assert pages == [3]

    def test_change_rows_per_page(self, settings) -> None:
        sizes = []
        grid = GridSession(_columns(), settings=settings, callbacks=GridCallbacks(on_rows_per_page_change=sizes.append))
        grid.change_rows_per_page(0)
        grid.change_rows_per_page(25)
        assert sizes == [25]

    @pytest.mark.asyncio
    async def test_scroll_loads_more(self, settings) -> None:
        requests = []

        async def load(params: LoadMoreParams) -> list[dict]:
            requests.append(params)
            return _rows(params.visible_start_index, params.visible_stop_index + 1)

        grid = GridSession(_columns(), settings=settings, callbacks=GridCallbacks(on_load_more_rows=load))
        grid.set_source(_rows(0, 50), total_rows=200)

        assert await grid.handle_scroll(1200.0, 20, 35) is True
        assert grid.scroll_top == 1200.0
        assert requests == [LoadMoreParams(50, 99)]
        assert len(grid.row_views()) == 100
        assert await grid.handle_scroll(1300.0, 22, 37) is False


class TestColumnIntents:
    def test_capabilities_are_enforced(self, session) -> None:
        with pytest.raises(ColumnCapabilityError) as info:
            session.toggle_sort("id")
        assert info.value.capability == "sortable"
        with pytest.raises(UnknownColumnError):
            session.toggle_sort("missing")

    def test_filter_family_must_match_column(self, session) -> None:
        with pytest.raises(InvalidFilterClauseError):
            session.set_filter("age", FilterClause("age", TextOperation.CONTAINS, "3"))
        session.set_filter("age", FilterClause("age", NumberOperation.GREATER_THAN, 3))
        assert session.column_view("age").active_filter is not None

    def test_unfilterable_column(self, settings) -> None:
        grid = GridSession([Column("name", filterable=False)], settings=settings)
        with pytest.raises(ColumnCapabilityError):
            grid.set_filter("name", FilterClause("name", TextOperation.IS_EMPTY))

    def test_column_views_follow_layout(self, session) -> None:
        session.pin_column("age", PinSide.LEFT)
        session.toggle_sort("name")
        session.hide_column("id")
        views = session.column_views()
        assert [v.column_id for v in views] == ["name", "age"]
        assert views[1].pin is PinSide.LEFT
        assert views[0].sort_direction is SortDirection.ASC
        assert views[0].sort_priority == 1
        assert views[0].label == "Name"


class TestGeometry:
    def test_total_width(self, session) -> None:
        assert session.index_column_width == 50
        assert session.total_width == 500
        session.selection_enabled = True
        assert session.total_width == 548
        assert session.col_span == 5

    def test_index_width_grows_with_total(self, settings) -> None:
        grid = GridSession(_columns(), settings=settings)
        grid.set_source(_rows(0, 5), total_rows=12345)
        assert grid.index_column_width == 95

    def test_fit_reserves_gutters(self, session) -> None:
        # 50 gutter + 20 scrollbar leave 450 for three columns.
        assert session.fit_to_container(520) == {"id": 150, "name": 150, "age": 150}


class TestRowsAndViews:
    def test_row_views(self, settings) -> None:
        grid = GridSession(
            _columns(),
            settings=settings,
            get_row_style=lambda row, index: {"background": "#eee"} if index % 2 else None,
        )
        grid.set_source(_rows(10, 13), page_info=PageInfo(2, 10, 30))
        grid.toggle_row_selection(11)
        grid.resize_row(12, 80)
        views = grid.row_views()
        assert [v.global_index for v in views] == [11, 12, 13]
        assert [v.selected for v in views] == [False, True, False]
        assert views[1].style == {"background": "#eee"}
        assert views[2].height == 80

    def test_apply_filters_and_sorts(self, settings, people_rows, people_columns) -> None:
        grid = GridSession(people_columns, settings=settings)
        grid.set_filter("age", FilterClause("age", NumberOperation.LESS_THAN, 40))
        grid.toggle_sort("name")
        grid.toggle_sort("name")
        rows = grid.apply_filters_and_sorts(people_rows)
        assert [row["id"] for row in rows] == [2, 5, 1]

    def test_footer(self, session) -> None:
        session.toggle_row_selection(1)
        assert session.footer_summary() == "3 of 3 rows | 3 columns | 1 selected"

    def test_paginated_footer(self, settings) -> None:
        grid = GridSession(_columns(), settings=settings)
        grid.set_source(_rows(0, 10), page_info=PageInfo(1, 10, 25))
        assert grid.footer_summary() == "10 of 25 rows | page 1/3 | 3 columns"


class TestEditing:
    def _grid(self, settings, on_update, **kwargs) -> GridSession:
        columns = [Column("name", edit=EditCapability(on_update=on_update)), Column("age")]
        grid = GridSession(columns, settings=settings, **kwargs)
        grid.set_source(_rows(0, 3))
        return grid

    def test_unknown_row(self, settings) -> None:
        grid = self._grid(settings, lambda rid, value: None)
        with pytest.raises(UnknownRowError):
            grid.begin_edit(99, "name")
        with pytest.raises(UnknownColumnError):
            grid.begin_edit(1, "missing")
        assert grid.begin_edit(1, "age") is False

    def test_cell_view_tracks_edit(self, settings) -> None:
        saved = []
        grid = self._grid(settings, lambda rid, value: saved.append((rid, value)))
        row = grid.rows.find_row(1)
        assert grid.begin_edit(1, "name") is True
        grid.change_value(1, "name", "renamed")
        view = grid.cell_view(row, "name")
        assert view.is_editing
        assert view.value == "user 1"
        assert view.pending_value == "renamed"

        grid.commit_edit(1, "name")
        assert saved == [(1, "renamed")]
        assert not grid.cell_view(row, "name").is_editing

    def test_save_errors_cleared_on_new_source(self, settings) -> None:
        def failing(row_id, value):
            raise ValueError("nope")

        errors = []
        grid = self._grid(settings, failing, callbacks=GridCallbacks(on_save_error=lambda *args: errors.append(args)))
        grid.begin_edit(0, "name")
        grid.change_value(0, "name", "x")
        grid.commit_edit(0, "name")
        assert grid.cell_view(grid.rows.find_row(0), "name").save_error == "nope"
        assert len(errors) == 1

        grid.set_source(_rows(0, 3))
        assert grid.cell_view(grid.rows.find_row(0), "name").save_error is None

    def test_escape_cancels_active_edit(self, settings) -> None:
        grid = self._grid(settings, lambda rid, value: None)
        grid.begin_edit(2, "name")
        assert grid.cancel_active_edit() is True
        assert grid.edits.editing_cells == []
