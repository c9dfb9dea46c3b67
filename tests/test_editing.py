"""Tests for the in-place cell edit lifecycle."""

import asyncio

import pytest

from reflex_grid_engine.editing import CellEditLifecycle
from reflex_grid_engine.exceptions import GridEngineError
from reflex_grid_engine.types import Column, EditCapability


def _required(value):
    if value is None or value == "":
        return "Required"
    return None


class _Recorder:
    """Synchronous ``on_update`` that records every save."""

    def __init__(self) -> None:
        self.saved: list[tuple] = []

    def __call__(self, row_id, value) -> None:
        self.saved.append((row_id, value))


@pytest.fixture
def recorder() -> _Recorder:
    return _Recorder()


@pytest.fixture
def name_column(recorder) -> Column:
    return Column("name", edit=EditCapability(on_update=recorder, validator=_required))


@pytest.fixture
def city_column(recorder) -> Column:
    return Column("city", edit=EditCapability(on_update=recorder))


class TestTransitions:
    """View -> edit -> commit/cancel."""

    def test_read_only_column_cannot_edit(self) -> None:
        edits = CellEditLifecycle()
        assert edits.begin_edit(1, Column("name"), "Ann") is False
        assert edits.active_cell is None

    def test_begin_seeds_and_validates(self, name_column) -> None:
        edits = CellEditLifecycle()
        assert edits.begin_edit(1, name_column, "") is True
        state = edits.state(1, "name")
        assert state.pending_value == ""
        assert state.error_message == "Required"
        assert edits.active_cell == (1, "name")

    def test_begin_twice_is_rejected(self, name_column) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        assert edits.begin_edit(1, name_column, "Ann") is False

    def test_change_revalidates(self, name_column) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        assert edits.change_value(1, "name", "") == "Required"
        assert edits.change_value(1, "name", "Anna") is None
        assert edits.state(1, "name").pending_value == "Anna"

    def test_change_on_idle_cell_is_ignored(self) -> None:
        edits = CellEditLifecycle()
        assert edits.change_value(1, "name", "x") is None
        assert edits.state(1, "name") is None

    def test_commit_saves_changed_value(self, name_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.change_value(1, "name", "Anna")
        assert edits.commit(1, "name") is None
        assert not edits.is_editing(1, "name")
        assert recorder.saved == [(1, "Anna")]

    def test_invalid_value_blocks_commit(self, name_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.change_value(1, "name", "")
        edits.commit(1, "name")
        assert edits.is_editing(1, "name")
        assert recorder.saved == []

    def test_unchanged_value_is_a_cancel(self, name_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.commit(1, "name")
        assert not edits.is_editing(1, "name")
        assert recorder.saved == []

    def test_empty_value_over_missing_original_is_a_cancel(self, city_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, city_column, None)
        edits.change_value(1, "city", "")
        edits.commit(1, "city")
        assert recorder.saved == []

    def test_commit_against_explicit_original(self, city_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, city_column, "Oslo")
        edits.change_value(1, "city", "Bergen")
        edits.commit(1, "city", original_value="Bergen")
        assert recorder.saved == []

    def test_cancel_discards_pending_value(self, name_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.change_value(1, "name", "Anna")
        edits.cancel(1, "name")
        assert edits.state(1, "name") is None
        assert edits.active_cell is None
        assert recorder.saved == []

    def test_cancel_active_edit(self, name_column) -> None:
        edits = CellEditLifecycle()
        assert edits.cancel_active_edit() is False
        edits.begin_edit(1, name_column, "Ann")
        assert edits.cancel_active_edit() is True
        assert edits.editing_cells == []

    def test_validator_errors_propagate(self, recorder) -> None:
        def broken(value):
            raise RuntimeError("validator bug")

        column = Column("name", edit=EditCapability(on_update=recorder, validator=broken))
        edits = CellEditLifecycle()
        with pytest.raises(RuntimeError):
            edits.begin_edit(1, column, "Ann")


class TestSingleActiveEdit:
    """Starting another edit behaves like a blur of the active cell."""

    def test_begin_elsewhere_commits_active_cell(self, name_column, city_column, recorder) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.change_value(1, "name", "Anna")
        assert edits.begin_edit(2, city_column, "Oslo") is True
        assert recorder.saved == [(1, "Anna")]
        assert edits.editing_cells == [(2, "city")]
        assert edits.active_cell == (2, "city")

    def test_invalid_active_cell_keeps_focus(self, name_column, city_column) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.change_value(1, "name", "")
        assert edits.begin_edit(2, city_column, "Oslo") is False
        assert edits.active_cell == (1, "name")
        assert edits.editing_cells == [(1, "name")]

    def test_prune_drops_rows_outside_window(self, name_column) -> None:
        edits = CellEditLifecycle()
        edits.begin_edit(1, name_column, "Ann")
        edits.prune([2, 3])
        assert edits.state(1, "name") is None
        assert edits.active_cell is None


class TestSaving:
    """Optimistic saves and failure reporting."""

    def test_sync_failure_marks_cell(self) -> None:
        failures = []

        def failing(row_id, value):
            raise ValueError("rejected")

        column = Column("name", edit=EditCapability(on_update=failing))
        edits = CellEditLifecycle(on_save_error=lambda rid, cid, exc: failures.append((rid, cid, exc)))
        edits.begin_edit(1, column, "Ann")
        edits.change_value(1, "name", "Anna")
        edits.commit(1, "name")

        assert not edits.is_editing(1, "name")
        assert edits.save_error(1, "name") == "rejected"
        assert failures[0][:2] == (1, "name")
        assert isinstance(failures[0][2], ValueError)

    def test_async_save_without_event_loop_marks_cell(self) -> None:
        failures = []
        started = []

        async def on_update(row_id, value):
            started.append(value)

        column = Column("name", edit=EditCapability(on_update=on_update))
        edits = CellEditLifecycle(on_save_error=lambda rid, cid, exc: failures.append((rid, cid, exc)))
        edits.begin_edit(1, column, "Ann")
        edits.change_value(1, "name", "Anna")

        assert edits.commit(1, "name") is None
        assert not edits.is_editing(1, "name")
        assert not edits.save_pending(1, "name")
        assert "no event loop is running" in edits.save_error(1, "name")
        assert failures[0][:2] == (1, "name")
        assert isinstance(failures[0][2], GridEngineError)
        assert started == []

    @pytest.mark.asyncio
    async def test_async_save_is_optimistic(self) -> None:
        release = asyncio.Event()
        saved = []

        async def on_update(row_id, value):
            await release.wait()
            saved.append((row_id, value))

        column = Column("name", edit=EditCapability(on_update=on_update))
        edits = CellEditLifecycle()
        edits.begin_edit(1, column, "Ann")
        edits.change_value(1, "name", "Anna")
        future = edits.commit(1, "name")

        assert future is not None
        assert not edits.is_editing(1, "name")
        assert edits.save_pending(1, "name")

        release.set()
        await future
        await asyncio.sleep(0)
        assert saved == [(1, "Anna")]
        assert not edits.save_pending(1, "name")
        assert edits.save_error(1, "name") is None

    @pytest.mark.asyncio
    async def test_async_failure_reported(self) -> None:
        failures = []

        async def on_update(row_id, value):
            raise ConnectionError("offline")

        column = Column("name", edit=EditCapability(on_update=on_update))
        edits = CellEditLifecycle(on_save_error=lambda rid, cid, exc: failures.append(exc))
        edits.begin_edit(1, column, "Ann")
        edits.change_value(1, "name", "Anna")
        future = edits.commit(1, "name")

        await asyncio.wait([future])
        await asyncio.sleep(0)
        assert edits.save_error(1, "name") == "offline"
        assert edits.save_errors == {(1, "name"): "offline"}
        assert len(failures) == 1
        assert not edits.is_editing(1, "name")

        edits.clear_save_errors()
        assert edits.save_error(1, "name") is None

    @pytest.mark.asyncio
    async def test_superseded_failure_is_ignored(self) -> None:
        slow = asyncio.Event()
        failures = []

        async def on_update(row_id, value):
            if value == "first":
                await slow.wait()
                raise RuntimeError("stale")

        column = Column("name", edit=EditCapability(on_update=on_update))
        edits = CellEditLifecycle(on_save_error=lambda rid, cid, exc: failures.append(exc))

        edits.begin_edit(1, column, "Ann")
        edits.change_value(1, "name", "first")
        first = edits.commit(1, "name")
        edits.begin_edit(1, column, "first")
        edits.change_value(1, "name", "second")
        second = edits.commit(1, "name")

        await second
        slow.set()
        await asyncio.wait([first])
        await asyncio.sleep(0)
        assert failures == []
        assert edits.save_error(1, "name") is None
        assert not edits.save_pending(1, "name")
