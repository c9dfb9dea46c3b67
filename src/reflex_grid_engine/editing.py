"""In-place cell editing: view -> edit -> validate -> save / cancel.

Each cell being edited is keyed by ``(row_id, column_id)`` and holds a
:class:`CellEditState`.  The state lives here rather than in the rendered
cell, so a cell that scrolls out of view and back keeps its pending value.

Committing is optimistic: the cell returns to viewing immediately and the
column's ``on_update`` runs in the background.  A failed save does not
re-open the editor; it marks the cell with a save error and is reported
through ``on_save_error``.

Only one cell edits at a time.  Beginning an edit on another cell first
commits the active one (as a blur would); :meth:`cancel_active_edit` is
the Escape key.
"""

import asyncio
import inspect
from collections.abc import Callable, Iterable
from functools import partial
from typing import Any

from reflex_grid_engine import log
from reflex_grid_engine.exceptions import GridEngineError
from reflex_grid_engine.types import CellEditState, Column, RowId, is_editable_column


CellKey = tuple[RowId, str]

_UNSET: Any = object()


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class CellEditLifecycle:
    """Tracks every editing cell and the single active-edit slot.

    Args:
        on_save_error: Called as ``on_save_error(row_id, column_id, exc)``
            when a column's ``on_update`` fails.
    """

    def __init__(
        self,
        *,
        on_save_error: Callable[[RowId, str, BaseException], Any] | None = None,
    ) -> None:
        self.on_save_error = on_save_error
        self._states: dict[CellKey, CellEditState] = {}
        self._columns: dict[CellKey, Column] = {}
        self._originals: dict[CellKey, Any] = {}
        self._active: CellKey | None = None
        self._saves: dict[CellKey, asyncio.Future] = {}
        self._save_errors: dict[CellKey, str] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, row_id: RowId, column_id: str) -> CellEditState | None:
        return self._states.get((row_id, column_id))

    def is_editing(self, row_id: RowId, column_id: str) -> bool:
        state = self._states.get((row_id, column_id))
        return state is not None and state.is_editing

    @property
    def active_cell(self) -> CellKey | None:
        return self._active

    @property
    def editing_cells(self) -> list[CellKey]:
        return [key for key, state in self._states.items() if state.is_editing]

    def save_pending(self, row_id: RowId, column_id: str) -> bool:
        future = self._saves.get((row_id, column_id))
        return future is not None and not future.done()

    def save_error(self, row_id: RowId, column_id: str) -> str | None:
        return self._save_errors.get((row_id, column_id))

    @property
    def save_errors(self) -> dict[CellKey, str]:
        return dict(self._save_errors)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_edit(self, row_id: RowId, column: Column, current_value: Any) -> bool:
        """Enter edit mode for a cell, seeding and validating its value.

        Returns:
            False when the column is not editable, the cell is already
            editing, or the active cell could not be committed because
            its value is invalid.
        """
        if not is_editable_column(column):
            log.debug(f"[CellEdit] {column.id!r} is not editable")
            return False
        key = (row_id, column.id)
        if self.is_editing(*key):
            return False

        if self._active is not None and self._active != key:
            previous = self._active
            self.commit(*previous)
            if self.is_editing(*previous):
                log.debug(f"[CellEdit] {previous} keeps focus, value is invalid")
                return False

        self._states[key] = CellEditState(
            is_editing=True,
            pending_value=current_value,
            error_message=column.edit.validate(current_value),  # type: ignore[union-attr]
        )
        self._columns[key] = column
        self._originals[key] = current_value
        self._active = key
        log.debug(f"[CellEdit] begin {key}")
        return True

    def change_value(self, row_id: RowId, column_id: str, value: Any) -> str | None:
        """Update the pending value and return the new validation error."""
        key = (row_id, column_id)
        state = self._states.get(key)
        if state is None or not state.is_editing:
            log.warn(f"[CellEdit] change ignored, {key} is not editing")
            return None
        state.pending_value = value
        state.error_message = self._columns[key].edit.validate(value)  # type: ignore[union-attr]
        return state.error_message

    def commit(
        self,
        row_id: RowId,
        column_id: str,
        original_value: Any = _UNSET,
    ) -> asyncio.Future | None:
        """Leave edit mode, saving the pending value if it changed.

        A cell with a validation error stays in edit mode.  An unchanged
        value, or an empty value where there was none, is a plain cancel.

        Args:
            original_value: The value before editing; defaults to the value
                the edit began with.

        Returns:
            The scheduled save when ``on_update`` is asynchronous, else None.
            An asynchronous ``on_update`` needs a running event loop; without
            one the save is not started and the cell gets a save error.
        """
        key = (row_id, column_id)
        state = self._states.get(key)
        if state is None or not state.is_editing:
            return None
        if state.error_message:
            log.debug(f"[CellEdit] commit blocked for {key}: {state.error_message}")
            return None

        original = self._originals.get(key) if original_value is _UNSET else original_value
        value = state.pending_value
        if (_is_empty(value) and original is None) or value == original:
            self.cancel(row_id, column_id)
            return None

        column = self._columns[key]
        self._discard(key)
        log.debug(f"[CellEdit] commit {key}")
        return self._save(key, column, value)

    def cancel(self, row_id: RowId, column_id: str) -> None:
        key = (row_id, column_id)
        if key in self._states:
            log.debug(f"[CellEdit] cancel {key}")
        self._discard(key)

    def cancel_active_edit(self) -> bool:
        """Cancel whichever cell currently edits.  Returns False if none."""
        if self._active is None:
            return False
        self.cancel(*self._active)
        return True

    def prune(self, row_ids: Iterable[RowId]) -> None:
        """Drop edit state and save errors of rows outside *row_ids*."""
        keep = set(row_ids)
        for key in [k for k in self._states if k[0] not in keep]:
            self._discard(key)
        for key in [k for k in self._save_errors if k[0] not in keep]:
            del self._save_errors[key]

    def clear_save_errors(self) -> None:
        self._save_errors.clear()

    def _discard(self, key: CellKey) -> None:
        self._states.pop(key, None)
        self._columns.pop(key, None)
        self._originals.pop(key, None)
        if self._active == key:
            self._active = None

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def _save(self, key: CellKey, column: Column, value: Any) -> asyncio.Future | None:
        row_id, column_id = key
        self._save_errors.pop(key, None)
        try:
            result = column.edit.on_update(row_id, value)  # type: ignore[union-attr]
        except Exception as exc:
            self._record_failure(key, exc)
            return None
        if not inspect.isawaitable(result):
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            self._record_failure(
                key,
                GridEngineError("on_update returned an awaitable but no event loop is running", column_id=column_id),
            )
            return None

        future = asyncio.ensure_future(result)
        self._saves[key] = future
        future.add_done_callback(partial(self._on_save_done, key))
        return future

    def _on_save_done(self, key: CellKey, future: asyncio.Future) -> None:
        superseded = self._saves.get(key) is not future
        if not superseded:
            del self._saves[key]
        if future.cancelled():
            return
        exc = future.exception()
        if superseded:
            # A newer save of the same cell decides its state.
            return
        if exc is None:
            self._save_errors.pop(key, None)
            log.debug(f"[CellEdit] saved {key}")
            return
        self._record_failure(key, exc)

    def _record_failure(self, key: CellKey, exc: BaseException) -> None:
        row_id, column_id = key
        self._save_errors[key] = str(exc) or type(exc).__name__
        log.error(f"[CellEdit] save failed for {key}: {exc!r}")
        if self.on_save_error is not None:
            self.on_save_error(row_id, column_id, exc)
