"""Column registry: widths, pinning and visibility.

The registry is the single owner of the column layout state.  Layout
intents coming from the UI (drag a resize handle, pick "pin left" in a
column menu, autosize on double click) never raise: an intent that does
not apply, such as resizing a column that is not resizable, is logged and
ignored.  Only constructing a registry with duplicate column ids raises.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from reflex_grid_engine import log
from reflex_grid_engine.config import GridSettings, get_settings
from reflex_grid_engine.exceptions import DuplicateColumnError, UnknownColumnError
from reflex_grid_engine.storage import WidthStore
from reflex_grid_engine.types import Column, PinSide


ContentMeasurer = Callable[[str], Sequence[float]]
"""Returns the rendered widths of a column's header and materialized cells."""


class ColumnRegistry:
    """Owns width, pin side and visibility of every column.

    Args:
        columns: Column descriptors in display order.  Ids must be unique.
        settings: Width policy; defaults to :func:`get_settings`.
        width_store: Where widths of columns with a ``width_storage_key``
            are loaded from and saved to.
        measurer: Measures rendered content for :meth:`autosize`.
        hidden: Ids hidden initially.
        pinned: Initial pin sides.

    Raises:
        DuplicateColumnError: If two columns share an id.
    """

    def __init__(
        self,
        columns: Sequence[Column],
        *,
        settings: GridSettings | None = None,
        width_store: WidthStore | None = None,
        measurer: ContentMeasurer | None = None,
        hidden: Iterable[str] = (),
        pinned: Mapping[str, PinSide | str] | None = None,
        on_resize_column: Callable[[str, int], Any] | None = None,
        on_pin_column: Callable[[str, PinSide | None], Any] | None = None,
        on_hide_column: Callable[[str], Any] | None = None,
        on_show_column: Callable[[str], Any] | None = None,
        on_autosize_column: Callable[[str, int], Any] | None = None,
    ) -> None:
        self._by_id: dict[str, Column] = {}
        for column in columns:
            if column.id in self._by_id:
                raise DuplicateColumnError(column.id)
            self._by_id[column.id] = column
        self._columns: list[Column] = list(columns)

        self.settings = settings or get_settings()
        self.width_store = width_store
        self.measurer = measurer
        self.on_resize_column = on_resize_column
        self.on_pin_column = on_pin_column
        self.on_hide_column = on_hide_column
        self.on_show_column = on_show_column
        self.on_autosize_column = on_autosize_column

        self._stored: set[str] = set()
        self._widths: dict[str, int] = {c.id: self._initial_width(c) for c in self._columns}
        # Insertion-ordered set of hidden ids.
        self._hidden: dict[str, None] = {cid: None for cid in hidden if cid in self._by_id}
        self._pins: dict[str, PinSide] = {}
        for cid, side in (pinned or {}).items():
            if cid in self._by_id:
                self._pins[cid] = PinSide(side)
                self._hidden.pop(cid, None)
        self._container_width: float | None = None

    def _initial_width(self, column: Column) -> int:
        floor = self.settings.min_column_width
        if column.width_storage_key and self.width_store is not None:
            saved = self.width_store.load(column.width_storage_key)
            if saved is not None:
                self._stored.add(column.id)
                return column.clamp_width(max(saved, floor), floor)
        return column.clamp_width(column.initial_width or self.settings.default_column_width, floor)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def columns(self) -> list[Column]:
        """Every column, hidden ones included, in display order."""
        return list(self._columns)

    def get(self, column_id: str) -> Column | None:
        return self._by_id.get(column_id)

    def column(self, column_id: str) -> Column:
        """Return the column with *column_id*.

        Raises:
            UnknownColumnError: If no such column exists.
        """
        try:
            return self._by_id[column_id]
        except KeyError:
            raise UnknownColumnError(column_id) from None

    def __contains__(self, column_id: object) -> bool:
        return column_id in self._by_id

    def width(self, column_id: str) -> int:
        return self._widths[self.column(column_id).id]

    @property
    def widths(self) -> dict[str, int]:
        return dict(self._widths)

    def pin_side(self, column_id: str) -> PinSide | None:
        return self._pins.get(column_id)

    def is_hidden(self, column_id: str) -> bool:
        return column_id in self._hidden

    @property
    def hidden_column_ids(self) -> list[str]:
        return list(self._hidden)

    @property
    def visible_columns(self) -> list[Column]:
        return [c for c in self._columns if c.id not in self._hidden]

    @property
    def left_pinned_columns(self) -> list[Column]:
        return [c for c in self.visible_columns if self._pins.get(c.id) is PinSide.LEFT]

    @property
    def right_pinned_columns(self) -> list[Column]:
        return [c for c in self.visible_columns if self._pins.get(c.id) is PinSide.RIGHT]

    @property
    def unpinned_columns(self) -> list[Column]:
        return [c for c in self.visible_columns if c.id not in self._pins]

    @property
    def visible_width(self) -> int:
        return sum(self._widths[c.id] for c in self.visible_columns)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def resize(self, column_id: str, width: float) -> int | None:
        """Set a column width, clamped to its bounds and the global floor.

        Returns:
            The applied width, or ``None`` when the intent was ignored.
        """
        column = self._by_id.get(column_id)
        if column is None:
            log.warn(f"[ColumnRegistry] resize ignored, unknown column {column_id!r}")
            return None
        if not column.resizable:
            log.warn(f"[ColumnRegistry] resize ignored, column {column_id!r} is not resizable")
            return None

        applied = column.clamp_width(width, self.settings.min_column_width)
        self._widths[column_id] = applied
        if column.width_storage_key and self.width_store is not None:
            self.width_store.save(column.width_storage_key, applied)
            self._stored.add(column_id)
        log.debug(f"[ColumnRegistry] resize {column_id}: {width} -> {applied}")
        if self.on_resize_column is not None:
            self.on_resize_column(column_id, applied)
        return applied

    def pin(self, column_id: str, side: PinSide | str | None) -> None:
        """Pin a column to one side, or unpin it with ``None``.

        Pinning a hidden column shows it.  Column order is not changed.
        """
        if column_id not in self._by_id:
            log.warn(f"[ColumnRegistry] pin ignored, unknown column {column_id!r}")
            return
        if side is None:
            self._pins.pop(column_id, None)
            new_side = None
        else:
            new_side = PinSide(side)
            self._pins[column_id] = new_side
            if column_id in self._hidden:
                self.show(column_id)
        log.debug(f"[ColumnRegistry] pin {column_id}: {new_side.value if new_side else 'none'}")
        if self.on_pin_column is not None:
            self.on_pin_column(column_id, new_side)

    def hide(self, column_id: str) -> None:
        """Hide a column.  A pinned column is unpinned first."""
        if column_id not in self._by_id:
            log.warn(f"[ColumnRegistry] hide ignored, unknown column {column_id!r}")
            return
        if column_id in self._hidden:
            return
        if column_id in self._pins:
            self.pin(column_id, None)
        self._hidden[column_id] = None
        log.debug(f"[ColumnRegistry] hide {column_id}")
        if self.on_hide_column is not None:
            self.on_hide_column(column_id)

    def show(self, column_id: str) -> None:
        if column_id not in self._hidden:
            return
        del self._hidden[column_id]
        log.debug(f"[ColumnRegistry] show {column_id}")
        if self.on_show_column is not None:
            self.on_show_column(column_id)

    def autosize(self, column_id: str) -> int | None:
        """Fit a column to its widest rendered content plus padding.

        Does nothing until the header or some cells have been rendered
        (the measurer returns no widths).  Autosized widths are not
        persisted.
        """
        column = self._by_id.get(column_id)
        if column is None or self.measurer is None:
            return None
        measured = [w for w in self.measurer(column_id) if w is not None]
        if not measured:
            log.debug(f"[ColumnRegistry] autosize {column_id}: nothing rendered yet")
            return None

        floor = self.settings.min_column_width
        applied = column.clamp_width(max(measured) + self.settings.autosize_padding, floor)
        self._widths[column_id] = applied
        log.debug(f"[ColumnRegistry] autosize {column_id}: {applied}")
        if self.on_autosize_column is not None:
            self.on_autosize_column(column_id, applied)
        return applied

    # ------------------------------------------------------------------
    # Container fitting
    # ------------------------------------------------------------------

    def _available_width(self, container_width: float, fixed_width: float) -> float:
        return container_width - fixed_width - self.settings.scrollbar_width

    def fit_to_container(self, container_width: float, fixed_width: float = 0) -> dict[str, int]:
        """Distribute the container width over the visible columns.

        Non-resizable columns keep their initial width and columns with a
        persisted width keep it; the rest share what is left evenly, never
        going below their lower bound.

        Args:
            container_width: Outer width of the grid.
            fixed_width: Width taken by gutters (row numbers, checkboxes).

        Returns:
            The new width map.
        """
        floor = self.settings.min_column_width
        available = self._available_width(container_width, fixed_width)
        flexible: list[Column] = []
        taken = 0
        for column in self.visible_columns:
            if not column.resizable or column.id in self._stored:
                taken += self._widths[column.id]
            else:
                flexible.append(column)

        if flexible:
            share = max(0.0, available - taken) / len(flexible)
            for column in flexible:
                self._widths[column.id] = column.clamp_width(share, floor)
        self._container_width = container_width - fixed_width
        log.debug(f"[ColumnRegistry] fit to {container_width}px, {len(flexible)} flexible column(s)")
        return self.widths

    def scale_to_container(self, container_width: float, fixed_width: float = 0) -> dict[str, int]:
        """Rescale resizable visible widths after the container resized.

        The first call (no previous container width) behaves like
        :meth:`fit_to_container`.
        """
        if self._container_width is None:
            return self.fit_to_container(container_width, fixed_width)

        previous = self._container_width - self.settings.scrollbar_width
        current = self._available_width(container_width, fixed_width)
        self._container_width = container_width - fixed_width
        if previous <= 0 or current <= 0 or previous == current:
            return self.widths

        scale = current / previous
        floor = self.settings.min_column_width
        for column in self.visible_columns:
            if not column.resizable:
                continue
            self._widths[column.id] = column.clamp_width(self._widths[column.id] * scale, floor)
        log.debug(f"[ColumnRegistry] scaled widths by {scale:.3f}")
        return self.widths
