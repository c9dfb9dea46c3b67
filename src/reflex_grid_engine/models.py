"""Renderer-facing column definitions.

A :class:`ColumnDef` is the JSON a frontend grid component receives for one
column: layout (width, pin side), capabilities, and the current sort and
filter indicators.  Attributes are converted from snake_case to camelCase
when serialized via ``PropsBase``.
"""

from typing import Any, Literal

from reflex.components.props import PropsBase

from reflex_grid_engine.types import Column, ColumnView


class ColumnDef(PropsBase):
    """Column definition sent to the frontend grid."""

    field: str
    header_name: str | None = None
    width: int | None = None
    min_width: int | None = None
    max_width: int | None = None
    type: Literal["text", "number", "date", "boolean", "select", "country", "phone"] | None = None
    pinned: Literal["left", "right"] | None = None
    editable: bool = False
    sortable: bool = True
    filterable: bool = True
    resizable: bool = True
    description: str | None = None
    value_options: list[Any] | None = None
    sort_direction: Literal["asc", "desc"] | None = None
    sort_priority: int | None = None
    filter: dict[str, Any] | None = None


def column_def_from_view(view: ColumnView, column: Column | None = None) -> ColumnDef:
    """Build the frontend definition of a column from its current view.

    Args:
        view: The column view from :meth:`GridSession.column_view`.
        column: The descriptor, for width bounds and select options.
    """
    options = None
    if column is not None and column.edit is not None:
        options = column.edit.options
    return ColumnDef(
        field=view.column_id,
        header_name=view.label,
        width=view.width,
        min_width=column.min_width if column is not None else None,
        max_width=column.max_width if column is not None else None,
        type=view.column_type.value,
        pinned=view.pin.value if view.pin is not None else None,
        editable=view.editable,
        sortable=view.sortable,
        filterable=view.filterable,
        resizable=view.resizable,
        description=view.description,
        value_options=options,
        sort_direction=view.sort_direction.value if view.sort_direction is not None else None,
        sort_priority=view.sort_priority,
        filter=view.active_filter.to_dict() if view.active_filter is not None else None,
    )
