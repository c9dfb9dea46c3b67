"""reflex-grid-engine – state and interaction engine for data grids.

Column layout (widths, pinning, visibility), row heights and selection,
paginated or scroll-loaded data windows, typed filter/sort clauses and an
in-place cell edit lifecycle, usable headless or from a Reflex app::

    pip install reflex-grid-engine

Use :class:`GridSession` directly, or inherit :class:`GridStateMixin` in a
Reflex state to drive one from UI events.
"""

from reflex_grid_engine.columns import ColumnRegistry, ContentMeasurer
from reflex_grid_engine.config import GridSettings, clear_settings, get_settings
from reflex_grid_engine.editing import CellEditLifecycle
from reflex_grid_engine.exceptions import (
    ColumnCapabilityError,
    DuplicateColumnError,
    GridConfigError,
    GridEngineError,
    InvalidFilterClauseError,
    PresetError,
    UnknownColumnError,
    UnknownRowError,
)
from reflex_grid_engine.filters import (
    BooleanOperation,
    DateOperation,
    DateRange,
    FilterClause,
    FilterFamily,
    FilterSortModel,
    NumberOperation,
    SortClause,
    TextOperation,
    filter_rows,
    operation_requires_value,
    sort_rows,
)
from reflex_grid_engine.models import ColumnDef, column_def_from_view
from reflex_grid_engine.polars_utils import (
    LazyFrameRowSource,
    apply_filter_clauses,
    apply_sort_clauses,
    build_columns_from_schema,
    filter_clause_to_expr,
    polars_dtype_to_column_type,
    scan_file,
)
from reflex_grid_engine.rows import RowRegistry
from reflex_grid_engine.session import GridSession
from reflex_grid_engine.state import GridStateMixin
from reflex_grid_engine.storage import InMemoryWidthStore, JsonFileWidthStore, WidthStore
from reflex_grid_engine.types import (
    CellEditState,
    CellView,
    Column,
    ColumnType,
    ColumnView,
    EditCapability,
    GridCallbacks,
    LoadMoreParams,
    PageInfo,
    PinSide,
    RowView,
    SortDirection,
    is_editable_column,
)
