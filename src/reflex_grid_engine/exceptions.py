"""Exception hierarchy for reflex-grid-engine.

Everything raised by the engine inherits from :class:`GridEngineError`, so
callers can catch the whole family with one ``except`` clause.  Interaction
intents that merely do not apply (resizing an unknown column, hiding a
column twice) are logged and ignored instead of raised.
"""

from typing import Any


class GridEngineError(Exception):
    """Base exception for all grid engine errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class GridConfigError(GridEngineError):
    """The grid was constructed with an inconsistent configuration."""


class DuplicateColumnError(GridConfigError):
    """Two column descriptors share the same id."""

    def __init__(self, column_id: str, **context: Any) -> None:
        super().__init__(f"Duplicate column id: {column_id}", column_id=column_id, **context)
        self.column_id = column_id


class UnknownColumnError(GridEngineError):
    """A column id does not match any registered column."""

    def __init__(self, column_id: str, **context: Any) -> None:
        super().__init__(f"Unknown column: {column_id}", column_id=column_id, **context)
        self.column_id = column_id


class UnknownRowError(GridEngineError):
    """A row id is not part of the current data window."""

    def __init__(self, row_id: Any, **context: Any) -> None:
        super().__init__(f"Unknown row: {row_id}", row_id=row_id, **context)
        self.row_id = row_id


class ColumnCapabilityError(GridEngineError):
    """An intent requires a capability the column does not declare.

    For example sorting a column created with ``sortable=False`` or
    editing a column without an edit capability.
    """

    def __init__(self, column_id: str, capability: str, **context: Any) -> None:
        super().__init__(
            f"Column {column_id!r} is not {capability}",
            column_id=column_id,
            capability=capability,
            **context,
        )
        self.column_id = column_id
        self.capability = capability


class InvalidFilterClauseError(GridEngineError):
    """A filter clause is inconsistent with its operation."""


class PresetError(GridEngineError):
    """A filter/sort preset could not be parsed."""
